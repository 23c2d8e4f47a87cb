"""FastAPI Application Entry Point.

Configures the app, lifespan, CORS, and includes the graph session routes.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agentgraph import config
from agentgraph.logging_config import get_api_logger, get_engine_logger

from .database import close_db, init_db
from .dependencies import build_graph_service, set_graph_service

logger = get_api_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage database lifecycle and the graph service."""
    get_engine_logger()
    await init_db()
    service = build_graph_service()
    set_graph_service(service)
    logger.info("Agent graph API started")
    yield
    set_graph_service(None)
    await service.coordinator.cache.close()
    await close_db()


app = FastAPI(title="Agent Workflow Graph API", version="1.0.0", lifespan=lifespan)

CORS_ORIGINS = [o.strip() for o in config.CORS_ORIGINS.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

from .routes.graph import router as graph_router  # noqa: E402

app.include_router(graph_router)


@app.get("/health")
async def health_check():
    """Health check endpoint for container orchestration."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=config.API_HOST, port=config.API_PORT)
