"""Process-wide service wiring for the API.

The GraphService is built once in the app lifespan (or injected by tests
via set_graph_service) and handed to routes through FastAPI dependencies.
"""

from __future__ import annotations

import logging
from typing import Optional

from agentgraph import settings
from agentgraph.agents.inference import build_capability
from agentgraph.cache import build_cache
from agentgraph.engine.coordinator import SessionCoordinator
from agentgraph.nodes.catalog import load_catalog
from agentgraph.service import GraphService
from app.debounce import SyncRateLimiter
from app.repositories.diagnostics import SqlDiagnosticsLog
from app.repositories.graph_session import SqlSessionStore

logger = logging.getLogger(__name__)

_graph_service: Optional[GraphService] = None
_sync_limiter = SyncRateLimiter()


def build_graph_service() -> GraphService:
    """Compose the service from settings: configured cache + SQL store + configured provider."""
    catalog = load_catalog(settings.AGENT_CATALOG_FILE)
    coordinator = SessionCoordinator(build_cache(), SqlSessionStore())
    capability = build_capability(settings.INFERENCE_PROVIDER, catalog)
    logger.info(
        f"Graph service ready: {len(catalog)} agent types, provider={settings.INFERENCE_PROVIDER}"
    )
    return GraphService(catalog, coordinator, capability, diagnostics=SqlDiagnosticsLog())


def set_graph_service(service: Optional[GraphService]) -> None:
    global _graph_service
    _graph_service = service


def get_graph_service() -> GraphService:
    """FastAPI dependency. Builds the default service on first use."""
    global _graph_service
    if _graph_service is None:
        _graph_service = build_graph_service()
    return _graph_service


def get_sync_limiter() -> SyncRateLimiter:
    return _sync_limiter
