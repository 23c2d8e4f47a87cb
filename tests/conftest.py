"""Root conftest for engine, repository and API tests.

Provides:
- In-memory SQLite database (replaces the production engine in app.database)
- GraphService fixtures wired to in-memory or SQL collaborators
- FastAPI AsyncClient with the test service injected
"""

from __future__ import annotations

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

import app.database as db_module
from app.database import Base

# Import all ORM models so they register with Base.metadata
import app.models.db  # noqa: F401

from agentgraph.cache import MemoryCache
from agentgraph.engine.coordinator import SessionCoordinator
from agentgraph.nodes.catalog import AgentCatalog
from agentgraph.service import GraphService
from tests.fakes import FakeClock, InMemoryDiagnostics, InMemoryStore, ScriptedCapability


# ---------------------------------------------------------------------------
# In-memory async SQLite engine (StaticPool shares one connection)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory SQLite engine per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def test_session(test_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Per-test database session with automatic rollback."""
    factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def patched_db(test_engine: AsyncEngine) -> AsyncGenerator[AsyncEngine, None]:
    """Point app.database at the test engine so get_session_ctx() uses it."""
    original_engine = db_module.engine
    original_factory = db_module.async_session_factory

    db_module.engine = test_engine
    db_module.async_session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )
    try:
        yield test_engine
    finally:
        db_module.engine = original_engine
        db_module.async_session_factory = original_factory


# ---------------------------------------------------------------------------
# Engine collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def catalog() -> AgentCatalog:
    return AgentCatalog()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> MemoryCache:
    return MemoryCache(clock=clock)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def diagnostics() -> InMemoryDiagnostics:
    return InMemoryDiagnostics()


@pytest.fixture
def capability() -> ScriptedCapability:
    return ScriptedCapability()


@pytest.fixture
def coordinator(cache: MemoryCache, store: InMemoryStore) -> SessionCoordinator:
    return SessionCoordinator(cache, store, ttl_seconds=1800)


@pytest.fixture
def service(
    catalog: AgentCatalog,
    coordinator: SessionCoordinator,
    capability: ScriptedCapability,
    diagnostics: InMemoryDiagnostics,
) -> GraphService:
    return GraphService(catalog, coordinator, capability, diagnostics=diagnostics)


# ---------------------------------------------------------------------------
# FastAPI test client
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def sql_service(
    patched_db: AsyncEngine,
    catalog: AgentCatalog,
    cache: MemoryCache,
    capability: ScriptedCapability,
) -> GraphService:
    """GraphService backed by the SQL store and diagnostics log on the test DB."""
    from app.repositories.diagnostics import SqlDiagnosticsLog
    from app.repositories.graph_session import SqlSessionStore

    coordinator = SessionCoordinator(cache, SqlSessionStore(), ttl_seconds=1800)
    return GraphService(catalog, coordinator, capability, diagnostics=SqlDiagnosticsLog())


@pytest_asyncio.fixture
async def client(sql_service: GraphService) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI routes.

    Injects the test GraphService and a fresh sync rate limiter.
    """
    from app import dependencies
    from app.debounce import SyncRateLimiter
    from app.main import app

    original_limiter = dependencies._sync_limiter
    dependencies.set_graph_service(sql_service)
    dependencies._sync_limiter = SyncRateLimiter(max_calls=2, window_seconds=5.0)
    try:
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        dependencies.set_graph_service(None)
        dependencies._sync_limiter = original_limiter
