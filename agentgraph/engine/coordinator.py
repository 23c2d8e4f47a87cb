"""Session Cache/Store Coordinator

Keeps the fast cache and the durable store consistent for graph sessions.

Contract:
- write: cache.set then store.put; success only once both complete. If the
  store write fails the cache entry is evicted so a later read cannot serve
  a state the store never accepted.
- read: cache first; on a miss (or an unreadable entry) the store, and the
  result repopulates the cache.
- delete: store first, then the cache entry. A read racing the delete can
  repopulate the cache only before the eviction, never after it.

Concurrent writers are not serialized here (last writer wins). Rate limiting
of repeated syncs belongs to the API boundary.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Protocol

from .. import settings
from .audit import AuditRecord
from .models import GraphSession

logger = logging.getLogger(__name__)


class SessionCache(Protocol):
    """Volatile, TTL-bound key/value cache."""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str, ttl_seconds: float) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def close(self) -> None:
        """Release connections held by the cache."""
        ...


class SessionStore(Protocol):
    """Durable session store keyed by session id."""

    async def get(self, session_id: str) -> Optional[GraphSession]:
        ...

    async def put(self, session: GraphSession) -> None:
        """Insert or replace the session.

        Raises ConflictError if a different session already holds the
        (owner, context) pair.
        """
        ...

    async def delete(self, session_id: str) -> bool:
        """Returns True if a session was deleted."""
        ...

    async def find(self, owner_id: str, context_id: Optional[str]) -> Optional[GraphSession]:
        """The session for an (owner, context) pair, if any."""
        ...

    async def list_by_owner(self, owner_id: str, limit: int) -> List[GraphSession]:
        """Owner's sessions, most recently updated first."""
        ...

    async def list_by_context(self, context_id: str) -> List[GraphSession]:
        ...


class DiagnosticsLog(Protocol):
    """Audit judgments and user actions, stored apart from sessions."""

    async def record_audit(self, record: AuditRecord) -> None:
        ...

    async def list_audits(self, session_id: str, node_id: Optional[str] = None) -> List[AuditRecord]:
        ...

    async def log_action(self, owner_id: str, action: str, details: Dict[str, Any]) -> None:
        ...


class SessionCoordinator:
    """Read-through / write-through access to sessions."""

    def __init__(
        self,
        cache: SessionCache,
        store: SessionStore,
        ttl_seconds: Optional[float] = None,
        key_prefix: Optional[str] = None,
    ):
        self.cache = cache
        self.store = store
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.GRAPH_CACHE_TTL_SECONDS
        self.key_prefix = key_prefix if key_prefix is not None else settings.GRAPH_CACHE_PREFIX

    def cache_key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    async def write(self, session: GraphSession) -> None:
        """Write a session to the cache, then to the store."""
        key = self.cache_key(session.id)
        await self.cache.set(key, json.dumps(session.to_dict()), self.ttl_seconds)
        try:
            await self.store.put(session)
        except Exception:
            logger.error(f"Store write failed for session {session.id}; evicting cache entry")
            await self.cache.delete(key)
            raise

    async def read(self, session_id: str) -> Optional[GraphSession]:
        """Read a session, falling back to the store on a cache miss."""
        key = self.cache_key(session_id)
        cached = await self.cache.get(key)
        if cached is not None:
            try:
                return GraphSession.from_dict(json.loads(cached))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"Discarding unreadable cache entry {key}: {e}")
                await self.cache.delete(key)

        logger.info(f"Cache miss for session {session_id}")
        session = await self.store.get(session_id)
        if session is not None:
            await self.cache.set(key, json.dumps(session.to_dict()), self.ttl_seconds)
        return session

    async def delete(self, session_id: str) -> bool:
        """Remove a session from the store, then evict it from the cache."""
        deleted = await self.store.delete(session_id)
        await self.cache.delete(self.cache_key(session_id))
        return deleted
