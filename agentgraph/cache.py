"""Fast caches for the session coordinator.

Both implement the async get/set/delete interface the coordinator expects.
Values are strings.

- MemoryCache: in-process; each entry carries an absolute expiry computed
  from an injectable monotonic clock. Single worker only.
- RedisCache: shared across workers and processes; expiry is enforced by
  Redis itself.

build_cache() picks one from config.REDIS_URL.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Callable, Dict, Optional, Tuple, Union

import redis.asyncio as redis

from . import config

logger = logging.getLogger(__name__)


class MemoryCache:
    """Volatile key/value store with per-entry TTL.

    Expired entries are evicted lazily on read; purge_expired() evicts
    them eagerly.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.monotonic
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                logger.debug(f"Cache entry expired: {key}")
                return None
            return value

    async def set(self, key: str, value: str, ttl_seconds: float) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        async with self._lock:
            self._entries[key] = (value, self._clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    async def purge_expired(self) -> int:
        """Evict every expired entry. Returns the number evicted."""
        async with self._lock:
            now = self._clock()
            expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info(f"Purged {len(expired)} expired cache entries")
        return len(expired)

    async def close(self) -> None:
        async with self._lock:
            self._entries.clear()


class RedisCache:
    """Redis-backed cache shared by every API worker."""

    def __init__(self, client: "redis.Redis"):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(key)

    async def set(self, key: str, value: str, ttl_seconds: float) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        # Millisecond expiry keeps fractional TTLs
        await self._client.set(key, value, px=max(1, math.ceil(ttl_seconds * 1000)))

    async def delete(self, key: str) -> None:
        await self._client.delete(key)

    async def close(self) -> None:
        await self._client.aclose()


def build_cache(redis_url: Optional[str] = None) -> Union[MemoryCache, RedisCache]:
    """RedisCache when a Redis URL is configured, else MemoryCache."""
    url = redis_url if redis_url is not None else config.REDIS_URL
    if url:
        logger.info("Using Redis session cache")
        return RedisCache.from_url(url)
    logger.warning("REDIS_URL not set; using in-process session cache (single worker only)")
    return MemoryCache()
