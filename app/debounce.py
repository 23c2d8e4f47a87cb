"""Per-session sync rate limiting at the API boundary.

At most max_calls syncs of one session within a sliding window of
window_seconds. The session coordinator does not debounce; this does.

One pyrate-limiter Limiter serves every session; SessionBucketFactory
routes each call to its session's InMemoryBucket. Buckets whose window has
fully drained are pruned, so memory tracks the set of recently synced
sessions rather than every session ever seen.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Optional

from pyrate_limiter import BucketFactory, Duration, InMemoryBucket, Limiter, Rate, RateItem

from agentgraph import settings

logger = logging.getLogger(__name__)


class SessionBucketFactory(BucketFactory):
    """One InMemoryBucket per session id, timestamped by an injectable clock.

    Never schedules pyrate-limiter's background leaker; prune() drops
    drained buckets instead.
    """

    def __init__(self, rates: List[Rate], clock: Callable[[], float]):
        self.rates = rates
        self.clock = clock
        self.buckets: Dict[str, InMemoryBucket] = {}

    def now_ms(self) -> int:
        return int(self.clock() * 1000)

    def wrap_item(self, name: str, weight: int = 1) -> RateItem:
        return RateItem(name, self.now_ms(), weight=weight)

    def get(self, item: RateItem) -> InMemoryBucket:
        bucket = self.buckets.get(item.name)
        if bucket is None:
            bucket = self.buckets[item.name] = InMemoryBucket(rates=self.rates)
        return bucket

    def prune(self, now_ms: int) -> int:
        """Drop buckets with nothing left in their window. Returns the number dropped."""
        idle = []
        for name, bucket in self.buckets.items():
            bucket.leak(now_ms)
            if bucket.count() == 0:
                idle.append(name)
        for name in idle:
            del self.buckets[name]
        return len(idle)


class SyncRateLimiter:
    """Sliding-window limiter for repeated syncs of the same session."""

    def __init__(
        self,
        max_calls: Optional[int] = None,
        window_seconds: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.max_calls = max_calls if max_calls is not None else settings.SYNC_RATE_LIMIT_MAX_CALLS
        self.window_seconds = (
            window_seconds if window_seconds is not None else settings.SYNC_RATE_LIMIT_WINDOW_SECONDS
        )
        if self.max_calls <= 0:
            raise ValueError(f"max_calls must be positive, got {self.max_calls}")
        if self.window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive, got {self.window_seconds}")

        self._window_ms = int(self.window_seconds * Duration.SECOND)
        self._factory = SessionBucketFactory(
            [Rate(self.max_calls, self._window_ms)],
            clock or time.monotonic,
        )
        self._limiter = Limiter(self._factory, raise_when_fail=False, max_delay=None)
        self._last_prune_ms: Optional[int] = None

    def __len__(self) -> int:
        return len(self._factory.buckets)

    def allow(self, key: str) -> bool:
        """Record a call for key; False if it exceeds the window limit."""
        self._maybe_prune()
        return bool(self._limiter.try_acquire(key))

    def retry_after(self, key: str) -> float:
        """Seconds until key may sync again (0 if it may now)."""
        bucket = self._factory.buckets.get(key)
        if bucket is None:
            return 0.0
        wait_ms = bucket.waiting(self._factory.wrap_item(key))
        return max(0.0, wait_ms / 1000)

    def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self._factory.buckets.clear()
        else:
            self._factory.buckets.pop(key, None)

    def _maybe_prune(self) -> None:
        # At most once per window
        now_ms = self._factory.now_ms()
        if self._last_prune_ms is not None and now_ms - self._last_prune_ms < self._window_ms:
            return
        self._last_prune_ms = now_ms
        dropped = self._factory.prune(now_ms)
        if dropped:
            logger.debug(f"Dropped {dropped} idle sync rate buckets")
