"""Keyed cache with per-entry expiry, used for scenario comparisons."""

import logging
import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

from config.defaults import COMPARISON_TTL_SECONDS

logger = logging.getLogger(__name__)


class TTLCache:
    """Upsert cache: the last writer wins and every write re-arms the TTL.

    ``clock`` returns seconds and defaults to ``time.monotonic``; tests pass
    a fake clock to step past expiry.
    """

    def __init__(
        self,
        ttl_seconds: float = COMPARISON_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + self.ttl_seconds)

    def invalidate(self, predicate: Callable[[Hashable], bool]) -> int:
        """Drop every entry whose key matches; returns how many were dropped."""
        with self._lock:
            doomed = [k for k in self._entries if predicate(k)]
            for k in doomed:
                del self._entries[k]
        if doomed:
            logger.debug("Invalidated %d cache entries", len(doomed))
        return len(doomed)

    def expire(self) -> int:
        """Remove entries whose TTL has passed."""
        now = self._clock()
        with self._lock:
            stale = [k for k, (_, exp) in self._entries.items() if now >= exp]
            for k in stale:
                del self._entries[k]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None
