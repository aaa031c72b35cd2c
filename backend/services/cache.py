"""
Caller-owned result cache with per-entry TTL.

The referral graph can change between calls, so nothing in the engine keeps
a process-wide cache. A caller that wants to reuse downlines or payouts
within one batch creates a ResultCache, passes it in, and decides when to
invalidate it.

Thread-safe: the batch report shares one cache across its worker pool.
"""

import logging
import threading
import time
from typing import Any, Callable, Hashable, Optional

import config

logger = logging.getLogger(__name__)


class ResultCache:
    """Key → value store where every entry expires ttl_seconds after set()."""

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds is None:
            ttl_seconds = config.PAYOUT_CACHE_TTL_SECONDS
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: Hashable) -> Optional[Any]:
        """Cached value, or None when missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            stored_at, value = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[key]
                self._misses += 1
                logger.debug(f"Cache entry expired: {key!r}")
                return None

            self._hits += 1
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)

    def invalidate(self, key: Hashable) -> bool:
        """Drop one entry. Returns True if it was present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict:
        with self._lock:
            return {
                "size": len(self._entries),
                "keys": list(self._entries.keys()),
                "hits": self._hits,
                "misses": self._misses,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# ===========================================================================
# Key helpers
# ===========================================================================

def payout_cache_key(base_rate: float, max_steps: int) -> tuple:
    return ("payout", float(base_rate), int(max_steps))


def downline_cache_key(root_id: str) -> tuple:
    return ("downline", root_id)
