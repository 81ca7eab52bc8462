"""
In-memory response cache for upstream API results

Expiry is lazy: an entry past its expiry is dropped the next time it is
looked up. There is no background sweeper.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING = object()


@dataclass
class CacheEntry:
    value: Any
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


def create_cache_key(prefix: str, *parts) -> str:
    """Build a namespaced cache key, e.g. best:1001:100"""
    return ":".join([prefix, *(str(p) for p in parts)])


class ResponseCache:
    """TTL-keyed store for upstream responses"""

    def __init__(self, default_ttl: float = 300, clock: Callable[[], float] = time.time):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def _lookup(self, key: str):
        entry = self._entries.get(key)
        if entry is None:
            return _MISSING
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return _MISSING
        return entry.value

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or default when absent or expired"""
        value = self._lookup(key)
        return default if value is _MISSING else value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None):
        now = self._clock()
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        self._entries[key] = CacheEntry(value=value, created_at=now, expires_at=now + ttl)

    async def get_or_fetch(
        self,
        key: str,
        fetch_fn: Callable[[], Awaitable[T]],
        ttl_seconds: Optional[float] = None,
        refresh: bool = False
    ) -> T:
        """
        Return the cached value for key, fetching and storing it on a miss.
        With refresh the cached value is ignored and replaced by a new fetch.

        Cache failures are logged and ignored; errors raised by fetch_fn
        propagate to the caller.
        """
        cached = _MISSING
        if not refresh:
            try:
                cached = self._lookup(key)
            except Exception as e:
                logger.warning(f"Cache read failed for {key}: {e}")

        if cached is not _MISSING:
            logger.info(f"[CACHE HIT] {key}")
            return cached

        logger.info(f"[CACHE {'REFRESH' if refresh else 'MISS'}] {key} - calling upstream")
        value = await fetch_fn()

        try:
            self.set(key, value, ttl_seconds)
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {e}")

        return value

    def invalidate(self, prefix: str) -> int:
        """Remove every entry whose key starts with prefix"""
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def clear(self):
        self._entries.clear()

    def stats(self) -> Dict[str, int]:
        now = self._clock()
        expired = sum(1 for entry in self._entries.values() if entry.is_expired(now))
        return {
            "total": len(self._entries),
            "valid": len(self._entries) - expired,
            "expired": expired,
        }
