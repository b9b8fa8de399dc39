"""
In-Memory Cache
===============
Process-local expiring cache. Used for single-instance deployments and tests.
"""

import time
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

import structlog

from .base import CacheClient, CacheMiss

logger = structlog.get_logger(__name__)


class MemoryCache(CacheClient):
    """
    Dictionary-backed cache with lazy expiry.

    Expired entries are dropped when read, and every write sweeps the
    whole store at most once per ``cleanup_interval`` seconds.
    Values are stored by reference; callers store immutable or freshly
    built objects.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        cleanup_interval: float = 60.0,
    ):
        self._clock = clock
        self.cleanup_interval = cleanup_interval
        self._store: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._last_cleanup: Optional[float] = None

    async def get(self, key: str) -> Any:
        entry = self._store.get(key)
        if entry is None:
            raise CacheMiss(key)

        value, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._store[key]
            raise CacheMiss(key)
        return value

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        now = self._clock()
        if self._last_cleanup is None or now - self._last_cleanup >= self.cleanup_interval:
            self.purge_expired()
        expires_at = now + ttl if ttl is not None else None
        self._store[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def items(self, prefix: str = "") -> Iterator[Tuple[str, Any]]:
        """Yield live ``(key, value)`` pairs whose key starts with ``prefix``."""
        now = self._clock()
        # Snapshot so callers may delete while iterating
        for key, (value, expires_at) in list(self._store.items()):
            if not key.startswith(prefix):
                continue
            if expires_at is not None and expires_at <= now:
                continue
            yield key, value

    def purge_expired(self) -> int:
        """Remove expired entries. Returns the number removed."""
        now = self._clock()
        self._last_cleanup = now
        expired = [
            key for key, (_, expires_at) in self._store.items()
            if expires_at is not None and expires_at <= now
        ]
        for key in expired:
            del self._store[key]
        if expired:
            logger.debug("cache_purged", removed=len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._store)
