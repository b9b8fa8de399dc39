"""
Cache Contract
==============
Async key/value contract with per-key expiry shared by the queue and limiter.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class CacheMiss(KeyError):
    """Raised when a key is absent or has expired."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(key)


class CacheClient(ABC):
    """Async key/value store with optional per-key TTL (seconds)."""

    @abstractmethod
    async def get(self, key: str) -> Any:
        """Return the stored value or raise CacheMiss."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value. ``ttl=None`` keeps it until deleted."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a key. Deleting a missing key is not an error."""
        pass
