"""
Cache Module
============
Expiring key/value clients backing the OTP queue, limiter and channel choice.
"""

from .base import CacheClient, CacheMiss
from .memory import MemoryCache
from .redis_cache import RedisCache

__all__ = [
    "CacheClient",
    "CacheMiss",
    "MemoryCache",
    "RedisCache",
]
