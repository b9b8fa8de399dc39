"""
Redis Cache
===========
JSON-encoded values on plain Redis string keys.
"""

import json
from typing import Any, Optional

from redis.asyncio import Redis

from .base import CacheClient, CacheMiss


class RedisCache(CacheClient):
    """Cache backed by ``redis.asyncio``. Values must be JSON serialisable."""

    def __init__(self, redis: Redis):
        self.redis = redis

    async def get(self, key: str) -> Any:
        raw = await self.redis.get(key)
        if raw is None:
            raise CacheMiss(key)
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        payload = json.dumps(value)
        if ttl is None:
            await self.redis.set(key, payload)
        else:
            await self.redis.set(key, payload, px=max(int(ttl * 1000), 1))

    async def delete(self, key: str) -> None:
        await self.redis.delete(key)
