"""
Credential Repositories
=======================
Persistence of encrypted channel credentials, one per tenant per channel.
"""

import json
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from redis.asyncio import Redis

from .models import ChannelCredential


class CredentialRepository(ABC):
    """Storage for encrypted credentials of a single channel."""

    def __init__(self, channel: str):
        self.channel = channel

    @abstractmethod
    async def get(self, tenant: str) -> Optional[ChannelCredential]:
        pass

    @abstractmethod
    async def save(self, credential: ChannelCredential) -> None:
        pass

    @abstractmethod
    async def get_all(self) -> List[ChannelCredential]:
        pass

    @abstractmethod
    async def delete(self, tenant: str) -> None:
        pass


class InMemoryCredentialRepository(CredentialRepository):
    """Dict-backed repository for tests and single-process runs."""

    def __init__(self, channel: str):
        super().__init__(channel)
        self._rows: Dict[str, ChannelCredential] = {}

    async def get(self, tenant: str) -> Optional[ChannelCredential]:
        return self._rows.get(tenant)

    async def save(self, credential: ChannelCredential) -> None:
        self._rows[credential.tenant_name] = credential

    async def get_all(self) -> List[ChannelCredential]:
        return list(self._rows.values())

    async def delete(self, tenant: str) -> None:
        self._rows.pop(tenant, None)


class RedisCredentialRepository(CredentialRepository):
    """Redis hash ``credentials:<channel>`` with tenant fields and JSON values."""

    def __init__(self, redis: Redis, channel: str):
        super().__init__(channel)
        self.redis = redis

    @property
    def key(self) -> str:
        return f"credentials:{self.channel}"

    async def get(self, tenant: str) -> Optional[ChannelCredential]:
        raw = await self.redis.hget(self.key, tenant)
        if raw is None:
            return None
        return ChannelCredential.from_dict(json.loads(raw))

    async def save(self, credential: ChannelCredential) -> None:
        await self.redis.hset(
            self.key, credential.tenant_name, json.dumps(credential.to_dict())
        )

    async def get_all(self) -> List[ChannelCredential]:
        rows = await self.redis.hgetall(self.key)
        return [ChannelCredential.from_dict(json.loads(raw)) for raw in rows.values()]

    async def delete(self, tenant: str) -> None:
        await self.redis.hdel(self.key, tenant)
