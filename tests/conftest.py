"""
Shared Test Fixtures
====================
In-process Redis double and common courier fixtures.
"""

import fnmatch
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest


class FakeRedis:
    """
    Async stand-in for the subset of ``redis.asyncio.Redis`` the courier uses.

    Returns ``str`` values, like a client created with ``decode_responses=True``.
    """

    def __init__(self):
        self._strings: Dict[str, str] = {}
        self._zsets: Dict[str, Dict[str, float]] = {}
        self._hashes: Dict[str, Dict[str, str]] = {}
        self._expires: Dict[str, float] = {}
        self.commands: List[Tuple[str, Any]] = []

    def _expire_if_needed(self, key: str) -> None:
        deadline = self._expires.get(key)
        if deadline is not None and deadline <= time.time():
            self._drop(key)

    def _drop(self, key: str) -> bool:
        existed = any(key in store for store in (self._strings, self._zsets, self._hashes))
        self._strings.pop(key, None)
        self._zsets.pop(key, None)
        self._hashes.pop(key, None)
        self._expires.pop(key, None)
        return existed

    def _keys(self) -> List[str]:
        keys = set(self._strings) | set(self._zsets) | set(self._hashes)
        for key in list(keys):
            self._expire_if_needed(key)
        return sorted(set(self._strings) | set(self._zsets) | set(self._hashes))

    # Strings

    async def get(self, key: str) -> Optional[str]:
        self._expire_if_needed(key)
        return self._strings.get(key)

    async def set(self, key: str, value: str, px: Optional[int] = None) -> bool:
        self.commands.append(("set", key))
        self._drop(key)
        self._strings[key] = value
        if px is not None:
            self._expires[key] = time.time() + px / 1000
        return True

    async def delete(self, *keys: str) -> int:
        self.commands.append(("delete", keys))
        return sum(1 for key in keys if self._drop(key))

    async def expire(self, key: str, seconds: int) -> bool:
        if key not in self._keys():
            return False
        self._expires[key] = time.time() + seconds
        return True

    async def ttl(self, key: str) -> int:
        if key not in self._keys():
            return -2
        deadline = self._expires.get(key)
        return -1 if deadline is None else int(deadline - time.time())

    # Sorted sets

    async def zadd(self, key: str, mapping: Dict[str, float]) -> int:
        self._expire_if_needed(key)
        zset = self._zsets.setdefault(key, {})
        added = sum(1 for member in mapping if member not in zset)
        zset.update(mapping)
        return added

    async def zrange(self, key: str, start: int, end: int) -> List[str]:
        self._expire_if_needed(key)
        members = sorted(self._zsets.get(key, {}).items(), key=lambda kv: kv[1])
        stop = None if end == -1 else end + 1
        return [member for member, _ in members[start:stop]]

    async def zrangebyscore(self, key: str, min_score: float, max_score: float) -> List[str]:
        self._expire_if_needed(key)
        members = sorted(self._zsets.get(key, {}).items(), key=lambda kv: kv[1])
        return [member for member, score in members if min_score <= score <= max_score]

    async def zrem(self, key: str, *members: str) -> int:
        self._expire_if_needed(key)
        zset = self._zsets.get(key, {})
        removed = 0
        for member in members:
            if zset.pop(member, None) is not None:
                removed += 1
        if key in self._zsets and not zset:
            self._drop(key)
        return removed

    # Hashes

    async def hget(self, key: str, field: str) -> Optional[str]:
        return self._hashes.get(key, {}).get(field)

    async def hset(self, key: str, field: str, value: str) -> int:
        row = self._hashes.setdefault(key, {})
        created = field not in row
        row[field] = value
        return int(created)

    async def hgetall(self, key: str) -> Dict[str, str]:
        return dict(self._hashes.get(key, {}))

    async def hdel(self, key: str, *fields: str) -> int:
        row = self._hashes.get(key, {})
        return sum(1 for field in fields if row.pop(field, None) is not None)

    # Keyspace

    async def scan_iter(self, match: str = "*"):
        for key in self._keys():
            if fnmatch.fnmatchcase(key, match):
                yield key

    async def ping(self) -> bool:
        return True

    def pipeline(self, transaction: bool = True) -> "FakePipeline":
        return FakePipeline(self)

    async def aclose(self) -> None:
        pass


class FakePipeline:
    """Buffers commands and runs them in order on ``execute``."""

    def __init__(self, redis: FakeRedis):
        self._redis = redis
        self._calls: List[Tuple[str, tuple, dict]] = []

    def __getattr__(self, name: str):
        def queue(*args, **kwargs):
            self._calls.append((name, args, kwargs))
            return self
        return queue

    async def execute(self) -> List[Any]:
        results = []
        for name, args, kwargs in self._calls:
            results.append(await getattr(self._redis, name)(*args, **kwargs))
        self._calls = []
        return results


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def settings():
    from otp_courier.config import CourierSettings

    return CourierSettings(
        otp_ttl_seconds=300,
        max_retry_count=5,
        rate_limit_max_attempts=5,
        rate_limit_window_seconds=300,
        webhook_url="http://hooks.test/otp",
        credential_encryption_key="unit-test-encryption-key",
    )


@pytest.fixture
def cipher():
    from otp_courier.credentials import CredentialCipher

    return CredentialCipher("unit-test-encryption-key")


@pytest.fixture
def credential_store(cipher):
    from otp_courier.credentials import CredentialStore, InMemoryCredentialRepository

    return CredentialStore(InMemoryCredentialRepository("zalo"), cipher)


def make_credential(
    tenant: str = "acme",
    access_token: str = "access-old",
    refresh_token: str = "refresh-old",
    expires_in: timedelta = timedelta(hours=1),
    template_id: Optional[str] = "tpl-001",
):
    from otp_courier.credentials import ChannelCredential

    now = datetime.now(timezone.utc)
    return ChannelCredential(
        tenant_name=tenant,
        channel="zalo",
        app_id="app-123",
        secret_key="zalo-secret",
        access_token=access_token,
        refresh_token=refresh_token,
        template_id=template_id,
        issued_at=now,
        expires_at=now + expires_in,
    )


@pytest.fixture
def zalo_credential():
    """Factory for decrypted Zalo credentials."""
    return make_credential
