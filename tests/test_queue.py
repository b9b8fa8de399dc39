"""
OTP Queue Tests
===============
Pending items, retry scheduling and backoff on both backends.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from otp_courier.errors import NotFoundError
from otp_courier.queue import (
    MemoryOTPQueue,
    OTPQueueItem,
    RedisOTPQueue,
    RetryTask,
    compute_backoff,
)


@pytest.fixture(params=["memory", "redis"])
def queue(request, fake_redis):
    if request.param == "memory":
        return MemoryOTPQueue()
    return RedisOTPQueue(fake_redis)


def _task(receiver: str = "+84900000001", tenant: str = "acme") -> RetryTask:
    return RetryTask(tenant_name=tenant, receiver=receiver, channel="zalo", message="123456")


class TestBackoff:
    """Tests for the exponential backoff helper."""

    def test_doubles_from_base(self):
        assert compute_backoff(0) == timedelta(seconds=10)
        assert compute_backoff(1) == timedelta(seconds=20)
        assert compute_backoff(3) == timedelta(seconds=80)

    def test_capped_at_five_minutes(self):
        assert compute_backoff(5) == timedelta(minutes=5)
        assert compute_backoff(50) == timedelta(minutes=5)

    def test_custom_base_and_ceiling(self):
        assert compute_backoff(2, base=1.0, max_delay=3.0) == timedelta(seconds=3)


class TestPendingItems:
    """Tests for enqueue/get/delete of pending OTPs."""

    @pytest.mark.asyncio
    async def test_enqueue_then_get(self, queue):
        """Get returns the item that was enqueued."""
        item = OTPQueueItem(tenant_name="acme", receiver="+84900000001", message="654321")

        await queue.enqueue(item, timedelta(minutes=5))
        fetched = await queue.get("acme", "+84900000001")

        assert fetched == item
        assert fetched.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_enqueue_overwrites(self, queue):
        """Second enqueue for the same key replaces the first."""
        first = OTPQueueItem(tenant_name="acme", receiver="+84900000001", message="111111")
        second = OTPQueueItem(tenant_name="acme", receiver="+84900000001", message="222222")

        await queue.enqueue(first, timedelta(minutes=5))
        await queue.enqueue(second, timedelta(minutes=5))

        assert (await queue.get("acme", "+84900000001")).message == "222222"

    @pytest.mark.asyncio
    async def test_missing_item_raises_not_found(self, queue):
        with pytest.raises(NotFoundError):
            await queue.get("acme", "+84999999999")

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, queue):
        """Deleting twice is not an error and leaves the key absent."""
        item = OTPQueueItem(tenant_name="acme", receiver="+84900000001", message="123456")
        await queue.enqueue(item, timedelta(minutes=5))

        await queue.delete("acme", "+84900000001")
        await queue.delete("acme", "+84900000001")

        with pytest.raises(NotFoundError):
            await queue.get("acme", "+84900000001")

    @pytest.mark.asyncio
    async def test_list_receivers_scoped_to_tenant(self, queue):
        for tenant, receiver in [("acme", "+1"), ("acme", "+2"), ("globex", "+3")]:
            await queue.enqueue(
                OTPQueueItem(tenant_name=tenant, receiver=receiver, message="123456"),
                timedelta(minutes=5),
            )

        assert sorted(await queue.list_receivers("acme")) == ["+1", "+2"]
        assert await queue.list_receivers("globex") == ["+3"]


class TestPendingExpiry:
    """TTL expiry of pending items on the memory backend."""

    @pytest.mark.asyncio
    async def test_item_expires_after_ttl(self):
        from otp_courier.cache import MemoryCache

        now = [1_000.0]
        queue = MemoryOTPQueue(MemoryCache(clock=lambda: now[0]))
        item = OTPQueueItem(tenant_name="acme", receiver="+84900000001", message="123456")

        await queue.enqueue(item, timedelta(seconds=30))
        assert (await queue.get("acme", "+84900000001")).id == item.id

        now[0] += 31

        with pytest.raises(NotFoundError):
            await queue.get("acme", "+84900000001")

    @pytest.mark.asyncio
    async def test_purge_expired_drops_stale_entries(self):
        from otp_courier.cache import MemoryCache

        now = [1_000.0]
        cache = MemoryCache(clock=lambda: now[0])
        await cache.set("short", "a", ttl=10)
        await cache.set("forever", "b")

        now[0] += 11

        assert cache.purge_expired() == 1
        assert len(cache) == 1


class TestRetryTasks:
    """Tests for the retry schedule."""

    @pytest.mark.asyncio
    async def test_first_enqueue_sets_count_to_one(self, queue):
        stored = await queue.enqueue_retry(_task(), timedelta(seconds=10))

        assert stored.retry_count == 1
        assert stored.ready_at is not None

    @pytest.mark.asyncio
    async def test_repeated_enqueue_accumulates_count(self, queue):
        """Two enqueues for one key -> the due task carries retry_count 2."""
        await queue.enqueue_retry(_task(), timedelta(seconds=0))
        await queue.enqueue_retry(_task(), timedelta(seconds=0))

        due = await queue.get_due_retry_tasks(datetime.now(timezone.utc) + timedelta(seconds=1))

        assert len(due) == 1
        assert due[0].retry_count == 2

    @pytest.mark.asyncio
    async def test_due_only_after_delay(self, queue):
        """A task with a 1s delay is not due now, but is due 2s later."""
        now = datetime.now(timezone.utc)
        await queue.enqueue_retry(_task(), timedelta(seconds=1))

        assert await queue.get_due_retry_tasks(now) == []

        due = await queue.get_due_retry_tasks(now + timedelta(seconds=2))
        assert [t.receiver for t in due] == ["+84900000001"]
        assert due[0].retry_count == 1

    @pytest.mark.asyncio
    async def test_due_scan_spans_tenants(self, queue):
        await queue.enqueue_retry(_task("+1", "acme"), timedelta(0))
        await queue.enqueue_retry(_task("+2", "globex"), timedelta(0))
        await queue.enqueue_retry(_task("+3", "globex"), timedelta(hours=1))

        due = await queue.get_due_retry_tasks(datetime.now(timezone.utc) + timedelta(seconds=1))

        assert sorted((t.tenant_name, t.receiver) for t in due) == [("acme", "+1"), ("globex", "+2")]

    @pytest.mark.asyncio
    async def test_delete_due_task(self, queue):
        await queue.enqueue_retry(_task(), timedelta(0))
        later = datetime.now(timezone.utc) + timedelta(seconds=1)
        [task] = await queue.get_due_retry_tasks(later)

        assert await queue.delete_retry_task(task) is True
        assert await queue.get_due_retry_tasks(later) == []

    @pytest.mark.asyncio
    async def test_clear_retry(self, queue):
        await queue.enqueue_retry(_task(), timedelta(0))

        await queue.clear_retry("acme", "+84900000001")

        later = datetime.now(timezone.utc) + timedelta(seconds=1)
        assert await queue.get_due_retry_tasks(later) == []


class TestRedisLayout:
    """Redis-specific storage details."""

    @pytest.mark.asyncio
    async def test_retry_task_scored_by_ready_at(self, fake_redis):
        queue = RedisOTPQueue(fake_redis)

        stored = await queue.enqueue_retry(_task(), timedelta(seconds=30))

        members = await fake_redis.zrangebyscore(
            "otp:retry:acme:+84900000001", 0, stored.ready_at.timestamp()
        )
        assert len(members) == 1
        assert json.loads(members[0])["retry_count"] == 1

    @pytest.mark.asyncio
    async def test_reenqueue_replaces_member(self, fake_redis):
        """Only one member per key after repeated enqueues."""
        queue = RedisOTPQueue(fake_redis)

        await queue.enqueue_retry(_task(), timedelta(seconds=30))
        await queue.enqueue_retry(_task(), timedelta(seconds=30))

        assert len(await fake_redis.zrange("otp:retry:acme:+84900000001", 0, -1)) == 1

    @pytest.mark.asyncio
    async def test_stale_payload_delete_is_noop(self, fake_redis):
        """Deleting with an outdated copy of the task removes nothing."""
        queue = RedisOTPQueue(fake_redis)
        stale = await queue.enqueue_retry(_task(), timedelta(0))
        await queue.enqueue_retry(_task(), timedelta(0))

        assert await queue.delete_retry_task(stale) is False

        later = datetime.now(timezone.utc) + timedelta(seconds=1)
        [current] = await queue.get_due_retry_tasks(later)
        assert current.retry_count == 2

    @pytest.mark.asyncio
    async def test_pending_item_has_ttl(self, fake_redis):
        queue = RedisOTPQueue(fake_redis)
        item = OTPQueueItem(tenant_name="acme", receiver="+84900000001", message="123456")

        await queue.enqueue(item, timedelta(minutes=5))

        assert 0 < await fake_redis.ttl("otp:pending:acme:+84900000001") <= 300

    @pytest.mark.asyncio
    async def test_pending_item_expires(self, fake_redis, monkeypatch):
        import time

        queue = RedisOTPQueue(fake_redis)
        item = OTPQueueItem(tenant_name="acme", receiver="+84900000001", message="123456")
        await queue.enqueue(item, timedelta(seconds=30))
        assert await queue.get("acme", "+84900000001") == item

        later = time.time() + 31
        monkeypatch.setattr(time, "time", lambda: later)

        with pytest.raises(NotFoundError):
            await queue.get("acme", "+84900000001")
