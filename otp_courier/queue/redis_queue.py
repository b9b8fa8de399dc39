"""
Redis OTP Queue
===============
Shared OTP queue for multi-instance deployments.

Layout:
    otp:pending:<tenant>:<receiver>  string, JSON OTPQueueItem, PX = OTP TTL
    otp:retry:<tenant>:<receiver>    sorted set holding one member, the JSON
                                     RetryTask, scored by ready_at (epoch s)
"""

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, List, Union

import structlog
from redis.asyncio import Redis

from otp_courier.errors import NotFoundError

from .base import OTPQueue, PENDING_PREFIX, RETRY_PREFIX, pending_key, retry_key
from .models import OTPQueueItem, RetryTask, utcnow

logger = structlog.get_logger(__name__)


def _decode(value: Union[str, bytes]) -> str:
    return value.decode() if isinstance(value, bytes) else value


class RedisOTPQueue(OTPQueue):
    """
    OTP queue on ``redis.asyncio``.

    Due-task scans are plain reads, so several instances may scan at once.
    Retry tasks are removed by exact payload (ZREM): a caller holding a
    stale copy of a task that was re-enqueued in the meantime removes
    nothing.
    """

    def __init__(
        self,
        redis: Redis,
        retry_task_ttl: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.redis = redis
        self.retry_task_ttl = retry_task_ttl
        self._clock = clock

    async def enqueue(self, item: OTPQueueItem, ttl: timedelta) -> None:
        key = pending_key(item.tenant_name, item.receiver)
        ttl_ms = max(int(ttl.total_seconds() * 1000), 1)
        await self.redis.set(key, item.to_json(), px=ttl_ms)
        logger.debug("otp_enqueued", tenant=item.tenant_name, receiver=item.receiver)

    async def get(self, tenant: str, receiver: str) -> OTPQueueItem:
        raw = await self.redis.get(pending_key(tenant, receiver))
        if raw is None:
            raise NotFoundError(
                f"No pending OTP for receiver {receiver}", tenant=tenant
            )
        return OTPQueueItem.from_json(_decode(raw))

    async def delete(self, tenant: str, receiver: str) -> None:
        await self.redis.delete(pending_key(tenant, receiver))

    async def enqueue_retry(self, task: RetryTask, delay: timedelta) -> RetryTask:
        key = retry_key(task.tenant_name, task.receiver)

        existing = await self.redis.zrange(key, 0, -1)
        if existing:
            retry_count = RetryTask.from_json(_decode(existing[-1])).retry_count + 1
        else:
            retry_count = max(task.retry_count, 1)

        stored = replace(task, retry_count=retry_count, ready_at=self._clock() + delay)

        pipe = self.redis.pipeline(transaction=True)
        pipe.delete(key)
        pipe.zadd(key, {stored.to_json(): stored.ready_at.timestamp()})
        pipe.expire(key, int(self.retry_task_ttl.total_seconds()))
        await pipe.execute()

        logger.info(
            "retry_task_enqueued",
            tenant=task.tenant_name,
            receiver=task.receiver,
            channel=task.channel,
            retry_count=retry_count,
            delay_seconds=delay.total_seconds(),
        )
        return stored

    async def get_due_retry_tasks(self, now: datetime) -> List[RetryTask]:
        due: List[RetryTask] = []
        async for key in self.redis.scan_iter(match=f"{RETRY_PREFIX}*"):
            members = await self.redis.zrangebyscore(key, 0, now.timestamp())
            for raw in members:
                try:
                    due.append(RetryTask.from_json(_decode(raw)))
                except (ValueError, KeyError) as e:
                    logger.error("retry_task_corrupt", key=_decode(key), error=str(e))
        return due

    async def delete_retry_task(self, task: RetryTask) -> bool:
        key = retry_key(task.tenant_name, task.receiver)
        removed = await self.redis.zrem(key, task.to_json())
        if not removed:
            logger.warning(
                "retry_task_payload_mismatch",
                tenant=task.tenant_name,
                receiver=task.receiver,
                retry_count=task.retry_count,
            )
        return bool(removed)

    async def list_receivers(self, tenant: str) -> List[str]:
        prefix = f"{PENDING_PREFIX}{tenant}:"
        receivers = []
        async for key in self.redis.scan_iter(match=f"{prefix}*"):
            receivers.append(_decode(key)[len(prefix):])
        return receivers

    async def clear_retry(self, tenant: str, receiver: str) -> None:
        await self.redis.delete(retry_key(tenant, receiver))
