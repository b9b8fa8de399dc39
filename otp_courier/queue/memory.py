"""
In-Memory OTP Queue
===================
OTP queue held in a process-local MemoryCache.
"""

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import structlog

from otp_courier.cache import CacheMiss, MemoryCache
from otp_courier.errors import NotFoundError

from .base import OTPQueue, PENDING_PREFIX, RETRY_PREFIX, pending_key, retry_key
from .models import OTPQueueItem, RetryTask, utcnow

logger = structlog.get_logger(__name__)


class MemoryOTPQueue(OTPQueue):
    """
    Single-process queue.

    Retry tasks are identified by (tenant, receiver) and kept for
    ``retry_task_ttl`` after their last enqueue.
    """

    def __init__(
        self,
        cache: Optional[MemoryCache] = None,
        retry_task_ttl: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.cache = cache if cache is not None else MemoryCache()
        self.retry_task_ttl = retry_task_ttl
        self._clock = clock

    async def enqueue(self, item: OTPQueueItem, ttl: timedelta) -> None:
        key = pending_key(item.tenant_name, item.receiver)
        await self.cache.set(key, item, ttl=ttl.total_seconds())
        logger.debug("otp_enqueued", tenant=item.tenant_name, receiver=item.receiver)

    async def get(self, tenant: str, receiver: str) -> OTPQueueItem:
        try:
            return await self.cache.get(pending_key(tenant, receiver))
        except CacheMiss:
            raise NotFoundError(
                f"No pending OTP for receiver {receiver}", tenant=tenant
            )

    async def delete(self, tenant: str, receiver: str) -> None:
        await self.cache.delete(pending_key(tenant, receiver))

    async def enqueue_retry(self, task: RetryTask, delay: timedelta) -> RetryTask:
        key = retry_key(task.tenant_name, task.receiver)
        try:
            existing: RetryTask = await self.cache.get(key)
            retry_count = existing.retry_count + 1
        except CacheMiss:
            retry_count = max(task.retry_count, 1)

        stored = replace(task, retry_count=retry_count, ready_at=self._clock() + delay)
        await self.cache.set(key, stored, ttl=self.retry_task_ttl.total_seconds())

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
        return [
            task for _, task in self.cache.items(RETRY_PREFIX)
            if task.is_due(now)
        ]

    async def delete_retry_task(self, task: RetryTask) -> bool:
        key = retry_key(task.tenant_name, task.receiver)
        try:
            await self.cache.get(key)
        except CacheMiss:
            return False
        await self.cache.delete(key)
        return True

    async def clear_retry(self, tenant: str, receiver: str) -> None:
        await self.cache.delete(retry_key(tenant, receiver))

    async def list_receivers(self, tenant: str) -> List[str]:
        prefix = f"{PENDING_PREFIX}{tenant}:"
        return [item.receiver for _, item in self.cache.items(prefix)]
