"""
OTP Courier
===========
Admission, first delivery attempt and the retry policy for failed OTPs.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

import structlog

from otp_courier.cache import CacheClient, CacheMiss
from otp_courier.config import CourierSettings
from otp_courier.errors import (
    ChannelNotFoundError,
    ConfigurationError,
    DeliveryError,
    RateLimitExceeded,
)
from otp_courier.logging import bind_delivery_context
from otp_courier.metrics import (
    OTP_RETRY_DISCARDED_TOTAL,
    OTP_RETRY_ENQUEUED_TOTAL,
    OTP_SEND_TOTAL,
    RATE_LIMIT_REJECTIONS_TOTAL,
)
from otp_courier.providers import ProviderRegistry, extract_otp
from otp_courier.queue import (
    OTPQueue,
    OTPQueueItem,
    RetryTask,
    compute_backoff,
    utcnow,
)
from otp_courier.rate_limit import FixedWindowRateLimiter, rate_limit_key

logger = structlog.get_logger(__name__)

REQUEST_OTP_ACTION = "request_otp"


def channel_key(tenant: str, receiver: str) -> str:
    return f"channel:{tenant}:{receiver}"


@dataclass
class DeliveryOutcome:
    """What happened to an accepted OTP request."""
    tenant_name: str
    receiver: str
    channel: str
    delivered: bool
    retry_scheduled: bool = False
    retry_count: int = 0
    error: Optional[str] = None


class CourierService:
    """
    Delivers OTPs through the chosen channel and owns the retry policy.

    Example:
        courier = CourierService(queue, limiter, registry, MemoryCache(), settings)
        outcome = await courier.request_otp("acme", "+84900000000", "123456", channel="zalo")
    """

    def __init__(
        self,
        queue: OTPQueue,
        rate_limiter: FixedWindowRateLimiter,
        registry: ProviderRegistry,
        channel_cache: CacheClient,
        settings: Optional[CourierSettings] = None,
    ):
        self.queue = queue
        self.rate_limiter = rate_limiter
        self.registry = registry
        self.channel_cache = channel_cache
        self.settings = settings or CourierSettings()

    @property
    def otp_ttl(self) -> timedelta:
        return timedelta(seconds=self.settings.otp_ttl_seconds)

    def backoff(self, retry_count: int) -> timedelta:
        return compute_backoff(
            retry_count,
            base=self.settings.retry_base_seconds,
            max_delay=self.settings.retry_max_delay_seconds,
        )

    # =========================================================================
    # Channel selection
    # =========================================================================

    async def choose_channel(self, tenant: str, receiver: str, channel: str) -> None:
        """Remember the caller's channel for this receiver for one OTP lifetime."""
        self.registry.get(channel)
        await self.channel_cache.set(
            channel_key(tenant, receiver), channel, ttl=self.otp_ttl.total_seconds()
        )

    async def get_channel(self, tenant: str, receiver: str) -> str:
        try:
            return await self.channel_cache.get(channel_key(tenant, receiver))
        except CacheMiss:
            return self.settings.default_channel

    def get_available_channels(self) -> List[str]:
        return self.registry.list()

    # =========================================================================
    # Requests
    # =========================================================================

    async def request_otp(
        self,
        tenant: str,
        receiver: str,
        otp: str,
        channel: Optional[str] = None,
    ) -> DeliveryOutcome:
        """
        Admit, record and attempt delivery of an OTP.

        Args:
            tenant: Tenant issuing the OTP
            receiver: Destination address (phone number)
            otp: The code to deliver
            channel: Channel to use; defaults to the receiver's last choice

        Returns:
            DeliveryOutcome; a failed first attempt is not an error, it
            schedules a retry

        Raises:
            RateLimitExceeded: Admission denied; nothing is enqueued
            ChannelNotFoundError: Unknown channel
        """
        key = rate_limit_key(REQUEST_OTP_ACTION, tenant, receiver)
        try:
            await self.rate_limiter.check(
                key,
                limit=self.settings.rate_limit_max_attempts,
                window=self.settings.rate_limit_window_seconds,
            )
        except RateLimitExceeded:
            RATE_LIMIT_REJECTIONS_TOTAL.inc()
            raise

        if channel:
            await self.choose_channel(tenant, receiver, channel)
        else:
            channel = await self.get_channel(tenant, receiver)

        await self.queue.enqueue(
            OTPQueueItem(tenant_name=tenant, receiver=receiver, message=otp),
            self.otp_ttl,
        )
        return await self.deliver_otp(tenant, receiver, channel=channel)

    async def receive_otp(self, tenant: str, receiver: str, body: str) -> OTPQueueItem:
        """Record the OTP found in an inbound message for delivery by the delivery worker."""
        otp = extract_otp(body)
        if otp is None:
            raise ValueError("No OTP code found in message body")

        item = OTPQueueItem(tenant_name=tenant, receiver=receiver, message=otp)
        await self.queue.enqueue(item, self.otp_ttl)
        logger.info("otp_received", tenant=tenant, receiver=receiver)
        return item

    async def deliver_otp(
        self,
        tenant: str,
        receiver: str,
        channel: Optional[str] = None,
    ) -> DeliveryOutcome:
        """
        Send the pending OTP for a receiver.

        The pending record is removed before sending. A failed send
        schedules a retry task; configuration errors are not retried.

        Raises:
            NotFoundError: No pending OTP for the receiver
            ChannelNotFoundError: Unknown channel
        """
        item = await self.queue.get(tenant, receiver)
        channel = channel or await self.get_channel(tenant, receiver)
        provider = self.registry.get(channel)

        await self.queue.delete(tenant, receiver)

        with bind_delivery_context(tenant=tenant, receiver=receiver, channel=channel):
            try:
                await provider.send_otp(tenant, receiver, item.message, self.otp_ttl)
            except ConfigurationError as e:
                OTP_SEND_TOTAL.labels(channel=channel, outcome="misconfigured").inc()
                logger.error("otp_delivery_misconfigured", error=str(e))
                return DeliveryOutcome(tenant, receiver, channel, delivered=False, error=str(e))
            except DeliveryError as e:
                OTP_SEND_TOTAL.labels(channel=channel, outcome="failure").inc()
                logger.warning("otp_delivery_failed", error=str(e), error_code=e.code)

                task = RetryTask(
                    tenant_name=tenant,
                    receiver=receiver,
                    channel=channel,
                    message=item.message,
                )
                stored = await self.queue.enqueue_retry(task, self.backoff(task.retry_count))
                OTP_RETRY_ENQUEUED_TOTAL.labels(channel=channel).inc()
                return DeliveryOutcome(
                    tenant,
                    receiver,
                    channel,
                    delivered=False,
                    retry_scheduled=True,
                    retry_count=stored.retry_count,
                    error=str(e),
                )

            OTP_SEND_TOTAL.labels(channel=channel, outcome="success").inc()
            logger.info("otp_delivered")
            return DeliveryOutcome(tenant, receiver, channel, delivered=True)

    # =========================================================================
    # Retries
    # =========================================================================

    async def retry_failed_otps(self, now: Optional[datetime] = None) -> int:
        """
        Re-drive every due retry task, one at a time.

        Returns:
            Number of due tasks processed
        """
        tasks = await self.queue.get_due_retry_tasks(now or utcnow())
        await self.retry_tasks(tasks)
        return len(tasks)

    async def retry_tasks(self, tasks: List[RetryTask]) -> None:
        """Apply the retry policy to each task in order. Per-task crashes are logged."""
        for task in tasks:
            with bind_delivery_context(
                tenant=task.tenant_name, receiver=task.receiver, channel=task.channel
            ):
                try:
                    await self._retry(task)
                except Exception as e:
                    logger.error("retry_task_crashed", error=str(e), exc_info=True)

    async def _retry(self, task: RetryTask) -> None:
        try:
            provider = self.registry.get(task.channel)
        except ChannelNotFoundError:
            logger.error("retry_channel_unknown")
            await self._discard(task, reason="unknown_channel")
            return

        try:
            await provider.send_otp(task.tenant_name, task.receiver, task.message, self.otp_ttl)
        except ConfigurationError as e:
            OTP_SEND_TOTAL.labels(channel=task.channel, outcome="misconfigured").inc()
            logger.error("retry_misconfigured", error=str(e))
            await self._discard(task, reason="misconfigured")
            return
        except DeliveryError as e:
            OTP_SEND_TOTAL.labels(channel=task.channel, outcome="failure").inc()
            if task.retry_count < self.settings.max_retry_count:
                stored = await self.queue.enqueue_retry(task, self.backoff(task.retry_count))
                OTP_RETRY_ENQUEUED_TOTAL.labels(channel=task.channel).inc()
                logger.warning(
                    "retry_failed_rescheduled",
                    retry_count=stored.retry_count,
                    ready_at=stored.ready_at.isoformat(),
                    error=str(e),
                )
            else:
                logger.error(
                    "retry_exhausted",
                    retry_count=task.retry_count,
                    max_retries=self.settings.max_retry_count,
                    error=str(e),
                )
                await self._discard(task, reason="exhausted")
            return

        OTP_SEND_TOTAL.labels(channel=task.channel, outcome="success").inc()
        logger.info("retry_delivered", retry_count=task.retry_count)
        await self.queue.delete_retry_task(task)
        await self.queue.delete(task.tenant_name, task.receiver)

    async def _discard(self, task: RetryTask, reason: str) -> None:
        OTP_RETRY_DISCARDED_TOTAL.labels(channel=task.channel, reason=reason).inc()
        await self.queue.delete_retry_task(task)
        await self.queue.delete(task.tenant_name, task.receiver)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def cancel(self, tenant: str, receiver: str) -> None:
        """Drop the pending OTP and any scheduled retry for a receiver."""
        await self.queue.delete(tenant, receiver)
        await self.queue.clear_retry(tenant, receiver)
        logger.info("otp_cancelled", tenant=tenant, receiver=receiver)

    async def confirm(self, tenant: str, receiver: str) -> None:
        """The receiver verified their OTP: clear delivery state and admission counter."""
        await self.cancel(tenant, receiver)
        await self.rate_limiter.reset_attempts(
            rate_limit_key(REQUEST_OTP_ACTION, tenant, receiver)
        )
