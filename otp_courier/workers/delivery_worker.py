"""
OTP Delivery Worker
===================
Drains pending OTPs for configured tenants with bounded concurrency.
"""

import asyncio
from typing import List

import structlog

from otp_courier.courier import CourierService
from otp_courier.errors import NotFoundError

from .base import GuardedWorker

logger = structlog.get_logger(__name__)


class DeliveryWorker(GuardedWorker):
    """Delivers every pending OTP; an overlapping tick is skipped."""

    name = "otp_delivery"

    def __init__(self, courier: CourierService, tenants: List[str], concurrency: int = 10):
        super().__init__()
        self.courier = courier
        self.tenants = tenants
        self.concurrency = concurrency

    async def run(self) -> None:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def deliver(tenant: str, receiver: str) -> None:
            async with semaphore:
                await self.courier.deliver_otp(tenant, receiver)

        jobs = []
        for tenant in self.tenants:
            for receiver in await self.courier.queue.list_receivers(tenant):
                jobs.append((tenant, receiver))

        if not jobs:
            return

        results = await asyncio.gather(
            *(deliver(tenant, receiver) for tenant, receiver in jobs),
            return_exceptions=True,
        )

        errors = 0
        for (tenant, receiver), result in zip(jobs, results):
            if isinstance(result, NotFoundError):
                # Delivered or expired between listing and delivery
                logger.debug("pending_otp_gone", tenant=tenant, receiver=receiver)
            elif isinstance(result, Exception):
                errors += 1
                logger.error(
                    "otp_delivery_crashed", tenant=tenant, receiver=receiver, error=str(result)
                )

        logger.info("delivery_pass_completed", attempted=len(jobs), errors=errors)
