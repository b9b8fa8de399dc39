"""
OTP Retry Worker
================
Re-drives due retry tasks on a fixed interval.
"""

import asyncio
from enum import Enum
from typing import Optional

import structlog

from otp_courier.courier import CourierService
from otp_courier.queue import utcnow

from .base import Worker

logger = structlog.get_logger(__name__)


class RetryWorkerState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    DELIVERING = "delivering"


class RetryWorker(Worker):
    """
    Processes due retry tasks serially, inline with the tick.

    A pass that outlasts the interval delays the next tick. When ``stop``
    is set mid-pass the loop returns at once and leaves the in-flight
    pass to finish on its own, held on ``_task``.
    """

    name = "otp_retry"

    def __init__(self, courier: CourierService):
        self.courier = courier
        self.state = RetryWorkerState.IDLE
        self._task: Optional[asyncio.Task] = None

    async def process(self) -> int:
        """One scan-and-deliver pass. Returns the number of tasks processed."""
        try:
            self.state = RetryWorkerState.SCANNING
            tasks = await self.courier.queue.get_due_retry_tasks(utcnow())
            if not tasks:
                return 0

            self.state = RetryWorkerState.DELIVERING
            await self.courier.retry_tasks(tasks)
            logger.info("retry_pass_completed", processed=len(tasks))
            return len(tasks)
        except Exception as e:
            logger.error("retry_pass_failed", error=str(e), exc_info=True)
            return 0
        finally:
            self.state = RetryWorkerState.IDLE

    async def on_tick(self, stop: asyncio.Event) -> None:
        tick = self._task = asyncio.create_task(self.process())
        stopper = asyncio.create_task(stop.wait())
        done, _ = await asyncio.wait({tick, stopper}, return_when=asyncio.FIRST_COMPLETED)
        if tick not in done:
            logger.info("retry_worker_stopping_mid_pass")
            return
        stopper.cancel()
        self._task = None
