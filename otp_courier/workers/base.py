"""
Worker Base
===========
Periodic loops driven by an interval and a shared stop event.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

import structlog

from otp_courier.metrics import WORKER_RUNNING, WORKER_TICKS_SKIPPED_TOTAL

logger = structlog.get_logger(__name__)


class Worker(ABC):
    """
    Runs ``on_tick`` every ``interval`` seconds until ``stop`` is set.

    Example:
        stop = asyncio.Event()
        task = asyncio.create_task(RetryWorker(courier).start(stop, 10.0))
        ...
        stop.set()
        await task
    """

    name: str = "worker"

    async def start(self, stop: asyncio.Event, interval: float) -> None:
        logger.info("worker_started", worker=self.name, interval=interval)
        WORKER_RUNNING.labels(worker=self.name).set(1)
        try:
            while not stop.is_set():
                try:
                    await asyncio.wait_for(stop.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    await self.on_tick(stop)
        finally:
            WORKER_RUNNING.labels(worker=self.name).set(0)
            logger.info("worker_stopped", worker=self.name)

    @abstractmethod
    async def on_tick(self, stop: asyncio.Event) -> None:
        pass


class GuardedWorker(Worker):
    """
    Fires each run as a background task and skips ticks while one is active.

    The running flag is checked and set with no await in between, so two
    ticks can never both start a run. Skipped ticks are not queued.
    """

    def __init__(self):
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def on_tick(self, stop: asyncio.Event) -> None:
        self.trigger()

    def trigger(self) -> Optional[asyncio.Task]:
        """Start a run unless one is in progress. Returns the run's task or None."""
        if self._running:
            WORKER_TICKS_SKIPPED_TOTAL.labels(worker=self.name).inc()
            logger.warning("worker_still_running_tick_skipped", worker=self.name)
            return None

        self._running = True
        self._task = asyncio.create_task(self._guarded_run())
        return self._task

    async def _guarded_run(self) -> None:
        try:
            await self.run()
        except Exception as e:
            logger.error("worker_run_failed", worker=self.name, error=str(e), exc_info=True)
        finally:
            self._running = False

    @abstractmethod
    async def run(self) -> None:
        pass
