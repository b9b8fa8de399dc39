"""
OTP Queue Contract
==================
Abstract queue of pending OTPs and retry tasks, plus key and backoff helpers.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import List

from .models import OTPQueueItem, RetryTask

PENDING_PREFIX = "otp:pending:"
RETRY_PREFIX = "otp:retry:"

DEFAULT_BACKOFF_BASE = 10.0
DEFAULT_BACKOFF_MAX = 300.0


def pending_key(tenant: str, receiver: str) -> str:
    return f"{PENDING_PREFIX}{tenant}:{receiver}"


def retry_key(tenant: str, receiver: str) -> str:
    return f"{RETRY_PREFIX}{tenant}:{receiver}"


def compute_backoff(
    retry_count: int,
    base: float = DEFAULT_BACKOFF_BASE,
    max_delay: float = DEFAULT_BACKOFF_MAX,
) -> timedelta:
    """
    Exponential backoff with a ceiling.

    delay = min(2 ** retry_count * base, max_delay)

    With the defaults: 1 -> 20s, 2 -> 40s, 3 -> 80s, 4 -> 160s, 5+ -> 300s.
    """
    retry_count = max(retry_count, 0)
    # Cap the exponent; 2**64 seconds is already far past any ceiling
    seconds = min((2 ** min(retry_count, 64)) * base, max_delay)
    return timedelta(seconds=seconds)


class OTPQueue(ABC):
    """
    Pending OTPs keyed by (tenant, receiver) and their retry schedule.

    At most one pending item and one retry task exist per key; writes
    replace what was there.
    """

    @abstractmethod
    async def enqueue(self, item: OTPQueueItem, ttl: timedelta) -> None:
        """Store or overwrite the pending item for its key."""
        pass

    @abstractmethod
    async def get(self, tenant: str, receiver: str) -> OTPQueueItem:
        """Return the pending item. Raises NotFoundError when absent or expired."""
        pass

    @abstractmethod
    async def delete(self, tenant: str, receiver: str) -> None:
        """Remove the pending item. Idempotent."""
        pass

    @abstractmethod
    async def enqueue_retry(self, task: RetryTask, delay: timedelta) -> RetryTask:
        """
        Schedule ``task`` to become due after ``delay``.

        Returns the stored task with ``retry_count`` and ``ready_at`` set.
        """
        pass

    @abstractmethod
    async def get_due_retry_tasks(self, now: datetime) -> List[RetryTask]:
        """Every retry task with ``ready_at <= now``, across all tenants."""
        pass

    @abstractmethod
    async def delete_retry_task(self, task: RetryTask) -> bool:
        """Remove a retry task. Returns True when something was removed."""
        pass

    @abstractmethod
    async def list_receivers(self, tenant: str) -> List[str]:
        """Receivers with a pending item for ``tenant``."""
        pass

    @abstractmethod
    async def clear_retry(self, tenant: str, receiver: str) -> None:
        """Drop any retry task for the key, whatever its payload. Idempotent."""
        pass
