"""
Background Workers
==================
Retry, delivery and credential-refresh loops.
"""

from .base import Worker, GuardedWorker
from .retry_worker import RetryWorker, RetryWorkerState
from .token_refresh import TokenRefreshWorker
from .delivery_worker import DeliveryWorker

__all__ = [
    "Worker",
    "GuardedWorker",
    "RetryWorker",
    "RetryWorkerState",
    "TokenRefreshWorker",
    "DeliveryWorker",
]
