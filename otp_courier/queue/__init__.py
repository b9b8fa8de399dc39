"""
OTP Queue Module
================
Pending OTP storage and the retry schedule, in memory or on Redis.
"""

from .models import OTPQueueItem, RetryTask, utcnow
from .base import (
    OTPQueue,
    compute_backoff,
    pending_key,
    retry_key,
    DEFAULT_BACKOFF_BASE,
    DEFAULT_BACKOFF_MAX,
)
from .memory import MemoryOTPQueue
from .redis_queue import RedisOTPQueue

__all__ = [
    "OTPQueueItem",
    "RetryTask",
    "utcnow",
    "OTPQueue",
    "compute_backoff",
    "pending_key",
    "retry_key",
    "DEFAULT_BACKOFF_BASE",
    "DEFAULT_BACKOFF_MAX",
    "MemoryOTPQueue",
    "RedisOTPQueue",
]
