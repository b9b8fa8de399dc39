"""
Rate Limiting Module
====================
Per-identity admission control for OTP requests.
"""

from .models import RateLimitInfo, rate_limit_key
from .fixed_window import (
    FixedWindowRateLimiter,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_WINDOW_SECONDS,
)

__all__ = [
    "RateLimitInfo",
    "rate_limit_key",
    "FixedWindowRateLimiter",
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_WINDOW_SECONDS",
]
