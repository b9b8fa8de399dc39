"""
Fixed Window Rate Limiter
=========================
Attempt counter with a per-key expiry, stored in any CacheClient.
"""

import time
from typing import Callable

import structlog

from otp_courier.cache import CacheClient, CacheMiss
from otp_courier.errors import RateLimitExceeded

from .models import RateLimitInfo

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_WINDOW_SECONDS = 5 * 60


class FixedWindowRateLimiter:
    """
    Leaky fixed-window limiter.

    Every registered attempt rewrites the counter with a fresh expiry of
    ``window`` seconds, so a caller retrying steadily inside the window
    keeps extending it. The counter only resets once ``window`` seconds
    pass with no attempt. This is not a sliding window.

    The read-then-write in ``register_attempt`` is not atomic; concurrent
    attempts on one key can lose an increment.
    """

    def __init__(self, cache: CacheClient, clock: Callable[[], float] = time.time):
        self.cache = cache
        self._clock = clock

    async def _count(self, key: str) -> int:
        try:
            return int(await self.cache.get(key))
        except CacheMiss:
            return 0

    async def is_limited(self, key: str, limit: int, window: int) -> bool:
        """True when the stored count has reached ``limit``. Fails open."""
        try:
            count = await self._count(key)
        except Exception as e:
            logger.warning("rate_limit_lookup_failed", key=key, error=str(e))
            return False
        return count >= limit

    async def register_attempt(self, key: str, window: int) -> int:
        """Increment the counter and restart its expiry. Returns the new count."""
        count = await self._count(key) + 1
        await self.cache.set(key, count, ttl=window)
        return count

    async def reset_attempts(self, key: str) -> None:
        await self.cache.delete(key)

    async def check(
        self,
        key: str,
        limit: int = DEFAULT_MAX_ATTEMPTS,
        window: int = DEFAULT_WINDOW_SECONDS,
    ) -> RateLimitInfo:
        """
        Admit one attempt or reject it.

        Args:
            key: Counter key, usually from ``rate_limit_key``
            limit: Attempts allowed per window
            window: Window length in seconds

        Returns:
            RateLimitInfo for the admitted attempt

        Raises:
            RateLimitExceeded: If the key is already at its limit
        """
        reset_at = int(self._clock() + window)

        if await self.is_limited(key, limit, window):
            logger.warning("rate_limit_exceeded", key=key, limit=limit)
            raise RateLimitExceeded(key, limit, retry_after=window)

        count = await self.register_attempt(key, window)
        return RateLimitInfo(
            allowed=True,
            remaining=max(limit - count, 0),
            limit=limit,
            reset_at=reset_at,
        )
