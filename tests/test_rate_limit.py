"""
Rate Limiter Tests
==================
Fixed-window admission on memory and Redis caches.
"""

import pytest


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestFixedWindowRateLimiter:
    """Tests for the leaky fixed-window limiter."""

    @pytest.mark.asyncio
    async def test_limit_reached_after_n_attempts(self):
        """n attempts -> limited at limit n, not at limit n + 1."""
        from otp_courier.cache import MemoryCache
        from otp_courier.rate_limit import FixedWindowRateLimiter

        limiter = FixedWindowRateLimiter(MemoryCache())
        for _ in range(3):
            await limiter.register_attempt("k", window=300)

        assert await limiter.is_limited("k", limit=3, window=300) is True
        assert await limiter.is_limited("k", limit=4, window=300) is False

    @pytest.mark.asyncio
    async def test_cold_key_is_not_limited(self):
        """Unknown key should never be limited."""
        from otp_courier.cache import MemoryCache
        from otp_courier.rate_limit import FixedWindowRateLimiter

        limiter = FixedWindowRateLimiter(MemoryCache())

        assert await limiter.is_limited("never-seen", limit=1, window=60) is False

    @pytest.mark.asyncio
    async def test_reset_clears_counter(self):
        """reset_attempts -> next is_limited is False."""
        from otp_courier.cache import MemoryCache
        from otp_courier.rate_limit import FixedWindowRateLimiter

        limiter = FixedWindowRateLimiter(MemoryCache())
        for _ in range(5):
            await limiter.register_attempt("k", window=300)
        assert await limiter.is_limited("k", limit=5, window=300) is True

        await limiter.reset_attempts("k")

        assert await limiter.is_limited("k", limit=5, window=300) is False

    @pytest.mark.asyncio
    async def test_counter_expires_after_window(self):
        """Counter resets once the window passes with no attempts."""
        from otp_courier.cache import MemoryCache
        from otp_courier.rate_limit import FixedWindowRateLimiter

        clock = FakeClock()
        limiter = FixedWindowRateLimiter(MemoryCache(clock=clock), clock=clock)
        await limiter.register_attempt("k", window=60)
        await limiter.register_attempt("k", window=60)

        clock.now += 61

        assert await limiter.is_limited("k", limit=2, window=60) is False

    @pytest.mark.asyncio
    async def test_expired_counters_evicted_on_write(self):
        """Counters for keys never read again do not pile up in memory."""
        from otp_courier.cache import MemoryCache
        from otp_courier.rate_limit import FixedWindowRateLimiter

        clock = FakeClock()
        cache = MemoryCache(clock=clock)
        limiter = FixedWindowRateLimiter(cache, clock=clock)

        for i in range(1000):
            await limiter.register_attempt(f"otp:acme:+{i}", window=60)
        assert len(cache) == 1000

        clock.now += 3600
        await limiter.register_attempt("otp:acme:+late", window=60)

        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_each_attempt_extends_window(self):
        """Steady attempts keep the counter alive past the first window."""
        from otp_courier.cache import MemoryCache
        from otp_courier.rate_limit import FixedWindowRateLimiter

        clock = FakeClock()
        limiter = FixedWindowRateLimiter(MemoryCache(clock=clock), clock=clock)

        for _ in range(3):
            await limiter.register_attempt("k", window=60)
            clock.now += 50

        # 150s since the first attempt, but only 50s since the last
        assert await limiter.is_limited("k", limit=3, window=60) is True

    @pytest.mark.asyncio
    async def test_check_raises_when_limited(self):
        """check() admits up to the limit, then raises RateLimitExceeded."""
        from otp_courier.cache import MemoryCache
        from otp_courier.errors import RateLimitExceeded
        from otp_courier.rate_limit import FixedWindowRateLimiter

        limiter = FixedWindowRateLimiter(MemoryCache())

        first = await limiter.check("k", limit=2, window=300)
        second = await limiter.check("k", limit=2, window=300)

        assert first.remaining == 1
        assert second.remaining == 0
        with pytest.raises(RateLimitExceeded) as exc_info:
            await limiter.check("k", limit=2, window=300)
        assert exc_info.value.retry_after == 300

    @pytest.mark.asyncio
    async def test_lookup_failure_fails_open(self):
        """A broken cache must not block admission."""
        from otp_courier.cache import CacheClient
        from otp_courier.rate_limit import FixedWindowRateLimiter

        class BrokenCache(CacheClient):
            async def get(self, key):
                raise ConnectionError("redis down")

            async def set(self, key, value, ttl=None):
                raise ConnectionError("redis down")

            async def delete(self, key):
                raise ConnectionError("redis down")

        limiter = FixedWindowRateLimiter(BrokenCache())

        assert await limiter.is_limited("k", limit=1, window=60) is False

    @pytest.mark.asyncio
    async def test_redis_backed_counter(self, fake_redis):
        """Counter stored in Redis with the window as expiry."""
        from otp_courier.cache import RedisCache
        from otp_courier.rate_limit import FixedWindowRateLimiter, rate_limit_key

        limiter = FixedWindowRateLimiter(RedisCache(fake_redis))
        key = rate_limit_key("request_otp", "acme", "+84900000000")

        await limiter.register_attempt(key, window=300)
        await limiter.register_attempt(key, window=300)

        assert key == "ratelimit:request_otp:acme:+84900000000"
        assert await fake_redis.get(key) == "2"
        assert 0 < await fake_redis.ttl(key) <= 300
        assert await limiter.is_limited(key, limit=2, window=300) is True
