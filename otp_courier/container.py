"""
Courier Container
=================
Builds the long-lived courier components once and wires them together.

Usage:
    container = Container(CourierSettings.from_env())
    await container.initialize()

    stop = asyncio.Event()
    tasks = container.start_workers(stop)
    ...
    stop.set()
    await asyncio.gather(*tasks)
    await container.close()
"""

import asyncio
from datetime import timedelta
from typing import List, Optional

import structlog
from redis.asyncio import Redis, from_url

from otp_courier.cache import CacheClient, MemoryCache, RedisCache
from otp_courier.config import CourierSettings
from otp_courier.courier import CourierService
from otp_courier.credentials import (
    CredentialCipher,
    CredentialRepository,
    CredentialStore,
    InMemoryCredentialRepository,
    RedisCredentialRepository,
)
from otp_courier.health import HealthReport, check_components
from otp_courier.providers import (
    ProviderRegistry,
    SMSProvider,
    WebhookProvider,
    WhatsAppProvider,
    ZaloProvider,
)
from otp_courier.queue import MemoryOTPQueue, OTPQueue, RedisOTPQueue
from otp_courier.rate_limit import FixedWindowRateLimiter
from otp_courier.workers import DeliveryWorker, RetryWorker, TokenRefreshWorker

logger = structlog.get_logger(__name__)


class Container:
    """Single instances of every courier component, passed explicitly."""

    def __init__(self, settings: CourierSettings, redis: Optional[Redis] = None):
        self.settings = settings
        self.redis = redis
        if self.redis is None and settings.queue_backend == "redis":
            self.redis = from_url(settings.redis_url, decode_responses=True)

        retry_ttl = timedelta(seconds=settings.retry_task_ttl_seconds)
        cache: CacheClient
        credential_repository: CredentialRepository
        if self.redis is not None:
            cache = RedisCache(self.redis)
            self.queue: OTPQueue = RedisOTPQueue(self.redis, retry_task_ttl=retry_ttl)
            credential_repository = RedisCredentialRepository(self.redis, ZaloProvider.name)
        else:
            cache = MemoryCache()
            self.queue = MemoryOTPQueue(MemoryCache(), retry_task_ttl=retry_ttl)
            credential_repository = InMemoryCredentialRepository(ZaloProvider.name)

        self.rate_limiter = FixedWindowRateLimiter(cache)
        self.registry = self._build_registry(credential_repository)
        self.courier = CourierService(
            self.queue, self.rate_limiter, self.registry, cache, settings
        )

        self.retry_worker = RetryWorker(self.courier)
        self.delivery_worker = DeliveryWorker(
            self.courier, settings.tenants, concurrency=settings.delivery_concurrency
        )
        self.token_refresh_worker = TokenRefreshWorker(self.registry)

    def _build_registry(self, credential_repository: CredentialRepository) -> ProviderRegistry:
        settings = self.settings
        registry = ProviderRegistry()

        registry.register(
            WebhookProvider({"url": settings.webhook_url, "timeout": settings.webhook_timeout})
        )

        if settings.twilio_enabled:
            registry.register(SMSProvider({
                "account_sid": settings.twilio_account_sid,
                "auth_token": settings.twilio_auth_token,
                "from_number": settings.twilio_from_number,
            }))

        if settings.whatsapp_enabled:
            registry.register(WhatsAppProvider({
                "base_url": settings.whatsapp_base_url,
                "phone_number_id": settings.whatsapp_phone_number_id,
                "access_token": settings.whatsapp_access_token,
            }))

        if settings.credential_encryption_key:
            self.credential_store: Optional[CredentialStore] = CredentialStore(
                credential_repository, CredentialCipher(settings.credential_encryption_key)
            )
            registry.register(ZaloProvider(
                self.credential_store,
                {"base_url": settings.zalo_base_url, "oauth_url": settings.zalo_oauth_url},
            ))
        else:
            self.credential_store = None
            logger.warning("zalo_channel_disabled", reason="no credential encryption key")

        return registry

    async def initialize(self) -> None:
        await self.registry.initialize_all()
        logger.info(
            "courier_initialized",
            backend="redis" if self.redis is not None else "memory",
            channels=self.registry.list(),
        )

    def start_workers(self, stop: asyncio.Event) -> List[asyncio.Task]:
        """Launch every worker loop as its own task."""
        settings = self.settings
        tasks = [
            asyncio.create_task(self.retry_worker.start(stop, settings.retry_worker_interval)),
            asyncio.create_task(
                self.token_refresh_worker.start(stop, settings.token_refresh_interval)
            ),
        ]
        if settings.tenants:
            tasks.append(asyncio.create_task(
                self.delivery_worker.start(stop, settings.delivery_worker_interval)
            ))
        return tasks

    async def health(self) -> HealthReport:
        return await check_components(
            "otp-courier", self.registry, self.redis, tenants=self.settings.tenants
        )

    async def close(self) -> None:
        await self.registry.close_all()
        if self.redis is not None:
            await self.redis.aclose()
