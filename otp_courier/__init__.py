"""
otp-courier
===========
Multi-channel OTP dispatch with retry scheduling and credential refresh.

Usage:
    from otp_courier import Container, CourierSettings

    container = Container(CourierSettings.from_env())
    await container.initialize()
    outcome = await container.courier.request_otp("acme", "+84900000000", "123456")
"""

__version__ = "1.0.0"

# Configuration & errors
from otp_courier.config import CourierSettings
from otp_courier.errors import (
    CourierError,
    NotFoundError,
    DeliveryError,
    TransientSendFailure,
    AuthExpiredError,
    ConfigurationError,
    ChannelNotFoundError,
    CredentialError,
    RateLimitExceeded,
)

# Queue & admission
from otp_courier.queue import (
    OTPQueue,
    OTPQueueItem,
    RetryTask,
    MemoryOTPQueue,
    RedisOTPQueue,
    compute_backoff,
)
from otp_courier.rate_limit import FixedWindowRateLimiter, RateLimitInfo, rate_limit_key

# Channels & credentials
from otp_courier.credentials import ChannelCredential, CredentialCipher, CredentialStore
from otp_courier.providers import (
    ChannelProvider,
    ProviderRegistry,
    SendResult,
    SMSProvider,
    WhatsAppProvider,
    WebhookProvider,
    ZaloProvider,
)

# Service & workers
from otp_courier.courier import CourierService, DeliveryOutcome
from otp_courier.workers import RetryWorker, TokenRefreshWorker, DeliveryWorker
from otp_courier.container import Container

__all__ = [
    "__version__",
    "CourierSettings",
    "CourierError",
    "NotFoundError",
    "DeliveryError",
    "TransientSendFailure",
    "AuthExpiredError",
    "ConfigurationError",
    "ChannelNotFoundError",
    "CredentialError",
    "RateLimitExceeded",
    "OTPQueue",
    "OTPQueueItem",
    "RetryTask",
    "MemoryOTPQueue",
    "RedisOTPQueue",
    "compute_backoff",
    "FixedWindowRateLimiter",
    "RateLimitInfo",
    "rate_limit_key",
    "ChannelCredential",
    "CredentialCipher",
    "CredentialStore",
    "ChannelProvider",
    "ProviderRegistry",
    "SendResult",
    "SMSProvider",
    "WhatsAppProvider",
    "WebhookProvider",
    "ZaloProvider",
    "CourierService",
    "DeliveryOutcome",
    "RetryWorker",
    "TokenRefreshWorker",
    "DeliveryWorker",
    "Container",
]
