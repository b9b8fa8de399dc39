"""
Courier Exceptions
==================
Typed failure taxonomy for OTP delivery, admission and credential handling.
"""

from typing import Optional


class CourierError(Exception):
    """Base exception for all courier failures."""

    code = "courier_error"

    def __init__(
        self,
        message: str,
        channel: Optional[str] = None,
        tenant: Optional[str] = None,
    ):
        self.message = message
        self.channel = channel
        self.tenant = tenant
        prefix = f"[{channel}] " if channel else ""
        super().__init__(f"{prefix}{message}")


class NotFoundError(CourierError):
    """Raised when a queued item is absent or expired."""
    code = "not_found"


class DeliveryError(CourierError):
    """Base class for failures while handing an OTP to a channel vendor."""

    code = "delivery_failed"

    def __init__(
        self,
        message: str,
        channel: Optional[str] = None,
        tenant: Optional[str] = None,
        status_code: Optional[int] = None,
        vendor_code: Optional[int] = None,
    ):
        self.status_code = status_code
        self.vendor_code = vendor_code
        super().__init__(message, channel=channel, tenant=tenant)


class TransientSendFailure(DeliveryError):
    """Retryable failure: network error, timeout, 5xx or non-auth vendor error."""
    code = "transient_send_failure"


class AuthExpiredError(DeliveryError):
    """Vendor rejected the access token as invalid or expired."""
    code = "auth_expired"


class ConfigurationError(CourierError):
    """Missing endpoint, credential or template. Never retried."""
    code = "configuration_error"


class ChannelNotFoundError(ConfigurationError):
    """No provider registered under the requested channel name."""
    code = "channel_not_found"


class CredentialError(CourierError):
    """Credential could not be encrypted, decrypted or refreshed."""
    code = "credential_error"


class RateLimitExceeded(CourierError):
    """Admission denied by the rate limiter."""

    code = "rate_limited"

    def __init__(self, key: str, limit: int, retry_after: float):
        self.key = key
        self.limit = limit
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit of {limit} attempts exceeded for '{key}'. "
            f"Retry after {retry_after:.0f}s"
        )
