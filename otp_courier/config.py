"""
Courier Configuration
=====================
Runtime settings for queues, workers, rate limits and channel vendors.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, default))


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, default))


def _env_list(name: str) -> List[str]:
    raw = os.environ.get(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class CourierSettings:
    """Configuration for the OTP courier and its background workers."""

    # Storage
    queue_backend: str = "memory"  # "memory" or "redis"
    redis_url: str = "redis://localhost:6379/0"

    # OTP lifetime and retry policy
    otp_ttl_seconds: int = 300
    retry_base_seconds: float = 10.0
    retry_max_delay_seconds: float = 300.0
    max_retry_count: int = 5
    retry_task_ttl_seconds: int = 3600

    # Worker intervals
    retry_worker_interval: float = 10.0
    delivery_worker_interval: float = 5.0
    token_refresh_interval: float = 12 * 60 * 60
    delivery_concurrency: int = 10

    # Admission
    rate_limit_max_attempts: int = 5
    rate_limit_window_seconds: int = 300

    # Channels
    default_channel: str = "webhook"
    tenants: List[str] = field(default_factory=list)
    credential_encryption_key: str = ""

    webhook_url: Optional[str] = None
    webhook_timeout: float = 5.0

    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_from_number: Optional[str] = None

    whatsapp_base_url: str = "https://graph.facebook.com/v19.0"
    whatsapp_phone_number_id: Optional[str] = None
    whatsapp_access_token: Optional[str] = None

    zalo_base_url: str = "https://business.openapi.zalo.me"
    zalo_oauth_url: str = "https://oauth.zaloapp.com/v4/oa/access_token"

    @classmethod
    def from_env(cls) -> "CourierSettings":
        """Build settings from environment variables, falling back to defaults."""
        return cls(
            queue_backend=os.environ.get("OTP_QUEUE_BACKEND", "memory"),
            redis_url=os.environ.get("REDIS_URL", "redis://localhost:6379/0"),
            otp_ttl_seconds=_env_int("OTP_TTL_SECONDS", 300),
            retry_base_seconds=_env_float("OTP_RETRY_BASE_SECONDS", 10.0),
            retry_max_delay_seconds=_env_float("OTP_RETRY_MAX_DELAY_SECONDS", 300.0),
            max_retry_count=_env_int("OTP_MAX_RETRY_COUNT", 5),
            retry_task_ttl_seconds=_env_int("OTP_RETRY_TASK_TTL_SECONDS", 3600),
            retry_worker_interval=_env_float("OTP_RETRY_WORKER_INTERVAL", 10.0),
            delivery_worker_interval=_env_float("OTP_DELIVERY_WORKER_INTERVAL", 5.0),
            token_refresh_interval=_env_float("TOKEN_REFRESH_WORKER_INTERVAL", 12 * 60 * 60),
            delivery_concurrency=_env_int("OTP_DELIVERY_CONCURRENCY", 10),
            rate_limit_max_attempts=_env_int("RATE_LIMIT_MAX_ATTEMPTS", 5),
            rate_limit_window_seconds=_env_int("RATE_LIMIT_WINDOW_SECONDS", 300),
            default_channel=os.environ.get("OTP_DEFAULT_CHANNEL", "webhook"),
            tenants=_env_list("COURIER_TENANTS"),
            credential_encryption_key=os.environ.get("CREDENTIAL_ENCRYPTION_KEY", ""),
            webhook_url=os.environ.get("OTP_WEBHOOK_URL"),
            webhook_timeout=_env_float("OTP_WEBHOOK_TIMEOUT", 5.0),
            twilio_account_sid=os.environ.get("TWILIO_ACCOUNT_SID"),
            twilio_auth_token=os.environ.get("TWILIO_AUTH_TOKEN"),
            twilio_from_number=os.environ.get("TWILIO_FROM_NUMBER"),
            whatsapp_base_url=os.environ.get(
                "WHATSAPP_BASE_URL", "https://graph.facebook.com/v19.0"
            ),
            whatsapp_phone_number_id=os.environ.get("WHATSAPP_PHONE_NUMBER_ID"),
            whatsapp_access_token=os.environ.get("WHATSAPP_ACCESS_TOKEN"),
            zalo_base_url=os.environ.get("ZALO_BASE_URL", "https://business.openapi.zalo.me"),
            zalo_oauth_url=os.environ.get(
                "ZALO_OAUTH_URL", "https://oauth.zaloapp.com/v4/oa/access_token"
            ),
        )

    @property
    def twilio_enabled(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token)

    @property
    def whatsapp_enabled(self) -> bool:
        return bool(self.whatsapp_phone_number_id and self.whatsapp_access_token)
