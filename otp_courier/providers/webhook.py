"""
Webhook Channel
===============
Hands OTPs to an HTTP endpoint as JSON. Used as the default channel and in
development setups where a mock receiver stands in for real vendors.
"""

from datetime import timedelta
from typing import Any, Dict, Optional

import httpx
import structlog

from otp_courier.errors import ConfigurationError, TransientSendFailure

from .base import ChannelProvider, SendResult
from .templates import render_otp_message

logger = structlog.get_logger(__name__)


class WebhookProvider(ChannelProvider):
    """POSTs ``{tenant, to, message, otp, ttl_seconds}``; any 2xx is success."""

    name = "webhook"

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        config = dict(config or {})
        config.setdefault("timeout", 5.0)
        super().__init__(config, transport)
        self.url = config.get("url")

    async def send_otp(
        self,
        tenant: str,
        receiver: str,
        otp: str,
        ttl: timedelta,
    ) -> SendResult:
        if not self.url:
            raise ConfigurationError("Webhook URL is not configured", channel=self.name, tenant=tenant)

        payload = {
            "tenant": tenant,
            "to": receiver,
            "message": render_otp_message(tenant, otp, ttl),
            "otp": otp,
            "ttl_seconds": int(ttl.total_seconds()),
        }
        response = await self._request("POST", self.url, tenant, json=payload)

        if 200 <= response.status_code < 300:
            logger.debug("webhook_delivered", tenant=tenant, status_code=response.status_code)
            return SendResult(channel=self.name)

        raise TransientSendFailure(
            f"Webhook returned status {response.status_code}",
            channel=self.name,
            tenant=tenant,
            status_code=response.status_code,
        )

    async def health_check(self, tenant: Optional[str] = None) -> bool:
        return bool(self.url) and self._client is not None
