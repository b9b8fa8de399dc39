"""
WhatsApp Channel
================
Delivers OTPs through the WhatsApp Cloud API with a long-lived bearer token.
"""

from datetime import timedelta
from typing import Any, Dict, Optional

import httpx
import structlog

from otp_courier.errors import AuthExpiredError, TransientSendFailure

from .base import ChannelProvider, SendResult, safe_json
from .templates import render_otp_message

logger = structlog.get_logger(__name__)


class WhatsAppProvider(ChannelProvider):
    """WhatsApp Cloud API channel. Token refresh is not supported."""

    name = "whatsapp"

    def __init__(
        self,
        config: Dict[str, Any],
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            config: {
                "base_url": "https://graph.facebook.com/v19.0",
                "phone_number_id": "1234567890",
                "access_token": "EAAG...",
            }
        """
        super().__init__(config, transport)
        self.base_url = config.get("base_url", "https://graph.facebook.com/v19.0").rstrip("/")
        self.phone_number_id = config["phone_number_id"]
        self.access_token = config["access_token"]

    def _client_kwargs(self) -> Dict[str, Any]:
        return {"headers": {"Authorization": f"Bearer {self.access_token}"}}

    async def send_otp(
        self,
        tenant: str,
        receiver: str,
        otp: str,
        ttl: timedelta,
    ) -> SendResult:
        payload = {
            "messaging_product": "whatsapp",
            "to": receiver,
            "type": "text",
            "text": {"body": render_otp_message(tenant, otp, ttl)},
        }
        response = await self._request(
            "POST", f"{self.base_url}/{self.phone_number_id}/messages", tenant, json=payload
        )
        data = safe_json(response)

        if response.status_code == 200:
            messages = data.get("messages") or [{}]
            return SendResult(
                channel=self.name,
                provider_message_id=messages[0].get("id"),
                raw_response=data,
            )

        error = data.get("error", {})
        if response.status_code == 401:
            raise AuthExpiredError(
                error.get("message", "Access token rejected"),
                channel=self.name,
                tenant=tenant,
                status_code=401,
                vendor_code=error.get("code"),
            )

        logger.error(
            "whatsapp_send_failed",
            tenant=tenant,
            status_code=response.status_code,
            error_code=error.get("code"),
        )
        raise TransientSendFailure(
            error.get("message", "Unknown error"),
            channel=self.name,
            tenant=tenant,
            status_code=response.status_code,
            vendor_code=error.get("code"),
        )
