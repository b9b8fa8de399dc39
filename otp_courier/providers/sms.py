"""
Twilio SMS Channel
==================
Delivers OTPs as plain SMS through the Twilio Messages API.
"""

from base64 import b64encode
from datetime import timedelta
from typing import Any, Dict, Optional

import httpx
import structlog

from otp_courier.errors import ConfigurationError, TransientSendFailure

from .base import ChannelProvider, MessageStatus, SendResult, safe_json
from .templates import render_otp_message

logger = structlog.get_logger(__name__)


class SMSProvider(ChannelProvider):
    """
    Twilio SMS channel.

    Twilio auth tokens do not expire, so ``refresh_credential`` is a no-op
    and a 401 is a configuration problem rather than an expired token.
    """

    name = "sms"

    def __init__(
        self,
        config: Dict[str, Any],
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            config: {
                "account_sid": "ACxxx",
                "auth_token": "xxx",
                "from_number": "+15550000000",
                "messaging_service_sid": "MGxxx",  # optional
            }
        """
        super().__init__(config, transport)
        self.account_sid = config["account_sid"]
        self.auth_token = config["auth_token"]
        self.from_number = config.get("from_number")
        self.messaging_service_sid = config.get("messaging_service_sid")
        self.base_url = f"https://api.twilio.com/2010-04-01/Accounts/{self.account_sid}"

    def _client_kwargs(self) -> Dict[str, Any]:
        auth = b64encode(f"{self.account_sid}:{self.auth_token}".encode()).decode()
        return {"headers": {"Authorization": f"Basic {auth}"}}

    async def send_otp(
        self,
        tenant: str,
        receiver: str,
        otp: str,
        ttl: timedelta,
    ) -> SendResult:
        payload = {
            "To": receiver,
            "Body": render_otp_message(tenant, otp, ttl),
        }
        if self.messaging_service_sid:
            payload["MessagingServiceSid"] = self.messaging_service_sid
        elif self.from_number:
            payload["From"] = self.from_number
        else:
            raise ConfigurationError(
                "No sender number or messaging service configured",
                channel=self.name,
                tenant=tenant,
            )

        response = await self._request(
            "POST", f"{self.base_url}/Messages.json", tenant, data=payload
        )

        if response.status_code == 201:
            data = safe_json(response)
            return SendResult(
                channel=self.name,
                status=self._map_status(data.get("status", "queued")),
                provider_message_id=data.get("sid"),
                raw_response=data,
            )

        error_data = safe_json(response)
        if response.status_code in (401, 403):
            raise ConfigurationError(
                "Twilio rejected the account credentials",
                channel=self.name,
                tenant=tenant,
            )

        logger.error(
            "sms_send_failed",
            tenant=tenant,
            status_code=response.status_code,
            error_code=error_data.get("code"),
        )
        raise TransientSendFailure(
            error_data.get("message", "Unknown error"),
            channel=self.name,
            tenant=tenant,
            status_code=response.status_code,
            vendor_code=error_data.get("code"),
        )

    def _map_status(self, twilio_status: str) -> MessageStatus:
        if twilio_status == "delivered":
            return MessageStatus.DELIVERED
        if twilio_status in ("sent", "sending"):
            return MessageStatus.SENT
        return MessageStatus.QUEUED

    async def health_check(self, tenant: Optional[str] = None) -> bool:
        """Check the account resource is reachable with our credentials."""
        try:
            response = await self.client.get(f"{self.base_url}.json")
            return response.status_code == 200
        except httpx.HTTPError:
            return False
