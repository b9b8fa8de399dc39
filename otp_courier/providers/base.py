"""
Channel Provider Base
=====================
Base classes for OTP delivery channels (SMS, WhatsApp, chat templates, webhook).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx
import structlog

from otp_courier.credentials import ChannelCredential
from otp_courier.errors import ChannelNotFoundError, TransientSendFailure

logger = structlog.get_logger(__name__)


class MessageStatus(str, Enum):
    QUEUED = "queued"
    SENT = "sent"
    DELIVERED = "delivered"


@dataclass
class SendResult:
    """Result of an accepted OTP send. Failures raise instead."""
    channel: str
    status: MessageStatus = MessageStatus.SENT
    provider_message_id: Optional[str] = None
    raw_response: Optional[Dict[str, Any]] = None


def safe_json(response: httpx.Response) -> Dict[str, Any]:
    """Response body as a dict; empty when the body is not a JSON object."""
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class ChannelProvider(ABC):
    """
    Abstract base class for OTP delivery channels.

    Subclasses raise ``TransientSendFailure``, ``AuthExpiredError`` or
    ``ConfigurationError`` from ``send_otp``; a returned SendResult always
    means the vendor accepted the message.
    """

    name: str = "base"
    # Providers whose credentials expire and need periodic refresh
    stateful: bool = False

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            config: Provider-specific settings (endpoints, keys, timeout)
            transport: Optional httpx transport, used to stub vendors in tests
        """
        self.config = config or {}
        self.timeout = float(self.config.get("timeout", 10.0))
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _client_kwargs(self) -> Dict[str, Any]:
        """Extra keyword arguments for the shared AsyncClient."""
        return {}

    async def initialize(self) -> None:
        """Create the shared HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                **self._client_kwargs(),
            )
        logger.info("provider_initialized", provider=self.name)

    async def close(self) -> None:
        """Close the shared HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
        logger.info("provider_closed", provider=self.name)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(f"Provider {self.name} not initialized")
        return self._client

    async def _request(self, method: str, url: str, tenant: str, **kwargs) -> httpx.Response:
        """Issue a request, mapping transport errors and 5xx to TransientSendFailure."""
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException:
            raise TransientSendFailure("Request timed out", channel=self.name, tenant=tenant)
        except httpx.HTTPError as e:
            raise TransientSendFailure(
                f"Failed to connect: {e}", channel=self.name, tenant=tenant
            )

        if response.status_code >= 500:
            raise TransientSendFailure(
                "Vendor server error",
                channel=self.name,
                tenant=tenant,
                status_code=response.status_code,
            )
        return response

    @abstractmethod
    async def send_otp(
        self,
        tenant: str,
        receiver: str,
        otp: str,
        ttl: timedelta,
    ) -> SendResult:
        """
        Deliver an OTP to a receiver.

        Args:
            tenant: Tenant the OTP is issued for
            receiver: Phone number or channel-specific address
            otp: The one-time code
            ttl: How long the code stays valid

        Returns:
            SendResult for the accepted message
        """
        pass

    async def refresh_credential(self, tenant: str) -> Optional[ChannelCredential]:
        """Refresh the tenant's credential. Channels without expiring tokens do nothing."""
        return None

    def get_channel_type(self) -> str:
        return self.name

    async def health_check(self, tenant: Optional[str] = None) -> bool:
        return self._client is not None


class ProviderRegistry:
    """Registry of channel providers by channel name."""

    def __init__(self):
        self._providers: Dict[str, ChannelProvider] = {}

    def register(self, provider: ChannelProvider) -> None:
        self._providers[provider.name.lower()] = provider
        logger.info("provider_registered", provider=provider.name)

    def get(self, name: str) -> ChannelProvider:
        provider = self._providers.get(name.lower())
        if not provider:
            raise ChannelNotFoundError(f"Unknown channel: {name}", channel=name)
        return provider

    def list(self) -> List[str]:
        return list(self._providers.keys())

    def stateful(self) -> List[ChannelProvider]:
        """Providers holding credentials that expire."""
        return [p for p in self._providers.values() if p.stateful]

    async def initialize_all(self) -> None:
        for provider in self._providers.values():
            await provider.initialize()

    async def close_all(self) -> None:
        for provider in self._providers.values():
            await provider.close()
