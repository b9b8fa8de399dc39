"""
Zalo Template Channel
=====================
Delivers OTPs as Zalo Notification Service template messages.

Zalo access tokens are short-lived. The provider keeps a per-tenant
snapshot of the decrypted credential, refreshes it ahead of expiry and,
when the vendor reports an invalid token mid-send, refreshes and re-sends
once.
"""

import asyncio
import logging
import time
from datetime import timedelta
from typing import Any, Callable, Dict, Optional, Tuple

import httpx
import structlog
from pydantic import BaseModel, ValidationError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from otp_courier.credentials import ChannelCredential, CredentialStore
from otp_courier.errors import (
    AuthExpiredError,
    ConfigurationError,
    CourierError,
    CredentialError,
    TransientSendFailure,
)
from otp_courier.metrics import CREDENTIAL_REFRESH_TOTAL

from .base import ChannelProvider, SendResult, safe_json

logger = structlog.get_logger(__name__)
# tenacity's before_sleep_log expects a stdlib logger
_retry_logger = logging.getLogger(__name__)

SUCCESS_CODE = 0
AUTH_INVALID_CODE = -124
TOKEN_REFRESH_GRACE = timedelta(minutes=5)
CREDENTIAL_CACHE_TTL = 30.0
MAX_REFRESH_ATTEMPTS = 3


class ZaloSendResponse(BaseModel):
    error: int
    message: str = ""
    data: Optional[Dict[str, Any]] = None


class ZaloTokenResponse(BaseModel):
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: int = 0
    error: Optional[int] = None
    error_description: Optional[str] = None


class ZaloProvider(ChannelProvider):
    """
    Multi-tenant Zalo channel with in-flight credential refresh.

    One ``asyncio.Lock`` guards the credential snapshots. It is held only
    to read or swap a snapshot and persist the swapped credential, never
    across a vendor call. Concurrent refreshes for one tenant share a
    single in-flight refresh.
    """

    name = "zalo"
    stateful = True

    def __init__(
        self,
        credential_store: CredentialStore,
        config: Optional[Dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            credential_store: Encrypted per-tenant credentials
            config: {
                "base_url": "https://business.openapi.zalo.me",
                "oauth_url": "https://oauth.zaloapp.com/v4/oa/access_token",
                "cache_ttl": 30.0,
            }
            transport: Optional httpx transport, used to stub vendors in tests
            clock: Monotonic clock for snapshot freshness
        """
        super().__init__(config, transport)
        self.credential_store = credential_store
        self.base_url = self.config.get("base_url", "https://business.openapi.zalo.me").rstrip("/")
        self.oauth_url = self.config.get(
            "oauth_url", "https://oauth.zaloapp.com/v4/oa/access_token"
        )
        self.cache_ttl = float(self.config.get("cache_ttl", CREDENTIAL_CACHE_TTL))
        self._clock = clock
        self._lock = asyncio.Lock()
        self._credentials: Dict[str, Tuple[ChannelCredential, float]] = {}
        self._inflight: Dict[str, "asyncio.Task[ChannelCredential]"] = {}

    # =========================================================================
    # Credential snapshot
    # =========================================================================

    async def _current(self, tenant: str) -> ChannelCredential:
        """Tenant credential from the snapshot, reloading it once stale."""
        async with self._lock:
            entry = self._credentials.get(tenant)
            if entry and self._clock() - entry[1] < self.cache_ttl:
                return entry[0]

        loaded = await self.credential_store.load(tenant)
        if loaded is None:
            raise ConfigurationError(
                "No credential registered for tenant", channel=self.name, tenant=tenant
            )

        async with self._lock:
            entry = self._credentials.get(tenant)
            # A refresh may have swapped in a newer token while we were loading
            if entry and _issued_after(entry[0], loaded):
                return entry[0]
            self._credentials[tenant] = (loaded, self._clock())
            return loaded

    async def _refresh(self, tenant: str, stale: ChannelCredential) -> ChannelCredential:
        """Replace ``stale`` unless someone already did; join an in-flight refresh."""
        async with self._lock:
            entry = self._credentials.get(tenant)
            if entry and entry[0].access_token != stale.access_token:
                logger.debug("credential_already_refreshed", tenant=tenant)
                return entry[0]

            task = self._inflight.get(tenant)
            if task is None:
                task = asyncio.create_task(self._run_refresh(tenant, stale))
                self._inflight[tenant] = task

        return await asyncio.shield(task)

    async def _run_refresh(self, tenant: str, stale: ChannelCredential) -> ChannelCredential:
        try:
            tokens = await self._call_refresh_endpoint(stale)
            fresh = stale.refreshed(
                access_token=tokens.access_token,
                refresh_token=tokens.refresh_token,
                expires_in=tokens.expires_in,
            )
            async with self._lock:
                self._credentials[tenant] = (fresh, self._clock())
                await self.credential_store.persist(fresh)
        except Exception:
            CREDENTIAL_REFRESH_TOTAL.labels(channel=self.name, outcome="failure").inc()
            raise
        finally:
            self._inflight.pop(tenant, None)

        CREDENTIAL_REFRESH_TOTAL.labels(channel=self.name, outcome="success").inc()
        logger.info(
            "credential_refreshed",
            channel=self.name,
            tenant=tenant,
            expires_at=fresh.expires_at.isoformat() if fresh.expires_at else None,
        )
        return fresh

    @retry(
        retry=retry_if_exception_type(TransientSendFailure),
        stop=stop_after_attempt(MAX_REFRESH_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        before_sleep=before_sleep_log(_retry_logger, logging.WARNING),
        reraise=True,
    )
    async def _call_refresh_endpoint(self, credential: ChannelCredential) -> ZaloTokenResponse:
        response = await self._request(
            "POST",
            self.oauth_url,
            credential.tenant_name,
            headers={"secret_key": credential.secret_key},
            data={
                "refresh_token": credential.refresh_token,
                "app_id": credential.app_id,
                "grant_type": "refresh_token",
            },
        )
        try:
            tokens = ZaloTokenResponse.model_validate(safe_json(response))
        except ValidationError as e:
            raise TransientSendFailure(
                f"Malformed token response: {e.error_count()} invalid field(s)",
                channel=self.name,
                tenant=credential.tenant_name,
                status_code=response.status_code,
            )
        if response.status_code != 200 or not tokens.access_token:
            raise CredentialError(
                tokens.error_description or f"Token refresh rejected (status {response.status_code})",
                channel=self.name,
                tenant=credential.tenant_name,
            )
        return tokens

    # =========================================================================
    # Sending
    # =========================================================================

    async def _send_template(
        self,
        credential: ChannelCredential,
        receiver: str,
        otp: str,
    ) -> SendResult:
        response = await self._request(
            "POST",
            f"{self.base_url}/message/template",
            credential.tenant_name,
            headers={"access_token": credential.access_token},
            json={
                "phone": receiver,
                "template_id": credential.template_id,
                "template_data": {"otp": otp},
            },
        )
        body = safe_json(response)
        if "error" not in body:
            raise TransientSendFailure(
                f"Unexpected response (status {response.status_code})",
                channel=self.name,
                tenant=credential.tenant_name,
                status_code=response.status_code,
            )

        try:
            result = ZaloSendResponse.model_validate(body)
        except ValidationError as e:
            raise TransientSendFailure(
                f"Malformed send response: {e.error_count()} invalid field(s)",
                channel=self.name,
                tenant=credential.tenant_name,
                status_code=response.status_code,
            )
        if result.error == SUCCESS_CODE:
            data = result.data or {}
            return SendResult(
                channel=self.name,
                provider_message_id=data.get("msg_id"),
                raw_response=body,
            )
        if result.error == AUTH_INVALID_CODE:
            raise AuthExpiredError(
                result.message or "Access token is invalid",
                channel=self.name,
                tenant=credential.tenant_name,
                status_code=response.status_code,
                vendor_code=result.error,
            )
        raise TransientSendFailure(
            result.message or "Vendor rejected the message",
            channel=self.name,
            tenant=credential.tenant_name,
            status_code=response.status_code,
            vendor_code=result.error,
        )

    async def send_otp(
        self,
        tenant: str,
        receiver: str,
        otp: str,
        ttl: timedelta,
    ) -> SendResult:
        credential = await self._current(tenant)
        if not credential.template_id:
            raise ConfigurationError(
                "No template configured for tenant", channel=self.name, tenant=tenant
            )

        if credential.expires_within(TOKEN_REFRESH_GRACE):
            try:
                credential = await self._refresh(tenant, credential)
            except CourierError as e:
                logger.warning("proactive_refresh_failed", tenant=tenant, error=str(e))

        try:
            return await self._send_template(credential, receiver, otp)
        except AuthExpiredError:
            logger.info("access_token_rejected", channel=self.name, tenant=tenant)

        try:
            credential = await self._refresh(tenant, credential)
        except CourierError as e:
            raise TransientSendFailure(
                f"Credential refresh failed: {e.message}", channel=self.name, tenant=tenant
            )

        try:
            return await self._send_template(credential, receiver, otp)
        except AuthExpiredError as e:
            logger.error("access_token_rejected_after_refresh", tenant=tenant)
            raise TransientSendFailure(
                e.message,
                channel=self.name,
                tenant=tenant,
                status_code=e.status_code,
                vendor_code=e.vendor_code,
            )

    async def refresh_credential(self, tenant: str) -> Optional[ChannelCredential]:
        """Refresh the tenant's tokens regardless of their remaining lifetime."""
        credential = await self._current(tenant)
        return await self._refresh(tenant, credential)

    async def health_check(self, tenant: Optional[str] = None) -> bool:
        """List one template with the tenant's token."""
        if tenant is None:
            return self._client is not None
        try:
            credential = await self._current(tenant)
            response = await self._request(
                "GET",
                f"{self.base_url}/template/all",
                tenant,
                headers={"access_token": credential.access_token},
                params={"offset": 0, "limit": 1},
            )
        except CourierError as e:
            logger.warning("zalo_health_check_failed", tenant=tenant, error=str(e))
            return False
        return safe_json(response).get("error") == SUCCESS_CODE


def _issued_after(a: ChannelCredential, b: ChannelCredential) -> bool:
    if a.issued_at is None or b.issued_at is None:
        return False
    return a.issued_at > b.issued_at
