"""
HashiCorp Vault Secrets for the Courier
=======================================

Usage:
    from otp_courier.vault import CourierVault

    settings = CourierSettings.from_env()
    if os.environ.get("VAULT_ADDR"):
        CourierVault().apply_to(settings)
"""

import os
from typing import Any, Dict, Optional

import hvac
import structlog

from otp_courier.config import CourierSettings

logger = structlog.get_logger(__name__)


class CourierVault:
    """Reads courier secrets from Vault KV v2 and overlays them on settings."""

    def __init__(
        self,
        url: Optional[str] = None,
        token: Optional[str] = None,
        mount_point: str = "otp-courier",
        client: Optional[hvac.Client] = None,
    ):
        self.url = url or os.environ.get("VAULT_ADDR", "http://localhost:8200")
        self.token = token or os.environ.get("VAULT_TOKEN")
        self.mount_point = mount_point
        self._client = client

    @property
    def client(self) -> hvac.Client:
        """Lazy-loaded Vault client."""
        if self._client is None:
            self._client = hvac.Client(url=self.url, token=self.token)
            if not self._client.is_authenticated():
                raise ValueError("Vault authentication failed. Check VAULT_TOKEN.")
        return self._client

    def get_secret(self, path: str) -> Dict[str, Any]:
        """
        Get a secret from Vault KV v2.

        Args:
            path: Secret path (e.g., "encryption", "api-keys/twilio")

        Returns:
            Dictionary of secret key-value pairs
        """
        try:
            secret = self.client.secrets.kv.v2.read_secret_version(
                path=path,
                mount_point=self.mount_point,
            )
            return secret["data"]["data"]
        except hvac.exceptions.InvalidPath:
            logger.error("vault_secret_not_found", path=f"{self.mount_point}/{path}")
            raise

    def _optional(self, path: str) -> Dict[str, Any]:
        try:
            return self.get_secret(path)
        except hvac.exceptions.InvalidPath:
            return {}

    def apply_to(self, settings: CourierSettings) -> CourierSettings:
        """Overwrite secret-bearing settings with the values stored in Vault."""
        encryption = self._optional("encryption")
        if encryption.get("credential_key"):
            settings.credential_encryption_key = encryption["credential_key"]

        redis = self._optional("databases/redis")
        if redis.get("url"):
            settings.redis_url = redis["url"]

        twilio = self._optional("api-keys/twilio")
        settings.twilio_account_sid = twilio.get("account_sid", settings.twilio_account_sid)
        settings.twilio_auth_token = twilio.get("auth_token", settings.twilio_auth_token)
        settings.twilio_from_number = twilio.get("from_number", settings.twilio_from_number)

        whatsapp = self._optional("api-keys/whatsapp")
        settings.whatsapp_access_token = whatsapp.get(
            "access_token", settings.whatsapp_access_token
        )
        settings.whatsapp_phone_number_id = whatsapp.get(
            "phone_number_id", settings.whatsapp_phone_number_id
        )

        logger.info("vault_secrets_applied", mount_point=self.mount_point)
        return settings
