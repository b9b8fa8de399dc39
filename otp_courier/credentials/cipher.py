"""Credential encryption at rest."""

import base64
import hashlib
from dataclasses import replace

import structlog
from cryptography.fernet import Fernet, InvalidToken

from otp_courier.errors import ConfigurationError, CredentialError

from .models import ChannelCredential

logger = structlog.get_logger(__name__)

ENCRYPTED_FIELDS = ("access_token", "refresh_token", "secret_key")


def derive_key(secret: str) -> bytes:
    """Fernet key from an arbitrary-length secret (SHA-256, urlsafe base64)."""
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


class CredentialCipher:
    """Encrypts the secret fields of a ChannelCredential with Fernet."""

    def __init__(self, secret: str):
        if not secret:
            raise ConfigurationError("Credential encryption key is not configured")
        self._fernet = Fernet(derive_key(secret))

    def encrypt(self, value: str) -> str:
        if not value:
            return value
        return self._fernet.encrypt(value.encode("utf-8")).decode("ascii")

    def decrypt(self, value: str) -> str:
        if not value:
            return value
        try:
            return self._fernet.decrypt(value.encode("ascii")).decode("utf-8")
        except InvalidToken:
            logger.error("credential_decrypt_failed")
            raise CredentialError("Stored credential could not be decrypted")

    def encrypt_credential(self, credential: ChannelCredential) -> ChannelCredential:
        return replace(
            credential,
            **{name: self.encrypt(getattr(credential, name)) for name in ENCRYPTED_FIELDS},
        )

    def decrypt_credential(self, credential: ChannelCredential) -> ChannelCredential:
        try:
            return replace(
                credential,
                **{name: self.decrypt(getattr(credential, name)) for name in ENCRYPTED_FIELDS},
            )
        except CredentialError as e:
            raise CredentialError(
                e.message, channel=credential.channel, tenant=credential.tenant_name
            )
