"""
Credential Store
================
Encrypting facade over a CredentialRepository.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import structlog

from otp_courier.errors import CredentialError

from .cipher import CredentialCipher
from .models import ChannelCredential
from .repository import CredentialRepository

logger = structlog.get_logger(__name__)


class CredentialStore:
    """
    Decrypted credentials in, encrypted credentials at rest.

    Example:
        store = CredentialStore(InMemoryCredentialRepository("zalo"), cipher)
        await store.persist(credential)
        credential = await store.load("acme")
    """

    def __init__(self, repository: CredentialRepository, cipher: CredentialCipher):
        self.repository = repository
        self.cipher = cipher

    @property
    def channel(self) -> str:
        return self.repository.channel

    async def load(self, tenant: str) -> Optional[ChannelCredential]:
        """Decrypted credential for ``tenant`` or None."""
        stored = await self.repository.get(tenant)
        if stored is None:
            return None
        return self.cipher.decrypt_credential(stored)

    async def persist(self, credential: ChannelCredential) -> None:
        await self.repository.save(self.cipher.encrypt_credential(credential))
        logger.info(
            "credential_persisted",
            channel=credential.channel,
            tenant=credential.tenant_name,
            expires_at=credential.expires_at.isoformat() if credential.expires_at else None,
        )

    async def all(self) -> List[ChannelCredential]:
        """Every decrypted credential. Rows that fail to decrypt are logged and skipped."""
        credentials = []
        for stored in await self.repository.get_all():
            try:
                credentials.append(self.cipher.decrypt_credential(stored))
            except CredentialError as e:
                logger.error(
                    "credential_unreadable",
                    channel=stored.channel,
                    tenant=stored.tenant_name,
                    error=str(e),
                )
        return credentials

    async def remove(self, tenant: str) -> None:
        await self.repository.delete(tenant)

    async def upsert(
        self,
        tenant: str,
        app_id: str,
        secret_key: str,
        access_token: str,
        refresh_token: str,
        template_id: Optional[str] = None,
        expires_in: Optional[int] = None,
    ) -> ChannelCredential:
        """Register or replace a tenant's credential (onboarding)."""
        now = datetime.now(timezone.utc)
        credential = ChannelCredential(
            tenant_name=tenant,
            channel=self.channel,
            app_id=app_id,
            secret_key=secret_key,
            access_token=access_token,
            refresh_token=refresh_token,
            template_id=template_id,
            issued_at=now,
            expires_at=now + timedelta(seconds=expires_in) if expires_in else None,
        )
        await self.persist(credential)
        return credential
