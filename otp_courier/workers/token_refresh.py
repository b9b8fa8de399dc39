"""
Token Refresh Worker
====================
Periodically refreshes every stored credential of every stateful channel.
"""

import structlog

from otp_courier.providers import ProviderRegistry

from .base import GuardedWorker

logger = structlog.get_logger(__name__)


class TokenRefreshWorker(GuardedWorker):
    """Refreshes tenant credentials; an overlapping tick is skipped."""

    name = "token_refresh"

    def __init__(self, registry: ProviderRegistry):
        super().__init__()
        self.registry = registry

    async def run(self) -> None:
        refreshed = 0
        failed = 0

        for provider in self.registry.stateful():
            credentials = await provider.credential_store.all()
            for credential in credentials:
                try:
                    await provider.refresh_credential(credential.tenant_name)
                    refreshed += 1
                except Exception as e:
                    failed += 1
                    logger.error(
                        "token_refresh_failed",
                        channel=provider.name,
                        tenant=credential.tenant_name,
                        error=str(e),
                    )

        logger.info("token_refresh_completed", refreshed=refreshed, failed=failed)
