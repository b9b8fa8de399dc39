"""
Credential Models
=================
Per-tenant channel credential with refresh metadata.
"""

from dataclasses import asdict, dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class ChannelCredential:
    """
    Access/refresh token pair for one tenant on one channel.

    Frozen: a refresh produces a new instance, so readers never see a
    new access token paired with the old refresh token.
    """
    tenant_name: str
    channel: str
    app_id: str
    secret_key: str
    access_token: str
    refresh_token: str
    template_id: Optional[str] = None
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    def expires_within(self, grace: timedelta, now: Optional[datetime] = None) -> bool:
        """True when the access token expires inside ``grace`` from ``now``."""
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return self.expires_at - now <= grace

    def refreshed(
        self,
        access_token: str,
        refresh_token: str,
        expires_in: int,
        now: Optional[datetime] = None,
    ) -> "ChannelCredential":
        """New credential carrying the tokens returned by a refresh call."""
        now = now or datetime.now(timezone.utc)
        return replace(
            self,
            access_token=access_token,
            refresh_token=refresh_token or self.refresh_token,
            issued_at=now,
            expires_at=now + timedelta(seconds=expires_in),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["issued_at"] = self.issued_at.isoformat() if self.issued_at else None
        data["expires_at"] = self.expires_at.isoformat() if self.expires_at else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChannelCredential":
        return cls(
            tenant_name=data["tenant_name"],
            channel=data["channel"],
            app_id=data["app_id"],
            secret_key=data["secret_key"],
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            template_id=data.get("template_id"),
            issued_at=_parse_dt(data.get("issued_at")),
            expires_at=_parse_dt(data.get("expires_at")),
        )
