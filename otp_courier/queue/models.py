"""
OTP Queue Models
================
Pending OTP items and scheduled retry tasks.
"""

import json
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class OTPQueueItem:
    """An OTP awaiting delivery. One per (tenant, receiver)."""
    tenant_name: str
    receiver: str
    message: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OTPQueueItem":
        return cls(
            id=data["id"],
            tenant_name=data["tenant_name"],
            receiver=data["receiver"],
            message=data["message"],
            created_at=_parse_dt(data["created_at"]),
        )

    @classmethod
    def from_json(cls, raw: str) -> "OTPQueueItem":
        return cls.from_dict(json.loads(raw))


@dataclass
class RetryTask:
    """
    A failed delivery scheduled for another attempt.

    ``retry_count`` is 0 on a task that has never been queued; the queue
    assigns 1 on first enqueue and increments it on every later enqueue
    for the same (tenant, receiver).
    """
    tenant_name: str
    receiver: str
    channel: str
    message: str
    retry_count: int = 0
    ready_at: Optional[datetime] = None

    def is_due(self, now: datetime) -> bool:
        return self.ready_at is not None and self.ready_at <= now

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["ready_at"] = self.ready_at.isoformat() if self.ready_at else None
        return data

    def to_json(self) -> str:
        # Sorted keys keep the payload byte-stable; the Redis backend
        # identifies members by exact payload.
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetryTask":
        return cls(
            tenant_name=data["tenant_name"],
            receiver=data["receiver"],
            channel=data["channel"],
            message=data["message"],
            retry_count=int(data.get("retry_count", 0)),
            ready_at=_parse_dt(data.get("ready_at")),
        )

    @classmethod
    def from_json(cls, raw: str) -> "RetryTask":
        return cls.from_dict(json.loads(raw))
