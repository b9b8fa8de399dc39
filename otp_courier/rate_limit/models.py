"""
Rate Limit Models
=================
Admission result with quota information.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class RateLimitInfo:
    """Rate limit check result with quota information."""
    allowed: bool
    remaining: int
    limit: int
    reset_at: int  # Unix timestamp
    retry_after: Optional[int] = None


def rate_limit_key(action: str, tenant: str, receiver: str) -> str:
    """Counter key for an (action, tenant, receiver) identity."""
    return f"ratelimit:{action}:{tenant}:{receiver}"
