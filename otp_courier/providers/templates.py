"""OTP message rendering and extraction."""

import re
from datetime import timedelta
from typing import Optional

OTP_PATTERNS = [
    re.compile(r"\b(\d{6})\b"),
    re.compile(r"code[:\s]*(\d{4,8})", re.IGNORECASE),
    re.compile(r"otp[:\s]*(\d{4,8})", re.IGNORECASE),
]

OTP_MESSAGE_TEMPLATE = (
    "Dear Valued Customer,\n\n"
    "To continue, please use the following One Time Password (OTP) from "
    "{tenant}: *{otp}*\n\n"
    "This OTP is valid for *{minutes}* minutes. "
    "Do not share this code with anyone."
)


def render_otp_message(tenant: str, otp: str, ttl: timedelta) -> str:
    """Human-readable OTP message for free-text channels."""
    minutes = max(int(ttl.total_seconds() // 60), 1)
    return OTP_MESSAGE_TEMPLATE.format(tenant=tenant, otp=otp, minutes=minutes)


def extract_otp(body: str) -> Optional[str]:
    """First OTP code found in an inbound message body, or None."""
    for pattern in OTP_PATTERNS:
        match = pattern.search(body)
        if match:
            return match.group(1)
    return None
