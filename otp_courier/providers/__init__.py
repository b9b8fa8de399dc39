"""
Channel Providers
=================
OTP delivery channels and their registry.
"""

from .base import (
    ChannelProvider,
    MessageStatus,
    ProviderRegistry,
    SendResult,
    safe_json,
)
from .templates import extract_otp, render_otp_message
from .sms import SMSProvider
from .whatsapp import WhatsAppProvider
from .webhook import WebhookProvider
from .zalo import ZaloProvider, AUTH_INVALID_CODE, TOKEN_REFRESH_GRACE

__all__ = [
    "ChannelProvider",
    "MessageStatus",
    "ProviderRegistry",
    "SendResult",
    "safe_json",
    "extract_otp",
    "render_otp_message",
    "SMSProvider",
    "WhatsAppProvider",
    "WebhookProvider",
    "ZaloProvider",
    "AUTH_INVALID_CODE",
    "TOKEN_REFRESH_GRACE",
]
