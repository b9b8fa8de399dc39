"""
Courier Logging Module

Structured logging for the courier and its workers.
"""

from .structured import (
    setup_logging,
    bind_delivery_context,
    service_name_var,
)

__all__ = [
    "setup_logging",
    "bind_delivery_context",
    "service_name_var",
]
