"""
Courier Structured Logging
==========================

Configures structlog for the courier process and its background workers.

Usage:
    from otp_courier.logging import setup_logging, bind_delivery_context

    setup_logging("otp-courier", level="INFO", json_output=True)

    with bind_delivery_context(tenant="acme", receiver="+84900000000"):
        logger.info("otp_delivery_started")
"""

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

import structlog

service_name_var: ContextVar[str] = ContextVar("service_name", default="unknown")


# =============================================================================
# Processors
# =============================================================================

def _add_service_name(logger, method_name, event_dict):
    event_dict.setdefault("service", service_name_var.get())
    return event_dict


# =============================================================================
# Setup Functions
# =============================================================================

def setup_logging(
    service_name: str,
    level: str = "INFO",
    json_output: bool = True,
) -> logging.Logger:
    """
    Configure structlog and the stdlib root logger for a courier process.

    Args:
        service_name: Name reported on every event (e.g., "otp-courier")
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Render JSON lines (production) instead of console output

    Returns:
        Configured root logger
    """
    service_name_var.set(service_name)
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            _add_service_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    structlog.get_logger(__name__).info(
        "logging_configured", service=service_name, level=level.upper()
    )
    return root_logger


@contextmanager
def bind_delivery_context(**context) -> Iterator[None]:
    """Bind tenant/receiver/channel to every event logged inside the block."""
    tokens = structlog.contextvars.bind_contextvars(**context)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
