"""
Courier Metrics
===============
Prometheus metrics for OTP delivery, retries and credential refreshes.
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

# Custom registry so embedding applications keep their default one clean
COURIER_REGISTRY = CollectorRegistry()

OTP_SEND_TOTAL = Counter(
    name="otp_send_total",
    documentation="OTP send attempts by channel and outcome",
    labelnames=["channel", "outcome"],
    registry=COURIER_REGISTRY,
)

OTP_RETRY_ENQUEUED_TOTAL = Counter(
    name="otp_retry_enqueued_total",
    documentation="Retry tasks scheduled after a failed delivery",
    labelnames=["channel"],
    registry=COURIER_REGISTRY,
)

OTP_RETRY_DISCARDED_TOTAL = Counter(
    name="otp_retry_discarded_total",
    documentation="Retry tasks dropped after exhausting attempts or on configuration errors",
    labelnames=["channel", "reason"],
    registry=COURIER_REGISTRY,
)

CREDENTIAL_REFRESH_TOTAL = Counter(
    name="credential_refresh_total",
    documentation="Credential refresh calls by channel and outcome",
    labelnames=["channel", "outcome"],
    registry=COURIER_REGISTRY,
)

WORKER_TICKS_SKIPPED_TOTAL = Counter(
    name="worker_ticks_skipped_total",
    documentation="Worker ticks skipped because the previous run was still active",
    labelnames=["worker"],
    registry=COURIER_REGISTRY,
)

RATE_LIMIT_REJECTIONS_TOTAL = Counter(
    name="rate_limit_rejections_total",
    documentation="OTP requests rejected by admission control",
    registry=COURIER_REGISTRY,
)

WORKER_RUNNING = Gauge(
    name="worker_running",
    documentation="Whether a worker loop is currently running",
    labelnames=["worker"],
    registry=COURIER_REGISTRY,
)


def render_metrics() -> bytes:
    """Exposition-format snapshot of the courier registry."""
    return generate_latest(COURIER_REGISTRY)
