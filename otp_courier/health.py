"""
Courier Health Checks
=====================
Component status for Redis and every registered channel.
"""

import time
from enum import Enum
from typing import Dict, List, Optional

import structlog
from pydantic import BaseModel

from otp_courier.providers import ProviderRegistry

logger = structlog.get_logger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth(BaseModel):
    status: str
    latency_ms: Optional[float] = None
    error: Optional[str] = None


class HealthReport(BaseModel):
    status: HealthStatus
    service: str
    components: Dict[str, ComponentHealth]
    timestamp: float


async def check_redis(redis_client) -> ComponentHealth:
    """Check Redis connectivity and latency."""
    try:
        start = time.time()
        await redis_client.ping()
        latency = (time.time() - start) * 1000
        return ComponentHealth(status="connected", latency_ms=round(latency, 2))
    except Exception as e:
        logger.error("redis_health_check_failed", error=str(e))
        return ComponentHealth(status="error", error=str(e))


async def check_channels(
    registry: ProviderRegistry,
    tenants: Optional[List[str]] = None,
) -> Dict[str, ComponentHealth]:
    """Run each provider's health check, per tenant for stateful channels."""
    results: Dict[str, ComponentHealth] = {}
    for name in registry.list():
        provider = registry.get(name)
        scopes = tenants if provider.stateful and tenants else [None]
        for tenant in scopes:
            key = f"channel:{name}" if tenant is None else f"channel:{name}:{tenant}"
            start = time.time()
            try:
                healthy = await provider.health_check(tenant)
            except Exception as e:
                logger.error("channel_health_check_failed", channel=name, tenant=tenant, error=str(e))
                results[key] = ComponentHealth(status="error", error=str(e))
                continue
            latency = round((time.time() - start) * 1000, 2)
            results[key] = ComponentHealth(
                status="ok" if healthy else "unavailable", latency_ms=latency
            )
    return results


async def check_components(
    service: str,
    registry: ProviderRegistry,
    redis_client=None,
    tenants: Optional[List[str]] = None,
) -> HealthReport:
    """Aggregate component checks. Redis down is unhealthy, a channel down is degraded."""
    components = await check_channels(registry, tenants)
    if redis_client is not None:
        components["redis"] = await check_redis(redis_client)

    status = HealthStatus.HEALTHY
    if any(c.status != "ok" for k, c in components.items() if k.startswith("channel:")):
        status = HealthStatus.DEGRADED
    if "redis" in components and components["redis"].status != "connected":
        status = HealthStatus.UNHEALTHY

    return HealthReport(
        status=status,
        service=service,
        components=components,
        timestamp=time.time(),
    )
