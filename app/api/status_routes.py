"""
Status API routes - Health checks for Titan Billing dependencies.

Public endpoints (no auth) for liveness probes and status page aggregation.
/v1/status is rate limited with a 10-second cache.
"""

import asyncio
import time
from datetime import UTC, datetime
from enum import Enum

import httpx
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from structlog import get_logger

from app.api.dependencies import get_container
from app.container import ServiceContainer
from app.models.api import HealthResponse
from app.services.stripe_monitor import HealthReport

logger = get_logger(__name__)
router = APIRouter(tags=["status"])

# Timeout for health checks
CHECK_TIMEOUT = 5.0  # seconds
DEGRADED_LATENCY_THRESHOLD = 1000  # ms
STRIPE_API_URL = "https://api.stripe.com/v1"

# Rate limiting: cache last result for 10 seconds
_status_cache: dict[str, tuple[datetime, "ServiceStatusResponse"]] = {}
_CACHE_TTL_SECONDS = 10


class StatusLevel(str, Enum):
    """Status levels for health checks."""

    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    OUTAGE = "outage"


class ProviderStatus(BaseModel):
    """Status of a single provider."""

    status: StatusLevel
    latency_ms: int | None = None
    last_check: str = Field(..., description="ISO 8601 timestamp")
    message: str | None = None


class ServiceStatusResponse(BaseModel):
    """Response for /v1/status endpoint."""

    service: str = "titan-billing"
    status: StatusLevel
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    version: str
    providers: dict[str, ProviderStatus]


def stripe_client_status(report: HealthReport) -> ProviderStatus:
    """Translate a Stripe health report into a provider status."""
    timestamp = report.checked_at.isoformat()

    if not report.healthy:
        return ProviderStatus(
            status=StatusLevel.DEGRADED if report.recovered else StatusLevel.OUTAGE,
            latency_ms=None,
            last_check=timestamp,
            message="Recovered after failure" if report.recovered else report.error,
        )

    return ProviderStatus(
        status=StatusLevel.DEGRADED if report.slow else StatusLevel.OPERATIONAL,
        latency_ms=report.load_time_ms,
        last_check=timestamp,
        message="Slow client load" if report.slow else None,
    )


async def check_stripe_api() -> ProviderStatus:
    """Check Stripe API reachability."""
    start = time.perf_counter()
    timestamp = datetime.now(UTC).isoformat()

    try:
        async with httpx.AsyncClient(timeout=CHECK_TIMEOUT) as client:
            response = await client.get(STRIPE_API_URL)
            latency_ms = int((time.perf_counter() - start) * 1000)

            # 401 is expected (no key provided) - endpoint is reachable
            if response.status_code in (200, 401):
                status = (
                    StatusLevel.DEGRADED
                    if latency_ms > DEGRADED_LATENCY_THRESHOLD
                    else StatusLevel.OPERATIONAL
                )
                return ProviderStatus(
                    status=status,
                    latency_ms=latency_ms,
                    last_check=timestamp,
                    message="High latency" if status == StatusLevel.DEGRADED else None,
                )

            return ProviderStatus(
                status=StatusLevel.DEGRADED,
                latency_ms=latency_ms,
                last_check=timestamp,
                message=f"Unexpected status: {response.status_code}",
            )
    except httpx.TimeoutException:
        return ProviderStatus(
            status=StatusLevel.OUTAGE,
            latency_ms=int(CHECK_TIMEOUT * 1000),
            last_check=timestamp,
            message="Timeout",
        )
    except Exception as e:
        logger.warning("stripe_api_health_check_failed", error=str(e))
        return ProviderStatus(
            status=StatusLevel.OUTAGE,
            latency_ms=None,
            last_check=timestamp,
            message="Connection failed",
        )


def check_smtp(container: ServiceContainer) -> ProviderStatus:
    """Report the email transport. Log-only delivery is not an outage."""
    transport = container.notifications.sender.name
    return ProviderStatus(
        status=StatusLevel.OPERATIONAL,
        latency_ms=0,
        last_check=datetime.now(UTC).isoformat(),
        message="Not configured" if transport == "log" else None,
    )


def calculate_overall_status(providers: dict[str, ProviderStatus]) -> StatusLevel:
    """Calculate overall service status from provider statuses."""
    statuses = [p.status for p in providers.values()]

    if StatusLevel.OUTAGE in statuses:
        return StatusLevel.OUTAGE
    if StatusLevel.DEGRADED in statuses:
        return StatusLevel.DEGRADED
    return StatusLevel.OPERATIONAL


@router.get("/health", response_model=HealthResponse)
async def health_check(container: ServiceContainer = Depends(get_container)) -> HealthResponse:
    """Liveness probe. Does not call Stripe."""
    return HealthResponse(
        status="healthy",
        stripe_initialized=container.initializer.is_initialized,
        timestamp=datetime.now(UTC).isoformat(),
    )


@router.get("/v1/status", response_model=ServiceStatusResponse)
async def get_status(
    container: ServiceContainer = Depends(get_container),
) -> ServiceStatusResponse:
    """
    Get Titan Billing service status.

    Uses the monitor's latest report when the background monitor runs,
    otherwise runs one health check.

    Rate limited via 10-second cache to prevent abuse.
    """
    cache_key = "status"
    now = datetime.now(UTC)

    if cache_key in _status_cache:
        cached_time, cached_response = _status_cache[cache_key]
        age_seconds = (now - cached_time).total_seconds()
        if age_seconds < _CACHE_TTL_SECONDS:
            logger.debug("status_cache_hit", age_seconds=age_seconds)
            return cached_response

    report = container.monitor.last_report
    stripe_api_task = asyncio.create_task(check_stripe_api())
    if report is None:
        report = await container.monitor.check_health()
    stripe_api_status = await stripe_api_task

    providers = {
        "stripe_client": stripe_client_status(report),
        "stripe_api": stripe_api_status,
        "smtp": check_smtp(container),
    }

    response = ServiceStatusResponse(
        status=calculate_overall_status(providers),
        timestamp=now.isoformat(),
        version=container.settings.api_version,
        providers=providers,
    )

    # Cache the response
    _status_cache[cache_key] = (now, response)

    return response
