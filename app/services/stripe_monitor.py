"""
Stripe Health Monitor - observability loop for the Stripe client.

Times a fresh client probe, flags slow loads, and on failure makes one
recovery attempt. Never raises to its caller.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from structlog import get_logger

from app.observability.metrics import metrics
from app.services.analytics import AnalyticsTracker
from app.services.stripe_initializer import StripeClientInitializer

logger = get_logger(__name__)

DEFAULT_LOAD_TIME_THRESHOLD_MS = 2000


@dataclass(frozen=True)
class HealthReport:
    """Result of one health check."""

    healthy: bool
    load_time_ms: int | None
    slow: bool = False
    error: str | None = None
    recovered: bool | None = None  # None = no recovery needed
    checked_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class StripeHealthMonitor:
    """Periodic health probe for the Stripe client."""

    def __init__(
        self,
        initializer: StripeClientInitializer,
        analytics: AnalyticsTracker,
        load_time_threshold_ms: int = DEFAULT_LOAD_TIME_THRESHOLD_MS,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.initializer = initializer
        self.analytics = analytics
        self.load_time_threshold_ms = load_time_threshold_ms
        self._clock = clock
        self.last_report: HealthReport | None = None

    async def check_health(self) -> HealthReport:
        try:
            start = self._clock()
            handle = await self.initializer.probe()
            load_time_ms = int((self._clock() - start) * 1000)
        except Exception as exc:
            report = await self._handle_monitoring_error(exc)
        else:
            metrics.stripe_load_seconds.observe(load_time_ms / 1000)
            self.analytics.track_event(
                "stripe_health_check",
                load_time_ms=load_time_ms,
                success=handle is not None,
            )
            slow = load_time_ms > self.load_time_threshold_ms
            if slow:
                self._handle_performance_issue("load_time", load_time_ms)
            report = HealthReport(healthy=True, load_time_ms=load_time_ms, slow=slow)

        self.last_report = report
        return report

    async def run(self, interval_seconds: float) -> None:
        """Check health every interval until cancelled."""
        logger.info("stripe_health_monitor_started", interval_seconds=interval_seconds)
        while True:
            await self.check_health()
            await asyncio.sleep(interval_seconds)

    def _handle_performance_issue(self, issue_type: str, value: int) -> None:
        self.analytics.track_event(
            "stripe_performance_issue",
            type=issue_type,
            value=value,
            threshold=self.load_time_threshold_ms,
        )
        logger.warning(
            "stripe_performance_issue",
            issue_type=issue_type,
            value=value,
            threshold=self.load_time_threshold_ms,
        )

    async def _handle_monitoring_error(self, error: Exception) -> HealthReport:
        self.analytics.track_event("stripe_monitoring_error", error=str(error))
        logger.warning("stripe_health_check_failed", error=str(error))
        metrics.record_error(type(error).__name__, "stripe_health_check")

        recovered = await self._attempt_recovery()
        return HealthReport(
            healthy=False,
            load_time_ms=None,
            error=str(error),
            recovered=recovered,
        )

    async def _attempt_recovery(self) -> bool:
        try:
            self.initializer.reset()
            handle = await self.initializer.initialize()
        except Exception as exc:
            self.analytics.track_event("stripe_recovery_failed", error=str(exc))
            logger.error("stripe_recovery_failed", error=str(exc))
            return False

        self.analytics.track_event("stripe_recovery_attempt", success=handle is not None)
        logger.info("stripe_recovery_succeeded")
        return True
