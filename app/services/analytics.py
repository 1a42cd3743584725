"""
Analytics Tracking - operational events for the billing pipeline.

Events are logged, counted in Prometheus and kept in a bounded in-memory
buffer so recent activity can be inspected without scraping logs.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from structlog import get_logger

from app.observability.metrics import metrics

logger = get_logger(__name__)

# Metric label shared by all browser-reported events
CLIENT_EVENT_LABEL = "client"


@dataclass(frozen=True)
class AnalyticsEvent:
    """One tracked analytics event."""

    name: str
    properties: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class AnalyticsTracker:
    """Records analytics events. Tracking never raises to the caller."""

    def __init__(self, buffer_size: int = 500) -> None:
        self._events: deque[AnalyticsEvent] = deque(maxlen=buffer_size)

    def track_event(self, name: str, /, **properties: Any) -> None:
        """Track an internal event, counted under its own name."""
        self._record(name, properties, metric_label=name)

    def track_client_event(self, name: str, properties: dict[str, Any]) -> None:
        """
        Track an event reported by the browser.

        Names are caller-supplied, so they are counted under one fixed label.
        """
        self._record(name, properties, metric_label=CLIENT_EVENT_LABEL)

    def _record(self, name: str, properties: dict[str, Any], metric_label: str) -> None:
        try:
            event = AnalyticsEvent(name=name, properties=dict(properties))
            self._events.append(event)
            metrics.analytics_events_total.labels(event=metric_label).inc()
            logger.info("analytics_event", analytics_event=name, properties=event.properties)
        except Exception as exc:
            logger.warning("analytics_event_failed", analytics_event=name, error=str(exc))

    @property
    def recent_events(self) -> list[AnalyticsEvent]:
        return list(self._events)

    def events_named(self, name: str) -> list[AnalyticsEvent]:
        return [e for e in self._events if e.name == name]
