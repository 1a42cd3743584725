"""
Metrics Collection with Prometheus.

Exposes billing pipeline and system metrics for monitoring.
"""

import time
from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from app.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    EVENT_TYPE = "event_type"
    OUTCOME = "outcome"
    TEMPLATE = "template"
    ERROR_TYPE = "error_type"


class BillingMetrics:
    """
    Centralized metrics for the Titan Billing API.

    Minimum viable metrics covering:
    - HTTP requests (rate, duration, errors)
    - Stripe client initialization (attempts, outcome)
    - Stripe API calls (rate, duration, success/failure)
    - Webhook events (type, outcome)
    - Notification emails (template, success/failure)
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "titan_billing_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "titan_billing_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "titan_billing_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "titan_billing_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Stripe Client Metrics
        # ====================================================================
        self.stripe_init_attempts_total = Counter(
            "titan_billing_stripe_init_attempts_total",
            "Stripe client load attempts",
            ["success"],
        )

        self.stripe_load_seconds = Histogram(
            "titan_billing_stripe_load_seconds",
            "Stripe client load (probe) duration in seconds",
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0),
        )

        self.stripe_api_calls_total = Counter(
            "titan_billing_stripe_api_calls_total",
            "Stripe API calls by operation",
            [MetricLabels.OPERATION, "success"],
        )

        self.stripe_api_call_duration_seconds = Histogram(
            "titan_billing_stripe_api_call_duration_seconds",
            "Stripe API call duration in seconds",
            [MetricLabels.OPERATION],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
        )

        # ====================================================================
        # Webhook Metrics
        # ====================================================================
        self.webhook_events_total = Counter(
            "titan_billing_webhook_events_total",
            "Stripe webhook events by type and outcome",
            [MetricLabels.EVENT_TYPE, MetricLabels.OUTCOME],
        )

        # ====================================================================
        # Notification Metrics
        # ====================================================================
        self.emails_sent_total = Counter(
            "titan_billing_emails_sent_total",
            "Notification emails by template",
            [MetricLabels.TEMPLATE, "success"],
        )

        # ====================================================================
        # Analytics Metrics
        # ====================================================================
        self.analytics_events_total = Counter(
            "titan_billing_analytics_events_total",
            "Tracked analytics events",
            ["event"],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "titan_billing_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_stripe_init_attempt(self, success: bool) -> None:
        """Record one Stripe client load attempt."""
        self.stripe_init_attempts_total.labels(success=str(success)).inc()

    def record_stripe_call(self, operation: str, success: bool, duration: float) -> None:
        """Record a Stripe API call."""
        self.stripe_api_calls_total.labels(operation=operation, success=str(success)).inc()
        self.stripe_api_call_duration_seconds.labels(operation=operation).observe(duration)

    def record_webhook_event(self, event_type: str, outcome: str) -> None:
        """Record a webhook event outcome (handled, ignored, duplicate, failed)."""
        self.webhook_events_total.labels(event_type=event_type, outcome=outcome).inc()

    def record_email(self, template: str, success: bool) -> None:
        """Record a notification email delivery."""
        self.emails_sent_total.labels(template=template, success=str(success)).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = BillingMetrics()


class track_stripe_call:
    """
    Context manager for timing Stripe API calls.

    Usage:
        with track_stripe_call("checkout.sessions.create"):
            session = await stripe.checkout.Session.create_async(...)
    """

    def __init__(self, operation: str) -> None:
        self.operation = operation
        self.start_time: float = 0.0

    def __enter__(self) -> "track_stripe_call":
        """Start tracking."""
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        """Record metrics."""
        duration = time.perf_counter() - self.start_time
        metrics.record_stripe_call(self.operation, exc_type is None, duration)
