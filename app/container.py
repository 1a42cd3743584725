"""
Service Container - wires the billing services from Settings.

Built once in the application lifespan and stored on app.state. Routes get
services through the dependency getters in app.api.dependencies.
"""

from dataclasses import dataclass
from functools import partial

from app.config import Settings
from app.services.analytics import AnalyticsTracker
from app.services.event_store import ProcessedEventStore
from app.services.notifications import NotificationService, build_email_sender
from app.services.plans import PlanCatalog
from app.services.stripe_client import load_stripe_handle
from app.services.stripe_config import StripeConfigValidator
from app.services.stripe_initializer import HandleLoader, StripeClientInitializer
from app.services.stripe_monitor import StripeHealthMonitor
from app.services.subscriptions import SubscriptionService
from app.services.webhooks import StripeWebhookHandler


@dataclass
class ServiceContainer:
    """All long-lived services of one application instance."""

    settings: Settings
    analytics: AnalyticsTracker
    validator: StripeConfigValidator
    initializer: StripeClientInitializer
    monitor: StripeHealthMonitor
    subscriptions: SubscriptionService
    notifications: NotificationService
    webhooks: StripeWebhookHandler
    plans: PlanCatalog

    @classmethod
    def build(
        cls,
        settings: Settings,
        loader: HandleLoader | None = None,
        notifications: NotificationService | None = None,
    ) -> "ServiceContainer":
        """
        Build the services for a settings instance.

        Args:
            settings: Application settings
            loader: Stripe handle loader; defaults to the live Stripe loader
            notifications: Notification service; defaults to the configured sender
        """
        analytics = AnalyticsTracker(buffer_size=settings.analytics_buffer_size)
        validator = StripeConfigValidator(settings, analytics)
        initializer = StripeClientInitializer(
            validator,
            analytics,
            loader or partial(load_stripe_handle, settings),
            max_attempts=settings.stripe_init_max_attempts,
            base_delay=settings.stripe_init_base_delay_seconds,
        )
        if notifications is None:
            notifications = NotificationService(build_email_sender(settings))

        return cls(
            settings=settings,
            analytics=analytics,
            validator=validator,
            initializer=initializer,
            monitor=StripeHealthMonitor(
                initializer,
                analytics,
                load_time_threshold_ms=settings.stripe_health_threshold_ms,
            ),
            subscriptions=SubscriptionService(initializer, settings),
            notifications=notifications,
            webhooks=StripeWebhookHandler(
                initializer,
                notifications,
                ProcessedEventStore(ttl_seconds=settings.webhook_event_ttl_seconds),
                settings.stripe_webhook_secret,
            ),
            plans=PlanCatalog(),
        )
