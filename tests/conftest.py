"""
Pytest Configuration and Centralized Fixtures.

Provides reusable mocks and fixtures for testing:
- Settings with valid test Stripe keys
- A mocked Stripe handle (AsyncMock provider calls, dict Stripe objects)
- Initializer, notification and webhook services wired to the mocks
- API test client with a prebuilt service container
- Stripe webhook signing helper
"""

import hashlib
import hmac
import json
import os
import time
from collections.abc import Callable, Iterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

# Set required environment variables BEFORE importing app modules
os.environ.setdefault("STRIPE_PUBLISHABLE_KEY", "pk_test_fake_publishable")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_fake_secret")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_fake_secret")
os.environ.setdefault("TRACING_ENABLED", "false")
os.environ.setdefault("STRIPE_HEALTH_INTERVAL_SECONDS", "0")

from app.config import Settings
from app.container import ServiceContainer
from app.services.analytics import AnalyticsTracker
from app.services.event_store import ProcessedEventStore
from app.services.notifications import LogEmailSender, NotificationService
from app.services.stripe_client import StripeHandle
from app.services.stripe_config import StripeConfigValidator
from app.services.stripe_initializer import StripeClientInitializer
from app.services.webhooks import StripeWebhookHandler

WEBHOOK_SECRET = "whsec_test_fake_secret"

# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings with well-formed test Stripe keys and no SMTP."""
    return Settings(
        stripe_publishable_key="pk_test_fake_publishable",
        stripe_secret_key="sk_test_fake_secret",
        stripe_webhook_secret=WEBHOOK_SECRET,
        app_url="https://app.example.com",
        smtp_host="",
        stripe_health_interval_seconds=0,
        stripe_init_base_delay_seconds=0,
        _env_file=None,
    )


@pytest.fixture
def analytics() -> AnalyticsTracker:
    """Fresh analytics tracker."""
    return AnalyticsTracker()


@pytest.fixture
def validator(settings: Settings, analytics: AnalyticsTracker) -> StripeConfigValidator:
    return StripeConfigValidator(settings, analytics)


# ============================================================================
# Stripe Handle Fixtures
# ============================================================================


def make_subscription(
    subscription_id: str = "sub_123",
    price_id: str = "price_growth_monthly",
    cancel_at_period_end: bool = False,
) -> dict[str, Any]:
    """Stripe subscription object as a plain mapping."""
    return {
        "id": subscription_id,
        "object": "subscription",
        "status": "active",
        "customer": "cus_123",
        "cancel_at_period_end": cancel_at_period_end,
        "current_period_end": 1735689600,
        "trial_end": None,
        "items": {
            "object": "list",
            "data": [{"id": "si_123", "price": {"id": price_id}}],
        },
    }


def make_invoice(
    invoice_id: str = "in_123",
    amount_due: int = 4900,
    customer: str | None = "cus_123",
    customer_email: str | None = None,
) -> dict[str, Any]:
    """Stripe invoice object as a plain mapping."""
    return {
        "id": invoice_id,
        "object": "invoice",
        "number": "INV-0001",
        "amount_due": amount_due,
        "currency": "usd",
        "status": "open",
        "customer": customer,
        "customer_email": customer_email,
        "due_date": 1735689600,
        "invoice_pdf": f"https://pay.stripe.com/invoice/{invoice_id}/pdf",
        "hosted_invoice_url": f"https://invoice.stripe.com/i/{invoice_id}",
    }


def page(*items: dict[str, Any], has_more: bool = False) -> dict[str, Any]:
    """Stripe list page."""
    return {"object": "list", "data": list(items), "has_more": has_more}


@pytest.fixture
def invoice_factory() -> Callable[..., dict[str, Any]]:
    return make_invoice


@pytest.fixture
def subscription_factory() -> Callable[..., dict[str, Any]]:
    return make_subscription


@pytest.fixture
def stripe_page() -> Callable[..., dict[str, Any]]:
    return page


@pytest.fixture
def stripe_handle() -> MagicMock:
    """Mock StripeHandle whose provider calls return dict Stripe objects."""
    handle = MagicMock(spec=StripeHandle)
    handle.secret_key = "sk_test_fake_secret"
    handle.publishable_key = "pk_test_fake_publishable"
    handle.livemode = False
    handle.ping = AsyncMock()
    handle.create_customer = AsyncMock(return_value={"id": "cus_new", "object": "customer"})
    handle.retrieve_customer = AsyncMock(
        return_value={"id": "cus_123", "object": "customer", "email": "customer@example.com"}
    )
    handle.create_checkout_session = AsyncMock(
        return_value={
            "id": "cs_test_123",
            "object": "checkout.session",
            "url": "https://checkout.stripe.com/c/pay/cs_test_123",
            "status": "open",
        }
    )
    handle.retrieve_checkout_session = AsyncMock(
        return_value={"id": "cs_test_123", "object": "checkout.session", "status": "complete"}
    )
    handle.list_subscriptions = AsyncMock(return_value=page(make_subscription()))
    handle.retrieve_subscription = AsyncMock(return_value=make_subscription())
    handle.modify_subscription = AsyncMock(
        return_value=make_subscription(cancel_at_period_end=True)
    )
    handle.list_invoices = AsyncMock(return_value=page(make_invoice()))
    handle.list_charges = AsyncMock(return_value=page())
    handle.list_credit_notes = AsyncMock(return_value=page())
    return handle


@pytest.fixture
def loader(stripe_handle: MagicMock) -> AsyncMock:
    """Handle loader that succeeds on the first attempt."""
    return AsyncMock(return_value=stripe_handle)


@pytest.fixture
def sleep() -> AsyncMock:
    """Recorded backoff sleep that returns immediately."""
    return AsyncMock()


@pytest.fixture
def initializer(
    validator: StripeConfigValidator,
    analytics: AnalyticsTracker,
    loader: AsyncMock,
    sleep: AsyncMock,
) -> StripeClientInitializer:
    return StripeClientInitializer(validator, analytics, loader, sleep=sleep)


# ============================================================================
# Notification and Webhook Fixtures
# ============================================================================


@pytest.fixture
def email_sender() -> LogEmailSender:
    """Sender that records messages instead of delivering them."""
    return LogEmailSender()


@pytest.fixture
def notifications(email_sender: LogEmailSender) -> NotificationService:
    return NotificationService(email_sender)


@pytest.fixture
def webhook_handler(
    initializer: StripeClientInitializer, notifications: NotificationService
) -> StripeWebhookHandler:
    return StripeWebhookHandler(
        initializer, notifications, ProcessedEventStore(), WEBHOOK_SECRET
    )


def sign_payload(
    payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None
) -> str:
    """Build a Stripe-Signature header for a raw payload."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode()
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture
def make_event() -> Callable[..., bytes]:
    """Factory for raw Stripe event payloads."""

    def _make(
        event_type: str, obj: dict[str, Any] | None = None, event_id: str = "evt_123"
    ) -> bytes:
        event = {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "api_version": "2024-06-20",
            "created": int(time.time()),
            "livemode": False,
            "data": {"object": obj if obj is not None else make_invoice()},
        }
        return json.dumps(event).encode()

    return _make


# ============================================================================
# FastAPI Test Client Fixtures
# ============================================================================


@pytest.fixture
def container(
    settings: Settings, loader: AsyncMock, notifications: NotificationService
) -> ServiceContainer:
    """Service container wired to the mocked Stripe handle."""
    return ServiceContainer.build(settings, loader=loader, notifications=notifications)


@pytest.fixture
def app(container: ServiceContainer) -> Iterator[FastAPI]:
    """FastAPI app with the test container installed."""
    from app.api.status_routes import _status_cache
    from app.main import app as main_app

    main_app.state.container = container
    _status_cache.clear()
    yield main_app
    main_app.state.container = None
    _status_cache.clear()


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    """Synchronous test client (runs the lifespan)."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def signer() -> Callable[..., str]:
    """Stripe-Signature header builder."""
    return sign_payload
