"""
Stripe Webhook Handler.

Signature verification is the only hard gate. After it, events are
deduplicated by id and dispatched by type; unknown types are acknowledged.
A redelivery that arrives while the first is still dispatching is reported
as IN_PROGRESS, never as a duplicate, so the route does not acknowledge it.
Failures during dispatch propagate so the route answers 400 and Stripe
redelivers the event.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import stripe
from structlog import get_logger

from app.exceptions import InvalidSignatureError
from app.models.domain import InvoiceNotice
from app.observability.logging import log_context
from app.observability.metrics import metrics
from app.services.event_store import ClaimResult, ProcessedEventStore
from app.services.notifications import NotificationService
from app.services.stripe_client import stripe_field, stripe_id
from app.services.stripe_initializer import StripeClientInitializer

logger = get_logger(__name__)

SUBSCRIPTION_EVENTS = frozenset({"customer.subscription.updated", "customer.subscription.deleted"})


class WebhookOutcome(str, Enum):
    """What happened to a verified webhook event."""

    HANDLED = "handled"  # side effect performed
    LOGGED = "logged"  # known type, log only
    SKIPPED = "skipped"  # known type, nothing to do (e.g. no recipient)
    IGNORED = "ignored"  # unknown type
    DUPLICATE = "duplicate"  # already processed
    IN_PROGRESS = "in_progress"  # another delivery is still dispatching it


@dataclass(frozen=True)
class WebhookResult:
    """Result of handling one webhook delivery."""

    event_id: str
    event_type: str
    outcome: WebhookOutcome


class StripeWebhookHandler:
    """Verifies and dispatches Stripe webhook events."""

    def __init__(
        self,
        initializer: StripeClientInitializer,
        notifications: NotificationService,
        event_store: ProcessedEventStore,
        webhook_secret: str,
    ) -> None:
        self.initializer = initializer
        self.notifications = notifications
        self.event_store = event_store
        self.webhook_secret = webhook_secret

    def verify(self, payload: bytes, signature: str) -> stripe.Event:
        """
        Verify the Stripe-Signature header against the raw body.

        Raises:
            InvalidSignatureError: If the secret is missing, the signature does
                not match or the payload is not a valid event
        """
        if not self.webhook_secret:
            logger.error("stripe_webhook_secret_not_configured")
            raise InvalidSignatureError("Webhook signing secret not configured")
        if not signature:
            raise InvalidSignatureError("Missing Stripe-Signature header")

        try:
            event = stripe.Webhook.construct_event(  # type: ignore[no-untyped-call]
                payload, signature, self.webhook_secret
            )
        except stripe.SignatureVerificationError as exc:
            logger.warning("stripe_webhook_verification_failed", error=str(exc))
            metrics.record_error("InvalidSignatureError", "stripe_webhook")
            raise InvalidSignatureError(str(exc)) from exc
        except ValueError as exc:
            logger.warning("stripe_webhook_invalid_payload", error=str(exc))
            metrics.record_error("InvalidPayload", "stripe_webhook")
            raise InvalidSignatureError("Invalid payload") from exc

        return event

    async def handle(self, payload: bytes, signature: str) -> WebhookResult:
        """Verify, deduplicate and dispatch one delivery."""
        event = self.verify(payload, signature)
        event_id: str = stripe_field(event, "id")
        event_type: str = stripe_field(event, "type")

        with log_context(stripe_event_id=event_id, stripe_event_type=event_type):
            logger.info("stripe_webhook_received")

            claim = self.event_store.claim(event_id)
            if claim is ClaimResult.PROCESSED:
                logger.info("stripe_webhook_duplicate")
                metrics.record_webhook_event(event_type, WebhookOutcome.DUPLICATE.value)
                return WebhookResult(event_id, event_type, WebhookOutcome.DUPLICATE)
            if claim is ClaimResult.IN_PROGRESS:
                logger.info("stripe_webhook_in_progress")
                metrics.record_webhook_event(event_type, WebhookOutcome.IN_PROGRESS.value)
                return WebhookResult(event_id, event_type, WebhookOutcome.IN_PROGRESS)

            obj = stripe_field(stripe_field(event, "data"), "object")
            committed = False
            try:
                outcome = await self.dispatch(event_type, obj)
                self.event_store.commit(event_id)
                committed = True
            except Exception as exc:
                metrics.record_webhook_event(event_type, "failed")
                logger.error(
                    "stripe_webhook_processing_failed",
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                raise
            finally:
                # Also runs on cancellation
                if not committed:
                    self.event_store.release(event_id)

            metrics.record_webhook_event(event_type, outcome.value)
            return WebhookResult(event_id, event_type, outcome)

    async def dispatch(self, event_type: str, obj: Any) -> WebhookOutcome:
        if event_type == "invoice.created":
            return await self._notify(obj, self.notifications.send_invoice_email)
        if event_type == "invoice.payment_failed":
            return await self._notify(obj, self.notifications.send_overdue_notice)
        if event_type == "invoice.upcoming":
            return await self._notify(obj, self.notifications.send_payment_reminder)

        if event_type in SUBSCRIPTION_EVENTS:
            logger.info(
                "stripe_subscription_event",
                subscription_id=stripe_field(obj, "id"),
                status=stripe_field(obj, "status"),
                cancel_at_period_end=stripe_field(obj, "cancel_at_period_end"),
            )
            return WebhookOutcome.LOGGED

        logger.info("stripe_webhook_unhandled")
        return WebhookOutcome.IGNORED

    async def _notify(
        self, invoice: Any, send: Callable[[str, InvoiceNotice], Awaitable[None]]
    ) -> WebhookOutcome:
        email = await self._resolve_customer_email(invoice)
        if email is None:
            logger.warning(
                "stripe_webhook_no_recipient",
                invoice_id=stripe_field(invoice, "id"),
                customer_id=stripe_id(stripe_field(invoice, "customer")),
            )
            return WebhookOutcome.SKIPPED

        await send(email, InvoiceNotice.from_stripe(invoice))
        return WebhookOutcome.HANDLED

    async def _resolve_customer_email(self, invoice: Any) -> str | None:
        customer_id = stripe_id(stripe_field(invoice, "customer"))
        if customer_id:
            handle = await self.initializer.initialize()
            customer = await handle.retrieve_customer(customer_id)
            if not stripe_field(customer, "deleted", False) and stripe_field(customer, "email"):
                return str(stripe_field(customer, "email"))

        fallback = stripe_field(invoice, "customer_email")
        return str(fallback) if fallback else None
