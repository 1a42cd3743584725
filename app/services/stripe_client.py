"""
Stripe Client Handle - the initialized, verified Stripe client.

NO DICTIONARIES at the boundary - callers get Stripe objects and project them
into typed models. The handle is bound to one secret key and passes it per
request, so the global stripe.api_key is never mutated.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import stripe
from structlog import get_logger

from app.config import Settings
from app.observability.metrics import track_stripe_call

logger = get_logger(__name__)


def stripe_field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from a Stripe object, expanded or plain mapping."""
    if obj is None:
        return default
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def stripe_id(obj: Any) -> str | None:
    """Return the id of an expandable field (either an id string or an object)."""
    if obj is None or isinstance(obj, str):
        return obj
    value = stripe_field(obj, "id")
    return str(value) if value is not None else None


@dataclass
class StripeHandle:
    """
    Stripe client bound to a secret key.

    Exposes exactly the provider calls the billing pipeline uses. Stripe SDK
    errors (stripe.StripeError) propagate; services translate them.
    """

    secret_key: str = field(repr=False)
    publishable_key: str
    loaded_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def livemode(self) -> bool:
        return self.secret_key.startswith("sk_live_")

    async def ping(self) -> None:
        """Verify the secret key against the Stripe API."""
        with track_stripe_call("balance.retrieve"):
            await stripe.Balance.retrieve_async(api_key=self.secret_key)

    async def create_customer(self, metadata: dict[str, str]) -> Any:
        with track_stripe_call("customers.create"):
            return await stripe.Customer.create_async(api_key=self.secret_key, metadata=metadata)

    async def retrieve_customer(self, customer_id: str) -> Any:
        with track_stripe_call("customers.retrieve"):
            return await stripe.Customer.retrieve_async(customer_id, api_key=self.secret_key)

    async def create_checkout_session(self, **params: Any) -> Any:
        with track_stripe_call("checkout.sessions.create"):
            return await stripe.checkout.Session.create_async(api_key=self.secret_key, **params)

    async def retrieve_checkout_session(self, session_id: str) -> Any:
        with track_stripe_call("checkout.sessions.retrieve"):
            return await stripe.checkout.Session.retrieve_async(
                session_id, api_key=self.secret_key
            )

    async def list_subscriptions(self, **params: Any) -> Any:
        with track_stripe_call("subscriptions.list"):
            return await stripe.Subscription.list_async(api_key=self.secret_key, **params)

    async def retrieve_subscription(self, subscription_id: str) -> Any:
        with track_stripe_call("subscriptions.retrieve"):
            return await stripe.Subscription.retrieve_async(
                subscription_id, api_key=self.secret_key
            )

    async def modify_subscription(self, subscription_id: str, **params: Any) -> Any:
        with track_stripe_call("subscriptions.update"):
            return await stripe.Subscription.modify_async(
                subscription_id, api_key=self.secret_key, **params
            )

    async def list_invoices(self, **params: Any) -> Any:
        with track_stripe_call("invoices.list"):
            return await stripe.Invoice.list_async(api_key=self.secret_key, **params)

    async def list_charges(self, **params: Any) -> Any:
        with track_stripe_call("charges.list"):
            return await stripe.Charge.list_async(api_key=self.secret_key, **params)

    async def list_credit_notes(self, **params: Any) -> Any:
        with track_stripe_call("credit_notes.list"):
            return await stripe.CreditNote.list_async(api_key=self.secret_key, **params)


async def load_stripe_handle(settings: Settings) -> StripeHandle:
    """
    Load a Stripe handle and verify it with a live API call.

    Raises:
        stripe.StripeError: If the key is rejected or Stripe is unreachable
    """
    handle = StripeHandle(
        secret_key=settings.stripe_secret_key,
        publishable_key=settings.resolved_publishable_key,
    )
    await handle.ping()
    logger.info("stripe_handle_loaded", livemode=handle.livemode)
    return handle
