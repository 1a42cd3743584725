"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from app.services.stripe_client import stripe_field, stripe_id


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BillingInterval(str, Enum):
    """Plan billing interval."""

    MONTHLY = "monthly"
    YEARLY = "yearly"


# ============================================================================
# Subscription Models
# ============================================================================


class CreateSubscriptionInput(CamelModel):
    """createSubscription input."""

    plan_id: str = Field(..., min_length=1, max_length=255, description="Stripe price ID")
    customer_id: str | None = Field(None, min_length=1, max_length=255)


class CreateSubscriptionOutput(CamelModel):
    """createSubscription output."""

    session_id: str
    url: str | None = None


class SubscriptionSummary(CamelModel):
    """Stable projection of a Stripe subscription."""

    id: str
    status: str | None = None
    customer_id: str | None = None
    price_id: str | None = None
    cancel_at_period_end: bool = False
    current_period_end: int | None = None
    trial_end: int | None = None

    @classmethod
    def from_stripe(cls, subscription: Any) -> "SubscriptionSummary":
        items = stripe_field(stripe_field(subscription, "items"), "data") or []
        first_item = items[0] if items else None
        # current_period_end moved from subscription to item in newer API versions
        period_end = stripe_field(subscription, "current_period_end") or stripe_field(
            first_item, "current_period_end"
        )
        return cls(
            id=stripe_field(subscription, "id"),
            status=stripe_field(subscription, "status"),
            customer_id=stripe_id(stripe_field(subscription, "customer")),
            price_id=stripe_id(stripe_field(first_item, "price")),
            cancel_at_period_end=bool(stripe_field(subscription, "cancel_at_period_end", False)),
            current_period_end=period_end,
            trial_end=stripe_field(subscription, "trial_end"),
        )


class SubscriptionStatusInput(CamelModel):
    """getSubscriptionStatus input."""

    session_id: str = Field(..., min_length=1, max_length=255)
    customer_id: str | None = Field(None, min_length=1, max_length=255)


class SubscriptionStatusOutput(CamelModel):
    """getSubscriptionStatus output."""

    status: str | None
    subscription: SubscriptionSummary | None = None


class CancelSubscriptionInput(CamelModel):
    """cancelSubscription input."""

    subscription_id: str = Field(..., min_length=1, max_length=255)


class UpdateSubscriptionInput(CamelModel):
    """updateSubscription input."""

    subscription_id: str = Field(..., min_length=1, max_length=255)
    new_price_id: str = Field(..., min_length=1, max_length=255)


class SubscriptionMutationOutput(CamelModel):
    """cancelSubscription / updateSubscription output."""

    success: bool
    subscription: SubscriptionSummary


# ============================================================================
# Invoice and Report Models
# ============================================================================


class CustomerInput(CamelModel):
    """getInvoices input."""

    customer_id: str = Field(..., min_length=1, max_length=255)


class InvoiceSummary(CamelModel):
    """Stable projection of a Stripe invoice."""

    id: str
    number: str | None = None
    amount: int = Field(..., description="Amount due in minor units")
    status: str | None = None
    due_date: int | None = None
    pdf_url: str | None = None
    hosted_url: str | None = None

    @classmethod
    def from_stripe(cls, invoice: Any) -> "InvoiceSummary":
        return cls(
            id=stripe_field(invoice, "id"),
            number=stripe_field(invoice, "number"),
            amount=stripe_field(invoice, "amount_due") or 0,
            status=stripe_field(invoice, "status"),
            due_date=stripe_field(invoice, "due_date"),
            pdf_url=stripe_field(invoice, "invoice_pdf"),
            hosted_url=stripe_field(invoice, "hosted_invoice_url"),
        )


class InvoiceListOutput(CamelModel):
    """getInvoices output."""

    invoices: list[InvoiceSummary]


class ChargeSummary(CamelModel):
    """Stable projection of a Stripe charge."""

    id: str
    amount: int
    amount_refunded: int = 0
    status: str | None = None
    created: int | None = None

    @property
    def net_amount(self) -> int:
        """Amount kept after refunds."""
        return self.amount - self.amount_refunded

    @classmethod
    def from_stripe(cls, charge: Any) -> "ChargeSummary":
        return cls(
            id=stripe_field(charge, "id"),
            amount=stripe_field(charge, "amount") or 0,
            amount_refunded=stripe_field(charge, "amount_refunded") or 0,
            status=stripe_field(charge, "status"),
            created=stripe_field(charge, "created"),
        )


class CreditNoteSummary(CamelModel):
    """Stable projection of a Stripe credit note."""

    id: str
    number: str | None = None
    amount: int
    status: str | None = None
    created: int | None = None

    @classmethod
    def from_stripe(cls, credit_note: Any) -> "CreditNoteSummary":
        return cls(
            id=stripe_field(credit_note, "id"),
            number=stripe_field(credit_note, "number"),
            amount=stripe_field(credit_note, "amount") or 0,
            status=stripe_field(credit_note, "status"),
            created=stripe_field(credit_note, "created"),
        )


class FinancialReportInput(CamelModel):
    """getFinancialReport input. Naive datetimes are taken as UTC."""

    customer_id: str = Field(..., min_length=1, max_length=255)
    start_date: datetime
    end_date: datetime

    @field_validator("start_date", "end_date")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @model_validator(mode="after")
    def check_window(self) -> "FinancialReportInput":
        if self.end_date < self.start_date:
            raise ValueError("endDate must not be before startDate")
        return self

    @property
    def created_window(self) -> dict[str, int]:
        """Stripe `created` range filter in unix seconds."""
        return {
            "gte": int(self.start_date.timestamp()),
            "lte": int(self.end_date.timestamp()),
        }


class FinancialReportOutput(CamelModel):
    """getFinancialReport output. Totals are in minor units."""

    total_billed: int
    total_paid: int
    total_credits: int
    invoices: list[InvoiceSummary]
    charges: list[ChargeSummary]
    credits: list[CreditNoteSummary]


# ============================================================================
# Analytics, Plans and Config Models
# ============================================================================


class TrackEventInput(CamelModel):
    """trackEvent input."""

    event_name: str = Field(..., min_length=1, max_length=100)
    properties: dict[str, Any] = Field(default_factory=dict)


class SuccessOutput(CamelModel):
    """Generic acknowledgement."""

    success: bool = True


class PlanOutput(CamelModel):
    """One subscription plan with its Stripe price IDs."""

    tier: str
    name: str
    monthly_price: int
    yearly_price: int
    monthly_price_id: str
    yearly_price_id: str
    formatted_monthly_price: str
    formatted_yearly_price: str
    features: list[str]


class PlanListOutput(CamelModel):
    """listPlans output."""

    plans: list[PlanOutput]


class StripeConfigOutput(CamelModel):
    """getStripeConfig output - what the browser needs to load Stripe.js."""

    publishable_key: str
    test_mode: bool


# ============================================================================
# Misc Models
# ============================================================================


class WebhookAck(BaseModel):
    """Webhook acknowledgement body."""

    received: bool = True


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str
    stripe_initialized: bool
    timestamp: str
