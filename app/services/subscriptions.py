"""
Subscription Service - checkout sessions, subscriptions, invoices, reports.

Stripe is the single source of truth: nothing here keeps a local copy of
billing state, so a failed call leaves nothing to roll back. Every Stripe
error is logged and re-raised as a PaymentProviderError with a safe message.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import stripe
from pydantic import ValidationError
from structlog import get_logger

from app.config import Settings
from app.exceptions import (
    ConfigurationError,
    InitializationError,
    InvalidReportRequestError,
    PaymentProviderError,
    SubscriptionCreationError,
)
from app.models.api import (
    ChargeSummary,
    CreateSubscriptionOutput,
    CreditNoteSummary,
    FinancialReportInput,
    FinancialReportOutput,
    InvoiceListOutput,
    InvoiceSummary,
    SubscriptionMutationOutput,
    SubscriptionStatusOutput,
    SubscriptionSummary,
)
from app.observability.metrics import metrics
from app.observability.tracing import trace_operation
from app.services.stripe_client import StripeHandle, stripe_field
from app.services.stripe_initializer import StripeClientInitializer

logger = get_logger(__name__)

PAYMENT_SYSTEM_UNAVAILABLE = "Payment system unavailable, please try again"
REPORT_PAGE_SIZE = 100


class SubscriptionService:
    """Server-side subscription operations against Stripe."""

    def __init__(self, initializer: StripeClientInitializer, settings: Settings) -> None:
        self.initializer = initializer
        self.settings = settings

    async def _handle(
        self, error_cls: type[PaymentProviderError] = PaymentProviderError
    ) -> StripeHandle:
        try:
            return await self.initializer.initialize()
        except (ConfigurationError, InitializationError) as exc:
            logger.error(
                "stripe_unavailable",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise error_cls(PAYMENT_SYSTEM_UNAVAILABLE) from exc

    def _provider_failure(
        self, operation: str, exc: stripe.StripeError, message: str, **context: Any
    ) -> PaymentProviderError:
        logger.error(
            f"stripe_{operation}_failed",
            error=str(exc),
            error_type=type(exc).__name__,
            **context,
        )
        metrics.record_error(type(exc).__name__, operation)
        return PaymentProviderError(message)

    async def create_subscription(
        self, plan_id: str, customer_id: str | None = None
    ) -> CreateSubscriptionOutput:
        """
        Start a subscription purchase via a hosted checkout session.

        Creates a customer first when none is supplied.

        Raises:
            SubscriptionCreationError: If Stripe is unavailable or rejects the request
        """
        handle = await self._handle(SubscriptionCreationError)
        base_url = self.settings.app_url.rstrip("/")

        try:
            if not customer_id:
                customer = await handle.create_customer(metadata={"planId": plan_id})
                customer_id = stripe_field(customer, "id")
                logger.info("stripe_customer_created", customer_id=customer_id, plan_id=plan_id)

            session = await handle.create_checkout_session(
                customer=customer_id,
                mode="subscription",
                payment_method_types=["card"],
                line_items=[{"price": plan_id, "quantity": 1}],
                subscription_data={
                    "trial_period_days": self.settings.trial_period_days,
                    "metadata": {"planId": plan_id},
                },
                success_url=f"{base_url}/dashboard?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{base_url}/billing",
                automatic_tax={"enabled": True},
                customer_update={"address": "auto", "name": "auto"},
            )
        except stripe.StripeError as exc:
            logger.error(
                "stripe_checkout_session_failed",
                plan_id=plan_id,
                customer_id=customer_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            metrics.record_error(type(exc).__name__, "create_subscription")
            raise SubscriptionCreationError() from exc

        session_id = stripe_field(session, "id")
        logger.info(
            "stripe_checkout_session_created",
            session_id=session_id,
            customer_id=customer_id,
            plan_id=plan_id,
        )
        return CreateSubscriptionOutput(session_id=session_id, url=stripe_field(session, "url"))

    async def get_subscription_status(
        self, session_id: str, customer_id: str | None = None
    ) -> SubscriptionStatusOutput:
        """Read back a checkout session and, optionally, the customer's latest subscription."""
        handle = await self._handle()

        try:
            session = await handle.retrieve_checkout_session(session_id)
            if not customer_id:
                return SubscriptionStatusOutput(status=stripe_field(session, "status"))

            subscriptions = await handle.list_subscriptions(customer=customer_id, limit=1)
        except stripe.StripeError as exc:
            raise self._provider_failure(
                "subscription_status",
                exc,
                "Failed to get subscription status",
                session_id=session_id,
            ) from exc

        data = stripe_field(subscriptions, "data") or []
        return SubscriptionStatusOutput(
            status=stripe_field(session, "status"),
            subscription=SubscriptionSummary.from_stripe(data[0]) if data else None,
        )

    async def get_invoices(self, customer_id: str) -> InvoiceListOutput:
        """List the customer's most recent invoices."""
        handle = await self._handle()

        try:
            invoices = await handle.list_invoices(
                customer=customer_id,
                limit=self.settings.invoice_history_limit,
            )
        except stripe.StripeError as exc:
            raise self._provider_failure(
                "list_invoices", exc, "Failed to retrieve invoices", customer_id=customer_id
            ) from exc

        data = stripe_field(invoices, "data") or []
        return InvoiceListOutput(invoices=[InvoiceSummary.from_stripe(inv) for inv in data])

    async def get_financial_report(
        self, customer_id: str, start_date: datetime, end_date: datetime
    ) -> FinancialReportOutput:
        """
        Aggregate invoices, charges and credit notes created in a date window.

        totalPaid nets refunds out of every charge before summing.
        """
        try:
            window = FinancialReportInput(
                customer_id=customer_id, start_date=start_date, end_date=end_date
            ).created_window
        except ValidationError as exc:
            raise InvalidReportRequestError(
                "; ".join(str(e["msg"]) for e in exc.errors())
            ) from exc
        handle = await self._handle()

        with trace_operation("financial_report", customer_id=customer_id) as span:
            try:
                # First failure cancels the other listings
                async with asyncio.TaskGroup() as tg:
                    invoices_task = tg.create_task(
                        _list_all(handle.list_invoices, customer=customer_id, created=window)
                    )
                    charges_task = tg.create_task(
                        _list_all(handle.list_charges, customer=customer_id, created=window)
                    )
                    credit_notes_task = tg.create_task(
                        _list_all(handle.list_credit_notes, customer=customer_id, created=window)
                    )
            except ExceptionGroup as group:
                provider_errors = group.subgroup(stripe.StripeError)
                if provider_errors is None:
                    raise
                exc = provider_errors.exceptions[0]
                raise self._provider_failure(
                    "financial_report",
                    exc,
                    "Failed to generate financial report",
                    customer_id=customer_id,
                ) from exc

            invoices = invoices_task.result()
            charges = charges_task.result()
            credit_notes = credit_notes_task.result()

            invoice_summaries = [InvoiceSummary.from_stripe(i) for i in invoices]
            charge_summaries = [ChargeSummary.from_stripe(c) for c in charges]
            credit_summaries = [CreditNoteSummary.from_stripe(c) for c in credit_notes]
            span.set_attribute("invoice_count", len(invoice_summaries))
            span.set_attribute("charge_count", len(charge_summaries))
            span.set_attribute("credit_note_count", len(credit_summaries))

        report = FinancialReportOutput(
            total_billed=sum(i.amount for i in invoice_summaries),
            total_paid=sum(c.net_amount for c in charge_summaries),
            total_credits=sum(c.amount for c in credit_summaries),
            invoices=invoice_summaries,
            charges=charge_summaries,
            credits=credit_summaries,
        )
        logger.info(
            "financial_report_generated",
            customer_id=customer_id,
            total_billed=report.total_billed,
            total_paid=report.total_paid,
            total_credits=report.total_credits,
        )
        return report

    async def cancel_subscription(self, subscription_id: str) -> SubscriptionMutationOutput:
        """Cancel at period end; the customer keeps access until then."""
        handle = await self._handle()

        try:
            subscription = await handle.modify_subscription(
                subscription_id, cancel_at_period_end=True
            )
        except stripe.StripeError as exc:
            raise self._provider_failure(
                "cancel_subscription",
                exc,
                "Failed to cancel subscription",
                subscription_id=subscription_id,
            ) from exc

        logger.info("stripe_subscription_cancel_scheduled", subscription_id=subscription_id)
        return SubscriptionMutationOutput(
            success=True, subscription=SubscriptionSummary.from_stripe(subscription)
        )

    async def update_subscription(
        self, subscription_id: str, new_price_id: str
    ) -> SubscriptionMutationOutput:
        """Swap the subscription's price and invoice the proration immediately."""
        handle = await self._handle()

        try:
            subscription = await handle.retrieve_subscription(subscription_id)
            items = stripe_field(stripe_field(subscription, "items"), "data") or []
            if not items:
                logger.error("stripe_subscription_has_no_items", subscription_id=subscription_id)
                raise PaymentProviderError("Failed to update subscription")

            updated = await handle.modify_subscription(
                subscription_id,
                items=[{"id": stripe_field(items[0], "id"), "price": new_price_id}],
                proration_behavior="always_invoice",
            )
        except stripe.StripeError as exc:
            raise self._provider_failure(
                "update_subscription",
                exc,
                "Failed to update subscription",
                subscription_id=subscription_id,
            ) from exc

        logger.info(
            "stripe_subscription_price_updated",
            subscription_id=subscription_id,
            new_price_id=new_price_id,
        )
        return SubscriptionMutationOutput(
            success=True, subscription=SubscriptionSummary.from_stripe(updated)
        )


async def _list_all(list_call: Callable[..., Awaitable[Any]], **params: Any) -> list[Any]:
    """Follow Stripe cursor pagination until the last page."""
    items: list[Any] = []
    params = {"limit": REPORT_PAGE_SIZE, **params}
    while True:
        page = await list_call(**params)
        data = list(stripe_field(page, "data") or [])
        items.extend(data)
        if not data or not stripe_field(page, "has_more", False):
            return items
        params["starting_after"] = stripe_field(data[-1], "id")
