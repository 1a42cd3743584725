"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from app.services.stripe_client import stripe_field


@dataclass(frozen=True)
class InvoiceNotice:
    """The invoice fields a notification email is rendered from."""

    invoice_id: str
    number: str
    amount_due_minor: int
    currency: str
    due_date: datetime | None
    hosted_invoice_url: str | None

    def __post_init__(self) -> None:
        """Validate invoice notice fields."""
        if self.amount_due_minor < 0:
            raise ValueError(f"Amount due cannot be negative: {self.amount_due_minor}")

    @property
    def formatted_amount(self) -> str:
        """Amount in major units with two decimals, e.g. 49.00."""
        return f"{self.amount_due_minor / 100:.2f}"

    @property
    def formatted_due_date(self) -> str:
        """Due date as 'Month DD, YYYY'."""
        if self.due_date is None:
            return "upon receipt"
        return self.due_date.strftime("%B %d, %Y")

    @classmethod
    def from_stripe(cls, invoice: Any) -> "InvoiceNotice":
        due_date = stripe_field(invoice, "due_date")
        return cls(
            invoice_id=stripe_field(invoice, "id") or "",
            # Draft invoices have no number yet
            number=stripe_field(invoice, "number") or stripe_field(invoice, "id") or "upcoming",
            amount_due_minor=stripe_field(invoice, "amount_due") or 0,
            currency=(stripe_field(invoice, "currency") or "usd").upper(),
            due_date=datetime.fromtimestamp(due_date, tz=UTC) if due_date else None,
            hosted_invoice_url=stripe_field(invoice, "hosted_invoice_url"),
        )


@dataclass(frozen=True)
class EmailMessage:
    """A rendered notification email."""

    to: str
    subject: str
    html_body: str
    text_body: str

    def __post_init__(self) -> None:
        """Validate recipient."""
        if "@" not in self.to:
            raise ValueError(f"Invalid recipient address: {self.to}")
