"""
Tests for invoice notification emails.

Covers template rendering, sender selection and delivery failure handling.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.config import Settings
from app.exceptions import NotificationError
from app.models.domain import EmailMessage, InvoiceNotice
from app.services.notifications import (
    EmailTemplate,
    LogEmailSender,
    NotificationService,
    SMTPEmailSender,
    build_email_sender,
    render_invoice_email,
)


@pytest.fixture
def notice() -> InvoiceNotice:
    return InvoiceNotice(
        invoice_id="in_123",
        number="INV-0042",
        amount_due_minor=19900,
        currency="USD",
        due_date=datetime(2025, 3, 5, tzinfo=UTC),
        hosted_invoice_url="https://invoice.stripe.com/i/in_123",
    )


class TestInvoiceNotice:
    """Tests for the InvoiceNotice domain model."""

    def test_formats_amount_and_date(self, notice: InvoiceNotice):
        assert notice.formatted_amount == "199.00"
        assert notice.formatted_due_date == "March 05, 2025"

    def test_missing_due_date(self, notice: InvoiceNotice):
        notice = InvoiceNotice("in_1", "INV-1", 100, "USD", None, None)

        assert notice.formatted_due_date == "upon receipt"

    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError):
            InvoiceNotice("in_1", "INV-1", -1, "USD", None, None)

    def test_from_stripe_draft_without_number(self, invoice_factory):
        """Draft invoices fall back to the invoice id."""
        invoice = invoice_factory()
        invoice["number"] = None

        notice = InvoiceNotice.from_stripe(invoice)

        assert notice.number == "in_123"
        assert notice.amount_due_minor == 4900
        assert notice.due_date == datetime.fromtimestamp(1735689600, tz=UTC)


class TestRendering:
    """Tests for render_invoice_email()."""

    @pytest.mark.parametrize(
        ("template", "subject"),
        [
            (EmailTemplate.INVOICE_CREATED, "Invoice #INV-0042 from Titan Cloud AI"),
            (EmailTemplate.PAYMENT_REMINDER, "Payment Reminder: Invoice #INV-0042 Due Soon"),
            (EmailTemplate.OVERDUE_NOTICE, "Overdue Payment Notice: Invoice #INV-0042"),
        ],
    )
    def test_subjects(self, notice: InvoiceNotice, template: EmailTemplate, subject: str):
        message = render_invoice_email(template, "a@example.com", notice)

        assert message.subject == subject

    @pytest.mark.parametrize("template", list(EmailTemplate))
    def test_bodies_carry_invoice_details(self, notice: InvoiceNotice, template: EmailTemplate):
        message = render_invoice_email(template, "a@example.com", notice)

        for body in (message.text_body, message.html_body):
            assert "$199.00" in body
            assert "March 05, 2025" in body
            assert "https://invoice.stripe.com/i/in_123" in body

    def test_html_values_are_escaped(self, notice: InvoiceNotice):
        notice = InvoiceNotice("in_1", "<b>1</b>", 100, "USD", None, None)

        message = render_invoice_email(EmailTemplate.INVOICE_CREATED, "a@example.com", notice)

        assert "<b>1</b>" not in message.html_body
        assert "&lt;b&gt;1&lt;/b&gt;" in message.html_body

    def test_invalid_recipient_rejected(self, notice: InvoiceNotice):
        with pytest.raises(ValueError):
            render_invoice_email(EmailTemplate.INVOICE_CREATED, "not-an-address", notice)


class TestSenderSelection:
    """Tests for build_email_sender()."""

    def test_no_host_uses_log_sender(self):
        sender = build_email_sender(Settings(_env_file=None, smtp_host=""))

        assert isinstance(sender, LogEmailSender)

    def test_host_uses_smtp_sender(self):
        sender = build_email_sender(
            Settings(
                _env_file=None,
                smtp_host="smtp.example.com",
                smtp_port=465,
                smtp_secure=True,
                smtp_user="mailer",
                smtp_pass="secret",
            )
        )

        assert isinstance(sender, SMTPEmailSender)
        assert sender.host == "smtp.example.com"
        assert sender.port == 465
        assert sender.use_ssl is True
        assert sender.username == "mailer"


class TestSMTPSender:
    """Tests for SMTPEmailSender with smtplib mocked."""

    @pytest.mark.asyncio
    async def test_starttls_login_and_send(self):
        sender = SMTPEmailSender(
            "smtp.example.com", 587, "billing@example.com", username="u", password="p"
        )
        message = EmailMessage("to@example.com", "Subject", "<p>Hi</p>", "Hi")
        server = MagicMock()
        server.__enter__.return_value = server
        server.has_extn.return_value = True

        with patch("app.services.notifications.smtplib.SMTP", return_value=server) as smtp:
            await sender.send(message)

        smtp.assert_called_once_with("smtp.example.com", 587, timeout=30)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("u", "p")
        sent = server.send_message.call_args.args[0]
        assert sent["To"] == "to@example.com"
        assert sent["From"] == "billing@example.com"
        assert sent["Subject"] == "Subject"


class TestNotificationService:
    """Tests for NotificationService delivery."""

    @pytest.mark.asyncio
    async def test_sends_through_sender(self, notice: InvoiceNotice):
        sender = LogEmailSender()
        service = NotificationService(sender)

        await service.send_payment_reminder("a@example.com", notice)

        assert len(sender.sent) == 1
        assert sender.sent[0].to == "a@example.com"

    @pytest.mark.asyncio
    async def test_transport_failure_raises_notification_error(self, notice: InvoiceNotice):
        sender = MagicMock()
        sender.name = "smtp"
        sender.send = AsyncMock(side_effect=OSError("connection refused"))
        service = NotificationService(sender)

        with pytest.raises(NotificationError) as exc_info:
            await service.send_overdue_notice("a@example.com", notice)

        assert exc_info.value.template == "overdue_notice"
        assert "connection refused" in exc_info.value.message
