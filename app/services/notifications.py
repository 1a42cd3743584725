"""
Notification Service - invoice emails for billing webhooks.

Templates live in app/templates as `<name>.subject.txt`, `<name>.txt` and
`<name>.html`, filled with str.format placeholders. Delivery goes through
an EmailSender: SMTP in production, log-only when no SMTP host is set.
"""

import asyncio
import html
import smtplib
import ssl
from email.message import EmailMessage as MIMEEmailMessage
from enum import Enum
from pathlib import Path
from typing import Protocol

from structlog import get_logger

from app.config import Settings
from app.exceptions import NotificationError
from app.models.domain import EmailMessage, InvoiceNotice
from app.observability.metrics import metrics

logger = get_logger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
SMTP_TIMEOUT_SECONDS = 30


class EmailTemplate(str, Enum):
    """Notification email templates."""

    INVOICE_CREATED = "invoice_created"
    PAYMENT_REMINDER = "payment_reminder"
    OVERDUE_NOTICE = "overdue_notice"


def _load(name: str) -> str:
    return (TEMPLATES_DIR / name).read_text(encoding="utf-8")


def render_invoice_email(template: EmailTemplate, to: str, notice: InvoiceNotice) -> EmailMessage:
    """Render one of the invoice templates for a recipient."""
    values = {
        "number": notice.number,
        "due_date": notice.formatted_due_date,
        "amount": notice.formatted_amount,
        "hosted_url": notice.hosted_invoice_url or "",
    }
    escaped = {k: html.escape(v) for k, v in values.items()}

    return EmailMessage(
        to=to,
        subject=_load(f"{template.value}.subject.txt").format(**values).strip(),
        text_body=_load(f"{template.value}.txt").format(**values).strip(),
        html_body=_load(f"{template.value}.html").format(**escaped).strip(),
    )


class EmailSender(Protocol):
    """Outbound email transport."""

    name: str

    async def send(self, message: EmailMessage) -> None:
        """
        Deliver a message.

        Raises:
            Exception: Any transport failure
        """
        ...


class LogEmailSender:
    """Development sender that logs messages instead of sending them."""

    name = "log"

    def __init__(self) -> None:
        self.sent: list[EmailMessage] = []

    async def send(self, message: EmailMessage) -> None:
        self.sent.append(message)
        logger.info("email_logged", to=message.to, subject=message.subject)


class SMTPEmailSender:
    """SMTP sender. The blocking smtplib session runs in a worker thread."""

    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        from_address: str,
        username: str | None = None,
        password: str | None = None,
        use_ssl: bool = False,
    ) -> None:
        self.host = host
        self.port = port
        self.from_address = from_address
        self.username = username
        self.password = password
        self.use_ssl = use_ssl

    def _build_message(self, message: EmailMessage) -> MIMEEmailMessage:
        mime = MIMEEmailMessage()
        mime["From"] = self.from_address
        mime["To"] = message.to
        mime["Subject"] = message.subject
        mime.set_content(message.text_body)
        mime.add_alternative(message.html_body, subtype="html")
        return mime

    def _send_sync(self, message: EmailMessage) -> None:
        mime = self._build_message(message)
        context = ssl.create_default_context()

        if self.use_ssl:
            server: smtplib.SMTP = smtplib.SMTP_SSL(
                self.host, self.port, timeout=SMTP_TIMEOUT_SECONDS, context=context
            )
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=SMTP_TIMEOUT_SECONDS)

        with server:
            if not self.use_ssl:
                server.ehlo()
                if server.has_extn("starttls"):
                    server.starttls(context=context)
                    server.ehlo()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(mime)

    async def send(self, message: EmailMessage) -> None:
        await asyncio.to_thread(self._send_sync, message)


def build_email_sender(settings: Settings) -> EmailSender:
    """Pick the email transport from configuration."""
    if not settings.smtp_host:
        logger.warning("smtp_not_configured_using_log_sender")
        return LogEmailSender()
    return SMTPEmailSender(
        host=settings.smtp_host,
        port=settings.smtp_port,
        from_address=settings.smtp_from,
        username=settings.smtp_user or None,
        password=settings.smtp_pass or None,
        use_ssl=settings.smtp_secure,
    )


class NotificationService:
    """Sends the three invoice notification emails."""

    def __init__(self, sender: EmailSender) -> None:
        self.sender = sender

    async def send_invoice_email(self, to: str, notice: InvoiceNotice) -> None:
        await self._send(EmailTemplate.INVOICE_CREATED, to, notice)

    async def send_payment_reminder(self, to: str, notice: InvoiceNotice) -> None:
        await self._send(EmailTemplate.PAYMENT_REMINDER, to, notice)

    async def send_overdue_notice(self, to: str, notice: InvoiceNotice) -> None:
        await self._send(EmailTemplate.OVERDUE_NOTICE, to, notice)

    async def _send(self, template: EmailTemplate, to: str, notice: InvoiceNotice) -> None:
        message = render_invoice_email(template, to, notice)
        try:
            await self.sender.send(message)
        except Exception as exc:
            metrics.record_email(template.value, success=False)
            logger.error(
                "notification_email_failed",
                template=template.value,
                invoice_id=notice.invoice_id,
                transport=self.sender.name,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise NotificationError(template.value, str(exc)) from exc

        metrics.record_email(template.value, success=True)
        logger.info(
            "notification_email_sent",
            template=template.value,
            invoice_id=notice.invoice_id,
            transport=self.sender.name,
        )
