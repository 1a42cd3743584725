"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""


class BillingError(Exception):
    """Base exception for all billing errors."""

    pass


class ConfigurationError(BillingError):
    """Raised when Stripe configuration is missing or malformed. Never retried."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__(f"Stripe configuration invalid: {', '.join(self.errors)}")


class InitializationError(BillingError):
    """Raised when the Stripe client could not be loaded after all retries."""

    def __init__(self, attempts: int, reason: str) -> None:
        self.attempts = attempts
        self.reason = reason
        super().__init__(f"Failed to initialize Stripe after {attempts} attempts: {reason}")


class PaymentProviderError(BillingError):
    """Raised when a payment provider operation fails.

    The message is safe to show to callers; provider details stay in the
    chained exception and the logs.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class SubscriptionCreationError(PaymentProviderError):
    """Raised when a checkout session for a new subscription cannot be created."""

    def __init__(self, message: str = "Failed to create subscription session") -> None:
        super().__init__(message)


class InvalidReportRequestError(BillingError):
    """Raised when financial report arguments are invalid, e.g. a reversed window."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidSignatureError(BillingError):
    """Raised when webhook signature verification fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotificationError(BillingError):
    """Raised when a notification email could not be delivered."""

    def __init__(self, template: str, message: str) -> None:
        self.template = template
        self.message = message
        super().__init__(f"Failed to send {template} email: {message}")
