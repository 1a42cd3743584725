"""
Stripe Configuration Validator.

Checks that every Stripe secret is present and carries the prefix of its
role. All problems are reported in one pass.
"""

from dataclasses import dataclass, field

from structlog import get_logger

from app.config import Settings
from app.services.analytics import AnalyticsTracker

logger = get_logger(__name__)


@dataclass(frozen=True)
class RequiredSecret:
    """A required Stripe secret and the prefix its value must carry."""

    env_var: str
    attribute: str
    prefix: str


REQUIRED_SECRETS: tuple[RequiredSecret, ...] = (
    RequiredSecret("STRIPE_PUBLISHABLE_KEY", "stripe_publishable_key", "pk_"),
    RequiredSecret("STRIPE_SECRET_KEY", "stripe_secret_key", "sk_"),
    RequiredSecret("STRIPE_WEBHOOK_SECRET", "stripe_webhook_secret", "whsec_"),
)


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a configuration check."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class StripeConfigValidator:
    """Validates Stripe configuration. Never raises."""

    def __init__(self, settings: Settings, analytics: AnalyticsTracker) -> None:
        self.settings = settings
        self.analytics = analytics

    def validate(self) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []

        for secret in REQUIRED_SECRETS:
            value: str = getattr(self.settings, secret.attribute) or ""
            if not value:
                errors.append(f"Missing required environment variable: {secret.env_var}")
            elif not value.startswith(secret.prefix):
                errors.append(f"Invalid format for {secret.env_var}")

        if not self.settings.stripe_publishable_key:
            # The browser can still run against the labelled test key.
            warnings.append("Stripe publishable key not found - running in test mode")

        valid = not errors
        self.analytics.track_event(
            "stripe_config_validation",
            valid=valid,
            error_count=len(errors),
        )

        if valid:
            logger.info("stripe_config_valid", warnings=len(warnings))
        else:
            logger.warning("stripe_config_invalid", errors=errors)

        return ValidationResult(valid=valid, errors=errors, warnings=warnings)
