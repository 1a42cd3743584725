"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
Stripe secrets are NOT validated here: StripeConfigValidator reports every
problem at once and the client initializer fails closed on them.
"""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from structlog import get_logger

logger = get_logger(__name__)

# Publishable key used when none is configured. Test-mode only.
TEST_PUBLISHABLE_KEY = "pk_test_titan_cloud_fallback_key"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Titan Billing API"
    api_version: str = "0.1.0"
    api_description: str = "Subscription and billing backend for Titan Cloud AI Platform"

    # Public base URL of the web application (checkout redirects)
    app_url: str = Field(
        default="http://localhost:5173",
        validation_alias=AliasChoices("APP_URL", "VITE_APP_URL"),
    )
    cors_origins: str = ""  # Comma-separated; empty = app_url only

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "titan-billing-api"

    # Payment Provider - Stripe
    stripe_publishable_key: str = Field(
        default="",
        validation_alias=AliasChoices("STRIPE_PUBLISHABLE_KEY", "VITE_STRIPE_PUBLIC_KEY"),
    )  # pk_test_... or pk_live_...
    stripe_secret_key: str = ""  # sk_test_... or sk_live_...
    stripe_webhook_secret: str = ""  # whsec_...

    # Stripe client initialization
    stripe_init_max_attempts: int = 3
    stripe_init_base_delay_seconds: float = 1.0
    stripe_health_threshold_ms: int = 2000
    stripe_health_interval_seconds: int = 0  # 0 disables the background monitor

    # Subscriptions
    trial_period_days: int = 14
    invoice_history_limit: int = 24

    # Webhooks
    webhook_event_ttl_seconds: int = 86400

    # Analytics
    analytics_buffer_size: int = 500

    # Outbound email (SMTP). Empty host = log-only delivery.
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_secure: bool = False  # True = implicit TLS, False = STARTTLS when supported
    smtp_user: str = ""
    smtp_pass: str = ""
    smtp_from: str = "Titan Cloud AI <billing@titancloud.ai>"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    @property
    def resolved_publishable_key(self) -> str:
        """Publishable key for the browser, falling back to the test key."""
        if not self.stripe_publishable_key:
            logger.warning("stripe_publishable_key_missing_using_test_mode")
            return TEST_PUBLISHABLE_KEY
        return self.stripe_publishable_key

    @property
    def is_test_mode(self) -> bool:
        """True when running without a configured publishable key or with test keys."""
        return not self.stripe_publishable_key or self.stripe_publishable_key.startswith(
            "pk_test_"
        )

    @property
    def allowed_origins(self) -> list[str]:
        """Origins allowed to make credentialed cross-origin requests."""
        origins = [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        if not origins:
            origins = [self.app_url.rstrip("/")]
        return origins


# Global settings instance
settings = Settings()
