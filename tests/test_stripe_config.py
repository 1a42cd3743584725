"""
Tests for StripeConfigValidator.

Every missing or malformed secret is reported in a single pass.
"""

import pytest

from app.config import TEST_PUBLISHABLE_KEY, Settings
from app.services.analytics import AnalyticsTracker
from app.services.stripe_config import REQUIRED_SECRETS, StripeConfigValidator

VALID = {
    "stripe_publishable_key": "pk_test_abc",
    "stripe_secret_key": "sk_test_abc",
    "stripe_webhook_secret": "whsec_abc",
}


def make_validator(analytics: AnalyticsTracker, **overrides: str) -> StripeConfigValidator:
    values = {**VALID, **overrides}
    return StripeConfigValidator(Settings(_env_file=None, **values), analytics)


class TestValidation:
    """Tests for validate()."""

    def test_all_present_is_valid(self, analytics: AnalyticsTracker):
        """Well-formed secrets produce no errors."""
        result = make_validator(analytics).validate()

        assert result.valid is True
        assert result.errors == []

    @pytest.mark.parametrize(
        "missing",
        [
            [],
            ["stripe_secret_key"],
            ["stripe_publishable_key", "stripe_webhook_secret"],
            ["stripe_publishable_key", "stripe_secret_key", "stripe_webhook_secret"],
        ],
    )
    def test_reports_one_error_per_missing_secret(
        self, analytics: AnalyticsTracker, missing: list[str]
    ):
        """Errors list has exactly one entry per missing secret."""
        result = make_validator(analytics, **{name: "" for name in missing}).validate()

        assert len(result.errors) == len(missing)
        assert result.valid is (not missing)

    def test_missing_error_names_environment_variable(self, analytics: AnalyticsTracker):
        """Missing secrets are reported by environment variable name."""
        result = make_validator(analytics, stripe_secret_key="").validate()

        assert result.errors == ["Missing required environment variable: STRIPE_SECRET_KEY"]

    @pytest.mark.parametrize("secret", REQUIRED_SECRETS, ids=lambda s: s.env_var)
    def test_wrong_prefix_is_invalid_format(self, analytics: AnalyticsTracker, secret):
        """A value without its role prefix is rejected."""
        result = make_validator(analytics, **{secret.attribute: "rk_wrong_prefix"}).validate()

        assert result.errors == [f"Invalid format for {secret.env_var}"]

    def test_secret_key_in_publishable_slot_rejected(self, analytics: AnalyticsTracker):
        """Swapped keys are caught by prefix checks."""
        result = make_validator(
            analytics, stripe_publishable_key="sk_test_abc", stripe_secret_key="pk_test_abc"
        ).validate()

        assert result.errors == [
            "Invalid format for STRIPE_PUBLISHABLE_KEY",
            "Invalid format for STRIPE_SECRET_KEY",
        ]

    def test_missing_publishable_key_adds_warning(self, analytics: AnalyticsTracker):
        """Missing publishable key also warns about test mode."""
        result = make_validator(analytics, stripe_publishable_key="").validate()

        assert len(result.warnings) == 1
        assert "test mode" in result.warnings[0]


class TestValidationAnalytics:
    """Tests for the validation analytics event."""

    def test_tracks_outcome(self, analytics: AnalyticsTracker):
        """Each validation records valid and error_count."""
        make_validator(analytics, stripe_secret_key="", stripe_webhook_secret="").validate()

        events = analytics.events_named("stripe_config_validation")
        assert len(events) == 1
        assert events[0].properties == {"valid": False, "error_count": 2}


class TestPublishableKeyFallback:
    """Tests for Settings publishable key resolution."""

    def test_configured_key_is_used(self):
        """A configured key is returned unchanged."""
        settings = Settings(_env_file=None, stripe_publishable_key="pk_live_real")

        assert settings.resolved_publishable_key == "pk_live_real"
        assert settings.is_test_mode is False

    def test_missing_key_falls_back_to_test_key(self):
        """Without a key the labelled test key is used."""
        settings = Settings(_env_file=None, stripe_publishable_key="")

        assert settings.resolved_publishable_key == TEST_PUBLISHABLE_KEY
        assert settings.is_test_mode is True

    def test_vite_alias_is_accepted(self, monkeypatch: pytest.MonkeyPatch):
        """VITE_STRIPE_PUBLIC_KEY populates the publishable key."""
        monkeypatch.delenv("STRIPE_PUBLISHABLE_KEY", raising=False)
        monkeypatch.setenv("VITE_STRIPE_PUBLIC_KEY", "pk_test_from_vite")

        assert Settings(_env_file=None).stripe_publishable_key == "pk_test_from_vite"
