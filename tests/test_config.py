"""Tests for configuration loading and validation."""

from __future__ import annotations

import pytest

from vehicle_relay import config
from vehicle_relay.config import Settings, validate_production_settings
from vehicle_relay.core.exceptions import ConfigurationError
from vehicle_relay.integrations.telephony.base import ProviderId


class TestSettings:
    def test_defaults(self):
        settings = Settings()

        assert settings.dispatch.primary_provider is ProviderId.EXOTEL
        assert settings.dispatch.fallback_provider is ProviderId.TWILIO
        assert settings.dispatch.retry.max_attempts == 3
        assert settings.alerts.retry.base_delay == 2.0
        assert settings.alerts.retry.max_delay == 30.0
        assert settings.webhooks.validate_signatures is True

    @pytest.mark.parametrize("value", ["none", "", "None"])
    def test_fallback_can_be_disabled(self, value):
        settings = Settings(dispatch={"fallback_provider": value})
        assert settings.dispatch.fallback_provider is None

    def test_admin_emails_split(self):
        settings = Settings(admin={"notification_emails": "ops@example.com, oncall@example.com,"})
        assert settings.admin.notification_emails == ["ops@example.com", "oncall@example.com"]

    def test_status_callback_url(self):
        settings = Settings(webhooks={"public_base_url": "https://relay.example.com/"})
        assert (
            settings.status_callback_url(ProviderId.EXOTEL, "sms")
            == "https://relay.example.com/api/v1/webhooks/exotel/sms"
        )
        assert Settings().status_callback_url(ProviderId.EXOTEL, "sms") is None

    def test_nested_env_override(self, monkeypatch):
        monkeypatch.setenv("RELAY_DISPATCH__PRIMARY_PROVIDER", "twilio")
        assert Settings().dispatch.primary_provider is ProviderId.TWILIO


class TestProductionValidation:
    def test_non_production_skipped(self):
        assert validate_production_settings(Settings(environment="development")) == []

    def test_missing_credentials_reported(self):
        errors = validate_production_settings(Settings(environment="production"))

        assert "RELAY_EXOTEL__API_KEY must be set when Exotel is selected" in errors
        assert "RELAY_TWILIO__AUTH_TOKEN must be set when Twilio is selected" in errors
        assert any("TWIML_BASE_URL" in error for error in errors)

    def test_unselected_provider_not_checked(self, monkeypatch):
        settings = Settings(
            environment="production",
            dispatch={"fallback_provider": "none"},
            exotel={"api_key": "k", "api_token": "t", "sid": "s", "virtual_number": "+918047091234"},
        )
        assert validate_production_settings(settings) == []

    def test_twilio_calls_accept_public_base_url(self):
        settings = Settings(
            environment="production",
            dispatch={"primary_provider": "twilio", "fallback_provider": "none"},
            twilio={"account_sid": "AC1", "auth_token": "tok", "phone_number": "+14155550100"},
            webhooks={"public_base_url": "https://relay.example.com"},
        )
        assert validate_production_settings(settings) == []

    def test_admin_email_needs_smtp(self):
        settings = Settings(
            environment="production",
            dispatch={"fallback_provider": "none"},
            exotel={"api_key": "k", "api_token": "t", "sid": "s", "virtual_number": "+918047091234"},
            admin={"notification_emails": ["ops@example.com"]},
        )
        assert validate_production_settings(settings) == [
            "RELAY_ADMIN__SMTP__HOST must be set when admin emails are configured"
        ]

    def test_require_valid_settings_raises(self, monkeypatch):
        monkeypatch.setattr(config, "get_settings", lambda: Settings(environment="production"))

        with pytest.raises(ConfigurationError) as exc_info:
            config.require_valid_settings()

        assert exc_info.value.details["errors"]


class TestGetSettings:
    """Test yaml loading through dynaconf."""

    @pytest.fixture(autouse=True)
    def clear_cache(self):
        config.get_settings.cache_clear()
        yield
        config.get_settings.cache_clear()

    def test_environment_file_overrides_default(self, tmp_path, monkeypatch):
        (tmp_path / "default.yaml").write_text(
            "dispatch:\n  primary_provider: exotel\n  call_timeout: 30.0\n"
        )
        (tmp_path / "staging.yaml").write_text(
            "dispatch:\n  primary_provider: twilio\n  fallback_provider: none\n"
        )
        monkeypatch.setenv("RELAY_CONFIG_DIR", str(tmp_path))
        monkeypatch.setenv("RELAY_ENV", "staging")

        settings = config.get_settings()

        assert settings.environment == "staging"
        assert settings.dispatch.primary_provider is ProviderId.TWILIO
        assert settings.dispatch.fallback_provider is None

    def test_cached(self, tmp_path, monkeypatch):
        monkeypatch.setenv("RELAY_CONFIG_DIR", str(tmp_path))
        assert config.get_settings() is config.get_settings()
