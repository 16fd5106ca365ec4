"""Application configuration."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from vehicle_relay.integrations.telephony.base import ProviderId


class TwilioSettings(BaseModel):
    """Twilio integration configuration."""

    account_sid: str = ""
    auth_token: str = ""
    phone_number: str = ""
    # Public base URL of this service; Twilio fetches the TwiML bridge from it
    twiml_base_url: str = ""


class ExotelSettings(BaseModel):
    """Exotel integration configuration."""

    api_key: str = ""
    api_token: str = ""
    sid: str = ""
    virtual_number: str = ""
    api_host: str = "api.exotel.com"


class RetrySettings(BaseModel):
    """Retry budget and backoff bounds (seconds)."""

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=10.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)


class DispatchSettings(BaseModel):
    """Provider selection for calls and SMS."""

    primary_provider: ProviderId = ProviderId.EXOTEL
    fallback_provider: ProviderId | None = ProviderId.TWILIO
    # Per-request timeout for a single vendor call
    call_timeout: float = Field(default=30.0, gt=0)
    retry: RetrySettings = Field(default_factory=RetrySettings)

    @field_validator("fallback_provider", mode="before")
    @classmethod
    def _empty_fallback(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().lower() in ("", "none"):
            return None
        return value


def _alert_retry_defaults() -> RetrySettings:
    return RetrySettings(max_attempts=3, base_delay=2.0, max_delay=30.0, backoff_multiplier=2.0)


class AlertSettings(BaseModel):
    """Emergency alert configuration."""

    retry: RetrySettings = Field(default_factory=_alert_retry_defaults)


class QuotaSettings(BaseModel):
    """Provider quota thresholds."""

    calls_per_hour: int = 100
    sms_per_hour: int = 200
    calls_per_day: int = 1000
    sms_per_day: int = 2000


class SMTPSettings(BaseModel):
    """SMTP server for admin notifications."""

    host: str = ""
    port: int = 587
    username: str = ""
    password: str = ""
    use_tls: bool = True
    use_ssl: bool = False
    from_email: str = "relay@localhost"


class AdminSettings(BaseModel):
    """Administrator notification channel."""

    notification_emails: list[str] = []
    smtp: SMTPSettings = Field(default_factory=SMTPSettings)
    # Seconds shutdown waits for in-flight quota notifications
    drain_timeout: float = 10.0

    @field_validator("notification_emails", mode="before")
    @classmethod
    def _split_emails(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [email.strip() for email in value.split(",") if email.strip()]
        return value


class WebhookSettings(BaseModel):
    """Inbound webhook configuration."""

    validate_signatures: bool = True
    # Public base URL of this service, used for status callback URLs
    public_base_url: str = ""


class Settings(BaseSettings):
    """Application settings.

    Loaded from:
    1. Environment variables (RELAY_*)
    2. configs/{environment}.yaml
    3. configs/default.yaml
    """

    model_config = SettingsConfigDict(
        env_prefix="RELAY_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Environment
    environment: str = "development"
    debug: bool = False

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Subsystems
    twilio: TwilioSettings = Field(default_factory=TwilioSettings)
    exotel: ExotelSettings = Field(default_factory=ExotelSettings)
    dispatch: DispatchSettings = Field(default_factory=DispatchSettings)
    alerts: AlertSettings = Field(default_factory=AlertSettings)
    quotas: QuotaSettings = Field(default_factory=QuotaSettings)
    admin: AdminSettings = Field(default_factory=AdminSettings)
    webhooks: WebhookSettings = Field(default_factory=WebhookSettings)

    def status_callback_url(self, provider: ProviderId, channel: str) -> str | None:
        """Status callback URL for a provider/channel, if a public URL is set."""
        base = self.webhooks.public_base_url.rstrip("/")
        if not base:
            return None
        return f"{base}/api/v1/webhooks/{provider.value}/{channel}"


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings object loaded from config files and environment.
    """
    from dynaconf import Dynaconf

    config_dir = Path(os.getenv("RELAY_CONFIG_DIR", "configs"))
    env = os.getenv("RELAY_ENV", "development")

    settings_files = []
    if (config_dir / "default.yaml").exists():
        settings_files.append(str(config_dir / "default.yaml"))
    if (config_dir / f"{env}.yaml").exists():
        settings_files.append(str(config_dir / f"{env}.yaml"))

    dynaconf = Dynaconf(
        envvar_prefix="RELAY",
        settings_files=settings_files,
        load_dotenv=True,
    )

    config_dict: dict[str, Any] = {}
    for key in dynaconf.keys():
        if not key.startswith("_"):
            config_dict[key.lower()] = _lower_keys(dynaconf[key])

    config_dict["environment"] = env

    return Settings(**config_dict)


def _lower_keys(value: Any) -> Any:
    # Dynaconf upper-cases keys read from the environment
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    return value


def validate_production_settings(settings: Settings) -> list[str]:
    """Validate settings for production readiness.

    Args:
        settings: Application settings to validate.

    Returns:
        List of validation error messages (empty if all valid).
    """
    errors: list[str] = []

    if settings.environment not in ("production", "staging", "prod"):
        return errors

    selected = {settings.dispatch.primary_provider}
    if settings.dispatch.fallback_provider is not None:
        selected.add(settings.dispatch.fallback_provider)

    if ProviderId.TWILIO in selected:
        for name in ("account_sid", "auth_token", "phone_number"):
            if not getattr(settings.twilio, name):
                errors.append(f"RELAY_TWILIO__{name.upper()} must be set when Twilio is selected")
        if not (settings.twilio.twiml_base_url or settings.webhooks.public_base_url):
            errors.append(
                "RELAY_TWILIO__TWIML_BASE_URL or RELAY_WEBHOOKS__PUBLIC_BASE_URL"
                " must be set for Twilio masked calls"
            )

    if ProviderId.EXOTEL in selected:
        for name in ("api_key", "api_token", "sid", "virtual_number"):
            if not getattr(settings.exotel, name):
                errors.append(f"RELAY_EXOTEL__{name.upper()} must be set when Exotel is selected")

    if settings.admin.notification_emails and not settings.admin.smtp.host:
        errors.append("RELAY_ADMIN__SMTP__HOST must be set when admin emails are configured")

    return errors


def require_valid_settings() -> Settings:
    """Get settings and raise if production validation fails.

    Raises:
        ConfigurationError: If production settings are invalid.

    Returns:
        Validated settings.
    """
    from vehicle_relay.core.exceptions import ConfigurationError

    settings = get_settings()
    errors = validate_production_settings(settings)
    if errors:
        raise ConfigurationError(
            "Invalid production configuration",
            details={"errors": errors},
        )
    return settings
