"""Pytest configuration and fixtures for Vehicle Relay tests."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# Add src and the tests directory (for fakes) to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

# Set test environment
os.environ["RELAY_ENV"] = "test"
os.environ["RELAY_CONFIG_DIR"] = str(Path(__file__).parent.parent / "configs")

from fakes import FakeProvider, RecordingSleep  # noqa: E402

from vehicle_relay.integrations.telephony.base import ProviderId  # noqa: E402
from vehicle_relay.services.collaborators import InMemoryDeliveryLog  # noqa: E402
from vehicle_relay.services.dispatch import DispatchConfig  # noqa: E402


OWNER_PHONE = "+919876543210"
CALLER_PHONE = "+14155550100"


@pytest.fixture
def owner_phone() -> str:
    return OWNER_PHONE


@pytest.fixture
def caller_phone() -> str:
    return CALLER_PHONE


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    """Instant sleep that records backoff delays."""
    return RecordingSleep()


@pytest.fixture
def delivery_log() -> InMemoryDeliveryLog:
    return InMemoryDeliveryLog()


@pytest.fixture
def exotel_fake() -> FakeProvider:
    return FakeProvider(ProviderId.EXOTEL)


@pytest.fixture
def twilio_fake() -> FakeProvider:
    return FakeProvider(ProviderId.TWILIO)


@pytest.fixture
def fake_providers(exotel_fake, twilio_fake) -> dict[ProviderId, FakeProvider]:
    return {ProviderId.EXOTEL: exotel_fake, ProviderId.TWILIO: twilio_fake}


@pytest.fixture
def dispatch_config() -> DispatchConfig:
    """Exotel primary, Twilio fallback, 3 attempts each."""
    return DispatchConfig(
        primary_provider=ProviderId.EXOTEL,
        fallback_provider=ProviderId.TWILIO,
        max_attempts=3,
        base_delay=1.0,
        max_delay=10.0,
        backoff_multiplier=2.0,
        call_timeout=5.0,
    )


@pytest.fixture
def mock_settings(monkeypatch):
    """Settings with both providers configured, patched into get_settings."""
    from vehicle_relay import config
    from vehicle_relay.config import Settings

    settings = Settings(
        environment="test",
        debug=True,
        twilio={
            "account_sid": "AC123456789",
            "auth_token": "test_auth_token",
            "phone_number": "+14155550199",
            "twiml_base_url": "https://relay.example.com",
        },
        exotel={
            "api_key": "key",
            "api_token": "token",
            "sid": "relay",
            "virtual_number": "+918047091234",
        },
        webhooks={"validate_signatures": True, "public_base_url": "https://relay.example.com"},
    )

    config.get_settings.cache_clear()
    monkeypatch.setattr(config, "get_settings", lambda: settings)

    from vehicle_relay import dependencies

    monkeypatch.setattr(dependencies, "get_settings", lambda: settings)
    dependencies.reset_dependencies()
    yield settings
    dependencies.reset_dependencies()
