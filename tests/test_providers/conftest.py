"""Test fixtures for provider adapter tests."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest


@pytest.fixture
def mock_http_client():
    """Mock the adapters' HTTP client."""
    with patch("httpx.AsyncClient") as mock:
        client = MagicMock()
        client.post = AsyncMock()
        client.get = AsyncMock()
        client.aclose = AsyncMock()
        mock.return_value = client
        yield client


@pytest.fixture
def twilio_provider(mock_http_client):
    """TwilioProvider with mocked client."""
    from vehicle_relay.integrations.telephony.twilio import TwilioProvider

    return TwilioProvider(
        account_sid="AC123456789",
        auth_token="test_auth_token",
        phone_number="+14155550199",
        twiml_base_url="https://relay.example.com/",
    )


@pytest.fixture
def exotel_provider(mock_http_client):
    """ExotelProvider with mocked client."""
    from vehicle_relay.integrations.telephony.exotel import ExotelProvider

    return ExotelProvider(
        api_key="key",
        api_token="token",
        sid="relay",
        virtual_number="+918047091234",
    )
