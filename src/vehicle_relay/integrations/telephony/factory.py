"""Telephony Provider Factory.

Builds the provider registry from configuration.

Supported providers:
- exotel: Native number masking via Calls/connect
- twilio: Number masking via TwiML bridge, signed webhooks
"""

from __future__ import annotations

from typing import assert_never

from vehicle_relay.config import Settings
from vehicle_relay.core.exceptions import ConfigurationError
from vehicle_relay.core.logging import get_logger
from vehicle_relay.integrations.telephony.base import ProviderId, TelephonyProvider
from vehicle_relay.integrations.telephony.exotel import ExotelProvider
from vehicle_relay.integrations.telephony.twilio import TwilioProvider

log = get_logger(__name__)

ProviderRegistry = dict[ProviderId, TelephonyProvider]


def create_provider(provider_id: ProviderId, settings: Settings) -> TelephonyProvider:
    """Create one provider adapter.

    Unconfigured providers are still created; they report unhealthy and
    fail every request without touching the network.

    Raises:
        ConfigurationError: If the identity is not a known provider.
    """
    timeout = settings.dispatch.call_timeout

    if provider_id is ProviderId.EXOTEL:
        exotel = settings.exotel
        provider: TelephonyProvider = ExotelProvider(
            api_key=exotel.api_key,
            api_token=exotel.api_token,
            sid=exotel.sid,
            virtual_number=exotel.virtual_number,
            api_host=exotel.api_host,
            timeout=timeout,
        )
    elif provider_id is ProviderId.TWILIO:
        twilio = settings.twilio
        provider = TwilioProvider(
            account_sid=twilio.account_sid,
            auth_token=twilio.auth_token,
            phone_number=twilio.phone_number,
            twiml_base_url=twilio.twiml_base_url or settings.webhooks.public_base_url,
            timeout=timeout,
        )
    else:
        if not isinstance(provider_id, ProviderId):
            raise ConfigurationError(f"Unknown provider '{provider_id}'")
        assert_never(provider_id)

    if not provider.is_configured:
        log.warning("Provider configuration incomplete", provider=provider_id.value)
    else:
        log.info("Provider initialized", provider=provider_id.value)

    return provider


def create_providers(settings: Settings) -> ProviderRegistry:
    """Create an adapter for every known provider."""
    return {provider_id: create_provider(provider_id, settings) for provider_id in ProviderId}


async def close_providers(providers: ProviderRegistry) -> None:
    for provider in providers.values():
        await provider.close()
