"""Telephony Provider Integration Module.

Provides masked calls and SMS through external vendors.

Supported providers:
- exotel: Native number masking (India)
- twilio: Global, TwiML bridge and signed status webhooks
"""

from vehicle_relay.integrations.telephony.base import (
    Channel,
    DeliveryStatus,
    ProviderFailure,
    ProviderHealth,
    ProviderId,
    ProviderInfo,
    ProviderResult,
    TelephonyProvider,
    WebhookEvent,
)

__all__ = [
    "Channel",
    "DeliveryStatus",
    "ProviderFailure",
    "ProviderHealth",
    "ProviderId",
    "ProviderInfo",
    "ProviderResult",
    "TelephonyProvider",
    "WebhookEvent",
]
