"""Inbound vendor status webhooks.

Verifies the vendor signature, parses the body into a ``WebhookEvent`` and
hands it to the delivery log. Rejected webhooks leave no trace in the log.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from vehicle_relay.core.exceptions import (
    ConfigurationError,
    InvalidSignatureError,
    WebhookParseError,
)
from vehicle_relay.core.logging import get_logger
from vehicle_relay.core.phone import mask_phone
from vehicle_relay.integrations.telephony.base import (
    Channel,
    ProviderId,
    TelephonyProvider,
    WebhookEvent,
)
from vehicle_relay.services.collaborators import DeliveryLog

log = get_logger(__name__)


class WebhookReceiver:
    """Validates and records vendor status callbacks."""

    def __init__(
        self,
        providers: dict[ProviderId, TelephonyProvider],
        delivery_log: DeliveryLog,
        validate_signatures: bool = True,
    ) -> None:
        self.providers = providers
        self.delivery_log = delivery_log
        self.validate_signatures = validate_signatures

    def _provider(self, provider_id: ProviderId | str) -> TelephonyProvider:
        try:
            pid = ProviderId(provider_id)
        except ValueError:
            raise ConfigurationError(f"Unknown provider '{provider_id}'") from None
        provider = self.providers.get(pid)
        if provider is None:
            raise ConfigurationError(f"No adapter registered for provider '{pid.value}'")
        return provider

    async def handle(
        self,
        provider_id: ProviderId | str,
        raw_body: str | bytes | Mapping[str, Any],
        signature: str | None = None,
        url: str = "",
        channel: Channel | None = None,
    ) -> WebhookEvent:
        """Verify, parse and record one webhook.

        Args:
            provider_id: Vendor that sent the webhook
            raw_body: Body as received (form, JSON or already decoded)
            signature: Vendor signature header, if any
            url: Public URL the vendor posted to (part of the signed data)
            channel: Expected channel, when the route implies one

        Raises:
            ConfigurationError: Unknown provider
            InvalidSignatureError: Signature check failed
            WebhookParseError: Body is not a recognised status callback
        """
        provider = self._provider(provider_id)
        pid = provider.provider_id

        if self.validate_signatures and not provider.validate_signature(raw_body, signature, url):
            log.warning("Webhook signature rejected", provider=pid.value, url=url)
            raise InvalidSignatureError(
                "Webhook signature verification failed",
                details={"provider": pid.value},
            )

        event = provider.parse_webhook(raw_body)
        if event is None:
            log.warning("Webhook body rejected", provider=pid.value)
            raise WebhookParseError(
                "Invalid webhook payload",
                details={"provider": pid.value},
            )

        if channel is not None and event.channel is not channel:
            log.warning(
                "Webhook channel mismatch",
                provider=pid.value,
                expected=channel.value,
                received=event.channel.value,
            )
            raise WebhookParseError(
                f"Expected a {channel.value} status callback",
                details={"provider": pid.value, "channel": event.channel.value},
            )

        log.info(
            "Webhook received",
            provider=pid.value,
            channel=event.channel.value,
            provider_ref_id=event.provider_ref_id,
            status=event.status.value,
            to=mask_phone(event.to_number) if event.to_number else None,
        )

        try:
            await self.delivery_log.record_webhook(event)
        except Exception as e:
            log.error(
                "Failed to record webhook event",
                provider=pid.value,
                provider_ref_id=event.provider_ref_id,
                error=str(e),
            )

        return event
