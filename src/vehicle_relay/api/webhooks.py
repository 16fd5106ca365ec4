"""Vendor webhook endpoints.

Status callbacks from call/SMS vendors, and the TwiML document Twilio
fetches to bridge a masked call.

Security:
- Twilio callbacks are verified against X-Twilio-Signature (HMAC-SHA1)
- Exotel callbacks are not signed; they are accepted as-is
- Rejected callbacks return 400/401 and are not recorded
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, Request, Response
from pydantic import BaseModel

from vehicle_relay.core.exceptions import ConfigurationError, ValidationError
from vehicle_relay.core.logging import get_logger
from vehicle_relay.core.phone import is_valid_phone, mask_phone
from vehicle_relay.dependencies import ProvidersDep, SettingsDep, WebhookReceiverDep
from vehicle_relay.integrations.telephony.base import Channel, ProviderId
from vehicle_relay.integrations.telephony.twilio import TwilioProvider

log = get_logger(__name__)

router = APIRouter()

SIGNATURE_HEADERS = ("X-Twilio-Signature", "X-Signature")


class WebhookResponse(BaseModel):
    """Acknowledgement returned to the vendor."""

    success: bool
    provider: str
    channel: str
    provider_ref_id: str
    status: str


# ============================================================================
# Helper Functions
# ============================================================================


def _parse_provider(provider: str) -> ProviderId:
    try:
        return ProviderId(provider.lower())
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown provider '{provider}'") from None


def _parse_channel(channel: str) -> Channel:
    try:
        return Channel(channel.lower())
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown channel '{channel}'") from None


def _signed_url(request: Request, public_base_url: str) -> str:
    """URL the vendor signed.

    Behind a proxy the request URL differs from the public one, so the
    configured public base URL wins when set.
    """
    if not public_base_url:
        return str(request.url)
    url = public_base_url.rstrip("/") + request.url.path
    if request.url.query:
        url += "?" + request.url.query
    return url


def _signature(request: Request) -> str | None:
    for header in SIGNATURE_HEADERS:
        value = request.headers.get(header)
        if value:
            return value
    return None


async def _receive(
    request: Request,
    provider: ProviderId,
    channel: Channel | None,
    receiver: WebhookReceiverDep,
    public_base_url: str,
) -> WebhookResponse:
    raw_body = await request.body()
    event = await receiver.handle(
        provider,
        raw_body,
        signature=_signature(request),
        url=_signed_url(request, public_base_url),
        channel=channel,
    )
    return WebhookResponse(
        success=True,
        provider=event.provider.value,
        channel=event.channel.value,
        provider_ref_id=event.provider_ref_id,
        status=event.status.value,
    )


# ============================================================================
# Status Callbacks
# ============================================================================


@router.post("/webhooks/{provider}/{channel}", response_model=WebhookResponse)
async def handle_channel_webhook(
    provider: str,
    channel: str,
    request: Request,
    receiver: WebhookReceiverDep,
    settings: SettingsDep,
) -> WebhookResponse:
    """Handle a call or SMS status callback.

    This is the status callback URL handed to vendors on dispatch.
    The body must be a status callback for the channel in the path.
    """
    return await _receive(
        request,
        _parse_provider(provider),
        _parse_channel(channel),
        receiver,
        settings.webhooks.public_base_url,
    )


@router.post("/webhooks/{provider}", response_model=WebhookResponse)
async def handle_webhook(
    provider: str,
    request: Request,
    receiver: WebhookReceiverDep,
    settings: SettingsDep,
) -> WebhookResponse:
    """Handle a status callback; the channel is inferred from the body."""
    return await _receive(
        request,
        _parse_provider(provider),
        None,
        receiver,
        settings.webhooks.public_base_url,
    )


# ============================================================================
# TwiML Bridge
# ============================================================================


@router.post("/calls/twilio/twiml")
async def twilio_twiml(
    providers: ProvidersDep,
    to: str | None = Query(default=None),
) -> Response:
    """Serve the TwiML that bridges the answered caller to the owner.

    Twilio requests this URL once the caller picks up; the owner number
    is carried in the ``to`` query parameter.
    """
    if not to or not is_valid_phone(to):
        raise ValidationError("Query parameter 'to' must be an E.164 phone number")

    provider = providers.get(ProviderId.TWILIO)
    if not isinstance(provider, TwilioProvider):
        raise ConfigurationError("Twilio provider is not available")

    log.info("Serving TwiML bridge", to=mask_phone(to))
    return Response(content=provider.generate_twiml(to), media_type="application/xml")
