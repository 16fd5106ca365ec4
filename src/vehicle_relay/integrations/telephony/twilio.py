"""Twilio Telephony Provider.

Masked calls use Twilio's TwiML bridge: Twilio dials the caller from our
Twilio number, then fetches TwiML from our server which ``<Dial>``s the
owner with our number as caller ID. Neither party sees the other's number.

API Documentation: https://www.twilio.com/docs/voice/api/call-resource
"""
from __future__ import annotations

import base64
import hashlib
import hmac
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote
from xml.sax.saxutils import escape, quoteattr

import httpx

from vehicle_relay.core.logging import get_logger
from vehicle_relay.core.phone import mask_phone
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
    decode_body,
    failure_from_response,
    parse_duration,
    parse_timestamp,
)
from vehicle_relay.validation.payloads import (
    CallWebhookPayload,
    SmsWebhookPayload,
    TwilioAccountResponse,
    TwilioCallResponse,
    TwilioMessageResponse,
    validate_payload,
)

log = get_logger(__name__)


TWILIO_CALL_STATUS_MAP: dict[str, DeliveryStatus] = {
    "queued": DeliveryStatus.QUEUED,
    "initiated": DeliveryStatus.INITIATED,
    "ringing": DeliveryStatus.RINGING,
    "in-progress": DeliveryStatus.IN_PROGRESS,
    "completed": DeliveryStatus.COMPLETED,
    "busy": DeliveryStatus.BUSY,
    "no-answer": DeliveryStatus.NO_ANSWER,
    "canceled": DeliveryStatus.CANCELED,
    "failed": DeliveryStatus.FAILED,
}

TWILIO_SMS_STATUS_MAP: dict[str, DeliveryStatus] = {
    "accepted": DeliveryStatus.QUEUED,
    "scheduled": DeliveryStatus.QUEUED,
    "queued": DeliveryStatus.QUEUED,
    "sending": DeliveryStatus.SENDING,
    "sent": DeliveryStatus.SENT,
    "delivered": DeliveryStatus.DELIVERED,
    "read": DeliveryStatus.DELIVERED,
    "undelivered": DeliveryStatus.UNDELIVERED,
    "failed": DeliveryStatus.FAILED,
    "canceled": DeliveryStatus.CANCELED,
}

TWIML_PATH = "/api/v1/calls/twilio/twiml"


class TwilioProvider(TelephonyProvider):
    """Twilio call and SMS adapter.

    Attributes:
        account_sid: Twilio Account SID
        auth_token: Twilio Auth Token (also the webhook signing key)
        phone_number: Twilio number used as caller ID and SMS sender
        twiml_base_url: Public base URL serving the TwiML bridge
    """

    provider_id = ProviderId.TWILIO
    service_name = "Twilio"
    API_BASE = "https://api.twilio.com/2010-04-01"
    RING_TIMEOUT = 30

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        phone_number: str,
        twiml_base_url: str = "",
        timeout: float = 30.0,
    ):
        """Initialize Twilio provider.

        Args:
            account_sid: Twilio Account SID
            auth_token: Twilio Auth Token
            phone_number: Twilio phone number (E.164 format)
            twiml_base_url: Base URL of this service for TwiML callbacks
            timeout: HTTP request timeout
        """
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.phone_number = phone_number
        self.twiml_base_url = twiml_base_url.rstrip("/")
        self.base_url = f"{self.API_BASE}/Accounts/{account_sid}"

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            auth=httpx.BasicAuth(account_sid, auth_token),
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    @property
    def has_credentials(self) -> bool:
        """Account credentials and sender number are present (enough for SMS)."""
        return bool(self.account_sid and self.auth_token and self.phone_number)

    @property
    def has_twiml_base_url(self) -> bool:
        """Masked calls need an absolute URL Twilio can fetch TwiML from."""
        return self.twiml_base_url.startswith(("https://", "http://"))

    @property
    def is_configured(self) -> bool:
        return self.has_credentials and self.has_twiml_base_url

    def twiml_url(self, owner_number: str) -> str:
        """URL Twilio fetches to learn whom to bridge the caller to."""
        return f"{self.twiml_base_url}{TWIML_PATH}?to={quote(owner_number, safe='')}"

    def generate_twiml(self, owner_number: str) -> str:
        """Build the TwiML document that bridges the caller to the owner."""
        return (
            '<?xml version="1.0" encoding="UTF-8"?>\n'
            "<Response>\n"
            '    <Say voice="alice">Connecting you to the vehicle owner. Please wait.</Say>\n'
            f'    <Dial timeout="{self.RING_TIMEOUT}" callerId={quoteattr(self.phone_number)}>\n'
            f"        <Number>{escape(owner_number)}</Number>\n"
            "    </Dial>\n"
            '    <Say voice="alice">The call could not be completed. Please try again later.</Say>\n'
            "</Response>"
        )

    async def initiate_masked_call(
        self,
        caller_number: str,
        callee_number: str,
        status_callback_url: str | None = None,
    ) -> ProviderResult:
        """Call the caller, then bridge to the callee via TwiML."""
        if not self.has_credentials:
            return self.failed_result(Channel.CALL, self.unconfigured_failure())
        if not self.has_twiml_base_url:
            log.error("Twilio TwiML base URL not configured", to=mask_phone(caller_number))
            return self.failed_result(
                Channel.CALL,
                ProviderFailure(message="Twilio configuration incomplete: TwiML base URL not set"),
            )

        data = {
            "From": self.phone_number,
            "To": caller_number,
            "Url": self.twiml_url(callee_number),
            "Method": "POST",
            "Timeout": str(self.RING_TIMEOUT),
        }
        if status_callback_url:
            data["StatusCallback"] = status_callback_url
            data["StatusCallbackMethod"] = "POST"

        return await self._post(Channel.CALL, "/Calls.json", data, caller_number)

    async def send_sms(
        self,
        to_number: str,
        body: str,
        status_callback_url: str | None = None,
    ) -> ProviderResult:
        """Send SMS via Twilio Messages API."""
        if not self.has_credentials:
            return self.failed_result(Channel.SMS, self.unconfigured_failure())

        data = {
            "From": self.phone_number,
            "To": to_number,
            "Body": body,
        }
        if status_callback_url:
            data["StatusCallback"] = status_callback_url

        return await self._post(Channel.SMS, "/Messages.json", data, to_number)

    async def _post(
        self,
        channel: Channel,
        path: str,
        data: dict[str, str],
        to_number: str,
    ) -> ProviderResult:
        try:
            response = await self._client.post(path, data=data)
        except httpx.TimeoutException:
            log.error("Twilio request timeout", channel=channel.value, to=mask_phone(to_number))
            return self.failed_result(
                channel, ProviderFailure(message="Request timeout", timed_out=True)
            )
        except httpx.HTTPError as e:
            log.error(
                "Twilio HTTP error",
                channel=channel.value,
                error=str(e),
                to=mask_phone(to_number),
            )
            return self.failed_result(channel, ProviderFailure(message=str(e)))

        if response.status_code not in (200, 201):
            failure = failure_from_response(response)
            log.error(
                "Twilio request failed",
                channel=channel.value,
                status_code=response.status_code,
                error_code=failure.code,
                error=failure.message,
                to=mask_phone(to_number),
            )
            return self.failed_result(channel, failure)

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if channel is Channel.CALL:
            check = validate_payload(TwilioCallResponse, payload)
            status_map = TWILIO_CALL_STATUS_MAP
        else:
            check = validate_payload(TwilioMessageResponse, payload)
            status_map = TWILIO_SMS_STATUS_MAP

        if not check.is_valid or check.value is None:
            log.error(
                "Unexpected Twilio response",
                channel=channel.value,
                error=check.error,
            )
            return self.failed_result(
                channel,
                ProviderFailure(
                    message="Unexpected response format from Twilio",
                    status_code=response.status_code,
                ),
            )

        sid = check.value.sid
        vendor_status = check.value.status
        log.info(
            "Twilio request accepted",
            channel=channel.value,
            sid=sid,
            status=vendor_status,
            to=mask_phone(to_number),
        )
        return ProviderResult(
            success=True,
            provider=self.provider_id,
            channel=channel,
            provider_ref_id=sid,
            provider_status=vendor_status,
            status=status_map.get(vendor_status, DeliveryStatus.UNKNOWN),
        )

    def parse_webhook(self, raw_body: str | bytes | Mapping[str, Any]) -> WebhookEvent | None:
        """Parse a Twilio call or message status callback.

        Twilio posts form-urlencoded bodies; JSON and pre-parsed mappings
        are accepted too.
        """
        data = decode_body(raw_body)
        if data is None:
            log.warning("Twilio webhook body could not be decoded")
            return None

        if data.get("CallSid"):
            check = validate_payload(CallWebhookPayload, data)
            if not check.is_valid or check.value is None:
                log.warning("Invalid Twilio call webhook", error=check.error)
                return None
            call = check.value
            return WebhookEvent(
                provider=self.provider_id,
                channel=Channel.CALL,
                provider_ref_id=call.CallSid,
                status=TWILIO_CALL_STATUS_MAP.get(call.CallStatus, DeliveryStatus.UNKNOWN),
                raw_status=call.CallStatus,
                duration_seconds=parse_duration(call.CallDuration),
                started_at=parse_timestamp(call.StartTime),
                ended_at=parse_timestamp(call.EndTime),
                from_number=call.From,
                to_number=call.To,
            )

        check_sms = validate_payload(SmsWebhookPayload, data)
        if not check_sms.is_valid or check_sms.value is None:
            log.warning("Invalid Twilio webhook", error=check_sms.error)
            return None
        sms = check_sms.value
        return WebhookEvent(
            provider=self.provider_id,
            channel=Channel.SMS,
            provider_ref_id=sms.MessageSid,
            status=TWILIO_SMS_STATUS_MAP.get(sms.MessageStatus, DeliveryStatus.UNKNOWN),
            raw_status=sms.MessageStatus,
            from_number=sms.From,
            to_number=sms.To,
            error_code=sms.ErrorCode,
        )

    def compute_signature(
        self,
        payload: str | bytes | Mapping[str, Any],
        url: str | None = None,
    ) -> str:
        """Compute the X-Twilio-Signature value for a request.

        Signature calculation:
        1. Take the full URL of the request
        2. Sort POST parameters alphabetically and append name+value
        3. HMAC-SHA1 of the result using the Auth Token as key
        4. Base64 encode the result

        Bodies that are not form parameters are appended verbatim.
        """
        data = url or ""
        params = decode_body(payload)
        if params is not None and not _looks_like_json(payload):
            for key, value in sorted(params.items()):
                data += str(key) + str(value)
        elif isinstance(payload, bytes):
            data += payload.decode("utf-8", errors="replace")
        elif isinstance(payload, str):
            data += payload

        return base64.b64encode(
            hmac.new(
                self.auth_token.encode("utf-8"),
                data.encode("utf-8"),
                hashlib.sha1,
            ).digest()
        ).decode("utf-8")

    def validate_signature(
        self,
        payload: str | bytes | Mapping[str, Any],
        signature: str | None,
        url: str | None = None,
    ) -> bool:
        """Validate a Twilio webhook signature.

        Accepts the bare base64 digest or a ``sha1=`` prefixed form.
        """
        if not self.auth_token:
            log.warning("Twilio auth token not configured, rejecting webhook")
            return False
        if not signature:
            return False

        if signature.startswith("sha1="):
            signature = signature[len("sha1="):]

        expected = self.compute_signature(payload, url)
        return hmac.compare_digest(expected, signature)

    async def check_health(self) -> ProviderHealth:
        """Fetch the account resource as a connectivity probe."""
        if not self.has_credentials:
            return ProviderHealth(
                provider=self.provider_id,
                healthy=False,
                message="Twilio configuration incomplete",
            )
        if not self.has_twiml_base_url:
            return ProviderHealth(
                provider=self.provider_id,
                healthy=False,
                message="Twilio configuration incomplete: TwiML base URL not set",
            )

        try:
            response = await self._client.get(f"{self.base_url}.json")
        except httpx.HTTPError as e:
            return ProviderHealth(
                provider=self.provider_id,
                healthy=False,
                message=str(e) or "Twilio service health check failed",
            )

        if response.status_code != 200:
            return ProviderHealth(
                provider=self.provider_id,
                healthy=False,
                message=f"Twilio API returned status {response.status_code}",
            )

        try:
            payload = response.json()
        except ValueError:
            payload = None
        if not validate_payload(TwilioAccountResponse, payload).is_valid:
            return ProviderHealth(
                provider=self.provider_id,
                healthy=False,
                message="Twilio API returned an unexpected account payload",
            )

        return ProviderHealth(
            provider=self.provider_id,
            healthy=True,
            message="Twilio service is healthy",
        )

    def get_info(self) -> ProviderInfo:
        return ProviderInfo(
            provider=self.provider_id,
            service_name=self.service_name,
            configured=self.is_configured,
            masked_number=mask_phone(self.phone_number) if self.phone_number else None,
            base_url=self.base_url,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()


def _looks_like_json(payload: str | bytes | Mapping[str, Any]) -> bool:
    if isinstance(payload, bytes):
        return payload.lstrip().startswith(b"{")
    if isinstance(payload, str):
        return payload.lstrip().startswith("{")
    return False
