"""Exotel Telephony Provider.

Exotel bridges calls natively: ``Calls/connect`` rings ``From`` first and
then connects ``To``, presenting our virtual number (``CallerId``) to both.

Webhook signatures: Exotel does not sign status callbacks. There is no
verification scheme to implement, so ``validate_signature`` accepts every
request. Deployments should restrict the callback endpoint by network or
put a secret token in the callback URL.

API Documentation: https://developer.exotel.com/api/
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any

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
    ExotelCallResponse,
    ExotelSmsResponse,
    SmsWebhookPayload,
    validate_payload,
)

log = get_logger(__name__)


EXOTEL_CALL_STATUS_MAP: dict[str, DeliveryStatus] = {
    "queued": DeliveryStatus.QUEUED,
    "ringing": DeliveryStatus.RINGING,
    "in-progress": DeliveryStatus.IN_PROGRESS,
    "completed": DeliveryStatus.COMPLETED,
    "busy": DeliveryStatus.BUSY,
    "no-answer": DeliveryStatus.NO_ANSWER,
    "canceled": DeliveryStatus.CANCELED,
    "failed": DeliveryStatus.FAILED,
}

EXOTEL_SMS_STATUS_MAP: dict[str, DeliveryStatus] = {
    "queued": DeliveryStatus.QUEUED,
    "sending": DeliveryStatus.SENDING,
    "submitted": DeliveryStatus.SENDING,
    "sent": DeliveryStatus.SENT,
    "delivered": DeliveryStatus.DELIVERED,
    "undelivered": DeliveryStatus.UNDELIVERED,
    "failed": DeliveryStatus.FAILED,
    "failed-dnd": DeliveryStatus.FAILED,
}


class ExotelProvider(TelephonyProvider):
    """Exotel call and SMS adapter."""

    provider_id = ProviderId.EXOTEL
    service_name = "Exotel"
    CALL_TIME_LIMIT = 3600  # seconds
    RING_TIMEOUT = 30

    def __init__(
        self,
        api_key: str,
        api_token: str,
        sid: str,
        virtual_number: str,
        api_host: str = "api.exotel.com",
        timeout: float = 30.0,
    ):
        self.api_key = api_key
        self.api_token = api_token
        self.sid = sid
        self.virtual_number = virtual_number
        self.base_url = f"https://{api_host}/v1/Accounts/{sid}"

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            auth=httpx.BasicAuth(api_key, api_token),
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_token and self.sid and self.virtual_number)

    async def initiate_masked_call(
        self,
        caller_number: str,
        callee_number: str,
        status_callback_url: str | None = None,
    ) -> ProviderResult:
        if not self.is_configured:
            return self.failed_result(Channel.CALL, self.unconfigured_failure())

        data = {
            "From": caller_number,
            "To": callee_number,
            "CallerId": self.virtual_number,
            "CallType": "trans",
            "TimeLimit": str(self.CALL_TIME_LIMIT),
            "TimeOut": str(self.RING_TIMEOUT),
        }
        if status_callback_url:
            data["StatusCallback"] = status_callback_url

        log.info(
            "Initiating Exotel masked call",
            caller=mask_phone(caller_number),
            owner=mask_phone(callee_number),
        )
        return await self._post(Channel.CALL, "/Calls/connect.json", data, callee_number)

    async def send_sms(
        self,
        to_number: str,
        body: str,
        status_callback_url: str | None = None,
    ) -> ProviderResult:
        if not self.is_configured:
            return self.failed_result(Channel.SMS, self.unconfigured_failure())

        data = {
            "From": self.virtual_number,
            "To": to_number,
            "Body": body,
        }
        if status_callback_url:
            data["StatusCallback"] = status_callback_url

        return await self._post(Channel.SMS, "/Sms/send.json", data, to_number)

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
            log.error("Exotel request timeout", channel=channel.value, to=mask_phone(to_number))
            return self.failed_result(
                channel, ProviderFailure(message="Request timeout", timed_out=True)
            )
        except httpx.HTTPError as e:
            log.error(
                "Exotel HTTP error",
                channel=channel.value,
                error=str(e),
                to=mask_phone(to_number),
            )
            return self.failed_result(channel, ProviderFailure(message=str(e)))

        if response.status_code not in (200, 201):
            failure = failure_from_response(response)
            log.error(
                "Exotel request failed",
                channel=channel.value,
                status_code=response.status_code,
                error=failure.message,
                to=mask_phone(to_number),
            )
            return self.failed_result(channel, failure)

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if channel is Channel.CALL:
            call_check = validate_payload(ExotelCallResponse, payload)
            if call_check.is_valid and call_check.value is not None:
                sid, vendor_status = call_check.value.Call.Sid, call_check.value.Call.Status
            else:
                sid = vendor_status = None
            error = call_check.error
            status_map = EXOTEL_CALL_STATUS_MAP
        else:
            sms_check = validate_payload(ExotelSmsResponse, payload)
            if sms_check.is_valid and sms_check.value is not None:
                sid = sms_check.value.SMSMessage.Sid
                vendor_status = sms_check.value.SMSMessage.Status
            else:
                sid = vendor_status = None
            error = sms_check.error
            status_map = EXOTEL_SMS_STATUS_MAP

        if sid is None or vendor_status is None:
            log.error("Unexpected Exotel response", channel=channel.value, error=error)
            return self.failed_result(
                channel,
                ProviderFailure(
                    message="Unexpected response format from Exotel",
                    status_code=response.status_code,
                ),
            )

        log.info(
            "Exotel request accepted",
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
        """Parse an Exotel call or SMS status callback.

        Exotel posts JSON or form data depending on the applet; both work.
        """
        data = decode_body(raw_body)
        if data is None:
            log.warning("Exotel webhook body could not be decoded")
            return None

        if data.get("CallSid"):
            check = validate_payload(CallWebhookPayload, data)
            if not check.is_valid or check.value is None:
                log.warning("Invalid Exotel call webhook", error=check.error)
                return None
            call = check.value
            raw_status = call.CallStatus.lower()
            return WebhookEvent(
                provider=self.provider_id,
                channel=Channel.CALL,
                provider_ref_id=call.CallSid,
                status=EXOTEL_CALL_STATUS_MAP.get(raw_status, DeliveryStatus.UNKNOWN),
                raw_status=call.CallStatus,
                duration_seconds=parse_duration(call.CallDuration),
                started_at=parse_timestamp(call.StartTime),
                ended_at=parse_timestamp(call.EndTime),
                from_number=call.From,
                to_number=call.To,
            )

        sms_check = validate_payload(SmsWebhookPayload, data)
        if not sms_check.is_valid or sms_check.value is None:
            log.warning("Invalid Exotel webhook", error=sms_check.error)
            return None
        sms = sms_check.value
        return WebhookEvent(
            provider=self.provider_id,
            channel=Channel.SMS,
            provider_ref_id=sms.MessageSid,
            status=EXOTEL_SMS_STATUS_MAP.get(sms.MessageStatus.lower(), DeliveryStatus.UNKNOWN),
            raw_status=sms.MessageStatus,
            from_number=sms.From,
            to_number=sms.To,
            error_code=sms.ErrorCode,
        )

    def validate_signature(
        self,
        payload: str | bytes | Mapping[str, Any],
        signature: str | None,
        url: str | None = None,
    ) -> bool:
        """Always True: Exotel does not sign webhooks.

        Known gap, see module docstring.
        """
        log.debug("Exotel webhook accepted without signature verification")
        return True

    async def check_health(self) -> ProviderHealth:
        if not self.is_configured:
            return ProviderHealth(
                provider=self.provider_id,
                healthy=False,
                message="Exotel configuration incomplete",
            )

        try:
            response = await self._client.get("/")
        except httpx.HTTPError as e:
            return ProviderHealth(
                provider=self.provider_id,
                healthy=False,
                message=str(e) or "Exotel service health check failed",
            )

        if response.status_code == 200:
            return ProviderHealth(
                provider=self.provider_id,
                healthy=True,
                message="Exotel service is healthy",
            )
        return ProviderHealth(
            provider=self.provider_id,
            healthy=False,
            message=f"Exotel API returned status {response.status_code}",
        )

    def get_info(self) -> ProviderInfo:
        return ProviderInfo(
            provider=self.provider_id,
            service_name=self.service_name,
            configured=self.is_configured,
            masked_number=mask_phone(self.virtual_number) if self.virtual_number else None,
            base_url=self.base_url,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
