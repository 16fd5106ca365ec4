"""Scripted test doubles for provider adapters and sleeps."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any
from unittest.mock import MagicMock

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

OK = "ok"

QUOTA_FAILURE = ProviderFailure(message="Too many requests", status_code=429, code="20429")
AUTH_FAILURE = ProviderFailure(message="Authentication Error", status_code=401, code="20003")
SERVER_FAILURE = ProviderFailure(message="Service Unavailable", status_code=503)
INVALID_NUMBER_FAILURE = ProviderFailure(message="Invalid 'To' phone number", status_code=400, code="21211")


class FakeProvider(TelephonyProvider):
    """Adapter that replays a script of outcomes.

    Each request consumes the next script step: ``OK``, a
    ``ProviderFailure`` (returned as a failed result) or an exception
    (raised). Once the script runs out, ``default`` is used.
    """

    service_name = "Fake"

    def __init__(
        self,
        provider_id: ProviderId,
        script: list[Any] | None = None,
        default: Any = OK,
        healthy: bool = True,
        delay: float = 0.0,
    ) -> None:
        self.provider_id = provider_id
        self.script = list(script or [])
        self.default = default
        self.healthy = healthy
        self.delay = delay
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    @property
    def is_configured(self) -> bool:
        return True

    def requests(self, channel: Channel) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["channel"] is channel]

    async def _next(self, channel: Channel) -> ProviderResult:
        if self.delay:
            await asyncio.sleep(self.delay)
        step = self.script.pop(0) if self.script else self.default
        if isinstance(step, BaseException):
            raise step
        if isinstance(step, ProviderFailure):
            return self.failed_result(channel, step)
        return ProviderResult(
            success=True,
            provider=self.provider_id,
            channel=channel,
            provider_ref_id=f"{self.provider_id.value}-{len(self.calls)}",
            provider_status="queued",
            status=DeliveryStatus.QUEUED,
        )

    async def initiate_masked_call(
        self,
        caller_number: str,
        callee_number: str,
        status_callback_url: str | None = None,
    ) -> ProviderResult:
        self.calls.append({
            "channel": Channel.CALL,
            "caller": caller_number,
            "callee": callee_number,
            "callback": status_callback_url,
        })
        return await self._next(Channel.CALL)

    async def send_sms(
        self,
        to_number: str,
        body: str,
        status_callback_url: str | None = None,
    ) -> ProviderResult:
        self.calls.append({
            "channel": Channel.SMS,
            "to": to_number,
            "body": body,
            "callback": status_callback_url,
        })
        return await self._next(Channel.SMS)

    def parse_webhook(self, raw_body: str | bytes | Mapping[str, Any]) -> WebhookEvent | None:
        return None

    def validate_signature(
        self,
        payload: str | bytes | Mapping[str, Any],
        signature: str | None,
        url: str | None = None,
    ) -> bool:
        return True

    async def check_health(self) -> ProviderHealth:
        message = "Fake service is healthy" if self.healthy else "Fake service is down"
        return ProviderHealth(self.provider_id, self.healthy, message)

    def get_info(self) -> ProviderInfo:
        return ProviderInfo(
            provider=self.provider_id,
            service_name=self.service_name,
            configured=True,
            masked_number="********0000",
            base_url="https://fake.invalid",
        )

    async def close(self) -> None:
        self.closed = True


class RecordingSleep:
    """Instant ``sleep`` replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def make_response(status_code: int, payload: Any = None) -> MagicMock:
    """Mock httpx response with a JSON body."""
    response = MagicMock()
    response.status_code = status_code
    response.content = b"{}" if payload is not None else b""
    response.json.return_value = payload
    return response
