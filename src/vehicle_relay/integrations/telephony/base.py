"""Base Telephony Provider Interface.

Defines the abstract interface for call/SMS vendors.
All provider implementations must implement this interface.

Adapters perform exactly one vendor request per call and never retry;
retrying and failover belong to the dispatch service. Vendor failures are
returned as results, not raised.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any
from urllib.parse import parse_qsl

import httpx

from vehicle_relay.core.phone import mask_phone


class ProviderId(str, Enum):
    """Known call/SMS vendors."""

    EXOTEL = "exotel"
    TWILIO = "twilio"


class Channel(str, Enum):
    """Delivery channel."""

    CALL = "call"
    SMS = "sms"


class DeliveryStatus(str, Enum):
    """Canonical, vendor-independent lifecycle state of a call or SMS."""

    QUEUED = "queued"
    INITIATED = "initiated"
    RINGING = "ringing"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BUSY = "busy"
    NO_ANSWER = "no_answer"
    CANCELED = "canceled"
    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    UNDELIVERED = "undelivered"
    FAILED = "failed"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ProviderFailure:
    """Raw error detail from a single vendor request."""

    message: str
    status_code: int | None = None  # HTTP status, if a response arrived
    code: str | None = None  # Vendor error code
    timed_out: bool = False

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


@dataclass
class ProviderResult:
    """Result of a single call or SMS request to a vendor."""

    success: bool
    provider: ProviderId
    channel: Channel
    provider_ref_id: str | None = None  # Call SID / message SID
    provider_status: str | None = None  # Vendor's own status string
    status: DeliveryStatus = DeliveryStatus.UNKNOWN
    error: ProviderFailure | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "success": self.success,
            "provider": self.provider.value,
            "channel": self.channel.value,
            "provider_ref_id": self.provider_ref_id,
            "provider_status": self.provider_status,
            "status": self.status.value,
            "error": str(self.error) if self.error else None,
        }


@dataclass
class WebhookEvent:
    """Canonical projection of a vendor status callback."""

    provider: ProviderId
    channel: Channel
    provider_ref_id: str
    status: DeliveryStatus
    raw_status: str
    duration_seconds: int | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    from_number: str | None = None
    to_number: str | None = None
    error_code: str | None = None
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary with masked phone numbers."""
        return {
            "provider": self.provider.value,
            "channel": self.channel.value,
            "provider_ref_id": self.provider_ref_id,
            "status": self.status.value,
            "raw_status": self.raw_status,
            "duration_seconds": self.duration_seconds,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "from_number": mask_phone(self.from_number) if self.from_number else None,
            "to_number": mask_phone(self.to_number) if self.to_number else None,
            "error_code": self.error_code,
            "received_at": self.received_at.isoformat(),
        }


@dataclass(frozen=True)
class ProviderHealth:
    """Outcome of a provider connectivity probe."""

    provider: ProviderId
    healthy: bool
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"healthy": self.healthy, "message": self.message}


@dataclass(frozen=True)
class ProviderInfo:
    """Non-sensitive provider configuration summary."""

    provider: ProviderId
    service_name: str
    configured: bool
    masked_number: str | None
    base_url: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "service_name": self.service_name,
            "configured": self.configured,
            "masked_number": self.masked_number,
            "base_url": self.base_url,
        }


class TelephonyProvider(ABC):
    """Abstract base class for call/SMS vendors.

    All provider implementations must implement these methods:
    - initiate_masked_call: Bridge two parties without exposing numbers
    - send_sms: Send a single SMS
    - parse_webhook: Normalize a status callback body
    - validate_signature: Verify a status callback came from the vendor
    - check_health: Cheap connectivity probe
    - get_info: Configuration summary without credentials

    Instances hold only read-only configuration and one HTTP client, so a
    single instance can serve concurrent dispatches.
    """

    provider_id: ProviderId
    service_name: str
    SMS_MAX_LENGTH = 1600

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """Whether all required credentials and numbers are present."""

    @abstractmethod
    async def initiate_masked_call(
        self,
        caller_number: str,
        callee_number: str,
        status_callback_url: str | None = None,
    ) -> ProviderResult:
        """Connect caller and callee through the vendor's virtual number.

        Args:
            caller_number: Party that is called first (E.164)
            callee_number: Party that is bridged in (E.164)
            status_callback_url: URL for call status webhooks

        Returns:
            Result with vendor call ID on success
        """

    @abstractmethod
    async def send_sms(
        self,
        to_number: str,
        body: str,
        status_callback_url: str | None = None,
    ) -> ProviderResult:
        """Send a single SMS.

        Args:
            to_number: Recipient (E.164)
            body: Message text, 1-1600 characters
            status_callback_url: URL for delivery status webhooks

        Returns:
            Result with vendor message ID on success
        """

    @abstractmethod
    def parse_webhook(self, raw_body: str | bytes | Mapping[str, Any]) -> WebhookEvent | None:
        """Normalize a status callback body.

        Returns None for malformed input instead of raising.
        """

    @abstractmethod
    def validate_signature(
        self,
        payload: str | bytes | Mapping[str, Any],
        signature: str | None,
        url: str | None = None,
    ) -> bool:
        """Verify that a webhook was sent by the vendor."""

    @abstractmethod
    async def check_health(self) -> ProviderHealth:
        """Probe vendor connectivity.

        An unconfigured provider reports unhealthy without a network call.
        """

    @abstractmethod
    def get_info(self) -> ProviderInfo:
        """Configuration summary without credentials."""

    async def close(self) -> None:
        """Release network resources."""

    async def __aenter__(self) -> "TelephonyProvider":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def failed_result(self, channel: Channel, failure: ProviderFailure) -> ProviderResult:
        """Build a failed result for this provider."""
        return ProviderResult(
            success=False,
            provider=self.provider_id,
            channel=channel,
            status=DeliveryStatus.FAILED,
            error=failure,
        )

    def unconfigured_failure(self) -> ProviderFailure:
        return ProviderFailure(message=f"{self.service_name} configuration incomplete")


def decode_body(raw_body: str | bytes | Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Decode a webhook body into a flat dict.

    Accepts an already-parsed mapping, a JSON document, or a
    form-urlencoded string. Returns None when nothing usable is found.
    """
    if raw_body is None:
        return None

    if isinstance(raw_body, Mapping):
        return dict(raw_body)

    if isinstance(raw_body, bytes):
        try:
            raw_body = raw_body.decode("utf-8")
        except UnicodeDecodeError:
            return None

    if not isinstance(raw_body, str):
        return None

    text = raw_body.strip()
    if not text:
        return None

    if text.startswith("{"):
        try:
            data = json.loads(text)
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    pairs = parse_qsl(text, keep_blank_values=True)
    if not pairs:
        return None
    return dict(pairs)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a vendor timestamp (RFC 2822 or ISO 8601)."""
    if not value or not isinstance(value, str):
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        pass
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_duration(value: Any) -> int | None:
    """Parse a duration in whole seconds."""
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def failure_from_response(response: httpx.Response) -> ProviderFailure:
    """Extract vendor error detail from a non-success HTTP response."""
    try:
        data = response.json() if response.content else {}
    except (ValueError, TypeError):
        data = {}
    if not isinstance(data, dict):
        data = {}

    # Exotel nests errors under RestException
    rest = data.get("RestException")
    if isinstance(rest, dict):
        data = {**data, **rest}

    message = (
        data.get("message")
        or data.get("Message")
        or data.get("error")
        or f"HTTP {response.status_code}"
    )
    code = data.get("code") or data.get("Code")

    return ProviderFailure(
        message=str(message),
        status_code=response.status_code,
        code=str(code) if code is not None else None,
    )
