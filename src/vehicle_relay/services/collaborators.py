"""Contracts for collaborators outside the delivery core.

The core emits delivery records and webhook events to a ``DeliveryLog``
and resolves owners through a ``VehicleDirectory``. It never reads the
persisted log back. Reference implementations live here too.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from vehicle_relay.core.logging import get_logger
from vehicle_relay.integrations.email.smtp import SMTPMailer
from vehicle_relay.integrations.telephony.base import ProviderId, WebhookEvent

log = get_logger(__name__)


class AttemptOutcome(str, Enum):
    SENT = "sent"
    FAILED = "failed"


@dataclass(frozen=True)
class AttemptRecord:
    """One attempt in a dispatch or alert channel loop."""

    attempt_number: int  # 1-based, across all providers of one operation
    timestamp: datetime
    outcome: AttemptOutcome
    provider: ProviderId | None = None
    provider_attempt: int | None = None  # 1-based, within that provider's budget
    error_detail: str | None = None

    def summary(self) -> str:
        """``Attempt 2: failed (twilio: quota_exceeded (...))``"""
        text = f"Attempt {self.attempt_number}: {self.outcome.value}"
        if self.error_detail:
            text += f" ({self.error_detail})"
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempt_number": self.attempt_number,
            "timestamp": self.timestamp.isoformat(),
            "outcome": self.outcome.value,
            "provider": self.provider.value if self.provider else None,
            "provider_attempt": self.provider_attempt,
            "error_detail": self.error_detail,
        }


class DeliveryChannel(str, Enum):
    """Channel names as written to the delivery log."""

    CALL = "call"
    SMS = "sms"
    EMERGENCY_CALL = "emergency_call"
    EMERGENCY_SMS = "emergency_sms"


@dataclass
class DeliveryRecord:
    """Structured record emitted after every dispatch or alert channel."""

    channel: DeliveryChannel
    status: str
    provider: ProviderId | None
    provider_reference: str | None
    message: str
    attempts: list[AttemptRecord]
    started_at: datetime
    completed_at: datetime
    vehicle_id: str | None = None
    alert_id: str | None = None

    def attempt_summary(self) -> str:
        return "; ".join(attempt.summary() for attempt in self.attempts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "vehicle_id": self.vehicle_id,
            "alert_id": self.alert_id,
            "channel": self.channel.value,
            "status": self.status,
            "provider": self.provider.value if self.provider else None,
            "provider_reference": self.provider_reference,
            "message": self.message,
            "attempts": [attempt.to_dict() for attempt in self.attempts],
            "attempt_summary": self.attempt_summary(),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
        }


# =============================================================================
# Protocols
# =============================================================================


@runtime_checkable
class DeliveryLog(Protocol):
    """Sink for delivery records and webhook status events."""

    async def record_delivery(self, record: DeliveryRecord) -> None: ...

    async def record_webhook(self, event: WebhookEvent) -> None: ...


@runtime_checkable
class VehicleDirectory(Protocol):
    """Resolves a vehicle to its owner's phone number."""

    async def resolve_owner_phone(self, vehicle_id: str) -> str | None: ...


@runtime_checkable
class AdminNotifier(Protocol):
    """Administrator notification channel."""

    async def notify(self, subject: str, message: str) -> None: ...


# =============================================================================
# Reference implementations
# =============================================================================


class StructlogDeliveryLog:
    """Writes delivery records as structured log events."""

    def __init__(self, logger_name: str = "vehicle_relay.delivery") -> None:
        self._log = get_logger(logger_name)

    async def record_delivery(self, record: DeliveryRecord) -> None:
        self._log.info("delivery_record", **record.to_dict())

    async def record_webhook(self, event: WebhookEvent) -> None:
        self._log.info("webhook_event", **event.to_dict())


@dataclass
class InMemoryDeliveryLog:
    """Keeps records in memory. Intended for tests and local development."""

    deliveries: list[DeliveryRecord] = field(default_factory=list)
    webhooks: list[WebhookEvent] = field(default_factory=list)

    async def record_delivery(self, record: DeliveryRecord) -> None:
        self.deliveries.append(record)

    async def record_webhook(self, event: WebhookEvent) -> None:
        self.webhooks.append(event)

    def clear(self) -> None:
        self.deliveries.clear()
        self.webhooks.clear()


class StaticVehicleDirectory:
    """Directory backed by a fixed vehicle_id -> phone mapping."""

    def __init__(self, owners: Mapping[str, str] | None = None) -> None:
        self._owners = dict(owners or {})

    async def resolve_owner_phone(self, vehicle_id: str) -> str | None:
        phone = self._owners.get(vehicle_id)
        if phone is None:
            log.info("Vehicle owner not found", vehicle_id=vehicle_id)
        return phone


class LoggingAdminNotifier:
    """Notifier used when no email channel is configured."""

    async def notify(self, subject: str, message: str) -> None:
        log.warning("Admin notification", subject=subject, message=message)


class EmailAdminNotifier:
    """Sends admin notifications by email."""

    def __init__(self, mailer: SMTPMailer, recipients: list[str]) -> None:
        self.mailer = mailer
        self.recipients = list(recipients)

    async def notify(self, subject: str, message: str) -> None:
        result = await self.mailer.send(self.recipients, subject, message)
        if not result.success:
            raise RuntimeError(f"Admin email failed: {result.error_message}")
        log.info(
            "Admin notification sent",
            subject=subject,
            recipients=len(self.recipients),
        )
