"""Emergency alert orchestration.

An emergency alert calls the owner and texts the owner at the same time.
Each channel runs its own bounded retry loop on top of the dispatch
service and keeps a full per-attempt audit trail, which is written to the
delivery log once the channel finishes. The alert counts as sent when
either channel gets through.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable

from vehicle_relay.core.exceptions import OwnerLookupError, ValidationError
from vehicle_relay.core.logging import get_logger
from vehicle_relay.core.phone import is_valid_phone, mask_phone
from vehicle_relay.core.retry import ALERT_RETRY_CONFIG, RetryConfig, SleepFunc, default_sleep
from vehicle_relay.integrations.telephony.base import ProviderId
from vehicle_relay.services.alert_templates import (
    AlertCustomizations,
    AlertMessages,
    TemplateCatalog,
    customize_message,
)
from vehicle_relay.services.collaborators import (
    AttemptOutcome,
    AttemptRecord,
    DeliveryChannel,
    DeliveryLog,
    DeliveryRecord,
    VehicleDirectory,
)
from vehicle_relay.services.dispatch import CallRequest, DispatchOutcome, DispatchService
from vehicle_relay.validation.messages import validate_alert_message

log = get_logger(__name__)


class AlertStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"


@dataclass
class ChannelReport:
    """Terminal state and audit trail of one alert channel."""

    channel: DeliveryChannel
    status: AlertStatus
    message: str
    provider_used: ProviderId | None = None
    provider_ref_id: str | None = None
    attempts: list[AttemptRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel": self.channel.value,
            "status": self.status.value,
            "message": self.message,
            "provider_used": self.provider_used.value if self.provider_used else None,
            "provider_ref_id": self.provider_ref_id,
            "attempts": [attempt.to_dict() for attempt in self.attempts],
        }


@dataclass
class AlertOutcome:
    """Result of an emergency alert."""

    alert_id: str
    vehicle_id: str
    status: AlertStatus
    message: str
    call: ChannelReport | None = None
    sms: ChannelReport | None = None
    error_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "vehicle_id": self.vehicle_id,
            "status": self.status.value,
            "message": self.message,
            "call": self.call.to_dict() if self.call else None,
            "sms": self.sms.to_dict() if self.sms else None,
            "error_code": self.error_code,
        }


def make_alert_id(vehicle_id: str, now: float | None = None) -> str:
    """``alert_<epoch ms>_<last 8 chars of vehicle id>``"""
    millis = int((time.time() if now is None else now) * 1000)
    return f"alert_{millis}_{vehicle_id[-8:]}"


class EmergencyAlertService:
    """Dual-channel (call + SMS) emergency alerts for vehicle owners."""

    def __init__(
        self,
        dispatch: DispatchService,
        directory: VehicleDirectory,
        delivery_log: DeliveryLog | None = None,
        retry: RetryConfig = ALERT_RETRY_CONFIG,
        catalog: TemplateCatalog | None = None,
        sleep: SleepFunc | None = None,
    ) -> None:
        self.dispatch = dispatch
        self.directory = directory
        self.delivery_log = delivery_log
        self.retry = retry
        self.catalog = catalog or TemplateCatalog()
        self._sleep = sleep or default_sleep

    async def send_emergency_alert(
        self,
        vehicle_id: str,
        template_id: str | None = None,
        custom_message: str | None = None,
        customizations: AlertCustomizations | None = None,
    ) -> AlertOutcome:
        """Alert a vehicle owner by call and SMS concurrently.

        Never raises; lookup and validation failures come back as a
        failed outcome with ``error_code`` set.
        """
        log.info(
            "Initiating emergency alert",
            vehicle_id=vehicle_id,
            template_id=template_id,
            has_custom_message=custom_message is not None,
        )

        try:
            messages = self._select_messages(template_id, custom_message, customizations)
            owner_phone = await self._resolve_owner(vehicle_id)
        except (ValidationError, OwnerLookupError) as e:
            log.warning(
                "Emergency alert rejected",
                vehicle_id=vehicle_id,
                error_code=e.error_code,
                reason=e.message,
            )
            return AlertOutcome(
                alert_id="",
                vehicle_id=vehicle_id,
                status=AlertStatus.FAILED,
                message=e.message,
                error_code=e.error_code,
            )

        alert_id = make_alert_id(vehicle_id)

        call_report, sms_report = await asyncio.gather(
            self._run_channel(
                DeliveryChannel.EMERGENCY_CALL,
                lambda: self.dispatch.dispatch_call(
                    # The alert rings the owner directly
                    CallRequest(caller_number=owner_phone, callee_number=owner_phone),
                    vehicle_id,
                    record_delivery=False,
                ),
                alert_id,
                vehicle_id,
                messages.call_message,
                owner_phone,
            ),
            self._run_channel(
                DeliveryChannel.EMERGENCY_SMS,
                lambda: self.dispatch.dispatch_sms(
                    owner_phone,
                    messages.sms_message,
                    vehicle_id=vehicle_id,
                    record_delivery=False,
                ),
                alert_id,
                vehicle_id,
                messages.sms_message,
                owner_phone,
            ),
        )

        sent = AlertStatus.SENT in (call_report.status, sms_report.status)
        status = AlertStatus.SENT if sent else AlertStatus.FAILED
        message = f"Emergency alert {status.value}. Call: {call_report.status.value}, SMS: {sms_report.status.value}"
        failures = [
            f"{label} error: {report.message}"
            for label, report in (("Call", call_report), ("SMS", sms_report))
            if report.status is AlertStatus.FAILED
        ]
        if failures:
            message += ". " + "; ".join(failures)

        log.info(
            "Emergency alert completed",
            vehicle_id=vehicle_id,
            alert_id=alert_id,
            status=status.value,
            call_status=call_report.status.value,
            sms_status=sms_report.status.value,
        )

        return AlertOutcome(
            alert_id=alert_id,
            vehicle_id=vehicle_id,
            status=status,
            message=message,
            call=call_report,
            sms=sms_report,
        )

    def _select_messages(
        self,
        template_id: str | None,
        custom_message: str | None,
        customizations: AlertCustomizations | None,
    ) -> AlertMessages:
        if custom_message is not None:
            check = validate_alert_message(custom_message)
            if not check:
                raise ValidationError(check.error or "Invalid custom message")
            return AlertMessages(custom_message, custom_message)

        try:
            template = self.catalog.get(template_id)
        except LookupError as e:
            raise ValidationError(str(e)) from e

        messages = customize_message(template, customizations)
        for text in (messages.call_message, messages.sms_message):
            check = validate_alert_message(text)
            if not check:
                raise ValidationError(
                    check.error or "Invalid alert message",
                    details={"template_id": template.id},
                )
        return messages

    async def _resolve_owner(self, vehicle_id: str) -> str:
        if not vehicle_id:
            raise ValidationError("Vehicle ID is required")
        try:
            phone = await self.directory.resolve_owner_phone(vehicle_id)
        except Exception as e:
            log.error("Owner lookup failed", vehicle_id=vehicle_id, error=str(e))
            raise OwnerLookupError(
                "Failed to get vehicle owner information", cause=e
            ) from e
        if not phone:
            raise OwnerLookupError("Vehicle or owner not found")
        if not is_valid_phone(phone):
            raise OwnerLookupError("Vehicle owner has no valid phone number")
        return phone

    async def _run_channel(
        self,
        channel: DeliveryChannel,
        attempt: Callable[[], Awaitable[DispatchOutcome]],
        alert_id: str,
        vehicle_id: str,
        text: str,
        owner_phone: str,
    ) -> ChannelReport:
        """Bounded retry loop for one channel; never raises."""
        label = "call" if channel is DeliveryChannel.EMERGENCY_CALL else "SMS"
        started_at = datetime.now(timezone.utc)
        attempts: list[AttemptRecord] = []
        report: ChannelReport | None = None

        for attempt_number in range(1, self.retry.max_attempts + 1):
            delay = self.retry.delay_before(attempt_number)
            log.info(
                f"Emergency {label} attempt {attempt_number}/{self.retry.max_attempts}",
                vehicle_id=vehicle_id,
                owner=mask_phone(owner_phone),
                delay=delay,
            )
            if delay > 0:
                await self._sleep(delay)

            try:
                outcome = await attempt()
            except Exception as e:
                log.error(
                    f"Emergency {label} attempt {attempt_number} raised",
                    vehicle_id=vehicle_id,
                    error=str(e),
                )
                attempts.append(
                    AttemptRecord(
                        attempt_number=attempt_number,
                        timestamp=datetime.now(timezone.utc),
                        outcome=AttemptOutcome.FAILED,
                        error_detail=str(e) or type(e).__name__,
                    )
                )
                continue

            if outcome.success:
                attempts.append(
                    AttemptRecord(
                        attempt_number=attempt_number,
                        timestamp=datetime.now(timezone.utc),
                        outcome=AttemptOutcome.SENT,
                        provider=outcome.provider_used,
                    )
                )
                report = ChannelReport(
                    channel=channel,
                    status=AlertStatus.SENT,
                    message=f"{label[0].upper()}{label[1:]} sent successfully on attempt {attempt_number}",
                    provider_used=outcome.provider_used,
                    provider_ref_id=outcome.provider_ref_id,
                    attempts=attempts,
                )
                break

            attempts.append(
                AttemptRecord(
                    attempt_number=attempt_number,
                    timestamp=datetime.now(timezone.utc),
                    outcome=AttemptOutcome.FAILED,
                    provider=outcome.provider_used,
                    error_detail=outcome.message,
                )
            )
            log.warning(
                f"Emergency {label} attempt {attempt_number} failed",
                vehicle_id=vehicle_id,
                error=outcome.message,
            )

        if report is None:
            last_error = next(
                (a.error_detail for a in reversed(attempts) if a.error_detail),
                "Unknown error",
            )
            report = ChannelReport(
                channel=channel,
                status=AlertStatus.FAILED,
                message=f"All {len(attempts)} {label} attempts failed. Last error: {last_error}",
                provider_used=attempts[-1].provider if attempts else None,
                attempts=attempts,
            )
            log.error(
                f"All emergency {label} attempts failed",
                vehicle_id=vehicle_id,
                total_attempts=len(attempts),
                last_error=last_error,
            )

        await self._record(report, alert_id, vehicle_id, text, started_at)
        return report

    async def _record(
        self,
        report: ChannelReport,
        alert_id: str,
        vehicle_id: str,
        text: str,
        started_at: datetime,
    ) -> None:
        if self.delivery_log is None:
            return
        record = DeliveryRecord(
            channel=report.channel,
            status=report.status.value,
            provider=report.provider_used,
            provider_reference=report.provider_ref_id,
            message=text,
            attempts=list(report.attempts),
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
            vehicle_id=vehicle_id,
            alert_id=alert_id,
        )
        try:
            await self.delivery_log.record_delivery(record)
        except Exception as e:
            log.error(
                "Failed to log alert attempts",
                vehicle_id=vehicle_id,
                channel=report.channel.value,
                attempt_count=len(report.attempts),
                error=str(e),
            )
