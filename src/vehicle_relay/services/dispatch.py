"""Call and SMS dispatch with retry and provider failover.

One logical request runs up to ``max_attempts`` tries against the primary
provider, then (if configured and different) the same budget against the
fallback. Attempts are strictly sequential; the delay before attempt ``k``
(k > 1) of a provider is ``min(base_delay * multiplier^(k-2), max_delay)``.

Every attempt is a new vendor request. A failed response cannot be told
apart from a request that succeeded but whose response was lost, so a
retry may ring the owner twice. The vendor APIs used here accept no
idempotency key.

Dispatch never raises to its caller: failures are reported in the
returned ``DispatchOutcome`` with the classified cause from every
provider tried.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from vehicle_relay.core.logging import get_logger
from vehicle_relay.core.exceptions import ConfigurationError
from vehicle_relay.core.phone import mask_phone
from vehicle_relay.core.retry import RetryConfig, SleepFunc, default_sleep
from vehicle_relay.integrations.telephony.base import (
    Channel,
    ProviderFailure,
    ProviderHealth,
    ProviderId,
    ProviderResult,
    TelephonyProvider,
)
from vehicle_relay.services.collaborators import (
    AttemptOutcome,
    AttemptRecord,
    DeliveryChannel,
    DeliveryLog,
    DeliveryRecord,
)
from vehicle_relay.services.error_classifier import ErrorCategory, ServiceError, classify_error
from vehicle_relay.validation.messages import validate_phone_number, validate_sms_body

if TYPE_CHECKING:
    from vehicle_relay.config import Settings
    from vehicle_relay.services.quota import QuotaMonitor

log = get_logger(__name__)

ProviderAction = Callable[[TelephonyProvider, str | None], Awaitable[ProviderResult]]
CallbackBuilder = Callable[[ProviderId, Channel], str | None]


@dataclass(frozen=True)
class DispatchConfig:
    """Provider selection and retry policy. Read-only after startup."""

    primary_provider: ProviderId
    fallback_provider: ProviderId | None = None
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    call_timeout: float = 30.0

    @property
    def retry(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            backoff_multiplier=self.backoff_multiplier,
        )

    @property
    def provider_chain(self) -> tuple[ProviderId, ...]:
        """Providers in the order they are tried."""
        if self.fallback_provider is None or self.fallback_provider == self.primary_provider:
            return (self.primary_provider,)
        return (self.primary_provider, self.fallback_provider)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "DispatchConfig":
        dispatch = settings.dispatch
        return cls(
            primary_provider=dispatch.primary_provider,
            fallback_provider=dispatch.fallback_provider,
            max_attempts=dispatch.retry.max_attempts,
            base_delay=dispatch.retry.base_delay,
            max_delay=dispatch.retry.max_delay,
            backoff_multiplier=dispatch.retry.backoff_multiplier,
            call_timeout=dispatch.call_timeout,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "primary_provider": self.primary_provider.value,
            "fallback_provider": self.fallback_provider.value if self.fallback_provider else None,
            "max_attempts": self.max_attempts,
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
            "backoff_multiplier": self.backoff_multiplier,
            "call_timeout": self.call_timeout,
        }


@dataclass(frozen=True)
class CallRequest:
    """Masked call between a caller and a callee."""

    caller_number: str
    callee_number: str
    status_callback_url: str | None = None


class DispatchStatus(str, Enum):
    INITIATED = "initiated"  # call accepted by a provider
    SENT = "sent"  # SMS accepted by a provider
    FAILED = "failed"


@dataclass
class DispatchOutcome:
    """Result of one logical call or SMS dispatch."""

    channel: Channel
    status: DispatchStatus
    message: str
    provider_used: ProviderId | None = None
    provider_ref_id: str | None = None
    attempts: list[AttemptRecord] = field(default_factory=list)
    errors: list[ServiceError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status is not DispatchStatus.FAILED

    def attempts_for(self, provider_id: ProviderId) -> list[AttemptRecord]:
        return [attempt for attempt in self.attempts if attempt.provider == provider_id]

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel": self.channel.value,
            "status": self.status.value,
            "message": self.message,
            "provider_used": self.provider_used.value if self.provider_used else None,
            "provider_ref_id": self.provider_ref_id,
            "attempts": [attempt.to_dict() for attempt in self.attempts],
            "errors": [error.to_dict() for error in self.errors],
        }


@dataclass(frozen=True)
class HealthReport:
    overall: bool
    providers: dict[ProviderId, ProviderHealth]

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall": self.overall,
            "providers": {pid.value: health.to_dict() for pid, health in self.providers.items()},
        }


class DispatchService:
    """Sends calls and SMS through the configured providers.

    Args:
        providers: Adapter per provider identity
        config: Provider selection and retry policy
        delivery_log: Sink for the per-dispatch delivery record
        quota_monitor: Notified once per provider when quota runs out
        sleep: Awaitable used for backoff delays
        callback_url: Builds the status callback URL for a provider/channel
    """

    def __init__(
        self,
        providers: dict[ProviderId, TelephonyProvider],
        config: DispatchConfig,
        delivery_log: DeliveryLog | None = None,
        quota_monitor: "QuotaMonitor | None" = None,
        sleep: SleepFunc | None = None,
        callback_url: CallbackBuilder | None = None,
    ) -> None:
        missing = [pid.value for pid in config.provider_chain if pid not in providers]
        if missing:
            raise ConfigurationError(
                "No adapter registered for selected provider",
                details={"providers": missing},
            )

        self._providers = dict(providers)
        self._config = config
        self._retry = config.retry
        self._delivery_log = delivery_log
        self._quota_monitor = quota_monitor
        self._sleep = sleep or default_sleep
        self._callback_url = callback_url
        self._notifications: set[asyncio.Task[None]] = set()

    def get_config(self) -> DispatchConfig:
        """Read-only configuration snapshot (holds no credentials)."""
        return self._config

    def get_info(self) -> dict[str, Any]:
        return {
            "config": self._config.to_dict(),
            "providers": {
                pid.value: provider.get_info().to_dict()
                for pid, provider in self._providers.items()
            },
        }

    async def dispatch_call(
        self,
        request: CallRequest,
        vehicle_id: str | None = None,
        *,
        record_delivery: bool = True,
    ) -> DispatchOutcome:
        """Initiate a masked call with retry and failover."""
        for number, name in (
            (request.caller_number, "caller number"),
            (request.callee_number, "callee number"),
        ):
            check = validate_phone_number(number, name)
            if not check:
                log.warning("Call request rejected", reason=check.error, number=mask_phone(number))
                return DispatchOutcome(
                    channel=Channel.CALL,
                    status=DispatchStatus.FAILED,
                    message=check.error or "Invalid call request",
                )

        log.info(
            "Dispatching call",
            caller=mask_phone(request.caller_number),
            callee=mask_phone(request.callee_number),
            vehicle_id=vehicle_id,
        )

        async def action(provider: TelephonyProvider, callback: str | None) -> ProviderResult:
            return await provider.initiate_masked_call(
                request.caller_number,
                request.callee_number,
                callback,
            )

        return await self._dispatch(
            Channel.CALL,
            action,
            request.status_callback_url,
            vehicle_id,
            record_delivery,
        )

    async def dispatch_sms(
        self,
        to_number: str,
        body: str,
        status_callback_url: str | None = None,
        vehicle_id: str | None = None,
        *,
        record_delivery: bool = True,
    ) -> DispatchOutcome:
        """Send an SMS with retry and failover."""
        for check in (validate_phone_number(to_number, "recipient number"), validate_sms_body(body)):
            if not check:
                log.warning("SMS request rejected", reason=check.error, to=mask_phone(to_number))
                return DispatchOutcome(
                    channel=Channel.SMS,
                    status=DispatchStatus.FAILED,
                    message=check.error or "Invalid SMS request",
                )

        text = body.strip()
        log.info("Dispatching SMS", to=mask_phone(to_number), length=len(text), vehicle_id=vehicle_id)

        async def action(provider: TelephonyProvider, callback: str | None) -> ProviderResult:
            return await provider.send_sms(to_number, text, callback)

        return await self._dispatch(
            Channel.SMS,
            action,
            status_callback_url,
            vehicle_id,
            record_delivery,
        )

    async def check_overall_health(self) -> HealthReport:
        """Probe every provider; overall is healthy if any provider is."""
        ids = list(self._providers)
        results = await asyncio.gather(
            *(self._probe(self._providers[pid]) for pid in ids),
        )
        providers = dict(zip(ids, results))
        return HealthReport(
            overall=any(health.healthy for health in providers.values()),
            providers=providers,
        )

    async def _probe(self, provider: TelephonyProvider) -> ProviderHealth:
        try:
            return await asyncio.wait_for(provider.check_health(), timeout=self._config.call_timeout)
        except asyncio.TimeoutError:
            return ProviderHealth(provider.provider_id, False, "Health check timed out")
        except Exception as e:
            log.error("Health check error", provider=provider.provider_id.value, error=str(e))
            return ProviderHealth(provider.provider_id, False, str(e) or "Health check failed")

    async def _dispatch(
        self,
        channel: Channel,
        action: ProviderAction,
        status_callback_url: str | None,
        vehicle_id: str | None,
        record_delivery: bool,
    ) -> DispatchOutcome:
        started_at = datetime.now(timezone.utc)
        attempts: list[AttemptRecord] = []
        errors: list[ServiceError] = []
        last_errors: dict[ProviderId, ServiceError] = {}
        quota_notified: set[ProviderId] = set()
        outcome: DispatchOutcome | None = None

        for provider_id in self._config.provider_chain:
            provider = self._providers[provider_id]
            callback = status_callback_url
            if callback is None and self._callback_url is not None:
                callback = self._callback_url(provider_id, channel)

            if provider_id != self._config.primary_provider:
                log.warning(
                    "Switching to fallback provider",
                    channel=channel.value,
                    fallback=provider_id.value,
                )

            for provider_attempt in range(1, self._retry.max_attempts + 1):
                delay = self._retry.delay_before(provider_attempt)
                if delay > 0:
                    await self._sleep(delay)

                result = await self._attempt(provider, action, callback)
                attempt_number = len(attempts) + 1

                if isinstance(result, ProviderResult):
                    attempts.append(
                        AttemptRecord(
                            attempt_number=attempt_number,
                            timestamp=datetime.now(timezone.utc),
                            outcome=AttemptOutcome.SENT,
                            provider=provider_id,
                            provider_attempt=provider_attempt,
                        )
                    )
                    outcome = self._success(channel, provider_id, result, attempts, errors)
                    break

                error = result
                attempts.append(
                    AttemptRecord(
                        attempt_number=attempt_number,
                        timestamp=datetime.now(timezone.utc),
                        outcome=AttemptOutcome.FAILED,
                        provider=provider_id,
                        provider_attempt=provider_attempt,
                        error_detail=error.describe(),
                    )
                )
                errors.append(error)
                last_errors[provider_id] = error
                log.warning(
                    "Dispatch attempt failed",
                    channel=channel.value,
                    provider=provider_id.value,
                    attempt=provider_attempt,
                    max_attempts=self._retry.max_attempts,
                    category=error.category.value,
                    error=error.message,
                )

                if (
                    error.category is ErrorCategory.QUOTA_EXCEEDED
                    and provider_id not in quota_notified
                    and self._quota_monitor is not None
                ):
                    quota_notified.add(provider_id)
                    self._notify_quota(self._quota_monitor, provider_id, channel, error)

            if outcome is not None:
                break

        if outcome is None:
            outcome = self._failure(channel, attempts, errors, last_errors)

        if record_delivery:
            await self._record(channel, outcome, vehicle_id, started_at)

        return outcome

    def _notify_quota(
        self,
        monitor: "QuotaMonitor",
        provider_id: ProviderId,
        channel: Channel,
        error: ServiceError,
    ) -> None:
        """Start the admin notification without waiting for it."""
        task = asyncio.create_task(
            monitor.handle_quota_exceeded(provider_id, channel, error),
            name=f"quota-notify-{provider_id.value}",
        )
        self._notifications.add(task)
        task.add_done_callback(self._notification_done)

    def _notification_done(self, task: "asyncio.Task[None]") -> None:
        self._notifications.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error(
                "Quota notification failed",
                task=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def drain_notifications(self, timeout: float | None = None) -> None:
        """Wait for pending quota notifications; cancel any still running after ``timeout``."""
        pending = set(self._notifications)
        if not pending:
            return
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            log.warning("Cancelled pending quota notifications", count=len(still_running))

    async def _attempt(
        self,
        provider: TelephonyProvider,
        action: ProviderAction,
        callback: str | None,
    ) -> ProviderResult | ServiceError:
        """Run one vendor request under the per-call timeout.

        Returns the provider result on success, otherwise the classified error.
        """
        provider_id = provider.provider_id
        try:
            result = await asyncio.wait_for(
                action(provider, callback),
                timeout=self._config.call_timeout,
            )
        except asyncio.TimeoutError:
            failure = ProviderFailure(
                message=f"Provider call timed out after {self._config.call_timeout:g}s",
                timed_out=True,
            )
            return classify_error(provider_id, failure)
        except Exception as e:
            log.error(
                "Provider adapter raised",
                provider=provider_id.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return classify_error(provider_id, e)

        if result.success:
            return result
        return classify_error(
            provider_id, result.error or ProviderFailure(message="Unknown error")
        )

    def _success(
        self,
        channel: Channel,
        provider_id: ProviderId,
        result: ProviderResult,
        attempts: list[AttemptRecord],
        errors: list[ServiceError],
    ) -> DispatchOutcome:
        suffix = " (fallback)" if provider_id != self._config.primary_provider else ""
        if channel is Channel.CALL:
            status = DispatchStatus.INITIATED
            message = f"Call initiated successfully via {provider_id.value}{suffix}"
        else:
            status = DispatchStatus.SENT
            message = f"SMS sent successfully via {provider_id.value}{suffix}"

        log.info(
            "Dispatch succeeded",
            channel=channel.value,
            provider=provider_id.value,
            provider_ref_id=result.provider_ref_id,
            attempts=len(attempts),
        )
        return DispatchOutcome(
            channel=channel,
            status=status,
            message=message,
            provider_used=provider_id,
            provider_ref_id=result.provider_ref_id,
            attempts=attempts,
            errors=errors,
        )

    def _failure(
        self,
        channel: Channel,
        attempts: list[AttemptRecord],
        errors: list[ServiceError],
        last_errors: dict[ProviderId, ServiceError],
    ) -> DispatchOutcome:
        label = "Call" if channel is Channel.CALL else "SMS"
        causes = "; ".join(error.describe() for error in last_errors.values())
        chain = self._config.provider_chain
        scope = "all providers" if len(chain) > 1 else chain[0].value
        message = f"{label} failed on {scope} after {len(attempts)} attempts: {causes}"

        log.error(
            "Dispatch failed",
            channel=channel.value,
            providers=[pid.value for pid in chain],
            attempts=len(attempts),
            causes=causes,
        )
        return DispatchOutcome(
            channel=channel,
            status=DispatchStatus.FAILED,
            message=message,
            provider_used=chain[-1],
            attempts=attempts,
            errors=errors,
        )

    async def _record(
        self,
        channel: Channel,
        outcome: DispatchOutcome,
        vehicle_id: str | None,
        started_at: datetime,
    ) -> None:
        if self._delivery_log is None:
            return
        record = DeliveryRecord(
            channel=DeliveryChannel.CALL if channel is Channel.CALL else DeliveryChannel.SMS,
            status=outcome.status.value,
            provider=outcome.provider_used,
            provider_reference=outcome.provider_ref_id,
            message=outcome.message,
            attempts=list(outcome.attempts),
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
            vehicle_id=vehicle_id,
        )
        try:
            await self._delivery_log.record_delivery(record)
        except Exception as e:
            log.error("Failed to write delivery record", channel=channel.value, error=str(e))
