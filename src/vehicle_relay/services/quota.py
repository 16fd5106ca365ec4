"""Provider quota monitoring and admin alerting.

Vendors do not expose remaining quota through the APIs we use, so quota
state is derived from the health probe: an unhealthy provider is treated
as exhausted until the next hourly window, a healthy one as having its
full hourly allowance.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from vehicle_relay.core.logging import get_logger
from vehicle_relay.integrations.telephony.base import Channel, ProviderId, TelephonyProvider
from vehicle_relay.services.collaborators import AdminNotifier, LoggingAdminNotifier
from vehicle_relay.services.error_classifier import ServiceError

log = get_logger(__name__)

QUOTA_RESET_WINDOW = timedelta(hours=1)


@dataclass(frozen=True)
class QuotaThresholds:
    calls_per_hour: int = 100
    sms_per_hour: int = 200
    calls_per_day: int = 1000
    sms_per_day: int = 2000


@dataclass(frozen=True)
class QuotaStatus:
    """Derived quota state for one provider."""

    provider: ProviderId
    exceeded: bool
    remaining_calls: int | None = None
    remaining_sms: int | None = None
    reset_time: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider.value,
            "exceeded": self.exceeded,
            "remaining_calls": self.remaining_calls,
            "remaining_sms": self.remaining_sms,
            "reset_time": self.reset_time.isoformat() if self.reset_time else None,
        }


class QuotaMonitor:
    """Computes quota status and notifies administrators on exhaustion."""

    def __init__(
        self,
        providers: dict[ProviderId, TelephonyProvider],
        thresholds: QuotaThresholds | None = None,
        notifier: AdminNotifier | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.providers = providers
        self.thresholds = thresholds or QuotaThresholds()
        self.notifier = notifier or LoggingAdminNotifier()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def check_quota_status(self, provider_id: ProviderId) -> QuotaStatus:
        """Derive quota status from the provider's health probe."""
        provider = self.providers.get(provider_id)
        healthy = False
        if provider is not None:
            try:
                healthy = (await provider.check_health()).healthy
            except Exception as e:
                log.error("Quota check failed", provider=provider_id.value, error=str(e))

        if not healthy:
            return QuotaStatus(
                provider=provider_id,
                exceeded=True,
                reset_time=self._clock() + QUOTA_RESET_WINDOW,
            )

        return QuotaStatus(
            provider=provider_id,
            exceeded=False,
            remaining_calls=self.thresholds.calls_per_hour,
            remaining_sms=self.thresholds.sms_per_hour,
        )

    async def service_status(self) -> dict[str, Any]:
        """Health and quota for every provider."""
        ids = list(self.providers)
        statuses = await asyncio.gather(*(self.check_quota_status(pid) for pid in ids))
        quotas = {status.provider.value: status.to_dict() for status in statuses}
        return {
            "overall": any(not status.exceeded for status in statuses),
            "quotas": quotas,
            "thresholds": {
                "calls_per_hour": self.thresholds.calls_per_hour,
                "sms_per_hour": self.thresholds.sms_per_hour,
                "calls_per_day": self.thresholds.calls_per_day,
                "sms_per_day": self.thresholds.sms_per_day,
            },
        }

    async def handle_quota_exceeded(
        self,
        provider_id: ProviderId,
        channel: Channel,
        error: ServiceError | None = None,
    ) -> None:
        """Notify administrators that a provider ran out of quota.

        Best effort: notification failures are logged and swallowed.
        """
        log.warning(
            "Provider quota exceeded",
            provider=provider_id.value,
            channel=channel.value,
            error=error.message if error else None,
        )
        subject = f"[vehicle-relay] {provider_id.value} quota exceeded"
        lines = [
            f"Provider {provider_id.value} reported quota exhaustion while sending a {channel.value}.",
            f"Time: {self._clock().isoformat()}",
        ]
        if error is not None:
            lines.append(f"Error: {error.message}")
            if error.retry_after_seconds:
                lines.append(f"Suggested retry after: {error.retry_after_seconds}s")
        try:
            await self.notifier.notify(subject, "\n".join(lines))
        except Exception as e:
            log.error(
                "Failed to notify administrators of quota exhaustion",
                provider=provider_id.value,
                error=str(e),
            )
