"""Dependency Injection for Vehicle Relay.

Provides FastAPI dependency functions for adapters and services. Every
component is built once from settings and shared; adapters hold only
read-only configuration, so one instance serves concurrent requests.

Thread Safety:
    All singleton factories use threading.Lock() to prevent race conditions
    during concurrent initialization. This is safe for both sync and async contexts.

Usage:
    from vehicle_relay.dependencies import get_dispatch_service

    @router.get("/endpoint")
    async def handler(service: DispatchService = Depends(get_dispatch_service)):
        ...
"""

from __future__ import annotations

import threading
from typing import Annotated

from fastapi import Depends

from vehicle_relay.config import Settings, get_settings
from vehicle_relay.core.logging import get_logger
from vehicle_relay.core.retry import RetryConfig
from vehicle_relay.integrations.telephony.factory import (
    ProviderRegistry,
    close_providers,
    create_providers,
)
from vehicle_relay.services.alerts import EmergencyAlertService
from vehicle_relay.services.collaborators import (
    AdminNotifier,
    DeliveryLog,
    EmailAdminNotifier,
    LoggingAdminNotifier,
    StaticVehicleDirectory,
    StructlogDeliveryLog,
    VehicleDirectory,
)
from vehicle_relay.services.dispatch import DispatchConfig, DispatchService
from vehicle_relay.services.quota import QuotaMonitor, QuotaThresholds
from vehicle_relay.services.webhooks import WebhookReceiver

log = get_logger(__name__)


# =============================================================================
# Thread-Safe Singleton Locks
# =============================================================================

_providers_lock = threading.Lock()
_collaborators_lock = threading.Lock()
_quota_lock = threading.Lock()
_dispatch_lock = threading.Lock()
_alerts_lock = threading.Lock()
_webhooks_lock = threading.Lock()


# =============================================================================
# Settings Dependency
# =============================================================================


def get_app_settings() -> Settings:
    """Get application settings.

    Returns cached settings instance.
    """
    return get_settings()


SettingsDep = Annotated[Settings, Depends(get_app_settings)]


# =============================================================================
# Provider Dependencies
# =============================================================================


_providers_instance: ProviderRegistry | None = None


def get_providers() -> ProviderRegistry:
    """Get the provider registry singleton.

    Thread-safe via double-checked locking pattern.
    """
    global _providers_instance

    if _providers_instance is None:
        with _providers_lock:
            if _providers_instance is None:
                _providers_instance = create_providers(get_settings())

    return _providers_instance


# =============================================================================
# Collaborators
# =============================================================================


_delivery_log_instance: DeliveryLog | None = None
_vehicle_directory_instance: VehicleDirectory | None = None
_admin_notifier_instance: AdminNotifier | None = None


def get_delivery_log() -> DeliveryLog:
    global _delivery_log_instance

    if _delivery_log_instance is None:
        with _collaborators_lock:
            if _delivery_log_instance is None:
                _delivery_log_instance = StructlogDeliveryLog()

    return _delivery_log_instance


def set_delivery_log(delivery_log: DeliveryLog) -> None:
    """Replace the delivery log (e.g. with a persistent implementation)."""
    global _delivery_log_instance
    _delivery_log_instance = delivery_log


def get_vehicle_directory() -> VehicleDirectory:
    """Get the vehicle directory.

    Defaults to an empty static directory, so alerts fail with an owner
    lookup error until a real directory is registered.
    """
    global _vehicle_directory_instance

    if _vehicle_directory_instance is None:
        with _collaborators_lock:
            if _vehicle_directory_instance is None:
                _vehicle_directory_instance = StaticVehicleDirectory()

    return _vehicle_directory_instance


def set_vehicle_directory(directory: VehicleDirectory) -> None:
    global _vehicle_directory_instance
    _vehicle_directory_instance = directory


def get_admin_notifier() -> AdminNotifier:
    """Email notifier when SMTP and recipients are configured, else logging."""
    global _admin_notifier_instance

    if _admin_notifier_instance is None:
        with _collaborators_lock:
            if _admin_notifier_instance is None:
                admin = get_settings().admin
                if admin.notification_emails and admin.smtp.host:
                    from vehicle_relay.integrations.email.smtp import SMTPMailer

                    mailer = SMTPMailer(
                        host=admin.smtp.host,
                        port=admin.smtp.port,
                        username=admin.smtp.username or None,
                        password=admin.smtp.password or None,
                        use_tls=admin.smtp.use_tls,
                        use_ssl=admin.smtp.use_ssl,
                        from_email=admin.smtp.from_email,
                    )
                    _admin_notifier_instance = EmailAdminNotifier(
                        mailer, admin.notification_emails
                    )
                else:
                    _admin_notifier_instance = LoggingAdminNotifier()

    return _admin_notifier_instance


# =============================================================================
# Service Dependencies
# =============================================================================


_quota_monitor_instance: QuotaMonitor | None = None
_dispatch_service_instance: DispatchService | None = None
_alert_service_instance: EmergencyAlertService | None = None
_webhook_receiver_instance: WebhookReceiver | None = None


def get_quota_monitor() -> QuotaMonitor:
    global _quota_monitor_instance

    if _quota_monitor_instance is None:
        with _quota_lock:
            if _quota_monitor_instance is None:
                quotas = get_settings().quotas
                _quota_monitor_instance = QuotaMonitor(
                    providers=get_providers(),
                    thresholds=QuotaThresholds(
                        calls_per_hour=quotas.calls_per_hour,
                        sms_per_hour=quotas.sms_per_hour,
                        calls_per_day=quotas.calls_per_day,
                        sms_per_day=quotas.sms_per_day,
                    ),
                    notifier=get_admin_notifier(),
                )

    return _quota_monitor_instance


def get_dispatch_service() -> DispatchService:
    """Get dispatch service singleton.

    Thread-safe via double-checked locking pattern.

    Raises:
        ConfigurationError: If a selected provider has no adapter.
    """
    global _dispatch_service_instance

    if _dispatch_service_instance is None:
        with _dispatch_lock:
            if _dispatch_service_instance is None:
                settings = get_settings()
                _dispatch_service_instance = DispatchService(
                    providers=get_providers(),
                    config=DispatchConfig.from_settings(settings),
                    delivery_log=get_delivery_log(),
                    quota_monitor=get_quota_monitor(),
                    callback_url=lambda provider, channel: settings.status_callback_url(
                        provider, channel.value
                    ),
                )

    return _dispatch_service_instance


def get_alert_service() -> EmergencyAlertService:
    global _alert_service_instance

    if _alert_service_instance is None:
        with _alerts_lock:
            if _alert_service_instance is None:
                retry = get_settings().alerts.retry
                _alert_service_instance = EmergencyAlertService(
                    dispatch=get_dispatch_service(),
                    directory=get_vehicle_directory(),
                    delivery_log=get_delivery_log(),
                    retry=RetryConfig(
                        max_attempts=retry.max_attempts,
                        base_delay=retry.base_delay,
                        max_delay=retry.max_delay,
                        backoff_multiplier=retry.backoff_multiplier,
                    ),
                )

    return _alert_service_instance


def get_webhook_receiver() -> WebhookReceiver:
    global _webhook_receiver_instance

    if _webhook_receiver_instance is None:
        with _webhooks_lock:
            if _webhook_receiver_instance is None:
                _webhook_receiver_instance = WebhookReceiver(
                    providers=get_providers(),
                    delivery_log=get_delivery_log(),
                    validate_signatures=get_settings().webhooks.validate_signatures,
                )

    return _webhook_receiver_instance


# Type aliases for dependency injection
ProvidersDep = Annotated[ProviderRegistry, Depends(get_providers)]
DispatchServiceDep = Annotated[DispatchService, Depends(get_dispatch_service)]
QuotaMonitorDep = Annotated[QuotaMonitor, Depends(get_quota_monitor)]
WebhookReceiverDep = Annotated[WebhookReceiver, Depends(get_webhook_receiver)]


# =============================================================================
# Lifecycle
# =============================================================================


async def cleanup_dependencies() -> None:
    """Close provider clients and drop cached services.

    Call during application shutdown.
    """
    global _providers_instance

    if _dispatch_service_instance is not None:
        await _dispatch_service_instance.drain_notifications(
            timeout=get_settings().admin.drain_timeout
        )

    if _providers_instance is not None:
        try:
            await close_providers(_providers_instance)
        except Exception as e:
            log.warning("Error closing providers during cleanup", error=str(e))
        _providers_instance = None

    reset_dependencies()


def reset_dependencies() -> None:
    """Reset all cached dependencies (for testing).

    Does not clean up resources, just clears references.
    """
    global _providers_instance
    global _delivery_log_instance, _vehicle_directory_instance, _admin_notifier_instance
    global _quota_monitor_instance, _dispatch_service_instance
    global _alert_service_instance, _webhook_receiver_instance

    _providers_instance = None
    _delivery_log_instance = None
    _vehicle_directory_instance = None
    _admin_notifier_instance = None
    _quota_monitor_instance = None
    _dispatch_service_instance = None
    _alert_service_instance = None
    _webhook_receiver_instance = None
