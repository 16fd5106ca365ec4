"""Delivery services: dispatch, emergency alerts, quota and webhooks."""

from vehicle_relay.services.alerts import AlertOutcome, AlertStatus, EmergencyAlertService
from vehicle_relay.services.dispatch import (
    CallRequest,
    DispatchConfig,
    DispatchOutcome,
    DispatchService,
    DispatchStatus,
)
from vehicle_relay.services.error_classifier import ErrorCategory, ServiceError, classify_error
from vehicle_relay.services.quota import QuotaMonitor, QuotaStatus
from vehicle_relay.services.webhooks import WebhookReceiver

__all__ = [
    "AlertOutcome",
    "AlertStatus",
    "EmergencyAlertService",
    "CallRequest",
    "DispatchConfig",
    "DispatchOutcome",
    "DispatchService",
    "DispatchStatus",
    "ErrorCategory",
    "ServiceError",
    "classify_error",
    "QuotaMonitor",
    "QuotaStatus",
    "WebhookReceiver",
]
