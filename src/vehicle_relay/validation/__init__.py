"""Input, vendor response and webhook validation."""

from vehicle_relay.validation.messages import (
    MessageCheck,
    validate_alert_message,
    validate_phone_number,
    validate_sms_body,
)
from vehicle_relay.validation.payloads import ValidationResult, validate_payload

__all__ = [
    "MessageCheck",
    "validate_alert_message",
    "validate_phone_number",
    "validate_sms_body",
    "ValidationResult",
    "validate_payload",
]
