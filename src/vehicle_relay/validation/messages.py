"""Message content rules for alerts and SMS bodies."""

from __future__ import annotations

import re
from dataclasses import dataclass

from vehicle_relay.core.phone import is_valid_phone

ALERT_MESSAGE_MIN_LENGTH = 10
ALERT_MESSAGE_MAX_LENGTH = 500
SMS_MAX_LENGTH = 1600

PROHIBITED_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(hack|hacking|malware|virus)\b", re.IGNORECASE),
    re.compile(r"\b(scam|fraud|phishing)\b", re.IGNORECASE),
    re.compile(r"\b(bomb|explosive|weapon)\b", re.IGNORECASE),
)


@dataclass(frozen=True)
class MessageCheck:
    """Result of a content check."""

    is_valid: bool
    error: str | None = None

    def __bool__(self) -> bool:
        return self.is_valid


def contains_prohibited_content(message: str) -> bool:
    return any(pattern.search(message) for pattern in PROHIBITED_PATTERNS)


def validate_alert_message(message: str | None) -> MessageCheck:
    """Validate a custom emergency alert message.

    Rules are checked in order: empty, too long, too short, prohibited
    content. Length is measured after trimming whitespace.
    """
    if not isinstance(message, str):
        return MessageCheck(False, "Message is required and must be a string")

    trimmed = message.strip()

    if not trimmed:
        return MessageCheck(False, "Message cannot be empty")
    if len(trimmed) > ALERT_MESSAGE_MAX_LENGTH:
        return MessageCheck(
            False, f"Message cannot exceed {ALERT_MESSAGE_MAX_LENGTH} characters"
        )
    if len(trimmed) < ALERT_MESSAGE_MIN_LENGTH:
        return MessageCheck(
            False,
            f"Message must be at least {ALERT_MESSAGE_MIN_LENGTH} characters long",
        )
    if contains_prohibited_content(trimmed):
        return MessageCheck(False, "Message contains prohibited content")

    return MessageCheck(True)


def validate_sms_body(body: str | None) -> MessageCheck:
    """Validate an SMS body against the generic vendor limit."""
    if not isinstance(body, str) or not body.strip():
        return MessageCheck(False, "SMS body cannot be empty")
    if len(body.strip()) > SMS_MAX_LENGTH:
        return MessageCheck(False, f"SMS body cannot exceed {SMS_MAX_LENGTH} characters")
    return MessageCheck(True)


def validate_phone_number(number: str | None, field_name: str = "phone number") -> MessageCheck:
    if not is_valid_phone(number):
        return MessageCheck(
            False, f"Invalid {field_name}: expected international format like +14155550100"
        )
    return MessageCheck(True)
