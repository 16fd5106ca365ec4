"""Vendor response and webhook shape validation.

Vendor JSON is checked against these pydantic models before any field is
trusted. A 2xx response that does not match is treated as a failed
attempt by the adapters.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)

CallStatusLiteral = Literal[
    "queued",
    "initiated",
    "ringing",
    "in-progress",
    "completed",
    "busy",
    "failed",
    "no-answer",
    "canceled",
]

MessageStatusLiteral = Literal[
    "accepted",
    "scheduled",
    "queued",
    "sending",
    "sent",
    "failed",
    "delivered",
    "undelivered",
]


class _VendorModel(BaseModel):
    """Vendor payloads carry many fields we ignore."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


# =============================================================================
# Twilio
# =============================================================================


class TwilioCallResponse(_VendorModel):
    sid: str = Field(min_length=1)
    status: CallStatusLiteral


class TwilioMessageResponse(_VendorModel):
    sid: str = Field(min_length=1)
    status: MessageStatusLiteral


class TwilioAccountResponse(_VendorModel):
    sid: str = Field(min_length=1)
    status: str | None = None


# =============================================================================
# Exotel
# =============================================================================


class ExotelCall(_VendorModel):
    Sid: str = Field(min_length=1)
    Status: CallStatusLiteral


class ExotelCallResponse(_VendorModel):
    Call: ExotelCall


class ExotelMessage(_VendorModel):
    Sid: str = Field(min_length=1)
    Status: MessageStatusLiteral


class ExotelSmsResponse(_VendorModel):
    SMSMessage: ExotelMessage


# =============================================================================
# Webhooks
# =============================================================================


class CallWebhookPayload(_VendorModel):
    """Call status callback (Twilio and Exotel share field names)."""

    CallSid: str = Field(min_length=1)
    CallStatus: str = Field(min_length=1)
    CallDuration: str | int | None = None
    From: str | None = None
    To: str | None = None
    Direction: str | None = None
    StartTime: str | None = None
    EndTime: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _accept_exotel_status(cls, data: Any) -> Any:
        # Exotel passthru callbacks send Status instead of CallStatus
        if isinstance(data, Mapping) and not data.get("CallStatus") and data.get("Status"):
            data = {**data, "CallStatus": data["Status"]}
        return data


class SmsWebhookPayload(_VendorModel):
    """SMS delivery callback.

    Twilio sends MessageSid/MessageStatus (with legacy SmsSid/SmsStatus
    aliases); Exotel sends SmsSid/Status.
    """

    MessageSid: str = Field(min_length=1)
    MessageStatus: str = Field(min_length=1)
    From: str | None = None
    To: str | None = None
    ErrorCode: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_aliases(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        data = dict(data)
        if not data.get("MessageSid") and data.get("SmsSid"):
            data["MessageSid"] = data["SmsSid"]
        if not data.get("MessageStatus"):
            status = data.get("SmsStatus") or data.get("Status")
            if status:
                data["MessageStatus"] = status
        if data.get("ErrorCode") is not None:
            data["ErrorCode"] = str(data["ErrorCode"])
        return data


# =============================================================================
# Validation entry point
# =============================================================================


@dataclass
class ValidationResult(Generic[ModelT]):
    """Outcome of a shape check."""

    is_valid: bool
    value: ModelT | None = None
    error: str | None = None


def validate_payload(model: type[ModelT], data: Any) -> ValidationResult[ModelT]:
    """Validate vendor data against a model.

    Never raises; a mismatch is reported in the result.

    Args:
        model: Expected shape
        data: Decoded vendor JSON or form data

    Returns:
        Result holding the parsed model or a readable error
    """
    if not isinstance(data, Mapping):
        return ValidationResult(is_valid=False, error="Payload is not an object")
    try:
        value = model.model_validate(dict(data))
    except PydanticValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(loc) for loc in err['loc']) or 'payload'}: {err['msg']}"
            for err in e.errors()
        )
        return ValidationResult(is_valid=False, error=errors)
    return ValidationResult(is_valid=True, value=value)
