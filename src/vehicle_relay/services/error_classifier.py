"""Provider error classification.

Maps any raw provider error to a fixed category and retry policy. The
decision table is ordered; the first matching rule wins:

1. quota/limit wording or HTTP 429     -> quota_exceeded (retry after 1h)
2. auth/unauthorized wording, 401/403  -> authentication_failed
3. "invalid" and "number" in message   -> invalid_number
4. HTTP >= 500, unavailable/timeout    -> service_unavailable (retry after 60s)
5. anything else                       -> unknown

``classify_error`` is pure: no I/O, no logging, same input same output.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from vehicle_relay.integrations.telephony.base import ProviderFailure, ProviderId

QUOTA_RETRY_AFTER_SECONDS = 3600
UNAVAILABLE_RETRY_AFTER_SECONDS = 60


class ErrorCategory(str, Enum):
    """Classified provider error kinds."""

    QUOTA_EXCEEDED = "quota_exceeded"
    AUTHENTICATION_FAILED = "authentication_failed"
    INVALID_NUMBER = "invalid_number"
    SERVICE_UNAVAILABLE = "service_unavailable"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ServiceError:
    """A classified provider error."""

    provider: ProviderId
    category: ErrorCategory
    message: str
    should_retry: bool
    retry_after_seconds: int | None = None

    def describe(self) -> str:
        """One-line cause for outcome messages, e.g. ``twilio: quota_exceeded (...)``."""
        return f"{self.provider.value}: {self.category.value} ({self.message})"

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider.value,
            "category": self.category.value,
            "message": self.message,
            "should_retry": self.should_retry,
            "retry_after_seconds": self.retry_after_seconds,
        }


@dataclass(frozen=True)
class _RawError:
    message: str
    code: str
    status: int


def _coerce_status(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _extract(raw_error: Any) -> _RawError:
    """Pull message, vendor code and HTTP status out of any error shape."""
    if isinstance(raw_error, ProviderFailure):
        message = raw_error.message
        if raw_error.timed_out and "timeout" not in message.lower():
            message = f"{message} (timeout)"
        return _RawError(message, raw_error.code or "", raw_error.status_code or 0)

    if isinstance(raw_error, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException)):
        return _RawError(str(raw_error) or "Request timeout", "", 0)

    if isinstance(raw_error, httpx.HTTPStatusError):
        return _RawError(str(raw_error), "", raw_error.response.status_code)

    if isinstance(raw_error, BaseException):
        status = getattr(raw_error, "status_code", None) or getattr(raw_error, "status", None)
        code = getattr(raw_error, "code", None) or getattr(raw_error, "error_code", None)
        message = getattr(raw_error, "message", None) or str(raw_error)
        return _RawError(
            str(message) or type(raw_error).__name__,
            str(code) if code is not None else "",
            _coerce_status(status),
        )

    if isinstance(raw_error, Mapping):
        message = raw_error.get("message") or raw_error.get("error") or "Unknown error"
        code = raw_error.get("code") or raw_error.get("error_code") or ""
        status = raw_error.get("status") or raw_error.get("status_code") or 0
        return _RawError(str(message), str(code), _coerce_status(status))

    if raw_error is None:
        return _RawError("Unknown error", "", 0)

    return _RawError(str(raw_error) or "Unknown error", "", 0)


def classify_error(provider: ProviderId, raw_error: Any) -> ServiceError:
    """Classify a raw provider error.

    Args:
        provider: Provider that produced the error
        raw_error: ProviderFailure, exception, mapping or string

    Returns:
        Classified error with retry policy
    """
    raw = _extract(raw_error)
    message = raw.message.lower()
    code = raw.code.lower()

    if (
        "quota" in message
        or "limit" in message
        or "too many requests" in message
        or "quota" in code
        or "limit" in code
        or raw.status == 429
    ):
        return ServiceError(
            provider=provider,
            category=ErrorCategory.QUOTA_EXCEEDED,
            message=raw.message,
            should_retry=True,
            retry_after_seconds=QUOTA_RETRY_AFTER_SECONDS,
        )

    if "auth" in message or "unauthorized" in message or raw.status in (401, 403):
        return ServiceError(
            provider=provider,
            category=ErrorCategory.AUTHENTICATION_FAILED,
            message=raw.message,
            should_retry=False,
        )

    if "invalid" in message and "number" in message:
        return ServiceError(
            provider=provider,
            category=ErrorCategory.INVALID_NUMBER,
            message=raw.message,
            should_retry=False,
        )

    if (
        raw.status >= 500
        or "unavailable" in message
        or "timeout" in message
        or "timed out" in message
    ):
        return ServiceError(
            provider=provider,
            category=ErrorCategory.SERVICE_UNAVAILABLE,
            message=raw.message,
            should_retry=True,
            retry_after_seconds=UNAVAILABLE_RETRY_AFTER_SECONDS,
        )

    return ServiceError(
        provider=provider,
        category=ErrorCategory.UNKNOWN,
        message=raw.message,
        should_retry=False,
    )
