"""Vehicle Relay Exception Hierarchy.

Provides structured error handling with context preservation
and proper HTTP status code mapping.

Dispatch and alert operations never raise these to their callers; they
report failures in their result objects. The exceptions are raised at the
edges: input validation, configuration, and the webhook surface.
"""

from __future__ import annotations

from typing import Any


class RelayError(Exception):
    """Base exception for all Vehicle Relay errors.

    Provides:
    - Structured error context
    - HTTP status code mapping
    - Logging-friendly representation
    """

    status_code: int = 500
    error_code: str = "RELAY_ERROR"

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message
            details: Additional context for debugging
            cause: Original exception if wrapping
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert to API-friendly dictionary."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        if self.cause:
            result["cause"] = str(self.cause)
        return result

    def __str__(self) -> str:
        """String representation for logging."""
        parts = [f"{self.error_code}: {self.message}"]
        if self.details:
            parts.append(f"details={self.details}")
        if self.cause:
            parts.append(f"cause={self.cause}")
        return " | ".join(parts)


# =============================================================================
# Input Errors
# =============================================================================


class ValidationError(RelayError):
    """Malformed input, rejected before any network call."""

    status_code = 400
    error_code = "VALIDATION_ERROR"


class OwnerLookupError(RelayError):
    """Vehicle or its owner could not be resolved."""

    status_code = 404
    error_code = "OWNER_LOOKUP_FAILED"


# =============================================================================
# Provider Errors
# =============================================================================


class ConfigurationError(RelayError):
    """Provider credentials or selection are incomplete."""

    status_code = 500
    error_code = "CONFIGURATION_INCOMPLETE"


class ProviderError(RelayError):
    """Call/SMS vendor returned an error."""

    status_code = 502
    error_code = "PROVIDER_ERROR"

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = dict(details or {})
        if provider:
            details["provider"] = provider
        super().__init__(message, details=details, cause=cause)
        self.provider = provider


class QuotaExceededError(ProviderError):
    """Vendor rate limit or quota exhausted."""

    status_code = 429
    error_code = "QUOTA_EXCEEDED"


# =============================================================================
# Webhook Errors
# =============================================================================


class WebhookParseError(RelayError):
    """Inbound webhook body could not be parsed."""

    status_code = 400
    error_code = "WEBHOOK_PARSE_ERROR"


class InvalidSignatureError(RelayError):
    """Webhook signature verification failed."""

    status_code = 401
    error_code = "INVALID_SIGNATURE"
