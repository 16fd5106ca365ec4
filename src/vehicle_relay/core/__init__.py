"""Core building blocks shared by adapters and services."""

from vehicle_relay.core.exceptions import (
    RelayError,
    ValidationError,
    OwnerLookupError,
    ConfigurationError,
    ProviderError,
    QuotaExceededError,
    WebhookParseError,
    InvalidSignatureError,
)
from vehicle_relay.core.logging import get_logger, setup_logging
from vehicle_relay.core.phone import is_valid_phone, mask_phone
from vehicle_relay.core.retry import RetryConfig

__all__ = [
    # Exceptions
    "RelayError",
    "ValidationError",
    "OwnerLookupError",
    "ConfigurationError",
    "ProviderError",
    "QuotaExceededError",
    "WebhookParseError",
    "InvalidSignatureError",
    # Logging
    "get_logger",
    "setup_logging",
    # Helpers
    "is_valid_phone",
    "mask_phone",
    "RetryConfig",
]
