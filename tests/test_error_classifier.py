"""Tests for provider error classification."""

import asyncio

import httpx
import pytest

from vehicle_relay.core.retry import ALERT_RETRY_CONFIG, DISPATCH_RETRY_CONFIG, RetryConfig
from vehicle_relay.integrations.telephony.base import ProviderFailure, ProviderId
from vehicle_relay.services.error_classifier import (
    ErrorCategory,
    QUOTA_RETRY_AFTER_SECONDS,
    UNAVAILABLE_RETRY_AFTER_SECONDS,
    classify_error,
)

TWILIO = ProviderId.TWILIO
EXOTEL = ProviderId.EXOTEL


class TestClassifyError:
    """Test the ordered classification rules."""

    @pytest.mark.parametrize(
        "raw",
        [
            ProviderFailure(message="Too many requests", status_code=429),
            ProviderFailure(message="Daily quota exhausted"),
            ProviderFailure(message="Rejected", code="RATE_LIMIT"),
            {"message": "nope", "status": 429},
            "SMS limit reached for account",
        ],
    )
    def test_quota_exceeded(self, raw):
        error = classify_error(TWILIO, raw)
        assert error.category is ErrorCategory.QUOTA_EXCEEDED
        assert error.should_retry is True
        assert error.retry_after_seconds == QUOTA_RETRY_AFTER_SECONDS

    @pytest.mark.parametrize(
        "raw",
        [
            ProviderFailure(message="Authentication Error", status_code=401),
            ProviderFailure(message="Forbidden", status_code=403),
            {"error": "Unauthorized request"},
        ],
    )
    def test_authentication_failed(self, raw):
        error = classify_error(EXOTEL, raw)
        assert error.category is ErrorCategory.AUTHENTICATION_FAILED
        assert error.should_retry is False
        assert error.retry_after_seconds is None

    def test_invalid_number(self):
        error = classify_error(TWILIO, ProviderFailure("Invalid 'To' phone number", status_code=400))
        assert error.category is ErrorCategory.INVALID_NUMBER
        assert error.should_retry is False

    @pytest.mark.parametrize(
        "raw",
        [
            ProviderFailure(message="Internal error", status_code=500),
            ProviderFailure(message="Bad gateway", status_code=502),
            ProviderFailure(message="Service Unavailable"),
            ProviderFailure(message="Request timeout", timed_out=True),
            ProviderFailure(message="no response", timed_out=True),
            asyncio.TimeoutError(),
            httpx.ReadTimeout("timed out"),
            "connection timed out",
        ],
    )
    def test_service_unavailable(self, raw):
        error = classify_error(EXOTEL, raw)
        assert error.category is ErrorCategory.SERVICE_UNAVAILABLE
        assert error.should_retry is True
        assert error.retry_after_seconds == UNAVAILABLE_RETRY_AFTER_SECONDS

    @pytest.mark.parametrize(
        "raw",
        [ProviderFailure(message="Something odd", status_code=400), "boom", None, ValueError("x")],
    )
    def test_unknown(self, raw):
        error = classify_error(TWILIO, raw)
        assert error.category is ErrorCategory.UNKNOWN
        assert error.should_retry is False

    def test_first_matching_rule_wins(self):
        # 401 with quota wording: quota rule is checked first
        error = classify_error(TWILIO, ProviderFailure("Quota exceeded", status_code=401))
        assert error.category is ErrorCategory.QUOTA_EXCEEDED

        # 503 with invalid number wording: invalid number is checked before 5xx
        error = classify_error(TWILIO, ProviderFailure("Invalid number", status_code=503))
        assert error.category is ErrorCategory.INVALID_NUMBER

    def test_status_codes_dominate_unrelated_wording(self):
        for message in ("", "whatever", "ok"):
            assert classify_error(TWILIO, {"message": message, "status_code": 429}).category is (
                ErrorCategory.QUOTA_EXCEEDED
            )
            assert classify_error(TWILIO, {"message": message, "status_code": 403}).category is (
                ErrorCategory.AUTHENTICATION_FAILED
            )

    def test_exception_with_status_attribute(self):
        class VendorError(Exception):
            status_code = 429

        assert classify_error(EXOTEL, VendorError("x")).category is ErrorCategory.QUOTA_EXCEEDED

    def test_http_status_error(self):
        request = httpx.Request("POST", "https://api.exotel.com/v1/Accounts/x/Sms/send.json")
        response = httpx.Response(503, request=request)
        error = httpx.HTTPStatusError("server error", request=request, response=response)
        assert classify_error(EXOTEL, error).category is ErrorCategory.SERVICE_UNAVAILABLE

    def test_pure_and_deterministic(self):
        raw = ProviderFailure(message="Too many requests", status_code=429, code="20429")
        assert classify_error(TWILIO, raw) == classify_error(TWILIO, raw)

    def test_describe_names_provider_and_category(self):
        error = classify_error(TWILIO, ProviderFailure("Authentication Error", status_code=401))
        assert error.describe() == "twilio: authentication_failed (Authentication Error)"
        assert error.to_dict()["category"] == "authentication_failed"


class TestRetryConfig:
    """Test the backoff schedule."""

    def test_dispatch_schedule(self):
        assert DISPATCH_RETRY_CONFIG.schedule() == [0.0, 1.0, 2.0]

    def test_alert_schedule(self):
        assert ALERT_RETRY_CONFIG.schedule() == [0.0, 2.0, 4.0]

    def test_delay_capped(self):
        config = RetryConfig(max_attempts=6, base_delay=1.0, max_delay=5.0, backoff_multiplier=2.0)
        assert config.schedule() == [0.0, 1.0, 2.0, 4.0, 5.0, 5.0]

    def test_no_delay_before_first_attempt(self):
        assert RetryConfig(base_delay=30.0).delay_before(1) == 0.0

    @pytest.mark.parametrize(
        "kwargs",
        [{"max_attempts": 0}, {"base_delay": -1.0}, {"backoff_multiplier": 0.5}],
    )
    def test_invalid_config(self, kwargs):
        with pytest.raises(ValueError):
            RetryConfig(**kwargs)
