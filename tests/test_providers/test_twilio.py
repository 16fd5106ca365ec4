"""Tests for the Twilio adapter."""

from __future__ import annotations

import base64
import hashlib
import hmac
from urllib.parse import urlencode

import httpx
import pytest

from vehicle_relay.integrations.telephony.base import Channel, DeliveryStatus, ProviderId
from vehicle_relay.integrations.telephony.twilio import TwilioProvider

from fakes import make_response

OWNER = "+919876543210"
CALLER = "+14155550100"
WEBHOOK_URL = "https://relay.example.com/api/v1/webhooks/twilio/call"


class TestTwilioCalls:
    """Test masked call initiation."""

    @pytest.mark.asyncio
    async def test_initiate_call_success(self, twilio_provider, mock_http_client):
        mock_http_client.post.return_value = make_response(
            201, {"sid": "CA123", "status": "queued", "direction": "outbound-api"}
        )

        result = await twilio_provider.initiate_masked_call(
            CALLER, OWNER, "https://relay.example.com/api/v1/webhooks/twilio/call"
        )

        assert result.success is True
        assert result.provider is ProviderId.TWILIO
        assert result.channel is Channel.CALL
        assert result.provider_ref_id == "CA123"
        assert result.provider_status == "queued"
        assert result.status is DeliveryStatus.QUEUED

        path = mock_http_client.post.call_args.args[0]
        data = mock_http_client.post.call_args.kwargs["data"]
        assert path == "/Calls.json"
        assert data["From"] == "+14155550199"
        assert data["To"] == CALLER
        assert data["Url"] == (
            "https://relay.example.com/api/v1/calls/twilio/twiml?to=%2B919876543210"
        )
        assert data["StatusCallback"].endswith("/webhooks/twilio/call")

    @pytest.mark.asyncio
    async def test_vendor_error_detail(self, twilio_provider, mock_http_client):
        mock_http_client.post.return_value = make_response(
            429, {"code": 20429, "message": "Too Many Requests"}
        )

        result = await twilio_provider.initiate_masked_call(CALLER, OWNER)

        assert result.success is False
        assert result.status is DeliveryStatus.FAILED
        assert result.error.status_code == 429
        assert result.error.code == "20429"
        assert result.error.message == "Too Many Requests"

    @pytest.mark.asyncio
    async def test_unexpected_response_shape(self, twilio_provider, mock_http_client):
        mock_http_client.post.return_value = make_response(201, {"status": "queued"})

        result = await twilio_provider.initiate_masked_call(CALLER, OWNER)

        assert result.success is False
        assert result.error.message == "Unexpected response format from Twilio"

    @pytest.mark.asyncio
    async def test_timeout(self, twilio_provider, mock_http_client):
        mock_http_client.post.side_effect = httpx.TimeoutException("timeout")

        result = await twilio_provider.initiate_masked_call(CALLER, OWNER)

        assert result.success is False
        assert result.error.timed_out is True

    @pytest.mark.asyncio
    async def test_unconfigured_makes_no_request(self, mock_http_client):
        provider = TwilioProvider(account_sid="", auth_token="", phone_number="")

        result = await provider.initiate_masked_call(CALLER, OWNER)

        assert result.success is False
        assert "configuration incomplete" in result.error.message
        mock_http_client.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_twiml_base_url_makes_no_call(self, mock_http_client):
        provider = TwilioProvider(account_sid="AC1", auth_token="tok", phone_number="+14155550100")

        result = await provider.initiate_masked_call(CALLER, OWNER)

        assert provider.is_configured is False
        assert result.success is False
        assert "TwiML base URL" in result.error.message
        mock_http_client.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_relative_twiml_base_url_rejected(self, mock_http_client):
        provider = TwilioProvider(
            account_sid="AC1",
            auth_token="tok",
            phone_number="+14155550100",
            twiml_base_url="/relay",
        )

        result = await provider.initiate_masked_call(CALLER, OWNER)

        assert result.success is False
        mock_http_client.post.assert_not_called()


class TestTwilioSms:
    @pytest.mark.asyncio
    async def test_sms_does_not_need_twiml_base_url(self, mock_http_client):
        mock_http_client.post.return_value = make_response(201, {"sid": "SM9", "status": "queued"})
        provider = TwilioProvider(account_sid="AC1", auth_token="tok", phone_number="+14155550100")

        result = await provider.send_sms(OWNER, "Please move your vehicle.")

        assert result.success is True
        mock_http_client.post.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_send_sms_success(self, twilio_provider, mock_http_client):
        mock_http_client.post.return_value = make_response(201, {"sid": "SM123", "status": "queued"})

        result = await twilio_provider.send_sms(OWNER, "Your vehicle is blocking a driveway.")

        assert result.success is True
        assert result.channel is Channel.SMS
        assert result.provider_ref_id == "SM123"
        data = mock_http_client.post.call_args.kwargs["data"]
        assert mock_http_client.post.call_args.args[0] == "/Messages.json"
        assert data["To"] == OWNER
        assert data["Body"] == "Your vehicle is blocking a driveway."
        assert "StatusCallback" not in data

    @pytest.mark.asyncio
    async def test_invalid_number_error(self, twilio_provider, mock_http_client):
        mock_http_client.post.return_value = make_response(
            400, {"code": 21211, "message": "Invalid 'To' Phone Number"}
        )

        result = await twilio_provider.send_sms(OWNER, "hello there")

        assert result.success is False
        assert "21211" in str(result.error)


class TestTwilioTwiml:
    def test_generate_twiml(self, twilio_provider):
        twiml = twilio_provider.generate_twiml(OWNER)

        assert twiml.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        assert '<Dial timeout="30" callerId="+14155550199">' in twiml
        assert f"<Number>{OWNER}</Number>" in twiml
        assert twiml.count("<Say") == 2


class TestTwilioWebhooks:
    """Test status callback parsing and signatures."""

    def test_parse_call_webhook_form(self, twilio_provider):
        body = urlencode({
            "CallSid": "CA123",
            "CallStatus": "completed",
            "CallDuration": "42",
            "From": "+14155550199",
            "To": CALLER,
        })

        event = twilio_provider.parse_webhook(body)

        assert event is not None
        assert event.channel is Channel.CALL
        assert event.provider_ref_id == "CA123"
        assert event.status is DeliveryStatus.COMPLETED
        assert event.duration_seconds == 42

    def test_parse_sms_webhook_mapping(self, twilio_provider):
        event = twilio_provider.parse_webhook(
            {"MessageSid": "SM1", "MessageStatus": "undelivered", "ErrorCode": 30003}
        )

        assert event.channel is Channel.SMS
        assert event.status is DeliveryStatus.UNDELIVERED
        assert event.error_code == "30003"

    def test_parse_unknown_status(self, twilio_provider):
        event = twilio_provider.parse_webhook({"CallSid": "CA1", "CallStatus": "teleported"})
        assert event.status is DeliveryStatus.UNKNOWN
        assert event.raw_status == "teleported"

    @pytest.mark.parametrize("body", [{}, "", "{}", "not json", b"\xff\xfe", "{broken"])
    def test_malformed_returns_none(self, twilio_provider, body):
        assert twilio_provider.parse_webhook(body) is None

    def test_signature_roundtrip_form(self, twilio_provider):
        params = {"CallSid": "CA123", "CallStatus": "ringing", "To": CALLER}
        expected = base64.b64encode(
            hmac.new(
                b"test_auth_token",
                (WEBHOOK_URL + "CallSidCA123CallStatusringingTo" + CALLER).encode(),
                hashlib.sha1,
            ).digest()
        ).decode()

        body = urlencode(params)
        assert twilio_provider.compute_signature(body, WEBHOOK_URL) == expected
        assert twilio_provider.validate_signature(body, expected, WEBHOOK_URL)
        assert twilio_provider.validate_signature(params, "sha1=" + expected, WEBHOOK_URL)

    def test_signature_rejected(self, twilio_provider):
        body = urlencode({"CallSid": "CA123", "CallStatus": "ringing"})
        assert not twilio_provider.validate_signature(body, "bogus", WEBHOOK_URL)
        assert not twilio_provider.validate_signature(body, None, WEBHOOK_URL)
        # Signed for a different URL
        signature = twilio_provider.compute_signature(body, WEBHOOK_URL)
        assert not twilio_provider.validate_signature(body, signature, WEBHOOK_URL + "x")

    def test_signature_without_token_rejected(self, mock_http_client):
        provider = TwilioProvider(account_sid="AC1", auth_token="", phone_number="+14155550199")
        assert not provider.validate_signature("a=b", "anything", WEBHOOK_URL)


class TestTwilioHealth:
    @pytest.mark.asyncio
    async def test_healthy(self, twilio_provider, mock_http_client):
        mock_http_client.get.return_value = make_response(200, {"sid": "AC123456789", "status": "active"})

        health = await twilio_provider.check_health()

        assert health.healthy is True
        assert mock_http_client.get.call_args.args[0].endswith("/Accounts/AC123456789.json")

    @pytest.mark.asyncio
    async def test_unhealthy_status(self, twilio_provider, mock_http_client):
        mock_http_client.get.return_value = make_response(401, {"message": "Authenticate"})

        health = await twilio_provider.check_health()

        assert health.healthy is False
        assert "401" in health.message

    @pytest.mark.asyncio
    async def test_unconfigured(self, mock_http_client):
        provider = TwilioProvider(account_sid="", auth_token="", phone_number="")

        health = await provider.check_health()

        assert health.healthy is False
        assert health.message == "Twilio configuration incomplete"
        mock_http_client.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_twiml_base_url_unhealthy(self, mock_http_client):
        provider = TwilioProvider(account_sid="AC1", auth_token="tok", phone_number="+14155550100")

        health = await provider.check_health()

        assert health.healthy is False
        assert "TwiML base URL" in health.message
        assert provider.get_info().configured is False
        mock_http_client.get.assert_not_called()

    def test_info_hides_credentials(self, twilio_provider):
        info = twilio_provider.get_info().to_dict()
        assert info["masked_number"] == "********0199"
        assert info["configured"] is True
        assert "test_auth_token" not in str(info)

    @pytest.mark.asyncio
    async def test_close(self, twilio_provider, mock_http_client):
        async with twilio_provider:
            pass
        mock_http_client.aclose.assert_awaited_once()
