"""Tests for SMTP admin notifications."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import aiosmtplib
import pytest

from vehicle_relay.integrations.email.smtp import MailResult, SMTPMailer
from vehicle_relay.services.collaborators import EmailAdminNotifier


@pytest.fixture
def mock_smtp():
    """Mock aiosmtplib.SMTP used as an async context manager."""
    with patch("aiosmtplib.SMTP") as smtp_class:
        smtp = MagicMock()
        smtp.starttls = AsyncMock()
        smtp.login = AsyncMock()
        smtp.send_message = AsyncMock()
        smtp_class.return_value.__aenter__ = AsyncMock(return_value=smtp)
        smtp_class.return_value.__aexit__ = AsyncMock(return_value=False)
        yield smtp_class, smtp


@pytest.fixture
def mailer():
    return SMTPMailer(
        host="smtp.example.com",
        username="relay",
        password="secret",
        from_email="relay@example.com",
    )


class TestSMTPMailer:
    @pytest.mark.asyncio
    async def test_send(self, mailer, mock_smtp):
        smtp_class, smtp = mock_smtp

        result = await mailer.send(["ops@example.com"], "Quota", "Twilio quota exceeded")

        assert result.success is True
        assert result.message_id.endswith("@example.com>")
        assert smtp_class.call_args.kwargs["hostname"] == "smtp.example.com"
        smtp.starttls.assert_awaited_once()
        smtp.login.assert_awaited_once_with("relay", "secret")
        message = smtp.send_message.call_args.args[0]
        assert message["Subject"] == "Quota"
        assert message["To"] == "ops@example.com"

    @pytest.mark.asyncio
    async def test_ssl_skips_starttls(self, mock_smtp):
        _, smtp = mock_smtp
        mailer = SMTPMailer(host="smtp.example.com", port=465, use_ssl=True)

        result = await mailer.send(["ops@example.com"], "s", "b")

        assert result.success is True
        smtp.starttls.assert_not_awaited()
        smtp.login.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_recipients(self, mailer, mock_smtp):
        smtp_class, _ = mock_smtp

        result = await mailer.send([], "s", "b")

        assert result.success is False
        smtp_class.assert_not_called()

    @pytest.mark.asyncio
    async def test_auth_failure(self, mailer, mock_smtp):
        _, smtp = mock_smtp
        smtp.login.side_effect = aiosmtplib.SMTPAuthenticationError(535, "bad credentials")

        result = await mailer.send(["ops@example.com"], "s", "b")

        assert result.success is False
        assert result.error_message == "Authentication failed"

    @pytest.mark.asyncio
    async def test_connection_error(self, mailer, mock_smtp):
        smtp_class, _ = mock_smtp
        smtp_class.return_value.__aenter__.side_effect = OSError("connection refused")

        result = await mailer.send(["ops@example.com"], "s", "b")

        assert result.success is False
        assert "connection refused" in result.error_message


class TestEmailAdminNotifier:
    @pytest.mark.asyncio
    async def test_notify(self):
        mailer = MagicMock()
        mailer.send = AsyncMock(return_value=MailResult(success=True, message_id="<1@x>"))
        notifier = EmailAdminNotifier(mailer, ["ops@example.com", "oncall@example.com"])

        await notifier.notify("subject", "body")

        mailer.send.assert_awaited_once_with(
            ["ops@example.com", "oncall@example.com"], "subject", "body"
        )

    @pytest.mark.asyncio
    async def test_failed_send_raises(self):
        mailer = MagicMock()
        mailer.send = AsyncMock(return_value=MailResult(success=False, error_message="down"))
        notifier = EmailAdminNotifier(mailer, ["ops@example.com"])

        with pytest.raises(RuntimeError, match="down"):
            await notifier.notify("subject", "body")
