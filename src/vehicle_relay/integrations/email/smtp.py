"""SMTP mailer for administrator notifications.

Plain-text SMTP sending using aiosmtplib for async support.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate, make_msgid

import aiosmtplib

from vehicle_relay.core.logging import get_logger

log = get_logger(__name__)


@dataclass
class MailResult:
    """Result of an email send."""

    success: bool
    message_id: str | None = None
    error_message: str | None = None


class SMTPMailer:
    """Minimal SMTP mailer.

    Attributes:
        host: SMTP server hostname
        port: SMTP server port (25, 465, 587)
        username: SMTP authentication username
        password: SMTP authentication password
        use_tls: Use STARTTLS encryption
        use_ssl: Use SSL/TLS connection
        from_email: Sender address
    """

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        use_ssl: bool = False,
        from_email: str = "relay@localhost",
        from_name: str = "Vehicle Relay",
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.use_ssl = use_ssl
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout

    async def send(self, to: list[str], subject: str, body: str) -> MailResult:
        """Send a plain-text email.

        Args:
            to: Recipient addresses
            subject: Subject line
            body: Plain-text body

        Returns:
            Result with success status
        """
        if not to:
            return MailResult(success=False, error_message="No recipients")

        mime_msg = MIMEText(body, "plain", "utf-8")
        mime_msg["Subject"] = subject
        mime_msg["From"] = formataddr((self.from_name, self.from_email))
        mime_msg["To"] = ", ".join(to)
        mime_msg["Date"] = formatdate(localtime=True)
        mime_msg["Message-ID"] = make_msgid(domain=self.from_email.split("@")[-1])

        try:
            async with aiosmtplib.SMTP(
                hostname=self.host,
                port=self.port,
                use_tls=self.use_ssl,
                start_tls=False,
                timeout=self.timeout,
            ) as smtp:
                if self.use_tls and not self.use_ssl:
                    await smtp.starttls()

                if self.username and self.password:
                    await smtp.login(self.username, self.password)

                await smtp.send_message(mime_msg)

        except aiosmtplib.SMTPAuthenticationError as e:
            log.error("SMTP authentication failed", error=str(e))
            return MailResult(success=False, error_message="Authentication failed")

        except aiosmtplib.SMTPException as e:
            log.error("SMTP error", error=str(e))
            return MailResult(success=False, error_message=str(e))

        except (asyncio.TimeoutError, OSError) as e:
            log.error("SMTP connection failed", host=self.host, error=str(e))
            return MailResult(success=False, error_message=str(e) or "Connection timeout")

        message_id = mime_msg["Message-ID"]
        log.info("Email sent via SMTP", message_id=message_id, recipients=len(to), subject=subject)
        return MailResult(success=True, message_id=message_id)
