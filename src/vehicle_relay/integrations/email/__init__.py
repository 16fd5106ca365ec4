"""Email delivery for administrator notifications."""

from vehicle_relay.integrations.email.smtp import MailResult, SMTPMailer

__all__ = ["MailResult", "SMTPMailer"]
