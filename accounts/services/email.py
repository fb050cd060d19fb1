"""Outgoing email over SMTP."""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from accounts.config import get_settings
from accounts.exceptions import DeliveryError

logger = logging.getLogger("accounts")


class EmailService:
    """Sends transactional mail. Without SMTP_HOST, messages are logged instead of sent."""

    def __init__(self) -> None:
        settings = get_settings()
        self.host = settings.SMTP_HOST
        self.port = settings.SMTP_PORT
        self.username = settings.SMTP_USERNAME
        self.password = settings.SMTP_PASSWORD
        self.use_tls = settings.SMTP_USE_TLS
        self.sender = settings.EMAIL_FROM
        self.reset_expire_minutes = settings.PASSWORD_RESET_EXPIRE_MINUTES

    def send(self, recipient: str, subject: str, html: str) -> None:
        """Send one HTML message. Raises DeliveryError if the SMTP exchange fails."""
        if not self.host:
            logger.warning("SMTP not configured, not sending '%s' to %s:\n%s", subject, recipient, html)
            return

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = recipient
        msg.attach(MIMEText(html, "html"))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=30) as server:
                if self.use_tls:
                    server.starttls()
                if self.username:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send '%s' to %s: %s", subject, recipient, e)
            raise DeliveryError() from e

        logger.info("Email '%s' sent to %s", subject, recipient)

    def send_password_reset(self, recipient: str, reset_url: str) -> None:
        """Email a password reset link."""
        subject = f"Your password reset token (valid for {self.reset_expire_minutes} min)"
        html = (
            "<h1>Click on the link to reset your password</h1><br>"
            f"<a href='{reset_url}'>Reset-Password</a>"
            "<p>If you didn't forget your password, please ignore this email!</p>"
        )
        self.send(recipient, subject, html)


_email_service: EmailService | None = None


def get_email_service() -> EmailService:
    """Get singleton email service instance."""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
