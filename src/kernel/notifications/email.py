"""
Email delivery.

The identity flows depend on the EmailSender contract only. SmtpEmailSender
delivers through an SMTP relay with aiosmtplib; a failed delivery raises
DeliveryError and is never queued or retried here.
"""

from abc import ABC, abstractmethod
from email.message import EmailMessage
from functools import lru_cache

import aiosmtplib

from src.config import Settings, get_settings
from src.kernel.errors import DeliveryError
from src.logging_config import get_logger

logger = get_logger(__name__)


class EmailSender(ABC):
    """Contract for sending a plain-text email."""

    @abstractmethod
    async def send(self, to: str, subject: str, body: str) -> None:
        """
        Send an email.

        Raises:
            DeliveryError: If the message could not be handed to the mail server
        """


class SmtpEmailSender(EmailSender):
    """Sends email through an SMTP server using STARTTLS and login."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_email: str,
        use_tls: bool = True,
        timeout: int = 10,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email
        self.use_tls = use_tls
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpEmailSender":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_password.get_secret_value(),
            from_email=settings.smtp_from_email,
            use_tls=settings.smtp_use_tls,
            timeout=settings.smtp_timeout_seconds,
        )

    def build_message(self, to: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.from_email
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body, charset="utf-8")
        return message

    async def send(self, to: str, subject: str, body: str) -> None:
        message = self.build_message(to, subject, body)
        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username or None,
                password=self.password or None,
                start_tls=self.use_tls,
                timeout=self.timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.error(
                "Failed to send email via SMTP",
                extra={"smtp_host": self.host, "error": type(exc).__name__},
            )
            raise DeliveryError() from exc


@lru_cache
def get_email_sender() -> EmailSender:
    """Get the email sender configured from settings."""
    return SmtpEmailSender.from_settings(get_settings())
