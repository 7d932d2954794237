"""
Outbound notifications.
"""

from src.kernel.notifications.email import EmailSender, SmtpEmailSender, get_email_sender

__all__ = [
    "EmailSender",
    "SmtpEmailSender",
    "get_email_sender",
]
