"""Outgoing email — SMTP sender plus an in-memory sender for tests."""

import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Optional

import structlog
from fastapi import Depends

from config import Settings, get_settings

logger = structlog.get_logger(__name__)


class EmailSendError(Exception):
    pass


class EmailSender(ABC):
    """Abstract interface for email dispatch."""

    @abstractmethod
    def send(
        self,
        to: str,
        subject: str,
        body: str,
        html_body: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> str:
        """Send a message and return its Message-ID. Raises EmailSendError on failure."""
        ...


class SmtpEmailSender(EmailSender):
    def __init__(self, settings: Settings):
        self.settings = settings

    def send(self, to, subject, body, html_body=None, reply_to=None) -> str:
        settings = self.settings
        if not settings.email_user or not settings.email_pass:
            raise EmailSendError("Email credentials not configured")

        msg = EmailMessage()
        msg["From"] = settings.email_user
        msg["To"] = to
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid()
        if reply_to:
            msg["Reply-To"] = reply_to
        msg.set_content(body)
        if html_body:
            msg.add_alternative(html_body, subtype="html")

        try:
            with smtplib.SMTP(settings.email_host, settings.email_port, timeout=30) as smtp:
                smtp.starttls()
                smtp.login(settings.email_user, settings.email_pass)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("email_send_failed", to=to, subject=subject, error=str(exc))
            raise EmailSendError(str(exc)) from exc

        logger.info("email_sent", to=to, subject=subject, message_id=msg["Message-ID"])
        return msg["Message-ID"]


class FakeEmailSender(EmailSender):
    """Email sender that records messages in memory for test assertions."""

    def __init__(self):
        self.sent_emails: list = []
        self.should_succeed = True

    def send(self, to, subject, body, html_body=None, reply_to=None) -> str:
        if not self.should_succeed:
            raise EmailSendError("Email delivery failed")
        message_id = f"<fake-{len(self.sent_emails) + 1}@localhost>"
        self.sent_emails.append(
            {
                "message_id": message_id,
                "to": to,
                "subject": subject,
                "body": body,
                "html_body": html_body,
                "reply_to": reply_to,
            }
        )
        return message_id


def get_mailer(settings: Settings = Depends(get_settings)) -> EmailSender:
    return SmtpEmailSender(settings)
