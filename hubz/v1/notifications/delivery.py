"""
Outgoing email delivery backends.

Backends are registered by name in ``email_sender_registry`` and selected with
the EMAIL_BACKEND setting.
"""

import asyncio
from dataclasses import dataclass
from typing import Any

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from hubz.config.logging import get_logger
from hubz.config.settings import Settings
from hubz.v1.core.exceptions import EmailDeliveryError
from hubz.v1.core.registries import EmailSender, email_sender_registry

logger = get_logger(__name__)


@dataclass(frozen=True)
class OutgoingEmail:
    to: str
    subject: str
    body: str
    category: str = "notification"


class ConsoleEmailSender:
    """Logs messages instead of sending them. Development only."""

    async def send(self, message: OutgoingEmail) -> None:
        logger.info(
            "Email (console backend)",
            to=message.to,
            subject=message.subject,
            category=message.category,
            body=message.body,
        )


class SendGridEmailSender:
    """Sends plain-text messages through the SendGrid v3 API."""

    def __init__(self, api_key: str, from_email: str, client: Any | None = None):
        self.from_email = from_email
        self.client = client or SendGridAPIClient(api_key)

    async def send(self, message: OutgoingEmail) -> None:
        mail = Mail(
            from_email=self.from_email,
            to_emails=message.to,
            subject=message.subject,
            plain_text_content=message.body,
        )

        # The SendGrid client is synchronous
        try:
            response = await asyncio.to_thread(self.client.send, mail)
        except Exception as exc:
            status_code = getattr(exc, "status_code", None)
            raise EmailDeliveryError(
                f"SendGrid request failed: {exc}",
                {"status_code": status_code, "category": message.category},
            ) from exc

        status_code = getattr(response, "status_code", None)
        if not isinstance(status_code, int) or status_code >= 400:
            raise EmailDeliveryError(
                f"SendGrid API responded with status {status_code}",
                {"status_code": status_code, "category": message.category},
            )

        logger.info(
            "Email sent",
            to=message.to,
            category=message.category,
            status_code=status_code,
        )


def _console_sender(settings: Settings) -> EmailSender:
    return ConsoleEmailSender()


def _sendgrid_sender(settings: Settings) -> EmailSender:
    if not settings.sendgrid_api_key:
        raise EmailDeliveryError("SENDGRID_API_KEY is not configured")
    return SendGridEmailSender(settings.sendgrid_api_key, settings.email_from)


def register_email_senders() -> None:
    """Register the built-in email backends."""
    if email_sender_registry.is_frozen():
        return
    email_sender_registry.register("console", _console_sender)
    email_sender_registry.register("sendgrid", _sendgrid_sender)


def build_email_sender(settings: Settings) -> EmailSender:
    """Build the sender selected by EMAIL_BACKEND."""
    factory = email_sender_registry.get(settings.email_backend.value)
    return factory(settings)


register_email_senders()
