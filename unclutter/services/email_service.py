"""
Outgoing email for notifications.

Uses fastapi-mail when SMTP credentials are configured; otherwise messages are
written to the log so local runs and CI never need a mail server.
"""
from __future__ import annotations
import logging
from html import escape
from typing import Optional

from fastapi_mail import ConnectionConfig, FastMail, MessageSchema, MessageType

from unclutter import config
from unclutter.services.errors import MailTransportError

logger = logging.getLogger(__name__)


class MailSender:
    def __init__(self, connection: Optional[ConnectionConfig] = None):
        self._mailer = FastMail(connection) if connection is not None else None

    async def send(self, to: str, subject: str, body_text: str, body_html: Optional[str] = None) -> None:
        """Deliver one message. Raises MailTransportError if the SMTP exchange fails."""
        if self._mailer is None:
            logger.info("Email simulation (no SMTP configured) to=%s subject=%r\n%s", to, subject, body_text)
            return

        message = MessageSchema(
            subject=subject,
            recipients=[to],
            body=body_html or body_text,
            subtype=MessageType.html if body_html else MessageType.plain,
        )
        try:
            await self._mailer.send_message(message)
        except Exception as exc:
            raise MailTransportError(f"Failed to send email to {to}: {exc}") from exc
        logger.info("Email sent to %s: %s", to, subject)


def build_mail_sender() -> MailSender:
    if not (config.MAIL_USERNAME and config.MAIL_PASSWORD):
        logger.warning("Mail credentials not found in environment. Emails will be logged, not sent.")
        return MailSender()

    connection = ConnectionConfig(
        MAIL_USERNAME=config.MAIL_USERNAME,
        MAIL_PASSWORD=config.MAIL_PASSWORD,
        MAIL_FROM=config.MAIL_FROM,
        MAIL_FROM_NAME=config.MAIL_FROM_NAME,
        MAIL_PORT=config.MAIL_PORT,
        MAIL_SERVER=config.MAIL_SERVER,
        MAIL_STARTTLS=config.MAIL_STARTTLS,
        MAIL_SSL_TLS=config.MAIL_SSL_TLS,
        USE_CREDENTIALS=True,
        VALIDATE_CERTS=True,
    )
    return MailSender(connection)


def render_notification_html(title: str, message: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f"<h2>{escape(title)}</h2><p>{escape(message)}</p>"
        "<p>Best regards,<br>The Unclutter Therapy Team</p>"
        "</div>"
    )
