"""
Outbound email.

Sends through SMTP when `smtp_host` is configured; otherwise the message
is only logged, which is what local development and tests rely on.
"""

import asyncio
import logging
import smtplib
from email.message import EmailMessage

from civicconnect.app.core.config import settings

logger = logging.getLogger("civicconnect.email")


class EmailDeliveryError(Exception):
    pass


def _send_smtp(message: EmailMessage) -> None:
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as server:
        server.starttls()
        if settings.smtp_username and settings.smtp_password:
            server.login(settings.smtp_username, settings.smtp_password)
        server.send_message(message)


async def send_email(to: str, subject: str, body: str) -> None:
    """Deliver a plain-text email; raises EmailDeliveryError on failure."""
    if not settings.smtp_host:
        logger.info("SMTP not configured; email to %s with subject %r not sent", to, subject)
        return

    message = EmailMessage()
    message["From"] = f"CivicConnect <{settings.mail_from}>"
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body)

    try:
        await asyncio.to_thread(_send_smtp, message)
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Failed to send email to %s: %s", to, e)
        raise EmailDeliveryError(str(e)) from e
    logger.info("Email sent to %s", to)
