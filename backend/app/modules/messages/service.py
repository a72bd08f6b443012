"""Notification email: founder messages relayed to the platform inbox over SMTP."""

from __future__ import annotations

import asyncio
import smtplib
from email.message import EmailMessage
from email.utils import formataddr

import structlog

from app.core.config import settings
from app.core.errors import ConfigurationError, UpstreamError

logger = structlog.get_logger()

FOOTER = "This message was sent via Pitch Fork platform."


def build_message(
    sender_name: str,
    company_name: str,
    title: str,
    detail: str,
) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = formataddr((sender_name, settings.mail_username))
    msg["To"] = settings.mail_recipient
    msg["Reply-To"] = settings.mail_reply_to
    msg["Subject"] = title
    msg.set_content(
        f"From: {sender_name}\n"
        f"Company: {company_name}\n"
        f"Reply-To: {settings.mail_reply_to}\n"
        f"\n"
        f"Message:\n"
        f"{detail}\n"
        f"\n"
        f"---\n"
        f"{FOOTER}"
    )
    return msg


def _deliver(msg: EmailMessage) -> None:
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=settings.smtp_timeout_s) as server:
        server.starttls()
        server.login(settings.mail_username, settings.mail_password)
        server.send_message(msg)


async def send_message_email(
    sender_name: str,
    company_name: str,
    title: str,
    detail: str,
) -> None:
    """Send one message; SMTP runs in a worker thread."""
    if not settings.mail_username or not settings.mail_password or not settings.mail_recipient:
        raise ConfigurationError("Email credentials not configured")

    msg = build_message(sender_name, company_name, title, detail)
    try:
        await asyncio.to_thread(_deliver, msg)
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("SMTP delivery failed", error=str(exc))
        raise UpstreamError("Failed to send email", details=str(exc)) from exc

    logger.info("Message email sent", company=company_name, sender=sender_name)
