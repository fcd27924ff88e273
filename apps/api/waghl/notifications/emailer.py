from __future__ import annotations

import smtplib
from email.message import EmailMessage

from waghl.core.logging import get_logger
from waghl.core.settings import Settings, get_settings

logger = get_logger("notifications.emailer")
SMTP_TIMEOUT_SECONDS = 10


class EmailNotConfiguredError(RuntimeError):
    pass


class EmailSendError(RuntimeError):
    pass


def build_message(*, sender: str, to: str, subject: str, html: str, text: str) -> EmailMessage:
    message = EmailMessage()
    message["From"] = sender
    message["To"] = to
    message["Subject"] = subject
    message.set_content(text)
    message.add_alternative(html, subtype="html")
    return message


def send_email(
    *,
    to: str,
    subject: str,
    html: str,
    text: str,
    customer_id: str | None = None,
    settings: Settings | None = None,
) -> None:
    settings = settings or get_settings()
    host = (settings.SMTP_HOST or "").strip()
    sender = (settings.EMAIL_FROM or "").strip()
    if not host or not sender:
        raise EmailNotConfiguredError("SMTP transport is not configured.")

    message = build_message(sender=sender, to=to, subject=subject, html=html, text=text)
    try:
        if settings.SMTP_USE_SSL:
            with smtplib.SMTP_SSL(host=host, port=settings.SMTP_PORT, timeout=SMTP_TIMEOUT_SECONDS) as server:
                _login(server, settings)
                server.send_message(message)
        else:
            with smtplib.SMTP(host=host, port=settings.SMTP_PORT, timeout=SMTP_TIMEOUT_SECONDS) as server:
                if settings.SMTP_USE_TLS:
                    server.starttls()
                _login(server, settings)
                server.send_message(message)
    except OSError as exc:
        logger.warning(
            "notifications.email_send_failed",
            extra={"component": "notifications", "customer_id": customer_id, "email": to},
        )
        raise EmailSendError("Failed to send notification email.") from exc

    logger.info(
        "notifications.email_sent",
        extra={"component": "notifications", "customer_id": customer_id, "email": to},
    )


def _login(server: smtplib.SMTP, settings: Settings) -> None:
    username = (settings.SMTP_USERNAME or "").strip()
    if username and settings.SMTP_PASSWORD:
        server.login(username, settings.SMTP_PASSWORD)
