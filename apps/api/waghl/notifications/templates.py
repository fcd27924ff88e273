from __future__ import annotations

from datetime import datetime
from html import escape


def _greeting_name(business_name: str | None) -> str:
    return (business_name or "").strip() or "there"


def _day_label(days: int) -> str:
    return "1 day" if days == 1 else f"{days} days"


def trial_expiring_email(
    *,
    business_name: str | None,
    days_left: int,
    trial_ends_at: datetime,
    upgrade_url: str,
) -> dict[str, str]:
    name = _greeting_name(business_name)
    ends_on = trial_ends_at.strftime("%Y-%m-%d")
    remaining = _day_label(days_left)

    subject = f"Your free trial ends in {remaining}"
    text = "\n".join(
        [
            f"Hi {name},",
            "",
            f"Your WhatsApp GHL trial ends on {ends_on} ({remaining} left).",
            "Upgrade now to keep your WhatsApp numbers connected to GoHighLevel.",
            "",
            f"Upgrade: {upgrade_url}",
        ]
    )
    html = (
        "<html><body>"
        f"<p>Hi {escape(name)},</p>"
        f"<p>Your WhatsApp GHL trial ends on <strong>{ends_on}</strong> ({remaining} left).</p>"
        "<p>Upgrade now to keep your WhatsApp numbers connected to GoHighLevel.</p>"
        f'<p><a href="{escape(upgrade_url)}">Upgrade your plan</a></p>'
        "</body></html>"
    )
    return {"subject": subject, "html": html, "text": text}


def trial_expired_email(*, business_name: str | None, upgrade_url: str) -> dict[str, str]:
    name = _greeting_name(business_name)
    subject = "Your free trial has expired"
    text = "\n".join(
        [
            f"Hi {name},",
            "",
            "Your WhatsApp GHL trial has expired and messaging is paused.",
            "Choose a plan to reactivate your subaccounts.",
            "",
            f"Upgrade: {upgrade_url}",
        ]
    )
    html = (
        "<html><body>"
        f"<p>Hi {escape(name)},</p>"
        "<p>Your WhatsApp GHL trial has expired and messaging is paused.</p>"
        "<p>Choose a plan to reactivate your subaccounts.</p>"
        f'<p><a href="{escape(upgrade_url)}">Upgrade your plan</a></p>'
        "</body></html>"
    )
    return {"subject": subject, "html": html, "text": text}


def welcome_email(
    *,
    business_name: str | None,
    email: str,
    password: str,
    login_url: str,
    trial_ends_at: datetime | None,
) -> dict[str, str]:
    name = _greeting_name(business_name)
    trial_line = f"Your free trial runs until {trial_ends_at.strftime('%Y-%m-%d')}." if trial_ends_at else None

    subject = "Welcome to WhatsApp GHL - your account is ready"
    lines = [
        f"Hi {name},",
        "",
        "Your WhatsApp GHL account has been created.",
        f"Email: {email}",
        f"Temporary password: {password}",
    ]
    if trial_line:
        lines.append(trial_line)
    lines.extend(["", f"Sign in: {login_url}", "Please change your password after the first sign-in."])

    parts = [
        "<html><body>",
        f"<p>Hi {escape(name)},</p>",
        "<p>Your WhatsApp GHL account has been created.</p>",
        f"<p>Email: <strong>{escape(email)}</strong><br>",
        f"Temporary password: <strong>{escape(password)}</strong></p>",
    ]
    if trial_line:
        parts.append(f"<p>{escape(trial_line)}</p>")
    parts.extend(
        [
            f'<p><a href="{escape(login_url)}">Sign in</a></p>',
            "<p>Please change your password after the first sign-in.</p>",
            "</body></html>",
        ]
    )
    return {"subject": subject, "html": "".join(parts), "text": "\n".join(lines)}
