from __future__ import annotations

import logging
import smtplib
from collections.abc import Mapping
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from markupsafe import escape

logger = logging.getLogger(__name__)


def send_email(config: Mapping[str, Any], to: str, subject: str, body: str, html: str | None = None) -> tuple[bool, str]:
    """
    Send a plain-text (optionally multipart/alternative) email over SMTP.

    Returns (ok, message). A missing SMTP configuration is reported, not raised, so callers
    can treat notification mail as best-effort.
    """
    server = (config.get("SMTP_SERVER") or "").strip()
    email_from = (config.get("EMAIL_FROM") or "").strip()
    if not server:
        return False, "SMTP server not configured (SMTP_SERVER missing)"
    if not email_from:
        return False, "Email from address not configured (EMAIL_FROM missing)"
    if not to:
        return False, "No recipient"

    if html:
        msg: MIMEMultipart | MIMEText = MIMEMultipart("alternative")
        msg.attach(MIMEText(body, "plain"))
        msg.attach(MIMEText(html, "html"))
    else:
        msg = MIMEText(body, "plain")
    msg["Subject"] = subject
    msg["From"] = email_from
    msg["To"] = to

    username = (config.get("SMTP_USERNAME") or "").strip()
    password = config.get("SMTP_PASSWORD") or ""
    try:
        with smtplib.SMTP(server, int(config.get("SMTP_PORT") or 587), timeout=15) as smtp:
            if config.get("SMTP_USE_TLS", True):
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)
    except smtplib.SMTPAuthenticationError as e:
        logger.error("SMTP authentication failed: %s", e)
        return False, f"SMTP authentication failed: {e}"
    except (smtplib.SMTPException, OSError) as e:
        logger.error("SMTP error sending to %s: %s", to, e)
        return False, f"SMTP error: {e}"

    logger.info("Sent email to %s with subject: %s", to, subject)
    return True, "sent"


def registration_notice(user_name: str, user_email: str, role: str, phone: str | None, login_url: str) -> tuple[str, str, str]:
    """Subject, text body and HTML body for the new-signup admin notification."""
    subject = "New User Registration Notification"
    text = (
        "A new user has registered on the LMS.\n\n"
        f"Name: {user_name}\nEmail: {user_email}\nRole: {role}\nPhone: {phone or 'N/A'}\n\n"
        f"Log in to the admin dashboard to verify this user: {login_url}\n"
    )
    html = (
        "<p>A new user has registered on the <strong>LMS</strong>.</p>"
        f"<p><strong>Name:</strong> {escape(user_name)}<br><strong>Email:</strong> {escape(user_email)}<br>"
        f"<strong>Role:</strong> {escape(role)}<br><strong>Phone:</strong> {escape(phone or 'N/A')}</p>"
        f'<p><a href="{login_url}">Login to Admin Panel</a></p>'
    )
    return subject, text, html


def password_reset_notice(user_name: str, reset_url: str) -> tuple[str, str, str]:
    subject = "LMS Password Reset"
    text = (
        f"Hi {user_name},\n\n"
        f"You requested to reset your password. Open this link to choose a new one:\n{reset_url}\n\n"
        "This link will expire in 10 minutes. If you didn't request this, please ignore this email.\n"
    )
    html = (
        f"<p>Hi {escape(user_name)},</p>"
        "<p>You requested to reset your password. Click the link below to reset it:</p>"
        f'<p><a href="{escape(reset_url)}">Reset Password</a></p>'
        "<p>This link will expire in 10 minutes.</p>"
        "<p>If you didn't request this, please ignore this email.</p>"
    )
    return subject, text, html
