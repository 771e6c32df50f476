"""
Email sending with template support.

When MAIL_SERVER is not configured, emails are logged but not sent
(dev/test mode). A send failure is logged and reported as "failed"; it
never raises into the flow that triggered it.

Configuration (env vars):
    MAIL_SERVER          SMTP host (default: None → log-only mode)
    MAIL_PORT            SMTP port (default: 587)
    MAIL_USE_TLS         Use TLS (default: true)
    MAIL_USERNAME        SMTP username
    MAIL_PASSWORD        SMTP password
    MAIL_DEFAULT_SENDER  Default from address
"""

from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from flask import current_app

logger = logging.getLogger(__name__)


_TEMPLATES: dict[str, dict[str, str]] = {
    "magic_link": {
        "subject": "Your Gather sign-in link",
        "html": """
        <div style="font-family: Arial, sans-serif; max-width: 560px; margin: 0 auto;">
            <h2 style="color: #1e293b;">Sign in to Gather</h2>
            <p style="color: #475569; line-height: 1.6;">
                Click the button below to sign in. The link expires in {ttl_minutes} minutes
                and can be used once.
            </p>
            <p><a href="{url}" style="background: #0f766e; color: white; padding: 10px 18px;
                  border-radius: 6px; text-decoration: none;">Sign in</a></p>
            <p style="color: #94a3b8; font-size: 12px;">
                If you did not ask for this email you can ignore it.
            </p>
        </div>
        """,
    },
}


class EmailService:
    """SMTP sender; log-only when MAIL_SERVER is unset."""

    @staticmethod
    def is_configured() -> bool:
        return bool(current_app.config.get("MAIL_SERVER"))

    @staticmethod
    def get_template(template_name: str) -> dict[str, str] | None:
        return _TEMPLATES.get(template_name)

    @classmethod
    def send(cls, *, to_email: str, subject: str, html_body: str, template_name: str | None = None) -> str:
        """
        Send an email.

        Returns:
            "logged" (dev mode), "sent" or "failed".
        """
        if not cls.is_configured():
            logger.info(
                "Email (dev mode): to=%s subject='%s' template=%s",
                to_email, subject, template_name,
            )
            return "logged"

        try:
            cls._send_smtp(to_email=to_email, subject=subject, html_body=html_body)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Email failed: to=%s error=%s", to_email, exc)
            return "failed"
        logger.info("Email sent: to=%s subject='%s'", to_email, subject)
        return "sent"

    @classmethod
    def send_from_template(cls, *, to_email: str, template_name: str, context: dict[str, Any]) -> str | None:
        template = cls.get_template(template_name)
        if not template:
            logger.warning("Email template not found: %s", template_name)
            return None

        return cls.send(
            to_email=to_email,
            subject=template["subject"].format_map(_SafeDict(context)),
            html_body=template["html"].format_map(_SafeDict(context)),
            template_name=template_name,
        )

    @staticmethod
    def _send_smtp(*, to_email: str, subject: str, html_body: str) -> None:
        cfg = current_app.config
        server = cfg.get("MAIL_SERVER")
        port = cfg.get("MAIL_PORT", 587)
        username = cfg.get("MAIL_USERNAME")
        password = cfg.get("MAIL_PASSWORD")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = cfg.get("MAIL_DEFAULT_SENDER", f"noreply@{server}")
        msg["To"] = to_email
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(server, port, timeout=30) as smtp:
            if cfg.get("MAIL_USE_TLS", True):
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)


class _SafeDict(dict):
    """Dict that returns {key} for missing keys instead of raising."""

    def __missing__(self, key):
        return f"{{{key}}}"
