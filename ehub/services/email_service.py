"""
Ehub PMS
Email Service.

Template-based email for workflow events.  When SMTP is not configured,
emails are logged but not sent (dev/test mode).

Configuration (env vars):
    MAIL_SERVER     SMTP host (default: None → log-only mode)
    MAIL_PORT       SMTP port (default: 587)
    MAIL_USE_TLS    Use TLS (default: true)
    MAIL_USERNAME   SMTP username
    MAIL_PASSWORD   SMTP password
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


# ═══════════════════════════════════════════════════════════════════════════
#  Email Templates
# ═══════════════════════════════════════════════════════════════════════════

_LAYOUT = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <div style="background: #1e293b; color: white; padding: 16px 24px; border-radius: 8px 8px 0 0;">
        <h2 style="margin: 0; font-size: 18px;">Ehub Project Management</h2>
    </div>
    <div style="background: #f8fafc; padding: 24px; border: 1px solid #e2e8f0; border-top: none;">
        {body}
    </div>
    <div style="background: #f1f5f9; padding: 12px 24px; border-radius: 0 0 8px 8px;
                border: 1px solid #e2e8f0; border-top: none; text-align: center;">
        <p style="color: #94a3b8; font-size: 12px; margin: 0;">Automated notification</p>
    </div>
</div>
"""

_TEMPLATES: dict[str, dict[str, str]] = {
    "project_assignment": {
        "subject": "[Ehub] New project assignment: {project_name}",
        "html": _LAYOUT.replace("{body}", """
        <p>Hello {fabricator_name},</p>
        <p>{assigner_name} has invited you to work on <strong>{project_name}</strong>
           for {client_name}.</p>
        <p style="color: #64748b;">{message}</p>
        <p>Open your assignments to accept or decline.</p>
        """),
    },
    "assignment_response": {
        "subject": "[Ehub] {fabricator_name} {response_status} {project_name}",
        "html": _LAYOUT.replace("{body}", """
        <p>{fabricator_name} has <strong>{response_status}</strong> the assignment
           to <strong>{project_name}</strong>.</p>
        <p style="color: #64748b;">{response}</p>
        """),
    },
    "project_update": {
        "subject": "[Ehub] {project_name}: {change_label}",
        "html": _LAYOUT.replace("{body}", """
        <h3 style="margin: 0 0 8px; color: #1e293b;">{project_name}</h3>
        <p>{change_label} by {actor_name}.</p>
        <p style="color: #64748b;">Status: {status} &middot; Progress: {progress}%</p>
        """),
    },
}


class EmailService:
    """
    Email sending service with template support.

    In development/test mode (no MAIL_SERVER configured), emails are
    logged but not actually sent via SMTP.
    """

    @staticmethod
    def is_configured() -> bool:
        """Check if SMTP is configured."""
        return bool(current_app.config.get("MAIL_SERVER"))

    @staticmethod
    def get_template(template_name: str) -> dict[str, str] | None:
        """Get an email template by name."""
        return _TEMPLATES.get(template_name)

    @classmethod
    def send(
        cls,
        *,
        to_email: str,
        to_name: str | None = None,
        subject: str,
        html_body: str,
        template_name: str | None = None,
    ) -> bool:
        """
        Send an email.

        Returns:
            True when the email was handed to SMTP or logged in dev mode,
            False when SMTP delivery failed.
        """
        if not cls.is_configured():
            logger.info(
                "Email (dev mode): to=%s subject='%s' template=%s",
                to_email, subject, template_name,
            )
            return True

        try:
            cls._send_smtp(to_email=to_email, to_name=to_name,
                           subject=subject, html_body=html_body)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Email failed: to=%s error=%s", to_email, exc)
            return False
        logger.info("Email sent: to=%s subject='%s'", to_email, subject)
        return True

    @classmethod
    def send_from_template(
        cls,
        *,
        to_email: str,
        to_name: str | None = None,
        template_name: str,
        context: dict[str, Any],
    ) -> bool:
        """
        Send an email using a named template.

        Template variables are interpolated from the context dict.
        """
        template = cls.get_template(template_name)
        if not template:
            logger.warning("Email template not found: %s", template_name)
            return False

        subject = template["subject"].format_map(_SafeDict(context))
        html_body = template["html"].format_map(_SafeDict(context))

        return cls.send(
            to_email=to_email,
            to_name=to_name,
            subject=subject,
            html_body=html_body,
            template_name=template_name,
        )

    @staticmethod
    def _send_smtp(*, to_email: str, to_name: str | None,
                   subject: str, html_body: str) -> None:
        """Actually send via SMTP."""
        cfg = current_app.config
        server = cfg.get("MAIL_SERVER")
        port = cfg.get("MAIL_PORT", 587)
        use_tls = cfg.get("MAIL_USE_TLS", True)
        username = cfg.get("MAIL_USERNAME")
        password = cfg.get("MAIL_PASSWORD")
        sender = cfg.get("MAIL_DEFAULT_SENDER", f"noreply@{server}")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = f"{to_name} <{to_email}>" if to_name else to_email
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(server, port, timeout=30) as smtp:
            if use_tls:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)


class _SafeDict(dict):
    """Dict that returns {key} for missing keys instead of raising."""

    def __missing__(self, key):
        return f"{{{key}}}"
