"""
Manpower Forecast Platform
Email Service.

Provides email sending capabilities with template support.
When SMTP is not configured, emails are logged but not sent (dev/test mode).

Uses:
    - Flask-Mail compatible config (MAIL_SERVER, MAIL_PORT, etc.)
    - Falls back to logging-only mode when SMTP is not configured
    - All emails are recorded in NotificationLog for audit

Configuration (env vars):
    MAIL_SERVER     SMTP host (default: None → log-only mode)
    MAIL_PORT       SMTP port (default: 587)
    MAIL_USE_TLS    Use TLS (default: true)
    MAIL_USERNAME   SMTP username
    MAIL_PASSWORD   SMTP password
    MAIL_DEFAULT_SENDER  Default from address
    NOTIFY_TIMEOUT_SECONDS  SMTP socket timeout (default: 10)
"""

from __future__ import annotations

import logging
import smtplib
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from flask import current_app

from manpower.models import db
from manpower.models.scheduling import NotificationLog

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Email Templates
# ═══════════════════════════════════════════════════════════════════════════

_HEADER = """
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <div style="background: {header_color}; color: white; padding: 24px; text-align: center;
                        border-radius: 8px 8px 0 0;">
                <h1 style="margin: 0; font-size: 22px;">{header_title}</h1>
            </div>
            <div style="padding: 30px; background-color: #f8f9fa;">
"""

_FOOTER = """
                <div style="text-align: center; margin: 30px 0;">
                    <a href="{frontend_url}/forecasts"
                       style="background: {header_color}; color: white; padding: 12px 30px;
                              text-decoration: none; border-radius: 5px; display: inline-block;">
                        {button_label}
                    </a>
                </div>
            </div>
            <div style="background: #343a40; color: white; padding: 16px; text-align: center;
                        border-radius: 0 0 8px 8px;">
                <p style="margin: 0; font-size: 12px;">Manpower Forecast System - {footer_note}</p>
            </div>
        </div>
"""

_TEMPLATES: dict[str, dict[str, str]] = {
    "forecast_reminder": {
        "subject": "Manpower Forecast Submission Reminder - {quarter_year}",
        "html": _HEADER + """
                <h2 style="color: #333;">Hello {user_name},</h2>
                <p style="font-size: 16px; line-height: 1.6; color: #555;">
                    This is a friendly reminder that your <strong>{department_name}</strong>
                    department's manpower forecast for <strong>{quarter_year}</strong> is pending submission.
                </p>
                <div style="background: white; padding: 20px; border-radius: 8px;
                            border-left: 4px solid #667eea; margin: 20px 0;">
                    <h3 style="color: #667eea; margin: 0 0 10px 0;">Action Required</h3>
                    <p style="margin: 0; color: #666;">
                        Please log in to the Manpower Forecast System to complete and submit your forecast.
                    </p>
                </div>
""" + _FOOTER,
        "defaults": {
            "header_color": "#667eea",
            "header_title": "Forecast Reminder",
            "button_label": "Access System",
            "footer_note": "Automated Reminder",
        },
    },
    "weekly_reminder": {
        "subject": "Weekly Reminder: {quarter_year} Manpower Forecast Still Pending",
        "html": _HEADER + """
                <h2 style="color: #333;">Hello {user_name},</h2>
                <p style="font-size: 16px; line-height: 1.6; color: #555;">
                    Your <strong>{department_name}</strong> department has not yet submitted its
                    manpower forecast for <strong>{quarter_year}</strong>.
                    <strong>{days_left}</strong> day(s) remain until the end of the quarter.
                </p>
                <div style="background: white; padding: 20px; border-radius: 8px;
                            border-left: 4px solid #f59f00; margin: 20px 0;">
                    <h3 style="color: #f59f00; margin: 0 0 10px 0;">Weekly Status</h3>
                    <p style="margin: 0; color: #666;">
                        Finance needs every department's forecast to consolidate the quarterly budget.
                    </p>
                </div>
""" + _FOOTER,
        "defaults": {
            "header_color": "#f59f00",
            "header_title": "Weekly Forecast Reminder",
            "button_label": "Complete Forecast",
            "footer_note": "Weekly Reminder",
            "days_left": "",
        },
    },
    "deadline_warning": {
        "subject": "URGENT: Forecast Deadline Approaching - {days_left} Day(s) Left",
        "html": _HEADER + """
                <h2 style="color: #333;">Urgent: {user_name}</h2>
                <div style="background: #ff6b6b; color: white; padding: 15px; border-radius: 8px;
                            text-align: center; margin: 20px 0;">
                    <h3 style="margin: 0; font-size: 24px;">{days_left} Day(s) Left</h3>
                </div>
                <p style="font-size: 16px; line-height: 1.6; color: #555;">
                    Your <strong>{department_name}</strong> department's manpower forecast for
                    <strong>{quarter_year}</strong> is due in <strong>{days_left} day(s)</strong>.
                </p>
                <div style="background: white; padding: 20px; border-radius: 8px;
                            border: 2px solid #ff6b6b; margin: 20px 0;">
                    <h3 style="color: #ff6b6b; margin: 0 0 10px 0;">Immediate Action Required</h3>
                    <p style="margin: 0; color: #666;">
                        Please submit your forecast immediately to avoid delays in the planning process.
                    </p>
                </div>
""" + _FOOTER,
        "defaults": {
            "header_color": "#ff6b6b",
            "header_title": "DEADLINE WARNING",
            "button_label": "Submit Now",
            "footer_note": "Urgent Reminder",
        },
    },
    "forecast_approved": {
        "subject": "Forecast Approved - {quarter_year}",
        "html": _HEADER + """
                <h2 style="color: #333;">Hello {user_name},</h2>
                <p style="font-size: 16px; line-height: 1.6; color: #555;">
                    Your <strong>{department_name}</strong> department's manpower forecast for
                    <strong>{quarter_year}</strong> has been
                    <strong style="color: #51cf66">APPROVED</strong>.
                </p>
                {comments_block}
""" + _FOOTER,
        "defaults": {
            "header_color": "#51cf66",
            "header_title": "Forecast Approved",
            "button_label": "View Forecast",
            "footer_note": "Review Notification",
        },
    },
    "forecast_rejected": {
        "subject": "Forecast Rejected - {quarter_year}",
        "html": _HEADER + """
                <h2 style="color: #333;">Hello {user_name},</h2>
                <p style="font-size: 16px; line-height: 1.6; color: #555;">
                    Your <strong>{department_name}</strong> department's manpower forecast for
                    <strong>{quarter_year}</strong> has been
                    <strong style="color: #ff6b6b">REJECTED</strong>.
                </p>
                {comments_block}
""" + _FOOTER,
        "defaults": {
            "header_color": "#ff6b6b",
            "header_title": "Forecast Rejected",
            "button_label": "Revise Forecast",
            "footer_note": "Review Notification",
        },
    },
}

_COMMENTS_BLOCK = """
                <div style="background: white; padding: 20px; border-radius: 8px;
                            border-left: 4px solid {header_color}; margin: 20px 0;">
                    <h3 style="color: {header_color}; margin: 0 0 10px 0;">Reviewer Comments</h3>
                    <p style="margin: 0; color: #666; font-style: italic;">{comments}</p>
                </div>
"""


class EmailService:
    """
    Email sending service with template support.

    In development/test mode (no MAIL_SERVER configured), emails are
    logged to the database but not actually sent via SMTP.
    """

    @staticmethod
    def is_configured() -> bool:
        """Check if SMTP is configured."""
        return bool(current_app.config.get("MAIL_SERVER"))

    @staticmethod
    def get_template(template_name: str) -> dict | None:
        """Get an email template by name."""
        return _TEMPLATES.get(template_name)

    @staticmethod
    def template_names() -> list[str]:
        return sorted(_TEMPLATES)

    @classmethod
    def send(
        cls,
        *,
        to_email: str,
        to_name: str | None = None,
        subject: str,
        html_body: str,
        kind: str = "reminder",
        template_name: str | None = None,
        forecast_id: int | None = None,
    ) -> NotificationLog:
        """
        Send an email and log it.

        If SMTP is not configured, the email is logged with status='sent'
        (in dev mode) to simulate sending without actual delivery.

        Returns:
            The NotificationLog record for this email (committed).
        """
        log = NotificationLog(
            kind=kind,
            recipient_email=to_email,
            recipient_name=to_name,
            subject=subject,
            template_name=template_name,
            status="queued",
            forecast_id=forecast_id,
        )
        db.session.add(log)
        db.session.flush()

        if not cls.is_configured():
            # Dev/test mode: log only
            log.status = "sent"
            log.sent_at = datetime.now(timezone.utc)
            logger.info(
                "Email (dev mode): to=%s subject='%s' template=%s",
                to_email, subject, template_name,
            )
            db.session.commit()
            return log

        try:
            cls._send_smtp(to_email=to_email, to_name=to_name,
                           subject=subject, html_body=html_body)
            log.status = "sent"
            log.sent_at = datetime.now(timezone.utc)
            logger.info("Email sent: to=%s subject='%s'", to_email, subject)
        except (smtplib.SMTPException, OSError) as exc:
            log.status = "failed"
            log.error_message = str(exc)[:1000]
            logger.error("Email failed: to=%s error=%s", to_email, exc)

        db.session.commit()
        return log

    @classmethod
    def send_from_template(
        cls,
        *,
        to_email: str,
        to_name: str | None = None,
        template_name: str,
        context: dict[str, Any],
        kind: str = "reminder",
        forecast_id: int | None = None,
    ) -> NotificationLog | None:
        """
        Send an email using a named template.

        Template variables are interpolated from the context dict, on top
        of the template's own defaults and ``frontend_url``.
        """
        template = cls.get_template(template_name)
        if not template:
            logger.warning("Email template not found: %s", template_name)
            return None

        values = _SafeDict(template.get("defaults", {}))
        values["frontend_url"] = current_app.config.get("FRONTEND_URL", "")
        values.update(context)
        comments = values.get("comments")
        values["comments_block"] = _COMMENTS_BLOCK.format_map(values) if comments else ""

        subject = template["subject"].format_map(values)
        html_body = template["html"].format_map(values)

        return cls.send(
            to_email=to_email,
            to_name=to_name,
            subject=subject,
            html_body=html_body,
            kind=kind,
            template_name=template_name,
            forecast_id=forecast_id,
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
        sender = cfg.get("MAIL_DEFAULT_SENDER") or f"noreply@{server}"
        timeout = cfg.get("NOTIFY_TIMEOUT_SECONDS", 10)

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = f"{to_name} <{to_email}>" if to_name else to_email
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(server, port, timeout=timeout) as smtp:
            if use_tls:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)


class _SafeDict(dict):
    """Dict that returns {key} for missing keys instead of raising."""

    def __missing__(self, key):
        return f"{{{key}}}"
