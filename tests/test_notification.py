"""
Notifier + EmailService tests.

Covers:
    - Sync dispatch renders the kind's default template and logs it
    - Unknown kinds / missing recipients are dropped
    - Template override through template_data["template"]
    - Delivery errors never propagate
    - SMTP failures are logged with status 'failed'
"""

import smtplib

from manpower.models.scheduling import NotificationLog
from manpower.services.email_service import EmailService
from manpower.services.notification import NOTIFICATION_KINDS, Notifier


def _logs():
    return NotificationLog.query.order_by(NotificationLog.id).all()


class TestNotifier:

    def test_approval_renders_template_and_logs(self):
        Notifier().notify("approval", "alice@example.com", {
            "user_name": "Alice Head",
            "department_name": "Engineering",
            "quarter_year": "Q1 2025",
            "forecast_id": 42,
        })

        (log,) = _logs()
        assert log.kind == "approval"
        assert log.status == "sent"
        assert log.subject == "Forecast Approved - Q1 2025"
        assert log.template_name == "forecast_approved"
        assert log.recipient_name == "Alice Head"
        assert log.forecast_id == 42

    def test_urgent_subject_carries_days_left(self):
        Notifier().notify("urgent-reminder", "bob@example.com", {
            "user_name": "Bob Head", "quarter_year": "Q1 2025", "days_left": 3,
        })
        assert _logs()[0].subject == "URGENT: Forecast Deadline Approaching - 3 Day(s) Left"

    def test_unknown_kind_is_dropped(self):
        Notifier().notify("promotion", "alice@example.com", {})
        assert _logs() == []

    def test_missing_recipient_is_dropped(self):
        Notifier().notify("reminder", "", {"user_name": "Nobody"})
        assert _logs() == []

    def test_template_override(self):
        data = {"template": "weekly_reminder", "user_name": "Bob Head",
                "department_name": "Sales", "quarter_year": "Q1 2025", "days_left": 49}
        Notifier().notify("reminder", "bob@example.com", data)

        (log,) = _logs()
        assert log.kind == "reminder"
        assert log.template_name == "weekly_reminder"
        assert log.subject == "Weekly Reminder: Q1 2025 Manpower Forecast Still Pending"
        # caller's dict is left alone
        assert data["template"] == "weekly_reminder"

    def test_delivery_error_is_swallowed(self, monkeypatch):
        def boom(**kwargs):
            raise RuntimeError("mail relay exploded")

        monkeypatch.setattr(EmailService, "send_from_template", boom)

        Notifier().notify("rejection", "alice@example.com", {"quarter_year": "Q1 2025"})
        assert _logs() == []

    def test_every_kind_has_a_template(self):
        for template in NOTIFICATION_KINDS.values():
            assert EmailService.get_template(template) is not None


class TestEmailService:

    def test_missing_template_returns_none(self):
        assert EmailService.send_from_template(
            to_email="a@example.com", template_name="nope", context={},
        ) is None
        assert _logs() == []

    def test_comments_block_only_when_comments_given(self, monkeypatch):
        bodies = []
        original = EmailService.send.__func__

        def capture(cls, **kwargs):
            bodies.append(kwargs["html_body"])
            return original(cls, **kwargs)

        monkeypatch.setattr(EmailService, "send", classmethod(capture))

        ctx = {"user_name": "A", "department_name": "D", "quarter_year": "Q1 2025"}
        EmailService.send_from_template(to_email="a@example.com", template_name="forecast_rejected",
                                        context=ctx)
        EmailService.send_from_template(to_email="a@example.com", template_name="forecast_rejected",
                                        context={**ctx, "comments": "Budget too high"})

        assert "Reviewer Comments" not in bodies[0]
        assert "Budget too high" in bodies[1]

    def test_smtp_failure_is_logged_as_failed(self, app, monkeypatch):
        def refuse(**kwargs):
            raise smtplib.SMTPException("connection refused")

        monkeypatch.setitem(app.config, "MAIL_SERVER", "smtp.example.com")
        monkeypatch.setattr(EmailService, "_send_smtp", refuse)

        log = EmailService.send(to_email="a@example.com", subject="Hi", html_body="<p>x</p>")

        assert log.status == "failed"
        assert "connection refused" in log.error_message
        assert log.sent_at is None

    def test_smtp_success(self, app, monkeypatch):
        sent = []
        monkeypatch.setitem(app.config, "MAIL_SERVER", "smtp.example.com")
        monkeypatch.setattr(EmailService, "_send_smtp", lambda **kw: sent.append(kw["to_email"]))

        log = EmailService.send(to_email="a@example.com", subject="Hi", html_body="<p>x</p>")

        assert sent == ["a@example.com"]
        assert log.status == "sent"
