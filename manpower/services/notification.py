"""
Manpower Forecast Platform
Notification Service.

``Notifier.notify(kind, recipient_email, template_data)`` is the one
entry point the lifecycle and the reminder jobs use. It is
fire-and-forget: delivery errors are logged with traceback and
swallowed, so a failed email never fails the transition that caused it.

Kinds map to default email templates; reminder jobs may override the
template through ``template_data["template"]`` (weekly reminders).
"""

import logging
from concurrent.futures import ThreadPoolExecutor

from manpower.models import db
from manpower.services.email_service import EmailService

logger = logging.getLogger(__name__)

# kind → default template
NOTIFICATION_KINDS = {
    "approval": "forecast_approved",
    "rejection": "forecast_rejected",
    "reminder": "forecast_reminder",
    "urgent-reminder": "deadline_warning",
}


class Notifier:
    """
    Email-backed notifier.

    Args:
        app: Flask app; needed for async dispatch (each worker pushes
            its own app context).
        async_dispatch: Send on a bounded thread pool instead of inline.
        max_workers: Pool size for async dispatch.
    """

    def __init__(self, app=None, *, async_dispatch: bool = False, max_workers: int = 4):
        self.app = app
        self.async_dispatch = async_dispatch and app is not None
        self._executor = (
            ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify")
            if self.async_dispatch else None
        )

    def notify(self, kind: str, recipient_email: str, template_data: dict | None = None) -> None:
        """Send one notification. Never raises."""
        template_data = dict(template_data or {})
        if kind not in NOTIFICATION_KINDS:
            logger.error("Unknown notification kind %r for %s; dropped", kind, recipient_email)
            return
        if not recipient_email:
            logger.warning("Notification %s has no recipient; dropped", kind)
            return

        if self._executor is not None:
            try:
                self._executor.submit(self._dispatch_in_context, kind, recipient_email, template_data)
            except RuntimeError:
                logger.exception("Notification pool unavailable; %s to %s dropped", kind, recipient_email)
            return
        self._dispatch(kind, recipient_email, template_data)

    def _dispatch_in_context(self, kind, recipient_email, template_data) -> None:
        with self.app.app_context():
            self._dispatch(kind, recipient_email, template_data)

    def _dispatch(self, kind, recipient_email, template_data) -> None:
        template_name = template_data.pop("template", None) or NOTIFICATION_KINDS[kind]
        try:
            log = EmailService.send_from_template(
                to_email=recipient_email,
                to_name=template_data.get("user_name"),
                template_name=template_name,
                context=template_data,
                kind=kind,
                forecast_id=template_data.get("forecast_id"),
            )
            if log is not None and log.status == "failed":
                logger.error("Notification %s to %s failed: %s", kind, recipient_email, log.error_message)
        except Exception:
            logger.exception("Notification %s to %s failed", kind, recipient_email)
            self._rollback()

    @staticmethod
    def _rollback() -> None:
        try:
            db.session.rollback()
        except Exception:
            logger.exception("Rollback after failed notification also failed")

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
