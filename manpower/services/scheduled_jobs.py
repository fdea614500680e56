"""
Manpower Forecast Platform
Scheduled Jobs.

Concrete reminder jobs run by ``ReminderScheduler``.

Jobs:
    - daily_reminder: every day at 09:00, template forecast_reminder
    - weekly_reminder: Mondays at 10:00, template weekly_reminder
    - urgent_reminder: 09:00 and 15:00, template deadline_warning,
      only during the last 7 days of the quarter

All three target the same recipients: active department heads with no
forecast of their own for the current quarter. A duplicate reminder is
harmless; a failed one is logged by the notifier and does not stop the
rest of the batch.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from manpower.services import forecast_service
from manpower.services.reminder_policy import (
    REMINDER_KINDS,
    ReminderKind,
    current_period,
    days_until_quarter_end,
    reminder_context,
    should_send_urgent,
)

logger = logging.getLogger(__name__)

JOB_SCHEDULES = {
    "daily_reminder": {"hours": [9], "minute": 0, "day_of_week": None},
    "weekly_reminder": {"hours": [10], "minute": 0, "day_of_week": 0},
    "urgent_reminder": {"hours": [9, 15], "minute": 0, "day_of_week": None},
}


def _send_reminders(app, now: datetime, kind: ReminderKind, days_left: int | None = None) -> dict[str, Any]:
    period = current_period(now)
    notifier = app.extensions["notifier"]
    missing = forecast_service.compute_missing_submitters(period)

    for submitter in missing:
        data = reminder_context(submitter, period, days_left)
        data["template"] = kind.template
        notifier.notify(kind.notify_kind, submitter.email, data)

    logger.info("%s reminders for %s: %d recipient(s)", kind.name.capitalize(), period.label, len(missing))
    return {
        "period": period.label,
        "recipients": len(missing),
        "recipient_emails": [s.email for s in missing],
    }


def send_daily_reminders(app, now: datetime) -> dict[str, Any]:
    """Remind department heads with no forecast for the current quarter."""
    return _send_reminders(app, now, REMINDER_KINDS["daily"])


def send_weekly_reminders(app, now: datetime) -> dict[str, Any]:
    """Weekly reminder with the days remaining in the quarter."""
    return _send_reminders(app, now, REMINDER_KINDS["weekly"], days_until_quarter_end(now))


def send_urgent_reminders(app, now: datetime) -> dict[str, Any]:
    """Deadline warning during the last week of the quarter."""
    days_left = days_until_quarter_end(now)
    if not should_send_urgent(days_left):
        logger.debug("Urgent reminders skipped: %d day(s) until quarter end", days_left)
        return {"skipped": True, "days_left": days_left, "recipients": 0}
    result = _send_reminders(app, now, REMINDER_KINDS["urgent"], days_left)
    result["days_left"] = days_left
    return result


def register_reminder_jobs(scheduler) -> None:
    scheduler.register("daily_reminder", send_daily_reminders, JOB_SCHEDULES["daily_reminder"])
    scheduler.register("weekly_reminder", send_weekly_reminders, JOB_SCHEDULES["weekly_reminder"])
    scheduler.register("urgent_reminder", send_urgent_reminders, JOB_SCHEDULES["urgent_reminder"])
