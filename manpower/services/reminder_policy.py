"""
Reminder policy — who still owes a forecast, and how urgent it is.

Pure functions of (period, submitters, existing forecasts, today). The
scheduler decides *when* to ask; this module only decides *who* and
*which template*.
"""

from __future__ import annotations

import calendar
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Iterable

from manpower.core.records import Period, Submitter

URGENT_WINDOW_DAYS = 7


@dataclass(frozen=True)
class ReminderKind:
    name: str
    template: str
    notify_kind: str


REMINDER_KINDS = {
    "daily": ReminderKind("daily", "forecast_reminder", "reminder"),
    "weekly": ReminderKind("weekly", "weekly_reminder", "reminder"),
    "urgent": ReminderKind("urgent", "deadline_warning", "urgent-reminder"),
}


def _identity(department_id, year, quarter, submitted_by_id) -> tuple:
    return (department_id, year, quarter, submitted_by_id)


def _forecast_identity(forecast) -> tuple:
    """Identity key of a ForecastRecord or Forecast row."""
    if hasattr(forecast, "period"):
        return _identity(forecast.department.id, forecast.period.year,
                         forecast.period.quarter, forecast.submitted_by.id)
    return _identity(forecast.department_id, forecast.year,
                     forecast.quarter, forecast.submitted_by_id)


def missing_submitters(period: Period, submitters: Iterable[Submitter],
                       existing_forecasts: Iterable) -> list[Submitter]:
    """
    Submitters with no forecast for ``period``.

    Matched on (department, year, quarter, submitter): a department
    forecast created by a different head does not cover this one.
    """
    submitted = {_forecast_identity(f) for f in existing_forecasts}
    missing = []
    for s in submitters:
        if not s.department_id:
            continue
        if _identity(s.department_id, period.year, period.quarter, s.user_id) not in submitted:
            missing.append(s)
    return missing


def current_period(today: date | datetime) -> Period:
    return Period.containing(today)


def quarter_end(period: Period) -> date:
    last_month = period.quarter * 3
    return date(period.year, last_month, calendar.monthrange(period.year, last_month)[1])


def days_until_quarter_end(today: date | datetime, period: Period | None = None) -> int:
    """
    Whole days from ``today`` to the start of the quarter's last day,
    rounded up. ``period`` defaults to the quarter containing ``today``.
    Zero on the last day itself; negative when ``today`` lies past the
    end of ``period`` (overdue).
    """
    if isinstance(today, datetime):
        now = today
    else:
        now = datetime.combine(today, time.min)
    tz = now.tzinfo or timezone.utc
    end = datetime.combine(quarter_end(period or current_period(now)), time.min, tzinfo=tz)
    if now.tzinfo is None:
        end = end.replace(tzinfo=None)
    return math.ceil((end - now).total_seconds() / 86400)


def should_send_urgent(days_left: int) -> bool:
    """Urgent reminders go out in the last week; negative means overdue."""
    return 0 <= days_left <= URGENT_WINDOW_DAYS


def reminder_context(submitter: Submitter, period: Period, days_left: int | None = None) -> dict:
    """Template data for one reminder email."""
    data = {
        "user_name": submitter.name,
        "department_name": submitter.department_name or "Unknown Department",
        "quarter_year": period.label,
        "user_id": submitter.user_id,
    }
    if days_left is not None:
        data["days_left"] = days_left
    return data
