"""
Reminder policy tests — missing submitters, quarter-end arithmetic, urgency.
"""

from datetime import date, datetime, timezone

import pytest

from conftest import Q1_2025, make_item
from manpower.core.records import DepartmentRef, ForecastRecord, Period, Submitter, UserRef
from manpower.models import db
from manpower.services import forecast_service
from manpower.services.reminder_policy import (
    current_period,
    days_until_quarter_end,
    missing_submitters,
    quarter_end,
    reminder_context,
    should_send_urgent,
)

Q1 = Period(2025, 1)
ALICE = Submitter(1, "Alice Head", "alice@example.com", 10, "DeptA")
BOB = Submitter(2, "Bob Head", "bob@example.com", 20, "DeptB")


def _record(department_id, user_id, period=Q1):
    return ForecastRecord(
        id=department_id * 100 + user_id,
        department=DepartmentRef(department_id, f"Dept{department_id}"),
        submitted_by=UserRef(user_id, f"User {user_id}"),
        period=period,
        status="submitted",
        total_budget=0,
    )


class TestMissingSubmitters:

    def test_only_heads_without_a_forecast(self):
        assert missing_submitters(Q1, [ALICE, BOB], [_record(10, 1)]) == [BOB]

    def test_forecast_for_another_quarter_does_not_count(self):
        existing = [_record(10, 1, Period(2024, 4))]
        assert missing_submitters(Q1, [ALICE], existing) == [ALICE]

    def test_forecast_by_another_head_does_not_cover(self):
        # Same department, different submitter.
        assert missing_submitters(Q1, [ALICE], [_record(10, 99)]) == [ALICE]

    def test_submitter_without_department_is_ignored(self):
        orphan = Submitter(3, "Nobody", "n@example.com", 0, "")
        assert missing_submitters(Q1, [orphan], []) == []

    def test_everyone_submitted(self):
        assert missing_submitters(Q1, [ALICE, BOB], [_record(10, 1), _record(20, 2)]) == []


class TestQuarterEnd:

    @pytest.mark.parametrize("quarter,end", [
        (1, date(2025, 3, 31)), (2, date(2025, 6, 30)),
        (3, date(2025, 9, 30)), (4, date(2025, 12, 31)),
    ])
    def test_quarter_end(self, quarter, end):
        assert quarter_end(Period(2025, quarter)) == end

    def test_current_period(self):
        assert current_period(date(2025, 2, 10)) == Q1
        assert current_period(datetime(2025, 10, 1, tzinfo=timezone.utc)) == Period(2025, 4)

    @pytest.mark.parametrize("today,days", [
        (date(2025, 3, 24), 7),
        (date(2025, 3, 31), 0),
        (date(2025, 1, 1), 89),
        (datetime(2025, 3, 30, 12, 0, tzinfo=timezone.utc), 1),
    ])
    def test_days_until_quarter_end(self, today, days):
        assert days_until_quarter_end(today) == days

    def test_overdue_is_negative(self):
        assert days_until_quarter_end(date(2025, 4, 2), Q1) == -2
        assert should_send_urgent(-2) is False

    @pytest.mark.parametrize("days,urgent", [(8, False), (7, True), (1, True), (0, True), (-1, False)])
    def test_urgent_window(self, days, urgent):
        assert should_send_urgent(days) is urgent


class TestReminderContext:

    def test_template_data(self):
        data = reminder_context(BOB, Q1, days_left=5)
        assert data == {
            "user_name": "Bob Head",
            "department_name": "DeptB",
            "quarter_year": "Q1 2025",
            "user_id": 2,
            "days_left": 5,
        }

    def test_days_left_omitted(self):
        assert "days_left" not in reminder_context(ALICE, Q1)


class TestComputeMissingSubmitters:
    """Against the database: DeptA submitted for Q1 2025, DeptB did not."""

    def test_dept_b_is_missing(self, app, lifecycle, hod, hod_b):
        lifecycle.create_forecast(hod, Q1_2025, [make_item()])

        missing = forecast_service.compute_missing_submitters(Q1)

        assert [s.email for s in missing] == ["bob@example.com"]
        assert missing[0].department_name == "Sales"

    def test_inactive_heads_are_not_reminded(self, app, hod, hod_b):
        hod_b.is_active = False
        db.session.commit()

        assert [s.email for s in forecast_service.compute_missing_submitters(Q1)] == ["alice@example.com"]
