"""
Shared pytest fixtures for the Manpower Forecast test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - departments / hod / hod_b / finance / admin: seeded reference data
    - clock: FixedClock at 2025-02-10 12:00 UTC (inside Q1 2025)
    - notifier: RecordingNotifier capturing notify() calls
    - lifecycle: ForecastLifecycle wired to the fakes above
"""

from datetime import datetime, timezone

import pytest

from manpower import create_app
from manpower.core.clock import FixedClock
from manpower.models import db as _db
from manpower.models.organization import Department, User
from manpower.services.forecast_lifecycle import ForecastLifecycle
from manpower.services.forecast_store import ForecastStore

FIXED_NOW = datetime(2025, 2, 10, 12, 0, tzinfo=timezone.utc)


class RecordingNotifier:
    """Notifier double: records every notify() call."""

    def __init__(self):
        self.calls = []

    def notify(self, kind, recipient_email, template_data=None):
        self.calls.append((kind, recipient_email, dict(template_data or {})))

    @property
    def kinds(self):
        return [c[0] for c in self.calls]


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Reference data ───────────────────────────────────────────────────────


def make_department(name, code, *, is_active=True):
    dept = Department(name=name, code=code, is_active=is_active)
    _db.session.add(dept)
    _db.session.commit()
    return dept


def make_user(name, email, role, department=None, *, is_active=True):
    user = User(
        name=name,
        email=email,
        role=role,
        department_id=department.id if department else None,
        is_active=is_active,
    )
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture()
def departments():
    """DeptA (Engineering) and DeptB (Sales)."""
    return (
        make_department("Engineering", "ENG"),
        make_department("Sales", "SAL"),
    )


@pytest.fixture()
def hod(departments):
    return make_user("Alice Head", "alice@example.com", "hod", departments[0])


@pytest.fixture()
def hod_b(departments):
    return make_user("Bob Head", "bob@example.com", "hod", departments[1])


@pytest.fixture()
def finance():
    return make_user("Fiona Finance", "fiona@example.com", "finance")


@pytest.fixture()
def admin():
    return make_user("Adam Admin", "adam@example.com", "admin")


# ── Service fixtures ─────────────────────────────────────────────────────


@pytest.fixture()
def clock():
    return FixedClock(FIXED_NOW)


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def store():
    return ForecastStore()


@pytest.fixture()
def lifecycle(store, notifier, clock):
    return ForecastLifecycle(store, notifier, clock)


# ── Payload helpers ──────────────────────────────────────────────────────


def make_item(**overrides):
    """A valid, fully-rated forecast item."""
    item = {
        "position": "Backend Engineer",
        "workforce_type": "FT",
        "current_count": 4,
        "forecast_count": 6,
        "salary_budget": 120000,
        "one_time_cost": 5000,
        "cost_per_hire": 15000,
        "current_average_salary": 60000,
        "market_benchmark_salary": 66000,
        "historical_attrition_rate": 0.1,
        "recent_resignations": 1,
        "critical_skills_gap": 3,
        "market_demand": 3,
        "salary_competitiveness": 3,
        "work_life_balance": 3,
        "career_growth_opportunities": 3,
        "expected_start_month": "March",
        "skills": ["Python", "SQL"],
    }
    item.update(overrides)
    return item


Q1_2025 = {"year": 2025, "quarter": 1}


def auth(user):
    """Request headers identifying ``user`` as the actor."""
    return {"X-User-Id": str(user.id)}
