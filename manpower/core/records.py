"""
Resolved value objects.

The store turns ORM rows into these frozen records before any scoring or
aggregation happens: department and user references are already
resolved, and every item has been through ``normalize_item`` so optional
fields carry their documented defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime


@dataclass(frozen=True, order=True)
class Period:
    """A fiscal quarter."""

    year: int
    quarter: int

    @property
    def label(self) -> str:
        return f"Q{self.quarter} {self.year}"

    def shift(self, quarters: int) -> "Period":
        """Return the period ``quarters`` away (negative = earlier)."""
        year, quarter = self.year, self.quarter + quarters
        while quarter <= 0:
            quarter += 4
            year -= 1
        while quarter > 4:
            quarter -= 4
            year += 1
        return Period(year, quarter)

    @classmethod
    def containing(cls, day: date | datetime) -> "Period":
        return cls(day.year, (day.month - 1) // 3 + 1)


@dataclass(frozen=True)
class DepartmentRef:
    id: int
    name: str
    code: str = ""


@dataclass(frozen=True)
class UserRef:
    id: int
    name: str
    email: str = ""


@dataclass(frozen=True)
class Submitter:
    """An active department head responsible for submitting forecasts."""

    user_id: int
    name: str
    email: str
    department_id: int
    department_name: str

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "name": self.name,
            "email": self.email,
            "department_id": self.department_id,
            "department_name": self.department_name,
        }


@dataclass(frozen=True)
class NormalizedItem:
    """A forecast item with every optional field defaulted."""

    position: str = ""
    workforce_type: str = "FT"
    current_count: int = 0
    forecast_count: int = 0
    salary_budget: float = 0.0
    one_time_cost: float = 0.0
    cost_per_hire: float = 0.0
    current_average_salary: float = 0.0
    market_benchmark_salary: float = 0.0
    historical_attrition_rate: float = 0.0
    recent_resignations: int = 0
    critical_skills_gap: int = 3
    market_demand: int = 3
    salary_competitiveness: int = 3
    work_life_balance: int = 3
    career_growth_opportunities: int = 3
    skills: tuple[str, ...] = ()
    expected_start_month: str = ""
    justification: str = ""
    grade_level: str = "N/A"
    employee_type: str = "Permanent"
    location: str = "Head Office"


@dataclass(frozen=True)
class ForecastRecord:
    """Read-only snapshot of one forecast with references resolved."""

    id: int
    department: DepartmentRef
    submitted_by: UserRef
    period: Period
    status: str
    total_budget: float
    items: tuple[NormalizedItem, ...] = ()
    submitted_at: datetime | None = None
    reviewed_at: datetime | None = None
    reviewed_by: UserRef | None = None
    review_priority: str = "medium"


@dataclass(frozen=True)
class ForecastFilter:
    """Query filter accepted by every read operation."""

    year: int | None = None
    quarter: int | None = None
    department_id: int | None = None
    statuses: tuple[str, ...] = field(default_factory=tuple)

    @property
    def period(self) -> Period | None:
        if self.year and self.quarter:
            return Period(self.year, self.quarter)
        return None

    def describe(self) -> str:
        return f"{self.year or 'all'}-Q{self.quarter or 'all'}"
