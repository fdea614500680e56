"""
Manpower Forecast Platform
Forecast domain models.

Models:
    - Forecast: one department's plan for one (year, quarter)
    - ForecastItem: one position-level line, owned by its forecast
    - ForecastComment: discussion thread entry, owned by its forecast

Forecast rows carry an optimistic-lock counter (``version_id``). Every
UPDATE/DELETE issued by the ORM is conditional on the version that was
read, so two concurrent transitions on the same forecast cannot both
commit.
"""

from datetime import datetime, timezone

from manpower.models import db


# ── Constants ────────────────────────────────────────────────────────────────

STATUS_DRAFT = "draft"
STATUS_SUBMITTED = "submitted"
STATUS_REVIEWED = "reviewed"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"

FORECAST_STATUSES = [
    STATUS_DRAFT, STATUS_SUBMITTED, STATUS_REVIEWED, STATUS_APPROVED, STATUS_REJECTED,
]
REVIEW_STATUSES = {STATUS_REVIEWED, STATUS_APPROVED, STATUS_REJECTED}
REVIEW_PRIORITIES = {"low", "medium", "high", "urgent"}

WORKFORCE_TYPES = {"FT", "PT", "CT"}
EMPLOYEE_TYPES = {"Permanent", "Contract", "Temporary"}
MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]
RATING_FIELDS = (
    "critical_skills_gap",
    "market_demand",
    "salary_competitiveness",
    "work_life_balance",
    "career_growth_opportunities",
)

MIN_YEAR = 2020
MAX_YEAR = 2030

# action → {from: [allowed statuses], to: target status}
FORECAST_TRANSITIONS = {
    "submit": {"from": [STATUS_DRAFT], "to": STATUS_SUBMITTED},
    "approve": {"from": [STATUS_SUBMITTED], "to": STATUS_APPROVED},
    "reject": {"from": [STATUS_SUBMITTED], "to": STATUS_REJECTED},
    "mark_reviewed": {"from": [STATUS_SUBMITTED], "to": STATUS_REVIEWED},
}

# review decision → transition action
DECISION_ACTIONS = {
    STATUS_APPROVED: "approve",
    STATUS_REJECTED: "reject",
}


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class Forecast(db.Model):
    """A department's quarterly headcount and budget plan."""

    __tablename__ = "forecasts"
    __table_args__ = (
        db.UniqueConstraint("department_id", "year", "quarter",
                            name="uq_forecast_department_period"),
        db.Index("ix_forecasts_submitter_status", "submitted_by_id", "status"),
        db.Index("ix_forecasts_status_submitted_at", "status", "submitted_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    department_id = db.Column(
        db.Integer,
        db.ForeignKey("departments.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    submitted_by_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    year = db.Column(db.Integer, nullable=False)
    quarter = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(20), nullable=False, default=STATUS_DRAFT,
                       comment="draft | submitted | reviewed | approved | rejected")
    total_budget = db.Column(db.Numeric(16, 2, asdecimal=False), nullable=False, default=0)

    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reviewed_by_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    review_comments = db.Column(db.Text, nullable=True)
    review_priority = db.Column(db.String(10), nullable=False, default="medium")

    version_id = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    department = db.relationship("Department", lazy="joined")
    submitted_by = db.relationship("User", foreign_keys=[submitted_by_id], lazy="joined")
    reviewed_by = db.relationship("User", foreign_keys=[reviewed_by_id], lazy="joined")
    items = db.relationship(
        "ForecastItem",
        back_populates="forecast",
        cascade="all, delete-orphan",
        order_by="ForecastItem.line_no",
        lazy="selectin",
    )
    comments = db.relationship(
        "ForecastComment",
        back_populates="forecast",
        cascade="all, delete-orphan",
        order_by="ForecastComment.id",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def recompute_total_budget(self) -> float:
        """Recompute ``total_budget`` from the current items."""
        self.total_budget = sum(item.total_cost for item in self.items)
        return self.total_budget

    @property
    def period_label(self) -> str:
        return f"Q{self.quarter} {self.year}"

    def to_dict(self, include_items=True):
        data = {
            "id": self.id,
            "department_id": self.department_id,
            "department": (
                {"id": self.department.id, "name": self.department.name, "code": self.department.code}
                if self.department else None
            ),
            "submitted_by": (
                {"id": self.submitted_by.id, "name": self.submitted_by.name,
                 "email": self.submitted_by.email}
                if self.submitted_by else None
            ),
            "period": {"year": self.year, "quarter": self.quarter},
            "status": self.status,
            "total_budget": float(self.total_budget or 0),
            "submitted_at": _iso(self.submitted_at),
            "reviewed_at": _iso(self.reviewed_at),
            "reviewed_by": (
                {"id": self.reviewed_by.id, "name": self.reviewed_by.name,
                 "email": self.reviewed_by.email}
                if self.reviewed_by else None
            ),
            "review_comments": self.review_comments,
            "review_priority": self.review_priority,
            "version": self.version_id,
            "comments": [c.to_dict() for c in self.comments],
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_items:
            data["items"] = [i.to_dict() for i in self.items]
        return data

    def __repr__(self):
        return f"<Forecast {self.id} dept={self.department_id} {self.period_label} [{self.status}]>"


class ForecastItem(db.Model):
    """One planned position change within a forecast."""

    __tablename__ = "forecast_items"

    id = db.Column(db.Integer, primary_key=True)
    forecast_id = db.Column(
        db.Integer,
        db.ForeignKey("forecasts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_no = db.Column(db.Integer, nullable=False, default=1)

    position = db.Column(db.String(200), nullable=False)
    workforce_type = db.Column(db.String(2), nullable=False, default="FT")
    grade_level = db.Column(db.String(50), default="N/A")
    employee_type = db.Column(db.String(20), default="Permanent")
    location = db.Column(db.String(150), default="Head Office")
    skills = db.Column(db.JSON, default=list)

    current_count = db.Column(db.Integer, nullable=False, default=0)
    forecast_count = db.Column(db.Integer, nullable=False, default=0)

    salary_budget = db.Column(db.Numeric(16, 2, asdecimal=False), nullable=False, default=0)
    one_time_cost = db.Column(db.Numeric(16, 2, asdecimal=False), nullable=False, default=0)
    cost_per_hire = db.Column(db.Numeric(16, 2, asdecimal=False), nullable=False, default=0)
    current_average_salary = db.Column(db.Numeric(16, 2, asdecimal=False), nullable=False, default=0)
    market_benchmark_salary = db.Column(db.Numeric(16, 2, asdecimal=False), nullable=False, default=0)

    expected_start_month = db.Column(db.String(12), nullable=True)
    expected_hire_date = db.Column(db.Date, nullable=True)
    justification = db.Column(db.Text, nullable=True)

    # Attrition inputs
    historical_attrition_rate = db.Column(db.Float, nullable=False, default=0.0,
                                          comment="Last year's actual attrition, 0..1")
    recent_resignations = db.Column(db.Integer, nullable=False, default=0,
                                    comment="Resignations in the last 6 months")
    critical_skills_gap = db.Column(db.Integer, nullable=True, comment="1=easy to replace, 5=very hard")
    market_demand = db.Column(db.Integer, nullable=True, comment="1=low, 5=very high")
    salary_competitiveness = db.Column(db.Integer, nullable=True, comment="1=below market, 5=above")
    work_life_balance = db.Column(db.Integer, nullable=True, comment="1=poor, 5=excellent")
    career_growth_opportunities = db.Column(db.Integer, nullable=True, comment="1=limited, 5=excellent")

    forecast = db.relationship("Forecast", back_populates="items")

    @property
    def total_cost(self) -> float:
        return (
            float(self.salary_budget or 0)
            + float(self.one_time_cost or 0)
            + float(self.cost_per_hire or 0)
        )

    def to_dict(self):
        return {
            "id": self.id,
            "line_no": self.line_no,
            "position": self.position,
            "workforce_type": self.workforce_type,
            "grade_level": self.grade_level,
            "employee_type": self.employee_type,
            "location": self.location,
            "skills": list(self.skills or []),
            "current_count": self.current_count,
            "forecast_count": self.forecast_count,
            "salary_budget": float(self.salary_budget or 0),
            "one_time_cost": float(self.one_time_cost or 0),
            "cost_per_hire": float(self.cost_per_hire or 0),
            "current_average_salary": float(self.current_average_salary or 0),
            "market_benchmark_salary": float(self.market_benchmark_salary or 0),
            "expected_start_month": self.expected_start_month,
            "expected_hire_date": _iso(self.expected_hire_date),
            "justification": self.justification,
            "historical_attrition_rate": self.historical_attrition_rate,
            "recent_resignations": self.recent_resignations,
            "critical_skills_gap": self.critical_skills_gap,
            "market_demand": self.market_demand,
            "salary_competitiveness": self.salary_competitiveness,
            "work_life_balance": self.work_life_balance,
            "career_growth_opportunities": self.career_growth_opportunities,
        }

    def __repr__(self):
        return f"<ForecastItem {self.position} x{self.forecast_count}>"


class ForecastComment(db.Model):
    """Append-only discussion entry on a forecast."""

    __tablename__ = "forecast_comments"

    id = db.Column(db.Integer, primary_key=True)
    forecast_id = db.Column(
        db.Integer,
        db.ForeignKey("forecasts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    message = db.Column(db.Text, nullable=False)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    forecast = db.relationship("Forecast", back_populates="comments")
    author = db.relationship("User", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "author": (
                {"id": self.author.id, "name": self.author.name, "email": self.author.email}
                if self.author else None
            ),
            "message": self.message,
            "timestamp": _iso(self.timestamp),
        }
