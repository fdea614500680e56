"""
Forecast Store — persistence boundary for the forecast workflow.

All SQLAlchemy access used by the lifecycle, the reminder jobs and the
read facade goes through ``ForecastStore``. It owns commit/rollback and
translates driver failures into domain errors:

    StaleDataError      → ConflictError         (optimistic lock lost)
    IntegrityError      → DuplicateError        (unique department/period)
                        → ValidationError       (any other constraint)
    OperationalError    → StoreUnavailableError (timeout / connection)

Reads return either ORM rows (lifecycle) or frozen ``ForecastRecord``
snapshots (aggregation, exports) built by ``to_record``.
"""

import logging

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from manpower.core.exceptions import (
    ConflictError,
    DuplicateError,
    StoreUnavailableError,
    ValidationError,
)
from manpower.core.records import (
    DepartmentRef,
    ForecastFilter,
    ForecastRecord,
    Period,
    Submitter,
    UserRef,
)
from manpower.models import db
from manpower.models.audit import write_audit
from manpower.models.forecast import Forecast
from manpower.models.organization import Department, User
from manpower.services.scoring import normalize_item

logger = logging.getLogger(__name__)

PERIOD_UNIQUE_CONSTRAINT = "uq_forecast_department_period"


def is_period_duplicate(exc: IntegrityError) -> bool:
    """True when the violation is the one-forecast-per-quarter constraint.

    PostgreSQL names the constraint; SQLite lists the constrained columns.
    """
    message = str(exc.orig)
    if PERIOD_UNIQUE_CONSTRAINT in message:
        return True
    return ("UNIQUE constraint failed" in message
            and "forecasts.department_id" in message
            and "forecasts.quarter" in message)



class ForecastStore:
    """SQLAlchemy-backed store. One instance per application."""

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    # ── Lookups ──────────────────────────────────────────────────────────

    def find_forecast(self, department_id: int, year: int, quarter: int) -> Forecast | None:
        return (
            Forecast.query
            .filter_by(department_id=department_id, year=year, quarter=quarter)
            .first()
        )

    def find_forecast_by_id(self, forecast_id: int) -> Forecast | None:
        return self.session.get(Forecast, forecast_id)

    def list_forecasts(self, flt: ForecastFilter | None = None) -> list[Forecast]:
        """Forecasts matching the filter, newest period first."""
        flt = flt or ForecastFilter()
        q = Forecast.query
        if flt.year:
            q = q.filter(Forecast.year == flt.year)
        if flt.quarter:
            q = q.filter(Forecast.quarter == flt.quarter)
        if flt.department_id:
            q = q.filter(Forecast.department_id == flt.department_id)
        if flt.statuses:
            q = q.filter(Forecast.status.in_(flt.statuses))
        return q.order_by(
            Forecast.year.desc(), Forecast.quarter.desc(), Forecast.id.asc()
        ).all()

    def list_records(self, flt: ForecastFilter | None = None) -> list[ForecastRecord]:
        return [self.to_record(f) for f in self.list_forecasts(flt)]

    def load_period(self, period: Period) -> list[ForecastRecord]:
        """Every forecast of one quarter, as records."""
        return self.list_records(ForecastFilter(year=period.year, quarter=period.quarter))

    def get_user(self, user_id) -> User | None:
        if user_id is None:
            return None
        return self.session.get(User, user_id)

    def get_department(self, department_id) -> Department | None:
        if department_id is None:
            return None
        return self.session.get(Department, department_id)

    def count_departments(self) -> int:
        return Department.query.filter_by(is_active=True).count()

    def list_submitters_by_role(self, role: str) -> list[Submitter]:
        """Active users of ``role`` that belong to a department."""
        users = (
            User.query
            .filter(User.role == role, User.is_active.is_(True),
                    User.department_id.isnot(None))
            .order_by(User.id)
            .all()
        )
        return [
            Submitter(
                user_id=u.id,
                name=u.name,
                email=u.email,
                department_id=u.department_id,
                department_name=u.department.name if u.department else "",
            )
            for u in users
        ]

    # ── Writes ───────────────────────────────────────────────────────────

    def save_forecast(self, forecast: Forecast) -> Forecast:
        """Add (if new) and commit one forecast."""
        self.session.add(forecast)
        self._commit(forecast)
        return forecast

    def save_forecasts(self, forecasts: list[Forecast]) -> None:
        """Commit several forecasts in one transaction."""
        for f in forecasts:
            self.session.add(f)
        self._commit(forecasts[0] if forecasts else None)

    def delete_forecast(self, forecast: Forecast) -> None:
        self.session.delete(forecast)
        self._commit(forecast)

    def rollback(self) -> None:
        self.session.rollback()

    def _commit(self, forecast: Forecast | None) -> None:
        # Captured up front: attributes expire on rollback.
        forecast_id = getattr(forecast, "id", None)
        key = None
        if forecast is not None:
            key = {
                "department_id": forecast.department_id,
                "year": forecast.year,
                "quarter": forecast.quarter,
            }
        try:
            self.session.commit()
        except StaleDataError as exc:
            self.session.rollback()
            logger.warning("Version conflict on forecast %s: %s", forecast_id, exc)
            raise ConflictError("Forecast", forecast_id) from exc
        except IntegrityError as exc:
            self.session.rollback()
            if is_period_duplicate(exc):
                logger.warning("Duplicate forecast %s: %s", key, exc.orig)
                raise DuplicateError("Forecast", key or {}) from exc
            logger.error("Constraint violation saving forecast %s: %s", key, exc.orig)
            raise ValidationError(
                "The forecast could not be saved: a value violates a data constraint",
                {"forecast_id": forecast_id, "constraint": str(exc.orig)},
            ) from exc
        except OperationalError as exc:
            self.session.rollback()
            logger.error("Store unavailable while saving forecast %s: %s", forecast_id, exc.orig)
            raise StoreUnavailableError(
                "The forecast store did not respond; the change was not saved",
                {"forecast_id": forecast_id},
            ) from exc

    def record_audit(self, *, entity_id, action: str, actor_user_id=None,
                     diff: dict | None = None, timestamp=None) -> None:
        """Write one audit row in its own transaction; failures are logged only."""
        try:
            write_audit(
                entity_id=entity_id,
                action=action,
                actor_user_id=actor_user_id,
                diff=diff,
                timestamp=timestamp,
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.exception("Audit write failed: %s on forecast %s", action, entity_id)

    # ── Snapshots ────────────────────────────────────────────────────────

    @staticmethod
    def to_record(forecast: Forecast) -> ForecastRecord:
        """Resolve references and normalize items into a frozen record."""
        dept = forecast.department
        submitter = forecast.submitted_by
        reviewer = forecast.reviewed_by
        return ForecastRecord(
            id=forecast.id,
            department=DepartmentRef(
                id=forecast.department_id,
                name=dept.name if dept else "",
                code=dept.code if dept else "",
            ),
            submitted_by=UserRef(
                id=forecast.submitted_by_id,
                name=submitter.name if submitter else "",
                email=submitter.email if submitter else "",
            ),
            period=Period(forecast.year, forecast.quarter),
            status=forecast.status,
            total_budget=float(forecast.total_budget or 0),
            items=tuple(normalize_item(i) for i in forecast.items),
            submitted_at=forecast.submitted_at,
            reviewed_at=forecast.reviewed_at,
            reviewed_by=(
                UserRef(id=reviewer.id, name=reviewer.name, email=reviewer.email)
                if reviewer else None
            ),
            review_priority=forecast.review_priority or "medium",
        )
