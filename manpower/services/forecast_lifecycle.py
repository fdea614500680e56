"""
Forecast Lifecycle Service

Manages forecast status transitions with:
  - Transition validation (FORECAST_TRANSITIONS)
  - Permission checks (PERMISSION_MATRIX, department scoping for HODs)
  - Item validation (fail-fast, first violation wins)
  - Side effects (submit → submitted_at, review → reviewed_at/by/comments)
  - Audit trail via write_audit, notifications after commit

Each operation is a read-modify-write of one forecast committed in one
transaction. The store turns a lost optimistic lock into ConflictError.

Usage:
    from manpower.services.forecast_lifecycle import ForecastLifecycle

    lifecycle = ForecastLifecycle(store, notifier, clock)
    forecast = lifecycle.create_forecast(actor, {"year": 2025, "quarter": 1}, items)
    lifecycle.submit_forecast(actor, forecast.id)
"""

import logging
import math
from collections.abc import Mapping
from datetime import date

from manpower.core.clock import SystemClock
from manpower.core.exceptions import (
    ConflictError,
    DuplicateError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from manpower.core.records import Period
from manpower.models.forecast import (
    DECISION_ACTIONS,
    EMPLOYEE_TYPES,
    FORECAST_TRANSITIONS,
    MAX_YEAR,
    MIN_YEAR,
    MONTH_NAMES,
    RATING_FIELDS,
    REVIEW_PRIORITIES,
    STATUS_DRAFT,
    STATUS_REVIEWED,
    STATUS_SUBMITTED,
    WORKFORCE_TYPES,
    Forecast,
    ForecastComment,
    ForecastItem,
)
from manpower.models.organization import ROLE_HOD
from manpower.services.permission import check_permission

logger = logging.getLogger(__name__)

# Action → required permission mapping
_ACTION_PERMISSION = {
    "submit": "forecast_submit",
    "approve": "forecast_review",
    "reject": "forecast_review",
    "mark_reviewed": "forecast_review",
}

_COUNT_FIELDS = ("current_count", "forecast_count", "recent_resignations")
_MONEY_FIELDS = (
    "salary_budget",
    "one_time_cost",
    "cost_per_hire",
    "current_average_salary",
    "market_benchmark_salary",
)


# ═══════════════════════════════════════════════════════════════════════════
#  Validation
# ═══════════════════════════════════════════════════════════════════════════

def _is_number(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return isinstance(value, int) or math.isfinite(value)


def _is_whole(value) -> bool:
    return _is_number(value) and (isinstance(value, int) or value.is_integer())


def validate_period(period) -> Period:
    """Coerce ``{"year", "quarter"}`` (or a Period) and range-check it."""
    if isinstance(period, Period):
        year, quarter = period.year, period.quarter
    elif isinstance(period, Mapping):
        year, quarter = period.get("year"), period.get("quarter")
    else:
        raise ValidationError("period must be an object with year and quarter", field="period")

    try:
        year = int(year)
    except (TypeError, ValueError):
        raise ValidationError("period.year must be a whole number", field="year") from None
    try:
        quarter = int(quarter)
    except (TypeError, ValueError):
        raise ValidationError("period.quarter must be a whole number", field="quarter") from None

    if not MIN_YEAR <= year <= MAX_YEAR:
        raise ValidationError(f"period.year must be between {MIN_YEAR} and {MAX_YEAR}", field="year")
    if not 1 <= quarter <= 4:
        raise ValidationError("period.quarter must be between 1 and 4", field="quarter")
    return Period(year, quarter)


def _fail(n: int, field: str, problem: str):
    raise ValidationError(f"Item #{n}: {field} {problem}", item=n, field=field)


def _validate_item(n: int, item, require_ratings: bool) -> None:
    if not isinstance(item, Mapping):
        raise ValidationError(f"Item #{n}: must be an object", item=n)

    position = item.get("position")
    if not isinstance(position, str) or not position.strip():
        _fail(n, "position", "is required")

    workforce_type = item.get("workforce_type") or "FT"
    if workforce_type not in WORKFORCE_TYPES:
        _fail(n, "workforce_type", f"must be one of {', '.join(sorted(WORKFORCE_TYPES))}")

    for field in _COUNT_FIELDS:
        value = item.get(field)
        if value is None:
            continue
        if not _is_whole(value):
            _fail(n, field, "must be a whole number")
        if value < 0:
            _fail(n, field, "cannot be negative")

    for field in _MONEY_FIELDS:
        value = item.get(field)
        if value is None:
            continue
        if not _is_number(value):
            _fail(n, field, "must be a number")
        if value < 0:
            _fail(n, field, "cannot be negative")

    rate = item.get("historical_attrition_rate")
    if rate is not None:
        if not _is_number(rate):
            _fail(n, "historical_attrition_rate", "must be a number")
        if not 0 <= rate <= 1:
            _fail(n, "historical_attrition_rate", "must be between 0 and 1")

    for field in RATING_FIELDS:
        value = item.get(field)
        if value is None:
            if require_ratings:
                _fail(n, field, "is required before submission")
            continue
        if not _is_whole(value):
            _fail(n, field, "must be a whole number")
        if not 1 <= value <= 5:
            _fail(n, field, "must be between 1 and 5")

    month = item.get("expected_start_month")
    if month and month not in MONTH_NAMES:
        _fail(n, "expected_start_month", "must be a month name (e.g. January)")

    employee_type = item.get("employee_type")
    if employee_type is not None and employee_type not in EMPLOYEE_TYPES:
        _fail(n, "employee_type", f"must be one of {', '.join(sorted(EMPLOYEE_TYPES))}")

    skills = item.get("skills")
    if skills is not None and not isinstance(skills, (list, tuple, str)):
        _fail(n, "skills", "must be a list of strings")

    hire_date = item.get("expected_hire_date")
    if hire_date and not isinstance(hire_date, date):
        try:
            date.fromisoformat(str(hire_date))
        except ValueError:
            _fail(n, "expected_hire_date", "must be an ISO date (YYYY-MM-DD)")


def validate_items(items, *, require_ratings: bool = False) -> None:
    """
    Validate a forecast's item list. Fail-fast: the first violation
    raises ValidationError naming the 1-based item index and the field.

    Args:
        items: List of item mappings (snake_case field names).
        require_ratings: All five ratings must be present (submit time).
    """
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError("At least one forecast item is required", field="items")
    for n, item in enumerate(items, start=1):
        _validate_item(n, item, require_ratings)


def _build_item(line_no: int, data: Mapping) -> ForecastItem:
    skills = data.get("skills") or []
    if isinstance(skills, str):
        skills = [s.strip() for s in skills.split(",") if s.strip()]
    hire_date = data.get("expected_hire_date")
    if hire_date and not isinstance(hire_date, date):
        hire_date = date.fromisoformat(str(hire_date))

    return ForecastItem(
        line_no=line_no,
        position=data["position"].strip(),
        workforce_type=data.get("workforce_type") or "FT",
        grade_level=data.get("grade_level") or "N/A",
        employee_type=data.get("employee_type") or "Permanent",
        location=data.get("location") or "Head Office",
        skills=[str(s) for s in skills],
        current_count=int(data.get("current_count") or 0),
        forecast_count=int(data.get("forecast_count") or 0),
        salary_budget=data.get("salary_budget") or 0,
        one_time_cost=data.get("one_time_cost") or 0,
        cost_per_hire=data.get("cost_per_hire") or 0,
        current_average_salary=data.get("current_average_salary") or 0,
        market_benchmark_salary=data.get("market_benchmark_salary") or 0,
        expected_start_month=data.get("expected_start_month") or None,
        expected_hire_date=hire_date or None,
        justification=data.get("justification") or None,
        historical_attrition_rate=float(data.get("historical_attrition_rate") or 0),
        recent_resignations=int(data.get("recent_resignations") or 0),
        critical_skills_gap=data.get("critical_skills_gap"),
        market_demand=data.get("market_demand"),
        salary_competitiveness=data.get("salary_competitiveness"),
        work_life_balance=data.get("work_life_balance"),
        career_growth_opportunities=data.get("career_growth_opportunities"),
    )


def validate_transition(forecast: Forecast, action: str) -> dict:
    """
    Validate whether an action is valid for the current state.

    Returns:
        {"valid": bool, "from": str, "to": str|None, "reason": str|None}
    """
    rule = FORECAST_TRANSITIONS.get(action)
    if not rule:
        return {"valid": False, "from": forecast.status, "to": None,
                "reason": f"Unknown action: {action}"}

    if forecast.status not in rule["from"]:
        return {"valid": False, "from": forecast.status, "to": rule["to"],
                "reason": f"Cannot {action.replace('_', ' ')} {forecast.status} forecast"}

    return {"valid": True, "from": forecast.status, "to": rule["to"], "reason": None}


def get_available_transitions(forecast: Forecast) -> list[str]:
    """Get list of valid actions for a forecast's current status."""
    return [
        action for action, rule in FORECAST_TRANSITIONS.items()
        if forecast.status in rule["from"]
    ]


# ═══════════════════════════════════════════════════════════════════════════
#  Lifecycle
# ═══════════════════════════════════════════════════════════════════════════

class ForecastLifecycle:
    """
    Forecast state machine: draft → submitted → reviewed/approved/rejected.

    Args:
        store: ForecastStore (commit/rollback, lookups, audit)
        notifier: Notifier used after commit for approval/rejection;
            None disables notifications.
        clock: Object with ``now()``; defaults to SystemClock.
    """

    def __init__(self, store, notifier=None, clock=None):
        self.store = store
        self.notifier = notifier
        self.clock = clock or SystemClock()

    # ── Helpers ──────────────────────────────────────────────────────────

    def _load(self, forecast_id) -> Forecast:
        forecast = self.store.find_forecast_by_id(forecast_id)
        if forecast is None:
            raise NotFoundError("Forecast", forecast_id)
        return forecast

    def _load_for(self, actor, forecast_id, permission: str) -> Forecast:
        forecast = self._load(forecast_id)
        check_permission(actor, permission, department_id=forecast.department_id)
        return forecast

    @staticmethod
    def _check_version(forecast: Forecast, expected_version) -> None:
        if expected_version is None:
            return
        if int(expected_version) != forecast.version_id:
            raise ConflictError(
                "Forecast", forecast.id,
                reason=(f"Forecast id={forecast.id} is at version {forecast.version_id}, "
                        f"not {expected_version}; reload and retry"),
            )

    def _transition(self, forecast: Forecast, action: str) -> str:
        validation = validate_transition(forecast, action)
        if not validation["valid"]:
            raise InvalidStateError(action, forecast.status, validation["reason"],
                                    resource_id=forecast.id)
        return validation["to"]

    def _audit(self, forecast_id, action: str, actor, diff: dict | None = None) -> None:
        self.store.record_audit(
            entity_id=forecast_id,
            action=f"forecast.{action}",
            actor_user_id=getattr(actor, "id", None),
            diff=diff,
            timestamp=self.clock.now(),
        )

    def _apply_review(self, forecast: Forecast, actor, status: str, comments) -> None:
        forecast.status = status
        forecast.reviewed_at = self.clock.now()
        forecast.reviewed_by_id = actor.id
        if comments:
            forecast.review_comments = comments

    def _notify_decision(self, forecast: Forecast) -> None:
        if self.notifier is None or forecast.submitted_by is None:
            return
        kind = "approval" if forecast.status == "approved" else "rejection"
        self.notifier.notify(kind, forecast.submitted_by.email, {
            "user_name": forecast.submitted_by.name,
            "department_name": forecast.department.name if forecast.department else "",
            "quarter_year": forecast.period_label,
            "status": forecast.status,
            "comments": forecast.review_comments or "",
            "forecast_id": forecast.id,
        })

    # ── Create / edit ────────────────────────────────────────────────────

    def create_forecast(self, actor, period, items, department_id=None,
                        submit: bool = False) -> Forecast:
        """
        Create a draft forecast for (department, year, quarter).

        HODs always create for their own department; admins must name one.
        With ``submit=True`` the forecast is stored already submitted, in
        the same commit, after the submit-time rating check passes.

        Raises:
            ValidationError, DuplicateError, PermissionDenied, NotFoundError
        """
        check_permission(actor, "forecast_create")
        period = validate_period(period)

        if actor.role == ROLE_HOD:
            department_id = department_id or actor.department_id
        if not department_id:
            raise ValidationError("department_id is required", field="department_id")
        if self.store.get_department(department_id) is None:
            raise NotFoundError("Department", department_id)
        check_permission(actor, "forecast_create", department_id=department_id)
        if submit:
            check_permission(actor, _ACTION_PERMISSION["submit"], department_id=department_id)

        validate_items(items, require_ratings=submit)

        key = {"department_id": department_id, "year": period.year, "quarter": period.quarter}
        existing = self.store.find_forecast(department_id, period.year, period.quarter)
        if existing is not None:
            raise DuplicateError("Forecast", key, existing_id=existing.id)

        forecast = Forecast(
            department_id=department_id,
            submitted_by_id=actor.id,
            year=period.year,
            quarter=period.quarter,
            status=STATUS_SUBMITTED if submit else STATUS_DRAFT,
            submitted_at=self.clock.now() if submit else None,
            items=[_build_item(n, data) for n, data in enumerate(items, start=1)],
        )
        forecast.recompute_total_budget()
        self.store.save_forecast(forecast)

        logger.info("Forecast %s created (%s) for department %s %s by user %s",
                    forecast.id, forecast.status, department_id, period.label, actor.id)
        self._audit(forecast.id, "create", actor, {
            "status": {"old": None, "new": forecast.status},
            "total_budget": {"old": None, "new": forecast.total_budget},
            "items": {"old": 0, "new": len(items)},
        })
        return forecast

    def edit_forecast(self, actor, forecast_id, items, expected_version=None) -> Forecast:
        """
        Replace a draft forecast's items and recompute its total budget.

        Raises:
            NotFoundError, PermissionDenied, InvalidStateError,
            ConflictError, ValidationError
        """
        forecast = self._load_for(actor, forecast_id, "forecast_edit")
        if forecast.status != STATUS_DRAFT:
            raise InvalidStateError("edit", forecast.status,
                                    f"Cannot edit {forecast.status} forecast",
                                    resource_id=forecast.id)
        self._check_version(forecast, expected_version)
        validate_items(items)

        old_total = forecast.total_budget
        forecast.items = [_build_item(n, data) for n, data in enumerate(items, start=1)]
        forecast.recompute_total_budget()
        forecast.updated_at = self.clock.now()
        self.store.save_forecast(forecast)

        logger.info("Forecast %s edited by user %s (%d items)", forecast.id, actor.id, len(items))
        self._audit(forecast.id, "edit", actor, {
            "total_budget": {"old": old_total, "new": forecast.total_budget},
            "items": {"new": len(items)},
        })
        return forecast

    # ── Transitions ──────────────────────────────────────────────────────

    def submit_forecast(self, actor, forecast_id, expected_version=None) -> Forecast:
        """
        draft → submitted. Every item must carry all five ratings.
        """
        forecast = self._load_for(actor, forecast_id, _ACTION_PERMISSION["submit"])
        target = self._transition(forecast, "submit")
        self._check_version(forecast, expected_version)
        validate_items([i.to_dict() for i in forecast.items], require_ratings=True)

        previous = forecast.status
        forecast.status = target
        forecast.submitted_at = self.clock.now()
        self.store.save_forecast(forecast)

        logger.info("Forecast %s submitted by user %s", forecast.id, actor.id)
        self._audit(forecast.id, "submit", actor, {"status": {"old": previous, "new": target}})
        return forecast

    def review_forecast(self, actor, forecast_id, decision, comments=None,
                        expected_version=None) -> Forecast:
        """
        submitted → approved | rejected, then notify the submitter.

        Raises:
            ValidationError (bad decision), PermissionDenied,
            NotFoundError, InvalidStateError, ConflictError
        """
        action = DECISION_ACTIONS.get(decision)
        if action is None:
            raise ValidationError("decision must be 'approved' or 'rejected'", field="decision")
        check_permission(actor, _ACTION_PERMISSION[action])

        forecast = self._load(forecast_id)
        target = self._transition(forecast, action)
        self._check_version(forecast, expected_version)

        previous = forecast.status
        self._apply_review(forecast, actor, target, comments)
        self.store.save_forecast(forecast)

        logger.info("Forecast %s %s by user %s", forecast.id, target, actor.id)
        self._audit(forecast.id, action, actor, {
            "status": {"old": previous, "new": target},
            "review_comments": {"old": None, "new": comments},
        })
        self._notify_decision(forecast)
        return forecast

    def mark_reviewed(self, actor, forecast_id, comments=None, priority=None,
                      expected_version=None) -> Forecast:
        """submitted → reviewed. Stamps the reviewer; sends no notification."""
        check_permission(actor, _ACTION_PERMISSION["mark_reviewed"])
        if priority is not None and priority not in REVIEW_PRIORITIES:
            raise ValidationError(
                f"review_priority must be one of {', '.join(sorted(REVIEW_PRIORITIES))}",
                field="review_priority",
            )
        forecast = self._load(forecast_id)
        target = self._transition(forecast, "mark_reviewed")
        self._check_version(forecast, expected_version)

        previous = forecast.status
        self._apply_review(forecast, actor, target, comments)
        if priority:
            forecast.review_priority = priority
        self.store.save_forecast(forecast)

        logger.info("Forecast %s marked reviewed by user %s", forecast.id, actor.id)
        self._audit(forecast.id, "mark_reviewed", actor, {"status": {"old": previous, "new": target}})
        return forecast

    def set_review_priority(self, actor, forecast_id, priority) -> Forecast:
        check_permission(actor, "forecast_review")
        if priority not in REVIEW_PRIORITIES:
            raise ValidationError(
                f"review_priority must be one of {', '.join(sorted(REVIEW_PRIORITIES))}",
                field="review_priority",
            )
        forecast = self._load(forecast_id)
        if forecast.status not in (STATUS_SUBMITTED, STATUS_REVIEWED):
            raise InvalidStateError("prioritize", forecast.status,
                                    f"Cannot set priority on {forecast.status} forecast",
                                    resource_id=forecast.id)
        previous = forecast.review_priority
        forecast.review_priority = priority
        self.store.save_forecast(forecast)
        self._audit(forecast.id, "set_priority", actor,
                    {"review_priority": {"old": previous, "new": priority}})
        return forecast

    def add_comment(self, actor, forecast_id, message) -> ForecastComment:
        """Append a comment once the forecast has left draft."""
        forecast = self._load_for(actor, forecast_id, "forecast_comment")
        if forecast.status == STATUS_DRAFT:
            raise InvalidStateError("comment", forecast.status,
                                    "Cannot comment on draft forecast",
                                    resource_id=forecast.id)
        if not isinstance(message, str) or not message.strip():
            raise ValidationError("message is required", field="message")

        comment = ForecastComment(author_id=actor.id, message=message.strip(),
                                  timestamp=self.clock.now())
        forecast.comments.append(comment)
        self.store.save_forecast(forecast)
        self._audit(forecast.id, "comment", actor, {"comment_id": comment.id})
        return comment

    def delete_forecast(self, actor, forecast_id, expected_version=None) -> None:
        """Hard-delete a draft forecast. Anything past draft is kept."""
        forecast = self._load_for(actor, forecast_id, "forecast_delete")
        if forecast.status != STATUS_DRAFT:
            raise InvalidStateError("delete", forecast.status,
                                    f"Cannot delete {forecast.status} forecast",
                                    resource_id=forecast.id)
        self._check_version(forecast, expected_version)

        snapshot = {"department_id": forecast.department_id,
                    "period": forecast.period_label,
                    "total_budget": forecast.total_budget}
        fid = forecast.id
        self.store.delete_forecast(forecast)

        logger.info("Forecast %s deleted by user %s", fid, actor.id)
        self._audit(fid, "delete", actor, {"deleted": snapshot})

    # ── Batch ────────────────────────────────────────────────────────────

    def bulk_review(self, actor, forecast_ids, decision, comments=None) -> dict:
        """
        Approve or reject many forecasts in one transaction.

        Same submitted-only guard as ``review_forecast``: forecasts in any
        other status are skipped and reported, unknown ids are listed
        under ``not_found``. Eligible forecasts commit together.

        Returns:
            {"updated": [ids], "skipped": [{forecast_id, status, reason}], "not_found": [ids]}
        """
        action = DECISION_ACTIONS.get(decision)
        if action is None:
            raise ValidationError("decision must be 'approved' or 'rejected'", field="decision")
        check_permission(actor, _ACTION_PERMISSION[action])
        if not isinstance(forecast_ids, (list, tuple)) or not forecast_ids:
            raise ValidationError("forecast_ids must be a non-empty list", field="forecast_ids")

        results = {"updated": [], "skipped": [], "not_found": []}
        eligible = []
        for fid in dict.fromkeys(forecast_ids):
            forecast = self.store.find_forecast_by_id(fid)
            if forecast is None:
                results["not_found"].append(fid)
                continue
            validation = validate_transition(forecast, action)
            if not validation["valid"]:
                logger.warning("Bulk %s skipped forecast %s: %s", action, fid, validation["reason"])
                results["skipped"].append({
                    "forecast_id": fid,
                    "status": forecast.status,
                    "reason": validation["reason"],
                })
                continue
            self._apply_review(forecast, actor, validation["to"], comments)
            eligible.append(forecast)

        if eligible:
            self.store.save_forecasts(eligible)

        for forecast in eligible:
            results["updated"].append(forecast.id)
            self._audit(forecast.id, "bulk_review", actor, {
                "status": {"old": STATUS_SUBMITTED, "new": forecast.status},
                "review_comments": {"old": None, "new": comments},
            })
            self._notify_decision(forecast)

        logger.info("Bulk %s by user %s: %d updated, %d skipped, %d not found",
                    action, actor.id, len(results["updated"]),
                    len(results["skipped"]), len(results["not_found"]))
        return results
