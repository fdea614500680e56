"""
Forecast read facade.

Everything the reporting and listing endpoints need, built on the
app's ForecastStore and the pure aggregation/export modules. Reads only
see committed state.

Usage:
    from manpower.services import forecast_service

    summary = forecast_service.get_summary(ForecastFilter(year=2025, quarter=1))
"""

import dataclasses
import logging

from flask import current_app

from manpower.core.exceptions import NotFoundError, ValidationError
from manpower.core.records import ForecastFilter, Period
from manpower.models.forecast import FORECAST_STATUSES, Forecast, STATUS_SUBMITTED
from manpower.models.organization import ROLE_HOD
from manpower.services import aggregation, export_service
from manpower.services.permission import can_view_all, check_permission
from manpower.services.reminder_policy import current_period, missing_submitters

logger = logging.getLogger(__name__)


def get_store():
    return current_app.extensions["forecast_store"]


def get_lifecycle():
    return current_app.extensions["forecast_lifecycle"]


def get_clock():
    return current_app.extensions["clock"]


def _next_month(now) -> tuple[int, int]:
    if now.month == 12:
        return now.year + 1, 1
    return now.year, now.month + 1


# ── Reports ──────────────────────────────────────────────────────────────

def get_summary(flt: ForecastFilter) -> dict:
    store = get_store()
    records = store.list_records(flt)
    summary = aggregation.summarize(records, total_departments=store.count_departments())
    summary["status_distribution"] = aggregation.status_distribution(summary)
    summary["filter"] = {"year": flt.year, "quarter": flt.quarter}
    return summary


def get_department_rollups(flt: ForecastFilter) -> list[dict]:
    return aggregation.by_department(get_store().list_records(flt))


def get_department_report(department_id: int, flt: ForecastFilter) -> dict:
    """Per-department drill-down: rollup, summary and scored items."""
    store = get_store()
    department = store.get_department(department_id)
    if department is None:
        raise NotFoundError("Department", department_id)

    records = store.list_records(dataclasses.replace(flt, department_id=department_id))
    rollups = aggregation.by_department(records)
    return {
        "department": department.to_dict(),
        "rollup": rollups[0] if rollups else None,
        "summary": aggregation.summarize(records),
        "items": aggregation.flatten_items(records),
        "risk_factors": aggregation.risk_factor_radar(aggregation.all_items(records)),
    }


def get_advanced_analytics(flt: ForecastFilter) -> dict:
    store = get_store()
    now = get_clock().now()
    records = store.list_records(flt)
    period = flt.period or current_period(now)
    payload = aggregation.advanced_analytics(
        records, store.load_period, period, start=_next_month(now),
    )
    payload["summary"] = aggregation.summarize(records, total_departments=store.count_departments())
    payload["departments"] = aggregation.by_department(records)
    payload["period"] = period.label
    return payload


# ── Exports ──────────────────────────────────────────────────────────────

def export_rows(flt: ForecastFilter) -> str:
    return export_service.export_rows_csv(get_store().list_records(flt))


def export_advanced(flt: ForecastFilter) -> str:
    return export_service.export_advanced_csv(get_store().list_records(flt))


def export_xlsx(flt: ForecastFilter) -> bytes:
    return export_service.export_rows_xlsx(get_store().list_records(flt))


# ── Reminders ────────────────────────────────────────────────────────────

def compute_missing_submitters(period: Period) -> list:
    store = get_store()
    submitters = store.list_submitters_by_role(ROLE_HOD)
    existing = store.list_records(ForecastFilter(year=period.year, quarter=period.quarter))
    return missing_submitters(period, submitters, existing)


# ── Listing ──────────────────────────────────────────────────────────────

def list_forecasts(actor, flt: ForecastFilter) -> list[Forecast]:
    """Forecasts visible to the actor; HODs only see their department."""
    check_permission(actor, "forecast_view")
    if not can_view_all(actor):
        flt = dataclasses.replace(flt, department_id=actor.department_id)
    return get_store().list_forecasts(flt)


def get_forecast(actor, forecast_id) -> Forecast:
    check_permission(actor, "forecast_view")
    forecast = get_store().find_forecast_by_id(forecast_id)
    if forecast is None:
        raise NotFoundError("Forecast", forecast_id)
    if actor.role == ROLE_HOD and forecast.department_id != actor.department_id:
        raise NotFoundError("Forecast", forecast_id)
    return forecast


def review_queue(actor, status: str = STATUS_SUBMITTED) -> list[Forecast]:
    """Forecasts awaiting review, oldest submission first."""
    check_permission(actor, "forecast_review")
    if status not in FORECAST_STATUSES:
        raise ValidationError(f"Unknown status: {status}", field="status")
    forecasts = get_store().list_forecasts(ForecastFilter(statuses=(status,)))
    return sorted(forecasts, key=lambda f: (f.submitted_at is None, f.submitted_at or 0, f.id))
