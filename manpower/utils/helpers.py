"""Shared request-parsing helpers for the API blueprints.

parse_int:      query/body integer → int or None (raises ValidationError)
parse_filter:   query string → ForecastFilter
json_body:      request JSON object or ValidationError
query_flag:     "true"/"1"/"yes" query parameter → bool
"""
import logging

from flask import request

from manpower.core.exceptions import ValidationError
from manpower.core.records import ForecastFilter
from manpower.models.forecast import FORECAST_STATUSES

logger = logging.getLogger(__name__)


def parse_int(value, field: str):
    """Parse an optional integer parameter.

    Returns None for empty input; raises ValidationError when the value
    is present but not a whole number.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a whole number", field=field)
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be a whole number", field=field) from exc


def parse_filter(args=None) -> ForecastFilter:
    """Build a ForecastFilter from ``year``, ``quarter``, ``department_id``
    and (comma separated or repeated) ``status`` query parameters."""
    args = request.args if args is None else args

    statuses = []
    for raw in args.getlist("status"):
        statuses.extend(s.strip() for s in raw.split(",") if s.strip())
    unknown = [s for s in statuses if s not in FORECAST_STATUSES]
    if unknown:
        raise ValidationError(
            f"status must be one of {', '.join(FORECAST_STATUSES)}",
            field="status",
        )

    quarter = parse_int(args.get("quarter"), "quarter")
    if quarter is not None and not 1 <= quarter <= 4:
        raise ValidationError("quarter must be between 1 and 4", field="quarter")

    return ForecastFilter(
        year=parse_int(args.get("year"), "year"),
        quarter=quarter,
        department_id=parse_int(args.get("department_id"), "department_id"),
        statuses=tuple(dict.fromkeys(statuses)),
    )


def query_flag(name: str) -> bool:
    return (request.args.get(name) or "").strip().lower() in ("1", "true", "yes")


def json_body() -> dict:
    """Return the request JSON object; anything else is a validation error."""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data
