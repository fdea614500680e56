"""
Reminder Blueprint — missing submissions and the reminder scheduler.

Routes:
  GET  /reminders/missing                 – department heads without a forecast
  GET  /reminders/status                  – scheduler state and job history
  POST /reminders/trigger/<job_name>      – run a reminder job now (rate limited)
  PUT  /reminders/jobs/<job_name>         – enable / disable a job
"""

import logging

from flask import Blueprint, current_app, g, jsonify, request

from manpower.auth import require_actor
from manpower.core.exceptions import ValidationError
from manpower.services import forecast_service
from manpower.services.forecast_lifecycle import validate_period
from manpower.services.permission import check_permission
from manpower.services.reminder_policy import (
    current_period,
    days_until_quarter_end,
    should_send_urgent,
)
from manpower.utils.helpers import json_body, parse_int

logger = logging.getLogger(__name__)

reminder_bp = Blueprint("reminder", __name__, url_prefix="/api/v1/reminders")


def _scheduler():
    return current_app.extensions["reminder_scheduler"]


@reminder_bp.route("/missing", methods=["GET"])
@require_actor
def missing():
    """Active department heads with no forecast for the period.

    Query params:
        year, quarter — default: the quarter containing today
    """
    check_permission(g.actor, "reminder_view")
    now = forecast_service.get_clock().now()
    year = parse_int(request.args.get("year"), "year")
    quarter = parse_int(request.args.get("quarter"), "quarter")
    if year is None and quarter is None:
        period = current_period(now)
    else:
        period = validate_period({"year": year, "quarter": quarter})

    submitters = forecast_service.compute_missing_submitters(period)
    days_left = days_until_quarter_end(now, period)
    return jsonify({
        "period": period.label,
        "days_until_quarter_end": days_left,
        "urgent": should_send_urgent(days_left),
        "items": [s.to_dict() for s in submitters],
        "total": len(submitters),
    })


@reminder_bp.route("/status", methods=["GET"])
@require_actor
def status():
    check_permission(g.actor, "reminder_view")
    return jsonify(_scheduler().status())


@reminder_bp.route("/trigger/<job_name>", methods=["POST"])
@require_actor
def trigger(job_name):
    """Run one reminder job immediately, regardless of its schedule."""
    check_permission(g.actor, "reminder_trigger")
    logger.info("Manual trigger of %s by user %s", job_name, g.actor.id,
                extra={"job_name": job_name, "actor_id": g.actor.id})
    return jsonify(_scheduler().run_job(job_name))


@reminder_bp.route("/jobs/<job_name>", methods=["PUT"])
@require_actor
def toggle(job_name):
    """Body: { enabled: true|false }"""
    check_permission(g.actor, "reminder_trigger")
    data = json_body()
    enabled = data.get("enabled")
    if not isinstance(enabled, bool):
        raise ValidationError("enabled must be true or false", field="enabled")
    return jsonify(_scheduler().toggle_job(job_name, enabled))
