"""
Forecast Blueprint — quarterly manpower forecasts and their review workflow.

Routes:
  GET    /forecasts                        – list (HODs see their department)
  POST   /forecasts                        – create draft (optionally submit)
  GET    /forecasts/review-queue           – forecasts awaiting review
  POST   /forecasts/bulk-review            – approve / reject many
  GET    /forecasts/<fid>                  – detail with items and comments
  PUT    /forecasts/<fid>                  – replace items of a draft
  DELETE /forecasts/<fid>                  – delete a draft
  POST   /forecasts/<fid>/submit           – draft → submitted
  POST   /forecasts/<fid>/review           – submitted → approved | rejected
  POST   /forecasts/<fid>/mark-reviewed    – submitted → reviewed
  PUT    /forecasts/<fid>/priority         – set review priority
  POST   /forecasts/<fid>/comments         – add comment

Every route needs an ``X-User-Id`` header; permission and department
scope are enforced by the services. Optimistic concurrency: pass the
``version`` returned by GET as ``expected_version`` in the body.
"""

import logging

from flask import Blueprint, g, jsonify, request

from manpower.auth import require_actor
from manpower.blueprints import paginate
from manpower.models.forecast import STATUS_SUBMITTED
from manpower.services import forecast_service
from manpower.services.forecast_lifecycle import get_available_transitions
from manpower.utils.helpers import json_body, parse_filter, parse_int

logger = logging.getLogger(__name__)

forecast_bp = Blueprint("forecast", __name__, url_prefix="/api/v1/forecasts")


def _detail(forecast):
    data = forecast.to_dict()
    data["available_transitions"] = get_available_transitions(forecast)
    return data


# ═════════════════════════════════════════════════════════════════════════════
# LIST / DETAIL
# ═════════════════════════════════════════════════════════════════════════════

@forecast_bp.route("", methods=["GET"])
@require_actor
def list_forecasts():
    """List forecasts filtered by year, quarter, department_id, status."""
    forecasts = forecast_service.list_forecasts(g.actor, parse_filter())
    page, total = paginate(forecasts)
    return jsonify({
        "items": [f.to_dict(include_items=False) for f in page],
        "total": total,
    })


@forecast_bp.route("/review-queue", methods=["GET"])
@require_actor
def review_queue():
    """Forecasts awaiting review, oldest submission first."""
    status = request.args.get("status", STATUS_SUBMITTED)
    forecasts = forecast_service.review_queue(g.actor, status)
    return jsonify({
        "items": [f.to_dict(include_items=False) for f in forecasts],
        "total": len(forecasts),
    })


@forecast_bp.route("/<int:fid>", methods=["GET"])
@require_actor
def get_forecast(fid):
    return jsonify(_detail(forecast_service.get_forecast(g.actor, fid)))


# ═════════════════════════════════════════════════════════════════════════════
# CREATE / EDIT / DELETE
# ═════════════════════════════════════════════════════════════════════════════

@forecast_bp.route("", methods=["POST"])
@require_actor
def create_forecast():
    """Create a draft forecast.

    Body: { period: {year, quarter}, items: [...], department_id?, status? }
    ``status: "submitted"`` stores it already submitted; if the submit
    checks fail nothing is saved.
    """
    data = json_body()
    forecast = forecast_service.get_lifecycle().create_forecast(
        g.actor,
        data.get("period"),
        data.get("items"),
        department_id=parse_int(data.get("department_id"), "department_id"),
        submit=data.get("status") == STATUS_SUBMITTED,
    )
    return jsonify(_detail(forecast)), 201


@forecast_bp.route("/<int:fid>", methods=["PUT"])
@require_actor
def edit_forecast(fid):
    """Replace a draft's items.  Body: { items: [...], expected_version? }"""
    data = json_body()
    forecast = forecast_service.get_lifecycle().edit_forecast(
        g.actor, fid, data.get("items"),
        expected_version=parse_int(data.get("expected_version"), "expected_version"),
    )
    return jsonify(_detail(forecast))


@forecast_bp.route("/<int:fid>", methods=["DELETE"])
@require_actor
def delete_forecast(fid):
    expected = parse_int(request.args.get("expected_version"), "expected_version")
    forecast_service.get_lifecycle().delete_forecast(g.actor, fid, expected_version=expected)
    return jsonify({"message": "Forecast deleted", "id": fid})


# ═════════════════════════════════════════════════════════════════════════════
# TRANSITIONS
# ═════════════════════════════════════════════════════════════════════════════

@forecast_bp.route("/<int:fid>/submit", methods=["POST"])
@require_actor
def submit_forecast(fid):
    data = json_body()
    forecast = forecast_service.get_lifecycle().submit_forecast(
        g.actor, fid,
        expected_version=parse_int(data.get("expected_version"), "expected_version"),
    )
    return jsonify(_detail(forecast))


@forecast_bp.route("/<int:fid>/review", methods=["POST"])
@require_actor
def review_forecast(fid):
    """Approve or reject.  Body: { decision: approved|rejected, comments?, expected_version? }"""
    data = json_body()
    forecast = forecast_service.get_lifecycle().review_forecast(
        g.actor, fid, data.get("decision"),
        comments=data.get("comments"),
        expected_version=parse_int(data.get("expected_version"), "expected_version"),
    )
    return jsonify(_detail(forecast))


@forecast_bp.route("/<int:fid>/mark-reviewed", methods=["POST"])
@require_actor
def mark_reviewed(fid):
    data = json_body()
    forecast = forecast_service.get_lifecycle().mark_reviewed(
        g.actor, fid,
        comments=data.get("comments"),
        priority=data.get("review_priority"),
        expected_version=parse_int(data.get("expected_version"), "expected_version"),
    )
    return jsonify(_detail(forecast))


@forecast_bp.route("/<int:fid>/priority", methods=["PUT"])
@require_actor
def set_priority(fid):
    data = json_body()
    forecast = forecast_service.get_lifecycle().set_review_priority(
        g.actor, fid, data.get("review_priority"),
    )
    return jsonify(_detail(forecast))


@forecast_bp.route("/<int:fid>/comments", methods=["POST"])
@require_actor
def add_comment(fid):
    data = json_body()
    comment = forecast_service.get_lifecycle().add_comment(g.actor, fid, data.get("message"))
    return jsonify(comment.to_dict()), 201


@forecast_bp.route("/bulk-review", methods=["POST"])
@require_actor
def bulk_review():
    """Body: { forecast_ids: [...], decision: approved|rejected, comments? }"""
    data = json_body()
    result = forecast_service.get_lifecycle().bulk_review(
        g.actor, data.get("forecast_ids"), data.get("decision"),
        comments=data.get("comments"),
    )
    return jsonify(result)
