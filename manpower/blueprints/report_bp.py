"""
Report Blueprint — dashboard aggregates and exports.

Routes:
  GET /reports/summary                    – totals, status counts, averages
  GET /reports/departments                – per-department rollups
  GET /reports/departments/<did>          – one department drill-down
  GET /reports/advanced                   – attrition, radar, trend, ROI…
  GET /reports/export?format=csv|xlsx     – workforce report download
  GET /reports/export/advanced            – advanced analytics CSV

Filters (query string): year, quarter, department_id, status.
Reports require ``report_view``; downloads require ``report_export``.
A department head may open the drill-down of their own department.
"""

import logging

from flask import Blueprint, Response, g, jsonify, request

from manpower.auth import require_actor
from manpower.services import forecast_service
from manpower.services.export_service import export_filename
from manpower.services.permission import check_permission
from manpower.utils.errors import E, api_error
from manpower.utils.helpers import parse_filter

logger = logging.getLogger(__name__)

report_bp = Blueprint("report", __name__, url_prefix="/api/v1/reports")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _download(content, filename, mimetype):
    return Response(
        content,
        mimetype=mimetype,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@report_bp.route("/summary", methods=["GET"])
@require_actor
def summary():
    check_permission(g.actor, "report_view")
    return jsonify(forecast_service.get_summary(parse_filter()))


@report_bp.route("/departments", methods=["GET"])
@require_actor
def departments():
    check_permission(g.actor, "report_view")
    rollups = forecast_service.get_department_rollups(parse_filter())
    return jsonify({"items": rollups, "total": len(rollups)})


@report_bp.route("/departments/<int:did>", methods=["GET"])
@require_actor
def department_report(did):
    # department heads may drill into their own department only
    check_permission(g.actor, "department_report", department_id=did)
    return jsonify(forecast_service.get_department_report(did, parse_filter()))


@report_bp.route("/advanced", methods=["GET"])
@require_actor
def advanced():
    check_permission(g.actor, "report_view")
    return jsonify(forecast_service.get_advanced_analytics(parse_filter()))


@report_bp.route("/export", methods=["GET"])
@require_actor
def export_report():
    """Workforce report download.

    Query params:
        format: csv | xlsx (default: csv)
    """
    check_permission(g.actor, "report_export")
    fmt = request.args.get("format", "csv").lower()
    if fmt not in ("csv", "xlsx"):
        return api_error(E.VALIDATION_INVALID, "Unsupported format. Supported values: csv, xlsx.",
                         details={"field": "format"})

    flt = parse_filter()
    now = forecast_service.get_clock().now()
    if fmt == "xlsx":
        content = forecast_service.export_xlsx(flt)
        filename = export_filename("workforce-report", flt, "xlsx", now)
        mimetype = XLSX_MIMETYPE
    else:
        content = forecast_service.export_rows(flt)
        filename = export_filename("workforce-report", flt, "csv", now)
        mimetype = "text/csv"

    logger.info("Report export %s by user %s", filename, g.actor.id)
    return _download(content, filename, mimetype)


@report_bp.route("/export/advanced", methods=["GET"])
@require_actor
def export_advanced():
    check_permission(g.actor, "report_export")
    flt = parse_filter()
    filename = export_filename("advanced-analytics", flt, "csv",
                               forecast_service.get_clock().now())
    logger.info("Advanced export %s by user %s", filename, g.actor.id)
    return _download(forecast_service.export_advanced(flt), filename, "text/csv")
