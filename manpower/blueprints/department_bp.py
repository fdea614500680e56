"""
Department Blueprint — organizational units that own forecasts.

Routes:
  GET    /departments           – active departments (?include_inactive=true)
  POST   /departments           – create (admin)
  GET    /departments/<did>     – detail
  PUT    /departments/<did>     – update name, code, description, is_active (admin)
  DELETE /departments/<did>     – deactivate; refused while active users remain (admin)
"""

import logging

from flask import Blueprint, g, jsonify

from manpower.auth import require_actor
from manpower.services import organization_service
from manpower.utils.helpers import json_body, query_flag

logger = logging.getLogger(__name__)

department_bp = Blueprint("department", __name__, url_prefix="/api/v1/departments")


@department_bp.route("", methods=["GET"])
@require_actor
def list_departments():
    departments = organization_service.list_departments(
        g.actor, include_inactive=query_flag("include_inactive"),
    )
    return jsonify({"items": [d.to_dict() for d in departments], "total": len(departments)})


@department_bp.route("", methods=["POST"])
@require_actor
def create_department():
    """Body: { name, code, description? }"""
    dept = organization_service.create_department(g.actor, json_body())
    return jsonify(dept.to_dict()), 201


@department_bp.route("/<int:did>", methods=["GET"])
@require_actor
def get_department(did):
    return jsonify(organization_service.get_department(g.actor, did).to_dict())


@department_bp.route("/<int:did>", methods=["PUT"])
@require_actor
def update_department(did):
    dept = organization_service.update_department(g.actor, did, json_body())
    return jsonify(dept.to_dict())


@department_bp.route("/<int:did>", methods=["DELETE"])
@require_actor
def delete_department(did):
    organization_service.deactivate_department(g.actor, did)
    return jsonify({"message": "Department deactivated", "id": did})
