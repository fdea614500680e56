"""
User Blueprint — platform user administration (admin only).

Routes:
  GET    /users            – list (?role=, ?department_id=, ?include_inactive=true)
  POST   /users            – create
  GET    /users/<uid>      – detail
  PUT    /users/<uid>      – update name, email, role, department_id, is_active
  DELETE /users/<uid>      – deactivate (not yourself)

Department heads need a ``department_id``; they receive the reminders
for that department's forecast.
"""

import logging

from flask import Blueprint, g, jsonify, request

from manpower.auth import require_actor
from manpower.blueprints import paginate
from manpower.services import organization_service
from manpower.utils.helpers import json_body, parse_int, query_flag

logger = logging.getLogger(__name__)

user_bp = Blueprint("user", __name__, url_prefix="/api/v1/users")


@user_bp.route("", methods=["GET"])
@require_actor
def list_users():
    users = organization_service.list_users(
        g.actor,
        role=request.args.get("role") or None,
        department_id=parse_int(request.args.get("department_id"), "department_id"),
        include_inactive=query_flag("include_inactive"),
    )
    page, total = paginate(users)
    return jsonify({"items": [u.to_dict() for u in page], "total": total})


@user_bp.route("", methods=["POST"])
@require_actor
def create_user():
    """Body: { name, email, role, department_id? }"""
    user = organization_service.create_user(g.actor, json_body())
    return jsonify(user.to_dict()), 201


@user_bp.route("/<int:uid>", methods=["GET"])
@require_actor
def get_user(uid):
    return jsonify(organization_service.get_user(g.actor, uid).to_dict())


@user_bp.route("/<int:uid>", methods=["PUT"])
@require_actor
def update_user(uid):
    user = organization_service.update_user(g.actor, uid, json_body())
    return jsonify(user.to_dict())


@user_bp.route("/<int:uid>", methods=["DELETE"])
@require_actor
def delete_user(uid):
    organization_service.deactivate_user(g.actor, uid)
    return jsonify({"message": "User deactivated", "id": uid})
