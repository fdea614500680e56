"""
Forecast workflow — Role-Based Access Control (RBAC) Service

Uses PERMISSION_MATRIX to enforce action permissions. Department heads
are department-scoped: an HOD may only act on forecasts of the
department they belong to.

Usage:
    from manpower.services.permission import check_permission

    # Raises PermissionDenied if not allowed
    check_permission(actor, "forecast_submit", department_id=forecast.department_id)

    # Boolean check
    if has_permission(actor, "forecast_review"):
        ...
"""

from manpower.core.exceptions import PermissionDenied
from manpower.models.organization import ROLE_ADMIN, ROLE_FINANCE, ROLE_HOD

# role → allowed actions
PERMISSION_MATRIX = {
    ROLE_HOD: {
        "forecast_create",
        "forecast_edit",
        "forecast_submit",
        "forecast_delete",
        "forecast_view",
        "forecast_comment",
        "department_report",
        "department_list",
    },
    ROLE_FINANCE: {
        "forecast_view",
        "forecast_view_all",
        "forecast_comment",
        "forecast_review",
        "report_view",
        "department_report",
        "report_export",
        "department_list",
        "reminder_view",
    },
    ROLE_ADMIN: {
        "forecast_create",
        "forecast_edit",
        "forecast_submit",
        "forecast_delete",
        "forecast_view",
        "forecast_view_all",
        "forecast_comment",
        "forecast_review",
        "report_view",
        "department_report",
        "report_export",
        "reminder_view",
        "reminder_trigger",
        "department_list",
        "organization_manage",
    },
}

# Actions an HOD may only perform inside their own department
DEPARTMENT_SCOPED_ROLES = {ROLE_HOD}


def has_permission(actor, action: str, department_id: int | None = None) -> bool:
    """
    Check if the actor may perform an action.

    Args:
        actor: User row (or anything with ``role``, ``department_id``, ``is_active``)
        action: Action string (e.g. 'forecast_submit', 'forecast_review')
        department_id: Department the target forecast belongs to, if any

    Returns:
        True if the actor's role grants the action and, for
        department-scoped roles, the department matches.
    """
    if actor is None or not getattr(actor, "is_active", True):
        return False

    allowed_actions = PERMISSION_MATRIX.get(actor.role, set())
    if action not in allowed_actions:
        return False

    if actor.role in DEPARTMENT_SCOPED_ROLES and department_id is not None:
        return actor.department_id == department_id
    return True


def check_permission(actor, action: str, department_id: int | None = None) -> None:
    """
    Assert the actor has permission; raise PermissionDenied if not.

    Raises:
        PermissionDenied: If the role lacks the action or the department
            does not match for a department-scoped role.
    """
    if has_permission(actor, action, department_id):
        return
    user_id = getattr(actor, "id", None)
    if actor is not None and action in PERMISSION_MATRIX.get(actor.role, set()):
        raise PermissionDenied(
            user_id, action,
            reason=f"User {user_id} can only {action.split('_', 1)[-1]} forecasts of their own department",
        )
    raise PermissionDenied(user_id, action)


def can_view_all(actor) -> bool:
    return has_permission(actor, "forecast_view_all")


def get_user_permissions(actor) -> set[str]:
    """The set of actions the actor's role grants."""
    if actor is None:
        return set()
    return set(PERMISSION_MATRIX.get(actor.role, set()))
