"""
Organization Service — department and user administration.

Departments and users are reference data for the forecast workflow.
Only admins create or change them; any authenticated actor may list
active departments. Deleting is a soft disable (``is_active = False``)
because forecasts and audit rows keep pointing at both.

Usage:
    from manpower.services import organization_service

    dept = organization_service.create_department(actor, {"name": "Sales", "code": "sal"})
    user = organization_service.create_user(actor, {
        "name": "Bob Head", "email": "bob@example.com",
        "role": "hod", "department_id": dept.id,
    })
"""

import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.exc import IntegrityError

from manpower.core.exceptions import (
    DuplicateError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from manpower.models import db
from manpower.models.audit import write_audit
from manpower.models.organization import ROLE_HOD, USER_ROLES, Department, User
from manpower.services.permission import check_permission

logger = logging.getLogger(__name__)


def _text(data, field: str, *, required: bool, max_len: int) -> str | None:
    value = data.get(field)
    if value is None:
        if required:
            raise ValidationError(f"{field} is required", field=field)
        return None
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be a non-empty string", field=field)
    value = value.strip()
    if len(value) > max_len:
        raise ValidationError(f"{field} must be at most {max_len} characters", field=field)
    return value


def _description(data) -> str:
    value = data.get("description") or ""
    if not isinstance(value, str):
        raise ValidationError("description must be a string", field="description")
    return value.strip()


def _flag(data, field: str) -> bool | None:
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be true or false", field=field)
    return value


def _commit(entity_type: str, entity, action: str, actor, diff: dict) -> None:
    """Commit the change together with its audit row."""
    try:
        db.session.flush()
        write_audit(entity_type=entity_type, entity_id=entity.id, action=action,
                    actor_user_id=actor.id, diff=diff)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on %s: %s", entity_type, exc.orig)
        raise ValidationError(
            f"The {entity_type} could not be saved: a value violates a data constraint",
            {"constraint": str(exc.orig)},
        ) from exc


# ═══════════════════════════════════════════════════════════════════════════
#  Departments
# ═══════════════════════════════════════════════════════════════════════════

def list_departments(actor, include_inactive: bool = False) -> list[Department]:
    check_permission(actor, "department_list")
    q = Department.query
    if not include_inactive:
        q = q.filter_by(is_active=True)
    return q.order_by(Department.name).all()


def get_department(actor, department_id: int) -> Department:
    check_permission(actor, "department_list")
    dept = db.session.get(Department, department_id)
    if dept is None:
        raise NotFoundError("Department", department_id)
    return dept


def _check_department_unique(name, code, exclude_id=None) -> None:
    for field, value in (("name", name), ("code", code)):
        if value is None:
            continue
        q = Department.query.filter(getattr(Department, field) == value)
        if exclude_id is not None:
            q = q.filter(Department.id != exclude_id)
        existing = q.first()
        if existing is not None:
            raise DuplicateError("Department", {field: value}, existing_id=existing.id)


def _check_no_active_users(dept: Department) -> None:
    active_users = User.query.filter_by(department_id=dept.id, is_active=True).count()
    if active_users:
        raise InvalidStateError(
            "delete", "active",
            f"Cannot delete department with active users ({active_users})",
            resource_id=dept.id,
        )


def create_department(actor, data) -> Department:
    """Create a department. Codes are stored upper-case.

    Raises:
        PermissionDenied, ValidationError, DuplicateError (name or code taken)
    """
    check_permission(actor, "organization_manage")
    name = _text(data, "name", required=True, max_len=150)
    code = _text(data, "code", required=True, max_len=20).upper()
    description = _description(data)
    _check_department_unique(name, code)

    dept = Department(name=name, code=code, description=description)
    db.session.add(dept)
    _commit("department", dept, "department.create", actor,
            {"name": name, "code": code})
    logger.info("Department %s (%s) created by user %s", dept.id, code, actor.id)
    return dept


def update_department(actor, department_id: int, data) -> Department:
    """Rename, recode, describe or (re)activate a department."""
    check_permission(actor, "organization_manage")
    dept = db.session.get(Department, department_id)
    if dept is None:
        raise NotFoundError("Department", department_id)

    name = _text(data, "name", required=False, max_len=150)
    code = _text(data, "code", required=False, max_len=20)
    code = code.upper() if code else None
    is_active = _flag(data, "is_active")
    _check_department_unique(name, code, exclude_id=dept.id)
    if is_active is False and dept.is_active:
        _check_no_active_users(dept)

    diff = {}
    for field, value in (("name", name), ("code", code), ("is_active", is_active)):
        if value is not None and getattr(dept, field) != value:
            diff[field] = {"old": getattr(dept, field), "new": value}
            setattr(dept, field, value)
    if "description" in data:
        dept.description = _description(data)

    _commit("department", dept, "department.update", actor, diff)
    return dept


def deactivate_department(actor, department_id: int) -> Department:
    """Soft-delete a department that no active user belongs to."""
    check_permission(actor, "organization_manage")
    dept = db.session.get(Department, department_id)
    if dept is None:
        raise NotFoundError("Department", department_id)

    _check_no_active_users(dept)
    dept.is_active = False
    _commit("department", dept, "department.delete", actor,
            {"is_active": {"old": True, "new": False}})
    logger.info("Department %s deactivated by user %s", dept.id, actor.id)
    return dept


# ═══════════════════════════════════════════════════════════════════════════
#  Users
# ═══════════════════════════════════════════════════════════════════════════

def _normalize_email(value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("email is required", field="email")
    try:
        valid = validate_email(value.strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", field="email") from e
    return valid.normalized.lower()


def _resolve_department(department_id) -> Department | None:
    if department_id is None:
        return None
    if isinstance(department_id, bool) or not isinstance(department_id, int):
        raise ValidationError("department_id must be a whole number", field="department_id")
    dept = db.session.get(Department, department_id)
    if dept is None or not dept.is_active:
        raise NotFoundError("Department", department_id)
    return dept


def list_users(actor, role: str | None = None, department_id: int | None = None,
               include_inactive: bool = False) -> list[User]:
    check_permission(actor, "organization_manage")
    q = User.query
    if role:
        q = q.filter_by(role=role)
    if department_id:
        q = q.filter_by(department_id=department_id)
    if not include_inactive:
        q = q.filter_by(is_active=True)
    return q.order_by(User.name, User.id).all()


def get_user(actor, user_id: int) -> User:
    check_permission(actor, "organization_manage")
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def create_user(actor, data) -> User:
    """Create a platform user.

    Department heads must belong to an active department.

    Raises:
        PermissionDenied, ValidationError, NotFoundError (department),
        DuplicateError (email taken)
    """
    check_permission(actor, "organization_manage")
    name = _text(data, "name", required=True, max_len=150)
    email = _normalize_email(data.get("email"))
    role = data.get("role") or ROLE_HOD
    if not isinstance(role, str) or role not in USER_ROLES:
        raise ValidationError(f"role must be one of {', '.join(sorted(USER_ROLES))}", field="role")
    dept = _resolve_department(data.get("department_id"))
    if role == ROLE_HOD and dept is None:
        raise ValidationError("department_id is required for department heads",
                              field="department_id")

    existing = User.query.filter_by(email=email).first()
    if existing is not None:
        raise DuplicateError("User", {"email": email}, existing_id=existing.id)

    user = User(name=name, email=email, role=role,
                department_id=dept.id if dept else None)
    db.session.add(user)
    _commit("user", user, "user.create", actor,
            {"email": email, "role": role, "department_id": user.department_id})
    logger.info("User %s (%s) created by user %s", user.id, role, actor.id)
    return user


def update_user(actor, user_id: int, data) -> User:
    """Change a user's name, email, role, department or active flag."""
    check_permission(actor, "organization_manage")
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)

    changes = {}
    name = _text(data, "name", required=False, max_len=150)
    if name is not None:
        changes["name"] = name
    if data.get("email") is not None:
        email = _normalize_email(data["email"])
        taken = User.query.filter(User.email == email, User.id != user.id).first()
        if taken is not None:
            raise DuplicateError("User", {"email": email}, existing_id=taken.id)
        changes["email"] = email
    if data.get("role") is not None:
        if not isinstance(data["role"], str) or data["role"] not in USER_ROLES:
            raise ValidationError(f"role must be one of {', '.join(sorted(USER_ROLES))}",
                                  field="role")
        changes["role"] = data["role"]
    if "department_id" in data:
        dept = _resolve_department(data.get("department_id"))
        changes["department_id"] = dept.id if dept else None
    is_active = _flag(data, "is_active")
    if is_active is not None:
        if not is_active and user.id == actor.id:
            raise ValidationError("Cannot deactivate yourself", field="is_active")
        changes["is_active"] = is_active

    role = changes.get("role", user.role)
    department_id = changes.get("department_id", user.department_id)
    if role == ROLE_HOD and department_id is None:
        raise ValidationError("department_id is required for department heads",
                              field="department_id")

    diff = {}
    for field, value in changes.items():
        if getattr(user, field) != value:
            diff[field] = {"old": getattr(user, field), "new": value}
            setattr(user, field, value)
    _commit("user", user, "user.update", actor, diff)
    return user


def deactivate_user(actor, user_id: int) -> User:
    """Soft-disable a user; they stop resolving as an actor and get no reminders."""
    check_permission(actor, "organization_manage")
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    if user.id == actor.id:
        raise ValidationError("Cannot deactivate yourself", field="user_id")

    user.is_active = False
    _commit("user", user, "user.delete", actor, {"is_active": {"old": True, "new": False}})
    logger.info("User %s deactivated by user %s", user.id, actor.id)
    return user
