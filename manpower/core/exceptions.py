"""
Platform-wide exception hierarchy.

Every service raises one of these types. Blueprints register a single
handler against ``DomainError`` and translate ``kind`` into an HTTP
status, so the mapping lives in one place (``manpower.utils.errors``).

Usage:
    from manpower.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Forecast", resource_id=42)
    raise ValidationError("Item #2: position is required",
                          details={"item": 2, "field": "position"})
"""


class DomainError(Exception):
    """Base class: machine-readable ``kind`` plus a human message.

    Args:
        message: Human-readable explanation naming the offending field/item.
        details: Optional structured breakdown for API responses.
    """

    kind = "error"

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(DomainError):
    """Input failed shape or range validation. Always recoverable by the
    caller fixing its input."""

    kind = "validation"

    def __init__(self, message: str, details: dict | None = None,
                 *, item: int | None = None, field: str | None = None) -> None:
        details = dict(details or {})
        if item is not None:
            details.setdefault("item", item)
        if field is not None:
            details.setdefault("field", field)
        self.item = item
        self.field = field
        super().__init__(message, details)


class DuplicateError(DomainError):
    """A forecast already exists for (department, year, quarter)."""

    kind = "duplicate"

    def __init__(self, resource: str, key: dict, existing_id: int | None = None) -> None:
        self.resource = resource
        self.key = key
        self.existing_id = existing_id
        key_str = ", ".join(f"{k}={v}" for k, v in key.items())
        msg = f"{resource} already exists for {key_str}. Please edit the existing one."
        details = {"key": key}
        if existing_id is not None:
            details["existing_id"] = existing_id
        super().__init__(msg, details)


class InvalidStateError(DomainError):
    """The requested transition is not allowed from the current status."""

    kind = "invalid_state"

    def __init__(self, action: str, current: str, reason: str | None = None,
                 resource_id: int | None = None) -> None:
        self.action = action
        self.current_status = current
        self.resource_id = resource_id
        msg = reason or f"Cannot {action} forecast with status '{current}'"
        super().__init__(msg, {"action": action, "status": current})


class NotFoundError(DomainError):
    """Raised when a requested resource does not exist.

    Also used when a department head asks for another department's
    forecast id, so the response does not confirm that the id exists.
    """

    kind = "not_found"

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ConflictError(DomainError):
    """A concurrent write on the same forecast committed first."""

    kind = "conflict"

    def __init__(self, resource: str, resource_id: int | None = None,
                 reason: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = reason or f"{resource} id={resource_id} was modified concurrently; reload and retry"
        super().__init__(msg, {"resource_id": resource_id})


class PermissionDenied(DomainError):
    """The actor's role does not grant the requested action."""

    kind = "permission"

    def __init__(self, user_id: int | None, action: str, reason: str | None = None) -> None:
        self.user_id = user_id
        self.action = action
        msg = reason or f"User {user_id} does not have permission for '{action}'"
        super().__init__(msg, {"action": action})


class StoreUnavailableError(DomainError):
    """The store did not answer in time; the write was not committed."""

    kind = "unavailable"
