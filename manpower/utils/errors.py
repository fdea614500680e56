"""Standardised API error responses.

Usage
-----
    from manpower.utils.errors import api_error, domain_error_response, E

    return api_error(E.NOT_FOUND, "Forecast not found")
    return api_error(E.VALIDATION_REQUIRED, "period is required")
    return domain_error_response(exc)   # any DomainError
"""

from __future__ import annotations

from flask import jsonify

from manpower.core.exceptions import DomainError


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    CONFLICT_VERSION = "ERR_CONFLICT_VERSION"

    # Authentication / permissions – HTTP 401 / 403
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Server – HTTP 500 / 503
    STORE_UNAVAILABLE = "ERR_STORE_UNAVAILABLE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.CONFLICT_VERSION: 409,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.STORE_UNAVAILABLE: 503,
    E.INTERNAL: 500,
}

# DomainError.kind → error code
KIND_CODES: dict[str, str] = {
    "validation": E.VALIDATION_INVALID,
    "duplicate": E.CONFLICT_DUPLICATE,
    "invalid_state": E.CONFLICT_STATE,
    "not_found": E.NOT_FOUND,
    "conflict": E.CONFLICT_VERSION,
    "permission": E.FORBIDDEN,
    "unavailable": E.STORE_UNAVAILABLE,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    kind: str | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    kind : str, optional
        Domain error kind (``validation``, ``conflict``…).
    details : dict, optional
        Extra structured payload (offending item/field, existing id…).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """
    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if kind:
        body["kind"] = kind
    if details:
        body["details"] = details

    return jsonify(body), http_status


def domain_error_response(exc: DomainError):
    """Translate any DomainError into the standard error body."""
    code = KIND_CODES.get(exc.kind, E.INTERNAL)
    return api_error(code, exc.message, kind=exc.kind, details=exc.details)
