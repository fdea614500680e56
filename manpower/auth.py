"""
Manpower Forecast Platform
Request actor resolution.

The platform sits behind the organisation's gateway, which authenticates
users and forwards the platform user id in the ``X-User-Id`` header.
This module turns that header into a ``User`` row on ``g.actor``; role
and department checks happen in the services via ``permission``.

Usage:
    from manpower.auth import require_actor

    @forecast_bp.route("", methods=["POST"])
    @require_actor
    def create_forecast():
        actor = g.actor
"""

import functools
import logging

from flask import current_app, g, request

from manpower.utils.errors import E, api_error

logger = logging.getLogger(__name__)

ACTOR_HEADER = "X-User-Id"


def current_actor():
    """Return the active User named by the request header, or None."""
    raw = request.headers.get(ACTOR_HEADER, "").strip()
    if not raw:
        return None
    try:
        user_id = int(raw)
    except ValueError:
        logger.warning("Malformed %s header: %r", ACTOR_HEADER, raw[:20])
        return None

    user = current_app.extensions["forecast_store"].get_user(user_id)
    if user is None or not user.is_active:
        return None
    return user


def require_actor(f):
    """
    Decorator: resolve the acting user or answer 401.

    Sets g.actor to the User row.
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        actor = current_actor()
        if actor is None:
            return api_error(
                E.UNAUTHENTICATED,
                f"Authentication required. Provide a valid {ACTOR_HEADER} header.",
            )
        g.actor = actor
        return f(*args, **kwargs)

    return decorated
