"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in manpower/__init__.py with no default
limits; this module applies granular limits per route category.

Usage:
    from manpower.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Forecast writes:  60/minute
        - Department / user administration: 60/minute
        - Reports/exports:  200/minute
        - Reminders:        REMINDER_TRIGGER_LIMIT (manual trigger sends email)

    Rate limiting is disabled when RATELIMIT_ENABLED is false (testing).
    """
    if not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled (RATELIMIT_ENABLED=False)")
        return

    bp = app.blueprints.get("forecast")
    if bp:
        limiter.limit("60/minute")(bp)

    for name in ("department", "user"):
        bp = app.blueprints.get(name)
        if bp:
            limiter.limit("60/minute")(bp)

    bp = app.blueprints.get("report")
    if bp:
        limiter.limit("200/minute")(bp)

    bp = app.blueprints.get("reminder")
    if bp:
        limiter.limit(app.config.get("REMINDER_TRIGGER_LIMIT", "5 per minute"))(bp)

    app.logger.info("Rate limiter configured — forecast: 60/min, report: 200/min, reminder: %s",
                    app.config.get("REMINDER_TRIGGER_LIMIT"))
