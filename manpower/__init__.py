"""
Manpower Forecast Platform
Flask Application Factory.

Usage:
    from manpower import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from manpower.config import config
from manpower.core.clock import SystemClock
from manpower.core.exceptions import DomainError
from manpower.models import db
from manpower.middleware.logging_config import configure_logging
from manpower.middleware.rate_limiter import init_rate_limits
from manpower.middleware.timing import init_request_timing
from manpower.utils.errors import E, api_error, domain_error_response

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, applied per blueprint
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance. Domain services are
        published on ``app.extensions``: ``clock``, ``forecast_store``,
        ``notifier``, ``forecast_lifecycle`` and ``reminder_scheduler``.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    config_cls = config[config_name]
    app.config.from_object(config_cls() if config_name == "production" else config_cls)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    @app.before_request
    def _guard_request():
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        if max_len and request.content_length and request.content_length > max_len:
            abort(413, description="Request body too large")
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so Alembic can detect them ─────────────────────
    from manpower.models import organization as _organization_models  # noqa: F401
    from manpower.models import forecast as _forecast_models           # noqa: F401
    from manpower.models import audit as _audit_models                 # noqa: F401
    from manpower.models import scheduling as _scheduling_models       # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ─────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Domain services ──────────────────────────────────────────────────
    from manpower.services.forecast_lifecycle import ForecastLifecycle
    from manpower.services.forecast_store import ForecastStore
    from manpower.services.notification import Notifier

    clock = SystemClock()
    store = ForecastStore()
    notifier = Notifier(
        app,
        async_dispatch=app.config.get("NOTIFICATIONS_ASYNC", False),
        max_workers=app.config.get("NOTIFY_MAX_WORKERS", 4),
    )
    app.extensions["clock"] = clock
    app.extensions["forecast_store"] = store
    app.extensions["notifier"] = notifier
    app.extensions["forecast_lifecycle"] = ForecastLifecycle(store, notifier, clock)

    # ── Blueprints ───────────────────────────────────────────────────────
    from manpower.blueprints.forecast_bp import forecast_bp
    from manpower.blueprints.report_bp import report_bp
    from manpower.blueprints.reminder_bp import reminder_bp
    from manpower.blueprints.department_bp import department_bp
    from manpower.blueprints.user_bp import user_bp

    app.register_blueprint(forecast_bp)
    app.register_blueprint(report_bp)
    app.register_blueprint(reminder_bp)
    app.register_blueprint(department_bp)
    app.register_blueprint(user_bp)

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    @limiter.exempt
    def health():
        return {"status": "ok", "app": "Manpower Forecast Platform"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(DomainError)
    def domain_error(e):
        if e.kind == "unavailable":
            logger.error("Store unavailable on %s %s: %s", request.method, request.path, e.message)
        return domain_error_response(e)

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(413)
    def too_large(e):
        return api_error(E.VALIDATION_INVALID, "Request body too large", status=413)

    @app.errorhandler(415)
    def unsupported_media(e):
        return api_error(E.VALIDATION_INVALID, "Content-Type must be application/json", status=415)

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── Reminder scheduler (started by wsgi.py when REMINDERS_ENABLED) ───
    from manpower.services.scheduled_jobs import register_reminder_jobs
    from manpower.services.scheduler_service import ReminderScheduler

    scheduler = ReminderScheduler(
        app,
        clock=clock,
        poll_seconds=app.config.get("REMINDER_POLL_SECONDS", 60),
        timezone_name=app.config.get("REMINDER_TIMEZONE", "UTC"),
    )
    register_reminder_jobs(scheduler)
    with app.app_context():
        try:
            scheduler.ensure_jobs_registered()
        except Exception as e:
            app.logger.warning("Scheduled job registration failed: %s", e)

    return app
