"""
WSGI / Flask-Migrate entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade

The reminder scheduler thread is started here (not in the factory) so
that CLI commands and test apps never send reminders. Set
REMINDERS_ENABLED=true on exactly one process.
"""

import atexit

from manpower import create_app

app = create_app()

if app.config.get("REMINDERS_ENABLED"):
    _scheduler = app.extensions["reminder_scheduler"]
    _scheduler.start()
    atexit.register(_scheduler.stop)

atexit.register(app.extensions["notifier"].shutdown)
