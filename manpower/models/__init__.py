"""
Manpower Forecast Platform
SQLAlchemy models.

All models share the single ``db`` instance defined here; the application
factory binds it with ``db.init_app(app)``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
