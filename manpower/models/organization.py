"""
Manpower Forecast Platform
Organization models — departments and users.

Both are reference data for the forecast workflow: forecasts point at
them, but no lifecycle operation ever mutates a Department or a User.

Models:
    - Department: organizational unit that owns quarterly forecasts
    - User: platform user with one role (admin, finance, hod)
"""

from datetime import datetime, timezone

from manpower.models import db


# ── Constants ────────────────────────────────────────────────────────────────

ROLE_ADMIN = "admin"
ROLE_FINANCE = "finance"
ROLE_HOD = "hod"

USER_ROLES = {ROLE_ADMIN, ROLE_FINANCE, ROLE_HOD}
REVIEWER_ROLES = {ROLE_FINANCE, ROLE_ADMIN}


class Department(db.Model):
    """An organizational unit submitting one forecast per quarter."""

    __tablename__ = "departments"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False, unique=True)
    code = db.Column(db.String(20), nullable=False, unique=True)
    description = db.Column(db.Text, default="")
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    users = db.relationship("User", back_populates="department", lazy="select")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Department {self.code}>"


class User(db.Model):
    """
    Platform user.

    HODs (department heads) are bound to one department and may only
    create, edit and submit that department's forecasts. Finance and
    admin users review forecasts across all departments.
    """

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    role = db.Column(db.String(20), nullable=False, default=ROLE_HOD,
                     comment="admin | finance | hod")
    department_id = db.Column(
        db.Integer,
        db.ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    department = db.relationship("Department", back_populates="users")

    @property
    def is_reviewer(self) -> bool:
        return self.role in REVIEWER_ROLES

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "department_id": self.department_id,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<User {self.email} [{self.role}]>"
