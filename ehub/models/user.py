"""
Ehub PMS
User reference model.

Accounts are issued and maintained by the identity layer; the workflow core
only reads them to resolve roles, project ownership and notification
recipients.
"""

from datetime import datetime, timezone

from ehub.models import db

# ── Constants ────────────────────────────────────────────────────────────────

ROLE_ADMIN = "admin"
ROLE_SUPERVISOR = "supervisor"
ROLE_FABRICATOR = "fabricator"
ROLE_CLIENT = "client"


class User(db.Model):
    """A dashboard account: admin, supervisor, fabricator or client."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    role = db.Column(
        db.String(20), nullable=False, index=True,
        comment="admin | supervisor | fabricator | client",
    )
    secure_id = db.Column(db.String(50), nullable=True, unique=True)
    employee_number = db.Column(db.String(50), nullable=True, unique=True)
    phone = db.Column(db.String(20), nullable=True)
    client_project_id = db.Column(
        db.Integer, nullable=True, index=True,
        comment="projects.id, set only for role=client",
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "secure_id": self.secure_id,
            "employee_number": self.employee_number,
            "client_project_id": self.client_project_id,
            "is_active": self.is_active,
        }

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.role} {self.email}>"
