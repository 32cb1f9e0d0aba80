"""
Ehub PMS
Work log and material models.

Both are append-only records written by fabricators while a project is
being worked on.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

from ehub.models import db


class WorkLogEntry(db.Model):
    """Hours worked and progress contributed by one fabricator on one day."""

    __tablename__ = "work_logs"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    fabricator_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    date = db.Column(db.Date, nullable=False, default=date.today, index=True)
    hours_worked = db.Column(db.Numeric(9, 4), nullable=False)
    description = db.Column(db.Text, nullable=False)
    progress_percentage = db.Column(
        db.Integer, nullable=False, default=0,
        comment="Contribution to project progress, 0-100",
    )
    materials = db.Column(db.JSON, nullable=True, comment="List of material names used")
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "fabricator_id": self.fabricator_id,
            "date": self.date.isoformat() if self.date else None,
            "hours_worked": float(self.hours_worked),
            "description": self.description,
            "progress_percentage": self.progress_percentage,
            "materials": list(self.materials or []),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<WorkLogEntry {self.id}: project={self.project_id} +{self.progress_percentage}%>"


class Material(db.Model):
    """Material purchased or consumed for a project."""

    __tablename__ = "materials"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    quantity = db.Column(db.Numeric(10, 2), nullable=False)
    unit = db.Column(db.String(50), nullable=True)
    cost_per_unit = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0"))
    total_cost = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0"))
    added_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    added_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "description": self.description,
            "quantity": float(self.quantity),
            "unit": self.unit,
            "cost_per_unit": float(self.cost_per_unit or 0),
            "total_cost": float(self.total_cost or 0),
            "added_by": self.added_by,
            "added_at": self.added_at.isoformat() if self.added_at else None,
        }
