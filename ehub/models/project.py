"""
Ehub PMS
Project domain model and status machine.

Models:
    - Project:              a fabrication job owned by one supervisor
    - ProjectFabricator:    accepted (or directly assigned) fabricator membership
    - ProjectAssignment:    invitation of a fabricator to a project
    - FabricatorBudget:     per-fabricator cost budget and revenue share
    - ProjectAttachment:    uploaded documentation metadata
    - SupervisorInvitation: offer of an unowned project to a supervisor

Fabricator membership and assignments live in child tables instead of JSON
columns on ``projects`` so each assignment can be resolved with a single-row
conditional UPDATE.
"""

from datetime import datetime, timezone
from decimal import Decimal

from ehub.core.exceptions import ValidationError
from ehub.models import db


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _money(value) -> float:
    return float(value) if value is not None else 0.0


# ── Project status machine ───────────────────────────────────────────────────

STATUS_CREATED = "created"
STATUS_ASSIGNED_TO_FABRICATOR = "assigned_to_fabricator"
STATUS_PENDING_ASSIGNMENT = "pending_assignment"
STATUS_PLANNING = "planning"
STATUS_IN_PROGRESS = "in_progress"
STATUS_SUPERVISOR_REVIEW = "supervisor_review"
STATUS_ADMIN_REVIEW = "admin_review"
STATUS_CLIENT_SIGNOFF = "client_signoff"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
STATUS_ON_HOLD = "on_hold"

PROJECT_STATUSES = frozenset({
    STATUS_CREATED,
    STATUS_ASSIGNED_TO_FABRICATOR,
    STATUS_PENDING_ASSIGNMENT,
    STATUS_PLANNING,
    STATUS_IN_PROGRESS,
    STATUS_SUPERVISOR_REVIEW,
    STATUS_ADMIN_REVIEW,
    STATUS_CLIENT_SIGNOFF,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
    STATUS_ON_HOLD,
})

TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_CANCELLED})

# Status strings written by earlier dashboard versions -> canonical value.
LEGACY_STATUS_ALIASES = {
    "0_Created": STATUS_CREATED,
    "1_Assigned_to_FAB": STATUS_ASSIGNED_TO_FABRICATOR,
    "pending-assignment": STATUS_PENDING_ASSIGNMENT,
    "in-progress": STATUS_IN_PROGRESS,
    "review": STATUS_SUPERVISOR_REVIEW,
    "2_Ready_for_Supervisor_Review": STATUS_SUPERVISOR_REVIEW,
    "3_Ready_for_Admin_Review": STATUS_ADMIN_REVIEW,
    "4_Ready_for_Client_Signoff": STATUS_CLIENT_SIGNOFF,
    "on-hold": STATUS_ON_HOLD,
}

PROJECT_TRANSITIONS = {
    STATUS_CREATED: [
        STATUS_ASSIGNED_TO_FABRICATOR, STATUS_PENDING_ASSIGNMENT,
        STATUS_ON_HOLD, STATUS_CANCELLED, STATUS_COMPLETED,
    ],
    STATUS_ASSIGNED_TO_FABRICATOR: [
        STATUS_PENDING_ASSIGNMENT, STATUS_PLANNING, STATUS_IN_PROGRESS,
        STATUS_SUPERVISOR_REVIEW, STATUS_ON_HOLD, STATUS_CANCELLED, STATUS_COMPLETED,
    ],
    STATUS_PENDING_ASSIGNMENT: [
        STATUS_PLANNING, STATUS_ON_HOLD, STATUS_CANCELLED, STATUS_COMPLETED,
    ],
    STATUS_PLANNING: [
        STATUS_PENDING_ASSIGNMENT, STATUS_IN_PROGRESS, STATUS_SUPERVISOR_REVIEW,
        STATUS_ON_HOLD, STATUS_CANCELLED, STATUS_COMPLETED,
    ],
    STATUS_IN_PROGRESS: [
        STATUS_PENDING_ASSIGNMENT, STATUS_PLANNING, STATUS_SUPERVISOR_REVIEW,
        STATUS_ON_HOLD, STATUS_CANCELLED, STATUS_COMPLETED,
    ],
    STATUS_SUPERVISOR_REVIEW: [
        STATUS_ADMIN_REVIEW, STATUS_ASSIGNED_TO_FABRICATOR, STATUS_COMPLETED,
    ],
    STATUS_ADMIN_REVIEW: [
        STATUS_CLIENT_SIGNOFF, STATUS_SUPERVISOR_REVIEW, STATUS_COMPLETED,
    ],
    STATUS_CLIENT_SIGNOFF: [STATUS_COMPLETED],
    STATUS_ON_HOLD: [
        STATUS_PLANNING, STATUS_IN_PROGRESS, STATUS_CANCELLED, STATUS_COMPLETED,
    ],
    STATUS_COMPLETED: [],
    STATUS_CANCELLED: [],
}

PRIORITIES = frozenset({"low", "medium", "high", "urgent"})


def normalize_status(value) -> str:
    """Map a canonical or legacy status string onto the canonical value.

    Raises:
        ValidationError: for anything outside the known set.
    """
    raw = str(value or "").strip()
    if raw in PROJECT_STATUSES:
        return raw
    if raw in LEGACY_STATUS_ALIASES:
        return LEGACY_STATUS_ALIASES[raw]
    raise ValidationError(
        f"Unknown project status '{raw}'",
        details={"status": f"must be one of: {', '.join(sorted(PROJECT_STATUSES))}"},
    )


def validate_project_transition(old_status, new_status):
    """Return True if the Project status transition is valid."""
    return new_status in PROJECT_TRANSITIONS.get(old_status, [])


# ── Assignment / invitation statuses ─────────────────────────────────────────

ASSIGNMENT_PENDING = "pending"
ASSIGNMENT_ACCEPTED = "accepted"
ASSIGNMENT_DECLINED = "declined"

INVITATION_WITHDRAWN = "withdrawn"


class Project(db.Model):
    """A fabrication project moving through the assignment and review workflow."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    client_name = db.Column(db.String(255), nullable=False)
    priority = db.Column(
        db.String(20), nullable=False, default="medium",
        comment="low | medium | high | urgent",
    )
    status = db.Column(
        db.String(30), nullable=False, default=STATUS_CREATED, index=True,
        comment="Canonical status, see PROJECT_STATUSES",
    )
    progress = db.Column(db.Integer, nullable=False, default=0, comment="0-100")
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    budget = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0"))
    spent = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0"))
    revenue = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0"))
    documentation_url = db.Column(db.String(500), nullable=True)

    supervisor_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True, index=True,
        comment="Unset while the project is offered to supervisors",
    )
    created_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )
    version = db.Column(db.Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    memberships = db.relationship(
        "ProjectFabricator", backref="project", cascade="all, delete-orphan",
        order_by="ProjectFabricator.id",
    )
    assignments = db.relationship(
        "ProjectAssignment", backref="project", cascade="all, delete-orphan",
        order_by="ProjectAssignment.id",
    )
    fabricator_budgets = db.relationship(
        "FabricatorBudget", backref="project", cascade="all, delete-orphan",
        order_by="FabricatorBudget.id",
    )
    attachments = db.relationship(
        "ProjectAttachment", backref="project", cascade="all, delete-orphan",
        order_by="ProjectAttachment.id",
    )
    supervisor_invitations = db.relationship(
        "SupervisorInvitation", backref="project", cascade="all, delete-orphan",
        order_by="SupervisorInvitation.id",
    )

    @property
    def fabricator_ids(self) -> list[int]:
        return [m.fabricator_id for m in self.memberships]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def has_documentation(self) -> bool:
        return bool((self.documentation_url or "").strip()) or bool(self.attachments)

    def budget_for(self, fabricator_id):
        for row in self.fabricator_budgets:
            if row.fabricator_id == fabricator_id:
                return row
        return None

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "client_name": self.client_name,
            "priority": self.priority,
            "status": self.status,
            "progress": self.progress,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "budget": _money(self.budget),
            "spent": _money(self.spent),
            "revenue": _money(self.revenue),
            "documentation_url": self.documentation_url,
            "supervisor_id": self.supervisor_id,
            "fabricator_ids": self.fabricator_ids,
            "pending_assignments": [a.to_dict() for a in self.assignments],
            "fabricator_budgets": [b.to_dict() for b in self.fabricator_budgets],
            "attachments": [a.to_dict() for a in self.attachments],
            "pending_supervisor_ids": [
                i.supervisor_id for i in self.supervisor_invitations
                if i.status == ASSIGNMENT_PENDING
            ],
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "version": self.version,
        }

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.name} [{self.status}]>"


class ProjectFabricator(db.Model):
    """A fabricator working on a project."""

    __tablename__ = "project_fabricators"
    __table_args__ = (
        db.UniqueConstraint("project_id", "fabricator_id", name="uq_project_fabricator"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    fabricator_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    source = db.Column(db.String(20), nullable=False, default="assignment",
                       comment="direct | assignment")
    joined_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)


class ProjectAssignment(db.Model):
    """Invitation of one fabricator to one project.

    ``status`` is write-once once it leaves ``pending``; the engine resolves it
    with a conditional UPDATE on ``status = 'pending'``.
    """

    __tablename__ = "project_assignments"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    fabricator_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    assigned_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    status = db.Column(
        db.String(20), nullable=False, default=ASSIGNMENT_PENDING, index=True,
        comment="pending | accepted | declined",
    )
    message = db.Column(db.Text, nullable=True, comment="From the assigner")
    response = db.Column(db.Text, nullable=True, comment="From the fabricator")
    responded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version = db.Column(db.Integer, nullable=False, default=1)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "fabricator_id": self.fabricator_id,
            "assigned_by": self.assigned_by,
            "assigned_at": self.assigned_at.isoformat() if self.assigned_at else None,
            "status": self.status,
            "message": self.message,
            "response": self.response,
            "responded_at": self.responded_at.isoformat() if self.responded_at else None,
        }

    def __repr__(self) -> str:
        return f"<ProjectAssignment {self.id}: fab={self.fabricator_id} [{self.status}]>"


class FabricatorBudget(db.Model):
    """Cost budget and revenue share of one fabricator on one project."""

    __tablename__ = "fabricator_budgets"
    __table_args__ = (
        db.UniqueConstraint("project_id", "fabricator_id", name="uq_fabricator_budget"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    fabricator_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    allocated_amount = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0"))
    spent_amount = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0"))
    allocated_revenue = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0"))
    description = db.Column(db.String(255), nullable=True)

    def to_dict(self):
        return {
            "fabricator_id": self.fabricator_id,
            "allocated_amount": _money(self.allocated_amount),
            "spent_amount": _money(self.spent_amount),
            "allocated_revenue": _money(self.allocated_revenue),
            "description": self.description,
        }


class ProjectAttachment(db.Model):
    """Metadata of a documentation file stored by the file service."""

    __tablename__ = "project_attachments"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    url = db.Column(db.String(500), nullable=False)
    uploaded_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "uploaded_by": self.uploaded_by,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }


class SupervisorInvitation(db.Model):
    """Offer of an unowned project to one supervisor; the first accept claims it."""

    __tablename__ = "supervisor_invitations"
    __table_args__ = (
        db.UniqueConstraint("project_id", "supervisor_id", name="uq_supervisor_invitation"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    supervisor_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    status = db.Column(
        db.String(20), nullable=False, default=ASSIGNMENT_PENDING,
        comment="pending | accepted | declined | withdrawn",
    )
    invited_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    responded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "supervisor_id": self.supervisor_id,
            "status": self.status,
            "invited_at": self.invited_at.isoformat() if self.invited_at else None,
            "responded_at": self.responded_at.isoformat() if self.responded_at else None,
        }
