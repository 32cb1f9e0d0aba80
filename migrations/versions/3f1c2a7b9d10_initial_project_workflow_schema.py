"""initial_project_workflow_schema

Creates the project workflow tables:
  - users                   reference accounts (admin / supervisor / fabricator / client)
  - projects                fabrication projects with a version counter
  - project_fabricators     accepted or directly assigned memberships
  - project_assignments     fabricator invitations (pending / accepted / declined)
  - fabricator_budgets      per-fabricator budget and revenue share
  - project_attachments     documentation metadata
  - supervisor_invitations  offers of unowned projects to supervisors
  - tasks, work_logs, materials, notifications

Tables created conditionally (IF NOT EXISTS semantics) so the migration can
run against a development database that already received them via
db.create_all().

Revision ID: 3f1c2a7b9d10
Revises:
Create Date: 2026-10-19 09:12:41.508213
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '3f1c2a7b9d10'
down_revision = None
branch_labels = None
depends_on = None


def _money():
    return sa.Numeric(precision=15, scale=2)


def upgrade():
    bind = op.get_bind()
    existing = set(sa_inspect(bind).get_table_names())

    # ── Users ─────────────────────────────────────────────────────────────
    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column(
                "role", sa.String(length=20), nullable=False,
                comment="admin | supervisor | fabricator | client",
            ),
            sa.Column("secure_id", sa.String(length=50), nullable=True),
            sa.Column("employee_number", sa.String(length=50), nullable=True),
            sa.Column("phone", sa.String(length=20), nullable=True),
            sa.Column(
                "client_project_id", sa.Integer(), nullable=True,
                comment="projects.id, set only for role=client",
            ),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("secure_id"),
            sa.UniqueConstraint("employee_number"),
        )
        op.create_index("ix_users_email", "users", ["email"], unique=True)
        op.create_index("ix_users_role", "users", ["role"])
        op.create_index("ix_users_client_project_id", "users", ["client_project_id"])

    # ── Projects ──────────────────────────────────────────────────────────
    if "projects" not in existing:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("client_name", sa.String(length=255), nullable=False),
            sa.Column("priority", sa.String(length=20), nullable=False, server_default="medium"),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="created"),
            sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("budget", _money(), nullable=False, server_default="0"),
            sa.Column("spent", _money(), nullable=False, server_default="0"),
            sa.Column("revenue", _money(), nullable=False, server_default="0"),
            sa.Column("documentation_url", sa.String(length=500), nullable=True),
            sa.Column(
                "supervisor_id", sa.Integer(), nullable=True,
                comment="Unset while the project is offered to supervisors",
            ),
            sa.Column("created_by", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.ForeignKeyConstraint(["supervisor_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_projects_progress"),
        )
        op.create_index("ix_projects_status", "projects", ["status"])
        op.create_index("ix_projects_supervisor_id", "projects", ["supervisor_id"])

    # ── Memberships / assignments ─────────────────────────────────────────
    if "project_fabricators" not in existing:
        op.create_table(
            "project_fabricators",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("fabricator_id", sa.Integer(), nullable=False),
            sa.Column("source", sa.String(length=20), nullable=False, server_default="assignment"),
            sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["fabricator_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "fabricator_id", name="uq_project_fabricator"),
        )
        op.create_index("ix_project_fabricators_project_id", "project_fabricators", ["project_id"])
        op.create_index("ix_project_fabricators_fabricator_id", "project_fabricators", ["fabricator_id"])

    if "project_assignments" not in existing:
        op.create_table(
            "project_assignments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("fabricator_id", sa.Integer(), nullable=False),
            sa.Column("assigned_by", sa.Integer(), nullable=True),
            sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("response", sa.Text(), nullable=True),
            sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["fabricator_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["assigned_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_project_assignments_project_id", "project_assignments", ["project_id"])
        op.create_index("ix_project_assignments_fabricator_id", "project_assignments", ["fabricator_id"])
        op.create_index("ix_project_assignments_status", "project_assignments", ["status"])

    if "fabricator_budgets" not in existing:
        op.create_table(
            "fabricator_budgets",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("fabricator_id", sa.Integer(), nullable=False),
            sa.Column("allocated_amount", _money(), nullable=False, server_default="0"),
            sa.Column("spent_amount", _money(), nullable=False, server_default="0"),
            sa.Column("allocated_revenue", _money(), nullable=False, server_default="0"),
            sa.Column("description", sa.String(length=255), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["fabricator_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "fabricator_id", name="uq_fabricator_budget"),
        )
        op.create_index("ix_fabricator_budgets_project_id", "fabricator_budgets", ["project_id"])

    if "project_attachments" not in existing:
        op.create_table(
            "project_attachments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("url", sa.String(length=500), nullable=False),
            sa.Column("uploaded_by", sa.Integer(), nullable=True),
            sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["uploaded_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_project_attachments_project_id", "project_attachments", ["project_id"])

    if "supervisor_invitations" not in existing:
        op.create_table(
            "supervisor_invitations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("supervisor_id", sa.Integer(), nullable=False),
            sa.Column(
                "status", sa.String(length=20), nullable=False, server_default="pending",
                comment="pending | accepted | declined | withdrawn",
            ),
            sa.Column("invited_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["supervisor_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "supervisor_id", name="uq_supervisor_invitation"),
        )
        op.create_index("ix_supervisor_invitations_project_id", "supervisor_invitations", ["project_id"])
        op.create_index("ix_supervisor_invitations_supervisor_id", "supervisor_invitations", ["supervisor_id"])

    # ── Work execution ────────────────────────────────────────────────────
    if "tasks" not in existing:
        op.create_table(
            "tasks",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("priority", sa.String(length=20), nullable=False, server_default="medium"),
            sa.Column("assigned_to", sa.Integer(), nullable=True),
            sa.Column("due_date", sa.Date(), nullable=True),
            sa.Column("estimated_hours", sa.Numeric(precision=6, scale=2), nullable=True),
            sa.Column("actual_hours", sa.Numeric(precision=6, scale=2), nullable=False, server_default="0"),
            sa.Column("created_by", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["assigned_to"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_tasks_project_id", "tasks", ["project_id"])
        op.create_index("ix_tasks_status", "tasks", ["status"])
        op.create_index("ix_tasks_assigned_to", "tasks", ["assigned_to"])

    if "work_logs" not in existing:
        op.create_table(
            "work_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("fabricator_id", sa.Integer(), nullable=False),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("hours_worked", sa.Numeric(precision=9, scale=4), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("progress_percentage", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("materials", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["fabricator_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_work_logs_project_id", "work_logs", ["project_id"])
        op.create_index("ix_work_logs_fabricator_id", "work_logs", ["fabricator_id"])
        op.create_index("ix_work_logs_date", "work_logs", ["date"])

    if "materials" not in existing:
        op.create_table(
            "materials",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("quantity", sa.Numeric(precision=10, scale=2), nullable=False),
            sa.Column("unit", sa.String(length=50), nullable=True),
            sa.Column("cost_per_unit", sa.Numeric(precision=10, scale=2), nullable=False, server_default="0"),
            sa.Column("total_cost", _money(), nullable=False, server_default="0"),
            sa.Column("added_by", sa.Integer(), nullable=True),
            sa.Column("added_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["added_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_materials_project_id", "materials", ["project_id"])

    if "notifications" not in existing:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("recipient_id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=30), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=True),
            sa.Column("entity_id", sa.Integer(), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["recipient_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_recipient_id", "notifications", ["recipient_id"])
        op.create_index("ix_notifications_project_id", "notifications", ["project_id"])


def downgrade():
    for table in (
        "notifications",
        "materials",
        "work_logs",
        "tasks",
        "supervisor_invitations",
        "project_attachments",
        "fabricator_budgets",
        "project_assignments",
        "project_fabricators",
        "projects",
        "users",
    ):
        op.drop_table(table)
