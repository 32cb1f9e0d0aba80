"""
Ehub PMS
Workflow orchestrator: the operations the HTTP layer calls.

Each write operation is one unit of work:

    1. resolve the acting user
    2. call the engine / aggregator / allocator (they only flush)
    3. commit, or roll back on any error
    4. dispatch notifications in a separate transaction

A concurrent write to the same project row surfaces as StaleDataError at
flush or commit time and is reported as ConcurrencyError.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ehub.core.exceptions import AuthorizationError, ConcurrencyError, ValidationError
from ehub.models import db
from ehub.models.notification import CHANGE_PROGRESS, CHANGE_PROJECT_CREATED, CHANGE_STATUS
from ehub.models.project import STATUS_COMPLETED, Project
from ehub.models.user import ROLE_FABRICATOR, User
from ehub.services import (
    assignment_engine,
    entity_store,
    progress_aggregator,
    revenue_allocator,
)
from ehub.services.notification_dispatcher import NotificationDispatcher
from ehub.services.permission import (
    can_view_project,
    get_actor,
    require_project_manager,
    require_role,
    visible_project_ids,
)
from ehub.utils.helpers import parse_id

logger = logging.getLogger(__name__)

SEED_ON_INVITE = "invite"
SEED_ON_ACCEPT = "accept"

SEED_TASK_TEMPLATES = (
    {
        "title": "Project Planning Review",
        "description": "Review project requirements and create detailed work plan",
        "priority": "high",
        "due_in_days": 7,
        "estimated_hours": Decimal("8"),
    },
    {
        "title": "Material Assessment",
        "description": "Assess and order required materials for the project",
        "priority": "medium",
        "due_in_days": 10,
        "estimated_hours": Decimal("4"),
    },
)


@contextmanager
def _unit_of_work(operation: str):
    try:
        yield
        db.session.commit()
    except (StaleDataError, IntegrityError) as exc:
        db.session.rollback()
        logger.warning("%s lost a concurrent update: %s", operation, exc)
        raise ConcurrencyError(resource="Project") from exc
    except Exception:
        db.session.rollback()
        raise


def _seed_tasks_on() -> str:
    value = current_app.config.get("SEED_TASKS_ON", SEED_ON_INVITE)
    return value if value in (SEED_ON_INVITE, SEED_ON_ACCEPT) else SEED_ON_INVITE


def seed_tasks_for(project: Project, fabricator_id: int, created_by: int | None) -> list:
    """Create the default starter tasks for a newly assigned fabricator."""
    today = date.today()
    tasks = [
        entity_store.create(
            "task",
            project_id=project.id,
            title=tpl["title"],
            description=tpl["description"],
            status="pending",
            priority=tpl["priority"],
            assigned_to=fabricator_id,
            due_date=today + timedelta(days=tpl["due_in_days"]),
            estimated_hours=tpl["estimated_hours"],
            actual_hours=Decimal("0"),
            created_by=created_by,
        )
        for tpl in SEED_TASK_TEMPLATES
    ]
    logger.info(
        "Seeded %d tasks on project %s for fabricator %s", len(tasks), project.id, fabricator_id,
    )
    return tasks


# ── Projects ─────────────────────────────────────────────────────────────────


def create_project(actor_id, data: dict) -> Project:
    with _unit_of_work("create_project"):
        actor = get_actor(actor_id)
        project = assignment_engine.create_project(actor, data)
        invited = [db.session.get(User, i.supervisor_id) for i in project.supervisor_invitations]

    NotificationDispatcher.notify_project_update(
        project, invited or None, CHANGE_PROJECT_CREATED, actor,
    )
    return project


def get_project(project_id, actor_id) -> Project:
    actor = get_actor(actor_id)
    project = entity_store.get("project", project_id)
    if not can_view_project(actor, project):
        raise AuthorizationError(
            f"User id={actor.id} may not view project id={project.id}", actor_id=actor.id,
        )
    return project


def list_projects(actor_id, archived: bool = False) -> list:
    """Projects visible to the actor; ``archived`` selects completed ones only."""
    actor = get_actor(actor_id)
    stmt = select(Project)
    ids = visible_project_ids(actor)
    if ids is not None:
        stmt = stmt.where(Project.id.in_(ids))
    if archived:
        stmt = stmt.where(Project.status == STATUS_COMPLETED)
    else:
        stmt = stmt.where(Project.status != STATUS_COMPLETED)
    stmt = stmt.order_by(Project.created_at.desc(), Project.id.desc())
    return db.session.execute(stmt).scalars().all()


# ── Assignments ──────────────────────────────────────────────────────────────


def assign_fabricator(project_id, fabricator_id, assigner_id, message=None) -> dict:
    """Invite a fabricator; seeds starter tasks when SEED_TASKS_ON is 'invite'.

    Returns ``{"project", "assignment", "tasks"}``.
    """
    fabricator_id = parse_id(fabricator_id, "fabricator_id")
    with _unit_of_work("assign_fabricator"):
        assigner = get_actor(assigner_id)
        project, assignment, fabricator = assignment_engine.invite_fabricator(
            project_id, fabricator_id, assigner, message,
        )
        tasks = []
        if _seed_tasks_on() == SEED_ON_INVITE:
            tasks = seed_tasks_for(project, fabricator.id, assigner.id)

    NotificationDispatcher.notify_assignment(assignment, project, fabricator, assigner)
    return {"project": project, "assignment": assignment, "tasks": tasks}


def broadcast_to_fabricators(project_id, actor_id, message=None) -> dict:
    """Invite every eligible fabricator; returns ``{"project", "assignments"}``."""
    with _unit_of_work("broadcast_to_fabricators"):
        actor = get_actor(actor_id)
        project, assignments = assignment_engine.broadcast_to_fabricators(project_id, actor, message)
        recipients = {a.id: db.session.get(User, a.fabricator_id) for a in assignments}

    for assignment in assignments:
        NotificationDispatcher.notify_assignment(assignment, project, recipients[assignment.id], actor)
    return {"project": project, "assignments": assignments}


def accept_assignment(assignment_id, responder_id, response=None) -> Project:
    """Accept an invitation; seeds starter tasks when SEED_TASKS_ON is 'accept'."""
    with _unit_of_work("accept_assignment"):
        responder = get_actor(responder_id)
        project, assignment = assignment_engine.accept_assignment(assignment_id, responder, response)
        if _seed_tasks_on() == SEED_ON_ACCEPT:
            seed_tasks_for(project, responder.id, assignment.assigned_by)

    NotificationDispatcher.notify_assignment_response(assignment, project)
    return project


def decline_assignment(assignment_id, responder_id, response=None) -> Project:
    with _unit_of_work("decline_assignment"):
        responder = get_actor(responder_id)
        project, assignment = assignment_engine.decline_assignment(assignment_id, responder, response)

    NotificationDispatcher.notify_assignment_response(assignment, project)
    return project


def list_assignments(actor_id, scope: str = "pending") -> list:
    actor = get_actor(actor_id)
    require_role(actor, ROLE_FABRICATOR)
    return assignment_engine.list_assignments_for_fabricator(actor.id, scope)


def respond_to_supervisor_invitation(project_id, supervisor_id, accept) -> Project:
    if not isinstance(accept, bool):
        raise ValidationError("accept must be true or false", details={"accept": "not a boolean"})
    with _unit_of_work("respond_to_supervisor_invitation"):
        supervisor = get_actor(supervisor_id)
        project, _ = assignment_engine.respond_to_supervisor_invitation(project_id, supervisor, accept)
    return project


# ── Work execution ───────────────────────────────────────────────────────────


def record_work(project_id, fabricator_id, entry: dict) -> dict:
    """Append a work log; returns ``{"work_log", "project"}``."""
    with _unit_of_work("record_work"):
        actor = get_actor(fabricator_id)
        work_log, project = progress_aggregator.record_work(
            project_id,
            actor.id,
            entry.get("hours_worked"),
            entry.get("progress_percentage"),
            entry.get("description"),
            materials=entry.get("materials"),
            work_date=entry.get("date"),
        )

    NotificationDispatcher.notify_project_update(project, None, CHANGE_PROGRESS, actor)
    return {"work_log": work_log, "project": project}


def list_work_logs(project_id, actor_id) -> dict:
    get_project(project_id, actor_id)
    return {
        "work_logs": progress_aggregator.list_work_logs(project_id),
        "summary": progress_aggregator.summarize_work(project_id),
    }


def add_material(project_id, actor_id, data: dict):
    with _unit_of_work("add_material"):
        actor = get_actor(actor_id)
        material, _ = progress_aggregator.add_material(project_id, actor, data)
    return material


def attach_documentation(project_id, actor_id, data: dict) -> Project:
    """Set the documentation URL and/or add attachment metadata rows."""
    with _unit_of_work("attach_documentation"):
        actor = get_actor(actor_id)
        project = assignment_engine.attach_documentation(project_id, actor, data)
    return project


# ── Revenue ──────────────────────────────────────────────────────────────────


def allocate_revenue(project_id, allocations, actor_id) -> Project:
    with _unit_of_work("allocate_revenue"):
        actor = get_actor(actor_id)
        project = revenue_allocator.allocate_revenue(project_id, allocations, actor)
    return project


def allocate_budget(project_id, allocations, actor_id) -> Project:
    with _unit_of_work("allocate_budget"):
        actor = get_actor(actor_id)
        project = revenue_allocator.allocate_budget(project_id, allocations, actor)
    return project


def split_revenue_equally(project_id, actor_id) -> Project:
    with _unit_of_work("split_revenue_equally"):
        actor = get_actor(actor_id)
        project = revenue_allocator.split_revenue_equally(project_id, actor)
    return project


def clear_revenue_allocations(project_id, actor_id) -> Project:
    with _unit_of_work("clear_revenue_allocations"):
        actor = get_actor(actor_id)
        project = revenue_allocator.clear_revenue_allocations(project_id, actor)
    return project


def revenue_summary(project_id, actor_id) -> dict:
    actor = get_actor(actor_id)
    project = entity_store.get("project", project_id)
    require_project_manager(actor, project, "view revenue allocations")
    return revenue_allocator.revenue_summary(project_id)


# ── Status ───────────────────────────────────────────────────────────────────


def transition_project_status(project_id, actor_id, target) -> Project:
    with _unit_of_work("transition_project_status"):
        actor = get_actor(actor_id)
        project = assignment_engine.transition_status(project_id, actor, target)

    NotificationDispatcher.notify_project_update(project, None, CHANGE_STATUS, actor)
    return project


def mark_project_complete(project_id, actor_id) -> Project:
    with _unit_of_work("mark_project_complete"):
        actor = get_actor(actor_id)
        project = assignment_engine.complete_project(project_id, actor)

    NotificationDispatcher.notify_project_update(project, None, CHANGE_STATUS, actor)
    return project
