"""
Ehub PMS
Progress aggregator: work logs, project progress and materials.

Progress only moves forward: each work log adds its contribution and the
result is clamped at 100.  Reaching 100 does not change the project status;
submitting for review stays an explicit transition.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal

from sqlalchemy import select

from ehub.core.exceptions import AuthorizationError, InvalidTransitionError, ValidationError
from ehub.models import db
from ehub.models.project import (
    STATUS_ASSIGNED_TO_FABRICATOR,
    STATUS_IN_PROGRESS,
    STATUS_PENDING_ASSIGNMENT,
    STATUS_PLANNING,
    Project,
)
from ehub.models.user import User
from ehub.models.work_log import WorkLogEntry
from ehub.services import entity_store
from ehub.services.permission import can_manage_project
from ehub.utils.helpers import (
    MAX_AMOUNT,
    clean_text,
    parse_amount,
    parse_date,
    parse_decimal,
    parse_whole,
    quantize_money,
)

logger = logging.getLogger(__name__)

WORKABLE_STATUSES = frozenset({
    STATUS_ASSIGNED_TO_FABRICATOR,
    STATUS_PENDING_ASSIGNMENT,
    STATUS_PLANNING,
    STATUS_IN_PROGRESS,
})

# Column bounds: work_logs.hours_worked Numeric(9, 4), materials Numeric(10, 2).
MAX_HOURS = Decimal("1e5")
HOURS_PLACES = Decimal("0.0001")
MAX_UNIT_VALUE = Decimal("1e8")


def _require_workable(project: Project, fabricator_id: int) -> None:
    if fabricator_id not in project.fabricator_ids:
        raise AuthorizationError(
            f"Fabricator id={fabricator_id} is not a member of project id={project.id}",
            actor_id=fabricator_id,
        )
    if project.status not in WORKABLE_STATUSES:
        raise InvalidTransitionError(
            f"Work cannot be logged while project id={project.id} is {project.status}",
            current_status=project.status,
        )


def _parse_materials(value) -> list[str]:
    if value in (None, ""):
        return []
    if not isinstance(value, list) or not all(isinstance(m, str) for m in value):
        raise ValidationError("materials must be a list of names", details={"materials": "not a list of strings"})
    return [m.strip() for m in value if m.strip()]


def record_work(
    project_id: int,
    fabricator_id: int,
    hours_worked,
    progress_percentage,
    description,
    materials=None,
    work_date=None,
):
    """Append a work log and advance project progress.

    Returns ``(work_log, project)``.

    Raises:
        ValidationError: hours not > 0, percentage outside 0..100 or not a
            whole number, missing description.
        NotFoundError: unknown project.
        AuthorizationError: fabricator is not a project member.
        InvalidTransitionError: project is not in a workable status.
    """
    errors = {}
    hours = None
    try:
        hours = parse_decimal(hours_worked, "hours_worked", limit=MAX_HOURS)
        if hours <= 0:
            errors["hours_worked"] = "must be greater than 0"
        elif hours != hours.quantize(HOURS_PLACES):
            errors["hours_worked"] = "at most 4 decimal places"
    except ValidationError as exc:
        errors.update(exc.details)
    contribution = None
    try:
        contribution = parse_whole(progress_percentage, "progress_percentage", minimum=0, maximum=100)
    except ValidationError as exc:
        errors.update(exc.details)
    text = clean_text(description)
    if not text:
        errors["description"] = "required"
    if errors:
        raise ValidationError("Invalid work log", details=errors)
    names = _parse_materials(materials)

    project = entity_store.get_for_update("project", project_id)
    _require_workable(project, fabricator_id)

    entry = entity_store.create(
        "worklog",
        project_id=project.id,
        fabricator_id=fabricator_id,
        date=parse_date(work_date) or date.today(),
        hours_worked=hours,
        description=text,
        progress_percentage=contribution,
        materials=names,
    )
    previous = project.progress or 0
    project.progress = min(100, previous + contribution)
    db.session.flush()

    logger.info(
        "Work log %s on project %s by fabricator %s: %sh, progress %s -> %s",
        entry.id, project.id, fabricator_id, hours, previous, project.progress,
    )
    return entry, project


def list_work_logs(project_id: int) -> list:
    entity_store.get("project", project_id)
    stmt = (
        select(WorkLogEntry)
        .where(WorkLogEntry.project_id == project_id)
        .order_by(WorkLogEntry.date.desc(), WorkLogEntry.id.desc())
    )
    return db.session.execute(stmt).scalars().all()


def summarize_work(project_id: int) -> dict:
    """Total hours plus per-fabricator hours and contributed progress."""
    project = entity_store.get("project", project_id)
    per_fabricator = defaultdict(lambda: {"hours": Decimal("0"), "progress_contributed": 0, "entries": 0})
    total_hours = Decimal("0")
    logs = list_work_logs(project_id)
    for log in logs:
        row = per_fabricator[log.fabricator_id]
        row["hours"] += log.hours_worked
        row["progress_contributed"] += log.progress_percentage
        row["entries"] += 1
        total_hours += log.hours_worked

    return {
        "project_id": project.id,
        "progress": project.progress,
        "total_hours": float(total_hours),
        "log_count": len(logs),
        "by_fabricator": [
            {
                "fabricator_id": fid,
                "hours": float(row["hours"]),
                "progress_contributed": row["progress_contributed"],
                "entries": row["entries"],
            }
            for fid, row in sorted(per_fabricator.items())
        ],
    }


def add_material(project_id: int, actor: User, data: dict):
    """Record a material on a project and add its cost to ``spent``.

    Member fabricators add materials while the project is workable; admins
    and the owning supervisor at any non-terminal status.

    Returns ``(material, project)``.
    """
    name = clean_text(data.get("name"))
    if not name:
        raise ValidationError("Material name is required", details={"name": "required"})
    quantity = parse_amount(data.get("quantity"), "quantity", limit=MAX_UNIT_VALUE)
    if quantity <= 0:
        raise ValidationError("quantity must be greater than 0", details={"quantity": "must be > 0"})
    cost_per_unit = parse_amount(data.get("cost_per_unit"), "cost_per_unit", default=0, limit=MAX_UNIT_VALUE)

    project = entity_store.get_for_update("project", project_id)
    if can_manage_project(actor, project):
        if project.is_terminal:
            raise InvalidTransitionError(
                f"Materials cannot be added while project id={project.id} is {project.status}",
                current_status=project.status,
            )
    else:
        _require_workable(project, actor.id)

    total_cost = quantize_money(quantity * cost_per_unit)
    spent = quantize_money(Decimal(project.spent or 0) + total_cost)
    if spent >= MAX_AMOUNT:
        raise ValidationError(
            f"Material cost {total_cost} would take project spend out of range",
            details={"cost_per_unit": "out of range"},
        )
    material = entity_store.create(
        "material",
        project_id=project.id,
        name=name,
        description=clean_text(data.get("description")),
        quantity=quantity,
        unit=clean_text(data.get("unit")),
        cost_per_unit=cost_per_unit,
        total_cost=total_cost,
        added_by=actor.id,
    )
    project.spent = spent
    db.session.flush()
    logger.info(
        "Material %s added to project %s by user %s, cost %s",
        material.id, project.id, actor.id, total_cost,
    )
    return material, project
