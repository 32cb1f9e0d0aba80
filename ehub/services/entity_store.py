"""
Entity store: keyed access to workflow entities.

Thin data-access layer the workflow services go through:

    get(kind, id)                         -> entity or NotFoundError
    get_for_update(kind, id)              -> entity, row-locked where the DB supports it
    list_(kind, order_by=None, **filters) -> list of entities
    create(kind, **fields)                -> flushed entity
    update(kind, id, patch, expected_version=None)
    compare_and_set(kind, id, expected, patch) -> bool

Writes are flushed, never committed: the workflow orchestrator owns the
unit of work.  ``compare_and_set`` issues a single conditional UPDATE so two
requests racing on the same row cannot both win.
"""

from __future__ import annotations

import logging

from sqlalchemy import select, update as sa_update

from ehub.core.exceptions import ConcurrencyError, NotFoundError, ValidationError
from ehub.models import db
from ehub.models.notification import Notification
from ehub.models.project import Project, ProjectAssignment
from ehub.models.task import Task
from ehub.models.user import User
from ehub.models.work_log import Material, WorkLogEntry

logger = logging.getLogger(__name__)

KINDS = {
    "project": Project,
    "assignment": ProjectAssignment,
    "task": Task,
    "worklog": WorkLogEntry,
    "material": Material,
    "user": User,
    "notification": Notification,
}


def model_for(kind: str):
    """Return the model class registered for ``kind``."""
    try:
        return KINDS[kind]
    except KeyError:
        raise ValidationError(f"Unknown entity kind '{kind}'") from None


def get(kind: str, entity_id: int):
    """Load an entity by id or raise NotFoundError."""
    model = model_for(kind)
    entity = db.session.get(model, entity_id)
    if entity is None:
        raise NotFoundError(resource=model.__name__, resource_id=entity_id)
    return entity


def get_for_update(kind: str, entity_id: int):
    """Load an entity with ``SELECT ... FOR UPDATE`` (ignored by SQLite)."""
    model = model_for(kind)
    entity = db.session.execute(
        select(model).where(model.id == entity_id).with_for_update()
    ).scalar_one_or_none()
    if entity is None:
        raise NotFoundError(resource=model.__name__, resource_id=entity_id)
    return entity


def list_(kind: str, order_by=None, **filters) -> list:
    """List entities matching equality filters."""
    model = model_for(kind)
    stmt = select(model).filter_by(**filters)
    if order_by is not None:
        stmt = stmt.order_by(*order_by) if isinstance(order_by, (list, tuple)) else stmt.order_by(order_by)
    else:
        stmt = stmt.order_by(model.id.asc())
    return list(db.session.execute(stmt).scalars().all())


def create(kind: str, **fields):
    """Add a new entity to the session and flush it to obtain an id."""
    entity = model_for(kind)(**fields)
    db.session.add(entity)
    db.session.flush()
    return entity


def update(kind: str, entity_id: int, patch: dict, expected_version: int | None = None):
    """Apply ``patch`` to an entity.

    When ``expected_version`` is given the entity's ``version`` must still
    match, otherwise ConcurrencyError is raised and nothing is written.
    Projects additionally carry a mapper-level version counter, so a
    concurrent flush of the same row fails with StaleDataError.
    """
    entity = get(kind, entity_id)
    if expected_version is not None:
        current = getattr(entity, "version", None)
        if current != expected_version:
            raise ConcurrencyError(resource=type(entity).__name__, resource_id=entity_id)
    for attr, value in patch.items():
        if attr in ("id", "version"):
            continue
        setattr(entity, attr, value)
    db.session.flush()
    return entity


def compare_and_set(kind: str, entity_id: int, expected: dict, patch: dict) -> bool:
    """Conditionally update one row; return True if this call won.

    Issues ``UPDATE ... WHERE id = :id AND <expected columns match>``.  The
    ``version`` column, when the model has one, is bumped along with the
    patch so ORM flushes still holding the old value fail as stale.  The
    in-session object is refreshed either way.
    """
    model = model_for(kind)
    conditions = [model.id == entity_id]
    conditions.extend(getattr(model, col) == value for col, value in expected.items())
    values = dict(patch)
    if "version" in model.__table__.columns:
        values["version"] = model.version + 1

    result = db.session.execute(
        sa_update(model)
        .where(*conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    won = result.rowcount == 1

    entity = db.session.get(model, entity_id)
    if entity is None:
        raise NotFoundError(resource=model.__name__, resource_id=entity_id)
    db.session.refresh(entity)
    if not won:
        logger.info(
            "compare_and_set lost kind=%s id=%s expected=%s", kind, entity_id, expected,
        )
    return won
