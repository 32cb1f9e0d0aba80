"""
Ehub PMS
Revenue allocator: per-fabricator revenue shares and cost budgets.

Every batch is validated as a whole before anything is written:

    - amounts are decimals >= 0 (rounded half-up to cents)
    - every fabricator is a project member
    - the resulting total over all budget rows stays within the project
      ceiling (``revenue`` for revenue shares, ``budget`` for cost budgets)

Rows for fabricators not named in a batch keep their current values.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select

from ehub.core.exceptions import OverAllocationError, ValidationError
from ehub.models import db
from ehub.models.project import FabricatorBudget, Project
from ehub.models.user import User
from ehub.services import entity_store
from ehub.services.permission import require_project_manager
from ehub.utils.helpers import TWO_PLACES, parse_amount, parse_id, quantize_money

logger = logging.getLogger(__name__)

# field on FabricatorBudget -> ceiling field on Project
_CEILINGS = {
    "allocated_revenue": "revenue",
    "allocated_amount": "budget",
}


def equal_split(total: Decimal, count: int) -> Decimal:
    """Share of ``total`` per head, rounded half-up but never over-allocating.

    1000 / 3 -> 333.33 (0.01 stays unallocated); 200 / 3 -> 66.66 because
    66.67 x 3 would exceed 200.
    """
    if count <= 0:
        raise ValidationError("Project has no fabricators to split between", details={"fabricator_ids": "empty"})
    share = quantize_money(Decimal(total) / count)
    if share * count > total:
        share -= TWO_PLACES
    return share


def _parse_allocations(allocations) -> dict[int, Decimal]:
    """Accept ``{"12": 500}`` or ``[{"fabricator_id": 12, "amount": 500}]``."""
    if isinstance(allocations, dict):
        pairs = list(allocations.items())
    elif isinstance(allocations, list):
        pairs = []
        for item in allocations:
            if not isinstance(item, dict):
                raise ValidationError("Each allocation must be an object", details={"allocations": "invalid item"})
            pairs.append((item.get("fabricator_id"), item.get("amount")))
    else:
        raise ValidationError("allocations must be an object or a list", details={"allocations": "invalid"})
    if not pairs:
        raise ValidationError("allocations must not be empty", details={"allocations": "empty"})

    parsed = {}
    for raw_id, raw_amount in pairs:
        fid = parse_id(raw_id, "fabricator_id")
        parsed[fid] = parse_amount(raw_amount, f"allocations[{fid}]")
    return parsed


def _apply(project: Project, amounts: dict[int, Decimal], field: str) -> None:
    ceiling_field = _CEILINGS[field]
    members = set(project.fabricator_ids)
    outsiders = sorted(fid for fid in amounts if fid not in members)
    if outsiders:
        raise ValidationError(
            f"Fabricators {outsiders} are not members of project id={project.id}",
            details={"fabricator_ids": outsiders},
        )

    resulting = {row.fabricator_id: Decimal(getattr(row, field) or 0) for row in project.fabricator_budgets}
    resulting.update(amounts)
    total = sum(resulting.values(), Decimal("0"))
    ceiling = Decimal(getattr(project, ceiling_field) or 0)
    if total > ceiling:
        raise OverAllocationError(ceiling_field, ceiling, total)

    for fid, amount in amounts.items():
        row = project.budget_for(fid)
        if row is None:
            fabricator = db.session.get(User, fid)
            row = FabricatorBudget(
                fabricator_id=fid,
                allocated_amount=Decimal("0"),
                spent_amount=Decimal("0"),
                allocated_revenue=Decimal("0"),
                description=f"Revenue allocation for {fabricator.name if fabricator else fid}",
            )
            project.fabricator_budgets.append(row)
        setattr(row, field, amount)
    db.session.flush()


def allocate_revenue(project_id: int, allocations, actor: User) -> Project:
    """Set revenue shares for the named fabricators.

    Raises:
        AuthorizationError: actor is neither admin nor owning supervisor.
        ValidationError: malformed amount or non-member fabricator.
        OverAllocationError: the resulting total exceeds ``project.revenue``.
    """
    project = entity_store.get_for_update("project", project_id)
    require_project_manager(actor, project, "allocate revenue")
    amounts = _parse_allocations(allocations)
    _apply(project, amounts, "allocated_revenue")
    logger.info(
        "Revenue allocated on project %s by user %s: %s",
        project.id, actor.id, {fid: str(a) for fid, a in amounts.items()},
    )
    return project


def allocate_budget(project_id: int, allocations, actor: User) -> Project:
    """Set cost budgets for the named fabricators, bounded by ``project.budget``."""
    project = entity_store.get_for_update("project", project_id)
    require_project_manager(actor, project, "allocate budget")
    amounts = _parse_allocations(allocations)
    _apply(project, amounts, "allocated_amount")
    logger.info(
        "Budget allocated on project %s by user %s: %s",
        project.id, actor.id, {fid: str(a) for fid, a in amounts.items()},
    )
    return project


def split_revenue_equally(project_id: int, actor: User) -> Project:
    project = entity_store.get_for_update("project", project_id)
    require_project_manager(actor, project, "allocate revenue")
    members = project.fabricator_ids
    share = equal_split(Decimal(project.revenue or 0), len(members))
    _apply(project, {fid: share for fid in members}, "allocated_revenue")
    logger.info(
        "Revenue of project %s split equally by user %s: %s x %d",
        project.id, actor.id, share, len(members),
    )
    return project


def clear_revenue_allocations(project_id: int, actor: User) -> Project:
    project = entity_store.get_for_update("project", project_id)
    require_project_manager(actor, project, "allocate revenue")
    for row in project.fabricator_budgets:
        row.allocated_revenue = Decimal("0")
    db.session.flush()
    logger.info("Revenue allocations of project %s cleared by user %s", project.id, actor.id)
    return project


def revenue_summary(project_id: int) -> dict:
    """Totals plus one row per fabricator holding a budget row."""
    project = entity_store.get("project", project_id)
    revenue = Decimal(project.revenue or 0)
    budget = Decimal(project.budget or 0)
    allocated_revenue = sum((Decimal(r.allocated_revenue or 0) for r in project.fabricator_budgets), Decimal("0"))
    allocated_budget = sum((Decimal(r.allocated_amount or 0) for r in project.fabricator_budgets), Decimal("0"))

    names = {}
    if project.fabricator_budgets:
        ids = [r.fabricator_id for r in project.fabricator_budgets]
        names = dict(db.session.execute(select(User.id, User.name).where(User.id.in_(ids))).tuples().all())

    return {
        "project_id": project.id,
        "total_revenue": float(revenue),
        "allocated_revenue": float(allocated_revenue),
        "remaining_revenue": float(revenue - allocated_revenue),
        "total_budget": float(budget),
        "allocated_budget": float(allocated_budget),
        "remaining_budget": float(budget - allocated_budget),
        "allocations": [
            dict(row.to_dict(), fabricator_name=names.get(row.fabricator_id))
            for row in project.fabricator_budgets
        ],
    }
