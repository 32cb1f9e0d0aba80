"""
Ehub PMS
Assignment engine: project creation policy, fabricator invitations and the
project status machine.

Functions here validate, mutate and flush.  They never commit; the workflow
orchestrator wraps each call in one unit of work and dispatches
notifications after it commits.

Assignment lifecycle:
    pending -> accepted   (fabricator joins, project -> planning)
    pending -> declined   (nothing else changes)

Resolution is a conditional UPDATE on ``status = 'pending'`` so only one of
two concurrent responses can win.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from ehub.core.exceptions import (
    AlreadyResolvedError,
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from ehub.models import db
from ehub.models.project import (
    ASSIGNMENT_ACCEPTED,
    ASSIGNMENT_DECLINED,
    ASSIGNMENT_PENDING,
    INVITATION_WITHDRAWN,
    PRIORITIES,
    STATUS_ADMIN_REVIEW,
    STATUS_ASSIGNED_TO_FABRICATOR,
    STATUS_CLIENT_SIGNOFF,
    STATUS_COMPLETED,
    STATUS_CREATED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING_ASSIGNMENT,
    STATUS_PLANNING,
    STATUS_SUPERVISOR_REVIEW,
    Project,
    ProjectAssignment,
    ProjectAttachment,
    ProjectFabricator,
    SupervisorInvitation,
    normalize_status,
    validate_project_transition,
)
from ehub.models.user import ROLE_ADMIN, ROLE_FABRICATOR, ROLE_SUPERVISOR, User
from ehub.services import entity_store
from ehub.services.permission import (
    get_active_user,
    is_admin,
    is_linked_client,
    is_member,
    owns_project,
    require_project_manager,
    require_role,
)
from ehub.utils.helpers import clean_text, parse_amount, parse_date, parse_id

logger = logging.getLogger(__name__)

# Statuses from which a fabricator may submit the project for review.
REVIEW_SUBMITTABLE = frozenset({STATUS_ASSIGNED_TO_FABRICATOR, STATUS_PLANNING, STATUS_IN_PROGRESS})

ASSIGNMENT_SCOPES = {
    "pending": (ASSIGNMENT_PENDING,),
    "history": (ASSIGNMENT_ACCEPTED, ASSIGNMENT_DECLINED),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enter_status(project: Project, target: str) -> None:
    """Move ``project`` to ``target``; staying in the same status is allowed."""
    if project.status == target:
        return
    if not validate_project_transition(project.status, target):
        raise InvalidTransitionError(
            f"Project id={project.id} cannot move from '{project.status}' to '{target}'",
            current_status=project.status,
            target_status=target,
        )
    logger.info("Project %s status %s -> %s", project.id, project.status, target)
    project.status = target


def _require_non_terminal(project: Project, action: str) -> None:
    if project.is_terminal:
        raise InvalidTransitionError(
            f"Cannot {action}: project id={project.id} is {project.status}",
            current_status=project.status,
        )


def _require_user(user_id, role: str, field: str) -> User:
    """Like get_active_user but reports a bad reference as a validation failure."""
    try:
        return get_active_user(user_id, role)
    except NotFoundError:
        raise ValidationError(
            f"{field}: no active {role} with id={user_id}",
            details={field: f"unknown or inactive {role}"},
        ) from None


def _add_membership(project: Project, fabricator_id: int, source: str) -> bool:
    """Add ``fabricator_id`` to the project unless already a member."""
    if fabricator_id in project.fabricator_ids:
        return False
    project.memberships.append(ProjectFabricator(fabricator_id=fabricator_id, source=source))
    return True


def _pending_assignment_for(project: Project, fabricator_id: int):
    for assignment in project.assignments:
        if assignment.fabricator_id == fabricator_id and assignment.status == ASSIGNMENT_PENDING:
            return assignment
    return None


# ═════════════════════════════════════════════════════════════════════════════
# Creation
# ═════════════════════════════════════════════════════════════════════════════


def create_project(creator: User, data: dict) -> Project:
    """Create a project according to the creation policy.

    Modes:
        direct                    fabricator_ids given; members added, status
                                  assigned_to_fabricator
        manual_assignment=True    no members, status created; fabricators join
                                  only through invitations
        broadcast_to_supervisors  no supervisor, status created; every active
                                  supervisor receives an invitation

    Raises:
        AuthorizationError: creator is neither admin nor supervisor.
        ValidationError: any field fails validation.
    """
    require_role(creator, ROLE_ADMIN, ROLE_SUPERVISOR)

    errors = {}
    name = clean_text(data.get("name"))
    client_name = clean_text(data.get("client_name"))
    if not name:
        errors["name"] = "required"
    if not client_name:
        errors["client_name"] = "required"

    priority = data.get("priority") or "medium"
    if priority not in PRIORITIES:
        errors["priority"] = f"must be one of: {', '.join(sorted(PRIORITIES))}"

    start_date = parse_date(data.get("start_date"))
    end_date = parse_date(data.get("end_date"))
    if start_date and end_date and end_date <= start_date:
        errors["end_date"] = "must be after start_date"

    if errors:
        raise ValidationError("Invalid project data", details=errors)

    budget = parse_amount(data.get("budget"), "budget", default=0)
    revenue = parse_amount(data.get("revenue"), "revenue", default=0)

    manual = bool(data.get("manual_assignment"))
    broadcast = bool(data.get("broadcast_to_supervisors"))

    raw_fabricators = data.get("fabricator_ids") or []
    if not isinstance(raw_fabricators, list):
        raise ValidationError("fabricator_ids must be a list", details={"fabricator_ids": "not a list"})
    fabricator_ids = list(dict.fromkeys(parse_id(f, "fabricator_ids") for f in raw_fabricators))

    if manual or broadcast:
        if fabricator_ids:
            raise ValidationError(
                "fabricator_ids must be empty when fabricators are assigned through invitations",
                details={"fabricator_ids": "must be empty"},
            )
    elif not fabricator_ids:
        raise ValidationError(
            "At least one fabricator is required for direct assignment",
            details={"fabricator_ids": "required"},
        )

    supervisor_id = None
    invited_supervisors = []
    if broadcast:
        invited_supervisors = db.session.execute(
            select(User).where(User.role == ROLE_SUPERVISOR, User.is_active.is_(True)).order_by(User.id)
        ).scalars().all()
        if not invited_supervisors:
            raise ValidationError(
                "No active supervisors to offer the project to",
                details={"broadcast_to_supervisors": "no active supervisors"},
            )
    else:
        raw_supervisor = data.get("supervisor_id")
        if raw_supervisor in (None, ""):
            if creator.role != ROLE_SUPERVISOR:
                raise ValidationError("supervisor_id is required", details={"supervisor_id": "required"})
            supervisor_id = creator.id
        else:
            supervisor_id = _require_user(
                parse_id(raw_supervisor, "supervisor_id"), ROLE_SUPERVISOR, "supervisor_id",
            ).id

    for fid in fabricator_ids:
        _require_user(fid, ROLE_FABRICATOR, "fabricator_ids")

    project = entity_store.create(
        "project",
        name=name,
        description=clean_text(data.get("description")),
        client_name=client_name,
        priority=priority,
        status=STATUS_CREATED if (manual or broadcast) else STATUS_ASSIGNED_TO_FABRICATOR,
        progress=0,
        start_date=start_date,
        end_date=end_date,
        budget=budget,
        spent=0,
        revenue=revenue,
        documentation_url=clean_text(data.get("documentation_url")),
        supervisor_id=supervisor_id,
        created_by=creator.id,
        memberships=[ProjectFabricator(fabricator_id=fid, source="direct") for fid in fabricator_ids],
        supervisor_invitations=[SupervisorInvitation(supervisor_id=s.id) for s in invited_supervisors],
    )
    logger.info(
        "Project %s created by user %s status=%s fabricators=%s invited_supervisors=%s",
        project.id, creator.id, project.status, fabricator_ids, len(invited_supervisors),
    )
    return project


# ═════════════════════════════════════════════════════════════════════════════
# Fabricator invitations
# ═════════════════════════════════════════════════════════════════════════════


def invite_fabricator(project_id: int, fabricator_id: int, assigner: User, message: str | None = None):
    """Invite one fabricator; returns ``(project, assignment, fabricator)``.

    Raises:
        NotFoundError: unknown project or fabricator.
        AuthorizationError: assigner is neither admin nor owning supervisor.
        ConflictError: fabricator already a member or already invited.
        InvalidTransitionError: project is terminal or cannot take invitations.
    """
    project = entity_store.get_for_update("project", project_id)
    require_project_manager(assigner, project, "assign fabricators")
    _require_non_terminal(project, "assign fabricator")
    fabricator = get_active_user(fabricator_id, ROLE_FABRICATOR)

    if fabricator.id in project.fabricator_ids:
        raise ConflictError("ProjectFabricator", "fabricator_id", fabricator.id)
    if _pending_assignment_for(project, fabricator.id) is not None:
        raise ConflictError("ProjectAssignment", "fabricator_id", fabricator.id)

    _enter_status(project, STATUS_PENDING_ASSIGNMENT)
    assignment = ProjectAssignment(
        fabricator_id=fabricator.id,
        assigned_by=assigner.id,
        status=ASSIGNMENT_PENDING,
        message=clean_text(message),
    )
    project.assignments.append(assignment)
    db.session.flush()

    logger.info(
        "Assignment %s: project %s fabricator %s invited by user %s",
        assignment.id, project.id, fabricator.id, assigner.id,
    )
    return project, assignment, fabricator


def broadcast_to_fabricators(project_id: int, actor: User, message: str | None = None):
    """Invite every active fabricator not yet on the project.

    Fabricators that are members or hold a pending invitation are skipped.
    Returns ``(project, [assignment, ...])``; the list may be empty, in which
    case the project status is left alone.
    """
    project = entity_store.get_for_update("project", project_id)
    require_project_manager(actor, project, "broadcast the project")
    _require_non_terminal(project, "broadcast project")

    skip = set(project.fabricator_ids)
    skip.update(a.fabricator_id for a in project.assignments if a.status == ASSIGNMENT_PENDING)
    candidates = [
        f for f in db.session.execute(
            select(User).where(User.role == ROLE_FABRICATOR, User.is_active.is_(True)).order_by(User.id)
        ).scalars()
        if f.id not in skip
    ]
    if not candidates:
        logger.info("Broadcast of project %s found no fabricators to invite", project.id)
        return project, []

    _enter_status(project, STATUS_PENDING_ASSIGNMENT)
    created = []
    for fabricator in candidates:
        assignment = ProjectAssignment(
            fabricator_id=fabricator.id,
            assigned_by=actor.id,
            status=ASSIGNMENT_PENDING,
            message=clean_text(message),
        )
        project.assignments.append(assignment)
        created.append(assignment)
    db.session.flush()

    logger.info(
        "Project %s broadcast by user %s to %d fabricators", project.id, actor.id, len(created),
    )
    return project, created


def _resolve(assignment_id: int, responder: User, new_status: str, response: str | None):
    assignment = entity_store.get("assignment", assignment_id)
    if responder.id != assignment.fabricator_id:
        raise AuthorizationError(
            f"Assignment id={assignment_id} belongs to another fabricator",
            actor_id=responder.id,
        )
    if assignment.status != ASSIGNMENT_PENDING:
        raise AlreadyResolvedError("ProjectAssignment", assignment.id, assignment.status)

    project = entity_store.get_for_update("project", assignment.project_id)
    if new_status == ASSIGNMENT_ACCEPTED and project.status != STATUS_PLANNING:
        if not validate_project_transition(project.status, STATUS_PLANNING):
            raise InvalidTransitionError(
                f"Cannot accept assignment: project id={project.id} is {project.status}",
                current_status=project.status,
                target_status=STATUS_PLANNING,
            )

    won = entity_store.compare_and_set(
        "assignment",
        assignment.id,
        expected={"status": ASSIGNMENT_PENDING},
        patch={
            "status": new_status,
            "response": clean_text(response),
            "responded_at": _utcnow(),
        },
    )
    if not won:
        raise AlreadyResolvedError("ProjectAssignment", assignment.id, assignment.status)
    return project, assignment


def accept_assignment(assignment_id: int, responder: User, response: str | None = None):
    """Accept a pending invitation; returns ``(project, assignment)``.

    The fabricator joins the project and the project moves to planning in
    the same unit of work.

    Raises:
        AuthorizationError: responder is not the invited fabricator.
        AlreadyResolvedError: the assignment was already accepted or declined.
        InvalidTransitionError: the project can no longer move to planning.
    """
    project, assignment = _resolve(assignment_id, responder, ASSIGNMENT_ACCEPTED, response)
    _add_membership(project, assignment.fabricator_id, "assignment")
    _enter_status(project, STATUS_PLANNING)
    db.session.flush()
    logger.info(
        "Assignment %s accepted by fabricator %s (project %s)",
        assignment.id, responder.id, project.id,
    )
    return project, assignment


def decline_assignment(assignment_id: int, responder: User, response: str | None = None):
    """Decline a pending invitation; membership and project status are untouched."""
    project, assignment = _resolve(assignment_id, responder, ASSIGNMENT_DECLINED, response)
    logger.info(
        "Assignment %s declined by fabricator %s (project %s)",
        assignment.id, responder.id, project.id,
    )
    return project, assignment


def list_assignments_for_fabricator(fabricator_id: int, scope: str = "pending") -> list:
    """Pending or resolved (history) assignments of one fabricator, newest first."""
    if scope not in ASSIGNMENT_SCOPES:
        raise ValidationError(
            f"scope must be one of: {', '.join(sorted(ASSIGNMENT_SCOPES))}",
            details={"scope": "invalid"},
        )
    stmt = (
        select(ProjectAssignment)
        .where(
            ProjectAssignment.fabricator_id == fabricator_id,
            ProjectAssignment.status.in_(ASSIGNMENT_SCOPES[scope]),
        )
        .order_by(ProjectAssignment.assigned_at.desc(), ProjectAssignment.id.desc())
    )
    return db.session.execute(stmt).scalars().all()


# ═════════════════════════════════════════════════════════════════════════════
# Supervisor invitations
# ═════════════════════════════════════════════════════════════════════════════


def respond_to_supervisor_invitation(project_id: int, supervisor: User, accept: bool):
    """Accept or decline an offer of an unowned project.

    The first supervisor to accept claims the project with a conditional
    UPDATE on ``supervisor_id IS NULL``; the remaining offers are withdrawn.
    Returns ``(project, invitation)``.
    """
    require_role(supervisor, ROLE_SUPERVISOR)
    project = entity_store.get("project", project_id)

    invitation = next(
        (i for i in project.supervisor_invitations if i.supervisor_id == supervisor.id), None,
    )
    if invitation is None:
        raise NotFoundError(resource="SupervisorInvitation", resource_id=project_id)
    if invitation.status != ASSIGNMENT_PENDING:
        raise AlreadyResolvedError("SupervisorInvitation", invitation.id, invitation.status)

    now = _utcnow()
    if not accept:
        invitation.status = ASSIGNMENT_DECLINED
        invitation.responded_at = now
        db.session.flush()
        logger.info("Supervisor %s declined project %s", supervisor.id, project.id)
        return project, invitation

    won = entity_store.compare_and_set(
        "project", project.id,
        expected={"supervisor_id": None},
        patch={"supervisor_id": supervisor.id},
    )
    if not won:
        raise AlreadyResolvedError("Project", project.id, "claimed")

    for other in project.supervisor_invitations:
        if other.status != ASSIGNMENT_PENDING:
            continue
        other.status = ASSIGNMENT_ACCEPTED if other is invitation else INVITATION_WITHDRAWN
        other.responded_at = now
    db.session.flush()
    logger.info("Supervisor %s claimed project %s", supervisor.id, project.id)
    return project, invitation


# ═════════════════════════════════════════════════════════════════════════════
# Status machine
# ═════════════════════════════════════════════════════════════════════════════


def _authorize_transition(actor: User, project: Project, current: str, target: str) -> None:
    if is_admin(actor):
        return
    if target == STATUS_SUPERVISOR_REVIEW and current in REVIEW_SUBMITTABLE:
        if is_member(actor, project) or owns_project(actor, project):
            return
    elif current == STATUS_CLIENT_SIGNOFF and target == STATUS_COMPLETED:
        if is_linked_client(actor, project):
            return
    elif current == STATUS_ADMIN_REVIEW or (current == STATUS_CREATED and target == STATUS_ASSIGNED_TO_FABRICATOR):
        pass
    elif owns_project(actor, project):
        return
    raise AuthorizationError(
        f"User id={actor.id} ({actor.role}) may not move project id={project.id} "
        f"from '{current}' to '{target}'",
        actor_id=actor.id,
    )


def _check_prerequisites(project: Project, current: str, target: str) -> None:
    if target == STATUS_SUPERVISOR_REVIEW and current in REVIEW_SUBMITTABLE:
        if not project.has_documentation:
            raise ValidationError(
                "Project is not ready for supervisor review",
                details={"documentation": "upload documentation before submitting for review"},
            )
    if current == STATUS_CREATED and target == STATUS_ASSIGNED_TO_FABRICATOR and not project.fabricator_ids:
        raise ValidationError(
            "Project has no fabricators to assign", details={"fabricator_ids": "required"},
        )


def transition_status(project_id: int, actor: User, target) -> Project:
    """Apply one review-pipeline transition.

    ``target`` may be a canonical or legacy status string.

    Raises:
        ValidationError: unknown target or unmet prerequisites.
        InvalidTransitionError: the edge is not in PROJECT_TRANSITIONS.
        AuthorizationError: the actor's role may not take this edge.
    """
    target = normalize_status(target)
    project = entity_store.get_for_update("project", project_id)
    current = project.status
    if current == target or not validate_project_transition(current, target):
        raise InvalidTransitionError(
            f"Project id={project.id} cannot move from '{current}' to '{target}'",
            current_status=current,
            target_status=target,
        )
    _authorize_transition(actor, project, current, target)
    _check_prerequisites(project, current, target)

    project.status = target
    if target == STATUS_COMPLETED:
        project.progress = 100
    db.session.flush()
    logger.info(
        "Project %s status %s -> %s by user %s", project.id, current, target, actor.id,
    )
    return project


def complete_project(project_id: int, actor: User) -> Project:
    """Mark a project completed with progress 100 from any non-terminal status."""
    project = entity_store.get_for_update("project", project_id)
    require_project_manager(actor, project, "complete the project")
    _require_non_terminal(project, "complete project")
    previous = project.status
    _enter_status(project, STATUS_COMPLETED)
    project.progress = 100
    db.session.flush()
    logger.info(
        "Project %s completed by user %s (was %s)", project.id, actor.id, previous,
    )
    return project


def _parse_attachments(value) -> list[dict]:
    if value in (None, ""):
        return []
    if not isinstance(value, list):
        raise ValidationError("attachments must be a list", details={"attachments": "not a list"})
    parsed = []
    for index, item in enumerate(value):
        name = clean_text(item.get("name")) if isinstance(item, dict) else None
        url = clean_text(item.get("url")) if isinstance(item, dict) else None
        if not name or not url:
            raise ValidationError(
                "Each attachment needs a name and a url",
                details={f"attachments[{index}]": "name and url required"},
            )
        if len(name) > 255 or len(url) > 500:
            raise ValidationError(
                "Attachment name or url too long",
                details={f"attachments[{index}]": "too long"},
            )
        parsed.append({"name": name, "url": url})
    return parsed


def attach_documentation(project_id: int, actor: User, data: dict) -> Project:
    """Set the documentation URL and/or record uploaded file metadata.

    Body keys: ``documentation_url`` (a blank value clears it) and
    ``attachments`` (list of ``{"name", "url"}``).  Member fabricators and
    project managers may document any non-terminal project.

    Raises:
        ValidationError: neither key given, or a malformed attachment.
        AuthorizationError: actor is neither a member nor a manager.
        InvalidTransitionError: project is completed or cancelled.
    """
    if "documentation_url" not in data and not data.get("attachments"):
        raise ValidationError(
            "Provide documentation_url or attachments",
            details={"documentation": "required"},
        )
    url = clean_text(data.get("documentation_url"))
    if url and len(url) > 500:
        raise ValidationError("documentation_url too long", details={"documentation_url": "too long"})
    files = _parse_attachments(data.get("attachments"))

    project = entity_store.get_for_update("project", project_id)
    if not (is_member(actor, project) or owns_project(actor, project) or is_admin(actor)):
        raise AuthorizationError(
            f"User id={actor.id} may not document project id={project.id}",
            actor_id=actor.id,
        )
    _require_non_terminal(project, "attach documentation")

    if "documentation_url" in data:
        project.documentation_url = url
    for item in files:
        project.attachments.append(ProjectAttachment(uploaded_by=actor.id, **item))
    db.session.flush()
    logger.info(
        "Documentation updated on project %s by user %s (url=%s, %d new file(s))",
        project.id, actor.id, "set" if project.documentation_url else "none", len(files),
    )
    return project
