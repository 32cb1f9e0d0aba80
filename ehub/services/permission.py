"""
Role and ownership rules for the project workflow.

Role checks live in the service layer, never in blueprints:

    admin       manages every project
    supervisor  manages projects where supervisor_id == own id
    fabricator  acts on projects it is a member of, responds to own invitations
    client      sees and signs off the single project it is linked to
"""

from __future__ import annotations

from sqlalchemy import select

from ehub.core.exceptions import AuthorizationError, NotFoundError
from ehub.models import db
from ehub.models.project import (
    ASSIGNMENT_PENDING,
    Project,
    ProjectAssignment,
    ProjectFabricator,
    SupervisorInvitation,
)
from ehub.models.user import (
    ROLE_ADMIN,
    ROLE_CLIENT,
    ROLE_FABRICATOR,
    ROLE_SUPERVISOR,
    User,
)


def get_actor(actor_id) -> User:
    """Resolve the acting user; unknown or inactive accounts cannot act."""
    actor = db.session.get(User, actor_id) if actor_id is not None else None
    if actor is None:
        raise AuthorizationError(f"Unknown user id={actor_id}", actor_id=actor_id)
    if not actor.is_active:
        raise AuthorizationError(f"User id={actor_id} is inactive", actor_id=actor_id)
    return actor


def get_active_user(user_id, role: str) -> User:
    """Load an active user holding ``role`` or raise NotFoundError."""
    user = db.session.get(User, user_id)
    if user is None or not user.is_active or user.role != role:
        raise NotFoundError(resource=role.capitalize(), resource_id=user_id)
    return user


def is_admin(user: User) -> bool:
    return user.role == ROLE_ADMIN


def owns_project(user: User, project: Project) -> bool:
    return user.role == ROLE_SUPERVISOR and project.supervisor_id == user.id


def is_member(user: User, project: Project) -> bool:
    return user.role == ROLE_FABRICATOR and user.id in project.fabricator_ids


def is_linked_client(user: User, project: Project) -> bool:
    return user.role == ROLE_CLIENT and user.client_project_id == project.id


def can_manage_project(user: User, project: Project) -> bool:
    """Admins and the owning supervisor manage assignments, revenue and completion."""
    return is_admin(user) or owns_project(user, project)


def require_role(user: User, *roles: str) -> None:
    if user.role not in roles:
        raise AuthorizationError(
            f"Role '{user.role}' may not perform this action; requires {', '.join(roles)}",
            actor_id=user.id,
        )


def require_project_manager(user: User, project: Project, action: str) -> None:
    if not can_manage_project(user, project):
        raise AuthorizationError(
            f"Only an admin or the owning supervisor may {action} (project id={project.id})",
            actor_id=user.id,
        )


def can_view_project(user: User, project: Project) -> bool:
    """Visibility used by the project list and detail endpoints."""
    if is_admin(user) or owns_project(user, project):
        return True
    if user.role == ROLE_SUPERVISOR:
        return any(
            i.supervisor_id == user.id and i.status == ASSIGNMENT_PENDING
            for i in project.supervisor_invitations
        )
    if user.role == ROLE_FABRICATOR:
        return is_member(user, project) or any(
            a.fabricator_id == user.id for a in project.assignments
        )
    return is_linked_client(user, project)


def visible_project_ids(user: User) -> list[int] | None:
    """Project ids ``user`` may see; None means unrestricted (admin)."""
    if is_admin(user):
        return None
    if user.role == ROLE_CLIENT:
        return [user.client_project_id] if user.client_project_id else []
    if user.role == ROLE_SUPERVISOR:
        owned = select(Project.id).where(Project.supervisor_id == user.id)
        invited = select(SupervisorInvitation.project_id).where(
            SupervisorInvitation.supervisor_id == user.id,
            SupervisorInvitation.status == ASSIGNMENT_PENDING,
        )
        ids = set(db.session.execute(owned).scalars()) | set(db.session.execute(invited).scalars())
        return sorted(ids)
    member = select(ProjectFabricator.project_id).where(ProjectFabricator.fabricator_id == user.id)
    invited = select(ProjectAssignment.project_id).where(ProjectAssignment.fabricator_id == user.id)
    ids = set(db.session.execute(member).scalars()) | set(db.session.execute(invited).scalars())
    return sorted(ids)
