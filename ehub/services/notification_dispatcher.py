"""
Ehub PMS
Notification dispatcher for workflow events.

Runs after the workflow's own commit.  Each dispatch writes in-app
notification rows and sends templated email inside its own transaction.
A failure is logged with traceback, that transaction is rolled back and the
error is swallowed; the workflow change that triggered it stays committed.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from ehub.models import db
from ehub.models.notification import (
    CHANGE_ASSIGNMENT,
    CHANGE_ASSIGNMENT_RESPONSE,
    CHANGE_PROGRESS,
    CHANGE_PROJECT_CREATED,
    CHANGE_STATUS,
)
from ehub.models.project import ASSIGNMENT_ACCEPTED
from ehub.models.user import ROLE_CLIENT, User
from ehub.services.email_service import EmailService
from ehub.services.notification import NotificationService

logger = logging.getLogger(__name__)

CHANGE_LABELS = {
    CHANGE_STATUS: "Status changed",
    CHANGE_PROGRESS: "Progress updated",
    CHANGE_PROJECT_CREATED: "Project created",
}


def _run(event: str, project_id, send) -> bool:
    try:
        send()
        db.session.commit()
    except Exception:
        logger.exception("Notification dispatch failed: event=%s project=%s", event, project_id)
        db.session.rollback()
        return False
    return True


class NotificationDispatcher:
    """Fire-and-forget notifications; every method returns True on success."""

    @staticmethod
    def project_recipients(project, exclude_id=None) -> list[User]:
        """Supervisor, member fabricators and linked clients, minus ``exclude_id``."""
        ids = set(project.fabricator_ids)
        if project.supervisor_id:
            ids.add(project.supervisor_id)
        ids.update(db.session.execute(
            select(User.id).where(User.role == ROLE_CLIENT, User.client_project_id == project.id)
        ).scalars())
        ids.discard(exclude_id)
        if not ids:
            return []
        return db.session.execute(
            select(User).where(User.id.in_(ids), User.is_active.is_(True)).order_by(User.id)
        ).scalars().all()

    @staticmethod
    def notify_assignment(assignment, project, fabricator, assigner) -> bool:
        """Tell a fabricator about a new invitation."""
        def send():
            NotificationService.create(
                recipient_id=fabricator.id,
                project_id=project.id,
                title=f"New assignment: {project.name}",
                message=assignment.message or f"{assigner.name} invited you to this project.",
                category=CHANGE_ASSIGNMENT,
                entity_type="assignment",
                entity_id=assignment.id,
            )
            EmailService.send_from_template(
                to_email=fabricator.email,
                to_name=fabricator.name,
                template_name="project_assignment",
                context={
                    "fabricator_name": fabricator.name,
                    "assigner_name": assigner.name,
                    "project_name": project.name,
                    "client_name": project.client_name,
                    "message": assignment.message or "",
                },
            )

        return _run(CHANGE_ASSIGNMENT, project.id, send)

    @staticmethod
    def notify_assignment_response(assignment, project) -> bool:
        """Tell the assigner that the fabricator accepted or declined."""
        def send():
            assigner = db.session.get(User, assignment.assigned_by) if assignment.assigned_by else None
            if assigner is None:
                return
            fabricator = db.session.get(User, assignment.fabricator_id)
            verb = "accepted" if assignment.status == ASSIGNMENT_ACCEPTED else "declined"
            NotificationService.create(
                recipient_id=assigner.id,
                project_id=project.id,
                title=f"{fabricator.name} {verb} {project.name}",
                message=assignment.response or "",
                category=CHANGE_ASSIGNMENT_RESPONSE,
                entity_type="assignment",
                entity_id=assignment.id,
            )
            EmailService.send_from_template(
                to_email=assigner.email,
                to_name=assigner.name,
                template_name="assignment_response",
                context={
                    "fabricator_name": fabricator.name,
                    "response_status": verb,
                    "project_name": project.name,
                    "response": assignment.response or "",
                },
            )

        return _run(CHANGE_ASSIGNMENT_RESPONSE, project.id, send)

    @staticmethod
    def notify_project_update(project, recipients, change_type, actor) -> bool:
        """Notify everyone on a project about a status or progress change.

        ``recipients=None`` resolves the default audience via
        ``project_recipients``; the actor is never notified.
        """
        def send():
            targets = (
                NotificationDispatcher.project_recipients(project, exclude_id=actor.id)
                if recipients is None
                else [u for u in recipients if u.id != actor.id]
            )
            if not targets:
                return
            label = CHANGE_LABELS.get(change_type, change_type)
            NotificationService.broadcast(
                recipient_ids=[u.id for u in targets],
                project_id=project.id,
                title=f"{project.name}: {label}",
                message=f"{label} by {actor.name}. Status: {project.status}, progress: {project.progress}%.",
                category=change_type,
                entity_type="project",
                entity_id=project.id,
            )
            for user in targets:
                EmailService.send_from_template(
                    to_email=user.email,
                    to_name=user.name,
                    template_name="project_update",
                    context={
                        "project_name": project.name,
                        "change_label": label,
                        "actor_name": actor.name,
                        "status": project.status,
                        "progress": project.progress,
                    },
                )

        return _run(change_type, project.id, send)
