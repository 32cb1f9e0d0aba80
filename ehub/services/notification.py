"""
Ehub PMS
Notification Service.

Creates and queries in-app notification rows.  ``create`` and ``broadcast``
only flush; the caller decides when to commit.  The read-tracking actions
are standalone requests and commit themselves.
"""

from datetime import datetime, timezone

from sqlalchemy import func, select, update

from ehub.core.exceptions import NotFoundError
from ehub.models import db
from ehub.models.notification import CHANGE_STATUS, Notification


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, recipient_id, title, message="", category=CHANGE_STATUS,
               project_id=None, entity_type="", entity_id=None):
        """Create a single notification record (flushed, not committed)."""
        notif = Notification(
            recipient_id=recipient_id,
            project_id=project_id,
            title=title,
            message=message,
            category=category,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        db.session.add(notif)
        db.session.flush()
        return notif

    @staticmethod
    def broadcast(*, recipient_ids, title, message="", category=CHANGE_STATUS,
                  project_id=None, entity_type="", entity_id=None):
        """
        Create one notification per recipient.

        Duplicate ids are collapsed.

        Returns:
            List of created Notification instances.
        """
        notifications = []
        for rid in dict.fromkeys(recipient_ids):
            notif = Notification(
                recipient_id=rid,
                project_id=project_id,
                title=title,
                message=message,
                category=category,
                entity_type=entity_type,
                entity_id=entity_id,
            )
            db.session.add(notif)
            notifications.append(notif)
        db.session.flush()
        return notifications

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(recipient_id, project_id=None, unread_only=False,
                           limit=50, offset=0):
        """Retrieve notifications for a recipient, newest first."""
        stmt = select(Notification).where(Notification.recipient_id == recipient_id)
        if project_id:
            stmt = stmt.where(Notification.project_id == project_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        total = db.session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()
        items = db.session.execute(
            stmt.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit)
        ).scalars().all()
        return items, total

    @staticmethod
    def unread_count(recipient_id):
        """Return count of unread notifications."""
        return db.session.execute(
            select(func.count(Notification.id)).where(
                Notification.recipient_id == recipient_id,
                Notification.is_read.is_(False),
            )
        ).scalar_one()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, recipient_id):
        """Mark one of the recipient's notifications as read."""
        notif = db.session.get(Notification, notification_id)
        if notif is None or notif.recipient_id != recipient_id:
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        notif.mark_read()
        db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(recipient_id):
        """Mark all notifications for a recipient as read; returns the count."""
        now = datetime.now(timezone.utc)
        result = db.session.execute(
            update(Notification)
            .where(Notification.recipient_id == recipient_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=now)
            .execution_options(synchronize_session="fetch")
        )
        db.session.commit()
        return result.rowcount
