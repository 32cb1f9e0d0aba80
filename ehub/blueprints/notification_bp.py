"""
Ehub PMS
Notification Blueprint.

The caller's in-app notifications, written by the workflow dispatcher:
    GET  /api/v1/notifications?unread_only=&project_id=&limit=&offset=
    GET  /api/v1/notifications/unread-count
    POST /api/v1/notifications/<id>/read
    POST /api/v1/notifications/read-all
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from ehub.blueprints import current_user_id, pagination_params, register_error_handlers
from ehub.services.notification import NotificationService
from ehub.services.permission import get_actor

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notifications", __name__, url_prefix="/api/v1/notifications")
register_error_handlers(notification_bp)


@notification_bp.route("", methods=["GET"])
def list_notifications():
    """List the caller's notifications, newest first."""
    actor = get_actor(current_user_id())
    limit, offset = pagination_params()
    items, total = NotificationService.list_for_recipient(
        actor.id,
        project_id=request.args.get("project_id", type=int),
        unread_only=request.args.get("unread_only", "").lower() in ("1", "true", "yes"),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread": NotificationService.unread_count(actor.id),
    }), 200


@notification_bp.route("/unread-count", methods=["GET"])
def unread_count():
    actor = get_actor(current_user_id())
    return jsonify({"unread": NotificationService.unread_count(actor.id)}), 200


@notification_bp.route("/<int:nid>/read", methods=["POST"])
def mark_read(nid: int):
    actor = get_actor(current_user_id())
    return jsonify(NotificationService.mark_read(nid, actor.id).to_dict()), 200


@notification_bp.route("/read-all", methods=["POST"])
def mark_all_read():
    actor = get_actor(current_user_id())
    return jsonify({"marked": NotificationService.mark_all_read(actor.id)}), 200
