"""
Ehub PMS
Assignments blueprint: a fabricator's invitations.

Endpoints:
    GET  /api/v1/assignments?scope=pending|history
    POST /api/v1/assignments/<id>/accept
    POST /api/v1/assignments/<id>/decline
"""

import logging

from flask import Blueprint, jsonify, request

import ehub.services.workflow_orchestrator as wf
from ehub.blueprints import current_user_id, json_body, register_error_handlers

logger = logging.getLogger(__name__)

assignments_bp = Blueprint("assignments", __name__, url_prefix="/api/v1/assignments")
register_error_handlers(assignments_bp)


def _assignment_payload(project, assignment_id: int) -> dict:
    assignment = next(a for a in project.assignments if a.id == assignment_id)
    return {"assignment": assignment.to_dict(), "project": project.to_dict()}


@assignments_bp.route("", methods=["GET"])
def list_assignments():
    items = wf.list_assignments(current_user_id(), request.args.get("scope", "pending"))
    return jsonify({"items": [a.to_dict() for a in items], "total": len(items)}), 200


@assignments_bp.route("/<int:assignment_id>/accept", methods=["POST"])
def accept(assignment_id: int):
    """Body: {"response": str?}"""
    project = wf.accept_assignment(assignment_id, current_user_id(), json_body().get("response"))
    return jsonify(_assignment_payload(project, assignment_id)), 200


@assignments_bp.route("/<int:assignment_id>/decline", methods=["POST"])
def decline(assignment_id: int):
    project = wf.decline_assignment(assignment_id, current_user_id(), json_body().get("response"))
    return jsonify(_assignment_payload(project, assignment_id)), 200
