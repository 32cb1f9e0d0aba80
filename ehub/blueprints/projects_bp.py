"""
Ehub PMS
Projects blueprint: project workflow REST API.

Endpoint groups:
  Projects        GET/POST /api/v1/projects
                  GET      /api/v1/projects/<id>
  Assignment      POST /api/v1/projects/<id>/assignments
                  POST /api/v1/projects/<id>/broadcast
                  POST /api/v1/projects/<id>/supervisor-response
  Work            GET/POST /api/v1/projects/<id>/work-logs
                  POST     /api/v1/projects/<id>/materials
                  POST     /api/v1/projects/<id>/documentation
  Revenue         GET/PUT  /api/v1/projects/<id>/revenue
                  POST     /api/v1/projects/<id>/revenue/split-equally
                  POST     /api/v1/projects/<id>/revenue/clear
                  PUT      /api/v1/projects/<id>/budgets
  Status          POST /api/v1/projects/<id>/transitions
                  POST /api/v1/projects/<id>/complete

The acting user comes from the bearer token.  The service layer owns all
business rules and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import ehub.services.workflow_orchestrator as wf
from ehub.blueprints import current_user_id, json_body, register_error_handlers

logger = logging.getLogger(__name__)

projects_bp = Blueprint("projects", __name__, url_prefix="/api/v1/projects")
register_error_handlers(projects_bp)


def _flag(value) -> bool:
    return str(value or "").strip().lower() in ("1", "true", "yes")


# ═════════════════════════════════════════════════════════════════════════
# Projects
# ═════════════════════════════════════════════════════════════════════════


@projects_bp.route("", methods=["GET"])
def list_projects():
    """List projects visible to the caller.

    Query params:
        archived: "true" for completed projects only; default lists the rest.
    """
    items = wf.list_projects(current_user_id(), archived=_flag(request.args.get("archived")))
    return jsonify({"items": [p.to_dict() for p in items], "total": len(items)}), 200


@projects_bp.route("", methods=["POST"])
def create_project():
    project = wf.create_project(current_user_id(), json_body())
    return jsonify(project.to_dict()), 201


@projects_bp.route("/<int:project_id>", methods=["GET"])
def get_project(project_id: int):
    return jsonify(wf.get_project(project_id, current_user_id()).to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Assignment
# ═════════════════════════════════════════════════════════════════════════


@projects_bp.route("/<int:project_id>/assignments", methods=["POST"])
def assign_fabricator(project_id: int):
    """Invite one fabricator.

    Body: {"fabricator_id": int, "message": str?}
    """
    data = json_body()
    result = wf.assign_fabricator(
        project_id, data.get("fabricator_id"), current_user_id(), data.get("message"),
    )
    return jsonify({
        "project": result["project"].to_dict(),
        "assignment": result["assignment"].to_dict(),
        "tasks": [t.to_dict() for t in result["tasks"]],
    }), 201


@projects_bp.route("/<int:project_id>/broadcast", methods=["POST"])
def broadcast(project_id: int):
    result = wf.broadcast_to_fabricators(project_id, current_user_id(), json_body().get("message"))
    return jsonify({
        "project": result["project"].to_dict(),
        "assignments": [a.to_dict() for a in result["assignments"]],
    }), 200


@projects_bp.route("/<int:project_id>/supervisor-response", methods=["POST"])
def supervisor_response(project_id: int):
    """Body: {"accept": bool}"""
    project = wf.respond_to_supervisor_invitation(
        project_id, current_user_id(), json_body().get("accept"),
    )
    return jsonify(project.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Work logs & materials
# ═════════════════════════════════════════════════════════════════════════


@projects_bp.route("/<int:project_id>/work-logs", methods=["POST"])
def record_work(project_id: int):
    """Body: {"hours_worked", "progress_percentage", "description", "materials"?, "date"?}"""
    result = wf.record_work(project_id, current_user_id(), json_body())
    return jsonify({
        "work_log": result["work_log"].to_dict(),
        "project": result["project"].to_dict(),
    }), 201


@projects_bp.route("/<int:project_id>/work-logs", methods=["GET"])
def list_work_logs(project_id: int):
    result = wf.list_work_logs(project_id, current_user_id())
    return jsonify({
        "items": [w.to_dict() for w in result["work_logs"]],
        "summary": result["summary"],
    }), 200


@projects_bp.route("/<int:project_id>/materials", methods=["POST"])
def add_material(project_id: int):
    material = wf.add_material(project_id, current_user_id(), json_body())
    return jsonify(material.to_dict()), 201


@projects_bp.route("/<int:project_id>/documentation", methods=["POST"])
def attach_documentation(project_id: int):
    """Body: {"documentation_url"?, "attachments"?: [{"name", "url"}]}"""
    project = wf.attach_documentation(project_id, current_user_id(), json_body())
    return jsonify(project.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Revenue & budgets
# ═════════════════════════════════════════════════════════════════════════


@projects_bp.route("/<int:project_id>/revenue", methods=["GET"])
def get_revenue(project_id: int):
    return jsonify(wf.revenue_summary(project_id, current_user_id())), 200


@projects_bp.route("/<int:project_id>/revenue", methods=["PUT"])
def allocate_revenue(project_id: int):
    """Body: {"allocations": {"<fabricator_id>": amount, ...}}"""
    actor_id = current_user_id()
    wf.allocate_revenue(project_id, json_body().get("allocations"), actor_id)
    return jsonify(wf.revenue_summary(project_id, actor_id)), 200


@projects_bp.route("/<int:project_id>/revenue/split-equally", methods=["POST"])
def split_revenue(project_id: int):
    actor_id = current_user_id()
    wf.split_revenue_equally(project_id, actor_id)
    return jsonify(wf.revenue_summary(project_id, actor_id)), 200


@projects_bp.route("/<int:project_id>/revenue/clear", methods=["POST"])
def clear_revenue(project_id: int):
    actor_id = current_user_id()
    wf.clear_revenue_allocations(project_id, actor_id)
    return jsonify(wf.revenue_summary(project_id, actor_id)), 200


@projects_bp.route("/<int:project_id>/budgets", methods=["PUT"])
def allocate_budget(project_id: int):
    actor_id = current_user_id()
    wf.allocate_budget(project_id, json_body().get("allocations"), actor_id)
    return jsonify(wf.revenue_summary(project_id, actor_id)), 200


# ═════════════════════════════════════════════════════════════════════════
# Status
# ═════════════════════════════════════════════════════════════════════════


@projects_bp.route("/<int:project_id>/transitions", methods=["POST"])
def transition(project_id: int):
    """Body: {"status": "<target status>"}; legacy status strings are accepted."""
    project = wf.transition_project_status(project_id, current_user_id(), json_body().get("status"))
    return jsonify(project.to_dict()), 200


@projects_bp.route("/<int:project_id>/complete", methods=["POST"])
def complete(project_id: int):
    project = wf.mark_project_complete(project_id, current_user_id())
    return jsonify(project.to_dict()), 200
