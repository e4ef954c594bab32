"""
Project Blueprint — projects and their stages.

    GET    /api/v1/projects                    — List (status, search, page, limit)
    POST   /api/v1/projects                    — Create            (manager)
    GET    /api/v1/projects/<id>               — Detail with ordered stages
    PUT    /api/v1/projects/<id>               — Partial update    (manager)
    DELETE /api/v1/projects/<id>               — Cascade delete    (manager)
    GET    /api/v1/projects/<id>/stats         — Defect counts by status / priority
    GET    /api/v1/projects/<id>/stages        — Stages ordered by ``order``
    POST   /api/v1/stages                      — Create stage      (manager, engineer)
    GET    /api/v1/stages/<id>                 — Stage detail with defect summaries
    PUT    /api/v1/stages/<id>                 — Update stage      (manager, engineer)
    DELETE /api/v1/stages/<id>                 — Delete stage      (manager; blocked while defects exist)
"""

from flask import Blueprint, jsonify, request

from defect_tracker.blueprints import json_body, page_args
from defect_tracker.middleware.jwt_auth import current_identity
from defect_tracker.middleware.logging_config import request_logger
from defect_tracker.middleware.permission_required import require_role
from defect_tracker.services import project_service
from defect_tracker.services.attachment_service import get_file_store
from defect_tracker.utils.helpers import db_commit_or_error

project_bp = Blueprint("project", __name__, url_prefix="/api/v1")


# ═════════════════════════════════════════════════════════════════════════════
# Projects
# ═════════════════════════════════════════════════════════════════════════════


@project_bp.route("/projects", methods=["GET"])
@require_role("project.view")
def list_projects():
    page, limit = page_args()
    items, pagination = project_service.list_projects(
        status=request.args.get("status"),
        search=request.args.get("search"),
        page=page,
        limit=limit,
    )
    return jsonify({"items": [p.to_dict() for p in items], "pagination": pagination})


@project_bp.route("/projects", methods=["POST"])
@require_role("project.create")
def create_project():
    project = project_service.create_project(
        json_body(), actor_id=current_identity()["id"], log=request_logger(),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(project.to_dict()), 201


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
@require_role("project.view")
def get_project(project_id):
    return jsonify(project_service.get_project(project_id).to_dict())


@project_bp.route("/projects/<int:project_id>", methods=["PUT"])
@require_role("project.update")
def update_project(project_id):
    project = project_service.update_project(project_id, json_body(), log=request_logger())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(project.to_dict())


@project_bp.route("/projects/<int:project_id>", methods=["DELETE"])
@require_role("project.delete")
def delete_project(project_id):
    paths = project_service.delete_project(project_id, log=request_logger())
    err = db_commit_or_error()
    if err:
        return err
    store = get_file_store()
    for path in paths:
        store.delete(path)
    return jsonify({"deleted": True, "id": project_id})


@project_bp.route("/projects/<int:project_id>/stats", methods=["GET"])
@require_role("project.view")
def project_stats(project_id):
    return jsonify(project_service.project_stats(project_id))


# ═════════════════════════════════════════════════════════════════════════════
# Stages
# ═════════════════════════════════════════════════════════════════════════════


@project_bp.route("/projects/<int:project_id>/stages", methods=["GET"])
@require_role("stage.view")
def list_stages(project_id):
    stages = project_service.list_stages(project_id)
    return jsonify({"items": [s.to_dict(include_defects=True) for s in stages]})


@project_bp.route("/stages", methods=["POST"])
@require_role("stage.create")
def create_stage():
    stage = project_service.create_stage(json_body(), log=request_logger())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(stage.to_dict()), 201


@project_bp.route("/stages/<int:stage_id>", methods=["GET"])
@require_role("stage.view")
def get_stage(stage_id):
    return jsonify(project_service.get_stage(stage_id).to_dict(include_defects=True))


@project_bp.route("/stages/<int:stage_id>", methods=["PUT"])
@require_role("stage.update")
def update_stage(stage_id):
    stage = project_service.update_stage(stage_id, json_body(), log=request_logger())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(stage.to_dict())


@project_bp.route("/stages/<int:stage_id>", methods=["DELETE"])
@require_role("stage.delete")
def delete_stage(stage_id):
    project_service.delete_stage(stage_id, log=request_logger())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"deleted": True, "id": stage_id})
