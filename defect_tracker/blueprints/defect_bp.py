"""
Defect Blueprint — defect CRUD, comments and change history.

    GET    /api/v1/defects                     — List (filters, search, sort, page, limit)
    POST   /api/v1/defects                     — Create              (manager, engineer)
    GET    /api/v1/defects/<id>                — Detail + comments, attachments, last 50 history
    PUT    /api/v1/defects/<id>                — Update / transition (manager, engineer)
    DELETE /api/v1/defects/<id>                — Delete              (manager)
    GET    /api/v1/defects/<id>/comments       — List comments
    POST   /api/v1/defects/<id>/comments       — Add comment         (any authenticated)
    GET    /api/v1/defects/<id>/history        — Audit trail, newest first
"""

from flask import Blueprint, jsonify, request

from defect_tracker.blueprints import json_body, page_args
from defect_tracker.middleware.jwt_auth import current_identity
from defect_tracker.middleware.logging_config import request_logger
from defect_tracker.middleware.permission_required import require_role
from defect_tracker.services import defect_service
from defect_tracker.services.attachment_service import get_file_store
from defect_tracker.services.change_recorder import list_history
from defect_tracker.services.defect_service import FILTER_FIELDS
from defect_tracker.utils.helpers import db_commit_or_error

defect_bp = Blueprint("defect", __name__, url_prefix="/api/v1")


def defect_filters():
    """Collect list filters from the query string."""
    filters = {f: request.args.get(f) for f in FILTER_FIELDS}
    filters["search"] = request.args.get("search")
    return filters


@defect_bp.route("/defects", methods=["GET"])
@require_role("defect.view")
def list_defects():
    page, limit = page_args()
    items, pagination = defect_service.list_defects(
        defect_filters(),
        page=page,
        limit=limit,
        sort_by=request.args.get("sort_by", "created_at"),
        sort_order=request.args.get("sort_order", "desc"),
    )
    return jsonify({"items": [d.to_dict() for d in items], "pagination": pagination})


@defect_bp.route("/defects", methods=["POST"])
@require_role("defect.create")
def create_defect():
    defect = defect_service.create_defect(
        json_body(), actor_id=current_identity()["id"], log=request_logger(),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(defect.to_dict()), 201


@defect_bp.route("/defects/<int:defect_id>", methods=["GET"])
@require_role("defect.view")
def get_defect(defect_id):
    return jsonify(defect_service.get_defect(defect_id).to_dict(include_details=True))


@defect_bp.route("/defects/<int:defect_id>", methods=["PUT"])
@require_role("defect.update")
def update_defect(defect_id):
    defect = defect_service.update_defect(
        defect_id, json_body(), actor_id=current_identity()["id"], log=request_logger(),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(defect.to_dict())


@defect_bp.route("/defects/<int:defect_id>", methods=["DELETE"])
@require_role("defect.delete")
def delete_defect(defect_id):
    paths = defect_service.delete_defect(
        defect_id, actor_id=current_identity()["id"], log=request_logger(),
    )
    err = db_commit_or_error()
    if err:
        return err
    store = get_file_store()
    for path in paths:
        store.delete(path)
    return jsonify({"deleted": True, "id": defect_id})


# ── Comments ─────────────────────────────────────────────────────────────────


@defect_bp.route("/defects/<int:defect_id>/comments", methods=["GET"])
@require_role("comment.view")
def list_comments(defect_id):
    comments = defect_service.list_comments(defect_id)
    return jsonify({"items": [c.to_dict() for c in comments]})


@defect_bp.route("/defects/<int:defect_id>/comments", methods=["POST"])
@require_role("comment.create")
def add_comment(defect_id):
    comment = defect_service.add_comment(
        defect_id, json_body().get("content"),
        actor_id=current_identity()["id"], log=request_logger(),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(comment.to_dict()), 201


# ── History ──────────────────────────────────────────────────────────────────


@defect_bp.route("/defects/<int:defect_id>/history", methods=["GET"])
@require_role("history.view")
def defect_history(defect_id):
    entries = list_history(defect_id)
    return jsonify({"items": [h.to_dict() for h in entries]})
