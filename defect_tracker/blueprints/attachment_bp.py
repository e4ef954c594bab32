"""
Attachment Blueprint — files uploaded against defects.

    GET    /api/v1/defects/<id>/attachments     — List
    POST   /api/v1/defects/<id>/attachments     — Upload multipart field ``file`` (manager, engineer)
    GET    /api/v1/attachments/<id>/download    — Download under the original file name
    DELETE /api/v1/attachments/<id>             — Delete (manager or uploader)
"""

from flask import Blueprint, jsonify, request, send_file

from defect_tracker.middleware.jwt_auth import current_identity
from defect_tracker.middleware.logging_config import request_logger
from defect_tracker.middleware.permission_required import require_role
from defect_tracker.services import attachment_service
from defect_tracker.utils.helpers import db_commit_or_error

attachment_bp = Blueprint("attachment", __name__, url_prefix="/api/v1")


@attachment_bp.route("/defects/<int:defect_id>/attachments", methods=["GET"])
@require_role("attachment.view")
def list_attachments(defect_id):
    attachments = attachment_service.list_attachments(defect_id)
    return jsonify({"items": [a.to_dict() for a in attachments]})


@attachment_bp.route("/defects/<int:defect_id>/attachments", methods=["POST"])
@require_role("attachment.upload")
def upload_attachment(defect_id):
    store = attachment_service.get_file_store()
    attachment = attachment_service.upload_attachment(
        defect_id, request.files.get("file"), actor_id=current_identity()["id"],
        store=store, log=request_logger(),
    )
    path = attachment.storage_path
    err = db_commit_or_error()
    if err:
        store.delete(path)
        return err
    return jsonify(attachment.to_dict()), 201


@attachment_bp.route("/attachments/<int:attachment_id>/download", methods=["GET"])
@require_role("attachment.view")
def download_attachment(attachment_id):
    attachment = attachment_service.get_download(attachment_id)
    return send_file(
        attachment.storage_path,
        mimetype=attachment.mime_type,
        as_attachment=True,
        download_name=attachment.original_name,
    )


@attachment_bp.route("/attachments/<int:attachment_id>", methods=["DELETE"])
@require_role("attachment.delete")
def delete_attachment(attachment_id):
    path = attachment_service.delete_attachment(
        attachment_id, current_identity(), log=request_logger(),
    )
    err = db_commit_or_error()
    if err:
        return err
    attachment_service.get_file_store().delete(path)
    return jsonify({"deleted": True, "id": attachment_id})
