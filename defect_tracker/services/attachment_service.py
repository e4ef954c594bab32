"""
Attachment service — upload, list, download and delete defect files.

Allowed types: common images, PDF, Word/Excel documents, plain text and CSV.
Uploads larger than MAX_UPLOAD_SIZE are rejected before anything is written.
"""

import logging

from flask import current_app

from defect_tracker.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from defect_tracker.models import db
from defect_tracker.models.defect import Attachment, Defect
from defect_tracker.services.access_policy import can_delete_attachment
from defect_tracker.services.file_store import LocalFileStore

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "text/plain",
    "text/csv",
})

DEFAULT_MAX_UPLOAD_SIZE = 10 * 1024 * 1024


def get_file_store():
    return LocalFileStore(current_app.config["UPLOAD_FOLDER"])


def upload_attachment(defect_id, file_storage, actor_id, store=None, log=None):
    """Persist an uploaded file against a defect (flushed, not committed).

    Args:
        file_storage: werkzeug FileStorage from ``request.files["file"]``.

    Returns:
        The new Attachment; its file is already on disk.
    """
    log = log or logger
    store = store or get_file_store()

    if db.session.get(Defect, defect_id) is None:
        raise NotFoundError(resource="Defect", resource_id=defect_id)
    if file_storage is None or not file_storage.filename:
        raise ValidationError("No file uploaded", details={"file": "required"}, required=True)

    mime_type = file_storage.mimetype
    if mime_type not in ALLOWED_MIME_TYPES:
        raise ValidationError(f"File type {mime_type or 'unknown'} is not allowed",
                              details={"file": "type"})

    max_size = current_app.config.get("MAX_UPLOAD_SIZE", DEFAULT_MAX_UPLOAD_SIZE)
    data = file_storage.read(max_size + 1)
    if len(data) > max_size:
        raise ValidationError(f"File exceeds the {max_size // (1024 * 1024)} MB limit",
                              details={"file": "size"})

    stored_name, path = store.save(data, file_storage.filename)
    try:
        attachment = Attachment(
            defect_id=defect_id,
            filename=stored_name,
            original_name=file_storage.filename,
            mime_type=mime_type,
            size=len(data),
            storage_path=path,
            uploaded_by=actor_id,
        )
        db.session.add(attachment)
        db.session.flush()
    except Exception:
        store.delete(path)
        raise

    log.info("Attachment uploaded: id=%s defect_id=%s size=%d", attachment.id, defect_id, len(data))
    return attachment


def list_attachments(defect_id):
    defect = db.session.get(Defect, defect_id)
    if defect is None:
        raise NotFoundError(resource="Defect", resource_id=defect_id)
    return defect.attachments.all()


def get_attachment(attachment_id):
    attachment = db.session.get(Attachment, attachment_id)
    if attachment is None:
        raise NotFoundError(resource="Attachment", resource_id=attachment_id)
    return attachment


def get_download(attachment_id, store=None):
    """Return the attachment whose stored file is present on disk."""
    store = store or get_file_store()
    attachment = get_attachment(attachment_id)
    if not store.exists(attachment.storage_path):
        raise NotFoundError(resource="Attachment file", resource_id=attachment_id)
    return attachment


def delete_attachment(attachment_id, identity, log=None):
    """Delete the row (flushed) and return the storage path to purge after commit.

    Raises:
        NotFoundError, ForbiddenError
    """
    log = log or logger
    attachment = get_attachment(attachment_id)
    if not can_delete_attachment(identity, attachment):
        raise ForbiddenError("Only a manager or the uploader can delete this attachment")

    path = attachment.storage_path
    db.session.delete(attachment)
    db.session.flush()
    log.info("Attachment deleted: id=%s by user_id=%s", attachment_id, identity.get("id"))
    return path
