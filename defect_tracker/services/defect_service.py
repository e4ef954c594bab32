"""
Defect service — create, update, delete, comment and query defects.

All write operations flush but never commit; the calling blueprint commits
once so each request is a single transaction.  Every persisted field
mutation goes through ``change_recorder.record_change``.

Usage:
    from defect_tracker.services import defect_service

    defect = defect_service.create_defect(data, actor_id=current_identity()["id"], log=log)
    err = db_commit_or_error()
"""

import logging

from sqlalchemy import case, or_

from defect_tracker.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from defect_tracker.models import db
from defect_tracker.models.auth import User
from defect_tracker.models.defect import (
    COMMENT_MAX_LENGTH,
    DEFECT_PRIORITIES,
    DEFECT_STATUSES,
    TITLE_MAX_LENGTH,
    TITLE_MIN_LENGTH,
    TRACKED_FIELDS,
    Comment,
    Defect,
)
from defect_tracker.models.project import Project, Stage
from defect_tracker.services.change_recorder import record_change
from defect_tracker.services.defect_lifecycle import (
    allowed_transitions,
    apply_transition,
    can_transition,
)
from defect_tracker.utils.helpers import clean_text, paginate, parse_date_input

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = ("created_at", "updated_at", "priority", "status", "due_date", "title")

FILTER_FIELDS = ("project_id", "stage_id", "status", "priority", "assignee_id", "reporter_id")


# ── Validation helpers ───────────────────────────────────────────────────────


def _to_id(value, field):
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={field: "invalid"})
    try:
        return int(value)
    except (ValueError, TypeError) as exc:
        raise ValidationError(f"{field} must be an integer", details={field: "invalid"}) from exc


def _clean_title(title):
    if not isinstance(title, str):
        raise ValidationError("title must be a string", details={"title": "invalid"})
    title = title.strip()
    if not TITLE_MIN_LENGTH <= len(title) <= TITLE_MAX_LENGTH:
        raise ValidationError(
            f"title must be between {TITLE_MIN_LENGTH} and {TITLE_MAX_LENGTH} characters",
            details={"title": "length"},
        )
    return title


def _check_priority(priority):
    if priority not in DEFECT_PRIORITIES:
        raise ValidationError(
            f"priority must be one of {', '.join(DEFECT_PRIORITIES)}",
            details={"priority": "invalid"},
        )
    return priority


def _resolve_assignee(assignee_id):
    if assignee_id is None:
        return None
    assignee_id = _to_id(assignee_id, "assignee_id")
    if db.session.get(User, assignee_id) is None:
        raise NotFoundError(resource="Assignee", resource_id=assignee_id)
    return assignee_id


def _resolve_stage(stage_id, project_id):
    if stage_id is None:
        return None
    stage_id = _to_id(stage_id, "stage_id")
    stage = db.session.get(Stage, stage_id)
    if stage is None or stage.project_id != project_id:
        raise NotFoundError(resource="Stage", resource_id=stage_id)
    return stage_id


def _get_defect_or_raise(defect_id):
    defect = db.session.get(Defect, defect_id)
    if defect is None:
        raise NotFoundError(resource="Defect", resource_id=defect_id)
    return defect


# ═════════════════════════════════════════════════════════════════════════════
# Commands
# ═════════════════════════════════════════════════════════════════════════════


def create_defect(data, actor_id, log=None):
    """Create a defect reported by ``actor_id``.

    Status is always ``new`` and the reporter is always the actor,
    whatever the payload says.  Returns the flushed Defect.
    """
    log = log or logger
    data = data or {}

    missing = [f for f in ("project_id", "title") if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(
            f"Missing required field(s): {', '.join(missing)}",
            details={f: "required" for f in missing},
            required=True,
        )

    project_id = _to_id(data["project_id"], "project_id")
    title = _clean_title(data["title"])
    priority = _check_priority(data.get("priority") or "medium")
    due_date = parse_date_input(data.get("due_date"), field="due_date")
    description = clean_text(data.get("description"))

    if db.session.get(Project, project_id) is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    assignee_id = _resolve_assignee(data.get("assignee_id"))
    stage_id = _resolve_stage(data.get("stage_id"), project_id)

    defect = Defect(
        project_id=project_id,
        stage_id=stage_id,
        title=title,
        description=description,
        priority=priority,
        status="new",
        assignee_id=assignee_id,
        reporter_id=actor_id,
        due_date=due_date,
    )
    db.session.add(defect)
    db.session.flush()

    record_change(defect.id, actor_id, "status", None, "new", action="created")
    log.info("Defect created: id=%s project_id=%s priority=%s", defect.id, project_id, priority)
    return defect


def _normalise_patch(defect, patch):
    """Validate every tracked field in ``patch`` before anything is mutated."""
    changes = {}

    if "title" in patch:
        changes["title"] = _clean_title(patch["title"])
    if "description" in patch:
        changes["description"] = clean_text(patch["description"])
    if "priority" in patch:
        changes["priority"] = _check_priority(patch["priority"])
    if "status" in patch:
        status = patch["status"]
        if status not in DEFECT_STATUSES:
            raise ValidationError(
                f"status must be one of {', '.join(DEFECT_STATUSES)}",
                details={"status": "invalid"},
            )
        if not can_transition(defect.status, status):
            raise InvalidTransitionError(defect.status, status, allowed_transitions(defect.status))
        changes["status"] = status
    if "assignee_id" in patch:
        changes["assignee_id"] = _resolve_assignee(patch["assignee_id"])
    if "due_date" in patch:
        changes["due_date"] = parse_date_input(patch["due_date"], field="due_date")
    if "stage_id" in patch:
        changes["stage_id"] = _resolve_stage(patch["stage_id"], defect.project_id)

    return changes


def update_defect(defect_id, patch, actor_id, log=None):
    """Apply a partial update with per-field history.

    Fields outside TRACKED_FIELDS (reporter_id, project_id, ...) are ignored.
    Validation happens up front; on any error the defect is unchanged.

    Raises:
        NotFoundError, ValidationError, InvalidTransitionError
    """
    log = log or logger
    defect = _get_defect_or_raise(defect_id)
    changes = _normalise_patch(defect, patch or {})

    old_status = defect.status
    for field in TRACKED_FIELDS:
        if field not in changes:
            continue
        new_value = changes[field]
        record_change(defect.id, actor_id, field, getattr(defect, field), new_value)
        if field == "status":
            apply_transition(defect, new_value)
        else:
            setattr(defect, field, new_value)

    db.session.flush()
    if defect.status != old_status:
        log.info("Defect %s status: %s → %s", defect.id, old_status, defect.status)
    log.info("Defect updated: id=%s fields=%s", defect.id, sorted(changes))
    return defect


def delete_defect(defect_id, actor_id, log=None):
    """Delete a defect with its comments, attachments and history.

    Returns:
        Storage paths of the removed attachments, to be purged after commit.
    """
    log = log or logger
    defect = _get_defect_or_raise(defect_id)
    paths = [a.storage_path for a in defect.attachments.all()]
    db.session.delete(defect)
    db.session.flush()
    log.warning("Defect deleted: id=%s by user_id=%s", defect_id, actor_id)
    return paths


def add_comment(defect_id, content, actor_id, log=None):
    log = log or logger
    _get_defect_or_raise(defect_id)

    content = content.strip() if isinstance(content, str) else ""
    if not content:
        raise ValidationError("content is required", details={"content": "required"}, required=True)
    if len(content) > COMMENT_MAX_LENGTH:
        raise ValidationError(
            f"content must be at most {COMMENT_MAX_LENGTH} characters",
            details={"content": "length"},
        )

    comment = Comment(defect_id=defect_id, user_id=actor_id, content=content)
    db.session.add(comment)
    db.session.flush()
    log.info("Comment added: id=%s defect_id=%s", comment.id, defect_id)
    return comment


# ═════════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════════


def get_defect(defect_id):
    return _get_defect_or_raise(defect_id)


def list_comments(defect_id):
    defect = _get_defect_or_raise(defect_id)
    return defect.comments.all()


def _sort_column(sort_by):
    # Priority and status sort by their declared order, not alphabetically.
    if sort_by == "priority":
        return case({p: i for i, p in enumerate(DEFECT_PRIORITIES)}, value=Defect.priority)
    if sort_by == "status":
        return case({s: i for i, s in enumerate(DEFECT_STATUSES)}, value=Defect.status)
    return getattr(Defect, sort_by)


def build_defect_query(filters=None, sort_by="created_at", sort_order="desc"):
    """Filtered, sorted Defect query shared by listings and exports."""
    filters = filters or {}
    q = Defect.query

    for field in FILTER_FIELDS:
        value = filters.get(field)
        if value in (None, ""):
            continue
        if field.endswith("_id"):
            value = _to_id(value, field)
        q = q.filter(getattr(Defect, field) == value)

    search = (filters.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(Defect.title.ilike(pattern), Defect.description.ilike(pattern)))

    if sort_by not in SORTABLE_FIELDS:
        sort_by = "created_at"
    column = _sort_column(sort_by)
    direction = column.asc() if str(sort_order).lower() == "asc" else column.desc()
    return q.order_by(direction, Defect.id.desc())


def list_defects(filters=None, page=1, limit=20, sort_by="created_at", sort_order="desc"):
    """Return ``(defects, pagination)`` for the given filters."""
    q = build_defect_query(filters, sort_by, sort_order)
    return paginate(q, page, limit)
