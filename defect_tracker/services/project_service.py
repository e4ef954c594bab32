"""
Project service — projects, their ordered stages and per-project stats.

Deleting a project cascades to stages and defects (and through defects to
comments, attachments and history).  A stage cannot be deleted while any
defect still references it.
"""

import logging

from sqlalchemy import func, or_

from defect_tracker.core.exceptions import NotFoundError, ValidationError
from defect_tracker.models import db
from defect_tracker.models.defect import DEFECT_PRIORITIES, DEFECT_STATUSES, Attachment, Defect
from defect_tracker.models.project import PROJECT_STATUSES, STAGE_STATUSES, Project, Stage
from defect_tracker.utils.helpers import clean_text, paginate, parse_date_input, parse_int

logger = logging.getLogger(__name__)

NAME_MAX_LENGTH = 200


def _clean_name(name, label="name"):
    name = name.strip() if isinstance(name, str) else ""
    if not name:
        raise ValidationError(f"{label} is required", details={label: "required"}, required=True)
    if len(name) > NAME_MAX_LENGTH:
        raise ValidationError(f"{label} must be at most {NAME_MAX_LENGTH} characters",
                              details={label: "length"})
    return name


def _check_status(status, allowed, label="status"):
    if status not in allowed:
        raise ValidationError(f"{label} must be one of {', '.join(allowed)}",
                              details={label: "invalid"})
    return status


def _check_dates(start_date, end_date):
    if start_date and end_date and end_date < start_date:
        raise ValidationError("end_date must not be before start_date",
                              details={"end_date": "before start_date"})


def get_project(project_id):
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def get_stage(stage_id):
    stage = db.session.get(Stage, stage_id)
    if stage is None:
        raise NotFoundError(resource="Stage", resource_id=stage_id)
    return stage


# ═════════════════════════════════════════════════════════════════════════════
# Projects
# ═════════════════════════════════════════════════════════════════════════════


def create_project(data, actor_id, log=None):
    log = log or logger
    data = data or {}
    start_date = parse_date_input(data.get("start_date"), field="start_date")
    end_date = parse_date_input(data.get("end_date"), field="end_date")
    _check_dates(start_date, end_date)

    project = Project(
        name=_clean_name(data.get("name")),
        description=clean_text(data.get("description")),
        status=_check_status(data.get("status") or "planning", PROJECT_STATUSES),
        start_date=start_date,
        end_date=end_date,
        created_by=actor_id,
    )
    db.session.add(project)
    db.session.flush()
    log.info("Project created: id=%s name=%s", project.id, project.name)
    return project


def update_project(project_id, data, log=None):
    """Partial update; unknown keys are ignored."""
    log = log or logger
    project = get_project(project_id)
    data = data or {}

    changes = {}
    if "name" in data:
        changes["name"] = _clean_name(data["name"])
    if "description" in data:
        changes["description"] = clean_text(data["description"])
    if "status" in data:
        changes["status"] = _check_status(data["status"], PROJECT_STATUSES)
    for field in ("start_date", "end_date"):
        if field in data:
            changes[field] = parse_date_input(data[field], field=field)
    _check_dates(changes.get("start_date", project.start_date),
                 changes.get("end_date", project.end_date))

    for field, value in changes.items():
        setattr(project, field, value)
    db.session.flush()
    log.info("Project updated: id=%s fields=%s", project.id, sorted(changes))
    return project


def delete_project(project_id, log=None):
    """Delete a project and everything under it.

    Returns:
        Storage paths of attachments removed by the cascade.
    """
    log = log or logger
    project = get_project(project_id)
    paths = [
        path for (path,) in (
            db.session.query(Attachment.storage_path)
            .join(Defect, Attachment.defect_id == Defect.id)
            .filter(Defect.project_id == project_id)
            .all()
        )
    ]
    db.session.delete(project)
    db.session.flush()
    log.warning("Project deleted: id=%s (%d attachment files to purge)", project_id, len(paths))
    return paths


def list_projects(status=None, search=None, page=1, limit=20):
    q = Project.query
    if status:
        q = q.filter(Project.status == status)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(Project.name.ilike(pattern), Project.description.ilike(pattern)))
    q = q.order_by(Project.created_at.desc(), Project.id.desc())
    return paginate(q, page, limit)


def project_stats(project_id):
    """Defect totals for one project, broken down by status and priority."""
    get_project(project_id)
    by_status = dict(
        db.session.query(Defect.status, func.count(Defect.id))
        .filter(Defect.project_id == project_id)
        .group_by(Defect.status)
        .all()
    )
    by_priority = dict(
        db.session.query(Defect.priority, func.count(Defect.id))
        .filter(Defect.project_id == project_id)
        .group_by(Defect.priority)
        .all()
    )
    return {
        "project_id": project_id,
        "total_defects": sum(by_status.values()),
        "by_status": {s: by_status.get(s, 0) for s in DEFECT_STATUSES},
        "by_priority": {p: by_priority.get(p, 0) for p in DEFECT_PRIORITIES},
    }


# ═════════════════════════════════════════════════════════════════════════════
# Stages
# ═════════════════════════════════════════════════════════════════════════════


def create_stage(data, log=None):
    log = log or logger
    data = data or {}
    if data.get("project_id") in (None, ""):
        raise ValidationError("project_id is required", details={"project_id": "required"},
                              required=True)
    project_id = parse_int(data["project_id"])
    if project_id is None:
        raise ValidationError("project_id must be an integer", details={"project_id": "invalid"})
    name = _clean_name(data.get("name"))
    get_project(project_id)

    order = parse_int(data.get("order"), 0)
    stage = Stage(
        project_id=project_id,
        name=name,
        description=clean_text(data.get("description")),
        order=order,
        status=_check_status(data.get("status") or "pending", STAGE_STATUSES),
    )
    db.session.add(stage)
    db.session.flush()
    log.info("Stage created: id=%s project_id=%s", stage.id, project_id)
    return stage


def update_stage(stage_id, data, log=None):
    log = log or logger
    stage = get_stage(stage_id)
    data = data or {}

    changes = {}
    if "name" in data:
        changes["name"] = _clean_name(data["name"])
    if "description" in data:
        changes["description"] = clean_text(data["description"])
    if "order" in data:
        order = parse_int(data["order"])
        if order is None:
            raise ValidationError("order must be an integer", details={"order": "invalid"})
        changes["order"] = order
    if "status" in data:
        changes["status"] = _check_status(data["status"], STAGE_STATUSES)

    for field, value in changes.items():
        setattr(stage, field, value)
    db.session.flush()
    log.info("Stage updated: id=%s fields=%s", stage.id, sorted(changes))
    return stage


def delete_stage(stage_id, log=None):
    log = log or logger
    stage = get_stage(stage_id)
    defect_count = Defect.query.filter_by(stage_id=stage_id).count()
    if defect_count:
        raise ValidationError(
            f"Cannot delete stage with {defect_count} linked defect(s)",
            details={"defects": defect_count},
        )
    db.session.delete(stage)
    db.session.flush()
    log.warning("Stage deleted: id=%s", stage_id)


def list_stages(project_id):
    get_project(project_id)
    return (
        Stage.query.filter_by(project_id=project_id)
        .order_by(Stage.order.asc(), Stage.id.asc())
        .all()
    )
