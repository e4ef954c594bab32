"""
Change recorder — append-only audit trail for defects.

Values are stored as text: None stays None, dates are written in ISO 8601,
everything else goes through ``str()``.  An "updated" entry whose old and
new text are identical is skipped.
"""

from datetime import date, datetime

from defect_tracker.core.exceptions import NotFoundError
from defect_tracker.models import db
from defect_tracker.models.defect import ChangeHistoryEntry, Defect


def stringify(value):
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def record_change(defect_id, actor_id, field, old_value, new_value, action="updated"):
    """Append one ChangeHistoryEntry (flushed, not committed).

    Returns:
        The new entry, or None when an "updated" change is a no-op.
    """
    old_text = stringify(old_value)
    new_text = stringify(new_value)
    if action == "updated" and old_text == new_text:
        return None

    entry = ChangeHistoryEntry(
        defect_id=defect_id,
        user_id=actor_id,
        field=field,
        old_value=old_text,
        new_value=new_text,
        action=action,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_history(defect_id, limit=None):
    """Return the defect's history entries, newest first."""
    if db.session.get(Defect, defect_id) is None:
        raise NotFoundError(resource="Defect", resource_id=defect_id)

    q = (
        ChangeHistoryEntry.query
        .filter_by(defect_id=defect_id)
        .order_by(ChangeHistoryEntry.created_at.desc(), ChangeHistoryEntry.id.desc())
    )
    if limit:
        q = q.limit(limit)
    return q.all()
