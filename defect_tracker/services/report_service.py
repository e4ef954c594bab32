"""
Report service — defect statistics, trends and team performance.

Aggregations run in Python over a filtered defect query so the same code
works on SQLite and PostgreSQL (no date_trunc / strftime dialect split).
"""

import logging
from collections import Counter, defaultdict
from datetime import UTC, date, datetime, time

from defect_tracker.core.exceptions import ValidationError
from defect_tracker.models import db
from defect_tracker.models.auth import User
from defect_tracker.models.defect import DEFECT_PRIORITIES, DEFECT_STATUSES, TERMINAL_STATUSES, Defect

logger = logging.getLogger(__name__)

TREND_PERIODS = ("day", "week", "month")


def _as_utc(value):
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _scoped_query(project_id=None, start_date=None, end_date=None):
    q = Defect.query
    if project_id is not None:
        q = q.filter(Defect.project_id == project_id)
    if start_date is not None:
        q = q.filter(Defect.created_at >= datetime.combine(start_date, time.min, UTC))
    if end_date is not None:
        q = q.filter(Defect.created_at <= datetime.combine(end_date, time.max, UTC))
    return q


def _period_label(value, period):
    if period == "day":
        return value.strftime("%Y-%m-%d")
    if period == "week":
        year, week, _ = value.isocalendar()
        return f"{year}-W{week:02d}"
    return value.strftime("%Y-%m")


def _usernames(user_ids):
    ids = [uid for uid in user_ids if uid is not None]
    if not ids:
        return {}
    return dict(db.session.query(User.id, User.username).filter(User.id.in_(ids)).all())


# ═════════════════════════════════════════════════════════════════════════════
# Stats
# ═════════════════════════════════════════════════════════════════════════════


def defect_stats(project_id=None, start_date=None, end_date=None, today=None):
    """Totals plus status / priority / assignee breakdowns."""
    today = today or date.today()
    defects = _scoped_query(project_id, start_date, end_date).all()

    by_status = Counter(d.status for d in defects)
    by_priority = Counter(d.priority for d in defects)
    by_assignee = Counter(d.assignee_id for d in defects)
    names = _usernames(by_assignee)

    overdue = sum(
        1 for d in defects
        if d.due_date is not None and d.due_date < today and d.status not in TERMINAL_STATUSES
    )

    return {
        "total": len(defects),
        "resolved": by_status.get("closed", 0),
        "overdue": overdue,
        "by_status": {s: by_status.get(s, 0) for s in DEFECT_STATUSES},
        "by_priority": {p: by_priority.get(p, 0) for p in DEFECT_PRIORITIES},
        "by_assignee": [
            {
                "assignee_id": uid,
                "username": names.get(uid) if uid is not None else None,
                "count": count,
            }
            for uid, count in by_assignee.most_common()
        ],
    }


def defect_trends(project_id=None, period="week", start_date=None, end_date=None):
    """Created/resolved counts bucketed by day, ISO week or month."""
    if period not in TREND_PERIODS:
        raise ValidationError(f"period must be one of {', '.join(TREND_PERIODS)}",
                              details={"period": "invalid"})

    buckets = defaultdict(lambda: {"created": 0, "resolved": 0})
    for d in _scoped_query(project_id, start_date, end_date).all():
        created = _as_utc(d.created_at)
        if created is not None:
            buckets[_period_label(created, period)]["created"] += 1
        resolved = _as_utc(d.resolved_at)
        if resolved is not None:
            buckets[_period_label(resolved, period)]["resolved"] += 1

    return [
        {"period": label, **counts}
        for label, counts in sorted(buckets.items())
    ]


def team_performance(project_id=None, start_date=None, end_date=None):
    """Per-assignee workload and average resolution time in days."""
    rows = defaultdict(lambda: {"total_assigned": 0, "completed": 0, "in_progress": 0, "_days": []})
    q = _scoped_query(project_id, start_date, end_date).filter(Defect.assignee_id.isnot(None))

    for d in q.all():
        row = rows[d.assignee_id]
        row["total_assigned"] += 1
        if d.status == "closed":
            row["completed"] += 1
            if d.resolved_at is not None and d.created_at is not None:
                delta = _as_utc(d.resolved_at) - _as_utc(d.created_at)
                row["_days"].append(delta.total_seconds() / 86400)
        elif d.status == "in_progress":
            row["in_progress"] += 1

    names = _usernames(rows)
    result = []
    for uid, row in rows.items():
        days = row.pop("_days")
        result.append({
            "assignee_id": uid,
            "username": names.get(uid),
            **row,
            "avg_resolution_days": round(sum(days) / len(days), 1) if days else None,
        })
    result.sort(key=lambda r: (-r["total_assigned"], r["assignee_id"]))
    return result
