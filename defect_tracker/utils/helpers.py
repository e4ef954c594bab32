"""Shared utility functions used by services and blueprints.

parse_date_input:    strict date parsing (raises ValidationError)
clean_text:          type check for optional free-text fields
parse_int:           tolerant integer parsing for query strings
paginate:            page/limit pagination with a uniform metadata block
db_commit_or_error:  single commit point per request
"""
import logging
import math
from datetime import date, datetime

from sqlalchemy.exc import IntegrityError, OperationalError

from defect_tracker.core.exceptions import ValidationError
from defect_tracker.models import db
from defect_tracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def parse_date_input(value, field="date"):
    """Parse a date string, raising ValidationError on bad input.

    Supports: YYYY-MM-DD, YYYY-MM-DDTHH:MM:SS (→ .date()), DD.MM.YYYY, date objects.
    Empty values return None so callers can clear optional dates.
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value)
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%d.%m.%Y").date()
    except ValueError as exc:
        raise ValidationError(
            f"Invalid {field}. Use YYYY-MM-DD or DD.MM.YYYY.",
            details={field: "invalid date"},
        ) from exc


def clean_text(value, field="description"):
    """Optional free-text field: None or a string, anything else is a ValidationError."""
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={field: "invalid"})
    return value


def parse_int(value, default=None):
    """Return ``int(value)`` or ``default`` when the value is missing or malformed."""
    if value in (None, ""):
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        return default


def paginate(query, page=1, limit=DEFAULT_PAGE_SIZE, max_limit=MAX_PAGE_SIZE):
    """Apply page/limit pagination to a SQLAlchemy query.

    Returns:
        (items_list, pagination_dict) where pagination_dict is
        ``{"total", "page", "limit", "total_pages"}``.
    """
    page = max(parse_int(page, 1), 1)
    limit = min(max(parse_int(limit, DEFAULT_PAGE_SIZE), 1), max_limit)
    total = query.order_by(None).count()
    items = query.limit(limit).offset((page - 1) * limit).all()
    return items, {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


# ── Database commit helper ───────────────────────────────────────────────────

def db_commit_or_error():
    """Commit the current SQLAlchemy session, returning an error response on failure.

    Returns:
        None on success.
        (response, status_code) tuple on failure — ready for ``return``.

    Usage::

        err = db_commit_or_error()
        if err:
            return err

    IntegrityError → 409 (duplicate / constraint violation)
    OperationalError → 500 (connection / lock issues)
    """
    try:
        db.session.commit()
        return None
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        return api_error(E.CONFLICT_DUPLICATE, "Duplicate or constraint violation")
    except OperationalError:
        db.session.rollback()
        logger.exception("Database operational error on commit")
        return api_error(E.DATABASE, "Database error")
