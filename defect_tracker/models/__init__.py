"""
Defect Tracker
Shared SQLAlchemy handle.

Every model module imports ``db`` from here so a single metadata object
backs ``db.create_all()`` and Flask-Migrate autogeneration.
"""

from datetime import UTC, datetime

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utcnow():
    return datetime.now(UTC)


def iso(value):
    """Serialise a date/datetime column, treating naive datetimes as UTC."""
    if value is None:
        return None
    if isinstance(value, datetime) and value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat()
