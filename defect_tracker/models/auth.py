"""
Auth domain model.

Models:
    - User: account with a fixed role (manager | engineer | observer).
"""

from defect_tracker.models import db, iso, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

USER_ROLES = ("manager", "engineer", "observer")

DEFAULT_ROLE = "observer"


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(
        db.String(20), nullable=False, default=DEFAULT_ROLE,
        comment="manager | engineer | observer",
    )
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_summary(self):
        return {"id": self.id, "username": self.username}

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "role": self.role,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<User {self.id}: {self.username} ({self.role})>"
