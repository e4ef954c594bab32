"""
Defect domain models.

Models:
    - Defect:             tracked issue inside a project, optionally bound to a stage.
    - Comment:            immutable discussion entry on a defect.
    - Attachment:         file uploaded against a defect (bytes live in the file store).
    - ChangeHistoryEntry: append-only audit row, one per field mutation.

Architecture ref:
    Project ──1:N──▶ Defect ──1:N──▶ Comment
                            ──1:N──▶ Attachment
                            ──1:N──▶ ChangeHistoryEntry
    User ◀── reporter_id (required) / assignee_id (optional)
"""

from defect_tracker.models import db, iso, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

DEFECT_STATUSES = ("new", "in_progress", "review", "closed", "cancelled")

DEFECT_PRIORITIES = ("low", "medium", "high", "critical")

TERMINAL_STATUSES = frozenset({"closed", "cancelled"})

# Defect lifecycle: current status → set of allowed next statuses.
# Self-transitions are always allowed and are not listed here.
DEFECT_TRANSITIONS = {
    "new": {"in_progress", "cancelled"},
    "in_progress": {"review", "new", "cancelled"},
    "review": {"closed", "in_progress"},
    "closed": set(),
    "cancelled": set(),
}

HISTORY_ACTIONS = ("created", "updated", "deleted")

# Fields whose mutation is written to change_history on update.
TRACKED_FIELDS = (
    "title", "description", "priority", "status",
    "assignee_id", "due_date", "stage_id",
)

TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 300
COMMENT_MAX_LENGTH = 5000


# ═════════════════════════════════════════════════════════════════════════════
# DEFECT
# ═════════════════════════════════════════════════════════════════════════════


class Defect(db.Model):
    __tablename__ = "defects"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    stage_id = db.Column(
        db.Integer, db.ForeignKey("stages.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    title = db.Column(db.String(TITLE_MAX_LENGTH), nullable=False)
    description = db.Column(db.Text, nullable=True)
    priority = db.Column(
        db.String(20), nullable=False, default="medium",
        comment="low | medium | high | critical",
    )
    status = db.Column(
        db.String(20), nullable=False, default="new", index=True,
        comment="new | in_progress | review | closed | cancelled",
    )
    assignee_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    reporter_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True,
    )
    due_date = db.Column(db.Date, nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    project = db.relationship("Project", back_populates="defects", lazy="joined")
    stage = db.relationship("Stage", back_populates="defects", lazy="joined")
    assignee = db.relationship("User", foreign_keys=[assignee_id], lazy="joined")
    reporter = db.relationship("User", foreign_keys=[reporter_id], lazy="joined")

    comments = db.relationship(
        "Comment", back_populates="defect", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="Comment.created_at.desc()",
    )
    attachments = db.relationship(
        "Attachment", back_populates="defect", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="Attachment.created_at.desc()",
    )
    history = db.relationship(
        "ChangeHistoryEntry", back_populates="defect", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="ChangeHistoryEntry.id.desc()",
    )

    def to_dict(self, include_details=False, history_limit=50):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "stage_id": self.stage_id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "status": self.status,
            "assignee_id": self.assignee_id,
            "reporter_id": self.reporter_id,
            "due_date": iso(self.due_date),
            "resolved_at": iso(self.resolved_at),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
            "project": self.project.to_summary() if self.project else None,
            "stage": {"id": self.stage.id, "name": self.stage.name} if self.stage else None,
            "assignee": self.assignee.to_summary() if self.assignee else None,
            "reporter": self.reporter.to_summary() if self.reporter else None,
            "allowed_transitions": sorted(DEFECT_TRANSITIONS.get(self.status, ())),
        }
        if include_details:
            d["comments"] = [c.to_dict() for c in self.comments.all()]
            d["attachments"] = [a.to_dict() for a in self.attachments.all()]
            d["history"] = [h.to_dict() for h in self.history.limit(history_limit).all()]
        return d

    def __repr__(self):
        return f"<Defect {self.id}: [{self.status}] {self.title[:40]}>"


# ═════════════════════════════════════════════════════════════════════════════
# COMMENT
# ═════════════════════════════════════════════════════════════════════════════


class Comment(db.Model):
    __tablename__ = "comments"

    id = db.Column(db.Integer, primary_key=True)
    defect_id = db.Column(
        db.Integer, db.ForeignKey("defects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    defect = db.relationship("Defect", back_populates="comments")
    user = db.relationship("User", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "defect_id": self.defect_id,
            "user_id": self.user_id,
            "user": self.user.to_summary() if self.user else None,
            "content": self.content,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Comment {self.id} on defect#{self.defect_id}>"


# ═════════════════════════════════════════════════════════════════════════════
# ATTACHMENT
# ═════════════════════════════════════════════════════════════════════════════


class Attachment(db.Model):
    __tablename__ = "attachments"

    id = db.Column(db.Integer, primary_key=True)
    defect_id = db.Column(
        db.Integer, db.ForeignKey("defects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    filename = db.Column(db.String(255), nullable=False, comment="Stored (random) file name")
    original_name = db.Column(db.String(255), nullable=False)
    mime_type = db.Column(db.String(100), nullable=False)
    size = db.Column(db.Integer, nullable=False)
    storage_path = db.Column(db.String(500), nullable=False)
    uploaded_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    defect = db.relationship("Defect", back_populates="attachments")
    uploader = db.relationship("User", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "defect_id": self.defect_id,
            "filename": self.filename,
            "original_name": self.original_name,
            "mime_type": self.mime_type,
            "size": self.size,
            "uploaded_by": self.uploaded_by,
            "uploader": self.uploader.to_summary() if self.uploader else None,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Attachment {self.id}: {self.original_name}>"


# ═════════════════════════════════════════════════════════════════════════════
# CHANGE HISTORY
# ═════════════════════════════════════════════════════════════════════════════


class ChangeHistoryEntry(db.Model):
    """Append-only audit trail for defect field changes."""

    __tablename__ = "change_history"

    id = db.Column(db.Integer, primary_key=True)
    defect_id = db.Column(
        db.Integer, db.ForeignKey("defects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    field = db.Column(db.String(50), nullable=False)
    old_value = db.Column(db.Text, nullable=True)
    new_value = db.Column(db.Text, nullable=True)
    action = db.Column(
        db.String(20), nullable=False, default="updated",
        comment="created | updated | deleted",
    )
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    defect = db.relationship("Defect", back_populates="history")
    user = db.relationship("User", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "defect_id": self.defect_id,
            "user_id": self.user_id,
            "user": self.user.to_summary() if self.user else None,
            "field": self.field,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "action": self.action,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<ChangeHistoryEntry defect#{self.defect_id} {self.field}: {self.old_value}→{self.new_value}>"
