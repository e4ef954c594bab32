"""
Project domain models.

Models:
    - Project: top-level container owning stages and defects.
    - Stage:   ordered phase of a project that groups defects.

Architecture ref:
    Project ──1:N──▶ Stage
    Project ──1:N──▶ Defect          (cascade delete)
    Stage   ──1:N──▶ Defect          (SET NULL on the FK; deletion blocked by the service)
"""

from defect_tracker.models import db, iso, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

PROJECT_STATUSES = ("planning", "active", "paused", "completed", "cancelled")

STAGE_STATUSES = ("pending", "in_progress", "completed")


class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default="planning",
        comment="planning | active | paused | completed | cancelled",
    )
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    created_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    creator = db.relationship("User", lazy="joined")
    stages = db.relationship(
        "Stage", back_populates="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="Stage.order",
    )
    defects = db.relationship(
        "Defect", back_populates="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def to_dict(self, include_stages=True):
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "start_date": iso(self.start_date),
            "end_date": iso(self.end_date),
            "created_by": self.created_by,
            "creator": self.creator.to_summary() if self.creator else None,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_stages:
            d["stages"] = [s.to_summary() for s in self.stages.all()]
        return d

    def to_summary(self):
        return {"id": self.id, "name": self.name}

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"


class Stage(db.Model):
    __tablename__ = "stages"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    order = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(
        db.String(20), nullable=False, default="pending",
        comment="pending | in_progress | completed",
    )
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    project = db.relationship("Project", back_populates="stages")
    defects = db.relationship("Defect", back_populates="stage", lazy="dynamic", passive_deletes=True)

    def to_summary(self):
        return {"id": self.id, "name": self.name, "order": self.order, "status": self.status}

    def to_dict(self, include_defects=False):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "project": self.project.to_summary() if self.project else None,
            "name": self.name,
            "description": self.description,
            "order": self.order,
            "status": self.status,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_defects:
            d["defects"] = [
                {"id": df.id, "title": df.title, "status": df.status, "priority": df.priority}
                for df in self.defects.all()
            ]
        return d

    def __repr__(self):
        return f"<Stage {self.id}: {self.name} (project#{self.project_id})>"
