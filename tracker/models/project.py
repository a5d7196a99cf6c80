"""Project and Task models.

A Project owns its states, workflows, task types and fields; deleting one is
done by ``project_service.delete_project`` which removes owned rows in FK
order (the ON DELETE CASCADE clauses are the PostgreSQL backstop).
"""

from datetime import datetime, timezone

from tracker.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class Project(db.Model):
    """Top-level container for tasks and their configuration."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "owner_id": self.owner_id,
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Task(db.Model):
    """Unit of work. Carries a state, a task type and custom field values."""

    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    task_type_id = db.Column(
        db.Integer, db.ForeignKey("task_types.id", ondelete="SET NULL"), nullable=True
    )
    state_id = db.Column(db.Integer, db.ForeignKey("project_states.id"), nullable=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    assignee_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        db.Index("ix_tasks_project_state", "project_id", "state_id"),
    )

    field_values = db.relationship(
        "TaskFieldValue",
        backref="task",
        cascade="all, delete-orphan",
        lazy="dynamic",
    )

    def to_dict(self, include_values=False):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "task_type_id": self.task_type_id,
            "state_id": self.state_id,
            "owner_id": self.owner_id,
            "assignee_id": self.assignee_id,
            "title": self.title,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_values:
            d["field_values"] = [v.to_dict() for v in self.field_values.all()]
        return d
