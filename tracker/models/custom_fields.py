"""Custom Fields models — definitions, task-type assignment, stored values."""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from tracker.models import db

FIELD_INPUT_TYPES = ("text", "textarea", "number", "date", "select", "checkbox", "radio")
OPTION_INPUT_TYPES = ("select", "radio")


def _utcnow():
    return datetime.now(timezone.utc)


# ── Field Definition ─────────────────────────────────────────────

class Field(db.Model):
    """Typed, optionally required data point defined per project."""

    __tablename__ = "fields"

    id = Column(Integer, primary_key=True)
    project_id = Column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String(100), nullable=False)
    input_type = Column(String(20), nullable=False, default="text")
    is_required = Column(Boolean, nullable=False, default=False)
    options = Column(JSON, default=list)  # ordered list of strings; select/radio only
    default_value = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_field_project_name"),
        Index("ix_fields_project", "project_id"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "input_type": self.input_type,
            "is_required": self.is_required,
            "options": list(self.options or []),
            "default_value": self.default_value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


# ── Task Type ↔ Field assignment ─────────────────────────────────

class TaskTypeField(db.Model):
    """Assigns a field to a task type of the same project."""

    __tablename__ = "task_type_fields"

    id = Column(Integer, primary_key=True)
    task_type_id = Column(
        Integer, ForeignKey("task_types.id", ondelete="CASCADE"), nullable=False
    )
    field_id = Column(
        Integer, ForeignKey("fields.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("task_type_id", "field_id", name="uq_task_type_field"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "task_type_id": self.task_type_id,
            "field_id": self.field_id,
        }


# ── Stored Value ─────────────────────────────────────────────────

class TaskFieldValue(db.Model):
    """Value of a field on a task, always stored as text (or NULL)."""

    __tablename__ = "task_field_values"

    id = Column(Integer, primary_key=True)
    task_id = Column(
        Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False
    )
    # No DB cascade: deleting a field with stored values is refused upstream.
    field_id = Column(Integer, ForeignKey("fields.id"), nullable=False)
    value = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("task_id", "field_id", name="uq_task_field_value"),
        Index("ix_tfv_field", "field_id"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "field_id": self.field_id,
            "value": self.value,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
