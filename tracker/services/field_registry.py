"""
Field Schema Registry — field definitions per project and their assignment
to task types.

Centralises all ORM queries and mutations for Field and TaskTypeField so
that blueprints remain HTTP-only. Every commit in this module is intentional
and constitutes the single source of truth for transaction ownership.
"""

from __future__ import annotations

import logging
import re

from flask import current_app
from sqlalchemy import select

from tracker.core.exceptions import ConflictError, NotFoundError, ValidationError
from tracker.models import db
from tracker.models.custom_fields import (
    FIELD_INPUT_TYPES,
    OPTION_INPUT_TYPES,
    Field,
    TaskFieldValue,
    TaskTypeField,
)
from tracker.models.project import Project
from tracker.models.workflow import TaskType
from tracker.services.field_values import check_field_value, is_blank

logger = logging.getLogger(__name__)

_FIELD_NAME_PATTERN = re.compile(r"^[A-Za-z0-9\s\-_()]+$")
DEFAULT_FIELD_NAME_MAX_LENGTH = 100


# ──────────────────────────────────────────────────────────────────────────────
# Pure helpers
# ──────────────────────────────────────────────────────────────────────────────

def order_fields(fields) -> list:
    """Required fields first, then alphabetically by name (case-insensitive).

    Form rendering depends on this order; ties on name fall back to id so
    the result is stable.
    """
    return sorted(fields, key=lambda f: (not f.is_required, f.name.lower(), f.id or 0))


def _name_max_length() -> int:
    try:
        return current_app.config.get("FIELD_NAME_MAX_LENGTH", DEFAULT_FIELD_NAME_MAX_LENGTH)
    except RuntimeError:
        return DEFAULT_FIELD_NAME_MAX_LENGTH


def validate_field_name(name) -> str:
    """Return the trimmed name or raise ValidationError."""
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Field name is required", details={"name": "required"})
    trimmed = name.strip()
    max_len = _name_max_length()
    if len(trimmed) > max_len:
        raise ValidationError(
            f"Field name cannot exceed {max_len} characters",
            details={"name": f"max {max_len} characters"},
        )
    if not _FIELD_NAME_PATTERN.match(trimmed):
        raise ValidationError(
            "Field name contains invalid characters",
            details={"name": "letters, digits, spaces, '-', '_', '(' and ')' only"},
        )
    return trimmed


def validate_field_options(input_type: str, options) -> list[str]:
    """Return the option list to store for ``input_type`` or raise ValidationError."""
    if input_type not in OPTION_INPUT_TYPES:
        if options:
            raise ValidationError(
                f"Options are only allowed for {' / '.join(OPTION_INPUT_TYPES)} fields",
                details={"options": "not allowed"},
            )
        return []

    if not isinstance(options, (list, tuple)) or not options:
        raise ValidationError(
            f"{input_type} fields need at least one option",
            details={"options": "required"},
        )
    cleaned: list[str] = []
    for option in options:
        if not isinstance(option, str) or option == "":
            raise ValidationError("Options must be non-empty strings", details={"options": "invalid"})
        if option in cleaned:
            raise ValidationError(f"Duplicate option '{option}'", details={"options": "duplicate"})
        cleaned.append(option)
    return cleaned


def _validate_input_type(input_type) -> str:
    if input_type not in FIELD_INPUT_TYPES:
        raise ValidationError(
            f"input_type must be one of: {', '.join(FIELD_INPUT_TYPES)}",
            details={"input_type": "invalid"},
        )
    return input_type


def _validate_default(field: Field) -> None:
    if is_blank(field.default_value):
        field.default_value = None
        return
    problem = check_field_value(field, field.default_value)
    if problem:
        raise ValidationError(
            f"Default value is not valid for this field: {problem}",
            details={"default_value": problem},
        )


# ──────────────────────────────────────────────────────────────────────────────
# Lookups
# ──────────────────────────────────────────────────────────────────────────────

def get_field_or_404(field_id: int) -> Field:
    field = db.session.get(Field, field_id)
    if not field:
        raise NotFoundError("Field", field_id)
    return field


def get_task_type_or_404(task_type_id: int) -> TaskType:
    task_type = db.session.get(TaskType, task_type_id)
    if not task_type:
        raise NotFoundError("TaskType", task_type_id)
    return task_type


def _ensure_unique_name(project_id: int, name: str, exclude_id: int | None = None) -> None:
    stmt = select(Field.id).where(Field.project_id == project_id, Field.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Field.id != exclude_id)
    if db.session.execute(stmt).first():
        raise ConflictError(
            f"Field '{name}' already exists in this project",
            resource="Field",
            field="name",
            value=name,
        )


def _field_in_use(field_id: int) -> bool:
    return db.session.execute(
        select(TaskFieldValue.id).where(TaskFieldValue.field_id == field_id).limit(1)
    ).first() is not None


# ──────────────────────────────────────────────────────────────────────────────
# Field definitions
# ──────────────────────────────────────────────────────────────────────────────

def define_field(
    project_id: int,
    name,
    input_type,
    is_required: bool = False,
    options=None,
    default_value: str | None = None,
) -> dict:
    """Create a field definition for a project.

    Raises:
        NotFoundError: If the project does not exist.
        ValidationError: Empty/over-long/ill-formed name, unknown input type,
            options on a non-select/radio type, or an invalid default.
        ConflictError: If the project already has a field with that name.
    """
    if not db.session.get(Project, project_id):
        raise NotFoundError("Project", project_id)

    clean_name = validate_field_name(name)
    input_type = _validate_input_type(input_type)
    clean_options = validate_field_options(input_type, options)
    _ensure_unique_name(project_id, clean_name)

    field = Field(
        project_id=project_id,
        name=clean_name,
        input_type=input_type,
        is_required=bool(is_required),
        options=clean_options,
        default_value=default_value,
    )
    _validate_default(field)

    db.session.add(field)
    db.session.commit()
    logger.info("Field created id=%s project=%s type=%s", field.id, project_id, input_type)
    return field.to_dict()


def update_field(field_id: int, data: dict) -> dict:
    """Apply a partial update to a field definition under the same rules as creation.

    Changing ``input_type`` is refused once values are stored for the field,
    since existing text would no longer be interpreted consistently.
    """
    field = get_field_or_404(field_id)

    if "name" in data:
        new_name = validate_field_name(data["name"])
        if new_name != field.name:
            _ensure_unique_name(field.project_id, new_name, exclude_id=field.id)
        field.name = new_name

    input_type = field.input_type
    if "input_type" in data and data["input_type"] != field.input_type:
        input_type = _validate_input_type(data["input_type"])
        if _field_in_use(field.id):
            raise ConflictError(
                "Cannot change the input type of a field that already has values",
                resource="Field",
                field="input_type",
                value=input_type,
            )

    options = data.get("options", field.options if input_type in OPTION_INPUT_TYPES else None)
    field.options = validate_field_options(input_type, options)
    field.input_type = input_type

    if "is_required" in data:
        field.is_required = bool(data["is_required"])
    if "default_value" in data:
        field.default_value = data["default_value"]
    _validate_default(field)

    db.session.commit()
    logger.info("Field updated id=%s", field_id)
    return field.to_dict()


def get_field(field_id: int) -> dict:
    return get_field_or_404(field_id).to_dict()


def list_fields(project_id: int) -> list[dict]:
    """All field definitions for a project, in form order."""
    fields = db.session.execute(
        select(Field).where(Field.project_id == project_id)
    ).scalars().all()
    return [f.to_dict() for f in order_fields(fields)]


def delete_field(field_id: int) -> None:
    """Delete a field definition and its task-type assignments.

    Raises:
        NotFoundError: If the field does not exist.
        ConflictError: If any task still stores a value for it; historical
            values are never destroyed implicitly.
    """
    field = get_field_or_404(field_id)
    if _field_in_use(field_id):
        logger.info("Field delete refused id=%s: values exist", field_id)
        raise ConflictError(
            "Field is in use by existing tasks and cannot be deleted",
            resource="Field",
            field="id",
            value=str(field_id),
        )

    TaskTypeField.query.filter_by(field_id=field_id).delete(synchronize_session=False)
    db.session.delete(field)
    db.session.commit()
    logger.info("Field deleted id=%s", field_id)


# ──────────────────────────────────────────────────────────────────────────────
# Task type assignment
# ──────────────────────────────────────────────────────────────────────────────

def assign_field_to_task_type(task_type_id: int, field_id: int) -> dict:
    """Assign a field to a task type; assigning twice is a no-op.

    Raises:
        NotFoundError: If either side does not exist.
        ValidationError: If the field and task type belong to different projects.
    """
    task_type = get_task_type_or_404(task_type_id)
    field = get_field_or_404(field_id)
    if field.project_id != task_type.project_id:
        raise ValidationError(
            "Field and task type belong to different projects",
            details={"field_id": field_id, "task_type_id": task_type_id},
        )

    link = TaskTypeField.query.filter_by(task_type_id=task_type_id, field_id=field_id).first()
    if link is None:
        link = TaskTypeField(task_type_id=task_type_id, field_id=field_id)
        db.session.add(link)
        db.session.commit()
        logger.info("Field assigned field=%s task_type=%s", field_id, task_type_id)
    return link.to_dict()


def unassign_field_from_task_type(task_type_id: int, field_id: int) -> bool:
    """Remove an assignment. Idempotent: returns False when nothing was assigned."""
    removed = TaskTypeField.query.filter_by(
        task_type_id=task_type_id, field_id=field_id
    ).delete(synchronize_session=False)
    db.session.commit()
    if removed:
        logger.info("Field unassigned field=%s task_type=%s", field_id, task_type_id)
    return bool(removed)


def assigned_fields(task_type_id: int) -> list[Field]:
    """Field models assigned to a task type, in form order."""
    fields = db.session.execute(
        select(Field)
        .join(TaskTypeField, TaskTypeField.field_id == Field.id)
        .where(TaskTypeField.task_type_id == task_type_id)
    ).scalars().all()
    return order_fields(fields)


def fields_for_task_type(task_type_id: int) -> list[dict]:
    """Serialized fields assigned to a task type: required first, then by name."""
    get_task_type_or_404(task_type_id)
    return [f.to_dict() for f in assigned_fields(task_type_id)]
