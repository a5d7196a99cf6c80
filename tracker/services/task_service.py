"""
Task service — task lifecycle, state moves and custom field values.

Every write composes the pure validators:
  - ``workflow_rules.check_transition`` for state placement and moves
  - ``field_values.validate_field_values`` for custom field values

Nothing is committed unless all checks pass, except ``update_task`` with
``apply_partial=True``, which keeps the non-state changes and reports a
rejected move instead of raising.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import select

from tracker.core.exceptions import NotFoundError, ValidationError
from tracker.models import db
from tracker.models.auth import ProjectMember
from tracker.models.custom_fields import Field, TaskFieldValue
from tracker.models.project import Task
from tracker.models.workflow import State, TaskType
from tracker.services import workflow_rules
from tracker.services.field_registry import assigned_fields
from tracker.services.field_values import format_field_value, is_blank, validate_field_values
from tracker.services.helpers.transactions import transaction
from tracker.services.workflow_service import get_project_or_404, snapshot_for_task_type

logger = logging.getLogger(__name__)

DEFAULT_TITLE_MAX_LENGTH = 255


# ── Lookups & checks ─────────────────────────────────────────────────────────

def get_task_or_404(task_id: int) -> Task:
    task = db.session.get(Task, task_id)
    if not task:
        raise NotFoundError("Task", task_id)
    return task


def _clean_title(title) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Task title is required", details={"title": "required"})
    title = title.strip()
    max_len = current_app.config.get("TASK_TITLE_MAX_LENGTH", DEFAULT_TITLE_MAX_LENGTH)
    if len(title) > max_len:
        raise ValidationError(
            f"Task title cannot exceed {max_len} characters",
            details={"title": f"max {max_len} characters"},
        )
    return title


def _task_type_in_project(task_type_id, project_id: int) -> TaskType | None:
    if task_type_id is None:
        return None
    task_type = db.session.get(TaskType, int(task_type_id))
    if not task_type:
        raise NotFoundError("TaskType", task_type_id)
    if task_type.project_id != project_id:
        raise ValidationError(
            "Task type belongs to a different project",
            details={"task_type_id": task_type.id},
        )
    return task_type


def _state_in_project(state_id, project_id: int) -> State:
    state = db.session.get(State, int(state_id))
    if not state:
        raise NotFoundError("State", state_id)
    if state.project_id != project_id:
        raise ValidationError("State belongs to a different project", details={"state_id": state.id})
    return state


def _check_assignee(assignee_id, project_id: int):
    if assignee_id is None:
        return None
    member = ProjectMember.query.filter_by(project_id=project_id, user_id=int(assignee_id)).first()
    if not member:
        raise ValidationError(
            "Assignee must be a member of the project",
            details={"assignee_id": assignee_id},
        )
    return member.user_id


def _stored_values(task: Task) -> dict:
    return {v.field_id: v.value for v in task.field_values.all()}


def _write_values(task: Task, rows: list[dict]) -> None:
    """Upsert validated rows; a blank value clears the stored one."""
    existing = {v.field_id: v for v in task.field_values.all()}
    for row in rows:
        current = existing.get(row["field_id"])
        if row["value"] is None:
            if current is not None:
                db.session.delete(current)
            continue
        if current is None:
            db.session.add(TaskFieldValue(task_id=task.id, field_id=row["field_id"], value=row["value"]))
        else:
            current.value = row["value"]


def _validate_values_for(task_type_id, candidates, existing_values=None) -> list[dict]:
    fields = assigned_fields(task_type_id) if task_type_id is not None else []
    return validate_field_values(fields, candidates, existing_values=existing_values)


def _with_defaults(task_type_id, candidates: list, present=()) -> list:
    """Prepend field defaults for assigned fields neither submitted nor in ``present``."""
    if task_type_id is None:
        return list(candidates)
    submitted = {_as_int(c.get("field_id")) for c in candidates} | set(present)
    defaults = [
        {"field_id": f.id, "value": f.default_value}
        for f in assigned_fields(task_type_id)
        if f.id not in submitted and not is_blank(f.default_value)
    ]
    return defaults + list(candidates)


def _drop_unassigned_values(task: Task) -> dict:
    """Delete stored values for fields the task's current type does not carry.

    Returns the values that remain, keyed by field id.
    """
    keep = {f.id for f in assigned_fields(task.task_type_id)} if task.task_type_id is not None else set()
    remaining = {}
    for value in task.field_values.all():
        if value.field_id in keep:
            remaining[value.field_id] = value.value
        else:
            db.session.delete(value)
    db.session.flush()
    return remaining


def _as_int(raw):
    try:
        return int(raw)
    except (TypeError, ValueError):
        return raw


# ═════════════════════════════════════════════════════════════════════════════
# Create / read / delete
# ═════════════════════════════════════════════════════════════════════════════

def create_task(
    project_id: int,
    owner_id: int,
    title,
    task_type_id: int | None = None,
    state_id: int | None = None,
    assignee_id: int | None = None,
    description: str | None = None,
    field_values=None,
) -> dict:
    """Create a task with its initial state and custom field values.

    The initial state is checked as a move from "no state", so with a
    workflow any of its states is accepted once.

    Raises:
        NotFoundError: Missing project, task type or state.
        ValidationError: Bad title, foreign task type/state, non-member
            assignee, illegal placement or invalid field values.
    """
    get_project_or_404(project_id)
    title = _clean_title(title)
    task_type = _task_type_in_project(task_type_id, project_id)
    task_type_id = task_type.id if task_type else None
    assignee_id = _check_assignee(assignee_id, project_id)

    if state_id is not None:
        state_id = _state_in_project(state_id, project_id).id
        snapshot = snapshot_for_task_type(project_id, task_type_id)
        workflow_rules.check_transition(snapshot, None, state_id)

    rows = _validate_values_for(task_type_id, _with_defaults(task_type_id, field_values or []))

    with transaction():
        task = Task(
            project_id=project_id,
            task_type_id=task_type_id,
            state_id=state_id,
            owner_id=owner_id,
            assignee_id=assignee_id,
            title=title,
            description=description,
        )
        db.session.add(task)
        db.session.flush()
        _write_values(task, rows)

    logger.info(
        "Task created id=%s project=%s type=%s state=%s",
        task.id, project_id, task_type_id, state_id,
    )
    return get_task(task.id)


def get_task(task_id: int) -> dict:
    """Task with its field values, each carrying the field name and display text."""
    task = get_task_or_404(task_id)
    d = task.to_dict()
    values = task.field_values.all()
    fields = {}
    if values:
        fields = {
            f.id: f for f in db.session.execute(
                select(Field).where(Field.id.in_([v.field_id for v in values]))
            ).scalars()
        }
    d["field_values"] = []
    for v in sorted(values, key=lambda v: v.field_id):
        entry = v.to_dict()
        field = fields.get(v.field_id)
        entry["field_name"] = field.name if field else None
        entry["display"] = format_field_value(field, v.value) if field else v.value
        d["field_values"].append(entry)
    return d


def list_tasks(project_id: int, state_id=None, task_type_id=None, assignee_id=None) -> list[dict]:
    get_project_or_404(project_id)
    q = Task.query.filter_by(project_id=project_id)
    if state_id is not None:
        q = q.filter_by(state_id=state_id)
    if task_type_id is not None:
        q = q.filter_by(task_type_id=task_type_id)
    if assignee_id is not None:
        q = q.filter_by(assignee_id=assignee_id)
    return [t.to_dict() for t in q.order_by(Task.id).all()]


def delete_task(task_id: int) -> None:
    task = get_task_or_404(task_id)
    db.session.delete(task)
    db.session.commit()
    logger.info("Task deleted id=%s", task_id)


# ═════════════════════════════════════════════════════════════════════════════
# Updates
# ═════════════════════════════════════════════════════════════════════════════

def update_task(task_id: int, data: dict, apply_partial: bool = False) -> dict:
    """Apply a partial update to a task.

    Recognised keys: title, description, assignee_id, task_type_id,
    state_id, field_values. Moving to the current state is a no-op.
    Changing the task type drops a state that is not part of the new
    type's workflow and stored values for fields the new type lacks; the
    new type's required fields must then be met by submitted, kept or
    default values.

    Returns:
        ``{"task": {...}, "rejected_transition": None | {...}}``. The
        rejection entry is only ever set when ``apply_partial`` is True.

    Raises:
        ValidationError: Invalid input, or an illegal move without
            ``apply_partial``.
    """
    task = get_task_or_404(task_id)
    project_id = task.project_id
    rejected = None

    with transaction():
        if "title" in data:
            task.title = _clean_title(data["title"])
        if "description" in data:
            task.description = data["description"]
        if "assignee_id" in data:
            task.assignee_id = _check_assignee(data["assignee_id"], project_id)

        type_changed = False
        if "task_type_id" in data and data["task_type_id"] != task.task_type_id:
            task_type = _task_type_in_project(data["task_type_id"], project_id)
            type_changed = (task_type.id if task_type else None) != task.task_type_id
            task.task_type_id = task_type.id if task_type else None
            snapshot = snapshot_for_task_type(project_id, task.task_type_id)
            if (
                task.state_id is not None
                and not snapshot.is_legacy
                and task.state_id not in snapshot.workflow_state_ids
            ):
                logger.info("Task %s state %s cleared: not in new workflow", task_id, task.state_id)
                task.state_id = None

        if "state_id" in data and data["state_id"] != task.state_id:
            target = data["state_id"]
            if target is None:
                raise ValidationError("A task's state cannot be cleared", details={"state_id": "required"})
            target = _state_in_project(target, project_id).id
            snapshot = snapshot_for_task_type(project_id, task.task_type_id)
            try:
                workflow_rules.check_transition(snapshot, task.state_id, target)
            except ValidationError as exc:
                if not apply_partial:
                    raise
                rejected = {"error": exc.message, **exc.details}
                logger.info("Task %s move rejected %s -> %s", task_id, task.state_id, target)
            else:
                task.state_id = target

        if type_changed:
            stored = _drop_unassigned_values(task)
            candidates = _with_defaults(task.task_type_id, data.get("field_values") or [], present=stored)
            _write_values(task, _validate_values_for(task.task_type_id, candidates, existing_values=stored))
        elif "field_values" in data:
            rows = _validate_values_for(
                task.task_type_id, data["field_values"] or [], existing_values=_stored_values(task)
            )
            _write_values(task, rows)

    logger.info("Task updated id=%s", task_id)
    return {"task": get_task(task_id), "rejected_transition": rejected}


def set_task_field_values(task_id: int, values) -> dict:
    """Validate and store field values for a task (partial update).

    Values already stored satisfy required fields that are not resubmitted.
    """
    task = get_task_or_404(task_id)
    rows = _validate_values_for(task.task_type_id, values or [], existing_values=_stored_values(task))
    with transaction():
        _write_values(task, rows)
    logger.info("Task %s field values set count=%d", task_id, len(rows))
    return get_task(task_id)
