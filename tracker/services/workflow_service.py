"""
Workflow Model service — states, workflows, steps, transitions and task types.

Rules:
  - Every entity here is project-scoped; cross-project references raise
    ValidationError.
  - Transitions may only connect states that are steps of the workflow.
  - ``load_snapshot`` is the single read feeding ``workflow_rules``; the
    legality decision itself never touches the database.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import func, or_, select

from tracker.core.exceptions import ConflictError, NotFoundError, ValidationError
from tracker.models import db
from tracker.models.project import Project, Task
from tracker.models.workflow import (
    State,
    TaskType,
    Workflow,
    WorkflowStep,
    WorkflowTransition,
)
from tracker.services import workflow_rules
from tracker.services.workflow_rules import (
    ANY_STATE,
    SpecificState,
    TransitionEdge,
    WorkflowSnapshot,
    source_from_storage,
    source_to_storage,
)

logger = logging.getLogger(__name__)

# Seeded "from any state" targets, matched case-insensitively by state name.
DEFAULT_ANY_STATE_TARGETS = ("cancelled",)


# ── Lookups ──────────────────────────────────────────────────────────────────

def _get_or_404(model, pk, label):
    obj = db.session.get(model, pk)
    if not obj:
        raise NotFoundError(label, pk)
    return obj


def get_project_or_404(project_id: int) -> Project:
    return _get_or_404(Project, project_id, "Project")


def get_state_or_404(state_id: int) -> State:
    return _get_or_404(State, state_id, "State")


def get_workflow_or_404(workflow_id: int) -> Workflow:
    return _get_or_404(Workflow, workflow_id, "Workflow")


def get_task_type_or_404(task_type_id: int) -> TaskType:
    return _get_or_404(TaskType, task_type_id, "TaskType")


def _require_name(name, label: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(f"{label} name is required", details={"name": "required"})
    name = name.strip()
    if len(name) > 100:
        raise ValidationError(f"{label} name cannot exceed 100 characters", details={"name": "too long"})
    return name


def _legacy_fallback_enabled() -> bool:
    try:
        return bool(current_app.config.get("WORKFLOW_LEGACY_FALLBACK", True))
    except RuntimeError:
        return True


# ═════════════════════════════════════════════════════════════════════════════
# States
# ═════════════════════════════════════════════════════════════════════════════

def list_states(project_id: int) -> list[State]:
    return db.session.execute(
        select(State).where(State.project_id == project_id).order_by(State.position, State.id)
    ).scalars().all()


def create_state(project_id: int, name, position: int | None = None) -> dict:
    """Add a state to a project; without a position it goes last."""
    get_project_or_404(project_id)
    name = _require_name(name, "State")
    if position is None:
        current_max = db.session.execute(
            select(func.max(State.position)).where(State.project_id == project_id)
        ).scalar()
        position = 0 if current_max is None else current_max + 1

    state = State(project_id=project_id, name=name, position=int(position))
    db.session.add(state)
    db.session.commit()
    logger.info("State created id=%s project=%s position=%s", state.id, project_id, state.position)
    return state.to_dict()


def update_state(state_id: int, data: dict) -> dict:
    state = get_state_or_404(state_id)
    if "name" in data:
        state.name = _require_name(data["name"], "State")
    if "position" in data:
        state.position = int(data["position"])
    db.session.commit()
    logger.info("State updated id=%s", state_id)
    return state.to_dict()


def delete_state(state_id: int) -> None:
    """Delete a state and every step/transition touching it.

    Raises:
        ConflictError: If a task currently sits in the state.
    """
    state = get_state_or_404(state_id)
    in_use = db.session.execute(
        select(Task.id).where(Task.state_id == state_id).limit(1)
    ).first()
    if in_use:
        raise ConflictError("State is in use by existing tasks", resource="State", field="id", value=str(state_id))

    # from_state_id has no FK, so transitions leaving this state go explicitly.
    WorkflowTransition.query.filter(
        or_(
            WorkflowTransition.from_state_id == state_id,
            WorkflowTransition.to_state_id == state_id,
        )
    ).delete(synchronize_session=False)
    WorkflowStep.query.filter_by(state_id=state_id).delete(synchronize_session=False)
    db.session.delete(state)
    db.session.commit()
    logger.info("State deleted id=%s", state_id)


# ═════════════════════════════════════════════════════════════════════════════
# Workflows & steps
# ═════════════════════════════════════════════════════════════════════════════

def _validate_step_states(project_id: int, state_ids) -> list[int]:
    ids = [int(s) for s in (state_ids or [])]
    if len(set(ids)) != len(ids):
        raise ValidationError("A state can appear only once in a workflow", details={"state_ids": "duplicate"})
    if ids:
        found = set(db.session.execute(
            select(State.id).where(State.id.in_(ids), State.project_id == project_id)
        ).scalars())
        missing = [sid for sid in ids if sid not in found]
        if missing:
            raise ValidationError(
                "Workflow steps must be states of the same project",
                details={"state_ids": missing},
            )
    return ids


def create_workflow(project_id: int, name, state_ids=None) -> dict:
    """Create a workflow whose steps follow ``state_ids`` in order."""
    get_project_or_404(project_id)
    name = _require_name(name, "Workflow")
    ids = _validate_step_states(project_id, state_ids)

    workflow = Workflow(project_id=project_id, name=name)
    workflow.steps = [WorkflowStep(state_id=sid, step_order=i) for i, sid in enumerate(ids)]
    db.session.add(workflow)
    db.session.commit()
    logger.info("Workflow created id=%s project=%s steps=%d", workflow.id, project_id, len(ids))
    return workflow.to_dict(include_graph=True)


def set_workflow_steps(workflow_id: int, state_ids) -> dict:
    """Replace the workflow's steps; transitions touching dropped states go too."""
    workflow = get_workflow_or_404(workflow_id)
    ids = _validate_step_states(workflow.project_id, state_ids)

    kept = set(ids)
    for transition in list(workflow.transitions):
        from_ok = transition.from_any_state or transition.from_state_id in kept
        if not from_ok or transition.to_state_id not in kept:
            workflow.transitions.remove(transition)

    workflow.steps.clear()
    db.session.flush()
    workflow.steps.extend(WorkflowStep(state_id=sid, step_order=i) for i, sid in enumerate(ids))
    db.session.commit()
    logger.info("Workflow steps replaced id=%s steps=%d", workflow_id, len(ids))
    return workflow.to_dict(include_graph=True)


def get_workflow(workflow_id: int) -> dict:
    return get_workflow_or_404(workflow_id).to_dict(include_graph=True)


def list_workflows(project_id: int) -> list[dict]:
    workflows = Workflow.query.filter_by(project_id=project_id).order_by(Workflow.name).all()
    return [w.to_dict() for w in workflows]


def delete_workflow(workflow_id: int) -> None:
    workflow = get_workflow_or_404(workflow_id)
    bound = TaskType.query.filter_by(workflow_id=workflow_id).count()
    if bound:
        raise ConflictError(
            f"Workflow is used by {bound} task type(s)",
            resource="Workflow",
            field="id",
            value=str(workflow_id),
        )
    db.session.delete(workflow)
    db.session.commit()
    logger.info("Workflow deleted id=%s", workflow_id)


# ═════════════════════════════════════════════════════════════════════════════
# Transitions
# ═════════════════════════════════════════════════════════════════════════════

def _step_state_ids(workflow: Workflow) -> list[int]:
    return [step.state_id for step in workflow.steps]


def add_transition(workflow_id: int, from_state_id: int | None, to_state_id: int) -> dict:
    """Add an edge; ``from_state_id=None`` means from any state.

    Raises:
        ValidationError: If either state is not a step of the workflow.
        ConflictError: If the same edge already exists.
    """
    workflow = get_workflow_or_404(workflow_id)
    source = ANY_STATE if from_state_id is None else SpecificState(int(from_state_id))
    to_state_id = int(to_state_id)

    steps = set(_step_state_ids(workflow))
    offenders = [to_state_id] if to_state_id not in steps else []
    if isinstance(source, SpecificState) and source.state_id not in steps:
        offenders.insert(0, source.state_id)
    if offenders:
        raise ValidationError(
            "Transition states must be steps of the workflow",
            details={"state_ids": offenders},
        )

    stored_from = source_to_storage(source)
    duplicate = WorkflowTransition.query.filter_by(
        workflow_id=workflow_id, from_state_id=stored_from, to_state_id=to_state_id
    ).first()
    if duplicate:
        raise ConflictError("Transition already exists", resource="WorkflowTransition")

    transition = WorkflowTransition(
        workflow_id=workflow_id, from_state_id=stored_from, to_state_id=to_state_id
    )
    db.session.add(transition)
    db.session.commit()
    logger.info(
        "Transition added id=%s workflow=%s from=%s to=%s",
        transition.id, workflow_id, "ANY" if from_state_id is None else from_state_id, to_state_id,
    )
    return transition.to_dict()


def remove_transition(transition_id: int) -> None:
    transition = _get_or_404(WorkflowTransition, transition_id, "WorkflowTransition")
    db.session.delete(transition)
    db.session.commit()
    logger.info("Transition removed id=%s", transition_id)


def seed_linear_transitions(workflow_id: int, any_state_targets=DEFAULT_ANY_STATE_TARGETS) -> list[dict]:
    """Create step n → n+1 edges plus any-state edges to the named targets.

    Existing edges are left alone, so seeding twice adds nothing.
    """
    workflow = get_workflow_or_404(workflow_id)
    existing = {(t.from_state_id, t.to_state_id) for t in workflow.transitions}
    steps = list(workflow.steps)

    wanted: list[tuple[int, int]] = [
        (a.state_id, b.state_id) for a, b in zip(steps, steps[1:])
    ]
    targets = {name.lower() for name in (any_state_targets or ())}
    if targets:
        step_states = db.session.execute(
            select(State).where(State.id.in_(_step_state_ids(workflow)))
        ).scalars()
        wanted.extend(
            (source_to_storage(ANY_STATE), s.id) for s in step_states if s.name.lower() in targets
        )

    created = []
    for from_id, to_id in wanted:
        if (from_id, to_id) in existing:
            continue
        transition = WorkflowTransition(workflow_id=workflow_id, from_state_id=from_id, to_state_id=to_id)
        workflow.transitions.append(transition)
        existing.add((from_id, to_id))
        created.append(transition)

    db.session.commit()
    logger.info("Seeded %d transitions for workflow=%s", len(created), workflow_id)
    return [t.to_dict() for t in created]


# ═════════════════════════════════════════════════════════════════════════════
# Task types
# ═════════════════════════════════════════════════════════════════════════════

def _validate_workflow_for_project(workflow_id, project_id: int) -> int | None:
    if workflow_id is None:
        return None
    workflow = get_workflow_or_404(int(workflow_id))
    if workflow.project_id != project_id:
        raise ValidationError(
            "Workflow belongs to a different project",
            details={"workflow_id": workflow.id},
        )
    return workflow.id


def create_task_type(project_id: int, name, workflow_id: int | None = None) -> dict:
    get_project_or_404(project_id)
    name = _require_name(name, "Task type")
    workflow_id = _validate_workflow_for_project(workflow_id, project_id)
    if TaskType.query.filter_by(project_id=project_id, name=name).first():
        raise ConflictError(
            f"Task type '{name}' already exists in this project",
            resource="TaskType", field="name", value=name,
        )

    task_type = TaskType(project_id=project_id, name=name, workflow_id=workflow_id)
    db.session.add(task_type)
    db.session.commit()
    logger.info("TaskType created id=%s project=%s workflow=%s", task_type.id, project_id, workflow_id)
    return task_type.to_dict()


def set_task_type_workflow(task_type_id: int, workflow_id: int | None) -> dict:
    task_type = get_task_type_or_404(task_type_id)
    task_type.workflow_id = _validate_workflow_for_project(workflow_id, task_type.project_id)
    db.session.commit()
    logger.info("TaskType workflow set id=%s workflow=%s", task_type_id, task_type.workflow_id)
    return task_type.to_dict()


def list_task_types(project_id: int) -> list[dict]:
    types = TaskType.query.filter_by(project_id=project_id).order_by(TaskType.name).all()
    return [t.to_dict() for t in types]


# ═════════════════════════════════════════════════════════════════════════════
# Snapshots & legality
# ═════════════════════════════════════════════════════════════════════════════

def load_snapshot(project_id: int, workflow_id: int | None) -> WorkflowSnapshot:
    """Read the states and edges the Transition Validator needs."""
    project_state_ids = tuple(s.id for s in list_states(project_id))
    if workflow_id is None:
        return WorkflowSnapshot(
            workflow_id=None,
            workflow_state_ids=(),
            project_state_ids=project_state_ids,
            legacy_fallback=_legacy_fallback_enabled(),
        )

    workflow = get_workflow_or_404(workflow_id)
    return WorkflowSnapshot(
        workflow_id=workflow.id,
        workflow_state_ids=tuple(_step_state_ids(workflow)),
        project_state_ids=project_state_ids,
        transitions=tuple(
            TransitionEdge(source_from_storage(t.from_state_id), t.to_state_id)
            for t in workflow.transitions
        ),
        legacy_fallback=_legacy_fallback_enabled(),
    )


def snapshot_for_task_type(project_id: int, task_type_id: int | None) -> WorkflowSnapshot:
    workflow_id = None
    if task_type_id is not None:
        workflow_id = get_task_type_or_404(task_type_id).workflow_id
    return load_snapshot(project_id, workflow_id)


def _states_by_ids(state_ids) -> list[dict]:
    if not state_ids:
        return []
    states = db.session.execute(
        select(State).where(State.id.in_(list(state_ids))).order_by(State.position, State.id)
    ).scalars()
    return [s.to_dict() for s in states]


def next_valid_states(workflow_id: int, current_state_id: int | None) -> list[dict]:
    """Legal next states for a workflow, ordered by display position."""
    workflow = get_workflow_or_404(workflow_id)
    snapshot = load_snapshot(workflow.project_id, workflow.id)
    return _states_by_ids(workflow_rules.next_valid_states(snapshot, current_state_id))


def is_transition_legal(workflow_id: int, from_state_id: int | None, to_state_id: int) -> bool:
    workflow = get_workflow_or_404(workflow_id)
    snapshot = load_snapshot(workflow.project_id, workflow.id)
    return workflow_rules.is_transition_legal(snapshot, from_state_id, to_state_id)


def next_valid_states_for_task(task_id: int) -> list[dict]:
    """Legal next states for a task, honouring legacy mode for its task type."""
    task = _get_or_404(Task, task_id, "Task")
    snapshot = snapshot_for_task_type(task.project_id, task.task_type_id)
    return _states_by_ids(workflow_rules.next_valid_states(snapshot, task.state_id))
