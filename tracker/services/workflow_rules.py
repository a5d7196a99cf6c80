"""
Transition Validator — pure legality rules over a workflow snapshot.

A transition's source is a closed choice: ``SpecificState(state_id)`` or
``ANY_STATE``. The storage sentinel (``ANY_STATE_ID``) is translated once,
in ``source_from_storage``, and never compared against elsewhere.

Legal next states from a current state are the targets of every transition
whose source is that state or ``ANY_STATE``. A task with no state yet may be
placed in any state of its workflow (bootstrap). A snapshot without a
workflow, or for a project without states, is in legacy mode: every move is
legal and every project state is offered.

Usage:
    snapshot = WorkflowSnapshot(
        workflow_id=1,
        workflow_state_ids=(10, 11, 12),
        project_state_ids=(10, 11, 12),
        transitions=(TransitionEdge(SpecificState(10), 11),),
    )
    next_valid_states(snapshot, 10)       # frozenset({11})
    is_transition_legal(snapshot, 10, 12)  # False
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from tracker.core.exceptions import ValidationError
from tracker.models.workflow import ANY_STATE_ID

MSG_ILLEGAL_TRANSITION = "illegal workflow transition"


@dataclass(frozen=True)
class SpecificState:
    state_id: int


@dataclass(frozen=True)
class AnyState:
    pass


ANY_STATE = AnyState()

TransitionSource = Union[SpecificState, AnyState]


def source_from_storage(from_state_id: int) -> TransitionSource:
    if from_state_id == ANY_STATE_ID:
        return ANY_STATE
    return SpecificState(from_state_id)


def source_to_storage(source: TransitionSource) -> int:
    if isinstance(source, AnyState):
        return ANY_STATE_ID
    return source.state_id


@dataclass(frozen=True)
class TransitionEdge:
    source: TransitionSource
    to_state_id: int

    def applies_from(self, state_id: int | None) -> bool:
        if isinstance(self.source, AnyState):
            return True
        return state_id is not None and self.source.state_id == state_id


@dataclass(frozen=True)
class WorkflowSnapshot:
    """Everything the validator needs, loaded by the caller in one read."""

    workflow_id: int | None
    workflow_state_ids: tuple[int, ...]
    project_state_ids: tuple[int, ...]
    transitions: tuple[TransitionEdge, ...] = ()
    legacy_fallback: bool = True

    @property
    def is_legacy(self) -> bool:
        return self.legacy_fallback and (self.workflow_id is None or not self.project_state_ids)


def next_valid_states(snapshot: WorkflowSnapshot, current_state_id: int | None) -> frozenset[int]:
    """State ids a task in ``current_state_id`` may move to."""
    if snapshot.is_legacy:
        return frozenset(snapshot.project_state_ids)
    if snapshot.workflow_id is None:
        return frozenset()
    if current_state_id is None:
        return frozenset(snapshot.workflow_state_ids)
    return frozenset(
        edge.to_state_id
        for edge in snapshot.transitions
        if edge.applies_from(current_state_id)
    )


def is_transition_legal(
    snapshot: WorkflowSnapshot,
    from_state_id: int | None,
    to_state_id: int,
) -> bool:
    if snapshot.is_legacy:
        return True
    return to_state_id in next_valid_states(snapshot, from_state_id)


def check_transition(
    snapshot: WorkflowSnapshot,
    from_state_id: int | None,
    to_state_id: int,
) -> None:
    """Raise ValidationError when the move is outside the legal set."""
    if not is_transition_legal(snapshot, from_state_id, to_state_id):
        raise ValidationError(
            MSG_ILLEGAL_TRANSITION,
            details={
                "workflow_id": snapshot.workflow_id,
                "from_state_id": from_state_id,
                "to_state_id": to_state_id,
                "allowed_state_ids": sorted(next_valid_states(snapshot, from_state_id)),
            },
        )
