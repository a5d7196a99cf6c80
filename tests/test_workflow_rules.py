"""
Transition Validator — pure tests over workflow snapshots.
"""

import pytest

from tracker.core.exceptions import ValidationError
from tracker.models.workflow import ANY_STATE_ID
from tracker.services.workflow_rules import (
    ANY_STATE,
    MSG_ILLEGAL_TRANSITION,
    SpecificState,
    TransitionEdge,
    WorkflowSnapshot,
    check_transition,
    is_transition_legal,
    next_valid_states,
    source_from_storage,
    source_to_storage,
)

S_TODO, S_DOING, S_DONE, S_CANCELLED = 10, 11, 12, 13


def _snapshot(transitions=(), states=(S_TODO, S_DOING, S_DONE), workflow_id=1, legacy_fallback=True):
    return WorkflowSnapshot(
        workflow_id=workflow_id,
        workflow_state_ids=tuple(states),
        project_state_ids=tuple(states),
        transitions=tuple(transitions),
        legacy_fallback=legacy_fallback,
    )


LINEAR = (
    TransitionEdge(SpecificState(S_TODO), S_DOING),
    TransitionEdge(SpecificState(S_DOING), S_DONE),
)


class TestTodoDoingDone:
    def test_next_from_todo_is_doing(self):
        assert next_valid_states(_snapshot(LINEAR), S_TODO) == {S_DOING}

    def test_todo_to_done_illegal(self):
        assert is_transition_legal(_snapshot(LINEAR), S_TODO, S_DONE) is False

    def test_terminal_state_has_no_moves(self):
        assert next_valid_states(_snapshot(LINEAR), S_DONE) == frozenset()

    def test_check_transition_reports_allowed_states(self):
        with pytest.raises(ValidationError) as exc:
            check_transition(_snapshot(LINEAR), S_TODO, S_DONE)
        assert exc.value.message == MSG_ILLEGAL_TRANSITION
        assert exc.value.details["allowed_state_ids"] == [S_DOING]


class TestAnyState:
    def test_any_state_edge_legal_from_every_state(self):
        states = (S_TODO, S_DOING, S_DONE, S_CANCELLED)
        snap = _snapshot(LINEAR + (TransitionEdge(ANY_STATE, S_CANCELLED),), states=states)
        for current in states:
            assert is_transition_legal(snap, current, S_CANCELLED)

    def test_any_state_combines_with_specific_edges(self):
        snap = _snapshot(LINEAR + (TransitionEdge(ANY_STATE, S_CANCELLED),), states=(S_TODO, S_DOING, S_DONE, S_CANCELLED))
        assert next_valid_states(snap, S_TODO) == {S_DOING, S_CANCELLED}

    def test_storage_sentinel_round_trip(self):
        assert source_from_storage(ANY_STATE_ID) is ANY_STATE
        assert source_from_storage(S_TODO) == SpecificState(S_TODO)
        assert source_to_storage(ANY_STATE) == ANY_STATE_ID
        assert source_to_storage(SpecificState(S_DOING)) == S_DOING


class TestBootstrap:
    def test_no_current_state_offers_every_workflow_state(self):
        assert next_valid_states(_snapshot(LINEAR), None) == {S_TODO, S_DOING, S_DONE}

    def test_bootstrap_limited_to_workflow_states(self):
        snap = WorkflowSnapshot(
            workflow_id=1,
            workflow_state_ids=(S_TODO, S_DOING),
            project_state_ids=(S_TODO, S_DOING, S_DONE),
            transitions=LINEAR,
        )
        assert is_transition_legal(snap, None, S_DONE) is False


class TestLegacyMode:
    def test_no_workflow_offers_every_project_state(self):
        snap = WorkflowSnapshot(workflow_id=None, workflow_state_ids=(), project_state_ids=(S_TODO, S_DOING, S_DONE))
        assert snap.is_legacy
        assert next_valid_states(snap, S_TODO) == {S_TODO, S_DOING, S_DONE}
        assert is_transition_legal(snap, S_DONE, S_TODO)

    def test_project_without_states_allows_everything(self):
        snap = WorkflowSnapshot(workflow_id=1, workflow_state_ids=(), project_state_ids=())
        assert is_transition_legal(snap, None, 42)

    def test_fallback_disabled_refuses_moves(self):
        snap = WorkflowSnapshot(
            workflow_id=None,
            workflow_state_ids=(),
            project_state_ids=(S_TODO, S_DOING),
            legacy_fallback=False,
        )
        assert not snap.is_legacy
        assert next_valid_states(snap, S_TODO) == frozenset()
        with pytest.raises(ValidationError):
            check_transition(snap, S_TODO, S_DOING)
