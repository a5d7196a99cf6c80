"""
Task service — creation, state moves and custom field values, composed
from the Field Value Validator and the Transition Validator.
"""

import pytest

from tracker.core.exceptions import NotFoundError, ValidationError
from tracker.models.custom_fields import TaskFieldValue
from tracker.models.project import Task
from tracker.services import (
    field_registry,
    membership_service,
    project_service,
    task_service,
    workflow_service,
)


@pytest.fixture()
def board(project):
    """Todo → Doing → Done plus any-state → Cancelled, bound to task type Bug."""
    pid = project["id"]
    states = {n: workflow_service.create_state(pid, n)["id"] for n in ("Todo", "Doing", "Done", "Cancelled")}
    workflow = workflow_service.create_workflow(pid, "Default", list(states.values()))
    workflow_service.add_transition(workflow["id"], states["Todo"], states["Doing"])
    workflow_service.add_transition(workflow["id"], states["Doing"], states["Done"])
    workflow_service.add_transition(workflow["id"], None, states["Cancelled"])
    bug = workflow_service.create_task_type(pid, "Bug", workflow["id"])
    priority = field_registry.define_field(
        pid, "Priority", "select", is_required=True, options=["low", "medium", "high"]
    )
    field_registry.assign_field_to_task_type(bug["id"], priority["id"])
    return {"project_id": pid, "states": states, "workflow": workflow, "bug": bug, "priority": priority}


def _bug(board, owner, state="Todo", priority="high", **kw):
    return task_service.create_task(
        board["project_id"], owner.id, "Crash on save",
        task_type_id=board["bug"]["id"],
        state_id=board["states"][state] if state else None,
        field_values=[{"field_id": board["priority"]["id"], "value": priority}],
        **kw,
    )


class TestCreateTask:
    def test_priority_urgent_rejected(self, board, owner):
        with pytest.raises(ValidationError) as exc:
            _bug(board, owner, priority="urgent")
        assert exc.value.field_ids == [board["priority"]["id"]]
        assert Task.query.count() == 0

    def test_priority_high_accepted(self, board, owner):
        task = _bug(board, owner)
        assert task["field_values"][0]["value"] == "high"
        assert task["state_id"] == board["states"]["Todo"]

    def test_required_field_missing(self, board, owner):
        with pytest.raises(ValidationError) as exc:
            task_service.create_task(board["project_id"], owner.id, "T", task_type_id=board["bug"]["id"])
        assert exc.value.details["fields"][0]["field_name"] == "Priority"

    def test_default_applied_before_validation(self, board, owner):
        field_registry.update_field(board["priority"]["id"], {"default_value": "medium"})
        task = task_service.create_task(board["project_id"], owner.id, "T", task_type_id=board["bug"]["id"])
        assert [v["value"] for v in task["field_values"]] == ["medium"]

    def test_bootstrap_any_workflow_state(self, board, owner):
        task = _bug(board, owner, state="Done")
        assert task["state_id"] == board["states"]["Done"]

    def test_title_required(self, board, owner):
        with pytest.raises(ValidationError):
            task_service.create_task(board["project_id"], owner.id, "  ")

    def test_assignee_must_be_project_member(self, board, owner, make_user):
        outsider = make_user("Outsider")
        with pytest.raises(ValidationError):
            _bug(board, owner, assignee_id=outsider.id)
        membership_service.add_project_member(board["project_id"], outsider.id)
        assert _bug(board, owner, assignee_id=outsider.id)["assignee_id"] == outsider.id

    def test_task_without_type_cannot_carry_values(self, board, owner):
        with pytest.raises(ValidationError):
            task_service.create_task(
                board["project_id"], owner.id, "T",
                field_values=[{"field_id": board["priority"]["id"], "value": "low"}],
            )

    def test_foreign_state_rejected(self, board, owner):
        other = project_service.create_project(owner.id, "Other")
        foreign = workflow_service.create_state(other["id"], "Elsewhere")
        with pytest.raises(ValidationError):
            task_service.create_task(board["project_id"], owner.id, "T", state_id=foreign["id"])


class TestMoves:
    def test_legal_move(self, board, owner):
        task = _bug(board, owner)
        result = task_service.update_task(task["id"], {"state_id": board["states"]["Doing"]})
        assert result["task"]["state_id"] == board["states"]["Doing"]
        assert result["rejected_transition"] is None

    def test_illegal_move_rejects_whole_update(self, board, owner):
        task = _bug(board, owner)
        with pytest.raises(ValidationError) as exc:
            task_service.update_task(task["id"], {"title": "Renamed", "state_id": board["states"]["Done"]})
        assert exc.value.message == "illegal workflow transition"
        stored = task_service.get_task(task["id"])
        assert stored["title"] == "Crash on save"
        assert stored["state_id"] == board["states"]["Todo"]

    def test_apply_partial_keeps_other_changes(self, board, owner):
        task = _bug(board, owner)
        result = task_service.update_task(
            task["id"], {"title": "Renamed", "state_id": board["states"]["Done"]}, apply_partial=True
        )
        assert result["task"]["title"] == "Renamed"
        assert result["task"]["state_id"] == board["states"]["Todo"]
        assert result["rejected_transition"]["allowed_state_ids"] == sorted(
            [board["states"]["Doing"], board["states"]["Cancelled"]]
        )

    def test_any_state_move(self, board, owner):
        task = _bug(board, owner, state="Doing")
        result = task_service.update_task(task["id"], {"state_id": board["states"]["Cancelled"]})
        assert result["task"]["state_id"] == board["states"]["Cancelled"]

    def test_move_to_current_state_is_noop(self, board, owner):
        task = _bug(board, owner, state="Done")
        result = task_service.update_task(task["id"], {"state_id": board["states"]["Done"]})
        assert result["rejected_transition"] is None

    def test_no_workflow_allows_any_move(self, board, owner):
        task = task_service.create_task(board["project_id"], owner.id, "Loose", state_id=board["states"]["Done"])
        result = task_service.update_task(task["id"], {"state_id": board["states"]["Todo"]})
        assert result["task"]["state_id"] == board["states"]["Todo"]

    def test_type_change_clears_state_outside_new_workflow(self, board, owner):
        pid = board["project_id"]
        review = workflow_service.create_state(pid, "Review")
        narrow = workflow_service.create_workflow(pid, "Review only", [review["id"]])
        chore = workflow_service.create_task_type(pid, "Chore", narrow["id"])
        task = task_service.create_task(pid, owner.id, "T", task_type_id=chore["id"], state_id=review["id"])

        result = task_service.update_task(task["id"], {"task_type_id": board["bug"]["id"], "field_values": [
            {"field_id": board["priority"]["id"], "value": "low"},
        ]})
        assert result["task"]["state_id"] is None

    def test_type_change_requires_new_type_fields(self, board, owner):
        plain = workflow_service.create_task_type(board["project_id"], "Plain")
        task = task_service.create_task(board["project_id"], owner.id, "T", task_type_id=plain["id"])

        with pytest.raises(ValidationError) as exc:
            task_service.update_task(task["id"], {"task_type_id": board["bug"]["id"]})
        assert exc.value.field_ids == [board["priority"]["id"]]
        assert task_service.get_task(task["id"])["task_type_id"] == plain["id"]

    def test_type_change_with_values_or_default_accepted(self, board, owner):
        plain = workflow_service.create_task_type(board["project_id"], "Plain")
        first = task_service.create_task(board["project_id"], owner.id, "A", task_type_id=plain["id"])
        result = task_service.update_task(first["id"], {
            "task_type_id": board["bug"]["id"],
            "field_values": [{"field_id": board["priority"]["id"], "value": "low"}],
        })
        assert [v["value"] for v in result["task"]["field_values"]] == ["low"]

        field_registry.update_field(board["priority"]["id"], {"default_value": "medium"})
        second = task_service.create_task(board["project_id"], owner.id, "B", task_type_id=plain["id"])
        result = task_service.update_task(second["id"], {"task_type_id": board["bug"]["id"]})
        assert [v["value"] for v in result["task"]["field_values"]] == ["medium"]

    def test_type_change_drops_values_of_unassigned_fields(self, board, owner):
        plain = workflow_service.create_task_type(board["project_id"], "Plain")
        task = _bug(board, owner, state=None)
        result = task_service.update_task(task["id"], {"task_type_id": plain["id"]})
        assert result["task"]["field_values"] == []
        assert TaskFieldValue.query.filter_by(task_id=task["id"]).count() == 0

    def test_next_valid_states_for_task(self, board, owner):
        task = _bug(board, owner)
        names = [s["name"] for s in workflow_service.next_valid_states_for_task(task["id"])]
        assert names == ["Doing", "Cancelled"]


class TestFieldValues:
    def test_partial_update_keeps_required(self, board, owner):
        pid = board["project_id"]
        notes = field_registry.define_field(pid, "Notes", "textarea")
        field_registry.assign_field_to_task_type(board["bug"]["id"], notes["id"])
        task = _bug(board, owner)

        updated = task_service.set_task_field_values(task["id"], [{"field_id": notes["id"], "value": "see logs"}])

        values = {v["field_name"]: v["value"] for v in updated["field_values"]}
        assert values == {"Priority": "high", "Notes": "see logs"}

    def test_blank_clears_optional_value(self, board, owner):
        notes = field_registry.define_field(board["project_id"], "Notes", "text")
        field_registry.assign_field_to_task_type(board["bug"]["id"], notes["id"])
        task = _bug(board, owner)
        task_service.set_task_field_values(task["id"], [{"field_id": notes["id"], "value": "x"}])
        task_service.set_task_field_values(task["id"], [{"field_id": notes["id"], "value": ""}])
        assert TaskFieldValue.query.filter_by(field_id=notes["id"]).count() == 0

    def test_checkbox_display(self, board, owner):
        blocker = field_registry.define_field(board["project_id"], "Blocker", "checkbox")
        field_registry.assign_field_to_task_type(board["bug"]["id"], blocker["id"])
        task = _bug(board, owner)
        updated = task_service.set_task_field_values(task["id"], [{"field_id": blocker["id"], "value": "true"}])
        display = {v["field_name"]: v["display"] for v in updated["field_values"]}
        assert display["Blocker"] == "Yes"

    def test_clearing_required_value_refused(self, board, owner):
        task = _bug(board, owner)
        with pytest.raises(ValidationError):
            task_service.set_task_field_values(task["id"], [{"field_id": board["priority"]["id"], "value": " "}])


class TestDelete:
    def test_delete_task_removes_values(self, board, owner):
        task = _bug(board, owner)
        task_service.delete_task(task["id"])
        assert TaskFieldValue.query.count() == 0
        with pytest.raises(NotFoundError):
            task_service.get_task(task["id"])

    def test_delete_project_cascades(self, board, owner):
        _bug(board, owner)
        project_service.delete_project(board["project_id"])
        assert Task.query.count() == 0
        assert TaskFieldValue.query.count() == 0
        with pytest.raises(NotFoundError):
            project_service.get_project(board["project_id"])
