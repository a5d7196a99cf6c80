"""
Fields & workflow configuration API — admin-gated settings endpoints.
"""

import pytest

from tracker.services import membership_service


API = "/api/v1"


def _h(user):
    return {"X-User-Id": str(user.id)}


def _post(client, url, user, data=None):
    return client.post(API + url, json=data or {}, headers=_h(user))


def _get(client, url, user):
    return client.get(API + url, headers=_h(user))


def _put(client, url, user, data=None):
    return client.put(API + url, json=data or {}, headers=_h(user))


def _delete(client, url, user):
    return client.delete(API + url, headers=_h(user))


@pytest.fixture()
def member(project, make_user):
    user = make_user("Member")
    membership_service.add_project_member(project["id"], user.id, role="member")
    return user


@pytest.fixture()
def bug(client, owner, project):
    res = _post(client, f"/projects/{project['id']}/task-types", owner, {"name": "Bug"})
    assert res.status_code == 201
    return res.get_json()


class TestFieldEndpoints:
    def test_define_and_list(self, client, owner, project):
        res = _post(client, f"/projects/{project['id']}/fields", owner, {
            "name": "Priority", "input_type": "select", "is_required": True,
            "options": ["low", "medium", "high"],
        })
        assert res.status_code == 201
        res = _get(client, f"/projects/{project['id']}/fields", owner)
        assert res.get_json()["total"] == 1

    def test_member_cannot_define(self, client, member, project):
        res = _post(client, f"/projects/{project['id']}/fields", member, {"name": "X", "input_type": "text"})
        assert res.status_code == 403

    def test_member_can_read(self, client, member, project):
        assert _get(client, f"/projects/{project['id']}/fields", member).status_code == 200

    def test_validation_422(self, client, owner, project):
        res = _post(client, f"/projects/{project['id']}/fields", owner, {"name": "Notes", "input_type": "text", "options": ["a"]})
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_duplicate_409(self, client, owner, project):
        body = {"name": "Notes", "input_type": "text"}
        _post(client, f"/projects/{project['id']}/fields", owner, body)
        assert _post(client, f"/projects/{project['id']}/fields", owner, body).status_code == 409

    def test_rename(self, client, owner, project):
        field = _post(client, f"/projects/{project['id']}/fields", owner, {"name": "Notes", "input_type": "text"}).get_json()
        res = _put(client, f"/fields/{field['id']}", owner, {"name": "Remarks"})
        assert res.status_code == 200
        assert res.get_json()["name"] == "Remarks"

    def test_assign_unassign_idempotent(self, client, owner, project, bug):
        field = _post(client, f"/projects/{project['id']}/fields", owner, {"name": "Notes", "input_type": "text"}).get_json()
        url = f"/task-types/{bug['id']}/fields/{field['id']}"
        assert _post(client, url, owner).status_code == 200
        assert _delete(client, url, owner).get_json() == {"removed": True}
        assert _delete(client, url, owner).get_json() == {"removed": False}

    def test_ordered_task_type_fields(self, client, owner, project, bug):
        for name, required in (("b-optional", False), ("z-required", True), ("a-optional", False)):
            f = _post(client, f"/projects/{project['id']}/fields", owner,
                      {"name": name, "input_type": "text", "is_required": required}).get_json()
            _post(client, f"/task-types/{bug['id']}/fields/{f['id']}", owner)
        res = _get(client, f"/task-types/{bug['id']}/fields", owner)
        assert [f["name"] for f in res.get_json()["fields"]] == ["z-required", "a-optional", "b-optional"]


class TestWorkflowEndpoints:
    def test_build_workflow_and_query_next_states(self, client, owner, project):
        pid = project["id"]
        ids = [
            _post(client, f"/projects/{pid}/states", owner, {"name": n}).get_json()["id"]
            for n in ("Todo", "Doing", "Done", "Cancelled")
        ]
        res = _post(client, f"/projects/{pid}/workflows", owner, {
            "name": "Default", "state_ids": ids, "seed_transitions": True,
        })
        assert res.status_code == 201
        workflow = res.get_json()
        assert len(workflow["transitions"]) == 4

        res = _get(client, f"/workflows/{workflow['id']}/next-states?current_state_id={ids[0]}", owner)
        assert [s["name"] for s in res.get_json()["states"]] == ["Doing", "Cancelled"]

    def test_transition_between_non_steps_422(self, client, owner, project):
        pid = project["id"]
        todo = _post(client, f"/projects/{pid}/states", owner, {"name": "Todo"}).get_json()
        stray = _post(client, f"/projects/{pid}/states", owner, {"name": "Stray"}).get_json()
        workflow = _post(client, f"/projects/{pid}/workflows", owner, {"name": "W", "state_ids": [todo["id"]]}).get_json()
        res = _post(client, f"/workflows/{workflow['id']}/transitions", owner,
                    {"from_state_id": todo["id"], "to_state_id": stray["id"]})
        assert res.status_code == 422

    def test_any_state_transition(self, client, owner, project):
        pid = project["id"]
        done = _post(client, f"/projects/{pid}/states", owner, {"name": "Done"}).get_json()
        workflow = _post(client, f"/projects/{pid}/workflows", owner, {"name": "W", "state_ids": [done["id"]]}).get_json()
        res = _post(client, f"/workflows/{workflow['id']}/transitions", owner,
                    {"from_state_id": None, "to_state_id": done["id"]})
        assert res.status_code == 201
        assert res.get_json()["from_any_state"] is True
        assert _delete(client, f"/transitions/{res.get_json()['id']}", owner).status_code == 204
