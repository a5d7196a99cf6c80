"""
Projects API — creation, listing, membership and role gates.
"""

import pytest


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
def api_project(client, owner):
    res = _post(client, "/projects", owner, {"name": "Website"})
    assert res.status_code == 201
    return res.get_json()


class TestProjects:
    def test_missing_actor_is_401(self, client):
        res = client.post(API + "/projects", json={"name": "X"})
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHORIZED"

    def test_create_and_list(self, client, owner, api_project):
        res = _get(client, "/projects", owner)
        assert res.status_code == 200
        projects = res.get_json()["projects"]
        assert [(p["name"], p["role"]) for p in projects] == [("Website", "owner")]

    def test_name_required(self, client, owner):
        res = _post(client, "/projects", owner, {"name": ""})
        assert res.status_code == 422

    def test_non_member_forbidden(self, client, api_project, make_user):
        res = _get(client, f"/projects/{api_project['id']}", make_user())
        assert res.status_code == 403

    def test_unknown_project_404(self, client, owner):
        assert _get(client, "/projects/999", owner).status_code == 404

    def test_only_owner_deletes(self, client, owner, api_project, make_user):
        admin = make_user("Admin")
        _post(client, f"/projects/{api_project['id']}/members", owner, {"user_id": admin.id, "role": "admin"})
        assert _delete(client, f"/projects/{api_project['id']}", admin).status_code == 403
        assert _delete(client, f"/projects/{api_project['id']}", owner).status_code == 204


class TestProjectMembers:
    def test_last_owner_cannot_leave(self, client, owner, api_project):
        res = _delete(client, f"/projects/{api_project['id']}/members/{owner.id}", owner)
        assert res.status_code == 409
        assert res.get_json()["error"] == "cannot remove the last owner"

    def test_member_can_leave(self, client, owner, api_project, make_user):
        member = make_user()
        _post(client, f"/projects/{api_project['id']}/members", owner, {"user_id": member.id})
        res = _delete(client, f"/projects/{api_project['id']}/members/{member.id}", member)
        assert res.status_code == 204

    def test_member_cannot_remove_others(self, client, owner, api_project, make_user):
        a, b = make_user(), make_user()
        for u in (a, b):
            _post(client, f"/projects/{api_project['id']}/members", owner, {"user_id": u.id})
        res = _delete(client, f"/projects/{api_project['id']}/members/{b.id}", a)
        assert res.status_code == 403

    def test_admin_cannot_grant_owner(self, client, owner, api_project, make_user):
        admin, member = make_user(), make_user()
        _post(client, f"/projects/{api_project['id']}/members", owner, {"user_id": admin.id, "role": "admin"})
        _post(client, f"/projects/{api_project['id']}/members", owner, {"user_id": member.id})
        res = _put(client, f"/projects/{api_project['id']}/members/{member.id}", admin, {"role": "owner"})
        assert res.status_code == 403

    def test_admin_cannot_demote_owner(self, client, owner, api_project, make_user):
        admin = make_user()
        _post(client, f"/projects/{api_project['id']}/members", owner, {"user_id": admin.id, "role": "admin"})
        res = _put(client, f"/projects/{api_project['id']}/members/{owner.id}", admin, {"role": "member"})
        assert res.status_code == 403

    def test_second_owner_then_demote(self, client, owner, api_project, make_user):
        url = f"/projects/{api_project['id']}/members/{owner.id}"
        assert _put(client, url, owner, {"role": "member"}).status_code == 409

        second = make_user()
        res = _post(client, f"/projects/{api_project['id']}/members", owner, {"user_id": second.id, "role": "owner"})
        assert res.status_code == 201
        res = _put(client, url, second, {"role": "member"})
        assert res.status_code == 200
        assert res.get_json()["role"] == "member"
