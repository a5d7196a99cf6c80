"""
Organizations API — create, slug rules, cardinality and membership.
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
def org(client, owner):
    res = _post(client, "/organizations", owner, {"name": "Acme", "slug": "acme-inc", "timezone": "UTC"})
    assert res.status_code == 201
    return res.get_json()


class TestOrganizations:
    def test_slug_scenario(self, client, org, make_user):
        res = _post(client, "/organizations", make_user(), {"name": "Acme 2", "slug": "acme-inc"})
        assert res.status_code == 409
        assert res.get_json()["error"] == "slug taken"
        res = _post(client, "/organizations", make_user(), {"name": "Acme 2", "slug": "acme_inc2"})
        assert res.status_code == 201

    def test_invalid_slug_422(self, client, owner):
        res = _post(client, "/organizations", owner, {"name": "Acme", "slug": "acme inc"})
        assert res.status_code == 422

    def test_second_org_for_same_user(self, client, owner, org):
        res = _post(client, "/organizations", owner, {"name": "Again", "slug": "again"})
        assert res.status_code == 409
        assert res.get_json()["error"] == "already in an organization"

    def test_get_with_members(self, client, owner, org):
        res = _get(client, f"/organizations/{org['id']}", owner)
        assert res.status_code == 200
        assert [m["user_id"] for m in res.get_json()["members"]] == [owner.id]

    def test_my_organization(self, client, owner, org, make_user):
        assert _get(client, "/users/me/organization", owner).get_json()["organization"]["slug"] == "acme-inc"
        assert _get(client, "/users/me/organization", make_user()).get_json()["organization"] is None

    def test_deactivate_hides_org(self, client, owner, org):
        assert _delete(client, f"/organizations/{org['id']}", owner).status_code == 200
        assert _get(client, f"/organizations/{org['id']}", owner).status_code == 404


class TestOrganizationMembers:
    def test_add_member_and_conflict(self, client, owner, org, make_user):
        user = make_user()
        res = _post(client, f"/organizations/{org['id']}/members", owner, {"user_id": user.id, "role": "readonly"})
        assert res.status_code == 201
        other = _post(client, "/organizations", make_user(), {"name": "Other", "slug": "other"}).get_json()
        res = _post(client, f"/organizations/{other['id']}/members", make_user(), {"user_id": user.id})
        assert res.status_code == 403

    def test_already_in_org_conflict(self, client, owner, org, make_user):
        other_owner = make_user()
        other = _post(client, "/organizations", other_owner, {"name": "Other", "slug": "other"}).get_json()
        res = _post(client, f"/organizations/{other['id']}/members", other_owner, {"user_id": owner.id})
        assert res.status_code == 409

    def test_readonly_member_cannot_add(self, client, owner, org, make_user):
        viewer = make_user()
        _post(client, f"/organizations/{org['id']}/members", owner, {"user_id": viewer.id, "role": "readonly"})
        res = _post(client, f"/organizations/{org['id']}/members", viewer, {"user_id": make_user().id})
        assert res.status_code == 403

    def test_last_owner_demotion_409(self, client, owner, org):
        res = _put(client, f"/organizations/{org['id']}/members/{owner.id}", owner, {"role": "admin"})
        assert res.status_code == 409
        assert res.get_json()["error"] == "cannot demote the last owner"

    def test_self_removal(self, client, owner, org, make_user):
        viewer = make_user()
        _post(client, f"/organizations/{org['id']}/members", owner, {"user_id": viewer.id, "role": "readonly"})
        assert _delete(client, f"/organizations/{org['id']}/members/{viewer.id}", viewer).status_code == 204
