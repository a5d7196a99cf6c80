"""
Project invites — single-use tokens granting project membership, at the
service layer and through the API.
"""

from datetime import datetime, timedelta, timezone

import pytest

from tracker.core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from tracker.models import db as _db
from tracker.models.auth import ProjectInvite, ProjectMember
from tracker.services import invite_service, membership_service, project_service


API = "/api/v1"


def _h(user):
    return {"X-User-Id": str(user.id)}


def _post(client, url, user, data=None):
    return client.post(API + url, json=data or {}, headers=_h(user))


def _get(client, url, user):
    return client.get(API + url, headers=_h(user))


def _delete(client, url, user):
    return client.delete(API + url, headers=_h(user))


@pytest.fixture()
def invitee(make_user):
    return make_user("Invitee", email="invitee@example.com")


@pytest.fixture()
def invite(project, owner, invitee):
    return invite_service.create_invite(project["id"], owner.id, "Invitee@Example.com", role="admin")


def _expire(invite_id):
    row = _db.session.get(ProjectInvite, invite_id)
    row.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
    _db.session.commit()


class TestCreateInvite:
    def test_token_issued_with_role_and_expiry(self, invite, app):
        assert invite["email"] == "invitee@example.com"
        assert invite["role"] == "admin"
        assert invite["status"] == "pending"
        assert len(invite["token"]) >= 32
        expires_at = datetime.fromisoformat(invite["expires_at"])
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        ttl = timedelta(days=app.config["INVITE_TTL_DAYS"])
        assert abs(expires_at - (datetime.now(timezone.utc) + ttl)) < timedelta(minutes=5)

    def test_second_pending_invite_refused(self, invite, project, owner):
        with pytest.raises(ConflictError) as exc:
            invite_service.create_invite(project["id"], owner.id, "invitee@example.com")
        assert exc.value.message == invite_service.MSG_PENDING_EXISTS

    def test_expired_pending_invite_replaced(self, invite, project, owner):
        _expire(invite["id"])
        fresh = invite_service.create_invite(project["id"], owner.id, "invitee@example.com")
        assert fresh["token"] != invite["token"]
        assert ProjectInvite.query.filter_by(project_id=project["id"]).count() == 1

    def test_existing_member_not_invited(self, project, owner):
        with pytest.raises(ConflictError) as exc:
            invite_service.create_invite(project["id"], owner.id, owner.email.upper())
        assert exc.value.message == invite_service.MSG_ALREADY_MEMBER

    @pytest.mark.parametrize("email,role", [("not-an-email", "member"), ("a@b.co", "billing"), (None, "member")])
    def test_bad_input(self, project, owner, email, role):
        with pytest.raises(ValidationError):
            invite_service.create_invite(project["id"], owner.id, email, role=role)

    def test_unknown_project(self, owner):
        with pytest.raises(NotFoundError):
            invite_service.create_invite(404, owner.id, "x@example.com")


class TestAcceptInvite:
    def test_accept_creates_membership_once(self, invite, project, invitee):
        member = invite_service.accept_invite(invite["token"], invitee.id)
        assert member["role"] == "admin"
        assert membership_service.get_role(invitee.id, project_id=project["id"]) == "admin"

        stored = _db.session.get(ProjectInvite, invite["id"])
        assert stored.status == "accepted"
        assert stored.accepted_by == invitee.id
        assert stored.responded_at is not None

        with pytest.raises(ConflictError) as exc:
            invite_service.accept_invite(invite["token"], invitee.id)
        assert exc.value.message == "invite has already been accepted"
        assert ProjectMember.query.filter_by(project_id=project["id"], user_id=invitee.id).count() == 1

    def test_expired_token_rejected(self, invite, project, invitee):
        _expire(invite["id"])
        with pytest.raises(ConflictError) as exc:
            invite_service.accept_invite(invite["token"], invitee.id)
        assert exc.value.message == invite_service.MSG_EXPIRED
        assert membership_service.get_role(invitee.id, project_id=project["id"]) is None
        assert _db.session.get(ProjectInvite, invite["id"]).status == "pending"

    def test_unknown_token(self, invitee):
        with pytest.raises(NotFoundError):
            invite_service.accept_invite("no-such-token", invitee.id)

    def test_other_email_forbidden(self, invite, project, make_user):
        stranger = make_user("Stranger")
        with pytest.raises(AuthorizationError):
            invite_service.accept_invite(invite["token"], stranger.id)
        assert _db.session.get(ProjectInvite, invite["id"]).status == "pending"

    def test_already_member_leaves_invite_pending(self, invite, project, invitee):
        membership_service.add_project_member(project["id"], invitee.id)
        with pytest.raises(ConflictError):
            invite_service.accept_invite(invite["token"], invitee.id)
        assert _db.session.get(ProjectInvite, invite["id"]).status == "pending"

    def test_declined_invite_cannot_be_accepted(self, invite, invitee):
        declined = invite_service.decline_invite(invite["token"], invitee.id)
        assert declined["status"] == "declined"
        with pytest.raises(ConflictError) as exc:
            invite_service.accept_invite(invite["token"], invitee.id)
        assert exc.value.message == "invite has already been declined"

    def test_revoked_token_stops_working(self, invite, invitee):
        invite_service.revoke_invite(invite["id"])
        with pytest.raises(NotFoundError):
            invite_service.accept_invite(invite["token"], invitee.id)

    def test_project_delete_removes_invites(self, invite, project):
        project_service.delete_project(project["id"])
        assert ProjectInvite.query.count() == 0


class TestInvitesApi:
    def test_admin_issues_member_accepts(self, client, project, owner, invitee):
        res = _post(client, f"/projects/{project['id']}/invites", owner, {"email": "invitee@example.com"})
        assert res.status_code == 201
        token = res.get_json()["token"]

        listed = _get(client, f"/projects/{project['id']}/invites", owner).get_json()["invites"]
        assert [i["email"] for i in listed] == ["invitee@example.com"]
        assert "token" not in listed[0]

        res = _post(client, f"/invites/{token}/accept", invitee)
        assert res.status_code == 201
        assert res.get_json()["role"] == "member"

        res = _post(client, f"/invites/{token}/accept", invitee)
        assert res.status_code == 409

    def test_member_cannot_invite(self, client, project, make_user):
        member = make_user("Member")
        membership_service.add_project_member(project["id"], member.id)
        res = _post(client, f"/projects/{project['id']}/invites", member, {"email": "x@example.com"})
        assert res.status_code == 403

    def test_admin_cannot_invite_owner(self, client, project, make_user):
        admin = make_user("Admin")
        membership_service.add_project_member(project["id"], admin.id, role="admin")
        res = _post(client, f"/projects/{project['id']}/invites", admin, {"email": "x@example.com", "role": "owner"})
        assert res.status_code == 403

    def test_wrong_user_and_revoke(self, client, project, owner, invitee, make_user):
        created = _post(client, f"/projects/{project['id']}/invites", owner, {"email": "invitee@example.com"})
        invite = created.get_json()

        assert _post(client, f"/invites/{invite['token']}/accept", make_user("Other")).status_code == 403
        assert _delete(client, f"/invites/{invite['id']}", owner).status_code == 204
        assert _post(client, f"/invites/{invite['token']}/accept", invitee).status_code == 404

    def test_accept_requires_actor(self, client, invite):
        res = client.post(f"{API}/invites/{invite['token']}/accept")
        assert res.status_code == 401
