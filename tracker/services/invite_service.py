"""
Project invites — single-use tokens that grant project membership.

An invite names an email address and the project role it grants. The
token is handed to the invitee out of band (email dispatch is not part of
this service). Accepting it creates the membership and marks the invite
``accepted`` in one transaction; the invite row is read through
``locked()`` so two concurrent accepts cannot both pass the status check.

Rules:
  - one pending invite per (project, email); existing members are not invited
  - only the user whose email matches may accept or decline
  - an accepted, declined or expired invite is refused with ConflictError
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

from email_validator import EmailNotValidError, validate_email
from flask import current_app
from sqlalchemy import func, select

from tracker.core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from tracker.models import db
from tracker.models.auth import PROJECT_ROLES, ProjectInvite, ProjectMember, User
from tracker.services.helpers.transactions import locked, transaction
from tracker.services.project_service import get_project_or_404, get_user_or_404

logger = logging.getLogger(__name__)

DEFAULT_INVITE_TTL_DAYS = 7

MSG_ALREADY_MEMBER = "already a member of this project"
MSG_PENDING_EXISTS = "an invite is already pending for this email"
MSG_EXPIRED = "invite has expired"


def _clean_email(email) -> str:
    if not isinstance(email, str):
        raise ValidationError("A valid email address is required", details={"email": "required"})
    try:
        valid = validate_email(email.strip(), check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError(f"Invalid email: {exc}", details={"email": "invalid"}) from exc
    return valid.normalized.lower()


def _clean_role(role) -> str:
    if role not in PROJECT_ROLES:
        raise ValidationError(
            f"role must be one of: {', '.join(PROJECT_ROLES)}",
            details={"role": "invalid"},
        )
    return role


def _is_member(project_id: int, email: str) -> bool:
    stmt = (
        select(ProjectMember.id)
        .join(User, User.id == ProjectMember.user_id)
        .where(ProjectMember.project_id == project_id, func.lower(User.email) == email)
    )
    return db.session.execute(stmt).first() is not None


def get_invite_or_404(invite_id: int) -> ProjectInvite:
    invite = db.session.get(ProjectInvite, invite_id)
    if not invite:
        raise NotFoundError("ProjectInvite", invite_id)
    return invite


# ═════════════════════════════════════════════════════════════════════════════
# Issuing
# ═════════════════════════════════════════════════════════════════════════════

def create_invite(project_id: int, invited_by: int, email, role: str = "member") -> dict:
    """Issue an invite; the returned dict carries the token.

    Raises:
        NotFoundError: Missing project or inviter.
        ValidationError: Bad email or role.
        ConflictError: The email already belongs to a member, or a pending
            invite for it exists.
    """
    get_project_or_404(project_id)
    get_user_or_404(invited_by)
    email = _clean_email(email)
    role = _clean_role(role)
    ttl_days = current_app.config.get("INVITE_TTL_DAYS", DEFAULT_INVITE_TTL_DAYS)

    with transaction():
        if _is_member(project_id, email):
            raise ConflictError(MSG_ALREADY_MEMBER, resource="ProjectInvite", field="email", value=email)
        pending = locked(
            select(ProjectInvite).where(
                ProjectInvite.project_id == project_id,
                ProjectInvite.email == email,
                ProjectInvite.status == "pending",
            )
        ).all()
        # An expired pending invite does not block a fresh one
        live = [i for i in pending if not i.is_expired]
        if live:
            raise ConflictError(MSG_PENDING_EXISTS, resource="ProjectInvite", field="email", value=email)
        for stale in pending:
            db.session.delete(stale)

        invite = ProjectInvite(
            project_id=project_id,
            email=email,
            token=secrets.token_urlsafe(32),
            role=role,
            invited_by=invited_by,
            expires_at=datetime.now(timezone.utc) + timedelta(days=ttl_days),
        )
        db.session.add(invite)

    logger.info("Invite issued id=%s project=%s role=%s", invite.id, project_id, role)
    return invite.to_dict(include_token=True)


def list_invites(project_id: int, status: str | None = None) -> list[dict]:
    get_project_or_404(project_id)
    q = ProjectInvite.query.filter_by(project_id=project_id)
    if status is not None:
        q = q.filter_by(status=status)
    return [i.to_dict() for i in q.order_by(ProjectInvite.created_at.desc(), ProjectInvite.id.desc()).all()]


def revoke_invite(invite_id: int) -> None:
    """Delete an invite; its token stops working immediately."""
    invite = get_invite_or_404(invite_id)
    db.session.delete(invite)
    db.session.commit()
    logger.info("Invite revoked id=%s project=%s", invite_id, invite.project_id)


# ═════════════════════════════════════════════════════════════════════════════
# Responding
# ═════════════════════════════════════════════════════════════════════════════

def _locked_pending_invite(token, user: User) -> ProjectInvite:
    """Load the invite for ``token`` under lock and check it is usable by ``user``."""
    if not isinstance(token, str) or not token:
        raise NotFoundError("ProjectInvite")
    invite = locked(select(ProjectInvite).where(ProjectInvite.token == token)).first()
    if invite is None:
        raise NotFoundError("ProjectInvite")
    if invite.status != "pending":
        raise ConflictError(f"invite has already been {invite.status}", resource="ProjectInvite")
    if invite.is_expired:
        raise ConflictError(MSG_EXPIRED, resource="ProjectInvite")
    if (user.email or "").lower() != invite.email:
        raise AuthorizationError("This invite was issued to a different email address", actor_id=user.id)
    return invite


def accept_invite(token, user_id: int) -> dict:
    """Accept an invite: create the membership and consume the token.

    Returns:
        The new project membership.

    Raises:
        NotFoundError: Unknown token or user.
        ConflictError: Invite already used, expired, or the user is
            already a member.
        AuthorizationError: The user's email is not the invited one.
    """
    user = get_user_or_404(user_id)

    with transaction(conflict_message=MSG_ALREADY_MEMBER):
        invite = _locked_pending_invite(token, user)
        if ProjectMember.query.filter_by(project_id=invite.project_id, user_id=user.id).first():
            raise ConflictError(MSG_ALREADY_MEMBER, resource="ProjectMember", field="user_id", value=str(user.id))
        member = ProjectMember(
            project_id=invite.project_id,
            user_id=user.id,
            role=invite.role,
            added_by=invite.invited_by,
        )
        db.session.add(member)
        invite.status = "accepted"
        invite.accepted_by = user.id
        invite.responded_at = datetime.now(timezone.utc)

    logger.info("Invite accepted id=%s project=%s user=%s", invite.id, invite.project_id, user.id)
    return member.to_dict()


def decline_invite(token, user_id: int) -> dict:
    user = get_user_or_404(user_id)
    with transaction():
        invite = _locked_pending_invite(token, user)
        invite.status = "declined"
        invite.responded_at = datetime.now(timezone.utc)
    logger.info("Invite declined id=%s project=%s user=%s", invite.id, invite.project_id, user.id)
    return invite.to_dict()
