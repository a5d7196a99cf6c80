"""
Membership Invariant Enforcer — organizations, organization membership and
project membership.

Invariants:
  - A user belongs to zero or one organization system-wide.
  - An organization or project never loses its last owner, by demotion or
    by removal.

Each check runs in the same ``transaction()`` as the write it guards and
reads the rows it counts through ``locked()``. The UNIQUE constraints on
``user_organizations`` are the storage backstop; tripping one inside these
transactions surfaces as ConflictError.

Authorization (who may call what) is decided by the caller through
``tracker.services.permission.ROLE_POLICY``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from sqlalchemy import select

from tracker.core.exceptions import ConflictError, NotFoundError, ValidationError
from tracker.models import db
from tracker.models.auth import (
    ORGANIZATION_ROLES,
    PROJECT_ROLES,
    Organization,
    ProjectMember,
    User,
    UserOrganization,
)
from tracker.models.project import Project
from tracker.services.helpers.transactions import locked, transaction, with_transaction

logger = logging.getLogger(__name__)

SLUG_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
SLUG_MAX_LENGTH = 100

MSG_SLUG_TAKEN = "slug taken"
MSG_ALREADY_IN_ORG = "already in an organization"
MSG_ORG_NOT_FOUND = "organization not found"
MSG_LAST_OWNER_DEMOTE = "cannot demote the last owner"
MSG_LAST_OWNER_REMOVE = "cannot remove the last owner"

# Storage backstops tripped while creating an organization, by error-text fragment
_ORG_CREATE_CONFLICTS = {
    "user_organizations": MSG_ALREADY_IN_ORG,
    "slug": MSG_SLUG_TAKEN,
}

_ORG_EDITABLE = ("description", "domain", "website_url", "billing_email", "timezone")


@dataclass(frozen=True)
class MembershipScope:
    """Where a membership lives: the row model, its scope column and legal roles."""

    label: str
    model: type
    scope_column: str
    roles: tuple

    def column(self):
        return getattr(self.model, self.scope_column)


ORGANIZATION_SCOPE = MembershipScope("Organization", UserOrganization, "organization_id", ORGANIZATION_ROLES)
PROJECT_SCOPE = MembershipScope("Project", ProjectMember, "project_id", PROJECT_ROLES)


def _resolve_scope(organization_id, project_id) -> tuple[MembershipScope, int]:
    if (organization_id is None) == (project_id is None):
        raise ValidationError(
            "Exactly one of organization_id or project_id is required",
            details={"scope": "ambiguous"},
        )
    if organization_id is not None:
        return ORGANIZATION_SCOPE, int(organization_id)
    return PROJECT_SCOPE, int(project_id)


# ── Lookups & input checks ───────────────────────────────────────────────────

def get_user_or_404(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        raise NotFoundError("User", user_id)
    return user


def get_organization_or_404(organization_id: int) -> Organization:
    """Active organization by id; inactive ones are reported as missing."""
    org = db.session.get(Organization, organization_id)
    if not org or not org.is_active:
        raise NotFoundError("Organization", organization_id)
    return org


def validate_slug(slug) -> str:
    if not isinstance(slug, str) or not slug:
        raise ValidationError("Organization slug is required", details={"slug": "required"})
    if len(slug) > SLUG_MAX_LENGTH or not SLUG_PATTERN.match(slug):
        raise ValidationError(
            "Slug may only contain letters, digits, '-' and '_'",
            details={"slug": "invalid"},
        )
    return slug


def _validate_org_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Organization name is required", details={"name": "required"})
    name = name.strip()
    if len(name) > 200:
        raise ValidationError("Organization name cannot exceed 200 characters", details={"name": "too long"})
    return name


def _validate_role(scope: MembershipScope, role) -> str:
    if role not in scope.roles:
        raise ValidationError(
            f"role must be one of: {', '.join(scope.roles)}",
            details={"role": "invalid"},
        )
    return role


def _slug_taken(slug: str, exclude_id: int | None = None) -> bool:
    # Deactivated organizations keep their slug reserved.
    stmt = select(Organization.id).where(Organization.slug == slug)
    if exclude_id is not None:
        stmt = stmt.where(Organization.id != exclude_id)
    return db.session.execute(stmt).first() is not None


def _ensure_not_in_organization(user_id: int) -> None:
    existing = locked(
        select(UserOrganization).where(UserOrganization.user_id == user_id)
    ).first()
    if existing is not None:
        logger.info("User %s refused: already in organization %s", user_id, existing.organization_id)
        raise ConflictError(MSG_ALREADY_IN_ORG, resource="UserOrganization", field="user_id", value=str(user_id))


# ═════════════════════════════════════════════════════════════════════════════
# Organizations
# ═════════════════════════════════════════════════════════════════════════════

def create_organization(owner_id: int, name, slug, **attrs) -> dict:
    """Create an organization with ``owner_id`` as its primary owner.

    Raises:
        NotFoundError: If the owner does not exist.
        ValidationError: Bad name or slug format.
        ConflictError: ``"slug taken"`` or ``"already in an organization"``.
    """
    get_user_or_404(owner_id)
    name = _validate_org_name(name)
    slug = validate_slug(slug)

    with transaction(conflict_message=_ORG_CREATE_CONFLICTS):
        if _slug_taken(slug):
            logger.info("Organization create refused: slug %s taken", slug)
            raise ConflictError(MSG_SLUG_TAKEN, resource="Organization", field="slug", value=slug)
        _ensure_not_in_organization(owner_id)

        org = Organization(name=name, slug=slug, **{k: attrs[k] for k in _ORG_EDITABLE if attrs.get(k) is not None})
        db.session.add(org)
        db.session.flush()
        db.session.add(UserOrganization(
            user_id=owner_id,
            organization_id=org.id,
            role="owner",
            is_primary=True,
            invited_by=owner_id,
        ))

    logger.info("Organization created id=%s slug=%s owner=%s", org.id, slug, owner_id)
    return org.to_dict()


def update_organization(organization_id: int, data: dict) -> dict:
    org = get_organization_or_404(organization_id)
    with transaction(conflict_message=MSG_SLUG_TAKEN):
        if "name" in data:
            org.name = _validate_org_name(data["name"])
        if "slug" in data and data["slug"] != org.slug:
            slug = validate_slug(data["slug"])
            if _slug_taken(slug, exclude_id=org.id):
                raise ConflictError(MSG_SLUG_TAKEN, resource="Organization", field="slug", value=slug)
            org.slug = slug
        for key in _ORG_EDITABLE:
            if key in data:
                setattr(org, key, data[key])
    logger.info("Organization updated id=%s", organization_id)
    return org.to_dict()


def deactivate_organization(organization_id: int) -> dict:
    """Soft delete: the row and its memberships stay, the slug stays reserved."""
    org = get_organization_or_404(organization_id)
    org.is_active = False
    db.session.commit()
    logger.info("Organization deactivated id=%s", organization_id)
    return org.to_dict()


def get_organization_with_members(organization_id: int) -> dict:
    org = get_organization_or_404(organization_id)
    d = org.to_dict()
    members = org.members.order_by(UserOrganization.joined_at, UserOrganization.id).all()
    d["members"] = [m.to_dict() for m in members]
    return d


def add_user_to_organization(
    user_id: int,
    organization_id: int,
    role: str = "member",
    invited_by: int | None = None,
) -> dict:
    """Add a user to an organization.

    Raises:
        ValidationError: ``"organization not found"`` when the organization
            is absent or inactive, or the role is unknown.
        ConflictError: ``"already in an organization"``.
    """
    org = db.session.get(Organization, organization_id)
    if not org or not org.is_active:
        raise ValidationError(MSG_ORG_NOT_FOUND, details={"organization_id": organization_id})
    get_user_or_404(user_id)
    role = _validate_role(ORGANIZATION_SCOPE, role)

    with transaction(conflict_message=MSG_ALREADY_IN_ORG):
        _ensure_not_in_organization(user_id)
        membership = UserOrganization(
            user_id=user_id,
            organization_id=organization_id,
            role=role,
            is_primary=True,
            invited_by=invited_by,
        )
        db.session.add(membership)

    logger.info("User %s added to organization %s as %s", user_id, organization_id, role)
    return membership.to_dict()


def get_organization_for_user(user_id: int) -> dict | None:
    membership = UserOrganization.query.filter_by(user_id=user_id).first()
    if membership is None:
        return None
    d = membership.organization.to_dict()
    d["role"] = membership.role
    return d


# ═════════════════════════════════════════════════════════════════════════════
# Project membership
# ═════════════════════════════════════════════════════════════════════════════

def add_project_member(project_id: int, user_id: int, role: str = "member", added_by: int | None = None) -> dict:
    """Add a user to a project; a second membership for the same user is a conflict."""
    if not db.session.get(Project, project_id):
        raise NotFoundError("Project", project_id)
    get_user_or_404(user_id)
    role = _validate_role(PROJECT_SCOPE, role)

    with transaction(conflict_message="already a member of this project"):
        existing = ProjectMember.query.filter_by(project_id=project_id, user_id=user_id).first()
        if existing:
            raise ConflictError(
                "already a member of this project",
                resource="ProjectMember", field="user_id", value=str(user_id),
            )
        member = ProjectMember(project_id=project_id, user_id=user_id, role=role, added_by=added_by)
        db.session.add(member)

    logger.info("User %s added to project %s as %s", user_id, project_id, role)
    return member.to_dict()


def list_project_members(project_id: int) -> list[dict]:
    if not db.session.get(Project, project_id):
        raise NotFoundError("Project", project_id)
    members = ProjectMember.query.filter_by(project_id=project_id).order_by(ProjectMember.id).all()
    return [m.to_dict() for m in members]


# ═════════════════════════════════════════════════════════════════════════════
# Role changes & removal (both scopes)
# ═════════════════════════════════════════════════════════════════════════════

def get_role(user_id: int, organization_id: int | None = None, project_id: int | None = None) -> str | None:
    """The user's role in the scope, or None when not a member."""
    scope, scope_id = _resolve_scope(organization_id, project_id)
    return db.session.execute(
        select(scope.model.role).where(scope.model.user_id == user_id, scope.column() == scope_id)
    ).scalar()


def _locked_membership(scope: MembershipScope, scope_id: int, user_id: int):
    membership = locked(
        select(scope.model).where(scope.model.user_id == user_id, scope.column() == scope_id)
    ).first()
    if membership is None:
        raise NotFoundError(f"{scope.label} membership", f"{scope_id}/{user_id}")
    return membership


def _guard_last_owner(scope: MembershipScope, scope_id: int, membership, message: str) -> None:
    """Refuse when ``membership`` is the scope's only owner."""
    if membership.role != "owner":
        return
    others = locked(
        select(scope.model).where(
            scope.column() == scope_id,
            scope.model.role == "owner",
            scope.model.id != membership.id,
        )
    ).all()
    if not others:
        logger.info("%s %s: last owner guard refused user=%s", scope.label, scope_id, membership.user_id)
        raise ConflictError(message, resource=scope.label, field="role", value="owner")


def change_role(
    user_id: int,
    new_role: str,
    organization_id: int | None = None,
    project_id: int | None = None,
) -> dict:
    """Change a member's role in an organization or a project.

    Raises:
        ValidationError: Unknown role or ambiguous scope.
        NotFoundError: The user is not a member of the scope.
        ConflictError: ``"cannot demote the last owner"``.
    """
    scope, scope_id = _resolve_scope(organization_id, project_id)
    new_role = _validate_role(scope, new_role)

    with transaction():
        membership = _locked_membership(scope, scope_id, user_id)
        if new_role != "owner":
            _guard_last_owner(scope, scope_id, membership, MSG_LAST_OWNER_DEMOTE)
        old_role = membership.role
        membership.role = new_role

    logger.info("%s %s: user %s role %s -> %s", scope.label, scope_id, user_id, old_role, new_role)
    return membership.to_dict()


def _delete_membership(scope: MembershipScope, scope_id: int, user_id: int) -> None:
    membership = _locked_membership(scope, scope_id, user_id)
    _guard_last_owner(scope, scope_id, membership, MSG_LAST_OWNER_REMOVE)
    db.session.delete(membership)


def remove_member(user_id: int, organization_id: int | None = None, project_id: int | None = None) -> None:
    """Remove a member from an organization or a project.

    Raises:
        NotFoundError: The user is not a member of the scope.
        ConflictError: ``"cannot remove the last owner"``.
    """
    scope, scope_id = _resolve_scope(organization_id, project_id)
    with_transaction(_delete_membership, scope, scope_id, user_id)
    logger.info("%s %s: user %s removed", scope.label, scope_id, user_id)
