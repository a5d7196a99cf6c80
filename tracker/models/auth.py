"""
Auth Models — users, organizations, memberships and project invites.

Persisted layout guarantees enforced here (the service layer checks first,
these constraints are the backstop under concurrency):
  - user_organizations.user_id is UNIQUE on its own: a user belongs to zero
    or one organization system-wide.
  - organizations.slug is UNIQUE, including deactivated organizations.
  - (project_id, user_id) is UNIQUE on project_members.
  - project_invites.token is UNIQUE; an invite is used at most once.
"""

from datetime import datetime, timezone

from tracker.models import db


def _utcnow():
    return datetime.now(timezone.utc)


ORGANIZATION_ROLES = ("owner", "admin", "member", "billing", "readonly")
PROJECT_ROLES = ("owner", "admin", "member")


# ═══════════════════════════════════════════════════════════════
# 1. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), unique=True, nullable=False)
    display_name = db.Column(db.String(200))
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow)

    organization_membership = db.relationship(
        "UserOrganization", back_populates="user", uselist=False,
        cascade="all, delete-orphan", foreign_keys="UserOrganization.user_id",
    )
    project_memberships = db.relationship(
        "ProjectMember", back_populates="user", lazy="dynamic",
        cascade="all, delete-orphan", foreign_keys="ProjectMember.user_id",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
            "is_active": self.is_active,
        }


# ═══════════════════════════════════════════════════════════════
# 2. ORGANIZATIONS
# ═══════════════════════════════════════════════════════════════
class Organization(db.Model):
    __tablename__ = "organizations"

    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    domain = db.Column(db.String(200))
    website_url = db.Column(db.String(500))
    billing_email = db.Column(db.String(200))
    timezone = db.Column(db.String(64), default="UTC")
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    members = db.relationship(
        "UserOrganization", back_populates="organization", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "slug": self.slug,
            "name": self.name,
            "description": self.description,
            "domain": self.domain,
            "website_url": self.website_url,
            "billing_email": self.billing_email,
            "timezone": self.timezone,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


# ═══════════════════════════════════════════════════════════════
# 3. USER_ORGANIZATIONS (at most one row per user)
# ═══════════════════════════════════════════════════════════════
class UserOrganization(db.Model):
    __tablename__ = "user_organizations"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    role = db.Column(db.String(20), nullable=False, default="member")
    is_primary = db.Column(db.Boolean, nullable=False, default=True)
    invited_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    joined_at = db.Column(db.DateTime, default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("user_id", name="uq_user_organizations_user"),
        db.UniqueConstraint("user_id", "organization_id", name="uq_user_organizations_user_org"),
        db.Index("ix_user_organizations_org_role", "organization_id", "role"),
    )

    user = db.relationship("User", back_populates="organization_membership", foreign_keys=[user_id])
    organization = db.relationship("Organization", back_populates="members")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "organization_id": self.organization_id,
            "role": self.role,
            "is_primary": self.is_primary,
            "invited_by": self.invited_by,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
            "user": self.user.to_dict() if self.user else None,
        }


# ═══════════════════════════════════════════════════════════════
# 4. PROJECT_MEMBERS (User ↔ Project assignment)
# ═══════════════════════════════════════════════════════════════
class ProjectMember(db.Model):
    __tablename__ = "project_members"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role = db.Column(db.String(20), nullable=False, default="member")
    joined_at = db.Column(db.DateTime, default=_utcnow)
    added_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", name="uq_project_member"),
        db.Index("ix_project_members_project_role", "project_id", "role"),
        db.Index("ix_project_members_user", "user_id"),
    )

    user = db.relationship("User", back_populates="project_memberships", foreign_keys=[user_id])

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "role": self.role,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
            "user": self.user.to_dict() if self.user else None,
        }


# ═══════════════════════════════════════════════════════════════
# 5. PROJECT_INVITES (single-use tokens granting project membership)
# ═══════════════════════════════════════════════════════════════
INVITE_STATUSES = ("pending", "accepted", "declined")


class ProjectInvite(db.Model):
    __tablename__ = "project_invites"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    email = db.Column(db.String(200), nullable=False)
    token = db.Column(db.String(64), nullable=False, unique=True)
    role = db.Column(db.String(20), nullable=False, default="member")
    status = db.Column(db.String(20), nullable=False, default="pending")
    invited_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    accepted_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    responded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.Index("ix_project_invites_project_email", "project_id", "email"),
    )

    @property
    def is_expired(self) -> bool:
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            # SQLite hands back naive datetimes
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= _utcnow()

    def to_dict(self, include_token=False):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "email": self.email,
            "role": self.role,
            "status": self.status,
            "invited_by": self.invited_by,
            "accepted_by": self.accepted_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "responded_at": self.responded_at.isoformat() if self.responded_at else None,
        }
        if include_token:
            d["token"] = self.token
        return d
