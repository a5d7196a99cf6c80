"""
Role hierarchy policy — the one place that decides whether an actor's role
is sufficient for a mutation.

Levels: owner 3 > admin 2 > member 1. Organization-only roles: billing 1,
readonly 0. Handlers consult ``ROLE_POLICY`` before calling a service;
services and validators stay permission-agnostic.

Usage:
    from tracker.services.permission import ROLE_POLICY

    ROLE_POLICY.require(actor_role, "admin", actor_id=actor_id)
    ROLE_POLICY.check_member_change(actor_id, actor_role, target_id, target_role, new_role="member")
"""

from tracker.core.exceptions import AuthorizationError

ROLE_LEVELS = {
    "owner": 3,
    "admin": 2,
    "member": 1,
    "billing": 1,
    "readonly": 0,
}


class RolePolicy:
    """Authorization decisions over the role hierarchy."""

    def __init__(self, levels: dict):
        self.levels = dict(levels)

    def level(self, role: str | None) -> int:
        """Numeric level of ``role``; -1 for no role or an unknown one."""
        if role is None:
            return -1
        return self.levels.get(role, -1)

    def allows(self, actor_role: str | None, required_role: str) -> bool:
        return self.level(actor_role) >= self.level(required_role)

    def require(self, actor_role: str | None, required_role: str, actor_id: int | None = None) -> None:
        """Raise AuthorizationError unless ``actor_role`` reaches ``required_role``."""
        if not self.allows(actor_role, required_role):
            raise AuthorizationError(
                f"Role '{required_role}' or higher is required",
                actor_id=actor_id,
                required_role=required_role,
            )

    def check_member_change(
        self,
        actor_id: int,
        actor_role: str | None,
        target_id: int,
        target_role: str | None,
        new_role: str | None = None,
    ) -> None:
        """Authorize changing or removing another member's role.

        ``new_role=None`` means removal. Self-removal is always permitted
        here; the last-owner guard in the membership service still applies.
        Otherwise the actor needs admin level, an admin may never touch an
        owner, and nobody grants a role above their own.
        """
        if new_role is None and actor_id == target_id:
            return

        self.require(actor_role, "admin", actor_id=actor_id)

        if target_role == "owner" and actor_role != "owner":
            raise AuthorizationError(
                "Only an owner can modify or remove another owner",
                actor_id=actor_id,
                required_role="owner",
            )
        if new_role is not None and self.level(new_role) > self.level(actor_role):
            raise AuthorizationError(
                f"Cannot grant role '{new_role}' above your own",
                actor_id=actor_id,
                required_role=new_role,
            )


ROLE_POLICY = RolePolicy(ROLE_LEVELS)
