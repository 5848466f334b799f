"""
Access Guards - Single Authorization Capability for Every Transition

Each state-mutating operation evaluates exactly one Guard before touching
the store. A guard is parameterised by the roles allowed to act and an
ownership rule relating the caller to the entity's owners.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from core.actors import OFFICIAL_ROLES, Actor, Role
from core.errors import ForbiddenError


class Ownership(Enum):
    """How the caller must relate to the entity's owners."""

    ANY = "any"  # Ownership irrelevant
    OWNER = "owner"  # Caller must be one of the owners
    OWNER_OR_ROLE = "owner_or_role"  # Owner, or holder of one of the roles
    NOT_OWNER = "not_owner"  # Caller must not be an owner (no self-approval)


@dataclass(frozen=True)
class Guard:
    """
    Authorization rule composed with a transition.

    Attributes:
        action: Human-readable action name used in error messages
        roles: Roles allowed to perform the action (empty = any role)
        ownership: Ownership rule evaluated against owner_ids
    """

    action: str
    roles: frozenset[Role] = frozenset()
    ownership: Ownership = Ownership.ANY

    def for_action(self, action: str) -> "Guard":
        """Same rule, different action label."""
        return Guard(action=action, roles=self.roles, ownership=self.ownership)

    def allows(self, actor: Optional[Actor], owner_ids: Iterable[str] = ()) -> bool:
        try:
            self.check(actor, owner_ids)
        except ForbiddenError:
            return False
        return True

    def check(self, actor: Optional[Actor], owner_ids: Iterable[str] = ()) -> Actor:
        """
        Evaluate the guard.

        Returns:
            The actor, for chaining

        Raises:
            ForbiddenError: With an actionable message naming the failed rule
        """
        if actor is None:
            raise ForbiddenError(f"Authentication is required to {self.action}")

        owners = {o for o in owner_ids if o}
        is_owner = actor.actor_id in owners
        has_role = not self.roles or actor.role in self.roles

        if self.ownership == Ownership.OWNER_OR_ROLE:
            if is_owner or (self.roles and actor.role in self.roles):
                return actor
            raise ForbiddenError(
                f"Only the owner or {_describe(self.roles)} can {self.action}"
            )

        if not has_role:
            raise ForbiddenError(f"Only {_describe(self.roles)} can {self.action}")

        if self.ownership == Ownership.OWNER and not is_owner:
            raise ForbiddenError(f"Only the owner can {self.action}")

        if self.ownership == Ownership.NOT_OWNER and is_owner:
            raise ForbiddenError(
                f"You cannot {self.action} on your own application"
            )

        return actor


def _describe(roles: frozenset[Role]) -> str:
    names = {
        Role.CITIZEN: "citizens",
        Role.LAND_OFFICER: "land officers",
        Role.ADMIN: "administrators",
    }
    ordered = [names[r] for r in (Role.CITIZEN, Role.LAND_OFFICER, Role.ADMIN) if r in roles]
    if not ordered:
        return "authenticated users"
    if len(ordered) == 1:
        return ordered[0]
    return " or ".join(ordered)


# =============================================================================
# Standard Guards
# =============================================================================

AUTHENTICATED = Guard(action="perform this action")
CITIZENS = Guard(action="perform this action", roles=frozenset({Role.CITIZEN}))
OWNER_ONLY = Guard(action="perform this action", ownership=Ownership.OWNER)
OFFICIALS = Guard(action="perform this action", roles=OFFICIAL_ROLES)
ADMIN_ONLY = Guard(action="perform this action", roles=frozenset({Role.ADMIN}))
OWNER_OR_OFFICIAL = Guard(
    action="perform this action",
    roles=OFFICIAL_ROLES,
    ownership=Ownership.OWNER_OR_ROLE,
)
OFFICIALS_NOT_OWNER = Guard(
    action="perform this action",
    roles=OFFICIAL_ROLES,
    ownership=Ownership.NOT_OWNER,
)
