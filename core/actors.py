"""
Actor Directory - Caller Identity and Role Resolution

Resolves a caller to one of three roles. Workflow code treats the role as an
opaque enum and never re-derives it from anything else.

Uses JSON file persistence, swappable for an identity service later.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from utils.clock import parse_timestamp, utc_now


logger = logging.getLogger(__name__)


class Role(Enum):
    """Caller role."""

    CITIZEN = "citizen"
    LAND_OFFICER = "land_officer"
    ADMIN = "admin"


OFFICIAL_ROLES: frozenset[Role] = frozenset({Role.LAND_OFFICER, Role.ADMIN})


@dataclass(frozen=True)
class Actor:
    """An authenticated caller."""

    actor_id: str
    role: Role
    full_name: str = ""
    email: str = ""
    created_at: Optional[datetime] = None

    @property
    def is_official(self) -> bool:
        return self.role in OFFICIAL_ROLES

    def with_role(self, role: Role) -> "Actor":
        return Actor(
            actor_id=self.actor_id,
            role=role,
            full_name=self.full_name,
            email=self.email,
            created_at=self.created_at,
        )

    def to_dict(self) -> dict:
        return {
            "actor_id": self.actor_id,
            "role": self.role.value,
            "full_name": self.full_name,
            "email": self.email,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Actor":
        return cls(
            actor_id=data["actor_id"],
            role=Role(data["role"]),
            full_name=data.get("full_name", ""),
            email=data.get("email", ""),
            created_at=(
                parse_timestamp(data["created_at"]) if data.get("created_at") else None
            ),
        )


class ActorDirectory:
    """
    Repository of known actors.

    Uses in-memory storage with optional JSON file persistence.
    """

    def __init__(self, persist_path: Optional[str] = None):
        """
        Initialise directory.

        Args:
            persist_path: Optional path to persist data to JSON file
        """
        self._actors: dict[str, Actor] = {}
        self._lock = threading.RLock()
        self._persist_path = Path(persist_path) if persist_path else None

        if self._persist_path and self._persist_path.exists():
            self._load_from_file()

    def _save_to_file(self) -> None:
        if not self._persist_path:
            return

        data = {
            "actors": {aid: actor.to_dict() for aid, actor in self._actors.items()},
            "saved_at": utc_now().isoformat(),
        }
        self._persist_path.parent.mkdir(parents=True, exist_ok=True)
        self._persist_path.write_text(json.dumps(data, indent=2))

    def _load_from_file(self) -> None:
        try:
            data = json.loads(self._persist_path.read_text())
            for aid, actor_data in data.get("actors", {}).items():
                self._actors[aid] = Actor.from_dict(actor_data)
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning("Could not load actor directory from %s: %s", self._persist_path, e)

    # =========================================================================
    # Operations
    # =========================================================================

    def register(
        self,
        actor_id: str,
        role: Role = Role.CITIZEN,
        full_name: str = "",
        email: str = "",
    ) -> Actor:
        """
        Register a new actor.

        Raises:
            ValidationError: If actor_id is blank
            ConflictError: If actor_id already exists
        """
        if not actor_id or not actor_id.strip():
            raise ValidationError("actor_id is required", field="actor_id")

        with self._lock:
            if actor_id in self._actors:
                raise ConflictError(f"Actor {actor_id} already exists")
            actor = Actor(
                actor_id=actor_id,
                role=role,
                full_name=full_name,
                email=email,
                created_at=utc_now(),
            )
            self._actors[actor_id] = actor
            self._save_to_file()

        logger.info("Registered actor %s as %s", actor_id, role.value)
        return actor

    def get(self, actor_id: str) -> Optional[Actor]:
        """Get actor by id."""
        return self._actors.get(actor_id)

    def require(self, actor_id: str) -> Actor:
        """Get actor by id, raising NotFoundError if unknown."""
        actor = self._actors.get(actor_id)
        if actor is None:
            raise NotFoundError("Actor", actor_id)
        return actor

    def list_by_role(self, role: Role) -> list[Actor]:
        return [a for a in self._actors.values() if a.role == role]

    def has_role(self, role: Role) -> bool:
        return any(a.role == role for a in self._actors.values())

    def set_role(self, actor_id: str, role: Role) -> Actor:
        """Set an actor's role without guards. Provisioning only."""
        with self._lock:
            actor = self.require(actor_id).with_role(role)
            self._actors[actor_id] = actor
            self._save_to_file()
        return actor

    def change_role(self, caller: Actor, target_id: str, role: Role) -> Actor:
        """
        Change another actor's role.

        Admins cannot change their own role.

        Raises:
            ForbiddenError: If caller is not an admin, or targets themselves
            NotFoundError: If target is unknown
        """
        if caller.role != Role.ADMIN:
            raise ForbiddenError("Only administrators can change roles")
        if caller.actor_id == target_id:
            raise ForbiddenError("Administrators cannot change their own role")

        updated = self.set_role(target_id, role)
        logger.info("Actor %s changed role of %s to %s", caller.actor_id, target_id, role.value)
        return updated

    def count(self) -> int:
        return len(self._actors)

