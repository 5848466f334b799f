"""
Administrative Provisioning - One-Time Grant for the First Administrator

A provisioning grant is the only way to create an administrator without
another administrator:

1. It can only be issued while no admin exists
2. It expires after a fixed window
3. It is consumed by its first successful use
4. Redemption is written to the audit log

The grant stores a SHA-256 digest of the secret, never the secret itself.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Final, Optional

from core.actors import Actor, ActorDirectory, Role
from core.audit import AuditAction, AuditLog
from core.errors import ConflictError, ForbiddenError, ValidationError
from utils.clock import Clock, utc_now


logger = logging.getLogger(__name__)

TOKEN_BYTES: Final[int] = 32
DEFAULT_TTL_HOURS: Final[int] = 24


def generate_grant_token() -> str:
    """Cryptographically secure URL-safe token."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def _digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass
class ProvisioningGrant:
    """A single-use, expiring permission to create one administrator."""

    token_digest: str
    issued_at: datetime
    expires_at: datetime
    consumed_at: Optional[datetime] = None
    consumed_by: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    @property
    def is_consumed(self) -> bool:
        return self.consumed_at is not None

    def matches(self, token: str) -> bool:
        return hmac.compare_digest(self.token_digest, _digest(token))


class AdminProvisioner:
    """Issues and redeems the one-time administrator grant."""

    def __init__(self, directory: ActorDirectory, audit: AuditLog, clock: Clock = utc_now):
        self.directory = directory
        self.audit = audit
        self.clock = clock
        self._grant: Optional[ProvisioningGrant] = None
        self._lock = threading.Lock()

    @property
    def grant(self) -> Optional[ProvisioningGrant]:
        return self._grant

    def issue(self, token: Optional[str] = None, ttl_hours: int = DEFAULT_TTL_HOURS) -> str:
        """
        Issue a grant. Returns the secret; only its digest is kept.

        Raises:
            ConflictError: If an administrator already exists
            ValidationError: If ttl_hours is not positive
        """
        if ttl_hours <= 0:
            raise ValidationError("ttl_hours must be positive", field="ttl_hours")
        with self._lock:
            if self.directory.has_role(Role.ADMIN):
                raise ConflictError("An administrator already exists; provisioning is closed")
            token = token or generate_grant_token()
            now = self.clock()
            self._grant = ProvisioningGrant(
                token_digest=_digest(token),
                issued_at=now,
                expires_at=now + timedelta(hours=ttl_hours),
            )
        logger.info("Provisioning grant issued, expires %s", self._grant.expires_at.isoformat())
        return token

    def redeem(
        self,
        token: str,
        actor_id: str,
        full_name: str = "",
        email: str = "",
    ) -> Actor:
        """
        Use the grant to make actor_id an administrator.

        Registers the actor if unknown, otherwise promotes them.

        Raises:
            ForbiddenError: No grant, wrong token, expired, or already used
        """
        with self._lock:
            grant = self._grant
            now = self.clock()
            if grant is None or not token or not grant.matches(token):
                logger.warning("Rejected provisioning attempt for %s: invalid token", actor_id)
                raise ForbiddenError("Invalid provisioning token")
            if grant.is_consumed:
                raise ForbiddenError("This provisioning token has already been used")
            if grant.is_expired(now):
                raise ForbiddenError("This provisioning token has expired")

            existing = self.directory.get(actor_id)
            if existing is None:
                actor = self.directory.register(
                    actor_id, role=Role.ADMIN, full_name=full_name, email=email
                )
                previous_role = None
            else:
                previous_role = existing.role.value
                actor = self.directory.set_role(actor_id, Role.ADMIN)

            grant.consumed_at = now
            grant.consumed_by = actor_id

        logger.info("Provisioned %s as administrator", actor_id)
        self.audit.record(
            entity_type="actor",
            entity_id=actor_id,
            action=AuditAction.ADMIN_PROVISIONED,
            performed_by=actor_id,
            performed_by_role=Role.ADMIN.value,
            from_status=previous_role,
            to_status=Role.ADMIN.value,
            metadata={"grant_issued_at": grant.issued_at.isoformat()},
        )
        return actor
