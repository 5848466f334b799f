"""
Workflow Context - Collaborators Shared by Every State Machine

Bundles the store, the audit log, the notification dispatcher, the actor
directory, the fee schedule and the clock. Workflows collect Transition
records while their store transaction is open and emit them only after it
commits, so audit and notification failures never undo a transition.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from core.actors import Actor, ActorDirectory
from core.audit import AuditAction, AuditLog
from core.fees import FeeSchedule
from core.notifications import NotificationDispatcher, TransitionEvent
from core.store import WorkflowStore
from utils.clock import Clock, utc_now


# Performed-by identities for changes made without a calling actor
PAYMENT_RAIL_ID = "payment_rail"
PROJECTION_ID = "status_projection"
SYSTEM_ROLE = "system"


@dataclass(frozen=True)
class Transition:
    """A committed change to be audited and announced."""

    entity_type: str
    entity_id: str
    action: AuditAction
    to_status: Optional[str]
    from_status: Optional[str] = None
    property_id: Optional[str] = None
    notes: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def changes_status(self) -> bool:
        return self.to_status is not None and self.to_status != self.from_status


@dataclass
class WorkflowContext:
    store: WorkflowStore
    audit: AuditLog
    dispatcher: NotificationDispatcher
    directory: ActorDirectory
    fees: FeeSchedule = field(default_factory=FeeSchedule)
    clock: Clock = utc_now

    def now(self) -> datetime:
        return self.clock()

    def emit(
        self,
        transitions: Iterable[Transition],
        actor: Optional[Actor] = None,
        system_id: str = PAYMENT_RAIL_ID,
    ) -> None:
        """
        Audit and announce committed transitions.

        Without an actor the change is attributed to system_id.
        """
        performed_by = actor.actor_id if actor else system_id
        role = actor.role.value if actor else SYSTEM_ROLE
        timestamp = self.now()

        for t in transitions:
            self.audit.record(
                entity_type=t.entity_type,
                entity_id=t.entity_id,
                action=t.action,
                performed_by=performed_by,
                performed_by_role=role,
                property_id=t.property_id,
                from_status=t.from_status,
                to_status=t.to_status,
                notes=t.notes,
                metadata=t.metadata,
            )
            if t.changes_status:
                self.dispatcher.publish(
                    TransitionEvent(
                        entity_type=t.entity_type,
                        entity_id=t.entity_id,
                        from_status=t.from_status,
                        to_status=t.to_status,
                        actor_id=performed_by,
                        timestamp=timestamp,
                    )
                )
