"""
Land Registry Service

Wires the store, audit log, notification dispatcher, actor directory and
fee schedule into the five workflows, and exposes a process-wide instance
for the web layer.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

from core.access import ADMIN_ONLY
from core.actors import Actor, ActorDirectory, Role
from core.audit import AuditAction, AuditLog
from core.context import WorkflowContext
from core.dispute.workflow import DisputeWorkflow
from core.errors import ConflictError, ValidationError
from core.fees import FeeSchedule
from core.notifications import (
    LoggingNotificationSink,
    NotificationDispatcher,
    NotificationSink,
)
from core.provisioning import AdminProvisioner
from core.registration.documents import DocumentWorkflow
from core.registration.payments import PaymentWorkflow
from core.registration.workflow import PropertyWorkflow
from core.store import Collection, WorkflowStore
from core.transfer.workflow import TransferWorkflow
from utils.clock import Clock, utc_now
from utils.config import Config


logger = logging.getLogger(__name__)


class LandRegistryService:
    """
    Entry point to the registry workflows.

    Attributes:
        properties: Property application state machine
        documents: Document verification
        payments: Payment verification
        transfers: Ownership transfers
        disputes: Dispute resolution
        provisioning: One-time administrator grant
    """

    def __init__(
        self,
        store: Optional[WorkflowStore] = None,
        audit: Optional[AuditLog] = None,
        directory: Optional[ActorDirectory] = None,
        sink: Optional[NotificationSink] = None,
        fees: Optional[FeeSchedule] = None,
        clock: Clock = utc_now,
        notification_max_retries: int = 3,
    ):
        self.store = store or WorkflowStore()
        self.audit = audit or AuditLog()
        self.directory = directory or ActorDirectory()
        self.dispatcher = NotificationDispatcher(
            sink or LoggingNotificationSink(),
            max_retries=notification_max_retries,
        )
        self.ctx = WorkflowContext(
            store=self.store,
            audit=self.audit,
            dispatcher=self.dispatcher,
            directory=self.directory,
            fees=fees or FeeSchedule(),
            clock=clock,
        )

        self.properties = PropertyWorkflow(self.ctx)
        self.documents = DocumentWorkflow(self.ctx)
        self.payments = PaymentWorkflow(self.ctx)
        self.transfers = TransferWorkflow(self.ctx)
        self.disputes = DisputeWorkflow(self.ctx)
        self.provisioning = AdminProvisioner(self.directory, self.audit, clock)

    @classmethod
    def from_config(cls, config: Config, sink: Optional[NotificationSink] = None) -> "LandRegistryService":
        """Build a service persisting under the configured paths."""
        service = cls(
            store=WorkflowStore(persist_path=config.resolved_store_path),
            audit=AuditLog(persist_path=config.resolved_audit_path),
            directory=ActorDirectory(persist_path=config.resolved_actors_path),
            sink=sink,
            fees=FeeSchedule(currency=config.currency),
            notification_max_retries=config.notification_max_retries,
        )
        if config.bootstrap_token:
            try:
                service.provisioning.issue(
                    config.bootstrap_token,
                    ttl_hours=config.bootstrap_token_ttl_hours,
                )
            except ConflictError:
                logger.info("Administrator already provisioned; bootstrap token ignored")
        return service

    # =========================================================================
    # Actors
    # =========================================================================

    def register_actor(
        self,
        actor_id: str,
        full_name: str = "",
        email: str = "",
    ) -> Actor:
        """Self-registration. Always creates a citizen."""
        return self.directory.register(actor_id, role=Role.CITIZEN, full_name=full_name, email=email)

    def change_role(self, caller: Actor, target_id: str, role: Union[Role, str]) -> Actor:
        """Change another actor's role and audit it."""
        ADMIN_ONLY.for_action("change roles").check(caller)
        if not isinstance(role, Role):
            try:
                role = Role(role)
            except ValueError:
                raise ValidationError(f"Unknown role '{role}'", field="role")
        previous = self.directory.require(target_id).role
        updated = self.directory.change_role(caller, target_id, role)
        self.audit.record(
            entity_type="actor",
            entity_id=target_id,
            action=AuditAction.ROLE_CHANGED,
            performed_by=caller.actor_id,
            performed_by_role=caller.role.value,
            from_status=previous.value,
            to_status=role.value,
        )
        return updated

    # =========================================================================
    # Operations
    # =========================================================================

    def health(self) -> dict[str, Any]:
        """Operator view: audit gaps, parked notifications, record counts."""
        return {
            "audit": self.audit.health(),
            "notifications": {
                "dead_letters": len(self.dispatcher.dead_letters),
                "max_retries": self.dispatcher.max_retries,
            },
            "records": {c.value: self.store.count(c) for c in Collection},
            "actors": self.directory.count(),
        }


# =============================================================================
# Singleton
# =============================================================================

_service_instance: Optional[LandRegistryService] = None


def get_registry_service(config: Optional[Config] = None) -> LandRegistryService:
    """
    Get or create the process-wide service.

    Args:
        config: Configuration used on first creation (defaults to Config.load())
    """
    global _service_instance
    if _service_instance is None:
        _service_instance = LandRegistryService.from_config(config or Config.load())
    return _service_instance


def reset_registry_service(service: Optional[LandRegistryService] = None) -> None:
    """Replace (or clear) the process-wide service. Used by tests."""
    global _service_instance
    _service_instance = service
