"""
Land Registry Workflow Engine - Core Business Logic

State machines for property applications, documents, payments, ownership
transfers and disputes:
1. Actor Directory (roles)
2. Access guards (role and ownership rules)
3. Workflow store (transactional, JSON-persisted)
4. Workflows (registration, transfer, dispute)
5. Audit log (hash-chained, best-effort)
6. Notifications (fire-and-forget with retry)
"""

from .errors import (
    RegistryError,
    NotFoundError,
    ForbiddenError,
    ValidationError,
    InvalidAmountError,
    ConflictError,
    PreconditionFailedError,
    InvalidStateError,
)
from .actors import Actor, ActorDirectory, Role
from .access import Guard, Ownership
from .audit import AuditAction, AuditEntry, AuditLog
from .notifications import (
    InMemoryNotificationSink,
    LoggingNotificationSink,
    NotificationDispatcher,
    TransitionEvent,
)
from .fees import FeeQuote, FeeSchedule
from .store import Collection, WorkflowStore
from .service import LandRegistryService, get_registry_service, reset_registry_service

__all__ = [
    # Errors
    "RegistryError",
    "NotFoundError",
    "ForbiddenError",
    "ValidationError",
    "InvalidAmountError",
    "ConflictError",
    "PreconditionFailedError",
    "InvalidStateError",
    # Actors and access
    "Actor",
    "ActorDirectory",
    "Role",
    "Guard",
    "Ownership",
    # Audit and notifications
    "AuditAction",
    "AuditEntry",
    "AuditLog",
    "InMemoryNotificationSink",
    "LoggingNotificationSink",
    "NotificationDispatcher",
    "TransitionEvent",
    # Fees and storage
    "FeeQuote",
    "FeeSchedule",
    "Collection",
    "WorkflowStore",
    # Service
    "LandRegistryService",
    "get_registry_service",
    "reset_registry_service",
]
