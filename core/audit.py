"""
Audit Log - Append-Only Activity Trail for Every Transition

Every state machine writes one entry per transition. Entries form a SHA-256
hash chain:
- Each entry hashes its own content (sorted keys, consistent serialisation)
- Each entry references the hash of the entry before it
- Tampering with any entry breaks the chain

Writes are best-effort: a failed write never rolls back the transition that
produced it. Failures are logged and counted for operators.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from utils.clock import parse_timestamp, utc_now


logger = logging.getLogger(__name__)


# =============================================================================
# Enums
# =============================================================================


class AuditAction(Enum):
    """Type of action recorded."""

    # Property application
    APPLICATION_SUBMITTED = "application_submitted"
    APPLICATION_APPROVED = "application_approved"
    APPLICATION_REJECTED = "application_rejected"
    APPLICATION_STATUS_CHANGED = "application_status_changed"
    STATUS_CORRECTED = "status_corrected"

    # Documents
    DOCUMENT_UPLOADED = "document_uploaded"
    DOCUMENT_REPLACED = "document_replaced"
    DOCUMENT_VERIFIED = "document_verified"
    DOCUMENT_REJECTED = "document_rejected"
    DOCUMENT_UPDATE_REQUESTED = "document_update_requested"
    ALL_DOCUMENTS_VALIDATED = "all_documents_validated"

    # Payments
    PAYMENT_INITIATED = "payment_initiated"
    PAYMENT_COMPLETED = "payment_completed"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_VERIFIED = "payment_verified"
    PAYMENT_REJECTED = "payment_rejected"

    # Transfers
    TRANSFER_INITIATED = "transfer_initiated"
    TRANSFER_DOCUMENTS_UPLOADED = "transfer_documents_uploaded"
    TRANSFER_DOCUMENTS_REVIEWED = "transfer_documents_reviewed"
    TRANSFER_COMPLIANCE_CHECKED = "transfer_compliance_checked"
    TRANSFER_FEE_PAID = "transfer_fee_paid"
    TRANSFER_APPROVED = "transfer_approved"
    TRANSFER_REJECTED = "transfer_rejected"
    TRANSFER_CANCELLED = "transfer_cancelled"
    TRANSFER_COMPLETED = "transfer_completed"

    # Disputes
    DISPUTE_SUBMITTED = "dispute_submitted"
    DISPUTE_STATUS_CHANGED = "dispute_status_changed"
    DISPUTE_ASSIGNED = "dispute_assigned"
    DISPUTE_EVIDENCE_ADDED = "dispute_evidence_added"
    DISPUTE_RESOLVED = "dispute_resolved"
    DISPUTE_WITHDRAWN = "dispute_withdrawn"

    # Administration
    ROLE_CHANGED = "role_changed"
    ADMIN_PROVISIONED = "admin_provisioned"


# =============================================================================
# Hash Chain Utilities
# =============================================================================


def _serialize_for_hash(data: dict[str, Any]) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def compute_entry_hash(content: dict[str, Any], previous_hash: Optional[str]) -> str:
    """
    Compute SHA-256 hash for an audit entry.

    Including previous_hash creates the chain linkage.
    """
    hashable = dict(content)
    hashable["previous_hash"] = previous_hash
    return hashlib.sha256(_serialize_for_hash(hashable).encode("utf-8")).hexdigest()


# =============================================================================
# Audit Entry
# =============================================================================


@dataclass(frozen=True)
class AuditEntry:
    """Immutable record of one transition."""

    entry_id: str
    sequence: int
    entity_type: str
    entity_id: str
    property_id: Optional[str]
    action: AuditAction
    from_status: Optional[str]
    to_status: Optional[str]
    performed_by: str
    performed_by_role: str
    notes: Optional[str]
    metadata: dict[str, Any]
    timestamp: datetime
    entry_hash: str
    previous_hash: Optional[str]

    def hashable_content(self) -> dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "sequence": self.sequence,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "property_id": self.property_id,
            "action": self.action.value,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "performed_by": self.performed_by,
            "performed_by_role": self.performed_by_role,
            "notes": self.notes,
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat(),
        }

    def verify_hash(self) -> bool:
        """True if the hash matches the content."""
        return self.entry_hash == compute_entry_hash(self.hashable_content(), self.previous_hash)

    def to_dict(self) -> dict[str, Any]:
        data = self.hashable_content()
        data["entry_hash"] = self.entry_hash
        data["previous_hash"] = self.previous_hash
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "AuditEntry":
        return cls(
            entry_id=data["entry_id"],
            sequence=data["sequence"],
            entity_type=data["entity_type"],
            entity_id=data["entity_id"],
            property_id=data.get("property_id"),
            action=AuditAction(data["action"]),
            from_status=data.get("from_status"),
            to_status=data.get("to_status"),
            performed_by=data["performed_by"],
            performed_by_role=data["performed_by_role"],
            notes=data.get("notes"),
            metadata=data.get("metadata") or {},
            timestamp=parse_timestamp(data["timestamp"]),
            entry_hash=data["entry_hash"],
            previous_hash=data.get("previous_hash"),
        )


def verify_audit_chain(entries: list[AuditEntry]) -> dict[str, Any]:
    """
    Verify the integrity of an audit hash chain.

    Returns:
        dict with valid, broken_at (sequence number) and error
    """
    previous: Optional[str] = None
    for entry in entries:
        if entry.previous_hash != previous:
            return {
                "valid": False,
                "broken_at": entry.sequence,
                "error": f"Chain broken at entry {entry.sequence}",
            }
        if not entry.verify_hash():
            return {
                "valid": False,
                "broken_at": entry.sequence,
                "error": f"Hash mismatch at entry {entry.sequence}",
            }
        previous = entry.entry_hash
    return {"valid": True, "broken_at": None, "error": None}


# =============================================================================
# Audit Log
# =============================================================================


@dataclass
class AuditLog:
    """
    Append-only audit log.

    Entries are never modified or deleted. The log keeps running counts of
    failed writes so operators can see audit gaps.
    """

    persist_path: Optional[str] = None
    _entries: list[AuditEntry] = field(default_factory=list, repr=False)
    failed_writes: int = 0
    last_failure: Optional[str] = None

    def __post_init__(self) -> None:
        self._lock = threading.Lock()
        self._path = Path(self.persist_path) if self.persist_path else None
        if self._path and self._path.exists():
            self._load_from_file()

    def _load_from_file(self) -> None:
        try:
            data = json.loads(self._path.read_text())
            self._entries = [AuditEntry.from_dict(e) for e in data.get("entries", [])]
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning("Could not load audit log from %s: %s", self._path, e)

    def _save_to_file(self) -> None:
        if not self._path:
            return
        data = {"entries": [e.to_dict() for e in self._entries]}
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2, default=str))

    def append(
        self,
        *,
        entity_type: str,
        entity_id: str,
        action: AuditAction,
        performed_by: str,
        performed_by_role: str,
        property_id: Optional[str] = None,
        from_status: Optional[str] = None,
        to_status: Optional[str] = None,
        notes: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> AuditEntry:
        """
        Append an entry. Raises on failure; see record() for the
        best-effort variant used by workflows.
        """
        with self._lock:
            previous_hash = self._entries[-1].entry_hash if self._entries else None
            content = {
                "entry_id": f"AUD-{uuid.uuid4().hex[:12].upper()}",
                "sequence": len(self._entries) + 1,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "property_id": property_id,
                "action": action.value,
                "from_status": from_status,
                "to_status": to_status,
                "performed_by": performed_by,
                "performed_by_role": performed_by_role,
                "notes": notes,
                "metadata": dict(metadata or {}),
                "timestamp": utc_now().isoformat(),
            }
            entry_hash = compute_entry_hash(content, previous_hash)
            content["entry_hash"] = entry_hash
            content["previous_hash"] = previous_hash
            entry = AuditEntry.from_dict(content)

            self._entries.append(entry)
            try:
                self._save_to_file()
            except Exception:
                self._entries.pop()
                raise
            return entry

    def record(self, **kwargs: Any) -> Optional[AuditEntry]:
        """
        Best-effort append.

        Returns the entry, or None if the write failed. Failures are logged
        and counted, never raised.
        """
        try:
            return self.append(**kwargs)
        except Exception as e:
            self.failed_writes += 1
            self.last_failure = f"{type(e).__name__}: {e}"
            logger.exception(
                "Audit write failed for %s %s (%s)",
                kwargs.get("entity_type"),
                kwargs.get("entity_id"),
                getattr(kwargs.get("action"), "value", kwargs.get("action")),
            )
            return None

    # =========================================================================
    # Queries
    # =========================================================================

    def entries(self) -> list[AuditEntry]:
        return list(self._entries)

    def for_entity(self, entity_type: str, entity_id: str) -> list[AuditEntry]:
        return [
            e for e in self._entries
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    def for_property(self, property_id: str) -> list[AuditEntry]:
        return [e for e in self._entries if e.property_id == property_id]

    def recent(self, limit: int = 20) -> list[AuditEntry]:
        return list(reversed(self._entries[-limit:]))

    def verify_chain(self) -> dict[str, Any]:
        result = verify_audit_chain(self._entries)
        result["entry_count"] = len(self._entries)
        return result

    def health(self) -> dict[str, Any]:
        """Operator-facing status."""
        return {
            "entry_count": len(self._entries),
            "failed_writes": self.failed_writes,
            "last_failure": self.last_failure,
            "chain_valid": verify_audit_chain(self._entries)["valid"],
        }
