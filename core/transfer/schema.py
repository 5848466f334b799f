"""
Transfer Schema - Ownership Transfers of Registered Properties

A transfer walks a linear progression toward completed, with rejected and
cancelled reachable from every state before it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Final, Optional

from core.errors import ValidationError
from core.registration.schema import (
    ALLOWED_MIME_TYPES,
    MAX_FILE_SIZE_BYTES,
    DocumentStatus,
    generate_id,
)
from core.timeline import TimelineEntry
from utils.clock import parse_timestamp


class TransferType(Enum):
    SALE = "sale"
    INHERITANCE = "inheritance"
    GIFT = "gift"
    COURT_ORDER = "court_order"
    GOVERNMENT_ACQUISITION = "government_acquisition"
    EXCHANGE = "exchange"
    OTHER = "other"


class TransferStatus(Enum):
    INITIATED = "initiated"
    DOCUMENTS_PENDING = "documents_pending"
    DOCUMENTS_SUBMITTED = "documents_submitted"
    UNDER_REVIEW = "under_review"
    COMPLIANCE_CHECK = "compliance_check"
    APPROVED = "approved"

    # Final states
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


TERMINAL_TRANSFER_STATUSES: Final[frozenset[TransferStatus]] = frozenset(
    {TransferStatus.COMPLETED, TransferStatus.REJECTED, TransferStatus.CANCELLED}
)


class TransferParty(Enum):
    """Which side of the transfer supplied a document."""

    PREVIOUS_OWNER = "previous_owner"
    NEW_OWNER = "new_owner"


class RiskLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class Money:
    amount: Decimal
    currency: str = "ETB"

    def to_dict(self) -> dict[str, str]:
        return {"amount": str(self.amount), "currency": self.currency}

    @classmethod
    def from_dict(cls, data: dict) -> "Money":
        return cls(amount=Decimal(data["amount"]), currency=data.get("currency", "ETB"))


@dataclass
class TransferDocument:
    """A document supplied by one of the transfer parties."""

    document_type: str
    file_name: str
    file_size: int
    mime_type: str
    uploaded_by: str
    party: TransferParty

    document_id: Optional[str] = None
    status: DocumentStatus = DocumentStatus.PENDING
    notes: Optional[str] = None
    uploaded_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.document_type or not str(self.document_type).strip():
            raise ValidationError("document_type is required", field="document_type")
        if not self.file_name or not self.file_name.strip():
            raise ValidationError("file_name is required", field="file_name")
        if self.file_size is None or not 0 < self.file_size <= MAX_FILE_SIZE_BYTES:
            raise ValidationError("file_size must be between 1 byte and 10MB", field="file_size")
        if self.mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(f"Unsupported file type {self.mime_type}", field="mime_type")
        if not self.document_id:
            self.document_id = generate_id("TDOC")

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "document_type": self.document_type,
            "file_name": self.file_name,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "uploaded_by": self.uploaded_by,
            "party": self.party.value,
            "status": self.status.value,
            "notes": self.notes,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
            "reviewed_by": self.reviewed_by,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TransferDocument":
        return cls(
            document_id=data["document_id"],
            document_type=data["document_type"],
            file_name=data["file_name"],
            file_size=data["file_size"],
            mime_type=data["mime_type"],
            uploaded_by=data["uploaded_by"],
            party=TransferParty(data["party"]),
            status=DocumentStatus(data["status"]),
            notes=data.get("notes"),
            uploaded_at=parse_timestamp(data["uploaded_at"]) if data.get("uploaded_at") else None,
            reviewed_by=data.get("reviewed_by"),
        )


@dataclass
class ComplianceChecks:
    """
    Officer checklist. None means not yet checked.

    A transfer can only be approved once all three checks pass and the risk
    level is not high.
    """

    legal_compliance: Optional[bool] = None
    tax_clearance: Optional[bool] = None
    fraud_prevention: Optional[bool] = None
    risk_level: Optional[RiskLevel] = None
    notes: Optional[str] = None
    checked_by: Optional[str] = None
    checked_at: Optional[datetime] = None

    def failed_checks(self) -> list[str]:
        failed = [
            name
            for name in ("legal_compliance", "tax_clearance", "fraud_prevention")
            if getattr(self, name) is not True
        ]
        if self.risk_level is None:
            failed.append("risk_level not assessed")
        elif self.risk_level == RiskLevel.HIGH:
            failed.append("risk_level is high")
        return failed

    @property
    def all_passed(self) -> bool:
        return not self.failed_checks()

    def to_dict(self) -> dict[str, Any]:
        return {
            "legal_compliance": self.legal_compliance,
            "tax_clearance": self.tax_clearance,
            "fraud_prevention": self.fraud_prevention,
            "risk_level": self.risk_level.value if self.risk_level else None,
            "notes": self.notes,
            "checked_by": self.checked_by,
            "checked_at": self.checked_at.isoformat() if self.checked_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ComplianceChecks":
        return cls(
            legal_compliance=data.get("legal_compliance"),
            tax_clearance=data.get("tax_clearance"),
            fraud_prevention=data.get("fraud_prevention"),
            risk_level=RiskLevel(data["risk_level"]) if data.get("risk_level") else None,
            notes=data.get("notes"),
            checked_by=data.get("checked_by"),
            checked_at=parse_timestamp(data["checked_at"]) if data.get("checked_at") else None,
        )


@dataclass
class Transfer:
    """An ownership transfer of one approved property."""

    property_id: str
    transfer_type: TransferType
    previous_owner_id: str
    new_owner_id: str
    transfer_value: Money
    initiated_by: str
    transfer_reason: Optional[str] = None

    transfer_id: Optional[str] = None
    status: TransferStatus = TransferStatus.INITIATED
    initiation_date: Optional[datetime] = None
    documents: list[TransferDocument] = field(default_factory=list)
    compliance_checks: ComplianceChecks = field(default_factory=ComplianceChecks)
    fee_paid: bool = False
    timeline: list[TimelineEntry] = field(default_factory=list)
    reviewed_by: Optional[str] = None
    review_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    completion_date: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.transfer_id:
            self.transfer_id = generate_id("TRF")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_TRANSFER_STATUSES

    @property
    def parties(self) -> tuple[str, str]:
        return (self.previous_owner_id, self.new_owner_id)

    def party_of(self, actor_id: str) -> Optional[TransferParty]:
        if actor_id == self.previous_owner_id:
            return TransferParty.PREVIOUS_OWNER
        if actor_id == self.new_owner_id:
            return TransferParty.NEW_OWNER
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "transfer_id": self.transfer_id,
            "property_id": self.property_id,
            "transfer_type": self.transfer_type.value,
            "previous_owner_id": self.previous_owner_id,
            "new_owner_id": self.new_owner_id,
            "transfer_value": self.transfer_value.to_dict(),
            "transfer_reason": self.transfer_reason,
            "initiated_by": self.initiated_by,
            "status": self.status.value,
            "initiation_date": self.initiation_date.isoformat() if self.initiation_date else None,
            "documents": [d.to_dict() for d in self.documents],
            "compliance_checks": self.compliance_checks.to_dict(),
            "fee_paid": self.fee_paid,
            "timeline": [t.to_dict() for t in self.timeline],
            "reviewed_by": self.reviewed_by,
            "review_notes": self.review_notes,
            "rejection_reason": self.rejection_reason,
            "completion_date": self.completion_date.isoformat() if self.completion_date else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Transfer":
        return cls(
            transfer_id=data["transfer_id"],
            property_id=data["property_id"],
            transfer_type=TransferType(data["transfer_type"]),
            previous_owner_id=data["previous_owner_id"],
            new_owner_id=data["new_owner_id"],
            transfer_value=Money.from_dict(data["transfer_value"]),
            transfer_reason=data.get("transfer_reason"),
            initiated_by=data["initiated_by"],
            status=TransferStatus(data["status"]),
            initiation_date=(
                parse_timestamp(data["initiation_date"]) if data.get("initiation_date") else None
            ),
            documents=[TransferDocument.from_dict(d) for d in data.get("documents", [])],
            compliance_checks=ComplianceChecks.from_dict(data.get("compliance_checks") or {}),
            fee_paid=data.get("fee_paid", False),
            timeline=[TimelineEntry.from_dict(t) for t in data.get("timeline", [])],
            reviewed_by=data.get("reviewed_by"),
            review_notes=data.get("review_notes"),
            rejection_reason=data.get("rejection_reason"),
            completion_date=(
                parse_timestamp(data["completion_date"]) if data.get("completion_date") else None
            ),
        )
