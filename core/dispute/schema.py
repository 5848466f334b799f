"""
Dispute Schema - Claims Raised Against a Property
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Final, Optional

from core.errors import ValidationError
from core.registration.schema import ALLOWED_MIME_TYPES, generate_id
from core.timeline import TimelineEntry
from utils.clock import parse_timestamp


class DisputeType(Enum):
    OWNERSHIP_DISPUTE = "ownership_dispute"
    BOUNDARY_DISPUTE = "boundary_dispute"
    DOCUMENTATION_ERROR = "documentation_error"
    FRAUDULENT_REGISTRATION = "fraudulent_registration"
    INHERITANCE_DISPUTE = "inheritance_dispute"
    OTHER = "other"


class DisputeStatus(Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    INVESTIGATION = "investigation"
    MEDIATION = "mediation"

    # Final states
    RESOLVED = "resolved"
    DISMISSED = "dismissed"
    WITHDRAWN = "withdrawn"


TERMINAL_DISPUTE_STATUSES: Final[frozenset[DisputeStatus]] = frozenset(
    {DisputeStatus.RESOLVED, DisputeStatus.DISMISSED, DisputeStatus.WITHDRAWN}
)

# Moves allowed through update_status. resolved and withdrawn have their own
# operations.
STATUS_MOVES: Final[dict[DisputeStatus, frozenset[DisputeStatus]]] = {
    DisputeStatus.SUBMITTED: frozenset({DisputeStatus.UNDER_REVIEW, DisputeStatus.DISMISSED}),
    DisputeStatus.UNDER_REVIEW: frozenset(
        {DisputeStatus.INVESTIGATION, DisputeStatus.MEDIATION, DisputeStatus.DISMISSED}
    ),
    DisputeStatus.INVESTIGATION: frozenset({DisputeStatus.MEDIATION, DisputeStatus.DISMISSED}),
    DisputeStatus.MEDIATION: frozenset({DisputeStatus.INVESTIGATION, DisputeStatus.DISMISSED}),
}

RESOLVABLE_STATUSES: Final[frozenset[DisputeStatus]] = frozenset(
    {DisputeStatus.UNDER_REVIEW, DisputeStatus.INVESTIGATION, DisputeStatus.MEDIATION}
)


class ResolutionDecision(Enum):
    IN_FAVOR_OF_DISPUTANT = "in_favor_of_disputant"
    IN_FAVOR_OF_RESPONDENT = "in_favor_of_respondent"
    COMPROMISE = "compromise"
    DISMISSED = "dismissed"


class Priority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class Evidence:
    """Metadata for a supporting file; bytes live in the file store."""

    document_type: str
    document_name: str
    file_name: str
    mime_type: str
    submitted_by: Optional[str] = None
    submitted_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        for name in ("document_type", "document_name", "file_name"):
            if not getattr(self, name) or not str(getattr(self, name)).strip():
                raise ValidationError(f"evidence {name} is required", field=f"evidence.{name}")
        if self.mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                f"Unsupported evidence file type {self.mime_type}", field="evidence.mime_type"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_type": self.document_type,
            "document_name": self.document_name,
            "file_name": self.file_name,
            "mime_type": self.mime_type,
            "submitted_by": self.submitted_by,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Evidence":
        return cls(
            document_type=data["document_type"],
            document_name=data["document_name"],
            file_name=data["file_name"],
            mime_type=data["mime_type"],
            submitted_by=data.get("submitted_by"),
            submitted_at=parse_timestamp(data["submitted_at"]) if data.get("submitted_at") else None,
        )


@dataclass(frozen=True)
class Resolution:
    decision: ResolutionDecision
    resolution_notes: str
    resolved_by: str
    resolution_date: datetime
    action_required: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "decision": self.decision.value,
            "resolution_notes": self.resolution_notes,
            "action_required": self.action_required,
            "resolved_by": self.resolved_by,
            "resolution_date": self.resolution_date.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Resolution":
        return cls(
            decision=ResolutionDecision(data["decision"]),
            resolution_notes=data["resolution_notes"],
            action_required=data.get("action_required"),
            resolved_by=data["resolved_by"],
            resolution_date=parse_timestamp(data["resolution_date"]),
        )


@dataclass
class Dispute:
    """A dispute filed against a property."""

    property_id: str
    disputant_id: str
    dispute_type: DisputeType
    title: str
    description: str

    dispute_id: Optional[str] = None
    status: DisputeStatus = DisputeStatus.SUBMITTED
    assigned_to: Optional[str] = None
    assigned_at: Optional[datetime] = None
    evidence: list[Evidence] = field(default_factory=list)
    timeline: list[TimelineEntry] = field(default_factory=list)
    resolution: Optional[Resolution] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.title or not self.title.strip():
            raise ValidationError("title is required", field="title")
        if not self.description or not self.description.strip():
            raise ValidationError("description is required", field="description")
        self.title = self.title.strip()
        self.description = self.description.strip()
        if not self.dispute_id:
            self.dispute_id = generate_id("DSP")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_DISPUTE_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "dispute_id": self.dispute_id,
            "property_id": self.property_id,
            "disputant_id": self.disputant_id,
            "dispute_type": self.dispute_type.value,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "assigned_to": self.assigned_to,
            "assigned_at": self.assigned_at.isoformat() if self.assigned_at else None,
            "evidence": [e.to_dict() for e in self.evidence],
            "timeline": [t.to_dict() for t in self.timeline],
            "resolution": self.resolution.to_dict() if self.resolution else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Dispute":
        return cls(
            dispute_id=data["dispute_id"],
            property_id=data["property_id"],
            disputant_id=data["disputant_id"],
            dispute_type=DisputeType(data["dispute_type"]),
            title=data["title"],
            description=data["description"],
            status=DisputeStatus(data["status"]),
            assigned_to=data.get("assigned_to"),
            assigned_at=parse_timestamp(data["assigned_at"]) if data.get("assigned_at") else None,
            evidence=[Evidence.from_dict(e) for e in data.get("evidence", [])],
            timeline=[TimelineEntry.from_dict(t) for t in data.get("timeline", [])],
            resolution=Resolution.from_dict(data["resolution"]) if data.get("resolution") else None,
            created_at=parse_timestamp(data["created_at"]) if data.get("created_at") else None,
            updated_at=parse_timestamp(data["updated_at"]) if data.get("updated_at") else None,
        )
