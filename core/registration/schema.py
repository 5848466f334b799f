"""
Registration Schema - Property Applications, Documents and Payments

Defines the records of the registration workflow. Derived flags on the
application (documents_validated, payment_completed) are written only by the
aggregate projection; nothing else sets them.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Final, Optional

from core.errors import ValidationError
from utils.clock import parse_timestamp, utc_now


# =============================================================================
# Enums
# =============================================================================


class PropertyType(Enum):
    """Land use class of the plot."""

    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"
    INDUSTRIAL = "industrial"
    AGRICULTURAL = "agricultural"


class PropertyStatus(Enum):
    """Composite status of a property application."""

    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    DOCUMENTS_VALIDATED = "documents_validated"
    PAYMENT_COMPLETED = "payment_completed"

    # Final states
    APPROVED = "approved"
    REJECTED = "rejected"


TERMINAL_PROPERTY_STATUSES: Final[frozenset[PropertyStatus]] = frozenset(
    {PropertyStatus.APPROVED, PropertyStatus.REJECTED}
)


class DocumentType(Enum):
    """Types of documents a citizen can upload."""

    TITLE_DEED = "title_deed"
    ID_CARD = "id_card"
    TAX_CLEARANCE = "tax_clearance"
    APPLICATION_FORM = "application_form"
    OTHER = "other"


class DocumentStatus(Enum):
    """Review state of a single document."""

    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"
    NEEDS_UPDATE = "needs_update"


TERMINAL_DOCUMENT_STATUSES: Final[frozenset[DocumentStatus]] = frozenset(
    {DocumentStatus.VERIFIED, DocumentStatus.REJECTED}
)


class PaymentType(Enum):
    REGISTRATION_FEE = "registration_fee"
    TRANSFER_FEE = "transfer_fee"
    CERTIFICATE_FEE = "certificate_fee"
    MODIFICATION_FEE = "modification_fee"


class PaymentMethod(Enum):
    CBE_BIRR = "cbe_birr"
    TELEBIRR = "telebirr"
    AMOLE = "amole"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"


class PaymentStatus(Enum):
    """Outcome reported by the payment rail."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class VerificationStatus(Enum):
    """Officer verification of a completed payment."""

    UNSET = "unset"
    VERIFIED = "verified"
    REJECTED = "rejected"


# =============================================================================
# Constants
# =============================================================================

# Documents every application needs verified before documents_validated
REQUIRED_DOCUMENTS: Final[dict[PropertyType, tuple[DocumentType, ...]]] = {
    PropertyType.RESIDENTIAL: (
        DocumentType.TITLE_DEED,
        DocumentType.ID_CARD,
        DocumentType.TAX_CLEARANCE,
    ),
    PropertyType.AGRICULTURAL: (
        DocumentType.TITLE_DEED,
        DocumentType.ID_CARD,
        DocumentType.TAX_CLEARANCE,
    ),
    PropertyType.COMMERCIAL: (
        DocumentType.TITLE_DEED,
        DocumentType.ID_CARD,
        DocumentType.TAX_CLEARANCE,
        DocumentType.APPLICATION_FORM,
    ),
    PropertyType.INDUSTRIAL: (
        DocumentType.TITLE_DEED,
        DocumentType.ID_CARD,
        DocumentType.TAX_CLEARANCE,
        DocumentType.APPLICATION_FORM,
    ),
}

ALLOWED_MIME_TYPES: Final[tuple[str, ...]] = (
    "application/pdf",
    "image/jpeg",
    "image/png",
    "image/tiff",
)

# Maximum file size (10MB)
MAX_FILE_SIZE_BYTES: Final[int] = 10 * 1024 * 1024


# =============================================================================
# Helpers
# =============================================================================


def normalise_plot_number(plot_number: str) -> str:
    """Canonical form used for uniqueness checks (case-insensitive)."""
    return " ".join(plot_number.split()).upper()


def generate_id(prefix: str) -> str:
    """Generate a prefixed unique id, e.g. PROP-1A2B3C4D5E6F."""
    return f"{prefix}-{uuid.uuid4().hex[:12].upper()}"


def _opt_ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_opt_ts(value: Optional[str]) -> Optional[datetime]:
    return parse_timestamp(value) if value else None


# =============================================================================
# Property Application
# =============================================================================


@dataclass(frozen=True)
class Location:
    """Where the plot is."""

    kebele: str
    sub_city: str
    latitude: Optional[Decimal] = None
    longitude: Optional[Decimal] = None

    def __post_init__(self) -> None:
        if not self.kebele or not self.kebele.strip():
            raise ValidationError("kebele is required", field="location.kebele")
        if not self.sub_city or not self.sub_city.strip():
            raise ValidationError("sub_city is required", field="location.sub_city")
        object.__setattr__(self, "kebele", self.kebele.strip())
        object.__setattr__(self, "sub_city", self.sub_city.strip())

    def to_dict(self) -> dict[str, Any]:
        return {
            "kebele": self.kebele,
            "sub_city": self.sub_city,
            "latitude": str(self.latitude) if self.latitude is not None else None,
            "longitude": str(self.longitude) if self.longitude is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Location":
        lat = data.get("latitude")
        lon = data.get("longitude")
        return cls(
            kebele=data["kebele"],
            sub_city=data["sub_city"],
            latitude=Decimal(str(lat)) if lat is not None else None,
            longitude=Decimal(str(lon)) if lon is not None else None,
        )


@dataclass(frozen=True)
class OwnershipRecord:
    """One period of ownership."""

    owner_id: str
    start_date: datetime
    end_date: Optional[datetime] = None
    transfer_type: str = "initial_registration"
    transfer_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "start_date": self.start_date.isoformat(),
            "end_date": _opt_ts(self.end_date),
            "transfer_type": self.transfer_type,
            "transfer_id": self.transfer_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OwnershipRecord":
        return cls(
            owner_id=data["owner_id"],
            start_date=parse_timestamp(data["start_date"]),
            end_date=_parse_opt_ts(data.get("end_date")),
            transfer_type=data.get("transfer_type", "initial_registration"),
            transfer_id=data.get("transfer_id"),
        )


@dataclass
class PropertyApplication:
    """
    A citizen's request to register a plot.

    plot_number is immutable once created. The application is never
    deleted; it only reaches a terminal status.
    """

    plot_number: str
    location: Location
    area: Decimal
    property_type: PropertyType
    owner_id: str

    property_id: Optional[str] = None
    status: PropertyStatus = PropertyStatus.PENDING
    documents_validated: bool = False
    payment_completed: bool = False

    registered_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    review_notes: Optional[str] = None

    ownership_history: list[OwnershipRecord] = field(default_factory=list)
    current_transfer_id: Optional[str] = None
    has_active_dispute: bool = False

    def __post_init__(self) -> None:
        if not self.plot_number or not self.plot_number.strip():
            raise ValidationError("plot_number is required", field="plot_number")
        self.plot_number = " ".join(self.plot_number.split())
        if not self.owner_id:
            raise ValidationError("owner is required", field="owner_id")
        if isinstance(self.area, float):
            raise ValidationError("area must be a decimal, not a binary float", field="area")
        self.area = Decimal(self.area)
        if self.area <= 0:
            raise ValidationError("area must be a positive number", field="area")
        if not self.property_id:
            self.property_id = generate_id("PROP")
        if self.registered_at is None:
            self.registered_at = utc_now()
        if self.updated_at is None:
            self.updated_at = self.registered_at

    @property
    def plot_key(self) -> str:
        return normalise_plot_number(self.plot_number)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PROPERTY_STATUSES

    @property
    def required_document_types(self) -> tuple[DocumentType, ...]:
        return REQUIRED_DOCUMENTS[self.property_type]

    def to_dict(self) -> dict[str, Any]:
        return {
            "property_id": self.property_id,
            "plot_number": self.plot_number,
            "plot_key": self.plot_key,
            "location": self.location.to_dict(),
            "area": str(self.area),
            "property_type": self.property_type.value,
            "owner_id": self.owner_id,
            "status": self.status.value,
            "documents_validated": self.documents_validated,
            "payment_completed": self.payment_completed,
            "registered_at": _opt_ts(self.registered_at),
            "updated_at": _opt_ts(self.updated_at),
            "reviewed_by": self.reviewed_by,
            "review_notes": self.review_notes,
            "ownership_history": [r.to_dict() for r in self.ownership_history],
            "current_transfer_id": self.current_transfer_id,
            "has_active_dispute": self.has_active_dispute,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PropertyApplication":
        return cls(
            property_id=data["property_id"],
            plot_number=data["plot_number"],
            location=Location.from_dict(data["location"]),
            area=Decimal(data["area"]),
            property_type=PropertyType(data["property_type"]),
            owner_id=data["owner_id"],
            status=PropertyStatus(data["status"]),
            documents_validated=data.get("documents_validated", False),
            payment_completed=data.get("payment_completed", False),
            registered_at=_parse_opt_ts(data.get("registered_at")),
            updated_at=_parse_opt_ts(data.get("updated_at")),
            reviewed_by=data.get("reviewed_by"),
            review_notes=data.get("review_notes"),
            ownership_history=[
                OwnershipRecord.from_dict(r) for r in data.get("ownership_history", [])
            ],
            current_transfer_id=data.get("current_transfer_id"),
            has_active_dispute=data.get("has_active_dispute", False),
        )


# =============================================================================
# Document
# =============================================================================


@dataclass
class Document:
    """
    Metadata for an uploaded document.

    The bytes live in the external file store, keyed by document_id.
    """

    property_id: str
    document_type: DocumentType
    file_name: str
    file_size: int
    mime_type: str
    uploaded_by: str

    document_id: Optional[str] = None
    status: DocumentStatus = DocumentStatus.PENDING
    notes: Optional[str] = None
    uploaded_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.file_name or not self.file_name.strip():
            raise ValidationError("file_name is required", field="file_name")
        if self.file_size is None or self.file_size <= 0:
            raise ValidationError("file_size must be positive", field="file_size")
        if self.file_size > MAX_FILE_SIZE_BYTES:
            raise ValidationError(
                f"file exceeds the {MAX_FILE_SIZE_BYTES // (1024 * 1024)}MB limit",
                field="file_size",
            )
        if self.mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                f"Unsupported file type {self.mime_type}; allowed: {', '.join(ALLOWED_MIME_TYPES)}",
                field="mime_type",
            )
        if not self.document_id:
            self.document_id = generate_id("DOC")
        if self.uploaded_at is None:
            self.uploaded_at = utc_now()

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_DOCUMENT_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "property_id": self.property_id,
            "document_type": self.document_type.value,
            "file_name": self.file_name,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "uploaded_by": self.uploaded_by,
            "status": self.status.value,
            "notes": self.notes,
            "uploaded_at": _opt_ts(self.uploaded_at),
            "reviewed_by": self.reviewed_by,
            "reviewed_at": _opt_ts(self.reviewed_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Document":
        return cls(
            document_id=data["document_id"],
            property_id=data["property_id"],
            document_type=DocumentType(data["document_type"]),
            file_name=data["file_name"],
            file_size=data["file_size"],
            mime_type=data["mime_type"],
            uploaded_by=data["uploaded_by"],
            status=DocumentStatus(data["status"]),
            notes=data.get("notes"),
            uploaded_at=_parse_opt_ts(data.get("uploaded_at")),
            reviewed_by=data.get("reviewed_by"),
            reviewed_at=_parse_opt_ts(data.get("reviewed_at")),
        )


# =============================================================================
# Payment
# =============================================================================


@dataclass
class Payment:
    """
    A payment toward a property application or a transfer.

    Exactly one of property_id / transfer_id is set. verification_status
    moves off UNSET only once status is COMPLETED.
    """

    payer_id: str
    amount: Decimal
    payment_type: PaymentType
    payment_method: PaymentMethod
    property_id: Optional[str] = None
    transfer_id: Optional[str] = None
    currency: str = "ETB"
    payment_method_details: dict[str, Any] = field(default_factory=dict)

    payment_id: Optional[str] = None
    transaction_id: Optional[str] = None
    status: PaymentStatus = PaymentStatus.PENDING
    verification_status: VerificationStatus = VerificationStatus.UNSET
    verification_notes: Optional[str] = None
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if bool(self.property_id) == bool(self.transfer_id):
            raise ValidationError("A payment must reference exactly one of property or transfer")
        self.amount = Decimal(self.amount)
        if not self.payment_id:
            self.payment_id = generate_id("PAY")
        if self.created_at is None:
            self.created_at = utc_now()

    @property
    def is_verified(self) -> bool:
        return (
            self.status == PaymentStatus.COMPLETED
            and self.verification_status == VerificationStatus.VERIFIED
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "payment_id": self.payment_id,
            "property_id": self.property_id,
            "transfer_id": self.transfer_id,
            "payer_id": self.payer_id,
            "amount": str(self.amount),
            "currency": self.currency,
            "payment_type": self.payment_type.value,
            "payment_method": self.payment_method.value,
            "payment_method_details": dict(self.payment_method_details),
            "transaction_id": self.transaction_id,
            "status": self.status.value,
            "verification_status": self.verification_status.value,
            "verification_notes": self.verification_notes,
            "verified_by": self.verified_by,
            "verified_at": _opt_ts(self.verified_at),
            "created_at": _opt_ts(self.created_at),
            "completed_at": _opt_ts(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Payment":
        return cls(
            payment_id=data["payment_id"],
            property_id=data.get("property_id"),
            transfer_id=data.get("transfer_id"),
            payer_id=data["payer_id"],
            amount=Decimal(data["amount"]),
            currency=data.get("currency", "ETB"),
            payment_type=PaymentType(data["payment_type"]),
            payment_method=PaymentMethod(data["payment_method"]),
            payment_method_details=data.get("payment_method_details") or {},
            transaction_id=data.get("transaction_id"),
            status=PaymentStatus(data["status"]),
            verification_status=VerificationStatus(data["verification_status"]),
            verification_notes=data.get("verification_notes"),
            verified_by=data.get("verified_by"),
            verified_at=_parse_opt_ts(data.get("verified_at")),
            created_at=_parse_opt_ts(data.get("created_at")),
            completed_at=_parse_opt_ts(data.get("completed_at")),
        )
