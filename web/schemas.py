"""
Request bodies for the registry API.

Amounts are accepted as strings or integers and converted to Decimal by the
core; JSON floats are not exact, so clients should send strings.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, Field


Amount = Union[int, str]


# =============================================================================
# Actors and administration
# =============================================================================


class RegisterActorRequest(BaseModel):
    actor_id: str
    full_name: str = ""
    email: str = ""


class ProvisionAdminRequest(BaseModel):
    token: str
    actor_id: str
    full_name: str = ""
    email: str = ""


class ChangeRoleRequest(BaseModel):
    role: str


# =============================================================================
# Properties, documents, payments
# =============================================================================


class LocationBody(BaseModel):
    kebele: str
    sub_city: str
    latitude: Optional[str] = None
    longitude: Optional[str] = None


class SubmitApplicationRequest(BaseModel):
    plot_number: str
    location: LocationBody
    area: Amount
    property_type: str


class ReviewRequest(BaseModel):
    notes: Optional[str] = None


class RejectRequest(BaseModel):
    reason: str = ""


class UploadDocumentRequest(BaseModel):
    document_type: str
    file_name: str
    file_size: int
    mime_type: str


class ReplaceDocumentRequest(BaseModel):
    file_name: str
    file_size: int
    mime_type: str


class DocumentReviewRequest(BaseModel):
    notes: Optional[str] = None
    reverify: bool = False


class InitiatePaymentRequest(BaseModel):
    amount: Amount
    payment_method: str
    payment_method_details: dict[str, Any] = Field(default_factory=dict)
    property_id: Optional[str] = None
    transfer_id: Optional[str] = None
    payment_type: Optional[str] = None


class PaymentCallbackRequest(BaseModel):
    payment_id: str
    status: str
    transaction_id: Optional[str] = None


# =============================================================================
# Transfers
# =============================================================================


class InitiateTransferRequest(BaseModel):
    property_id: str
    transfer_type: str
    new_owner_id: str
    transfer_value: Amount
    transfer_reason: Optional[str] = None


class TransferDocumentBody(BaseModel):
    document_type: str
    file_name: str
    file_size: int
    mime_type: str


class UploadTransferDocumentsRequest(BaseModel):
    documents: list[TransferDocumentBody]


class DocumentDecisionBody(BaseModel):
    document_id: str
    status: str
    notes: Optional[str] = None


class ReviewTransferDocumentsRequest(BaseModel):
    decisions: list[DocumentDecisionBody]


class ComplianceChecklistRequest(BaseModel):
    legal_compliance: Optional[bool] = None
    tax_clearance: Optional[bool] = None
    fraud_prevention: Optional[bool] = None
    risk_level: Optional[str] = None
    notes: Optional[str] = None


# =============================================================================
# Disputes
# =============================================================================


class EvidenceBody(BaseModel):
    document_type: str
    document_name: str
    file_name: str
    mime_type: str


class FileDisputeRequest(BaseModel):
    property_id: str
    dispute_type: str
    title: str
    description: str
    evidence: list[EvidenceBody] = Field(default_factory=list)


class DisputeStatusRequest(BaseModel):
    status: str
    notes: str = ""


class AssignDisputeRequest(BaseModel):
    officer_id: str
    notes: Optional[str] = None


class ResolveDisputeRequest(BaseModel):
    decision: str
    resolution_notes: str = ""
    action_required: Optional[str] = None


class AddEvidenceRequest(BaseModel):
    evidence: list[EvidenceBody]
