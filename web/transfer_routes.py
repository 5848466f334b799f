"""
Transfer Routes

Routes:
- POST /transfers                       - Initiate a transfer
- GET  /transfers                       - List transfers
- GET  /transfers/{id}                  - Transfer detail
- GET  /transfers/{id}/fee              - Transfer fee quote
- POST /transfers/{id}/documents        - Upload party documents
- POST /transfers/{id}/review           - Per-document decisions
- POST /transfers/{id}/compliance       - Record compliance checks
- POST /transfers/{id}/approve          - Approve
- POST /transfers/{id}/reject           - Reject with a reason
- POST /transfers/{id}/cancel           - Cancel with a reason
- POST /transfers/{id}/complete         - Hand over ownership (admin)
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from core.actors import Actor
from core.service import LandRegistryService
from core.transfer.workflow import DocumentDecision
from web.dependencies import current_actor, get_service
from web.schemas import (
    ComplianceChecklistRequest,
    InitiateTransferRequest,
    RejectRequest,
    ReviewRequest,
    ReviewTransferDocumentsRequest,
    UploadTransferDocumentsRequest,
)


router = APIRouter(prefix="/transfers", tags=["transfers"])


@router.post("", status_code=201)
async def initiate_transfer(
    body: InitiateTransferRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    transfer = service.transfers.initiate_transfer(
        actor,
        property_id=body.property_id,
        transfer_type=body.transfer_type,
        new_owner_id=body.new_owner_id,
        transfer_value=body.transfer_value,
        transfer_reason=body.transfer_reason,
    )
    return transfer.to_dict()


@router.get("")
async def list_transfers(
    property_id: Optional[str] = None,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    transfers = service.transfers.list_transfers(actor, property_id=property_id)
    return {"transfers": [t.to_dict() for t in transfers], "count": len(transfers)}


@router.get("/{transfer_id}")
async def get_transfer(
    transfer_id: str,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    return service.transfers.get_transfer(actor, transfer_id).to_dict()


@router.get("/{transfer_id}/fee")
async def get_transfer_fee(
    transfer_id: str,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    service.transfers.get_transfer(actor, transfer_id)
    return service.transfers.get_fee_quote(transfer_id).to_dict()


@router.post("/{transfer_id}/documents")
async def upload_transfer_documents(
    transfer_id: str,
    body: UploadTransferDocumentsRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    transfer = service.transfers.upload_transfer_documents(
        actor, transfer_id, [d.model_dump() for d in body.documents]
    )
    return transfer.to_dict()


@router.post("/{transfer_id}/review")
async def review_transfer_documents(
    transfer_id: str,
    body: ReviewTransferDocumentsRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    decisions = [
        DocumentDecision(document_id=d.document_id, status=d.status, notes=d.notes)
        for d in body.decisions
    ]
    return service.transfers.review_documents(actor, transfer_id, decisions).to_dict()


@router.post("/{transfer_id}/compliance")
async def perform_compliance_checks(
    transfer_id: str,
    body: ComplianceChecklistRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    transfer = service.transfers.perform_compliance_checks(actor, transfer_id, body.model_dump())
    return transfer.to_dict()


@router.post("/{transfer_id}/approve")
async def approve_transfer(
    transfer_id: str,
    body: ReviewRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    return service.transfers.approve_transfer(actor, transfer_id, notes=body.notes).to_dict()


@router.post("/{transfer_id}/reject")
async def reject_transfer(
    transfer_id: str,
    body: RejectRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    return service.transfers.reject_transfer(actor, transfer_id, reason=body.reason).to_dict()


@router.post("/{transfer_id}/cancel")
async def cancel_transfer(
    transfer_id: str,
    body: RejectRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    return service.transfers.cancel_transfer(actor, transfer_id, reason=body.reason).to_dict()


@router.post("/{transfer_id}/complete")
async def complete_transfer(
    transfer_id: str,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    return service.transfers.complete_transfer(actor, transfer_id).to_dict()
