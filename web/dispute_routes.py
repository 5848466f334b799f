"""
Dispute Routes

Every dispute in a response carries its priority, computed at read time.

Routes:
- POST /disputes                    - File a dispute
- GET  /disputes                    - List disputes (highest priority first)
- GET  /disputes/{id}               - Dispute detail
- POST /disputes/{id}/status        - Move along legal paths (officials)
- POST /disputes/{id}/assign        - Assign a land officer (admin)
- POST /disputes/{id}/resolve       - Close with a decision (officials)
- POST /disputes/{id}/withdraw      - Withdraw (disputant)
- POST /disputes/{id}/evidence      - Add evidence
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from core.actors import Actor
from core.dispute.schema import Dispute
from core.service import LandRegistryService
from web.dependencies import current_actor, get_service
from web.schemas import (
    AddEvidenceRequest,
    AssignDisputeRequest,
    DisputeStatusRequest,
    FileDisputeRequest,
    RejectRequest,
    ResolveDisputeRequest,
)


router = APIRouter(prefix="/disputes", tags=["disputes"])


def _view(service: LandRegistryService, dispute: Dispute) -> dict:
    data = dispute.to_dict()
    data["priority"] = service.disputes.priority_of(dispute).value
    return data


@router.post("", status_code=201)
async def file_dispute(
    body: FileDisputeRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    dispute = service.disputes.file_dispute(
        actor,
        property_id=body.property_id,
        dispute_type=body.dispute_type,
        title=body.title,
        description=body.description,
        evidence=[e.model_dump() for e in body.evidence],
    )
    return _view(service, dispute)


@router.get("")
async def list_disputes(
    property_id: Optional[str] = None,
    status: Optional[str] = None,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    disputes = service.disputes.list_disputes(actor, property_id=property_id, status=status)
    return {"disputes": [_view(service, d) for d in disputes], "count": len(disputes)}


@router.get("/{dispute_id}")
async def get_dispute(
    dispute_id: str,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    return _view(service, service.disputes.get_dispute(actor, dispute_id))


@router.post("/{dispute_id}/status")
async def update_dispute_status(
    dispute_id: str,
    body: DisputeStatusRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    dispute = service.disputes.update_status(actor, dispute_id, body.status, notes=body.notes)
    return _view(service, dispute)


@router.post("/{dispute_id}/assign")
async def assign_dispute(
    dispute_id: str,
    body: AssignDisputeRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    dispute = service.disputes.assign_dispute(actor, dispute_id, body.officer_id, notes=body.notes)
    return _view(service, dispute)


@router.post("/{dispute_id}/resolve")
async def resolve_dispute(
    dispute_id: str,
    body: ResolveDisputeRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    dispute = service.disputes.resolve_dispute(
        actor,
        dispute_id,
        decision=body.decision,
        resolution_notes=body.resolution_notes,
        action_required=body.action_required,
    )
    return _view(service, dispute)


@router.post("/{dispute_id}/withdraw")
async def withdraw_dispute(
    dispute_id: str,
    body: RejectRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    return _view(service, service.disputes.withdraw_dispute(actor, dispute_id, reason=body.reason))


@router.post("/{dispute_id}/evidence")
async def add_evidence(
    dispute_id: str,
    body: AddEvidenceRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    dispute = service.disputes.add_evidence(
        actor, dispute_id, [e.model_dump() for e in body.evidence]
    )
    return _view(service, dispute)
