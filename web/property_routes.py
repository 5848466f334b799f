"""
Property and Document Routes

Routes:
- POST /properties                         - Submit an application
- GET  /properties                         - List applications
- GET  /properties/{id}                    - Application detail
- GET  /properties/{id}/fee                - Registration fee quote
- POST /properties/{id}/approve            - Approve (officials, not the owner)
- POST /properties/{id}/reject             - Reject with a reason
- POST /properties/{id}/documents          - Upload document metadata
- GET  /properties/{id}/documents          - List documents
- GET  /properties/{id}/audit              - Audit trail for the property
- POST /documents/{id}/verify              - Verify a document
- POST /documents/{id}/reject              - Reject a document
- POST /documents/{id}/request-update      - Ask the owner for a new file
- PUT  /documents/{id}                     - Replace the file
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from core.access import OWNER_OR_OFFICIAL
from core.actors import Actor
from core.service import LandRegistryService
from web.dependencies import current_actor, get_service
from web.schemas import (
    DocumentReviewRequest,
    RejectRequest,
    ReplaceDocumentRequest,
    ReviewRequest,
    SubmitApplicationRequest,
    UploadDocumentRequest,
)


router = APIRouter(tags=["properties"])


# =============================================================================
# Applications
# =============================================================================


@router.post("/properties", status_code=201)
async def submit_application(
    body: SubmitApplicationRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    application = service.properties.submit(
        actor,
        plot_number=body.plot_number,
        location=body.location.model_dump(),
        area=body.area,
        property_type=body.property_type,
    )
    return application.to_dict()


@router.get("/properties")
async def list_applications(
    owner_id: Optional[str] = None,
    status: Optional[str] = None,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    applications = service.properties.list_applications(actor, owner_id=owner_id, status=status)
    return {"properties": [a.to_dict() for a in applications], "count": len(applications)}


@router.get("/properties/{property_id}")
async def get_application(
    property_id: str,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    return service.properties.get_application(property_id, actor=actor).to_dict()


@router.get("/properties/{property_id}/fee")
async def get_fee_quote(
    property_id: str,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    service.properties.get_application(property_id, actor=actor)
    return service.properties.get_fee_quote(property_id).to_dict()


@router.post("/properties/{property_id}/approve")
async def approve_application(
    property_id: str,
    body: ReviewRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    return service.properties.approve(actor, property_id, notes=body.notes).to_dict()


@router.post("/properties/{property_id}/reject")
async def reject_application(
    property_id: str,
    body: RejectRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    return service.properties.reject(actor, property_id, reason=body.reason).to_dict()


@router.get("/properties/{property_id}/audit")
async def property_audit_trail(
    property_id: str,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    application = service.properties.get_application(property_id)
    OWNER_OR_OFFICIAL.for_action("view this audit trail").check(actor, [application.owner_id])
    entries = service.audit.for_property(property_id)
    return {"entries": [e.to_dict() for e in entries], "count": len(entries)}


# =============================================================================
# Documents
# =============================================================================


@router.post("/properties/{property_id}/documents", status_code=201)
async def upload_document(
    property_id: str,
    body: UploadDocumentRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    document = service.documents.upload_document(
        actor,
        property_id,
        document_type=body.document_type,
        file_name=body.file_name,
        file_size=body.file_size,
        mime_type=body.mime_type,
    )
    return document.to_dict()


@router.get("/properties/{property_id}/documents")
async def list_documents(
    property_id: str,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    documents = service.documents.list_documents(actor, property_id)
    return {"documents": [d.to_dict() for d in documents], "count": len(documents)}


@router.post("/documents/{document_id}/verify")
async def verify_document(
    document_id: str,
    body: DocumentReviewRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    document = service.documents.verify_document(
        actor, document_id, notes=body.notes, reverify=body.reverify
    )
    return document.to_dict()


@router.post("/documents/{document_id}/reject")
async def reject_document(
    document_id: str,
    body: DocumentReviewRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    document = service.documents.reject_document(
        actor, document_id, notes=body.notes, reverify=body.reverify
    )
    return document.to_dict()


@router.post("/documents/{document_id}/request-update")
async def request_document_update(
    document_id: str,
    body: DocumentReviewRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    return service.documents.request_document_update(actor, document_id, notes=body.notes).to_dict()


@router.put("/documents/{document_id}")
async def replace_document(
    document_id: str,
    body: ReplaceDocumentRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    document = service.documents.replace_document(
        actor,
        document_id,
        file_name=body.file_name,
        file_size=body.file_size,
        mime_type=body.mime_type,
    )
    return document.to_dict()
