"""
Payment Routes

Routes:
- POST /payments                  - Initiate a payment
- GET  /payments                  - List payments
- GET  /payments/{id}             - Payment detail
- POST /payments/callback         - Payment rail outcome (HMAC-signed)
- POST /payments/{id}/verify      - Verify against the computed fee
- POST /payments/{id}/reject      - Reject with notes
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from core.actors import Actor
from core.service import LandRegistryService
from web.dependencies import current_actor, get_service, verify_payment_signature
from web.schemas import InitiatePaymentRequest, PaymentCallbackRequest, ReviewRequest


router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("", status_code=201)
async def initiate_payment(
    body: InitiatePaymentRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    payment = service.payments.initiate_payment(
        actor,
        amount=body.amount,
        payment_method=body.payment_method,
        method_details=body.payment_method_details,
        property_id=body.property_id,
        transfer_id=body.transfer_id,
        payment_type=body.payment_type,
    )
    return payment.to_dict()


@router.get("")
async def list_payments(
    property_id: Optional[str] = None,
    transfer_id: Optional[str] = None,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    payments = service.payments.list_payments(actor, property_id=property_id, transfer_id=transfer_id)
    return {"payments": [p.to_dict() for p in payments], "count": len(payments)}


@router.post("/callback", dependencies=[Depends(verify_payment_signature)])
async def payment_callback(
    body: PaymentCallbackRequest,
    service: LandRegistryService = Depends(get_service),
):
    payment = service.payments.mark_payment_status(
        body.payment_id, body.status, transaction_id=body.transaction_id
    )
    return payment.to_dict()


@router.get("/{payment_id}")
async def get_payment(
    payment_id: str,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    return service.payments.get_payment(actor, payment_id).to_dict()


@router.post("/{payment_id}/verify")
async def verify_payment(
    payment_id: str,
    body: ReviewRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    return service.payments.verify_payment(actor, payment_id, notes=body.notes).to_dict()


@router.post("/{payment_id}/reject")
async def reject_payment(
    payment_id: str,
    body: ReviewRequest,
    actor: Actor = Depends(current_actor),
    service: LandRegistryService = Depends(get_service),
):
    return service.payments.reject_payment(actor, payment_id, notes=body.notes).to_dict()
