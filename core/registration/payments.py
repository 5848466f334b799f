"""
Payment Verification Workflow

A payment is scoped to exactly one property application or transfer. The
payment rail reports completion or failure; an official then verifies the
completed payment against the computed fee, exactly, with no rounding.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional, Union

from core.access import AUTHENTICATED, OFFICIALS, OWNER_ONLY, OWNER_OR_OFFICIAL
from core.actors import Actor
from core.audit import AuditAction
from core.context import Transition, WorkflowContext
from core.errors import (
    ConflictError,
    InvalidAmountError,
    InvalidStateError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
    require_text,
)
from core.fees import FeeQuote, require_positive
from core.registration.aggregate import (
    load_application,
    payments_for,
    refresh_application,
    registration_fee_verified,
)
from core.registration.schema import (
    Payment,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    PropertyStatus,
    VerificationStatus,
)
from core.store import Collection, Transaction
from core.transfer.workflow import load_transfer, record_fee_paid
from utils.formatting import format_currency


logger = logging.getLogger(__name__)

RAIL_OUTCOMES = (PaymentStatus.COMPLETED, PaymentStatus.FAILED)
PROPERTY_PAYMENT_TYPES = (
    PaymentType.REGISTRATION_FEE,
    PaymentType.CERTIFICATE_FEE,
    PaymentType.MODIFICATION_FEE,
)


def _parse_enum(enum_cls, value, field: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Unknown {field} '{value}'; expected one of: {allowed}", field=field)


def _load_payment(tx: Transaction, payment_id: str) -> Payment:
    record = tx.get(Collection.PAYMENTS, payment_id)
    if record is None:
        raise NotFoundError("Payment", payment_id)
    return Payment.from_dict(record)


class PaymentWorkflow:
    """Per-payment review state for applications and transfers."""

    def __init__(self, ctx: WorkflowContext):
        self.ctx = ctx

    def initiate_payment(
        self,
        actor: Actor,
        amount: Union[Decimal, int, str],
        payment_method: Union[PaymentMethod, str],
        method_details: Optional[dict[str, Any]] = None,
        property_id: Optional[str] = None,
        transfer_id: Optional[str] = None,
        payment_type: Optional[Union[PaymentType, str]] = None,
    ) -> Payment:
        """
        Create a pending payment.

        Property payments default to the registration fee and must come from
        the owner. Transfer payments are the transfer fee and may come from
        either party.

        Raises:
            ValidationError: Neither or both scopes, float amount, bad enum
            NotFoundError: Unknown property or transfer
            ForbiddenError: Caller is not the payer
            InvalidAmountError: amount <= 0
            ConflictError: Already paid, or the scope is closed
        """
        if bool(property_id) == bool(transfer_id):
            raise ValidationError("Provide exactly one of property_id or transfer_id")

        with self.ctx.store.transaction() as tx:
            if property_id:
                application = load_application(tx, property_id)
                OWNER_ONLY.for_action("pay for this application").check(
                    actor, [application.owner_id]
                )
                kind = _parse_enum(PaymentType, payment_type or PaymentType.REGISTRATION_FEE, "payment_type")
                if kind not in PROPERTY_PAYMENT_TYPES:
                    raise ValidationError(
                        f"{kind.value} cannot be paid against a property", field="payment_type"
                    )
            else:
                transfer = load_transfer(tx, transfer_id)
                OWNER_ONLY.for_action("pay for this transfer").check(actor, transfer.parties)
                kind = _parse_enum(PaymentType, payment_type or PaymentType.TRANSFER_FEE, "payment_type")
                if kind != PaymentType.TRANSFER_FEE:
                    raise ValidationError(
                        "Only the transfer fee can be paid against a transfer", field="payment_type"
                    )

            method = _parse_enum(PaymentMethod, payment_method, "payment_method")
            value = require_positive(amount, "amount")

            if property_id:
                self._check_property_payable(tx, application, kind)
            else:
                if transfer.is_terminal:
                    raise ConflictError(f"Transfer {transfer_id} is already {transfer.status.value}")
                if transfer.fee_paid:
                    raise ConflictError(f"The fee for transfer {transfer_id} is already paid")

            payment = Payment(
                payer_id=actor.actor_id,
                amount=value,
                currency=self.ctx.fees.currency,
                payment_type=kind,
                payment_method=method,
                payment_method_details=dict(method_details or {}),
                property_id=property_id,
                transfer_id=transfer_id,
                created_at=self.ctx.now(),
            )
            tx.insert(Collection.PAYMENTS, payment.payment_id, payment.to_dict())
            derived = []
            if property_id:
                _, derived = refresh_application(tx, property_id, self.ctx.now())

        logger.info(
            "Payment %s initiated: %s %s %s via %s",
            payment.payment_id,
            kind.value,
            value,
            payment.currency,
            method.value,
        )
        self.ctx.emit(
            [
                Transition(
                    entity_type="payment",
                    entity_id=payment.payment_id,
                    property_id=property_id or transfer.property_id,
                    action=AuditAction.PAYMENT_INITIATED,
                    to_status=payment.status.value,
                    metadata={
                        "amount": str(value),
                        "payment_type": kind.value,
                        "payment_method": method.value,
                        "transfer_id": transfer_id,
                    },
                ),
                *derived,
            ],
            actor,
        )
        return payment

    @staticmethod
    def _check_property_payable(tx: Transaction, application, kind: PaymentType) -> None:
        if kind == PaymentType.REGISTRATION_FEE:
            if application.is_terminal:
                raise ConflictError(
                    f"Application {application.property_id} is already {application.status.value}"
                )
            if registration_fee_verified(payments_for(tx, application.property_id)):
                raise ConflictError(
                    f"The registration fee for {application.property_id} is already paid"
                )
        elif application.status != PropertyStatus.APPROVED:
            raise PreconditionFailedError(
                f"{kind.value} can only be paid on an approved property",
                missing=["property not yet approved"],
            )

    def mark_payment_status(
        self,
        payment_id: str,
        status: Union[PaymentStatus, str],
        transaction_id: Optional[str] = None,
    ) -> Payment:
        """
        Record the payment rail's outcome. Only pending payments move.

        Raises:
            NotFoundError: Unknown payment
            ValidationError: status is not completed or failed
            ConflictError: Payment is no longer pending
        """
        target = _parse_enum(PaymentStatus, status, "status")
        if target not in RAIL_OUTCOMES:
            raise ValidationError("status must be completed or failed", field="status")

        with self.ctx.store.transaction() as tx:
            payment = _load_payment(tx, payment_id)
            if payment.status != PaymentStatus.PENDING:
                raise ConflictError(
                    f"Payment {payment_id} is already {payment.status.value}",
                    status=payment.status.value,
                )
            previous = payment.status
            payment.status = target
            if transaction_id:
                payment.transaction_id = transaction_id
            if target == PaymentStatus.COMPLETED:
                payment.completed_at = self.ctx.now()
            tx.put(Collection.PAYMENTS, payment_id, payment.to_dict())
            scope_property = payment.property_id or load_transfer(tx, payment.transfer_id).property_id

        logger.info("Payment %s reported %s by the rail", payment_id, target.value)
        self.ctx.emit(
            [
                Transition(
                    entity_type="payment",
                    entity_id=payment_id,
                    property_id=scope_property,
                    action=(
                        AuditAction.PAYMENT_COMPLETED
                        if target == PaymentStatus.COMPLETED
                        else AuditAction.PAYMENT_FAILED
                    ),
                    from_status=previous.value,
                    to_status=target.value,
                    metadata={"transaction_id": payment.transaction_id},
                )
            ]
        )
        return payment

    def expected_fee(self, tx: Transaction, payment: Payment) -> FeeQuote:
        if payment.transfer_id:
            transfer = load_transfer(tx, payment.transfer_id)
            return self.ctx.fees.transfer_fee(transfer.transfer_value.amount)
        if payment.payment_type == PaymentType.REGISTRATION_FEE:
            application = load_application(tx, payment.property_id)
            return self.ctx.fees.registration_fee(application.property_type, application.area)
        return self.ctx.fees.flat_fee(payment.payment_type)

    def verify_payment(self, actor: Actor, payment_id: str, notes: Optional[str] = None) -> Payment:
        """
        Verify a completed payment whose amount equals the computed fee.

        Property payments then recompute payment_completed; transfer payments
        mark the fee paid and advance an initiated transfer.

        Raises:
            NotFoundError: Unknown payment
            ForbiddenError: Caller is not a land officer or admin
            InvalidStateError: Payment is not completed
            ConflictError: Payment already verified or rejected, the fee is
                already settled, or the transfer is closed
            InvalidAmountError: Amount differs from the computed fee
        """
        with self.ctx.store.transaction() as tx:
            payment = _load_payment(tx, payment_id)
            OFFICIALS.for_action("verify payments").check(actor)
            self._require_reviewable(payment, VerificationStatus.VERIFIED)

            quote = self.expected_fee(tx, payment)
            if payment.amount != quote.total:
                raise InvalidAmountError(
                    f"Paid {format_currency(payment.amount, payment.currency)} but the fee is "
                    f"{format_currency(quote.total, quote.currency)}",
                    field="amount",
                )
            if (
                payment.property_id
                and payment.payment_type == PaymentType.REGISTRATION_FEE
                and registration_fee_verified(payments_for(tx, payment.property_id))
            ):
                raise ConflictError(
                    f"Registration fee for {payment.property_id} is already verified",
                    property_id=payment.property_id,
                )

            now = self.ctx.now()
            payment.verification_status = VerificationStatus.VERIFIED
            payment.verification_notes = notes.strip() if notes and notes.strip() else None
            payment.verified_by = actor.actor_id
            payment.verified_at = now
            tx.put(Collection.PAYMENTS, payment_id, payment.to_dict())

            if payment.property_id:
                scope_property = payment.property_id
                _, derived = refresh_application(tx, payment.property_id, now)
            else:
                transfer = load_transfer(tx, payment.transfer_id)
                scope_property = transfer.property_id
                derived = [record_fee_paid(tx, transfer, actor, now)]

        logger.info("Payment %s verified by %s", payment_id, actor.actor_id)
        self.ctx.emit(
            [
                Transition(
                    entity_type="payment",
                    entity_id=payment_id,
                    property_id=scope_property,
                    action=AuditAction.PAYMENT_VERIFIED,
                    from_status=VerificationStatus.UNSET.value,
                    to_status=VerificationStatus.VERIFIED.value,
                    notes=payment.verification_notes,
                    metadata={"amount": str(payment.amount)},
                ),
                *derived,
            ],
            actor,
        )
        return payment

    def reject_payment(self, actor: Actor, payment_id: str, notes: Optional[str]) -> Payment:
        """Reject a completed payment. Notes are required."""
        with self.ctx.store.transaction() as tx:
            payment = _load_payment(tx, payment_id)
            OFFICIALS.for_action("reject payments").check(actor)
            notes = require_text(notes, "notes", "Rejection notes")
            self._require_reviewable(payment, VerificationStatus.REJECTED)

            payment.verification_status = VerificationStatus.REJECTED
            payment.verification_notes = notes
            payment.verified_by = actor.actor_id
            payment.verified_at = self.ctx.now()
            tx.put(Collection.PAYMENTS, payment_id, payment.to_dict())
            scope_property = payment.property_id or load_transfer(tx, payment.transfer_id).property_id

        logger.info("Payment %s rejected by %s", payment_id, actor.actor_id)
        self.ctx.emit(
            [
                Transition(
                    entity_type="payment",
                    entity_id=payment_id,
                    property_id=scope_property,
                    action=AuditAction.PAYMENT_REJECTED,
                    from_status=VerificationStatus.UNSET.value,
                    to_status=VerificationStatus.REJECTED.value,
                    notes=notes,
                )
            ],
            actor,
        )
        return payment

    @staticmethod
    def _require_reviewable(payment: Payment, target: VerificationStatus) -> None:
        if payment.status != PaymentStatus.COMPLETED:
            raise InvalidStateError(
                "Payment",
                payment.status.value,
                target.value,
                "only completed payments can be reviewed",
            )
        if payment.verification_status != VerificationStatus.UNSET:
            raise ConflictError(
                f"Payment {payment.payment_id} is already {payment.verification_status.value}",
                verification_status=payment.verification_status.value,
            )

    # =========================================================================
    # Reads
    # =========================================================================

    def get_payment(self, actor: Actor, payment_id: str) -> Payment:
        AUTHENTICATED.for_action("view payments").check(actor)
        with self.ctx.store.transaction() as tx:
            payment = _load_payment(tx, payment_id)
        OWNER_OR_OFFICIAL.for_action("view this payment").check(actor, [payment.payer_id])
        return payment

    def list_payments(
        self,
        actor: Actor,
        property_id: Optional[str] = None,
        transfer_id: Optional[str] = None,
    ) -> list[Payment]:
        """Officials see every payment; citizens see their own."""
        AUTHENTICATED.for_action("list payments").check(actor)

        def visible(record: dict) -> bool:
            if property_id and record.get("property_id") != property_id:
                return False
            if transfer_id and record.get("transfer_id") != transfer_id:
                return False
            return actor.is_official or record["payer_id"] == actor.actor_id

        payments = [Payment.from_dict(r) for r in self.ctx.store.find(Collection.PAYMENTS, visible)]
        payments.sort(key=lambda p: p.created_at, reverse=True)
        return payments
