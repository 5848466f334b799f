"""
Transfer Workflow - Re-assigning Ownership of an Approved Property

initiated -> documents_pending -> documents_submitted -> under_review
-> compliance_check -> approved -> completed

rejected and cancelled are reachable from every state before completed.
Completion rewrites the property's owner and the transfer's status in one
store transaction: both are observed or neither is.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional, Union

from core.access import (
    ADMIN_ONLY,
    OFFICIALS,
    Guard,
    OFFICIALS_NOT_OWNER,
    OWNER_ONLY,
    OWNER_OR_OFFICIAL,
    Ownership,
)
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
from core.fees import FeeQuote, to_decimal
from core.registration.aggregate import load_application
from core.registration.schema import DocumentStatus, OwnershipRecord, PropertyStatus
from core.store import Collection, Transaction
from core.timeline import TimelineEntry
from core.transfer.schema import (
    ComplianceChecks,
    Money,
    RiskLevel,
    Transfer,
    TransferDocument,
    TransferStatus,
    TransferType,
)


logger = logging.getLogger(__name__)

REVIEWABLE_STATES = (TransferStatus.DOCUMENTS_SUBMITTED, TransferStatus.UNDER_REVIEW)
UPLOADABLE_STATES = (TransferStatus.INITIATED, TransferStatus.DOCUMENTS_PENDING)
COMPLIANCE_STATES = (TransferStatus.UNDER_REVIEW, TransferStatus.COMPLIANCE_CHECK)

COMPLETE_GUARD = Guard(
    action="complete transfers",
    roles=ADMIN_ONLY.roles,
    ownership=Ownership.NOT_OWNER,
)


@dataclass(frozen=True)
class DocumentDecision:
    """An officer's verdict on one transfer document."""

    document_id: str
    status: Union[DocumentStatus, str]
    notes: Optional[str] = None


def load_transfer(tx: Transaction, transfer_id: str) -> Transfer:
    record = tx.get(Collection.TRANSFERS, transfer_id)
    if record is None:
        raise NotFoundError("Transfer", transfer_id)
    return Transfer.from_dict(record)


def _require_open(transfer: Transfer) -> None:
    if transfer.is_terminal:
        raise ConflictError(
            f"Transfer {transfer.transfer_id} is already {transfer.status.value}",
            status=transfer.status.value,
        )


def _require_state(transfer: Transfer, target: TransferStatus, allowed: Iterable[TransferStatus]) -> None:
    allowed = tuple(allowed)
    if transfer.status not in allowed:
        raise InvalidStateError(
            "Transfer",
            transfer.status.value,
            target.value,
            f"allowed from {', '.join(s.value for s in allowed)}",
        )


def _advance(
    transfer: Transfer,
    target: TransferStatus,
    actor: Actor,
    now,
    action: AuditAction,
    notes: Optional[str] = None,
) -> Transition:
    """Move the transfer, append a timeline entry, and describe the change."""
    previous = transfer.status
    transfer.status = target
    transfer.timeline.append(
        TimelineEntry(
            action=action.value,
            notes=notes,
            performed_by=actor.actor_id,
            performed_by_role=actor.role.value,
            timestamp=now,
        )
    )
    return Transition(
        entity_type="transfer",
        entity_id=transfer.transfer_id,
        property_id=transfer.property_id,
        action=action,
        from_status=previous.value,
        to_status=target.value,
        notes=notes,
    )


def record_fee_paid(tx: Transaction, transfer: Transfer, actor: Actor, now) -> Transition:
    """
    Mark the transfer fee as paid, staging the change in tx.

    A transfer still in initiated moves on to documents_pending.

    Raises:
        ConflictError: The transfer is terminal or its fee is already paid
    """
    _require_open(transfer)
    if transfer.fee_paid:
        raise ConflictError(
            f"Transfer fee for {transfer.transfer_id} is already paid",
            transfer_id=transfer.transfer_id,
        )
    transfer.fee_paid = True
    target = (
        TransferStatus.DOCUMENTS_PENDING
        if transfer.status == TransferStatus.INITIATED
        else transfer.status
    )
    transition = _advance(transfer, target, actor, now, AuditAction.TRANSFER_FEE_PAID)
    tx.put(Collection.TRANSFERS, transfer.transfer_id, transfer.to_dict())
    return transition


def _release_property(tx: Transaction, transfer: Transfer) -> None:
    application = load_application(tx, transfer.property_id)
    if application.current_transfer_id == transfer.transfer_id:
        application.current_transfer_id = None
        tx.put(Collection.PROPERTIES, application.property_id, application.to_dict())


def _parse_transfer_type(value: Union[TransferType, str]) -> TransferType:
    if isinstance(value, TransferType):
        return value
    try:
        return TransferType(value)
    except ValueError:
        raise ValidationError(f"Unknown transfer type '{value}'", field="transfer_type")


def _parse_checklist(checklist: Union[ComplianceChecks, dict]) -> ComplianceChecks:
    if isinstance(checklist, ComplianceChecks):
        return checklist
    if not isinstance(checklist, dict):
        raise ValidationError("A compliance checklist is required", field="checklist")
    risk = checklist.get("risk_level")
    try:
        risk_level = RiskLevel(risk) if risk else None
    except ValueError:
        raise ValidationError(f"Unknown risk level '{risk}'", field="risk_level")
    return ComplianceChecks(
        legal_compliance=checklist.get("legal_compliance"),
        tax_clearance=checklist.get("tax_clearance"),
        fraud_prevention=checklist.get("fraud_prevention"),
        risk_level=risk_level,
        notes=checklist.get("notes"),
    )


class TransferWorkflow:
    """State machine for ownership transfers."""

    def __init__(self, ctx: WorkflowContext):
        self.ctx = ctx

    # =========================================================================
    # Initiation and documents
    # =========================================================================

    def initiate_transfer(
        self,
        actor: Actor,
        property_id: str,
        transfer_type: Union[TransferType, str],
        new_owner_id: str,
        transfer_value: Union[Decimal, int, str],
        transfer_reason: Optional[str] = None,
    ) -> Transfer:
        """
        Open a transfer on an approved property.

        Raises:
            NotFoundError: Unknown property or new owner
            ForbiddenError: Caller is neither the owner nor an official
            ValidationError: Bad type or value, or new owner is the current owner
            PreconditionFailedError: Property is not approved
            ConflictError: Property already has an active transfer or dispute
        """
        with self.ctx.store.transaction() as tx:
            application = load_application(tx, property_id)
            OWNER_OR_OFFICIAL.for_action("initiate transfers").check(actor, [application.owner_id])
            self.ctx.directory.require(new_owner_id)

            kind = _parse_transfer_type(transfer_type)
            if new_owner_id == application.owner_id:
                raise ValidationError(
                    "The new owner must differ from the current owner",
                    field="new_owner_id",
                )
            value = to_decimal(transfer_value, "transfer_value")
            if value < 0:
                raise InvalidAmountError("transfer_value cannot be negative", field="transfer_value")

            if application.status != PropertyStatus.APPROVED:
                raise PreconditionFailedError(
                    f"Property {property_id} is not approved",
                    missing=["property not yet approved"],
                )
            if application.current_transfer_id:
                raise ConflictError(
                    f"Property {property_id} already has an active transfer",
                    transfer_id=application.current_transfer_id,
                )
            if application.has_active_dispute:
                raise ConflictError(f"Property {property_id} has an active dispute")

            now = self.ctx.now()
            transfer = Transfer(
                property_id=property_id,
                transfer_type=kind,
                previous_owner_id=application.owner_id,
                new_owner_id=new_owner_id,
                transfer_value=Money(amount=value, currency=self.ctx.fees.currency),
                transfer_reason=transfer_reason,
                initiated_by=actor.actor_id,
                initiation_date=now,
                timeline=[
                    TimelineEntry(
                        action=AuditAction.TRANSFER_INITIATED.value,
                        notes=transfer_reason,
                        performed_by=actor.actor_id,
                        performed_by_role=actor.role.value,
                        timestamp=now,
                    )
                ],
            )
            application.current_transfer_id = transfer.transfer_id
            application.updated_at = now
            tx.insert(Collection.TRANSFERS, transfer.transfer_id, transfer.to_dict())
            tx.put(Collection.PROPERTIES, property_id, application.to_dict())

        logger.info(
            "Transfer %s initiated on %s: %s -> %s",
            transfer.transfer_id,
            property_id,
            transfer.previous_owner_id,
            new_owner_id,
        )
        self.ctx.emit(
            [
                Transition(
                    entity_type="transfer",
                    entity_id=transfer.transfer_id,
                    property_id=property_id,
                    action=AuditAction.TRANSFER_INITIATED,
                    to_status=transfer.status.value,
                    metadata={
                        "transfer_type": kind.value,
                        "new_owner_id": new_owner_id,
                        "transfer_value": str(value),
                    },
                )
            ],
            actor,
        )
        return transfer

    def upload_transfer_documents(
        self,
        actor: Actor,
        transfer_id: str,
        documents: Iterable[dict],
    ) -> Transfer:
        """
        Attach documents from either party; moves to documents_submitted.

        Each document is a mapping with document_type, file_name, file_size
        and mime_type.
        """
        with self.ctx.store.transaction() as tx:
            transfer = load_transfer(tx, transfer_id)
            OWNER_ONLY.for_action("upload transfer documents").check(actor, transfer.parties)

            now = self.ctx.now()
            party = transfer.party_of(actor.actor_id)
            uploaded = [
                TransferDocument(
                    document_type=d.get("document_type") or "",
                    file_name=d.get("file_name") or "",
                    file_size=d.get("file_size"),
                    mime_type=d.get("mime_type") or "",
                    uploaded_by=actor.actor_id,
                    party=party,
                    uploaded_at=now,
                )
                for d in documents
            ]
            if not uploaded:
                raise ValidationError("At least one document is required", field="documents")
            _require_open(transfer)
            _require_state(transfer, TransferStatus.DOCUMENTS_SUBMITTED, UPLOADABLE_STATES)

            transfer.documents.extend(uploaded)
            transition = _advance(
                transfer,
                TransferStatus.DOCUMENTS_SUBMITTED,
                actor,
                now,
                AuditAction.TRANSFER_DOCUMENTS_UPLOADED,
            )
            tx.put(Collection.TRANSFERS, transfer_id, transfer.to_dict())

        logger.info("%d documents uploaded to transfer %s", len(uploaded), transfer_id)
        self.ctx.emit([transition], actor)
        return transfer

    def review_documents(
        self,
        actor: Actor,
        transfer_id: str,
        decisions: Iterable[DocumentDecision],
    ) -> Transfer:
        """
        Record per-document verdicts.

        All documents verified moves to under_review; any rejection sends the
        transfer back to documents_pending; otherwise it stays in
        documents_submitted.
        """
        with self.ctx.store.transaction() as tx:
            transfer = load_transfer(tx, transfer_id)
            OFFICIALS.for_action("review transfer documents").check(actor)

            decisions = list(decisions)
            if not decisions:
                raise ValidationError("At least one decision is required", field="decisions")
            by_id = {d.document_id: d for d in transfer.documents}
            for decision in decisions:
                if decision.document_id not in by_id:
                    raise ValidationError(
                        f"Document {decision.document_id} is not part of transfer {transfer_id}",
                        field="decisions",
                    )
                try:
                    status = DocumentStatus(decision.status)
                except ValueError:
                    status = None
                if status not in (DocumentStatus.VERIFIED, DocumentStatus.REJECTED):
                    raise ValidationError(
                        "Each decision must be verified or rejected", field="decisions"
                    )
                notes = decision.notes
                if status == DocumentStatus.REJECTED:
                    notes = require_text(notes, "notes", "Rejection notes")
                document = by_id[decision.document_id]
                document.status = status
                document.notes = notes
                document.reviewed_by = actor.actor_id

            _require_open(transfer)
            statuses = [d.status for d in transfer.documents]
            if DocumentStatus.REJECTED in statuses:
                target = TransferStatus.DOCUMENTS_PENDING
            elif all(s == DocumentStatus.VERIFIED for s in statuses):
                target = TransferStatus.UNDER_REVIEW
            else:
                target = TransferStatus.DOCUMENTS_SUBMITTED
            _require_state(transfer, target, REVIEWABLE_STATES)

            transition = _advance(
                transfer,
                target,
                actor,
                self.ctx.now(),
                AuditAction.TRANSFER_DOCUMENTS_REVIEWED,
            )
            tx.put(Collection.TRANSFERS, transfer_id, transfer.to_dict())

        logger.info("Transfer %s documents reviewed; now %s", transfer_id, target.value)
        self.ctx.emit([transition], actor)
        return transfer

    # =========================================================================
    # Review and decision
    # =========================================================================

    def perform_compliance_checks(
        self,
        actor: Actor,
        transfer_id: str,
        checklist: Union[ComplianceChecks, dict],
    ) -> Transfer:
        with self.ctx.store.transaction() as tx:
            transfer = load_transfer(tx, transfer_id)
            OFFICIALS.for_action("perform compliance checks").check(actor)
            checks = _parse_checklist(checklist)
            _require_open(transfer)
            _require_state(transfer, TransferStatus.COMPLIANCE_CHECK, COMPLIANCE_STATES)

            now = self.ctx.now()
            checks.checked_by = actor.actor_id
            checks.checked_at = now
            transfer.compliance_checks = checks
            transition = _advance(
                transfer,
                TransferStatus.COMPLIANCE_CHECK,
                actor,
                now,
                AuditAction.TRANSFER_COMPLIANCE_CHECKED,
                notes=checks.notes,
            )
            tx.put(Collection.TRANSFERS, transfer_id, transfer.to_dict())

        logger.info(
            "Compliance checks on transfer %s: %s",
            transfer_id,
            "passed" if checks.all_passed else ", ".join(checks.failed_checks()),
        )
        self.ctx.emit([transition], actor)
        return transfer

    def approve_transfer(self, actor: Actor, transfer_id: str, notes: Optional[str] = None) -> Transfer:
        """
        Approve a transfer whose checks passed and whose fee is paid.

        Parties to the transfer cannot approve it, whatever their role.
        """
        with self.ctx.store.transaction() as tx:
            transfer = load_transfer(tx, transfer_id)
            OFFICIALS_NOT_OWNER.for_action("approve transfers").check(actor, transfer.parties)
            _require_open(transfer)
            _require_state(transfer, TransferStatus.APPROVED, [TransferStatus.COMPLIANCE_CHECK])

            missing = [f"compliance: {c}" for c in transfer.compliance_checks.failed_checks()]
            if not transfer.fee_paid:
                missing.append("transfer fee not yet paid")
            if missing:
                raise PreconditionFailedError(
                    f"Cannot approve transfer {transfer_id}: {', '.join(missing)}",
                    missing=missing,
                )

            notes = notes.strip() if notes and notes.strip() else None
            transfer.reviewed_by = actor.actor_id
            transfer.review_notes = notes
            transition = _advance(
                transfer, TransferStatus.APPROVED, actor, self.ctx.now(),
                AuditAction.TRANSFER_APPROVED, notes=notes,
            )
            tx.put(Collection.TRANSFERS, transfer_id, transfer.to_dict())

        logger.info("Transfer %s approved by %s", transfer_id, actor.actor_id)
        self.ctx.emit([transition], actor)
        return transfer

    def reject_transfer(self, actor: Actor, transfer_id: str, reason: Optional[str]) -> Transfer:
        with self.ctx.store.transaction() as tx:
            transfer = load_transfer(tx, transfer_id)
            OFFICIALS_NOT_OWNER.for_action("reject transfers").check(actor, transfer.parties)
            reason = require_text(reason, "reason", "A rejection reason")
            _require_open(transfer)

            transfer.reviewed_by = actor.actor_id
            transfer.rejection_reason = reason
            transition = _advance(
                transfer, TransferStatus.REJECTED, actor, self.ctx.now(),
                AuditAction.TRANSFER_REJECTED, notes=reason,
            )
            tx.put(Collection.TRANSFERS, transfer_id, transfer.to_dict())
            _release_property(tx, transfer)

        logger.info("Transfer %s rejected by %s", transfer_id, actor.actor_id)
        self.ctx.emit([transition], actor)
        return transfer

    def cancel_transfer(self, actor: Actor, transfer_id: str, reason: Optional[str]) -> Transfer:
        """Withdraw a transfer. The current owner or an official may cancel."""
        with self.ctx.store.transaction() as tx:
            transfer = load_transfer(tx, transfer_id)
            OWNER_OR_OFFICIAL.for_action("cancel this transfer").check(
                actor, [transfer.previous_owner_id]
            )
            reason = require_text(reason, "reason", "A cancellation reason")
            _require_open(transfer)

            transition = _advance(
                transfer, TransferStatus.CANCELLED, actor, self.ctx.now(),
                AuditAction.TRANSFER_CANCELLED, notes=reason,
            )
            tx.put(Collection.TRANSFERS, transfer_id, transfer.to_dict())
            _release_property(tx, transfer)

        logger.info("Transfer %s cancelled by %s", transfer_id, actor.actor_id)
        self.ctx.emit([transition], actor)
        return transfer

    def complete_transfer(self, actor: Actor, transfer_id: str) -> Transfer:
        """
        Hand the property to the new owner. Administrators only.

        The property owner, its ownership history, and the transfer status
        change together in one transaction.

        Raises:
            NotFoundError: Unknown transfer
            ForbiddenError: Caller is not an admin, or is a party
            ConflictError: Transfer terminal, or the owner changed meanwhile
            InvalidStateError: Transfer is not approved
        """
        with self.ctx.store.transaction() as tx:
            transfer = load_transfer(tx, transfer_id)
            COMPLETE_GUARD.check(actor, transfer.parties)
            _require_open(transfer)
            _require_state(transfer, TransferStatus.COMPLETED, [TransferStatus.APPROVED])

            application = load_application(tx, transfer.property_id)
            if application.owner_id != transfer.previous_owner_id:
                raise ConflictError(
                    f"Property {application.property_id} is no longer owned by "
                    f"{transfer.previous_owner_id}"
                )

            now = self.ctx.now()
            history = []
            for record in application.ownership_history:
                if record.owner_id == transfer.previous_owner_id and record.end_date is None:
                    record = OwnershipRecord(
                        owner_id=record.owner_id,
                        start_date=record.start_date,
                        end_date=now,
                        transfer_type=record.transfer_type,
                        transfer_id=record.transfer_id,
                    )
                history.append(record)
            history.append(
                OwnershipRecord(
                    owner_id=transfer.new_owner_id,
                    start_date=now,
                    transfer_type=transfer.transfer_type.value,
                    transfer_id=transfer_id,
                )
            )
            application.ownership_history = history
            application.owner_id = transfer.new_owner_id
            application.current_transfer_id = None
            application.updated_at = now

            transfer.completion_date = now
            transition = _advance(
                transfer, TransferStatus.COMPLETED, actor, now, AuditAction.TRANSFER_COMPLETED
            )
            tx.put(Collection.TRANSFERS, transfer_id, transfer.to_dict())
            tx.put(Collection.PROPERTIES, application.property_id, application.to_dict())

        logger.info(
            "Transfer %s completed: %s now owned by %s",
            transfer_id,
            transfer.property_id,
            transfer.new_owner_id,
        )
        self.ctx.emit([transition], actor)
        return transfer

    # =========================================================================
    # Reads
    # =========================================================================

    def get_transfer(self, actor: Actor, transfer_id: str) -> Transfer:
        with self.ctx.store.transaction() as tx:
            transfer = load_transfer(tx, transfer_id)
        OWNER_OR_OFFICIAL.for_action("view this transfer").check(actor, transfer.parties)
        return transfer

    def list_transfers(self, actor: Actor, property_id: Optional[str] = None) -> list[Transfer]:
        """Officials see every transfer; citizens see those they are party to."""

        def visible(record: dict) -> bool:
            if property_id and record["property_id"] != property_id:
                return False
            if actor.is_official:
                return True
            return actor.actor_id in (record["previous_owner_id"], record["new_owner_id"])

        transfers = [
            Transfer.from_dict(r) for r in self.ctx.store.find(Collection.TRANSFERS, visible)
        ]
        transfers.sort(key=lambda t: t.initiation_date, reverse=True)
        return transfers

    def get_fee_quote(self, transfer_id: str) -> FeeQuote:
        with self.ctx.store.transaction() as tx:
            transfer = load_transfer(tx, transfer_id)
        return self.ctx.fees.transfer_fee(transfer.transfer_value.amount)
