"""
Aggregate Status - Derived Flags and Composite Status of an Application

recompute_aggregate_status() is the only place documents_validated and
payment_completed are decided. refresh_application() applies it inside an
open store transaction, re-reading the full document and payment sets so
concurrent verifications never recompute from a stale view.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from core.audit import AuditAction
from core.context import Transition
from core.errors import NotFoundError
from core.store import Collection, Transaction
from core.registration.schema import (
    Document,
    DocumentStatus,
    Payment,
    PaymentType,
    PropertyApplication,
    PropertyStatus,
    REQUIRED_DOCUMENTS,
    PropertyType,
)


@dataclass(frozen=True)
class AggregateStatus:
    documents_validated: bool
    payment_completed: bool
    status: PropertyStatus

    def matches(self, application: PropertyApplication) -> bool:
        return (
            application.documents_validated == self.documents_validated
            and application.payment_completed == self.payment_completed
            and application.status == self.status
        )


def documents_are_validated(property_type: PropertyType, documents: Iterable[Document]) -> bool:
    """
    True iff every required type has at least one document, every document
    of a required type is verified, and nothing at all is rejected.
    """
    documents = list(documents)
    if any(d.status == DocumentStatus.REJECTED for d in documents):
        return False

    required = REQUIRED_DOCUMENTS[property_type]
    for document_type in required:
        of_type = [d for d in documents if d.document_type == document_type]
        if not of_type:
            return False
        if any(d.status != DocumentStatus.VERIFIED for d in of_type):
            return False
    return True


def registration_fee_verified(payments: Iterable[Payment]) -> bool:
    return any(
        p.payment_type == PaymentType.REGISTRATION_FEE and p.is_verified
        for p in payments
    )


def recompute_aggregate_status(
    application: PropertyApplication,
    documents: Iterable[Document],
    payments: Iterable[Payment],
) -> AggregateStatus:
    """
    Pure projection of an application's derived state.

    Terminal statuses are kept as they are; otherwise the composite status
    follows the flags, then activity, then falls back to pending.
    """
    documents = list(documents)
    payments = list(payments)

    docs_ok = documents_are_validated(application.property_type, documents)
    paid = registration_fee_verified(payments)

    if application.is_terminal:
        status = application.status
    elif paid:
        status = PropertyStatus.PAYMENT_COMPLETED
    elif docs_ok:
        status = PropertyStatus.DOCUMENTS_VALIDATED
    elif documents or payments:
        status = PropertyStatus.UNDER_REVIEW
    else:
        status = PropertyStatus.PENDING

    return AggregateStatus(documents_validated=docs_ok, payment_completed=paid, status=status)


# =============================================================================
# Transactional application
# =============================================================================


def load_application(tx: Transaction, property_id: str) -> PropertyApplication:
    record = tx.get(Collection.PROPERTIES, property_id)
    if record is None:
        raise NotFoundError("Property", property_id)
    return PropertyApplication.from_dict(record)


def documents_for(tx: Transaction, property_id: str) -> list[Document]:
    return [
        Document.from_dict(r)
        for r in tx.find(Collection.DOCUMENTS, lambda r: r["property_id"] == property_id)
    ]


def payments_for(tx: Transaction, property_id: str) -> list[Payment]:
    return [
        Payment.from_dict(r)
        for r in tx.find(Collection.PAYMENTS, lambda r: r.get("property_id") == property_id)
    ]


def aggregate_for(tx: Transaction, application: PropertyApplication) -> AggregateStatus:
    return recompute_aggregate_status(
        application,
        documents_for(tx, application.property_id),
        payments_for(tx, application.property_id),
    )


def refresh_application(
    tx: Transaction,
    property_id: str,
    now: datetime,
    action: Optional[AuditAction] = None,
) -> tuple[PropertyApplication, list[Transition]]:
    """
    Recompute and stage the application's derived state.

    Returns the updated application and the transitions to emit. Nothing is
    staged when the projection already matches.
    """
    application = load_application(tx, property_id)
    aggregate = aggregate_for(tx, application)
    if aggregate.matches(application):
        return application, []

    previous_status = application.status
    newly_validated = aggregate.documents_validated and not application.documents_validated

    application.documents_validated = aggregate.documents_validated
    application.payment_completed = aggregate.payment_completed
    application.status = aggregate.status
    application.updated_at = now
    tx.put(Collection.PROPERTIES, property_id, application.to_dict())

    transitions = []
    if newly_validated:
        transitions.append(
            Transition(
                entity_type="property",
                entity_id=property_id,
                property_id=property_id,
                action=AuditAction.ALL_DOCUMENTS_VALIDATED,
                from_status=previous_status.value,
                to_status=aggregate.status.value,
            )
        )
    elif action is not None or previous_status != aggregate.status:
        transitions.append(
            Transition(
                entity_type="property",
                entity_id=property_id,
                property_id=property_id,
                action=action or AuditAction.APPLICATION_STATUS_CHANGED,
                from_status=previous_status.value,
                to_status=aggregate.status.value,
                metadata={
                    "documents_validated": aggregate.documents_validated,
                    "payment_completed": aggregate.payment_completed,
                },
            )
        )
    return application, transitions
