"""
Property Application Workflow

Submission, approval and rejection of property registrations. Documents and
payments move the derived flags; only an official who is not the applicant
can take the application to a terminal status.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional, Union

from core.access import AUTHENTICATED, OFFICIALS_NOT_OWNER, OWNER_OR_OFFICIAL
from core.actors import Actor
from core.audit import AuditAction
from core.context import PROJECTION_ID, Transition, WorkflowContext
from core.errors import ConflictError, PreconditionFailedError, ValidationError, require_text
from core.fees import FeeQuote, to_decimal
from core.registration.aggregate import aggregate_for, load_application
from core.registration.schema import (
    Location,
    OwnershipRecord,
    PropertyApplication,
    PropertyStatus,
    PropertyType,
    normalise_plot_number,
)
from core.store import Collection, Transaction
from utils.formatting import format_area


logger = logging.getLogger(__name__)

MISSING_DOCUMENTS = "documents not yet validated"
MISSING_PAYMENT = "payment not yet completed"


def _parse_property_type(value: Union[PropertyType, str]) -> PropertyType:
    if isinstance(value, PropertyType):
        return value
    try:
        return PropertyType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in PropertyType)
        raise ValidationError(
            f"Unknown property type '{value}'; expected one of: {allowed}",
            field="property_type",
        )


def _parse_location(value: Union[Location, dict]) -> Location:
    if isinstance(value, Location):
        return value
    if not isinstance(value, dict):
        raise ValidationError("location is required", field="location")
    return Location(
        kebele=value.get("kebele") or "",
        sub_city=value.get("sub_city") or "",
        latitude=to_decimal(value["latitude"], "latitude") if value.get("latitude") is not None else None,
        longitude=to_decimal(value["longitude"], "longitude") if value.get("longitude") is not None else None,
    )


def _correct_stale(tx: Transaction, application: PropertyApplication) -> Optional[dict[str, Any]]:
    """
    Re-derive the flags and status, staging a fix when the stored ones disagree.

    Returns the stored values that were replaced, or None when nothing changed.
    """
    aggregate = aggregate_for(tx, application)
    if aggregate.matches(application):
        return None
    corrected_from = {
        "status": application.status.value,
        "documents_validated": application.documents_validated,
        "payment_completed": application.payment_completed,
    }
    application.documents_validated = aggregate.documents_validated
    application.payment_completed = aggregate.payment_completed
    application.status = aggregate.status
    tx.put(Collection.PROPERTIES, application.property_id, application.to_dict())
    return corrected_from


class PropertyWorkflow:
    """State machine for property applications."""

    def __init__(self, ctx: WorkflowContext):
        self.ctx = ctx

    # =========================================================================
    # Transitions
    # =========================================================================

    def submit(
        self,
        actor: Actor,
        plot_number: str,
        location: Union[Location, dict],
        area: Union[Decimal, int, str],
        property_type: Union[PropertyType, str],
    ) -> PropertyApplication:
        """
        Create an application in pending, owned by the caller.

        Raises:
            ForbiddenError: If the caller is not authenticated
            ValidationError: On missing or malformed fields
            ConflictError: If the plot number is already registered
        """
        AUTHENTICATED.for_action("submit a property application").check(actor)

        application = PropertyApplication(
            plot_number=plot_number or "",
            location=_parse_location(location),
            area=to_decimal(area, "area"),
            property_type=_parse_property_type(property_type),
            owner_id=actor.actor_id,
        )
        now = self.ctx.now()
        application.registered_at = now
        application.updated_at = now
        application.ownership_history = [
            OwnershipRecord(owner_id=actor.actor_id, start_date=now)
        ]

        with self.ctx.store.transaction() as tx:
            key = application.plot_key
            if tx.find(Collection.PROPERTIES, lambda r: r["plot_key"] == key):
                raise ConflictError(
                    f"Plot {application.plot_number} is already registered",
                    plot_number=application.plot_number,
                )
            tx.insert(Collection.PROPERTIES, application.property_id, application.to_dict())

        logger.info(
            "Application %s submitted for plot %s (%s)",
            application.property_id,
            key,
            format_area(application.area),
        )
        self.ctx.emit(
            [
                Transition(
                    entity_type="property",
                    entity_id=application.property_id,
                    property_id=application.property_id,
                    action=AuditAction.APPLICATION_SUBMITTED,
                    to_status=application.status.value,
                    metadata={"plot_number": application.plot_number},
                )
            ],
            actor,
        )
        return application

    def approve(self, actor: Actor, property_id: str, notes: Optional[str] = None) -> PropertyApplication:
        """
        Approve an application once documents and payment are both done.

        The flags are recomputed from the current documents and payments
        rather than read from the stored record.

        Raises:
            NotFoundError: Unknown property
            ForbiddenError: Caller is not an official, or owns the application
            ConflictError: Application already approved or rejected
            PreconditionFailedError: Naming each missing condition
        """
        with self.ctx.store.transaction() as tx:
            application = load_application(tx, property_id)
            OFFICIALS_NOT_OWNER.for_action("approve applications").check(
                actor, [application.owner_id]
            )
            self._require_open(application)

            aggregate = aggregate_for(tx, application)
            missing = []
            if not aggregate.documents_validated:
                missing.append(MISSING_DOCUMENTS)
            if not aggregate.payment_completed:
                missing.append(MISSING_PAYMENT)
            if missing:
                raise PreconditionFailedError(
                    f"Cannot approve {property_id}: {', '.join(missing)}",
                    missing=missing,
                )

            previous = application.status
            application.documents_validated = True
            application.payment_completed = True
            application.status = PropertyStatus.APPROVED
            application.reviewed_by = actor.actor_id
            application.review_notes = notes.strip() if notes and notes.strip() else None
            application.updated_at = self.ctx.now()
            tx.put(Collection.PROPERTIES, property_id, application.to_dict())

        logger.info("Application %s approved by %s", property_id, actor.actor_id)
        self.ctx.emit(
            [
                Transition(
                    entity_type="property",
                    entity_id=property_id,
                    property_id=property_id,
                    action=AuditAction.APPLICATION_APPROVED,
                    from_status=previous.value,
                    to_status=application.status.value,
                    notes=application.review_notes,
                )
            ],
            actor,
        )
        return application

    def reject(self, actor: Actor, property_id: str, reason: Optional[str]) -> PropertyApplication:
        """
        Reject an application from any non-terminal status.

        Raises:
            NotFoundError: Unknown property
            ForbiddenError: Caller is not an official, or owns the application
            ValidationError: Empty or whitespace reason
            ConflictError: Application already approved or rejected
        """
        with self.ctx.store.transaction() as tx:
            application = load_application(tx, property_id)
            OFFICIALS_NOT_OWNER.for_action("reject applications").check(
                actor, [application.owner_id]
            )
            reason = require_text(reason, "reason", "A rejection reason")
            self._require_open(application)

            previous = application.status
            application.status = PropertyStatus.REJECTED
            application.reviewed_by = actor.actor_id
            application.review_notes = reason
            application.updated_at = self.ctx.now()
            tx.put(Collection.PROPERTIES, property_id, application.to_dict())

        logger.info("Application %s rejected by %s", property_id, actor.actor_id)
        self.ctx.emit(
            [
                Transition(
                    entity_type="property",
                    entity_id=property_id,
                    property_id=property_id,
                    action=AuditAction.APPLICATION_REJECTED,
                    from_status=previous.value,
                    to_status=application.status.value,
                    notes=reason,
                )
            ],
            actor,
        )
        return application

    @staticmethod
    def _require_open(application: PropertyApplication) -> None:
        if application.is_terminal:
            raise ConflictError(
                f"Application {application.property_id} is already {application.status.value}",
                status=application.status.value,
            )

    # =========================================================================
    # Reads
    # =========================================================================

    def get_application(self, property_id: str, actor: Optional[Actor] = None) -> PropertyApplication:
        """
        Get an application with freshly derived flags.

        A stored flag that disagrees with the projection is corrected in
        place and the correction audited.
        """
        with self.ctx.store.transaction() as tx:
            application = load_application(tx, property_id)
            if actor is not None:
                OWNER_OR_OFFICIAL.for_action("view this application").check(
                    actor, [application.owner_id]
                )
            corrected_from = _correct_stale(tx, application)

        if corrected_from is not None:
            self._report_correction(application, corrected_from)
        return application

    def list_applications(
        self,
        actor: Actor,
        owner_id: Optional[str] = None,
        status: Optional[Union[PropertyStatus, str]] = None,
    ) -> list[PropertyApplication]:
        """
        List applications, newest first, with freshly derived flags.

        Citizens only ever see their own applications. The status filter
        applies to the corrected status.
        """
        AUTHENTICATED.for_action("list applications").check(actor)
        if not actor.is_official:
            owner_id = actor.actor_id
        wanted = None
        if status is not None:
            try:
                wanted = PropertyStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown status '{status}'", field="status")

        corrections = []
        with self.ctx.store.transaction() as tx:
            applications = [
                PropertyApplication.from_dict(r)
                for r in tx.find(
                    Collection.PROPERTIES,
                    lambda r: not owner_id or r["owner_id"] == owner_id,
                )
            ]
            for application in applications:
                corrected_from = _correct_stale(tx, application)
                if corrected_from is not None:
                    corrections.append((application, corrected_from))

        for application, corrected_from in corrections:
            self._report_correction(application, corrected_from)

        if wanted is not None:
            applications = [a for a in applications if a.status == wanted]
        applications.sort(key=lambda a: a.registered_at, reverse=True)
        return applications

    def _report_correction(self, application: PropertyApplication, corrected_from: dict[str, Any]) -> None:
        logger.warning(
            "Corrected stale derived state on %s: %s -> status=%s documents_validated=%s payment_completed=%s",
            application.property_id,
            corrected_from,
            application.status.value,
            application.documents_validated,
            application.payment_completed,
        )
        self.ctx.emit(
            [
                Transition(
                    entity_type="property",
                    entity_id=application.property_id,
                    property_id=application.property_id,
                    action=AuditAction.STATUS_CORRECTED,
                    from_status=corrected_from["status"],
                    to_status=application.status.value,
                    metadata={"stored": corrected_from},
                )
            ],
            system_id=PROJECTION_ID,
        )

    def get_fee_quote(self, property_id: str) -> FeeQuote:
        """Registration fee for the application."""
        with self.ctx.store.transaction() as tx:
            application = load_application(tx, property_id)
        return self.ctx.fees.registration_fee(application.property_type, application.area)

    def find_by_plot(self, plot_number: str) -> Optional[PropertyApplication]:
        key = normalise_plot_number(plot_number)
        found = self.ctx.store.find(Collection.PROPERTIES, lambda r: r["plot_key"] == key)
        return PropertyApplication.from_dict(found[0]) if found else None
