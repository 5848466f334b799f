"""
Dispute Resolution Workflow

submitted -> under_review -> investigation | mediation -> resolved | dismissed,
plus withdrawn, which only the disputant can reach. Every move appends to the
dispute's timeline. While any dispute on a property is open the property is
flagged, which blocks new transfers.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Union

from core.access import ADMIN_ONLY, AUTHENTICATED, CITIZENS, OFFICIALS, OWNER_ONLY, OWNER_OR_OFFICIAL
from core.actors import Actor, Role
from core.audit import AuditAction
from core.context import Transition, WorkflowContext
from core.dispute.priority import get_dispute_priority
from core.dispute.schema import (
    RESOLVABLE_STATUSES,
    STATUS_MOVES,
    TERMINAL_DISPUTE_STATUSES,
    Dispute,
    DisputeStatus,
    DisputeType,
    Evidence,
    Priority,
    Resolution,
    ResolutionDecision,
)
from core.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError, require_text
from core.registration.aggregate import load_application
from core.store import Collection, Transaction
from core.timeline import TimelineEntry


logger = logging.getLogger(__name__)

ACTIVE_STATUS_VALUES = frozenset(
    s.value for s in DisputeStatus if s not in TERMINAL_DISPUTE_STATUSES
)


def _parse(enum_cls, value, field: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Unknown {field} '{value}'", field=field)


def _parse_evidence(items: Iterable[Union[Evidence, dict]], actor: Actor, now) -> list[Evidence]:
    parsed = []
    for item in items:
        if isinstance(item, Evidence):
            item = item.to_dict()
        parsed.append(
            Evidence(
                document_type=item.get("document_type") or "",
                document_name=item.get("document_name") or "",
                file_name=item.get("file_name") or "",
                mime_type=item.get("mime_type") or "",
                submitted_by=actor.actor_id,
                submitted_at=now,
            )
        )
    return parsed


def load_dispute(tx: Transaction, dispute_id: str) -> Dispute:
    record = tx.get(Collection.DISPUTES, dispute_id)
    if record is None:
        raise NotFoundError("Dispute", dispute_id)
    return Dispute.from_dict(record)


def _require_open(dispute: Dispute) -> None:
    if dispute.is_terminal:
        raise ConflictError(
            f"Dispute {dispute.dispute_id} is already {dispute.status.value}",
            status=dispute.status.value,
        )


class DisputeWorkflow:
    """State machine for property disputes."""

    def __init__(self, ctx: WorkflowContext):
        self.ctx = ctx

    def _log(self, dispute: Dispute, actor: Actor, action: AuditAction, notes: Optional[str], now) -> None:
        dispute.timeline.append(
            TimelineEntry(
                action=action.value,
                notes=notes,
                performed_by=actor.actor_id,
                performed_by_role=actor.role.value,
                timestamp=now,
            )
        )
        dispute.updated_at = now

    def _transition(
        self,
        dispute: Dispute,
        action: AuditAction,
        from_status: Optional[DisputeStatus],
        notes: Optional[str] = None,
        **metadata,
    ) -> Transition:
        return Transition(
            entity_type="dispute",
            entity_id=dispute.dispute_id,
            property_id=dispute.property_id,
            action=action,
            from_status=from_status.value if from_status else None,
            to_status=dispute.status.value,
            notes=notes,
            metadata=metadata,
        )

    def _sync_property_flag(self, tx: Transaction, property_id: str) -> None:
        """Set has_active_dispute from the disputes currently open on the property."""
        application = load_application(tx, property_id)
        active = bool(
            tx.find(
                Collection.DISPUTES,
                lambda r: r["property_id"] == property_id and r["status"] in ACTIVE_STATUS_VALUES,
            )
        )
        if application.has_active_dispute != active:
            application.has_active_dispute = active
            tx.put(Collection.PROPERTIES, property_id, application.to_dict())

    # =========================================================================
    # Transitions
    # =========================================================================

    def file_dispute(
        self,
        actor: Actor,
        property_id: str,
        dispute_type: Union[DisputeType, str],
        title: str,
        description: str,
        evidence: Iterable[Union[Evidence, dict]] = (),
    ) -> Dispute:
        """
        File a dispute against a property, in submitted.

        Raises:
            NotFoundError: Unknown property
            ForbiddenError: Caller is not a citizen
            ValidationError: Missing title, description, or bad type
            ConflictError: The caller already has an open dispute on this property
        """
        with self.ctx.store.transaction() as tx:
            load_application(tx, property_id)
            CITIZENS.for_action("file disputes").check(actor)

            now = self.ctx.now()
            dispute = Dispute(
                property_id=property_id,
                disputant_id=actor.actor_id,
                dispute_type=_parse(DisputeType, dispute_type, "dispute_type"),
                title=title or "",
                description=description or "",
                evidence=_parse_evidence(evidence, actor, now),
                created_at=now,
            )
            existing = tx.find(
                Collection.DISPUTES,
                lambda r: r["property_id"] == property_id
                and r["disputant_id"] == actor.actor_id
                and r["status"] in ACTIVE_STATUS_VALUES,
            )
            if existing:
                raise ConflictError(
                    f"You already have an open dispute on {property_id}",
                    dispute_id=existing[0]["dispute_id"],
                )

            self._log(dispute, actor, AuditAction.DISPUTE_SUBMITTED, None, now)
            tx.insert(Collection.DISPUTES, dispute.dispute_id, dispute.to_dict())
            self._sync_property_flag(tx, property_id)

        logger.info(
            "Dispute %s (%s) filed on %s by %s",
            dispute.dispute_id,
            dispute.dispute_type.value,
            property_id,
            actor.actor_id,
        )
        self.ctx.emit(
            [
                self._transition(
                    dispute, AuditAction.DISPUTE_SUBMITTED, None,
                    dispute_type=dispute.dispute_type.value,
                )
            ],
            actor,
        )
        return dispute

    def update_status(
        self,
        actor: Actor,
        dispute_id: str,
        status: Union[DisputeStatus, str],
        notes: Optional[str],
    ) -> Dispute:
        """
        Move a dispute along its legal paths. Notes are mandatory.

        Raises:
            NotFoundError: Unknown dispute
            ForbiddenError: Caller is not a land officer or admin
            ValidationError: Missing notes or unknown status
            ConflictError: Dispute already closed
            InvalidStateError: Move not legal from the current status
        """
        with self.ctx.store.transaction() as tx:
            dispute = load_dispute(tx, dispute_id)
            OFFICIALS.for_action("update dispute status").check(actor)
            target = _parse(DisputeStatus, status, "status")
            notes = require_text(notes, "notes")
            _require_open(dispute)

            if target == DisputeStatus.RESOLVED:
                raise InvalidStateError(
                    "Dispute", dispute.status.value, target.value, "use resolve with a decision"
                )
            if target == DisputeStatus.WITHDRAWN:
                raise InvalidStateError(
                    "Dispute", dispute.status.value, target.value, "only the disputant can withdraw"
                )
            if target not in STATUS_MOVES.get(dispute.status, frozenset()):
                raise InvalidStateError("Dispute", dispute.status.value, target.value)

            previous = dispute.status
            dispute.status = target
            self._log(dispute, actor, AuditAction.DISPUTE_STATUS_CHANGED, notes, self.ctx.now())
            tx.put(Collection.DISPUTES, dispute_id, dispute.to_dict())
            if dispute.is_terminal:
                self._sync_property_flag(tx, dispute.property_id)

        logger.info("Dispute %s %s -> %s", dispute_id, previous.value, target.value)
        self.ctx.emit(
            [self._transition(dispute, AuditAction.DISPUTE_STATUS_CHANGED, previous, notes)],
            actor,
        )
        return dispute

    def assign_dispute(
        self,
        actor: Actor,
        dispute_id: str,
        officer_id: str,
        notes: Optional[str] = None,
    ) -> Dispute:
        """
        Assign a land officer. Administrators only.

        Raises:
            NotFoundError: Unknown dispute or officer
            ForbiddenError: Caller is not an admin
            ValidationError: Assignee is not a land officer
            ConflictError: Dispute already closed
        """
        with self.ctx.store.transaction() as tx:
            dispute = load_dispute(tx, dispute_id)
            ADMIN_ONLY.for_action("assign disputes").check(actor)
            officer = self.ctx.directory.require(officer_id)
            if officer.role != Role.LAND_OFFICER:
                raise ValidationError(
                    f"{officer_id} is not a land officer", field="officer_id"
                )
            _require_open(dispute)

            now = self.ctx.now()
            dispute.assigned_to = officer_id
            dispute.assigned_at = now
            self._log(dispute, actor, AuditAction.DISPUTE_ASSIGNED, notes, now)
            tx.put(Collection.DISPUTES, dispute_id, dispute.to_dict())

        logger.info("Dispute %s assigned to %s", dispute_id, officer_id)
        self.ctx.emit(
            [
                self._transition(
                    dispute, AuditAction.DISPUTE_ASSIGNED, dispute.status, notes,
                    assigned_to=officer_id,
                )
            ],
            actor,
        )
        return dispute

    def resolve_dispute(
        self,
        actor: Actor,
        dispute_id: str,
        decision: Union[ResolutionDecision, str],
        resolution_notes: Optional[str],
        action_required: Optional[str] = None,
    ) -> Dispute:
        """Close a dispute with a decision. Stamps the resolver and date."""
        with self.ctx.store.transaction() as tx:
            dispute = load_dispute(tx, dispute_id)
            OFFICIALS.for_action("resolve disputes").check(actor)
            if not decision:
                raise ValidationError("decision is required", field="decision")
            verdict = _parse(ResolutionDecision, decision, "decision")
            resolution_notes = require_text(resolution_notes, "resolution_notes", "Resolution notes")
            _require_open(dispute)
            if dispute.status not in RESOLVABLE_STATUSES:
                raise InvalidStateError(
                    "Dispute",
                    dispute.status.value,
                    DisputeStatus.RESOLVED.value,
                    "the dispute must be reviewed first",
                )

            now = self.ctx.now()
            previous = dispute.status
            dispute.status = DisputeStatus.RESOLVED
            dispute.resolution = Resolution(
                decision=verdict,
                resolution_notes=resolution_notes,
                action_required=action_required.strip() if action_required else None,
                resolved_by=actor.actor_id,
                resolution_date=now,
            )
            self._log(dispute, actor, AuditAction.DISPUTE_RESOLVED, resolution_notes, now)
            tx.put(Collection.DISPUTES, dispute_id, dispute.to_dict())
            self._sync_property_flag(tx, dispute.property_id)

        logger.info("Dispute %s resolved (%s) by %s", dispute_id, verdict.value, actor.actor_id)
        self.ctx.emit(
            [
                self._transition(
                    dispute, AuditAction.DISPUTE_RESOLVED, previous, resolution_notes,
                    decision=verdict.value,
                )
            ],
            actor,
        )
        return dispute

    def withdraw_dispute(self, actor: Actor, dispute_id: str, reason: Optional[str]) -> Dispute:
        """The disputant abandons their dispute."""
        with self.ctx.store.transaction() as tx:
            dispute = load_dispute(tx, dispute_id)
            OWNER_ONLY.for_action("withdraw this dispute").check(actor, [dispute.disputant_id])
            reason = require_text(reason, "reason", "A withdrawal reason")
            _require_open(dispute)

            previous = dispute.status
            dispute.status = DisputeStatus.WITHDRAWN
            self._log(dispute, actor, AuditAction.DISPUTE_WITHDRAWN, reason, self.ctx.now())
            tx.put(Collection.DISPUTES, dispute_id, dispute.to_dict())
            self._sync_property_flag(tx, dispute.property_id)

        logger.info("Dispute %s withdrawn", dispute_id)
        self.ctx.emit(
            [self._transition(dispute, AuditAction.DISPUTE_WITHDRAWN, previous, reason)],
            actor,
        )
        return dispute

    def add_evidence(
        self,
        actor: Actor,
        dispute_id: str,
        evidence: Iterable[Union[Evidence, dict]],
    ) -> Dispute:
        """Attach more evidence. The disputant or an official may add it."""
        with self.ctx.store.transaction() as tx:
            dispute = load_dispute(tx, dispute_id)
            OWNER_OR_OFFICIAL.for_action("add evidence").check(actor, [dispute.disputant_id])
            now = self.ctx.now()
            items = _parse_evidence(evidence, actor, now)
            if not items:
                raise ValidationError("At least one evidence item is required", field="evidence")
            _require_open(dispute)

            dispute.evidence.extend(items)
            self._log(
                dispute, actor, AuditAction.DISPUTE_EVIDENCE_ADDED,
                f"{len(items)} item(s) added", now,
            )
            tx.put(Collection.DISPUTES, dispute_id, dispute.to_dict())

        self.ctx.emit(
            [
                self._transition(
                    dispute, AuditAction.DISPUTE_EVIDENCE_ADDED, dispute.status,
                    count=len(items),
                )
            ],
            actor,
        )
        return dispute

    # =========================================================================
    # Reads
    # =========================================================================

    def priority_of(self, dispute: Dispute) -> Priority:
        return get_dispute_priority(dispute.dispute_type, dispute.created_at, self.ctx.now())

    def get_dispute(self, actor: Actor, dispute_id: str) -> Dispute:
        with self.ctx.store.transaction() as tx:
            dispute = load_dispute(tx, dispute_id)
        OWNER_OR_OFFICIAL.for_action("view this dispute").check(actor, [dispute.disputant_id])
        return dispute

    def list_disputes(
        self,
        actor: Actor,
        property_id: Optional[str] = None,
        status: Optional[Union[DisputeStatus, str]] = None,
    ) -> list[Dispute]:
        """
        Officials see every dispute, citizens their own. Highest priority
        first, oldest first within a priority.
        """
        AUTHENTICATED.for_action("list disputes").check(actor)
        status_value = _parse(DisputeStatus, status, "status").value if status else None

        def visible(record: dict) -> bool:
            if property_id and record["property_id"] != property_id:
                return False
            if status_value and record["status"] != status_value:
                return False
            return actor.is_official or record["disputant_id"] == actor.actor_id

        disputes = [Dispute.from_dict(r) for r in self.ctx.store.find(Collection.DISPUTES, visible)]
        rank = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}
        disputes.sort(key=lambda d: (rank[self.priority_of(d)], d.created_at))
        return disputes
