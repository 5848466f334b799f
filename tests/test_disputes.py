"""
Tests for Dispute Resolution

Tests covering:
1. Filing by citizens, one open dispute per disputant and property
2. Legal status moves and illegal ones
3. Assignment to land officers by admins
4. Resolution with a decision
5. Withdrawal by the disputant only
6. Priority from type and age, and list ordering
7. The property's active-dispute flag
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from core.actors import Role
from core.dispute import DisputeStatus, DisputeType, Priority, get_dispute_priority
from core.errors import ConflictError, ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from core.store import Collection


DEED_COPY = {
    "document_type": "title_deed",
    "document_name": "Old title deed",
    "file_name": "old_deed.pdf",
    "mime_type": "application/pdf",
}


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def neighbour(service):
    return service.directory.register("citizen-3", Role.CITIZEN, full_name="Hana Girma")


@pytest.fixture
def property_id(citizen, scenario):
    return scenario.submit(citizen).property_id


@pytest.fixture
def dispute(service, buyer, property_id):
    return service.disputes.file_dispute(
        buyer,
        property_id,
        DisputeType.BOUNDARY_DISPUTE,
        title="Fence encroaches",
        description="The eastern fence sits two metres inside plot AA-000124.",
        evidence=[DEED_COPY],
    )


def under_review(service, officer, dispute_id):
    return service.disputes.update_status(officer, dispute_id, "under_review", notes="Opening review")


# =============================================================================
# Filing
# =============================================================================


class TestFile:
    def test_filed_as_submitted(self, service, dispute, property_id):
        assert dispute.status == DisputeStatus.SUBMITTED
        assert dispute.disputant_id == "citizen-2"
        assert dispute.evidence[0].submitted_by == "citizen-2"
        assert dispute.timeline[0].action == "dispute_submitted"
        assert service.store.get(Collection.PROPERTIES, property_id)["has_active_dispute"] is True

    def test_one_open_dispute_per_disputant(self, service, buyer, dispute, property_id):
        with pytest.raises(ConflictError):
            service.disputes.file_dispute(buyer, property_id, "other", "Again", "Same complaint")

    def test_other_disputants_may_file(self, service, neighbour, dispute, property_id):
        second = service.disputes.file_dispute(
            neighbour, property_id, "documentation_error", "Typo", "Area recorded wrongly"
        )
        assert second.dispute_id != dispute.dispute_id

    @pytest.mark.parametrize("official", ["officer", "admin"])
    def test_officials_cannot_file(self, request, service, official, property_id):
        actor = request.getfixturevalue(official)
        with pytest.raises(ForbiddenError) as exc:
            service.disputes.file_dispute(actor, property_id, "other", "Audit", "Internal note")
        assert "Only citizens can file disputes" in str(exc.value)

    def test_title_required(self, service, buyer, property_id):
        with pytest.raises(ValidationError):
            service.disputes.file_dispute(buyer, property_id, "other", "  ", "desc")

    def test_unknown_property(self, service, buyer):
        with pytest.raises(NotFoundError):
            service.disputes.file_dispute(buyer, "PROP-NOPE", "other", "t", "d")

    def test_bad_evidence_type(self, service, buyer, property_id):
        with pytest.raises(ValidationError):
            service.disputes.file_dispute(
                buyer, property_id, "other", "t", "d",
                evidence=[dict(DEED_COPY, mime_type="text/html")],
            )


# =============================================================================
# Status moves
# =============================================================================


class TestStatusMoves:
    def test_review_then_investigation(self, service, officer, dispute):
        under_review(service, officer, dispute.dispute_id)
        moved = service.disputes.update_status(
            officer, dispute.dispute_id, "investigation", notes="Survey ordered"
        )
        assert moved.status == DisputeStatus.INVESTIGATION
        assert [t.action for t in moved.timeline][-1] == "dispute_status_changed"

    def test_notes_required(self, service, officer, dispute):
        with pytest.raises(ValidationError):
            service.disputes.update_status(officer, dispute.dispute_id, "under_review", notes="")

    def test_skip_review_is_invalid(self, service, officer, dispute):
        with pytest.raises(InvalidStateError):
            service.disputes.update_status(officer, dispute.dispute_id, "mediation", notes="Skip")

    def test_resolved_needs_resolve(self, service, officer, dispute):
        under_review(service, officer, dispute.dispute_id)
        with pytest.raises(InvalidStateError):
            service.disputes.update_status(officer, dispute.dispute_id, "resolved", notes="Done")

    def test_withdrawn_needs_withdraw(self, service, officer, dispute):
        with pytest.raises(InvalidStateError):
            service.disputes.update_status(officer, dispute.dispute_id, "withdrawn", notes="Gone")

    def test_citizen_cannot_move(self, service, buyer, dispute):
        with pytest.raises(ForbiddenError):
            service.disputes.update_status(buyer, dispute.dispute_id, "under_review", notes="Please")

    def test_dismissal_is_terminal(self, service, officer, dispute, property_id):
        service.disputes.update_status(officer, dispute.dispute_id, "dismissed", notes="Frivolous")
        assert service.store.get(Collection.PROPERTIES, property_id)["has_active_dispute"] is False
        with pytest.raises(ConflictError):
            under_review(service, officer, dispute.dispute_id)


# =============================================================================
# Assignment and resolution
# =============================================================================


class TestAssign:
    def test_admin_assigns_officer(self, service, admin, officer, dispute):
        assigned = service.disputes.assign_dispute(admin, dispute.dispute_id, officer.actor_id)
        assert assigned.assigned_to == "officer-1"
        assert assigned.assigned_at is not None

    def test_officer_cannot_assign(self, service, officer, second_officer, dispute):
        with pytest.raises(ForbiddenError):
            service.disputes.assign_dispute(officer, dispute.dispute_id, second_officer.actor_id)

    def test_assignee_must_be_land_officer(self, service, admin, citizen, dispute):
        with pytest.raises(ValidationError):
            service.disputes.assign_dispute(admin, dispute.dispute_id, citizen.actor_id)

    def test_unknown_assignee(self, service, admin, dispute):
        with pytest.raises(NotFoundError):
            service.disputes.assign_dispute(admin, dispute.dispute_id, "officer-404")


class TestResolve:
    def test_resolve_after_review(self, service, officer, dispute, property_id):
        under_review(service, officer, dispute.dispute_id)
        resolved = service.disputes.resolve_dispute(
            officer,
            dispute.dispute_id,
            decision="compromise",
            resolution_notes="Fence moved one metre",
            action_required="Resurvey eastern boundary",
        )
        assert resolved.status == DisputeStatus.RESOLVED
        assert resolved.resolution.resolved_by == "officer-1"
        assert resolved.resolution.action_required == "Resurvey eastern boundary"
        assert service.store.get(Collection.PROPERTIES, property_id)["has_active_dispute"] is False

    def test_cannot_resolve_unreviewed(self, service, officer, dispute):
        with pytest.raises(InvalidStateError):
            service.disputes.resolve_dispute(
                officer, dispute.dispute_id, "dismissed", resolution_notes="No merit"
            )

    def test_decision_required(self, service, officer, dispute):
        under_review(service, officer, dispute.dispute_id)
        with pytest.raises(ValidationError):
            service.disputes.resolve_dispute(officer, dispute.dispute_id, "", resolution_notes="x")

    def test_notes_required(self, service, officer, dispute):
        under_review(service, officer, dispute.dispute_id)
        with pytest.raises(ValidationError):
            service.disputes.resolve_dispute(officer, dispute.dispute_id, "compromise", resolution_notes=" ")


class TestWithdraw:
    def test_disputant_withdraws(self, service, buyer, dispute, property_id):
        withdrawn = service.disputes.withdraw_dispute(buyer, dispute.dispute_id, reason="Settled privately")
        assert withdrawn.status == DisputeStatus.WITHDRAWN
        assert service.store.get(Collection.PROPERTIES, property_id)["has_active_dispute"] is False

    def test_only_disputant(self, service, officer, dispute):
        with pytest.raises(ForbiddenError):
            service.disputes.withdraw_dispute(officer, dispute.dispute_id, reason="Closing")

    def test_flag_stays_while_another_is_open(self, service, buyer, neighbour, dispute, property_id):
        service.disputes.file_dispute(neighbour, property_id, "other", "Second", "Another issue")
        service.disputes.withdraw_dispute(buyer, dispute.dispute_id, reason="Settled")
        assert service.store.get(Collection.PROPERTIES, property_id)["has_active_dispute"] is True


class TestEvidence:
    def test_add_evidence(self, service, officer, dispute):
        updated = service.disputes.add_evidence(officer, dispute.dispute_id, [DEED_COPY])
        assert len(updated.evidence) == 2
        assert updated.evidence[1].submitted_by == "officer-1"

    def test_stranger_cannot_add(self, service, citizen, dispute):
        with pytest.raises(ForbiddenError):
            service.disputes.add_evidence(citizen, dispute.dispute_id, [DEED_COPY])

    def test_empty_evidence(self, service, buyer, dispute):
        with pytest.raises(ValidationError):
            service.disputes.add_evidence(buyer, dispute.dispute_id, [])


# =============================================================================
# Priority
# =============================================================================


class TestPriority:
    def test_rules(self, clock):
        now = clock()
        assert get_dispute_priority(DisputeType.FRAUDULENT_REGISTRATION, now, now) == Priority.HIGH
        assert get_dispute_priority(DisputeType.OWNERSHIP_DISPUTE, now, now) == Priority.HIGH
        assert get_dispute_priority(DisputeType.OTHER, now, now) == Priority.LOW
        assert get_dispute_priority(DisputeType.OTHER, now - timedelta(days=15), now) == Priority.MEDIUM
        assert get_dispute_priority(DisputeType.OTHER, now - timedelta(days=31), now) == Priority.HIGH

    def test_boundaries_are_exclusive(self, clock):
        now = clock()
        assert get_dispute_priority(DisputeType.OTHER, now - timedelta(days=14), now) == Priority.LOW
        assert get_dispute_priority(DisputeType.OTHER, now - timedelta(days=30), now) == Priority.MEDIUM

    def test_ages_with_the_clock(self, service, clock, dispute):
        assert service.disputes.priority_of(dispute) == Priority.LOW
        clock.advance(days=20)
        assert service.disputes.priority_of(dispute) == Priority.MEDIUM

    def test_list_orders_by_priority_then_age(
        self, service, clock, citizen, buyer, officer, neighbour, dispute, scenario
    ):
        clock.advance(days=1)
        other_pid = scenario.submit(citizen, plot_number="BB-7").property_id
        fraud = service.disputes.file_dispute(
            buyer, other_pid, "fraudulent_registration", "Forged", "Deed was forged"
        )
        clock.advance(days=1)
        newer = service.disputes.file_dispute(
            neighbour, dispute.property_id, "documentation_error", "Typo", "Kebele misspelt"
        )

        ordered = [d.dispute_id for d in service.disputes.list_disputes(officer)]
        assert ordered == [fraud.dispute_id, dispute.dispute_id, newer.dispute_id]

    def test_citizens_list_their_own(self, service, buyer, citizen, dispute):
        assert [d.dispute_id for d in service.disputes.list_disputes(buyer)] == [dispute.dispute_id]
        assert service.disputes.list_disputes(citizen) == []
