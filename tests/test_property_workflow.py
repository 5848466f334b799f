"""
Tests for the Property Application Workflow

Tests covering:
1. Happy path from submission to approval
2. Documents and payment in either order
3. Approval gate naming every missing condition
4. Rejection requires a reason
5. Duplicate plot numbers, case-insensitive
6. No self-approval, even for admins
7. Terminal applications refuse further transitions
8. Stale derived flags are corrected on read and list, and audited
9. Listing visibility
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from core.actors import Role
from core.audit import AuditAction
from core.context import PROJECTION_ID
from core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from core.registration.schema import PropertyStatus
from core.registration.workflow import MISSING_DOCUMENTS, MISSING_PAYMENT
from core.store import Collection


# =============================================================================
# Submission
# =============================================================================


class TestSubmit:
    def test_creates_pending_application(self, service, citizen, scenario):
        application = scenario.submit(citizen)

        assert application.status == PropertyStatus.PENDING
        assert application.owner_id == "citizen-1"
        assert application.area == Decimal("250")
        assert application.documents_validated is False
        assert application.payment_completed is False
        assert application.property_id.startswith("PROP-")
        assert [r.owner_id for r in application.ownership_history] == ["citizen-1"]

    def test_duplicate_plot_conflicts_ignoring_case(self, citizen, buyer, scenario):
        scenario.submit(citizen, plot_number="AA-000123")
        with pytest.raises(ConflictError):
            scenario.submit(buyer, plot_number="  aa-000123 ")

    def test_missing_plot_number(self, citizen, scenario):
        with pytest.raises(ValidationError) as exc:
            scenario.submit(citizen, plot_number="   ")
        assert exc.value.field == "plot_number"

    def test_float_area_refused(self, citizen, scenario):
        with pytest.raises(ValidationError):
            scenario.submit(citizen, area=250.0)

    def test_non_positive_area_refused(self, citizen, scenario):
        with pytest.raises(ValidationError):
            scenario.submit(citizen, area="0")

    def test_unknown_property_type(self, citizen, scenario):
        with pytest.raises(ValidationError) as exc:
            scenario.submit(citizen, property_type="castle")
        assert exc.value.field == "property_type"

    def test_missing_location(self, service, citizen):
        with pytest.raises(ValidationError):
            service.properties.submit(
                citizen, plot_number="AB-1", location={"kebele": "01"},
                area="100", property_type="residential",
            )

    def test_fee_quote(self, service, citizen, scenario):
        application = scenario.submit(citizen)
        assert service.properties.get_fee_quote(application.property_id).total == Decimal("7500")


# =============================================================================
# Happy path
# =============================================================================


class TestHappyPath:
    def test_documents_then_payment(self, service, citizen, officer, scenario):
        application = scenario.submit(citizen)
        pid = application.property_id

        scenario.validate_documents(citizen, pid)
        current = service.properties.get_application(pid)
        assert current.status == PropertyStatus.DOCUMENTS_VALIDATED
        assert current.documents_validated is True

        scenario.complete_payment(citizen, pid)
        current = service.properties.get_application(pid)
        assert current.status == PropertyStatus.PAYMENT_COMPLETED
        assert current.payment_completed is True

        approved = service.properties.approve(officer, pid, notes="All in order")
        assert approved.status == PropertyStatus.APPROVED
        assert approved.reviewed_by == "officer-1"
        assert approved.review_notes == "All in order"

    def test_payment_then_documents(self, service, citizen, officer, scenario):
        pid = scenario.submit(citizen).property_id

        scenario.complete_payment(citizen, pid)
        current = service.properties.get_application(pid)
        assert current.status == PropertyStatus.PAYMENT_COMPLETED
        assert current.documents_validated is False

        scenario.validate_documents(citizen, pid)
        current = service.properties.get_application(pid)
        assert current.documents_validated is True
        assert current.payment_completed is True

        assert service.properties.approve(officer, pid).status == PropertyStatus.APPROVED

    def test_all_documents_validated_audited_once(self, service, citizen, scenario):
        pid = scenario.submit(citizen).property_id
        scenario.validate_documents(citizen, pid)

        actions = [e.action for e in service.audit.for_property(pid)]
        assert actions.count(AuditAction.ALL_DOCUMENTS_VALIDATED) == 1

    def test_first_upload_moves_to_under_review(self, service, citizen, scenario):
        pid = scenario.submit(citizen).property_id
        service.documents.upload_document(citizen, pid, "title_deed", "deed.pdf", 1000, "application/pdf")
        assert service.properties.get_application(pid).status == PropertyStatus.UNDER_REVIEW


# =============================================================================
# Approval gate
# =============================================================================


class TestApprovalGate:
    def test_nothing_done_names_both(self, service, citizen, officer, scenario):
        pid = scenario.submit(citizen).property_id
        with pytest.raises(PreconditionFailedError) as exc:
            service.properties.approve(officer, pid)
        assert exc.value.missing == [MISSING_DOCUMENTS, MISSING_PAYMENT]

    def test_unpaid_names_payment(self, service, citizen, officer, scenario):
        pid = scenario.submit(citizen).property_id
        scenario.validate_documents(citizen, pid)
        with pytest.raises(PreconditionFailedError) as exc:
            service.properties.approve(officer, pid)
        assert exc.value.missing == [MISSING_PAYMENT]

    def test_completed_but_unverified_payment_does_not_count(self, service, citizen, officer, scenario):
        pid = scenario.submit(citizen).property_id
        scenario.validate_documents(citizen, pid)
        scenario.pay(citizen, pid)
        with pytest.raises(PreconditionFailedError) as exc:
            service.properties.approve(officer, pid)
        assert exc.value.missing == [MISSING_PAYMENT]

    def test_rejected_document_blocks_validation(self, service, citizen, officer, scenario):
        pid = scenario.submit(citizen).property_id
        documents = scenario.upload_required(citizen, pid)
        scenario.verify_all(documents[:2])
        service.documents.reject_document(officer, documents[2].document_id, notes="Illegible scan")
        scenario.complete_payment(citizen, pid)

        with pytest.raises(PreconditionFailedError) as exc:
            service.properties.approve(officer, pid)
        assert exc.value.missing == [MISSING_DOCUMENTS]

    def test_commercial_requires_application_form(self, service, citizen, officer, scenario):
        pid = scenario.submit(citizen, property_type="commercial").property_id
        scenario.validate_documents(citizen, pid)
        assert service.properties.get_application(pid).documents_validated is False

    def test_not_found_before_forbidden(self, service, citizen):
        with pytest.raises(NotFoundError):
            service.properties.approve(citizen, "PROP-MISSING")

    def test_citizen_cannot_approve(self, service, citizen, buyer, scenario):
        pid = scenario.submit(citizen).property_id
        with pytest.raises(ForbiddenError):
            service.properties.approve(buyer, pid)


class TestSelfApproval:
    def test_officer_cannot_approve_own(self, service, officer, second_officer, scenario):
        scenario.officer = second_officer
        pid = scenario.submit(officer).property_id
        scenario.validate_documents(officer, pid)
        scenario.complete_payment(officer, pid)

        with pytest.raises(ForbiddenError):
            service.properties.approve(officer, pid)
        assert service.properties.approve(second_officer, pid).status == PropertyStatus.APPROVED

    def test_admin_cannot_approve_own(self, service, admin, scenario):
        pid = scenario.submit(admin).property_id
        scenario.validate_documents(admin, pid)
        scenario.complete_payment(admin, pid)

        with pytest.raises(ForbiddenError):
            service.properties.approve(admin, pid)

    def test_admin_cannot_reject_own(self, service, admin, scenario):
        pid = scenario.submit(admin).property_id
        with pytest.raises(ForbiddenError):
            service.properties.reject(admin, pid, reason="changed my mind")


# =============================================================================
# Rejection and terminal states
# =============================================================================


class TestReject:
    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_reason_required(self, service, citizen, officer, scenario, reason):
        pid = scenario.submit(citizen).property_id
        with pytest.raises(ValidationError) as exc:
            service.properties.reject(officer, pid, reason=reason)
        assert exc.value.field == "reason"
        assert service.properties.get_application(pid).status == PropertyStatus.PENDING

    def test_reject_from_under_review(self, service, citizen, officer, scenario):
        pid = scenario.submit(citizen).property_id
        scenario.upload_required(citizen, pid)

        rejected = service.properties.reject(officer, pid, reason="  Plot overlaps AA-000122  ")
        assert rejected.status == PropertyStatus.REJECTED
        assert rejected.review_notes == "Plot overlaps AA-000122"


class TestTerminal:
    def test_approved_cannot_be_rejected(self, service, citizen, officer, scenario):
        pid = scenario.approved_property(citizen).property_id
        with pytest.raises(ConflictError):
            service.properties.reject(officer, pid, reason="too late")

    def test_rejected_cannot_be_approved(self, service, citizen, officer, scenario):
        pid = scenario.submit(citizen).property_id
        service.properties.reject(officer, pid, reason="Incomplete")
        with pytest.raises(ConflictError):
            service.properties.approve(officer, pid)

    def test_rejected_refuses_uploads(self, service, citizen, officer, scenario):
        pid = scenario.submit(citizen).property_id
        service.properties.reject(officer, pid, reason="Incomplete")
        with pytest.raises(ConflictError):
            service.documents.upload_document(
                citizen, pid, "title_deed", "deed.pdf", 1000, "application/pdf"
            )

    def test_approved_is_stable_on_read(self, service, citizen, scenario):
        pid = scenario.approved_property(citizen).property_id
        application = service.properties.get_application(pid)
        assert application.status == PropertyStatus.APPROVED
        actions = [e.action for e in service.audit.for_property(pid)]
        assert AuditAction.STATUS_CORRECTED not in actions


# =============================================================================
# Projection on read
# =============================================================================


class TestStaleCorrection:
    def test_stale_flag_corrected_and_audited(self, service, citizen, scenario, caplog):
        pid = scenario.submit(citizen).property_id
        with service.store.transaction() as tx:
            record = tx.get(Collection.PROPERTIES, pid)
            record["documents_validated"] = True
            record["status"] = "documents_validated"
            tx.put(Collection.PROPERTIES, pid, record)

        with caplog.at_level("WARNING"):
            application = service.properties.get_application(pid)

        assert application.documents_validated is False
        assert application.status == PropertyStatus.PENDING
        assert service.store.get(Collection.PROPERTIES, pid)["documents_validated"] is False
        assert "Corrected stale derived state" in caplog.text

        corrections = [
            e for e in service.audit.for_property(pid) if e.action == AuditAction.STATUS_CORRECTED
        ]
        assert len(corrections) == 1
        assert corrections[0].performed_by == PROJECTION_ID
        assert corrections[0].from_status == "documents_validated"

    def test_list_corrects_stale_records(self, service, citizen, officer, scenario):
        pid = scenario.submit(citizen).property_id
        with service.store.transaction() as tx:
            record = tx.get(Collection.PROPERTIES, pid)
            record["payment_completed"] = True
            record["status"] = "payment_completed"
            tx.put(Collection.PROPERTIES, pid, record)

        listed = service.properties.list_applications(officer)
        assert [(a.status, a.payment_completed) for a in listed] == [(PropertyStatus.PENDING, False)]
        assert service.store.get(Collection.PROPERTIES, pid)["status"] == "pending"
        assert service.properties.list_applications(officer, status="payment_completed") == []

        corrections = [
            e for e in service.audit.for_property(pid) if e.action == AuditAction.STATUS_CORRECTED
        ]
        assert len(corrections) == 1

    def test_fresh_read_writes_nothing(self, service, citizen, scenario):
        pid = scenario.submit(citizen).property_id
        before = len(service.audit.entries())
        service.properties.get_application(pid)
        assert len(service.audit.entries()) == before


# =============================================================================
# Reads
# =============================================================================


class TestReads:
    def test_unknown_property(self, service):
        with pytest.raises(NotFoundError):
            service.properties.get_application("PROP-NOPE")

    def test_other_citizen_cannot_view(self, service, citizen, buyer, scenario):
        pid = scenario.submit(citizen).property_id
        with pytest.raises(ForbiddenError):
            service.properties.get_application(pid, actor=buyer)

    def test_citizens_list_only_their_own(self, service, citizen, buyer, officer, scenario):
        scenario.submit(citizen, plot_number="AA-1")
        scenario.submit(buyer, plot_number="AA-2")

        own = service.properties.list_applications(citizen, owner_id="citizen-2")
        assert [a.owner_id for a in own] == ["citizen-1"]
        assert len(service.properties.list_applications(officer)) == 2

    def test_list_by_status(self, service, citizen, officer, scenario):
        rejected = scenario.submit(citizen, plot_number="AA-1").property_id
        scenario.submit(citizen, plot_number="AA-2")
        service.properties.reject(officer, rejected, reason="Duplicate survey")

        found = service.properties.list_applications(officer, status="rejected")
        assert [a.property_id for a in found] == [rejected]

    def test_list_unknown_status(self, service, officer):
        with pytest.raises(ValidationError):
            service.properties.list_applications(officer, status="lost")

    def test_role_change_takes_effect(self, service, citizen, buyer, scenario, admin):
        pid = scenario.submit(citizen).property_id
        promoted = service.change_role(admin, "citizen-2", Role.LAND_OFFICER)
        assert service.properties.get_application(pid, actor=promoted).property_id == pid
