"""
Tests for Document Verification

Tests covering:
1. Upload validation (owner only, size, mime type)
2. Verify / reject / request update transitions
3. Verified and rejected documents need reverify to change
4. Replacing a document sends it back to pending
5. Rejected documents block validation until re-verified
6. Concurrent reviews of one application
"""

from __future__ import annotations

import threading

import pytest

from core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from core.registration.schema import MAX_FILE_SIZE_BYTES, DocumentStatus, PropertyStatus
from core.store import Collection


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def application(citizen, scenario):
    return scenario.submit(citizen)


@pytest.fixture
def deed(service, citizen, application):
    return service.documents.upload_document(
        citizen, application.property_id, "title_deed", "deed.pdf", 250_000, "application/pdf"
    )


# =============================================================================
# Upload
# =============================================================================


class TestUpload:
    def test_upload_is_pending(self, deed, application):
        assert deed.status == DocumentStatus.PENDING
        assert deed.property_id == application.property_id
        assert deed.uploaded_by == "citizen-1"
        assert deed.document_id.startswith("DOC-")

    def test_only_owner_uploads(self, service, officer, application):
        with pytest.raises(ForbiddenError):
            service.documents.upload_document(
                officer, application.property_id, "id_card", "id.png", 1000, "image/png"
            )

    def test_oversized_file(self, service, citizen, application):
        with pytest.raises(ValidationError) as exc:
            service.documents.upload_document(
                citizen, application.property_id, "id_card", "id.png",
                MAX_FILE_SIZE_BYTES + 1, "image/png",
            )
        assert exc.value.field == "file_size"

    def test_unsupported_mime_type(self, service, citizen, application):
        with pytest.raises(ValidationError) as exc:
            service.documents.upload_document(
                citizen, application.property_id, "id_card", "id.exe", 1000, "application/x-msdownload"
            )
        assert exc.value.field == "mime_type"

    def test_unknown_document_type(self, service, citizen, application):
        with pytest.raises(ValidationError):
            service.documents.upload_document(
                citizen, application.property_id, "passport_photo", "p.png", 1000, "image/png"
            )

    def test_unknown_property(self, service, citizen):
        with pytest.raises(NotFoundError):
            service.documents.upload_document(
                citizen, "PROP-NOPE", "id_card", "id.png", 1000, "image/png"
            )


# =============================================================================
# Review
# =============================================================================


class TestReview:
    def test_verify(self, service, officer, deed):
        verified = service.documents.verify_document(officer, deed.document_id, notes="  ")
        assert verified.status == DocumentStatus.VERIFIED
        assert verified.reviewed_by == "officer-1"
        assert verified.notes is None

    def test_citizen_cannot_verify(self, service, citizen, deed):
        with pytest.raises(ForbiddenError):
            service.documents.verify_document(citizen, deed.document_id)

    def test_reject_requires_notes(self, service, officer, deed):
        with pytest.raises(ValidationError):
            service.documents.reject_document(officer, deed.document_id, notes=" ")

    def test_request_update_requires_notes(self, service, officer, deed):
        with pytest.raises(ValidationError):
            service.documents.request_document_update(officer, deed.document_id, notes=None)

    def test_request_update(self, service, officer, deed):
        updated = service.documents.request_document_update(
            officer, deed.document_id, notes="Please upload page 2"
        )
        assert updated.status == DocumentStatus.NEEDS_UPDATE
        assert updated.notes == "Please upload page 2"

    def test_verified_needs_reverify(self, service, officer, deed):
        service.documents.verify_document(officer, deed.document_id)
        with pytest.raises(ConflictError):
            service.documents.reject_document(officer, deed.document_id, notes="Forged stamp")

        rejected = service.documents.reject_document(
            officer, deed.document_id, notes="Forged stamp", reverify=True
        )
        assert rejected.status == DocumentStatus.REJECTED

    def test_needs_update_can_be_verified(self, service, officer, deed):
        service.documents.request_document_update(officer, deed.document_id, notes="Blurry")
        assert service.documents.verify_document(officer, deed.document_id).status == DocumentStatus.VERIFIED

    def test_unknown_document(self, service, officer):
        with pytest.raises(NotFoundError):
            service.documents.verify_document(officer, "DOC-NOPE")

    def test_rejected_document_reverified_unblocks(self, service, citizen, officer, scenario, application):
        pid = application.property_id
        documents = scenario.upload_required(citizen, pid)
        scenario.verify_all(documents[:2])
        service.documents.reject_document(officer, documents[2].document_id, notes="Expired")
        assert service.properties.get_application(pid).documents_validated is False

        service.documents.verify_document(officer, documents[2].document_id, reverify=True)
        current = service.properties.get_application(pid)
        assert current.documents_validated is True
        assert current.status == PropertyStatus.DOCUMENTS_VALIDATED

    def test_review_refused_on_terminal_application(self, service, officer, deed, application):
        service.properties.reject(officer, application.property_id, reason="Withdrawn plot")
        with pytest.raises(ConflictError):
            service.documents.verify_document(officer, deed.document_id)

    def test_concurrent_verification_validates_once(
        self, service, sink, citizen, officer, second_officer, scenario, application
    ):
        pid = application.property_id
        documents = scenario.upload_required(citizen, pid)
        reviewers = [officer, second_officer, officer]
        barrier = threading.Barrier(len(documents))
        errors = []

        def verify(reviewer, document_id):
            barrier.wait()
            try:
                service.documents.verify_document(reviewer, document_id)
            except Exception as e:
                errors.append(e)

        threads = [
            threading.Thread(target=verify, args=(reviewer, doc.document_id))
            for reviewer, doc in zip(reviewers, documents)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        stored = service.store.get(Collection.PROPERTIES, pid)
        assert stored["documents_validated"] is True
        assert stored["status"] == "documents_validated"
        events = [e for e in sink.events if e.entity_id == pid]
        assert [e.to_status for e in events].count("documents_validated") == 1


# =============================================================================
# Replacement and reads
# =============================================================================


class TestReplace:
    def test_replace_resets_to_pending(self, service, citizen, officer, deed):
        service.documents.request_document_update(officer, deed.document_id, notes="Blurry")
        replaced = service.documents.replace_document(
            citizen, deed.document_id, "deed-v2.pdf", 300_000, "application/pdf"
        )
        assert replaced.document_id == deed.document_id
        assert replaced.status == DocumentStatus.PENDING
        assert replaced.file_name == "deed-v2.pdf"
        assert replaced.notes is None

    def test_cannot_replace_verified(self, service, citizen, officer, deed):
        service.documents.verify_document(officer, deed.document_id)
        with pytest.raises(ConflictError):
            service.documents.replace_document(
                citizen, deed.document_id, "deed-v2.pdf", 300_000, "application/pdf"
            )

    def test_only_owner_replaces(self, service, buyer, deed):
        with pytest.raises(ForbiddenError):
            service.documents.replace_document(
                buyer, deed.document_id, "deed-v2.pdf", 300_000, "application/pdf"
            )


class TestReads:
    def test_list_documents(self, service, citizen, scenario, application):
        scenario.upload_required(citizen, application.property_id)
        documents = service.documents.list_documents(citizen, application.property_id)
        assert len(documents) == 3

    def test_stranger_cannot_view(self, service, buyer, deed):
        with pytest.raises(ForbiddenError):
            service.documents.get_document(buyer, deed.document_id)

    def test_officer_can_view(self, service, officer, deed):
        assert service.documents.get_document(officer, deed.document_id).file_name == "deed.pdf"
