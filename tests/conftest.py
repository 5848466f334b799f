"""
Shared fixtures for the registry test suites.
"""

from __future__ import annotations

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from core.actors import ActorDirectory, Role
from core.audit import AuditLog
from core.notifications import InMemoryNotificationSink
from core.registration.schema import PaymentMethod, PaymentStatus
from core.service import LandRegistryService, reset_registry_service
from core.store import WorkflowStore


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Controllable clock."""

    def __init__(self, start: datetime = datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


# =============================================================================
# Scenario helper
# =============================================================================

REQUIRED_UPLOADS = (
    ("title_deed", "title_deed.pdf", "application/pdf"),
    ("id_card", "id_card.png", "image/png"),
    ("tax_clearance", "tax_clearance.pdf", "application/pdf"),
)


class RegistryScenario:
    """Drives the common steps of the registration workflow."""

    def __init__(self, service: LandRegistryService, officer):
        self.service = service
        self.officer = officer

    def submit(self, owner, plot_number="AA-000123", area="250", property_type="residential"):
        return self.service.properties.submit(
            owner,
            plot_number=plot_number,
            location={"kebele": "03", "sub_city": "Bole"},
            area=area,
            property_type=property_type,
        )

    def upload_required(self, owner, property_id):
        return [
            self.service.documents.upload_document(
                owner, property_id, doc_type, file_name, 120_000, mime
            )
            for doc_type, file_name, mime in REQUIRED_UPLOADS
        ]

    def verify_all(self, documents):
        return [
            self.service.documents.verify_document(self.officer, d.document_id, notes="ok")
            for d in documents
        ]

    def pay(self, owner, property_id, amount="7500"):
        payment = self.service.payments.initiate_payment(
            owner,
            amount=amount,
            payment_method=PaymentMethod.TELEBIRR,
            method_details={"phone": "+251911000000"},
            property_id=property_id,
        )
        return self.service.payments.mark_payment_status(
            payment.payment_id, PaymentStatus.COMPLETED, transaction_id="TB-1001"
        )

    def validate_documents(self, owner, property_id):
        return self.verify_all(self.upload_required(owner, property_id))

    def complete_payment(self, owner, property_id, amount="7500"):
        payment = self.pay(owner, property_id, amount)
        return self.service.payments.verify_payment(self.officer, payment.payment_id)

    def approved_property(self, owner, plot_number="AA-000123"):
        application = self.submit(owner, plot_number=plot_number)
        self.validate_documents(owner, application.property_id)
        self.complete_payment(owner, application.property_id)
        return self.service.properties.approve(self.officer, application.property_id, notes="ok")


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def temp_dir():
    """Temporary directory for persistence files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sink():
    return InMemoryNotificationSink()


@pytest.fixture
def service(temp_dir, clock, sink):
    """Fresh service persisting under a temporary directory."""
    service = LandRegistryService(
        store=WorkflowStore(persist_path=str(temp_dir / "registry.json")),
        audit=AuditLog(persist_path=str(temp_dir / "audit_log.json")),
        directory=ActorDirectory(persist_path=str(temp_dir / "actors.json")),
        sink=sink,
        clock=clock,
    )
    reset_registry_service(service)
    yield service
    reset_registry_service()


@pytest.fixture
def citizen(service):
    return service.directory.register("citizen-1", Role.CITIZEN, full_name="Abebe Kebede")


@pytest.fixture
def buyer(service):
    return service.directory.register("citizen-2", Role.CITIZEN, full_name="Sara Tesfaye")


@pytest.fixture
def officer(service):
    return service.directory.register("officer-1", Role.LAND_OFFICER, full_name="Officer One")


@pytest.fixture
def second_officer(service):
    return service.directory.register("officer-2", Role.LAND_OFFICER, full_name="Officer Two")


@pytest.fixture
def admin(service):
    return service.directory.register("admin-1", Role.ADMIN, full_name="Registry Admin")


@pytest.fixture
def scenario(service, officer):
    return RegistryScenario(service, officer)
