"""
Tests for the HTTP API

Tests covering:
1. Caller identification via X-Actor-Id
2. Error kinds mapped to distinct status codes
3. Registration happy path over HTTP
4. Signed payment rail callbacks
5. Admin-only operator routes
"""

from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from web.app import create_app, status_for
from web.dependencies import SIGNATURE_HEADER, sign_payload


WEBHOOK_SECRET = "test-webhook-secret"

SUBMISSION = {
    "plot_number": "AA-000123",
    "location": {"kebele": "03", "sub_city": "Bole"},
    "area": "250",
    "property_type": "residential",
}


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def client(service, monkeypatch):
    monkeypatch.setenv("PAYMENT_WEBHOOK_SECRET", WEBHOOK_SECRET)
    return TestClient(create_app())


def as_actor(actor):
    return {"X-Actor-Id": actor.actor_id}


def signed_callback(client, payload, secret=WEBHOOK_SECRET):
    body = json.dumps(payload).encode("utf-8")
    return client.post(
        "/payments/callback",
        content=body,
        headers={"Content-Type": "application/json", SIGNATURE_HEADER: sign_payload(body, secret)},
    )


# =============================================================================
# Error mapping
# =============================================================================


class TestStatusMapping:
    @pytest.mark.parametrize(
        "error, expected",
        [
            (NotFoundError("Property", "P"), 404),
            (ForbiddenError("no"), 403),
            (ValidationError("bad"), 400),
            (PreconditionFailedError("not yet", missing=["x"]), 412),
            (ConflictError("dup"), 409),
            (InvalidStateError("Payment", "pending", "verified"), 409),
        ],
    )
    def test_each_kind_has_a_status(self, error, expected):
        assert status_for(error) == expected

    def test_missing_actor_header(self, client):
        assert client.get("/properties").status_code == 401

    def test_unknown_actor(self, client):
        assert client.get("/properties", headers={"X-Actor-Id": "nobody"}).status_code == 401

    def test_not_found_body(self, client, officer):
        response = client.get("/properties/PROP-NOPE", headers=as_actor(officer))
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_validation_body_names_field(self, client, citizen):
        response = client.post(
            "/properties", json=dict(SUBMISSION, property_type="castle"), headers=as_actor(citizen)
        )
        assert response.status_code == 400
        assert response.json()["field"] == "property_type"

    def test_precondition_lists_missing(self, client, citizen, officer):
        pid = client.post("/properties", json=SUBMISSION, headers=as_actor(citizen)).json()["property_id"]
        response = client.post(f"/properties/{pid}/approve", json={}, headers=as_actor(officer))
        assert response.status_code == 412
        assert response.json()["missing"] == ["documents not yet validated", "payment not yet completed"]

    def test_duplicate_plot_conflict(self, client, citizen, buyer):
        client.post("/properties", json=SUBMISSION, headers=as_actor(citizen))
        response = client.post(
            "/properties", json=dict(SUBMISSION, plot_number="aa-000123"), headers=as_actor(buyer)
        )
        assert response.status_code == 409

    def test_forbidden(self, client, citizen, buyer):
        pid = client.post("/properties", json=SUBMISSION, headers=as_actor(citizen)).json()["property_id"]
        response = client.post(f"/properties/{pid}/reject", json={"reason": "x"}, headers=as_actor(buyer))
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"


# =============================================================================
# Registration over HTTP
# =============================================================================


class TestRegistrationFlow:
    def test_happy_path(self, client, service, citizen, officer):
        pid = client.post("/properties", json=SUBMISSION, headers=as_actor(citizen)).json()["property_id"]
        assert client.get(f"/properties/{pid}/fee", headers=as_actor(citizen)).json()["total"] == "7500"

        for doc_type, file_name, mime in (
            ("title_deed", "deed.pdf", "application/pdf"),
            ("id_card", "id.png", "image/png"),
            ("tax_clearance", "tax.pdf", "application/pdf"),
        ):
            uploaded = client.post(
                f"/properties/{pid}/documents",
                json={"document_type": doc_type, "file_name": file_name, "file_size": 5000, "mime_type": mime},
                headers=as_actor(citizen),
            )
            assert uploaded.status_code == 201
            verified = client.post(
                f"/documents/{uploaded.json()['document_id']}/verify", json={}, headers=as_actor(officer)
            )
            assert verified.json()["status"] == "verified"

        payment = client.post(
            "/payments",
            json={"amount": "7500", "payment_method": "telebirr", "property_id": pid},
            headers=as_actor(citizen),
        ).json()
        callback = signed_callback(
            client, {"payment_id": payment["payment_id"], "status": "completed", "transaction_id": "TB-9"}
        )
        assert callback.status_code == 200
        assert callback.json()["status"] == "completed"

        verified = client.post(f"/payments/{payment['payment_id']}/verify", json={}, headers=as_actor(officer))
        assert verified.json()["verification_status"] == "verified"

        approved = client.post(f"/properties/{pid}/approve", json={"notes": "ok"}, headers=as_actor(officer))
        assert approved.status_code == 200
        assert approved.json()["status"] == "approved"

        trail = client.get(f"/properties/{pid}/audit", headers=as_actor(citizen)).json()
        assert trail["entries"][-1]["action"] == "application_approved"

    def test_amount_mismatch(self, client, citizen, officer):
        pid = client.post("/properties", json=SUBMISSION, headers=as_actor(citizen)).json()["property_id"]
        payment = client.post(
            "/payments",
            json={"amount": "100", "payment_method": "cash", "property_id": pid},
            headers=as_actor(citizen),
        ).json()
        signed_callback(client, {"payment_id": payment["payment_id"], "status": "completed"})

        response = client.post(f"/payments/{payment['payment_id']}/verify", json={}, headers=as_actor(officer))
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_amount"

    def test_verify_pending_payment_is_invalid_state(self, client, citizen, officer):
        pid = client.post("/properties", json=SUBMISSION, headers=as_actor(citizen)).json()["property_id"]
        payment = client.post(
            "/payments",
            json={"amount": "7500", "payment_method": "cash", "property_id": pid},
            headers=as_actor(citizen),
        ).json()
        response = client.post(f"/payments/{payment['payment_id']}/verify", json={}, headers=as_actor(officer))
        assert response.status_code == 409
        assert response.json()["error"] == "invalid_state"


# =============================================================================
# Payment callbacks
# =============================================================================


class TestCallbackSignature:
    def test_bad_signature(self, client):
        response = signed_callback(client, {"payment_id": "PAY-1", "status": "completed"}, secret="wrong")
        assert response.status_code == 403

    def test_missing_signature(self, client):
        response = client.post("/payments/callback", json={"payment_id": "PAY-1", "status": "completed"})
        assert response.status_code == 403

    def test_unconfigured_secret(self, client, monkeypatch):
        monkeypatch.setenv("PAYMENT_WEBHOOK_SECRET", "")
        response = signed_callback(client, {"payment_id": "PAY-1", "status": "completed"}, secret="")
        assert response.status_code == 403

    def test_signed_unknown_payment(self, client):
        response = signed_callback(client, {"payment_id": "PAY-NOPE", "status": "completed"})
        assert response.status_code == 404


# =============================================================================
# Actors and administration
# =============================================================================


class TestAdmin:
    def test_self_registration(self, client):
        response = client.post("/actors", json={"actor_id": "new-citizen", "full_name": "New"})
        assert response.status_code == 201
        assert response.json()["role"] == "citizen"
        me = client.get("/actors/me", headers={"X-Actor-Id": "new-citizen"})
        assert me.json()["actor_id"] == "new-citizen"

    def test_provision_first_admin(self, client, service):
        token = service.provisioning.issue()
        response = client.post("/admin/provision", json={"token": token, "actor_id": "root"})
        assert response.status_code == 201
        assert response.json()["role"] == "admin"

        replay = client.post("/admin/provision", json={"token": token, "actor_id": "root-2"})
        assert replay.status_code == 403

    def test_operator_routes_need_admin(self, client, officer):
        assert client.get("/admin/health", headers=as_actor(officer)).status_code == 403

    def test_operator_health(self, client, admin, citizen):
        client.post("/properties", json=SUBMISSION, headers=as_actor(citizen))
        health = client.get("/admin/health", headers=as_actor(admin)).json()
        assert health["records"]["properties"] == 1
        assert health["audit"]["chain_valid"] is True

        verify = client.get("/admin/audit/verify", headers=as_actor(admin)).json()
        assert verify["valid"] is True

    def test_change_role(self, client, admin, citizen):
        response = client.post(
            f"/admin/actors/{citizen.actor_id}/role", json={"role": "land_officer"}, headers=as_actor(admin)
        )
        assert response.status_code == 200
        assert response.json()["role"] == "land_officer"

    def test_dispute_priority_in_response(self, client, citizen, buyer):
        pid = client.post("/properties", json=SUBMISSION, headers=as_actor(citizen)).json()["property_id"]
        response = client.post(
            "/disputes",
            json={
                "property_id": pid,
                "dispute_type": "fraudulent_registration",
                "title": "Forged deed",
                "description": "The seller's deed is forged",
            },
            headers=as_actor(buyer),
        )
        assert response.status_code == 201
        assert response.json()["priority"] == "high"
