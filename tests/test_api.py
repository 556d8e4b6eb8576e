"""End-to-end tests for the HTTP API over an in-memory ledger."""

import pytest
from fastapi.testclient import TestClient

from trustledger.ledger import TrustLedger
from trustledger.main import create_app

from conftest import LANDLORD, OTHER_TENANT, TENANT

START = "2025-01-01T00:00:00.000Z"
SIGNATURE = "0x" + "cd" * 65


@pytest.fixture
def client(ledger: TrustLedger):
    with TestClient(create_app(ledger)) as test_client:
        yield test_client


def _payment(status: str = "on-time", **extra) -> dict:
    body = {
        "amount": 1000,
        "due_date": 1_700_000_000_000,
        "paid_date": 1_700_000_000_000,
        "status": status,
        "property_id": "prop-1",
    }
    body.update(extra)
    return body


def _terms(tenant: str = TENANT, nonce: str = "n-1") -> dict:
    return {
        "property_id": "prop-1",
        "landlord_address": LANDLORD,
        "tenant_address": tenant,
        "monthly_rent": 1500,
        "deposit": 3000,
        "start_date": START,
        "nonce": nonce,
    }


class TestProfiles:
    def test_health(self, client: TestClient) -> None:
        resp = client.get("/v1/trust/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"
        assert resp.json()["storage"] == "MemoryBackend"

    def test_create_and_fetch(self, client: TestClient) -> None:
        resp = client.post("/v1/trust/profiles", json={"address": TENANT, "user_type": "tenant"})
        assert resp.status_code == 201
        assert resp.json()["userAddress"] == TENANT.lower()

        resp = client.get(f"/v1/trust/profiles/{TENANT.upper()}")
        assert resp.status_code == 200
        assert resp.json()["tenantData"]["trustScore"] == 700

    def test_duplicate_profile(self, client: TestClient) -> None:
        client.post("/v1/trust/profiles", json={"address": TENANT, "user_type": "tenant"})
        resp = client.post("/v1/trust/profiles", json={"address": TENANT, "user_type": "landlord"})
        assert resp.status_code == 409
        assert resp.json()["detail"]["error"] == "already_exists"

    def test_unknown_profile(self, client: TestClient) -> None:
        assert client.get("/v1/trust/profiles/0xnobody").status_code == 404
        assert client.get("/v1/trust/profiles/0xnobody/summary").status_code == 404

    def test_invalid_user_type(self, client: TestClient) -> None:
        resp = client.post("/v1/trust/profiles", json={"address": TENANT, "user_type": "owner"})
        assert resp.status_code == 422

    def test_metadata(self, client: TestClient) -> None:
        client.post("/v1/trust/profiles", json={"address": LANDLORD, "user_type": "landlord"})
        resp = client.get(f"/v1/trust/profiles/{LANDLORD}/metadata")
        assert resp.status_code == 200
        names = [a["trait_type"] for a in resp.json()["attributes"]]
        assert names[3] == "Landlord Trust Score"


class TestEvents:
    def test_payment_rescoring(self, client: TestClient) -> None:
        client.post("/v1/trust/profiles", json={"address": TENANT, "user_type": "tenant"})
        resp = client.post(f"/v1/trust/profiles/{TENANT}/payments", json=_payment())
        assert resp.status_code == 200
        assert resp.json()["tenant_score"] == 570
        assert resp.json()["on_time_percentage"] == 100

        stored = client.get(f"/v1/trust/profiles/{TENANT}").json()
        assert stored["tenantData"]["totalRentPaid"] == "1000"

    def test_payment_auto_create(self, client: TestClient) -> None:
        resp = client.post(f"/v1/trust/profiles/{TENANT}/payments", json=_payment(auto_create=True))
        assert resp.status_code == 200
        assert resp.json()["user_type"] == "tenant"

    def test_payment_without_profile(self, client: TestClient) -> None:
        resp = client.post(f"/v1/trust/profiles/{TENANT}/payments", json=_payment())
        assert resp.status_code == 404

    def test_payment_to_landlord(self, client: TestClient) -> None:
        client.post("/v1/trust/profiles", json={"address": LANDLORD, "user_type": "landlord"})
        resp = client.post(f"/v1/trust/profiles/{LANDLORD}/payments", json=_payment())
        assert resp.status_code == 422
        assert resp.json()["detail"]["error"] == "wrong_user_type"

    def test_tenancy(self, client: TestClient) -> None:
        client.post("/v1/trust/profiles", json={"address": TENANT, "user_type": "tenant"})
        resp = client.post(f"/v1/trust/profiles/{TENANT}/tenancies", json={
            "property_id": "prop-0",
            "landlord_address": LANDLORD,
            "start_date": 0,
            "end_date": 1,
            "monthly_rent": 1000,
            "deposit": 2000,
        })
        assert resp.status_code == 200
        assert resp.json()["tenant_score"] == 621

    def test_score_clamped(self, client: TestClient) -> None:
        client.post("/v1/trust/profiles", json={"address": TENANT, "user_type": "tenant"})
        resp = client.post(f"/v1/trust/profiles/{TENANT}/scores", json={"dimension": "maintenance", "value": 150})
        assert resp.status_code == 200
        assert resp.json()["tenant_score"] == 595

    def test_non_finite_score_rejected(self, client: TestClient) -> None:
        client.post("/v1/trust/profiles", json={"address": TENANT, "user_type": "tenant"})
        for token in ("NaN", "Infinity"):
            resp = client.post(
                f"/v1/trust/profiles/{TENANT}/scores",
                content=f'{{"dimension": "maintenance", "value": {token}}}',
                headers={"content-type": "application/json"},
            )
            assert resp.status_code == 422
        assert client.get(f"/v1/trust/profiles/{TENANT}").json()["tenantData"]["propertyMaintenanceScore"] == 85

    def test_unknown_dimension(self, client: TestClient) -> None:
        client.post("/v1/trust/profiles", json={"address": TENANT, "user_type": "tenant"})
        resp = client.post(f"/v1/trust/profiles/{TENANT}/scores", json={"dimension": "charisma", "value": 50})
        assert resp.status_code == 400


class TestAgreements:
    def test_message_then_propose(self, client: TestClient) -> None:
        resp = client.post("/v1/trust/agreements/message", json=_terms())
        assert resp.status_code == 200
        body = resp.json()
        agreement_hash = body["agreement"]["agreementHash"]
        assert body["message"].startswith("Rental Agreement Signature:\n")
        assert f"Agreement Hash: {agreement_hash}\n" in body["message"]
        assert "Monthly Rent: 1500 HBAR" in body["message"]

        resp = client.post("/v1/trust/agreements", json={
            **_terms(), "agreement_hash": agreement_hash, "signature": SIGNATURE,
        })
        assert resp.status_code == 200
        assert resp.json()["state"] == "active"
        assert resp.json()["agreement_hash"] == agreement_hash

        tenant = client.get(f"/v1/trust/profiles/{TENANT}").json()
        assert tenant["currentRental"]["agreementHash"] == agreement_hash

    def test_message_draws_nonce(self, client: TestClient) -> None:
        terms = _terms()
        del terms["nonce"]
        body = client.post("/v1/trust/agreements/message", json=terms).json()
        assert len(body["agreement"]["nonce"]) == 32

    def test_mismatched_hash(self, client: TestClient) -> None:
        resp = client.post("/v1/trust/agreements", json={
            **_terms(), "agreement_hash": "0xnot-it", "signature": SIGNATURE,
        })
        assert resp.status_code == 400

    def test_idempotent_and_exclusive(self, client: TestClient) -> None:
        first = client.post("/v1/trust/agreements", json={**_terms(), "signature": SIGNATURE})
        again = client.post("/v1/trust/agreements", json={**_terms(), "signature": SIGNATURE})
        assert first.status_code == again.status_code == 200
        assert again.json()["duplicate"] is True

        other = client.post("/v1/trust/agreements", json={
            **_terms(tenant=OTHER_TENANT, nonce="n-2"), "signature": SIGNATURE,
        })
        assert other.status_code == 409
        assert other.json()["detail"]["error"] == "already_rented"

    def test_reconcile_with_nothing_pending(self, client: TestClient) -> None:
        resp = client.post("/v1/trust/agreements/reconcile", json={})
        assert resp.status_code == 200
        assert resp.json()["processed"] == 0

    def test_terminate(self, client: TestClient) -> None:
        client.post("/v1/trust/agreements", json={**_terms(), "signature": SIGNATURE})
        resp = client.delete("/v1/trust/agreements/prop-1")
        assert resp.status_code == 200
        assert client.get(f"/v1/trust/profiles/{TENANT}").json().get("currentRental") is None
        assert client.delete("/v1/trust/agreements/prop-1").status_code == 404

    def test_replay_after_terminate(self, client: TestClient) -> None:
        client.post("/v1/trust/agreements", json={**_terms(), "signature": SIGNATURE})
        client.delete("/v1/trust/agreements/prop-1")

        resp = client.post("/v1/trust/agreements", json={**_terms(), "signature": SIGNATURE})
        assert resp.status_code == 200
        assert resp.json()["state"] == "ended"
        assert resp.json()["duplicate"] is True
        assert client.get(f"/v1/trust/profiles/{TENANT}").json().get("currentRental") is None
