"""HTTP surface: envelope, error codes and the acting-user header."""

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from carebill.api.deps import get_db
from carebill.main import app
from carebill.services.billing_charges import CONSULTATION_CATEGORY

API = "/api"


@pytest.fixture
def client(db):
    def _override():
        yield db

    app.dependency_overrides[get_db] = _override
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def opd_bill(db, seed, client):
    seed.add_rate(CONSULTATION_CATEGORY, 500)
    c = seed.add_consultation(seed.add_patient(), "OPD-1")
    r = client.post(f"{API}/opd/consultations/{c.id}/finalize",
                    json={"action": "complete"})
    assert r.status_code == 200
    return r.json()["data"]["bill"]


class TestEnvelope:
    def test_health(self, client):
        assert client.get("/").status_code == 200

    def test_finalize_returns_bill(self, opd_bill):
        assert opd_bill["gross_amount"] == 500
        assert opd_bill["status"] == "Pending"
        assert opd_bill["invoice_number"].startswith("INV-")

    def test_get_by_id_and_case(self, client, opd_bill):
        a = client.get(f"{API}/billing/bills/{opd_bill['id']}").json()
        b = client.get(f"{API}/billing/cases/OPD-1/bill").json()
        assert a["ok"] is True
        assert a["data"]["id"] == b["data"]["id"]

    def test_list_with_meta(self, client, seed, opd_bill):
        r = client.get(f"{API}/billing/bills",
                       params={"hospital_id": seed.hospital.id, "q": "asha"})
        body = r.json()
        assert body["meta"]["total"] == 1
        assert body["data"][0]["id"] == opd_bill["id"]


class TestErrors:
    def test_missing_rate_is_422(self, client, seed):
        c = seed.add_consultation(seed.add_patient(), "OPD-9")
        r = client.post(f"{API}/opd/consultations/{c.id}/finalize",
                        json={"action": "complete"})
        assert r.status_code == 422
        body = r.json()
        assert body["ok"] is False
        assert body["error"]["code"] == "MISSING_RATE"
        assert body["error"]["details"] == {"category": CONSULTATION_CATEGORY}

    def test_unknown_bill_is_404(self, client):
        r = client.get(f"{API}/billing/bills/12345")
        assert r.status_code == 404
        assert r.json()["error"]["code"] == "NOT_FOUND"

    def test_overpayment_is_recorded(self, client, opd_bill):
        r = client.post(f"{API}/billing/bills/{opd_bill['id']}/payments",
                        json={"amount": "900", "mode": "Cash"})
        assert r.status_code == 201
        data = r.json()["data"]
        assert data["status"] == "Paid"
        assert data["outstanding"] == 0
        assert data["balance"] == -400

    def test_percentage_over_100_is_clamped(self, client, opd_bill):
        r = client.post(f"{API}/billing/bills/{opd_bill['id']}/discount",
                        json={"type": "Percentage", "value": 150})
        assert r.status_code == 200
        assert r.json()["data"]["net_amount"] == 0

    def test_request_validation(self, client, opd_bill):
        r = client.post(f"{API}/billing/bills/{opd_bill['id']}/discount",
                        json={"type": "Percentage"})
        assert r.status_code == 422
        body = r.json()
        assert body["error"]["code"] == "REQUEST_VALIDATION"
        assert body["error"]["details"][0]["loc"][-1] == "value"


class TestBillingFlow:
    def test_discount_and_payment_record_actor(self, client, opd_bill):
        bid = opd_bill["id"]
        r = client.post(f"{API}/billing/bills/{bid}/discount",
                        json={"type": "Percentage", "value": 10},
                        headers={"X-User-Id": "42"})
        assert r.json()["data"]["net_amount"] == 450
        assert r.json()["data"]["discount"]["applied_by"] == "42"

        r = client.post(f"{API}/billing/bills/{bid}/payments",
                        json={"amount": "450", "mode": "UPI"},
                        headers={"X-User-Id": "42"})
        assert r.status_code == 201
        data = r.json()["data"]
        assert data["status"] == "Paid"
        assert data["payments"][0]["recorded_by"] == "42"

    def test_walk_in_bill(self, client, seed):
        seed.add_rate("X-Ray", 400)
        patient = seed.add_patient()
        seed.add_appointment(patient, "WALK-1")
        r = client.post(f"{API}/billing/bills", json={
            "case_id": "WALK-1",
            "patient_id": patient.id,
            "hospital_id": seed.hospital.id,
            "services": [{"category": "X-Ray", "quantity": 2}],
            "payment": {"amount": "800", "mode": "Card"},
        })
        assert r.status_code == 201
        assert r.json()["data"]["status"] == "Paid"

    def test_ipd_stay(self, client, seed):
        seed.add_rate("Deluxe", 1000)
        patient = seed.add_patient()
        _, bed = seed.add_room_with_bed(daily_rate=1000)
        seed.add_admission(patient, "IPD-1")

        r = client.post(f"{API}/ipd/cases/IPD-1/admit",
                        json={"bed_id": bed.id,
                              "admitted_at": "2025-01-01T10:00:00"})
        assert r.status_code == 201
        assert r.json()["data"]["bill"]["is_live"] is True

        r = client.post(f"{API}/ipd/cases/IPD-1/discharge",
                        json={"discharged_at": "2025-01-02T09:00:00"})
        assert r.status_code == 200
        data = r.json()["data"]
        assert data["days_occupied"] == 1
        assert data["bill"]["is_live"] is False
        assert data["bill"]["gross_amount"] == 1000

    def test_room_job_endpoint(self, client, seed, admitted, monkeypatch):
        from carebill.services import billing_room_daily

        seed.add_rate("Deluxe", 1000)
        monkeypatch.setattr(billing_room_daily, "now_local",
                            lambda: datetime(2025, 1, 3, 0, 30))
        r = client.post(f"{API}/billing/jobs/room-charges",
                        json={"include_today": False})
        data = r.json()["data"]
        assert data["lines_added"] == 2
        assert data["totals"]["billed"] == 1
