"""
Integration tests for the care transition endpoints.
"""
from __future__ import annotations

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from apps.api.main import app

CREATE_BODY = {"encounter_key": 500, "patient_key": 10, "hospital_key": 3, "visit_number": "V-1"}


@pytest.fixture
def client():
    return TestClient(app)


def _create(client, tenant_key="t1", **overrides) -> int:
    resp = client.post(f"/tenants/{tenant_key}/care-transitions", json={**CREATE_BODY, **overrides})
    assert resp.status_code == 201, resp.text
    return resp.json()["key"]


class TestLifecycleFlow:
    def test_create_outreach_close(self, client):
        # 1. Create
        resp = client.post("/tenants/t1/care-transitions", json=CREATE_BODY)
        assert resp.status_code == 201
        body = resp.json()
        assert body["success"] is True
        assert body["message"] == "Care transition created successfully"
        key = body["key"]

        resp = client.get(f"/tenants/t1/care-transitions/{key}")
        assert resp.status_code == 200
        ct = resp.json()
        assert ct["status"] == "New"
        assert ct["is_active"] is True
        assert ct["outreach_attempts"] == 0

        # 2. Log outreach
        resp = client.post(
            f"/tenants/t1/care-transitions/{key}/outreach",
            json={"outreach_method": "phone", "contact_outcome": "reached", "notes": "Spoke with patient"},
        )
        assert resp.status_code == 200
        assert resp.json()["message"] == "Outreach logged successfully"

        ct = client.get(f"/tenants/t1/care-transitions/{key}").json()
        assert ct["outreach_attempts"] == 1
        assert ct["status"] == "InProgress"
        assert ct["notes"].endswith("Outreach #1: Spoke with patient")

        # 3. Close
        resp = client.post(f"/tenants/t1/care-transitions/{key}/close", json={"close_reason": "resolved"})
        assert resp.status_code == 200

        ct = client.get(f"/tenants/t1/care-transitions/{key}").json()
        assert ct["status"] == "Closed"
        assert ct["is_active"] is False
        assert ct["closed_utc"] is not None
        assert ct["close_reason"] == "resolved"

        # 4. Closed transitions accept no more outreach
        resp = client.post(f"/tenants/t1/care-transitions/{key}/outreach", json={"outreach_method": "sms"})
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "key": key, "message": "Care transition is closed"}

    def test_update_assign_priority_risk(self, client):
        key = _create(client)

        resp = client.patch(
            f"/tenants/t1/care-transitions/{key}",
            json={"status": "Open", "tcm_schedule1_ts": "20250117", "preferred_language": "es"},
        )
        assert resp.status_code == 200

        resp = client.post(
            f"/tenants/t1/care-transitions/{key}/assign",
            json={"care_manager_user_key": "cm1", "assigned_to_user_key": "nurse7", "assigned_team": "Team A"},
        )
        assert resp.status_code == 200
        assert client.post(f"/tenants/t1/care-transitions/{key}/priority", json={"priority": "High"}).status_code == 200
        assert client.post(f"/tenants/t1/care-transitions/{key}/risk-tier", json={"risk_tier": "Low"}).status_code == 200

        ct = client.get(f"/tenants/t1/care-transitions/{key}").json()
        assert ct["status"] == "Open"
        assert ct["tcm_schedule1"] == "2025-01-17T00:00:00"
        assert ct["preferred_language"] == "es"
        assert ct["care_manager_user_key"] == "cm1"
        assert ct["priority"] == "High"
        assert ct["risk_tier"] == "Low"

        resp = client.get(f"/tenants/t1/care-transitions/{key}/assign", params={"assigned_to_user_key": "nurse7"})
        assert resp.status_code == 200
        assert resp.json()["assigned_team"] == "Team A"
        resp = client.get(f"/tenants/t1/care-transitions/{key}/assign", params={"assigned_to_user_key": "nurse8"})
        assert resp.status_code == 404

    def test_update_cannot_close(self, client):
        key = _create(client)
        resp = client.patch(f"/tenants/t1/care-transitions/{key}", json={"status": "Closed"})
        assert resp.status_code == 400
        assert resp.json()["message"] == "Use close to close a care transition"

    def test_unknown_key_is_404(self, client):
        for method, path, body in [
            ("patch", "/tenants/t1/care-transitions/9999", {"notes": "x"}),
            ("post", "/tenants/t1/care-transitions/9999/close", {}),
            ("post", "/tenants/t1/care-transitions/9999/outreach", {}),
        ]:
            resp = getattr(client, method)(path, json=body)
            assert resp.status_code == 404
            assert resp.json()["message"] == "Care transition not found"
        for path in ("", "/timeline", "/compliance", "/notes", "/assign"):
            assert client.get(f"/tenants/t1/care-transitions/9999{path}").status_code == 404


class TestValidation:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"patient_key": 0},
            {"visit_number": ""},
            {"tcm_schedule1_ts": "2025011"},
            {"tcm_schedule2_ts": "sometime soon"},
            {"priority": "Urgent"},
            {"status": "Pending"},
            {"readmission_risk_score": 101},
        ],
    )
    def test_create_rejects_invalid_payload(self, client, overrides):
        resp = client.post("/tenants/t1/care-transitions", json={**CREATE_BODY, **overrides})
        assert resp.status_code == 422

    def test_create_closed_is_400(self, client):
        resp = client.post("/tenants/t1/care-transitions", json={**CREATE_BODY, "status": "Closed"})
        assert resp.status_code == 400
        assert resp.json()["success"] is False

    def test_oversized_tenant_key_is_400(self, client):
        resp = client.get(f"/tenants/{'x' * 65}/care-transitions")
        assert resp.status_code == 400


class TestTenantIsolation:
    def test_other_tenant_cannot_see_or_change(self, client):
        key = _create(client, "t1")
        assert client.get(f"/tenants/t2/care-transitions/{key}").status_code == 404
        resp = client.patch(f"/tenants/t2/care-transitions/{key}", json={"notes": "hijack"})
        assert resp.status_code == 404
        assert client.get("/tenants/t2/care-transitions").json() == []
        assert client.get(f"/tenants/t1/care-transitions/{key}").json()["notes"] is None

    def test_enforced_identity_blocks_cross_tenant(self, client, monkeypatch):
        monkeypatch.setenv("HIPAA_ENFORCEMENT", "true")
        monkeypatch.setenv("API_INTERNAL_TOKEN", "s" * 32)
        headers = {"X-Internal-Token": "s" * 32, "X-User-Id": "nurse7", "X-Tenant-Key": "t1"}

        assert client.get("/tenants/t1/care-transitions", headers=headers).status_code == 200
        resp = client.get("/tenants/t2/care-transitions", headers=headers)
        assert resp.status_code == 403
        assert client.get("/tenants/t1/care-transitions").status_code == 401

    def test_enforced_identity_is_recorded_as_closer_and_author(self, client, monkeypatch):
        key = _create(client)
        monkeypatch.setenv("HIPAA_ENFORCEMENT", "true")
        monkeypatch.setenv("API_INTERNAL_TOKEN", "s" * 32)
        headers = {"X-Internal-Token": "s" * 32, "X-User-Id": "nurse7", "X-Tenant-Key": "t1"}

        client.post(f"/tenants/t1/care-transitions/{key}/outreach", json={"notes": "called"}, headers=headers)
        client.post(f"/tenants/t1/care-transitions/{key}/close", json={}, headers=headers)

        notes = client.get(f"/tenants/t1/care-transitions/{key}/notes", headers=headers).json()
        assert [(n["attempt_number"], n["author_user_key"]) for n in notes] == [(1, "nurse7")]
        ct = client.get(f"/tenants/t1/care-transitions/{key}", headers=headers).json()
        assert ct["closed_by_user_key"] == "nurse7"


class TestQueries:
    def test_lists(self, client):
        first = _create(client, encounter_key=1, patient_key=42)
        second = _create(client, encounter_key=2, patient_key=42, tcm_schedule1_ts="20250101")
        third = _create(client, encounter_key=3, patient_key=43)
        client.post(f"/tenants/t1/care-transitions/{first}/outreach", json={})
        client.post(f"/tenants/t1/care-transitions/{third}/close", json={"close_reason": "declined"})

        listed = client.get("/tenants/t1/care-transitions").json()
        assert {item["care_transition_key"] for item in listed} == {first, second, third}
        assert all(item["patient_name"].startswith("Patient ") for item in listed)

        active = client.get("/tenants/t1/care-transitions/active").json()
        assert [item["care_transition_key"] for item in active][0] == second
        assert {item["care_transition_key"] for item in active} == {first, second}

        in_progress = client.get("/tenants/t1/care-transitions/status/InProgress").json()
        assert [item["care_transition_key"] for item in in_progress] == [first]
        assert client.get("/tenants/t1/care-transitions/status/Bogus").status_code == 422

        by_patient = client.get("/tenants/t1/care-transitions/patient/42").json()
        assert {item["care_transition_key"] for item in by_patient} == {first, second}

        assert client.get("/tenants/t1/care-transitions/encounter/2").json()["care_transition_key"] == second
        assert client.get("/tenants/t1/care-transitions/encounter/999").status_code == 404

        page = client.get("/tenants/t1/care-transitions", params={"skip": 1, "take": 1}).json()
        assert len(page) == 1

    def test_timeline_compliance_notes(self, client):
        key = _create(client, tcm_schedule1_ts="20200101", care_manager_user_key="cm1")
        client.post(
            f"/tenants/t1/care-transitions/{key}/outreach",
            json={"outreach_method": "phone", "contact_outcome": "reached", "notes": "first call"},
        )

        timeline = client.get(f"/tenants/t1/care-transitions/{key}/timeline").json()
        assert [event["event_type"] for event in timeline] == ["Created", "Assignment", "TCM Contact", "Outreach"]
        assert timeline[3]["description"] == "1 outreach attempt(s) - Last: reached"

        compliance = client.get(f"/tenants/t1/care-transitions/{key}/compliance").json()
        assert compliance["contact_window"]["state"] == "Elapsed"
        assert compliance["contact_window"]["breached"] is True
        assert compliance["follow_up_window"]["state"] == "NotScheduled"

        notes = client.get(f"/tenants/t1/care-transitions/{key}/notes").json()
        assert [(n["attempt_number"], n["text"]) for n in notes] == [(1, "first call")]


class TestDischargeIntake:
    def test_open_from_encounter(self, client, seed_registry):
        seed_registry("t1", 700, patient_key=70, hospital_key=7, discharge=datetime(2025, 1, 10))

        resp = client.post("/tenants/t1/care-transitions/from-encounter/700", json={"priority": "High"})
        assert resp.status_code == 200
        key = resp.json()["key"]

        ct = client.get(f"/tenants/t1/care-transitions/{key}").json()
        assert ct["tcm_schedule1"] == "2025-01-12T00:00:00"
        assert ct["tcm_schedule2"] == "2025-01-24T00:00:00"
        assert ct["priority"] == "High"

        again = client.post("/tenants/t1/care-transitions/from-encounter/700")
        assert again.status_code == 200
        assert again.json() == {"success": True, "key": key, "message": "Active care transition already exists"}

        summary = client.get("/tenants/t1/care-transitions").json()[0]
        assert summary["patient_name"] == "Ada Lovelace"
        assert summary["hospital"]["hospital_name"] == "General Hospital"

    def test_unknown_encounter_is_404(self, client):
        resp = client.post("/tenants/t1/care-transitions/from-encounter/404")
        assert resp.status_code == 404
        assert resp.json()["message"] == "Encounter not found"


class TestForwardedUser:
    def test_user_header_names_the_author_without_enforcement(self, client, monkeypatch):
        monkeypatch.delenv("HIPAA_ENFORCEMENT", raising=False)
        key = _create(client)
        client.post(f"/tenants/t1/care-transitions/{key}/outreach", json={"notes": "called"}, headers={"X-User-Id": "nurse9"})
        notes = client.get(f"/tenants/t1/care-transitions/{key}/notes").json()
        assert notes[0]["author_user_key"] == "nurse9"

    def test_enforced_request_with_wrong_gateway_token_is_401(self, client, monkeypatch):
        monkeypatch.setenv("HIPAA_ENFORCEMENT", "true")
        monkeypatch.setenv("API_INTERNAL_TOKEN", "s" * 32)
        headers = {"X-Internal-Token": "t" * 32, "X-User-Id": "nurse7", "X-Tenant-Key": "t1"}
        assert client.get("/tenants/t1/care-transitions", headers=headers).status_code == 401
