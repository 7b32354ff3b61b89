"""End-to-end tests for patient, call log, userdata and billing routes."""

import json
from unittest.mock import MagicMock, patch

import httpx
import pytest
import stripe

from curabot.config import VoiceSettings
from curabot.patients.voice import VoiceAgentClient
from tests.conftest import OTHER_OWNER, auth_headers

OWNER_HEADERS = auth_headers()
OTHER_HEADERS = auth_headers(OTHER_OWNER)

NEW_PATIENT = {
    "name": "Margaret Johnson",
    "phone": "+15551234567",
    "age": 78,
    "emergencyContact": "Sarah Johnson",
    "medicalConditions": "Hypertension",
    "medications": [{"name": "Lisinopril", "dosage": "10mg", "time": "08:00"}],
}


async def _create_patient(client, headers=OWNER_HEADERS) -> dict:
    resp = await client.post("/api/patients", json=NEW_PATIENT, headers=headers)
    assert resp.status_code == 201
    return resp.json()["patient"]


class TestPatients:
    @pytest.mark.asyncio
    async def test_create_without_voice_configured(self, client):
        patient = await _create_patient(client)
        assert patient["name"] == "Margaret Johnson"
        assert patient["emergency_contact"] == "Sarah Johnson"
        assert patient["status"] == "active"
        assert [m["frequency"] for m in patient["medications"]] == ["daily"]

        body = (await client.get("/api/patients", headers=OWNER_HEADERS)).json()
        assert [p["id"] for p in body["patients"]] == [patient["id"]]
        assert body["stats"]["totalPatients"] == 1
        assert body["stats"]["todayCalls"] == 0

    @pytest.mark.asyncio
    async def test_create_validation(self, client):
        resp = await client.post("/api/patients", json={"name": "Margaret"}, headers=OWNER_HEADERS)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Name, phone, and age are required"}

        no_meds = {**NEW_PATIENT, "medications": []}
        resp = await client.post("/api/patients", json=no_meds, headers=OWNER_HEADERS)
        assert resp.json() == {"error": "At least one medication is required"}

    @pytest.mark.asyncio
    async def test_requires_sign_in(self, client):
        resp = await client.get("/api/patients")
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_detail_update_delete(self, client):
        patient = await _create_patient(client)
        url = f"/api/patients/{patient['id']}"

        detail = (await client.get(url, headers=OWNER_HEADERS)).json()["patient"]
        assert detail["callLogs"] == []
        assert detail["medicalRecords"] == []

        resp = await client.patch(url, json={"notes": "Prefers mornings"}, headers=OWNER_HEADERS)
        assert resp.json()["patient"]["notes"] == "Prefers mornings"
        assert resp.json()["patient"]["name"] == "Margaret Johnson"

        resp = await client.delete(url, headers=OWNER_HEADERS)
        assert resp.json() == {"success": True}
        assert (await client.get(url, headers=OWNER_HEADERS)).status_code == 404

    @pytest.mark.asyncio
    async def test_other_owner_sees_nothing(self, client):
        patient = await _create_patient(client)
        url = f"/api/patients/{patient['id']}"

        resp = await client.get(url, headers=OTHER_HEADERS)
        assert resp.status_code == 404
        assert resp.json() == {"error": "Patient not found"}
        assert (await client.patch(url, json={"notes": "x"}, headers=OTHER_HEADERS)).status_code == 404
        assert (await client.delete(url, headers=OTHER_HEADERS)).status_code == 404
        assert (await client.get("/api/patients", headers=OTHER_HEADERS)).json()["patients"] == []


class TestMedicationsAndRecords:
    @pytest.mark.asyncio
    async def test_add_and_remove_medication(self, client):
        patient = await _create_patient(client)
        base = f"/api/patients/{patient['id']}/medications"

        resp = await client.post(
            base, json={"name": "Metformin", "dosage": "500mg", "time": "20:00"}, headers=OWNER_HEADERS
        )
        assert resp.status_code == 201
        medication = resp.json()["medication"]

        resp = await client.delete(f"{base}/{medication['id']}", headers=OWNER_HEADERS)
        assert resp.json() == {"success": True}

        detail = (await client.get(f"/api/patients/{patient['id']}", headers=OWNER_HEADERS)).json()["patient"]
        by_name = {m["name"]: m["active"] for m in detail["medications"]}
        assert by_name == {"Lisinopril": True, "Metformin": False}

    @pytest.mark.asyncio
    async def test_medication_needs_fields(self, client):
        patient = await _create_patient(client)
        resp = await client.post(
            f"/api/patients/{patient['id']}/medications", json={"name": "Metformin"}, headers=OWNER_HEADERS
        )
        assert resp.status_code == 400
        assert resp.json()["error"].startswith("Invalid request")

    @pytest.mark.asyncio
    async def test_records(self, client):
        patient = await _create_patient(client)
        base = f"/api/patients/{patient['id']}/records"

        resp = await client.post(
            base,
            json={"type": "lab_result", "title": "A1C panel", "recordDate": "2026-03-01T09:00:00Z"},
            headers=OWNER_HEADERS,
        )
        assert resp.status_code == 201
        record = resp.json()["record"]

        records = (await client.get(base, headers=OWNER_HEADERS)).json()["records"]
        assert [r["id"] for r in records] == [record["id"]]

        resp = await client.delete(base, headers=OWNER_HEADERS)
        assert resp.json() == {"error": "Record ID is required"}
        resp = await client.delete(base, params={"recordId": record["id"]}, headers=OWNER_HEADERS)
        assert resp.json() == {"success": True}
        assert (await client.get(base, headers=OWNER_HEADERS)).json()["records"] == []

    @pytest.mark.asyncio
    async def test_timeline(self, client):
        patient = await _create_patient(client)
        base = f"/api/patients/{patient['id']}/timeline"

        resp = await client.post(
            base,
            json={"type": "note", "title": "Family visit", "metadata": {"by": "Sarah"},
                  "eventDate": "2099-01-01T00:00:00Z"},
            headers=OWNER_HEADERS,
        )
        assert resp.status_code == 201
        assert resp.json()["event"]["metadata"] == {"by": "Sarah"}

        timeline = (await client.get(base, headers=OWNER_HEADERS)).json()["timeline"]
        assert [e["title"] for e in timeline] == ["Family visit", "Patient Added"]

        limited = (await client.get(base, params={"limit": 1, "offset": 1}, headers=OWNER_HEADERS)).json()
        assert [e["title"] for e in limited["timeline"]] == ["Patient Added"]

        assert (await client.get(base, headers=OTHER_HEADERS)).status_code == 404


class TestCalls:
    @pytest.mark.asyncio
    async def test_call_without_voice_configured(self, client):
        patient = await _create_patient(client)
        resp = await client.post(f"/api/patients/{patient['id']}/call", headers=OWNER_HEADERS)
        assert resp.status_code == 502
        assert resp.json() == {"error": "Reminder call could not be placed"}

    @pytest.mark.asyncio
    async def test_call_then_update_log(self, client):
        patient = await _create_patient(client)

        def handler(request: httpx.Request):
            if request.url.path.endswith("/agents/create"):
                return httpx.Response(200, json={"agent_id": "agent-1"})
            return httpx.Response(200, json={"conversation_id": "conv-1"})

        client.app.state.voice_client = VoiceAgentClient(
            VoiceSettings(api_key="xi-test", phone_number_id="phone-1"), transport=httpx.MockTransport(handler)
        )
        resp = await client.post(f"/api/patients/{patient['id']}/call", headers=OWNER_HEADERS)
        call_log = resp.json()["callLog"]
        assert call_log["status"] == "in_progress"
        assert call_log["medications"] == ["Lisinopril 10mg"]

        logs = (await client.get("/api/call-logs", params={"patientId": patient["id"]}, headers=OWNER_HEADERS))
        assert [(entry["id"], entry["patientName"]) for entry in logs.json()["callLogs"]] == [
            (call_log["id"], "Margaret Johnson")
        ]

        resp = await client.patch(
            f"/api/call-logs/{call_log['id']}", json={"status": "completed", "duration": 95}, headers=OWNER_HEADERS
        )
        assert resp.json()["callLog"]["duration"] == 95

        timeline = (
            await client.get(f"/api/patients/{patient['id']}/timeline", headers=OWNER_HEADERS)
        ).json()["timeline"]
        assert "Call Completed" in [e["title"] for e in timeline]

        resp = await client.patch(
            f"/api/call-logs/{call_log['id']}", json={"status": "missed"}, headers=OTHER_HEADERS
        )
        assert resp.status_code == 404

        completed = await client.get("/api/call-logs", params={"status": "completed"}, headers=OWNER_HEADERS)
        assert len(completed.json()["callLogs"]) == 1
        foreign = await client.get("/api/call-logs", headers=OTHER_HEADERS)
        assert foreign.json()["callLogs"] == []


class TestUserdata:
    @pytest.mark.asyncio
    async def test_seed_once(self, client):
        first = (await client.post("/api/userdata/seed", headers=OWNER_HEADERS)).json()
        assert first["seeded"] is True
        assert first["patientsCreated"] > 0

        second = (await client.post("/api/userdata/seed", headers=OWNER_HEADERS)).json()
        assert second == {"message": "User already has data", "seeded": False}

        patients = (await client.get("/api/patients", headers=OWNER_HEADERS)).json()["patients"]
        assert len(patients) == first["patientsCreated"]


class TestBillingRoutes:
    @pytest.mark.asyncio
    async def test_plans_are_public(self, client):
        prices = {"data": [{
            "id": "price_basic",
            "unit_amount": 1900,
            "currency": "usd",
            "metadata": {},
            "product": {"name": "Basic", "description": "", "active": True},
        }]}
        with patch.object(stripe.Price, "list", MagicMock(return_value=prices)):
            resp = await client.get("/api/pricing/plans")
        assert [p["priceId"] for p in resp.json()["plans"]] == ["price_basic"]

    @pytest.mark.asyncio
    async def test_checkout_uses_origin(self, client):
        created = MagicMock(return_value={"id": "cs_1"})
        with patch.object(stripe.checkout.Session, "create", created):
            resp = await client.post(
                "/api/pricing/stripe-checkout",
                json={"priceId": "price_basic"},
                headers={"origin": "https://app.curabot.test"},
            )
        assert resp.json() == {"sessionId": "cs_1"}
        assert created.call_args.kwargs["cancel_url"] == "https://app.curabot.test/pricing"

    @pytest.mark.asyncio
    async def test_checkout_requires_price(self, client):
        resp = await client.post("/api/pricing/stripe-checkout", json={})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Price ID is required"}

    @pytest.mark.asyncio
    async def test_webhook_rejects_bad_signature(self, client):
        resp = await client.post(
            "/api/pricing/stripe-events",
            content=json.dumps({"type": "ping"}),
            headers={"stripe-signature": "t=1,v1=bad"},
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "Webhook error"}

    @pytest.mark.asyncio
    async def test_subscription_lifecycle(self, client):
        assert (await client.get("/api/subscription", headers=OWNER_HEADERS)).json() == {"subscription": None}
        resp = await client.delete("/api/subscription", headers=OWNER_HEADERS)
        assert resp.status_code == 404
        assert resp.json() == {"error": "No subscription"}

    @pytest.mark.asyncio
    async def test_owner_checkout_needs_sign_in(self, client):
        resp = await client.post("/api/userdata", json={"priceId": "price_basic"})
        assert resp.status_code == 401
