"""Tests for the ElevenLabs reminder call flow."""

import json

import httpx
import pytest

from curabot.config import VoiceSettings
from curabot.patients import service
from curabot.patients.schemas import CreatePatientRequest
from curabot.patients.voice import VoiceAgentClient, build_conversation_config, build_prompt, call_patient

VOICE = VoiceSettings(api_key="xi-test", phone_number_id="phone-1", default_voice_id="voice-1")


async def _patient(scope):
    return await service.create_patient(scope, CreatePatientRequest.model_validate({
        "name": "Margaret Johnson",
        "phone": "+15551234567",
        "age": 78,
        "medicalConditions": "Type 2 Diabetes, Hypertension",
        "medications": [
            {"name": "Metformin", "dosage": "500mg", "time": "08:00", "frequency": "twice daily"},
            {"name": "Lisinopril", "dosage": "10mg", "time": "08:00"},
        ],
    }))


class FakeElevenLabs:
    def __init__(self, agent_status=200, call_status=200):
        self.agent_status = agent_status
        self.call_status = call_status
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/v1/convai/agents/create":
            return httpx.Response(self.agent_status, json={"agent_id": "agent-42"})
        if request.url.path == "/v1/convai/twilio/outbound-call":
            return httpx.Response(self.call_status, json={"success": True, "conversation_id": "conv-7"})
        return httpx.Response(404)


class TestConversationConfig:
    @pytest.mark.asyncio
    async def test_prompt_lists_active_medications(self, scope):
        patient = await _patient(scope)
        prompt = build_prompt(patient)
        assert "• Name: Margaret Johnson" in prompt
        assert "• Metformin 500mg at 08:00 (twice daily)" in prompt
        assert "• Lisinopril 10mg at 08:00 (daily)" in prompt
        assert "Emergency Contact: Not provided" in prompt

    @pytest.mark.asyncio
    async def test_inactive_medications_are_left_out(self, scope):
        patient = await _patient(scope)
        await service.remove_medication(scope, patient.id, patient.medications[1].id)
        scope.session.expire_all()
        refreshed = await service.get_patient(scope, patient.id)
        assert "Lisinopril" not in build_prompt(refreshed)

    @pytest.mark.asyncio
    async def test_config_shape(self, scope):
        patient = await _patient(scope)
        config = build_conversation_config(patient, VOICE)

        assert config["agent"]["first_message"].startswith("Hi Margaret,")
        assert config["agent"]["prompt"]["temperature"] == 0.4
        assert config["agent"]["dynamic_variables"]["dynamic_variable_placeholders"]["patientName"] == (
            "Margaret Johnson"
        )
        assert config["asr"]["keywords"] == ["Margaret Johnson", "Type 2 Diabetes", "Hypertension"]
        assert config["conversation"]["max_duration_seconds"] == 900
        assert config["tts"]["voice_id"] == "voice-1"

    @pytest.mark.asyncio
    async def test_no_voice_id_when_unset(self, scope):
        patient = await _patient(scope)
        config = build_conversation_config(patient, VoiceSettings())
        assert "voice_id" not in config["tts"]


class TestCallPatient:
    @pytest.mark.asyncio
    async def test_places_call_and_logs_it(self, scope):
        patient = await _patient(scope)
        fake = FakeElevenLabs()
        client = VoiceAgentClient(VOICE, transport=httpx.MockTransport(fake))

        log = await call_patient(scope, patient, client)

        assert log.status == "in_progress"
        assert log.conversation_id == "conv-7"
        assert log.medications == ["Metformin 500mg", "Lisinopril 10mg"]

        create, dial = fake.requests
        assert create.headers["xi-api-key"] == "xi-test"
        assert json.loads(create.content)["name"] == "CuraBot reminder - Margaret Johnson"
        assert json.loads(dial.content) == {
            "agent_id": "agent-42",
            "agent_phone_number_id": "phone-1",
            "to_number": "+15551234567",
        }

        logs = await service.list_call_logs(scope, patient_id=patient.id)
        assert [entry.id for entry in logs] == [log.id]

    @pytest.mark.asyncio
    async def test_unconfigured_skips(self, scope):
        patient = await _patient(scope)
        fake = FakeElevenLabs()
        client = VoiceAgentClient(VoiceSettings(api_key=""), transport=httpx.MockTransport(fake))

        assert await call_patient(scope, patient, client) is None
        assert fake.requests == []

    @pytest.mark.asyncio
    async def test_disabled_skips(self, scope):
        patient = await _patient(scope)
        settings = VoiceSettings(enabled=False, api_key="xi-test", phone_number_id="phone-1")
        assert VoiceAgentClient(settings).configured is False
        assert await call_patient(scope, patient, VoiceAgentClient(settings)) is None

    @pytest.mark.asyncio
    async def test_upstream_failure_is_swallowed(self, scope):
        patient = await _patient(scope)
        client = VoiceAgentClient(VOICE, transport=httpx.MockTransport(FakeElevenLabs(call_status=500)))

        assert await call_patient(scope, patient, client) is None
        assert await service.list_call_logs(scope, patient_id=patient.id) == []

    @pytest.mark.asyncio
    async def test_missing_agent_id_is_a_failure(self, scope):
        patient = await _patient(scope)
        client = VoiceAgentClient(
            VOICE, transport=httpx.MockTransport(lambda request: httpx.Response(200, json={}))
        )
        assert await call_patient(scope, patient, client) is None
