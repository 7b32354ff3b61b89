"""Medication reminder calls through the ElevenLabs conversational AI API."""

import logging
from typing import Any, Optional

import httpx

from curabot.config import VoiceSettings, get_settings
from curabot.errors import UpstreamError
from curabot.patients.schemas import CallLogResponse, PatientResponse
from curabot.patients.service import create_call_log
from curabot.storage.models import _utcnow
from curabot.storage.scoped import OwnerScope

logger = logging.getLogger(__name__)

PROMPT_HEADER = [
    "You are an empathetic healthcare assistant calling patients on behalf of CuraBot.",
    "Always introduce yourself as a virtual nurse from CuraBot and mention that the call "
    "may be recorded for training purposes.",
    "Use the patient profile below to personalize the conversation and provide actionable guidance.",
    "If you are unsure of an answer, acknowledge it and offer to connect them with a human nurse.",
]

CONVERSATION_GOALS = [
    "Conversation goals:",
    "1. Make sure the patient feels heard and supported.",
    "2. Confirm they are taking medications according to the plan.",
    "3. Offer to escalate to their human care team if needed.",
]


def medication_lines(patient: PatientResponse) -> list[str]:
    lines = []
    for med in patient.medications:
        if not med.active:
            continue
        line = f"• {med.name}"
        if med.dosage:
            line += f" {med.dosage}"
        if med.time:
            line += f" at {med.time}"
        if med.frequency:
            line += f" ({med.frequency})"
        lines.append(line)
    return lines


def build_prompt(patient: PatientResponse) -> str:
    meds = medication_lines(patient)
    profile = [
        "Patient Profile:",
        f"• Name: {patient.name}",
        f"• Age: {patient.age}",
        f"• Phone: {patient.phone}",
        f"• Emergency Contact: {patient.emergency_contact or 'Not provided'}",
        f"• Emergency Phone: {patient.emergency_phone or 'Not provided'}",
        f"• Medical Conditions: {patient.medical_conditions or 'Not provided'}",
        f"• Notes: {patient.notes or 'None'}",
        "• Medications:\n" + ("\n".join(meds) if meds else "• None documented"),
    ]
    return "\n".join(PROMPT_HEADER + [""] + profile + [""] + CONVERSATION_GOALS)


def build_conversation_config(patient: PatientResponse, settings: VoiceSettings) -> dict[str, Any]:
    """Agent configuration for one patient, in the API's snake_case schema."""
    first_name = patient.name.split(" ")[0] or patient.name
    keywords = [patient.name] + (patient.medical_conditions or "").split(",")
    keywords = [k.strip() for k in keywords if k.strip()]

    tts: dict[str, Any] = {
        "model_id": "eleven_multilingual_v2",
        "stability": 0.45,
        "similarity_boost": 0.75,
        "optimize_streaming_latency": 3,
    }
    if settings.default_voice_id:
        tts["voice_id"] = settings.default_voice_id

    return {
        "agent": {
            "first_message": (
                f"Hi {first_name}, this is your virtual care assistant from CuraBot "
                "checking in. How are you feeling today?"
            ),
            "language": "en",
            "prompt": {
                "prompt": build_prompt(patient),
                "llm": settings.llm,
                "temperature": 0.4,
                "max_tokens": 512,
            },
            "dynamic_variables": {
                "dynamic_variable_placeholders": {
                    "patientName": patient.name,
                    "patientPhone": patient.phone,
                    "emergencyContact": patient.emergency_contact or "",
                    "emergencyPhone": patient.emergency_phone or "",
                    "medicationsSummary": "\n".join(medication_lines(patient)),
                }
            },
            "disable_first_message_interruptions": False,
        },
        "asr": {
            "quality": "high",
            "provider": "elevenlabs",
            "user_input_audio_format": "pcm_16000",
            "keywords": keywords,
        },
        "conversation": {"max_duration_seconds": 900},
        "turn": {"turn_timeout": 20, "silence_end_call_timeout": 90, "turn_eagerness": "normal"},
        "tts": tts,
    }


class VoiceAgentClient:
    """Creates a per-patient agent and places the outbound phone call."""

    def __init__(self, settings: Optional[VoiceSettings] = None, transport=None):
        self.settings = settings or get_settings().voice
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.settings.enabled and self.settings.api_key and self.settings.phone_number_id)

    async def _post(self, client: httpx.AsyncClient, path: str, body: dict) -> dict:
        try:
            resp = await client.post(path, json=body)
        except httpx.HTTPError as e:
            raise UpstreamError("Voice agent service unreachable", detail=str(e)) from e
        if resp.status_code >= 300:
            raise UpstreamError(f"Voice agent service returned {resp.status_code}", detail=resp.text[:500])
        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamError("Voice agent service returned invalid JSON", detail=resp.text[:500]) from e

    async def place_reminder_call(self, patient: PatientResponse) -> dict:
        """Create the agent and dial the patient. Returns the call response."""
        async with httpx.AsyncClient(
            base_url=self.settings.base_url,
            headers={"xi-api-key": self.settings.api_key},
            timeout=30.0,
            transport=self._transport,
        ) as client:
            agent = await self._post(
                client,
                "/v1/convai/agents/create",
                {
                    "name": f"CuraBot reminder - {patient.name}",
                    "conversation_config": build_conversation_config(patient, self.settings),
                },
            )
            agent_id = agent.get("agent_id")
            if not agent_id:
                raise UpstreamError("Voice agent service returned no agent_id")
            logger.debug("Created voice agent %s for patient %s", agent_id, patient.id)

            call = await self._post(
                client,
                "/v1/convai/twilio/outbound-call",
                {
                    "agent_id": agent_id,
                    "agent_phone_number_id": self.settings.phone_number_id,
                    "to_number": patient.phone,
                },
            )
        logger.info("Placed reminder call to patient %s (conversation %s)", patient.id, call.get("conversation_id"))
        return call


async def call_patient(
    scope: OwnerScope, patient: PatientResponse, client: Optional[VoiceAgentClient] = None
) -> Optional[CallLogResponse]:
    """Place a reminder call and log it. Never raises on voice service failures.

    Returns the new call log, or None when the call was skipped or failed.
    """
    client = client or VoiceAgentClient()
    if not client.configured:
        logger.info("Voice calls not configured; skipping reminder call for %s", patient.id)
        return None

    try:
        call = await client.place_reminder_call(patient)
    except UpstreamError as e:
        logger.error("Reminder call to patient %s failed: %s %s", patient.id, e.message, e.detail)
        return None

    meds = [f"{m.name} {m.dosage}" for m in patient.medications if m.active]
    return await create_call_log(
        scope,
        patient.id,
        meds,
        scheduled_at=_utcnow(),
        status="in_progress",
        conversation_id=call.get("conversation_id"),
    )
