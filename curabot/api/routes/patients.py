"""Patient routes: patients, medications, medical records, timeline, calls."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from curabot.api.deps import get_scope, get_voice_client
from curabot.patients import service
from curabot.patients.schemas import (
    CreatePatientRequest,
    CreateRecordRequest,
    CreateTimelineEventRequest,
    MedicationInput,
    UpdatePatientRequest,
)
from curabot.patients.service import dump
from curabot.patients.voice import VoiceAgentClient, call_patient
from curabot.storage.scoped import OwnerScope

logger = logging.getLogger(__name__)

router = APIRouter(tags=["patients"])


@router.get("/patients")
async def list_patients(scope: OwnerScope = Depends(get_scope)):
    patients = await service.list_patients(scope)
    stats = await service.patient_stats(scope)
    return {"patients": dump(patients), "stats": dump(stats)}


@router.post("/patients", status_code=201)
async def create_patient(
    body: CreatePatientRequest,
    scope: OwnerScope = Depends(get_scope),
    voice: VoiceAgentClient = Depends(get_voice_client),
):
    patient = await service.create_patient(scope, body)
    # The patient is kept even when the reminder call cannot be placed
    await call_patient(scope, patient, voice)
    return {"patient": dump(patient)}


@router.get("/patients/{patient_id}")
async def get_patient(patient_id: str, scope: OwnerScope = Depends(get_scope)):
    return {"patient": dump(await service.get_patient(scope, patient_id))}


@router.patch("/patients/{patient_id}")
async def update_patient(patient_id: str, body: UpdatePatientRequest, scope: OwnerScope = Depends(get_scope)):
    return {"patient": dump(await service.update_patient(scope, patient_id, body))}


@router.delete("/patients/{patient_id}")
async def delete_patient(patient_id: str, scope: OwnerScope = Depends(get_scope)):
    await service.delete_patient(scope, patient_id)
    return {"success": True}


# --- Medications ---


@router.post("/patients/{patient_id}/medications", status_code=201)
async def add_medication(patient_id: str, body: MedicationInput, scope: OwnerScope = Depends(get_scope)):
    return {"medication": dump(await service.add_medication(scope, patient_id, body))}


@router.delete("/patients/{patient_id}/medications/{medication_id}")
async def remove_medication(patient_id: str, medication_id: str, scope: OwnerScope = Depends(get_scope)):
    await service.remove_medication(scope, patient_id, medication_id)
    return {"success": True}


# --- Medical records ---


@router.get("/patients/{patient_id}/records")
async def list_records(patient_id: str, scope: OwnerScope = Depends(get_scope)):
    return {"records": dump(await service.list_records(scope, patient_id))}


@router.post("/patients/{patient_id}/records", status_code=201)
async def create_record(patient_id: str, body: CreateRecordRequest, scope: OwnerScope = Depends(get_scope)):
    return {"record": dump(await service.create_record(scope, patient_id, body))}


@router.delete("/patients/{patient_id}/records")
async def delete_record(
    patient_id: str,
    record_id: Optional[str] = Query(None, alias="recordId"),
    scope: OwnerScope = Depends(get_scope),
):
    await service.delete_record(scope, patient_id, record_id)
    return {"success": True}


# --- Timeline ---


@router.get("/patients/{patient_id}/timeline")
async def get_timeline(
    patient_id: str,
    limit: Optional[int] = Query(None, ge=1, le=500),
    offset: Optional[int] = Query(None, ge=0),
    scope: OwnerScope = Depends(get_scope),
):
    return {"timeline": dump(await service.get_timeline(scope, patient_id, limit, offset))}


@router.post("/patients/{patient_id}/timeline", status_code=201)
async def add_timeline_event(
    patient_id: str, body: CreateTimelineEventRequest, scope: OwnerScope = Depends(get_scope)
):
    return {"event": dump(await service.add_timeline_event(scope, patient_id, body))}


# --- Calls ---


@router.post("/patients/{patient_id}/call")
async def place_call(
    patient_id: str,
    scope: OwnerScope = Depends(get_scope),
    voice: VoiceAgentClient = Depends(get_voice_client),
):
    patient = await service.get_patient(scope, patient_id)
    log = await call_patient(scope, patient, voice)
    if log is None:
        return JSONResponse({"error": "Reminder call could not be placed"}, status_code=502)
    return {"callLog": dump(log)}
