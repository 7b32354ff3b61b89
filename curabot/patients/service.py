"""Patient care records: patients, medications, call logs, records, timeline."""

import logging
from datetime import datetime, time, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import selectinload

from curabot.errors import NotFoundError, ValidationFailed
from curabot.patients.schemas import (
    CallLogListItem,
    CallLogResponse,
    CreatePatientRequest,
    CreateRecordRequest,
    CreateTimelineEventRequest,
    MedicalRecordResponse,
    MedicationInput,
    MedicationResponse,
    PatientDetailResponse,
    PatientResponse,
    PatientStats,
    TimelineEventResponse,
    UpdateCallLogRequest,
    UpdatePatientRequest,
)
from curabot.storage.models import CallLog, MedicalRecord, Medication, Patient, TimelineEvent, _utcnow
from curabot.storage.scoped import OwnerScope

logger = logging.getLogger(__name__)

RECENT_CALL_LOGS = 20
_WITH_MEDICATIONS = (selectinload(Patient.medications),)


def _add_event(scope: OwnerScope, patient_id: str, type_: str, title: str,
               description: Optional[str] = None, metadata: Optional[dict] = None,
               event_date: Optional[datetime] = None) -> TimelineEvent:
    event = TimelineEvent(
        patient_id=patient_id,
        type=type_,
        title=title,
        description=description,
        metadata_=metadata,
        event_date=event_date or _utcnow(),
        created_at=_utcnow(),
    )
    scope.session.add(event)
    return event


def _record_title(record_type: str) -> str:
    # "lab_result" -> "Lab Result Added"
    return f"{record_type.replace('_', ' ', 1).title()} Added"


# --- Patients ---


async def list_patients(scope: OwnerScope) -> list[PatientResponse]:
    patients = await scope.patients.find(order_by=Patient.name, options=_WITH_MEDICATIONS)
    return [PatientResponse.model_validate(p) for p in patients]


async def get_patient(scope: OwnerScope, patient_id: str) -> PatientDetailResponse:
    patient = await scope.patients.require(patient_id, options=_WITH_MEDICATIONS)

    call_logs = (
        await scope.session.execute(
            select(CallLog)
            .where(CallLog.patient_id == patient_id)
            .order_by(CallLog.scheduled_at.desc())
            .limit(RECENT_CALL_LOGS)
        )
    ).scalars().all()
    records = (
        await scope.session.execute(
            select(MedicalRecord)
            .where(MedicalRecord.patient_id == patient_id)
            .order_by(MedicalRecord.record_date.desc())
        )
    ).scalars().all()

    base = PatientResponse.model_validate(patient).model_dump()
    return PatientDetailResponse(
        **base,
        call_logs=[CallLogResponse.model_validate(c) for c in call_logs],
        medical_records=[MedicalRecordResponse.model_validate(r) for r in records],
    )


async def create_patient(scope: OwnerScope, req: CreatePatientRequest) -> PatientResponse:
    if not req.name or not req.phone or not req.age:
        raise ValidationFailed("Name, phone, and age are required")
    if not req.medications:
        raise ValidationFailed("At least one medication is required")

    now = _utcnow()
    patient = Patient(
        owner_id=scope.owner_id,
        name=req.name.strip(),
        phone=req.phone.strip(),
        age=req.age,
        emergency_contact=req.emergency_contact,
        emergency_phone=req.emergency_phone,
        medical_conditions=req.medical_conditions,
        notes=req.notes,
        status="active",
        adherence_rate=0.0,
        created_at=now,
        updated_at=now,
        medications=[
            Medication(
                name=m.name,
                dosage=m.dosage,
                time=m.time,
                frequency=m.frequency or "daily",
                active=True,
                created_at=now,
            )
            for m in req.medications
        ],
    )
    scope.session.add(patient)
    await scope.session.flush()

    _add_event(scope, patient.id, "note", "Patient Added", f"{patient.name} was added to CuraBot care")
    await scope.session.flush()
    logger.info("Created patient %s with %d medication(s)", patient.id, len(req.medications))
    return PatientResponse.model_validate(patient)


async def update_patient(scope: OwnerScope, patient_id: str, req: UpdatePatientRequest) -> PatientDetailResponse:
    values = req.model_dump(exclude_unset=True)
    for required in ("name", "phone", "age", "status"):
        if required in values and values[required] is None:
            raise ValidationFailed(f"{required} cannot be empty")
    values["updated_at"] = _utcnow()
    if not await scope.patients.update(patient_id, values):
        raise NotFoundError("Patient not found")
    return await get_patient(scope, patient_id)


async def delete_patient(scope: OwnerScope, patient_id: str) -> None:
    if not await scope.patients.delete(patient_id):
        raise NotFoundError("Patient not found")


# --- Medications ---


async def add_medication(scope: OwnerScope, patient_id: str, med: MedicationInput) -> MedicationResponse:
    await scope.patients.require(patient_id)
    medication = Medication(
        patient_id=patient_id,
        name=med.name,
        dosage=med.dosage,
        time=med.time,
        frequency=med.frequency or "daily",
        active=True,
        created_at=_utcnow(),
    )
    scope.session.add(medication)
    _add_event(
        scope,
        patient_id,
        "medication_change",
        "Medication Added",
        f"{med.name} ({med.dosage}) added at {med.time}",
    )
    await scope.session.flush()
    return MedicationResponse.model_validate(medication)


async def remove_medication(scope: OwnerScope, patient_id: str, medication_id: str) -> None:
    """Soft delete: the medication stays on record as inactive."""
    await scope.patients.require(patient_id)
    result = await scope.session.execute(
        update(Medication)
        .where(Medication.id == medication_id, Medication.patient_id == patient_id)
        .values(active=False)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError("Medication not found")


# --- Call logs ---


async def list_call_logs(
    scope: OwnerScope,
    patient_id: Optional[str] = None,
    status: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> list[CallLogListItem]:
    query = (
        select(CallLog, Patient.name)
        .join(Patient, Patient.id == CallLog.patient_id)
        .where(Patient.owner_id == scope.owner_id)
        .order_by(CallLog.scheduled_at.desc())
    )
    if patient_id:
        query = query.where(CallLog.patient_id == patient_id)
    if status:
        query = query.where(CallLog.status == status)
    if offset:
        query = query.offset(offset)
    if limit:
        query = query.limit(limit)

    rows = (await scope.session.execute(query)).all()
    return [
        CallLogListItem(**CallLogResponse.model_validate(log).model_dump(), patient_name=name)
        for log, name in rows
    ]


async def create_call_log(
    scope: OwnerScope,
    patient_id: str,
    medications: list[str],
    scheduled_at: Optional[datetime] = None,
    status: str = "pending",
    conversation_id: Optional[str] = None,
) -> CallLogResponse:
    await scope.patients.require(patient_id)
    log = CallLog(
        patient_id=patient_id,
        scheduled_at=scheduled_at or _utcnow(),
        medications=list(medications),
        status=status,
        duration=0,
        conversation_id=conversation_id,
        created_at=_utcnow(),
    )
    scope.session.add(log)
    await scope.session.flush()
    return CallLogResponse.model_validate(log)


async def update_call_log(scope: OwnerScope, call_log_id: str, req: UpdateCallLogRequest) -> CallLogResponse:
    log = await scope.session.scalar(
        select(CallLog)
        .join(Patient, Patient.id == CallLog.patient_id)
        .where(CallLog.id == call_log_id, Patient.owner_id == scope.owner_id)
    )
    if log is None:
        raise NotFoundError("Call log not found")

    for field, value in req.model_dump(exclude_unset=True).items():
        if value is None and field in ("status", "duration"):
            continue
        setattr(log, field, value)

    if req.status in ("completed", "missed"):
        _add_event(
            scope,
            log.patient_id,
            "call",
            "Call Completed" if req.status == "completed" else "Call Missed",
            req.notes or f"Medication reminder call {req.status}",
            metadata={"callLogId": log.id, "duration": req.duration, "medications": log.medications},
        )
    await scope.session.flush()
    logger.info("Updated call log %s (status=%s)", call_log_id, log.status)
    return CallLogResponse.model_validate(log)


# --- Medical records ---


async def list_records(scope: OwnerScope, patient_id: str) -> list[MedicalRecordResponse]:
    await scope.patients.require(patient_id)
    records = (
        await scope.session.execute(
            select(MedicalRecord)
            .where(MedicalRecord.patient_id == patient_id)
            .order_by(MedicalRecord.record_date.desc())
        )
    ).scalars().all()
    return [MedicalRecordResponse.model_validate(r) for r in records]


async def create_record(scope: OwnerScope, patient_id: str, req: CreateRecordRequest) -> MedicalRecordResponse:
    if not req.type or not req.title or not req.record_date:
        raise ValidationFailed("Type, title, and record date are required")
    await scope.patients.require(patient_id)

    record = MedicalRecord(
        patient_id=patient_id,
        type=req.type,
        title=req.title,
        description=req.description,
        file_url=req.file_url,
        file_name=req.file_name,
        file_type=req.file_type,
        record_date=req.record_date,
        created_at=_utcnow(),
    )
    scope.session.add(record)
    await scope.session.flush()
    _add_event(
        scope,
        patient_id,
        "record_added",
        _record_title(req.type),
        req.title,
        metadata={"recordId": record.id, "type": req.type},
        event_date=req.record_date,
    )
    await scope.session.flush()
    return MedicalRecordResponse.model_validate(record)


async def delete_record(scope: OwnerScope, patient_id: str, record_id: Optional[str]) -> None:
    if not record_id:
        raise ValidationFailed("Record ID is required")
    await scope.patients.require(patient_id)
    record = await scope.session.scalar(
        select(MedicalRecord).where(MedicalRecord.id == record_id, MedicalRecord.patient_id == patient_id)
    )
    if record is None:
        raise NotFoundError("Record not found")
    await scope.session.delete(record)


# --- Timeline ---


async def get_timeline(
    scope: OwnerScope, patient_id: str, limit: Optional[int] = None, offset: Optional[int] = None
) -> list[TimelineEventResponse]:
    await scope.patients.require(patient_id)
    query = (
        select(TimelineEvent)
        .where(TimelineEvent.patient_id == patient_id)
        .order_by(TimelineEvent.event_date.desc())
    )
    if offset:
        query = query.offset(offset)
    if limit:
        query = query.limit(limit)
    events = (await scope.session.execute(query)).scalars().all()
    return [TimelineEventResponse.model_validate(e) for e in events]


async def add_timeline_event(
    scope: OwnerScope, patient_id: str, req: CreateTimelineEventRequest
) -> TimelineEventResponse:
    if not req.type or not req.title:
        raise ValidationFailed("Type and title are required")
    await scope.patients.require(patient_id)
    event = _add_event(scope, patient_id, req.type, req.title, req.description, req.metadata, req.event_date)
    await scope.session.flush()
    return TimelineEventResponse.model_validate(event)


# --- Stats ---


async def patient_stats(scope: OwnerScope, today: Optional[datetime] = None) -> PatientStats:
    """Patient counts plus today's call outcomes (UTC day)."""
    today = today or _utcnow()
    start = datetime.combine(today.date(), time.min, tzinfo=timezone.utc)
    end = start + timedelta(days=1)
    session = scope.session

    counts = (
        await session.execute(
            select(
                func.count(Patient.id),
                func.count(Patient.id).filter(Patient.status == "active"),
            ).where(Patient.owner_id == scope.owner_id)
        )
    ).one()
    total, active = counts[0] or 0, counts[1] or 0

    calls = (
        await session.execute(
            select(
                func.count(CallLog.id),
                func.count(CallLog.id).filter(CallLog.status == "completed"),
                func.count(CallLog.id).filter(CallLog.status == "missed"),
            )
            .join(Patient, Patient.id == CallLog.patient_id)
            .where(
                Patient.owner_id == scope.owner_id,
                CallLog.scheduled_at >= start,
                CallLog.scheduled_at < end,
            )
        )
    ).one()
    today_calls, completed, missed = (c or 0 for c in calls)

    return PatientStats(
        total_patients=total,
        active_patients=active,
        needs_attention=total - active,
        today_calls=today_calls,
        completed_calls=completed,
        missed_calls=missed,
        success_rate=round(completed / today_calls * 100) if today_calls else 0,
    )


def dump(model) -> Any:
    """JSON-ready dict for a response model (or list of them)."""
    if isinstance(model, list):
        return [dump(m) for m in model]
    return model.model_dump(mode="json", by_alias=True)
