"""Request and response models for patients and their care records.

Stored rows are returned with their column names (snake_case). Request
bodies accept the camelCase keys the dashboard sends as well.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Request(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Requests ---


class MedicationInput(_Request):
    name: str = Field(min_length=1)
    dosage: str = Field(min_length=1)
    time: str = Field(min_length=1)
    frequency: Optional[str] = None


class CreatePatientRequest(_Request):
    name: Optional[str] = None
    phone: Optional[str] = None
    age: Optional[int] = None
    emergency_contact: Optional[str] = None
    emergency_phone: Optional[str] = None
    medical_conditions: Optional[str] = None
    notes: Optional[str] = None
    medications: list[MedicationInput] = []


class UpdatePatientRequest(_Request):
    name: Optional[str] = None
    phone: Optional[str] = None
    age: Optional[int] = None
    emergency_contact: Optional[str] = None
    emergency_phone: Optional[str] = None
    medical_conditions: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None


class CreateRecordRequest(_Request):
    type: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    record_date: Optional[datetime] = None


class CreateTimelineEventRequest(_Request):
    type: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    event_date: Optional[datetime] = None


class UpdateCallLogRequest(_Request):
    status: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration: Optional[int] = None
    notes: Optional[str] = None
    transcript: Optional[str] = None


# --- Responses ---


class MedicationResponse(BaseModel):
    id: str
    patient_id: str
    name: str
    dosage: str
    time: str
    frequency: str
    active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class PatientResponse(BaseModel):
    id: str
    user_id: str = Field(validation_alias=AliasChoices("owner_id", "user_id"))
    name: str
    phone: str
    age: int
    emergency_contact: Optional[str] = None
    emergency_phone: Optional[str] = None
    medical_conditions: Optional[str] = None
    notes: Optional[str] = None
    status: str
    adherence_rate: float
    created_at: datetime
    updated_at: datetime
    medications: list[MedicationResponse] = []

    model_config = {"from_attributes": True}


class CallLogResponse(BaseModel):
    id: str
    patient_id: str
    scheduled_at: datetime
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration: int = 0
    status: str
    medications: list[str] = []
    notes: Optional[str] = None
    transcript: Optional[str] = None
    conversation_id: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class MedicalRecordResponse(BaseModel):
    id: str
    patient_id: str
    type: str
    title: str
    description: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    record_date: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


class TimelineEventResponse(BaseModel):
    id: str
    patient_id: str
    type: str
    title: str
    description: Optional[str] = None
    metadata: Optional[dict[str, Any]] = Field(default=None, validation_alias=AliasChoices("metadata_", "metadata"))
    event_date: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


class PatientDetailResponse(PatientResponse):
    call_logs: list[CallLogResponse] = Field(default=[], serialization_alias="callLogs")
    medical_records: list[MedicalRecordResponse] = Field(default=[], serialization_alias="medicalRecords")


class PatientStats(BaseModel):
    total_patients: int = Field(serialization_alias="totalPatients")
    active_patients: int = Field(serialization_alias="activePatients")
    needs_attention: int = Field(serialization_alias="needsAttention")
    today_calls: int = Field(serialization_alias="todayCalls")
    completed_calls: int = Field(serialization_alias="completedCalls")
    missed_calls: int = Field(serialization_alias="missedCalls")
    success_rate: int = Field(serialization_alias="successRate")


class CallLogListItem(CallLogResponse):
    patient_name: Optional[str] = Field(default=None, serialization_alias="patientName")
