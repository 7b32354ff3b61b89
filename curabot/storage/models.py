"""SQLAlchemy ORM models for CuraBot."""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests and local dev)
JSONType = JSON().with_variant(JSONB(), "postgresql")

PROJECT_STATUSES = ("pending", "running", "completed", "failed")
ANALYSIS_STATUSES = ("pending", "completed", "failed")
STEP_STATUSES = ("pending", "completed", "failed", "needs_retry")
SUBSCRIPTION_STATUSES = ("active", "inactive", "canceled")


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


# --- Visual automation projects ---


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    owner_id: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    objective: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String,
        CheckConstraint("status IN ('pending','running','completed','failed')"),
        default="pending",
    )
    latest_analysis_status: Mapped[Optional[str]] = mapped_column(String)
    latest_analysis_summary: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    analyses: Mapped[list["Analysis"]] = relationship(
        back_populates="project",
        order_by="Analysis.started_at.desc()",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("idx_projects_owner", "owner_id"),
        Index("idx_projects_status", "status"),
    )


class Analysis(Base):
    __tablename__ = "analyses"

    # Supplied by the automation service, never generated locally
    id: Mapped[str] = mapped_column(Text, primary_key=True)
    project_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    url: Mapped[str] = mapped_column(Text, nullable=False)
    objective: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String,
        CheckConstraint("status IN ('pending','completed','failed')"),
        default="pending",
    )
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    summary: Mapped[Optional[str]] = mapped_column(Text)

    project: Mapped["Project"] = relationship(back_populates="analyses")
    steps: Mapped[list["Step"]] = relationship(
        back_populates="analysis",
        order_by="Step.step_number",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("idx_analyses_project", "project_id", "started_at"),
    )


class Step(Base):
    __tablename__ = "steps"

    # Globally unique, supplied by the automation service
    id: Mapped[str] = mapped_column(Text, primary_key=True)
    analysis_id: Mapped[str] = mapped_column(
        Text, ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False
    )
    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[Optional[str]] = mapped_column(Text)
    step_status: Mapped[str] = mapped_column(
        String,
        CheckConstraint("step_status IN ('pending','completed','failed','needs_retry')"),
        default="pending",
    )
    args: Mapped[Optional[Any]] = mapped_column(JSONType)
    result: Mapped[Optional[Any]] = mapped_column(JSONType)
    screenshot_path: Mapped[Optional[str]] = mapped_column(Text)
    step_description: Mapped[Optional[str]] = mapped_column(Text)
    page_description: Mapped[Optional[str]] = mapped_column(Text)
    action_intent: Mapped[Optional[str]] = mapped_column(Text)
    action_reasoning: Mapped[Optional[str]] = mapped_column(Text)
    error: Mapped[Optional[str]] = mapped_column(Text)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    analysis: Mapped["Analysis"] = relationship(back_populates="steps")

    __table_args__ = (
        Index("idx_steps_analysis", "analysis_id", "step_number"),
    )


# --- Patients and medication reminders ---


class Patient(Base):
    __tablename__ = "patients"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    owner_id: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    phone: Mapped[str] = mapped_column(Text, nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False)
    emergency_contact: Mapped[Optional[str]] = mapped_column(Text)
    emergency_phone: Mapped[Optional[str]] = mapped_column(Text)
    medical_conditions: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String, default="active")
    adherence_rate: Mapped[float] = mapped_column(Float, default=0.0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    medications: Mapped[list["Medication"]] = relationship(
        back_populates="patient", order_by="Medication.time", passive_deletes=True
    )

    __table_args__ = (
        Index("idx_patients_owner", "owner_id"),
    )


class Medication(Base):
    __tablename__ = "medications"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    patient_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    dosage: Mapped[str] = mapped_column(Text, nullable=False)
    time: Mapped[str] = mapped_column(Text, nullable=False)
    frequency: Mapped[str] = mapped_column(Text, default="daily")
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    patient: Mapped["Patient"] = relationship(back_populates="medications")

    __table_args__ = (
        Index("idx_medications_patient", "patient_id"),
    )


class CallLog(Base):
    __tablename__ = "call_logs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    patient_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    duration: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String, default="pending")
    medications: Mapped[list] = mapped_column(JSONType, default=list)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    transcript: Mapped[Optional[str]] = mapped_column(Text)
    conversation_id: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("idx_call_logs_patient", "patient_id", "scheduled_at"),
        Index("idx_call_logs_status", "status"),
    )


class MedicalRecord(Base):
    __tablename__ = "medical_records"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    patient_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    file_url: Mapped[Optional[str]] = mapped_column(Text)
    file_name: Mapped[Optional[str]] = mapped_column(Text)
    file_type: Mapped[Optional[str]] = mapped_column(Text)
    record_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("idx_medical_records_patient", "patient_id", "record_date"),
    )


class TimelineEvent(Base):
    __tablename__ = "timeline_events"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    patient_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    metadata_: Mapped[Optional[dict]] = mapped_column("metadata", JSONType)
    event_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("idx_timeline_patient", "patient_id", "event_date"),
    )


# --- Billing ---


class BillingAccount(Base):
    __tablename__ = "billing_accounts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    owner_id: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(Text, unique=True)
    subscription_id: Mapped[Optional[str]] = mapped_column(Text)
    subscription_status: Mapped[str] = mapped_column(
        String,
        CheckConstraint("subscription_status IN ('active','inactive','canceled')"),
        default="inactive",
    )
    price_id: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
