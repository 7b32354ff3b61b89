"""Demo data so a new account has something to look at."""

import logging
from datetime import timedelta

from sqlalchemy import select

from curabot.storage.models import CallLog, MedicalRecord, Medication, Patient, TimelineEvent, _utcnow
from curabot.storage.scoped import OwnerScope

logger = logging.getLogger(__name__)

# name, phone, age, emergency contact, emergency phone, conditions, notes, status, adherence, days ago
DEMO_PATIENTS = [
    (
        "Margaret Johnson", "+1 (555) 123-4567", 78,
        "Sarah Johnson (Daughter)", "+1 (555) 987-6543",
        "Type 2 Diabetes, Hypertension, Mild Arthritis",
        "Prefers morning calls. Hard of hearing - speak slowly and clearly.",
        "active", 94, 45,
    ),
    (
        "Robert Williams", "+1 (555) 234-5678", 82,
        "Michael Williams (Son)", "+1 (555) 876-5432",
        "Atrial Fibrillation, High Cholesterol",
        "Very punctual with medications. Likes to chat during calls.",
        "active", 98, 30,
    ),
    (
        "Dorothy Brown", "+1 (555) 345-6789", 75,
        "Jennifer Brown (Daughter)", "+1 (555) 765-4321",
        "Hypothyroidism, Osteoporosis",
        "Sometimes forgets evening medications. May need follow-up calls.",
        "active", 78, 60,
    ),
    (
        "James Wilson", "+1 (555) 456-7890", 80,
        "Patricia Wilson (Wife)", "+1 (555) 654-3210",
        "COPD, Type 2 Diabetes, Glaucoma",
        "Wife usually helps with medications. Call her if no answer.",
        "active", 88, 20,
    ),
    (
        "Helen Davis", "+1 (555) 567-8901", 85,
        "Thomas Davis (Son)", "+1 (555) 543-2109",
        "Congestive Heart Failure, Chronic Kidney Disease",
        "Requires careful medication timing. Do not call during nap time (2-4 PM).",
        "needs_attention", 65, 90,
    ),
]

# patient index -> (name, dosage, time, frequency)
DEMO_MEDICATIONS = {
    0: [
        ("Metformin", "500mg", "08:00", "twice daily"),
        ("Lisinopril", "10mg", "08:00", "daily"),
        ("Aspirin", "81mg", "12:00", "daily"),
        ("Metformin", "500mg", "18:00", "twice daily"),
    ],
    1: [
        ("Warfarin", "5mg", "09:00", "daily"),
        ("Atorvastatin", "20mg", "21:00", "daily"),
        ("Metoprolol", "25mg", "09:00", "twice daily"),
        ("Metoprolol", "25mg", "21:00", "twice daily"),
    ],
    2: [
        ("Levothyroxine", "50mcg", "06:00", "daily"),
        ("Calcium + Vitamin D", "600mg/400IU", "12:00", "daily"),
        ("Alendronate", "70mg", "06:00", "weekly"),
    ],
    3: [
        ("Tiotropium", "18mcg", "08:00", "daily"),
        ("Metformin", "1000mg", "08:00", "twice daily"),
        ("Metformin", "1000mg", "20:00", "twice daily"),
        ("Timolol Eye Drops", "0.5%", "20:00", "daily"),
    ],
    4: [
        ("Furosemide", "40mg", "08:00", "daily"),
        ("Carvedilol", "12.5mg", "08:00", "twice daily"),
        ("Carvedilol", "12.5mg", "20:00", "twice daily"),
        ("Spironolactone", "25mg", "08:00", "daily"),
    ],
}

# patient index, hours ago, status, duration seconds, notes
DEMO_CALLS = [
    (0, 2, "completed", 185, "Confirmed morning medications taken. Reported feeling well."),
    (1, 3, "completed", 240, "Took Warfarin on time. Asked about upcoming INR test."),
    (2, 5, "missed", 0, None),
    (3, 6, "completed", 150, "Wife confirmed medications were taken."),
    (4, 1, "missed", 0, None),
    (4, 26, "completed", 320, "Reported mild ankle swelling. Advised to contact cardiologist."),
]

# patient index, type, title, description, days ago
DEMO_RECORDS = [
    (0, "lab_result", "HbA1c Test", "HbA1c at 6.8%, improved from 7.2%", 14),
    (1, "lab_result", "INR Check", "INR within target range (2.4)", 7),
    (2, "prescription", "Levothyroxine Dose Review", "Dose unchanged after TSH review", 30),
    (4, "doctor_note", "Cardiology Follow-up", "Monitor fluid intake and daily weight", 10),
]


async def seed_demo_data(scope: OwnerScope) -> dict:
    """Insert demo patients for an owner who has none. Idempotent per owner."""
    existing = await scope.session.scalar(
        select(Patient.id).where(Patient.owner_id == scope.owner_id).limit(1)
    )
    if existing is not None:
        return {"message": "User already has data", "seeded": False}

    now = _utcnow()
    patients = []
    for i, (name, phone, age, contact, contact_phone, conditions, notes, status, adherence, days) in enumerate(
        DEMO_PATIENTS
    ):
        created = now - timedelta(days=days)
        patient = Patient(
            owner_id=scope.owner_id,
            name=name,
            phone=phone,
            age=age,
            emergency_contact=contact,
            emergency_phone=contact_phone,
            medical_conditions=conditions,
            notes=notes,
            status=status,
            adherence_rate=float(adherence),
            created_at=created,
            updated_at=created,
            medications=[
                Medication(name=m, dosage=d, time=t, frequency=f, active=True, created_at=created)
                for m, d, t, f in DEMO_MEDICATIONS.get(i, [])
            ],
        )
        patients.append(patient)
        scope.session.add(patient)
    await scope.session.flush()

    for patient in patients:
        scope.session.add(
            TimelineEvent(
                patient_id=patient.id,
                type="note",
                title="Patient Added",
                description=f"{patient.name} was added to CuraBot care",
                event_date=patient.created_at,
                created_at=now,
            )
        )

    for i, hours, status, duration, notes in DEMO_CALLS:
        patient = patients[i]
        scheduled = now - timedelta(hours=hours)
        meds = [f"{m} {d}" for m, d, _, _ in DEMO_MEDICATIONS.get(i, [])[:2]]
        scope.session.add(
            CallLog(
                patient_id=patient.id,
                scheduled_at=scheduled,
                started_at=scheduled if status == "completed" else None,
                ended_at=scheduled + timedelta(seconds=duration) if status == "completed" else None,
                duration=duration,
                status=status,
                medications=meds,
                notes=notes,
                created_at=scheduled,
            )
        )
        scope.session.add(
            TimelineEvent(
                patient_id=patient.id,
                type="call",
                title="Call Completed" if status == "completed" else "Call Missed",
                description=notes or "Medication reminder call missed",
                metadata_={"duration": duration, "medications": meds},
                event_date=scheduled,
                created_at=now,
            )
        )

    for i, record_type, title, description, days in DEMO_RECORDS:
        scope.session.add(
            MedicalRecord(
                patient_id=patients[i].id,
                type=record_type,
                title=title,
                description=description,
                record_date=now - timedelta(days=days),
                created_at=now,
            )
        )

    await scope.session.flush()
    logger.info("Seeded %d demo patients for owner %s", len(patients), scope.owner_id)
    return {"message": "Demo data seeded successfully", "seeded": True, "patientsCreated": len(patients)}
