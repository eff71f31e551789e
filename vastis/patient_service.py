from __future__ import annotations

import logging
import random
from datetime import date, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import joinedload

from . import storage
from .db import db_session
from .geo import haversine_km, simulated_distance_km
from .models import (
    Appointment,
    AppointmentStatus,
    ClaimStatus,
    Doctor,
    DoctorLocation,
    DoctorService,
    Gym,
    InsuranceProvider,
    MedicalRecord,
    NotificationType,
    Patient,
    PatientConsentForm,
    PatientHealthIntake,
    PatientInsurance,
    ServiceType,
)
from .services import (
    create_insurance_claim,
    create_row,
    delete_row,
    delete_row_with_file,
    fetch_all,
    fetch_appointments_for_patient,
    fetch_by_field,
    fetch_by_id,
    fetch_doctor_availability,
    make_reference,
    notify,
    parse_date,
    parse_time,
    to_dict,
    update_profile,
    upload_profile_image,
)

logger = logging.getLogger(__name__)

PROFILE_FIELDS = (
    "name", "phone", "address", "date_of_birth", "gender", "blood_type",
    "medical_history", "allergies", "current_medications", "current_conditions",
)


# =========================
# Profile
# =========================
def get_patient_profile(user_id: str) -> dict | None:
    with db_session() as s:
        p = s.execute(select(Patient).where(Patient.user_id == user_id)).scalar_one_or_none()
        return to_dict(p) if p else None


def update_patient_profile(patient_id: int, data: dict[str, Any]) -> bool:
    return update_profile(Patient, patient_id, data, PROFILE_FIELDS)


def upload_patient_profile_image(patient_id: int, filename: str, content: bytes, content_type: str | None = None) -> str | None:
    return upload_profile_image(Patient, patient_id, "patients", filename, content, content_type)


# =========================
# Insurance
# =========================
def get_patient_insurance(patient_id: int) -> list[dict]:
    with db_session() as s:
        rows = s.scalars(
            select(PatientInsurance)
            .options(joinedload(PatientInsurance.provider))
            .where(PatientInsurance.patient_id == patient_id)
            .order_by(PatientInsurance.created_at.desc(), PatientInsurance.id.desc())
        )
        out = []
        for pi in rows:
            item = to_dict(pi)
            item["insurance_provider"] = to_dict(pi.provider, ("id", "name"))
            out.append(item)
        return out


def add_patient_insurance(
    patient_id: int,
    insurance_provider_id: int,
    policy_number: str,
    group_number: str | None = None,
    coverage_details: Any = None,
) -> dict:
    if not policy_number or not policy_number.strip():
        raise ValueError("Policy number is required.")
    if fetch_by_id(InsuranceProvider, insurance_provider_id) is None:
        raise ValueError(f"Insurance provider {insurance_provider_id} not found.")
    return create_row(
        PatientInsurance,
        {
            "patient_id": patient_id,
            "insurance_provider_id": insurance_provider_id,
            "policy_number": policy_number.strip(),
            "group_number": group_number,
            "coverage_details": coverage_details,
        },
    )


def remove_patient_insurance(insurance_id: int, patient_id: int | None = None) -> bool:
    return delete_row(PatientInsurance, insurance_id, patient_id=patient_id)


# =========================
# Appointments
# =========================
def get_patient_appointments(patient_id: int) -> list[dict]:
    return fetch_appointments_for_patient(patient_id)


def book_appointment(
    patient_id: int,
    doctor_id: int,
    gym_id: int,
    service_type_id: int | None,
    appointment_date: str | date,
    appointment_time: str,
    price: float | None = None,
    appointment_type: str = "consultation",
    notes: str | None = None,
) -> dict:
    """
    Use case: a patient books a practitioner at a gym.
    - status 'scheduled'
    - the doctor and the patient are notified
    Overlapping bookings are not checked.
    """
    if not (patient_id and doctor_id and gym_id and appointment_date and appointment_time):
        raise ValueError("Missing required fields")
    day = parse_date(appointment_date)
    at = parse_time(appointment_time)

    with db_session() as s:
        patient = s.get(Patient, patient_id)
        doctor = s.get(Doctor, doctor_id)
        gym = s.get(Gym, gym_id)
        if not patient or not doctor or not gym:
            raise ValueError("Patient, doctor or gym not found.")
        if service_type_id is not None and s.get(ServiceType, service_type_id) is None:
            raise ValueError(f"Service type {service_type_id} not found.")

        app = Appointment(
            patient_id=patient_id,
            doctor_id=doctor_id,
            gym_id=gym_id,
            service_type_id=service_type_id,
            appointment_date=day,
            appointment_time=at,
            appointment_type=appointment_type or "consultation",
            appointment_status=AppointmentStatus.SCHEDULED,
            appointment_notes=notes,
            price=price,
        )
        s.add(app)
        s.flush()

        when = f"{day.isoformat()} at {at.strftime('%H:%M')}"
        notify(s, doctor.user_id, NotificationType.BOOKING, f"New appointment with {patient.name} on {when} at {gym.name}.")
        notify(s, patient.user_id, NotificationType.BOOKING, f"Your appointment with {doctor.name} on {when} is booked.")
        logger.info("Appointment #%s booked: patient #%s, doctor #%s, %s", app.id, patient_id, doctor_id, when)
        return to_dict(app)


def cancel_appointment(appointment_id: int, patient_id: int | None = None) -> bool:
    with db_session() as s:
        app = s.get(Appointment, appointment_id)
        if not app or (patient_id is not None and app.patient_id != patient_id):
            return False
        if app.appointment_status == AppointmentStatus.CANCELLED:
            return False
        app.appointment_status = AppointmentStatus.CANCELLED
        notify(
            s,
            app.doctor.user_id,
            NotificationType.CANCELLATION,
            f"{app.patient.name} cancelled the appointment on {app.appointment_date.isoformat()}.",
        )
        logger.info("Appointment #%s cancelled", appointment_id)
        return True


def split_appointments(rows: list[dict], now: datetime | None = None) -> dict[str, list[dict]]:
    """
    Upcoming: scheduled and not yet started (soonest first).
    Past: completed, or scheduled but already started (latest first).
    Cancelled: everything cancelled.
    """
    now = now or datetime.now()

    def starts(a: dict) -> datetime:
        return datetime.fromisoformat(f"{a['appointment_date']}T{a['appointment_time']}")

    scheduled = AppointmentStatus.SCHEDULED.value
    upcoming = [a for a in rows if a["appointment_status"] == scheduled and starts(a) >= now]
    past = [
        a
        for a in rows
        if a["appointment_status"] == AppointmentStatus.COMPLETED.value
        or (a["appointment_status"] == scheduled and starts(a) < now)
    ]
    cancelled = [a for a in rows if a["appointment_status"] == AppointmentStatus.CANCELLED.value]
    return {
        "upcoming": sorted(upcoming, key=starts),
        "past": sorted(past, key=starts, reverse=True),
        "cancelled": cancelled,
    }


def submit_insurance_claim(appointment_id: int, patient_insurance_id: int, amount: float, patient_id: int | None = None) -> dict:
    if patient_id is not None:
        if fetch_by_id(Appointment, appointment_id, patient_id=patient_id) is None:
            raise ValueError(f"Appointment {appointment_id} not found.")
        if fetch_by_id(PatientInsurance, patient_insurance_id, patient_id=patient_id) is None:
            raise ValueError(f"Insurance {patient_insurance_id} not found.")
    return create_insurance_claim(
        appointment_id,
        patient_insurance_id,
        amount,
        status=ClaimStatus.SUBMITTED,
        claim_reference=make_reference("CLAIM"),
    )


# =========================
# Finding practitioners
# =========================
def get_service_types() -> list[dict]:
    return fetch_all(ServiceType, order_by=ServiceType.name.asc())


def get_available_doctors(service_type_id: int | None = None) -> list[dict]:
    """Doctors with at least one service and one location, with their gyms."""
    with db_session() as s:
        q = (
            select(Doctor)
            .options(
                joinedload(Doctor.services).joinedload(DoctorService.service_type),
                joinedload(Doctor.locations).joinedload(DoctorLocation.gym),
            )
            .order_by(Doctor.name)
        )
        if service_type_id:
            q = q.where(Doctor.services.any(DoctorService.service_type_id == service_type_id))

        out = []
        for d in s.scalars(q).unique():
            if not d.services or not d.locations:
                continue
            item = to_dict(d, ("id", "name", "specialization", "profile_image", "bio"))
            item["services"] = [to_dict(ds.service_type, ("id", "name")) for ds in d.services]
            item["gyms"] = [
                to_dict(loc.gym, ("id", "name", "address", "latitude", "longitude")) for loc in d.locations
            ]
            out.append(item)
        return out


def get_doctor_availability_for_patient(doctor_id: int, gym_id: int | None = None) -> list[dict]:
    return fetch_doctor_availability(doctor_id, gym_id)


def find_providers(
    latitude: float | None = None,
    longitude: float | None = None,
    service_type_id: int | None = None,
) -> list[dict]:
    """
    One row per (doctor, gym). With coordinates, rows are sorted nearest first
    and gyms without coordinates come last.
    """
    rows = []
    for d in get_available_doctors(service_type_id):
        for gym in d["gyms"]:
            distance = None
            if latitude is not None and longitude is not None and gym["latitude"] is not None and gym["longitude"] is not None:
                distance = round(haversine_km(latitude, longitude, gym["latitude"], gym["longitude"]), 1)
            rows.append(
                {
                    "id": d["id"],
                    "name": d["name"],
                    "specialization": d["specialization"],
                    "gym_id": gym["id"],
                    "gym_name": gym["name"],
                    "gym_address": gym["address"],
                    "distance": distance,
                }
            )
    if latitude is not None and longitude is not None:
        rows.sort(key=lambda r: (r["distance"] is None, r["distance"] or 0.0))
    return rows


def find_physio_gyms(rng: random.Random | None = None) -> list[dict]:
    gyms = fetch_all(Gym, order_by=Gym.name.asc())
    out = [
        {"id": g["id"], "name": g["name"], "address": g["address"], "distance": simulated_distance_km(rng)}
        for g in gyms
    ]
    out.sort(key=lambda g: g["distance"])
    return out


# =========================
# Medical records (patient uploads)
# =========================
def upload_medical_record(
    patient_id: int,
    filename: str,
    content: bytes,
    record_type: str,
    description: str | None = None,
    content_type: str | None = None,
) -> dict:
    if not record_type:
        raise ValueError("Record type is required.")
    with storage.staged_upload(
        storage.MEDICAL_RECORDS, f"patients/{patient_id}/{record_type}", filename, content, content_type
    ) as url:
        return create_row(
            MedicalRecord,
            {
                "patient_id": patient_id,
                "record_type": record_type,
                "description": description,
                "file_path": url,
                "file_name": filename,
            },
        )


def get_medical_records(patient_id: int) -> list[dict]:
    return fetch_by_field(MedicalRecord, "patient_id", patient_id, order_by=MedicalRecord.created_at.desc())


def delete_medical_record(record_id: int, patient_id: int | None = None) -> bool:
    return delete_row_with_file(MedicalRecord, record_id, storage.MEDICAL_RECORDS, patient_id=patient_id)


# =========================
# Forms
# =========================
def get_health_intake(patient_id: int) -> dict | None:
    with db_session() as s:
        row = s.execute(
            select(PatientHealthIntake).where(PatientHealthIntake.patient_id == patient_id)
        ).scalar_one_or_none()
        return to_dict(row) if row else None


def save_health_intake(patient_id: int, answers: dict[str, Any]) -> dict:
    """Insert or replace the intake of a patient; blank answers are dropped."""
    cleaned = {k: v for k, v in answers.items() if v not in (None, "", [])}
    with db_session() as s:
        row = s.execute(
            select(PatientHealthIntake).where(PatientHealthIntake.patient_id == patient_id)
        ).scalar_one_or_none()
        if row is None:
            row = PatientHealthIntake(patient_id=patient_id, answers=cleaned)
            s.add(row)
        else:
            row.answers = cleaned
            row.updated_at = datetime.utcnow()
        s.flush()
        return to_dict(row)


def submit_consent_form(
    patient_id: int,
    signature: str,
    treatment_consent: bool,
    privacy_consent: bool,
    communication_consent: bool = False,
) -> dict:
    if not signature or not signature.strip():
        raise ValueError("Signature is required.")
    if not treatment_consent or not privacy_consent:
        raise ValueError("Treatment and privacy consent are required.")
    return create_row(
        PatientConsentForm,
        {
            "patient_id": patient_id,
            "signature": signature.strip(),
            "treatment_consent": True,
            "privacy_consent": True,
            "communication_consent": bool(communication_consent),
        },
    )
