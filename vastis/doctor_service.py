from __future__ import annotations

import logging
from collections import Counter
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import joinedload

from . import storage
from .db import db_session
from .models import (
    Appointment,
    AppointmentStatus,
    Doctor,
    DoctorAvailability,
    DoctorLocation,
    DoctorService,
    Gym,
    MedicalDocument,
    NotificationType,
    Patient,
    PatientNote,
    PractitionerGymRequest,
    RequestStatus,
    ServiceType,
    Treatment,
)
from .services import (
    check_weekly_slot,
    create_row,
    delete_row,
    delete_row_with_file,
    fetch_appointments,
    fetch_appointments_for_doctor,
    fetch_by_id,
    fetch_doctor_availability,
    fetch_doctor_locations,
    fetch_doctor_treatments,
    notify,
    parse_enum,
    to_dict,
    update_profile,
    update_row,
    upload_profile_image,
)

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("name", "phone", "address", "specialization", "license_number", "bio")
TREATMENT_FIELDS = ("name", "description", "duration_minutes", "price")


# =========================
# Profile
# =========================
def get_doctor_profile(user_id: str) -> dict | None:
    with db_session() as s:
        d = s.execute(select(Doctor).where(Doctor.user_id == user_id)).scalar_one_or_none()
        return to_dict(d) if d else None


def update_doctor_profile(doctor_id: int, data: dict[str, Any]) -> bool:
    return update_profile(Doctor, doctor_id, data, PROFILE_FIELDS)


def upload_doctor_profile_image(doctor_id: int, filename: str, content: bytes, content_type: str | None = None) -> str | None:
    return upload_profile_image(Doctor, doctor_id, "doctors", filename, content, content_type)


# =========================
# Services offered
# =========================
def get_doctor_services(doctor_id: int) -> list[dict]:
    with db_session() as s:
        rows = s.scalars(
            select(DoctorService)
            .options(joinedload(DoctorService.service_type))
            .where(DoctorService.doctor_id == doctor_id)
            .order_by(DoctorService.id)
        )
        return [
            {"id": ds.id, "service_type": to_dict(ds.service_type, ("id", "name", "description"))}
            for ds in rows
        ]


def add_doctor_service(doctor_id: int, service_type_id: int) -> dict:
    if fetch_by_id(ServiceType, service_type_id) is None:
        raise ValueError(f"Service type {service_type_id} not found.")
    return create_row(DoctorService, {"doctor_id": doctor_id, "service_type_id": service_type_id})


def remove_doctor_service(service_id: int, doctor_id: int | None = None) -> bool:
    return delete_row(DoctorService, service_id, doctor_id=doctor_id)


# =========================
# Locations (gyms where the doctor practices)
# =========================
def get_doctor_locations(doctor_id: int) -> list[dict]:
    return fetch_doctor_locations(doctor_id)


def add_doctor_location(doctor_id: int, gym_id: int) -> dict:
    if fetch_by_id(Gym, gym_id) is None:
        raise ValueError(f"Gym {gym_id} not found.")
    return create_row(DoctorLocation, {"doctor_id": doctor_id, "gym_id": gym_id})


def remove_doctor_location(location_id: int, doctor_id: int | None = None) -> bool:
    return delete_row(DoctorLocation, location_id, doctor_id=doctor_id)


# =========================
# Weekly availability
# =========================
def get_doctor_availability(doctor_id: int, gym_id: int | None = None) -> list[dict]:
    return fetch_doctor_availability(doctor_id, gym_id)


def add_doctor_availability(doctor_id: int, gym_id: int, day_of_week: int, start_time: str, end_time: str) -> dict:
    start_t, end_t = check_weekly_slot(day_of_week, start_time, end_time)
    if fetch_by_id(Gym, gym_id) is None:
        raise ValueError(f"Gym {gym_id} not found.")
    return create_row(
        DoctorAvailability,
        {
            "doctor_id": doctor_id,
            "gym_id": gym_id,
            "day_of_week": int(day_of_week),
            "start_time": start_t,
            "end_time": end_t,
        },
    )


def remove_doctor_availability(availability_id: int, doctor_id: int | None = None) -> bool:
    return delete_row(DoctorAvailability, availability_id, doctor_id=doctor_id)


# =========================
# Appointments
# =========================
def get_doctor_appointments(doctor_id: int) -> list[dict]:
    return fetch_appointments_for_doctor(doctor_id)


def update_appointment_status(appointment_id: int, status: str, doctor_id: int | None = None) -> bool:
    """Change the status and tell the patient."""
    new_status = parse_enum(AppointmentStatus, status)
    with db_session() as s:
        app = s.get(Appointment, appointment_id)
        if not app or (doctor_id is not None and app.doctor_id != doctor_id):
            return False
        app.appointment_status = new_status
        notify(
            s,
            app.patient.user_id,
            NotificationType.STATUS_CHANGE,
            f"Your appointment on {app.appointment_date.isoformat()} at "
            f"{app.appointment_time.strftime('%H:%M')} is now {new_status.value}.",
        )
        logger.info("Appointment #%s -> %s", appointment_id, new_status.value)
        return True


def add_appointment_notes(appointment_id: int, notes: str, doctor_id: int | None = None) -> bool:
    return update_row(Appointment, appointment_id, {"appointment_notes": notes}, doctor_id=doctor_id)


# =========================
# Treatments
# =========================
def _treatment_payload(data: dict[str, Any]) -> dict[str, Any]:
    unknown = set(data) - set(TREATMENT_FIELDS)
    if unknown:
        raise ValueError(f"Unknown treatment fields: {', '.join(sorted(unknown))}")
    if "name" in data and not (data["name"] or "").strip():
        raise ValueError("Treatment name is required.")
    if data.get("price") is not None and data["price"] < 0:
        raise ValueError("Price cannot be negative.")
    return data


def get_treatments(doctor_id: int) -> list[dict]:
    return fetch_doctor_treatments(doctor_id)


def create_treatment(doctor_id: int, data: dict[str, Any]) -> dict:
    payload = _treatment_payload(data)
    if not payload.get("name"):
        raise ValueError("Treatment name is required.")
    return create_row(Treatment, {**payload, "doctor_id": doctor_id})


def update_treatment(treatment_id: int, data: dict[str, Any], doctor_id: int | None = None) -> bool:
    return update_row(Treatment, treatment_id, _treatment_payload(data), doctor_id=doctor_id)


def delete_treatment(treatment_id: int, doctor_id: int | None = None) -> bool:
    return delete_row(Treatment, treatment_id, doctor_id=doctor_id)


# =========================
# Medical documents (doctor -> patient)
# =========================
def upload_medical_document(
    doctor_id: int,
    patient_id: int,
    filename: str,
    content: bytes,
    document_type: str,
    content_type: str | None = None,
) -> dict:
    if not document_type:
        raise ValueError("Document type is required.")
    if fetch_by_id(Patient, patient_id) is None:
        raise ValueError(f"Patient {patient_id} not found.")

    with storage.staged_upload(
        storage.MEDICAL_DOCUMENTS,
        f"doctors/{doctor_id}/patients/{patient_id}/{document_type}",
        filename,
        content,
        content_type,
    ) as url:
        return create_row(
            MedicalDocument,
            {
                "doctor_id": doctor_id,
                "patient_id": patient_id,
                "document_type": document_type,
                "file_path": url,
                "file_name": filename,
            },
        )


def get_medical_documents(doctor_id: int, patient_id: int) -> list[dict]:
    with db_session() as s:
        rows = s.scalars(
            select(MedicalDocument)
            .where(MedicalDocument.doctor_id == doctor_id, MedicalDocument.patient_id == patient_id)
            .order_by(MedicalDocument.created_at.desc(), MedicalDocument.id.desc())
        )
        return [to_dict(d) for d in rows]


def delete_medical_document(document_id: int, doctor_id: int | None = None) -> bool:
    return delete_row_with_file(MedicalDocument, document_id, storage.MEDICAL_DOCUMENTS, doctor_id=doctor_id)


# =========================
# Patients of the doctor
# =========================
def get_doctor_patients(doctor_id: int) -> list[dict]:
    """Distinct patients with at least one appointment, most recent first."""
    fields = (
        "id", "name", "email", "phone", "date_of_birth", "gender",
        "medical_history", "allergies", "current_medications", "current_conditions",
    )
    with db_session() as s:
        rows = s.scalars(
            select(Appointment)
            .options(joinedload(Appointment.patient))
            .where(Appointment.doctor_id == doctor_id)
            .order_by(Appointment.appointment_date.desc(), Appointment.appointment_time.desc())
        )
        patients: dict[int, dict] = {}
        for a in rows:
            if a.patient is not None and a.patient.id not in patients:
                patients[a.patient.id] = to_dict(a.patient, fields)
        return list(patients.values())


def get_patient_appointment_history(doctor_id: int, patient_id: int) -> list[dict]:
    return fetch_appointments(
        Appointment.doctor_id == doctor_id,
        Appointment.patient_id == patient_id,
        descending=True,
    )


def add_patient_note(doctor_id: int, patient_id: int, note: str) -> dict:
    if not note or not note.strip():
        raise ValueError("Note cannot be empty.")
    return create_row(PatientNote, {"doctor_id": doctor_id, "patient_id": patient_id, "note": note.strip()})


def get_patient_notes(doctor_id: int, patient_id: int) -> list[dict]:
    with db_session() as s:
        rows = s.scalars(
            select(PatientNote)
            .where(PatientNote.doctor_id == doctor_id, PatientNote.patient_id == patient_id)
            .order_by(PatientNote.created_at.desc(), PatientNote.id.desc())
        )
        return [to_dict(n) for n in rows]


# =========================
# Dashboard
# =========================
def get_dashboard_stats(doctor_id: int, today: date | None = None, top: int = 5) -> dict[str, Any]:
    today = today or date.today()
    appointments = fetch_appointments_for_doctor(doctor_id)

    by_status = Counter(a["appointment_status"] for a in appointments)
    total = len(appointments)
    completed = by_status[AppointmentStatus.COMPLETED.value]

    patient_visits = Counter(a["patient"]["name"] for a in appointments if a["patient"])
    service_counts = Counter(a["service_type"]["name"] for a in appointments if a["service_type"])

    return {
        "total": total,
        "upcoming": by_status[AppointmentStatus.SCHEDULED.value],
        "completed": completed,
        "cancelled": by_status[AppointmentStatus.CANCELLED.value],
        "completion_rate": round(completed / total * 100) if total else 0,
        "today": [a for a in appointments if a["appointment_date"] == today.isoformat()],
        "top_patients": [{"name": n, "visits": c} for n, c in patient_visits.most_common(top)],
        "top_services": [{"name": n, "count": c} for n, c in service_counts.most_common(top)],
    }


# =========================
# Requests to practice at a gym
# =========================
def request_gym(doctor_id: int, gym_id: int, message: str | None = None) -> dict:
    if fetch_by_id(Gym, gym_id) is None:
        raise ValueError(f"Gym {gym_id} not found.")
    with db_session() as s:
        pending = s.execute(
            select(PractitionerGymRequest.id).where(
                PractitionerGymRequest.doctor_id == doctor_id,
                PractitionerGymRequest.gym_id == gym_id,
                PractitionerGymRequest.status == RequestStatus.PENDING,
            )
        ).first()
        if pending:
            raise ValueError("A request for this gym is already pending.")

        req = PractitionerGymRequest(doctor_id=doctor_id, gym_id=gym_id, message=message)
        s.add(req)
        s.flush()

        gym = s.get(Gym, gym_id)
        doctor = s.get(Doctor, doctor_id)
        notify(s, gym.user_id, NotificationType.STATUS_CHANGE, f"{doctor.name} asked to practice at {gym.name}.")
        return to_dict(req)


def get_gym_requests(doctor_id: int) -> list[dict]:
    with db_session() as s:
        rows = s.scalars(
            select(PractitionerGymRequest)
            .options(joinedload(PractitionerGymRequest.gym))
            .where(PractitionerGymRequest.doctor_id == doctor_id)
            .order_by(PractitionerGymRequest.created_at.desc(), PractitionerGymRequest.id.desc())
        )
        out = []
        for r in rows:
            item = to_dict(r)
            item["gym"] = to_dict(r.gym, ("id", "name"))
            out.append(item)
        return out
