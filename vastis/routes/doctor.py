from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, File, Form, UploadFile

from .. import doctor_service
from ..deps import CurrentUser, not_found, require_role
from ..models import Role
from ..schemas import (
    DoctorAvailabilityIn,
    DoctorProfileIn,
    GymRefIn,
    NotesIn,
    PatientNoteIn,
    ServiceTypeRefIn,
    StatusIn,
    TreatmentIn,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/doctor", tags=["doctor"])

doctor_only = require_role(Role.DOCTOR)


def _ok(done: bool, what: str) -> dict:
    if not done:
        raise not_found(what)
    return {"ok": True}


# Profile

@router.get("/profile")
def profile(me: CurrentUser = Depends(doctor_only)) -> dict[str, Any]:
    return doctor_service.get_doctor_profile(me.user.id)


@router.patch("/profile")
def update_profile(payload: DoctorProfileIn, me: CurrentUser = Depends(doctor_only)) -> dict:
    return _ok(doctor_service.update_doctor_profile(me.profile_id, payload.changes()), "Doctor")


@router.post("/profile/image")
def profile_image(file: UploadFile = File(...), me: CurrentUser = Depends(doctor_only)) -> dict[str, Any]:
    url = doctor_service.upload_doctor_profile_image(me.profile_id, file.filename, file.file.read(), file.content_type)
    return {"url": url}


@router.get("/dashboard")
def dashboard(me: CurrentUser = Depends(doctor_only)) -> dict[str, Any]:
    return doctor_service.get_dashboard_stats(me.profile_id)


# Services and locations

@router.get("/services")
def services(me: CurrentUser = Depends(doctor_only)) -> list[dict]:
    return doctor_service.get_doctor_services(me.profile_id)


@router.post("/services")
def add_service(payload: ServiceTypeRefIn, me: CurrentUser = Depends(doctor_only)) -> dict[str, Any]:
    return doctor_service.add_doctor_service(me.profile_id, payload.service_type_id)


@router.delete("/services/{service_id}")
def remove_service(service_id: int, me: CurrentUser = Depends(doctor_only)) -> dict:
    return _ok(doctor_service.remove_doctor_service(service_id, me.profile_id), "Service")


@router.get("/locations")
def locations(me: CurrentUser = Depends(doctor_only)) -> list[dict]:
    return doctor_service.get_doctor_locations(me.profile_id)


@router.post("/locations")
def add_location(payload: GymRefIn, me: CurrentUser = Depends(doctor_only)) -> dict[str, Any]:
    return doctor_service.add_doctor_location(me.profile_id, payload.gym_id)


@router.delete("/locations/{location_id}")
def remove_location(location_id: int, me: CurrentUser = Depends(doctor_only)) -> dict:
    return _ok(doctor_service.remove_doctor_location(location_id, me.profile_id), "Location")


# Availability

@router.get("/availability")
def availability(gym_id: int | None = None, me: CurrentUser = Depends(doctor_only)) -> list[dict]:
    return doctor_service.get_doctor_availability(me.profile_id, gym_id)


@router.post("/availability")
def add_availability(payload: DoctorAvailabilityIn, me: CurrentUser = Depends(doctor_only)) -> dict[str, Any]:
    return doctor_service.add_doctor_availability(
        me.profile_id, payload.gym_id, payload.day_of_week, payload.start_time, payload.end_time
    )


@router.delete("/availability/{availability_id}")
def remove_availability(availability_id: int, me: CurrentUser = Depends(doctor_only)) -> dict:
    return _ok(doctor_service.remove_doctor_availability(availability_id, me.profile_id), "Availability")


# Appointments

@router.get("/appointments")
def appointments(me: CurrentUser = Depends(doctor_only)) -> list[dict]:
    return doctor_service.get_doctor_appointments(me.profile_id)


@router.patch("/appointments/{appointment_id}/status")
def appointment_status(appointment_id: int, payload: StatusIn, me: CurrentUser = Depends(doctor_only)) -> dict:
    return _ok(doctor_service.update_appointment_status(appointment_id, payload.status, me.profile_id), "Appointment")


@router.patch("/appointments/{appointment_id}/notes")
def appointment_notes(appointment_id: int, payload: NotesIn, me: CurrentUser = Depends(doctor_only)) -> dict:
    return _ok(doctor_service.add_appointment_notes(appointment_id, payload.notes, me.profile_id), "Appointment")


# Treatments

@router.get("/treatments")
def treatments(me: CurrentUser = Depends(doctor_only)) -> list[dict]:
    return doctor_service.get_treatments(me.profile_id)


@router.post("/treatments")
def create_treatment(payload: TreatmentIn, me: CurrentUser = Depends(doctor_only)) -> dict[str, Any]:
    return doctor_service.create_treatment(me.profile_id, payload.changes())


@router.patch("/treatments/{treatment_id}")
def update_treatment(treatment_id: int, payload: TreatmentIn, me: CurrentUser = Depends(doctor_only)) -> dict:
    return _ok(doctor_service.update_treatment(treatment_id, payload.changes(), me.profile_id), "Treatment")


@router.delete("/treatments/{treatment_id}")
def delete_treatment(treatment_id: int, me: CurrentUser = Depends(doctor_only)) -> dict:
    return _ok(doctor_service.delete_treatment(treatment_id, me.profile_id), "Treatment")


# Patients

@router.get("/patients")
def patients(me: CurrentUser = Depends(doctor_only)) -> list[dict]:
    return doctor_service.get_doctor_patients(me.profile_id)


@router.get("/patients/{patient_id}/appointments")
def patient_history(patient_id: int, me: CurrentUser = Depends(doctor_only)) -> list[dict]:
    return doctor_service.get_patient_appointment_history(me.profile_id, patient_id)


@router.get("/patients/{patient_id}/notes")
def patient_notes(patient_id: int, me: CurrentUser = Depends(doctor_only)) -> list[dict]:
    return doctor_service.get_patient_notes(me.profile_id, patient_id)


@router.post("/patients/{patient_id}/notes")
def add_patient_note(patient_id: int, payload: PatientNoteIn, me: CurrentUser = Depends(doctor_only)) -> dict[str, Any]:
    return doctor_service.add_patient_note(me.profile_id, patient_id, payload.note)


@router.get("/patients/{patient_id}/documents")
def documents(patient_id: int, me: CurrentUser = Depends(doctor_only)) -> list[dict]:
    return doctor_service.get_medical_documents(me.profile_id, patient_id)


@router.post("/patients/{patient_id}/documents")
def upload_document(
    patient_id: int,
    document_type: str = Form(...),
    file: UploadFile = File(...),
    me: CurrentUser = Depends(doctor_only),
) -> dict[str, Any]:
    return doctor_service.upload_medical_document(
        me.profile_id, patient_id, file.filename, file.file.read(), document_type, file.content_type
    )


@router.delete("/documents/{document_id}")
def delete_document(document_id: int, me: CurrentUser = Depends(doctor_only)) -> dict:
    return _ok(doctor_service.delete_medical_document(document_id, me.profile_id), "Document")


# Gym requests

@router.get("/gym-requests")
def gym_requests(me: CurrentUser = Depends(doctor_only)) -> list[dict]:
    return doctor_service.get_gym_requests(me.profile_id)


@router.post("/gym-requests")
def request_gym(payload: GymRefIn, me: CurrentUser = Depends(doctor_only)) -> dict[str, Any]:
    return doctor_service.request_gym(me.profile_id, payload.gym_id, payload.message)
