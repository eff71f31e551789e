from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, File, Form, UploadFile

from .. import patient_service
from ..deps import CurrentUser, not_found, require_role
from ..models import Role
from ..schemas import BookingIn, ClaimIn, ConsentIn, HealthIntakeIn, PatientInsuranceIn, PatientProfileIn

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/patient", tags=["patient"])

patient_only = require_role(Role.PATIENT)


def _ok(done: bool, what: str) -> dict:
    if not done:
        raise not_found(what)
    return {"ok": True}


# Profile

@router.get("/profile")
def profile(me: CurrentUser = Depends(patient_only)) -> dict[str, Any]:
    return patient_service.get_patient_profile(me.user.id)


@router.patch("/profile")
def update_profile(payload: PatientProfileIn, me: CurrentUser = Depends(patient_only)) -> dict:
    return _ok(patient_service.update_patient_profile(me.profile_id, payload.changes()), "Patient")


@router.post("/profile/image")
def profile_image(file: UploadFile = File(...), me: CurrentUser = Depends(patient_only)) -> dict[str, Any]:
    url = patient_service.upload_patient_profile_image(me.profile_id, file.filename, file.file.read(), file.content_type)
    return {"url": url}


# Appointments

@router.get("/appointments")
def appointments(me: CurrentUser = Depends(patient_only)) -> dict[str, list[dict]]:
    """Upcoming, past and cancelled appointments."""
    return patient_service.split_appointments(patient_service.get_patient_appointments(me.profile_id))


@router.post("/appointments")
def book(payload: BookingIn, me: CurrentUser = Depends(patient_only)) -> dict[str, Any]:
    return patient_service.book_appointment(
        patient_id=me.profile_id,
        doctor_id=payload.doctor_id,
        gym_id=payload.gym_id,
        service_type_id=payload.service_type_id,
        appointment_date=payload.appointment_date,
        appointment_time=payload.appointment_time,
        price=payload.price,
        appointment_type=payload.appointment_type,
        notes=payload.notes,
    )


@router.post("/appointments/{appointment_id}/cancel")
def cancel(appointment_id: int, me: CurrentUser = Depends(patient_only)) -> dict:
    return _ok(patient_service.cancel_appointment(appointment_id, me.profile_id), "Appointment")


# Finding practitioners

@router.get("/doctors")
def doctors(service_type_id: int | None = None, me: CurrentUser = Depends(patient_only)) -> list[dict]:
    return patient_service.get_available_doctors(service_type_id)


@router.get("/doctors/{doctor_id}/availability")
def doctor_availability(doctor_id: int, gym_id: int | None = None, me: CurrentUser = Depends(patient_only)) -> list[dict]:
    return patient_service.get_doctor_availability_for_patient(doctor_id, gym_id)


@router.get("/find-provider")
def find_provider(
    latitude: float | None = None,
    longitude: float | None = None,
    service_type_id: int | None = None,
    me: CurrentUser = Depends(patient_only),
) -> list[dict]:
    return patient_service.find_providers(latitude, longitude, service_type_id)


@router.get("/find-physio")
def find_physio(me: CurrentUser = Depends(patient_only)) -> list[dict]:
    return patient_service.find_physio_gyms()


# Insurance

@router.get("/insurance")
def insurance(me: CurrentUser = Depends(patient_only)) -> list[dict]:
    return patient_service.get_patient_insurance(me.profile_id)


@router.post("/insurance")
def add_insurance(payload: PatientInsuranceIn, me: CurrentUser = Depends(patient_only)) -> dict[str, Any]:
    return patient_service.add_patient_insurance(
        me.profile_id,
        payload.insurance_provider_id,
        payload.policy_number,
        payload.group_number,
        payload.coverage_details,
    )


@router.delete("/insurance/{insurance_id}")
def remove_insurance(insurance_id: int, me: CurrentUser = Depends(patient_only)) -> dict:
    return _ok(patient_service.remove_patient_insurance(insurance_id, me.profile_id), "Insurance")


@router.post("/claims")
def submit_claim(payload: ClaimIn, me: CurrentUser = Depends(patient_only)) -> dict[str, Any]:
    return patient_service.submit_insurance_claim(
        payload.appointment_id, payload.patient_insurance_id, payload.amount, patient_id=me.profile_id
    )


# Medical records

@router.get("/records")
def records(me: CurrentUser = Depends(patient_only)) -> list[dict]:
    return patient_service.get_medical_records(me.profile_id)


@router.post("/records")
def upload_record(
    record_type: str = Form(...),
    description: str | None = Form(default=None),
    file: UploadFile = File(...),
    me: CurrentUser = Depends(patient_only),
) -> dict[str, Any]:
    return patient_service.upload_medical_record(
        me.profile_id, file.filename, file.file.read(), record_type, description, file.content_type
    )


@router.delete("/records/{record_id}")
def delete_record(record_id: int, me: CurrentUser = Depends(patient_only)) -> dict:
    return _ok(patient_service.delete_medical_record(record_id, me.profile_id), "Record")


# Forms

@router.get("/health-intake")
def health_intake(me: CurrentUser = Depends(patient_only)) -> dict[str, Any] | None:
    return patient_service.get_health_intake(me.profile_id)


@router.put("/health-intake")
def save_health_intake(payload: HealthIntakeIn, me: CurrentUser = Depends(patient_only)) -> dict[str, Any]:
    return patient_service.save_health_intake(me.profile_id, payload.answers)


@router.post("/consent")
def consent(payload: ConsentIn, me: CurrentUser = Depends(patient_only)) -> dict[str, Any]:
    return patient_service.submit_consent_form(
        me.profile_id,
        payload.signature,
        payload.treatment_consent,
        payload.privacy_consent,
        payload.communication_consent,
    )
