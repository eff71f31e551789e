from __future__ import annotations

from datetime import date
from typing import Any

from pydantic import BaseModel, Field


# Auth

class RegisterIn(BaseModel):
    email: str
    password: str
    role: str
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    address: str = ""
    date_of_birth: date | None = None
    gender: str = ""
    blood_type: str = ""
    specialization: str | None = None
    license_number: str = ""
    gym_name: str = ""
    gym_address: str = ""
    invite_code: str | None = None


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str | None = None
    dashboard: str


class MeOut(BaseModel):
    id: str
    email: str
    is_active: bool
    role: str | None
    dashboard: str
    profile: dict[str, Any] | None = None


class ChangePasswordIn(BaseModel):
    current_password: str
    new_password: str


# Invitations

class InvitationIn(BaseModel):
    email: str
    firstName: str | None = None
    lastName: str | None = None
    phone: str | None = None
    specialization: str | None = None
    message: str | None = None
    inviteCode: str | None = None
    inviteType: str = "email"


class InviteDoctorIn(BaseModel):
    email: str


# Admin

class NamedIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: str | None = None


class InsuranceProviderIn(BaseModel):
    name: str = Field(..., min_length=1)
    api_key: str | None = None
    api_endpoint: str | None = None


class StatusIn(BaseModel):
    status: str


class ClaimStatusIn(BaseModel):
    status: str
    response_details: dict[str, Any] | None = None


class PaymentIn(BaseModel):
    appointment_id: int
    amount: float = Field(..., gt=0)
    payment_method: str = Field(..., min_length=1)


# Profiles (partial updates: only fields that are sent)

class ProfileUpdateIn(BaseModel):
    name: str | None = None
    phone: str | None = None
    address: str | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class DoctorProfileIn(ProfileUpdateIn):
    specialization: str | None = None
    license_number: str | None = None
    bio: str | None = None


class GymProfileIn(ProfileUpdateIn):
    description: str | None = None


class PatientProfileIn(ProfileUpdateIn):
    date_of_birth: date | None = None
    gender: str | None = None
    blood_type: str | None = None
    medical_history: str | None = None
    allergies: str | None = None
    current_medications: str | None = None
    current_conditions: str | None = None


class LocationIn(BaseModel):
    latitude: float
    longitude: float


# Doctor

class ServiceTypeRefIn(BaseModel):
    service_type_id: int


class GymRefIn(BaseModel):
    gym_id: int
    message: str | None = None


class DoctorAvailabilityIn(BaseModel):
    gym_id: int
    day_of_week: int = Field(..., ge=0, le=6)
    start_time: str
    end_time: str


class TreatmentIn(BaseModel):
    name: str | None = None
    description: str | None = None
    duration_minutes: int | None = Field(default=None, gt=0)
    price: float | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class NotesIn(BaseModel):
    notes: str


class PatientNoteIn(BaseModel):
    note: str = Field(..., min_length=1)


# Gym

class GymAvailabilityIn(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6)
    start_time: str
    end_time: str


class AmenityIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: str | None = None


class GymSpaceIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: str | None = None
    capacity: int = Field(..., gt=0)
    size_sqft: int | None = Field(default=None, gt=0)
    price_per_hour: float = Field(..., ge=0)
    equipment: str | None = None


class GymSpaceUpdateIn(BaseModel):
    name: str | None = None
    description: str | None = None
    capacity: int | None = Field(default=None, gt=0)
    size_sqft: int | None = Field(default=None, gt=0)
    price_per_hour: float | None = Field(default=None, ge=0)
    equipment: str | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


# Patient

class BookingIn(BaseModel):
    doctor_id: int
    gym_id: int
    service_type_id: int | None = None
    appointment_date: date
    appointment_time: str
    price: float | None = None
    appointment_type: str = "consultation"
    notes: str | None = None


class PatientInsuranceIn(BaseModel):
    insurance_provider_id: int
    policy_number: str = Field(..., min_length=1)
    group_number: str | None = None
    coverage_details: dict[str, Any] | None = None


class ClaimIn(BaseModel):
    appointment_id: int
    patient_insurance_id: int
    amount: float = Field(..., gt=0)


class HealthIntakeIn(BaseModel):
    answers: dict[str, Any]


class ConsentIn(BaseModel):
    signature: str = Field(..., min_length=1)
    treatment_consent: bool
    privacy_consent: bool
    communication_consent: bool = False
