from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import joinedload

from .auth_models import User
from .config import INVITE_EXPIRE_DAYS, SITE_URL
from .db import db_session
from .models import (
    Appointment,
    ClaimStatus,
    DistributionStatus,
    Doctor,
    DoctorLocation,
    Gym,
    InsuranceClaim,
    InsuranceProvider,
    Invitation,
    InvitationStatus,
    NotificationType,
    Patient,
    PatientInsurance,
    PaymentDistribution,
    PaymentTransaction,
    Role,
    ServiceType,
    TransactionStatus,
)
from .services import (
    count_rows,
    create_row,
    delete_row,
    expire_invitations,
    fetch_all,
    fetch_appointments,
    notify,
    parse_enum,
    to_dict,
    update_row,
)

logger = logging.getLogger(__name__)


# =========================
# Directory listings
# =========================
def get_all_patients() -> list[dict]:
    return fetch_all(Patient, order_by=Patient.name.asc())


def get_all_doctors() -> list[dict]:
    return fetch_all(Doctor, order_by=Doctor.name.asc())


def get_all_gyms() -> list[dict]:
    return fetch_all(Gym, order_by=Gym.name.asc())


def get_all_appointments() -> list[dict]:
    return fetch_appointments(descending=True)


def _appointment_summary(a: Appointment | None) -> dict | None:
    if a is None:
        return None
    return {
        "id": a.id,
        "appointment_date": a.appointment_date.isoformat(),
        "appointment_time": a.appointment_time.strftime("%H:%M"),
        "patient": {"id": a.patient.id, "name": a.patient.name},
        "doctor": {"id": a.doctor.id, "name": a.doctor.name},
        "gym": {"id": a.gym.id, "name": a.gym.name},
    }


def get_all_payments() -> list[dict]:
    with db_session() as s:
        rows = s.scalars(
            select(PaymentTransaction)
            .options(joinedload(PaymentTransaction.distributions))
            .order_by(PaymentTransaction.created_at.desc(), PaymentTransaction.id.desc())
        ).unique()
        out = []
        for tx in rows:
            item = to_dict(tx)
            item["appointment"] = _appointment_summary(tx.appointment)
            item["distributions"] = [to_dict(d) for d in tx.distributions]
            out.append(item)
        return out


def get_payments_summary() -> dict[str, float]:
    with db_session() as s:
        rows = s.execute(
            select(PaymentTransaction.status, func.coalesce(func.sum(PaymentTransaction.amount), 0.0))
            .group_by(PaymentTransaction.status)
        ).all()
    by_status = {status: float(total) for status, total in rows}
    return {
        "total": round(sum(by_status.values()), 2),
        "pending": round(by_status.get(TransactionStatus.PENDING, 0.0), 2),
        "completed": round(by_status.get(TransactionStatus.COMPLETED, 0.0), 2),
    }


def get_all_insurance_claims() -> list[dict]:
    with db_session() as s:
        rows = s.scalars(
            select(InsuranceClaim)
            .options(joinedload(InsuranceClaim.patient_insurance).joinedload(PatientInsurance.provider))
            .order_by(InsuranceClaim.created_at.desc(), InsuranceClaim.id.desc())
        )
        out = []
        for c in rows:
            item = to_dict(c, ("id", "claim_amount", "status", "claim_reference", "response_details", "created_at"))
            summary = _appointment_summary(c.appointment)
            if summary:
                summary.pop("gym")
            item["appointment"] = summary
            pi = c.patient_insurance
            item["patient_insurance"] = (
                {
                    "id": pi.id,
                    "policy_number": pi.policy_number,
                    "insurance_provider": {"id": pi.provider.id, "name": pi.provider.name},
                }
                if pi
                else None
            )
            out.append(item)
        return out


# =========================
# Invitations
# =========================
def generate_invite_code() -> str:
    return secrets.token_hex(13)


def invitation_link(invitation: Invitation) -> str:
    return f"{SITE_URL}/register?invite={invitation.invite_code}&email={invitation.email}"


def invite_doctor(email: str) -> dict:
    """
    Use case: invite a practitioner by email.
    - an existing invitation for the email gets a new code and a fresh expiry
    - otherwise a new pending invitation is created
    """
    email = (email or "").strip().lower()
    if not email:
        raise ValueError("Email is required.")

    expires = datetime.utcnow() + timedelta(days=INVITE_EXPIRE_DAYS)
    with db_session() as s:
        inv = s.scalars(
            select(Invitation).where(Invitation.email == email).order_by(Invitation.created_at.desc()).limit(1)
        ).first()
        if inv:
            inv.invite_code = generate_invite_code()
            inv.status = InvitationStatus.PENDING
            inv.expires_at = expires
        else:
            inv = Invitation(
                email=email,
                invite_code=generate_invite_code(),
                role=Role.DOCTOR,
                status=InvitationStatus.PENDING,
                expires_at=expires,
            )
            s.add(inv)
        s.flush()

        notify(s, None, NotificationType.INVITATION, f"Invitation for {email}: {invitation_link(inv)}")
        logger.info("Doctor invitation #%s ready for %s", inv.id, email)
        return to_dict(inv)


def create_invitation(
    email: str,
    first_name: str | None = None,
    last_name: str | None = None,
    phone: str | None = None,
    specialization: str | None = None,
    message: str | None = None,
    invite_code: str | None = None,
    invite_type: str = "email",
) -> dict:
    """
    Pending practitioner invitation (POST /api/invitations).
    Rejects emails that already belong to an account.
    """
    email = (email or "").strip().lower()
    if not email:
        raise ValueError("Email is required.")

    with db_session() as s:
        if s.execute(select(User.id).where(User.email == email)).first():
            raise ValueError("A user with this email already exists")

        inv = Invitation(
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=phone,
            specialization=specialization,
            message=message,
            invite_code=invite_code or generate_invite_code(),
            status=InvitationStatus.PENDING,
            role=Role.DOCTOR,
            expires_at=datetime.utcnow() + timedelta(days=INVITE_EXPIRE_DAYS),
        )
        s.add(inv)
        s.flush()

        if invite_type == "email":
            logger.info("Sending invitation email to %s", email)
            notify(s, None, NotificationType.INVITATION, f"Invitation for {email}: {invitation_link(inv)}")

        return to_dict(inv)


def get_invitations(status: str | None = None) -> list[dict]:
    with db_session() as s:
        expire_invitations(s)
        q = select(Invitation).order_by(Invitation.created_at.desc(), Invitation.id.desc())
        if status:
            q = q.where(Invitation.status == parse_enum(InvitationStatus, status))
        return [to_dict(i) for i in s.scalars(q)]


# =========================
# Payment and claim status
# =========================
def update_payment_distribution_status(distribution_id: int, status: str) -> bool:
    new_status = parse_enum(DistributionStatus, status)
    with db_session() as s:
        d = s.get(PaymentDistribution, distribution_id)
        if not d:
            return False
        d.status = new_status
        if new_status == DistributionStatus.PAID:
            d.paid_at = datetime.utcnow()
        logger.info("Distribution #%s -> %s", distribution_id, new_status.value)
        return True


def update_insurance_claim_status(claim_id: int, status: str, response_details: Any = None) -> bool:
    new_status = parse_enum(ClaimStatus, status)
    with db_session() as s:
        c = s.get(InsuranceClaim, claim_id)
        if not c:
            return False
        c.status = new_status
        if response_details:
            c.response_details = response_details

        if c.appointment is not None:
            notify(
                s,
                c.appointment.patient.user_id,
                NotificationType.CLAIM,
                f"Your insurance claim {c.claim_reference or c.id} is now {new_status.value}.",
            )
        logger.info("Claim #%s -> %s", claim_id, new_status.value)
        return True


# =========================
# Dashboards
# =========================
def get_dashboard_stats() -> dict[str, Any]:
    with db_session() as s:
        revenue = s.execute(
            select(func.coalesce(func.sum(PaymentTransaction.amount), 0.0)).where(
                PaymentTransaction.status == TransactionStatus.COMPLETED
            )
        ).scalar_one()

    return {
        "total_patients": count_rows(Patient),
        "total_doctors": count_rows(Doctor),
        "total_gyms": count_rows(Gym),
        "total_appointments": count_rows(Appointment),
        "total_revenue": round(float(revenue), 2),
        "recent_appointments": fetch_appointments(descending=True, limit=5),
    }


def get_gyms_overview(search: str | None = None) -> list[dict]:
    """Gyms with practitioner and appointment counts, optional name/address search."""
    doctor_counts = (
        select(DoctorLocation.gym_id, func.count(DoctorLocation.id).label("n"))
        .group_by(DoctorLocation.gym_id)
        .subquery()
    )
    appointment_counts = (
        select(Appointment.gym_id, func.count(Appointment.id).label("n"))
        .group_by(Appointment.gym_id)
        .subquery()
    )
    q = (
        select(Gym, func.coalesce(doctor_counts.c.n, 0), func.coalesce(appointment_counts.c.n, 0))
        .outerjoin(doctor_counts, doctor_counts.c.gym_id == Gym.id)
        .outerjoin(appointment_counts, appointment_counts.c.gym_id == Gym.id)
        .order_by(Gym.name)
    )
    if search:
        pattern = f"%{search.strip().lower()}%"
        q = q.where(func.lower(Gym.name).like(pattern) | func.lower(Gym.address).like(pattern))

    with db_session() as s:
        out = []
        for gym, n_doctors, n_appointments in s.execute(q).all():
            item = to_dict(gym)
            item["doctor_count"] = int(n_doctors)
            item["appointment_count"] = int(n_appointments)
            out.append(item)
        return out


# =========================
# Catalog: service types, insurance providers
# =========================
def _required_name(name: str | None, label: str) -> str:
    if not name or not name.strip():
        raise ValueError(f"{label} name is required.")
    return name.strip()


def get_service_types() -> list[dict]:
    return fetch_all(ServiceType, order_by=ServiceType.name.asc())


def create_service_type(name: str, description: str | None = None) -> dict:
    return create_row(ServiceType, {"name": _required_name(name, "Service type"), "description": description})


def update_service_type(service_type_id: int, name: str, description: str | None = None) -> bool:
    return update_row(
        ServiceType, service_type_id, {"name": _required_name(name, "Service type"), "description": description}
    )


def delete_service_type(service_type_id: int) -> bool:
    return delete_row(ServiceType, service_type_id)


def get_insurance_providers() -> list[dict]:
    return fetch_all(InsuranceProvider, order_by=InsuranceProvider.name.asc())


def create_insurance_provider(name: str, api_key: str | None = None, api_endpoint: str | None = None) -> dict:
    return create_row(
        InsuranceProvider,
        {"name": _required_name(name, "Insurance provider"), "api_key": api_key, "api_endpoint": api_endpoint},
    )


def update_insurance_provider(
    provider_id: int, name: str, api_key: str | None = None, api_endpoint: str | None = None
) -> bool:
    return update_row(
        InsuranceProvider,
        provider_id,
        {"name": _required_name(name, "Insurance provider"), "api_key": api_key, "api_endpoint": api_endpoint},
    )


def delete_insurance_provider(provider_id: int) -> bool:
    return delete_row(InsuranceProvider, provider_id)
