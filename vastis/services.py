from __future__ import annotations

import enum
import logging
import time as _time
from datetime import date, datetime, time
from typing import Any, Iterable, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, joinedload

from . import storage
from .config import PLATFORM_ADMIN_ID
from .db import Base, db_session, engine
from .models import (
    Appointment,
    ClaimStatus,
    DistributionStatus,
    Doctor,
    DoctorAvailability,
    DoctorLocation,
    DoctorService,
    InsuranceClaim,
    Invitation,
    InvitationStatus,
    Notification,
    NotificationType,
    PaymentDistribution,
    PaymentTransaction,
    RecipientType,
    Treatment,
    TransactionStatus,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=enum.Enum)

# Shares of every payment (doctor, gym, platform)
DOCTOR_SHARE = 0.7
GYM_SHARE = 0.2


# =========================
# Bootstrap DB
# =========================
def init_db() -> None:
    """Create the tables if they do not exist."""
    Base.metadata.create_all(bind=engine)


# =========================
# Row shaping
# =========================
def _plain(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        return value.strftime("%H:%M")
    return value


def to_dict(row: Any, fields: Iterable[str] | None = None) -> dict[str, Any]:
    """Serializable dict of a mapped row (all columns, or just `fields`)."""
    names = list(fields) if fields is not None else [c.key for c in row.__table__.columns]
    return {name: _plain(getattr(row, name)) for name in names}


def parse_enum(enum_cls: type[E], value: str | E, label: str = "status") -> E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValueError(f"Invalid {label}: {value!r} (allowed: {allowed})") from None


def parse_time(value: str | time) -> time:
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(str(value).strip())
    except ValueError:
        raise ValueError(f"Invalid time: {value!r} (expected HH:MM)") from None


def parse_date(value: str | date) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValueError(f"Invalid date: {value!r} (expected YYYY-MM-DD)") from None


def check_weekly_slot(day_of_week: int, start: str | time, end: str | time) -> tuple[time, time]:
    """Weekly opening slot: day 0 (Sunday) .. 6 (Saturday), start before end."""
    if day_of_week is None or not 0 <= int(day_of_week) <= 6:
        raise ValueError("Day of week must be between 0 (Sunday) and 6 (Saturday).")
    start_t, end_t = parse_time(start), parse_time(end)
    if start_t >= end_t:
        raise ValueError("Start time must be before end time.")
    return start_t, end_t


def make_reference(prefix: str) -> str:
    return f"{prefix}-{int(_time.time() * 1000)}"


# =========================
# Generic CRUD
# =========================
def _columns(model: type[Base]) -> set[str]:
    return {c.key for c in model.__table__.columns}


def _clean_payload(model: type[Base], data: dict[str, Any]) -> dict[str, Any]:
    unknown = set(data) - _columns(model)
    if unknown:
        raise ValueError(f"Unknown fields for {model.__tablename__}: {', '.join(sorted(unknown))}")
    return {k: v for k, v in data.items() if k != "id"}


def fetch_all(model: type[Base], order_by: Any = None) -> list[dict]:
    with db_session() as s:
        q = select(model)
        if order_by is not None:
            q = q.order_by(order_by)
        return [to_dict(r) for r in s.scalars(q)]


def fetch_by_id(model: type[Base], row_id: int, **scope: Any) -> dict | None:
    with db_session() as s:
        row = _get_scoped(s, model, row_id, scope)
        return to_dict(row) if row else None


def fetch_by_field(model: type[Base], field: str, value: Any, order_by: Any = None) -> list[dict]:
    if field not in _columns(model):
        raise ValueError(f"Unknown field for {model.__tablename__}: {field}")
    with db_session() as s:
        q = select(model).where(getattr(model, field) == value)
        if order_by is not None:
            q = q.order_by(order_by)
        return [to_dict(r) for r in s.scalars(q)]


def create_row(model: type[Base], data: dict[str, Any]) -> dict:
    payload = _clean_payload(model, data)
    with db_session() as s:
        row = model(**payload)
        s.add(row)
        s.flush()
        logger.info("Created %s #%s", model.__tablename__, row.id)
        return to_dict(row)


def _get_scoped(s: Session, model: type[Base], row_id: int, scope: dict[str, Any]) -> Any:
    """Row by id, only if it also matches every owner column in `scope`."""
    row = s.get(model, row_id)
    if row is None:
        return None
    if any(getattr(row, key) != value for key, value in scope.items() if value is not None):
        return None
    return row


def update_row(model: type[Base], row_id: int, data: dict[str, Any], **scope: Any) -> bool:
    payload = _clean_payload(model, data)
    with db_session() as s:
        row = _get_scoped(s, model, row_id, scope)
        if not row:
            return False
        for key, value in payload.items():
            setattr(row, key, value)
        return True


def delete_row(model: type[Base], row_id: int, **scope: Any) -> bool:
    with db_session() as s:
        row = _get_scoped(s, model, row_id, scope)
        if not row:
            return False
        s.delete(row)
        logger.info("Deleted %s #%s", model.__tablename__, row_id)
        return True


def delete_row_with_file(model: type[Base], row_id: int, bucket: str, column: str = "file_path", **scope: Any) -> bool:
    """Delete a row that points at a stored file; the file goes only once the delete is committed."""
    with db_session() as s:
        row = _get_scoped(s, model, row_id, scope)
        if not row:
            return False
        file_url = getattr(row, column)
        s.delete(row)
    logger.info("Deleted %s #%s", model.__tablename__, row_id)
    if file_url:
        storage.delete_file(bucket, file_url)
    return True


def count_rows(model: type[Base], *where: Any) -> int:
    with db_session() as s:
        q = select(func.count()).select_from(model)
        if where:
            q = q.where(*where)
        return int(s.execute(q).scalar_one())


# =========================
# Appointment rows (shared by every role)
# =========================
def _person(row: Any, *fields: str) -> dict | None:
    if row is None:
        return None
    return to_dict(row, ("id", "name") + fields)


def appointment_to_dict(a: Appointment, claim: InsuranceClaim | None = None) -> dict[str, Any]:
    out = to_dict(a)
    out["patient"] = _person(a.patient, "email", "phone")
    out["doctor"] = _person(a.doctor, "email", "phone")
    out["gym"] = _person(a.gym, "address")
    out["service_type"] = _person(a.service_type)
    out["insurance_claim"] = to_dict(claim, ("id", "status", "claim_amount")) if claim else None
    return out


def fetch_appointments(
    *where: Any,
    descending: bool = False,
    limit: int | None = None,
    s: Session | None = None,
) -> list[dict]:
    """Appointments joined with patient, doctor, gym, service type and claim."""
    order = Appointment.appointment_date.desc() if descending else Appointment.appointment_date.asc()
    time_order = Appointment.appointment_time.desc() if descending else Appointment.appointment_time.asc()
    q = (
        select(Appointment)
        .options(
            joinedload(Appointment.patient),
            joinedload(Appointment.doctor),
            joinedload(Appointment.gym),
            joinedload(Appointment.service_type),
        )
        .where(*where)
        .order_by(order, time_order, Appointment.id)
    )
    if limit:
        q = q.limit(limit)

    def _run(session: Session) -> list[dict]:
        rows = list(session.scalars(q).unique())
        claim_ids = [a.insurance_claim_id for a in rows if a.insurance_claim_id]
        claims: dict[int, InsuranceClaim] = {}
        if claim_ids:
            claims = {c.id: c for c in session.scalars(select(InsuranceClaim).where(InsuranceClaim.id.in_(claim_ids)))}
        return [appointment_to_dict(a, claims.get(a.insurance_claim_id)) for a in rows]

    if s is not None:
        return _run(s)
    with db_session() as session:
        return _run(session)


def fetch_appointments_for_doctor(doctor_id: int) -> list[dict]:
    return fetch_appointments(Appointment.doctor_id == doctor_id)


def fetch_appointments_for_gym(gym_id: int) -> list[dict]:
    return fetch_appointments(Appointment.gym_id == gym_id)


def fetch_appointments_for_patient(patient_id: int) -> list[dict]:
    return fetch_appointments(Appointment.patient_id == patient_id)


# =========================
# Practitioner lookups
# =========================
def fetch_doctors_by_service_type(service_type_id: int) -> list[dict]:
    with db_session() as s:
        rows = s.scalars(
            select(Doctor)
            .join(DoctorService, DoctorService.doctor_id == Doctor.id)
            .where(DoctorService.service_type_id == service_type_id)
            .order_by(Doctor.name)
        )
        return [
            to_dict(d, ("id", "name", "email", "phone", "specialization", "license_number"))
            for d in rows
        ]


def fetch_doctor_locations(doctor_id: int) -> list[dict]:
    with db_session() as s:
        rows = s.scalars(
            select(DoctorLocation)
            .options(joinedload(DoctorLocation.gym))
            .where(DoctorLocation.doctor_id == doctor_id)
            .order_by(DoctorLocation.id)
        )
        return [
            {"id": loc.id, "gym": to_dict(loc.gym, ("id", "name", "address", "phone", "email"))}
            for loc in rows
        ]


def fetch_doctor_availability(doctor_id: int, gym_id: int | None = None) -> list[dict]:
    with db_session() as s:
        q = (
            select(DoctorAvailability)
            .options(joinedload(DoctorAvailability.gym))
            .where(DoctorAvailability.doctor_id == doctor_id)
        )
        if gym_id:
            q = q.where(DoctorAvailability.gym_id == gym_id)
        q = q.order_by(DoctorAvailability.day_of_week, DoctorAvailability.start_time)
        out = []
        for av in s.scalars(q):
            row = to_dict(av)
            row["gym"] = to_dict(av.gym, ("id", "name", "address"))
            out.append(row)
        return out


def fetch_doctor_treatments(doctor_id: int) -> list[dict]:
    return fetch_by_field(Treatment, "doctor_id", doctor_id, order_by=Treatment.name.asc())


# =========================
# Insurance and payments
# =========================
def create_insurance_claim(
    appointment_id: int,
    patient_insurance_id: int,
    amount: float,
    status: ClaimStatus = ClaimStatus.PENDING,
    claim_reference: str | None = None,
) -> dict:
    """
    Insert a claim and link it to the appointment (appointments.insurance_claim_id).
    """
    if amount is None or amount <= 0:
        raise ValueError("Claim amount must be positive.")

    with db_session() as s:
        app = s.get(Appointment, appointment_id)
        if not app:
            raise ValueError(f"Appointment {appointment_id} not found.")

        claim = InsuranceClaim(
            appointment_id=appointment_id,
            patient_insurance_id=patient_insurance_id,
            claim_amount=amount,
            status=status,
            claim_reference=claim_reference,
        )
        s.add(claim)
        s.flush()

        app.insurance_claim_id = claim.id
        logger.info("Insurance claim #%s (%s) created for appointment #%s", claim.id, status.value, appointment_id)
        return to_dict(claim)


def split_payment(amount: float) -> tuple[float, float, float]:
    """70% doctor, 20% gym, remainder to the platform (always sums to amount)."""
    doctor_amount = round(amount * DOCTOR_SHARE, 2)
    gym_amount = round(amount * GYM_SHARE, 2)
    admin_amount = round(amount - doctor_amount - gym_amount, 2)
    return doctor_amount, gym_amount, admin_amount


def process_payment(appointment_id: int, amount: float, payment_method: str) -> dict:
    """
    Use case: record a completed payment for an appointment.
    - completed transaction with reference TX-<ms>
    - three pending distributions: doctor, gym, platform admin
    """
    if amount is None or amount <= 0:
        raise ValueError("Payment amount must be positive.")
    if not payment_method:
        raise ValueError("Payment method is required.")

    with db_session() as s:
        app = s.get(Appointment, appointment_id)
        if not app:
            logger.error("Cannot distribute payment: appointment #%s not found", appointment_id)
            raise ValueError(f"Appointment {appointment_id} not found.")

        tx = PaymentTransaction(
            appointment_id=appointment_id,
            amount=amount,
            status=TransactionStatus.COMPLETED,
            payment_method=payment_method,
            transaction_reference=make_reference("TX"),
        )
        s.add(tx)
        s.flush()

        doctor_amount, gym_amount, admin_amount = split_payment(amount)
        for recipient_type, recipient_id, share in (
            (RecipientType.DOCTOR, app.doctor_id, doctor_amount),
            (RecipientType.GYM, app.gym_id, gym_amount),
            (RecipientType.ADMIN, PLATFORM_ADMIN_ID, admin_amount),
        ):
            s.add(
                PaymentDistribution(
                    transaction_id=tx.id,
                    recipient_type=recipient_type,
                    recipient_id=recipient_id,
                    amount=share,
                    status=DistributionStatus.PENDING,
                )
            )

        notify(
            s,
            app.patient.user_id,
            NotificationType.PAYMENT,
            f"Payment of {amount:.2f} received for your appointment on {app.appointment_date.isoformat()}.",
        )
        logger.info("Payment %s of %.2f recorded for appointment #%s", tx.transaction_reference, amount, appointment_id)
        return to_dict(tx)


# =========================
# Invitations
# =========================
def expire_invitations(s: Session, now: datetime | None = None) -> int:
    """Pending invitations past expires_at become 'expired'. Returns how many changed."""
    now = now or datetime.utcnow()
    result = s.execute(
        update(Invitation)
        .where(
            Invitation.status == InvitationStatus.PENDING,
            Invitation.expires_at.is_not(None),
            Invitation.expires_at < now,
        )
        .values(status=InvitationStatus.EXPIRED)
    )
    if result.rowcount:
        logger.info("Marked %s invitation(s) as expired", result.rowcount)
    return result.rowcount


# =========================
# Notifications (stored, delivered by an external sender)
# =========================
def notify(s: Session, user_id: str | None, kind: NotificationType, message: str) -> Notification:
    n = Notification(user_id=user_id, type=kind, message=message)
    s.add(n)
    return n


def pending_notifications(limit: int = 50, user_id: str | None = None) -> list[dict]:
    """Notifications not yet 'sent' (sent_at is NULL), oldest first."""
    with db_session() as s:
        q = select(Notification).where(Notification.sent_at.is_(None))
        if user_id:
            q = q.where(Notification.user_id == user_id)
        q = q.order_by(Notification.created_at.asc(), Notification.id.asc()).limit(limit)
        return [to_dict(n) for n in s.scalars(q)]


def mark_notification_sent(notification_id: int) -> bool:
    with db_session() as s:
        n = s.get(Notification, notification_id)
        if not n or n.sent_at is not None:
            return False
        n.sent_at = datetime.utcnow()
        return True


# =========================
# Profiles
# =========================
def update_profile(model: type[Base], profile_id: int, data: dict[str, Any], editable: Iterable[str]) -> bool:
    """Update the editable columns of a role profile (user_id and id are never editable)."""
    forbidden = set(data) - set(editable)
    if forbidden:
        raise ValueError(f"Fields not editable: {', '.join(sorted(forbidden))}")
    if "date_of_birth" in data and data["date_of_birth"]:
        data = {**data, "date_of_birth": parse_date(data["date_of_birth"])}
    if "name" in data and not (data["name"] or "").strip():
        raise ValueError("Name cannot be empty.")
    return update_row(model, profile_id, data)


def upload_profile_image(
    model: type[Base], profile_id: int, folder: str, filename: str, content: bytes, content_type: str | None = None
) -> str | None:
    """Store the image in the profile-images bucket and save its URL on the profile; the old image is removed."""
    profile = fetch_by_id(model, profile_id)
    if profile is None:
        return None
    with storage.staged_upload(
        storage.PROFILE_IMAGES, f"{folder}/{profile_id}", filename, content, content_type
    ) as url:
        update_row(model, profile_id, {"profile_image": url})
    if profile["profile_image"]:
        storage.delete_file(storage.PROFILE_IMAGES, profile["profile_image"])
    return url
