from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import joinedload

from . import storage
from .db import db_session
from .models import (
    Appointment,
    AppointmentStatus,
    Doctor,
    DoctorLocation,
    Gym,
    GymAmenity,
    GymAvailability,
    GymImage,
    GymSpace,
    NotificationType,
    PaymentDistribution,
    PractitionerGymRequest,
    RecipientType,
    RequestStatus,
)
from .services import (
    check_weekly_slot,
    create_row,
    delete_row,
    delete_row_with_file,
    fetch_appointments,
    fetch_appointments_for_gym,
    fetch_by_field,
    fetch_by_id,
    notify,
    to_dict,
    update_profile,
    update_row,
)

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("name", "phone", "address", "description")
SPACE_FIELDS = ("name", "description", "capacity", "size_sqft", "price_per_hour", "equipment")


# =========================
# Profile
# =========================
def get_gym_profile(user_id: str) -> dict | None:
    with db_session() as s:
        g = s.execute(select(Gym).where(Gym.user_id == user_id)).scalar_one_or_none()
        return to_dict(g) if g else None


def update_gym_profile(gym_id: int, data: dict[str, Any]) -> bool:
    return update_profile(Gym, gym_id, data, PROFILE_FIELDS)


def update_gym_location(gym_id: int, latitude: float, longitude: float) -> bool:
    if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
        raise ValueError("Coordinates out of range.")
    return update_row(Gym, gym_id, {"latitude": latitude, "longitude": longitude})


# =========================
# Images
# =========================
def get_gym_images(gym_id: int) -> list[dict]:
    return fetch_by_field(GymImage, "gym_id", gym_id, order_by=GymImage.created_at.desc())


def upload_gym_images(gym_id: int, files: list[tuple[str, bytes, str | None]]) -> list[dict]:
    """Store each (filename, content, content_type) and add a gym_images row per file."""
    if fetch_by_id(Gym, gym_id) is None:
        raise ValueError(f"Gym {gym_id} not found.")
    saved = []
    for filename, content, content_type in files:
        with storage.staged_upload(storage.GYM_IMAGES, f"gyms/{gym_id}", filename, content, content_type) as url:
            saved.append(create_row(GymImage, {"gym_id": gym_id, "image_url": url, "image_name": filename}))
    return saved


def delete_gym_image(image_id: int, gym_id: int | None = None) -> bool:
    return delete_row_with_file(GymImage, image_id, storage.GYM_IMAGES, column="image_url", gym_id=gym_id)


# =========================
# Spaces (rooms rented out by the hour)
# =========================
def _space_payload(data: dict[str, Any], partial: bool = False) -> dict[str, Any]:
    unknown = set(data) - set(SPACE_FIELDS)
    if unknown:
        raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")
    out = dict(data)
    if "name" in out or not partial:
        out["name"] = (out.get("name") or "").strip()
        if not out["name"]:
            raise ValueError("Space name is required.")
    if "capacity" in out or not partial:
        if out.get("capacity") is None or int(out["capacity"]) <= 0:
            raise ValueError("Capacity must be a positive number.")
        out["capacity"] = int(out["capacity"])
    if "price_per_hour" in out or not partial:
        if out.get("price_per_hour") is None or float(out["price_per_hour"]) < 0:
            raise ValueError("Price per hour cannot be negative.")
        out["price_per_hour"] = float(out["price_per_hour"])
    if out.get("size_sqft") is not None and int(out["size_sqft"]) <= 0:
        raise ValueError("Size must be a positive number.")
    return out


def get_gym_spaces(gym_id: int) -> list[dict]:
    return fetch_by_field(GymSpace, "gym_id", gym_id, order_by=GymSpace.name.asc())


def add_gym_space(gym_id: int, data: dict[str, Any]) -> dict:
    if fetch_by_id(Gym, gym_id) is None:
        raise ValueError(f"Gym {gym_id} not found.")
    return create_row(GymSpace, {**_space_payload(data), "gym_id": gym_id})


def update_gym_space(space_id: int, data: dict[str, Any], gym_id: int | None = None) -> bool:
    return update_row(GymSpace, space_id, _space_payload(data, partial=True), gym_id=gym_id)


def upload_gym_space_image(
    space_id: int, filename: str, content: bytes, content_type: str | None = None, gym_id: int | None = None
) -> str | None:
    """Replace the picture of a space. None when the space does not belong to the gym."""
    space = fetch_by_id(GymSpace, space_id, gym_id=gym_id)
    if space is None:
        return None
    folder = f"gyms/{space['gym_id']}/spaces/{space_id}"
    with storage.staged_upload(storage.GYM_IMAGES, folder, filename, content, content_type) as url:
        update_row(GymSpace, space_id, {"image_url": url})
    if space["image_url"]:
        storage.delete_file(storage.GYM_IMAGES, space["image_url"])
    return url


def remove_gym_space(space_id: int, gym_id: int | None = None) -> bool:
    return delete_row_with_file(GymSpace, space_id, storage.GYM_IMAGES, column="image_url", gym_id=gym_id)


# =========================
# Opening hours
# =========================
def get_gym_availability(gym_id: int) -> list[dict]:
    with db_session() as s:
        rows = s.scalars(
            select(GymAvailability)
            .where(GymAvailability.gym_id == gym_id)
            .order_by(GymAvailability.day_of_week, GymAvailability.start_time)
        )
        return [to_dict(r) for r in rows]


def add_gym_availability(gym_id: int, day_of_week: int, start_time: str, end_time: str) -> dict:
    start_t, end_t = check_weekly_slot(day_of_week, start_time, end_time)
    return create_row(
        GymAvailability,
        {"gym_id": gym_id, "day_of_week": int(day_of_week), "start_time": start_t, "end_time": end_t},
    )


def remove_gym_availability(availability_id: int, gym_id: int | None = None) -> bool:
    return delete_row(GymAvailability, availability_id, gym_id=gym_id)


# =========================
# Amenities
# =========================
def get_gym_amenities(gym_id: int) -> list[dict]:
    return fetch_by_field(GymAmenity, "gym_id", gym_id, order_by=GymAmenity.name.asc())


def add_gym_amenity(gym_id: int, name: str, description: str | None = None) -> dict:
    if not name or not name.strip():
        raise ValueError("Amenity name is required.")
    return create_row(GymAmenity, {"gym_id": gym_id, "name": name.strip(), "description": description})


def remove_gym_amenity(amenity_id: int, gym_id: int | None = None) -> bool:
    return delete_row(GymAmenity, amenity_id, gym_id=gym_id)


# =========================
# Appointments, practitioners, payments
# =========================
def get_gym_appointments(gym_id: int) -> list[dict]:
    return fetch_appointments_for_gym(gym_id)


def get_doctors_at_gym(gym_id: int) -> list[dict]:
    with db_session() as s:
        rows = s.scalars(
            select(Doctor)
            .join(DoctorLocation, DoctorLocation.doctor_id == Doctor.id)
            .where(DoctorLocation.gym_id == gym_id)
            .order_by(Doctor.name)
        )
        return [to_dict(d, ("id", "name", "email", "phone", "specialization", "profile_image")) for d in rows]


def get_gym_payments(gym_id: int) -> list[dict]:
    """Distributions paid out to this gym, newest first."""
    with db_session() as s:
        rows = s.scalars(
            select(PaymentDistribution)
            .where(
                PaymentDistribution.recipient_type == RecipientType.GYM,
                PaymentDistribution.recipient_id == gym_id,
            )
            .order_by(PaymentDistribution.created_at.desc(), PaymentDistribution.id.desc())
        )
        out = []
        for d in rows:
            item = to_dict(d)
            item["transaction_reference"] = d.transaction.transaction_reference
            item["appointment_id"] = d.transaction.appointment_id
            out.append(item)
        return out


def get_dashboard_stats(gym_id: int, today: date | None = None) -> dict[str, Any]:
    today = today or date.today()
    appointments = fetch_appointments_for_gym(gym_id)
    today_iso = today.isoformat()

    return {
        "total": len(appointments),
        "today": sum(1 for a in appointments if a["appointment_date"] == today_iso),
        "upcoming": sum(
            1
            for a in appointments
            if a["appointment_date"] >= today_iso
            and a["appointment_status"] == AppointmentStatus.SCHEDULED.value
        ),
        "completed": sum(1 for a in appointments if a["appointment_status"] == AppointmentStatus.COMPLETED.value),
        "practitioners": len(get_doctors_at_gym(gym_id)),
        "recent_appointments": fetch_appointments(Appointment.gym_id == gym_id, descending=True, limit=5),
    }


# =========================
# Practitioner requests
# =========================
def get_pending_requests(gym_id: int) -> list[dict]:
    with db_session() as s:
        rows = s.scalars(
            select(PractitionerGymRequest)
            .options(joinedload(PractitionerGymRequest.doctor))
            .where(
                PractitionerGymRequest.gym_id == gym_id,
                PractitionerGymRequest.status == RequestStatus.PENDING,
            )
            .order_by(PractitionerGymRequest.created_at.asc(), PractitionerGymRequest.id.asc())
        )
        out = []
        for r in rows:
            item = to_dict(r)
            item["doctor"] = to_dict(r.doctor, ("id", "name", "email", "specialization"))
            out.append(item)
        return out


def _decide_request(request_id: int, gym_id: int | None, approve: bool) -> bool:
    with db_session() as s:
        req = s.get(PractitionerGymRequest, request_id)
        if not req or (gym_id is not None and req.gym_id != gym_id):
            return False
        if req.status != RequestStatus.PENDING:
            raise ValueError(f"Request already {req.status.value}.")

        if approve:
            req.status = RequestStatus.APPROVED
            req.approved_at = datetime.utcnow()
            linked = s.execute(
                select(DoctorLocation.id).where(
                    DoctorLocation.doctor_id == req.doctor_id, DoctorLocation.gym_id == req.gym_id
                )
            ).first()
            if not linked:
                s.add(DoctorLocation(doctor_id=req.doctor_id, gym_id=req.gym_id))
        else:
            req.status = RequestStatus.DENIED

        notify(
            s,
            req.doctor.user_id,
            NotificationType.STATUS_CHANGE,
            f"Your request to practice at {req.gym.name} was {req.status.value}.",
        )
        logger.info("Gym request #%s -> %s", request_id, req.status.value)
        return True


def approve_request(request_id: int, gym_id: int | None = None) -> bool:
    return _decide_request(request_id, gym_id, approve=True)


def deny_request(request_id: int, gym_id: int | None = None) -> bool:
    return _decide_request(request_id, gym_id, approve=False)
