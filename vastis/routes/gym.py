from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, File, UploadFile

from .. import gym_service
from ..deps import CurrentUser, not_found, require_role
from ..models import Role
from ..schemas import AmenityIn, GymAvailabilityIn, GymProfileIn, GymSpaceIn, GymSpaceUpdateIn, LocationIn

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/gym", tags=["gym"])

gym_only = require_role(Role.GYM)


def _ok(done: bool, what: str) -> dict:
    if not done:
        raise not_found(what)
    return {"ok": True}


@router.get("/profile")
def profile(me: CurrentUser = Depends(gym_only)) -> dict[str, Any]:
    return gym_service.get_gym_profile(me.user.id)


@router.patch("/profile")
def update_profile(payload: GymProfileIn, me: CurrentUser = Depends(gym_only)) -> dict:
    return _ok(gym_service.update_gym_profile(me.profile_id, payload.changes()), "Gym")


@router.put("/location")
def update_location(payload: LocationIn, me: CurrentUser = Depends(gym_only)) -> dict:
    return _ok(gym_service.update_gym_location(me.profile_id, payload.latitude, payload.longitude), "Gym")


@router.get("/dashboard")
def dashboard(me: CurrentUser = Depends(gym_only)) -> dict[str, Any]:
    return gym_service.get_dashboard_stats(me.profile_id)


# Images

@router.get("/images")
def images(me: CurrentUser = Depends(gym_only)) -> list[dict]:
    return gym_service.get_gym_images(me.profile_id)


@router.post("/images")
def upload_images(files: list[UploadFile] = File(...), me: CurrentUser = Depends(gym_only)) -> list[dict]:
    return gym_service.upload_gym_images(
        me.profile_id, [(f.filename, f.file.read(), f.content_type) for f in files]
    )


@router.delete("/images/{image_id}")
def delete_image(image_id: int, me: CurrentUser = Depends(gym_only)) -> dict:
    return _ok(gym_service.delete_gym_image(image_id, me.profile_id), "Image")


# Spaces

@router.get("/spaces")
def spaces(me: CurrentUser = Depends(gym_only)) -> list[dict]:
    return gym_service.get_gym_spaces(me.profile_id)


@router.post("/spaces")
def add_space(payload: GymSpaceIn, me: CurrentUser = Depends(gym_only)) -> dict[str, Any]:
    return gym_service.add_gym_space(me.profile_id, payload.model_dump())


@router.patch("/spaces/{space_id}")
def update_space(space_id: int, payload: GymSpaceUpdateIn, me: CurrentUser = Depends(gym_only)) -> dict:
    return _ok(gym_service.update_gym_space(space_id, payload.changes(), me.profile_id), "Space")


@router.post("/spaces/{space_id}/image")
def space_image(space_id: int, file: UploadFile = File(...), me: CurrentUser = Depends(gym_only)) -> dict[str, Any]:
    url = gym_service.upload_gym_space_image(
        space_id, file.filename, file.file.read(), file.content_type, gym_id=me.profile_id
    )
    if url is None:
        raise not_found("Space")
    return {"url": url}


@router.delete("/spaces/{space_id}")
def delete_space(space_id: int, me: CurrentUser = Depends(gym_only)) -> dict:
    return _ok(gym_service.remove_gym_space(space_id, me.profile_id), "Space")


# Opening hours and amenities

@router.get("/availability")
def availability(me: CurrentUser = Depends(gym_only)) -> list[dict]:
    return gym_service.get_gym_availability(me.profile_id)


@router.post("/availability")
def add_availability(payload: GymAvailabilityIn, me: CurrentUser = Depends(gym_only)) -> dict[str, Any]:
    return gym_service.add_gym_availability(me.profile_id, payload.day_of_week, payload.start_time, payload.end_time)


@router.delete("/availability/{availability_id}")
def remove_availability(availability_id: int, me: CurrentUser = Depends(gym_only)) -> dict:
    return _ok(gym_service.remove_gym_availability(availability_id, me.profile_id), "Availability")


@router.get("/amenities")
def amenities(me: CurrentUser = Depends(gym_only)) -> list[dict]:
    return gym_service.get_gym_amenities(me.profile_id)


@router.post("/amenities")
def add_amenity(payload: AmenityIn, me: CurrentUser = Depends(gym_only)) -> dict[str, Any]:
    return gym_service.add_gym_amenity(me.profile_id, payload.name, payload.description)


@router.delete("/amenities/{amenity_id}")
def remove_amenity(amenity_id: int, me: CurrentUser = Depends(gym_only)) -> dict:
    return _ok(gym_service.remove_gym_amenity(amenity_id, me.profile_id), "Amenity")


# Appointments, practitioners, payments

@router.get("/appointments")
def appointments(me: CurrentUser = Depends(gym_only)) -> list[dict]:
    return gym_service.get_gym_appointments(me.profile_id)


@router.get("/doctors")
def doctors(me: CurrentUser = Depends(gym_only)) -> list[dict]:
    return gym_service.get_doctors_at_gym(me.profile_id)


@router.get("/payments")
def payments(me: CurrentUser = Depends(gym_only)) -> list[dict]:
    return gym_service.get_gym_payments(me.profile_id)


@router.get("/requests")
def requests(me: CurrentUser = Depends(gym_only)) -> list[dict]:
    return gym_service.get_pending_requests(me.profile_id)


@router.post("/requests/{request_id}/approve")
def approve(request_id: int, me: CurrentUser = Depends(gym_only)) -> dict:
    return _ok(gym_service.approve_request(request_id, me.profile_id), "Request")


@router.post("/requests/{request_id}/deny")
def deny(request_id: int, me: CurrentUser = Depends(gym_only)) -> dict:
    return _ok(gym_service.deny_request(request_id, me.profile_id), "Request")
