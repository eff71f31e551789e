from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter

from .. import admin_service
from ..models import Gym
from ..schemas import InvitationIn
from ..services import fetch_all

logger = logging.getLogger(__name__)

router = APIRouter(tags=["public"])


@router.get("/api/public/service-types")
def service_types() -> list[dict]:
    return admin_service.get_service_types()


@router.get("/api/public/gyms")
def gyms() -> list[dict]:
    rows = fetch_all(Gym, order_by=Gym.name.asc())
    return [{k: g[k] for k in ("id", "name", "address", "latitude", "longitude")} for g in rows]


@router.post("/api/invitations")
def create_invitation(payload: InvitationIn) -> dict[str, Any]:
    inv = admin_service.create_invitation(
        email=payload.email,
        first_name=payload.firstName,
        last_name=payload.lastName,
        phone=payload.phone,
        specialization=payload.specialization,
        message=payload.message,
        invite_code=payload.inviteCode,
        invite_type=payload.inviteType,
    )
    return {"success": True, "invitation": inv}
