from __future__ import annotations

from .admin import router as admin_router
from .doctor import router as doctor_router
from .gym import router as gym_router
from .patient import router as patient_router
from .public import router as public_router

__all__ = ["admin_router", "doctor_router", "gym_router", "patient_router", "public_router"]
