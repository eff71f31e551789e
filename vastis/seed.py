from __future__ import annotations

import logging

from sqlalchemy import select

from .db import db_session
from .models import InsuranceProvider, ServiceType

logger = logging.getLogger(__name__)

SERVICE_TYPES = [
    ("Physiotherapy", "Assessment and treatment of movement disorders"),
    ("Sports Massage", "Soft tissue work for athletes"),
    ("Chiropractic", "Spinal and joint manipulation"),
    ("Nutrition Consultation", "Diet planning and follow-up"),
    ("Osteopathy", "Manual therapy of the musculoskeletal system"),
]

INSURANCE_PROVIDERS = [
    "Blue Cross",
    "Aetna",
    "Cigna",
    "UnitedHealthcare",
]


def seed_base() -> None:
    """
    Minimal catalog (idempotent):
    - service types
    - insurance providers
    """
    added = 0
    with db_session() as s:
        for name, description in SERVICE_TYPES:
            if s.execute(select(ServiceType).where(ServiceType.name == name)).scalar_one_or_none() is None:
                s.add(ServiceType(name=name, description=description))
                added += 1

        for name in INSURANCE_PROVIDERS:
            if s.execute(select(InsuranceProvider).where(InsuranceProvider.name == name)).scalar_one_or_none() is None:
                s.add(InsuranceProvider(name=name))
                added += 1

    if added:
        logger.info("Seeded %d catalog rows", added)
