from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query

from .. import admin_service
from ..deps import CurrentUser, not_found, require_role
from ..models import Role
from ..schemas import ClaimStatusIn, InsuranceProviderIn, InviteDoctorIn, NamedIn, PaymentIn, StatusIn
from ..services import pending_notifications, process_payment

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

admin_only = require_role(Role.ADMIN)


@router.get("/dashboard")
def dashboard(me: CurrentUser = Depends(admin_only)) -> dict[str, Any]:
    return admin_service.get_dashboard_stats()


@router.get("/patients")
def patients(me: CurrentUser = Depends(admin_only)) -> list[dict]:
    return admin_service.get_all_patients()


@router.get("/doctors")
def doctors(me: CurrentUser = Depends(admin_only)) -> list[dict]:
    return admin_service.get_all_doctors()


@router.get("/gyms")
def gyms(search: str | None = Query(default=None), me: CurrentUser = Depends(admin_only)) -> list[dict]:
    return admin_service.get_gyms_overview(search)


@router.get("/appointments")
def appointments(me: CurrentUser = Depends(admin_only)) -> list[dict]:
    return admin_service.get_all_appointments()


# Payments and claims

@router.get("/payments")
def payments(me: CurrentUser = Depends(admin_only)) -> list[dict]:
    return admin_service.get_all_payments()


@router.get("/payments/summary")
def payments_summary(me: CurrentUser = Depends(admin_only)) -> dict[str, float]:
    return admin_service.get_payments_summary()


@router.post("/payments")
def record_payment(payload: PaymentIn, me: CurrentUser = Depends(admin_only)) -> dict[str, Any]:
    return process_payment(payload.appointment_id, payload.amount, payload.payment_method)


@router.patch("/distributions/{distribution_id}")
def distribution_status(distribution_id: int, payload: StatusIn, me: CurrentUser = Depends(admin_only)) -> dict:
    if not admin_service.update_payment_distribution_status(distribution_id, payload.status):
        raise not_found("Distribution")
    return {"ok": True}


@router.get("/insurance-claims")
def insurance_claims(me: CurrentUser = Depends(admin_only)) -> list[dict]:
    return admin_service.get_all_insurance_claims()


@router.patch("/insurance-claims/{claim_id}")
def claim_status(claim_id: int, payload: ClaimStatusIn, me: CurrentUser = Depends(admin_only)) -> dict:
    if not admin_service.update_insurance_claim_status(claim_id, payload.status, payload.response_details):
        raise not_found("Claim")
    return {"ok": True}


# Invitations

@router.get("/invitations")
def invitations(status: str | None = Query(default=None), me: CurrentUser = Depends(admin_only)) -> list[dict]:
    return admin_service.get_invitations(status)


@router.post("/invitations/doctor")
def invite_doctor(payload: InviteDoctorIn, me: CurrentUser = Depends(admin_only)) -> dict[str, Any]:
    inv = admin_service.invite_doctor(payload.email)
    logger.info("Admin %s invited %s", me.user.id, payload.email)
    return inv


@router.get("/notifications")
def notifications(limit: int = 200, me: CurrentUser = Depends(admin_only)) -> list[dict]:
    return pending_notifications(limit=limit)


# Catalog

@router.get("/service-types")
def service_types(me: CurrentUser = Depends(admin_only)) -> list[dict]:
    return admin_service.get_service_types()


@router.post("/service-types")
def create_service_type(payload: NamedIn, me: CurrentUser = Depends(admin_only)) -> dict[str, Any]:
    return admin_service.create_service_type(payload.name, payload.description)


@router.put("/service-types/{service_type_id}")
def update_service_type(service_type_id: int, payload: NamedIn, me: CurrentUser = Depends(admin_only)) -> dict:
    if not admin_service.update_service_type(service_type_id, payload.name, payload.description):
        raise not_found("Service type")
    return {"ok": True}


@router.delete("/service-types/{service_type_id}")
def delete_service_type(service_type_id: int, me: CurrentUser = Depends(admin_only)) -> dict:
    if not admin_service.delete_service_type(service_type_id):
        raise not_found("Service type")
    return {"ok": True}


@router.get("/insurance-providers")
def insurance_providers(me: CurrentUser = Depends(admin_only)) -> list[dict]:
    return admin_service.get_insurance_providers()


@router.post("/insurance-providers")
def create_insurance_provider(payload: InsuranceProviderIn, me: CurrentUser = Depends(admin_only)) -> dict[str, Any]:
    return admin_service.create_insurance_provider(payload.name, payload.api_key, payload.api_endpoint)


@router.put("/insurance-providers/{provider_id}")
def update_insurance_provider(provider_id: int, payload: InsuranceProviderIn, me: CurrentUser = Depends(admin_only)) -> dict:
    if not admin_service.update_insurance_provider(provider_id, payload.name, payload.api_key, payload.api_endpoint):
        raise not_found("Insurance provider")
    return {"ok": True}


@router.delete("/insurance-providers/{provider_id}")
def delete_insurance_provider(provider_id: int, me: CurrentUser = Depends(admin_only)) -> dict:
    if not admin_service.delete_insurance_provider(provider_id):
        raise not_found("Insurance provider")
    return {"ok": True}
