"""Tests for the admin dashboard, invitations and catalog."""
from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from vastis import admin_service
from vastis.models import InsuranceProvider, PatientInsurance
from vastis.patient_service import book_appointment, submit_insurance_claim
from vastis.services import create_row, pending_notifications, process_payment


@pytest.fixture
def booked(patient, doctor, gym, service_type):
    apps = [
        book_appointment(patient["id"], doctor["id"], gym["id"], service_type["id"], f"2030-01-{d:02d}", "09:30")
        for d in range(1, 8)
    ]
    return apps


class TestListings:

    def test_ordered_by_name(self, patient):
        from vastis.auth_service import register_user

        register_user("a@example.com", "pw", "patient", first_name="Aaron")
        names = [p["name"] for p in admin_service.get_all_patients()]
        assert names == sorted(names)

    def test_appointments_latest_first(self, booked):
        dates = [a["appointment_date"] for a in admin_service.get_all_appointments()]
        assert dates == sorted(dates, reverse=True)


class TestDashboard:

    def test_counts_revenue_and_recent(self, booked):
        process_payment(booked[0]["id"], 50.0, "card")
        process_payment(booked[1]["id"], 25.5, "cash")

        stats = admin_service.get_dashboard_stats()
        assert stats["total_patients"] == 1
        assert stats["total_doctors"] == 1
        assert stats["total_gyms"] == 1
        assert stats["total_appointments"] == 7
        assert stats["total_revenue"] == 75.5
        assert len(stats["recent_appointments"]) == 5
        assert stats["recent_appointments"][0]["appointment_date"] == "2030-01-07"

    def test_payments_summary(self, booked):
        process_payment(booked[0]["id"], 40.0, "card")
        assert admin_service.get_payments_summary() == {"total": 40.0, "pending": 0.0, "completed": 40.0}

    def test_gyms_overview(self, booked, gym, doctor):
        from vastis.doctor_service import add_doctor_location

        add_doctor_location(doctor["id"], gym["id"])
        [row] = admin_service.get_gyms_overview()
        assert row["doctor_count"] == 1
        assert row["appointment_count"] == 7
        assert admin_service.get_gyms_overview("river")
        assert admin_service.get_gyms_overview("12 river")
        assert admin_service.get_gyms_overview("downtown") == []


class TestInvitations:

    def test_invite_code_shape(self):
        code = admin_service.generate_invite_code()
        assert len(code) == 26 and int(code, 16) >= 0

    def test_invite_doctor_refreshes_existing(self):
        first = admin_service.invite_doctor("Doc@Example.com")
        assert first["email"] == "doc@example.com"
        assert first["status"] == "pending"
        assert first["role"] == "doctor"
        expires = datetime.fromisoformat(first["expires_at"])
        assert timedelta(days=6, hours=23) < expires - datetime.utcnow() <= timedelta(days=7)

        again = admin_service.invite_doctor("doc@example.com")
        assert again["id"] == first["id"]
        assert again["invite_code"] != first["invite_code"]
        assert len(admin_service.get_invitations()) == 1

    def test_invitation_notification_has_link(self):
        inv = admin_service.invite_doctor("doc2@example.com")
        [n] = pending_notifications()
        assert n["user_id"] is None
        assert n["type"] == "invitation"
        assert f"invite={inv['invite_code']}" in n["message"]

    def test_create_invitation_rejects_existing_user(self, patient):
        with pytest.raises(ValueError, match="already exists"):
            admin_service.create_invitation("pat@example.com")

    def test_create_invitation_email_logged(self, caplog):
        caplog.set_level("INFO")
        inv = admin_service.create_invitation("x@example.com", first_name="X", invite_code="abc123")
        assert inv["invite_code"] == "abc123"
        assert "Sending invitation email to x@example.com" in caplog.text

    def test_filter_by_status(self):
        admin_service.invite_doctor("one@example.com")
        assert len(admin_service.get_invitations("pending")) == 1
        assert admin_service.get_invitations("accepted") == []


class TestStatusUpdates:

    def test_distribution_paid_sets_paid_at(self, booked):
        process_payment(booked[0]["id"], 10.0, "card")
        dist = admin_service.get_all_payments()[0]["distributions"][0]
        assert dist["paid_at"] is None

        assert admin_service.update_payment_distribution_status(dist["id"], "paid")
        dist = admin_service.get_all_payments()[0]["distributions"][0]
        assert dist["status"] == "paid"
        assert dist["paid_at"] is not None

    def test_distribution_bad_status_and_missing(self):
        with pytest.raises(ValueError):
            admin_service.update_payment_distribution_status(1, "lost")
        assert not admin_service.update_payment_distribution_status(999, "paid")

    def test_claim_status_and_details(self, booked, patient):
        provider = create_row(InsuranceProvider, {"name": "Cigna"})
        policy = create_row(
            PatientInsurance,
            {"patient_id": patient["id"], "insurance_provider_id": provider["id"], "policy_number": "C-9"},
        )
        claim = submit_insurance_claim(booked[0]["id"], policy["id"], 60.0)

        assert admin_service.update_insurance_claim_status(claim["id"], "approved", {"approved_amount": 55})
        [row] = admin_service.get_all_insurance_claims()
        assert row["status"] == "approved"
        assert row["response_details"] == {"approved_amount": 55}
        assert row["patient_insurance"]["insurance_provider"]["name"] == "Cigna"
        assert row["appointment"]["patient"]["name"] == "Pat Lee"
        assert any(n["type"] == "claim" for n in pending_notifications(user_id=patient["user_id"]))


class TestCatalog:

    def test_service_type_crud(self):
        st = admin_service.create_service_type("  Pilates ", "Mat work")
        assert st["name"] == "Pilates"
        assert admin_service.update_service_type(st["id"], "Reformer Pilates")
        assert [s["name"] for s in admin_service.get_service_types()] == ["Reformer Pilates"]
        assert admin_service.delete_service_type(st["id"])
        assert not admin_service.delete_service_type(st["id"])

    def test_service_type_name_required_and_unique(self):
        with pytest.raises(ValueError, match="name is required"):
            admin_service.create_service_type(" ")
        admin_service.create_service_type("Yoga")
        with pytest.raises(IntegrityError):
            admin_service.create_service_type("Yoga")

    def test_insurance_provider_crud(self):
        p = admin_service.create_insurance_provider("Aetna", api_endpoint="https://api.example.com")
        assert admin_service.update_insurance_provider(p["id"], "Aetna Health")
        assert admin_service.get_insurance_providers()[0]["name"] == "Aetna Health"
        assert admin_service.delete_insurance_provider(p["id"])
