"""Tests for the shared data-access helpers."""
from datetime import time

import pytest

from vastis.models import (
    Appointment,
    AppointmentStatus,
    ClaimStatus,
    InsuranceProvider,
    NotificationType,
    PatientInsurance,
    ServiceType,
)
from vastis.patient_service import book_appointment
from vastis.services import (
    check_weekly_slot,
    create_insurance_claim,
    create_row,
    delete_row,
    fetch_appointments_for_doctor,
    fetch_by_id,
    make_reference,
    mark_notification_sent,
    parse_enum,
    pending_notifications,
    process_payment,
    split_payment,
    update_row,
)


@pytest.fixture
def appointment(patient, doctor, gym, service_type):
    return book_appointment(patient["id"], doctor["id"], gym["id"], service_type["id"], "2030-05-06", "10:00")


class TestParsing:

    def test_parse_enum_accepts_values_and_members(self):
        assert parse_enum(AppointmentStatus, "Completed") is AppointmentStatus.COMPLETED
        assert parse_enum(AppointmentStatus, AppointmentStatus.CANCELLED) is AppointmentStatus.CANCELLED

    def test_parse_enum_lists_allowed_values(self):
        with pytest.raises(ValueError, match="allowed: scheduled, confirmed"):
            parse_enum(AppointmentStatus, "done")

    def test_weekly_slot(self):
        assert check_weekly_slot(0, "09:00", "12:30") == (time(9, 0), time(12, 30))
        with pytest.raises(ValueError, match="Day of week"):
            check_weekly_slot(7, "09:00", "10:00")
        with pytest.raises(ValueError, match="before end"):
            check_weekly_slot(1, "10:00", "10:00")
        with pytest.raises(ValueError, match="Invalid time"):
            check_weekly_slot(1, "nine", "10:00")

    def test_reference_format(self):
        ref = make_reference("TX")
        assert ref.startswith("TX-")
        assert ref[3:].isdigit() and len(ref[3:]) >= 13


class TestGenericCrud:

    def test_create_update_delete(self):
        row = create_row(ServiceType, {"name": "Massage"})
        assert row["id"] and row["name"] == "Massage"
        assert row["created_at"]

        assert update_row(ServiceType, row["id"], {"description": "Deep tissue"})
        assert fetch_by_id(ServiceType, row["id"])["description"] == "Deep tissue"

        assert delete_row(ServiceType, row["id"])
        assert fetch_by_id(ServiceType, row["id"]) is None
        assert not delete_row(ServiceType, row["id"])

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValueError, match="Unknown fields"):
            create_row(ServiceType, {"name": "X", "colour": "red"})

    def test_scope_hides_rows_of_other_owners(self, appointment, doctor):
        assert fetch_by_id(Appointment, appointment["id"], doctor_id=doctor["id"] + 1) is None
        assert not update_row(Appointment, appointment["id"], {"appointment_notes": "x"}, doctor_id=doctor["id"] + 1)
        assert update_row(Appointment, appointment["id"], {"appointment_notes": "x"}, doctor_id=doctor["id"])


class TestAppointmentRows:

    def test_joined_row(self, appointment, doctor):
        rows = fetch_appointments_for_doctor(doctor["id"])
        assert len(rows) == 1
        row = rows[0]
        assert row["appointment_date"] == "2030-05-06"
        assert row["appointment_time"] == "10:00"
        assert row["appointment_status"] == "scheduled"
        assert row["appointment_type"] == "consultation"
        assert row["patient"]["name"] == "Pat Lee"
        assert row["doctor"]["name"] == "Dana Reed"
        assert row["gym"]["name"] == "Riverside Fitness"
        assert row["service_type"]["name"] == "Physiotherapy"
        assert row["insurance_claim"] is None


class TestPayments:

    def test_split_sums_to_amount(self):
        assert split_payment(100) == (70.0, 20.0, 10.0)
        doctor_share, gym_share, admin_share = split_payment(33.33)
        assert round(doctor_share + gym_share + admin_share, 2) == 33.33

    def test_process_payment_creates_distributions(self, appointment, doctor, gym):
        from vastis.admin_service import get_all_payments

        tx = process_payment(appointment["id"], 100.0, "card")
        assert tx["status"] == "completed"
        assert tx["transaction_reference"].startswith("TX-")

        payment = get_all_payments()[0]
        shares = {d["recipient_type"]: (d["recipient_id"], d["amount"], d["status"]) for d in payment["distributions"]}
        assert shares == {
            "doctor": (doctor["id"], 70.0, "pending"),
            "gym": (gym["id"], 20.0, "pending"),
            "admin": (1, 10.0, "pending"),
        }

    def test_process_payment_validation(self, appointment):
        with pytest.raises(ValueError, match="positive"):
            process_payment(appointment["id"], 0, "card")
        with pytest.raises(ValueError, match="not found"):
            process_payment(9999, 10, "card")


class TestInsuranceClaims:

    def test_claim_is_linked_to_appointment(self, appointment, patient):
        provider = create_row(InsuranceProvider, {"name": "Aetna"})
        policy = create_row(
            PatientInsurance,
            {"patient_id": patient["id"], "insurance_provider_id": provider["id"], "policy_number": "P-1"},
        )
        claim = create_insurance_claim(appointment["id"], policy["id"], 80.0)
        assert claim["status"] == ClaimStatus.PENDING.value
        assert fetch_by_id(Appointment, appointment["id"])["insurance_claim_id"] == claim["id"]

    def test_claim_amount_must_be_positive(self, appointment):
        with pytest.raises(ValueError):
            create_insurance_claim(appointment["id"], 1, -5)


class TestNotifications:

    def test_booking_notifies_doctor_and_patient(self, appointment, doctor, patient):
        pending = pending_notifications()
        assert {n["user_id"] for n in pending} == {doctor["user_id"], patient["user_id"]}
        assert all(n["type"] == NotificationType.BOOKING.value for n in pending)

        assert len(pending_notifications(user_id=patient["user_id"])) == 1

    def test_mark_sent_once(self, appointment):
        first = pending_notifications()[0]
        assert mark_notification_sent(first["id"])
        assert not mark_notification_sent(first["id"])
        assert first["id"] not in {n["id"] for n in pending_notifications()}
