"""Tests for the patient side: booking, claims, provider search and forms."""
import random
from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from vastis import admin_service, doctor_service, gym_service, patient_service, storage
from vastis.auth_service import get_profile_id, register_user
from vastis.config import STORAGE_DIR
from vastis.models import InsuranceProvider, Role
from vastis.services import create_row, pending_notifications


@pytest.fixture
def provider():
    return create_row(InsuranceProvider, {"name": "Blue Cross"})


@pytest.fixture
def listed_doctor(doctor, gym, service_type):
    doctor_service.add_doctor_service(doctor["id"], service_type["id"])
    doctor_service.add_doctor_location(doctor["id"], gym["id"])
    gym_service.update_gym_location(gym["id"], 51.5074, -0.1278)
    return doctor


def _gym(name, email, lat=None, lon=None):
    uid = register_user(email, "pw", "gym", gym_name=name)
    gym_id = get_profile_id(uid, Role.GYM)
    if lat is not None:
        gym_service.update_gym_location(gym_id, lat, lon)
    return gym_id


class TestBooking:

    def test_book_defaults_and_notifications(self, patient, doctor, gym, service_type):
        app = patient_service.book_appointment(
            patient["id"], doctor["id"], gym["id"], service_type["id"], "2030-09-09", "15:30", price=70.0
        )
        assert app["appointment_status"] == "scheduled"
        assert app["appointment_type"] == "consultation"
        assert app["appointment_time"] == "15:30"

        assert pending_notifications(user_id=doctor["user_id"])[0]["type"] == "booking"
        assert "is booked" in pending_notifications(user_id=patient["user_id"])[0]["message"]

    def test_missing_and_unknown(self, patient, doctor, gym):
        with pytest.raises(ValueError, match="Missing required fields"):
            patient_service.book_appointment(patient["id"], doctor["id"], gym["id"], None, "", "10:00")
        with pytest.raises(ValueError, match="not found"):
            patient_service.book_appointment(patient["id"], 999, gym["id"], None, "2030-01-01", "10:00")
        with pytest.raises(ValueError, match="Invalid date"):
            patient_service.book_appointment(patient["id"], doctor["id"], gym["id"], None, "01/02/2030", "10:00")

    def test_cancel_only_own(self, patient, doctor, gym):
        app = patient_service.book_appointment(patient["id"], doctor["id"], gym["id"], None, "2030-09-09", "10:00")
        assert not patient_service.cancel_appointment(app["id"], patient["id"] + 1)
        assert patient_service.cancel_appointment(app["id"], patient["id"])
        assert not patient_service.cancel_appointment(app["id"], patient["id"])
        [row] = patient_service.get_patient_appointments(patient["id"])
        assert row["appointment_status"] == "cancelled"
        assert any(n["type"] == "cancellation" for n in pending_notifications(user_id=doctor["user_id"]))


class TestSplitAppointments:

    def _row(self, day, at, status):
        return {"appointment_date": day, "appointment_time": at, "appointment_status": status}

    def test_groups(self):
        now = datetime(2030, 5, 10, 12, 0)
        rows = [
            self._row("2030-05-11", "09:00", "scheduled"),
            self._row("2030-05-10", "13:00", "scheduled"),
            self._row("2030-05-10", "11:00", "scheduled"),
            self._row("2030-05-01", "09:00", "completed"),
            self._row("2030-06-01", "09:00", "cancelled"),
            self._row("2030-06-02", "09:00", "confirmed"),
        ]
        groups = patient_service.split_appointments(rows, now=now)
        assert [(a["appointment_date"], a["appointment_time"]) for a in groups["upcoming"]] == [
            ("2030-05-10", "13:00"),
            ("2030-05-11", "09:00"),
        ]
        assert [(a["appointment_date"], a["appointment_time"]) for a in groups["past"]] == [
            ("2030-05-10", "11:00"),
            ("2030-05-01", "09:00"),
        ]
        assert len(groups["cancelled"]) == 1


class TestInsurance:

    def test_policies(self, patient, provider):
        pi = patient_service.add_patient_insurance(patient["id"], provider["id"], " POL-1 ", coverage_details={"physio": 0.8})
        [row] = patient_service.get_patient_insurance(patient["id"])
        assert row["policy_number"] == "POL-1"
        assert row["coverage_details"] == {"physio": 0.8}
        assert row["insurance_provider"]["name"] == "Blue Cross"
        with pytest.raises(ValueError, match="Policy number"):
            patient_service.add_patient_insurance(patient["id"], provider["id"], "")
        assert patient_service.remove_patient_insurance(pi["id"], patient["id"])

    def test_submit_claim(self, patient, doctor, gym, provider):
        app = patient_service.book_appointment(patient["id"], doctor["id"], gym["id"], None, "2030-09-09", "10:00")
        pi = patient_service.add_patient_insurance(patient["id"], provider["id"], "POL-2")

        claim = patient_service.submit_insurance_claim(app["id"], pi["id"], 45.0, patient_id=patient["id"])
        assert claim["status"] == "submitted"
        assert claim["claim_reference"].startswith("CLAIM-")

        [row] = patient_service.get_patient_appointments(patient["id"])
        assert row["insurance_claim"] == {"id": claim["id"], "status": "submitted", "claim_amount": 45.0}

    def test_claim_for_someone_else(self, patient, doctor, gym, provider):
        app = patient_service.book_appointment(patient["id"], doctor["id"], gym["id"], None, "2030-09-09", "10:00")
        pi = patient_service.add_patient_insurance(patient["id"], provider["id"], "POL-3")
        with pytest.raises(ValueError, match="not found"):
            patient_service.submit_insurance_claim(app["id"], pi["id"], 45.0, patient_id=patient["id"] + 1)

    def test_remove_policy_keeps_claim(self, patient, doctor, gym, provider):
        app = patient_service.book_appointment(patient["id"], doctor["id"], gym["id"], None, "2030-09-09", "10:00")
        pi = patient_service.add_patient_insurance(patient["id"], provider["id"], "POL-4")
        claim = patient_service.submit_insurance_claim(app["id"], pi["id"], 45.0, patient_id=patient["id"])

        assert patient_service.remove_patient_insurance(pi["id"], patient["id"])
        assert patient_service.get_patient_insurance(patient["id"]) == []
        [row] = admin_service.get_all_insurance_claims()
        assert row["id"] == claim["id"]
        assert row["patient_insurance"] is None
        assert row["appointment"]["id"] == app["id"]


class TestFindingPractitioners:

    def test_only_doctors_with_service_and_location(self, listed_doctor, service_type):
        register_user("bare@example.com", "pw", "doctor", first_name="Bare")
        rows = patient_service.get_available_doctors()
        assert [d["name"] for d in rows] == ["Dana Reed"]
        assert rows[0]["services"][0]["name"] == "Physiotherapy"
        assert rows[0]["gyms"][0]["latitude"] == 51.5074

        assert patient_service.get_available_doctors(service_type["id"])
        assert patient_service.get_available_doctors(service_type["id"] + 1) == []

    def test_find_providers_sorted_unknown_last(self, listed_doctor):
        far = _gym("Paris Club", "paris@example.com", 48.8566, 2.3522)
        unknown = _gym("No Coords Gym", "nocoords@example.com")
        near = _gym("Camden Gym", "camden@example.com", 51.539, -0.1426)
        for g in (far, unknown, near):
            doctor_service.add_doctor_location(listed_doctor["id"], g)

        rows = patient_service.find_providers(51.5074, -0.1278)
        assert [r["gym_name"] for r in rows] == ["Riverside Fitness", "Camden Gym", "Paris Club", "No Coords Gym"]
        assert rows[0]["distance"] == 0.0
        assert rows[-1]["distance"] is None

        no_coords = patient_service.find_providers()
        assert all(r["distance"] is None for r in no_coords)
        assert len(no_coords) == 4

    def test_find_physio_gyms(self, gym):
        _gym("Second", "second@example.com")
        rows = patient_service.find_physio_gyms(random.Random(3))
        assert len(rows) == 2
        distances = [r["distance"] for r in rows]
        assert distances == sorted(distances)
        assert all(1 <= d <= 10 for d in distances)

    def test_availability_for_patient(self, listed_doctor, gym):
        doctor_service.add_doctor_availability(listed_doctor["id"], gym["id"], 2, "09:00", "11:00")
        [slot] = patient_service.get_doctor_availability_for_patient(listed_doctor["id"], gym["id"])
        assert slot["start_time"] == "09:00"


class TestRecordsAndForms:

    def test_medical_records(self, patient):
        rec = patient_service.upload_medical_record(patient["id"], "blood.pdf", b"%PDF-1.4", "lab", "Annual check")
        assert "/storage/medical-records/patients/" in rec["file_path"]
        assert patient_service.get_medical_records(patient["id"])[0]["description"] == "Annual check"
        assert not patient_service.delete_medical_record(rec["id"], patient["id"] + 1)
        assert patient_service.delete_medical_record(rec["id"], patient["id"])
        assert patient_service.get_medical_records(patient["id"]) == []

    def test_record_file_follows_row(self, patient):
        rec = patient_service.upload_medical_record(patient["id"], "scan.png", b"\x89PNG", "imaging")
        on_disk = storage.local_path(storage.MEDICAL_RECORDS, rec["file_path"].split("/medical-records/", 1)[1])
        assert on_disk.exists()
        assert patient_service.delete_medical_record(rec["id"], patient["id"])
        assert not on_disk.exists()

    def test_record_for_unknown_patient_leaves_no_file(self):
        with pytest.raises(IntegrityError):
            patient_service.upload_medical_record(999, "blood.pdf", b"%PDF-1.4", "lab")
        folder = STORAGE_DIR / storage.MEDICAL_RECORDS / "patients" / "999" / "lab"
        assert not folder.exists() or not any(folder.iterdir())

    def test_health_intake_upsert(self, patient):
        first = patient_service.save_health_intake(patient["id"], {"injuries": "knee", "smoker": "", "meds": None})
        assert first["answers"] == {"injuries": "knee"}

        second = patient_service.save_health_intake(patient["id"], {"injuries": "knee, ankle"})
        assert second["id"] == first["id"]
        assert patient_service.get_health_intake(patient["id"])["answers"] == {"injuries": "knee, ankle"}

    def test_consent_form(self, patient):
        form = patient_service.submit_consent_form(patient["id"], "Pat Lee", True, True)
        assert form["communication_consent"] is False
        assert form["signed_at"]
        with pytest.raises(ValueError, match="consent are required"):
            patient_service.submit_consent_form(patient["id"], "Pat Lee", True, False)
        with pytest.raises(ValueError, match="Signature"):
            patient_service.submit_consent_form(patient["id"], " ", True, True)

    def test_profile_update(self, patient):
        assert patient_service.update_patient_profile(patient["id"], {"allergies": "Penicillin", "date_of_birth": "1990-02-03"})
        profile = patient_service.get_patient_profile(patient["user_id"])
        assert profile["allergies"] == "Penicillin"
        assert profile["date_of_birth"] == "1990-02-03"
