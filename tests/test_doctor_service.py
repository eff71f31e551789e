"""Tests for the practitioner side: setup, schedule, patients and gym requests."""
from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from vastis import doctor_service, storage
from vastis.auth_service import get_profile_id, register_user
from vastis.models import Role
from vastis.patient_service import book_appointment
from vastis.services import pending_notifications


def _second_patient(name="Zoe Park"):
    first, last = name.split()
    uid = register_user(f"{first.lower()}@example.com", "pw", "patient", first_name=first, last_name=last)
    return get_profile_id(uid, Role.PATIENT)


class TestProfile:

    def test_get_and_update(self, doctor):
        assert doctor_service.get_doctor_profile(doctor["user_id"])["specialization"] == "Physiotherapy"
        assert doctor_service.update_doctor_profile(doctor["id"], {"bio": "Ten years in sports rehab"})
        assert doctor_service.get_doctor_profile(doctor["user_id"])["bio"] == "Ten years in sports rehab"

    def test_non_editable_fields(self, doctor):
        with pytest.raises(ValueError, match="not editable"):
            doctor_service.update_doctor_profile(doctor["id"], {"email": "x@example.com"})
        with pytest.raises(ValueError, match="Name cannot be empty"):
            doctor_service.update_doctor_profile(doctor["id"], {"name": "  "})

    def test_profile_image(self, doctor, png_bytes):
        url = doctor_service.upload_doctor_profile_image(doctor["id"], "me.png", png_bytes, "image/png")
        assert "/storage/profile-images/doctors/" in url
        assert doctor_service.get_doctor_profile(doctor["user_id"])["profile_image"] == url
        assert doctor_service.upload_doctor_profile_image(999, "me.png", png_bytes) is None

        newer = doctor_service.upload_doctor_profile_image(doctor["id"], "me2.png", png_bytes, "image/png")
        assert doctor_service.get_doctor_profile(doctor["user_id"])["profile_image"] == newer
        assert not storage.local_path(storage.PROFILE_IMAGES, url.split("/profile-images/", 1)[1]).exists()


class TestSetup:

    def test_services(self, doctor, service_type):
        ds = doctor_service.add_doctor_service(doctor["id"], service_type["id"])
        [row] = doctor_service.get_doctor_services(doctor["id"])
        assert row["service_type"]["name"] == "Physiotherapy"
        with pytest.raises(IntegrityError):
            doctor_service.add_doctor_service(doctor["id"], service_type["id"])
        assert not doctor_service.remove_doctor_service(ds["id"], doctor["id"] + 1)
        assert doctor_service.remove_doctor_service(ds["id"], doctor["id"])
        with pytest.raises(ValueError, match="not found"):
            doctor_service.add_doctor_service(doctor["id"], 999)

    def test_locations(self, doctor, gym):
        loc = doctor_service.add_doctor_location(doctor["id"], gym["id"])
        [row] = doctor_service.get_doctor_locations(doctor["id"])
        assert row["gym"]["name"] == "Riverside Fitness"
        assert doctor_service.remove_doctor_location(loc["id"], doctor["id"])
        assert doctor_service.get_doctor_locations(doctor["id"]) == []

    def test_availability(self, doctor, gym):
        doctor_service.add_doctor_availability(doctor["id"], gym["id"], 3, "14:00", "18:00")
        doctor_service.add_doctor_availability(doctor["id"], gym["id"], 1, "09:00", "12:00")
        rows = doctor_service.get_doctor_availability(doctor["id"])
        assert [(r["day_of_week"], r["start_time"], r["end_time"]) for r in rows] == [
            (1, "09:00", "12:00"),
            (3, "14:00", "18:00"),
        ]
        assert rows[0]["gym"]["name"] == "Riverside Fitness"
        assert doctor_service.get_doctor_availability(doctor["id"], gym_id=gym["id"] + 1) == []

        with pytest.raises(ValueError):
            doctor_service.add_doctor_availability(doctor["id"], gym["id"], 2, "12:00", "09:00")
        assert doctor_service.remove_doctor_availability(rows[0]["id"], doctor["id"])

    def test_treatments(self, doctor):
        t = doctor_service.create_treatment(doctor["id"], {"name": "Dry needling", "duration_minutes": 30, "price": 55.0})
        assert doctor_service.update_treatment(t["id"], {"price": 60.0}, doctor["id"])
        [row] = doctor_service.get_treatments(doctor["id"])
        assert row["price"] == 60.0
        with pytest.raises(ValueError, match="name is required"):
            doctor_service.create_treatment(doctor["id"], {"price": 10.0})
        with pytest.raises(ValueError, match="negative"):
            doctor_service.update_treatment(t["id"], {"price": -1})
        assert doctor_service.delete_treatment(t["id"], doctor["id"])


class TestAppointments:

    def test_status_change_notifies_patient(self, patient, doctor, gym):
        app = book_appointment(patient["id"], doctor["id"], gym["id"], None, "2030-03-03", "11:00")
        assert doctor_service.update_appointment_status(app["id"], "confirmed", doctor["id"])
        [row] = doctor_service.get_doctor_appointments(doctor["id"])
        assert row["appointment_status"] == "confirmed"
        messages = [n["message"] for n in pending_notifications(user_id=patient["user_id"])]
        assert any("now confirmed" in m for m in messages)

    def test_other_doctor_cannot_touch(self, patient, doctor, gym):
        app = book_appointment(patient["id"], doctor["id"], gym["id"], None, "2030-03-03", "11:00")
        assert not doctor_service.update_appointment_status(app["id"], "completed", doctor["id"] + 1)
        assert not doctor_service.add_appointment_notes(app["id"], "x", doctor["id"] + 1)
        assert doctor_service.add_appointment_notes(app["id"], "Lower back pain", doctor["id"])
        assert doctor_service.get_doctor_appointments(doctor["id"])[0]["appointment_notes"] == "Lower back pain"

    def test_bad_status(self, patient, doctor, gym):
        app = book_appointment(patient["id"], doctor["id"], gym["id"], None, "2030-03-03", "11:00")
        with pytest.raises(ValueError):
            doctor_service.update_appointment_status(app["id"], "finished")


class TestPatients:

    def test_patients_deduplicated_latest_first(self, patient, doctor, gym):
        zoe = _second_patient()
        book_appointment(patient["id"], doctor["id"], gym["id"], None, "2030-01-01", "09:00")
        book_appointment(zoe, doctor["id"], gym["id"], None, "2030-02-01", "09:00")
        book_appointment(patient["id"], doctor["id"], gym["id"], None, "2029-12-01", "09:00")

        rows = doctor_service.get_doctor_patients(doctor["id"])
        assert [p["name"] for p in rows] == ["Zoe Park", "Pat Lee"]

        history = doctor_service.get_patient_appointment_history(doctor["id"], patient["id"])
        assert [a["appointment_date"] for a in history] == ["2030-01-01", "2029-12-01"]

    def test_notes(self, patient, doctor):
        doctor_service.add_patient_note(doctor["id"], patient["id"], " First visit ")
        doctor_service.add_patient_note(doctor["id"], patient["id"], "Follow-up")
        notes = doctor_service.get_patient_notes(doctor["id"], patient["id"])
        assert [n["note"] for n in notes] == ["Follow-up", "First visit"]
        with pytest.raises(ValueError, match="empty"):
            doctor_service.add_patient_note(doctor["id"], patient["id"], "   ")

    def test_documents(self, patient, doctor):
        doc = doctor_service.upload_medical_document(
            doctor["id"], patient["id"], "scan.pdf", b"%PDF-1.4", "imaging", "application/pdf"
        )
        assert "/storage/medical-documents/doctors/" in doc["file_path"]
        assert doc["file_name"] == "scan.pdf"
        assert len(doctor_service.get_medical_documents(doctor["id"], patient["id"])) == 1
        on_disk = storage.local_path(storage.MEDICAL_DOCUMENTS, doc["file_path"].split("/medical-documents/", 1)[1])
        assert on_disk.exists()

        assert not doctor_service.delete_medical_document(doc["id"], doctor["id"] + 1)
        assert doctor_service.delete_medical_document(doc["id"], doctor["id"])
        assert doctor_service.get_medical_documents(doctor["id"], patient["id"]) == []
        assert not on_disk.exists()


class TestDashboard:

    def test_stats(self, patient, doctor, gym, service_type):
        today = date(2030, 4, 10)
        a1 = book_appointment(patient["id"], doctor["id"], gym["id"], service_type["id"], "2030-04-10", "09:00")
        a2 = book_appointment(patient["id"], doctor["id"], gym["id"], service_type["id"], "2030-04-01", "09:00")
        a3 = book_appointment(patient["id"], doctor["id"], gym["id"], None, "2030-03-01", "09:00")
        book_appointment(patient["id"], doctor["id"], gym["id"], None, "2030-05-01", "09:00")
        doctor_service.update_appointment_status(a2["id"], "completed")
        doctor_service.update_appointment_status(a3["id"], "cancelled")

        stats = doctor_service.get_dashboard_stats(doctor["id"], today=today)
        assert stats["total"] == 4
        assert stats["upcoming"] == 2
        assert stats["completed"] == 1
        assert stats["cancelled"] == 1
        assert stats["completion_rate"] == 25
        assert [a["id"] for a in stats["today"]] == [a1["id"]]
        assert stats["top_patients"] == [{"name": "Pat Lee", "visits": 4}]
        assert stats["top_services"] == [{"name": "Physiotherapy", "count": 2}]

    def test_empty(self, doctor):
        stats = doctor_service.get_dashboard_stats(doctor["id"])
        assert stats["total"] == 0 and stats["completion_rate"] == 0


class TestGymRequests:

    def test_request_once(self, doctor, gym):
        req = doctor_service.request_gym(doctor["id"], gym["id"], "Mondays please")
        assert req["status"] == "pending"
        with pytest.raises(ValueError, match="already pending"):
            doctor_service.request_gym(doctor["id"], gym["id"])
        [row] = doctor_service.get_gym_requests(doctor["id"])
        assert row["gym"]["name"] == "Riverside Fitness"
        assert any("asked to practice" in n["message"] for n in pending_notifications(user_id=gym["user_id"]))
