"""Tests for the maintenance scripts under vastis.tools."""
import pytest
from sqlalchemy import select

from vastis import admin_service, patient_service
from vastis.auth_models import User
from vastis.db import db_session
from vastis.models import InsuranceClaim, InsuranceProvider
from vastis.services import create_row
from vastis.tools import reset_user


def _run(monkeypatch, *args):
    monkeypatch.setattr("sys.argv", ["reset_user", *args])
    reset_user.main()


class TestResetUser:

    def test_patient_with_history(self, monkeypatch, capsys, patient, doctor, gym):
        provider = create_row(InsuranceProvider, {"name": "Blue Cross"})
        app = patient_service.book_appointment(patient["id"], doctor["id"], gym["id"], None, "2030-09-09", "10:00")
        pi = patient_service.add_patient_insurance(patient["id"], provider["id"], "POL-9")
        claim = patient_service.submit_insurance_claim(app["id"], pi["id"], 45.0)
        patient_service.save_health_intake(patient["id"], {"injuries": "knee"})

        _run(monkeypatch, " PAT@example.com ")
        assert "OK: user 'pat@example.com' deleted" in capsys.readouterr().out

        with db_session() as s:
            assert s.execute(select(User.id).where(User.email == "pat@example.com")).first() is None
            kept = s.get(InsuranceClaim, claim["id"])
            assert (kept.appointment_id, kept.patient_insurance_id) == (None, None)
        assert [c["id"] for c in admin_service.get_all_insurance_claims()] == [claim["id"]]

    def test_practitioner_and_gym(self, monkeypatch, patient, doctor, gym):
        patient_service.book_appointment(patient["id"], doctor["id"], gym["id"], None, "2030-09-09", "10:00")
        _run(monkeypatch, "doc@example.com")
        _run(monkeypatch, "gym@example.com")
        assert patient_service.get_patient_appointments(patient["id"]) == []

    def test_unknown_email_and_usage(self, monkeypatch, capsys):
        _run(monkeypatch, "nobody@example.com")
        assert "No user 'nobody@example.com'" in capsys.readouterr().out
        with pytest.raises(SystemExit) as exc:
            _run(monkeypatch)
        assert exc.value.code == 2
