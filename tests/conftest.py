"""Shared fixtures: a throwaway SQLite file and storage directory for the whole run."""
import os
import tempfile
from pathlib import Path

_TMP = Path(tempfile.mkdtemp(prefix="vastis-tests-"))
os.environ["VASTIS_DATABASE_URL"] = f"sqlite:///{_TMP / 'test.sqlite'}"
os.environ["VASTIS_STORAGE_DIR"] = str(_TMP / "storage")
os.environ["VASTIS_PUBLIC_BASE_URL"] = "http://testserver"
os.environ["JWT_SECRET"] = "test-secret"

import pytest  # noqa: E402

from vastis.auth_service import get_profile_id, register_user  # noqa: E402
from vastis.db import Base, engine  # noqa: E402
from vastis.models import Role, ServiceType  # noqa: E402
from vastis.services import create_row  # noqa: E402

PASSWORD = "s3cret-pass"

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


def _account(email, role, **extra):
    user_id = register_user(email=email, password=PASSWORD, role=role, **extra)
    return {"user_id": user_id, "id": get_profile_id(user_id, role), "email": email}


@pytest.fixture
def patient():
    return _account("pat@example.com", Role.PATIENT, first_name="Pat", last_name="Lee", phone="555-0100")


@pytest.fixture
def doctor():
    return _account("doc@example.com", Role.DOCTOR, first_name="Dana", last_name="Reed", specialization="Physiotherapy")


@pytest.fixture
def gym():
    return _account("gym@example.com", Role.GYM, gym_name="Riverside Fitness", gym_address="12 River St")


@pytest.fixture
def admin():
    return _account("admin@example.com", Role.ADMIN, first_name="Ada", allow_admin=True)


@pytest.fixture
def service_type():
    return create_row(ServiceType, {"name": "Physiotherapy", "description": "Rehab"})


@pytest.fixture
def png_bytes():
    return PNG
