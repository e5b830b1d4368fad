import os
from types import SimpleNamespace

import pytest

# Must be set before the application modules are imported
os.environ["TESTING"] = "1"
os.environ["TEST_DATABASE_URL"] = "sqlite:///./test.db"

from fastapi.testclient import TestClient

from multiclinic.main import app
from multiclinic.core.database import Base, SessionLocal, engine, redis_client
from multiclinic.core.security import UserRole, create_user_token, get_password_hash
from multiclinic.models.clinic import Clinic, ClinicDoctor, ClinicReceptionist
from multiclinic.models.user import User
from multiclinic.services.email_service import get_email_service

DEFAULT_PASSWORD = "Password123"


class RecordingEmailService:
    """Stands in for SMTP and remembers what would have been sent."""

    def __init__(self):
        self.sent = []

    def send_verification_email(self, email, token, name):
        self.sent.append(("verification", email, token))
        return True

    def send_welcome_email(self, email, name):
        self.sent.append(("welcome", email))
        return True

    def send_clinic_admin_invitation(self, email, name, clinic_name, temporary_password):
        self.sent.append(("invitation", email, temporary_password))
        return True


@pytest.fixture(scope="function")
def test_db():
    Base.metadata.create_all(bind=engine)
    redis_client.flushall()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(test_db):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def outbox():
    service = RecordingEmailService()
    app.dependency_overrides[get_email_service] = lambda: service
    yield service
    app.dependency_overrides.pop(get_email_service, None)


@pytest.fixture
def client(test_db, outbox):
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client


def make_user(db, role, email, name=None, verified=True, password=DEFAULT_PASSWORD):
    user = User(
        name=name or email.split("@")[0].title(),
        email=email,
        password_hash=get_password_hash(password),
        role=role,
        is_active=True,
        email_verified=verified,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user_id, role):
    token = create_user_token(user_id, role).access_token
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def clinic_world(db):
    """
    Two clinics with an admin each, a doctor and receptionist at the first
    clinic, a receptionist at the second, a patient and a system admin.
    """
    system_admin = make_user(db, UserRole.SYSTEM_ADMIN, "root@example.com")
    admin = make_user(db, UserRole.CLINIC_ADMIN, "admin@example.com")
    other_admin = make_user(db, UserRole.CLINIC_ADMIN, "other-admin@example.com")
    doctor = make_user(db, UserRole.DOCTOR, "doctor@example.com", name="Dr. Ayesha")
    receptionist = make_user(db, UserRole.RECEPTIONIST, "front@example.com")
    other_receptionist = make_user(db, UserRole.RECEPTIONIST, "other-front@example.com")
    patient = make_user(db, UserRole.PATIENT, "patient@example.com", name="Bilal")
    other_patient = make_user(db, UserRole.PATIENT, "patient2@example.com")

    clinic = Clinic(name="City Clinic", code="CITY", email="city@example.com", admin_id=admin.id)
    other_clinic = Clinic(name="Hill Clinic", code="HILL", email="hill@example.com", admin_id=other_admin.id)
    db.add_all([clinic, other_clinic])
    db.flush()

    db.add(ClinicDoctor(clinic_id=clinic.id, doctor_id=doctor.id))
    db.add(ClinicReceptionist(clinic_id=clinic.id, receptionist_id=receptionist.id))
    db.add(ClinicReceptionist(clinic_id=other_clinic.id, receptionist_id=other_receptionist.id))
    db.commit()

    users = {
        "system_admin": system_admin,
        "admin": admin,
        "other_admin": other_admin,
        "doctor": doctor,
        "receptionist": receptionist,
        "other_receptionist": other_receptionist,
        "patient": patient,
        "other_patient": other_patient,
    }
    world = SimpleNamespace(clinic_id=clinic.id, other_clinic_id=other_clinic.id)
    for key, user in users.items():
        setattr(world, f"{key}_id", user.id)
        setattr(world, f"{key}_headers", auth_headers(user.id, user.role))
    return world


def book(client, world, start="2030-01-07T10:00:00", end="2030-01-07T10:30:00", **extra):
    """Patient books with the world's doctor at the world's clinic."""
    payload = {
        "clinic_id": world.clinic_id,
        "doctor_id": world.doctor_id,
        "start_time": start,
        "end_time": end,
    }
    payload.update(extra)
    return client.post("/api/v1/appointments", json=payload, headers=world.patient_headers)
