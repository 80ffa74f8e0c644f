"""
Shared fixtures: an in-memory SQLite database per test, a TestClient wired
to it, seeded doctor/patient/clinic rows and bearer tokens.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_ACCESS_SECRET"] = "test-access-secret"
os.environ["VNPAY_TMN_CODE"] = "TESTTMN1"
os.environ["VNPAY_HASH_SECRET"] = "TESTHASHSECRET"
os.environ["VNPAY_URL"] = "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"
os.environ["FRONTEND_URL"] = "http://frontend.test"
os.environ["REMINDERS_ENABLED"] = "false"
os.environ["REALTIME_RELAY_ENABLED"] = "false"
os.environ["RESEND_API_KEY"] = ""
os.environ["DB_LOG_SLOW_QUERIES"] = "false"

from datetime import date, timedelta  # noqa: E402
from decimal import Decimal  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from healthpal.auth import create_access_token  # noqa: E402
from healthpal.database import Base, enable_sqlite_savepoints, get_db  # noqa: E402
from healthpal.domain.payments.router import payment_rate_limit  # noqa: E402
from healthpal.main import app  # noqa: E402
from healthpal.models import (  # noqa: E402
    Clinic,
    ClinicDoctor,
    Doctor,
    Patient,
    Specialty,
    User,
    UserRole,
)


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    enable_sqlite_savepoints(test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    async def no_rate_limit():
        return None

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[payment_rate_limit] = no_rate_limit
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(db, email, first, last, role):
    user = User(email=email, first_name=first, last_name=last, role=role.value)
    db.add(user)
    db.flush()
    return user


@pytest.fixture
def seed(db_session):
    """One clinic open 08:00-12:00, one available doctor working there, two patients and an admin"""
    db = db_session
    specialty = Specialty(name="Cardiology")
    clinic = Clinic(
        name="Hanoi Heart Hospital",
        address="123 Nguyen Hue, District 1",
        phone="+84281234567",
        open_time="08:00",
        close_time="12:00",
    )
    db.add_all([specialty, clinic])
    db.flush()

    doctor_user = make_user(db, "doctor@test.vn", "An", "Nguyen", UserRole.DOCTOR)
    doctor = Doctor(
        user_id=doctor_user.id,
        license_number="LIC-001",
        specialty_id=specialty.id,
        consultation_fee=Decimal("350000.00"),
    )
    other_doctor_user = make_user(db, "doctor2@test.vn", "Binh", "Tran", UserRole.DOCTOR)
    other_doctor = Doctor(
        user_id=other_doctor_user.id,
        license_number="LIC-002",
        specialty_id=specialty.id,
        consultation_fee=Decimal("300000.00"),
    )
    db.add_all([doctor, other_doctor])
    db.flush()

    db.add_all(
        [
            ClinicDoctor(clinic_id=clinic.id, doctor_id=doctor.id, working_days=[], start_time="08:00", end_time="12:00"),
            ClinicDoctor(
                clinic_id=clinic.id, doctor_id=other_doctor.id, working_days=[], start_time="08:00", end_time="12:00"
            ),
        ]
    )

    patient_user = make_user(db, "patient@test.vn", "Chi", "Le", UserRole.PATIENT)
    patient = Patient(user_id=patient_user.id)
    other_patient_user = make_user(db, "patient2@test.vn", "Dung", "Pham", UserRole.PATIENT)
    other_patient = Patient(user_id=other_patient_user.id)
    admin_user = make_user(db, "admin@test.vn", "Admin", "User", UserRole.ADMIN)
    db.add_all([patient, other_patient])
    db.flush()

    ids = SimpleNamespace(
        clinic_id=clinic.id,
        doctor_id=doctor.id,
        doctor_user_id=doctor_user.id,
        other_doctor_id=other_doctor.id,
        other_doctor_user_id=other_doctor_user.id,
        patient_id=patient.id,
        patient_user_id=patient_user.id,
        other_patient_id=other_patient.id,
        other_patient_user_id=other_patient_user.id,
        admin_user_id=admin_user.id,
    )
    db.commit()
    return ids


def token_for(user_id: str, email: str, role: UserRole) -> str:
    return create_access_token({"sub": user_id, "email": email, "role": role.value})


@pytest.fixture
def auth(seed):
    """Authorization headers per seeded role"""

    def header(user_id, email, role):
        return {"Authorization": f"Bearer {token_for(user_id, email, role)}"}

    return SimpleNamespace(
        patient=header(seed.patient_user_id, "patient@test.vn", UserRole.PATIENT),
        other_patient=header(seed.other_patient_user_id, "patient2@test.vn", UserRole.PATIENT),
        doctor=header(seed.doctor_user_id, "doctor@test.vn", UserRole.DOCTOR),
        other_doctor=header(seed.other_doctor_user_id, "doctor2@test.vn", UserRole.DOCTOR),
        admin=header(seed.admin_user_id, "admin@test.vn", UserRole.ADMIN),
    )


@pytest.fixture
def future_date():
    return date.today() + timedelta(days=7)


@pytest.fixture
def book(client, seed, auth, future_date):
    """Book as the seeded patient; returns the response"""

    def _book(start="09:00", end="09:30", doctor_id=None, headers=None, clinic=True, on=None):
        payload = {
            "doctorId": doctor_id or seed.doctor_id,
            "appointmentDate": (on or future_date).isoformat(),
            "startTime": start,
            "endTime": end,
        }
        if clinic:
            payload["clinicId"] = seed.clinic_id
        return client.post("/appointments", json=payload, headers=headers or auth.patient)

    return _book


@pytest.fixture
def read_db(session_factory):
    """Run a query in a short-lived session so no transaction stays open between requests"""

    def _read(query):
        with session_factory() as session:
            return query(session)

    return _read
