"""
Seed demo specialties, clinics, doctors and a patient
Usage: python seed_demo_data.py [--tokens]
"""
import logging
import sys
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from healthpal.auth import create_access_token
from healthpal.database import Base, SessionLocal, engine
from healthpal.models import Clinic, ClinicDoctor, Doctor, Patient, Specialty, User, UserRole

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)

SPECIALTIES = [
    ("Cardiology", "Heart and blood vessels"),
    ("Neurology", "Nervous system"),
    ("Pediatrics", "Children's health"),
    ("Dermatology", "Skin conditions"),
]

CLINICS = [
    {
        "name": "Hanoi Heart Hospital",
        "address": "123 Nguyen Hue, District 1, HCMC",
        "phone": "+84281234567",
        "latitude": 10.762622,
        "longitude": 106.660172,
        "open_time": "08:00",
        "close_time": "17:00",
    },
    {
        "name": "Medlatec General Clinic",
        "address": "456 Le Loi, District 3, HCMC",
        "phone": "+84287654321",
        "latitude": 10.768431,
        "longitude": 106.681889,
        "open_time": "07:30",
        "close_time": "18:00",
    },
]

# (email, first, last, specialty, license, fee, clinic index, working days, start, end)
DOCTORS = [
    ("an.nguyen@healthpal.vn", "An", "Nguyen", "Cardiology", "VN-CARD-001", "350000", 0,
     ["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY"], "08:00", "16:00"),
    ("binh.tran@healthpal.vn", "Binh", "Tran", "Neurology", "VN-NEUR-002", "300000", 1,
     ["TUESDAY", "THURSDAY", "SATURDAY"], "08:00", "17:00"),
]


def seed():
    Base.metadata.create_all(bind=engine, checkfirst=True)
    db = SessionLocal()
    try:
        if db.query(Specialty).count():
            logger.info("Demo data already present, skipping")
            return

        specialties = {}
        for name, description in SPECIALTIES:
            specialties[name] = Specialty(name=name, description=description)
            db.add(specialties[name])

        clinics = [Clinic(**data) for data in CLINICS]
        db.add_all(clinics)
        db.flush()

        for email, first, last, specialty, license_number, fee, clinic_idx, days, start, end in DOCTORS:
            user = User(email=email, first_name=first, last_name=last, role=UserRole.DOCTOR.value)
            db.add(user)
            db.flush()
            doctor = Doctor(
                user_id=user.id,
                license_number=license_number,
                specialty_id=specialties[specialty].id,
                experience=10,
                consultation_fee=Decimal(fee),
            )
            db.add(doctor)
            db.flush()
            db.add(
                ClinicDoctor(
                    clinic_id=clinics[clinic_idx].id,
                    doctor_id=doctor.id,
                    working_days=days,
                    start_time=start,
                    end_time=end,
                )
            )

        patient_user = User(email="patient@healthpal.vn", first_name="Chi", last_name="Le", role=UserRole.PATIENT.value)
        db.add(patient_user)
        db.flush()
        db.add(Patient(user_id=patient_user.id))

        db.commit()
        logger.info(f"✅ Seeded {len(SPECIALTIES)} specialties, {len(CLINICS)} clinics, {len(DOCTORS)} doctors")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def print_tokens():
    db = SessionLocal()
    try:
        for user in db.query(User).all():
            token = create_access_token({"sub": user.id, "email": user.email, "role": user.role})
            logger.info(f"{user.role:8} {user.email}: {token}")
    finally:
        db.close()


if __name__ == "__main__":
    try:
        seed()
        if "--tokens" in sys.argv:
            print_tokens()
    except Exception as e:
        logger.error(f"❌ Seeding failed: {e}")
        sys.exit(1)
