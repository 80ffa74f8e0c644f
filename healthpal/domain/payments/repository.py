"""Payment repository - Database operations for payments"""

from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Appointment, Doctor, Patient, Payment


class PaymentRepository:
    @staticmethod
    def get_patient_by_user(db: Session, user_id: str) -> Optional[Patient]:
        return db.query(Patient).filter(Patient.user_id == user_id).first()

    @staticmethod
    def get_appointment(db: Session, appointment_id: str, patient_id: Optional[str] = None) -> Optional[Appointment]:
        """Appointment with doctor, specialty and payment; optionally scoped to a patient"""
        query = (
            db.query(Appointment)
            .options(
                joinedload(Appointment.doctor).joinedload(Doctor.user),
                joinedload(Appointment.doctor).joinedload(Doctor.specialty),
                joinedload(Appointment.patient).joinedload(Patient.user),
                joinedload(Appointment.payment),
            )
            .filter(Appointment.id == appointment_id)
        )
        if patient_id:
            query = query.filter(Appointment.patient_id == patient_id)
        return query.first()

    @staticmethod
    def get_payment_for_patient(db: Session, payment_id: str, patient_id: str) -> Optional[Payment]:
        return (
            db.query(Payment)
            .options(
                joinedload(Payment.appointment).joinedload(Appointment.doctor).joinedload(Doctor.user),
                joinedload(Payment.appointment).joinedload(Appointment.doctor).joinedload(Doctor.specialty),
            )
            .filter(Payment.id == payment_id, Payment.patient_id == patient_id)
            .first()
        )

    @staticmethod
    def upsert_for_appointment(db: Session, appointment: Appointment, **payment_data) -> Payment:
        """Update the appointment's payment row or create it; flushes, caller commits"""
        payment = appointment.payment
        if payment:
            for key, value in payment_data.items():
                setattr(payment, key, value)
        else:
            payment = Payment(appointment_id=appointment.id, patient_id=appointment.patient_id, **payment_data)
            db.add(payment)
        db.flush()
        return payment
