"""Scheduling repository - Read queries used to compute open slots"""

from datetime import date

from sqlalchemy.orm import Session, joinedload

from ...models import ACTIVE_APPOINTMENT_STATUSES, Appointment, ClinicDoctor, Doctor


class SchedulingRepository:
    @staticmethod
    def doctor_exists(db: Session, doctor_id: str) -> bool:
        return db.query(Doctor.id).filter(Doctor.id == doctor_id).first() is not None

    @staticmethod
    def get_working_windows(db: Session, doctor_id: str) -> list[ClinicDoctor]:
        return (
            db.query(ClinicDoctor)
            .options(joinedload(ClinicDoctor.clinic))
            .filter(ClinicDoctor.doctor_id == doctor_id)
            .order_by(ClinicDoctor.start_time)
            .all()
        )

    @staticmethod
    def get_booked_ranges(db: Session, doctor_id: str, on_date: date) -> list[tuple[str, str]]:
        rows = (
            db.query(Appointment.start_time, Appointment.end_time)
            .filter(
                Appointment.doctor_id == doctor_id,
                Appointment.appointment_date == on_date,
                Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
            )
            .all()
        )
        return [(row.start_time, row.end_time) for row in rows]
