"""Appointment repository - Database operations for appointments and schedule slots"""

from datetime import date
from typing import Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session, joinedload

from ...models import (
    ACTIVE_APPOINTMENT_STATUSES,
    Appointment,
    Clinic,
    ClinicDoctor,
    Doctor,
    Patient,
    Schedule,
    ScheduleStatus,
)
from .schemas import AppointmentFilters


def _with_relations(query):
    return query.options(
        joinedload(Appointment.patient).joinedload(Patient.user),
        joinedload(Appointment.doctor).joinedload(Doctor.user),
        joinedload(Appointment.doctor).joinedload(Doctor.specialty),
        joinedload(Appointment.clinic),
    )


def overlap_clause(start_time: str, end_time: str):
    """
    Existing [start, end) overlaps the new range when the new start falls inside it,
    the new end falls inside it, or the new range contains it.
    """
    return or_(
        and_(Appointment.start_time <= start_time, Appointment.end_time > start_time),
        and_(Appointment.start_time < end_time, Appointment.end_time >= end_time),
        and_(Appointment.start_time >= start_time, Appointment.end_time <= end_time),
    )


class AppointmentRepository:
    """Repository for appointment database operations

    Writes only flush; the service owns the transaction and commits once.
    """

    @staticmethod
    def get_doctor(db: Session, doctor_id: str) -> Optional[Doctor]:
        return (
            db.query(Doctor)
            .options(joinedload(Doctor.user), joinedload(Doctor.specialty))
            .filter(Doctor.id == doctor_id)
            .first()
        )

    @staticmethod
    def get_doctor_by_user(db: Session, user_id: str) -> Optional[Doctor]:
        return db.query(Doctor).filter(Doctor.user_id == user_id).first()

    @staticmethod
    def get_patient(db: Session, patient_id: str) -> Optional[Patient]:
        return db.query(Patient).options(joinedload(Patient.user)).filter(Patient.id == patient_id).first()

    @staticmethod
    def get_patient_by_user(db: Session, user_id: str) -> Optional[Patient]:
        return db.query(Patient).filter(Patient.user_id == user_id).first()

    @staticmethod
    def get_clinic(db: Session, clinic_id: str) -> Optional[Clinic]:
        return db.query(Clinic).filter(Clinic.id == clinic_id).first()

    @staticmethod
    def get_clinic_doctor(db: Session, clinic_id: str, doctor_id: str) -> Optional[ClinicDoctor]:
        return (
            db.query(ClinicDoctor)
            .filter(ClinicDoctor.clinic_id == clinic_id, ClinicDoctor.doctor_id == doctor_id)
            .first()
        )

    @staticmethod
    def find_conflict(
        db: Session,
        appointment_date: date,
        start_time: str,
        end_time: str,
        doctor_id: Optional[str] = None,
        patient_id: Optional[str] = None,
    ) -> Optional[Appointment]:
        """First active appointment of the doctor (or patient) overlapping the range on that date"""
        query = db.query(Appointment).filter(
            Appointment.appointment_date == appointment_date,
            Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
            overlap_clause(start_time, end_time),
        )
        if doctor_id:
            query = query.filter(Appointment.doctor_id == doctor_id)
        if patient_id:
            query = query.filter(Appointment.patient_id == patient_id)
        return query.first()

    @staticmethod
    def find_available_schedule(
        db: Session, doctor_id: str, schedule_date: date, start_time: str, end_time: str
    ) -> Optional[Schedule]:
        return (
            db.query(Schedule)
            .filter(
                Schedule.doctor_id == doctor_id,
                Schedule.date == schedule_date,
                Schedule.start_time == start_time,
                Schedule.end_time == end_time,
                Schedule.status == ScheduleStatus.AVAILABLE.value,
            )
            .first()
        )

    @staticmethod
    def get_schedule_at(db: Session, doctor_id: str, schedule_date: date, start_time: str) -> Optional[Schedule]:
        return (
            db.query(Schedule)
            .filter(
                Schedule.doctor_id == doctor_id,
                Schedule.date == schedule_date,
                Schedule.start_time == start_time,
            )
            .first()
        )

    @staticmethod
    def add_schedule(db: Session, doctor_id: str, schedule_date: date, start_time: str, end_time: str) -> Schedule:
        schedule = Schedule(
            doctor_id=doctor_id,
            date=schedule_date,
            start_time=start_time,
            end_time=end_time,
            status=ScheduleStatus.AVAILABLE.value,
        )
        db.add(schedule)
        db.flush()
        return schedule

    @staticmethod
    def set_schedule_status(db: Session, schedule_id: str, status: ScheduleStatus) -> None:
        schedule = db.query(Schedule).filter(Schedule.id == schedule_id).first()
        if schedule:
            schedule.status = status.value
            db.flush()

    @staticmethod
    def add_appointment(db: Session, **appointment_data) -> Appointment:
        appointment = Appointment(**appointment_data)
        db.add(appointment)
        db.flush()
        return appointment

    @staticmethod
    def get_appointment(db: Session, appointment_id: str) -> Optional[Appointment]:
        return _with_relations(db.query(Appointment)).filter(Appointment.id == appointment_id).first()

    @staticmethod
    def list_appointments(
        db: Session, filters: AppointmentFilters, page: int, limit: int
    ) -> tuple[list[Appointment], int]:
        """Filtered page ordered newest first; returns (items, total)"""
        query = db.query(Appointment)
        if filters.patientId:
            query = query.filter(Appointment.patient_id == filters.patientId)
        if filters.doctorId:
            query = query.filter(Appointment.doctor_id == filters.doctorId)
        if filters.clinicId:
            query = query.filter(Appointment.clinic_id == filters.clinicId)
        if filters.status:
            query = query.filter(Appointment.status == filters.status.value)
        if filters.type:
            query = query.filter(Appointment.type == filters.type.value)
        if filters.dateFrom:
            query = query.filter(Appointment.appointment_date >= filters.dateFrom)
        if filters.dateTo:
            query = query.filter(Appointment.appointment_date <= filters.dateTo)

        total = query.count()
        items = (
            _with_relations(query)
            .order_by(Appointment.appointment_date.desc(), Appointment.start_time.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total
