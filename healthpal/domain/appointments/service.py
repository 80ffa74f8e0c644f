"""Appointment service - Booking, conflict detection and status transitions"""

import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...auth import CurrentUser
from ...exceptions import BusinessRuleError, ConflictError, ForbiddenError, NotFoundError
from ...models import Appointment, AppointmentStatus, ScheduleStatus, UserRole
from .repository import AppointmentRepository
from .schemas import AppointmentCreate, AppointmentFilters, AppointmentUpdate
from .state_machine import validate_status_transition

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 50

DOCTOR_UPDATABLE_FIELDS = {"status", "notes", "meetingUrl", "meetingId"}
PATIENT_UPDATABLE_FIELDS = {"symptoms", "notes"}


@dataclass
class StatusChange:
    """Result of an operation that may have moved an appointment to a new status"""

    appointment: Appointment
    old_status: AppointmentStatus
    new_status: AppointmentStatus

    @property
    def changed(self) -> bool:
        return self.old_status != self.new_status


class AppointmentService:
    """Service layer for appointment business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AppointmentRepository()

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    def create_appointment(self, patient_id: str, data: AppointmentCreate) -> Appointment:
        """
        Book an appointment for a patient.

        Validates doctor, patient and clinic, rejects overlaps on either calendar,
        reserves a schedule slot and inserts the PENDING appointment in one commit.
        """
        doctor = self.repo.get_doctor(self.db, data.doctorId)
        if not doctor:
            raise NotFoundError("Doctor not found")
        if not doctor.is_available:
            raise BusinessRuleError("Doctor is not available for appointments")

        patient = self.repo.get_patient(self.db, patient_id)
        if not patient:
            raise NotFoundError("Patient not found")

        if data.clinicId:
            if not self.repo.get_clinic(self.db, data.clinicId):
                raise NotFoundError("Clinic not found")
            if not self.repo.get_clinic_doctor(self.db, data.clinicId, data.doctorId):
                raise BusinessRuleError("Doctor does not work at this clinic")

        self.check_conflicts(data.doctorId, patient_id, data.appointmentDate, data.startTime, data.endTime)

        try:
            schedule_id = self._reserve_schedule(data.doctorId, data.appointmentDate, data.startTime, data.endTime)
            appointment = self.repo.add_appointment(
                self.db,
                patient_id=patient_id,
                doctor_id=data.doctorId,
                clinic_id=data.clinicId,
                schedule_id=schedule_id,
                appointment_date=data.appointmentDate,
                start_time=data.startTime,
                end_time=data.endTime,
                type=data.type.value,
                status=AppointmentStatus.PENDING.value,
                symptoms=data.symptoms,
                notes=data.notes,
            )
            if schedule_id:
                self.repo.set_schedule_status(self.db, schedule_id, ScheduleStatus.BUSY)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"📅 Appointment {appointment.id} booked: doctor={data.doctorId} patient={patient_id} "
            f"{data.appointmentDate} {data.startTime}-{data.endTime}"
        )
        return self.get_appointment(appointment.id)

    def check_conflicts(
        self, doctor_id: str, patient_id: str, appointment_date: date, start_time: str, end_time: str
    ) -> None:
        """Raise ConflictError if the doctor or the patient already has an overlapping active appointment"""
        if self.repo.find_conflict(self.db, appointment_date, start_time, end_time, doctor_id=doctor_id):
            raise ConflictError("Doctor already has an appointment at this time")
        if self.repo.find_conflict(self.db, appointment_date, start_time, end_time, patient_id=patient_id):
            raise ConflictError("Patient already has an appointment at this time")

    def _reserve_schedule(
        self, doctor_id: str, schedule_date: date, start_time: str, end_time: str
    ) -> Optional[str]:
        """
        Find or lazily create the schedule row backing this booking.

        Returns None when a row already occupies (doctor, date, start), in which
        case the appointment is booked without a schedule link.
        """
        schedule = self.repo.find_available_schedule(self.db, doctor_id, schedule_date, start_time, end_time)
        if schedule:
            return schedule.id

        if self.repo.get_schedule_at(self.db, doctor_id, schedule_date, start_time):
            logger.warning(
                f"⚠️ Schedule slot {doctor_id} {schedule_date} {start_time} already taken, booking without link"
            )
            return None

        try:
            with self.db.begin_nested():
                schedule = self.repo.add_schedule(self.db, doctor_id, schedule_date, start_time, end_time)
        except IntegrityError:
            logger.warning(
                f"⚠️ Schedule slot {doctor_id} {schedule_date} {start_time} created concurrently, booking without link"
            )
            return None
        return schedule.id

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_appointment(self, appointment_id: str) -> Appointment:
        appointment = self.repo.get_appointment(self.db, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found")
        return appointment

    def get_appointment_for_user(self, appointment_id: str, user: CurrentUser) -> Appointment:
        appointment = self.get_appointment(appointment_id)
        if not self.check_user_access(appointment, user):
            raise ForbiddenError("Access denied")
        return appointment

    def list_appointments(
        self, filters: AppointmentFilters, page: int = 1, limit: int = DEFAULT_PAGE_SIZE
    ) -> dict:
        """Paginated listing: {data, pagination: {page, limit, total, totalPages}}"""
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        items, total = self.repo.list_appointments(self.db, filters, page, limit)
        return {
            "data": items,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": math.ceil(total / limit) if total else 0,
            },
        }

    def list_patient_appointments(
        self, user: CurrentUser, filters: AppointmentFilters, page: int, limit: int
    ) -> dict:
        patient = self.repo.get_patient_by_user(self.db, user.sub)
        if not patient:
            raise NotFoundError("Patient profile not found")
        filters = filters.model_copy(update={"patientId": patient.id})
        return self.list_appointments(filters, page, limit)

    def list_doctor_appointments(
        self, user: CurrentUser, filters: AppointmentFilters, page: int, limit: int
    ) -> dict:
        doctor = self.repo.get_doctor_by_user(self.db, user.sub)
        if not doctor:
            raise NotFoundError("Doctor profile not found")
        filters = filters.model_copy(update={"doctorId": doctor.id})
        return self.list_appointments(filters, page, limit)

    def resolve_patient_id(self, user: CurrentUser) -> str:
        patient = self.repo.get_patient_by_user(self.db, user.sub)
        if not patient:
            raise NotFoundError("Patient profile not found")
        return patient.id

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    def _apply_status(self, appointment: Appointment, new_status: AppointmentStatus) -> None:
        validate_status_transition(appointment.status, new_status)
        appointment.status = new_status.value
        if new_status == AppointmentStatus.CANCELLED and appointment.schedule_id:
            self.repo.set_schedule_status(self.db, appointment.schedule_id, ScheduleStatus.AVAILABLE)

    def update_appointment(
        self, appointment_id: str, data: AppointmentUpdate, user: Optional[CurrentUser] = None
    ) -> StatusChange:
        """Update fields and (optionally) status; status moves go through the transition table"""
        appointment = self.get_appointment(appointment_id)
        if user:
            if not self.check_user_access(appointment, user):
                raise ForbiddenError("Access denied")
            self.check_update_permission(appointment, data, user)

        old_status = AppointmentStatus(appointment.status)
        if data.status is not None:
            self._apply_status(appointment, data.status)

        fields = data.model_dump(exclude_unset=True)
        if "symptoms" in fields:
            appointment.symptoms = data.symptoms
        if "notes" in fields:
            appointment.notes = data.notes
        if "meetingUrl" in fields:
            appointment.meeting_url = str(data.meetingUrl) if data.meetingUrl else None
        if "meetingId" in fields:
            appointment.meeting_id = data.meetingId

        self.db.commit()
        new_status = AppointmentStatus(appointment.status)
        if new_status != old_status:
            logger.info(f"🔄 Appointment {appointment_id}: {old_status.value} -> {new_status.value}")
        return StatusChange(self.get_appointment(appointment_id), old_status, new_status)

    def cancel_appointment(
        self, appointment_id: str, reason: Optional[str] = None, user: Optional[CurrentUser] = None
    ) -> StatusChange:
        appointment = self.get_appointment(appointment_id)
        if user and not self.check_user_access(appointment, user):
            raise ForbiddenError("Access denied")
        if appointment.status == AppointmentStatus.CANCELLED.value:
            raise BusinessRuleError("Appointment is already cancelled")
        if appointment.status == AppointmentStatus.COMPLETED.value:
            raise BusinessRuleError("Cannot cancel completed appointment")

        old_status = AppointmentStatus(appointment.status)
        self._apply_status(appointment, AppointmentStatus.CANCELLED)
        appointment.notes = f"Cancelled: {reason}" if reason else "Cancelled"
        self.db.commit()

        logger.info(f"❌ Appointment {appointment_id} cancelled (was {old_status.value})")
        return StatusChange(self.get_appointment(appointment_id), old_status, AppointmentStatus.CANCELLED)

    def confirm_appointment(self, appointment_id: str, user: Optional[CurrentUser] = None) -> StatusChange:
        appointment = self.get_appointment(appointment_id)
        if user and not self.check_user_access(appointment, user):
            raise ForbiddenError("Access denied")
        if appointment.status != AppointmentStatus.PENDING.value:
            raise BusinessRuleError("Only pending appointments can be confirmed")

        self._apply_status(appointment, AppointmentStatus.CONFIRMED)
        self.db.commit()

        logger.info(f"✅ Appointment {appointment_id} confirmed")
        return StatusChange(self.get_appointment(appointment_id), AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)

    def mark_paid_confirmed(self, appointment: Appointment) -> Optional[StatusChange]:
        """Confirm a PENDING appointment after a successful payment; other statuses are left alone"""
        if appointment.status != AppointmentStatus.PENDING.value:
            logger.info(f"ℹ️ Paid appointment {appointment.id} left in status {appointment.status}")
            return None
        self._apply_status(appointment, AppointmentStatus.CONFIRMED)
        return StatusChange(appointment, AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)

    # ------------------------------------------------------------------
    # Access rules
    # ------------------------------------------------------------------

    @staticmethod
    def check_user_access(appointment: Appointment, user: CurrentUser) -> bool:
        if user.role == UserRole.ADMIN:
            return True
        if user.role == UserRole.PATIENT:
            return appointment.patient is not None and appointment.patient.user_id == user.sub
        if user.role == UserRole.DOCTOR:
            return appointment.doctor is not None and appointment.doctor.user_id == user.sub
        return False

    @staticmethod
    def check_update_permission(appointment: Appointment, data: AppointmentUpdate, user: CurrentUser) -> None:
        fields = set(data.model_dump(exclude_unset=True))
        if user.role == UserRole.DOCTOR:
            disallowed = fields - DOCTOR_UPDATABLE_FIELDS
            if disallowed:
                raise ForbiddenError(f"Doctors cannot update: {', '.join(sorted(disallowed))}")
        elif user.role == UserRole.PATIENT:
            disallowed = fields - PATIENT_UPDATABLE_FIELDS
            if disallowed:
                raise ForbiddenError(f"Patients cannot update: {', '.join(sorted(disallowed))}")
            if appointment.status != AppointmentStatus.PENDING.value:
                raise ForbiddenError("Patients can only update pending appointments")
