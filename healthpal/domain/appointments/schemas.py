"""Appointment domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator, model_validator

from ...models import AppointmentStatus, AppointmentType
from ...shared.validators import local_today, normalize_time
from ..scheduling.slots import duration_minutes

MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 240


class AppointmentCreate(BaseModel):
    """Schema for booking an appointment (patient comes from the token)"""

    doctorId: str
    clinicId: Optional[str] = None
    appointmentDate: date
    startTime: str
    endTime: str
    type: AppointmentType = AppointmentType.OFFLINE
    symptoms: Optional[str] = Field(None, max_length=1000)
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_time(cls, v):
        return normalize_time(v)

    @field_validator("appointmentDate")
    @classmethod
    def validate_not_past(cls, v):
        if v < local_today():
            raise ValueError("Appointment date must be in the future")
        return v

    @model_validator(mode="after")
    def validate_duration(self):
        duration = duration_minutes(self.startTime, self.endTime)
        if duration <= 0:
            raise ValueError("End time must be after start time")
        if duration < MIN_DURATION_MINUTES or duration > MAX_DURATION_MINUTES:
            raise ValueError(
                f"Appointment duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes"
            )
        return self


class AppointmentUpdate(BaseModel):
    """Schema for updating an appointment"""

    status: Optional[AppointmentStatus] = None
    symptoms: Optional[str] = Field(None, max_length=1000)
    notes: Optional[str] = Field(None, max_length=1000)
    meetingUrl: Optional[AnyHttpUrl] = None
    meetingId: Optional[str] = Field(None, max_length=100)


class CancelAppointmentRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class AppointmentFilters(BaseModel):
    """Filters accepted by appointment listings"""

    patientId: Optional[str] = None
    doctorId: Optional[str] = None
    clinicId: Optional[str] = None
    status: Optional[AppointmentStatus] = None
    type: Optional[AppointmentType] = None
    dateFrom: Optional[date] = None
    dateTo: Optional[date] = None


class PersonSummary(BaseModel):
    id: str
    firstName: str
    lastName: str


class DoctorSummary(PersonSummary):
    specialty: Optional[str] = None
    consultationFee: Optional[float] = None


class ClinicSummary(BaseModel):
    id: str
    name: str
    address: str


class AppointmentResponse(BaseModel):
    """Schema for appointment response"""

    id: str
    patientId: str
    doctorId: str
    clinicId: Optional[str] = None
    scheduleId: Optional[str] = None
    appointmentDate: date
    startTime: str
    endTime: str
    type: str
    status: str
    symptoms: Optional[str] = None
    notes: Optional[str] = None
    meetingUrl: Optional[str] = None
    meetingId: Optional[str] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
    patient: Optional[PersonSummary] = None
    doctor: Optional[DoctorSummary] = None
    clinic: Optional[ClinicSummary] = None

    @classmethod
    def from_model(cls, appointment) -> "AppointmentResponse":
        patient = doctor = clinic = None
        if appointment.patient and appointment.patient.user:
            user = appointment.patient.user
            patient = PersonSummary(id=appointment.patient.id, firstName=user.first_name, lastName=user.last_name)
        if appointment.doctor and appointment.doctor.user:
            user = appointment.doctor.user
            doctor = DoctorSummary(
                id=appointment.doctor.id,
                firstName=user.first_name,
                lastName=user.last_name,
                specialty=appointment.doctor.specialty.name if appointment.doctor.specialty else None,
                consultationFee=float(appointment.doctor.consultation_fee),
            )
        if appointment.clinic:
            clinic = ClinicSummary(
                id=appointment.clinic.id, name=appointment.clinic.name, address=appointment.clinic.address
            )
        return cls(
            id=appointment.id,
            patientId=appointment.patient_id,
            doctorId=appointment.doctor_id,
            clinicId=appointment.clinic_id,
            scheduleId=appointment.schedule_id,
            appointmentDate=appointment.appointment_date,
            startTime=appointment.start_time,
            endTime=appointment.end_time,
            type=appointment.type,
            status=appointment.status,
            symptoms=appointment.symptoms,
            notes=appointment.notes,
            meetingUrl=appointment.meeting_url,
            meetingId=appointment.meeting_id,
            createdAt=appointment.created_at,
            updatedAt=appointment.updated_at,
            patient=patient,
            doctor=doctor,
            clinic=clinic,
        )


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


class AppointmentListResponse(BaseModel):
    data: list[AppointmentResponse]
    pagination: Pagination


class AvailableSlot(BaseModel):
    startTime: str
    endTime: str
    clinicId: str
    clinicName: str


class AvailableSlotsResponse(BaseModel):
    doctorId: str
    date: date
    slots: list[AvailableSlot]
