"""Appointment router - FastAPI endpoints for booking and managing appointments"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import CurrentUser, get_current_user, require_role
from ...database import get_db
from ...exceptions import ValidationError
from ...models import AppointmentStatus, AppointmentType, UserRole
from ...shared.validators import local_today
from ..notifications.realtime import AppointmentNotifier
from ..scheduling.service import SlotService
from .schemas import (
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentUpdate,
    AvailableSlotsResponse,
    CancelAppointmentRequest,
)
from .service import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, AppointmentService, StatusChange

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])


def get_appointment_service(db: Session = Depends(get_db)) -> AppointmentService:
    """Dependency injection for AppointmentService"""
    return AppointmentService(db)


def get_notifier(db: Session = Depends(get_db)) -> AppointmentNotifier:
    return AppointmentNotifier(db)


def list_filters(
    status: Optional[AppointmentStatus] = Query(None),
    type: Optional[AppointmentType] = Query(None),
    clinicId: Optional[str] = Query(None),
    dateFrom: Optional[date] = Query(None),
    dateTo: Optional[date] = Query(None),
) -> AppointmentFilters:
    return AppointmentFilters(status=status, type=type, clinicId=clinicId, dateFrom=dateFrom, dateTo=dateTo)


def to_list_response(result: dict) -> AppointmentListResponse:
    return AppointmentListResponse(
        data=[AppointmentResponse.from_model(a) for a in result["data"]],
        pagination=result["pagination"],
    )


async def publish_status_change(notifier: AppointmentNotifier, change: StatusChange, user: CurrentUser):
    if change.changed:
        await notifier.handle_appointment_status_change(
            change.appointment, change.old_status, change.new_status, updated_by=user.sub
        )


# ============================================================================
# BOOKING
# ============================================================================


@router.post("", response_model=AppointmentResponse, status_code=201)
async def create_appointment(
    data: AppointmentCreate,
    current_user: CurrentUser = Depends(require_role(UserRole.PATIENT)),
    service: AppointmentService = Depends(get_appointment_service),
    notifier: AppointmentNotifier = Depends(get_notifier),
):
    """Book an appointment for the current patient"""
    patient_id = service.resolve_patient_id(current_user)
    appointment = service.create_appointment(patient_id, data)
    await notifier.notify_new_appointment(appointment)
    return AppointmentResponse.from_model(appointment)


@router.get("/available-slots", response_model=AvailableSlotsResponse)
async def get_available_slots(
    doctorId: str = Query(...),
    date_: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
):
    """Open 30-minute slots for a doctor on a date, across the doctor's clinics"""
    if date_ < local_today():
        raise ValidationError("Date must not be in the past", issues=[{"path": "date", "message": "past date"}])
    slots = SlotService(db).get_available_slots(doctorId, date_)
    return AvailableSlotsResponse(doctorId=doctorId, date=date_, slots=slots)


# ============================================================================
# LISTINGS
# ============================================================================


@router.get("/patient/my", response_model=AppointmentListResponse)
async def get_my_patient_appointments(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    filters: AppointmentFilters = Depends(list_filters),
    current_user: CurrentUser = Depends(require_role(UserRole.PATIENT)),
    service: AppointmentService = Depends(get_appointment_service),
):
    return to_list_response(service.list_patient_appointments(current_user, filters, page, limit))


@router.get("/doctor/my", response_model=AppointmentListResponse)
async def get_my_doctor_appointments(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    filters: AppointmentFilters = Depends(list_filters),
    current_user: CurrentUser = Depends(require_role(UserRole.DOCTOR)),
    service: AppointmentService = Depends(get_appointment_service),
):
    return to_list_response(service.list_doctor_appointments(current_user, filters, page, limit))


@router.get("", response_model=AppointmentListResponse)
async def list_appointments(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    patientId: Optional[str] = Query(None),
    doctorId: Optional[str] = Query(None),
    filters: AppointmentFilters = Depends(list_filters),
    current_user: CurrentUser = Depends(require_role(UserRole.ADMIN)),
    service: AppointmentService = Depends(get_appointment_service),
):
    """All appointments (admin)"""
    filters = filters.model_copy(update={"patientId": patientId, "doctorId": doctorId})
    return to_list_response(service.list_appointments(filters, page, limit))


# ============================================================================
# SINGLE APPOINTMENT
# ============================================================================


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return AppointmentResponse.from_model(service.get_appointment_for_user(appointment_id, current_user))


@router.put("/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: str,
    data: AppointmentUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
    notifier: AppointmentNotifier = Depends(get_notifier),
):
    """Update an appointment; status changes follow the transition table"""
    change = service.update_appointment(appointment_id, data, current_user)
    await publish_status_change(notifier, change, current_user)
    return AppointmentResponse.from_model(change.appointment)


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: str,
    data: Optional[CancelAppointmentRequest] = None,
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
    notifier: AppointmentNotifier = Depends(get_notifier),
):
    """Cancel an appointment and release its schedule slot"""
    change = service.cancel_appointment(appointment_id, data.reason if data else None, current_user)
    await publish_status_change(notifier, change, current_user)
    return AppointmentResponse.from_model(change.appointment)


@router.post("/{appointment_id}/confirm", response_model=AppointmentResponse)
async def confirm_appointment(
    appointment_id: str,
    current_user: CurrentUser = Depends(require_role(UserRole.DOCTOR, UserRole.ADMIN)),
    service: AppointmentService = Depends(get_appointment_service),
    notifier: AppointmentNotifier = Depends(get_notifier),
):
    """Confirm a pending appointment (doctor)"""
    change = service.confirm_appointment(appointment_id, current_user)
    await publish_status_change(notifier, change, current_user)
    return AppointmentResponse.from_model(change.appointment)
