"""Notification service - Persist notifications and push them to connected users"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from sqlalchemy.orm import Session, joinedload

from ...exceptions import NotFoundError
from ...models import Appointment, Doctor, Notification, NotificationType, Patient
from ...websocket.manager import ConnectionManager, EventType, manager
from ..appointments.state_machine import TERMINAL_STATUSES
from .repository import NotificationRepository
from .schemas import NotificationResponse

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class DeliveryResult(str, Enum):
    """Outcome of the real-time push for a persisted notification"""

    DELIVERED = "DELIVERED"
    QUEUED_ONLY = "QUEUED_ONLY"


class ReminderType(str, Enum):
    APPOINTMENT_24H = "APPOINTMENT_24H"
    APPOINTMENT_1H = "APPOINTMENT_1H"
    APPOINTMENT_15M = "APPOINTMENT_15M"


REMINDER_LEAD_MINUTES = {
    ReminderType.APPOINTMENT_24H: 24 * 60,
    ReminderType.APPOINTMENT_1H: 60,
    ReminderType.APPOINTMENT_15M: 15,
}

REMINDER_TEXT = {
    ReminderType.APPOINTMENT_24H: ("Appointment tomorrow", "in 24 hours"),
    ReminderType.APPOINTMENT_1H: ("Appointment in 1 hour", "in 1 hour"),
    ReminderType.APPOINTMENT_15M: ("Appointment in 15 minutes", "in 15 minutes"),
}

SKIP_REMINDER_STATUSES = {status.value for status in TERMINAL_STATUSES}


@dataclass
class Dispatch:
    notification: Notification
    result: DeliveryResult


class NotificationService:
    """Service layer for notifications"""

    def __init__(self, db: Session, connections: Optional[ConnectionManager] = None):
        self.db = db
        self.repo = NotificationRepository()
        self.connections = connections or manager

    async def create_notification(
        self,
        user_id: str,
        type: NotificationType,
        title: str,
        message: str,
        data: Optional[dict[str, Any]] = None,
    ) -> Dispatch:
        """
        Persist a notification, then push it to the user's live sockets.

        The row is kept either way; an offline user reads it from the inbox later.
        """
        notification = self.repo.create(
            self.db,
            user_id=user_id,
            type=NotificationType(type).value,
            title=title,
            message=message,
            data=data or {},
        )

        payload = NotificationResponse.from_model(notification).model_dump(mode="json")
        pushed = await self.connections.send_to_user(user_id, EventType.NOTIFICATION_NEW, payload)
        if pushed:
            self.repo.mark_delivered(self.db, notification)
            result = DeliveryResult.DELIVERED
        else:
            result = DeliveryResult.QUEUED_ONLY

        logger.info(f"🔔 Notification {notification.type} for user {user_id}: {result.value}")
        return Dispatch(notification, result)

    def get_user_notifications(
        self, user_id: str, page: int = 1, limit: int = DEFAULT_PAGE_SIZE, is_read: Optional[bool] = None
    ) -> dict:
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        items, total = self.repo.list_for_user(self.db, user_id, page, limit, is_read)
        return {
            "data": items,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": math.ceil(total / limit) if total else 0,
            },
            "unreadCount": self.repo.count_unread(self.db, user_id),
        }

    def get_unread_count(self, user_id: str) -> int:
        return self.repo.count_unread(self.db, user_id)

    def mark_as_read(self, notification_id: str, user_id: str) -> Notification:
        notification = self.repo.get_for_user(self.db, notification_id, user_id)
        if not notification:
            raise NotFoundError("Notification not found")
        return self.repo.mark_read(self.db, notification)

    def mark_all_as_read(self, user_id: str) -> int:
        return self.repo.mark_all_read(self.db, user_id)

    def delete_notification(self, notification_id: str, user_id: str) -> None:
        notification = self.repo.get_for_user(self.db, notification_id, user_id)
        if not notification:
            raise NotFoundError("Notification not found")
        self.repo.delete(self.db, notification)

    async def send_appointment_reminder(self, appointment_id: str, reminder_type: ReminderType) -> Optional[Dispatch]:
        """Remind the patient of an upcoming appointment; skipped for finished or cancelled ones"""
        appointment = (
            self.db.query(Appointment)
            .options(
                joinedload(Appointment.patient).joinedload(Patient.user),
                joinedload(Appointment.doctor).joinedload(Doctor.user),
                joinedload(Appointment.clinic),
            )
            .filter(Appointment.id == appointment_id)
            .first()
        )
        if not appointment:
            logger.warning(f"⚠️ Reminder for missing appointment {appointment_id}")
            return None
        if appointment.status in SKIP_REMINDER_STATUSES:
            logger.info(f"⏭️ Reminder skipped, appointment {appointment_id} is {appointment.status}")
            return None

        reminder_type = ReminderType(reminder_type)
        title, lead = REMINDER_TEXT[reminder_type]
        doctor_name = appointment.doctor.user.full_name
        where = f" at {appointment.clinic.name}" if appointment.clinic else ""
        return await self.create_notification(
            appointment.patient.user_id,
            NotificationType.APPOINTMENT_REMINDER,
            title,
            f"Your appointment with Dr. {doctor_name}{where} starts {lead} "
            f"({appointment.appointment_date.isoformat()} {appointment.start_time}).",
            {"appointmentId": appointment.id, "reminderType": reminder_type.value},
        )
