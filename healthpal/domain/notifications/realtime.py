"""
Real-time appointment and payment notifications

Runs after the triggering transaction has committed. Every handler is
best-effort: failures are logged and never reach the HTTP response.
"""

import logging
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from ...email_service import format_vnd, send_appointment_confirmation_email, send_payment_receipt_email
from ...models import Appointment, AppointmentStatus, NotificationType
from ...reminders import enqueue_appointment_reminders
from ...websocket.manager import ConnectionManager, EventType, appointment_room, manager
from .service import Dispatch, NotificationService

logger = logging.getLogger(__name__)


class PaymentOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


# status -> (notification type, title, patient message); {doctor} is the doctor's name
PATIENT_STATUS_MESSAGES = {
    AppointmentStatus.CONFIRMED: (
        NotificationType.APPOINTMENT_CONFIRMED,
        "Appointment confirmed",
        "Your appointment with Dr. {doctor} on {date} at {time} has been confirmed.",
    ),
    AppointmentStatus.CANCELLED: (
        NotificationType.APPOINTMENT_CANCELLED,
        "Appointment cancelled",
        "Your appointment with Dr. {doctor} on {date} at {time} has been cancelled.",
    ),
    AppointmentStatus.IN_PROGRESS: (
        NotificationType.GENERAL,
        "Appointment started",
        "Your appointment with Dr. {doctor} has started.",
    ),
    AppointmentStatus.COMPLETED: (
        NotificationType.APPOINTMENT_COMPLETED,
        "Appointment completed",
        "Your appointment with Dr. {doctor} is complete. Would you like to rate the visit?",
    ),
    AppointmentStatus.NO_SHOW: (
        NotificationType.GENERAL,
        "Missed appointment",
        "You missed your appointment with Dr. {doctor}. Please contact us to book a new one.",
    ),
}

DOCTOR_STATUS_MESSAGES = {
    AppointmentStatus.CONFIRMED: "Appointment with {patient} on {date} at {time} is confirmed.",
    AppointmentStatus.CANCELLED: "Appointment with {patient} on {date} at {time} was cancelled.",
    AppointmentStatus.IN_PROGRESS: "Appointment with {patient} is in progress.",
    AppointmentStatus.COMPLETED: "Appointment with {patient} is complete.",
    AppointmentStatus.NO_SHOW: "{patient} did not show up for the appointment on {date} at {time}.",
}

PAYMENT_NOTIFICATIONS = {
    PaymentOutcome.SUCCESS: (
        NotificationType.PAYMENT_SUCCESS,
        "Payment successful",
        "Payment of {amount} VND for your appointment with Dr. {doctor} was successful.",
    ),
    PaymentOutcome.FAILED: (
        NotificationType.PAYMENT_FAILED,
        "Payment failed",
        "Payment for your appointment with Dr. {doctor} failed. Please try again.",
    ),
}


def _context(appointment: Appointment) -> dict:
    return {
        "doctor": appointment.doctor.user.full_name,
        "patient": appointment.patient.user.full_name,
        "date": appointment.appointment_date.strftime("%d/%m/%Y"),
        "time": appointment.start_time,
    }


class AppointmentNotifier:
    """Turns appointment and payment events into notifications, socket events, e-mail and reminders"""

    def __init__(self, db: Session, connections: Optional[ConnectionManager] = None):
        self.db = db
        self.connections = connections or manager
        self.notifications = NotificationService(db, self.connections)

    async def notify_new_appointment(self, appointment: Appointment) -> Optional[Dispatch]:
        """Tell the doctor a patient requested an appointment"""
        try:
            ctx = _context(appointment)
            return await self.notifications.create_notification(
                appointment.doctor.user_id,
                NotificationType.NEW_APPOINTMENT_REQUEST,
                "New appointment request",
                "{patient} requested an appointment on {date} at {time}.".format(**ctx),
                {"appointmentId": appointment.id, "status": appointment.status},
            )
        except Exception as e:
            logger.error(f"❌ Failed to notify doctor of appointment {appointment.id}: {e}")
            return None

    async def handle_appointment_status_change(
        self,
        appointment: Appointment,
        old_status: AppointmentStatus,
        new_status: AppointmentStatus,
        updated_by: Optional[str] = None,
    ) -> list[Dispatch]:
        """
        Fan out a status change.

        The patient always hears about it; the doctor only when someone else made
        the change. Confirmation also sends the e-mail and queues reminders.
        """
        dispatches = []
        try:
            ctx = _context(appointment)
            data = {"appointmentId": appointment.id, "oldStatus": old_status.value, "newStatus": new_status.value}

            patient_message = PATIENT_STATUS_MESSAGES.get(new_status)
            if patient_message:
                notification_type, title, template = patient_message
                dispatches.append(
                    await self.notifications.create_notification(
                        appointment.patient.user_id, notification_type, title, template.format(**ctx), data
                    )
                )

            doctor_template = DOCTOR_STATUS_MESSAGES.get(new_status)
            if doctor_template and updated_by != appointment.doctor.user_id:
                dispatches.append(
                    await self.notifications.create_notification(
                        appointment.doctor.user_id,
                        NotificationType.GENERAL,
                        f"Appointment update - {ctx['patient']}",
                        doctor_template.format(**ctx),
                        data,
                    )
                )

            await self.connections.send_to_room(
                appointment_room(appointment.id),
                EventType.APPOINTMENT_UPDATED,
                {**data, "updatedBy": updated_by},
            )
        except Exception as e:
            logger.error(f"❌ Failed to send status notifications for appointment {appointment.id}: {e}")

        if new_status == AppointmentStatus.CONFIRMED:
            await self._on_confirmed(appointment)
        return dispatches

    async def _on_confirmed(self, appointment: Appointment):
        try:
            await send_appointment_confirmation_email(appointment)
        except Exception as e:
            logger.error(f"❌ Confirmation email for appointment {appointment.id} not sent: {e}")
        try:
            await enqueue_appointment_reminders(appointment)
        except Exception as e:
            logger.error(f"❌ Reminders for appointment {appointment.id} not queued: {e}")

    async def handle_payment_status_change(
        self, appointment: Appointment, outcome: PaymentOutcome, amount=None, payment=None
    ) -> Optional[Dispatch]:
        """Tell the patient how their payment went"""
        dispatch = None
        try:
            notification_type, title, template = PAYMENT_NOTIFICATIONS[PaymentOutcome(outcome)]
            ctx = _context(appointment)
            ctx["amount"] = format_vnd(amount) if amount is not None else ""
            dispatch = await self.notifications.create_notification(
                appointment.patient.user_id,
                notification_type,
                title,
                template.format(**ctx),
                {"appointmentId": appointment.id, "paymentStatus": PaymentOutcome(outcome).value},
            )
        except Exception as e:
            logger.error(f"❌ Failed to send payment notification for appointment {appointment.id}: {e}")

        if outcome == PaymentOutcome.SUCCESS and payment is not None:
            try:
                await send_payment_receipt_email(appointment, payment)
            except Exception as e:
                logger.error(f"❌ Payment receipt for appointment {appointment.id} not sent: {e}")
        return dispatch
