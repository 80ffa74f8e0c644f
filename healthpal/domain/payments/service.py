"""Payment service - VNPay payment initiation and callback processing"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from ...auth import CurrentUser
from ...exceptions import (
    AlreadyPaidError,
    GatewaySignatureError,
    InvalidAppointmentStatusError,
    NotFoundError,
)
from ...models import Appointment, AppointmentStatus, Payment, PaymentMethod, PaymentStatus
from ..appointments.service import AppointmentService, StatusChange
from .repository import PaymentRepository
from .vnpay_service import SUCCESS_RESPONSE_CODE, VNPayService, from_gateway_amount, vnpay_service

logger = logging.getLogger(__name__)

PAYABLE_STATUSES = {AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value}


@dataclass
class CallbackResult:
    success: bool
    payment: Payment
    appointment: Appointment
    message: str
    status_change: Optional[StatusChange] = None
    # True when this callback repeats one already applied (return URL + IPN both arrive)
    duplicate: bool = False


def order_info_for(appointment: Appointment) -> str:
    doctor = appointment.doctor
    specialty = doctor.specialty.name if doctor.specialty else ""
    return f"Thanh toan kham benh - BS {doctor.user.first_name} {doctor.user.last_name} - {specialty}"


def appointment_summary(appointment: Appointment, include_status: bool = False) -> dict:
    doctor = appointment.doctor
    summary = {
        "id": appointment.id,
        "appointmentDate": appointment.appointment_date,
        "startTime": appointment.start_time,
        "doctor": {
            "name": doctor.user.full_name,
            "specialty": doctor.specialty.name if doctor.specialty else None,
        },
    }
    if include_status:
        summary["status"] = appointment.status
    return summary


def payment_summary(payment: Payment) -> dict:
    return {
        "id": payment.id,
        "amount": float(payment.amount),
        "status": payment.status,
        "method": payment.method,
    }


class PaymentService:
    """Service layer for payments"""

    def __init__(self, db: Session, gateway: Optional[VNPayService] = None):
        self.db = db
        self.repo = PaymentRepository()
        self.gateway = gateway or vnpay_service

    def _patient_id(self, user: CurrentUser) -> str:
        patient = self.repo.get_patient_by_user(self.db, user.sub)
        if not patient:
            raise NotFoundError("Patient profile not found")
        return patient.id

    def create_vnpay_payment(
        self,
        user: CurrentUser,
        appointment_id: str,
        return_url: Optional[str] = None,
        client_ip: Optional[str] = None,
    ) -> dict:
        """Open a PENDING VNPay payment for the caller's appointment and return the redirect URL"""
        patient_id = self._patient_id(user)
        appointment = self.repo.get_appointment(self.db, appointment_id, patient_id=patient_id)
        if not appointment:
            raise NotFoundError("Appointment not found or access denied", code="APPOINTMENT_NOT_FOUND")
        if appointment.payment and appointment.payment.status == PaymentStatus.PAID.value:
            raise AlreadyPaidError("Appointment is already paid")
        if appointment.status not in PAYABLE_STATUSES:
            raise InvalidAppointmentStatusError("Appointment is not in valid status for payment")

        amount = appointment.doctor.consultation_fee
        payment_url = self.gateway.create_payment_url(
            appointment_id=appointment.id,
            amount=amount,
            order_info=order_info_for(appointment),
            return_url=return_url,
            client_ip=client_ip,
        )

        try:
            payment = self.repo.upsert_for_appointment(
                self.db,
                appointment,
                amount=amount,
                method=PaymentMethod.VNPAY.value,
                status=PaymentStatus.PENDING.value,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"💳 VNPay payment {payment.id} opened for appointment {appointment.id}: {amount} VND")
        return {
            "paymentUrl": payment_url,
            "payment": payment_summary(payment),
            "appointment": appointment_summary(appointment),
        }

    def process_callback(self, params: dict) -> CallbackResult:
        """
        Apply a VNPay return / IPN callback.

        Response code "00" marks the payment PAID and confirms a PENDING
        appointment; anything else marks it FAILED. A PAID payment is never
        downgraded by a later callback.
        """
        if not self.gateway.verify_callback(params):
            logger.warning(f"🚫 Invalid VNPay signature for TxnRef={params.get('vnp_TxnRef')}")
            raise GatewaySignatureError("Invalid VNPay signature")

        appointment_id = params.get("vnp_TxnRef", "")
        appointment = self.repo.get_appointment(self.db, appointment_id)
        if not appointment:
            raise NotFoundError(f"Appointment {appointment_id} not found")

        paid = params.get("vnp_ResponseCode") == SUCCESS_RESPONSE_CODE
        existing = appointment.payment
        if existing and existing.status == PaymentStatus.PAID.value:
            logger.info(f"ℹ️ Payment for appointment {appointment_id} already PAID, callback ignored")
            return CallbackResult(
                success=True,
                payment=existing,
                appointment=appointment,
                message="Payment successful",
                duplicate=True,
            )

        transaction_no = params.get("vnp_TransactionNo")
        status = PaymentStatus.PAID if paid else PaymentStatus.FAILED
        try:
            payment = self.repo.upsert_for_appointment(
                self.db,
                appointment,
                amount=from_gateway_amount(params.get("vnp_Amount", "0")),
                method=PaymentMethod.VNPAY.value,
                status=status.value,
                # failed transactions come back with TransactionNo "0"
                transaction_id=transaction_no if transaction_no and transaction_no != "0" else None,
                gateway_transaction_id=params.get("vnp_BankTranNo"),
                gateway_response=dict(params),
                paid_at=self.gateway.parse_date(params.get("vnp_PayDate")) if paid else None,
            )
            status_change = AppointmentService(self.db).mark_paid_confirmed(appointment) if paid else None
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"💳 VNPay callback for appointment {appointment_id}: {status.value} "
            f"(code={params.get('vnp_ResponseCode')})"
        )
        return CallbackResult(
            success=paid,
            payment=payment,
            appointment=appointment,
            message="Payment successful" if paid else "Payment failed",
            status_change=status_change,
        )

    def get_payment_status(self, user: CurrentUser, payment_id: str) -> dict:
        patient_id = self._patient_id(user)
        payment = self.repo.get_payment_for_patient(self.db, payment_id, patient_id)
        if not payment:
            raise NotFoundError("Payment not found", code="PAYMENT_NOT_FOUND")
        return {
            **payment_summary(payment),
            "transactionId": payment.transaction_id,
            "paidAt": payment.paid_at,
            "createdAt": payment.created_at,
            "appointment": appointment_summary(payment.appointment, include_status=True),
        }
