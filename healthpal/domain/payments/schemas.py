"""Payment schemas"""

from datetime import date, datetime
from typing import Optional

from pydantic import AnyHttpUrl, BaseModel


class CreateVNPayPaymentRequest(BaseModel):
    appointmentId: str
    returnUrl: Optional[AnyHttpUrl] = None


class PaymentSummary(BaseModel):
    id: str
    amount: float
    status: str
    method: str


class PaymentDoctor(BaseModel):
    name: str
    specialty: Optional[str] = None


class PaymentAppointment(BaseModel):
    id: str
    appointmentDate: date
    startTime: str
    status: Optional[str] = None
    doctor: PaymentDoctor


class CreateVNPayPaymentData(BaseModel):
    paymentUrl: str
    payment: PaymentSummary
    appointment: PaymentAppointment


class CreateVNPayPaymentResponse(BaseModel):
    success: bool = True
    data: CreateVNPayPaymentData


class PaymentStatusData(PaymentSummary):
    transactionId: Optional[str] = None
    paidAt: Optional[datetime] = None
    createdAt: Optional[datetime] = None
    appointment: PaymentAppointment


class PaymentStatusResponse(BaseModel):
    success: bool = True
    data: PaymentStatusData


class IPNResponse(BaseModel):
    RspCode: str
    Message: str
