"""Payment router - VNPay initiation, return URL, IPN and status endpoints"""

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ...auth import CurrentUser, require_role
from ...config import FRONTEND_URL, PAYMENT_RATE_LIMIT, PAYMENT_RATE_WINDOW_SECONDS
from ...database import get_db
from ...exceptions import AppError, GatewaySignatureError, NotFoundError
from ...models import UserRole
from ...rate_limiter import client_ip, create_rate_limiter
from ..notifications.realtime import AppointmentNotifier, PaymentOutcome
from .schemas import (
    CreateVNPayPaymentRequest,
    CreateVNPayPaymentResponse,
    IPNResponse,
    PaymentStatusResponse,
)
from .service import CallbackResult, PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])

payment_rate_limit = create_rate_limiter(
    limit=PAYMENT_RATE_LIMIT, window_seconds=PAYMENT_RATE_WINDOW_SECONDS, key_prefix="payment_create"
)


def get_payment_service(db: Session = Depends(get_db)) -> PaymentService:
    """Dependency injection for PaymentService"""
    return PaymentService(db)


def get_notifier(db: Session = Depends(get_db)) -> AppointmentNotifier:
    return AppointmentNotifier(db)


async def publish_callback(notifier: AppointmentNotifier, result: CallbackResult):
    """Payment notification, then the PENDING -> CONFIRMED fan-out if the payment confirmed it"""
    if result.duplicate:
        return
    outcome = PaymentOutcome.SUCCESS if result.success else PaymentOutcome.FAILED
    await notifier.handle_payment_status_change(
        result.appointment, outcome, amount=result.payment.amount, payment=result.payment
    )
    if result.status_change:
        change = result.status_change
        await notifier.handle_appointment_status_change(change.appointment, change.old_status, change.new_status)


def result_redirect(**params) -> RedirectResponse:
    return RedirectResponse(url=f"{FRONTEND_URL}/payment/result?{urlencode(params)}", status_code=302)


# ============================================================================
# VNPAY
# ============================================================================


@router.post("/vnpay/create", response_model=CreateVNPayPaymentResponse)
async def create_vnpay_payment(
    data: CreateVNPayPaymentRequest,
    request: Request,
    current_user: CurrentUser = Depends(require_role(UserRole.PATIENT)),
    service: PaymentService = Depends(get_payment_service),
    _: None = Depends(payment_rate_limit),
):
    """Create a VNPay payment URL for the patient's appointment"""
    result = service.create_vnpay_payment(
        current_user,
        data.appointmentId,
        return_url=str(data.returnUrl) if data.returnUrl else None,
        client_ip=client_ip(request),
    )
    return CreateVNPayPaymentResponse(data=result)


@router.get("/vnpay/callback")
async def vnpay_callback(
    request: Request,
    service: PaymentService = Depends(get_payment_service),
    notifier: AppointmentNotifier = Depends(get_notifier),
):
    """Browser return URL: apply the result and redirect to the app's result page"""
    try:
        result = service.process_callback(dict(request.query_params))
    except AppError as e:
        logger.error(f"❌ VNPay callback rejected: {e.code} {e.message}")
        return result_redirect(success="false", message="Payment processing failed")
    except Exception as e:
        logger.error(f"❌ VNPay callback error: {e}")
        return result_redirect(success="false", message="Payment processing failed")

    await publish_callback(notifier, result)
    return result_redirect(
        success=str(result.success).lower(), appointmentId=result.appointment.id, message=result.message
    )


@router.post("/vnpay/ipn", response_model=IPNResponse)
async def vnpay_ipn(
    request: Request,
    service: PaymentService = Depends(get_payment_service),
    notifier: AppointmentNotifier = Depends(get_notifier),
):
    """Server-to-server notification; VNPay expects an RspCode/Message body either way"""
    params = dict(request.query_params)
    if request.headers.get("content-type", "").startswith("application/json"):
        body = await request.json()
        if isinstance(body, dict):
            params.update({key: str(value) for key, value in body.items()})
    elif request.headers.get("content-type", "").startswith("application/x-www-form-urlencoded"):
        form = await request.form()
        params.update({key: str(value) for key, value in form.items()})

    try:
        result = service.process_callback(params)
    except GatewaySignatureError:
        return IPNResponse(RspCode="97", Message="Invalid signature")
    except NotFoundError:
        return IPNResponse(RspCode="01", Message="Order not found")
    except Exception as e:
        logger.error(f"❌ VNPay IPN error: {e}")
        return IPNResponse(RspCode="99", Message="error")

    await publish_callback(notifier, result)
    return IPNResponse(RspCode="00", Message="success")


# ============================================================================
# STATUS
# ============================================================================


@router.get("/{payment_id}/status", response_model=PaymentStatusResponse)
async def get_payment_status(
    payment_id: str,
    current_user: CurrentUser = Depends(require_role(UserRole.PATIENT)),
    service: PaymentService = Depends(get_payment_service),
):
    return PaymentStatusResponse(data=service.get_payment_status(current_user, payment_id))
