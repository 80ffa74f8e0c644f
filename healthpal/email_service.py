"""
Email Service using Resend
Provides email functionality using MJML templates for responsive design
"""

import logging
from decimal import Decimal
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import EMAIL_FROM_ADDRESS, RESEND_API_KEY
from .email_templates import appointment_confirmed_template, payment_receipt_template

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


class EmailNotConfiguredError(RuntimeError):
    pass


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    result = mjml_to_html(mjml_content)
    if isinstance(result, dict):
        if result.get("errors"):
            logger.warning(f"MJML compilation warnings: {result['errors']}")
        return result.get("html", "")
    # mjml-python returns an object with .html / .errors
    errors = getattr(result, "errors", None)
    if errors:
        logger.warning(f"MJML compilation warnings: {errors}")
    return getattr(result, "html", str(result))


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email through Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        mjml_content: MJML template content (will be compiled to HTML)
        from_address: Optional custom from address

    Returns:
        Send response dict
    """
    if not RESEND_API_KEY:
        raise EmailNotConfiguredError("Email service not configured - RESEND_API_KEY missing")

    recipients = [to] if isinstance(to, str) else to
    email_data = {
        "from": from_address or EMAIL_FROM_ADDRESS,
        "to": recipients,
        "subject": subject,
        "html": compile_mjml_to_html(mjml_content),
    }

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        response = resend.Emails.send(email_data)
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise


def format_vnd(amount) -> str:
    """350000 -> "350,000" """
    return f"{Decimal(amount):,.0f}"


async def send_appointment_confirmation_email(appointment) -> dict:
    """Send the confirmation email to the appointment's patient"""
    patient_user = appointment.patient.user
    doctor = appointment.doctor
    clinic = appointment.clinic
    mjml_content = appointment_confirmed_template(
        patient_name=patient_user.full_name,
        doctor_name=doctor.user.full_name,
        specialty=doctor.specialty.name if doctor.specialty else None,
        appointment_date=appointment.appointment_date.strftime("%d/%m/%Y"),
        start_time=appointment.start_time,
        end_time=appointment.end_time,
        clinic_name=clinic.name if clinic else None,
        clinic_address=clinic.address if clinic else None,
        appointment_id=appointment.id,
    )
    return await send_email(
        to=patient_user.email,
        subject=f"Appointment confirmed - Dr. {doctor.user.full_name}",
        mjml_content=mjml_content,
    )


async def send_payment_receipt_email(appointment, payment) -> dict:
    """Send a payment receipt to the appointment's patient"""
    patient_user = appointment.patient.user
    mjml_content = payment_receipt_template(
        patient_name=patient_user.full_name,
        doctor_name=appointment.doctor.user.full_name,
        amount=format_vnd(payment.amount),
        transaction_id=payment.transaction_id,
        appointment_date=appointment.appointment_date.strftime("%d/%m/%Y"),
        start_time=appointment.start_time,
        appointment_id=appointment.id,
    )
    return await send_email(to=patient_user.email, subject="Payment received", mjml_content=mjml_content)
