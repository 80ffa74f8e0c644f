"""
MJML Email Templates
Appointment and payment emails using MJML for responsive, cross-client compatibility
"""

from typing import Optional

from .config import FRONTEND_URL

THEME = {
    "primary": "#407CE2",
    "primary_light": "#E0ECFF",
    "background": "#f8fafc",
    "text_primary": "#1C2A3A",
    "text_secondary": "#374151",
    "text_muted": "#6B7280",
    "border": "#E5E7EB",
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button
              href="{cta_url}"
              background-color="{THEME['primary']}"
              color="#ffffff"
              font-weight="600"
              border-radius="8px"
              padding="18px 40px"
              font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="{THEME['primary']}" padding="24px 20px">
          <mj-column>
            <mj-text align="center" font-size="22px" font-weight="700" color="#ffffff" padding="0">
              HealthPal
            </mj-text>
          </mj-column>
        </mj-section>

        <mj-section background-color="#ffffff" padding="40px 40px 48px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" line-height="1.3" padding="0 0 16px 0">
              {title}
            </mj-text>

            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="0">
              You're receiving this because you booked an appointment with HealthPal.
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _details_table(rows: list[tuple[str, str]]) -> str:
    cells = "".join(
        f"""
        <tr>
          <td style="padding: 8px 0; color: {THEME['text_muted']};">{label}</td>
          <td style="padding: 8px 0; font-weight: 600; color: {THEME['text_primary']};">{value}</td>
        </tr>"""
        for label, value in rows
    )
    return f"""
    <mj-table padding="8px 16px" container-background-color="{THEME['primary_light']}">
      {cells}
    </mj-table>
    """


def appointment_confirmed_template(
    patient_name: str,
    doctor_name: str,
    specialty: Optional[str],
    appointment_date: str,
    start_time: str,
    end_time: str,
    clinic_name: Optional[str],
    clinic_address: Optional[str],
    appointment_id: str,
) -> str:
    """Appointment confirmation email MJML template"""
    rows = [
        ("Doctor", f"Dr. {doctor_name}" + (f" ({specialty})" if specialty else "")),
        ("Date", appointment_date),
        ("Time", f"{start_time} - {end_time}"),
    ]
    if clinic_name:
        rows.append(("Clinic", clinic_name))
    if clinic_address:
        rows.append(("Address", clinic_address))

    content = f"""
    <mj-text>
      Hi {patient_name},
    </mj-text>

    <mj-text>
      Your appointment has been confirmed. Here are the details:
    </mj-text>

    {_details_table(rows)}

    <mj-text color="{THEME['text_muted']}" padding="24px 0 0 0">
      Please arrive 15 minutes early. We'll remind you 24 hours, 1 hour and 15 minutes before the visit.
    </mj-text>
    """

    return get_base_template(
        title="Appointment Confirmed",
        preview_text=f"Your appointment with Dr. {doctor_name} on {appointment_date} is confirmed",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/appointments/{appointment_id}",
        cta_label="View Appointment",
    )


def payment_receipt_template(
    patient_name: str,
    doctor_name: str,
    amount: str,
    transaction_id: Optional[str],
    appointment_date: str,
    start_time: str,
    appointment_id: str,
) -> str:
    """Payment receipt email MJML template"""
    rows = [
        ("Amount", f"{amount} VND"),
        ("Doctor", f"Dr. {doctor_name}"),
        ("Appointment", f"{appointment_date} {start_time}"),
    ]
    if transaction_id:
        rows.append(("Transaction", transaction_id))

    content = f"""
    <mj-text>
      Hi {patient_name},
    </mj-text>

    <mj-text>
      We received your payment. Thank you!
    </mj-text>

    {_details_table(rows)}
    """

    return get_base_template(
        title="Payment Received",
        preview_text=f"Payment of {amount} VND received",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/appointments/{appointment_id}",
        cta_label="View Appointment",
    )
