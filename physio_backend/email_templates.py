"""
MJML Email Templates
All email templates using MJML for responsive, cross-client compatibility.

Templates are pure functions registered against the EmailTemplate enum; rendering
never touches shared mutable state.
"""

import html
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Optional

from .config import FRONTEND_URL

# App theme colors - Calm blue/green scheme
THEME = {
    "primary": "#3498db",
    "success": "#27ae60",
    "warning": "#f39c12",
    "danger": "#e74c3c",
    "background": "#f8f9fa",
    "card_bg": "#ffffff",
    "text_primary": "#2c3e50",
    "text_secondary": "#555555",
    "text_muted": "#888888",
    "border": "#e2e8f0",
}

BRAND = "PhysioAtYourDoor"


class EmailTemplate(str, Enum):
    EMAIL_VERIFICATION = "email_verification"
    WELCOME = "welcome"
    PASSWORD_RESET = "password_reset"
    PASSWORD_CHANGED = "password_changed"
    APPOINTMENT_PENDING = "appointment_pending"
    APPOINTMENT_REQUEST = "appointment_request"
    APPOINTMENT_CONFIRMED = "appointment_confirmed"
    APPOINTMENT_REJECTED = "appointment_rejected"
    APPOINTMENT_CANCELLED = "appointment_cancelled"


def _e(value: Any) -> str:
    """Escape user-supplied values before interpolating them into markup"""
    if value is None:
        return ""
    return html.escape(str(value))


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
    accent: str = THEME["primary"],
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button
              href="{cta_url}"
              background-color="{accent}"
              color="#ffffff"
              font-weight="bold"
              border-radius="5px"
              padding="15px 30px"
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
          <mj-all font-family="Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="{THEME['card_bg']}" padding="30px 20px">
          <mj-column>
            <mj-text align="center" font-size="24px" font-weight="600" color="{accent}" padding="0 0 24px 0">
              {title}
            </mj-text>

            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <mj-section padding="24px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="{THEME['text_muted']}" padding="0">
              © {BRAND}. Physiotherapy care at your home.
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _details_block(rows: list[tuple[str, Any]]) -> str:
    lines = "<br/>".join(f"<strong>{label}:</strong> {_e(value)}" for label, value in rows)
    return f"""
    <mj-text background-color="{THEME['card_bg']}" padding="20px" css-class="details">
      <strong style="color: {THEME['text_primary']};">Appointment Details:</strong><br/>
      {lines}
    </mj-text>
    """


# ============================================
# Account emails
# ============================================


def email_verification_template(data: dict) -> tuple[str, str]:
    content = f"""
    <mj-text>Hi {_e(data.get('name'))},</mj-text>
    <mj-text>
      Thank you for registering with {BRAND}. To complete your registration,
      please verify your email address by clicking the button below:
    </mj-text>
    <mj-text font-size="14px" color="{THEME['text_muted']}">
      If you didn't create an account, please ignore this email.
      This verification link will expire in 24 hours.
    </mj-text>
    """
    return f"{BRAND} - Email Verification", get_base_template(
        title=f"Welcome to {BRAND}!",
        preview_text="Verify your email address",
        content_sections=content,
        cta_url=data["verify_url"],
        cta_label="Verify Email Address",
    )


def welcome_template(data: dict) -> tuple[str, str]:
    if data.get("role") == "physiotherapist":
        role_text = (
            "As a physiotherapist, your account is currently under review. "
            "You'll receive an email once your documents are verified and your account is approved."
        )
    else:
        role_text = "You can now book appointments with verified physiotherapists in your area."

    content = f"""
    <mj-text>Hi {_e(data.get('name'))},</mj-text>
    <mj-text>
      Your email has been successfully verified! You can now access all features of {BRAND}.
    </mj-text>
    <mj-text>{role_text}</mj-text>
    """
    return f"Welcome to {BRAND}!", get_base_template(
        title=f"Welcome to {BRAND}!",
        preview_text="Your email has been verified",
        content_sections=content,
        cta_url=FRONTEND_URL,
        cta_label="Get Started",
        accent=THEME["success"],
    )


def password_reset_template(data: dict) -> tuple[str, str]:
    content = f"""
    <mj-text>Hi {_e(data.get('name'))},</mj-text>
    <mj-text>
      We received a request to reset your password. Click the button below to reset it:
    </mj-text>
    <mj-text font-size="14px" color="{THEME['text_muted']}">
      If you didn't request a password reset, please ignore this email.
      This reset link will expire in 10 minutes for security reasons.
    </mj-text>
    """
    return f"{BRAND} - Password Reset", get_base_template(
        title="Password Reset Request",
        preview_text="Reset your password",
        content_sections=content,
        cta_url=data["reset_url"],
        cta_label="Reset Password",
        accent=THEME["danger"],
    )


def password_changed_template(data: dict) -> tuple[str, str]:
    content = f"""
    <mj-text>Hi {_e(data.get('name'))},</mj-text>
    <mj-text>
      Your password has been successfully changed. If you didn't make this change,
      please contact our support team immediately.
    </mj-text>
    """
    return f"{BRAND} - Password Changed", get_base_template(
        title="Password Successfully Changed",
        preview_text="Your password was changed",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/login",
        cta_label="Login Now",
        accent=THEME["success"],
    )


# ============================================
# Appointment emails
# ============================================


def appointment_pending_template(data: dict) -> tuple[str, str]:
    details = _details_block(
        [
            ("Physiotherapist", data.get("physiotherapist_name")),
            ("Date", data.get("appointment_date")),
            ("Time", data.get("time_slot")),
            ("Service", data.get("reason")),
            ("Amount", f"₹{data.get('amount')}"),
        ]
    )
    content = f"""
    <mj-text>Hi {_e(data.get('patient_name'))},</mj-text>
    <mj-text>
      Your appointment request has been submitted and is pending confirmation from the physiotherapist.
    </mj-text>
    {details}
    <mj-text>
      You'll receive another email once the physiotherapist confirms or declines your request.
    </mj-text>
    """
    return f"Appointment Request Submitted - {BRAND}", get_base_template(
        title="Appointment Pending Confirmation",
        preview_text="Your request is awaiting confirmation",
        content_sections=content,
        accent=THEME["warning"],
    )


def appointment_request_template(data: dict) -> tuple[str, str]:
    details = _details_block(
        [
            ("Patient phone", data.get("patient_phone")),
            ("Date", data.get("appointment_date")),
            ("Time", data.get("time_slot")),
            ("Reason", data.get("reason")),
            ("Symptoms", data.get("symptoms") or "Not provided"),
            ("Your earnings", f"₹{data.get('amount')}"),
        ]
    )
    content = f"""
    <mj-text>Hi {_e(data.get('physiotherapist_name'))},</mj-text>
    <mj-text>You have a new appointment request from <strong>{_e(data.get('patient_name'))}</strong>.</mj-text>
    {details}
    """
    return f"New Appointment Request - {BRAND}", get_base_template(
        title="New Appointment Request",
        preview_text=f"New request from {_e(data.get('patient_name'))}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/physio/requests",
        cta_label="Review Request",
    )


def appointment_confirmed_template(data: dict) -> tuple[str, str]:
    details = _details_block(
        [
            ("Physiotherapist", data.get("physiotherapist_name")),
            ("Date", data.get("appointment_date")),
            ("Time", data.get("time_slot")),
            ("Service", data.get("reason")),
            ("Contact", data.get("physiotherapist_phone")),
        ]
    )
    content = f"""
    <mj-text>Hi {_e(data.get('patient_name'))},</mj-text>
    <mj-text>
      Great news! Your appointment has been confirmed by {_e(data.get('physiotherapist_name'))}.
    </mj-text>
    {details}
    <mj-text>
      The physiotherapist will contact you shortly to confirm the exact location and any other details.
    </mj-text>
    """
    return f"Appointment Confirmed - {BRAND}", get_base_template(
        title="Appointment Confirmed!",
        preview_text="Your appointment is confirmed",
        content_sections=content,
        accent=THEME["success"],
    )


def appointment_rejected_template(data: dict) -> tuple[str, str]:
    reason_block = ""
    if data.get("rejection_reason"):
        reason_block = f"<mj-text><strong>Reason:</strong> {_e(data['rejection_reason'])}</mj-text>"
    refund_block = ""
    if data.get("refund_amount"):
        refund_block = (
            f"<mj-text><strong>Don't worry!</strong> Your payment of "
            f"₹{_e(data['refund_amount'])} will be refunded within 24 hours.</mj-text>"
        )

    content = f"""
    <mj-text>Hi {_e(data.get('patient_name'))},</mj-text>
    <mj-text>
      Unfortunately, {_e(data.get('physiotherapist_name'))} is not available for your requested appointment.
    </mj-text>
    {reason_block}
    {refund_block}
    """
    return f"Appointment Update - {BRAND}", get_base_template(
        title="Appointment Update",
        preview_text="Your appointment request was declined",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/appointments",
        cta_label="Book Another Appointment",
        accent=THEME["danger"],
    )


def appointment_cancelled_template(data: dict) -> tuple[str, str]:
    refund_text = ""
    if data.get("refund_amount"):
        refund_text = f"<mj-text>A refund of ₹{_e(data['refund_amount'])} has been initiated.</mj-text>"

    content = f"""
    <mj-text>Hi {_e(data.get('recipient_name'))},</mj-text>
    <mj-text>
      The appointment on <strong>{_e(data.get('appointment_date'))}</strong>
      ({_e(data.get('time_slot'))}) was cancelled by {_e(data.get('cancelled_by'))}.
    </mj-text>
    {refund_text}
    """
    return f"Appointment Cancelled - {BRAND}", get_base_template(
        title="Appointment Cancelled",
        preview_text="An appointment was cancelled",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/appointments",
        cta_label="View Appointments",
        accent=THEME["danger"],
    )


TEMPLATES: "MappingProxyType[EmailTemplate, Callable[[dict], tuple[str, str]]]" = MappingProxyType(
    {
        EmailTemplate.EMAIL_VERIFICATION: email_verification_template,
        EmailTemplate.WELCOME: welcome_template,
        EmailTemplate.PASSWORD_RESET: password_reset_template,
        EmailTemplate.PASSWORD_CHANGED: password_changed_template,
        EmailTemplate.APPOINTMENT_PENDING: appointment_pending_template,
        EmailTemplate.APPOINTMENT_REQUEST: appointment_request_template,
        EmailTemplate.APPOINTMENT_CONFIRMED: appointment_confirmed_template,
        EmailTemplate.APPOINTMENT_REJECTED: appointment_rejected_template,
        EmailTemplate.APPOINTMENT_CANCELLED: appointment_cancelled_template,
    }
)


def render_email(template: EmailTemplate | str, data: dict) -> tuple[str, str]:
    """Render a template to (subject, mjml). Unknown names raise ValueError."""
    return TEMPLATES[EmailTemplate(template)](data)
