"""
Email Service using Resend
Provides email functionality using MJML templates for responsive design
"""

import logging
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import EMAIL_FROM_ADDRESS, FRONTEND_URL, RESEND_API_KEY
from .email_templates import EmailTemplate, render_email
from .errors import UpstreamFailure

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        # mjml_to_html returns a dict with 'html' and 'errors' keys
        if isinstance(result, dict):
            if result.get("errors"):
                logger.warning(f"MJML compilation warnings: {result['errors']}")
            return result.get("html", "")
        return str(result)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise UpstreamFailure(f"Failed to compile MJML template: {str(e)}") from e


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

    Raises:
        UpstreamFailure: when the transport is not configured or rejects the message
    """
    html_content = compile_mjml_to_html(mjml_content)

    recipients = [to] if isinstance(to, str) else to
    sender = from_address or EMAIL_FROM_ADDRESS

    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise UpstreamFailure("Email service not configured")

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        response = resend.Emails.send(
            {
                "from": sender,
                "to": recipients,
                "subject": subject,
                "html": html_content,
            }
        )
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise UpstreamFailure(f"Failed to send email: {str(e)}") from e


async def send_templated_email(to: str, template: EmailTemplate | str, data: dict) -> dict:
    """Render a registered template and send it"""
    subject, mjml_content = render_email(template, data)
    return await send_email(to=to, subject=subject, mjml_content=mjml_content)


# ============================================
# Account emails sent inline from the auth routes
# ============================================


async def send_verification_email(to: str, name: str, token: str) -> dict:
    """Send the email verification link"""
    return await send_templated_email(
        to,
        EmailTemplate.EMAIL_VERIFICATION,
        {"name": name, "verify_url": f"{FRONTEND_URL}/verify-email/{token}"},
    )


async def send_password_reset_email(to: str, name: str, token: str) -> dict:
    """Send password reset email"""
    return await send_templated_email(
        to,
        EmailTemplate.PASSWORD_RESET,
        {"name": name, "reset_url": f"{FRONTEND_URL}/reset-password/{token}"},
    )
