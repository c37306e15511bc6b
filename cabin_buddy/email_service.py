"""
Email Service using Resend
Provides email functionality using MJML templates for responsive design
"""

import logging
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import EMAIL_FROM_ADDRESS, FRONTEND_URL, RESEND_API_KEY
from .email_templates import guest_split_notification_template
from .errors import NotificationFailure

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise NotificationFailure(f"Failed to compile email template: {e}") from e

    if isinstance(result, dict):
        if result.get("errors"):
            logger.warning(f"MJML compilation warnings: {result['errors']}")
        return result.get("html", "")
    html = getattr(result, "html", None)
    if html is not None:
        if getattr(result, "errors", None):
            logger.warning(f"MJML compilation warnings: {result.errors}")
        return html
    return str(result)


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email through Resend.

    Raises:
        NotificationFailure: If email is not configured or the provider rejects the message
    """
    html_content = compile_mjml_to_html(mjml_content)
    recipients = [to] if isinstance(to, str) else to

    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise NotificationFailure("Email service not configured")

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        response = resend.Emails.send(
            {
                "from": from_address or EMAIL_FROM_ADDRESS,
                "to": recipients,
                "subject": subject,
                "html": html_content,
            }
        )
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise NotificationFailure(f"Failed to send email: {e}") from e


async def send_guest_split_notification(
    to: str,
    recipient_name: str,
    organization_name: str,
    source_family_group: str,
    daily_breakdown: list[dict],
    total_amount: float,
    description: Optional[str] = None,
) -> dict:
    """Tell a guest's family that part of a stay's cost was split to them"""
    mjml_content = guest_split_notification_template(
        recipient_name=recipient_name,
        organization_name=organization_name,
        source_family_group=source_family_group,
        daily_breakdown=daily_breakdown,
        total_amount=total_amount,
        description=description,
        payments_url=f"{FRONTEND_URL}/payments",
    )
    return await send_email(
        to=to,
        subject=f"Guest Cost Split - {organization_name}",
        mjml_content=mjml_content,
    )
