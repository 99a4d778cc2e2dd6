"""
Email Service using Resend
Provides email functionality using MJML templates for responsive design
"""

import logging
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import ADMIN_EMAIL, EMAIL_FROM_ADDRESS, RESEND_API_KEY, SCHOOL_NAME
from .email_templates import (
    invoice_template,
    monthly_revenue_report_template,
    new_message_template,
    payment_receipt_template,
    payment_reminder_template,
    waitlist_promoted_template,
    waiver_reminder_template,
)

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


class EmailDeliveryError(Exception):
    """Raised when an email cannot be compiled or handed to Resend"""


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        # mjml_to_html returns a dict with 'html' and 'errors' keys
        if isinstance(result, dict):
            if result.get("errors"):
                logger.warning(f"MJML compilation warnings: {result['errors']}")
            return result.get("html", "")
        if hasattr(result, "html"):
            return result.html
        return str(result)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise EmailDeliveryError(f"Failed to compile MJML template: {str(e)}") from e


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
        Resend response dict
    """
    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise EmailDeliveryError("Email service not configured")

    html_content = compile_mjml_to_html(mjml_content)
    recipients = [to] if isinstance(to, str) else to

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
        raise EmailDeliveryError(f"Failed to send email: {str(e)}") from e


# ============================================
# Pre-built emails for school events
# ============================================


async def send_payment_receipt(
    to: str,
    family_name: str,
    payment_type_label: str,
    amount: str,
    payment_date: str,
    receipt_url: Optional[str] = None,
) -> dict:
    mjml_content = payment_receipt_template(
        family_name, payment_type_label, amount, payment_date, receipt_url
    )
    return await send_email(
        to=to, subject=f"Payment Received - {SCHOOL_NAME}", mjml_content=mjml_content
    )


async def send_payment_reminder(to: str, family_name: str, students: list[dict]) -> dict:
    mjml_content = payment_reminder_template(family_name, students)
    return await send_email(
        to=to, subject=f"Membership Payment Reminder - {SCHOOL_NAME}", mjml_content=mjml_content
    )


async def send_waiver_reminder(to: str, family_name: str, waiver_titles: list[str]) -> dict:
    mjml_content = waiver_reminder_template(family_name, waiver_titles)
    return await send_email(
        to=to, subject=f"Waivers Required - {SCHOOL_NAME}", mjml_content=mjml_content
    )


async def send_waitlist_promoted(
    to: str, family_name: str, student_name: str, class_name: str
) -> dict:
    mjml_content = waitlist_promoted_template(family_name, student_name, class_name)
    return await send_email(
        to=to, subject=f"{student_name} is enrolled in {class_name}", mjml_content=mjml_content
    )


async def send_monthly_revenue_report(
    period_label: str,
    totals_by_type: dict[str, str],
    grand_total: str,
    payment_count: int,
    to: Optional[str] = None,
) -> Optional[dict]:
    """Send the revenue summary to the school admin address"""
    recipient = to or ADMIN_EMAIL
    if not recipient:
        logger.warning("⚠️ ADMIN_EMAIL not configured - skipping revenue report")
        return None

    mjml_content = monthly_revenue_report_template(
        period_label, totals_by_type, grand_total, payment_count
    )
    return await send_email(
        to=recipient,
        subject=f"Revenue Report {period_label} - {SCHOOL_NAME}",
        mjml_content=mjml_content,
    )


async def send_invoice_email(
    to: str,
    family_name: str,
    invoice_number: str,
    amount_due: str,
    due_date: str,
    line_items: list[dict],
) -> dict:
    mjml_content = invoice_template(family_name, invoice_number, amount_due, due_date, line_items)
    return await send_email(
        to=to, subject=f"Invoice {invoice_number} - {SCHOOL_NAME}", mjml_content=mjml_content
    )


async def send_new_message_notification(
    to: str, recipient_name: str, sender_name: str, subject: str, preview: str
) -> dict:
    mjml_content = new_message_template(recipient_name, sender_name, subject, preview)
    return await send_email(
        to=to, subject=f"New message from {sender_name}", mjml_content=mjml_content
    )
