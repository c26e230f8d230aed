"""
Email Service using Resend with MJML templates
"""

import logging
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import EMAIL_FROM_ADDRESS, RESEND_API_KEY
from .email_templates import (
    message_email_template,
    passport_request_template,
    purchase_confirmation_template,
    welcome_email_template,
)

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


class EmailNotConfiguredError(Exception):
    pass


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    result = mjml_to_html(mjml_content)
    # Newer releases return an object with .html/.errors, older ones a dict
    if isinstance(result, dict):
        if result.get("errors"):
            logger.warning(f"MJML compilation warnings: {result['errors']}")
        return result.get("html", "")
    if hasattr(result, "html"):
        if getattr(result, "errors", None):
            logger.warning(f"MJML compilation warnings: {result.errors}")
        return result.html
    return str(result)


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    from_address: Optional[str] = None,
    attachments: Optional[list[dict]] = None,
) -> dict:
    """
    Send an email through Resend

    Raises:
        EmailNotConfiguredError: RESEND_API_KEY missing
    """
    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise EmailNotConfiguredError("Email service not configured")

    html_content = compile_mjml_to_html(mjml_content)
    recipients = [to] if isinstance(to, str) else to

    email_data = {
        "from": from_address or EMAIL_FROM_ADDRESS,
        "to": recipients,
        "subject": subject,
        "html": html_content,
    }
    if attachments:
        email_data["attachments"] = [
            {"filename": a["filename"], "content": a["content"]} for a in attachments
        ]

    logger.info(f"📧 Sending email via Resend: {subject}")
    response = resend.Emails.send(email_data)
    logger.info(f"✅ Email sent successfully via Resend: {response}")
    return response


async def send_welcome_email(to: str, user_name: str) -> dict:
    return await send_email(to=to, subject="크루즈몰 가입을 환영합니다", mjml_content=welcome_email_template(user_name))


async def send_message_email(to: str, title: str, body: str, from_address: Optional[str] = None) -> dict:
    return await send_email(
        to=to, subject=title, mjml_content=message_email_template(title, body), from_address=from_address
    )


async def send_passport_request_email(to: str, customer_name: str, link: str, expires_label: str) -> dict:
    return await send_email(
        to=to,
        subject="[크루즈몰] 여권 정보 제출 요청",
        mjml_content=passport_request_template(customer_name, link, expires_label),
    )


async def send_purchase_confirmation_email(
    to: str, buyer_name: str, product_title: str, order_id: str, amount: str, certificate_pdf: Optional[bytes] = None
) -> dict:
    attachments = None
    if certificate_pdf:
        attachments = [{"filename": f"certificate_{order_id}.pdf", "content": list(certificate_pdf)}]
    return await send_email(
        to=to,
        subject="[크루즈몰] 결제 완료 안내",
        mjml_content=purchase_confirmation_template(buyer_name, product_title, order_id, amount),
        attachments=attachments,
    )
