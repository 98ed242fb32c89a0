"""
Verification email for self-serve signup.

Sends via SendGrid when SENDGRID_API_KEY is set; otherwise the send is
skipped and logged so signup still works in development.
"""

import asyncio
import logging
from urllib.parse import urlencode

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Email, Mail

from app.config import settings

logger = logging.getLogger(__name__)

VERIFY_SUBJECT = "Verify Your Email - ASK DB"


def verification_link(token: str) -> str:
    return f"{settings.base_url.rstrip('/')}/verify-email?{urlencode({'token': token})}"


def _verification_html(link: str) -> str:
    return f"""
<div style="font-family: Arial, sans-serif; padding: 20px; max-width: 600px; margin: auto; border: 1px solid #ddd; border-radius: 10px;">
  <h2 style="color: #333;">Email Verification Required</h2>
  <p>Hello,</p>
  <p>Thank you for signing up with <strong>ASK DB</strong>. Please verify your email address by clicking the button below:</p>
  <p style="text-align: center;">
    <a href="{link}" style="background-color: #28a745; color: white; padding: 10px 20px; text-decoration: none; border-radius: 5px; display: inline-block;">Verify Email</a>
  </p>
  <p>If you did not sign up, please ignore this email.</p>
  <hr style="border: none; border-top: 1px solid #ddd;">
  <p style="font-size: 12px; color: #777;">Best Regards,<br><strong>ASK DB Team</strong></p>
</div>
"""


def _send(message: Mail) -> None:
    SendGridAPIClient(settings.sendgrid_api_key).send(message)


async def send_verification_email(to_email: str, token: str) -> bool:
    """Send the verification link. Returns True if sent, False if skipped or failed."""
    if not settings.sendgrid_api_key:
        logger.info(f"Verification email to {to_email} skipped (no SENDGRID_API_KEY)")
        return False

    message = Mail(
        from_email=Email(settings.mail_from, settings.mail_from_name),
        to_emails=to_email,
        subject=VERIFY_SUBJECT,
        html_content=_verification_html(verification_link(token)),
    )
    try:
        await asyncio.to_thread(_send, message)
    except Exception as e:
        logger.warning(f"Verification email to {to_email} failed: {e}")
        return False

    logger.info(f"Verification email sent to {to_email}")
    return True
