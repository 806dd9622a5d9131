import logging
import smtplib
from email.message import EmailMessage

from app.core.config import settings

logger = logging.getLogger(__name__)

BRAND = "Millat Vocational Training"


def send_email(to: str, subject: str, body: str) -> None:
    """
    Deliver a plain-text email through the configured SMTP relay.
    Without SMTP_HOST the message is only logged, which is what development uses.
    """
    if not settings.SMTP_HOST:
        logger.info(f"[email disabled] to={to} subject={subject!r}")
        return

    message = EmailMessage()
    message["From"] = f"{BRAND} <{settings.EMAIL_FROM}>"
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body)

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as smtp:
        smtp.starttls()
        if settings.SMTP_USER:
            smtp.login(settings.SMTP_USER, settings.SMTP_PASSWORD or "")
        smtp.send_message(message)
    logger.info(f"Email sent to {to}: {subject}")


def send_verification_email(to: str, otp: str, name: str = None) -> None:
    send_email(
        to,
        f"Verify Your Email - {BRAND}",
        f"Hello {name or 'there'},\n\n"
        f"Your verification code is: {otp}\n"
        f"This code will expire in {settings.OTP_EXPIRE_MINUTES} minutes.",
    )


def send_password_reset_email(to: str, otp: str, name: str = None) -> None:
    send_email(
        to,
        f"Reset Password - {BRAND}",
        f"Hello {name or 'there'},\n\n"
        f"Your password reset code is: {otp}\n"
        f"This code will expire in {settings.OTP_EXPIRE_MINUTES} minutes.",
    )
