"""Outbound mail for the password reset flow (plain SMTP + STARTTLS)."""
import smtplib
from email.message import EmailMessage

from config import Settings
from logger import get_logger

logger = get_logger(__name__)


class MailError(Exception):
    """Raised when the reset mail could not be handed to the SMTP server."""


def reset_link(settings: Settings, token: str) -> str:
    return f"{settings.frontend_url.rstrip('/')}/reset-password/{token}"


def build_reset_message(settings: Settings, to_address: str, token: str) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = "Password Reset"
    msg["From"] = settings.mail_from or settings.smtp_user or "no-reply@localhost"
    msg["To"] = to_address
    msg.set_content(
        "You requested a password reset. "
        f"Click the link to reset your password: {reset_link(settings, token)}\n\n"
        "The link expires in one hour. If you did not ask for this, ignore this email."
    )
    return msg


def send_password_reset_email(settings: Settings, to_address: str, token: str) -> bool:
    """
    Send the reset link. Returns False (and logs) when no SMTP host is configured.

    Raises MailError when the SMTP exchange fails.
    """
    if not settings.mail_enabled:
        logger.warning("mail_transport_not_configured", purpose="password_reset")
        return False

    message = build_reset_message(settings, to_address, token)
    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as smtp:
            smtp.starttls()
            if settings.smtp_user and settings.smtp_password:
                smtp.login(settings.smtp_user, settings.smtp_password)
            smtp.send_message(message)
    except (smtplib.SMTPException, OSError) as exc:
        raise MailError(str(exc)) from exc

    logger.info("password_reset_mail_sent")
    return True
