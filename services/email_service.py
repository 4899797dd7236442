"""
EmailService - Transactional mail for account flows
Sends the email verification and password reset links through Flask-Mail.
Campaign mail does not go through here; it is sent with the user's own SES keys.
"""

import smtplib
from dataclasses import dataclass
from typing import List, Optional, Tuple

from flask_mail import Mail, Message

from logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class EmailMessage:
    """Email message data structure"""
    subject: str
    recipients: List[str]
    body_text: str
    body_html: Optional[str] = None
    sender: Optional[str] = None


class EmailService:
    """Service for sending account emails"""

    def __init__(self, mail_client: Optional[Mail], app_url: str, default_sender: str = None):
        """
        Args:
            mail_client: Flask-Mail instance bound to the app
            app_url: Public base URL used to build links
            default_sender: Sender used when a message does not set one
        """
        self.mail_client = mail_client
        self.app_url = (app_url or '').rstrip('/')
        self.default_sender = default_sender

    def is_configured(self) -> bool:
        return self.mail_client is not None

    def send_email(self, message: EmailMessage) -> Tuple[bool, str]:
        """
        Send an email message

        Returns:
            Tuple of (success: bool, message: str)
        """
        if not self.is_configured():
            logger.warning("Attempted to send email but service not configured")
            return False, "Email service not configured"

        msg = Message(
            subject=message.subject,
            recipients=message.recipients,
            body=message.body_text,
            html=message.body_html,
            sender=message.sender or self.default_sender
        )
        try:
            self.mail_client.send(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(
                "Failed to send email",
                error=str(e),
                subject=message.subject,
                recipients=message.recipients
            )
            return False, f"Failed to send email: {e}"

        logger.info("Email sent successfully", subject=message.subject, recipients=message.recipients)
        return True, "Email sent successfully"

    def send_verify_email(self, email: str, token: str) -> Tuple[bool, str]:
        url = f"{self.app_url}/verify-email/{token}"
        html_body = f"""
        <h2>Confirm your email address</h2>
        <p>Click the link below to verify the email address of your account:</p>
        <p><a href="{url}">Verify email</a></p>
        <p>If you did not create an account, please ignore this email.</p>
        """
        text_body = f"""
        Confirm your email address

        Open the link below to verify the email address of your account:
        {url}

        If you did not create an account, please ignore this email.
        """
        return self.send_email(EmailMessage(
            subject="Verify your email",
            recipients=[email],
            body_text=text_body,
            body_html=html_body
        ))

    def send_forgot_password(self, email: str, token: str, expires_hours: int = 1) -> Tuple[bool, str]:
        url = f"{self.app_url}/forgot-password/{token}"
        html_body = f"""
        <h2>Reset your password</h2>
        <p>Click the link below to choose a new password:</p>
        <p><a href="{url}">Reset password</a></p>
        <p>This link will expire in {expires_hours} hour(s).</p>
        <p>If you did not request a password reset, please ignore this email.</p>
        """
        text_body = f"""
        Reset your password

        Open the link below to choose a new password:
        {url}

        This link will expire in {expires_hours} hour(s).

        If you did not request a password reset, please ignore this email.
        """
        return self.send_email(EmailMessage(
            subject="Password reset",
            recipients=[email],
            body_text=text_body,
            body_html=html_body
        ))
