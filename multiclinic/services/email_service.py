from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
import logging
import smtplib

from ..core.config import settings

logger = logging.getLogger(__name__)

_LAYOUT = """\
<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
  <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
    <h1>{heading}</h1>
    <h2>Hello {name},</h2>
    {body}
    <p style="text-align: center; color: #666; font-size: 12px;">{app_name}</p>
  </div>
</body>
</html>
"""


class EmailService:
    """
    Transactional email over SMTP.

    Every send method returns whether delivery succeeded. Failures are logged
    and swallowed: registration, verification and clinic creation must finish
    even when the mail server is down or not configured.
    """

    def __init__(self, config=settings):
        self.settings = config

    def send_verification_email(self, email: str, token: str, name: str) -> bool:
        verification_url = f"{self.settings.FRONTEND_URL}/verify-email?token={token}"
        body = (
            f"<p>Thank you for registering with {self.settings.APP_NAME}!</p>"
            f"<p>Please verify your email address by opening this link:</p>"
            f'<p><a href="{verification_url}">{verification_url}</a></p>'
            f"<p><strong>This link will expire in "
            f"{self.settings.VERIFICATION_TOKEN_EXPIRE_HOURS} hours.</strong></p>"
            f"<p>If you didn't create an account, please ignore this email.</p>"
        )
        return self._send(
            email,
            f"Verify Your Email - {self.settings.APP_NAME}",
            self._render("Email Verification", name, body),
        )

    def send_welcome_email(self, email: str, name: str) -> bool:
        body = (
            "<p>Your email has been verified successfully!</p>"
            f"<p>You can now access all features of {self.settings.APP_NAME}.</p>"
        )
        return self._send(
            email,
            f"Welcome to {self.settings.APP_NAME}",
            self._render("Welcome!", name, body),
        )

    def send_clinic_admin_invitation(
        self, email: str, name: str, clinic_name: str, temporary_password: str
    ) -> bool:
        login_url = f"{self.settings.FRONTEND_URL}/login"
        body = (
            f"<p>You have been appointed as the <strong>Clinic Administrator</strong> "
            f"for <strong>{clinic_name}</strong>.</p>"
            f"<p><strong>Email:</strong> {email}<br>"
            f"<strong>Temporary Password:</strong> <code>{temporary_password}</code></p>"
            "<p>Please change your password after your first login.</p>"
            f'<p><a href="{login_url}">Login Now</a></p>'
        )
        return self._send(
            email,
            f"Invitation: Clinic Admin - {clinic_name}",
            self._render("Clinic Admin Invitation", name, body),
        )

    def _render(self, heading: str, name: str, body: str) -> str:
        return _LAYOUT.format(
            heading=heading, name=name, body=body, app_name=self.settings.APP_NAME
        )

    def _send(self, recipient: str, subject: str, html: str) -> bool:
        if not self.settings.SMTP_HOST:
            logger.warning(f"SMTP not configured, skipping '{subject}' email to {recipient}")
            return False

        msg = MIMEMultipart("alternative")
        msg["From"] = self.settings.EMAIL_FROM
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.attach(MIMEText(html, "html"))

        try:
            with smtplib.SMTP(self.settings.SMTP_HOST, self.settings.SMTP_PORT) as server:
                server.starttls()
                if self.settings.SMTP_USER:
                    server.login(self.settings.SMTP_USER, self.settings.SMTP_PASSWORD or "")
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send '{subject}' email to {recipient}: {str(e)}")
            return False

        logger.info(f"Sent '{subject}' email to {recipient}")
        return True


def get_email_service() -> EmailService:
    return EmailService()
