"""OTP delivery by email (SMTP)."""

import asyncio
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import structlog

from tenantauth.core.auth.collaborators import OtpPurpose, OtpSender
from tenantauth.core.auth.otp import OTP_LIFETIME
from tenantauth.core.exceptions import InfrastructureError

logger = structlog.get_logger()

_SUBJECTS = {
    OtpPurpose.VERIFY_EMAIL: "Verify your email address",
    OtpPurpose.RESET_PASSWORD: "Reset your password",
}


@dataclass
class EmailConfig:
    """Email configuration."""

    smtp_host: str
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    from_email: str = "no-reply@example.com"
    from_name: str = "TenantAuth"
    use_tls: bool = True
    timeout: float = 10.0


def render_otp_email(code: str, purpose: OtpPurpose) -> tuple[str, str, str]:
    """Build (subject, html, text) for an OTP message."""
    minutes = int(OTP_LIFETIME.total_seconds() // 60)
    subject = _SUBJECTS[purpose]
    body_html = f"""
    <html>
    <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
        <h2>{subject}</h2>
        <p>Your one-time code is:</p>
        <p style="font-size: 28px; letter-spacing: 6px; font-weight: bold;">{code}</p>
        <p>The code expires in {minutes} minutes.</p>
        <hr style="border: none; border-top: 1px solid #ddd; margin: 30px 0;">
        <p style="color: #666; font-size: 12px;">
            If you did not request this code you can ignore this email.
        </p>
    </body>
    </html>
    """
    body_text = f"""
{subject}

Your one-time code is: {code}
The code expires in {minutes} minutes.

---
If you did not request this code you can ignore this email.
    """
    return subject, body_html, body_text


class SmtpOtpSender:
    """Delivers one-time codes via SMTP."""

    def __init__(self, config: EmailConfig):
        """Initialize the sender.

        Args:
            config: Email configuration settings.
        """
        self.config = config

    def _send(self, to_email: str, subject: str, body_html: str, body_text: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.config.from_name} <{self.config.from_email}>"
        msg["To"] = to_email
        msg.attach(MIMEText(body_text, "plain"))
        msg.attach(MIMEText(body_html, "html"))

        with smtplib.SMTP(
            self.config.smtp_host, self.config.smtp_port, timeout=self.config.timeout
        ) as server:
            if self.config.use_tls:
                server.starttls()
            if self.config.smtp_user and self.config.smtp_password:
                server.login(self.config.smtp_user, self.config.smtp_password)
            server.sendmail(self.config.from_email, [to_email], msg.as_string())

    async def send_otp(self, email: str, code: str, purpose: OtpPurpose) -> None:
        """Send the code, off the event loop.

        Raises:
            InfrastructureError: SMTP failure or timeout.
        """
        subject, body_html, body_text = render_otp_email(code, purpose)
        try:
            await asyncio.to_thread(self._send, email, subject, body_html, body_text)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("email_error", purpose=purpose.value, error=str(e))
            raise InfrastructureError(f"otp delivery failed: {e}") from e
        logger.info("email_sent", purpose=purpose.value)


class ConsoleOtpSender:
    """Prints codes to the console for local development without SMTP."""

    async def send_otp(self, email: str, code: str, purpose: OtpPurpose) -> None:
        """Print the code with clear formatting so it's visible in logs."""
        print("\n" + "=" * 70, flush=True)
        print(f"[OTP] {purpose.value} code generated for dev mode", flush=True)
        print(f"  Email: {email}", flush=True)
        print(f"  Code:  {code}", flush=True)
        print("=" * 70 + "\n", flush=True)


# Verify we implement the protocol
_smtp: OtpSender = SmtpOtpSender(EmailConfig(smtp_host="localhost"))
_console: OtpSender = ConsoleOtpSender()
