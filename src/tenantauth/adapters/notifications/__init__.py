"""OTP delivery adapters."""

from tenantauth.adapters.notifications.email import (
    ConsoleOtpSender,
    EmailConfig,
    SmtpOtpSender,
)

__all__ = ["EmailConfig", "SmtpOtpSender", "ConsoleOtpSender"]
