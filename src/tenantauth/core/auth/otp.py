"""One-time passcodes for email verification and password reset."""

import hmac
import secrets
from datetime import datetime, timedelta
from uuid import UUID

from tenantauth.core.auth.types import OtpRecord

OTP_LENGTH = 6
OTP_LIFETIME = timedelta(minutes=5)
OTP_COOLDOWN = timedelta(seconds=30)


def generate_otp() -> str:
    """Generate a 6-digit numeric code (first digit never zero)."""
    low = 10 ** (OTP_LENGTH - 1)
    return str(low + secrets.randbelow(9 * low))


def new_otp_record(user_id: UUID, now: datetime, code: str | None = None) -> OtpRecord:
    """Build a fresh OTP record issued at ``now``."""
    return OtpRecord(
        user_id=user_id,
        code=code or generate_otp(),
        expires_at=now + OTP_LIFETIME,
        cooldown_until=now + OTP_COOLDOWN,
    )


def otp_matches(record: OtpRecord, submitted: str) -> bool:
    """Constant-time comparison of a submitted code."""
    return hmac.compare_digest(record.code.encode(), str(submitted).strip().encode())


def is_expired(record: OtpRecord, now: datetime) -> bool:
    """A code is usable up to and including its expiry instant."""
    return now > record.expires_at


def in_cooldown(record: OtpRecord, now: datetime) -> bool:
    """A new code may be requested once ``now`` reaches the cooldown instant."""
    return now < record.cooldown_until
