"""Interfaces for OTP delivery and external identity verification."""

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable


class OtpPurpose(str, Enum):
    """Why a code is being sent."""

    VERIFY_EMAIL = "verify_email"
    RESET_PASSWORD = "reset_password"


class GoogleTokenType(str, Enum):
    """What the client obtained from Google."""

    CODE = "code"
    ID_TOKEN = "id_token"


@dataclass(frozen=True)
class ExternalIdentity:
    """Verified identity returned by an external provider."""

    email: str
    subject: str
    given_name: str | None = None
    family_name: str | None = None
    email_verified: bool = False
    picture: str | None = None


@runtime_checkable
class OtpSender(Protocol):
    """Delivers one-time passcodes."""

    async def send_otp(self, email: str, code: str, purpose: OtpPurpose) -> None:
        """Deliver a code to the address.

        Raises:
            InfrastructureError: If delivery fails.
        """
        ...


@runtime_checkable
class IdentityProvider(Protocol):
    """Exchanges an authorization code or ID token for a verified identity."""

    async def exchange(
        self, token: str, token_type: GoogleTokenType = GoogleTokenType.CODE
    ) -> ExternalIdentity:
        """Verify the credential with the provider.

        Raises:
            AuthenticationError: GOOGLE_* code describing the rejection.
            InfrastructureError: Provider unreachable.
        """
        ...
