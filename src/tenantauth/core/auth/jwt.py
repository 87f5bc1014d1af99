"""JWT token creation and validation.

Four token kinds are issued:

- access: ``{identityId, organizationId, platform, accessNonce}``, signed
  with the platform's access secret.
- refresh: ``{identityId, organizationId, platform, refreshNonce}``, signed
  with the platform's refresh secret.
- bare identity: ``{identityId}``, global secret, 30 minutes. Used to
  resume onboarding (profile, organization, plan) without re-login.
- subdomain handoff: ``{identityId, organizationId, handoffNonce}``,
  global secret, 5 minutes, redeemable once.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

import jwt

from tenantauth.core.auth.platforms import Platform, parse_platform
from tenantauth.core.exceptions import (
    ErrorCode,
    PlatformConfigurationError,
    TokenExpiredError,
    TokenInvalidError,
)

ALGORITHM = "HS256"
IDENTITY_TOKEN_LIFETIME = timedelta(minutes=30)
HANDOFF_TOKEN_LIFETIME = timedelta(minutes=5)

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: str) -> timedelta:
    """Parse a lifetime string such as ``"15m"``, ``"7d"`` or ``"3600"``.

    Args:
        value: Integer followed by an optional unit (s, m, h, d).

    Returns:
        The duration.

    Raises:
        ValueError: If the string is not a recognised duration.
    """
    match = _DURATION_RE.match(value.lower())
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(seconds=int(amount) * _DURATION_UNITS[unit])


@dataclass(frozen=True)
class PlatformTokenSettings:
    """Secrets and lifetimes for one platform."""

    access_secret: str | None
    refresh_secret: str | None
    access_lifetime: timedelta
    refresh_lifetime: timedelta


@dataclass(frozen=True)
class TokenSettings:
    """Signing configuration for all token kinds."""

    website: PlatformTokenSettings
    app: PlatformTokenSettings
    extension: PlatformTokenSettings
    global_secret: str | None

    def for_platform(self, platform: Platform) -> PlatformTokenSettings:
        """Return the settings block for a platform."""
        if platform is Platform.WEBSITE:
            return self.website
        if platform is Platform.APP:
            return self.app
        return self.extension


@dataclass(frozen=True)
class AccessClaims:
    """Verified access-token claims."""

    identity_id: UUID
    organization_id: UUID
    platform: Platform
    access_nonce: str


@dataclass(frozen=True)
class RefreshClaims:
    """Verified refresh-token claims."""

    identity_id: UUID
    organization_id: UUID
    platform: Platform
    refresh_nonce: str


@dataclass(frozen=True)
class HandoffClaims:
    """Verified subdomain-handoff-token claims."""

    identity_id: UUID
    organization_id: UUID
    handoff_nonce: str


@dataclass(frozen=True)
class IssuedTokens:
    """An access/refresh pair and the nonces the caller must persist."""

    access_token: str
    refresh_token: str
    access_nonce: str
    refresh_nonce: str


def new_nonce() -> str:
    """Generate a fresh random token nonce."""
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _as_uuid(value: Any) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


class TokenIssuer:
    """Signs and verifies all bearer tokens."""

    def __init__(
        self,
        settings: TokenSettings,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the issuer.

        Args:
            settings: Secrets and lifetimes.
            clock: Source of the issue time (verification uses wall time).
        """
        self._settings = settings
        self._clock = clock

    # Secret lookup

    def access_secret(self, platform: Platform) -> str:
        """Return the platform's access secret.

        Raises:
            InvalidPlatformError: Unknown platform.
            PlatformConfigurationError: Secret not configured.
        """
        secret = self._settings.for_platform(parse_platform(platform)).access_secret
        if not secret:
            raise PlatformConfigurationError()
        return secret

    def refresh_secret(self, platform: Platform) -> str:
        """Return the platform's refresh secret."""
        secret = self._settings.for_platform(parse_platform(platform)).refresh_secret
        if not secret:
            raise PlatformConfigurationError()
        return secret

    def _global_secret(self) -> str:
        if not self._settings.global_secret:
            raise PlatformConfigurationError()
        return self._settings.global_secret

    # Issuance

    def _sign(self, claims: dict[str, Any], secret: str, lifetime: timedelta) -> str:
        now = self._clock()
        payload = {
            **claims,
            "iat": int(now.timestamp()),
            "exp": int((now + lifetime).timestamp()),
        }
        return jwt.encode(payload, secret, algorithm=ALGORITHM)

    def issue_access_token(
        self, user_id: UUID, org_id: UUID, platform: Platform
    ) -> tuple[str, str]:
        """Create an access token with a fresh nonce.

        Returns:
            Tuple of (token, access nonce).
        """
        platform = parse_platform(platform)
        nonce = new_nonce()
        token = self._sign(
            {
                "identityId": str(user_id),
                "organizationId": str(org_id),
                "platform": platform.value,
                "accessNonce": nonce,
            },
            self.access_secret(platform),
            self._settings.for_platform(platform).access_lifetime,
        )
        return token, nonce

    def issue_access_and_refresh(
        self, user_id: UUID, org_id: UUID, platform: Platform
    ) -> IssuedTokens:
        """Create an access/refresh pair with two fresh nonces.

        The caller is responsible for persisting both nonces on the
        membership row; until it does, neither token verifies.
        """
        platform = parse_platform(platform)
        access_token, access_nonce = self.issue_access_token(user_id, org_id, platform)
        refresh_nonce = new_nonce()
        refresh_token = self._sign(
            {
                "identityId": str(user_id),
                "organizationId": str(org_id),
                "platform": platform.value,
                "refreshNonce": refresh_nonce,
            },
            self.refresh_secret(platform),
            self._settings.for_platform(platform).refresh_lifetime,
        )
        return IssuedTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            access_nonce=access_nonce,
            refresh_nonce=refresh_nonce,
        )

    def issue_identity_token(self, user_id: UUID) -> str:
        """Create a bare identity token (30 minutes)."""
        return self._sign(
            {"identityId": str(user_id)},
            self._global_secret(),
            IDENTITY_TOKEN_LIFETIME,
        )

    def issue_handoff_token(self, user_id: UUID, org_id: UUID) -> tuple[str, str]:
        """Create a single-use subdomain handoff token (5 minutes).

        Returns:
            Tuple of (token, handoff nonce).
        """
        nonce = new_nonce()
        token = self._sign(
            {
                "identityId": str(user_id),
                "organizationId": str(org_id),
                "handoffNonce": nonce,
            },
            self._global_secret(),
            HANDOFF_TOKEN_LIFETIME,
        )
        return token, nonce

    # Verification

    @staticmethod
    def decode_unverified(token: str) -> dict[str, Any]:
        """Read claims without checking signature or expiry.

        Only used to find out which platform secret to verify with.

        Raises:
            TokenInvalidError: INVALID_TOKEN_STRUCTURE if the token cannot be decoded.
        """
        try:
            payload: dict[str, Any] = jwt.decode(
                token,
                options={"verify_signature": False},
                algorithms=[ALGORITHM],
            )
        except jwt.InvalidTokenError:
            raise TokenInvalidError(ErrorCode.INVALID_TOKEN_STRUCTURE) from None
        if not isinstance(payload, dict):
            raise TokenInvalidError(ErrorCode.INVALID_TOKEN_STRUCTURE)
        return payload

    @staticmethod
    def verify(
        token: str,
        secret: str,
        invalid_code: ErrorCode = ErrorCode.INVALID_TOKEN,
    ) -> dict[str, Any]:
        """Verify signature and expiry.

        Args:
            token: Encoded JWT string.
            secret: Secret the token must be signed with.
            invalid_code: Code to raise for malformed or badly signed tokens.

        Returns:
            Decoded payload.

        Raises:
            TokenExpiredError: Token is past its expiry.
            TokenInvalidError: Signature or structure checks failed.
        """
        try:
            payload: dict[str, Any] = jwt.decode(
                token,
                secret,
                algorithms=[ALGORITHM],
                options={"require": ["exp", "iat"]},
            )
            return payload
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError() from None
        except jwt.InvalidTokenError:
            raise TokenInvalidError(invalid_code) from None

    def verify_access_token(self, token: str, platform: Platform) -> AccessClaims:
        """Verify an access token with the given platform's access secret.

        Raises:
            TokenError: Expired, invalid or missing required fields.
        """
        payload = self.verify(token, self.access_secret(platform))
        user_id = _as_uuid(payload.get("identityId"))
        org_id = _as_uuid(payload.get("organizationId"))
        nonce = payload.get("accessNonce")
        if user_id is None or org_id is None or not nonce:
            raise TokenInvalidError(ErrorCode.TOKEN_MISSING_REQUIRED_FIELDS)
        return AccessClaims(
            identity_id=user_id,
            organization_id=org_id,
            platform=parse_platform(payload.get("platform")),
            access_nonce=str(nonce),
        )

    def verify_refresh_token(self, token: str, platform: Platform) -> RefreshClaims:
        """Verify a refresh token with the platform's refresh secret."""
        payload = self.verify(token, self.refresh_secret(platform))
        user_id = _as_uuid(payload.get("identityId"))
        org_id = _as_uuid(payload.get("organizationId"))
        nonce = payload.get("refreshNonce")
        if user_id is None or org_id is None or not nonce:
            raise TokenInvalidError(ErrorCode.INVALID_TOKEN)
        return RefreshClaims(
            identity_id=user_id,
            organization_id=org_id,
            platform=parse_platform(payload.get("platform")),
            refresh_nonce=str(nonce),
        )

    def verify_identity_token(self, token: str) -> UUID:
        """Verify a bare identity token and return the identity id."""
        payload = self.verify(token, self._global_secret(), ErrorCode.TOKEN_MALFORMED)
        user_id = _as_uuid(payload.get("identityId"))
        # Handoff tokens share the global secret
        if user_id is None or "handoffNonce" in payload:
            raise TokenInvalidError(ErrorCode.INVALID_PAYLOAD)
        return user_id

    def verify_handoff_token(self, token: str) -> HandoffClaims:
        """Verify a subdomain handoff token."""
        payload = self.verify(token, self._global_secret())
        user_id = _as_uuid(payload.get("identityId"))
        org_id = _as_uuid(payload.get("organizationId"))
        nonce = payload.get("handoffNonce")
        if user_id is None or org_id is None or not nonce:
            raise TokenInvalidError(ErrorCode.INVALID_TOKEN)
        return HandoffClaims(identity_id=user_id, organization_id=org_id, handoff_nonce=str(nonce))
