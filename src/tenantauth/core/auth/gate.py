"""Request-time token gates.

``AccessTokenGate`` resolves a bearer access token to an ``AuthContext``:
decode, resolve the platform, verify with that platform's secret, then
cross-check the membership, account and organization state and the
stored access nonce. ``IdentityTokenGate`` accepts the bare identity
token used during onboarding.

Both gates only read; they never mutate state.
"""

import hmac
from dataclasses import dataclass
from uuid import UUID

import structlog

from tenantauth.core.auth.jwt import TokenIssuer
from tenantauth.core.auth.platforms import Platform, nonce_fields, parse_platform
from tenantauth.core.auth.repository import AuthRepository
from tenantauth.core.auth.types import OrgRole, User, UserStatus
from tenantauth.core.exceptions import (
    AccessDeniedError,
    AuthenticationError,
    ErrorCode,
    NotFoundError,
    TokenInvalidError,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class AuthContext:
    """Identity resolved from a verified access token."""

    user_id: UUID
    org_id: UUID
    role: OrgRole
    platform: Platform


def extract_token(authorization: str | None) -> str | None:
    """Return the token from an ``Authorization`` header value.

    Both ``Bearer <token>`` and a bare token are accepted.
    """
    if not authorization:
        return None
    value = authorization.strip()
    scheme, _, rest = value.partition(" ")
    if rest and scheme.lower() == "bearer":
        value = rest.strip()
    return value or None


def nonces_equal(stored: str | None, presented: str) -> bool:
    """Constant-time nonce comparison; a nulled column never matches."""
    if stored is None:
        return False
    return hmac.compare_digest(stored.encode(), presented.encode())


class AccessTokenGate:
    """Validates access tokens against the membership store."""

    def __init__(self, repo: AuthRepository, tokens: TokenIssuer) -> None:
        """Initialize the gate.

        Args:
            repo: Auth repository.
            tokens: Token issuer holding the platform secrets.
        """
        self.repo = repo
        self.tokens = tokens

    async def authenticate(self, token: str | None) -> AuthContext:
        """Resolve an access token to the caller's identity.

        Args:
            token: Raw bearer token, or None if the header was absent.

        Returns:
            The resolved identity, organization, role and platform.

        Raises:
            AuthenticationError: Missing, malformed, expired or revoked token.
            AccessDeniedError: Not a member, or account/organization inactive.
        """
        if not token:
            raise AuthenticationError(ErrorCode.TOKEN_REQUIRED)

        unverified = self.tokens.decode_unverified(token)
        if not unverified.get("platform"):
            raise TokenInvalidError(ErrorCode.INVALID_TOKEN_STRUCTURE)
        platform = parse_platform(unverified["platform"])

        claims = self.tokens.verify_access_token(token, platform)

        membership = await self.repo.get_membership(claims.identity_id, claims.organization_id)
        if membership is None:
            raise AccessDeniedError(ErrorCode.USER_NOT_A_MEMBER_OF_THIS_ORGANIZATION)

        user = await self.repo.get_user_by_id(claims.identity_id)
        if user is None or user.status != UserStatus.ACTIVE:
            raise AccessDeniedError(ErrorCode.USER_ACCOUNT_NOT_ACTIVE)

        org = await self.repo.get_org_by_id(claims.organization_id)
        if org is None or not org.is_active or org.is_deleted:
            raise AccessDeniedError(ErrorCode.ORGANIZATION_NOT_ACTIVE)

        stored = nonce_fields(platform).access_nonce(membership)
        if not nonces_equal(stored, claims.access_nonce):
            logger.warning(
                "access_token_nonce_mismatch",
                user_id=str(claims.identity_id),
                org_id=str(claims.organization_id),
                platform=platform.value,
            )
            raise AuthenticationError(ErrorCode.ACCESS_TOKEN_NONCE_MISMATCH)

        return AuthContext(
            user_id=claims.identity_id,
            org_id=claims.organization_id,
            role=membership.role,
            platform=platform,
        )


class IdentityTokenGate:
    """Validates bare identity tokens issued during onboarding."""

    def __init__(self, repo: AuthRepository, tokens: TokenIssuer) -> None:
        self.repo = repo
        self.tokens = tokens

    async def authenticate(self, token: str | None) -> User:
        """Resolve a bare identity token to an existing user.

        Raises:
            AuthenticationError: Missing, expired or malformed token.
            NotFoundError: USER_NOT_FOUND if the identity no longer exists.
        """
        if not token:
            raise AuthenticationError(ErrorCode.TOKEN_REQUIRED)
        user_id = self.tokens.verify_identity_token(token)
        user = await self.repo.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError(ErrorCode.USER_NOT_FOUND)
        return user
