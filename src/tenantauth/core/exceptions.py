"""Domain-specific exceptions.

All exceptions in the tenantauth system inherit from TenantAuthError.
Expected outcomes of the auth state machine are ServiceError subclasses:
each carries a stable machine-readable code, an HTTP-equivalent status
and optional auxiliary data (e.g. a reissued bare token so the client
can resume a multi-step flow).
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable failure codes returned to clients."""

    # Authentication
    TOKEN_REQUIRED = "TOKEN_REQUIRED"
    INVALID_TOKEN_STRUCTURE = "INVALID_TOKEN_STRUCTURE"
    INVALID_PLATFORM = "INVALID_PLATFORM"
    PLATFORM_CONFIGURATION_ERROR = "PLATFORM_CONFIGURATION_ERROR"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_MALFORMED = "TOKEN_MALFORMED"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    TOKEN_MISSING_REQUIRED_FIELDS = "TOKEN_MISSING_REQUIRED_FIELDS"
    ACCESS_TOKEN_NONCE_MISMATCH = "ACCESS_TOKEN_NONCE_MISMATCH"
    TOKEN_INVALID = "TOKEN_INVALID"
    INVALID_REFRESH_TOKEN = "INVALID_REFRESH_TOKEN"
    INVALID_CREDENTIAL = "INVALID_CREDENTIAL"
    EMAIL_NOT_VERIFIED = "EMAIL_NOT_VERIFIED"
    GOOGLE_AUTH_CODE_INVALID = "GOOGLE_AUTH_CODE_INVALID"
    GOOGLE_TOKEN_EXPIRED = "GOOGLE_TOKEN_EXPIRED"
    GOOGLE_TOKEN_MALFORMED = "GOOGLE_TOKEN_MALFORMED"
    INVALID_GOOGLE_TOKEN = "INVALID_GOOGLE_TOKEN"
    INVALID_TOKEN_AUDIENCE = "INVALID_TOKEN_AUDIENCE"
    GOOGLE_EMAIL_NOT_VERIFIED = "GOOGLE_EMAIL_NOT_VERIFIED"
    GOOGLE_AUTH_ERROR = "GOOGLE_AUTH_ERROR"

    # Authorization / state
    USER_AUTHENTICATION_REQUIRED = "USER_AUTHENTICATION_REQUIRED"
    USER_NOT_A_MEMBER_OF_THIS_ORGANIZATION = "USER_NOT_A_MEMBER_OF_THIS_ORGANIZATION"
    USER_ACCOUNT_NOT_ACTIVE = "USER_ACCOUNT_NOT_ACTIVE"
    ORGANIZATION_NOT_ACTIVE = "ORGANIZATION_NOT_ACTIVE"
    USER_ACCOUNT_DEACTIVATED = "USER_ACCOUNT_DEACTIVATED"
    USER_ACCOUNT_SUSPENDED = "USER_ACCOUNT_SUSPENDED"
    ORGANIZATION_HAS_NO_ACTIVE_SUBSCRIPTION = "ORGANIZATION_HAS_NO_ACTIVE_SUBSCRIPTION"
    SUBSCRIPTION_PLAN_IS_NO_LONGER_AVAILABLE = "SUBSCRIPTION_PLAN_IS_NO_LONGER_AVAILABLE"
    SUBSCRIPTION_HAS_EXPIRED = "SUBSCRIPTION_HAS_EXPIRED"
    FEATURE_NOT_AVAILABLE_IN_CURRENT_PLAN = "FEATURE_NOT_AVAILABLE_IN_CURRENT_PLAN"
    USER_PLAN_DEACTIVATED = "USER_PLAN_DEACTIVATED"
    INSUFFICIENT_ROLE = "INSUFFICIENT_ROLE"
    USER_NOT_OWNER_OF_ORGANIZATION = "USER_NOT_OWNER_OF_ORGANIZATION"

    # Onboarding next steps
    INCOMPLETE_PROFILE = "INCOMPLETE_PROFILE"
    USER_NOT_ASSOCIATED_WITH_ANY_ORGANIZATION = "USER_NOT_ASSOCIATED_WITH_ANY_ORGANIZATION"
    USER_NOT_TAKEN_ANY_PLAN = "USER_NOT_TAKEN_ANY_PLAN"

    # Request state
    INVALID_OTP = "INVALID_OTP"
    OTP_EXPIRED = "OTP_EXPIRED"
    OTP_COOLDOWN_TIME = "OTP_COOLDOWN_TIME"
    PASSWORD_RESET_NOT_REQUESTED = "PASSWORD_RESET_NOT_REQUESTED"
    PASSWORD_RESET_EXPIRED = "PASSWORD_RESET_EXPIRED"

    # Lookup
    INVALID_EMAIL_OR_PASSWORD = "INVALID_EMAIL_OR_PASSWORD"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    PLAN_NOT_FOUND = "PLAN_NOT_FOUND"
    ORGANIZATION_NOT_FOUND = "ORGANIZATION_NOT_FOUND"

    # Conflict
    EMAIL_ALREADY_EXISTS = "EMAIL_ALREADY_EXISTS"
    USER_ALREADY_REGISTERED = "USER_ALREADY_REGISTERED"
    ORGANIZATION_NAME_ALREADY_EXISTS = "ORGANIZATION_NAME_ALREADY_EXISTS"
    SUBDOMAIN_UNAVAILABLE = "SUBDOMAIN_UNAVAILABLE"

    # Rate limit
    IP_BLOCKED = "IP_BLOCKED"
    EMAIL_BLOCKED = "EMAIL_BLOCKED"

    # Infrastructure
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


class TenantAuthError(Exception):
    """Base exception for all tenantauth errors.

    All custom exceptions in the system should inherit from this class
    to enable catching all tenantauth-specific errors with a single except clause.
    """

    pass


class ServiceError(TenantAuthError):
    """An expected, typed failure of a workflow or guard.

    Attributes:
        code: Stable machine-readable failure code.
        status_code: HTTP-equivalent status.
        data: Auxiliary data for the client (never sensitive).
        retryable: Whether the caller may retry the same request.
    """

    status_code: int = 400
    retryable: bool = False

    def __init__(
        self,
        code: ErrorCode | str,
        data: dict[str, Any] | None = None,
        status_code: int | None = None,
    ) -> None:
        """Initialize ServiceError.

        Args:
            code: Failure code, either an ErrorCode or a derived code string
                such as ``SUBSCRIPTION_IS_suspended``.
            data: Optional auxiliary payload.
            status_code: Override for the class default status.
        """
        self.code = code.value if isinstance(code, ErrorCode) else code
        super().__init__(self.code)
        self.data = data or {}
        if status_code is not None:
            self.status_code = status_code


class InvalidRequestError(ServiceError):
    """The request is well-formed but not acceptable in the current state."""

    status_code = 400


class AuthenticationError(ServiceError):
    """Credentials or token could not be authenticated."""

    status_code = 401


class AccessDeniedError(ServiceError):
    """Authenticated, but account, organization or plan state forbids access."""

    status_code = 403


class NotFoundError(ServiceError):
    """A referenced identity, plan or organization does not exist."""

    status_code = 404


class ConflictError(ServiceError):
    """Uniqueness or ownership constraint violated."""

    status_code = 409


class RateLimitedError(ServiceError):
    """Key is blocked by the brute-force guard."""

    status_code = 429


class NextStepRequired(ServiceError):
    """Onboarding is incomplete; ``data`` carries what the client needs to resume.

    Raised with a freshly issued bare identity token so the client can
    continue (complete profile, register organization, purchase plan)
    without re-entering credentials.
    """

    status_code = 202


class InfrastructureError(ServiceError):
    """Database, identity provider or delivery failure.

    Not part of the auth state machine; the caller may retry.
    """

    status_code = 503
    retryable = True

    def __init__(self, detail: str | None = None) -> None:
        """Initialize InfrastructureError.

        Args:
            detail: Internal description, logged but never returned to clients.
        """
        super().__init__(ErrorCode.SERVICE_UNAVAILABLE)
        self.detail = detail


class TokenError(AuthenticationError):
    """Raised when token validation fails."""

    pass


class TokenExpiredError(TokenError):
    """Token signature is valid but the token is past its expiry."""

    def __init__(self, code: ErrorCode | str = ErrorCode.TOKEN_EXPIRED) -> None:
        super().__init__(code)


class TokenInvalidError(TokenError):
    """Token is malformed or its signature does not verify."""

    def __init__(self, code: ErrorCode | str = ErrorCode.INVALID_TOKEN) -> None:
        super().__init__(code)


class InvalidPlatformError(TokenError):
    """Platform claim or argument is not a known platform."""

    def __init__(self) -> None:
        super().__init__(ErrorCode.INVALID_PLATFORM)


class PlatformConfigurationError(TokenError):
    """No signing secret is configured for the requested platform."""

    def __init__(self) -> None:
        super().__init__(ErrorCode.PLATFORM_CONFIGURATION_ERROR)
