"""Core domain - auth state machine, guards and entitlements."""

from .exceptions import (
    AccessDeniedError,
    AuthenticationError,
    ConflictError,
    ErrorCode,
    InfrastructureError,
    InvalidRequestError,
    NextStepRequired,
    NotFoundError,
    RateLimitedError,
    ServiceError,
    TenantAuthError,
)

__all__ = [
    "TenantAuthError",
    "ServiceError",
    "ErrorCode",
    "InvalidRequestError",
    "AuthenticationError",
    "AccessDeniedError",
    "NotFoundError",
    "ConflictError",
    "RateLimitedError",
    "NextStepRequired",
    "InfrastructureError",
]
