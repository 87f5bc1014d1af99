"""Access-token authentication dependency."""

from typing import Annotated

import structlog
from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from tenantauth.core.auth.gate import AccessTokenGate, AuthContext, extract_token
from tenantauth.entrypoints.api.deps import get_access_gate

logger = structlog.get_logger()

# Use Bearer token authentication
bearer_scheme = HTTPBearer(auto_error=False)


def request_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None,
) -> str | None:
    """Token from the bearer scheme, or the raw Authorization header value."""
    if credentials is not None:
        return credentials.credentials
    return extract_token(request.headers.get("Authorization"))


async def verify_access_token(
    request: Request,
    gate: Annotated[AccessTokenGate, Depends(get_access_gate)],
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),  # noqa: B008
) -> AuthContext:
    """Verify the access token and return the caller's context.

    Raises:
        AuthenticationError: Missing, invalid, expired or revoked token.
        AccessDeniedError: Membership, account or organization state.
    """
    context = await gate.authenticate(request_token(request, credentials))

    # Store in request state for downstream use
    request.state.auth = context

    logger.debug(
        "access_token_verified",
        user_id=str(context.user_id),
        org_id=str(context.org_id),
        platform=context.platform.value,
    )
    return context


CurrentMember = Annotated[AuthContext, Depends(verify_access_token)]
