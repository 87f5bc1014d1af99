"""Bare identity-token dependency for onboarding routes."""

from typing import Annotated

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials

from tenantauth.core.auth.gate import IdentityTokenGate
from tenantauth.core.auth.types import User
from tenantauth.entrypoints.api.deps import get_identity_gate
from tenantauth.entrypoints.api.middleware.jwt_auth import bearer_scheme, request_token


async def verify_security_token(
    request: Request,
    gate: Annotated[IdentityTokenGate, Depends(get_identity_gate)],
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),  # noqa: B008
) -> User:
    """Resolve the bare identity token to its user."""
    user = await gate.authenticate(request_token(request, credentials))
    request.state.user_id = user.id
    return user


PendingUser = Annotated[User, Depends(verify_security_token)]
