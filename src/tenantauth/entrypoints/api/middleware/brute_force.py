"""IP block check for credential routes."""

from typing import Annotated

from fastapi import Depends, Request

from tenantauth.core.security.brute_force import BruteForceGuards
from tenantauth.entrypoints.api.deps import get_guards


def client_ip(request: Request) -> str | None:
    """Caller IP as seen on the socket.

    Behind a reverse proxy the peer is rewritten by ``ProxyHeadersMiddleware``
    for the hosts listed in ``TRUSTED_PROXIES``; request headers are never
    read here.
    """
    return request.client.host if request.client else None


async def require_ip_not_blocked(
    request: Request,
    guards: Annotated[BruteForceGuards, Depends(get_guards)],
) -> str | None:
    """Reject blocked IPs and return the client IP for failure accounting.

    The email guard is checked inside each workflow, where the submitted
    address is known.

    Raises:
        RateLimitedError: IP_BLOCKED.
    """
    ip = client_ip(request)
    guards.check(ip)
    return ip


ClientIp = Annotated[str | None, Depends(require_ip_not_blocked)]
