"""API middleware."""

from tenantauth.entrypoints.api.middleware.brute_force import (
    ClientIp,
    client_ip,
    require_ip_not_blocked,
)
from tenantauth.entrypoints.api.middleware.jwt_auth import CurrentMember, verify_access_token
from tenantauth.entrypoints.api.middleware.security_token import (
    PendingUser,
    verify_security_token,
)
from tenantauth.entrypoints.api.middleware.subscription import (
    SubscribedMember,
    require_subscription,
)

__all__ = [
    # Brute force
    "ClientIp",
    "client_ip",
    "require_ip_not_blocked",
    # Access token
    "CurrentMember",
    "verify_access_token",
    # Bare token
    "PendingUser",
    "verify_security_token",
    # Subscription
    "SubscribedMember",
    "require_subscription",
]
