"""Subscription gate dependency."""

from collections.abc import Callable
from typing import Annotated, Any

from fastapi import Depends

from tenantauth.core.auth.gate import AuthContext
from tenantauth.core.entitlements.features import Feature
from tenantauth.core.entitlements.subscription import SubscriptionGate
from tenantauth.entrypoints.api.deps import get_subscription_gate
from tenantauth.entrypoints.api.middleware.jwt_auth import verify_access_token


def require_subscription(feature: Feature | None = None) -> Callable[..., Any]:
    """Dependency requiring an active subscription, optionally with a feature.

    Runs after the access-token gate.

    Usage:
        @router.get("/get-profile-detail")
        async def get_profile(
            auth: Annotated[AuthContext, Depends(require_subscription())],
        ):
            ...
    """

    async def subscription_checker(
        auth: Annotated[AuthContext, Depends(verify_access_token)],
        gate: Annotated[SubscriptionGate, Depends(get_subscription_gate)],
    ) -> AuthContext:
        await gate.check(auth.org_id, feature)
        return auth

    return subscription_checker


SubscribedMember = Annotated[AuthContext, Depends(require_subscription())]
