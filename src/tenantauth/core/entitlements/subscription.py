"""Subscription gate: the organization's plan must cover the request."""

from collections.abc import Callable
from datetime import UTC, datetime
from uuid import UUID

import structlog

from tenantauth.core.auth.repository import AuthRepository
from tenantauth.core.auth.types import Subscription, SubscriptionStatus
from tenantauth.core.entitlements.features import Feature
from tenantauth.core.exceptions import (
    AccessDeniedError,
    ErrorCode,
    InvalidRequestError,
)

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(UTC)


def subscription_status_code(status: SubscriptionStatus) -> str:
    """Failure code for a non-active subscription, e.g. ``SUBSCRIPTION_IS_suspended``."""
    return f"SUBSCRIPTION_IS_{status.value.lower()}"


class SubscriptionGate:
    """Checks an organization's subscription on each gated request.

    Read-only: never mutates the subscription.
    """

    def __init__(
        self,
        repo: AuthRepository,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the gate.

        Args:
            repo: Auth repository.
            clock: Time source, injectable for tests.
        """
        self.repo = repo
        self._clock = clock

    async def check(
        self,
        org_id: UUID | None,
        feature: Feature | None = None,
    ) -> Subscription:
        """Verify the organization may use the service (and the feature).

        Args:
            org_id: Organization of the authenticated caller.
            feature: Feature the operation requires, if any.

        Returns:
            The verified subscription.

        Raises:
            InvalidRequestError: No caller organization, or no subscription.
            AccessDeniedError: Plan inactive, status not ACTIVE, expired,
                or feature not included.
        """
        if org_id is None:
            raise InvalidRequestError(ErrorCode.USER_AUTHENTICATION_REQUIRED)

        subscription = await self.repo.get_subscription(org_id)
        if subscription is None:
            raise InvalidRequestError(ErrorCode.ORGANIZATION_HAS_NO_ACTIVE_SUBSCRIPTION)

        if not subscription.plan.is_active:
            raise AccessDeniedError(ErrorCode.SUBSCRIPTION_PLAN_IS_NO_LONGER_AVAILABLE)

        if subscription.status != SubscriptionStatus.ACTIVE:
            raise AccessDeniedError(subscription_status_code(subscription.status))

        if self._clock() > subscription.end_date:
            raise AccessDeniedError(ErrorCode.SUBSCRIPTION_HAS_EXPIRED)

        if feature is not None and not has_feature(subscription, feature):
            logger.warning(
                "feature_not_in_plan",
                org_id=str(org_id),
                feature=feature.value,
                plan=subscription.plan.name,
            )
            raise AccessDeniedError(ErrorCode.FEATURE_NOT_AVAILABLE_IN_CURRENT_PLAN)

        return subscription


def has_feature(subscription: Subscription, feature: Feature) -> bool:
    """Whether the subscribed plan includes the feature in an enabled state."""
    return any(
        f.feature_name == feature.value and f.is_enabled for f in subscription.plan.features
    )
