"""Unit tests for the subscription gate."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from tenantauth.adapters.auth.memory import InMemoryAuthRepository
from tenantauth.core.auth.types import Organization, PlanType, Subscription, SubscriptionStatus
from tenantauth.core.entitlements.features import (
    PREMIUM_FEATURES,
    STANDARD_FEATURES,
    Feature,
    default_plans,
)
from tenantauth.core.entitlements.subscription import (
    SubscriptionGate,
    has_feature,
    subscription_status_code,
)
from tenantauth.core.exceptions import AccessDeniedError, InvalidRequestError
from tests.fixtures.mocks import FakeClock


class TestDefaultPlans:
    """Tests for the default plan catalogue."""

    def test_two_tiers(self) -> None:
        """Test that the catalogue has one plan per tier with stable ids."""
        plans = default_plans()

        assert {p.plan_type for p in plans} == {PlanType.STANDARD, PlanType.PREMIUM}
        assert [p.id for p in plans] == [p.id for p in default_plans()]

    def test_premium_is_a_superset(self) -> None:
        """Test that premium includes every standard feature."""
        assert STANDARD_FEATURES < PREMIUM_FEATURES


class TestSubscriptionGate:
    """Tests for SubscriptionGate.check."""

    async def test_active_subscription_passes(
        self,
        subscription_gate: SubscriptionGate,
        make_org: Callable[..., Organization],
        subscribe: Callable[..., Subscription],
    ) -> None:
        """Test the happy path."""
        org = make_org()
        subscribe(org)

        subscription = await subscription_gate.check(org.id)

        assert subscription.org_id == org.id

    async def test_no_org(self, subscription_gate: SubscriptionGate) -> None:
        """Test that a missing organization requires authentication."""
        with pytest.raises(InvalidRequestError) as exc_info:
            await subscription_gate.check(None)

        assert exc_info.value.code == "USER_AUTHENTICATION_REQUIRED"

    async def test_no_subscription(self, subscription_gate: SubscriptionGate) -> None:
        """Test an organization without a subscription."""
        with pytest.raises(InvalidRequestError) as exc_info:
            await subscription_gate.check(uuid4())

        assert exc_info.value.code == "ORGANIZATION_HAS_NO_ACTIVE_SUBSCRIPTION"

    @pytest.mark.parametrize(
        ("status", "code"),
        [
            (SubscriptionStatus.SUSPENDED, "SUBSCRIPTION_IS_suspended"),
            (SubscriptionStatus.EXPIRED, "SUBSCRIPTION_IS_expired"),
            (SubscriptionStatus.CANCELLED, "SUBSCRIPTION_IS_cancelled"),
        ],
    )
    async def test_status_specific_code(
        self,
        subscription_gate: SubscriptionGate,
        make_org: Callable[..., Organization],
        subscribe: Callable[..., Subscription],
        status: SubscriptionStatus,
        code: str,
    ) -> None:
        """Test that non-active statuses produce a status-specific code."""
        org = make_org()
        subscribe(org, status=status)

        with pytest.raises(AccessDeniedError) as exc_info:
            await subscription_gate.check(org.id)

        assert exc_info.value.code == code
        assert subscription_status_code(status) == code

    async def test_expired_by_date(
        self,
        subscription_gate: SubscriptionGate,
        clock: FakeClock,
        make_org: Callable[..., Organization],
        subscribe: Callable[..., Subscription],
    ) -> None:
        """Test that an ACTIVE subscription past its end date is rejected."""
        org = make_org()
        subscribe(org, end_date=datetime.now(UTC) + timedelta(days=1))
        clock.advance(days=2)

        with pytest.raises(AccessDeniedError) as exc_info:
            await subscription_gate.check(org.id)

        assert exc_info.value.code == "SUBSCRIPTION_HAS_EXPIRED"

    async def test_plan_withdrawn(
        self,
        subscription_gate: SubscriptionGate,
        repo: InMemoryAuthRepository,
        make_org: Callable[..., Organization],
        subscribe: Callable[..., Subscription],
    ) -> None:
        """Test that an inactive plan blocks its subscribers."""
        org = make_org()
        subscription = subscribe(org)
        repo.add_plan(subscription.plan.model_copy(update={"is_active": False}))

        with pytest.raises(AccessDeniedError) as exc_info:
            await subscription_gate.check(org.id)

        assert exc_info.value.code == "SUBSCRIPTION_PLAN_IS_NO_LONGER_AVAILABLE"

    async def test_feature_gating(
        self,
        subscription_gate: SubscriptionGate,
        make_org: Callable[..., Organization],
        subscribe: Callable[..., Subscription],
    ) -> None:
        """Test that premium-only features are refused on the standard plan."""
        org = make_org()
        subscription = subscribe(org, plan_type=PlanType.STANDARD)
        premium_only = next(iter(PREMIUM_FEATURES - STANDARD_FEATURES))

        assert not has_feature(subscription, premium_only)
        await subscription_gate.check(org.id, Feature.MANAGE_DEPARTMENTS)
        with pytest.raises(AccessDeniedError) as exc_info:
            await subscription_gate.check(org.id, premium_only)

        assert exc_info.value.code == "FEATURE_NOT_AVAILABLE_IN_CURRENT_PLAN"
