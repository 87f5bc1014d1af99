"""Tests for the in-memory auth repository."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from tenantauth.adapters.auth.memory import InMemoryAuthRepository
from tenantauth.core.auth.repository import AuthRepository
from tenantauth.core.auth.types import (
    AuthProvider,
    BillingCycle,
    Organization,
    OrgMembership,
    OrgRole,
    PlanType,
    Subscription,
    User,
)
from tenantauth.core.exceptions import ConflictError


class TestInMemoryAuthRepository:
    """Tests for InMemoryAuthRepository."""

    def test_implements_protocol(self, repo: InMemoryAuthRepository) -> None:
        """Repository should implement AuthRepository protocol."""
        assert isinstance(repo, AuthRepository)

    async def test_create_user_with_otp(self, repo: InMemoryAuthRepository) -> None:
        """Test that the user and its first code are stored together."""
        now = datetime.now(UTC)

        user, otp = await repo.create_user_with_otp(
            "ada@example.com", "hashed", "123456", now + timedelta(minutes=5), now
        )

        assert user.auth_provider == AuthProvider.EMAIL
        assert not user.is_email_verified
        assert await repo.get_otp(user.id) == otp

    async def test_duplicate_email(self, repo: InMemoryAuthRepository) -> None:
        """Test that emails are unique case-insensitively."""
        now = datetime.now(UTC)
        await repo.create_user_with_otp("ada@example.com", "hashed", "123456", now, now)

        with pytest.raises(ConflictError) as exc_info:
            await repo.create_google_user("ADA@example.com", "google-sub")

        assert exc_info.value.code == "EMAIL_ALREADY_EXISTS"

    async def test_deleted_users_are_invisible(
        self, repo: InMemoryAuthRepository, make_user: Callable[..., User]
    ) -> None:
        """Test that soft-deleted identities are not returned."""
        user = make_user(is_deleted=True)

        assert await repo.get_user_by_id(user.id) is None
        assert await repo.get_user_by_email(user.email) is None

    async def test_memberships_default_first(
        self,
        repo: InMemoryAuthRepository,
        make_user: Callable[..., User],
        make_org: Callable[..., Organization],
        add_member: Callable[..., OrgMembership],
    ) -> None:
        """Test membership ordering and exclusion of inactive organizations."""
        user = make_user()
        first = make_org("Acme")
        default = make_org("Globex")
        inactive = make_org("Initech", is_active=False)
        add_member(user, first, OrgRole.WORKER, is_default=False)
        add_member(user, default, OrgRole.WORKER, is_default=True)
        add_member(user, inactive, OrgRole.WORKER, is_default=False)

        memberships = await repo.get_user_memberships(user.id)

        assert [m.org_id for m in memberships] == [default.id, first.id]

    async def test_create_organization_with_owner(
        self, repo: InMemoryAuthRepository, owner: tuple[User, Organization]
    ) -> None:
        """Test the conflict checks on organization creation."""
        user, _ = owner

        with pytest.raises(ConflictError) as exc_info:
            await repo.create_organization_with_owner(user.id, "Other", "other")
        assert exc_info.value.code == "USER_ALREADY_REGISTERED"

    async def test_create_organization_conflicts(
        self,
        repo: InMemoryAuthRepository,
        make_user: Callable[..., User],
        make_org: Callable[..., Organization],
    ) -> None:
        """Test name and subdomain uniqueness."""
        make_org("Acme", subdomain="acme")
        user = make_user()

        with pytest.raises(ConflictError) as exc_info:
            await repo.create_organization_with_owner(user.id, "acme", "acme-2")
        assert exc_info.value.code == "ORGANIZATION_NAME_ALREADY_EXISTS"

        with pytest.raises(ConflictError) as exc_info:
            await repo.create_organization_with_owner(user.id, "Globex", "acme")
        assert exc_info.value.code == "SUBDOMAIN_UNAVAILABLE"

    async def test_new_organization_becomes_default(
        self,
        repo: InMemoryAuthRepository,
        make_user: Callable[..., User],
        make_org: Callable[..., Organization],
        add_member: Callable[..., OrgMembership],
    ) -> None:
        """Test that the owned organization replaces the previous default."""
        user = make_user()
        previous = make_org("Acme")
        add_member(user, previous, OrgRole.WORKER, is_default=True)

        org = await repo.create_organization_with_owner(user.id, "Globex", "globex")

        old = await repo.get_membership(user.id, previous.id)
        new = await repo.get_membership(user.id, org.id)
        assert old is not None and not old.is_default
        assert new is not None and new.is_default

    async def test_consume_handoff_nonce(
        self,
        repo: InMemoryAuthRepository,
        owner: tuple[User, Organization],
    ) -> None:
        """Test that a handoff nonce can be consumed exactly once."""
        user, org = owner
        await repo.update_membership(user.id, org.id, handoff_nonce="nonce-1")

        assert await repo.consume_handoff_nonce(user.id, org.id, "nonce-2") is False
        assert await repo.consume_handoff_nonce(user.id, org.id, "nonce-1") is True
        assert await repo.consume_handoff_nonce(user.id, org.id, "nonce-1") is False

    async def test_clear_user_nonces(
        self,
        repo: InMemoryAuthRepository,
        owner: tuple[User, Organization],
    ) -> None:
        """Test that every nonce on every membership is nulled."""
        user, org = owner
        await repo.update_membership(
            user.id,
            org.id,
            website_access_nonce="a",
            app_refresh_nonce="b",
            handoff_nonce="c",
        )

        await repo.clear_user_nonces(user.id)

        membership = await repo.get_membership(user.id, org.id)
        assert membership is not None
        assert membership.website_access_nonce is None
        assert membership.app_refresh_nonce is None
        assert membership.handoff_nonce is None
        assert membership.role == OrgRole.OWNER

    async def test_subscription_reports_current_plan(
        self,
        repo: InMemoryAuthRepository,
        make_org: Callable[..., Organization],
        subscribe: Callable[..., Subscription],
    ) -> None:
        """Test that plan changes are visible through existing subscriptions."""
        org = make_org()
        subscription = subscribe(org)
        repo.add_plan(subscription.plan.model_copy(update={"is_active": False}))

        stored = await repo.get_subscription(org.id)

        assert stored is not None
        assert stored.plan.is_active is False
        assert await repo.list_active_plans() == [
            p for p in repo.plans.values() if p.plan_type == PlanType.PREMIUM
        ]

    async def test_upsert_subscription_keeps_id(
        self,
        repo: InMemoryAuthRepository,
        make_org: Callable[..., Organization],
        subscribe: Callable[..., Subscription],
    ) -> None:
        """Test that re-purchasing replaces the subscription in place."""
        org = make_org()
        existing = subscribe(org)
        premium = next(p for p in repo.plans.values() if p.plan_type == PlanType.PREMIUM)
        now = datetime.now(UTC)

        replaced = await repo.upsert_subscription(
            org.id, premium.id, BillingCycle.YEARLY, now, now + timedelta(days=365), 5, Decimal("0")
        )

        assert replaced.id == existing.id
        assert replaced.plan.id == premium.id
        assert replaced.member_count == 5
