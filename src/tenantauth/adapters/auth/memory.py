"""In-process implementation of AuthRepository.

Used when no database is configured and by the test suite. Multi-row
writes hold a lock so concurrent requests never observe half-applied
changes.
"""

import asyncio
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from tenantauth.core.auth.platforms import ALL_NONCE_FIELDS
from tenantauth.core.auth.types import (
    AuthProvider,
    BillingCycle,
    Organization,
    OrgMembership,
    OrgRole,
    OtpRecord,
    Plan,
    Subscription,
    SubscriptionStatus,
    User,
)
from tenantauth.core.exceptions import ConflictError, ErrorCode

DEFAULT_DEPARTMENT_NAME = "General"


def _now() -> datetime:
    return datetime.now(UTC)


class InMemoryAuthRepository:
    """Dict-backed auth repository."""

    def __init__(self, plans: Iterable[Plan] = ()) -> None:
        """Initialize empty storage.

        Args:
            plans: Plan catalogue to start with.
        """
        self._lock = asyncio.Lock()
        self.users: dict[UUID, User] = {}
        self.otps: dict[UUID, OtpRecord] = {}
        self.orgs: dict[UUID, Organization] = {}
        self.memberships: dict[tuple[UUID, UUID], OrgMembership] = {}
        self.departments: dict[UUID, dict[str, Any]] = {}
        self.subscriptions: dict[UUID, Subscription] = {}
        self.plans: dict[UUID, Plan] = {plan.id: plan for plan in plans}

    # Seeding helpers

    def add_user(self, user: User) -> User:
        """Store a user as-is."""
        self.users[user.id] = user
        return user

    def add_org(self, org: Organization) -> Organization:
        """Store an organization as-is."""
        self.orgs[org.id] = org
        return org

    def add_membership(self, membership: OrgMembership) -> OrgMembership:
        """Store a membership as-is."""
        self.memberships[(membership.user_id, membership.org_id)] = membership
        return membership

    def add_plan(self, plan: Plan) -> Plan:
        """Store a plan as-is."""
        self.plans[plan.id] = plan
        return plan

    def add_subscription(self, subscription: Subscription) -> Subscription:
        """Store a subscription as-is."""
        self.subscriptions[subscription.org_id] = subscription
        return subscription

    # User operations
    async def get_user_by_id(self, user_id: UUID) -> User | None:
        """Get user by ID."""
        user = self.users.get(user_id)
        return user if user and not user.is_deleted else None

    async def get_user_by_email(self, email: str) -> User | None:
        """Get user by email address."""
        wanted = email.strip().lower()
        for user in self.users.values():
            if user.email.lower() == wanted and not user.is_deleted:
                return user
        return None

    async def create_user_with_otp(
        self,
        email: str,
        password_hash: str,
        otp_code: str,
        otp_expires_at: datetime,
        otp_cooldown_until: datetime,
    ) -> tuple[User, OtpRecord]:
        """Create an unverified user and its first OTP."""
        async with self._lock:
            if await self.get_user_by_email(email):
                raise ConflictError(ErrorCode.EMAIL_ALREADY_EXISTS)
            user = User(
                id=uuid.uuid4(),
                email=email,
                password_hash=password_hash,
                auth_provider=AuthProvider.EMAIL,
                created_at=_now(),
            )
            otp = OtpRecord(
                user_id=user.id,
                code=otp_code,
                expires_at=otp_expires_at,
                cooldown_until=otp_cooldown_until,
            )
            self.users[user.id] = user
            self.otps[user.id] = otp
        return user, otp

    async def create_google_user(
        self,
        email: str,
        google_id: str,
        first_name: str | None = None,
        last_name: str | None = None,
        profile_image_url: str | None = None,
    ) -> User:
        """Create a pre-verified Google user."""
        async with self._lock:
            if await self.get_user_by_email(email):
                raise ConflictError(ErrorCode.EMAIL_ALREADY_EXISTS)
            user = User(
                id=uuid.uuid4(),
                email=email,
                google_id=google_id,
                first_name=first_name,
                last_name=last_name,
                profile_image_url=profile_image_url,
                is_email_verified=True,
                auth_provider=AuthProvider.GOOGLE,
                created_at=_now(),
            )
            self.users[user.id] = user
        return user

    async def update_user(self, user_id: UUID, **fields: Any) -> User | None:
        """Update user fields."""
        user = await self.get_user_by_id(user_id)
        if user is None:
            return None
        updated = user.model_copy(update=fields)
        self.users[user_id] = updated
        return updated

    # OTP operations
    async def get_otp(self, user_id: UUID) -> OtpRecord | None:
        """Get the user's OTP record."""
        return self.otps.get(user_id)

    async def upsert_otp(
        self,
        user_id: UUID,
        code: str,
        expires_at: datetime,
        cooldown_until: datetime,
    ) -> OtpRecord:
        """Replace the user's OTP record."""
        record = OtpRecord(
            user_id=user_id, code=code, expires_at=expires_at, cooldown_until=cooldown_until
        )
        self.otps[user_id] = record
        return record

    async def delete_otp(self, user_id: UUID) -> None:
        """Delete the user's OTP record."""
        self.otps.pop(user_id, None)

    # Organization operations
    async def get_org_by_id(self, org_id: UUID) -> Organization | None:
        """Get organization by ID."""
        return self.orgs.get(org_id)

    async def get_org_by_name(self, name: str) -> Organization | None:
        """Get a live organization by name, case-insensitively."""
        wanted = name.strip().lower()
        for org in self.orgs.values():
            if org.name.lower() == wanted and not org.is_deleted:
                return org
        return None

    async def get_org_by_subdomain(self, subdomain: str) -> Organization | None:
        """Get organization by subdomain."""
        for org in self.orgs.values():
            if org.subdomain == subdomain:
                return org
        return None

    async def update_org(self, org_id: UUID, **fields: Any) -> Organization | None:
        """Update organization fields."""
        org = self.orgs.get(org_id)
        if org is None:
            return None
        updated = org.model_copy(update=fields)
        self.orgs[org_id] = updated
        return updated

    async def create_organization_with_owner(
        self,
        owner_id: UUID,
        name: str,
        subdomain: str,
        country: str | None = None,
        image_url: str | None = None,
    ) -> Organization:
        """Create organization, OWNER membership and default department."""
        async with self._lock:
            if await self.get_owner_membership(owner_id):
                raise ConflictError(ErrorCode.USER_ALREADY_REGISTERED)
            if await self.get_org_by_name(name):
                raise ConflictError(ErrorCode.ORGANIZATION_NAME_ALREADY_EXISTS)
            if await self.get_org_by_subdomain(subdomain):
                raise ConflictError(ErrorCode.SUBDOMAIN_UNAVAILABLE)

            now = _now()
            org = Organization(
                id=uuid.uuid4(),
                name=name,
                subdomain=subdomain,
                country=country,
                image_url=image_url,
                created_at=now,
            )
            for key, membership in list(self.memberships.items()):
                if membership.user_id == owner_id and membership.is_default:
                    self.memberships[key] = membership.model_copy(update={"is_default": False})
            self.orgs[org.id] = org
            self.memberships[(owner_id, org.id)] = OrgMembership(
                user_id=owner_id,
                org_id=org.id,
                role=OrgRole.OWNER,
                is_default=True,
                created_at=now,
            )
            department_id = uuid.uuid4()
            self.departments[department_id] = {
                "id": department_id,
                "org_id": org.id,
                "name": DEFAULT_DEPARTMENT_NAME,
                "is_default": True,
                "members": [owner_id],
            }
        return org

    # Membership operations
    async def get_membership(self, user_id: UUID, org_id: UUID) -> OrgMembership | None:
        """Get the membership row for (user, organization)."""
        return self.memberships.get((user_id, org_id))

    async def get_user_memberships(self, user_id: UUID) -> list[OrgMembership]:
        """Get memberships in live organizations, default first."""
        result = []
        for membership in self.memberships.values():
            org = self.orgs.get(membership.org_id)
            if membership.user_id != user_id or org is None:
                continue
            if org.is_active and not org.is_deleted:
                result.append(membership)
        return sorted(result, key=lambda m: (not m.is_default, m.created_at))

    async def get_owner_membership(self, user_id: UUID) -> OrgMembership | None:
        """Get the membership in which the user is OWNER."""
        for membership in self.memberships.values():
            org = self.orgs.get(membership.org_id)
            if (
                membership.user_id == user_id
                and membership.role == OrgRole.OWNER
                and org is not None
                and not org.is_deleted
            ):
                return membership
        return None

    async def update_membership(self, user_id: UUID, org_id: UUID, **fields: Any) -> None:
        """Update membership fields."""
        key = (user_id, org_id)
        membership = self.memberships.get(key)
        if membership is not None:
            self.memberships[key] = membership.model_copy(update=fields)

    async def consume_handoff_nonce(self, user_id: UUID, org_id: UUID, nonce: str) -> bool:
        """Null the handoff nonce only if it still equals ``nonce``."""
        async with self._lock:
            membership = self.memberships.get((user_id, org_id))
            if membership is None or membership.handoff_nonce != nonce:
                return False
            self.memberships[(user_id, org_id)] = membership.model_copy(
                update={"handoff_nonce": None}
            )
        return True

    async def clear_user_nonces(self, user_id: UUID) -> None:
        """Null every token nonce on every membership of the user."""
        cleared: dict[str, Any] = {"handoff_nonce": None}
        for fields in ALL_NONCE_FIELDS:
            cleared.update(fields.updates(None, None))
        for key, membership in list(self.memberships.items()):
            if membership.user_id == user_id:
                self.memberships[key] = membership.model_copy(update=cleared)

    # Subscription operations
    async def get_subscription(self, org_id: UUID) -> Subscription | None:
        """Get the organization's subscription with plan and features."""
        subscription = self.subscriptions.get(org_id)
        if subscription is None:
            return None
        # Report the plan as it is now
        plan = self.plans.get(subscription.plan.id, subscription.plan)
        return subscription.model_copy(update={"plan": plan})

    async def upsert_subscription(
        self,
        org_id: UUID,
        plan_id: UUID,
        billing_cycle: BillingCycle,
        start_date: datetime,
        end_date: datetime,
        member_count: int,
        total_price: Decimal,
    ) -> Subscription:
        """Create or replace the organization's ACTIVE subscription."""
        existing = self.subscriptions.get(org_id)
        subscription = Subscription(
            id=existing.id if existing else uuid.uuid4(),
            org_id=org_id,
            plan=self.plans[plan_id],
            status=SubscriptionStatus.ACTIVE,
            billing_cycle=billing_cycle,
            start_date=start_date,
            end_date=end_date,
            member_count=member_count,
            total_price=total_price,
        )
        self.subscriptions[org_id] = subscription
        return subscription

    async def get_plan(self, plan_id: UUID) -> Plan | None:
        """Get a plan with its features."""
        return self.plans.get(plan_id)

    async def list_active_plans(self) -> list[Plan]:
        """List active plans with their features."""
        return [plan for plan in self.plans.values() if plan.is_active]
