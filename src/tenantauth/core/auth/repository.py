"""Auth repository protocol for database operations."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from tenantauth.core.auth.types import (
    BillingCycle,
    Organization,
    OrgMembership,
    OtpRecord,
    Plan,
    Subscription,
    User,
)


@runtime_checkable
class AuthRepository(Protocol):
    """Protocol for auth database operations.

    Implementations provide actual storage (PostgreSQL, in-memory).
    Methods that write several rows must apply all of them or none.
    """

    # User operations
    async def get_user_by_id(self, user_id: UUID) -> User | None:
        """Get user by ID, excluding soft-deleted users."""
        ...

    async def get_user_by_email(self, email: str) -> User | None:
        """Get user by email (case-insensitive), excluding soft-deleted users."""
        ...

    async def create_user_with_otp(
        self,
        email: str,
        password_hash: str,
        otp_code: str,
        otp_expires_at: datetime,
        otp_cooldown_until: datetime,
    ) -> tuple[User, OtpRecord]:
        """Create an unverified user and its first OTP atomically."""
        ...

    async def create_google_user(
        self,
        email: str,
        google_id: str,
        first_name: str | None = None,
        last_name: str | None = None,
        profile_image_url: str | None = None,
    ) -> User:
        """Create a pre-verified user signed up through Google."""
        ...

    async def update_user(self, user_id: UUID, **fields: Any) -> User | None:
        """Update user columns and return the updated user."""
        ...

    # OTP operations
    async def get_otp(self, user_id: UUID) -> OtpRecord | None:
        """Get the user's current OTP record."""
        ...

    async def upsert_otp(
        self,
        user_id: UUID,
        code: str,
        expires_at: datetime,
        cooldown_until: datetime,
    ) -> OtpRecord:
        """Replace the user's OTP record."""
        ...

    async def delete_otp(self, user_id: UUID) -> None:
        """Delete the user's OTP record."""
        ...

    # Organization operations
    async def get_org_by_id(self, org_id: UUID) -> Organization | None:
        """Get organization by ID."""
        ...

    async def get_org_by_name(self, name: str) -> Organization | None:
        """Get a non-deleted organization by name (case-insensitive)."""
        ...

    async def get_org_by_subdomain(self, subdomain: str) -> Organization | None:
        """Get organization by subdomain."""
        ...

    async def update_org(self, org_id: UUID, **fields: Any) -> Organization | None:
        """Update organization columns."""
        ...

    async def create_organization_with_owner(
        self,
        owner_id: UUID,
        name: str,
        subdomain: str,
        country: str | None = None,
        image_url: str | None = None,
    ) -> Organization:
        """Create organization, default OWNER membership and default department atomically."""
        ...

    # Membership operations
    async def get_membership(self, user_id: UUID, org_id: UUID) -> OrgMembership | None:
        """Get the membership row for (user, organization)."""
        ...

    async def get_user_memberships(self, user_id: UUID) -> list[OrgMembership]:
        """Get all memberships of a user in active, non-deleted organizations.

        The default membership, if any, comes first.
        """
        ...

    async def get_owner_membership(self, user_id: UUID) -> OrgMembership | None:
        """Get the membership in which the user is OWNER."""
        ...

    async def update_membership(self, user_id: UUID, org_id: UUID, **fields: Any) -> None:
        """Update membership columns (role, default flag, nonces)."""
        ...

    async def consume_handoff_nonce(self, user_id: UUID, org_id: UUID, nonce: str) -> bool:
        """Null the handoff nonce if it equals ``nonce``.

        Returns:
            True if the nonce matched and was consumed.
        """
        ...

    async def clear_user_nonces(self, user_id: UUID) -> None:
        """Null every token nonce on every membership of the user."""
        ...

    # Subscription operations
    async def get_subscription(self, org_id: UUID) -> Subscription | None:
        """Get the organization's subscription with plan and features."""
        ...

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
        ...

    async def get_plan(self, plan_id: UUID) -> Plan | None:
        """Get a plan with its features."""
        ...

    async def list_active_plans(self) -> list[Plan]:
        """List active plans with their features."""
        ...
