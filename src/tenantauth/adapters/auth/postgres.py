"""PostgreSQL implementation of AuthRepository."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

import asyncpg
import structlog

from tenantauth.adapters.db.app_db import AppDatabase
from tenantauth.core.auth.platforms import ALL_NONCE_FIELDS
from tenantauth.core.auth.types import (
    AuthProvider,
    BillingCycle,
    Organization,
    OrgMembership,
    OrgRole,
    OtpRecord,
    Plan,
    PlanFeature,
    Subscription,
    SubscriptionStatus,
    User,
)
from tenantauth.core.exceptions import ConflictError, ErrorCode

logger = structlog.get_logger()

DEFAULT_DEPARTMENT_NAME = "General"

USER_COLUMNS = frozenset(
    {
        "password_hash",
        "first_name",
        "last_name",
        "country_code",
        "phone_number",
        "profile_image_url",
        "is_email_verified",
        "status",
        "is_deleted",
        "google_id",
        "is_password_reset",
        "password_reset_expires_at",
        "last_login_at",
    }
)
ORG_COLUMNS = frozenset({"name", "country", "image_url", "is_active", "is_deleted"})
NONCE_COLUMNS = frozenset(
    [f.access for f in ALL_NONCE_FIELDS] + [f.refresh for f in ALL_NONCE_FIELDS] + ["handoff_nonce"]
)
MEMBERSHIP_COLUMNS = NONCE_COLUMNS | {"role", "is_default"}

_SUBSCRIPTION_SELECT = """
    SELECT s.*, p.name AS plan_name, p.description AS plan_description,
           p.plan_type, p.monthly_price, p.yearly_price, p.is_active AS plan_is_active
    FROM subscriptions s
    JOIN plans p ON p.id = s.plan_id
"""


def _build_set(
    fields: dict[str, Any], allowed: frozenset[str], start: int = 1
) -> tuple[str, list[Any]]:
    """Build a ``SET a = $1, b = $2`` clause from whitelisted columns."""
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Unknown columns: {sorted(unknown)}")
    parts = []
    params: list[Any] = []
    for idx, (column, value) in enumerate(fields.items(), start=start):
        parts.append(f"{column} = ${idx}")
        params.append(value.value if hasattr(value, "value") else value)
    return ", ".join(parts), params


class PostgresAuthRepository:
    """PostgreSQL implementation of auth repository."""

    def __init__(self, db: AppDatabase) -> None:
        """Initialize with database connection.

        Args:
            db: Application database instance.
        """
        self._db = db

    def _row_to_user(self, row: dict[str, Any]) -> User:
        """Convert database row to User model."""
        return User(
            id=row["id"],
            email=row["email"],
            password_hash=row.get("password_hash"),
            first_name=row.get("first_name"),
            last_name=row.get("last_name"),
            country_code=row.get("country_code"),
            phone_number=row.get("phone_number"),
            profile_image_url=row.get("profile_image_url"),
            is_email_verified=row.get("is_email_verified", False),
            status=row.get("status", "ACTIVE"),
            is_deleted=row.get("is_deleted", False),
            auth_provider=row.get("auth_provider", "EMAIL"),
            google_id=row.get("google_id"),
            is_password_reset=row.get("is_password_reset", False),
            password_reset_expires_at=row.get("password_reset_expires_at"),
            last_login_at=row.get("last_login_at"),
            created_at=row["created_at"],
        )

    def _row_to_otp(self, row: dict[str, Any]) -> OtpRecord:
        return OtpRecord(
            user_id=row["user_id"],
            code=row["code"],
            expires_at=row["expires_at"],
            cooldown_until=row["cooldown_until"],
        )

    def _row_to_org(self, row: dict[str, Any]) -> Organization:
        """Convert database row to Organization model."""
        return Organization(
            id=row["id"],
            name=row["name"],
            subdomain=row["subdomain"],
            country=row.get("country"),
            image_url=row.get("image_url"),
            is_active=row.get("is_active", True),
            is_deleted=row.get("is_deleted", False),
            department_limit=row.get("department_limit", 5),
            created_at=row["created_at"],
        )

    def _row_to_membership(self, row: dict[str, Any]) -> OrgMembership:
        return OrgMembership(
            user_id=row["user_id"],
            org_id=row["org_id"],
            role=OrgRole(row["role"]),
            is_default=row.get("is_default", False),
            **{column: row.get(column) for column in NONCE_COLUMNS},
            created_at=row["created_at"],
        )

    def _row_to_plan(self, row: dict[str, Any], features: list[dict[str, Any]]) -> Plan:
        return Plan(
            id=row["id"],
            name=row["name"],
            description=row.get("description"),
            plan_type=row["plan_type"],
            monthly_price=row["monthly_price"],
            yearly_price=row["yearly_price"],
            is_active=row.get("is_active", True),
            features=[
                PlanFeature(
                    feature_name=f["feature_name"],
                    feature_type=f["feature_type"],
                    is_enabled=f["is_enabled"],
                    limit=f.get("limit"),
                )
                for f in features
            ],
        )

    async def _plan_features(self, plan_id: UUID) -> list[dict[str, Any]]:
        return await self._db.fetch_all(
            "SELECT * FROM plan_features WHERE plan_id = $1 ORDER BY feature_name",
            plan_id,
        )

    # User operations
    async def get_user_by_id(self, user_id: UUID) -> User | None:
        """Get user by ID."""
        row = await self._db.fetch_one(
            "SELECT * FROM users WHERE id = $1 AND NOT is_deleted",
            user_id,
        )
        return self._row_to_user(row) if row else None

    async def get_user_by_email(self, email: str) -> User | None:
        """Get user by email address."""
        row = await self._db.fetch_one(
            "SELECT * FROM users WHERE LOWER(email) = LOWER($1) AND NOT is_deleted",
            email.strip(),
        )
        return self._row_to_user(row) if row else None

    async def create_user_with_otp(
        self,
        email: str,
        password_hash: str,
        otp_code: str,
        otp_expires_at: datetime,
        otp_cooldown_until: datetime,
    ) -> tuple[User, OtpRecord]:
        """Create an unverified user and its first OTP in one transaction."""
        try:
            async with self._db.transaction() as conn:
                user_row = await conn.fetchrow(
                    """
                    INSERT INTO users (email, password_hash, auth_provider)
                    VALUES ($1, $2, $3)
                    RETURNING *
                    """,
                    email,
                    password_hash,
                    AuthProvider.EMAIL.value,
                )
                assert user_row is not None, "INSERT RETURNING should always return a row"
                otp_row = await conn.fetchrow(
                    """
                    INSERT INTO user_otps (user_id, code, expires_at, cooldown_until)
                    VALUES ($1, $2, $3, $4)
                    RETURNING *
                    """,
                    user_row["id"],
                    otp_code,
                    otp_expires_at,
                    otp_cooldown_until,
                )
                assert otp_row is not None
        except asyncpg.UniqueViolationError:
            raise ConflictError(ErrorCode.EMAIL_ALREADY_EXISTS) from None
        return self._row_to_user(dict(user_row)), self._row_to_otp(dict(otp_row))

    async def create_google_user(
        self,
        email: str,
        google_id: str,
        first_name: str | None = None,
        last_name: str | None = None,
        profile_image_url: str | None = None,
    ) -> User:
        """Create a pre-verified Google user."""
        try:
            row = await self._db.fetch_one(
                """
                INSERT INTO users (email, google_id, first_name, last_name,
                                   profile_image_url, is_email_verified, auth_provider)
                VALUES ($1, $2, $3, $4, $5, TRUE, $6)
                RETURNING *
                """,
                email,
                google_id,
                first_name,
                last_name,
                profile_image_url,
                AuthProvider.GOOGLE.value,
            )
        except asyncpg.UniqueViolationError:
            raise ConflictError(ErrorCode.EMAIL_ALREADY_EXISTS) from None
        assert row is not None, "INSERT RETURNING should always return a row"
        return self._row_to_user(row)

    async def update_user(self, user_id: UUID, **fields: Any) -> User | None:
        """Update user fields."""
        if not fields:
            return await self.get_user_by_id(user_id)
        clause, params = _build_set(fields, USER_COLUMNS)
        params.append(user_id)
        row = await self._db.fetch_one(
            f"""
            UPDATE users SET {clause}, updated_at = NOW()
            WHERE id = ${len(params)}
            RETURNING *
            """,
            *params,
        )
        return self._row_to_user(row) if row else None

    # OTP operations
    async def get_otp(self, user_id: UUID) -> OtpRecord | None:
        """Get the user's OTP record."""
        row = await self._db.fetch_one("SELECT * FROM user_otps WHERE user_id = $1", user_id)
        return self._row_to_otp(row) if row else None

    async def upsert_otp(
        self,
        user_id: UUID,
        code: str,
        expires_at: datetime,
        cooldown_until: datetime,
    ) -> OtpRecord:
        """Replace the user's OTP record."""
        row = await self._db.fetch_one(
            """
            INSERT INTO user_otps (user_id, code, expires_at, cooldown_until)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (user_id) DO UPDATE
            SET code = EXCLUDED.code,
                expires_at = EXCLUDED.expires_at,
                cooldown_until = EXCLUDED.cooldown_until
            RETURNING *
            """,
            user_id,
            code,
            expires_at,
            cooldown_until,
        )
        assert row is not None
        return self._row_to_otp(row)

    async def delete_otp(self, user_id: UUID) -> None:
        """Delete the user's OTP record."""
        await self._db.execute("DELETE FROM user_otps WHERE user_id = $1", user_id)

    # Organization operations
    async def get_org_by_id(self, org_id: UUID) -> Organization | None:
        """Get organization by ID."""
        row = await self._db.fetch_one("SELECT * FROM organizations WHERE id = $1", org_id)
        return self._row_to_org(row) if row else None

    async def get_org_by_name(self, name: str) -> Organization | None:
        """Get a live organization by name, case-insensitively."""
        row = await self._db.fetch_one(
            "SELECT * FROM organizations WHERE LOWER(name) = LOWER($1) AND NOT is_deleted",
            name,
        )
        return self._row_to_org(row) if row else None

    async def get_org_by_subdomain(self, subdomain: str) -> Organization | None:
        """Get organization by subdomain."""
        row = await self._db.fetch_one(
            "SELECT * FROM organizations WHERE subdomain = $1",
            subdomain,
        )
        return self._row_to_org(row) if row else None

    async def update_org(self, org_id: UUID, **fields: Any) -> Organization | None:
        """Update organization fields."""
        if not fields:
            return await self.get_org_by_id(org_id)
        clause, params = _build_set(fields, ORG_COLUMNS)
        params.append(org_id)
        try:
            row = await self._db.fetch_one(
                f"""
                UPDATE organizations SET {clause}, updated_at = NOW()
                WHERE id = ${len(params)}
                RETURNING *
                """,
                *params,
            )
        except asyncpg.UniqueViolationError:
            raise ConflictError(ErrorCode.ORGANIZATION_NAME_ALREADY_EXISTS) from None
        return self._row_to_org(row) if row else None

    async def create_organization_with_owner(
        self,
        owner_id: UUID,
        name: str,
        subdomain: str,
        country: str | None = None,
        image_url: str | None = None,
    ) -> Organization:
        """Create organization, OWNER membership and default department atomically.

        The new membership becomes the owner's default.
        """
        try:
            async with self._db.transaction() as conn:
                org_row = await conn.fetchrow(
                    """
                    INSERT INTO organizations (name, subdomain, country, image_url)
                    VALUES ($1, $2, $3, $4)
                    RETURNING *
                    """,
                    name,
                    subdomain,
                    country,
                    image_url,
                )
                assert org_row is not None
                await conn.execute(
                    "UPDATE org_memberships SET is_default = FALSE WHERE user_id = $1",
                    owner_id,
                )
                await conn.execute(
                    """
                    INSERT INTO org_memberships (user_id, org_id, role, is_default)
                    VALUES ($1, $2, $3, TRUE)
                    """,
                    owner_id,
                    org_row["id"],
                    OrgRole.OWNER.value,
                )
                department_id = await conn.fetchval(
                    """
                    INSERT INTO departments (org_id, name, is_default)
                    VALUES ($1, $2, TRUE)
                    RETURNING id
                    """,
                    org_row["id"],
                    DEFAULT_DEPARTMENT_NAME,
                )
                await conn.execute(
                    "INSERT INTO department_members (department_id, user_id) VALUES ($1, $2)",
                    department_id,
                    owner_id,
                )
        except asyncpg.UniqueViolationError as e:
            constraint = getattr(e, "constraint_name", "") or ""
            if "subdomain" in constraint:
                raise ConflictError(ErrorCode.SUBDOMAIN_UNAVAILABLE) from None
            if "owner" in constraint:
                raise ConflictError(ErrorCode.USER_ALREADY_REGISTERED) from None
            raise ConflictError(ErrorCode.ORGANIZATION_NAME_ALREADY_EXISTS) from None
        return self._row_to_org(dict(org_row))

    # Membership operations
    async def get_membership(self, user_id: UUID, org_id: UUID) -> OrgMembership | None:
        """Get the membership row for (user, organization)."""
        row = await self._db.fetch_one(
            "SELECT * FROM org_memberships WHERE user_id = $1 AND org_id = $2",
            user_id,
            org_id,
        )
        return self._row_to_membership(row) if row else None

    async def get_user_memberships(self, user_id: UUID) -> list[OrgMembership]:
        """Get memberships in live organizations, default first."""
        rows = await self._db.fetch_all(
            """
            SELECT m.*
            FROM org_memberships m
            JOIN organizations o ON o.id = m.org_id
            WHERE m.user_id = $1 AND o.is_active AND NOT o.is_deleted
            ORDER BY m.is_default DESC, m.created_at
            """,
            user_id,
        )
        return [self._row_to_membership(row) for row in rows]

    async def get_owner_membership(self, user_id: UUID) -> OrgMembership | None:
        """Get the membership in which the user is OWNER."""
        row = await self._db.fetch_one(
            """
            SELECT m.*
            FROM org_memberships m
            JOIN organizations o ON o.id = m.org_id
            WHERE m.user_id = $1 AND m.role = $2 AND NOT o.is_deleted
            LIMIT 1
            """,
            user_id,
            OrgRole.OWNER.value,
        )
        return self._row_to_membership(row) if row else None

    async def update_membership(self, user_id: UUID, org_id: UUID, **fields: Any) -> None:
        """Update membership fields."""
        if not fields:
            return
        clause, params = _build_set(fields, MEMBERSHIP_COLUMNS)
        params.extend([user_id, org_id])
        await self._db.execute(
            f"""
            UPDATE org_memberships SET {clause}
            WHERE user_id = ${len(params) - 1} AND org_id = ${len(params)}
            """,
            *params,
        )

    async def consume_handoff_nonce(self, user_id: UUID, org_id: UUID, nonce: str) -> bool:
        """Null the handoff nonce only if it still equals ``nonce``."""
        row = await self._db.fetch_one(
            """
            UPDATE org_memberships SET handoff_nonce = NULL
            WHERE user_id = $1 AND org_id = $2 AND handoff_nonce = $3
            RETURNING user_id
            """,
            user_id,
            org_id,
            nonce,
        )
        return row is not None

    async def clear_user_nonces(self, user_id: UUID) -> None:
        """Null every token nonce on every membership of the user."""
        clause = ", ".join(f"{column} = NULL" for column in sorted(NONCE_COLUMNS))
        await self._db.execute(
            f"UPDATE org_memberships SET {clause} WHERE user_id = $1",
            user_id,
        )

    # Subscription operations
    async def get_subscription(self, org_id: UUID) -> Subscription | None:
        """Get the organization's subscription with plan and features."""
        row = await self._db.fetch_one(f"{_SUBSCRIPTION_SELECT} WHERE s.org_id = $1", org_id)
        if row is None:
            return None
        plan_row = {
            "id": row["plan_id"],
            "name": row["plan_name"],
            "description": row["plan_description"],
            "plan_type": row["plan_type"],
            "monthly_price": row["monthly_price"],
            "yearly_price": row["yearly_price"],
            "is_active": row["plan_is_active"],
        }
        plan = self._row_to_plan(plan_row, await self._plan_features(row["plan_id"]))
        return Subscription(
            id=row["id"],
            org_id=row["org_id"],
            plan=plan,
            status=SubscriptionStatus(row["status"]),
            billing_cycle=BillingCycle(row["billing_cycle"]),
            start_date=row["start_date"],
            end_date=row["end_date"],
            member_count=row["member_count"],
            total_price=row["total_price"],
        )

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
        await self._db.execute(
            """
            INSERT INTO subscriptions (org_id, plan_id, status, billing_cycle,
                                       start_date, end_date, member_count, total_price)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            ON CONFLICT (org_id) DO UPDATE
            SET plan_id = EXCLUDED.plan_id,
                status = EXCLUDED.status,
                billing_cycle = EXCLUDED.billing_cycle,
                start_date = EXCLUDED.start_date,
                end_date = EXCLUDED.end_date,
                member_count = EXCLUDED.member_count,
                total_price = EXCLUDED.total_price,
                updated_at = NOW()
            """,
            org_id,
            plan_id,
            SubscriptionStatus.ACTIVE.value,
            billing_cycle.value,
            start_date,
            end_date,
            member_count,
            total_price,
        )
        subscription = await self.get_subscription(org_id)
        assert subscription is not None
        return subscription

    async def get_plan(self, plan_id: UUID) -> Plan | None:
        """Get a plan with its features."""
        row = await self._db.fetch_one("SELECT * FROM plans WHERE id = $1", plan_id)
        if row is None:
            return None
        return self._row_to_plan(row, await self._plan_features(plan_id))

    async def list_active_plans(self) -> list[Plan]:
        """List active plans with their features."""
        rows = await self._db.fetch_all(
            "SELECT * FROM plans WHERE is_active ORDER BY plan_type, monthly_price"
        )
        return [self._row_to_plan(row, await self._plan_features(row["id"])) for row in rows]
