"""Auth domain types."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class UserStatus(str, Enum):
    """Account lifecycle status."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"


class AuthProvider(str, Enum):
    """How the account was created."""

    EMAIL = "EMAIL"
    GOOGLE = "GOOGLE"


class OrgRole(str, Enum):
    """Organization membership roles."""

    OWNER = "OWNER"
    MANAGER = "MANAGER"
    WORKER = "WORKER"


class SubscriptionStatus(str, Enum):
    """Organization subscription status."""

    ACTIVE = "ACTIVE"
    PENDING = "PENDING"
    SUSPENDED = "SUSPENDED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class BillingCycle(str, Enum):
    """Subscription billing period."""

    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class PlanType(str, Enum):
    """Plan tiers offered in the catalogue."""

    STANDARD = "STANDARD"
    PREMIUM = "PREMIUM"


class FeatureType(str, Enum):
    """How a plan feature is measured."""

    BOOLEAN = "BOOLEAN"
    NUMERIC = "NUMERIC"


class User(BaseModel):
    """User domain model."""

    id: UUID
    email: EmailStr
    password_hash: str | None = None  # None for Google-only users
    first_name: str | None = None
    last_name: str | None = None
    country_code: str | None = None
    phone_number: str | None = None
    profile_image_url: str | None = None
    is_email_verified: bool = False
    status: UserStatus = UserStatus.ACTIVE
    is_deleted: bool = False
    auth_provider: AuthProvider = AuthProvider.EMAIL
    google_id: str | None = None
    is_password_reset: bool = False
    password_reset_expires_at: datetime | None = None
    last_login_at: datetime | None = None
    created_at: datetime

    @property
    def is_profile_complete(self) -> bool:
        """Name and phone are required before joining an organization."""
        return bool(self.first_name) and bool(self.phone_number)


class OtpRecord(BaseModel):
    """One-time passcode issued to a user."""

    user_id: UUID
    code: str
    expires_at: datetime
    cooldown_until: datetime


class Organization(BaseModel):
    """Organization (tenant) domain model."""

    id: UUID
    name: str
    subdomain: str
    country: str | None = None
    image_url: str | None = None
    is_active: bool = True
    is_deleted: bool = False
    department_limit: int = 5
    created_at: datetime


class OrgMembership(BaseModel):
    """User's membership in an organization, with per-platform token nonces."""

    user_id: UUID
    org_id: UUID
    role: OrgRole
    is_default: bool = False
    website_access_nonce: str | None = None
    website_refresh_nonce: str | None = None
    app_access_nonce: str | None = None
    app_refresh_nonce: str | None = None
    extension_access_nonce: str | None = None
    extension_refresh_nonce: str | None = None
    handoff_nonce: str | None = None
    created_at: datetime


class PlanFeature(BaseModel):
    """A feature entry of a plan."""

    feature_name: str
    feature_type: FeatureType = FeatureType.BOOLEAN
    is_enabled: bool = True
    limit: int | None = None


class Plan(BaseModel):
    """Subscription plan with its features."""

    id: UUID
    name: str
    description: str | None = None
    plan_type: PlanType
    monthly_price: Decimal
    yearly_price: Decimal
    is_active: bool = True
    features: list[PlanFeature] = Field(default_factory=list)


class Subscription(BaseModel):
    """An organization's subscription to a plan."""

    id: UUID
    org_id: UUID
    plan: Plan
    status: SubscriptionStatus
    billing_cycle: BillingCycle
    start_date: datetime
    end_date: datetime
    member_count: int = 1
    total_price: Decimal = Decimal("0")
