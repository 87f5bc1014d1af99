"""Auth service for signup, login, onboarding and token management."""

from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import NoReturn
from uuid import UUID

import structlog

from tenantauth.core.auth.collaborators import (
    GoogleTokenType,
    IdentityProvider,
    OtpPurpose,
    OtpSender,
)
from tenantauth.core.auth.gate import AuthContext, nonces_equal
from tenantauth.core.auth.jwt import IDENTITY_TOKEN_LIFETIME, TokenIssuer
from tenantauth.core.auth.otp import (
    OTP_COOLDOWN,
    OTP_LIFETIME,
    generate_otp,
    in_cooldown,
    is_expired,
    new_otp_record,
    otp_matches,
)
from tenantauth.core.auth.outcomes import (
    Authenticated,
    GoogleOutcome,
    HandoffIssued,
    LoginOutcome,
    NeedsOrganization,
    NeedsPlan,
    NeedsProfile,
    PendingStep,
    Registered,
    next_step_error,
)
from tenantauth.core.auth.password import hash_password, verify_password
from tenantauth.core.auth.platforms import Platform, nonce_fields, parse_platform
from tenantauth.core.auth.repository import AuthRepository
from tenantauth.core.auth.subdomain import generate_subdomain
from tenantauth.core.auth.types import (
    BillingCycle,
    Organization,
    OrgMembership,
    OrgRole,
    OtpRecord,
    Plan,
    PlanType,
    SubscriptionStatus,
    User,
    UserStatus,
)
from tenantauth.core.exceptions import (
    AccessDeniedError,
    AuthenticationError,
    ConflictError,
    ErrorCode,
    InfrastructureError,
    InvalidRequestError,
    NotFoundError,
)
from tenantauth.core.security.brute_force import BruteForceGuards

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(UTC)


def normalize_email(email: str) -> str:
    """Emails are unique case-insensitively."""
    return email.strip().lower()


def add_months(start: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    days_in_month = [31, 29 if _is_leap(year) else 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31]
    return start.replace(year=year, month=month, day=min(start.day, days_in_month[month - 1]))


def _is_leap(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


@dataclass(frozen=True)
class SignupResult:
    """Signup response: the address and the issued code."""

    email: str
    otp: str


@dataclass(frozen=True)
class OtpVerified:
    """A verified OTP and the bare token to continue with."""

    token: str
    password_reset: bool


class AuthService:
    """Service for authentication and onboarding workflows."""

    def __init__(
        self,
        repo: AuthRepository,
        tokens: TokenIssuer,
        guards: BruteForceGuards,
        otp_sender: OtpSender,
        identity_provider: IdentityProvider | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the service.

        Args:
            repo: Auth repository for database operations.
            tokens: Token issuer/verifier.
            guards: IP and email brute-force guards.
            otp_sender: OTP delivery.
            identity_provider: Google identity exchange, None if not configured.
            clock: Time source, injectable for tests.
        """
        self._repo = repo
        self._tokens = tokens
        self._guards = guards
        self._otp_sender = otp_sender
        self._identity_provider = identity_provider
        self._clock = clock

    # Signup and OTP

    async def signup(self, email: str, password: str, client_ip: str | None) -> SignupResult:
        """Create an unverified identity and send its first OTP.

        Args:
            email: Email address.
            password: Plain text password.
            client_ip: Caller's IP for brute-force accounting.

        Returns:
            The normalized email and the issued code.

        Raises:
            ConflictError: EMAIL_ALREADY_EXISTS.
        """
        email = normalize_email(email)
        self._guards.email.check_not_blocked(email)

        if await self._repo.get_user_by_email(email):
            self._guards.record_failure(client_ip, email)
            raise ConflictError(ErrorCode.EMAIL_ALREADY_EXISTS)

        now = self._clock()
        try:
            user, otp = await self._repo.create_user_with_otp(
                email=email,
                password_hash=hash_password(password),
                otp_code=generate_otp(),
                otp_expires_at=now + OTP_LIFETIME,
                otp_cooldown_until=now + OTP_COOLDOWN,
            )
        except ConflictError:
            # Concurrent signup won the unique email index
            self._guards.record_failure(client_ip, email)
            raise
        logger.info("signup_completed", user_id=str(user.id))

        await self._otp_sender.send_otp(email, otp.code, OtpPurpose.VERIFY_EMAIL)
        return SignupResult(email=email, otp=otp.code)

    async def verify_otp(self, email: str, code: str, client_ip: str | None) -> OtpVerified:
        """Verify a code, mark the email verified and issue a bare token.

        Raises:
            NotFoundError: INVALID_EMAIL_OR_PASSWORD if the identity is unknown.
            InvalidRequestError: INVALID_OTP or OTP_EXPIRED.
        """
        email = normalize_email(email)
        self._guards.email.check_not_blocked(email)

        user = await self._repo.get_user_by_email(email)
        if user is None:
            self._guards.record_failure(client_ip, email)
            raise NotFoundError(ErrorCode.INVALID_EMAIL_OR_PASSWORD)

        record = await self._repo.get_otp(user.id)
        if record is None or not otp_matches(record, code):
            self._guards.record_failure(client_ip, email)
            logger.warning("otp_rejected", user_id=str(user.id))
            raise InvalidRequestError(ErrorCode.INVALID_OTP, data={"email": email})

        now = self._clock()
        if is_expired(record, now):
            raise InvalidRequestError(ErrorCode.OTP_EXPIRED, data={"email": email})

        password_reset = self._reset_pending(user, now)
        updates: dict[str, object] = {"is_email_verified": True}
        if password_reset:
            updates["password_reset_expires_at"] = now + IDENTITY_TOKEN_LIFETIME
        await self._repo.update_user(user.id, **updates)
        await self._repo.delete_otp(user.id)

        logger.info("otp_verified", user_id=str(user.id), password_reset=password_reset)
        return OtpVerified(
            token=self._tokens.issue_identity_token(user.id),
            password_reset=password_reset,
        )

    async def resend_otp(self, email: str, client_ip: str | None) -> None:
        """Regenerate and resend the identity's code once the cooldown has passed."""
        email = normalize_email(email)
        self._guards.email.check_not_blocked(email)

        user = await self._repo.get_user_by_email(email)
        if user is None:
            self._guards.record_failure(client_ip, email)
            raise NotFoundError(ErrorCode.INVALID_EMAIL_OR_PASSWORD, data={"email": email})

        purpose = (
            OtpPurpose.RESET_PASSWORD
            if self._reset_pending(user, self._clock())
            else OtpPurpose.VERIFY_EMAIL
        )
        await self._issue_otp(user, client_ip, purpose)

    async def forgot_password(self, email: str, client_ip: str | None) -> None:
        """Start a password reset: flag the identity and send a code.

        The flag expires with the code unless the code is verified in time.
        """
        email = normalize_email(email)
        self._guards.email.check_not_blocked(email)

        user = await self._repo.get_user_by_email(email)
        if user is None:
            self._guards.record_failure(client_ip, email)
            raise NotFoundError(ErrorCode.INVALID_EMAIL_OR_PASSWORD, data={"email": email})

        record = await self._issue_otp(user, client_ip, OtpPurpose.RESET_PASSWORD)
        await self._repo.update_user(
            user.id,
            is_password_reset=True,
            password_reset_expires_at=record.expires_at,
        )
        logger.info("password_reset_requested", user_id=str(user.id))

    async def reset_password(self, user: User, new_password: str) -> None:
        """Set a new password and revoke every issued token of the identity.

        Args:
            user: Identity resolved from the bare token.
            new_password: Plain text password.

        Raises:
            InvalidRequestError: PASSWORD_RESET_NOT_REQUESTED or PASSWORD_RESET_EXPIRED.
        """
        if not user.is_password_reset:
            raise InvalidRequestError(ErrorCode.PASSWORD_RESET_NOT_REQUESTED)
        if not self._reset_pending(user, self._clock()):
            await self._repo.update_user(
                user.id, is_password_reset=False, password_reset_expires_at=None
            )
            raise InvalidRequestError(ErrorCode.PASSWORD_RESET_EXPIRED)

        await self._repo.update_user(
            user.id,
            password_hash=hash_password(new_password),
            is_password_reset=False,
            password_reset_expires_at=None,
        )
        await self._repo.clear_user_nonces(user.id)
        logger.info("password_reset_completed", user_id=str(user.id))

    async def _issue_otp(
        self, user: User, client_ip: str | None, purpose: OtpPurpose
    ) -> OtpRecord:
        now = self._clock()
        current = await self._repo.get_otp(user.id)
        if current is not None and in_cooldown(current, now):
            self._guards.record_failure(client_ip, user.email)
            raise InvalidRequestError(ErrorCode.OTP_COOLDOWN_TIME)

        fresh = new_otp_record(user.id, now)
        record = await self._repo.upsert_otp(
            user.id, fresh.code, fresh.expires_at, fresh.cooldown_until
        )
        await self._otp_sender.send_otp(user.email, record.code, purpose)
        return record

    @staticmethod
    def _reset_pending(user: User, now: datetime) -> bool:
        if not user.is_password_reset:
            return False
        expires_at = user.password_reset_expires_at
        return expires_at is not None and now <= expires_at

    # Onboarding

    async def complete_profile(
        self,
        user: User,
        first_name: str,
        phone_number: str,
        last_name: str | None = None,
        country_code: str | None = None,
    ) -> User:
        """Fill in the fields required before joining an organization."""
        updated = await self._repo.update_user(
            user.id,
            first_name=first_name,
            last_name=last_name if last_name is not None else user.last_name,
            country_code=country_code if country_code is not None else user.country_code,
            phone_number=phone_number,
        )
        if updated is None:
            raise NotFoundError(ErrorCode.USER_NOT_FOUND)
        logger.info("profile_completed", user_id=str(user.id))
        return updated

    async def verify_token(self, user: User) -> None:
        """Check that onboarding is complete.

        Raises:
            NextStepRequired: Profile, organization or plan step pending.
            AccessDeniedError: USER_PLAN_DEACTIVATED.
        """
        step = await self.resolve_onboarding(user)
        if not isinstance(step, OrgMembership):
            raise next_step_error(step)

    async def resolve_onboarding(self, user: User) -> PendingStep | OrgMembership:
        """Find the pending onboarding step or the membership to sign into.

        Owners sign into their owned organization, which needs an ACTIVE
        subscription. Other members sign into their default membership if
        its organization is subscribed, else the first subscribed one.
        """
        if not user.is_profile_complete:
            return NeedsProfile(token=self._tokens.issue_identity_token(user.id))

        memberships = await self._repo.get_user_memberships(user.id)
        if not memberships:
            return NeedsOrganization(token=self._tokens.issue_identity_token(user.id))

        owned = next((m for m in memberships if m.role == OrgRole.OWNER), None)
        if owned is not None:
            subscription = await self._repo.get_subscription(owned.org_id)
            if subscription is None:
                return NeedsPlan(
                    token=self._tokens.issue_identity_token(user.id), org_id=owned.org_id
                )
            if subscription.status != SubscriptionStatus.ACTIVE:
                raise AccessDeniedError(ErrorCode.USER_PLAN_DEACTIVATED)
            return owned

        for membership in memberships:
            subscription = await self._repo.get_subscription(membership.org_id)
            if subscription is not None and subscription.status == SubscriptionStatus.ACTIVE:
                return membership
        raise AccessDeniedError(ErrorCode.USER_PLAN_DEACTIVATED)

    # Login

    async def login(
        self,
        email: str,
        password: str,
        platform: Platform,
        client_ip: str | None,
    ) -> LoginOutcome:
        """Authenticate with email and password on a platform.

        WEBSITE logins receive a subdomain handoff token; APP and
        EXTENSION logins receive access and refresh tokens directly.

        Raises:
            AuthenticationError: INVALID_CREDENTIAL or EMAIL_NOT_VERIFIED.
            AccessDeniedError: Account deactivated/suspended or plan deactivated.
        """
        platform = parse_platform(platform)
        email = normalize_email(email)
        self._guards.email.check_not_blocked(email)

        user = await self._validate_credentials(email, password, client_ip)
        step = await self.resolve_onboarding(user)
        if not isinstance(step, OrgMembership):
            return step

        await self._repo.update_user(user.id, last_login_at=self._clock())
        if client_ip:
            self._guards.ip.reset(client_ip)

        logger.info(
            "login_succeeded",
            user_id=str(user.id),
            org_id=str(step.org_id),
            platform=platform.value,
        )
        return await self._issue_for_platform(user.id, step.org_id, platform)

    async def _validate_credentials(
        self, email: str, password: str, client_ip: str | None
    ) -> User:
        user = await self._repo.get_user_by_email(email)

        if user is None or not verify_password(password, user.password_hash):
            self._reject_login(ErrorCode.INVALID_CREDENTIAL, email, client_ip)
        if not user.is_email_verified:
            self._reject_login(ErrorCode.EMAIL_NOT_VERIFIED, email, client_ip)
        state_code = self._account_state_code(user)
        if state_code is not None:
            self._reject_login(state_code, email, client_ip)
        return user

    def _reject_login(self, code: ErrorCode, email: str, client_ip: str | None) -> NoReturn:
        self._guards.record_failure(client_ip, email)
        logger.warning("login_failed", reason=code.value, client_ip=client_ip)
        if code in (ErrorCode.INVALID_CREDENTIAL, ErrorCode.EMAIL_NOT_VERIFIED):
            raise AuthenticationError(code)
        raise AccessDeniedError(code)

    @staticmethod
    def _account_state_code(user: User) -> ErrorCode | None:
        if user.status == UserStatus.SUSPENDED:
            return ErrorCode.USER_ACCOUNT_SUSPENDED
        if user.status != UserStatus.ACTIVE:
            return ErrorCode.USER_ACCOUNT_DEACTIVATED
        return None

    async def _issue_for_platform(
        self, user_id: UUID, org_id: UUID, platform: Platform
    ) -> Authenticated | HandoffIssued:
        if platform is Platform.WEBSITE:
            return await self._issue_handoff(user_id, org_id)
        return await self._issue_tokens(user_id, org_id, platform)

    async def _issue_tokens(
        self, user_id: UUID, org_id: UUID, platform: Platform
    ) -> Authenticated:
        issued = self._tokens.issue_access_and_refresh(user_id, org_id, platform)
        await self._repo.update_membership(
            user_id,
            org_id,
            **nonce_fields(platform).updates(issued.access_nonce, issued.refresh_nonce),
        )
        return Authenticated(
            access_token=issued.access_token,
            refresh_token=issued.refresh_token,
            org_id=org_id,
            user_id=user_id,
        )

    async def _issue_handoff(self, user_id: UUID, org_id: UUID) -> HandoffIssued:
        org = await self._repo.get_org_by_id(org_id)
        if org is None:
            raise NotFoundError(ErrorCode.ORGANIZATION_NOT_FOUND)

        token, nonce = self._tokens.issue_handoff_token(user_id, org_id)
        await self._repo.update_membership(
            user_id,
            org_id,
            handoff_nonce=nonce,
            **nonce_fields(Platform.WEBSITE).updates(None, include_refresh=False),
        )
        return HandoffIssued(
            subdomain_token=token,
            org_id=org.id,
            org_name=org.name,
            subdomain=org.subdomain,
        )

    async def redeem_handoff(self, token: str, client_ip: str | None) -> Authenticated:
        """Exchange a subdomain handoff token for WEBSITE access and refresh tokens.

        Each handoff token can be redeemed once.

        Raises:
            AuthenticationError: TOKEN_INVALID if already redeemed or superseded.
        """
        claims = self._tokens.verify_handoff_token(token)
        consumed = await self._repo.consume_handoff_nonce(
            claims.identity_id, claims.organization_id, claims.handoff_nonce
        )
        if not consumed:
            logger.warning(
                "handoff_token_rejected",
                user_id=str(claims.identity_id),
                org_id=str(claims.organization_id),
            )
            raise AuthenticationError(ErrorCode.TOKEN_INVALID)

        if client_ip:
            self._guards.ip.reset(client_ip)
        logger.info("handoff_redeemed", user_id=str(claims.identity_id))
        return await self._issue_tokens(
            claims.identity_id, claims.organization_id, Platform.WEBSITE
        )

    async def google_login(
        self,
        credential: str,
        platform: Platform,
        client_ip: str | None,
        token_type: GoogleTokenType = GoogleTokenType.CODE,
    ) -> GoogleOutcome:
        """Sign in (or up) with a Google authorization code or ID token.

        Raises:
            AuthenticationError: GOOGLE_* codes from the provider.
            InfrastructureError: Google sign-in not configured or unreachable.
        """
        platform = parse_platform(platform)
        if self._identity_provider is None:
            raise InfrastructureError("google identity provider not configured")

        identity = await self._identity_provider.exchange(credential, token_type)
        if not identity.email_verified:
            raise AuthenticationError(ErrorCode.GOOGLE_EMAIL_NOT_VERIFIED)

        email = normalize_email(identity.email)
        user = await self._repo.get_user_by_email(email)
        if user is None:
            user = await self._repo.create_google_user(
                email=email,
                google_id=identity.subject,
                first_name=identity.given_name,
                last_name=identity.family_name,
                profile_image_url=identity.picture,
            )
            if client_ip:
                self._guards.ip.reset(client_ip)
            logger.info("google_signup_completed", user_id=str(user.id))
            return Registered(token=self._tokens.issue_identity_token(user.id), user_id=user.id)

        state_code = self._account_state_code(user)
        if state_code is not None:
            raise AccessDeniedError(state_code)

        if user.google_id != identity.subject or not user.is_email_verified:
            user = (
                await self._repo.update_user(
                    user.id, google_id=identity.subject, is_email_verified=True
                )
                or user
            )

        step = await self.resolve_onboarding(user)
        if not isinstance(step, OrgMembership):
            return step

        await self._repo.update_user(user.id, last_login_at=self._clock())
        if client_ip:
            self._guards.ip.reset(client_ip)
        logger.info("google_login_succeeded", user_id=str(user.id), platform=platform.value)
        return await self._issue_for_platform(user.id, step.org_id, platform)

    # Token lifecycle

    async def refresh(self, refresh_token: str, platform: Platform) -> str:
        """Issue a new access token; the refresh token itself is not rotated.

        Raises:
            TokenError: Refresh token expired or invalid.
            AuthenticationError: INVALID_REFRESH_TOKEN on nonce mismatch.
        """
        platform = parse_platform(platform)
        claims = self._tokens.verify_refresh_token(refresh_token, platform)
        if claims.platform is not platform:
            raise AuthenticationError(ErrorCode.INVALID_REFRESH_TOKEN)

        membership = await self._repo.get_membership(claims.identity_id, claims.organization_id)
        fields = nonce_fields(platform)
        if membership is None or not nonces_equal(
            fields.refresh_nonce(membership), claims.refresh_nonce
        ):
            logger.warning(
                "refresh_token_rejected",
                user_id=str(claims.identity_id),
                platform=platform.value,
            )
            raise AuthenticationError(ErrorCode.INVALID_REFRESH_TOKEN)

        user = await self._repo.get_user_by_id(claims.identity_id)
        if user is None or user.status != UserStatus.ACTIVE:
            raise AccessDeniedError(ErrorCode.USER_ACCOUNT_NOT_ACTIVE)

        access_token, nonce = self._tokens.issue_access_token(
            claims.identity_id, claims.organization_id, platform
        )
        await self._repo.update_membership(
            claims.identity_id,
            claims.organization_id,
            **fields.updates(nonce, include_refresh=False),
        )
        return access_token

    async def logout(self, context: AuthContext) -> None:
        """Revoke the caller's access and refresh tokens on its platform."""
        await self._repo.update_membership(
            context.user_id,
            context.org_id,
            **nonce_fields(context.platform).updates(None, None),
        )
        logger.info(
            "logout", user_id=str(context.user_id), platform=context.platform.value
        )

    # Organization and plan

    async def register_organization(
        self,
        user: User,
        name: str,
        country: str | None = None,
        image_url: str | None = None,
    ) -> Organization:
        """Create the identity's organization with a unique subdomain.

        Raises:
            NextStepRequired: INCOMPLETE_PROFILE.
            ConflictError: USER_ALREADY_REGISTERED, ORGANIZATION_NAME_ALREADY_EXISTS
                or SUBDOMAIN_UNAVAILABLE.
        """
        if not user.is_profile_complete:
            raise next_step_error(NeedsProfile(token=self._tokens.issue_identity_token(user.id)))

        if await self._repo.get_owner_membership(user.id):
            raise ConflictError(ErrorCode.USER_ALREADY_REGISTERED)

        name = name.strip()
        if await self._repo.get_org_by_name(name):
            raise ConflictError(ErrorCode.ORGANIZATION_NAME_ALREADY_EXISTS)

        subdomain = await generate_subdomain(name, self._subdomain_taken)
        org = await self._repo.create_organization_with_owner(
            owner_id=user.id,
            name=name,
            subdomain=subdomain,
            country=country,
            image_url=image_url,
        )
        logger.info("organization_registered", org_id=str(org.id), user_id=str(user.id))
        return org

    async def _subdomain_taken(self, subdomain: str) -> bool:
        return await self._repo.get_org_by_subdomain(subdomain) is not None

    async def list_plans(self) -> dict[PlanType, list[Plan]]:
        """Active plans grouped by tier."""
        grouped: dict[PlanType, list[Plan]] = defaultdict(list)
        for plan in await self._repo.list_active_plans():
            grouped[plan.plan_type].append(plan)
        return {plan_type: grouped.get(plan_type, []) for plan_type in PlanType}

    async def purchase_plan(
        self,
        user: User,
        org_id: UUID,
        plan_id: UUID,
        billing_cycle: BillingCycle,
        member_count: int,
        total_price: Decimal,
    ) -> Authenticated:
        """Subscribe the owned organization and issue WEBSITE tokens.

        Raises:
            AccessDeniedError: USER_NOT_OWNER_OF_ORGANIZATION or plan inactive.
            NotFoundError: PLAN_NOT_FOUND.
        """
        membership = await self._repo.get_membership(user.id, org_id)
        if membership is None or membership.role != OrgRole.OWNER:
            raise AccessDeniedError(ErrorCode.USER_NOT_OWNER_OF_ORGANIZATION)

        plan = await self._repo.get_plan(plan_id)
        if plan is None:
            raise NotFoundError(ErrorCode.PLAN_NOT_FOUND)
        if not plan.is_active:
            raise AccessDeniedError(ErrorCode.SUBSCRIPTION_PLAN_IS_NO_LONGER_AVAILABLE)

        start = self._clock()
        months = 12 if billing_cycle == BillingCycle.YEARLY else 1
        await self._repo.upsert_subscription(
            org_id=org_id,
            plan_id=plan.id,
            billing_cycle=billing_cycle,
            start_date=start,
            end_date=add_months(start, months),
            member_count=member_count,
            total_price=total_price,
        )
        logger.info(
            "plan_purchased",
            org_id=str(org_id),
            plan=plan.name,
            billing_cycle=billing_cycle.value,
        )
        return await self._issue_tokens(user.id, org_id, Platform.WEBSITE)
