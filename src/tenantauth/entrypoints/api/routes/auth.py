"""Auth API routes for signup, onboarding, login and token lifecycle."""

from decimal import Decimal
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import AfterValidator, EmailStr, Field

from tenantauth.core.auth.collaborators import GoogleTokenType
from tenantauth.core.auth.gate import AuthContext
from tenantauth.core.auth.outcomes import (
    Authenticated,
    HandoffIssued,
    LoginOutcome,
    Registered,
    next_step_error,
)
from tenantauth.core.auth.platforms import Platform, parse_platform
from tenantauth.core.auth.service import AuthService
from tenantauth.core.auth.types import BillingCycle, Plan
from tenantauth.entrypoints.api.deps import get_auth_service
from tenantauth.entrypoints.api.middleware.brute_force import ClientIp
from tenantauth.entrypoints.api.middleware.jwt_auth import verify_access_token
from tenantauth.entrypoints.api.middleware.security_token import PendingUser
from tenantauth.entrypoints.api.responses import CamelModel, success_response

router = APIRouter(prefix="/auth", tags=["auth"])

Service = Annotated[AuthService, Depends(get_auth_service)]

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 20
# bcrypt only hashes the first 72 bytes
PASSWORD_MAX_BYTES = 72


def _within_bcrypt_limit(password: str) -> str:
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"password exceeds {PASSWORD_MAX_BYTES} bytes")
    return password


NewPassword = Annotated[
    str,
    Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH),
    AfterValidator(_within_bcrypt_limit),
]


# Request/Response models
class SignupRequest(CamelModel):
    """Signup request body."""

    email: EmailStr
    password: NewPassword


class VerifyOtpRequest(CamelModel):
    """OTP verification request body."""

    email: EmailStr
    otp: str = Field(pattern=r"^[0-9]{6}$")


class EmailRequest(CamelModel):
    """Request body carrying only an email address."""

    email: EmailStr


class CompleteProfileRequest(CamelModel):
    """Profile completion request body."""

    first_name: str = Field(min_length=1, max_length=20)
    last_name: str | None = Field(default=None, min_length=1, max_length=20)
    country_code: str | None = Field(default=None, max_length=5)
    phone_number: str = Field(min_length=4, max_length=20)


class RegisterOrganizationRequest(CamelModel):
    """Organization registration request body."""

    org_name: str = Field(min_length=2, max_length=50)
    country: str = Field(min_length=1)
    image_url: str | None = None


class ResetPasswordRequest(CamelModel):
    """Password reset request body."""

    password: NewPassword


class PurchasePlanRequest(CamelModel):
    """Plan purchase request body."""

    organization_id: UUID
    plan_id: UUID
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    member_count: int = Field(default=1, gt=0)
    total_price: Decimal = Field(default=Decimal("0"), ge=0)


class LoginRequest(CamelModel):
    """Credential login request body."""

    email: EmailStr
    password: str = Field(min_length=1)


class GoogleLoginRequest(CamelModel):
    """Google sign-in request body."""

    token: str = Field(min_length=1, pattern=r"^\S+$")
    token_type: GoogleTokenType = GoogleTokenType.CODE


class HandoffTokenRequest(CamelModel):
    """Subdomain handoff redemption request body."""

    token: str = Field(min_length=1)


class RefreshTokenRequest(CamelModel):
    """Token refresh request body."""

    refresh_token: str = Field(min_length=1, pattern=r"^\S+$")


class TokenPairResponse(CamelModel):
    """Access and refresh tokens."""

    access_token: str
    refresh_token: str
    organization_id: UUID


class HandoffResponse(CamelModel):
    """Subdomain handoff token for WEBSITE logins."""

    subdomain_token: str
    organization_id: UUID
    organization_name: str
    subdomain: str


class OrganizationResponse(CamelModel):
    """Registered organization."""

    organization_id: UUID
    name: str
    subdomain: str


class PlanFeatureResponse(CamelModel):
    """Feature entry of a plan."""

    feature_name: str
    is_enabled: bool
    limit: int | None = None


class PlanResponse(CamelModel):
    """Catalogue plan."""

    id: UUID
    name: str
    description: str | None = None
    monthly_price: Decimal
    yearly_price: Decimal
    features: list[PlanFeatureResponse]

    @classmethod
    def from_plan(cls, plan: Plan) -> "PlanResponse":
        """Build from a domain plan."""
        return cls(
            id=plan.id,
            name=plan.name,
            description=plan.description,
            monthly_price=plan.monthly_price,
            yearly_price=plan.yearly_price,
            features=[
                PlanFeatureResponse(
                    feature_name=f.feature_name, is_enabled=f.is_enabled, limit=f.limit
                )
                for f in plan.features
            ],
        )


def _token_pair(outcome: Authenticated) -> TokenPairResponse:
    return TokenPairResponse(
        access_token=outcome.access_token,
        refresh_token=outcome.refresh_token,
        organization_id=outcome.org_id,
    )


def _login_response(outcome: LoginOutcome) -> JSONResponse:
    """Render a login outcome; pending steps become 202 failures."""
    if isinstance(outcome, Authenticated):
        return success_response("LOGIN_SUCCESSFULLY", _token_pair(outcome))
    if isinstance(outcome, HandoffIssued):
        return success_response(
            "LOGIN_SUCCESSFULLY",
            HandoffResponse(
                subdomain_token=outcome.subdomain_token,
                organization_id=outcome.org_id,
                organization_name=outcome.org_name,
                subdomain=outcome.subdomain,
            ),
        )
    raise next_step_error(outcome)


# Signup and OTP


@router.post("/signup")
async def signup(body: SignupRequest, service: Service, ip: ClientIp) -> JSONResponse:
    """Create an unverified account and send its verification code."""
    result = await service.signup(body.email, body.password, ip)
    return success_response(
        "SIGNUP_SUCCESSFULLY", {"email": result.email, "otp": result.otp}, status_code=201
    )


@router.post("/verify-otp")
async def verify_otp(body: VerifyOtpRequest, service: Service, ip: ClientIp) -> JSONResponse:
    """Verify a code and return a bare token.

    Returns 205 when the code confirms a password reset, 202 otherwise.
    """
    result = await service.verify_otp(body.email, body.otp, ip)
    return success_response(
        "OTP_VERIFIED_SUCCESSFULLY",
        {"token": result.token},
        status_code=205 if result.password_reset else 202,
    )


@router.post("/resend-otp")
async def resend_otp(body: EmailRequest, service: Service, ip: ClientIp) -> JSONResponse:
    """Send a fresh code once the cooldown has passed."""
    await service.resend_otp(body.email, ip)
    return success_response("OTP_RESENT_SUCCESSFULLY")


@router.post("/forgot-password")
async def forgot_password(body: EmailRequest, service: Service, ip: ClientIp) -> JSONResponse:
    """Start a password reset."""
    await service.forgot_password(body.email, ip)
    return success_response(
        "FORGOT_PASSWORD_OTP_SENT_SUCCESSFULLY", {"email": body.email.strip().lower()}
    )


@router.post("/reset-password")
async def reset_password(
    body: ResetPasswordRequest, user: PendingUser, service: Service
) -> JSONResponse:
    """Set a new password after a verified reset code."""
    await service.reset_password(user, body.password)
    return success_response("PASSWORD_RESET_SUCCESSFULLY")


# Onboarding


@router.get("/verify-token")
async def verify_token(user: PendingUser, service: Service) -> JSONResponse:
    """Report the next onboarding step, if any."""
    await service.verify_token(user)
    return success_response("TOKEN_VERIFIED")


@router.post("/complete-profile")
async def complete_profile(
    body: CompleteProfileRequest, user: PendingUser, service: Service
) -> JSONResponse:
    """Fill in the profile fields required before joining an organization."""
    await service.complete_profile(
        user,
        first_name=body.first_name,
        phone_number=body.phone_number,
        last_name=body.last_name,
        country_code=body.country_code,
    )
    return success_response("PROFILE_UPDATED_SUCCESSFULLY")


@router.post("/register-organization")
async def register_organization(
    body: RegisterOrganizationRequest, user: PendingUser, service: Service
) -> JSONResponse:
    """Create the caller's organization and its subdomain."""
    org = await service.register_organization(
        user, body.org_name, country=body.country, image_url=body.image_url
    )
    return success_response(
        "ORGANIZATION_REGISTERED_SUCCESSFULLY",
        OrganizationResponse(
            organization_id=org.id,
            name=org.name,
            subdomain=org.subdomain,
        ),
    )


@router.get("/get-plan-detail")
async def get_plan_detail(user: PendingUser, service: Service) -> JSONResponse:
    """List active plans grouped by tier."""
    grouped = await service.list_plans()
    data = {
        plan_type.value.lower(): [
            PlanResponse.from_plan(p).model_dump(mode="json", by_alias=True) for p in plans
        ]
        for plan_type, plans in grouped.items()
    }
    return success_response("PLAN_DETAIL", data)


@router.post("/purchase-plan")
async def purchase_plan(
    body: PurchasePlanRequest, user: PendingUser, service: Service
) -> JSONResponse:
    """Subscribe the caller's organization and sign them in on WEBSITE."""
    outcome = await service.purchase_plan(
        user,
        org_id=body.organization_id,
        plan_id=body.plan_id,
        billing_cycle=body.billing_cycle,
        member_count=body.member_count,
        total_price=body.total_price,
    )
    return success_response("PLAN_PURCHASED_SUCCESSFULLY", _token_pair(outcome))


# Login


async def _login(
    platform: Platform, body: LoginRequest, service: AuthService, ip: str | None
) -> JSONResponse:
    outcome = await service.login(body.email, body.password, platform, ip)
    return _login_response(outcome)


@router.post("/website/login")
async def website_login(body: LoginRequest, service: Service, ip: ClientIp) -> JSONResponse:
    """Credential login on the website; returns a subdomain handoff token."""
    return await _login(Platform.WEBSITE, body, service, ip)


@router.post("/app/login")
async def app_login(body: LoginRequest, service: Service, ip: ClientIp) -> JSONResponse:
    """Credential login on the desktop app."""
    return await _login(Platform.APP, body, service, ip)


@router.post("/extension/login")
async def extension_login(body: LoginRequest, service: Service, ip: ClientIp) -> JSONResponse:
    """Credential login on the browser extension."""
    return await _login(Platform.EXTENSION, body, service, ip)


async def _google_login(
    platform: Platform, body: GoogleLoginRequest, service: AuthService, ip: str | None
) -> JSONResponse:
    outcome = await service.google_login(body.token, platform, ip, token_type=body.token_type)
    if isinstance(outcome, Registered):
        return success_response("LOGIN_SUCCESSFULLY", {"token": outcome.token}, status_code=201)
    return _login_response(outcome)


@router.post("/google/website/login")
async def google_website_login(
    body: GoogleLoginRequest, service: Service, ip: ClientIp
) -> JSONResponse:
    """Google sign-in on the website."""
    return await _google_login(Platform.WEBSITE, body, service, ip)


@router.post("/google/app/login")
async def google_app_login(
    body: GoogleLoginRequest, service: Service, ip: ClientIp
) -> JSONResponse:
    """Google sign-in on the desktop app."""
    return await _google_login(Platform.APP, body, service, ip)


@router.post("/website/verify-subdomain-token")
async def verify_subdomain_token(
    body: HandoffTokenRequest, service: Service, ip: ClientIp
) -> JSONResponse:
    """Redeem a handoff token for WEBSITE access and refresh tokens."""
    outcome = await service.redeem_handoff(body.token, ip)
    return success_response("SUBDOMAIN_TOKEN_VERIFIED", _token_pair(outcome))


# Token lifecycle


@router.post("/{platform}/refresh-token")
async def refresh_token(
    platform: str, body: RefreshTokenRequest, service: Service
) -> JSONResponse:
    """Issue a new access token for the platform's refresh token."""
    access_token = await service.refresh(body.refresh_token, parse_platform(platform.upper()))
    return success_response("TOKEN_REFRESHED", {"accessToken": access_token})


@router.post("/logout")
async def logout(
    auth: Annotated[AuthContext, Depends(verify_access_token)], service: Service
) -> JSONResponse:
    """Revoke the caller's tokens on its platform."""
    await service.logout(auth)
    return success_response("LOGOUT_SUCCESSFULLY")

