"""Profile and organization routes for signed-in members."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import Field

from tenantauth.core.auth.account import AccountService
from tenantauth.core.auth.types import Organization, OrgRole, User
from tenantauth.entrypoints.api.deps import get_account_service
from tenantauth.entrypoints.api.middleware.subscription import SubscribedMember
from tenantauth.entrypoints.api.responses import CamelModel, success_response

router = APIRouter(tags=["account"])

Service = Annotated[AccountService, Depends(get_account_service)]


class ProfileResponse(CamelModel):
    """Member profile."""

    id: UUID
    email: str
    first_name: str | None = None
    last_name: str | None = None
    country_code: str | None = None
    phone_number: str | None = None
    profile_image_url: str | None = None
    role: OrgRole | None = None

    @classmethod
    def from_user(cls, user: User, role: OrgRole | None = None) -> "ProfileResponse":
        """Build from a domain user."""
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            country_code=user.country_code,
            phone_number=user.phone_number,
            profile_image_url=user.profile_image_url,
            role=role,
        )


class OrganizationDetailResponse(CamelModel):
    """Organization detail."""

    id: UUID
    name: str
    subdomain: str
    country: str | None = None
    image_url: str | None = None
    department_limit: int

    @classmethod
    def from_org(cls, org: Organization) -> "OrganizationDetailResponse":
        """Build from a domain organization."""
        return cls(
            id=org.id,
            name=org.name,
            subdomain=org.subdomain,
            country=org.country,
            image_url=org.image_url,
            department_limit=org.department_limit,
        )


class EditProfileRequest(CamelModel):
    """Profile edit body; omitted fields are kept."""

    first_name: str | None = Field(default=None, min_length=1, max_length=20)
    last_name: str | None = Field(default=None, min_length=1, max_length=20)
    country_code: str | None = Field(default=None, max_length=5)
    phone_number: str | None = Field(default=None, min_length=4, max_length=20)
    profile_image_url: str | None = None


class EditOrganizationRequest(CamelModel):
    """Organization edit body; omitted fields are kept."""

    org_name: str | None = Field(default=None, min_length=2, max_length=50)
    country: str | None = Field(default=None, min_length=1)
    image_url: str | None = None


@router.get("/get-profile-detail")
async def get_profile_detail(auth: SubscribedMember, service: Service) -> JSONResponse:
    """Return the caller's profile."""
    user = await service.get_profile(auth)
    return success_response("PROFILE_DETAIL", ProfileResponse.from_user(user, auth.role))


@router.put("/edit-profile-detail")
async def edit_profile_detail(
    body: EditProfileRequest, auth: SubscribedMember, service: Service
) -> JSONResponse:
    """Edit the caller's profile."""
    user = await service.edit_profile(
        auth,
        first_name=body.first_name,
        last_name=body.last_name,
        country_code=body.country_code,
        phone_number=body.phone_number,
        profile_image_url=body.profile_image_url,
    )
    return success_response(
        "PROFILE_UPDATED_SUCCESSFULLY", ProfileResponse.from_user(user, auth.role)
    )


@router.get("/get-organization-detail")
async def get_organization_detail(auth: SubscribedMember, service: Service) -> JSONResponse:
    """Return the organization the caller is signed into."""
    org = await service.get_organization(auth)
    return success_response("ORGANIZATION_DETAIL", OrganizationDetailResponse.from_org(org))


@router.put("/edit-organization")
async def edit_organization(
    body: EditOrganizationRequest, auth: SubscribedMember, service: Service
) -> JSONResponse:
    """Edit the caller's organization. Owners and managers only."""
    org = await service.edit_organization(
        auth, name=body.org_name, country=body.country, image_url=body.image_url
    )
    return success_response(
        "ORGANIZATION_EDITED_SUCCESSFULLY", OrganizationDetailResponse.from_org(org)
    )


@router.get("/organization-name-check")
async def organization_name_check(
    service: Service,
    org_name: Annotated[str, Query(alias="orgName", min_length=2, max_length=50)],
) -> JSONResponse:
    """Whether an organization name is free (case-insensitive)."""
    available = await service.is_organization_name_available(org_name)
    if available:
        return success_response("ORGANIZATION_NAME_AVAILABLE", {"isAvailable": True})
    return success_response(
        "ORGANIZATION_NAME_UNAVAILABLE", {"isAvailable": False}, status_code=400
    )


@router.get("/subdomain-name-check")
async def subdomain_name_check(
    service: Service,
    subdomain: Annotated[str, Query(min_length=1, max_length=63)],
) -> JSONResponse:
    """Whether a subdomain is free after normalization."""
    available = await service.is_subdomain_available(subdomain)
    if available:
        return success_response("SUBDOMAIN_AVAILABLE", {"isAvailable": True})
    return success_response("SUBDOMAIN_UNAVAILABLE", {"isAvailable": False}, status_code=400)
