"""Profile and organization management for signed-in members."""

from typing import Any

import structlog

from tenantauth.core.auth.gate import AuthContext
from tenantauth.core.auth.repository import AuthRepository
from tenantauth.core.auth.subdomain import slugify
from tenantauth.core.auth.types import Organization, OrgRole, User
from tenantauth.core.exceptions import (
    AccessDeniedError,
    ConflictError,
    ErrorCode,
    NotFoundError,
)

logger = structlog.get_logger()

ORG_EDITOR_ROLES = frozenset({OrgRole.OWNER, OrgRole.MANAGER})


def _present(**fields: Any) -> dict[str, Any]:
    return {k: v for k, v in fields.items() if v is not None}


class AccountService:
    """Reads and edits the caller's profile and organization."""

    def __init__(self, repo: AuthRepository) -> None:
        self._repo = repo

    async def get_profile(self, context: AuthContext) -> User:
        """Return the caller's profile."""
        user = await self._repo.get_user_by_id(context.user_id)
        if user is None:
            raise NotFoundError(ErrorCode.USER_NOT_FOUND)
        return user

    async def edit_profile(
        self,
        context: AuthContext,
        first_name: str | None = None,
        last_name: str | None = None,
        country_code: str | None = None,
        phone_number: str | None = None,
        profile_image_url: str | None = None,
    ) -> User:
        """Update the provided profile fields; omitted fields are kept."""
        updates = _present(
            first_name=first_name,
            last_name=last_name,
            country_code=country_code,
            phone_number=phone_number,
            profile_image_url=profile_image_url,
        )
        if not updates:
            return await self.get_profile(context)

        user = await self._repo.update_user(context.user_id, **updates)
        if user is None:
            raise NotFoundError(ErrorCode.USER_NOT_FOUND)
        logger.info("profile_updated", user_id=str(context.user_id), fields=sorted(updates))
        return user

    async def get_organization(self, context: AuthContext) -> Organization:
        """Return the organization the caller is signed into."""
        org = await self._repo.get_org_by_id(context.org_id)
        if org is None or org.is_deleted:
            raise NotFoundError(ErrorCode.ORGANIZATION_NOT_FOUND)
        return org

    async def edit_organization(
        self,
        context: AuthContext,
        name: str | None = None,
        country: str | None = None,
        image_url: str | None = None,
    ) -> Organization:
        """Edit the caller's organization. Owners and managers only.

        Raises:
            AccessDeniedError: INSUFFICIENT_ROLE.
            ConflictError: ORGANIZATION_NAME_ALREADY_EXISTS.
        """
        if context.role not in ORG_EDITOR_ROLES:
            raise AccessDeniedError(ErrorCode.INSUFFICIENT_ROLE)

        org = await self.get_organization(context)
        if name is not None:
            name = name.strip()
            existing = await self._repo.get_org_by_name(name)
            if existing is not None and existing.id != org.id:
                raise ConflictError(ErrorCode.ORGANIZATION_NAME_ALREADY_EXISTS)

        updates = _present(name=name, country=country, image_url=image_url)
        if not updates:
            return org

        updated = await self._repo.update_org(org.id, **updates)
        if updated is None:
            raise NotFoundError(ErrorCode.ORGANIZATION_NOT_FOUND)
        logger.info("organization_updated", org_id=str(org.id), fields=sorted(updates))
        return updated

    async def is_organization_name_available(self, name: str) -> bool:
        """Whether no live organization uses the name (case-insensitive)."""
        return await self._repo.get_org_by_name(name.strip()) is None

    async def is_subdomain_available(self, subdomain: str) -> bool:
        """Whether the normalized subdomain is unused."""
        return await self._repo.get_org_by_subdomain(slugify(subdomain)) is None
