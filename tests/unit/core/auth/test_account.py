"""Unit tests for AccountService."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from tenantauth.core.auth.account import AccountService
from tenantauth.core.auth.gate import AuthContext
from tenantauth.core.auth.platforms import Platform
from tenantauth.core.auth.types import Organization, OrgRole, User
from tenantauth.core.exceptions import AccessDeniedError, ConflictError


def _context(user: User, org: Organization, role: OrgRole = OrgRole.OWNER) -> AuthContext:
    return AuthContext(user_id=user.id, org_id=org.id, role=role, platform=Platform.WEBSITE)


class TestProfile:
    """Tests for profile reads and edits."""

    async def test_get_profile(
        self, account_service: AccountService, owner: tuple[User, Organization]
    ) -> None:
        """Test reading the caller's profile."""
        user, org = owner

        profile = await account_service.get_profile(_context(user, org))

        assert profile.email == user.email

    async def test_edit_keeps_omitted_fields(
        self, account_service: AccountService, owner: tuple[User, Organization]
    ) -> None:
        """Test that only provided fields change."""
        user, org = owner

        updated = await account_service.edit_profile(_context(user, org), first_name="Augusta")

        assert updated.first_name == "Augusta"
        assert updated.last_name == user.last_name
        assert updated.phone_number == user.phone_number

    async def test_empty_edit_is_a_read(
        self, account_service: AccountService, owner: tuple[User, Organization]
    ) -> None:
        """Test that an edit with no fields returns the profile unchanged."""
        user, org = owner

        updated = await account_service.edit_profile(_context(user, org))

        assert updated == user


class TestOrganization:
    """Tests for organization reads and edits."""

    async def test_get_organization(
        self, account_service: AccountService, owner: tuple[User, Organization]
    ) -> None:
        """Test reading the caller's organization."""
        user, org = owner

        assert (await account_service.get_organization(_context(user, org))).id == org.id

    async def test_owner_can_rename(
        self, account_service: AccountService, owner: tuple[User, Organization]
    ) -> None:
        """Test that an owner can rename the organization."""
        user, org = owner

        updated = await account_service.edit_organization(
            _context(user, org), name=" Acme Labs ", country="FR"
        )

        assert updated.name == "Acme Labs"
        assert updated.country == "FR"
        assert updated.subdomain == org.subdomain

    async def test_worker_cannot_edit(
        self, account_service: AccountService, owner: tuple[User, Organization]
    ) -> None:
        """Test that workers may not edit the organization."""
        user, org = owner

        with pytest.raises(AccessDeniedError) as exc_info:
            await account_service.edit_organization(
                _context(user, org, OrgRole.WORKER), name="Other"
            )

        assert exc_info.value.code == "INSUFFICIENT_ROLE"

    async def test_rename_to_taken_name(
        self,
        account_service: AccountService,
        owner: tuple[User, Organization],
        make_org: Callable[..., Organization],
    ) -> None:
        """Test that a rename cannot collide with another organization."""
        user, org = owner
        make_org("Globex")

        with pytest.raises(ConflictError) as exc_info:
            await account_service.edit_organization(_context(user, org), name="globex")

        assert exc_info.value.code == "ORGANIZATION_NAME_ALREADY_EXISTS"

    async def test_rename_to_own_name(
        self, account_service: AccountService, owner: tuple[User, Organization]
    ) -> None:
        """Test that re-saving the current name is not a conflict."""
        user, org = owner

        updated = await account_service.edit_organization(_context(user, org), name="ACME")

        assert updated.name == "ACME"


class TestAvailability:
    """Tests for name and subdomain availability checks."""

    async def test_name_availability(
        self, account_service: AccountService, make_org: Callable[..., Organization]
    ) -> None:
        """Test case-insensitive name availability."""
        make_org("Acme")

        assert not await account_service.is_organization_name_available(" acme ")
        assert await account_service.is_organization_name_available("Globex")

    async def test_subdomain_availability(
        self, account_service: AccountService, make_org: Callable[..., Organization]
    ) -> None:
        """Test that subdomains are normalized before the lookup."""
        make_org("Acme Corp", subdomain="acme-corp")

        assert not await account_service.is_subdomain_available("Acme Corp")
        assert await account_service.is_subdomain_available("acme-labs")
