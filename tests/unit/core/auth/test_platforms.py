"""Unit tests for platform parsing and nonce columns."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

import pytest

from tenantauth.core.auth.platforms import (
    ALL_NONCE_FIELDS,
    Platform,
    nonce_fields,
    parse_platform,
)
from tenantauth.core.auth.types import OrgMembership, OrgRole
from tenantauth.core.exceptions import InvalidPlatformError


class TestParsePlatform:
    """Tests for parse_platform."""

    def test_known_values(self) -> None:
        """Test that every platform parses from its value."""
        for platform in Platform:
            assert parse_platform(platform.value) is platform

    @pytest.mark.parametrize("value", ["CRM", "website", None, 3])
    def test_unknown_values(self, value: object) -> None:
        """Test that anything else is rejected."""
        with pytest.raises(InvalidPlatformError):
            parse_platform(value)


class TestNonceFields:
    """Tests for nonce_fields."""

    def test_every_platform_has_distinct_columns(self) -> None:
        """Test that platforms never share nonce columns."""
        columns = [f.access for f in ALL_NONCE_FIELDS] + [f.refresh for f in ALL_NONCE_FIELDS]

        assert len(set(columns)) == 6
        assert {nonce_fields(p) for p in Platform} == set(ALL_NONCE_FIELDS)

    def test_reads_membership_columns(self) -> None:
        """Test that the accessors read the platform's columns."""
        membership = OrgMembership(
            user_id=uuid4(),
            org_id=uuid4(),
            role=OrgRole.WORKER,
            app_access_nonce="a",
            app_refresh_nonce="r",
            created_at=datetime.now(UTC),
        )
        fields = nonce_fields(Platform.APP)

        assert fields.access_nonce(membership) == "a"
        assert fields.refresh_nonce(membership) == "r"
        assert nonce_fields(Platform.WEBSITE).access_nonce(membership) is None

    def test_updates_without_refresh(self) -> None:
        """Test that include_refresh=False leaves the refresh column alone."""
        updates = nonce_fields(Platform.EXTENSION).updates("n", include_refresh=False)

        assert updates == {"extension_access_nonce": "n"}
