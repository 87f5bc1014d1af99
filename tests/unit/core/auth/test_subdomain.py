"""Unit tests for subdomain derivation."""

from __future__ import annotations

import pytest

from tenantauth.core.auth.subdomain import (
    MAX_SUBDOMAIN_LENGTH,
    generate_subdomain,
    slugify,
    with_suffix,
)
from tenantauth.core.exceptions import ConflictError


class TestSlugify:
    """Tests for slugify."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("Acme", "acme"),
            ("Acme Corp", "acme-corp"),
            ("  Big & Small, Ltd. ", "big-small-ltd"),
            ("!!!", "org"),
        ],
    )
    def test_normalizes(self, name: str, expected: str) -> None:
        """Test lowercasing and hyphenation."""
        assert slugify(name) == expected

    def test_truncates(self) -> None:
        """Test that slugs never exceed 20 characters or end in a hyphen."""
        slug = slugify("International Business Machines")

        assert len(slug) <= MAX_SUBDOMAIN_LENGTH
        assert not slug.endswith("-")


class TestWithSuffix:
    """Tests for with_suffix."""

    def test_fixed_suffix(self) -> None:
        """Test that the suffix keeps the result within the limit."""
        candidate = with_suffix("international-busin", 123)

        assert candidate == "international-bu-123"
        assert len(candidate) == MAX_SUBDOMAIN_LENGTH

    def test_random_suffix_is_three_digits(self) -> None:
        """Test the random suffix range."""
        suffix = with_suffix("acme").split("-")[-1]

        assert len(suffix) == 3
        assert 100 <= int(suffix) <= 999


class TestGenerateSubdomain:
    """Tests for generate_subdomain."""

    async def test_bare_slug_when_free(self) -> None:
        """Test that the slug is used when it is free."""

        async def is_taken(_: str) -> bool:
            return False

        assert await generate_subdomain("Acme Corp", is_taken) == "acme-corp"

    async def test_suffix_on_collision(self) -> None:
        """Test that a taken slug gets a numeric suffix."""
        taken = {"acme"}

        async def is_taken(candidate: str) -> bool:
            return candidate in taken

        result = await generate_subdomain("Acme", is_taken)

        assert result.startswith("acme-")
        assert result not in taken

    async def test_gives_up(self) -> None:
        """Test that exhausting every attempt raises SUBDOMAIN_UNAVAILABLE."""

        async def is_taken(_: str) -> bool:
            return True

        with pytest.raises(ConflictError) as exc_info:
            await generate_subdomain("Acme", is_taken, max_attempts=3)

        assert exc_info.value.code == "SUBDOMAIN_UNAVAILABLE"
