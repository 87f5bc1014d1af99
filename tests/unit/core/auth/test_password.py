"""Unit tests for password hashing."""

from __future__ import annotations

from tenantauth.core.auth.password import hash_password, verify_password


class TestPassword:
    """Tests for hash_password / verify_password."""

    def test_round_trip(self) -> None:
        """Test that a hash verifies its own password only."""
        hashed = hash_password("P@ssw0rd1")

        assert hashed != "P@ssw0rd1"
        assert verify_password("P@ssw0rd1", hashed)
        assert not verify_password("P@ssw0rd2", hashed)

    def test_missing_hash_never_matches(self) -> None:
        """Test that Google-only identities cannot log in with a password."""
        assert not verify_password("anything", None)

    def test_garbage_hash(self) -> None:
        """Test that a non-bcrypt stored value is a mismatch, not an error."""
        assert not verify_password("anything", "not-a-hash")
