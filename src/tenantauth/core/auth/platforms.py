"""Client platforms and their per-membership nonce columns."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, assert_never

from tenantauth.core.exceptions import InvalidPlatformError

if TYPE_CHECKING:
    from tenantauth.core.auth.types import OrgMembership


class Platform(str, Enum):
    """Client platforms, each with its own signing secrets and token lifetimes."""

    WEBSITE = "WEBSITE"
    APP = "APP"
    EXTENSION = "EXTENSION"


@dataclass(frozen=True)
class NonceFields:
    """Names of the membership columns holding a platform's current nonces."""

    access: str
    refresh: str

    def access_nonce(self, membership: OrgMembership) -> str | None:
        """Return the stored access-token nonce for this platform."""
        value: str | None = getattr(membership, self.access)
        return value

    def refresh_nonce(self, membership: OrgMembership) -> str | None:
        """Return the stored refresh-token nonce for this platform."""
        value: str | None = getattr(membership, self.refresh)
        return value

    def updates(
        self,
        access: str | None = None,
        refresh: str | None = None,
        *,
        include_refresh: bool = True,
    ) -> dict[str, Any]:
        """Build a membership update setting this platform's nonces."""
        values: dict[str, Any] = {self.access: access}
        if include_refresh:
            values[self.refresh] = refresh
        return values


_WEBSITE_FIELDS = NonceFields(access="website_access_nonce", refresh="website_refresh_nonce")
_APP_FIELDS = NonceFields(access="app_access_nonce", refresh="app_refresh_nonce")
_EXTENSION_FIELDS = NonceFields(
    access="extension_access_nonce", refresh="extension_refresh_nonce"
)

ALL_NONCE_FIELDS = (_WEBSITE_FIELDS, _APP_FIELDS, _EXTENSION_FIELDS)


def parse_platform(value: Any) -> Platform:
    """Parse an untrusted platform claim.

    Raises:
        InvalidPlatformError: If the value is not a known platform.
    """
    if isinstance(value, Platform):
        return value
    try:
        return Platform(value)
    except ValueError:
        raise InvalidPlatformError() from None


def nonce_fields(platform: Platform) -> NonceFields:
    """Return the nonce columns for a platform."""
    if platform is Platform.WEBSITE:
        return _WEBSITE_FIELDS
    elif platform is Platform.APP:
        return _APP_FIELDS
    elif platform is Platform.EXTENSION:
        return _EXTENSION_FIELDS
    else:
        assert_never(platform)
