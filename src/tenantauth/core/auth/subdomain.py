"""Organization subdomain derivation."""

import re
import secrets
from collections.abc import Awaitable, Callable

from tenantauth.core.exceptions import ConflictError, ErrorCode

MAX_SUBDOMAIN_LENGTH = 20
SUFFIX_BASE_LENGTH = MAX_SUBDOMAIN_LENGTH - 4
MAX_SUFFIX_ATTEMPTS = 50

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    """Lowercase, hyphenate and truncate an organization name.

    Args:
        name: Organization display name.

    Returns:
        A slug of at most 20 characters, ``"org"`` if nothing usable remains.
    """
    slug = _NON_SLUG.sub("-", name.lower()).strip("-")
    slug = slug[:MAX_SUBDOMAIN_LENGTH].rstrip("-")
    return slug or "org"


def with_suffix(base: str, suffix: int | None = None) -> str:
    """Append a 3-digit numeric suffix, keeping the result within 20 characters."""
    if suffix is None:
        suffix = 100 + secrets.randbelow(900)
    stem = base[:SUFFIX_BASE_LENGTH].rstrip("-") or "org"
    return f"{stem}-{suffix}"


async def generate_subdomain(
    name: str,
    is_taken: Callable[[str], Awaitable[bool]],
    max_attempts: int = MAX_SUFFIX_ATTEMPTS,
) -> str:
    """Derive a collision-free subdomain for an organization name.

    Args:
        name: Organization display name.
        is_taken: Async predicate telling whether a subdomain is in use.
        max_attempts: Random suffixes to try after the bare slug collides.

    Returns:
        An unused subdomain.

    Raises:
        ConflictError: SUBDOMAIN_UNAVAILABLE if every candidate collided.
    """
    base = slugify(name)
    if not await is_taken(base):
        return base
    for _ in range(max_attempts):
        candidate = with_suffix(base)
        if not await is_taken(candidate):
            return candidate
    raise ConflictError(ErrorCode.SUBDOMAIN_UNAVAILABLE)
