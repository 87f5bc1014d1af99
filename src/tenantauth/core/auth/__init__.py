"""Auth domain types and utilities."""

from tenantauth.core.auth.gate import AccessTokenGate, AuthContext, IdentityTokenGate
from tenantauth.core.auth.jwt import TokenIssuer, TokenSettings
from tenantauth.core.auth.password import hash_password, verify_password
from tenantauth.core.auth.platforms import Platform, nonce_fields
from tenantauth.core.auth.repository import AuthRepository
from tenantauth.core.auth.types import (
    Organization,
    OrgMembership,
    OrgRole,
    Plan,
    Subscription,
    User,
)

__all__ = [
    "User",
    "Organization",
    "OrgMembership",
    "OrgRole",
    "Plan",
    "Subscription",
    "Platform",
    "nonce_fields",
    "hash_password",
    "verify_password",
    "TokenIssuer",
    "TokenSettings",
    "AuthContext",
    "AccessTokenGate",
    "IdentityTokenGate",
    "AuthRepository",
]
