"""Adapters - Infrastructure implementations of core interfaces.

Adapters are organized by type:
- db/: asyncpg connection pool
- auth/: AuthRepository implementations (PostgreSQL, in-memory)
- notifications/: OTP delivery
- sso/: Google sign-in
"""
