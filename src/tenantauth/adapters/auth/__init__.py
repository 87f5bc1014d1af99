"""Auth adapters."""

from tenantauth.adapters.auth.memory import InMemoryAuthRepository
from tenantauth.adapters.auth.postgres import PostgresAuthRepository

__all__ = ["InMemoryAuthRepository", "PostgresAuthRepository"]
