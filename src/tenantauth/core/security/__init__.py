"""Brute-force protection."""

from tenantauth.core.security.brute_force import (
    BruteForceConfig,
    BruteForceGuard,
    BruteForceGuards,
)

__all__ = ["BruteForceConfig", "BruteForceGuard", "BruteForceGuards"]
