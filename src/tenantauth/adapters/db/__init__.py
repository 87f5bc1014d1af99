"""Application database adapter."""

from tenantauth.adapters.db.app_db import AppDatabase

__all__ = ["AppDatabase"]
