"""API client fixtures."""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from tenantauth.entrypoints.api.app import create_app
from tenantauth.entrypoints.api.deps import Settings

API = "/api/v1"

TEST_ENV = {
    "WEB_ACCESS_SECRET": "website-access-secret",
    "WEB_REFRESH_SECRET": "website-refresh-secret",
    "APP_ACCESS_SECRET": "app-access-secret",
    "APP_REFRESH_SECRET": "app-refresh-secret",
    "EXTENSION_ACCESS_SECRET": "extension-access-secret",
    "EXTENSION_REFRESH_SECRET": "extension-refresh-secret",
    "JWT_SECRET": "global-secret",
}


def bearer(token: str) -> dict[str, str]:
    """Authorization header for a token."""
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def api_settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Return settings for an in-memory app with every secret configured."""
    for name in ("DATABASE_URL", "GOOGLE_CLIENT_ID", "SMTP_HOST", "TRUSTED_PROXIES"):
        monkeypatch.delenv(name, raising=False)
    for name, value in TEST_ENV.items():
        monkeypatch.setenv(name, value)
    return Settings()


@pytest.fixture
def client(api_settings: Settings) -> Iterator[TestClient]:
    """Return a test client with the application lifespan running."""
    with TestClient(create_app(api_settings)) as test_client:
        yield test_client
