"""Dependency injection and application lifespan management."""

from __future__ import annotations

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import TYPE_CHECKING

import httpx
import structlog
from fastapi import Request

from tenantauth.adapters.auth.memory import InMemoryAuthRepository
from tenantauth.adapters.auth.postgres import PostgresAuthRepository
from tenantauth.adapters.db.app_db import AppDatabase
from tenantauth.adapters.notifications.email import ConsoleOtpSender, EmailConfig, SmtpOtpSender
from tenantauth.adapters.sso.google import GoogleConfig, GoogleIdentityProvider
from tenantauth.core.auth.account import AccountService
from tenantauth.core.auth.collaborators import OtpSender
from tenantauth.core.auth.gate import AccessTokenGate, IdentityTokenGate
from tenantauth.core.auth.jwt import (
    PlatformTokenSettings,
    TokenIssuer,
    TokenSettings,
    parse_duration,
)
from tenantauth.core.auth.repository import AuthRepository
from tenantauth.core.auth.service import AuthService
from tenantauth.core.entitlements.features import default_plans
from tenantauth.core.entitlements.subscription import SubscriptionGate
from tenantauth.core.security.brute_force import BruteForceConfig, BruteForceGuards

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = structlog.get_logger()


class Settings:
    """Application settings loaded from environment."""

    def __init__(self) -> None:
        """Load settings from environment variables."""
        self.database_url = os.getenv("DATABASE_URL")
        self.db_command_timeout = float(os.getenv("DB_COMMAND_TIMEOUT", "30"))

        # Token signing
        self.web_access_secret = os.getenv("WEB_ACCESS_SECRET")
        self.web_refresh_secret = os.getenv("WEB_REFRESH_SECRET")
        self.app_access_secret = os.getenv("APP_ACCESS_SECRET")
        self.app_refresh_secret = os.getenv("APP_REFRESH_SECRET")
        self.extension_access_secret = os.getenv("EXTENSION_ACCESS_SECRET")
        self.extension_refresh_secret = os.getenv("EXTENSION_REFRESH_SECRET")
        self.jwt_secret = os.getenv("JWT_SECRET")

        self.access_expiry_website = os.getenv("ACCESS_TOKEN_EXPIRY_WEBSITE", "15m")
        self.access_expiry_app = os.getenv("ACCESS_TOKEN_EXPIRY_APP", "1h")
        self.access_expiry_extension = os.getenv("ACCESS_TOKEN_EXPIRY_EXTENSION", "1h")
        self.refresh_expiry_website = os.getenv("REFRESH_TOKEN_EXPIRY_WEBSITE", "7d")
        self.refresh_expiry_app = os.getenv("REFRESH_TOKEN_EXPIRY_APP", "30d")
        self.refresh_expiry_extension = os.getenv("REFRESH_TOKEN_EXPIRY_EXTENSION", "30d")

        # Brute-force guard
        self.ip_block_threshold = int(os.getenv("IP_BLOCK_THRESHOLD", "10"))
        self.ip_block_minutes = int(os.getenv("IP_BLOCK_MINUTES", "30"))
        self.email_block_threshold = int(os.getenv("EMAIL_BLOCK_THRESHOLD", "5"))
        self.email_block_minutes = int(os.getenv("EMAIL_BLOCK_MINUTES", "60"))
        self.brute_force_cache_size = int(os.getenv("BRUTE_FORCE_CACHE_SIZE", "5000"))

        # Google sign-in
        self.google_client_id = os.getenv("GOOGLE_CLIENT_ID")
        self.google_client_secret = os.getenv("GOOGLE_CLIENT_SECRET")
        self.google_callback_url = os.getenv("GOOGLE_CALLBACK_URL")
        self.http_timeout_seconds = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

        # Reverse proxies allowed to set the client address via X-Forwarded-For
        self.trusted_proxies = [
            host.strip() for host in os.getenv("TRUSTED_PROXIES", "").split(",") if host.strip()
        ]

        # OTP delivery
        self.smtp_host = os.getenv("SMTP_HOST")
        self.smtp_port = int(os.getenv("SMTP_PORT", "587"))
        self.smtp_user = os.getenv("SMTP_USER")
        self.smtp_password = os.getenv("SMTP_PASSWORD")
        self.smtp_from_email = os.getenv("SMTP_FROM_EMAIL", "no-reply@example.com")

    def token_settings(self) -> TokenSettings:
        """Build the token issuer configuration."""
        return TokenSettings(
            website=PlatformTokenSettings(
                access_secret=self.web_access_secret,
                refresh_secret=self.web_refresh_secret,
                access_lifetime=parse_duration(self.access_expiry_website),
                refresh_lifetime=parse_duration(self.refresh_expiry_website),
            ),
            app=PlatformTokenSettings(
                access_secret=self.app_access_secret,
                refresh_secret=self.app_refresh_secret,
                access_lifetime=parse_duration(self.access_expiry_app),
                refresh_lifetime=parse_duration(self.refresh_expiry_app),
            ),
            extension=PlatformTokenSettings(
                access_secret=self.extension_access_secret,
                refresh_secret=self.extension_refresh_secret,
                access_lifetime=parse_duration(self.access_expiry_extension),
                refresh_lifetime=parse_duration(self.refresh_expiry_extension),
            ),
            global_secret=self.jwt_secret,
        )

    def brute_force_guards(self) -> BruteForceGuards:
        """Build the IP and email guards."""
        return BruteForceGuards(
            ip_config=BruteForceConfig(
                threshold=self.ip_block_threshold,
                block_duration=timedelta(minutes=self.ip_block_minutes),
                max_keys=self.brute_force_cache_size,
            ),
            email_config=BruteForceConfig(
                threshold=self.email_block_threshold,
                block_duration=timedelta(minutes=self.email_block_minutes),
                max_keys=self.brute_force_cache_size,
            ),
        )

    def otp_sender(self) -> OtpSender:
        """SMTP delivery when configured, console output otherwise."""
        if not self.smtp_host:
            return ConsoleOtpSender()
        return SmtpOtpSender(
            EmailConfig(
                smtp_host=self.smtp_host,
                smtp_port=self.smtp_port,
                smtp_user=self.smtp_user,
                smtp_password=self.smtp_password,
                from_email=self.smtp_from_email,
                timeout=self.http_timeout_seconds,
            )
        )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan - setup and teardown.

    This context manager handles:
    - Repository selection (PostgreSQL when DATABASE_URL is set)
    - Token issuer, guards and gates
    - Google HTTP client
    """
    settings: Settings = app.state.settings

    app_db: AppDatabase | None = None
    repo: AuthRepository
    if settings.database_url:
        app_db = AppDatabase(settings.database_url, command_timeout=settings.db_command_timeout)
        await app_db.connect()
        repo = PostgresAuthRepository(app_db)
    else:
        logger.warning("using_in_memory_repository")
        repo = InMemoryAuthRepository(plans=default_plans())

    http_client: httpx.AsyncClient | None = None
    identity_provider = None
    if settings.google_client_id:
        http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        identity_provider = GoogleIdentityProvider(
            GoogleConfig(
                client_id=settings.google_client_id,
                client_secret=settings.google_client_secret,
                redirect_uri=settings.google_callback_url,
                timeout=settings.http_timeout_seconds,
            ),
            client=http_client,
        )

    tokens = TokenIssuer(settings.token_settings())
    guards = settings.brute_force_guards()

    app.state.app_db = app_db
    app.state.repo = repo
    app.state.tokens = tokens
    app.state.guards = guards
    app.state.auth_service = AuthService(
        repo=repo,
        tokens=tokens,
        guards=guards,
        otp_sender=settings.otp_sender(),
        identity_provider=identity_provider,
    )
    app.state.account_service = AccountService(repo)
    app.state.access_gate = AccessTokenGate(repo, tokens)
    app.state.identity_gate = IdentityTokenGate(repo, tokens)
    app.state.subscription_gate = SubscriptionGate(repo)

    logger.info(
        "app_started",
        persistence="postgres" if app_db else "memory",
        google_enabled=identity_provider is not None,
    )

    yield

    if http_client is not None:
        await http_client.aclose()
    if app_db is not None:
        await app_db.close()


def get_auth_service(request: Request) -> AuthService:
    """Get the auth service from app state."""
    service: AuthService = request.app.state.auth_service
    return service


def get_account_service(request: Request) -> AccountService:
    """Get the account service from app state."""
    service: AccountService = request.app.state.account_service
    return service


def get_guards(request: Request) -> BruteForceGuards:
    """Get the brute-force guards from app state."""
    guards: BruteForceGuards = request.app.state.guards
    return guards


def get_access_gate(request: Request) -> AccessTokenGate:
    """Get the access-token gate from app state."""
    gate: AccessTokenGate = request.app.state.access_gate
    return gate


def get_identity_gate(request: Request) -> IdentityTokenGate:
    """Get the bare-token gate from app state."""
    gate: IdentityTokenGate = request.app.state.identity_gate
    return gate


def get_subscription_gate(request: Request) -> SubscriptionGate:
    """Get the subscription gate from app state."""
    gate: SubscriptionGate = request.app.state.subscription_gate
    return gate
