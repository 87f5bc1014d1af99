"""Tests for the auth routes."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from tenantauth.adapters.auth.memory import InMemoryAuthRepository
from tenantauth.core.auth.collaborators import ExternalIdentity
from tenantauth.core.auth.service import AuthService
from tenantauth.core.auth.types import Organization, OrgMembership, OrgRole, User
from tests.fixtures.api import API, bearer
from tests.fixtures.domain_objects import PASSWORD

# Twenty characters, eighty UTF-8 bytes: over the bcrypt input limit
EMOJI_PASSWORD = "\U0001F600" * 20


@pytest.fixture
def repo(client: TestClient) -> InMemoryAuthRepository:
    """Return the repository behind the running app."""
    repository: InMemoryAuthRepository = client.app.state.repo  # type: ignore[attr-defined]
    return repository


def _post(client: TestClient, path: str, json: dict[str, Any], token: str | None = None) -> Any:
    headers = bearer(token) if token else None
    return client.post(f"{API}{path}", json=json, headers=headers)


def _signup_and_verify(client: TestClient, email: str = "ada@example.com") -> str:
    signup = _post(client, "/auth/signup", {"email": email, "password": PASSWORD})
    assert signup.status_code == 201
    otp = signup.json()["data"]["otp"]
    verified = _post(client, "/auth/verify-otp", {"email": email, "otp": otp})
    assert verified.status_code == 202
    token: str = verified.json()["data"]["token"]
    return token


class TestOnboardingJourney:
    """End-to-end onboarding through the HTTP surface."""

    def test_signup_to_website_session(self, client: TestClient) -> None:
        """Test signup, profile, organization, plan and a WEBSITE login."""
        token = _signup_and_verify(client)

        step = client.get(f"{API}/auth/verify-token", headers=bearer(token))
        assert step.status_code == 202
        assert step.json()["message"] == "INCOMPLETE_PROFILE"

        profile = _post(
            client,
            "/auth/complete-profile",
            {
                "firstName": "Ada",
                "lastName": "Lovelace",
                "countryCode": "+44",
                "phoneNumber": "5551234",
            },
            token,
        )
        assert profile.json()["message"] == "PROFILE_UPDATED_SUCCESSFULLY"

        step = client.get(f"{API}/auth/verify-token", headers=bearer(token))
        assert step.json()["message"] == "USER_NOT_ASSOCIATED_WITH_ANY_ORGANIZATION"

        registered = _post(
            client, "/auth/register-organization", {"orgName": "Acme Corp", "country": "GB"}, token
        )
        assert registered.status_code == 200
        org = registered.json()["data"]
        assert org["subdomain"] == "acme-corp"

        step = client.get(f"{API}/auth/verify-token", headers=bearer(token))
        assert step.json()["message"] == "USER_NOT_TAKEN_ANY_PLAN"
        assert step.json()["data"]["organizationId"] == org["organizationId"]

        plans = client.get(f"{API}/auth/get-plan-detail", headers=bearer(token)).json()["data"]
        assert set(plans) == {"standard", "premium"}
        plan = plans["standard"][0]

        purchased = _post(
            client,
            "/auth/purchase-plan",
            {
                "organizationId": org["organizationId"],
                "planId": plan["id"],
                "billingCycle": "MONTHLY",
                "memberCount": 1,
                "totalPrice": plan["monthlyPrice"],
            },
            token,
        )
        assert purchased.status_code == 200
        assert purchased.json()["message"] == "PLAN_PURCHASED_SUCCESSFULLY"

        verified = client.get(f"{API}/auth/verify-token", headers=bearer(token))
        assert verified.json()["message"] == "TOKEN_VERIFIED"

        login = _post(
            client, "/auth/website/login", {"email": "ada@example.com", "password": PASSWORD}
        )
        assert login.status_code == 200
        handoff = login.json()["data"]
        assert handoff["subdomain"] == "acme-corp"
        assert handoff["organizationName"] == "Acme Corp"

        session = _post(
            client, "/auth/website/verify-subdomain-token", {"token": handoff["subdomainToken"]}
        )
        assert session.json()["message"] == "SUBDOMAIN_TOKEN_VERIFIED"
        access_token = session.json()["data"]["accessToken"]

        detail = client.get(f"{API}/get-profile-detail", headers=bearer(access_token))
        assert detail.status_code == 200
        assert detail.json()["data"]["role"] == "OWNER"

        replay = _post(
            client, "/auth/website/verify-subdomain-token", {"token": handoff["subdomainToken"]}
        )
        assert replay.status_code == 401
        assert replay.json()["message"] == "TOKEN_INVALID"


class TestSignupRoutes:
    """Tests for signup and OTP routes."""

    def test_signup_envelope(self, client: TestClient) -> None:
        """Test the signup response envelope."""
        response = _post(client, "/auth/signup", {"email": "Ada@Example.com", "password": PASSWORD})

        body = response.json()
        assert body["success"] is True
        assert body["statusCode"] == 201
        assert body["message"] == "SIGNUP_SUCCESSFULLY"
        assert body["data"]["email"] == "ada@example.com"

    def test_duplicate_signup(self, client: TestClient) -> None:
        """Test the conflict envelope."""
        _post(client, "/auth/signup", {"email": "ada@example.com", "password": PASSWORD})

        response = _post(client, "/auth/signup", {"email": "ada@example.com", "password": PASSWORD})

        assert response.status_code == 409
        assert response.json() == {
            "success": False,
            "statusCode": 409,
            "message": "EMAIL_ALREADY_EXISTS",
            "data": {},
        }

    @pytest.mark.parametrize(
        ("body", "message"),
        [
            ({}, "EMAIL_REQUIRED"),
            ({"email": "not-an-email", "password": PASSWORD}, "EMAIL_INVALID"),
            ({"email": "ada@example.com"}, "PASSWORD_REQUIRED"),
            ({"email": "ada@example.com", "password": "short"}, "PASSWORD_INVALID"),
            ({"email": "ada@example.com", "password": EMOJI_PASSWORD}, "PASSWORD_INVALID"),
        ],
    )
    def test_signup_validation(
        self, client: TestClient, body: dict[str, Any], message: str
    ) -> None:
        """Test that validation failures are 400 with a field code."""
        response = _post(client, "/auth/signup", body)

        assert response.status_code == 400
        assert response.json()["message"] == message

    def test_multibyte_password_within_limit(self, client: TestClient) -> None:
        """Test that a multibyte password under the byte limit is accepted."""
        response = _post(
            client, "/auth/signup", {"email": "ada@example.com", "password": "\u00e9" * 20}
        )

        assert response.status_code == 201

    def test_otp_format(self, client: TestClient) -> None:
        """Test that OTPs must be six digits."""
        response = _post(client, "/auth/verify-otp", {"email": "ada@example.com", "otp": "12ab56"})

        assert response.status_code == 400
        assert response.json()["message"] == "OTP_INVALID"

    def test_resend_during_cooldown(self, client: TestClient) -> None:
        """Test that resending immediately is refused."""
        _post(client, "/auth/signup", {"email": "ada@example.com", "password": PASSWORD})

        response = _post(client, "/auth/resend-otp", {"email": "ada@example.com"})

        assert response.status_code == 400
        assert response.json()["message"] == "OTP_COOLDOWN_TIME"


class TestPasswordResetRoutes:
    """Tests for forgot-password and reset-password."""

    def test_reset_flow(
        self, client: TestClient, make_user: Callable[..., User], repo: InMemoryAuthRepository
    ) -> None:
        """Test that a reset code verifies with 205 and allows a new password."""
        user = make_user()
        forgot = _post(client, "/auth/forgot-password", {"email": user.email})
        assert forgot.json()["message"] == "FORGOT_PASSWORD_OTP_SENT_SUCCESSFULLY"
        code = repo.otps[user.id].code

        verified = _post(client, "/auth/verify-otp", {"email": user.email, "otp": code})
        assert verified.status_code == 205
        token = verified.json()["data"]["token"]

        reset = _post(client, "/auth/reset-password", {"password": "N3w-passw0rd"}, token)
        assert reset.json()["message"] == "PASSWORD_RESET_SUCCESSFULLY"

        old = _post(client, "/auth/app/login", {"email": user.email, "password": PASSWORD})
        assert old.json()["message"] == "INVALID_CREDENTIAL"

    def test_reset_password_over_byte_limit(
        self, client: TestClient, make_user: Callable[..., User], repo: InMemoryAuthRepository
    ) -> None:
        """Test that a new password longer than bcrypt accepts is a validation error."""
        user = make_user()
        _post(client, "/auth/forgot-password", {"email": user.email})
        code = repo.otps[user.id].code
        token = _post(client, "/auth/verify-otp", {"email": user.email, "otp": code}).json()[
            "data"
        ]["token"]

        response = _post(client, "/auth/reset-password", {"password": EMOJI_PASSWORD}, token)

        assert response.status_code == 400
        assert response.json()["message"] == "PASSWORD_INVALID"

    def test_reset_without_request(self, client: TestClient) -> None:
        """Test that reset-password needs a prior verified reset."""
        token = _signup_and_verify(client)

        response = _post(client, "/auth/reset-password", {"password": "N3w-passw0rd"}, token)

        assert response.status_code == 400
        assert response.json()["message"] == "PASSWORD_RESET_NOT_REQUESTED"


class TestLoginRoutes:
    """Tests for credential login, refresh and logout."""

    @pytest.mark.parametrize("platform", ["app", "extension"])
    def test_token_login(
        self, client: TestClient, owner: tuple[User, Organization], platform: str
    ) -> None:
        """Test that APP and EXTENSION logins return a token pair."""
        user, org = owner

        response = _post(
            client, f"/auth/{platform}/login", {"email": user.email, "password": PASSWORD}
        )

        data = response.json()["data"]
        assert response.json()["message"] == "LOGIN_SUCCESSFULLY"
        assert data["organizationId"] == str(org.id)
        assert data["accessToken"] and data["refreshToken"]

    def test_pending_step_carries_token(
        self, client: TestClient, make_user: Callable[..., User]
    ) -> None:
        """Test that an incomplete account gets a 202 with a bare token."""
        user = make_user(phone_number=None)

        response = _post(client, "/auth/app/login", {"email": user.email, "password": PASSWORD})

        assert response.status_code == 202
        assert response.json()["success"] is False
        assert response.json()["message"] == "INCOMPLETE_PROFILE"
        assert response.json()["data"]["token"]

    def test_worker_plan_deactivated(
        self,
        client: TestClient,
        make_user: Callable[..., User],
        make_org: Callable[..., Organization],
        add_member: Callable[..., OrgMembership],
    ) -> None:
        """Test that a worker without a subscribed organization is forbidden."""
        user = make_user()
        add_member(user, make_org(), OrgRole.WORKER)

        response = _post(client, "/auth/app/login", {"email": user.email, "password": PASSWORD})

        assert response.status_code == 403
        assert response.json()["message"] == "USER_PLAN_DEACTIVATED"

    def test_refresh_and_logout(self, client: TestClient, owner: tuple[User, Organization]) -> None:
        """Test refreshing an access token and revoking the session."""
        user, _ = owner
        pair = _post(
            client, "/auth/app/login", {"email": user.email, "password": PASSWORD}
        ).json()["data"]

        refreshed = _post(client, "/auth/app/refresh-token", {"refreshToken": pair["refreshToken"]})
        assert refreshed.json()["message"] == "TOKEN_REFRESHED"
        access_token = refreshed.json()["data"]["accessToken"]

        logout = _post(client, "/auth/logout", {}, access_token)
        assert logout.json()["message"] == "LOGOUT_SUCCESSFULLY"

        again = _post(client, "/auth/app/refresh-token", {"refreshToken": pair["refreshToken"]})
        assert again.status_code == 401
        assert again.json()["message"] == "INVALID_REFRESH_TOKEN"

    def test_refresh_unknown_platform(self, client: TestClient) -> None:
        """Test that the platform path segment must be known."""
        response = _post(client, "/auth/tv/refresh-token", {"refreshToken": "x.y.z"})

        assert response.status_code == 401
        assert response.json()["message"] == "INVALID_PLATFORM"


class TestGoogleRoutes:
    """Tests for Google sign-in routes."""

    def test_not_configured(self, client: TestClient) -> None:
        """Test that Google sign-in without client credentials is unavailable."""
        response = _post(client, "/auth/google/app/login", {"token": "auth-code"})

        assert response.status_code == 503
        assert response.json()["message"] == "SERVICE_UNAVAILABLE"

    def test_new_google_identity(self, client: TestClient) -> None:
        """Test that a first Google sign-in registers the identity."""
        provider = AsyncMock()
        provider.exchange.return_value = ExternalIdentity(
            email="grace@example.com", subject="google-sub-123", email_verified=True
        )
        state = client.app.state  # type: ignore[attr-defined]
        state.auth_service = AuthService(
            repo=state.repo,
            tokens=state.tokens,
            guards=state.guards,
            otp_sender=AsyncMock(),
            identity_provider=provider,
        )

        response = _post(
            client, "/auth/google/website/login", {"token": "id-token", "tokenType": "id_token"}
        )

        assert response.status_code == 201
        assert response.json()["data"]["token"]

    def test_token_with_whitespace(self, client: TestClient) -> None:
        """Test that credentials containing whitespace are rejected."""
        response = _post(client, "/auth/google/app/login", {"token": "two words"})

        assert response.status_code == 400
        assert response.json()["message"] == "TOKEN_INVALID"
