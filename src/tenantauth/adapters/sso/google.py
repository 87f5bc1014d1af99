"""Google sign-in: authorization-code and ID-token exchange.

Flow:
1. (code only) Exchange the authorization code at Google's token endpoint.
2. Verify the ID token's RS256 signature against Google's JWKS.
3. Check audience and issuer, then return the verified identity.
"""

from dataclasses import dataclass, field
from typing import Any

import httpx
import jwt
import structlog
from cachetools import TTLCache

from tenantauth.core.auth.collaborators import (
    ExternalIdentity,
    GoogleTokenType,
    IdentityProvider,
)
from tenantauth.core.exceptions import AuthenticationError, ErrorCode, InfrastructureError

logger = structlog.get_logger()

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


@dataclass
class GoogleConfig:
    """Google OAuth client configuration."""

    client_id: str
    client_secret: str | None = None
    redirect_uri: str | None = None
    timeout: float = 10.0
    token_url: str = GOOGLE_TOKEN_URL
    jwks_url: str = GOOGLE_JWKS_URL
    issuers: tuple[str, ...] = field(default=GOOGLE_ISSUERS)


class GoogleIdentityProvider:
    """Verifies Google credentials and returns the signed-in identity."""

    def __init__(
        self,
        config: GoogleConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            config: OAuth client configuration.
            client: HTTP client to use; a new one per call if omitted.
        """
        self._config = config
        self._client = client
        self._jwks_cache: TTLCache[str, dict[str, Any]] = TTLCache(maxsize=1, ttl=60 * 60)

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            if self._client is not None:
                return await self._client.request(
                    method, url, timeout=self._config.timeout, **kwargs
                )
            async with httpx.AsyncClient(timeout=self._config.timeout) as client:
                return await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error("google_request_failed", url=url, error=str(e))
            raise InfrastructureError(f"google unreachable: {e}") from e

    async def exchange(
        self, token: str, token_type: GoogleTokenType = GoogleTokenType.CODE
    ) -> ExternalIdentity:
        """Verify an authorization code or ID token.

        Raises:
            AuthenticationError: GOOGLE_AUTH_CODE_INVALID, GOOGLE_TOKEN_EXPIRED,
                GOOGLE_TOKEN_MALFORMED, INVALID_TOKEN_AUDIENCE,
                INVALID_GOOGLE_TOKEN or GOOGLE_AUTH_ERROR.
            InfrastructureError: Google unreachable.
        """
        if token_type == GoogleTokenType.CODE:
            id_token = await self.exchange_code(token)
        else:
            id_token = token
        claims = await self.verify_id_token(id_token)
        return ExternalIdentity(
            email=claims.get("email", ""),
            subject=str(claims["sub"]),
            given_name=claims.get("given_name"),
            family_name=claims.get("family_name"),
            email_verified=bool(claims.get("email_verified", False)),
            picture=claims.get("picture"),
        )

    async def exchange_code(self, code: str) -> str:
        """Exchange an authorization code for an ID token."""
        response = await self._request(
            "POST",
            self._config.token_url,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "client_id": self._config.client_id,
                "client_secret": self._config.client_secret or "",
                "redirect_uri": self._config.redirect_uri or "postmessage",
            },
        )
        if response.status_code >= 400:
            error = _error_name(response)
            logger.warning("google_code_rejected", status=response.status_code, error=error)
            if error == "invalid_grant":
                raise AuthenticationError(ErrorCode.GOOGLE_AUTH_CODE_INVALID)
            raise AuthenticationError(ErrorCode.GOOGLE_AUTH_ERROR)

        id_token = response.json().get("id_token")
        if not id_token:
            raise AuthenticationError(ErrorCode.GOOGLE_AUTH_ERROR)
        return str(id_token)

    async def _jwks(self, refresh: bool = False) -> dict[str, Any]:
        cached = None if refresh else self._jwks_cache.get("jwks")
        if cached:
            return cached
        response = await self._request("GET", self._config.jwks_url)
        if response.status_code >= 400:
            raise InfrastructureError(f"google jwks fetch failed: {response.status_code}")
        data: dict[str, Any] = response.json()
        self._jwks_cache["jwks"] = data
        return data

    async def _signing_key(self, kid: str | None) -> Any:
        for refresh in (False, True):
            jwks = await self._jwks(refresh=refresh)
            for key in jwks.get("keys", []):
                if key.get("kid") == kid:
                    return jwt.PyJWK(key).key
        raise AuthenticationError(ErrorCode.INVALID_GOOGLE_TOKEN)

    async def verify_id_token(self, id_token: str) -> dict[str, Any]:
        """Verify an ID token's signature, expiry, audience and issuer."""
        try:
            header = jwt.get_unverified_header(id_token)
        except jwt.DecodeError:
            raise AuthenticationError(ErrorCode.GOOGLE_TOKEN_MALFORMED) from None

        key = await self._signing_key(header.get("kid"))
        try:
            claims: dict[str, Any] = jwt.decode(
                id_token,
                key,
                algorithms=["RS256"],
                audience=self._config.client_id,
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationError(ErrorCode.GOOGLE_TOKEN_EXPIRED) from None
        except jwt.InvalidAudienceError:
            raise AuthenticationError(ErrorCode.INVALID_TOKEN_AUDIENCE) from None
        except jwt.InvalidSignatureError:
            raise AuthenticationError(ErrorCode.INVALID_GOOGLE_TOKEN) from None
        except jwt.DecodeError:
            raise AuthenticationError(ErrorCode.GOOGLE_TOKEN_MALFORMED) from None
        except jwt.InvalidTokenError:
            raise AuthenticationError(ErrorCode.INVALID_GOOGLE_TOKEN) from None

        if claims.get("iss") not in self._config.issuers or not claims.get("sub"):
            raise AuthenticationError(ErrorCode.INVALID_GOOGLE_TOKEN)
        return claims


def _error_name(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    return body.get("error") if isinstance(body, dict) else None


# Verify we implement the protocol
_provider: IdentityProvider = GoogleIdentityProvider(GoogleConfig(client_id=""))
