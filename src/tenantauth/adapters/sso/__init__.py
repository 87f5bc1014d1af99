"""Single sign-on adapters."""

from tenantauth.adapters.sso.google import GoogleConfig, GoogleIdentityProvider

__all__ = ["GoogleConfig", "GoogleIdentityProvider"]
