from __future__ import annotations

import json
from urllib.parse import urlencode

from solveur.core.config import Settings, get_settings
from solveur.core.errors import SsoNotConfigured


SSO_PROVIDERS = ("google", "microsoft", "saml")
_OIDC_SCOPE = "openid email profile"


def _state(tenant_slug: str, redirect_to: str | None) -> str:
    # The state echoes back through the IdP so the callback knows which tenant started the flow.
    return json.dumps(
        {"tenantSlug": tenant_slug, "redirectTo": redirect_to or "/dashboard"},
        separators=(",", ":"),
    )


def _callback(settings: Settings, provider: str) -> str:
    return f"{settings.sso_callback_base_url.rstrip('/')}/auth/{provider}/callback"


def build_authorization_url(
    provider: str, tenant_slug: str, redirect_to: str | None = None, *, settings: Settings | None = None
) -> str:
    """Return the IdP URL that starts an SSO sign-in for ``tenant_slug``.

    Only the redirect is built here; token exchange happens at the gateway.
    """
    settings = settings or get_settings()
    provider = provider.lower()
    if provider == "google":
        if not settings.google_client_id:
            raise SsoNotConfigured("Google SSO is not configured", provider=provider)
        query = {
            "client_id": settings.google_client_id,
            "redirect_uri": _callback(settings, provider),
            "response_type": "code",
            "scope": _OIDC_SCOPE,
            "state": _state(tenant_slug, redirect_to),
        }
        return f"https://accounts.google.com/o/oauth2/v2/auth?{urlencode(query)}"
    if provider == "microsoft":
        if not settings.microsoft_client_id:
            raise SsoNotConfigured("Microsoft SSO is not configured", provider=provider)
        query = {
            "client_id": settings.microsoft_client_id,
            "redirect_uri": _callback(settings, provider),
            "response_type": "code",
            "scope": _OIDC_SCOPE,
            "state": _state(tenant_slug, redirect_to),
        }
        return (
            f"https://login.microsoftonline.com/{settings.microsoft_tenant}/oauth2/v2.0/authorize?"
            f"{urlencode(query)}"
        )
    if provider == "saml":
        if not settings.saml_idp_sso_url:
            raise SsoNotConfigured("SAML SSO not configured for this tenant", provider=provider)
        query = {"tenant": tenant_slug, "RelayState": redirect_to or "/dashboard"}
        separator = "&" if "?" in settings.saml_idp_sso_url else "?"
        return f"{settings.saml_idp_sso_url}{separator}{urlencode(query)}"
    raise SsoNotConfigured(f"Unknown SSO provider: {provider}", provider=provider)
