from __future__ import annotations

import json
from urllib.parse import parse_qs, urlsplit

import pytest

from solveur.core.config import Settings
from solveur.core.errors import SsoNotConfigured
from solveur.services.auth.sso import build_authorization_url


def test_google_url_carries_tenant_state() -> None:
    settings = Settings(google_client_id="google-client", sso_callback_base_url="https://app.solveur.test/")
    url = build_authorization_url("Google", "acme", "/inbox", settings=settings)

    parts = urlsplit(url)
    assert parts.netloc == "accounts.google.com"
    query = parse_qs(parts.query)
    assert query["client_id"] == ["google-client"]
    assert query["redirect_uri"] == ["https://app.solveur.test/auth/google/callback"]
    assert query["scope"] == ["openid email profile"]
    assert json.loads(query["state"][0]) == {"tenantSlug": "acme", "redirectTo": "/inbox"}


def test_microsoft_url_uses_directory_tenant() -> None:
    settings = Settings(microsoft_client_id="ms-client", microsoft_tenant="contoso")
    url = build_authorization_url("microsoft", "acme", settings=settings)
    assert url.startswith("https://login.microsoftonline.com/contoso/oauth2/v2.0/authorize?")
    state = json.loads(parse_qs(urlsplit(url).query)["state"][0])
    assert state["redirectTo"] == "/dashboard"


def test_saml_url_appends_relay_state() -> None:
    settings = Settings(saml_idp_sso_url="https://idp.example/sso?app=1")
    url = build_authorization_url("saml", "acme", "/home", settings=settings)
    query = parse_qs(urlsplit(url).query)
    assert query == {"app": ["1"], "tenant": ["acme"], "RelayState": ["/home"]}


@pytest.mark.parametrize("provider", ["google", "microsoft", "saml", "okta"])
def test_unconfigured_providers_raise(provider: str) -> None:
    settings = Settings(google_client_id=None, microsoft_client_id=None, saml_idp_sso_url=None)
    with pytest.raises(SsoNotConfigured) as excinfo:
        build_authorization_url(provider, "acme", settings=settings)
    assert excinfo.value.status_code == 501
