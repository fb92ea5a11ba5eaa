from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from oauth_broker.core.oauth.errors import (
    ProviderNotConfigured,
    RefreshNotSupported,
    TokenExchangeError,
    TransportError,
    UserInfoError,
)
from oauth_broker.core.oauth.factory import list_supported_providers
from oauth_broker.core.oauth.providers import FacebookAdapter, GoogleAdapter, LinkedInAdapter, MicrosoftAdapter

GOOGLE_TOKEN = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO = "https://openidconnect.googleapis.com/v1/userinfo"
MICROSOFT_TOKEN = "https://login.microsoftonline.com/contoso/oauth2/v2.0/token"


def _query(url: str) -> dict:
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


def _form(request: httpx.Request) -> dict:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


# ==================== Registry ====================


def test_registry_returns_adapter_per_provider(registry):
    assert isinstance(registry.get("google"), GoogleAdapter)
    assert isinstance(registry.get("facebook"), FacebookAdapter)
    assert isinstance(registry.get("linkedin"), LinkedInAdapter)
    assert isinstance(registry.get("microsoft"), MicrosoftAdapter)
    assert registry.get("google") is registry.get("google")


def test_registry_unknown_and_disabled(registry, oauth_config):
    with pytest.raises(ProviderNotConfigured):
        registry.get("github")
    assert registry.find("github") is None

    oauth_config.load_from_mapping({"providers": {"google": {"client_id": "id", "client_secret": ""}}})
    registry._instances.clear()
    with pytest.raises(ProviderNotConfigured):
        registry.get("google")
    assert not registry.is_enabled("google")


def test_registry_lists_enabled_providers(registry):
    assert registry.enabled_providers() == ["google", "facebook", "linkedin", "microsoft"]
    providers = registry.list_providers()
    assert {"id": "microsoft", "display_name": "Microsoft"} in providers
    assert all(set(p) == {"id", "display_name"} for p in providers)
    assert set(list_supported_providers()) >= {"google", "facebook", "linkedin", "microsoft"}


# ==================== Authorization URLs ====================


def test_google_authorization_url(registry):
    url = registry.get("google").authorization_url(state="st", code_challenge="ch")
    params = _query(url)

    assert url.startswith("https://accounts.google.com/o/oauth2/v2/auth?")
    assert params["client_id"] == "google-client-id"
    assert params["redirect_uri"] == "http://testserver/api/oauth/google/callback"
    assert params["response_type"] == "code"
    assert params["scope"] == "openid email profile https://www.googleapis.com/auth/spreadsheets"
    assert params["state"] == "st"
    assert params["code_challenge"] == "ch"
    assert params["code_challenge_method"] == "S256"
    assert params["access_type"] == "offline"
    assert params["prompt"] == "consent"


def test_facebook_authorization_url_uses_comma_scopes(registry):
    url = registry.get("facebook").authorization_url(state="st", code_challenge="ch")

    assert url.startswith("https://www.facebook.com/v18.0/dialog/oauth?")
    assert _query(url)["scope"] == "email,public_profile"


def test_microsoft_authorization_url_uses_tenant(registry):
    url = registry.get("microsoft").authorization_url(state="st", code_challenge="ch")

    assert url.startswith("https://login.microsoftonline.com/contoso/oauth2/v2.0/authorize?")
    params = _query(url)
    assert params["response_mode"] == "query"
    assert params["scope"] == "openid email profile User.Read"


# ==================== Token exchange ====================


@pytest.mark.asyncio
async def test_exchange_code_sends_verifier(registry, provider_http):
    provider_http.add(
        "POST",
        GOOGLE_TOKEN,
        json={"access_token": "at", "refresh_token": "rt", "expires_in": 3600, "token_type": "Bearer"},
    )

    before = datetime.now(timezone.utc)
    tokens = await registry.get("google").exchange_code("the-code", verifier="the-verifier")

    assert tokens.access_token == "at"
    assert tokens.refresh_token == "rt"
    assert before + timedelta(seconds=3590) < tokens.expires_at < before + timedelta(seconds=3700)

    form = _form(provider_http.find("POST", GOOGLE_TOKEN)[0])
    assert form["grant_type"] == "authorization_code"
    assert form["code"] == "the-code"
    assert form["code_verifier"] == "the-verifier"
    assert form["client_secret"] == "google-client-secret"
    assert form["redirect_uri"] == "http://testserver/api/oauth/google/callback"


@pytest.mark.asyncio
async def test_exchange_code_without_expiry(registry, provider_http):
    provider_http.add(
        "POST",
        "https://www.linkedin.com/oauth/v2/accessToken",
        json={"access_token": "at"},
    )

    tokens = await registry.get("linkedin").exchange_code("code", verifier="v")

    assert tokens.expires_at is None
    assert tokens.refresh_token is None


@pytest.mark.asyncio
async def test_exchange_code_provider_error_keeps_raw_text(registry, provider_http):
    provider_http.add(
        "POST",
        GOOGLE_TOKEN,
        status_code=400,
        json={"error": "invalid_grant", "error_description": "Bad Request"},
    )

    with pytest.raises(TokenExchangeError) as exc_info:
        await registry.get("google").exchange_code("code", verifier="v")

    assert exc_info.value.reason == "provider_error"
    assert "invalid_grant" in exc_info.value.message
    assert "invalid_grant" in exc_info.value.detail


@pytest.mark.asyncio
async def test_exchange_code_without_access_token(registry, provider_http):
    provider_http.add("POST", GOOGLE_TOKEN, json={"token_type": "Bearer"})

    with pytest.raises(TokenExchangeError):
        await registry.get("google").exchange_code("code", verifier="v")


@pytest.mark.asyncio
async def test_network_failure_becomes_transport_error(registry, provider_http):
    def _boom(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    provider_http.add_handler("POST", GOOGLE_TOKEN, _boom)

    with pytest.raises(TransportError) as exc_info:
        await registry.get("google").exchange_code("code", verifier="v")
    assert exc_info.value.reason == "provider_error"


# ==================== Refresh ====================


@pytest.mark.asyncio
async def test_google_refresh_keeps_old_refresh_token(registry, provider_http):
    provider_http.add("POST", GOOGLE_TOKEN, json={"access_token": "new-at", "expires_in": 3600})

    tokens = await registry.get("google").refresh_token("old-rt")

    assert tokens.access_token == "new-at"
    assert tokens.refresh_token == "old-rt"
    form = _form(provider_http.find("POST", GOOGLE_TOKEN)[0])
    assert form["grant_type"] == "refresh_token"
    assert form["refresh_token"] == "old-rt"


@pytest.mark.asyncio
async def test_microsoft_refresh_sends_scopes(registry, provider_http):
    provider_http.add("POST", MICROSOFT_TOKEN, json={"access_token": "new-at", "refresh_token": "new-rt"})

    tokens = await registry.get("microsoft").refresh_token("old-rt")

    assert tokens.refresh_token == "new-rt"
    assert _form(provider_http.find("POST", MICROSOFT_TOKEN)[0])["scope"] == "openid email profile User.Read"


@pytest.mark.asyncio
@pytest.mark.parametrize("provider", ["facebook", "linkedin"])
async def test_refresh_not_supported(registry, provider_http, provider):
    with pytest.raises(RefreshNotSupported):
        await registry.get(provider).refresh_token("rt")
    assert provider_http.requests == []


# ==================== User info ====================


@pytest.mark.asyncio
async def test_google_user_info(registry, provider_http):
    provider_http.add(
        "GET",
        GOOGLE_USERINFO,
        json={
            "sub": "g-123",
            "email": "ada@example.com",
            "given_name": "Ada",
            "family_name": "Lovelace",
            "name": "Ada Lovelace",
            "picture": "https://example.com/ada.png",
        },
    )

    info = await registry.get("google").fetch_user_info("at")

    assert info.provider_id == "g-123"
    assert info.email == "ada@example.com"
    assert info.given_name == "Ada"
    assert info.family_name == "Lovelace"
    assert info.picture_url == "https://example.com/ada.png"
    assert provider_http.requests[0].headers["Authorization"] == "Bearer at"


@pytest.mark.asyncio
async def test_facebook_user_info(registry, provider_http):
    provider_http.add(
        "GET",
        "https://graph.facebook.com/v18.0/me",
        json={
            "id": "fb-1",
            "name": "Grace Hopper",
            "first_name": "Grace",
            "last_name": "Hopper",
            "email": "grace@example.com",
            "picture": {"data": {"url": "https://example.com/grace.png"}},
        },
    )

    info = await registry.get("facebook").fetch_user_info("at")

    assert info.provider_id == "fb-1"
    assert info.given_name == "Grace"
    assert info.picture_url == "https://example.com/grace.png"
    assert "fields" in provider_http.requests[0].url.params


@pytest.mark.asyncio
async def test_microsoft_user_info_falls_back_to_upn(registry, provider_http):
    provider_http.add(
        "GET",
        "https://graph.microsoft.com/v1.0/me",
        json={
            "id": "ms-1",
            "mail": None,
            "userPrincipalName": "alan@contoso.com",
            "givenName": "Alan",
            "surname": "Turing",
            "displayName": "Alan Turing",
        },
    )

    info = await registry.get("microsoft").fetch_user_info("at")

    assert info.email == "alan@contoso.com"
    assert info.given_name == "Alan"
    assert info.family_name == "Turing"


@pytest.mark.asyncio
async def test_user_info_errors(registry, provider_http):
    provider_http.add("GET", GOOGLE_USERINFO, status_code=401, json={"error": "invalid_token"})
    with pytest.raises(UserInfoError):
        await registry.get("google").fetch_user_info("at")

    provider_http.add("GET", GOOGLE_USERINFO, json={"email": "nobody@example.com"})
    with pytest.raises(UserInfoError):
        await registry.get("google").fetch_user_info("at")
