from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs

import pytest

from oauth_broker.core.oauth.errors import ConnectionNotFound, TokenExpiredAndRefreshFailed
from oauth_broker.models import OAuthConnection, User
from oauth_broker.services.token_lifecycle import TokenLifecycleManager

GOOGLE_TOKEN = "https://oauth2.googleapis.com/token"


async def _connection(db, provider="google", expires_in=None, refresh_token="rt", access_token="old-at"):
    user = User(email="ada@example.com", username="ada", hashed_password="x")
    db.add(user)
    await db.flush()
    expires_at = None
    if expires_in is not None:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
    connection = OAuthConnection(
        user_id=user.id,
        provider=provider,
        provider_user_id=f"{provider}-1",
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=expires_at,
    )
    db.add(connection)
    await db.flush()
    return connection


@pytest.fixture
def manager(db_session, registry):
    return TokenLifecycleManager(db_session, registry, refresh_margin_seconds=60)


def test_is_expired_honors_margin(manager):
    now = datetime.now(timezone.utc)

    assert not manager.is_expired(OAuthConnection(expires_at=None), now)
    assert not manager.is_expired(OAuthConnection(expires_at=now + timedelta(minutes=10)), now)
    assert manager.is_expired(OAuthConnection(expires_at=now + timedelta(seconds=30)), now)
    assert manager.is_expired(OAuthConnection(expires_at=now - timedelta(seconds=1)), now)
    # Naive values are read as UTC
    assert manager.is_expired(OAuthConnection(expires_at=(now - timedelta(hours=1)).replace(tzinfo=None)), now)


@pytest.mark.asyncio
async def test_valid_token_is_returned_without_network(manager, db_session, provider_http):
    connection = await _connection(db_session, expires_in=3600)

    assert await manager.get_valid_access_token(connection) == "old-at"
    assert provider_http.requests == []


@pytest.mark.asyncio
async def test_token_without_expiry_is_never_refreshed(manager, db_session, provider_http):
    connection = await _connection(db_session, provider="linkedin", refresh_token=None)

    assert await manager.get_valid_access_token(connection) == "old-at"
    assert provider_http.requests == []


@pytest.mark.asyncio
async def test_expired_token_is_refreshed_and_persisted(manager, db_session, provider_http, session_factory):
    provider_http.add("POST", GOOGLE_TOKEN, json={"access_token": "new-at", "expires_in": 3600})
    connection = await _connection(db_session, expires_in=-10)

    token = await manager.get_valid_access_token(connection)

    assert token == "new-at"
    form = parse_qs(provider_http.find("POST", GOOGLE_TOKEN)[0].content.decode())
    assert form["refresh_token"] == ["rt"]

    # Committed: visible from a fresh session
    async with session_factory() as other:
        stored = await other.get(OAuthConnection, connection.id)
        assert stored.access_token == "new-at"
        assert stored.refresh_token == "rt"
        assert not manager.is_expired(stored)


@pytest.mark.asyncio
async def test_expired_without_refresh_token(manager, db_session, provider_http):
    connection = await _connection(db_session, expires_in=-10, refresh_token=None)

    with pytest.raises(TokenExpiredAndRefreshFailed):
        await manager.get_valid_access_token(connection)
    assert provider_http.requests == []


@pytest.mark.asyncio
async def test_rejected_refresh(manager, db_session, provider_http):
    provider_http.add("POST", GOOGLE_TOKEN, status_code=400, json={"error": "invalid_grant"})
    connection = await _connection(db_session, expires_in=-10)

    with pytest.raises(TokenExpiredAndRefreshFailed) as exc_info:
        await manager.get_valid_access_token(connection)

    assert exc_info.value.reason == "token_expired"
    assert "invalid_grant" in exc_info.value.detail


@pytest.mark.asyncio
async def test_provider_without_refresh_grant(manager, db_session, provider_http):
    connection = await _connection(db_session, provider="facebook", expires_in=-10)

    with pytest.raises(TokenExpiredAndRefreshFailed):
        await manager.get_valid_access_token(connection)
    assert provider_http.requests == []


@pytest.mark.asyncio
async def test_lookup_by_user(manager, db_session):
    connection = await _connection(db_session, expires_in=3600)

    assert await manager.get_valid_access_token_for(connection.user_id, "google") == "old-at"
    with pytest.raises(ConnectionNotFound):
        await manager.get_valid_access_token_for(connection.user_id, "microsoft")
