"""
Token lifecycle manager

Returns a usable provider access token for a connection, refreshing it
through the provider adapter when it is expired or about to expire.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from oauth_broker.core.oauth.errors import ConnectionNotFound, OAuthError, TokenExpiredAndRefreshFailed
from oauth_broker.core.oauth.factory import ProviderRegistry
from oauth_broker.core.settings import settings
from oauth_broker.models.base import utc_now
from oauth_broker.models.oauth_connection import OAuthConnection
from oauth_broker.repositories.oauth_connection import OAuthConnectionRepository

from .base import BaseService

LOG_PREFIX = "[TokenLifecycle]"


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TokenLifecycleManager(BaseService):
    def __init__(
        self,
        db: AsyncSession,
        registry: ProviderRegistry,
        refresh_margin_seconds: Optional[int] = None,
    ):
        super().__init__(db)
        self.registry = registry
        self.connections = OAuthConnectionRepository(db)
        if refresh_margin_seconds is None:
            refresh_margin_seconds = settings.oauth_token_refresh_margin_seconds
        self.refresh_margin = timedelta(seconds=refresh_margin_seconds)

    def is_expired(self, connection: OAuthConnection, now: Optional[datetime] = None) -> bool:
        """Connections without expires_at never expire."""
        if connection.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return _as_utc(connection.expires_at) <= now + self.refresh_margin

    async def get_valid_access_token(self, connection: OAuthConnection) -> str:
        """
        Get a non-expired access token, refreshing at most once.

        The refreshed token is committed right away so a failure in the
        caller's provider request does not lose it.

        Raises:
            TokenExpiredAndRefreshFailed: no refresh token, or the refresh failed
        """
        if not self.is_expired(connection):
            return connection.access_token

        provider = connection.provider
        if not connection.refresh_token:
            logger.info(f"{LOG_PREFIX} {provider} token expired and no refresh token is stored")
            raise TokenExpiredAndRefreshFailed(
                f"{provider} access token expired; please reconnect your account",
                provider=provider,
            )

        try:
            adapter = self.registry.get(provider)
            tokens = await adapter.refresh_token(connection.refresh_token)
        except OAuthError as e:
            logger.warning(f"{LOG_PREFIX} {provider} refresh failed: {e.reason} - {e.message}")
            raise TokenExpiredAndRefreshFailed(
                f"{provider} access token expired and could not be refreshed; please reconnect your account",
                provider=provider,
                detail=e.message,
            ) from e

        await self.connections.update(
            connection,
            {
                "access_token": tokens.access_token,
                "refresh_token": tokens.refresh_token or connection.refresh_token,
                "expires_at": tokens.expires_at,
                "updated_at": utc_now(),
            },
        )
        await self.commit()
        logger.info(f"{LOG_PREFIX} Refreshed {provider} token for user {connection.user_id}")
        return tokens.access_token

    async def get_valid_access_token_for(self, user_id: str, provider: str) -> str:
        """
        Raises:
            ConnectionNotFound: the user has no connection for this provider
            TokenExpiredAndRefreshFailed: see get_valid_access_token
        """
        connection = await self.connections.get_by_user_and_provider(user_id, provider)
        if connection is None:
            raise ConnectionNotFound(f"No {provider} connection for this user", provider=provider)
        return await self.get_valid_access_token(connection)
