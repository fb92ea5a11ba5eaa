"""
Connection reconciler

Resolves a provider identity to a local user:
1. Existing connection for (provider, provider_user_id) -> refresh its tokens
2. Existing user with the same email -> attach a new connection
3. Otherwise provision a verified user and its first connection

Inserts run inside savepoints. A uniqueness violation means a concurrent
callback won the race; the savepoint is rolled back and the lookup retried.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from oauth_broker.core.oauth.errors import (
    DuplicateConnectionRace,
    IdentityAlreadyLinked,
    MissingRequiredEmail,
    OAuthError,
)
from oauth_broker.core.oauth.providers import CanonicalUserInfo, TokenSet
from oauth_broker.core.security import generate_unusable_password
from oauth_broker.models.base import utc_now
from oauth_broker.models.oauth_connection import OAuthConnection
from oauth_broker.models.user import User
from oauth_broker.repositories.oauth_connection import OAuthConnectionRepository
from oauth_broker.repositories.user import UserRepository

from .base import BaseService

LOG_PREFIX = "[ConnectionReconciler]"

MAX_RECONCILE_ATTEMPTS = 3

FIRST_NAME_KEYS = ("given_name", "first_name", "firstName")
LAST_NAME_KEYS = ("family_name", "last_name", "lastName")


@dataclass
class ReconcileResult:
    user: User
    connection: OAuthConnection
    is_new_user: bool


def _pick_name(user_info: CanonicalUserInfo, canonical: Optional[str], keys: tuple) -> str:
    if canonical:
        return canonical
    for key in keys:
        value = user_info.raw.get(key)
        if value:
            return str(value)
    return ""


def extract_first_name(user_info: CanonicalUserInfo) -> str:
    return _pick_name(user_info, user_info.given_name, FIRST_NAME_KEYS)


def extract_last_name(user_info: CanonicalUserInfo) -> str:
    return _pick_name(user_info, user_info.family_name, LAST_NAME_KEYS)


def username_base(email: str) -> str:
    """Email local part restricted to [A-Za-z0-9_]."""
    local_part = email.split("@", 1)[0]
    return re.sub(r"[^a-zA-Z0-9_]", "", local_part) or "user"


class ConnectionReconciler(BaseService):
    """Find-or-create users and connections for provider identities."""

    def __init__(self, db: AsyncSession):
        super().__init__(db)
        self.users = UserRepository(db)
        self.connections = OAuthConnectionRepository(db)

    # ==================== Login ====================

    async def find_or_create_user(
        self,
        provider: str,
        user_info: CanonicalUserInfo,
        tokens: TokenSet,
    ) -> ReconcileResult:
        """
        Resolve the local user for a provider identity.

        Raises:
            MissingRequiredEmail: a new user would be created without an email
            DuplicateConnectionRace: the race persisted past every retry
        """
        for attempt in range(1, MAX_RECONCILE_ATTEMPTS + 1):
            try:
                return await self._find_or_create_once(provider, user_info, tokens)
            except DuplicateConnectionRace:
                if attempt == MAX_RECONCILE_ATTEMPTS:
                    raise
                logger.warning(f"{LOG_PREFIX} Concurrent insert for {provider} identity, retrying lookup ({attempt})")
        raise DuplicateConnectionRace(f"Could not reconcile {provider} identity", provider=provider)

    async def _find_or_create_once(
        self,
        provider: str,
        user_info: CanonicalUserInfo,
        tokens: TokenSet,
    ) -> ReconcileResult:
        connection = await self.connections.get_by_provider_identity(provider, user_info.provider_id)
        if connection:
            user = await self.users.get(connection.user_id)
            if user is None:
                raise OAuthError(f"{provider} connection {connection.id} has no owner", provider=provider)
            await self.update_connection(connection, user_info, tokens)
            logger.info(f"{LOG_PREFIX} Existing {provider} connection for user {user.id}")
            return ReconcileResult(user=user, connection=connection, is_new_user=False)

        email = (user_info.email or "").strip()

        user = await self.users.get_by_email(email) if email else None
        if user:
            existing = await self.connections.get_by_user_and_provider(user.id, provider)
            if existing:
                # Same email, different identity at the same provider: re-point the user's connection
                await self.update_connection(existing, user_info, tokens)
                connection = existing
            else:
                connection = await self.create_connection(user.id, provider, user_info, tokens)
            logger.info(f"{LOG_PREFIX} Attached {provider} identity to existing user {user.id} by email")
            return ReconcileResult(user=user, connection=connection, is_new_user=False)

        if not email:
            raise MissingRequiredEmail(
                f"{provider} did not return an email address; cannot create an account",
                provider=provider,
            )

        try:
            async with self.db.begin_nested():
                user = User(
                    email=email,
                    username=await self.generate_username(email),
                    first_name=extract_first_name(user_info),
                    last_name=extract_last_name(user_info),
                    hashed_password=generate_unusable_password(),
                    flag_verified=True,
                    flag_enabled=True,
                )
                self.db.add(user)
                await self.db.flush()
                connection = OAuthConnection(user_id=user.id, provider=provider, **self._connection_fields(user_info, tokens))
                self.db.add(connection)
                await self.db.flush()
        except IntegrityError as e:
            raise DuplicateConnectionRace(f"Concurrent provisioning for {provider}", provider=provider) from e

        logger.info(f"{LOG_PREFIX} Provisioned user {user.id} ({user.username}) from {provider}")
        return ReconcileResult(user=user, connection=connection, is_new_user=True)

    async def generate_username(self, email: str) -> str:
        """Email local part, suffixed 1, 2, ... until unused."""
        base = username_base(email)
        candidate = base
        counter = 1
        while await self.users.username_exists(candidate):
            candidate = f"{base}{counter}"
            counter += 1
        return candidate

    # ==================== Link ====================

    async def link_provider(
        self,
        user_id: str,
        provider: str,
        user_info: CanonicalUserInfo,
        tokens: TokenSet,
    ) -> OAuthConnection:
        """
        Attach a provider identity to an authenticated user, or refresh the existing link.

        Raises:
            IdentityAlreadyLinked: the identity belongs to another user
        """
        for attempt in range(1, MAX_RECONCILE_ATTEMPTS + 1):
            try:
                return await self._link_once(user_id, provider, user_info, tokens)
            except DuplicateConnectionRace:
                if attempt == MAX_RECONCILE_ATTEMPTS:
                    raise
                logger.warning(f"{LOG_PREFIX} Concurrent link for {provider}, retrying lookup ({attempt})")
        raise DuplicateConnectionRace(f"Could not link {provider} identity", provider=provider)

    async def _link_once(
        self,
        user_id: str,
        provider: str,
        user_info: CanonicalUserInfo,
        tokens: TokenSet,
    ) -> OAuthConnection:
        owner = await self.connections.get_by_provider_identity(provider, user_info.provider_id)
        if owner and owner.user_id != user_id:
            logger.warning(f"{LOG_PREFIX} {provider} identity already linked to another user")
            raise IdentityAlreadyLinked(
                f"This {provider} account is already linked to another user",
                provider=provider,
            )

        existing = owner or await self.connections.get_by_user_and_provider(user_id, provider)
        if existing:
            return await self.update_connection(existing, user_info, tokens)
        return await self.create_connection(user_id, provider, user_info, tokens)

    # ==================== Persistence ====================

    def _connection_fields(self, user_info: CanonicalUserInfo, tokens: TokenSet) -> Dict[str, Any]:
        return {
            "provider_user_id": user_info.provider_id,
            "access_token": tokens.access_token,
            "refresh_token": tokens.refresh_token,
            "expires_at": tokens.expires_at,
            "user_data": user_info.to_dict(),
        }

    async def create_connection(
        self,
        user_id: str,
        provider: str,
        user_info: CanonicalUserInfo,
        tokens: TokenSet,
    ) -> OAuthConnection:
        """
        Raises:
            DuplicateConnectionRace: a uniqueness constraint fired
        """
        data = {"user_id": user_id, "provider": provider, **self._connection_fields(user_info, tokens)}
        try:
            async with self.db.begin_nested():
                connection = await self.connections.create(data)
        except IntegrityError as e:
            raise DuplicateConnectionRace(f"Concurrent {provider} connection insert", provider=provider) from e
        logger.info(f"{LOG_PREFIX} Created {provider} connection for user {user_id}")
        return connection

    async def update_connection(
        self,
        connection: OAuthConnection,
        user_info: CanonicalUserInfo,
        tokens: TokenSet,
    ) -> OAuthConnection:
        """
        Store fresh tokens and profile. A missing refresh token keeps the stored one.

        Raises:
            DuplicateConnectionRace: the new provider_user_id is already taken
        """
        fields = self._connection_fields(user_info, tokens)
        if not fields["refresh_token"]:
            fields["refresh_token"] = connection.refresh_token
        fields["updated_at"] = utc_now()
        provider = connection.provider
        try:
            async with self.db.begin_nested():
                return await self.connections.update(connection, fields)
        except IntegrityError as e:
            raise DuplicateConnectionRace(f"Concurrent {provider} connection update", provider=provider) from e

    # ==================== Disconnect / listing ====================

    async def disconnect_provider(self, user_id: str, provider: str) -> bool:
        """True when exactly the caller's connection for this provider was removed."""
        deleted = await self.connections.delete_by_user_and_provider(user_id, provider)
        if deleted:
            logger.info(f"{LOG_PREFIX} Disconnected {provider} for user {user_id}")
        return deleted > 0

    async def list_connections(self, user_id: str) -> List[OAuthConnection]:
        return await self.connections.list_by_user(user_id)

    async def get_connection(self, user_id: str, provider: str) -> Optional[OAuthConnection]:
        return await self.connections.get_by_user_and_provider(user_id, provider)
