"""
OAuth connection repository
"""
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from oauth_broker.models.oauth_connection import OAuthConnection

from .base import BaseRepository


class OAuthConnectionRepository(BaseRepository[OAuthConnection]):
    def __init__(self, db: AsyncSession):
        super().__init__(OAuthConnection, db)

    async def get_by_provider_identity(self, provider: str, provider_user_id: str) -> Optional[OAuthConnection]:
        return await self.get_by(provider=provider, provider_user_id=provider_user_id)

    async def get_by_user_and_provider(self, user_id: str, provider: str) -> Optional[OAuthConnection]:
        return await self.get_by(user_id=user_id, provider=provider)

    async def list_by_user(self, user_id: str) -> List[OAuthConnection]:
        result = await self.db.execute(
            select(OAuthConnection).where(OAuthConnection.user_id == user_id).order_by(OAuthConnection.provider)
        )
        return list(result.scalars().all())

    async def delete_by_user_and_provider(self, user_id: str, provider: str) -> int:
        """Delete the user's connection for a provider; returns affected rows"""
        result = await self.db.execute(
            delete(OAuthConnection).where(
                OAuthConnection.user_id == user_id,
                OAuthConnection.provider == provider,
            )
        )
        await self.db.flush()
        return result.rowcount or 0
