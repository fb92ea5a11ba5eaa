"""
User repository
"""
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from oauth_broker.models.user import User

from .base import BaseRepository


class UserRepository(BaseRepository[User]):
    def __init__(self, db: AsyncSession):
        super().__init__(User, db)

    async def get_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive email lookup"""
        result = await self.db.execute(select(User).where(func.lower(User.email) == email.strip().lower()))
        return result.scalars().first()

    async def username_exists(self, username: str) -> bool:
        return await self.exists(username=username)
