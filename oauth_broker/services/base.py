"""
Base service
"""
from sqlalchemy.ext.asyncio import AsyncSession


class BaseService:
    """Holds the request-scoped session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def commit(self):
        await self.db.commit()

    async def rollback(self):
        await self.db.rollback()
