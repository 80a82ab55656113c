"""
Identity store
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.validation import EmailValidator
from app.db.models.user import User


class UserRepository:
    """Read/write access to users"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, user_id: int) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.id == user_id, User.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Optional[User]:
        """Look up by email; the input is normalized so case aliases resolve to one user"""
        result = await self.db.execute(
            select(User).where(
                User.email == EmailValidator.normalize(email),
                User.deleted_at.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def add(self, email: str, password_hash: str) -> User:
        """Stage a new user and flush to get its id (no commit)"""
        user = User(email=EmailValidator.normalize(email), password_hash=password_hash)
        self.db.add(user)
        await self.db.flush()
        return user
