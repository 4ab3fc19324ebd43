"""
User Data Access Object.

WHY: UserDAO provides database operations for User model, following
the DAO pattern for separation of concerns and testability.
"""

from typing import Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from parish_billing.dao.base import BaseDAO
from parish_billing.models.user import User


class UserDAO(BaseDAO[User]):
    """Data Access Object for User model."""

    def __init__(self, session: AsyncSession):
        super().__init__(User, session)

    async def get_by_email(self, email: str) -> Optional[User]:
        """
        Retrieve user by email address.

        WHY: Email is the login identifier. Case-insensitive comparison
        prevents duplicate accounts with different casing.

        Args:
            email: User's email address

        Returns:
            User instance if found, None otherwise
        """
        result = await self.session.execute(
            select(User).where(func.lower(User.email) == email.lower())
        )
        return result.scalar_one_or_none()
