"""
User Repository

Read access to document owners. Accounts themselves are managed
by the auth service.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_base.repositories.base import BaseRepository
from knowledge_base.models import User


class UserRepository(BaseRepository[User]):
    """Repository for User model."""

    def __init__(self, db: AsyncSession):
        super().__init__(User, db)

