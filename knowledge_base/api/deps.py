"""
API Dependencies

Caller identity and service factories shared by the endpoints.

Authentication is handled in front of this service; the gateway passes
the authenticated user id in the ``X-User-Id`` header.
"""

import logging
import uuid

from fastapi import HTTPException, Depends, Header, status
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_base.db.database import get_db
from knowledge_base.models import User
from knowledge_base.repositories.user_repo import UserRepository
from knowledge_base.services.document_service import DocumentService

logger = logging.getLogger(__name__)


# =====================================================
# Get Current user
# =====================================================
async def get_current_user(
    x_user_id: str = Header(..., alias="X-User-Id", description="Authenticated user id"),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Resolve the caller from the X-User-Id header.

    Raises:
        HTTPException 401: If the header is malformed or the user is unknown
    """
    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user id"
        )

    user = await UserRepository(db).get_by_id(user_id)
    if user is None:
        logger.warning(f"Request with unknown user id {user_id}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user"
        )

    return user


# =====================================================
# Services
# =====================================================
def get_document_service(db: AsyncSession = Depends(get_db)) -> DocumentService:
    """
    Dependency that provides DocumentService instance.

    A new service is created for each request with the request's
    database session.
    """
    return DocumentService(db)
