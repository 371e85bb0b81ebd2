"""
Document Repository

Data access layer for Document model.
"""

from typing import List, Optional
from uuid import UUID
from datetime import datetime, timezone

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from knowledge_base.repositories.base import BaseRepository
from knowledge_base.models.document import Document
from knowledge_base.schemas.document import (
    DocumentStatus,
    REPROCESSABLE_STATUSES,
    check_transition,
)


class DocumentRepository(BaseRepository[Document]):
    """
    Repository for Document model.

    Status changes go through update_status (checked against the
    transition table) or claim_for_reprocessing (atomic).
    """

    def __init__(self, db: AsyncSession):
        super().__init__(Document, db)

    # ============================================================
    # QUERY METHODS - Reading Data
    # ============================================================

    async def get_by_user(
        self,
        user_id: UUID,
        status: Optional[DocumentStatus] = None,
        category_id: Optional[UUID] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[Document]:
        """
        Get a user's documents with optional filtering, newest first.
        """
        stmt = select(self.model).where(self.model.user_id == user_id)

        if status is not None:
            stmt = stmt.where(self.model.status == status.value)

        if category_id is not None:
            stmt = stmt.where(self.model.category_id == category_id)

        stmt = stmt.order_by(self.model.created_at.desc()).offset(skip).limit(limit)

        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def count_by_user(
        self,
        user_id: UUID,
        status: Optional[DocumentStatus] = None,
        category_id: Optional[UUID] = None,
    ) -> int:
        """Count a user's documents (same filters as get_by_user)."""
        stmt = select(func.count(self.model.id)).where(self.model.user_id == user_id)

        if status is not None:
            stmt = stmt.where(self.model.status == status.value)

        if category_id is not None:
            stmt = stmt.where(self.model.category_id == category_id)

        result = await self.db.execute(stmt)
        return result.scalar() or 0

    async def get_by_fingerprint(self, fingerprint: str) -> Optional[Document]:
        """
        Find the document with identical content, uploader loaded.

        Used for deduplication before a new document is stored.
        """
        stmt = (
            select(self.model)
            .options(selectinload(self.model.user))
            .where(self.model.fingerprint == fingerprint)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_status(self, document_id: UUID) -> Optional[str]:
        """Current status read straight from the database."""
        result = await self.db.execute(
            select(self.model.status).where(self.model.id == document_id)
        )
        return result.scalar_one_or_none()

    # ============================================================
    # STATUS UPDATE METHODS - For Background Processing
    # ============================================================

    async def update_status(
        self,
        document_id: UUID,
        status: DocumentStatus,
        error_message: Optional[str] = None,
        chunk_count: Optional[int] = None
    ) -> Optional[Document]:
        """
        Move a document to a new status.

        Args:
            document_id: ID of the document
            status: New status
            error_message: Required when status is ERROR
            chunk_count: Number of chunks when status is READY

        Returns:
            Updated document or None if not found

        Raises:
            InvalidStatusTransition: If the move is not allowed
            ValueError: If ERROR is set without a message
        """
        document = await self.get_by_id(document_id)
        if not document:
            return None

        check_transition(document.status, status)

        if status == DocumentStatus.ERROR and not (error_message and error_message.strip()):
            raise ValueError("An error status needs a non-empty error message")

        document.status = status.value

        if status == DocumentStatus.READY:
            document.processed_at = datetime.now(timezone.utc)
            document.error_message = None
            if chunk_count is not None:
                document.chunk_count = chunk_count

        elif status == DocumentStatus.ERROR:
            document.processed_at = datetime.now(timezone.utc)
            document.error_message = error_message
            document.chunk_count = 0

        elif status == DocumentStatus.PROCESSING:
            document.error_message = None

        await self.db.commit()
        await self.db.refresh(document)
        return document

    async def claim_for_reprocessing(self, document_id: UUID) -> bool:
        """
        Atomically move a finished document back to PROCESSING.

        Only READY and ERROR documents can be claimed, so at most one
        pipeline runs per document.

        Returns:
            True if this call claimed the document, False otherwise
        """
        stmt = (
            update(self.model)
            .where(
                self.model.id == document_id,
                self.model.status.in_([s.value for s in REPROCESSABLE_STATUSES]),
            )
            .values(
                status=DocumentStatus.PROCESSING.value,
                error_message=None,
                processed_at=None,
            )
            .execution_options(synchronize_session="fetch")
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount == 1

    async def set_text_path(self, document_id: UUID, text_path: str) -> None:
        await self.db.execute(
            update(self.model)
            .where(self.model.id == document_id)
            .values(text_path=text_path)
            .execution_options(synchronize_session="fetch")
        )
        await self.db.commit()

    async def set_external_file_id(self, document_id: UUID, external_file_id: Optional[str]) -> None:
        await self.db.execute(
            update(self.model)
            .where(self.model.id == document_id)
            .values(external_file_id=external_file_id)
            .execution_options(synchronize_session="fetch")
        )
        await self.db.commit()
