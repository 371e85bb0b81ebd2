"""
Chunk Repository

Data access layer for Chunk model.

Chunk rows mirror what was written to the vector indexes: a row is
only created after the upsert to every index succeeded.
"""

from typing import List, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_base.repositories.base import BaseRepository
from knowledge_base.models.chunk import Chunk


def build_vector_id(document_id: UUID, chunk_index: int) -> str:
    """Stable vector id of a chunk: ``{document_id}_chunk_{index}``."""
    return f"{document_id}_chunk_{chunk_index}"


class ChunkRepository(BaseRepository[Chunk]):
    """Repository for Chunk model."""

    def __init__(self, db: AsyncSession):
        super().__init__(Chunk, db)

    async def get_by_document(self, document_id: UUID) -> List[Chunk]:
        """All chunks of a document, in order."""
        stmt = (
            select(self.model)
            .where(self.model.document_id == document_id)
            .order_by(self.model.chunk_index.asc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_vector_ids(self, document_id: UUID) -> List[str]:
        """Vector ids recorded for a document."""
        stmt = (
            select(self.model.vector_id)
            .where(self.model.document_id == document_id)
            .order_by(self.model.chunk_index.asc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def count_by_document(self, document_id: UUID) -> int:
        stmt = select(func.count(self.model.id)).where(self.model.document_id == document_id)
        result = await self.db.execute(stmt)
        return result.scalar() or 0

    async def delete_by_document(self, document_id: UUID) -> int:
        """
        Delete every chunk row of a document.

        Returns:
            Number of rows deleted
        """
        result = await self.db.execute(
            delete(self.model).where(self.model.document_id == document_id)
        )
        await self.db.commit()
        return result.rowcount or 0

    async def create_many(
        self,
        document_id: UUID,
        chunks: Sequence[Tuple[int, str, str]],
        commit: bool = True,
    ) -> List[Chunk]:
        """
        Insert the chunk rows of one processing pass.

        Args:
            document_id: Owning document
            chunks: (chunk_index, content, vector_id) tuples
            commit: Commit now, or leave it to the caller's next commit

        Returns:
            The new Chunk instances
        """
        instances = [
            self.model(
                document_id=document_id,
                chunk_index=chunk_index,
                content=content,
                vector_id=vector_id,
            )
            for chunk_index, content, vector_id in chunks
        ]
        self.db.add_all(instances)

        if commit:
            await self.db.commit()
        else:
            await self.db.flush()

        return instances
