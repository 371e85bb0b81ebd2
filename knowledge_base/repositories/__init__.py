from knowledge_base.repositories.base import BaseRepository
from knowledge_base.repositories.user_repo import UserRepository
from knowledge_base.repositories.document_repo import DocumentRepository
from knowledge_base.repositories.chunk_repo import ChunkRepository, build_vector_id

__all__ = [
    "BaseRepository",
    "UserRepository",
    "DocumentRepository",
    "ChunkRepository",
    "build_vector_id",
]
