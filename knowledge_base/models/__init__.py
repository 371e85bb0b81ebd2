from knowledge_base.models.base import Base
from knowledge_base.models.user import User
from knowledge_base.models.category import Category
from knowledge_base.models.document import Document
from knowledge_base.models.chunk import Chunk

__all__ = [
    "Base",
    "User",
    "Category",
    "Document",
    "Chunk",
]
