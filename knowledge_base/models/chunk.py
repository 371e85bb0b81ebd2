from sqlalchemy import Column, Integer, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from .base import BaseModel


class Chunk(BaseModel):
    __tablename__ = "chunks"
    __table_args__ = (
        UniqueConstraint("document_id", "chunk_index", name="uq_chunks_document_index"),
    )

    document_id = Column(Uuid(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    chunk_index = Column(Integer, nullable=False)  # 0-based, dense per document
    vector_id = Column(String(100), nullable=False, unique=True)  # "{document_id}_chunk_{index}"

    document = relationship("Document", back_populates="chunks")
