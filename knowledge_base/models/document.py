from sqlalchemy import Column, String, Integer, BigInteger, ForeignKey, Text, DateTime, Uuid
from sqlalchemy.orm import relationship
from .base import BaseModel


class Document(BaseModel):
    __tablename__ = "documents"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Uuid(as_uuid=True), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    name = Column(String(255), nullable=False)  # Display name (decoded original filename)
    media_type = Column(String(100), nullable=False)  # application/pdf, text/plain, ...
    size = Column(BigInteger, nullable=False)  # Size in bytes
    storage_path = Column(String(500), nullable=False)  # Original file in storage
    text_path = Column(String(500), nullable=True)  # Extracted text in storage
    external_file_id = Column(String(255), nullable=True)  # Knowledge-file registration
    fingerprint = Column(String(64), nullable=True, unique=True, index=True)  # SHA-256 hex
    status = Column(String(20), default="uploading", nullable=False)  # uploading, processing, ready, error
    error_message = Column(Text, nullable=True)
    chunk_count = Column(Integer, default=0, nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    user = relationship("User", back_populates="documents")
    category = relationship("Category")
    chunks = relationship(
        "Chunk",
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Chunk.chunk_index",
    )
