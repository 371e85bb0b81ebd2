"""
Document Processing Pipeline

Stages used by the background ingestion task:
Extract → Chunk → (Embed + Store, inside the vector store)

Design Pattern: Facade
---------------------
The pipeline hides the parsers, the chunker, the Gemini collaborators
and the vector store behind a few coroutines. The task owns the
document state; the pipeline only transforms data and talks to
external services.

Usage:
------
    from knowledge_base.ai.rag.pipeline import get_document_pipeline

    pipeline = get_document_pipeline()
    text = await pipeline.extract(file_bytes, "application/pdf", "handbook.pdf")
    chunks = await pipeline.chunk(text)
    records = pipeline.build_records(document, chunks)
    ids = await pipeline.vector_store.upsert(records)
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from knowledge_base.core.config import settings
from knowledge_base.ai.parsers import ExtractionError, FailureReason, extract_text
from knowledge_base.ai.rag.chunker import ChunkerConfig, TextChunk, TextChunker
from knowledge_base.ai.llm.gemini_client import (
    delete_knowledge_file,
    register_knowledge_file,
    semantic_chunk,
)
from knowledge_base.db.vector_store import VectorStore, get_vector_store
from knowledge_base.models.document import Document
from knowledge_base.repositories.chunk_repo import build_vector_id
from knowledge_base.schemas.vector import ChunkVectorMetadata, VectorRecord

logger = logging.getLogger(__name__)

KnowledgeFileRegistrar = Callable[[str, Dict[str, Any]], Awaitable[str]]
KnowledgeFileRemover = Callable[[str], Awaitable[None]]


# ============================================================
# DOCUMENT PROCESSING PIPELINE
# ============================================================

class DocumentPipeline:
    """
    Stages of the ingestion pipeline.

    Attributes:
        chunker: TextChunker (semantic delegate + deterministic fallback)
        vector_store: Replicated VectorStore
        timeout: Seconds allowed for each external call
    """

    def __init__(
        self,
        chunker: TextChunker,
        vector_store: VectorStore,
        timeout: Optional[float] = None,
        register_file: Optional[KnowledgeFileRegistrar] = None,
        remove_file: Optional[KnowledgeFileRemover] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            chunker: Configured TextChunker
            vector_store: Vector store every chunk is written to
            timeout: Timeout for extraction and knowledge-file calls
            register_file: Knowledge-file registration, None to disable
            remove_file: Knowledge-file removal, None to disable
        """
        self.chunker = chunker
        self.vector_store = vector_store
        self.timeout = timeout
        self.register_file = register_file
        self.remove_file = remove_file

    # ============================================================
    # EXTRACTION
    # ============================================================

    async def extract(self, content: bytes, media_type: str, filename: Optional[str] = None) -> str:
        """
        Extract plain text from the original file.

        Parsing is CPU bound, so it runs in a worker thread. A file that
        parses but holds no text is not an error: it yields "".

        Raises:
            ExtractionError: Corrupt, encrypted or unsupported file
            asyncio.TimeoutError: Extraction took longer than the timeout
        """
        try:
            text = await asyncio.wait_for(
                asyncio.to_thread(extract_text, content, media_type, filename),
                timeout=self.timeout,
            )
        except ExtractionError as e:
            if e.reason == FailureReason.EMPTY:
                logger.info(f"No text content in {filename}, continuing with empty text")
                return ""
            raise

        logger.info(f"Extracted {len(text)} characters from {filename}")
        return text

    # ============================================================
    # CHUNKING
    # ============================================================

    async def chunk(self, text: str) -> List[TextChunk]:
        return await self.chunker.chunk(text)

    def build_records(self, document: Document, chunks: List[TextChunk]) -> List[VectorRecord]:
        """
        Turn chunks into vector records with their structured metadata.

        Vector ids are stable per (document, index), so a reprocess
        overwrites rather than duplicates.
        """
        created_at = datetime.now(timezone.utc)
        total = len(chunks)

        return [
            VectorRecord(
                id=build_vector_id(document.id, chunk.index),
                text=chunk.text,
                metadata=ChunkVectorMetadata(
                    document_id=str(document.id),
                    user_id=str(document.user_id),
                    file_name=document.name,
                    file_type=document.media_type,
                    chunk_index=chunk.index,
                    total_chunks=total,
                    created_at=created_at,
                ),
            )
            for chunk in chunks
        ]

    # ============================================================
    # KNOWLEDGE FILES (best effort)
    # ============================================================

    async def register_knowledge_file(self, path: str, document: Document) -> Optional[str]:
        """
        Register the extracted text as a knowledge file.

        Returns:
            External file id, or None when disabled or on failure
        """
        if self.register_file is None:
            return None

        metadata = {
            "document_id": str(document.id),
            "name": document.name,
            "media_type": document.media_type,
        }
        try:
            return await asyncio.wait_for(self.register_file(path, metadata), timeout=self.timeout)
        except Exception as e:
            logger.warning(f"Knowledge file registration failed for {document.id}: {e}")
            return None

    async def remove_knowledge_file(self, file_id: Optional[str]) -> None:
        """Remove a knowledge file; failures are logged and ignored."""
        if not file_id or self.remove_file is None:
            return

        try:
            await asyncio.wait_for(self.remove_file(file_id), timeout=self.timeout)
        except Exception as e:
            logger.warning(f"Knowledge file removal failed for {file_id}: {e}")


# ============================================================
# SINGLETON INSTANCE
# ============================================================

_pipeline: Optional[DocumentPipeline] = None


def create_document_pipeline(vector_store: Optional[VectorStore] = None) -> DocumentPipeline:
    """Build a pipeline from settings."""
    semantic = None
    if settings.SEMANTIC_CHUNKING_ENABLED and settings.GEMINI_API_KEY:
        semantic = semantic_chunk

    chunker = TextChunker(
        ChunkerConfig(
            chunk_size=settings.CHUNK_SIZE,
            overlap_ratio=settings.CHUNK_OVERLAP_RATIO,
            semantic_timeout=settings.EXTERNAL_CALL_TIMEOUT_SECONDS,
        ),
        semantic_chunker=semantic,
    )

    knowledge_files = settings.KNOWLEDGE_FILES_ENABLED and bool(settings.GEMINI_API_KEY)

    logger.info(
        f"DocumentPipeline initialized: chunk_size={settings.CHUNK_SIZE}, "
        f"semantic={'on' if semantic else 'off'}, "
        f"knowledge_files={'on' if knowledge_files else 'off'}"
    )

    return DocumentPipeline(
        chunker=chunker,
        vector_store=vector_store or get_vector_store(),
        timeout=settings.EXTERNAL_CALL_TIMEOUT_SECONDS,
        register_file=register_knowledge_file if knowledge_files else None,
        remove_file=delete_knowledge_file if knowledge_files else None,
    )


def get_document_pipeline() -> DocumentPipeline:
    """Get or create DocumentPipeline singleton."""
    global _pipeline

    if _pipeline is None:
        _pipeline = create_document_pipeline()

    return _pipeline


def reset_document_pipeline() -> None:
    global _pipeline
    _pipeline = None
