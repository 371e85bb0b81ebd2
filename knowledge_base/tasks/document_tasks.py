"""
Document Processing Tasks

Background tasks for processing uploaded documents.

The job moves a document from PROCESSING to READY or ERROR. It is
enqueued by the document service after an upload or a reprocess claim,
and runs either in the ARQ worker or inline when Redis is unavailable.

Collaborators come from the ARQ context when present (``session_factory``,
``pipeline``, ``storage``), otherwise from the module singletons.
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_base.db.database import AsyncSessionLocal
from knowledge_base.models.document import Document
from knowledge_base.repositories.document_repo import DocumentRepository
from knowledge_base.repositories.chunk_repo import ChunkRepository
from knowledge_base.schemas.document import DocumentStatus
from knowledge_base.storage import get_storage, StorageBackend, StorageError
from knowledge_base.utils.file_utils import build_text_path
from knowledge_base.ai.parsers import ExtractionError
from knowledge_base.ai.rag.pipeline import DocumentPipeline, get_document_pipeline
from knowledge_base.db.vector_store import VectorSyncError

logger = logging.getLogger(__name__)


class ProcessingError(Exception):
    """Raised when a pipeline stage fails for a reason other than extraction or sync."""
    pass


# ============================================================
# DOCUMENT PROCESSING TASK
# ============================================================

async def process_document(
    ctx: Dict[str, Any],
    document_id: str
) -> Dict[str, Any]:
    """
    Process a document.

    Steps:
    1. Load the document (gone → nothing to do)
    2. Read the original file and extract its text
    3. Store the text and register it as a knowledge file (best effort)
    4. Chunk the text
    5. Remove vectors and chunk rows of any previous pass
    6. Upsert the new chunks to every vector index
    7. Re-check the document still exists, then persist chunk rows
       and mark it READY

    Any failure marks the document ERROR with a message.

    Args:
        ctx: ARQ context (job_id, job_try, optional collaborators)
        document_id: UUID of the document to process

    Returns:
        Dict with processing result
    """
    job_id = ctx.get('job_id', 'unknown')
    job_try = ctx.get('job_try', 1)

    logger.info(
        f"Processing document {document_id} "
        f"(job: {job_id}, attempt: {job_try})"
    )

    try:
        doc_uuid = UUID(str(document_id))
    except ValueError:
        logger.error(f"Invalid document ID: {document_id}")
        return {"success": False, "error": "Invalid document ID"}

    session_factory = ctx.get("session_factory") or AsyncSessionLocal
    pipeline: DocumentPipeline = ctx.get("pipeline") or get_document_pipeline()
    storage: StorageBackend = ctx.get("storage") or get_storage()

    session: AsyncSession = session_factory()
    upserted_ids: List[str] = []

    try:
        documents = DocumentRepository(session)
        chunks_repo = ChunkRepository(session)

        # ================================================
        # STEP 1: Load document
        # ================================================
        document = await documents.get_by_id(doc_uuid)

        if not document:
            logger.info(f"Document {document_id} no longer exists, nothing to process")
            return {"success": False, "document_id": document_id, "error": "Document not found"}

        if document.status != DocumentStatus.PROCESSING.value:
            logger.warning(
                f"Document {document_id} is '{document.status}', not processing; skipping job"
            )
            return {"success": False, "document_id": document_id, "error": "Document not in processing"}

        # ================================================
        # STEP 2: Read original and extract text
        # ================================================
        try:
            file_content = await storage.get(document.storage_path)
        except StorageError as e:
            raise ProcessingError(f"Failed to read original file: {e}") from e

        logger.info(f"Document {document_id}: read {len(file_content)} bytes")

        text = await pipeline.extract(file_content, document.media_type, document.name)

        # ================================================
        # STEP 3: Persist text, register knowledge file
        # ================================================
        text_path = build_text_path(document.id)
        try:
            await storage.save(text.encode("utf-8"), text_path, content_type="text/plain")
        except StorageError as e:
            raise ProcessingError(f"Failed to store extracted text: {e}") from e
        await documents.set_text_path(document.id, text_path)

        if document.external_file_id:
            await pipeline.remove_knowledge_file(document.external_file_id)
        external_file_id = await pipeline.register_knowledge_file(storage.local_path(text_path), document)
        await documents.set_external_file_id(document.id, external_file_id)

        # ================================================
        # STEP 4: Chunk
        # ================================================
        chunks = await pipeline.chunk(text)
        logger.info(f"Document {document_id}: {len(chunks)} chunks")

        # ================================================
        # STEP 5: Clear the previous pass
        # ================================================
        previous_ids = await chunks_repo.get_vector_ids(document.id)
        if previous_ids:
            await pipeline.vector_store.delete(previous_ids)
        await pipeline.vector_store.delete_document(str(document.id))
        removed = await chunks_repo.delete_by_document(document.id)
        if removed:
            logger.info(f"Document {document_id}: removed {removed} chunks of the previous pass")

        # ================================================
        # STEP 6: Upsert to every vector index
        # ================================================
        records = pipeline.build_records(document, chunks)
        upserted_ids = await pipeline.vector_store.upsert(records)

        # ================================================
        # STEP 7: Persist chunks, mark READY
        # ================================================
        if await documents.get_status(doc_uuid) is None:
            logger.info(f"Document {document_id} was deleted during processing, removing its vectors")
            await _discard_vectors(pipeline, upserted_ids)
            await pipeline.remove_knowledge_file(external_file_id)
            return {"success": False, "document_id": document_id, "error": "Document deleted during processing"}

        await chunks_repo.create_many(
            document.id,
            [(record.metadata.chunk_index, record.text, record.id) for record in records],
            commit=False,
        )
        await documents.update_status(doc_uuid, DocumentStatus.READY, chunk_count=len(records))

        logger.info(
            f"Document {document_id}: processing complete, "
            f"{len(records)} chunks created"
        )

        return {
            "success": True,
            "document_id": document_id,
            "chunks_created": len(records),
            "text_length": len(text),
        }

    except ExtractionError as e:
        message = f"Text extraction failed ({e.reason.value}): {e}"
        logger.error(f"Document {document_id}: {message}")
        await _fail(session, pipeline, doc_uuid, message, upserted_ids)
        return {"success": False, "document_id": document_id, "error": message}

    except (ProcessingError, VectorSyncError) as e:
        logger.error(f"Document {document_id} processing failed: {e}")
        await _fail(session, pipeline, doc_uuid, str(e), upserted_ids)
        return {"success": False, "document_id": document_id, "error": str(e)}

    except Exception as e:
        message = str(e) or e.__class__.__name__
        logger.exception(f"Document {document_id} unexpected error: {message}")
        await _fail(session, pipeline, doc_uuid, f"Unexpected error: {message}", upserted_ids)
        return {"success": False, "document_id": document_id, "error": message}

    finally:
        await session.close()


# ============================================================
# HELPER FUNCTIONS
# ============================================================

async def _discard_vectors(pipeline: DocumentPipeline, ids: List[str]) -> None:
    if not ids:
        return
    try:
        await pipeline.vector_store.delete(ids)
    except VectorSyncError as e:
        logger.error(f"Failed to discard {len(ids)} vectors, they may be orphaned: {e}")


async def _fail(
    session: AsyncSession,
    pipeline: DocumentPipeline,
    document_id: UUID,
    error: str,
    upserted_ids: Optional[List[str]] = None,
) -> None:
    """Drop this attempt's vectors and mark the document ERROR."""
    await _discard_vectors(pipeline, upserted_ids or [])
    await _mark_failed(session, document_id, error)


async def _mark_failed(
    session: AsyncSession,
    document_id: UUID,
    error: str
) -> None:
    """Mark document as failed."""
    try:
        await session.rollback()
        repo = DocumentRepository(session)
        document: Optional[Document] = await repo.get_by_id(document_id)
        if document and document.status == DocumentStatus.PROCESSING.value:
            await repo.update_status(
                document_id,
                DocumentStatus.ERROR,
                error_message=error or "Processing failed",
            )
    except Exception as e:
        logger.error(f"Failed to mark document {document_id} as failed: {e}")
