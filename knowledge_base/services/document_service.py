"""
Document Service

Business logic for document operations: upload with deduplication,
status and content reads, reprocessing, deletion and retrieval.

Accepting calls return as soon as the initial state is persisted; the
pipeline itself runs in the process_document task.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Set, Tuple
from uuid import UUID, uuid4

from fastapi import UploadFile
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_base.core.config import settings
from knowledge_base.models.category import Category
from knowledge_base.models.document import Document
from knowledge_base.repositories.document_repo import DocumentRepository
from knowledge_base.repositories.chunk_repo import ChunkRepository
from knowledge_base.schemas.document import (
    DocumentStatus,
    DocumentResponse,
    DocumentListResponse,
    DocumentUploadResponse,
    DocumentContentResponse,
    DocumentQueryParams,
    UploaderInfo,
)
from knowledge_base.schemas.vector import SearchResponse
from knowledge_base.storage import get_storage, StorageBackend, StorageError
from knowledge_base.utils.fingerprint import fingerprint
from knowledge_base.utils.file_utils import (
    validate_file,
    decode_filename,
    sanitize_filename,
    build_document_path,
)
from knowledge_base.db.redis import get_arq_pool
from knowledge_base.db.vector_store import VectorSyncError

if TYPE_CHECKING:
    from knowledge_base.ai.rag.pipeline import DocumentPipeline

logger = logging.getLogger(__name__)

Enqueue = Callable[[UUID], Awaitable[None]]

# Inline jobs are referenced here until they finish
_background_tasks: Set[asyncio.Task] = set()


class DocumentServiceError(Exception):
    """Base exception for document service errors."""
    pass


class DocumentNotFoundError(DocumentServiceError):
    """Raised when document is not found or not owned by the caller."""
    pass


class DocumentValidationError(DocumentServiceError):
    """Raised when file validation fails."""

    def __init__(self, message: str, too_large: bool = False):
        self.too_large = too_large
        super().__init__(message)


class DuplicateDocumentError(DocumentServiceError):
    """Raised when a document with identical content already exists."""

    def __init__(self, existing: Document, uploader: Optional[UploaderInfo] = None):
        self.existing_document = DocumentResponse.model_validate(existing)
        self.uploaded_by = uploader
        super().__init__("A document with identical content already exists")


class DocumentBusyError(DocumentServiceError):
    """Raised when a document is still being processed."""
    pass


class DocumentService:
    """
    Service class for document operations.
    """

    def __init__(
        self,
        db: AsyncSession,
        storage: Optional[StorageBackend] = None,
        pipeline: Optional["DocumentPipeline"] = None,
        enqueue: Optional[Enqueue] = None,
    ):
        """
        Initialize service with database session.

        Storage, the pipeline and the job queue default to the
        application singletons.

        Args:
            db: Async database session
            storage: Storage backend override
            pipeline: DocumentPipeline override (vector store, knowledge files)
            enqueue: Coroutine that schedules processing of a document id
        """
        self.db = db
        self.document_repo = DocumentRepository(db)
        self.chunk_repo = ChunkRepository(db)
        self.storage: StorageBackend = storage or get_storage()
        self._pipeline = pipeline
        self._enqueue = enqueue or self._enqueue_processing

    @property
    def pipeline(self) -> "DocumentPipeline":
        if self._pipeline is None:
            from knowledge_base.ai.rag.pipeline import get_document_pipeline
            self._pipeline = get_document_pipeline()
        return self._pipeline

    # ============================================================
    # HELPER METHODS - Validation and Authorization
    # ============================================================

    async def _verify_document_access(
        self,
        document_id: UUID,
        user_id: UUID
    ) -> Document:
        """
        Load a document owned by the user.
        """
        document = await self.document_repo.get_by_id(document_id)

        if not document:
            raise DocumentNotFoundError("Document not found")

        if document.user_id != user_id:
            logger.warning(
                f"Unauthorized access attempt: user {user_id} "
                f"tried to access document {document_id} owned by {document.user_id}"
            )
            raise DocumentNotFoundError("Document not found")  # Don't reveal existence

        return document

    def _raise_duplicate(self, existing: Document) -> None:
        uploader = None
        if existing.user is not None:
            uploader = UploaderInfo(email=existing.user.email, name=existing.user.name)

        logger.info(f"Duplicate upload of document {existing.id}")
        raise DuplicateDocumentError(existing, uploader)

    async def _enqueue_processing(self, document_id: UUID) -> None:
        """
        Add document to processing queue.

        Tries ARQ (Redis worker) first. Every pass gets its own job id:
        ARQ refuses an id whose previous result is still kept, and passes
        of one document are already serialized by the status claim.
        If Redis is unavailable or refuses the job, falls back to an
        in-process asyncio task.
        """
        job_id = f"process_document:{document_id}:{uuid4().hex}"
        try:
            pool = await get_arq_pool()
            job = await pool.enqueue_job(
                'process_document',
                document_id=str(document_id),
                _job_id=job_id,
            )
            if job is None:
                logger.warning(f"ARQ refused job {job_id}, processing {document_id} in-process")
                self._process_inline(document_id)
            else:
                logger.info(f"Document {document_id} queued for processing (ARQ job {job_id})")

        except Exception as e:
            logger.warning(
                f"ARQ queue unavailable ({e}), "
                f"falling back to in-process processing for {document_id}"
            )
            self._process_inline(document_id)

    def _process_inline(self, document_id: UUID) -> None:
        """Run document processing as a background asyncio task."""
        from knowledge_base.tasks.document_tasks import process_document

        async def _run():
            ctx = {"job_id": f"inline-{document_id}", "job_try": 1}
            try:
                await process_document(ctx, str(document_id))
            except Exception as exc:
                logger.error(f"Inline processing failed for {document_id}: {exc}")

        task = asyncio.create_task(_run())
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)

    # ============================================================
    # UPLOAD - The Main Entry Point
    # ============================================================

    async def upload_document(
        self,
        file: UploadFile,
        user_id: UUID,
        category_id: Optional[UUID] = None
    ) -> DocumentUploadResponse:
        """
        Accept a document and schedule its processing.

        Steps:
        1. Read and validate the file (size, extension, content type)
        2. Fingerprint the content and reject duplicates
        3. Save the original to storage
        4. Create the record in PROCESSING
        5. Enqueue the processing job

        Raises:
            DocumentValidationError: Invalid, empty or oversize file
            DuplicateDocumentError: Identical content already stored
            DocumentServiceError: Storage or database failure
        """
        if file is None:
            raise DocumentValidationError("No file provided")

        # Step 1: Read and validate
        try:
            file_content = await file.read()
        except Exception as e:
            logger.error(f"Failed to read uploaded file: {e}")
            raise DocumentServiceError("Failed to read uploaded file")

        original_filename = decode_filename(file.filename or "unnamed_file")
        display_name = sanitize_filename(original_filename)

        if len(file_content) > settings.MAX_FILE_SIZE_BYTES:
            raise DocumentValidationError(
                f"File exceeds maximum size of {settings.MAX_FILE_SIZE_MB} MB",
                too_large=True,
            )

        validation_result = validate_file(file_content, original_filename)

        if not validation_result.is_valid:
            logger.warning(
                f"File validation failed for '{original_filename}': "
                f"{validation_result.error_message}"
            )
            raise DocumentValidationError(validation_result.error_message)

        if category_id is not None and await self.db.get(Category, category_id) is None:
            raise DocumentValidationError("Category not found")

        # Step 2: Deduplicate
        content_fingerprint = fingerprint(file_content)
        existing = await self.document_repo.get_by_fingerprint(content_fingerprint)
        if existing:
            self._raise_duplicate(existing)

        # Step 3: Save original
        document_id = uuid4()
        storage_path = build_document_path(document_id, validation_result.file_type)

        try:
            await self.storage.save(
                file_content=file_content,
                destination_path=storage_path,
                content_type=validation_result.mime_type
            )
        except StorageError as e:
            logger.error(f"Storage failed: {e}")
            raise DocumentServiceError(f"Failed to save file: {e}")

        # Step 4: Create record
        try:
            document = await self.document_repo.create(
                id=document_id,
                user_id=user_id,
                category_id=category_id,
                name=display_name,
                media_type=validation_result.mime_type,
                size=validation_result.file_size,
                storage_path=storage_path,
                fingerprint=content_fingerprint,
                status=DocumentStatus.PROCESSING.value,
            )
            logger.info(f"Document record created: {document.id} ({display_name})")

        except IntegrityError:
            # Lost a race with an identical upload
            await self.db.rollback()
            await self.storage.delete(storage_path)
            existing = await self.document_repo.get_by_fingerprint(content_fingerprint)
            if existing:
                self._raise_duplicate(existing)
            raise DocumentServiceError("Failed to save document record")

        except Exception as e:
            logger.error(f"Database insert failed, rolling back storage: {e}")
            await self.db.rollback()
            try:
                await self.storage.delete(storage_path)
            except StorageError as cleanup_error:
                logger.error(f"Cleanup failed: {cleanup_error}")
            raise DocumentServiceError("Failed to save document record")

        # Step 5: Queue for processing
        await self._enqueue(document.id)

        return DocumentUploadResponse(
            document=DocumentResponse.model_validate(document),
            message="Document uploaded successfully. Processing started."
        )

    # ============================================================
    # READ OPERATIONS
    # ============================================================

    async def get_document(
        self,
        document_id: UUID,
        user_id: UUID
    ) -> DocumentResponse:
        """
        Get a single document with its processing status.

        Raises:
            DocumentNotFoundError: If document doesn't exist or access denied
        """
        document = await self._verify_document_access(document_id, user_id)
        return DocumentResponse.model_validate(document)

    async def list_documents(
        self,
        user_id: UUID,
        params: Optional[DocumentQueryParams] = None
    ) -> DocumentListResponse:
        """
        List the user's documents with optional filtering.
        """
        if params is None:
            params = DocumentQueryParams()

        documents = await self.document_repo.get_by_user(
            user_id=user_id,
            status=params.status,
            category_id=params.category_id,
            skip=params.offset,
            limit=params.limit
        )

        total = await self.document_repo.count_by_user(
            user_id=user_id,
            status=params.status,
            category_id=params.category_id,
        )

        return DocumentListResponse(
            documents=[DocumentResponse.model_validate(doc) for doc in documents],
            total=total
        )

    async def get_document_content(
        self,
        document_id: UUID,
        user_id: UUID
    ) -> DocumentContentResponse:
        """
        Get the extracted text of a document.

        Raises:
            DocumentNotFoundError: Unknown document, or no text extracted yet
        """
        document = await self._verify_document_access(document_id, user_id)

        if not document.text_path:
            raise DocumentNotFoundError("Document text is not available yet")

        try:
            content = await self.storage.get(document.text_path)
        except StorageError as e:
            logger.error(f"Failed to read text {document.text_path}: {e}")
            raise DocumentNotFoundError("Document text is not available")

        return DocumentContentResponse(
            document_id=document.id,
            name=document.name,
            content=content.decode("utf-8"),
        )

    async def get_download(
        self,
        document_id: UUID,
        user_id: UUID
    ) -> Tuple[str, str, str]:
        """
        Locate the original file for download.

        Returns:
            (filesystem path, display name, media type)
        """
        document = await self._verify_document_access(document_id, user_id)

        if not await self.storage.exists(document.storage_path):
            logger.error(f"Original file missing for document {document_id}: {document.storage_path}")
            raise DocumentNotFoundError("Document file not found")

        return self.storage.local_path(document.storage_path), document.name, document.media_type

    # ============================================================
    # STATUS OPERATIONS
    # ============================================================

    async def reprocess_document(
        self,
        document_id: UUID,
        user_id: UUID
    ) -> DocumentResponse:
        """
        Run the pipeline again for a READY or ERROR document.

        The status change is a compare-and-set in the database, so two
        concurrent requests cannot both start a pipeline.

        Raises:
            DocumentNotFoundError: If document doesn't exist or access denied
            DocumentBusyError: If the document is still processing
        """
        document = await self._verify_document_access(document_id, user_id)

        claimed = await self.document_repo.claim_for_reprocessing(document_id)
        if not claimed:
            current = await self.document_repo.get_status(document_id)
            if current is None:
                raise DocumentNotFoundError("Document not found")
            raise DocumentBusyError(f"Document is {current}; wait for processing to finish")

        await self._enqueue(document_id)
        logger.info(f"Document {document_id} queued for reprocessing")

        await self.db.refresh(document)
        return DocumentResponse.model_validate(document)

    # ============================================================
    # DELETE OPERATIONS
    # ============================================================

    async def delete_document(
        self,
        document_id: UUID,
        user_id: UUID
    ) -> bool:
        """
        Delete a document and everything derived from it.

        Order:
        1. Knowledge file (best effort)
        2. Vectors of recorded chunks, then a sweep by document id
        3. Original and text files
        4. Database records (chunks cascade)
        5. A second sweep by document id

        A job that upserted between steps 2 and 4 has already passed its
        existence check; the second sweep removes what it wrote. Jobs that
        upsert later find the document gone and discard their own vectors.

        Repeating the call is harmless.

        Returns:
            True if a document was deleted, False if it was already gone

        Raises:
            DocumentNotFoundError: If the document belongs to another user
            DocumentServiceError: If the vector indexes could not be cleaned
        """
        document = await self.document_repo.get_by_id(document_id)
        if document is None:
            logger.info(f"Document {document_id} already deleted")
            return False

        if document.user_id != user_id:
            raise DocumentNotFoundError("Document not found")

        await self.pipeline.remove_knowledge_file(document.external_file_id)

        vector_ids = await self.chunk_repo.get_vector_ids(document_id)
        try:
            await self.pipeline.vector_store.delete(vector_ids)
            await self.pipeline.vector_store.delete_document(str(document_id))
        except VectorSyncError as e:
            logger.error(f"Failed to delete vectors of document {document_id}: {e}")
            raise DocumentServiceError(f"Failed to delete document vectors: {e}")

        for path in (document.storage_path, document.text_path):
            if not path:
                continue
            try:
                await self.storage.delete(path)
            except StorageError as e:
                logger.warning(f"Failed to delete file {path}: {e}")

        deleted = await self.document_repo.delete(document_id)

        try:
            await self.pipeline.vector_store.delete_document(str(document_id))
        except VectorSyncError as e:
            logger.error(
                f"Second vector sweep failed for deleted document {document_id}, "
                f"vectors written during the delete may be orphaned: {e}"
            )

        logger.info(f"Document deleted: {document_id} ({len(vector_ids)} vectors)")
        return deleted

    # ============================================================
    # RETRIEVAL
    # ============================================================

    async def search(
        self,
        query: str,
        index_name: Optional[str] = None,
        top_k: Optional[int] = None,
    ) -> SearchResponse:
        """Similarity search against one vector index."""
        index = self.pipeline.vector_store.indexes.resolve(index_name)
        try:
            hits = await self.pipeline.vector_store.query(query, index_name=index_name, top_k=top_k)
        except Exception as e:
            logger.error(f"Search on index '{index.name}' failed: {e}")
            raise DocumentServiceError(f"Search failed: {e}")

        return SearchResponse(query=query, index=index.name, hits=hits)
