"""
Document Endpoints

HTTP API for the knowledge base: upload, status, content, download,
reprocess, delete and retrieval.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    status,
    Query,
    UploadFile,
    File,
    Form,
)
from fastapi.responses import FileResponse, JSONResponse, Response

from knowledge_base.api.deps import get_current_user, get_document_service
from knowledge_base.models.user import User
from knowledge_base.schemas.document import (
    DocumentResponse,
    DocumentListResponse,
    DocumentUploadResponse,
    DocumentContentResponse,
    DocumentQueryParams,
    DocumentStatus,
    DuplicateDocumentResponse,
    get_allowed_extensions,
)
from knowledge_base.schemas.vector import SearchResponse
from knowledge_base.services.document_service import (
    DocumentService,
    DocumentNotFoundError,
    DocumentValidationError,
    DuplicateDocumentError,
    DocumentBusyError,
    DocumentServiceError,
)
from knowledge_base.core.config import settings

logger = logging.getLogger(__name__)

# ============================================================
# Router Setup
# ============================================================

router = APIRouter(tags=["Documents"])


def _duplicate_response(e: DuplicateDocumentError) -> JSONResponse:
    body = DuplicateDocumentResponse(
        detail=str(e),
        existing_document=e.existing_document,
        uploaded_by=e.uploaded_by,
    )
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=body.model_dump(mode="json"),
    )


# ============================================================
# UPLOAD ENDPOINT
# ============================================================

@router.post(
    "",
    response_model=DocumentUploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a document",
    description="""
    Upload a document to the knowledge base.

    **Supported file types:** PDF, DOCX, TXT

    The response is returned before processing finishes; poll
    `GET /documents/{id}` for the status.
    """,
    responses={
        201: {
            "description": "Document uploaded successfully",
            "model": DocumentUploadResponse,
        },
        400: {
            "description": "Invalid file (wrong type, empty, etc.)",
            "content": {
                "application/json": {
                    "example": {"detail": "File type '.exe' not allowed"}
                }
            },
        },
        401: {"description": "Unknown caller"},
        409: {"description": "Identical content already uploaded", "model": DuplicateDocumentResponse},
        413: {"description": "File too large"},
    },
)
async def upload_document(
    file: UploadFile = File(
        ...,
        description="Document file to upload (PDF, DOCX or TXT)"
    ),
    category_id: Optional[UUID] = Form(None, description="Optional category"),
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    """
    Upload a document.

    The file is validated, deduplicated, stored, and queued for
    background processing.
    """
    try:
        return await service.upload_document(
            file=file,
            user_id=current_user.id,
            category_id=category_id,
        )

    except DuplicateDocumentError as e:
        return _duplicate_response(e)

    except DocumentValidationError as e:
        status_code = (
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
            if e.too_large
            else status.HTTP_400_BAD_REQUEST
        )
        raise HTTPException(status_code=status_code, detail=str(e))

    except DocumentServiceError as e:
        logger.error(f"Document upload failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to upload document"
        )


# ============================================================
# LIST ENDPOINT
# ============================================================

@router.get(
    "",
    response_model=DocumentListResponse,
    summary="List documents",
    responses={
        200: {"description": "List of documents", "model": DocumentListResponse},
        401: {"description": "Unknown caller"},
    },
)
async def list_documents(
    status_filter: Optional[DocumentStatus] = Query(
        None,
        alias="status",
        description="Filter by processing status"
    ),
    category_id: Optional[UUID] = Query(None, description="Filter by category"),
    limit: int = Query(20, ge=1, le=100, description="Maximum documents to return"),
    offset: int = Query(0, ge=0, description="Number of documents to skip"),
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    """List the caller's documents, newest first."""
    params = DocumentQueryParams(
        status=status_filter,
        category_id=category_id,
        limit=limit,
        offset=offset
    )
    return await service.list_documents(user_id=current_user.id, params=params)


# ============================================================
# SEARCH ENDPOINT
# ============================================================

@router.get(
    "/search",
    response_model=SearchResponse,
    summary="Search the knowledge base",
    description="""
    Similarity search against one vector index.

    Unknown index names fall back to the default index.
    """,
)
async def search_documents(
    q: str = Query(..., min_length=1, description="Query text"),
    index: Optional[str] = Query(None, description="Vector index name"),
    top_k: Optional[int] = Query(None, ge=1, le=50, description="Number of hits"),
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    try:
        return await service.search(q, index_name=index, top_k=top_k)
    except DocumentServiceError as e:
        logger.error(f"Search failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Vector index unavailable"
        )


# ============================================================
# API INFO ENDPOINT
# ============================================================

@router.get(
    "/info/allowed-types",
    summary="Get allowed file types",
    description="Get list of allowed file types and size limits for upload.",
)
async def get_allowed_file_types():
    """
    Get allowed file types and upload limits.

    **Note:** This endpoint is under /documents/info to avoid
    conflict with /{document_id} path.
    """
    return {
        "allowed_extensions": get_allowed_extensions(),
        "max_file_size_mb": settings.MAX_FILE_SIZE_MB,
        "max_file_size_bytes": settings.MAX_FILE_SIZE_BYTES,
    }


# ============================================================
# GET SINGLE DOCUMENT
# ============================================================

@router.get(
    "/{document_id}",
    response_model=DocumentResponse,
    summary="Get document details",
    description="Get a document including its processing status and error message.",
    responses={
        200: {"description": "Document details", "model": DocumentResponse},
        401: {"description": "Unknown caller"},
        404: {"description": "Document not found"},
    },
)
async def get_document(
    document_id: UUID,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    try:
        return await service.get_document(
            document_id=document_id,
            user_id=current_user.id
        )
    except DocumentNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Document not found"
        )


@router.get(
    "/{document_id}/content",
    response_model=DocumentContentResponse,
    summary="Get extracted text",
    responses={404: {"description": "Document or text not found"}},
)
async def get_document_content(
    document_id: UUID,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    """Extracted text, available once processing got past extraction."""
    try:
        return await service.get_document_content(
            document_id=document_id,
            user_id=current_user.id
        )
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


# ============================================================
# DOWNLOAD DOCUMENT
# ============================================================

@router.get(
    "/{document_id}/download",
    summary="Download document file",
    responses={
        200: {
            "description": "Document file",
            "content": {
                "application/pdf": {},
                "application/vnd.openxmlformats-officedocument.wordprocessingml.document": {},
                "text/plain": {},
            }
        },
        404: {"description": "Document not found"},
    },
)
async def download_document(
    document_id: UUID,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    """
    Download the original document file.

    FileResponse streams from disk and sets Content-Disposition so
    browsers save the file under its original name.
    """
    try:
        path, filename, media_type = await service.get_download(
            document_id=document_id,
            user_id=current_user.id
        )
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return FileResponse(path, media_type=media_type, filename=filename)


# ============================================================
# REPROCESS DOCUMENT
# ============================================================

@router.post(
    "/{document_id}/reprocess",
    response_model=DocumentResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Reprocess a document",
    description="""
    Run the pipeline again for a `ready` or `error` document.

    The document moves to `processing`; its chunks are replaced when
    the pipeline finishes.
    """,
    responses={
        202: {"description": "Document queued for reprocessing"},
        404: {"description": "Document not found"},
        409: {"description": "Document is still processing"},
    },
)
async def reprocess_document(
    document_id: UUID,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    try:
        return await service.reprocess_document(
            document_id=document_id,
            user_id=current_user.id
        )
    except DocumentNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Document not found"
        )
    except DocumentBusyError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


# ============================================================
# DELETE DOCUMENT
# ============================================================

@router.delete(
    "/{document_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a document",
    description="""
    Delete a document with its chunks, vectors and files.

    Deleting a document that no longer exists succeeds.
    """,
    responses={
        204: {"description": "Document deleted"},
        404: {"description": "Document belongs to another user"},
    },
)
async def delete_document(
    document_id: UUID,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    try:
        await service.delete_document(
            document_id=document_id,
            user_id=current_user.id
        )
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    except DocumentNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Document not found"
        )
    except DocumentServiceError as e:
        logger.error(f"Document deletion failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete document"
        )
