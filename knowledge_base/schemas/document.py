"""
Document Schemas
"""

from datetime import datetime
from typing import Optional, List
from uuid import UUID
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field


# ============================================================
# ENUMS - Typed Constants
# ============================================================
class DocumentStatus(str, Enum):
    """
    Document processing status.
    """
    UPLOADING = "uploading"   # Accepted, record not yet handed to the pipeline
    PROCESSING = "processing" # Pipeline is running (or queued)
    READY = "ready"           # Chunks are in every vector index
    ERROR = "error"           # Pipeline failed (see error_message)


# Forward-only, except reprocess which re-opens a finished document
ALLOWED_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.UPLOADING: frozenset({DocumentStatus.PROCESSING}),
    DocumentStatus.PROCESSING: frozenset({DocumentStatus.READY, DocumentStatus.ERROR}),
    DocumentStatus.READY: frozenset({DocumentStatus.PROCESSING}),
    DocumentStatus.ERROR: frozenset({DocumentStatus.PROCESSING}),
}

# Statuses from which reprocessing may start
REPROCESSABLE_STATUSES = (DocumentStatus.READY, DocumentStatus.ERROR)


class InvalidStatusTransition(ValueError):
    """Raised when a status change is not in ALLOWED_TRANSITIONS."""

    def __init__(self, current: DocumentStatus, target: DocumentStatus):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move document from '{current.value}' to '{target.value}'")


def check_transition(current: str, target: DocumentStatus) -> None:
    """Raise InvalidStatusTransition unless current → target is allowed."""
    current_status = DocumentStatus(current)
    if target not in ALLOWED_TRANSITIONS[current_status]:
        raise InvalidStatusTransition(current_status, target)


class FileType(str, Enum):
    """
    Allowed file types for document upload.
    """
    PDF = "pdf"
    DOCX = "docx"
    TXT = "txt"


# ============================================================
# MIME TYPE MAPPINGS
# ============================================================
MIME_TYPE_MAPPING: dict[str, FileType] = {
    "application/pdf": FileType.PDF,

    # DOCX is actually a ZIP file containing XML
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": FileType.DOCX,

    "text/plain": FileType.TXT,

    # Some systems detect UTF-8 text differently
    "text/plain; charset=utf-8": FileType.TXT,
    "text/plain; charset=us-ascii": FileType.TXT,
}

# Canonical MIME type stored on the document
FILE_TYPE_TO_MIME: dict[FileType, str] = {
    FileType.PDF: "application/pdf",
    FileType.DOCX: "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    FileType.TXT: "text/plain",
}


def get_file_type_from_mime(mime_type: str) -> Optional[FileType]:
    """
    Get FileType from MIME type string.
    """
    return MIME_TYPE_MAPPING.get(mime_type)


def get_allowed_extensions() -> list[str]:
    """
    Get list of allowed file extensions.

    Returns:
        List like ["pdf", "docx", "txt"]
    """
    return [ft.value for ft in FileType]


# ============================================================
# INTERNAL SCHEMAS - Used by Service Layer
# ============================================================

class DocumentCreateInternal(BaseModel):
    """
    Internal schema for creating a document record.

    Used by DocumentService after validation, dedup and storage.
    The API receives a file upload, not this schema.
    """
    user_id: UUID = Field(
        ...,
        description="Owner of the document"
    )
    category_id: Optional[UUID] = Field(
        None,
        description="Optional category tag"
    )
    name: str = Field(
        ...,
        max_length=255,
        description="Display name (decoded original filename)"
    )
    media_type: str = Field(
        ...,
        max_length=100,
        description="Canonical MIME type"
    )
    storage_path: str = Field(
        ...,
        max_length=500,
        description="Storage path of the original file"
    )
    size: int = Field(
        ...,
        gt=0,
        description="File size in bytes"
    )
    fingerprint: str = Field(
        ...,
        min_length=64,
        max_length=64,
        description="SHA-256 hex digest of the file content"
    )
    status: DocumentStatus = Field(
        default=DocumentStatus.PROCESSING,
        description="Initial processing status"
    )


# ============================================================
# RESPONSE SCHEMAS - What API Returns to Clients
# ============================================================

class DocumentResponse(BaseModel):
    """
    Document data returned to API clients.

    Used by:
    - GET /documents/{id}
    - POST /documents (after upload)
    - GET /documents (list, each item)
    """
    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": "550e8400-e29b-41d4-a716-446655440000",
                "user_id": "0e8f5c4a-3c41-4c3f-9af7-2c8d7db3d6d4",
                "category_id": None,
                "name": "Onboarding_Handbook.pdf",
                "media_type": "application/pdf",
                "size": 1048576,
                "size_display": "1.00 MB",
                "status": "ready",
                "error_message": None,
                "chunk_count": 42,
                "is_ready": True,
                "created_at": "2024-01-15T10:30:00Z",
                "processed_at": "2024-01-15T10:31:23Z"
            }
        },
    )

    id: UUID = Field(..., description="Unique document identifier")
    user_id: UUID = Field(..., description="Owner of the document")
    category_id: Optional[UUID] = Field(None, description="Optional category tag")
    name: str = Field(
        ...,
        description="Original filename uploaded by user",
        examples=["Onboarding_Handbook.pdf"]
    )
    media_type: str = Field(..., description="MIME type", examples=["application/pdf"])
    size: int = Field(..., description="File size in bytes", examples=[1048576])
    status: DocumentStatus = Field(
        ...,
        description="Current processing status",
        examples=["ready"]
    )
    error_message: Optional[str] = Field(
        None,
        description="Error details if status is 'error'"
    )
    chunk_count: int = Field(default=0, description="Number of stored chunks")
    created_at: datetime = Field(..., description="When document was uploaded")
    processed_at: Optional[datetime] = Field(None, description="When processing completed")

    @computed_field
    @property
    def size_display(self) -> str:
        """
        Human-readable file size.

        Example: 1048576 bytes → "1.00 MB"
        """
        size = self.size
        for unit in ['B', 'KB', 'MB', 'GB']:
            if size < 1024:
                return f"{size:.2f} {unit}"
            size /= 1024
        return f"{size:.2f} TB"

    @computed_field
    @property
    def is_ready(self) -> bool:
        """Whether the document can be used for retrieval."""
        return self.status == DocumentStatus.READY


class DocumentListResponse(BaseModel):
    """
    Response for listing documents with pagination metadata.
    """
    documents: List[DocumentResponse] = Field(..., description="List of documents")
    total: int = Field(..., ge=0, description="Total count of documents (for pagination)")

    @computed_field
    @property
    def has_more(self) -> bool:
        """Whether there are more documents beyond this page."""
        return len(self.documents) < self.total


class DocumentUploadResponse(BaseModel):
    """
    Response returned immediately after file upload.

    This is returned BEFORE processing completes. The client polls
    GET /documents/{id} for status updates.
    """
    document: DocumentResponse = Field(
        ...,
        description="The uploaded document (status will be 'processing')"
    )
    message: str = Field(
        default="Document uploaded successfully. Processing started.",
        description="Human-readable status message"
    )


class UploaderInfo(BaseModel):
    """Who uploaded the document a duplicate collided with."""
    email: str
    name: Optional[str] = None


class DuplicateDocumentResponse(BaseModel):
    """
    Body of the 409 returned when the uploaded content already exists.
    """
    detail: str = "A document with identical content already exists"
    existing_document: DocumentResponse
    uploaded_by: Optional[UploaderInfo] = None


class DocumentContentResponse(BaseModel):
    """Extracted text of a processed document."""
    document_id: UUID
    name: str
    content: str


# ============================================================
# VALIDATION SCHEMAS
# ============================================================

class FileValidationResult(BaseModel):
    """
    Result of file validation.

    Used internally to pass validation results between functions.
    """
    is_valid: bool = Field(..., description="Whether the file passed all validation")
    file_type: Optional[FileType] = Field(None, description="Detected file type if valid")
    mime_type: Optional[str] = Field(None, description="Detected MIME type")
    file_size: int = Field(..., description="File size in bytes")
    errors: List[str] = Field(default_factory=list, description="List of validation errors")

    @property
    def error_message(self) -> Optional[str]:
        """Combined error message if validation failed."""
        if self.is_valid:
            return None
        return "; ".join(self.errors)


# ============================================================
# QUERY SCHEMAS - For Filtering/Sorting
# ============================================================

class DocumentQueryParams(BaseModel):
    """
    Query parameters for listing documents.

    GET /documents?status=ready&category_id=...&limit=10&offset=0
    """
    status: Optional[DocumentStatus] = Field(None, description="Filter by processing status")
    category_id: Optional[UUID] = Field(None, description="Filter by category")
    limit: int = Field(default=20, ge=1, le=100, description="Maximum documents to return")
    offset: int = Field(default=0, ge=0, description="Number of documents to skip")
