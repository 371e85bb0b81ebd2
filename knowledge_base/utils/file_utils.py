"""
File Utilities

Helper functions for file handling, validation, and security.
Always assume user input is malicious!
"""

import os
import re
import logging
from typing import Optional, Tuple
from uuid import UUID

import filetype

from knowledge_base.core.config import settings
from knowledge_base.schemas.document import (
    FILE_TYPE_TO_MIME,
    FileType,
    FileValidationResult,
    get_file_type_from_mime,
    get_allowed_extensions,
)

logger = logging.getLogger(__name__)

# ============================================================
# MIME TYPE DETECTION
# ============================================================

def detect_mime_type(file_content: bytes) -> str:
    """
    Detect the actual MIME type of a file by reading its magic bytes.

    Uses the pure-Python ``filetype`` library so no system
    dependencies (libmagic) are needed.
    """
    kind = filetype.guess(file_content)

    if kind is not None:
        logger.debug(f"Detected MIME type: {kind.mime}")
        return kind.mime

    # filetype doesn't detect plain text -- check manually
    sample = file_content[:1024]
    for encoding in ("utf-8", "utf-16"):
        try:
            sample.decode(encoding)
            logger.debug("Detected MIME type: text/plain (fallback)")
            return "text/plain"
        except UnicodeDecodeError as e:
            # A multi-byte character cut at the sample boundary is still text
            if encoding == "utf-8" and e.start >= len(sample) - 3:
                return "text/plain"

    return "application/octet-stream"


# ============================================================
# FILENAME HANDLING
# ============================================================

def decode_filename(filename: str) -> str:
    """
    Repair a UTF-8 filename that was decoded as Latin-1.

    Multipart parsers that assume Latin-1 turn "Résumé.pdf" into
    "RÃ©sumÃ©.pdf". Re-encoding as Latin-1 and decoding as UTF-8
    restores it; names that are not mojibake are returned unchanged.
    """
    if not filename:
        return filename

    try:
        repaired = filename.encode("latin-1").decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError):
        return filename

    return repaired


def sanitize_filename(filename: str) -> str:
    """
    Remove dangerous characters from a filename.
    """
    # Remove path components (user might include full path)
    filename = os.path.basename(filename.replace("\\", "/"))

    # Remove null bytes (security)
    filename = filename.replace("\x00", "")

    # \w is Unicode-aware; also allow hyphen, dot and space
    filename = re.sub(r'[^\w\-. ]', '_', filename)
    filename = re.sub(r'_+', '_', filename)
    filename = filename.strip('_. ')

    if len(filename) > 200:
        name, ext = os.path.splitext(filename)
        filename = name[:200 - len(ext)] + ext

    if not filename:
        filename = "unnamed_file"

    return filename


def build_document_path(document_id: UUID, file_type: FileType) -> str:
    """
    Storage key of a document's original file.

    Example:
        build_document_path(doc_id, FileType.PDF)
        # "documents/550e8400-.../original.pdf"
    """
    return f"documents/{document_id}/original.{file_type.value}"


def build_text_path(document_id: UUID) -> str:
    """Storage key of a document's extracted text."""
    return f"documents/{document_id}/text.txt"


def get_file_extension(filename: str) -> str:
    """
    Extract file extension from filename.

    Example:
        get_file_extension("document.PDF")  # "pdf"
        get_file_extension("noextension")   # ""
    """
    _, ext = os.path.splitext(filename)
    return ext.lower().lstrip('.')


# ============================================================
# FILE VALIDATION
# ============================================================

def allowed_extensions() -> list[str]:
    """Extensions that are both configured and parseable."""
    supported = set(get_allowed_extensions())
    return [ext for ext in settings.ALLOWED_FILE_EXTENSIONS if ext in supported]


def validate_file_extension(filename: str) -> Tuple[bool, Optional[str]]:
    """
    Quick validation of file extension.

    Even if the extension is valid, the content type is checked later.
    """
    extension = get_file_extension(filename)
    allowed = allowed_extensions()

    if extension not in allowed:
        return False, f"File type '.{extension}' not allowed. Allowed: {', '.join(allowed)}"

    return True, None


def validate_file_size(file_size: int) -> Tuple[bool, Optional[str]]:
    """
    Validate file size against configured maximum.
    """
    if file_size <= 0:
        return False, "File is empty"

    if file_size > settings.MAX_FILE_SIZE_BYTES:
        size_mb = file_size / (1024 * 1024)
        return False, f"File size ({size_mb:.1f} MB) exceeds maximum ({settings.MAX_FILE_SIZE_MB} MB)"

    return True, None


def validate_file(
    file_content: bytes,
    original_filename: str
) -> FileValidationResult:
    """
    Comprehensive file validation.

    Validates:
    1. File size (within limits)
    2. File extension (quick check)
    3. MIME type (actual content check)
    4. Extension matches content (warning only)
    """
    errors = []
    file_size = len(file_content)

    size_valid, size_error = validate_file_size(file_size)
    if not size_valid:
        errors.append(size_error)

    ext_valid, ext_error = validate_file_extension(original_filename)
    if not ext_valid:
        errors.append(ext_error)

    mime_type = detect_mime_type(file_content) if file_content else None
    file_type = get_file_type_from_mime(mime_type) if mime_type else None

    if mime_type and file_type is None:
        errors.append(f"File content type '{mime_type}' is not allowed")

    if file_type is not None and ext_valid:
        extension = get_file_extension(original_filename)
        if extension != file_type.value:
            # Content decides which parser runs
            logger.warning(
                f"Extension mismatch: file has '.{extension}' "
                f"but content is '{file_type.value}'"
            )

    return FileValidationResult(
        is_valid=len(errors) == 0,
        file_type=file_type,
        mime_type=FILE_TYPE_TO_MIME[file_type] if file_type else mime_type,
        file_size=file_size,
        errors=errors
    )
