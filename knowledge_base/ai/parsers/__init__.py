"""
Document Parsers Module

Factory for creating document parsers based on file type, and the
``extract_text`` entry point used by the ingestion pipeline.

Usage:
------
    from knowledge_base.ai.parsers import extract_text, ExtractionError

    try:
        text = extract_text(file_bytes, "application/pdf", "handbook.pdf")
    except ExtractionError as e:
        print(e.reason, e)
"""

from typing import Optional

from knowledge_base.ai.parsers.base import (
    DocumentParser,
    FailureReason,
    ParsedDocument,
    PageContent,
    ParserType,
    clean_text,
)
from knowledge_base.ai.parsers.pdf_parser import PDFParser
from knowledge_base.ai.parsers.docx_parser import DOCXParser
from knowledge_base.ai.parsers.txt_parser import TXTParser
from knowledge_base.schemas.document import get_file_type_from_mime


class ExtractionError(Exception):
    """Raised when no text could be extracted from a file."""

    def __init__(self, message: str, reason: FailureReason = FailureReason.CORRUPT):
        self.reason = reason
        super().__init__(message)


# Parser instances (singleton pattern)
_parsers: dict[ParserType, DocumentParser] = {}


def get_parser(file_type: str) -> Optional[DocumentParser]:
    """
    Get a parser for the specified file type.

    Args:
        file_type: File type string (pdf, docx, txt)

    Returns:
        DocumentParser instance or None if unsupported
    """
    try:
        parser_type = ParserType(file_type.lower())
    except ValueError:
        return None

    if parser_type in _parsers:
        return _parsers[parser_type]

    parser: Optional[DocumentParser] = None

    if parser_type == ParserType.PDF:
        parser = PDFParser()
    elif parser_type == ParserType.DOCX:
        parser = DOCXParser()
    elif parser_type == ParserType.TXT:
        parser = TXTParser()

    if parser:
        _parsers[parser_type] = parser

    return parser


def parse_document(
    content: bytes,
    filename: str,
    file_type: str
) -> ParsedDocument:
    """
    Parse a document with the parser for its file type.

    Returns:
        ParsedDocument with results; never raises
    """
    parser = get_parser(file_type)

    if not parser:
        return ParsedDocument.from_error(
            f"No parser available for file type: {file_type}",
            reason=FailureReason.UNSUPPORTED,
        )

    return parser.parse(content, filename)


def extract_text(content: bytes, media_type: str, filename: Optional[str] = None) -> str:
    """
    Extract plain text from a file.

    Args:
        content: Raw file bytes
        media_type: Declared MIME type of the file
        filename: Original filename, for logs

    Returns:
        Cleaned text, never empty

    Raises:
        ExtractionError: With reason corrupt, encrypted, unsupported or empty
    """
    file_type = get_file_type_from_mime(media_type)
    if file_type is None:
        raise ExtractionError(
            f"Unsupported media type: {media_type}",
            reason=FailureReason.UNSUPPORTED,
        )

    parsed = parse_document(content, filename or "document", file_type.value)

    if not parsed.success:
        raise ExtractionError(parsed.error or "Text extraction failed", reason=parsed.reason or FailureReason.CORRUPT)

    if not parsed.text.strip():
        raise ExtractionError("No text content extracted from document", reason=FailureReason.EMPTY)

    return parsed.text


__all__ = [
    "get_parser",
    "parse_document",
    "extract_text",
    "clean_text",
    "ExtractionError",
    "FailureReason",
    "DocumentParser",
    "ParsedDocument",
    "PageContent",
    "ParserType",
    "PDFParser",
    "DOCXParser",
    "TXTParser",
]
