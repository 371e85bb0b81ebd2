"""
Document Parser Base Class

Abstract base class for all document parsers.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from enum import Enum
import logging
import re

logger = logging.getLogger(__name__)


class ParserType(str, Enum):
    """Supported parser types."""
    PDF = "pdf"
    DOCX = "docx"
    TXT = "txt"


class FailureReason(str, Enum):
    """Why text could not be extracted."""
    CORRUPT = "corrupt"
    ENCRYPTED = "encrypted"
    UNSUPPORTED = "unsupported"
    EMPTY = "empty"


@dataclass
class PageContent:
    """
    Content from a single page.

    Attributes:
        page_number: 1-indexed page number
        text: Text content of this page
        metadata: Page-specific metadata
    """
    page_number: int
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ParsedDocument:
    """
    Result of parsing a document.

    This is the standardized output format for all parsers.
    Regardless of input format, output is consistent.

    Attributes:
        text: Full document text (all pages combined)
        pages: List of per-page content
        metadata: Document-level metadata
        success: Whether parsing succeeded
        error: Error message if parsing failed
        reason: Failure category if parsing failed
    """
    text: str
    pages: List[PageContent] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    success: bool = True
    error: Optional[str] = None
    reason: Optional[FailureReason] = None

    @classmethod
    def from_error(
        cls,
        error_message: str,
        reason: FailureReason = FailureReason.CORRUPT,
    ) -> "ParsedDocument":
        """Create a ParsedDocument representing a parsing failure."""
        return cls(
            text="",
            pages=[],
            metadata={},
            success=False,
            error=error_message,
            reason=reason,
        )


class DocumentParser(ABC):
    """
    Abstract base class for document parsers.

    Usage:
        parser = PDFParser()
        result = parser.parse(pdf_bytes, filename="doc.pdf")

        if result.success:
            print(result.text)
        else:
            print(f"Error ({result.reason}): {result.error}")
    """
    @property
    @abstractmethod
    def supported_types(self) -> List[ParserType]:
        """List of file types this parser can handle."""
        pass

    @abstractmethod
    def parse(
        self,
        content: bytes,
        filename: Optional[str] = None
    ) -> ParsedDocument:
        """
        Parse document content and extract text.

        Args:
            content: Raw file bytes
            filename: Original filename (for logging/metadata)

        Returns:
            ParsedDocument with extracted content

        Note:
            This method should NEVER raise exceptions.
            All errors should be returned in ParsedDocument.
        """
        pass

    def can_parse(self, file_type: str) -> bool:
        """Check if this parser can handle the given file type."""
        try:
            parser_type = ParserType(file_type.lower())
            return parser_type in self.supported_types
        except ValueError:
            return False

    def _clean_text(self, text: str) -> str:
        """
        Clean extracted text.

        - Remove null characters
        - Collapse runs of spaces within a line
        - Collapse 3+ line breaks into a single blank line

        Paragraph breaks are kept; the chunker splits on them.
        """
        return clean_text(text)


def clean_text(text: str) -> str:
    """Module-level form of DocumentParser._clean_text."""
    if not text:
        return ""

    text = text.replace('\x00', '')
    text = text.replace('\r\n', '\n').replace('\r', '\n')

    lines = [' '.join(line.split()) for line in text.split('\n')]
    text = '\n'.join(lines)

    text = re.sub(r'\n{3,}', '\n\n', text)

    return text.strip()
