"""
PDF Document Parser

Extracts text from PDF files using pypdf.

PDF Challenges:
--------------
1. Text order may not match visual layout
2. Scanned PDFs have no text layer (OCR is not implemented)
3. Encrypted PDFs need a password

Our Approach:
------------
- pypdf page-by-page extraction; a broken page is skipped, not fatal
- Pages joined with a blank line so the chunker sees them as paragraphs
- Encrypted files are tried with an empty password, then rejected
"""

import io
import logging
from typing import List, Optional

from pypdf import PasswordType, PdfReader
from pypdf.errors import FileNotDecryptedError, PdfReadError

from knowledge_base.ai.parsers.base import (
    DocumentParser,
    FailureReason,
    ParsedDocument,
    PageContent,
    ParserType,
)

logger = logging.getLogger(__name__)


class PDFParser(DocumentParser):
    """
    Parser for PDF documents.

    Usage:
        parser = PDFParser()
        result = parser.parse(pdf_bytes, filename="document.pdf")
    """

    @property
    def supported_types(self) -> List[ParserType]:
        return [ParserType.PDF]

    def parse(
        self,
        content: bytes,
        filename: Optional[str] = None
    ) -> ParsedDocument:
        """
        Parse PDF and extract text.

        Args:
            content: Raw PDF file bytes
            filename: Original filename for logging

        Returns:
            ParsedDocument with extracted content
        """
        filename = filename or "unknown.pdf"
        logger.info(f"Parsing PDF: {filename} ({len(content)} bytes)")

        try:
            reader = PdfReader(io.BytesIO(content))

            if reader.is_encrypted:
                # Many "protected" PDFs only restrict printing
                try:
                    decrypted = reader.decrypt("") != PasswordType.NOT_DECRYPTED
                except Exception:
                    decrypted = False
                if not decrypted:
                    return ParsedDocument.from_error(
                        "PDF is password protected",
                        reason=FailureReason.ENCRYPTED,
                    )

            pages = []
            text_parts = []

            for page_num, page in enumerate(reader.pages, start=1):
                try:
                    page_text = self._clean_text(page.extract_text() or "")
                except FileNotDecryptedError:
                    raise
                except Exception as e:
                    logger.warning(f"Error extracting page {page_num} of {filename}: {e}")
                    page_text = ""

                pages.append(PageContent(page_number=page_num, text=page_text))
                if page_text:
                    text_parts.append(page_text)

            full_text = "\n\n".join(text_parts)

            if not full_text.strip():
                logger.warning(f"No text extracted from PDF: {filename}")
                return ParsedDocument(
                    text="",
                    pages=pages,
                    metadata={"filename": filename, "page_count": len(pages)},
                    success=False,
                    error="PDF appears to be scanned or image-based (no extractable text)",
                    reason=FailureReason.EMPTY,
                )

            logger.info(
                f"PDF parsed successfully: {filename}, "
                f"{len(pages)} pages, {len(full_text)} characters"
            )

            return ParsedDocument(
                text=full_text,
                pages=pages,
                metadata={"filename": filename, "page_count": len(pages), "file_type": "pdf"},
                success=True
            )

        except FileNotDecryptedError as e:
            logger.error(f"PDF parse error for {filename}: encrypted ({e})")
            return ParsedDocument.from_error(
                f"PDF is password protected: {e}",
                reason=FailureReason.ENCRYPTED,
            )

        except PdfReadError as e:
            error_msg = f"Invalid or corrupted PDF: {e}"
            logger.error(f"PDF parse error for {filename}: {error_msg}")
            return ParsedDocument.from_error(error_msg)

        except Exception as e:
            error_msg = f"Unexpected error parsing PDF: {e}"
            logger.exception(f"PDF parse error for {filename}")
            return ParsedDocument.from_error(error_msg)
