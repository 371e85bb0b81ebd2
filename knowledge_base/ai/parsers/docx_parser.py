"""
DOCX Document Parser

Extracts text from Microsoft Word documents using python-docx.

What We Extract:
---------------
- Paragraphs, one per line, headings followed by a blank line
- Tables, one row per line with cells separated by " | "

Images, headers/footers and comments are ignored.
"""

import io
import logging
from typing import List, Optional

from docx import Document as DocxDocument
from docx.opc.exceptions import PackageNotFoundError

from knowledge_base.ai.parsers.base import (
    DocumentParser,
    FailureReason,
    ParsedDocument,
    PageContent,
    ParserType,
)

logger = logging.getLogger(__name__)


class DOCXParser(DocumentParser):
    """
    Parser for Microsoft Word documents (.docx).

    DOCX has no fixed pages, so the whole document is one page.
    """

    @property
    def supported_types(self) -> List[ParserType]:
        return [ParserType.DOCX]

    def parse(
        self,
        content: bytes,
        filename: Optional[str] = None
    ) -> ParsedDocument:
        """
        Parse DOCX and extract text.

        Args:
            content: Raw DOCX file bytes
            filename: Original filename for logging

        Returns:
            ParsedDocument with extracted content
        """
        filename = filename or "unknown.docx"
        logger.info(f"Parsing DOCX: {filename} ({len(content)} bytes)")

        try:
            doc = DocxDocument(io.BytesIO(content))

            text_parts = []

            for para in doc.paragraphs:
                para_text = para.text.strip()
                if not para_text:
                    continue

                style_name = (para.style.name or "").lower() if para.style else ""
                if 'heading' in style_name or 'title' in style_name:
                    text_parts.append(f"\n{para_text}\n")
                else:
                    text_parts.append(para_text)

            for table in doc.tables:
                table_text = self._extract_table(table)
                if table_text:
                    text_parts.append(f"\n{table_text}\n")

            full_text = self._clean_text('\n'.join(text_parts))

            if not full_text:
                return ParsedDocument(
                    text="",
                    metadata={"filename": filename},
                    success=False,
                    error="DOCX contains no text",
                    reason=FailureReason.EMPTY,
                )

            logger.info(
                f"DOCX parsed successfully: {filename}, "
                f"{len(doc.paragraphs)} paragraphs, {len(full_text)} characters"
            )

            return ParsedDocument(
                text=full_text,
                pages=[PageContent(page_number=1, text=full_text)],
                metadata={
                    "filename": filename,
                    "file_type": "docx",
                    "paragraph_count": len(doc.paragraphs),
                    "table_count": len(doc.tables),
                },
                success=True
            )

        except PackageNotFoundError as e:
            error_msg = f"Invalid DOCX file (not a valid Office document): {e}"
            logger.error(f"DOCX parse error for {filename}: {error_msg}")
            return ParsedDocument.from_error(error_msg)

        except Exception as e:
            error_msg = f"Error parsing DOCX: {e}"
            logger.exception(f"DOCX parse error for {filename}")
            return ParsedDocument.from_error(error_msg)

    def _extract_table(self, table) -> str:
        """Convert a DOCX table to "a | b | c" lines, skipping empty rows."""
        rows = []

        for row in table.rows:
            cells = [cell.text.strip().replace('\n', ' ') for cell in row.cells]
            if any(cells):
                rows.append(' | '.join(cells))

        return '\n'.join(rows)
