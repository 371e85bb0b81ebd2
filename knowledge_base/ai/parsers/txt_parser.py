"""
Plain Text Parser

Simple parser for plain text files (.txt).

Encoding Handling:
-----------------
We try UTF-8 (with and without BOM) first, then UTF-16 when a BOM
says so, then cp1252, and finally Latin-1 which can decode any byte
sequence (though possibly incorrectly).
"""

import codecs
import logging
from typing import List, Optional

from knowledge_base.ai.parsers.base import (
    DocumentParser,
    FailureReason,
    ParsedDocument,
    PageContent,
    ParserType,
)

logger = logging.getLogger(__name__)


class TXTParser(DocumentParser):
    """
    Parser for plain text files.

    Treats the entire file as one page.
    """

    @property
    def supported_types(self) -> List[ParserType]:
        return [ParserType.TXT]

    def parse(
        self,
        content: bytes,
        filename: Optional[str] = None
    ) -> ParsedDocument:
        """
        Parse text file and extract content.

        Args:
            content: Raw file bytes
            filename: Original filename

        Returns:
            ParsedDocument with text content
        """
        filename = filename or "unknown.txt"
        logger.info(f"Parsing TXT: {filename} ({len(content)} bytes)")

        text = self._decode_content(content)

        if text is None:
            return ParsedDocument.from_error("Could not decode text file")

        text = self._clean_text(text)

        if not text:
            return ParsedDocument(
                text="",
                metadata={"filename": filename},
                success=False,
                error="Text file is empty",
                reason=FailureReason.EMPTY,
            )

        logger.info(f"TXT parsed successfully: {filename}, {len(text)} characters")

        return ParsedDocument(
            text=text,
            pages=[PageContent(page_number=1, text=text)],
            metadata={
                "filename": filename,
                "file_type": "txt",
                "character_count": len(text),
                "line_count": text.count('\n') + 1,
            },
            success=True
        )

    def _decode_content(self, content: bytes) -> Optional[str]:
        """
        Try to decode bytes using various encodings.

        Returns:
            Decoded string or None if all attempts fail
        """
        encodings = ['utf-8-sig']
        if content.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
            encodings.insert(0, 'utf-16')
        encodings += ['cp1252', 'latin-1']

        for encoding in encodings:
            try:
                text = content.decode(encoding)
                logger.debug(f"Successfully decoded with {encoding}")
                return text
            except (UnicodeDecodeError, UnicodeError):
                continue

        logger.error("Failed to decode text with any encoding")
        return None
