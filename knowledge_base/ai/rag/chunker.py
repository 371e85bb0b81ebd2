"""
Text Chunker

Splits extracted document text into ordered chunks for the vector indexes.

Strategy:
---------
1. Ask the semantic delegate (Gemini) for chunk boundaries.
2. If the delegate is disabled, fails, times out or returns nothing
   usable, fall back to deterministic paragraph/sentence splitting.

The fallback is character based. Each chunk after the first starts with
a short overlap context taken from the end of the previous chunk's
buffer (see ``overlap.last_fragment``).
"""

import asyncio
import logging
import math
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from knowledge_base.ai.rag.overlap import last_fragment

logger = logging.getLogger(__name__)

# (text, target_size) -> chunk texts
SemanticChunker = Callable[[str, int], Awaitable[List[str]]]

PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")

PARAGRAPH_SEPARATOR = "\n\n"
SENTENCE_SEPARATOR = " "


# ============================================================
# DATA STRUCTURES
# ============================================================

@dataclass
class TextChunk:
    """
    A single chunk of text ready to be stored.

    Attributes:
        index: 0-based position in the document
        text: Chunk content, overlap context included
        strategy: "semantic" or "fallback"
    """
    index: int
    text: str
    strategy: str = "fallback"


@dataclass
class ChunkerConfig:
    """
    Configuration for the text chunker.

    chunk_size: Target size in characters
    overlap_ratio: Share of chunk_size carried into the next chunk
    semantic_timeout: Seconds to wait for the semantic delegate
    """
    chunk_size: int = 1000
    overlap_ratio: float = 0.1
    semantic_timeout: float = 120.0

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= self.overlap_ratio < 1:
            raise ValueError("overlap_ratio must be in [0, 1)")

    @property
    def overlap_length(self) -> int:
        return math.floor(self.chunk_size * self.overlap_ratio)


# ============================================================
# DETERMINISTIC SPLITTING
# ============================================================

def _buffer_units(units: List[str], separator: str, chunk_size: int, overlap_length: int) -> List[str]:
    """Greedily pack units into chunks, prefixing each with the previous overlap."""
    chunks: List[str] = []
    buffer = ""
    overlap_context = ""

    for unit in units:
        if buffer and len(buffer) + len(unit) > chunk_size:
            chunks.append((overlap_context + buffer).strip())
            overlap_context = last_fragment(buffer, overlap_length)
            buffer = unit + separator
        else:
            buffer += unit + separator

    if buffer.strip():
        chunks.append((overlap_context + buffer).strip())

    return chunks


def split_text(text: str, chunk_size: int = 1000, overlap_ratio: float = 0.1) -> List[str]:
    """
    Split text into overlapping chunks without any external service.

    Paragraphs (blank-line separated) are the unit of packing. Text with
    no paragraph breaks is packed sentence by sentence instead. A single
    paragraph longer than ``chunk_size`` is kept whole.

    Args:
        text: Full document text
        chunk_size: Target chunk size in characters
        overlap_ratio: Share of chunk_size carried into the next chunk

    Returns:
        Chunk texts in document order; empty for blank input
    """
    stripped = text.strip()
    if not stripped:
        return []

    if len(stripped) <= chunk_size:
        return [stripped]

    overlap_length = math.floor(chunk_size * overlap_ratio)

    paragraphs = [p.strip() for p in PARAGRAPH_BREAK.split(stripped)]
    paragraphs = [p for p in paragraphs if p]

    if len(paragraphs) > 1:
        return _buffer_units(paragraphs, PARAGRAPH_SEPARATOR, chunk_size, overlap_length)

    sentences = [s.strip() for s in SENTENCE_BREAK.split(stripped)]
    sentences = [s for s in sentences if s]
    return _buffer_units(sentences, SENTENCE_SEPARATOR, chunk_size, overlap_length)


# ============================================================
# TEXT CHUNKER
# ============================================================

class TextChunker:
    """
    Chunks text with an optional semantic delegate and a deterministic fallback.

    Usage:
        chunker = TextChunker(ChunkerConfig(chunk_size=1000), semantic_chunker=semantic_chunk)
        chunks = await chunker.chunk(text)
    """

    def __init__(
        self,
        config: Optional[ChunkerConfig] = None,
        semantic_chunker: Optional[SemanticChunker] = None,
    ):
        self.config = config or ChunkerConfig()
        self.semantic_chunker = semantic_chunker

    async def chunk(self, text: str) -> List[TextChunk]:
        """
        Split text into chunks.

        Delegate failures are logged and absorbed; the fallback
        always produces an answer.

        Args:
            text: Full document text

        Returns:
            TextChunk list with dense 0-based indexes
        """
        if not text or not text.strip():
            return []

        if self.semantic_chunker is not None:
            pieces = await self._try_semantic(text)
            if pieces:
                logger.info(f"Semantic chunking produced {len(pieces)} chunks")
                return [
                    TextChunk(index=i, text=piece, strategy="semantic")
                    for i, piece in enumerate(pieces)
                ]

        pieces = split_text(text, self.config.chunk_size, self.config.overlap_ratio)
        logger.info(f"Fallback chunking produced {len(pieces)} chunks")
        return [TextChunk(index=i, text=piece) for i, piece in enumerate(pieces)]

    async def _try_semantic(self, text: str) -> List[str]:
        try:
            result = await asyncio.wait_for(
                self.semantic_chunker(text, self.config.chunk_size),
                timeout=self.config.semantic_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Semantic chunking timed out after {self.config.semantic_timeout}s, "
                f"using fallback"
            )
            return []
        except Exception as e:
            logger.warning(f"Semantic chunking failed, using fallback: {e}")
            return []

        if not isinstance(result, list):
            logger.warning("Semantic chunking returned a non-list result, using fallback")
            return []

        pieces = [piece.strip() for piece in result if isinstance(piece, str)]
        return [piece for piece in pieces if piece]
