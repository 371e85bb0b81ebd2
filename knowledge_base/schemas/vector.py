"""
Vector Metadata Schemas

Every vector carries its structured metadata as a JSON string in a
single field (``category``). Older vectors stored a bare document id
there instead. Decoding accepts both and never raises: a value that is
not a JSON object becomes LegacyVectorMetadata.
"""

import json
import logging
from datetime import datetime
from typing import List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

METADATA_FIELD = "category"
METADATA_VERSION = 1


class ChunkVectorMetadata(BaseModel):
    """Structured metadata written alongside each chunk vector."""
    model_config = ConfigDict(extra="ignore")

    kind: Literal["chunk"] = "chunk"
    version: int = METADATA_VERSION
    # camelCase keys are accepted for vectors written by earlier clients
    document_id: Optional[str] = Field(None, validation_alias=AliasChoices("document_id", "documentId"))
    user_id: Optional[str] = Field(None, validation_alias=AliasChoices("user_id", "userId"))
    file_name: Optional[str] = Field(None, validation_alias=AliasChoices("file_name", "fileName"))
    file_type: Optional[str] = Field(None, validation_alias=AliasChoices("file_type", "fileType"))
    chunk_index: Optional[int] = Field(None, validation_alias=AliasChoices("chunk_index", "chunkIndex"))
    total_chunks: Optional[int] = Field(None, validation_alias=AliasChoices("total_chunks", "totalChunks"))
    created_at: Optional[datetime] = Field(None, validation_alias=AliasChoices("created_at", "createdAt"))

    def encode(self) -> str:
        """Serialize to the JSON string stored in the metadata field."""
        return self.model_dump_json(exclude={"kind"})


class LegacyVectorMetadata(BaseModel):
    """Metadata field that could not be parsed; raw value kept as the document id."""
    kind: Literal["legacy"] = "legacy"
    raw: str
    document_id: str


VectorMetadata = Union[ChunkVectorMetadata, LegacyVectorMetadata]


def decode_vector_metadata(raw: Optional[str]) -> VectorMetadata:
    """
    Decode the metadata field of a vector.

    Args:
        raw: Stored string, possibly not JSON at all

    Returns:
        ChunkVectorMetadata for a JSON object, LegacyVectorMetadata otherwise
    """
    value = raw if isinstance(raw, str) else ("" if raw is None else str(raw))

    try:
        parsed = json.loads(value)
    except (TypeError, ValueError):
        return LegacyVectorMetadata(raw=value, document_id=value)

    if not isinstance(parsed, dict):
        return LegacyVectorMetadata(raw=value, document_id=value)

    try:
        return ChunkVectorMetadata.model_validate(parsed)
    except ValidationError as e:
        logger.debug(f"Vector metadata did not validate, treating as legacy: {e}")
        return LegacyVectorMetadata(raw=value, document_id=value)


# ============================================================
# STORE-LEVEL RECORDS
# ============================================================

class VectorRecord(BaseModel):
    """One chunk to be written to every vector index."""
    id: str
    text: str
    metadata: ChunkVectorMetadata


class Hit(BaseModel):
    """One query result."""
    id: str
    score: float = Field(..., description="Similarity score, higher is closer")
    text: str
    metadata: VectorMetadata = Field(..., discriminator="kind")


class SearchResponse(BaseModel):
    """Result of GET /documents/search."""
    query: str
    index: str
    hits: List[Hit]
