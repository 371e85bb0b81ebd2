"""
Vector index configuration.

An index is a named ChromaDB server plus the collection that holds
document chunks on it. The registry is built once from settings and
passed to the vector store, so nothing downstream reads configuration
on its own.
"""

from dataclasses import dataclass, field
from typing import Iterator, Optional, Tuple
from urllib.parse import urlparse


@dataclass(frozen=True)
class VectorIndexConfig:
    """One remote vector index."""
    name: str
    url: str
    collection: str = "document_chunks"

    @property
    def host(self) -> str:
        return urlparse(self.url).hostname or "localhost"

    @property
    def port(self) -> int:
        parsed = urlparse(self.url)
        if parsed.port:
            return parsed.port
        return 443 if parsed.scheme == "https" else 8000

    @property
    def ssl(self) -> bool:
        return urlparse(self.url).scheme == "https"


@dataclass(frozen=True)
class VectorIndexRegistry:
    """
    Default index plus any number of extra indexes.

    Iteration yields the default first, then the extras in
    configuration order. Writes go to all of them.
    """
    default: VectorIndexConfig
    extras: Tuple[VectorIndexConfig, ...] = field(default_factory=tuple)

    def __post_init__(self):
        names = [index.name for index in self]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate vector index names: {names}")

    def __iter__(self) -> Iterator[VectorIndexConfig]:
        yield self.default
        yield from self.extras

    def __len__(self) -> int:
        return 1 + len(self.extras)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(index.name for index in self)

    def get(self, name: Optional[str]) -> Optional[VectorIndexConfig]:
        """Find an index by name, or None if it is not configured."""
        for index in self:
            if index.name == name:
                return index
        return None

    def resolve(self, name: Optional[str]) -> VectorIndexConfig:
        """Find an index by name, falling back to the default."""
        return self.get(name) or self.default
