"""
Vector Store Abstraction

Each VectorStore instance is bound to one corpus (e.g. legal chapters or
tariff chunks). Implementations:
- SQLVectorStore: SQLAlchemy table, cosine similarity computed in-process
- PineconeVectorStore: hosted index, one namespace per corpus

Filters are flat equality maps over chunk metadata, e.g.
{"document_kind": "rate_table", "scope": ""}.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

MetadataFilter = Dict[str, Any]


@dataclass
class VectorRecord:
    """A chunk ready to be written: content, metadata and its embedding."""
    id: str
    content: str
    metadata: Dict[str, Any]
    embedding: List[float]


@dataclass
class SearchHit:
    """Nearest-neighbour result."""
    id: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    similarity: float = 0.0


class VectorStore(ABC):
    """Abstract vector store bound to a single corpus."""

    corpus: str = "default"

    @abstractmethod
    def add(self, records: List[VectorRecord]) -> int:
        """Insert records. Returns number written."""
        pass

    @abstractmethod
    def search(
        self,
        vector: List[float],
        k: int,
        metadata_filter: Optional[MetadataFilter] = None,
    ) -> List[SearchHit]:
        """Return up to k hits ordered by descending similarity."""
        pass

    @abstractmethod
    def delete(self, metadata_filter: MetadataFilter) -> int:
        """Delete every record matching the filter."""
        pass

    @abstractmethod
    def delete_other_versions(self, metadata_filter: MetadataFilter, keep_version: str) -> int:
        """Delete records matching the filter whose version differs from keep_version."""
        pass

    @abstractmethod
    def count(self, metadata_filter: Optional[MetadataFilter] = None) -> int:
        pass

    def is_empty(self) -> bool:
        return self.count() == 0
