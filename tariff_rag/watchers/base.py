"""
Common types for source discovery and change tracking.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class DocumentKind(str, Enum):
    """Document kinds found on the source listings."""
    RATE_TABLE = "rate_table"  # Whole-schedule tariff rate PDF
    LEGAL_CHAPTER = "legal_chapter"  # Per-chapter legal text PDF
    OTHER = "other"

    @property
    def ingestable(self) -> bool:
        return self in (DocumentKind.RATE_TABLE, DocumentKind.LEGAL_CHAPTER)


@dataclass
class SourceLink:
    """
    A downloadable document link found on a listing page.

    Ephemeral: produced by SourceLinkResolver, never persisted. `kind` is a
    keyword heuristic and only advisory for non rate-table documents.
    """
    url: str
    title: str = ""
    declared_version: Optional[str] = None
    kind: DocumentKind = DocumentKind.OTHER
    extraction_confidence: float = 0.0
    scope: str = ""  # chapter number for legal chapters

    def as_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "declared_version": self.declared_version,
            "kind": self.kind.value,
            "extraction_confidence": self.extraction_confidence,
            "scope": self.scope,
        }


@dataclass
class PendingDocument:
    """
    A link that represents an unseen (kind, scope, version), already downloaded.

    The downloaded bytes travel with the record so the pipeline never fetches
    the same document twice.
    """
    kind: DocumentKind
    version: str
    url: str
    content_hash: str
    content: bytes = field(default=b"", repr=False)
    title: str = ""
    scope: str = ""
    discovered_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def label(self) -> str:
        scoped = f"{self.kind.value}/{self.scope}" if self.scope else self.kind.value
        return f"{scoped}@{self.version}"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "version": self.version,
            "scope": self.scope,
            "url": self.url,
            "title": self.title,
            "content_hash": self.content_hash,
            "size_bytes": len(self.content),
        }
