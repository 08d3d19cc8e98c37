"""
Document Version Records

One logical record per processed (document_kind, scope, version).
`scope` separates independently versioned documents of the same kind,
e.g. legal chapter "61" vs "62"; it is "" for the single rate table.

A content hash that is already recorded for the same kind and scope means
the document was processed before (possibly under another version token)
and must not be ingested again.
"""

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text, UniqueConstraint

from tariff_rag.db import Base


class DocumentVersionRecord(Base):
    """
    Processed document version.

    Key properties:
    - is_active: exactly one active version per (document_kind, scope)
    - content_hash: SHA-256 of the downloaded bytes
    """
    __tablename__ = "document_versions"
    __table_args__ = (
        UniqueConstraint('document_kind', 'scope', 'version', name='uq_document_version'),
        Index('idx_document_version_hash', 'document_kind', 'scope', 'content_hash'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    document_kind = Column(String(30), nullable=False)  # 'rate_table', 'legal_chapter'
    scope = Column(String(50), nullable=False, default="")  # chapter number or ""
    version = Column(String(50), nullable=False)  # '2025-2026'

    source_url = Column(Text, nullable=True)
    content_hash = Column(String(64), nullable=True)
    title = Column(Text, nullable=True)

    processed_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    is_active = Column(Boolean, nullable=False, default=True)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "document_kind": self.document_kind,
            "scope": self.scope,
            "version": self.version,
            "source_url": self.source_url,
            "content_hash": self.content_hash,
            "title": self.title,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "is_active": self.is_active,
        }
