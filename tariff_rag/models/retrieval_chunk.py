"""
Retrieval chunks for the SQL-backed vector store.

Embeddings are kept as JSON float arrays so the table works on any
SQLAlchemy backend; similarity is computed by the store.
"""

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import JSON, Column, DateTime, Index, String, Text

from tariff_rag.db import Base


class RetrievalChunkRow(Base):
    """One embedded chunk. Immutable once written."""
    __tablename__ = "retrieval_chunks"
    __table_args__ = (
        Index('idx_chunk_corpus_kind_version', 'corpus', 'document_kind', 'scope', 'version'),
    )

    id = Column(String(64), primary_key=True)
    corpus = Column(String(50), nullable=False)  # 'chapter_documents', 'tariff_chunks'

    # Promoted from metadata for filtering and garbage collection
    document_kind = Column(String(30), nullable=False)
    scope = Column(String(50), nullable=False, default="")
    version = Column(String(50), nullable=False)

    content = Column(Text, nullable=False)
    chunk_metadata = Column(JSON, nullable=False, default=dict)
    embedding = Column(JSON, nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "corpus": self.corpus,
            "document_kind": self.document_kind,
            "scope": self.scope,
            "version": self.version,
            "content": self.content[:500] + "..." if len(self.content) > 500 else self.content,
            "chunk_metadata": self.chunk_metadata,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
