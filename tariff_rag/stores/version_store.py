"""
Document version store.

Read side is used by the ChangeTracker and the scheduler; write side
(`mark_processed`, `delete`) is only called by the IndexWriter after a
successful chunk insert.
"""

import logging
from datetime import datetime
from typing import List, Optional

from tariff_rag.db import SessionFactory, session_scope
from tariff_rag.models import DocumentVersionRecord

logger = logging.getLogger(__name__)


class DocumentVersionStore:
    """Access to `document_versions`."""

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    def exists(self, kind: str, version: str, scope: str = "") -> bool:
        with session_scope(self.session_factory) as session:
            return session.query(DocumentVersionRecord).filter(
                DocumentVersionRecord.document_kind == kind,
                DocumentVersionRecord.scope == scope,
                DocumentVersionRecord.version == version,
            ).first() is not None

    def hash_seen(self, kind: str, content_hash: str, scope: str = "") -> bool:
        """True when this exact content was already processed for the kind/scope."""
        with session_scope(self.session_factory) as session:
            return session.query(DocumentVersionRecord).filter(
                DocumentVersionRecord.document_kind == kind,
                DocumentVersionRecord.scope == scope,
                DocumentVersionRecord.content_hash == content_hash,
            ).first() is not None

    def mark_processed(
        self,
        kind: str,
        version: str,
        scope: str = "",
        source_url: Optional[str] = None,
        content_hash: Optional[str] = None,
        title: Optional[str] = None,
    ) -> DocumentVersionRecord:
        """Upsert on (kind, scope, version), activate it and deactivate the others."""
        with session_scope(self.session_factory) as session:
            record = session.query(DocumentVersionRecord).filter(
                DocumentVersionRecord.document_kind == kind,
                DocumentVersionRecord.scope == scope,
                DocumentVersionRecord.version == version,
            ).first()

            if record is None:
                record = DocumentVersionRecord(document_kind=kind, scope=scope, version=version)
                session.add(record)

            record.source_url = source_url
            record.content_hash = content_hash
            record.title = title
            record.processed_at = datetime.utcnow()
            record.is_active = True

            session.query(DocumentVersionRecord).filter(
                DocumentVersionRecord.document_kind == kind,
                DocumentVersionRecord.scope == scope,
                DocumentVersionRecord.version != version,
            ).update({"is_active": False}, synchronize_session=False)

            session.flush()
            logger.info(f"Marked {kind}{'/' + scope if scope else ''} version {version} as processed")
            return record

    def delete(self, kind: str, version: str, scope: str = "") -> int:
        with session_scope(self.session_factory) as session:
            return session.query(DocumentVersionRecord).filter(
                DocumentVersionRecord.document_kind == kind,
                DocumentVersionRecord.scope == scope,
                DocumentVersionRecord.version == version,
            ).delete(synchronize_session=False)

    def latest(self, kind: str, scope: Optional[str] = None) -> Optional[DocumentVersionRecord]:
        """Most recently processed active record for a kind (any scope when scope is None)."""
        with session_scope(self.session_factory) as session:
            query = session.query(DocumentVersionRecord).filter(
                DocumentVersionRecord.document_kind == kind,
                DocumentVersionRecord.is_active.is_(True),
            )
            if scope is not None:
                query = query.filter(DocumentVersionRecord.scope == scope)
            return query.order_by(DocumentVersionRecord.processed_at.desc()).first()

    def active(self, kind: str) -> List[DocumentVersionRecord]:
        with session_scope(self.session_factory) as session:
            return session.query(DocumentVersionRecord).filter(
                DocumentVersionRecord.document_kind == kind,
                DocumentVersionRecord.is_active.is_(True),
            ).order_by(DocumentVersionRecord.scope).all()
