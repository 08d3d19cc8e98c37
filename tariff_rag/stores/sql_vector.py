"""
SQL-backed vector store.

Rows live in `retrieval_chunks`; `document_kind`, `scope` and `version` are
promoted to columns so filtering and garbage collection run in SQL. Any
other filter key is matched against the JSON metadata after loading.

Similarity is cosine similarity computed with numpy over the candidate rows,
which keeps the store portable across SQLite and PostgreSQL.
"""

import logging
from typing import Any, Dict, List, Optional

import numpy as np
from sqlalchemy.exc import SQLAlchemyError

from tariff_rag.db import SessionFactory, session_scope
from tariff_rag.errors import VectorStoreError
from tariff_rag.models import RetrievalChunkRow
from tariff_rag.stores.base import MetadataFilter, SearchHit, VectorRecord, VectorStore

logger = logging.getLogger(__name__)

PROMOTED_KEYS = ("document_kind", "scope", "version")


class SQLVectorStore(VectorStore):
    """
    Vector store over the `retrieval_chunks` table.

    Usage:
        store = SQLVectorStore(session_factory, corpus="chapter_documents")
        store.add([VectorRecord(id="c1", content="...", metadata={...}, embedding=[...])])
        hits = store.search(query_vector, k=15)
    """

    def __init__(self, session_factory: SessionFactory, corpus: str):
        self.session_factory = session_factory
        self.corpus = corpus

    def _base_query(self, session, metadata_filter: Optional[MetadataFilter]):
        query = session.query(RetrievalChunkRow).filter(RetrievalChunkRow.corpus == self.corpus)
        for key in PROMOTED_KEYS:
            if metadata_filter and key in metadata_filter:
                query = query.filter(getattr(RetrievalChunkRow, key) == metadata_filter[key])
        return query

    @staticmethod
    def _matches_extra(row: RetrievalChunkRow, metadata_filter: Optional[MetadataFilter]) -> bool:
        if not metadata_filter:
            return True
        metadata = row.chunk_metadata or {}
        for key, expected in metadata_filter.items():
            if key in PROMOTED_KEYS:
                continue
            if metadata.get(key) != expected:
                return False
        return True

    def add(self, records: List[VectorRecord]) -> int:
        if not records:
            return 0
        try:
            with session_scope(self.session_factory) as session:
                for record in records:
                    metadata: Dict[str, Any] = dict(record.metadata)
                    session.add(RetrievalChunkRow(
                        id=record.id,
                        corpus=self.corpus,
                        document_kind=str(metadata.get("document_kind", "")),
                        scope=str(metadata.get("scope", "") or ""),
                        version=str(metadata.get("version", "")),
                        content=record.content,
                        chunk_metadata=metadata,
                        embedding=[float(x) for x in record.embedding],
                    ))
        except SQLAlchemyError as e:
            raise VectorStoreError(f"Insert into {self.corpus} failed: {e}") from e
        return len(records)

    def search(
        self,
        vector: List[float],
        k: int,
        metadata_filter: Optional[MetadataFilter] = None,
    ) -> List[SearchHit]:
        try:
            with session_scope(self.session_factory) as session:
                rows = [
                    row for row in self._base_query(session, metadata_filter).all()
                    if self._matches_extra(row, metadata_filter)
                ]
                candidates = [
                    (row.id, row.content, dict(row.chunk_metadata or {}), row.embedding)
                    for row in rows
                ]
        except SQLAlchemyError as e:
            raise VectorStoreError(f"Search in {self.corpus} failed: {e}") from e

        if not candidates or k <= 0:
            return []

        try:
            query = np.asarray(vector, dtype=float)
            matrix = np.asarray([c[3] for c in candidates], dtype=float)
        except ValueError as e:
            raise VectorStoreError(f"Stored embeddings in {self.corpus} have mixed dimensions: {e}") from e
        if matrix.ndim != 2 or query.ndim != 1 or matrix.shape[1] != query.shape[0]:
            raise VectorStoreError(
                f"Query vector has {query.size} dimensions, {self.corpus} stores {matrix.shape[-1]}"
            )

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        norms[norms == 0] = 1.0
        scores = matrix @ query / norms

        # Stable sort keeps insertion order among equal scores
        order = np.argsort(-scores, kind="stable")[:k]
        return [
            SearchHit(
                id=candidates[i][0],
                content=candidates[i][1],
                metadata=candidates[i][2],
                similarity=float(scores[i]),
            )
            for i in order
        ]

    def delete(self, metadata_filter: MetadataFilter) -> int:
        try:
            with session_scope(self.session_factory) as session:
                rows = [
                    row for row in self._base_query(session, metadata_filter).all()
                    if self._matches_extra(row, metadata_filter)
                ]
                for row in rows:
                    session.delete(row)
                return len(rows)
        except SQLAlchemyError as e:
            raise VectorStoreError(f"Delete from {self.corpus} failed: {e}") from e

    def delete_other_versions(self, metadata_filter: MetadataFilter, keep_version: str) -> int:
        scoped = {k: v for k, v in metadata_filter.items() if k != "version"}
        try:
            with session_scope(self.session_factory) as session:
                rows = [
                    row for row in self._base_query(session, scoped)
                    .filter(RetrievalChunkRow.version != keep_version).all()
                    if self._matches_extra(row, scoped)
                ]
                for row in rows:
                    session.delete(row)
                deleted = len(rows)
        except SQLAlchemyError as e:
            raise VectorStoreError(f"Garbage collection in {self.corpus} failed: {e}") from e

        if deleted:
            logger.info(f"Removed {deleted} superseded chunks from {self.corpus} (kept {keep_version})")
        return deleted

    def count(self, metadata_filter: Optional[MetadataFilter] = None) -> int:
        with session_scope(self.session_factory) as session:
            if not metadata_filter or all(k in PROMOTED_KEYS for k in metadata_filter):
                return self._base_query(session, metadata_filter).count()
            return sum(
                1 for row in self._base_query(session, metadata_filter).all()
                if self._matches_extra(row, metadata_filter)
            )
