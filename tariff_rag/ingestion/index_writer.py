"""
Index Writer

All-or-nothing commit of one document version into the retrieval index.

Commit order:
1. Embed every chunk (sequential batches)
2. Insert all chunks for the new version (plus rate rows for rate tables)
3. Mark the version record processed and active
4. Delete chunks/rates of the same kind and scope from other versions

Any failure in 1-3 removes what this commit wrote for (kind, scope, version)
and leaves the previously active version untouched. Old data is only deleted
in step 4, after the new version record exists, so a crash between steps
never leaves a kind without a usable version.
"""

import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from tariff_rag.errors import IndexCommitError
from tariff_rag.ingestion.chunker import Chunk
from tariff_rag.ingestion.tariff_parser import TariffRow
from tariff_rag.logging_utils import structured_log
from tariff_rag.stores.base import VectorRecord, VectorStore
from tariff_rag.stores.rate_store import RateStore
from tariff_rag.stores.version_store import DocumentVersionStore
from tariff_rag.watchers.base import DocumentKind, PendingDocument

logger = logging.getLogger(__name__)


@dataclass
class VersionInfo:
    """Identity of the document version being committed."""
    kind: str
    version: str
    scope: str = ""
    source_url: Optional[str] = None
    content_hash: Optional[str] = None
    title: Optional[str] = None

    @classmethod
    def from_pending(cls, pending: PendingDocument) -> "VersionInfo":
        return cls(
            kind=pending.kind.value,
            version=pending.version,
            scope=pending.scope,
            source_url=pending.url,
            content_hash=pending.content_hash,
            title=pending.title,
        )

    @property
    def label(self) -> str:
        scoped = f"{self.kind}/{self.scope}" if self.scope else self.kind
        return f"{scoped}@{self.version}"


@dataclass
class CommitReport:
    success: bool
    kind: str
    version: str
    scope: str = ""
    chunks_written: int = 0
    rates_written: int = 0
    superseded_removed: int = 0
    gc_error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "kind": self.kind,
            "version": self.version,
            "scope": self.scope,
            "chunks_written": self.chunks_written,
            "rates_written": self.rates_written,
            "superseded_removed": self.superseded_removed,
            "gc_error": self.gc_error,
        }


def chunk_id(info: VersionInfo, chunk: Chunk) -> str:
    key = f"{info.kind}|{info.scope}|{info.version}|{chunk.ordinal}|{chunk.text_hash}"
    return hashlib.sha256(key.encode('utf-8')).hexdigest()[:40]


class IndexWriter:
    """
    Sole writer of retrieval chunks, rate rows and version records.

    Usage:
        writer = IndexWriter(embedder, {"rate_table": tariff_store,
                                        "legal_chapter": chapter_store},
                             rate_store, version_store)
        report = writer.commit(chunks, VersionInfo.from_pending(pending), rows=rows)
    """

    def __init__(
        self,
        embedder,
        stores: Mapping[str, VectorStore],
        rate_store: RateStore,
        version_store: DocumentVersionStore,
        embed_batch_size: int = 10,
    ):
        self.embedder = embedder
        self.stores = {str(getattr(k, "value", k)): v for k, v in stores.items()}
        self.rate_store = rate_store
        self.version_store = version_store
        self.embed_batch_size = embed_batch_size

    def _store_for(self, kind: str) -> VectorStore:
        try:
            return self.stores[kind]
        except KeyError:
            raise IndexCommitError(f"No vector store configured for document kind {kind!r}") from None

    def _embed(self, chunks: Sequence[Chunk]) -> List[List[float]]:
        vectors: List[List[float]] = []
        for start in range(0, len(chunks), self.embed_batch_size):
            batch = chunks[start:start + self.embed_batch_size]
            vectors.extend(self.embedder.embed_documents([chunk.content for chunk in batch]))
            logger.debug(f"Embedded {min(start + len(batch), len(chunks))}/{len(chunks)} chunks")
        return vectors

    def _records(self, chunks: Sequence[Chunk], vectors: List[List[float]], info: VersionInfo) -> List[VectorRecord]:
        records = []
        for chunk, vector in zip(chunks, vectors):
            metadata = {
                **chunk.metadata,
                "document_kind": info.kind,
                "scope": info.scope,
                "version": info.version,
                "source_url": info.source_url,
            }
            if info.kind == DocumentKind.LEGAL_CHAPTER.value and info.scope:
                metadata["chapter"] = info.scope
            records.append(VectorRecord(
                id=chunk_id(info, chunk),
                content=chunk.content,
                metadata=metadata,
                embedding=vector,
            ))
        return records

    def _rollback(self, store: VectorStore, info: VersionInfo, wrote_rates: bool) -> None:
        version_filter = {"document_kind": info.kind, "scope": info.scope, "version": info.version}
        try:
            store.delete(version_filter)
        except Exception as e:
            logger.error(f"Rollback of chunks for {info.label} failed: {e}")
        if wrote_rates:
            try:
                self.rate_store.delete_version(info.version)
            except Exception as e:
                logger.error(f"Rollback of tariff rates for {info.label} failed: {e}")
        structured_log("WARNING", "commit_rolled_back", kind=info.kind, scope=info.scope, version=info.version)

    def commit(
        self,
        chunks: Sequence[Chunk],
        info: VersionInfo,
        rows: Optional[Sequence[TariffRow]] = None,
    ) -> CommitReport:
        """
        Raises:
            IndexCommitError: nothing to commit, version already committed, or a
                failure in embed/insert/record (after rollback)
        """
        if not chunks:
            raise IndexCommitError(f"No chunks to commit for {info.label}")

        store = self._store_for(info.kind)
        version_filter = {"document_kind": info.kind, "scope": info.scope, "version": info.version}

        if self.version_store.exists(info.kind, info.version, scope=info.scope):
            raise IndexCommitError(f"{info.label} is already committed")

        # Leftovers from an interrupted commit have no version record
        orphans = store.delete(version_filter)
        if orphans:
            logger.warning(f"Removed {orphans} orphaned chunks for {info.label}")

        report = CommitReport(success=False, kind=info.kind, version=info.version, scope=info.scope)
        wrote_rates = False
        try:
            vectors = self._embed(chunks)
            records = self._records(chunks, vectors, info)

            report.chunks_written = store.add(records)
            if rows is not None:
                wrote_rates = True
                report.rates_written = self.rate_store.replace_version(rows, info.version)

            self.version_store.mark_processed(
                info.kind,
                info.version,
                scope=info.scope,
                source_url=info.source_url,
                content_hash=info.content_hash,
                title=info.title,
            )
        except Exception as e:
            logger.error(f"Commit of {info.label} failed, rolling back: {e}")
            self._rollback(store, info, wrote_rates)
            raise IndexCommitError(f"Commit of {info.label} failed: {e}") from e

        report.success = True

        # The new version is live; a failed cleanup is retried by the next commit
        try:
            report.superseded_removed = store.delete_other_versions(
                {"document_kind": info.kind, "scope": info.scope}, keep_version=info.version
            )
            if rows is not None:
                report.superseded_removed += self.rate_store.delete_other_versions(info.version)
        except Exception as e:
            report.gc_error = str(e)
            logger.warning(f"Garbage collection after {info.label} failed: {e}")

        structured_log("INFO", "version_committed", **report.as_dict())
        return report
