"""
Tests for the all-or-nothing version commit.

Tests:
- Successful commit writes chunks, rates and the version record
- Failures in embed/record roll back and keep the previous version live
- Superseded versions are garbage collected only after a successful commit
"""

import pytest
from unittest.mock import patch


def _rows(prefix="6109", count=5):
    from tariff_rag.ingestion.tariff_parser import TariffRow

    return [
        TariffRow(hs_code=f"{prefix}{i:04d}", description=f"Knitted garment {i}", cd=25, tti=89.32)
        for i in range(count)
    ]


def _info(version="2025-2026", kind="rate_table", scope=""):
    from tariff_rag.ingestion.index_writer import VersionInfo

    return VersionInfo(
        kind=kind,
        version=version,
        scope=scope,
        source_url=f"https://customs.gov.bd/files/{kind}_{version}.pdf",
        content_hash=f"hash-{kind}-{scope}-{version}",
    )


class TestCommit:
    """Tests for a clean commit."""

    def test_rate_table_commit(self, index_writer, tariff_store, rate_store, version_store):
        """Chunks, rates and an active version record are all written."""
        from tariff_rag.ingestion.chunker import chunk_tariff_rows

        rows = _rows(count=5)
        report = index_writer.commit(chunk_tariff_rows(rows, batch_size=2), _info(), rows=rows)

        assert report.success
        assert report.chunks_written == 3
        assert report.rates_written == 5
        assert tariff_store.count({"version": "2025-2026"}) == 3
        assert rate_store.count("2025-2026") == 5
        assert version_store.latest("rate_table").version == "2025-2026"

    def test_chunk_metadata(self, index_writer, chapter_store):
        """Chapter chunks carry kind, scope, version and chapter number."""
        from tariff_rag.ingestion.chunker import Chunk

        chunks = [Chunk(content="Chapter 61 notes " * 10, metadata={"ordinal": 0})]
        index_writer.commit(chunks, _info(kind="legal_chapter", scope="61"))

        hit = chapter_store.search([1.0] * 64, k=1)[0]
        assert hit.metadata["document_kind"] == "legal_chapter"
        assert hit.metadata["scope"] == "61"
        assert hit.metadata["chapter"] == "61"
        assert hit.metadata["version"] == "2025-2026"

    def test_empty_commit_is_rejected(self, index_writer):
        from tariff_rag.errors import IndexCommitError

        with pytest.raises(IndexCommitError):
            index_writer.commit([], _info())

    def test_recommit_of_same_version_raises(self, index_writer):
        """A version that already has a record is never written twice."""
        from tariff_rag.errors import IndexCommitError
        from tariff_rag.ingestion.chunker import chunk_tariff_rows

        rows = _rows()
        index_writer.commit(chunk_tariff_rows(rows), _info(), rows=rows)

        with pytest.raises(IndexCommitError, match="already committed"):
            index_writer.commit(chunk_tariff_rows(rows), _info(), rows=rows)

    def test_orphans_are_removed_before_insert(self, index_writer, tariff_store):
        """Chunks left by an interrupted commit do not survive the retry."""
        from tariff_rag.ingestion.chunker import chunk_tariff_rows
        from tariff_rag.stores.base import VectorRecord

        tariff_store.add([VectorRecord(
            id="orphan-1",
            content="half-written chunk",
            metadata={"document_kind": "rate_table", "scope": "", "version": "2025-2026"},
            embedding=[0.1] * 64,
        )])

        rows = _rows(count=3)
        index_writer.commit(chunk_tariff_rows(rows), _info(), rows=rows)

        assert tariff_store.count({"version": "2025-2026"}) == 1


class TestRollback:
    """Tests for failure handling inside the commit."""

    def test_record_failure_rolls_back(self, index_writer, version_store, tariff_store, rate_store):
        """A failed version record removes the inserted chunks and rates."""
        from tariff_rag.errors import IndexCommitError
        from tariff_rag.ingestion.chunker import chunk_tariff_rows

        rows = _rows()
        with patch.object(version_store, "mark_processed", side_effect=RuntimeError("database is locked")):
            with pytest.raises(IndexCommitError):
                index_writer.commit(chunk_tariff_rows(rows), _info(), rows=rows)

        assert tariff_store.count() == 0
        assert rate_store.count() == 0
        assert not version_store.exists("rate_table", "2025-2026")

    def test_embedding_failure_keeps_previous_version(
        self, make_embedder, chapter_store, tariff_store, rate_store, version_store
    ):
        """An embedding timeout mid-commit leaves the old version active."""
        from tariff_rag.errors import EmbeddingError, IndexCommitError
        from tariff_rag.ingestion.chunker import chunk_tariff_rows
        from tariff_rag.ingestion.index_writer import IndexWriter

        stores = {"legal_chapter": chapter_store, "rate_table": tariff_store}
        old_rows = _rows(count=2)
        IndexWriter(make_embedder(), stores, rate_store, version_store).commit(
            chunk_tariff_rows(old_rows), _info("2024-2025"), rows=old_rows
        )

        failing = IndexWriter(make_embedder(fail_on_call=2), stores, rate_store, version_store, embed_batch_size=1)
        new_rows = _rows(prefix="6205", count=3)
        with pytest.raises(IndexCommitError) as exc_info:
            failing.commit(chunk_tariff_rows(new_rows, batch_size=1), _info("2025-2026"), rows=new_rows)

        assert isinstance(exc_info.value.__cause__, EmbeddingError)
        assert tariff_store.count({"version": "2025-2026"}) == 0
        assert tariff_store.count({"version": "2024-2025"}) == 1
        assert rate_store.versions() == ["2024-2025"]
        assert version_store.latest("rate_table").version == "2024-2025"


class TestGarbageCollection:
    """Tests for removal of superseded versions."""

    def test_only_new_version_remains(self, index_writer, tariff_store, rate_store, version_store):
        from tariff_rag.ingestion.chunker import chunk_tariff_rows

        v1 = _rows(count=2)
        index_writer.commit(chunk_tariff_rows(v1), _info("2024-2025"), rows=v1)
        v2 = _rows(prefix="6205", count=3)
        report = index_writer.commit(chunk_tariff_rows(v2), _info("2025-2026"), rows=v2)

        assert report.superseded_removed == 3  # 1 chunk + 2 rates
        assert tariff_store.count({"version": "2024-2025"}) == 0
        assert rate_store.versions() == ["2025-2026"]
        assert [r.version for r in version_store.active("rate_table")] == ["2025-2026"]

    def test_chapters_are_collected_per_scope(self, index_writer, chapter_store):
        """A new chapter 61 version leaves chapter 62 alone."""
        from tariff_rag.ingestion.chunker import Chunk

        def chunks(text):
            return [Chunk(content=text, metadata={"ordinal": 0})]

        index_writer.commit(chunks("chapter 61 old"), _info("2024", "legal_chapter", "61"))
        index_writer.commit(chunks("chapter 62 old"), _info("2024", "legal_chapter", "62"))
        index_writer.commit(chunks("chapter 61 new"), _info("2025", "legal_chapter", "61"))

        assert chapter_store.count({"scope": "61", "version": "2024"}) == 0
        assert chapter_store.count({"scope": "61", "version": "2025"}) == 1
        assert chapter_store.count({"scope": "62", "version": "2024"}) == 1

    def test_gc_failure_is_only_reported(self, index_writer, tariff_store):
        """The commit stands when cleanup of old versions fails."""
        from tariff_rag.errors import VectorStoreError
        from tariff_rag.ingestion.chunker import chunk_tariff_rows

        rows = _rows()
        with patch.object(tariff_store, "delete_other_versions", side_effect=VectorStoreError("rpc timeout")):
            report = index_writer.commit(chunk_tariff_rows(rows), _info(), rows=rows)

        assert report.success
        assert "rpc timeout" in report.gc_error
