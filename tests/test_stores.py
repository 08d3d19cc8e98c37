"""
Tests for the persistence collaborators.

Tests:
- SQL vector store: similarity order, corpus isolation, filtered delete
- Pinecone vector store against a mocked index
- Rate store: active-version lookups
- Document version store: activation and hash lookups
"""

import pytest
from unittest.mock import Mock


def _record(record_id, embedding, version="2025-2026", scope="", **extra):
    from tariff_rag.stores.base import VectorRecord

    return VectorRecord(
        id=record_id,
        content=f"content of {record_id}",
        metadata={"document_kind": "rate_table", "scope": scope, "version": version, **extra},
        embedding=embedding,
    )


class TestSQLVectorStore:
    """Tests for the SQLAlchemy-backed store."""

    def test_search_orders_by_similarity(self, tariff_store):
        tariff_store.add([
            _record("far", [0.0, 1.0]),
            _record("near", [1.0, 0.1]),
            _record("middle", [1.0, 1.0]),
        ])

        hits = tariff_store.search([1.0, 0.0], k=2)

        assert [h.id for h in hits] == ["near", "middle"]
        assert hits[0].similarity > hits[1].similarity
        assert hits[0].content == "content of near"

    def test_corpora_are_isolated(self, chapter_store, tariff_store):
        tariff_store.add([_record("t1", [1.0, 0.0])])

        assert chapter_store.search([1.0, 0.0], k=5) == []
        assert chapter_store.is_empty()
        assert not tariff_store.is_empty()

    def test_metadata_filters(self, tariff_store):
        tariff_store.add([
            _record("a", [1.0, 0.0], ordinal=0),
            _record("b", [1.0, 0.0], ordinal=1),
            _record("c", [1.0, 0.0], version="2024-2025", ordinal=0),
        ])

        assert tariff_store.count({"version": "2025-2026"}) == 2
        assert tariff_store.count({"version": "2025-2026", "ordinal": 1}) == 1
        assert {h.id for h in tariff_store.search([1.0, 0.0], k=5, metadata_filter={"ordinal": 0})} == {"a", "c"}

    def test_delete_and_gc(self, tariff_store):
        tariff_store.add([
            _record("old", [1.0, 0.0], version="2024-2025"),
            _record("new", [1.0, 0.0]),
            _record("other-scope", [1.0, 0.0], version="2024-2025", scope="61"),
        ])

        removed = tariff_store.delete_other_versions({"document_kind": "rate_table", "scope": ""}, "2025-2026")

        assert removed == 1
        assert tariff_store.count() == 2
        assert tariff_store.delete({"scope": "61"}) == 1
        assert [h.id for h in tariff_store.search([1.0, 0.0], k=5)] == ["new"]

    def test_dimension_mismatch_is_a_store_error(self, tariff_store):
        """Embeddings written at another dimension fail the stage, not the query."""
        from tariff_rag.errors import VectorStoreError

        tariff_store.add([_record("two-dim", [1.0, 0.0])])

        with pytest.raises(VectorStoreError):
            tariff_store.search([1.0, 0.0, 0.0], k=5)

    def test_mixed_dimensions_are_a_store_error(self, tariff_store):
        from tariff_rag.errors import VectorStoreError

        tariff_store.add([_record("two-dim", [1.0, 0.0]), _record("three-dim", [1.0, 0.0, 0.0])])

        with pytest.raises(VectorStoreError):
            tariff_store.search([1.0, 0.0], k=5)


class TestPineconeVectorStore:
    """Tests against a mocked Pinecone index."""

    def test_add_keeps_content_in_metadata(self):
        from tariff_rag.stores.pinecone_vector import PineconeVectorStore

        index = Mock()
        store = PineconeVectorStore(index, "tariff_chunks")

        written = store.add([_record("r1", [0.1, 0.2], source_url=None, hs_codes=["61091000"])])

        assert written == 1
        kwargs = index.upsert.call_args[1]
        assert kwargs["namespace"] == "tariff_chunks"
        vector = kwargs["vectors"][0]
        assert vector["metadata"]["content"] == "content of r1"
        assert "source_url" not in vector["metadata"]
        assert vector["metadata"]["hs_codes"] == ["61091000"]

    def test_search_maps_matches(self):
        from tariff_rag.stores.pinecone_vector import PineconeVectorStore

        match = Mock(id="r1", score=0.87, metadata={"content": "HS Code: 61091000", "version": "2025-2026"})
        index = Mock()
        index.query.return_value = Mock(matches=[match])

        hits = PineconeVectorStore(index, "tariff_chunks").search([0.1], k=3, metadata_filter={"scope": ""})

        assert hits[0].content == "HS Code: 61091000"
        assert hits[0].metadata == {"version": "2025-2026"}
        assert hits[0].similarity == pytest.approx(0.87)
        assert index.query.call_args[1]["filter"] == {"scope": {"$eq": ""}}
        assert index.query.call_args[1]["top_k"] == 3

    def test_gc_filter(self):
        from tariff_rag.stores.pinecone_vector import PineconeVectorStore

        index = Mock()
        PineconeVectorStore(index, "chapter_documents").delete_other_versions(
            {"document_kind": "legal_chapter", "scope": "61", "version": "2025"}, "2025"
        )

        assert index.delete.call_args[1]["filter"] == {
            "document_kind": {"$eq": "legal_chapter"},
            "scope": {"$eq": "61"},
            "version": {"$ne": "2025"},
        }

    def test_errors_are_wrapped(self):
        from tariff_rag.errors import VectorStoreError
        from tariff_rag.stores.pinecone_vector import PineconeVectorStore

        index = Mock()
        index.query.side_effect = RuntimeError("503 Service Unavailable")

        with pytest.raises(VectorStoreError):
            PineconeVectorStore(index, "tariff_chunks").search([0.1], k=3)

    def test_count_reads_namespace(self):
        from tariff_rag.stores.pinecone_vector import PineconeVectorStore

        index = Mock()
        index.describe_index_stats.return_value = Mock(namespaces={"tariff_chunks": Mock(vector_count=42)})

        assert PineconeVectorStore(index, "tariff_chunks").count() == 42
        assert PineconeVectorStore(index, "chapter_documents").count() == 0


class TestRateStore:
    """Tests for rate lookups across versions."""

    def _row(self, code="61091000", cd=25):
        from tariff_rag.ingestion.tariff_parser import TariffRow

        return TariffRow(hs_code=code, description="T-shirts of cotton", cd=cd)

    def test_active_version_wins(self, rate_store, version_store):
        rate_store.replace_version([self._row(cd=20)], "2024-2025")
        rate_store.replace_version([self._row(cd=25)], "2025-2026")
        version_store.mark_processed("rate_table", "2024-2025")

        assert rate_store.get_rates("61091000").rates()["cd"] == 20.0

    def test_latest_write_without_active_record(self, rate_store):
        rate_store.replace_version([self._row(cd=20)], "2024-2025")
        rate_store.replace_version([self._row(cd=25)], "2025-2026")

        assert rate_store.get_rates("61091000").rates()["cd"] == 25.0

    def test_missing_code(self, rate_store):
        assert rate_store.get_rates("99999999") is None

    def test_uncommitted_version_is_invisible(self, rate_store, version_store):
        """Rows written for a version without a version record are not served."""
        rate_store.replace_version([self._row(cd=20)], "2024-2025")
        version_store.mark_processed("rate_table", "2024-2025")
        rate_store.replace_version([self._row(cd=25), self._row("99999999", cd=77)], "2025-2026")

        assert rate_store.get_rates("99999999") is None
        assert rate_store.get_rates("61091000").rates()["cd"] == 20.0

    def test_replace_is_idempotent(self, rate_store):
        """Re-writing a version replaces it; duplicate codes keep the last row."""
        rate_store.replace_version([self._row(cd=10), self._row(cd=15)], "2025-2026")
        written = rate_store.replace_version([self._row(cd=25), self._row("61099000")], "2025-2026")

        assert written == 2
        assert rate_store.count("2025-2026") == 2
        assert rate_store.get_rates("61091000").rates()["cd"] == 25.0


class TestDocumentVersionStore:
    """Tests for version records."""

    def test_mark_processed_activates_latest(self, version_store):
        version_store.mark_processed("rate_table", "2024-2025", content_hash="aaa")
        version_store.mark_processed("rate_table", "2025-2026", content_hash="bbb")

        assert [r.version for r in version_store.active("rate_table")] == ["2025-2026"]
        assert version_store.exists("rate_table", "2024-2025")
        assert version_store.hash_seen("rate_table", "aaa")
        assert not version_store.hash_seen("legal_chapter", "aaa")

    def test_scopes_are_independent(self, version_store):
        version_store.mark_processed("legal_chapter", "2024", scope="61")
        version_store.mark_processed("legal_chapter", "2025", scope="62")

        assert [r.scope for r in version_store.active("legal_chapter")] == ["61", "62"]
        assert version_store.latest("legal_chapter", scope="61").version == "2024"
        assert not version_store.exists("legal_chapter", "2024", scope="62")

    def test_delete(self, version_store):
        version_store.mark_processed("rate_table", "2025-2026")

        assert version_store.delete("rate_table", "2025-2026") == 1
        assert version_store.latest("rate_table") is None
