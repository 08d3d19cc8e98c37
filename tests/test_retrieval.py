"""
Unit tests for the cascading retrieval engine.

Stores are mocks returning canned hits; the embedder is the hashed fake.
"""

import pytest
from unittest.mock import Mock


def _hits(prefix, count, similarity=0.8):
    from tariff_rag.stores.base import SearchHit

    return [
        SearchHit(id=f"{prefix}-{i}", content=f"{prefix} chunk {i}", metadata={"ordinal": i}, similarity=similarity)
        for i in range(count)
    ]


def _store(corpus, *results):
    store = Mock()
    store.corpus = corpus
    store.search.side_effect = list(results)
    return store


def _query(variants=("cotton knitted", "t-shirt tee")):
    from tariff_rag.rag.query_builder import ExpandedQuery

    return ExpandedQuery(text="enhanced query text", variants=list(variants), broad_text="textile garment")


class TestCascade:
    """Tests for floors and stage order."""

    def test_floors_fill_up_context(self, fake_embedder):
        """3 primary + 10 secondary hits satisfy every later floor."""
        from tariff_rag.rag.retrieval import RetrievalEngine

        primary = _store("chapter_documents", _hits("chapter", 3))
        secondary = _store("tariff_chunks", _hits("tariff", 10))

        chunks = RetrievalEngine(fake_embedder, primary, secondary).search(_query())

        assert len(chunks) == 13
        assert len({c.id for c in chunks}) == 13
        assert secondary.search.call_count == 1
        assert {c.corpus for c in chunks} == {"chapter_documents", "tariff_chunks"}
        assert chunks[0].stage == "primary"
        assert chunks[-1].stage == "secondary"

    def test_variants_run_while_below_floor(self, fake_embedder):
        """With few hits, each variant and the broad query are tried."""
        from tariff_rag.rag.retrieval import RetrievalEngine

        primary = _store("chapter_documents", _hits("chapter", 1))
        secondary = _store(
            "tariff_chunks",
            _hits("tariff", 2),
            _hits("variant-a", 2),
            _hits("variant-b", 2),
            _hits("broad", 3),
        )

        chunks = RetrievalEngine(fake_embedder, primary, secondary).search(_query())

        assert [c.stage for c in chunks].count("variant_0") == 2
        assert [c.stage for c in chunks].count("variant_1") == 2
        assert [c.stage for c in chunks].count("broad") == 0  # 7 >= 5 before broad
        assert len(chunks) == 7

    def test_duplicates_are_dropped(self, fake_embedder):
        from tariff_rag.rag.retrieval import RetrievalEngine

        primary = _store("chapter_documents", _hits("shared", 2))
        secondary = _store("tariff_chunks", _hits("shared", 2), [], [], [])

        chunks = RetrievalEngine(fake_embedder, primary, secondary).search(_query())

        assert [c.id for c in chunks] == ["shared-0", "shared-1"]
        assert all(c.stage == "primary" for c in chunks)

    def test_primary_k_is_used(self, fake_embedder):
        from tariff_rag.rag.retrieval import PRIMARY_K, RetrievalEngine

        primary = _store("chapter_documents", _hits("chapter", 15))
        secondary = _store("tariff_chunks")

        RetrievalEngine(fake_embedder, primary, secondary).search(_query())

        assert primary.search.call_args[0][1] == PRIMARY_K
        secondary.search.assert_not_called()


class TestFailures:
    """Tests for failing and empty stages."""

    def test_failing_stage_is_skipped(self, fake_embedder):
        """A vector store error in one stage does not abort retrieval."""
        from tariff_rag.errors import VectorStoreError
        from tariff_rag.rag.retrieval import RetrievalEngine

        primary = _store("chapter_documents", VectorStoreError("index unavailable"))
        secondary = _store("tariff_chunks", _hits("tariff", 10))

        chunks = RetrievalEngine(fake_embedder, primary, secondary).search(_query())

        assert len(chunks) == 10
        assert all(c.stage == "secondary" for c in chunks)

    def test_stale_embedding_dimension_is_skipped(self, fake_embedder, chapter_store):
        """Chunks stored at an old dimension lose the primary stage only."""
        from tariff_rag.rag.retrieval import RetrievalEngine
        from tariff_rag.stores.base import VectorRecord

        chapter_store.add([VectorRecord(id="old", content="Chapter 61", metadata={}, embedding=[1.0, 0.0])])
        secondary = _store("tariff_chunks", _hits("tariff", 10))

        chunks = RetrievalEngine(fake_embedder, chapter_store, secondary).search(_query())

        assert len(chunks) == 10
        assert all(c.stage == "secondary" for c in chunks)

    def test_all_empty_raises(self, fake_embedder):
        from tariff_rag.errors import NoRelevantContextError
        from tariff_rag.rag.retrieval import RetrievalEngine

        primary = _store("chapter_documents", [])
        secondary = _store("tariff_chunks", [], [], [], [])

        with pytest.raises(NoRelevantContextError):
            RetrievalEngine(fake_embedder, primary, secondary).search(_query())

    def test_embedding_failure_is_skipped(self, make_embedder):
        """An embedding error on the first query only loses that stage."""
        from tariff_rag.rag.retrieval import RetrievalEngine

        primary = _store("chapter_documents")
        secondary = _store("tariff_chunks", _hits("tariff", 6), [], [])

        chunks = RetrievalEngine(make_embedder(fail_on_call=1), primary, secondary).search(_query())

        primary.search.assert_not_called()
        assert len(chunks) == 6


class TestEmbeddingReuse:
    def test_same_text_embedded_once(self, fake_embedder):
        """Primary and secondary share the enhanced query vector."""
        from tariff_rag.rag.retrieval import RetrievalEngine

        primary = _store("chapter_documents", [])
        secondary = _store("tariff_chunks", [], [], [], _hits("broad", 1))

        RetrievalEngine(fake_embedder, primary, secondary).search(_query())

        embedded = [texts[0] for texts in fake_embedder.calls]
        assert embedded == ["enhanced query text", "cotton knitted", "t-shirt tee", "textile garment"]

    def test_blank_variants_are_not_searched(self, fake_embedder):
        from tariff_rag.rag.retrieval import RetrievalEngine

        primary = _store("chapter_documents", _hits("chapter", 1))
        secondary = _store("tariff_chunks", [], [])

        RetrievalEngine(fake_embedder, primary, secondary).search(_query(variants=["  "]))

        assert secondary.search.call_count == 2  # secondary + broad
