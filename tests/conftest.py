"""
Pytest fixtures for tariff_rag tests.

Provides:
- Database fixtures with in-memory SQLite
- Store fixtures (SQL vector stores, rate store, version store)
- Fake external services (embedding, generation) with deterministic output
- Sample rate-table text and pending documents
"""

import hashlib
import json
import math
import os
import re
import sys

import pytest

# Point settings at an in-memory database before importing the package
os.environ["DATABASE_URL"] = "sqlite://"

# Add the project directory to the Python path
project_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_dir not in sys.path:
    sys.path.insert(0, project_dir)


# ============================================================================
# Fake External Services
# ============================================================================

class FakeEmbedder:
    """
    Hashed bag-of-words embedder.

    Texts sharing words get similar vectors, so nearest-neighbour search
    behaves sensibly without a network call.
    """

    def __init__(self, dimensions: int = 64, fail_on_call: int = None):
        self.dimensions = dimensions
        self.fail_on_call = fail_on_call
        self.calls = []

    def _vector(self, text):
        vector = [0.0] * self.dimensions
        for token in re.findall(r"[a-z0-9]+", text.lower()):
            bucket = int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16) % self.dimensions
            vector[bucket] += 1.0
        norm = math.sqrt(sum(v * v for v in vector)) or 1.0
        return [v / norm for v in vector]

    def embed_documents(self, texts):
        from tariff_rag.errors import EmbeddingError

        self.calls.append(list(texts))
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise EmbeddingError("Embedding service timed out")
        return [self._vector(text) for text in texts]

    def embed_query(self, text):
        return self.embed_documents([text])[0]


class FakeGenerator:
    """Returns scripted responses in order and records every prompt."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.prompts = []

    def generate(self, prompt, system=None):
        self.prompts.append(prompt)
        if not self.responses:
            raise AssertionError("FakeGenerator ran out of scripted responses")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, (dict, list)):
            return json.dumps(response)
        return response


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def fake_generator():
    return FakeGenerator()


@pytest.fixture
def make_embedder():
    """Factory for embedders with a scripted failure."""
    return FakeEmbedder


@pytest.fixture
def make_generator():
    """Factory for generators with scripted responses."""
    return FakeGenerator


# ============================================================================
# Database and Store Fixtures
# ============================================================================

@pytest.fixture
def session_factory():
    """Fresh in-memory database per test."""
    from tariff_rag.db import create_db_engine, init_db, make_session_factory

    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def chapter_store(session_factory):
    from tariff_rag.config import CORPUS_CHAPTERS
    from tariff_rag.stores.sql_vector import SQLVectorStore

    return SQLVectorStore(session_factory, CORPUS_CHAPTERS)


@pytest.fixture
def tariff_store(session_factory):
    from tariff_rag.config import CORPUS_TARIFF
    from tariff_rag.stores.sql_vector import SQLVectorStore

    return SQLVectorStore(session_factory, CORPUS_TARIFF)


@pytest.fixture
def rate_store(session_factory):
    from tariff_rag.stores.rate_store import RateStore

    return RateStore(session_factory)


@pytest.fixture
def version_store(session_factory):
    from tariff_rag.stores.version_store import DocumentVersionStore

    return DocumentVersionStore(session_factory)


@pytest.fixture
def index_writer(fake_embedder, chapter_store, tariff_store, rate_store, version_store):
    from tariff_rag.ingestion.index_writer import IndexWriter

    return IndexWriter(
        fake_embedder,
        {"legal_chapter": chapter_store, "rate_table": tariff_store},
        rate_store,
        version_store,
    )


# ============================================================================
# Sample Data Fixtures
# ============================================================================

SAMPLE_HEADER = "HS CODE  DESCRIPTION  CD  SD  VAT  AIT  RD  AT  TTI"

SAMPLE_ROWS = [
    "61091000 T-shirts, singlets and other vests, knitted, of cotton 25 20 15 5 3 5 89.32",
    "61099000 T-shirts, singlets and other vests, of other textile materials 25 20 15 5 3 5 89.32",
    "62052000 Men's or boys' shirts of cotton 25 20 15 5 3 5 89.32",
    "62034200 Men's or boys' trousers of cotton 25 20 15 5 3 5 89.32",
    "61044400 Women's or girls' dresses, knitted, of artificial fibres 25 20 15 5 3 5 89.32",
]


@pytest.fixture
def sample_rate_text():
    """Header plus five well-formed rate rows."""
    return "\n".join(["Customs Tariff 2025-2026", SAMPLE_HEADER] + SAMPLE_ROWS)


@pytest.fixture
def make_pending():
    """Factory for PendingDocument instances."""
    from tariff_rag.watchers.base import DocumentKind, PendingDocument

    def _make(kind=DocumentKind.RATE_TABLE, version="2025-2026", scope="", content=b"%PDF-1.4 test"):
        return PendingDocument(
            kind=kind,
            version=version,
            url=f"https://customs.gov.bd/files/{kind.value}_{scope or 'all'}_{version}.pdf",
            content_hash=hashlib.sha256(content + version.encode() + scope.encode()).hexdigest(),
            content=content,
            title=f"{kind.value} {version}",
            scope=scope,
        )

    return _make
