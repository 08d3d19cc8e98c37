"""
Component wiring.

Builds every collaborator once from Settings and hands them to the
components through their constructors. Nothing below this module reads
configuration on its own.

Usage:
    from tariff_rag.config import get_settings
    from tariff_rag.factory import build_components

    components = build_components(get_settings())
    result = components.classifier.classify(product)
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from tariff_rag.config import CORPUS_CHAPTERS, CORPUS_TARIFF, Settings
from tariff_rag.db import create_db_engine, init_db, make_session_factory
from tariff_rag.ingestion.fetcher import DocumentFetcher
from tariff_rag.ingestion.index_writer import IndexWriter
from tariff_rag.ingestion.model_fallback import ModelAssistedTableExtractor
from tariff_rag.ingestion.pipeline import IngestionPipeline
from tariff_rag.ingestion.tariff_parser import TariffTableParser
from tariff_rag.llm.embeddings import OpenAIEmbedder
from tariff_rag.llm.generator import OpenAIGenerator
from tariff_rag.rag.classifier import HSCodeClassifier
from tariff_rag.rag.query_builder import QueryExpander
from tariff_rag.rag.ranker import ClassificationRanker
from tariff_rag.rag.retrieval import RetrievalEngine
from tariff_rag.rag.rule_based import RuleBasedClassifier
from tariff_rag.stores.base import VectorStore
from tariff_rag.stores.pinecone_vector import PineconeVectorStore
from tariff_rag.stores.rate_store import RateStore
from tariff_rag.stores.sql_vector import SQLVectorStore
from tariff_rag.stores.version_store import DocumentVersionStore
from tariff_rag.watchers.base import DocumentKind
from tariff_rag.watchers.change_tracker import ChangeTracker
from tariff_rag.watchers.link_resolver import SourceLinkResolver
from tariff_rag.watchers.scheduler import IngestionScheduler, ListingSource

logger = logging.getLogger(__name__)


@dataclass
class Components:
    settings: Settings
    session_factory: object
    chapter_store: VectorStore
    tariff_store: VectorStore
    rate_store: RateStore
    version_store: DocumentVersionStore
    embedder: object
    generator: object
    fetcher: DocumentFetcher
    pipeline: IngestionPipeline
    scheduler: IngestionScheduler
    classifier: HSCodeClassifier


def listing_sources(settings: Settings) -> List[ListingSource]:
    """The two official listings: whole-schedule rate tables and per-chapter legal text."""
    return [
        ListingSource(
            name="rate_tables",
            url=settings.rate_table_listing_url,
        ),
        ListingSource(
            name="legal_chapters",
            url=settings.chapter_listing_url,
            form_data=settings.chapter_form or None,
            default_version=(settings.chapter_form or {}).get("tariff_year"),
        ),
    ]


def build_vector_stores(settings: Settings, session_factory):
    if settings.vector_backend == "pinecone":
        if not settings.pinecone_api_key:
            raise ValueError("PINECONE_API_KEY is required when TARIFF_RAG_VECTOR_BACKEND=pinecone")
        chapter_store = PineconeVectorStore.from_api_key(
            settings.pinecone_api_key, settings.pinecone_index_name, CORPUS_CHAPTERS
        )
        tariff_store = PineconeVectorStore.from_api_key(
            settings.pinecone_api_key, settings.pinecone_index_name, CORPUS_TARIFF
        )
    elif settings.vector_backend == "sql":
        chapter_store = SQLVectorStore(session_factory, CORPUS_CHAPTERS)
        tariff_store = SQLVectorStore(session_factory, CORPUS_TARIFF)
    else:
        raise ValueError(f"Unknown vector backend: {settings.vector_backend!r}")
    return chapter_store, tariff_store


def build_components(
    settings: Settings,
    embedder=None,
    generator=None,
    fetcher: Optional[DocumentFetcher] = None,
) -> Components:
    """Wire the engine. Service clients can be injected (tests, alternate providers)."""
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    session_factory = make_session_factory(engine)

    chapter_store, tariff_store = build_vector_stores(settings, session_factory)
    rate_store = RateStore(session_factory, insert_batch_size=settings.rate_insert_batch_size)
    version_store = DocumentVersionStore(session_factory)

    embedder = embedder or OpenAIEmbedder(
        api_key=settings.openai_api_key,
        model=settings.embedding_model,
        dimensions=settings.embedding_dimension,
        timeout=settings.http_timeout,
    )
    generator = generator or OpenAIGenerator(
        api_key=settings.openai_api_key,
        model=settings.generation_model,
        temperature=settings.generation_temperature,
        timeout=settings.http_timeout,
    )
    fetcher = fetcher or DocumentFetcher(
        timeout=settings.http_timeout,
        user_agent=settings.user_agent,
        min_interval=settings.request_interval,
    )

    writer = IndexWriter(
        embedder,
        {DocumentKind.LEGAL_CHAPTER: chapter_store, DocumentKind.RATE_TABLE: tariff_store},
        rate_store,
        version_store,
        embed_batch_size=settings.embed_batch_size,
    )
    pipeline = IngestionPipeline(
        writer,
        parser=TariffTableParser(max_failure_rate=settings.max_failure_rate),
        fallback=ModelAssistedTableExtractor(generator, max_chars=settings.fallback_max_chars),
        rows_per_chunk=settings.rows_per_chunk,
        max_chunk_chars=settings.max_chunk_chars,
        min_chunk_chars=settings.min_chunk_chars,
        min_extracted_chars=settings.min_extracted_chars,
    )
    scheduler = IngestionScheduler(
        listing_sources(settings),
        SourceLinkResolver(fetcher),
        ChangeTracker(version_store, fetcher),
        pipeline,
        version_store,
        chapter_store,
        tariff_store,
        retry_attempts=settings.retry_attempts,
        backoff_seconds=settings.backoff_seconds,
        document_retries=settings.document_retries,
        stale_after_days=settings.stale_after_days,
        check_interval_hours=settings.check_interval_hours,
    )
    classifier = HSCodeClassifier(
        QueryExpander(generator),
        RetrievalEngine(embedder, chapter_store, tariff_store),
        ClassificationRanker(
            generator,
            rate_store,
            threshold=settings.confidence_threshold,
            max_suggestions=settings.max_suggestions,
        ),
        RuleBasedClassifier(rate_store),
        scheduler=scheduler,
        rule_based_fallback=settings.rule_based_fallback,
    )

    logger.info(
        f"Components ready (vector backend: {settings.vector_backend}, "
        f"database: {settings.database_url.split('@')[-1]})"
    )
    return Components(
        settings=settings,
        session_factory=session_factory,
        chapter_store=chapter_store,
        tariff_store=tariff_store,
        rate_store=rate_store,
        version_store=version_store,
        embedder=embedder,
        generator=generator,
        fetcher=fetcher,
        pipeline=pipeline,
        scheduler=scheduler,
        classifier=classifier,
    )
