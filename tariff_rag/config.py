"""
Engine Configuration

Environment variables and tuning knobs for ingestion and classification.
Values are bound once at process start and passed into components; nothing
reads the environment after `get_settings()` has run.

Usage:
    from tariff_rag.config import get_settings

    settings = get_settings()
    print(settings.embedding_dimension)
"""

import json
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Listing pages published by the National Board of Revenue
DEFAULT_RATE_LISTING_URL = "https://customs.gov.bd/portal/services/tariff/index.jsf"
DEFAULT_CHAPTER_LISTING_URL = "https://nbr.gov.bd/regulations/tariff-schedule/eng"
DEFAULT_CHAPTER_FORM: Dict[str, str] = {"tariff_year": "2025-2026", "chapter": "all"}

# Generic query used when every narrower retrieval stage came back short
BROAD_QUERY = "HS code tariff garment clothing textile apparel Bangladesh customs"

CORPUS_CHAPTERS = "chapter_documents"
CORPUS_TARIFF = "tariff_chunks"


def _to_int(value: Optional[str], default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _to_float(value: Optional[str], default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _to_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _to_form(value: Optional[str]) -> Dict[str, str]:
    if not value:
        return dict(DEFAULT_CHAPTER_FORM)
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        return dict(DEFAULT_CHAPTER_FORM)
    if not isinstance(parsed, dict):
        return dict(DEFAULT_CHAPTER_FORM)
    return {str(k): str(v) for k, v in parsed.items()}


@dataclass(frozen=True)
class Settings:
    """Process-wide settings. Build with `Settings.from_env()` or directly in tests."""

    # Service credentials
    openai_api_key: Optional[str] = None
    pinecone_api_key: Optional[str] = None

    # Storage
    database_url: str = "sqlite:///tariff_rag.db"
    vector_backend: str = "sql"  # 'sql' or 'pinecone'
    pinecone_index_name: str = "tariff-rag"

    # Models
    embedding_model: str = "text-embedding-3-small"
    embedding_dimension: int = 1536
    generation_model: str = "gpt-4o-mini"
    generation_temperature: float = 0.1

    # Chunking
    rows_per_chunk: int = 50
    max_chunk_chars: int = 30000
    min_chunk_chars: int = 100
    embed_batch_size: int = 10
    rate_insert_batch_size: int = 100
    fallback_max_chars: int = 30000

    # Parsing
    max_failure_rate: float = 0.3
    min_extracted_chars: int = 100

    # Network
    http_timeout: int = 60
    request_interval: float = 1.0
    user_agent: str = "Mozilla/5.0 (compatible; TariffRagBot/1.0)"

    # Retry / scheduling
    retry_attempts: int = 3
    backoff_seconds: float = 2.0
    document_retries: int = 2
    check_interval_hours: int = 24
    stale_after_days: int = 7

    # Classification
    confidence_threshold: float = 0.15
    max_suggestions: int = 5
    rule_based_fallback: bool = True

    # Sources
    rate_table_listing_url: str = DEFAULT_RATE_LISTING_URL
    chapter_listing_url: str = DEFAULT_CHAPTER_LISTING_URL
    chapter_form: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_CHAPTER_FORM))

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.environ
        return cls(
            openai_api_key=env.get("OPENAI_API_KEY"),
            pinecone_api_key=env.get("PINECONE_API_KEY"),
            database_url=env.get("DATABASE_URL", "sqlite:///tariff_rag.db"),
            vector_backend=env.get("TARIFF_RAG_VECTOR_BACKEND", "sql").lower(),
            pinecone_index_name=env.get("PINECONE_INDEX_NAME", "tariff-rag"),
            embedding_model=env.get("TARIFF_RAG_EMBEDDING_MODEL", "text-embedding-3-small"),
            embedding_dimension=_to_int(env.get("TARIFF_RAG_EMBEDDING_DIMENSION"), 1536),
            generation_model=env.get("TARIFF_RAG_GENERATION_MODEL", "gpt-4o-mini"),
            rows_per_chunk=_to_int(env.get("TARIFF_RAG_ROWS_PER_CHUNK"), 50),
            max_chunk_chars=_to_int(env.get("TARIFF_RAG_MAX_CHUNK_CHARS"), 30000),
            min_chunk_chars=_to_int(env.get("TARIFF_RAG_MIN_CHUNK_CHARS"), 100),
            embed_batch_size=_to_int(env.get("TARIFF_RAG_EMBED_BATCH_SIZE"), 10),
            http_timeout=_to_int(env.get("TARIFF_RAG_HTTP_TIMEOUT"), 60),
            retry_attempts=_to_int(env.get("TARIFF_RAG_RETRY_ATTEMPTS"), 3),
            backoff_seconds=_to_float(env.get("TARIFF_RAG_BACKOFF_SECONDS"), 2.0),
            document_retries=_to_int(env.get("TARIFF_RAG_DOCUMENT_RETRIES"), 2),
            check_interval_hours=_to_int(env.get("TARIFF_RAG_CHECK_INTERVAL_HOURS"), 24),
            stale_after_days=_to_int(env.get("TARIFF_RAG_STALE_AFTER_DAYS"), 7),
            confidence_threshold=_to_float(env.get("TARIFF_RAG_CONFIDENCE_THRESHOLD"), 0.15),
            rule_based_fallback=_to_bool(env.get("TARIFF_RAG_RULE_BASED_FALLBACK"), True),
            rate_table_listing_url=env.get("TARIFF_RAG_RATE_TABLE_URL", DEFAULT_RATE_LISTING_URL),
            chapter_listing_url=env.get("TARIFF_RAG_CHAPTER_URL", DEFAULT_CHAPTER_LISTING_URL),
            chapter_form=_to_form(env.get("TARIFF_RAG_CHAPTER_FORM")),
        )

    def as_dict(self) -> Dict[str, Any]:
        """Settings with credentials masked, for logging."""
        data = dict(self.__dict__)
        for key in ("openai_api_key", "pinecone_api_key"):
            if data.get(key):
                data[key] = "***"
        return data


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
