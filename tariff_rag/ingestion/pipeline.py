"""
Ingestion Pipeline

Per-document glue: extract → parse/clean → chunk → commit.

Rate tables:
    extract (word separator " ") → TariffTableParser (model fallback on
    structural failure) → chunk_tariff_rows → IndexWriter.commit(rows=...)

Legal chapters:
    extract (separator "") → clean_chapter_text → chunk_chapter_text
    → IndexWriter.commit()

Errors propagate to the caller (the scheduler decides what to retry).
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from tariff_rag.errors import ExtractionExhaustedError, TerminalItemError
from tariff_rag.ingestion.chunker import chunk_chapter_text, chunk_tariff_rows
from tariff_rag.ingestion.index_writer import IndexWriter, VersionInfo
from tariff_rag.ingestion.tariff_parser import TariffTableParser
from tariff_rag.ingestion.text_extractor import TextExtractor, clean_chapter_text, default_strategies
from tariff_rag.logging_utils import structured_log
from tariff_rag.watchers.base import DocumentKind, PendingDocument

logger = logging.getLogger(__name__)


@dataclass
class DocumentOutcome:
    """Result of ingesting one pending document."""
    success: bool
    label: str
    kind: str
    version: str
    scope: str = ""
    url: Optional[str] = None
    parse_method: Optional[str] = None
    row_count: int = 0
    chunk_count: int = 0
    rate_count: int = 0
    attempts: int = 1
    error: Optional[str] = None
    error_type: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "label": self.label,
            "kind": self.kind,
            "version": self.version,
            "scope": self.scope,
            "url": self.url,
            "parse_method": self.parse_method,
            "row_count": self.row_count,
            "chunk_count": self.chunk_count,
            "rate_count": self.rate_count,
            "attempts": self.attempts,
            "error": self.error,
            "error_type": self.error_type,
        }

    @classmethod
    def failed(cls, pending: PendingDocument, error: Exception, attempts: int = 1) -> "DocumentOutcome":
        return cls(
            success=False,
            label=pending.label,
            kind=pending.kind.value,
            version=pending.version,
            scope=pending.scope,
            url=pending.url,
            attempts=attempts,
            error=str(error),
            error_type=type(error).__name__,
        )


class IngestionPipeline:
    """
    Usage:
        pipeline = IngestionPipeline(writer, fallback=ModelAssistedTableExtractor(generator))
        outcome = pipeline.process(pending)
    """

    def __init__(
        self,
        writer: IndexWriter,
        parser: Optional[TariffTableParser] = None,
        fallback=None,
        rows_per_chunk: int = 50,
        max_chunk_chars: int = 30000,
        min_chunk_chars: int = 100,
        min_extracted_chars: int = 100,
    ):
        self.writer = writer
        self.parser = parser or TariffTableParser()
        self.fallback = fallback
        self.rows_per_chunk = rows_per_chunk
        self.max_chunk_chars = max_chunk_chars
        self.min_chunk_chars = min_chunk_chars
        self.extractors = {
            DocumentKind.RATE_TABLE: TextExtractor(default_strategies(" "), min_length=min_extracted_chars),
            DocumentKind.LEGAL_CHAPTER: TextExtractor(default_strategies(""), min_length=min_extracted_chars),
        }

    def process(self, pending: PendingDocument) -> DocumentOutcome:
        """Extract text from the downloaded bytes and ingest it."""
        extractor = self.extractors.get(pending.kind)
        if extractor is None:
            raise TerminalItemError(f"Document kind {pending.kind.value} is not ingestable")

        structured_log("INFO", "document_extracting", document=pending.label, url=pending.url)
        text = extractor.extract(pending.content)
        return self.process_text(pending, text)

    def process_text(self, pending: PendingDocument, text: str) -> DocumentOutcome:
        """Ingest already-extracted text."""
        info = VersionInfo.from_pending(pending)
        outcome = DocumentOutcome(
            success=False,
            label=pending.label,
            kind=pending.kind.value,
            version=pending.version,
            scope=pending.scope,
            url=pending.url,
        )

        if pending.kind == DocumentKind.RATE_TABLE:
            report = self.parser.parse_with_fallback(text, fallback=self.fallback)
            chunks = chunk_tariff_rows(report.rows, batch_size=self.rows_per_chunk)
            outcome.parse_method = report.method
            outcome.row_count = len(report.rows)
            structured_log("INFO", "document_parsed", document=pending.label, **report.as_dict())
            commit = self.writer.commit(chunks, info, rows=report.rows)
        elif pending.kind == DocumentKind.LEGAL_CHAPTER:
            cleaned = clean_chapter_text(text)
            chunks = chunk_chapter_text(cleaned, max_chars=self.max_chunk_chars, min_chars=self.min_chunk_chars)
            if not chunks:
                raise ExtractionExhaustedError(f"No chapter text left after cleaning {pending.label}")
            structured_log(
                "INFO", "chapter_chunked",
                document=pending.label, chars=len(cleaned), chunks=len(chunks),
            )
            commit = self.writer.commit(chunks, info)
        else:
            raise TerminalItemError(f"Document kind {pending.kind.value} is not ingestable")

        outcome.success = True
        outcome.chunk_count = commit.chunks_written
        outcome.rate_count = commit.rates_written
        structured_log("INFO", "document_ingested", **outcome.as_dict())
        return outcome
