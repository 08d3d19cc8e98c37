"""
Ingestion Scheduler

Drives the ingestion pipeline for every configured listing source.

Run discipline:
- Single flight: a lock-protected `is_running` flag; a second caller gets a
  skipped RunReport instead of a parallel scan.
- Run-level retry: up to `retry_attempts` (3) with exponential backoff
  (2s, 4s, 8s) for retryable or terminal-for-run failures.
- Document-level retry: up to `document_retries` (2) attempts, retryable
  failures only. Structural and terminal item failures are recorded and the
  run moves on to the next document.

Also provides lazy population (run a check when a corpus is empty), a
staleness health check and a periodic loop stopped via threading.Event.

Usage:
    scheduler = IngestionScheduler(sources, resolver, tracker, pipeline,
                                   version_store, chapter_store, tariff_store)
    report = scheduler.run_check()
    print(report.summary())
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from tariff_rag.errors import (
    LinkExtractionError,
    RetryableError,
    SourceUnavailableError,
    TariffRagError,
    TerminalRunError,
)
from tariff_rag.ingestion.pipeline import DocumentOutcome, IngestionPipeline
from tariff_rag.logging_utils import structured_log
from tariff_rag.stores.base import VectorStore
from tariff_rag.stores.version_store import DocumentVersionStore
from tariff_rag.watchers.base import DocumentKind, PendingDocument
from tariff_rag.watchers.change_tracker import ChangeTracker
from tariff_rag.watchers.link_resolver import SourceLinkResolver

logger = logging.getLogger(__name__)


@dataclass
class ListingSource:
    """A listing page to scan, optionally reached with a form POST."""
    name: str
    url: str
    form_data: Optional[Dict[str, str]] = None
    default_version: Optional[str] = None


@dataclass
class RunReport:
    """Outcome of one guarded ingestion check."""
    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    attempts: int = 0
    processed: List[DocumentOutcome] = field(default_factory=list)
    failed: List[DocumentOutcome] = field(default_factory=list)
    pending: List[PendingDocument] = field(default_factory=list)
    skipped: bool = False
    dry_run: bool = False
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return not self.skipped and self.error is None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "attempts": self.attempts,
            "processed": [o.as_dict() for o in self.processed],
            "failed": [o.as_dict() for o in self.failed],
            "pending": [p.as_dict() for p in self.pending],
            "skipped": self.skipped,
            "dry_run": self.dry_run,
            "error": self.error,
        }

    def summary(self) -> str:
        if self.skipped:
            return "Skipped: an ingestion check is already running"
        if self.error:
            return f"Failed after {self.attempts} attempt(s): {self.error}"
        if self.dry_run:
            return f"Dry run: {len(self.pending)} document(s) pending"
        return (
            f"Processed {len(self.processed)} document(s), "
            f"{len(self.failed)} failed, {self.attempts} attempt(s)"
        )


class IngestionScheduler:
    """Single-flight ingestion runs with retry, lazy population and health checks."""

    def __init__(
        self,
        sources: Sequence[ListingSource],
        resolver: SourceLinkResolver,
        tracker: ChangeTracker,
        pipeline: IngestionPipeline,
        version_store: DocumentVersionStore,
        chapter_store: VectorStore,
        tariff_store: VectorStore,
        retry_attempts: int = 3,
        backoff_seconds: float = 2.0,
        document_retries: int = 2,
        stale_after_days: int = 7,
        check_interval_hours: float = 24,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.sources = list(sources)
        self.resolver = resolver
        self.tracker = tracker
        self.pipeline = pipeline
        self.version_store = version_store
        self.chapter_store = chapter_store
        self.tariff_store = tariff_store
        self.retry_attempts = max(1, retry_attempts)
        self.backoff_seconds = backoff_seconds
        self.document_retries = max(1, document_retries)
        self.stale_after_days = stale_after_days
        self.check_interval_hours = check_interval_hours
        self.sleep = sleep
        self.clock = clock

        self._lock = threading.Lock()
        self.is_running = False
        self.last_report: Optional[RunReport] = None

    # ------------------------------------------------------------------
    # Guarded run
    # ------------------------------------------------------------------

    def backoff_delay(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based): 2, 4, 8, ..."""
        return self.backoff_seconds * (2 ** (attempt - 1))

    def run_check(self, dry_run: bool = False) -> RunReport:
        with self._lock:
            if self.is_running:
                logger.info("Ingestion check already running, skipping")
                return RunReport(skipped=True, finished_at=self.clock())
            self.is_running = True

        try:
            report = RunReport(started_at=self.clock(), dry_run=dry_run)
            for attempt in range(1, self.retry_attempts + 1):
                report.attempts = attempt
                report.failed = []
                report.pending = []
                logger.info(f"Ingestion check attempt {attempt}/{self.retry_attempts}")
                try:
                    self.check_once(report, dry_run=dry_run)
                    report.error = None
                    break
                except (RetryableError, TerminalRunError) as e:
                    report.error = str(e)
                    logger.error(f"Ingestion check attempt {attempt} failed: {e}")
                    if attempt < self.retry_attempts:
                        delay = self.backoff_delay(attempt)
                        logger.info(f"Waiting {delay:g}s before retry...")
                        self.sleep(delay)

            report.finished_at = self.clock()
            self.last_report = report
            structured_log(
                "INFO" if report.success else "ERROR", "ingestion_run_finished",
                attempts=report.attempts, processed=len(report.processed),
                failed=len(report.failed), error=report.error, dry_run=dry_run,
            )
            return report
        finally:
            with self._lock:
                self.is_running = False

    def check_once(self, report: Optional[RunReport] = None, dry_run: bool = False) -> RunReport:
        """
        One pass over every listing source.

        Raises:
            SourceUnavailableError: a listing could not be read at all
        """
        report = report or RunReport(dry_run=dry_run)
        for source in self.sources:
            logger.info(f"--- Checking {source.name}: {source.url} ---")
            try:
                links = self.resolver.resolve(
                    source.url, form_data=source.form_data, default_version=source.default_version
                )
                pending = self.tracker.filter_unseen(links)
            except LinkExtractionError as e:
                raise SourceUnavailableError(f"Listing {source.name} unavailable: {e}") from e

            logger.info(f"{len(pending)} new document(s) from {source.name}")
            if dry_run:
                report.pending.extend(pending)
                continue

            for document in pending:
                outcome = self.process_document(document)
                if outcome.success:
                    report.processed.append(outcome)
                else:
                    report.failed.append(outcome)
        return report

    def process_document(self, document: PendingDocument) -> DocumentOutcome:
        """Process one document, retrying retryable failures only."""
        attempt = 0
        while True:
            attempt += 1
            try:
                outcome = self.pipeline.process(document)
                outcome.attempts = attempt
                return outcome
            except TariffRagError as e:
                retryable = isinstance(e, RetryableError) or isinstance(e.__cause__, RetryableError)
                if retryable and attempt < self.document_retries:
                    logger.warning(f"Retrying {document.label} after {type(e).__name__}: {e}")
                    self.sleep(self.backoff_seconds)
                    continue
                logger.error(
                    f"Ingestion of {document.label} failed ({type(e).__name__}): {e} "
                    f"[kind={document.kind.value}, version={document.version}, url={document.url}]"
                )
                return DocumentOutcome.failed(document, e, attempts=attempt)
            except Exception as e:
                logger.exception(f"Unexpected error ingesting {document.label}: {e}")
                return DocumentOutcome.failed(document, e, attempts=attempt)

    # ------------------------------------------------------------------
    # Lazy population and health
    # ------------------------------------------------------------------

    def ensure_populated(self) -> Optional[RunReport]:
        """
        Run a check when the whole index is empty. Returns None when nothing was needed.

        An empty index after a recent check (within `check_interval_hours`) is
        left for the next scheduled run instead of rescanning on every query.
        """
        if not (self.chapter_store.is_empty() and self.tariff_store.is_empty()):
            return None
        if self._checked_recently():
            logger.info("Index is empty but a check ran recently, waiting for the next scheduled run")
            return None
        logger.info("Index is empty, running ingestion check")
        return self.run_check()

    def _checked_recently(self) -> bool:
        report = self.last_report
        if report is None or report.finished_at is None:
            return False
        return self.clock() - report.finished_at < timedelta(hours=self.check_interval_hours)

    def _age(self, kind: DocumentKind) -> Optional[timedelta]:
        record = self.version_store.latest(kind.value)
        if record is None or record.processed_at is None:
            return None
        return self.clock() - record.processed_at

    def is_stale(self, kind: DocumentKind) -> bool:
        age = self._age(kind)
        return age is None or age > timedelta(days=self.stale_after_days)

    def health_check(self) -> Dict[str, Any]:
        kinds = {}
        for kind in (DocumentKind.RATE_TABLE, DocumentKind.LEGAL_CHAPTER):
            record = self.version_store.latest(kind.value)
            age = self._age(kind)
            stale = self.is_stale(kind)
            kinds[kind.value] = {
                "version": record.version if record else None,
                "last_update": record.processed_at.isoformat() if record and record.processed_at else None,
                "days_since_update": age.days if age is not None else None,
                "stale": stale,
            }
            if stale:
                if record is None:
                    logger.warning(f"No {kind.value} version has been ingested")
                else:
                    logger.warning(f"No {kind.value} update in {age.days} days")

        status = {
            "healthy": not any(k["stale"] for k in kinds.values()),
            "is_running": self.is_running,
            "kinds": kinds,
            "chunks": {
                self.chapter_store.corpus: self.chapter_store.count(),
                self.tariff_store.corpus: self.tariff_store.count(),
            },
            "last_run": self.last_report.summary() if self.last_report else None,
        }
        structured_log("INFO", "health_check", healthy=status["healthy"], kinds=kinds)
        return status

    # ------------------------------------------------------------------
    # Periodic loop
    # ------------------------------------------------------------------

    def run_forever(self, stop_event: threading.Event) -> None:
        interval = self.check_interval_hours * 3600
        logger.info(f"Starting scheduler loop (interval: {self.check_interval_hours}h)")
        while not stop_event.is_set():
            try:
                report = self.run_check()
                logger.info(report.summary())
                self.health_check()
            except Exception as e:
                logger.exception(f"Error in scheduler loop: {e}")
            stop_event.wait(interval)
        logger.info("Scheduler shutdown complete")
