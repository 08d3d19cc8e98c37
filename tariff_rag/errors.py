"""
Error taxonomy for ingestion and classification.

Four families decide how callers react:
- RetryableError: transient network/service trouble, retried with backoff
- StructuralError: the document layout defeated the heuristic parser, a
  secondary strategy (model-assisted extraction) is tried before failing
- TerminalItemError: one document/version or one query fails, the run goes on
- TerminalRunError: the whole ingestion run fails and waits for the next schedule

Classification callers only ever see InsufficientDataError or
ClassificationUnavailableError, never a silent empty success.
"""


class TariffRagError(Exception):
    """Base class for all engine errors."""
    pass


# ---------------------------------------------------------------------------
# Families
# ---------------------------------------------------------------------------

class RetryableError(TariffRagError):
    """Transient failure; safe to retry with backoff."""
    pass


class StructuralError(TariffRagError):
    """Document structure did not match the heuristic parser."""
    pass


class TerminalItemError(TariffRagError):
    """A single document version or query failed for good."""
    pass


class TerminalRunError(TariffRagError):
    """The whole ingestion run failed."""
    pass


# ---------------------------------------------------------------------------
# Retryable
# ---------------------------------------------------------------------------

class LinkExtractionError(RetryableError):
    """Raised when a listing page is unreachable or holds no document links."""
    pass


class FetchError(RetryableError):
    """Raised when a download or page fetch fails or times out."""
    pass


class EmbeddingError(RetryableError):
    """Raised when the embedding service fails or times out."""
    pass


class VectorStoreError(RetryableError):
    """Raised when the vector index RPC fails."""
    pass


class GenerationServiceError(RetryableError):
    """Raised when the text generation service fails or times out."""
    pass


# ---------------------------------------------------------------------------
# Structural
# ---------------------------------------------------------------------------

class HeaderNotFoundError(StructuralError):
    """Raised when no rate-table header line exists in the document."""
    pass


class StructuralDriftError(StructuralError):
    """Raised when the heuristic row failure rate exceeds the threshold."""

    def __init__(self, message: str, failed_rows: int = 0, total_rows: int = 0):
        super().__init__(message)
        self.failed_rows = failed_rows
        self.total_rows = total_rows

    @property
    def failure_rate(self) -> float:
        if not self.total_rows:
            return 1.0
        return self.failed_rows / self.total_rows


# ---------------------------------------------------------------------------
# Terminal per item
# ---------------------------------------------------------------------------

class ExtractionExhaustedError(TerminalItemError):
    """Raised when every text extraction strategy failed for a document."""
    pass


class NoValidTariffDataError(TerminalItemError):
    """Raised when neither the heuristic parser nor the model produced valid rows."""
    pass


class GenerationParseError(TerminalItemError):
    """Raised when generated output does not decode into the expected JSON shape."""
    pass


class IndexCommitError(TerminalItemError):
    """Raised when a version commit failed and was rolled back."""
    pass


class NoRelevantContextError(TerminalItemError):
    """Raised when every retrieval stage returned zero results."""
    pass


# ---------------------------------------------------------------------------
# Terminal for run
# ---------------------------------------------------------------------------

class SourceUnavailableError(TerminalRunError):
    """Raised when a source listing cannot be reached after the fetch itself retried."""
    pass


# ---------------------------------------------------------------------------
# Caller facing
# ---------------------------------------------------------------------------

class ClassificationError(TariffRagError):
    """Base for errors surfaced to classification callers."""
    pass


class InsufficientDataError(ClassificationError):
    """No usable context was found for the product."""
    pass


class ClassificationUnavailableError(ClassificationError):
    """The classification service could not produce an answer."""
    pass
