"""
HS Code Classifier

Query facade over the retrieval side:
1. Make sure the index has been populated (lazy ingestion via the scheduler)
2. Expand the product into an enhanced query with variants
3. Cascading retrieval
4. Generator ranking with mandatory post-processing
5. Rule-based fallback when allowed

Callers get a ClassificationResult with candidates, or one of
InsufficientDataError / ClassificationUnavailableError. An empty success is
never returned.

Usage:
    classifier = HSCodeClassifier(expander, retrieval, ranker, RuleBasedClassifier(rate_store))
    result = classifier.classify(product)
    for candidate in result.candidates:
        print(candidate.dotted_code, candidate.confidence)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from tariff_rag.errors import (
    ClassificationUnavailableError,
    GenerationParseError,
    GenerationServiceError,
    InsufficientDataError,
    NoRelevantContextError,
    TariffRagError,
)
from tariff_rag.logging_utils import structured_log
from tariff_rag.rag.query_builder import ProductDescription, QueryExpander
from tariff_rag.rag.ranker import ClassificationCandidate, ClassificationRanker
from tariff_rag.rag.retrieval import RetrievalEngine
from tariff_rag.rag.rule_based import RuleBasedClassifier

logger = logging.getLogger(__name__)


@dataclass
class ClassificationResult:
    success: bool
    source: str  # 'rag' or 'rule_based'
    candidates: List[ClassificationCandidate] = field(default_factory=list)
    context_count: int = 0
    fallback_reason: Optional[str] = None
    error: Optional[str] = None

    @property
    def top(self) -> Optional[ClassificationCandidate]:
        return self.candidates[0] if self.candidates else None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "source": self.source,
            "candidates": [c.as_dict() for c in self.candidates],
            "context_count": self.context_count,
            "fallback_reason": self.fallback_reason,
            "error": self.error,
        }


class HSCodeClassifier:
    """Expand, retrieve, rank; fall back to rules where allowed."""

    def __init__(
        self,
        expander: QueryExpander,
        retrieval: RetrievalEngine,
        ranker: ClassificationRanker,
        rule_based: Optional[RuleBasedClassifier] = None,
        scheduler=None,
        rule_based_fallback: bool = True,
    ):
        self.expander = expander
        self.retrieval = retrieval
        self.ranker = ranker
        self.rule_based = rule_based
        self.scheduler = scheduler
        self.rule_based_fallback = rule_based_fallback

    def _ensure_populated(self) -> None:
        if self.scheduler is None:
            return
        try:
            self.scheduler.ensure_populated()
        except TariffRagError as e:
            logger.warning(f"Lazy population failed, searching the existing index: {e}")

    def _fallback(self, product: ProductDescription, reason: Exception, context_count: int,
                  caller_error: type) -> ClassificationResult:
        if not self.rule_based_fallback or self.rule_based is None:
            raise caller_error(str(reason)) from reason

        logger.warning(f"Using rule-based classification ({type(reason).__name__}: {reason})")
        candidates = self.rule_based.classify(product)
        structured_log(
            "INFO", "classification_fallback",
            reason=type(reason).__name__, code=candidates[0].code if candidates else None,
        )
        return ClassificationResult(
            success=True,
            source="rule_based",
            candidates=candidates,
            context_count=context_count,
            fallback_reason=str(reason),
        )

    def classify(self, product: ProductDescription, base_query: Optional[str] = None) -> ClassificationResult:
        """
        Raises:
            InsufficientDataError: no usable context (and fallback disabled)
            ClassificationUnavailableError: generation failed (and fallback disabled)
        """
        logger.info(f"Classifying: {product.garment_type or product.description[:60]}")
        self._ensure_populated()

        query = self.expander.expand(product, base_query=base_query)

        try:
            chunks = self.retrieval.search(query)
        except NoRelevantContextError as e:
            return self._fallback(product, e, 0, InsufficientDataError)

        try:
            candidates = self.ranker.rank(chunks, product)
        except (GenerationParseError, GenerationServiceError) as e:
            return self._fallback(product, e, len(chunks), ClassificationUnavailableError)

        if not candidates:
            reason = NoRelevantContextError(
                f"No suggestion reached confidence {self.ranker.threshold} from {len(chunks)} chunks"
            )
            return self._fallback(product, reason, len(chunks), InsufficientDataError)

        structured_log(
            "INFO", "classification_complete",
            top_code=candidates[0].code, candidates=len(candidates), context=len(chunks),
        )
        return ClassificationResult(
            success=True,
            source="rag",
            candidates=candidates,
            context_count=len(chunks),
        )
