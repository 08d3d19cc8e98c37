"""
Retrieval-augmented classification.

Components:
- QueryExpander: product description -> enhanced query with variants
- RetrievalEngine: cascading multi-corpus vector search
- ClassificationRanker: generator suggestions, filtered and enriched with stored rates
- RuleBasedClassifier: deterministic fallback lookup
- HSCodeClassifier: facade tying the above together
"""

from tariff_rag.rag.classifier import ClassificationResult, HSCodeClassifier
from tariff_rag.rag.query_builder import ExpandedQuery, MaterialShare, ProductDescription, QueryExpander
from tariff_rag.rag.ranker import ClassificationCandidate, ClassificationRanker
from tariff_rag.rag.retrieval import RetrievalEngine, ScoredChunk
from tariff_rag.rag.rule_based import RuleBasedClassifier

__all__ = [
    "ClassificationCandidate",
    "ClassificationRanker",
    "ClassificationResult",
    "ExpandedQuery",
    "HSCodeClassifier",
    "MaterialShare",
    "ProductDescription",
    "QueryExpander",
    "RetrievalEngine",
    "RuleBasedClassifier",
    "ScoredChunk",
]
