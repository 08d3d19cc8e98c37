"""
Classification Ranker

Asks the generation service for HS code suggestions grounded in the
retrieved context, then post-processes them independently of how well the
generator followed instructions:

1. Strict JSON decode (GenerationParseError on any mismatch)
2. Normalize codes to 8 digits, drop codes that do not normalize
3. Keep confidence >= threshold (0.15), sort descending
4. Deduplicate by code, keeping the highest confidence
5. Attach authoritative rates from the rate store (zeros when missing)
6. Attach provenance: first context chunk mentioning the code, else the top chunk

Generated numeric rates are never used.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from tariff_rag.errors import GenerationParseError
from tariff_rag.ingestion.tariff_parser import RATE_FIELDS, normalize_hs_code
from tariff_rag.llm.schemas import SuggestionPayload, decode_json_payload
from tariff_rag.rag.query_builder import ProductDescription
from tariff_rag.rag.retrieval import ScoredChunk
from tariff_rag.stores.rate_store import RateStore

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD = 0.15
MAX_MIN_SUGGESTIONS = 5
CONTEXT_SEPARATOR = "\n\n---\n\n"

SYSTEM_PROMPT = "You are an expert HS code classification specialist for Bangladesh Customs. Respond with JSON only."

RANKING_PROMPT = """Context from Tariff Database ({context_count} context rows provided):
{context}

Product Information:
- Garment Type: {garment_type}
- Fabric Type: {fabric_type}
- Materials: {materials}
- Gender: {gender}
- Description: {description}

Instructions:
1. Analyze the provided tariff context to find relevant HS codes
2. Consider the product specifications and material composition
3. Provide AT LEAST {min_suggestions} HS code suggestions with different codes
4. Include a confidence (0.00-1.00) and a short rationale for each
5. Only use codes that appear in or follow from the context
6. Sort suggestions by confidence, highest first

Response format (JSON only):
{{
  "success": true,
  "suggestions": [
    {{
      "code": "6109.10.00",
      "description": "string",
      "confidence": 0.9,
      "rationale": ["string"]
    }}
  ]
}}"""


def zero_rates() -> Dict[str, float]:
    return {name: 0.0 for name in RATE_FIELDS}


def dotted(code: str) -> str:
    """61091000 -> 6109.10.00"""
    return f"{code[:4]}.{code[4:6]}.{code[6:]}"


@dataclass
class ClassificationCandidate:
    """One ranked HS code with authoritative rates and where it came from."""
    code: str
    description: str
    confidence: float
    rationale: List[str] = field(default_factory=list)
    tariff_rates: Dict[str, float] = field(default_factory=zero_rates)
    provenance: Dict[str, Any] = field(default_factory=dict)
    rates_found: bool = False

    @property
    def dotted_code(self) -> str:
        return dotted(self.code)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "dotted_code": self.dotted_code,
            "description": self.description,
            "confidence": round(self.confidence, 4),
            "rationale": self.rationale,
            "tariff_rates": self.tariff_rates,
            "rates_found": self.rates_found,
            "provenance": self.provenance,
        }


def chunk_provenance(chunk: Optional[ScoredChunk]) -> Dict[str, Any]:
    if chunk is None:
        return {}
    metadata = chunk.metadata or {}
    if metadata.get("start_hs_code"):
        locator = f"rows {metadata.get('start_hs_code')}-{metadata.get('end_hs_code')}"
    elif metadata.get("chapter"):
        locator = f"chapter {metadata.get('chapter')} part {metadata.get('ordinal', 0)}"
    else:
        locator = f"chunk {metadata.get('ordinal', 0)}"
    return {
        "chunk_id": chunk.id,
        "source_kind": metadata.get("document_kind"),
        "version": metadata.get("version"),
        "locator": locator,
        "corpus": chunk.corpus,
    }


def find_source_chunk(code: str, chunks: Sequence[ScoredChunk]) -> Optional[ScoredChunk]:
    """First chunk whose content mentions the code in plain or dotted form."""
    forms = (code, dotted(code))
    for chunk in chunks:
        if code in (chunk.metadata or {}).get("hs_codes", []):
            return chunk
        if any(form in chunk.content for form in forms):
            return chunk
    return chunks[0] if chunks else None


def enrich_with_rates(candidate: ClassificationCandidate, rate_store: Optional[RateStore]) -> ClassificationCandidate:
    """Attach stored rates; missing codes keep explicit zeros."""
    if rate_store is None:
        return candidate
    row = rate_store.get_rates(candidate.code)
    if row is not None:
        candidate.tariff_rates = row.rates()
        candidate.rates_found = True
        if not candidate.description:
            candidate.description = row.description
    return candidate


class ClassificationRanker:
    """
    Usage:
        ranker = ClassificationRanker(generator, rate_store)
        candidates = ranker.rank(chunks, product)
    """

    def __init__(
        self,
        generator,
        rate_store: Optional[RateStore] = None,
        threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        max_suggestions: int = MAX_MIN_SUGGESTIONS,
    ):
        self.generator = generator
        self.rate_store = rate_store
        self.threshold = threshold
        self.max_suggestions = max_suggestions

    def build_prompt(self, chunks: Sequence[ScoredChunk], product: ProductDescription) -> str:
        return RANKING_PROMPT.format(
            context_count=len(chunks),
            context=CONTEXT_SEPARATOR.join(chunk.content for chunk in chunks),
            garment_type=product.garment_type or "unknown",
            fabric_type=product.fabric_type or "unknown",
            materials=product.materials_label() or "unknown",
            gender=product.gender or "unknown",
            description=product.description,
            min_suggestions=min(len(chunks), self.max_suggestions),
        )

    def post_process(self, payload: SuggestionPayload, chunks: Sequence[ScoredChunk]) -> List[ClassificationCandidate]:
        ranked = []
        for suggestion in payload.suggestions:
            code = normalize_hs_code(suggestion.code)
            if code is None:
                logger.debug(f"Dropping suggestion with invalid code {suggestion.code!r}")
                continue
            if suggestion.confidence < self.threshold:
                continue
            ranked.append(ClassificationCandidate(
                code=code,
                description=suggestion.description,
                confidence=min(float(suggestion.confidence), 1.0),
                rationale=list(suggestion.rationale),
            ))

        # Stable sort, so the first of equal-confidence duplicates wins
        ranked.sort(key=lambda c: c.confidence, reverse=True)

        unique: List[ClassificationCandidate] = []
        seen = set()
        for candidate in ranked:
            if candidate.code in seen:
                continue
            seen.add(candidate.code)
            candidate.provenance = chunk_provenance(find_source_chunk(candidate.code, chunks))
            unique.append(enrich_with_rates(candidate, self.rate_store))
        return unique

    def rank(self, chunks: Sequence[ScoredChunk], product: ProductDescription) -> List[ClassificationCandidate]:
        """
        Raises:
            GenerationParseError: generator output was not the expected JSON shape
            GenerationServiceError: generator call failed
        """
        prompt = self.build_prompt(chunks, product)
        payload = decode_json_payload(self.generator.generate(prompt, system=SYSTEM_PROMPT), SuggestionPayload)
        if payload.success is False:
            raise GenerationParseError("Generator reported it could not produce suggestions")

        candidates = self.post_process(payload, chunks)
        expected = min(len(chunks), self.max_suggestions)
        if len(candidates) < expected:
            logger.warning(
                f"Generated {len(candidates)} suggestions with confidence >= {self.threshold}, "
                f"expected at least {expected}"
            )
        logger.info(f"Ranked {len(candidates)} HS code suggestions from {len(chunks)} context chunks")
        return candidates
