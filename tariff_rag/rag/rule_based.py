"""
Rule-based HS code lookup.

Deterministic fallback when retrieval or generation cannot answer. Keyed by
garment type, fabric construction and whether cotton is the majority
material (strictly more than 50%).
"""

import logging
from typing import Dict, List, Optional

from tariff_rag.rag.query_builder import ProductDescription
from tariff_rag.rag.ranker import ClassificationCandidate, enrich_with_rates
from tariff_rag.stores.rate_store import RateStore

logger = logging.getLogger(__name__)

RULE_CONFIDENCE = 0.85
DEFAULT_CODE = "62052000"

COTTON_MAJORITY = "cotton_majority"
SYNTHETIC_MAJORITY = "synthetic_majority"

HS_CODE_MAP: Dict[str, Dict[str, Dict[str, str]]] = {
    "t-shirt": {
        "knit": {COTTON_MAJORITY: "61091000", SYNTHETIC_MAJORITY: "61099000"},
        "woven": {COTTON_MAJORITY: "62052000", SYNTHETIC_MAJORITY: "62053000"},
    },
    "shirt": {
        "woven": {COTTON_MAJORITY: "62052000", SYNTHETIC_MAJORITY: "62053000"},
    },
    "jeans": {
        "woven": {COTTON_MAJORITY: "62034200"},
    },
    "dress": {
        "knit": {COTTON_MAJORITY: "61044400", SYNTHETIC_MAJORITY: "61044900"},
        "woven": {COTTON_MAJORITY: "62044400", SYNTHETIC_MAJORITY: "62044900"},
    },
}


def cotton_share(product: ProductDescription) -> float:
    return sum(m.percentage for m in product.materials if "cotton" in m.name.lower())


def material_category(product: ProductDescription) -> str:
    return COTTON_MAJORITY if cotton_share(product) > 50 else SYNTHETIC_MAJORITY


class RuleBasedClassifier:
    """
    Usage:
        candidates = RuleBasedClassifier(rate_store).classify(product)
    """

    def __init__(self, rate_store: Optional[RateStore] = None):
        self.rate_store = rate_store

    def lookup(self, product: ProductDescription) -> Optional[str]:
        garment = (product.garment_type or "").strip().lower()
        fabric = (product.fabric_type or "").strip().lower()
        return HS_CODE_MAP.get(garment, {}).get(fabric, {}).get(material_category(product))

    def classify(self, product: ProductDescription) -> List[ClassificationCandidate]:
        category = material_category(product)
        code = self.lookup(product)
        matched = code is not None
        if not matched:
            code = DEFAULT_CODE

        candidate = ClassificationCandidate(
            code=code,
            description=f"{product.garment_type or 'Garment'} - {product.fabric_type or 'unknown'} - {category.replace('_', ' ')}",
            confidence=RULE_CONFIDENCE,
            rationale=[
                f"Garment type: {product.garment_type or 'unknown'}",
                f"Fabric construction: {product.fabric_type or 'unknown'}",
                f"Cotton share: {cotton_share(product):g}%",
            ] + ([] if matched else ["No rule matched; default classification"]),
            provenance={"source_kind": "rule_based", "version": None, "locator": "rule table"},
        )
        logger.info(f"Rule-based classification: {code} (matched={matched})")
        return [enrich_with_rates(candidate, self.rate_store)]
