"""
Query Expansion

Builds the retrieval query for a product from its description and attributes.

Flow:
1. Ask the generation service for search alternatives (strict JSON decode)
2. On any generation failure, use the keyword tables below instead
3. Always add the gender terms
4. Render the enhanced query text and derive narrower variant queries

Variant queries (in order):
    alternatives[0:5], alternatives[5:10], material-focused, garment-focused

Usage:
    expander = QueryExpander(generator)
    query = expander.expand(ProductDescription(
        description="Basic crew neck tee",
        garment_type="T-Shirt",
        fabric_type="knit",
        gender="men's",
        materials=[MaterialShare("cotton", 100)],
    ))
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from tariff_rag.config import BROAD_QUERY
from tariff_rag.errors import GenerationParseError, GenerationServiceError
from tariff_rag.llm.schemas import SearchAlternativesPayload, decode_json_payload

logger = logging.getLogger(__name__)

DEFAULT_BASE_QUERY = "Find appropriate HS code for this garment"

CLASSIFICATION_TERMS = "HS code tariff customs classification Bangladesh apparel textile garment clothing"

GENDER_TERMS = [
    "men's", "women's", "boys'", "girls'", "unisex", "children's", "adult", "male", "female",
]

FABRIC_KEYWORDS: Dict[str, List[str]] = {
    "knit": ["knitted", "jersey", "sweater", "pullover", "cardigan", "t-shirt", "knitwear"],
    "woven": ["woven", "shirt", "trouser", "jacket", "coat", "dress", "blouse"],
}

GARMENT_ALTERNATIVES: Dict[str, List[str]] = {
    "shirt": ["shirt", "blouse", "top", "polo", "button-down", "dress shirt", "casual shirt"],
    "blouse": ["blouse", "shirt", "top", "tunic", "camisole", "tank top"],
    "trouser": ["trouser", "pant", "jean", "bottom", "slacks", "chinos", "cargo pants"],
    "dress": ["dress", "gown", "frock", "sundress", "maxi dress", "mini dress"],
    "jacket": ["jacket", "blazer", "coat", "outerwear", "windbreaker", "bomber"],
    "t-shirt": ["t-shirt", "tee", "top", "shirt", "polo shirt", "tank top"],
    "sweater": ["sweater", "pullover", "jumper", "cardigan", "knit top", "jersey"],
    "cardigan": ["cardigan", "sweater", "knit jacket", "button-up sweater"],
    "shorts": ["shorts", "short trouser", "bermuda", "cargo shorts"],
    "skirt": ["skirt", "mini skirt", "maxi skirt", "pencil skirt", "a-line skirt"],
    "jeans": ["jeans", "denim", "trouser", "pant", "jean trouser", "denim trouser"],
    "polo": ["polo", "polo shirt", "t-shirt", "collared shirt", "golf shirt"],
    "coat": ["coat", "overcoat", "winter coat", "trench coat", "raincoat"],
    "vest": ["vest", "waistcoat", "sleeveless jacket", "gilet"],
    "uniform": ["uniform", "work wear", "professional wear", "service uniform"],
    "suit": ["suit", "business suit", "formal wear", "two-piece", "three-piece"],
}

MATERIAL_FOCUS = ("cotton", "polyester", "wool")
GARMENT_FOCUS = ("shirt", "trouser", "dress")

ALTERNATIVES_PROMPT = """You are an expert in textile industry terminology and Bangladesh customs HS code classification.

Product Information:
- Garment Type: {garment_type}
- Fabric Type: {fabric_type}
- Materials: {materials}
- Gender: {gender}
- Description: {description}

Original Search Query: {base_query}

Generate search alternatives for this garment that would help find relevant HS codes
in a tariff database: alternative garment names, fabric construction terms, material
composition alternatives, customs/tariff terminology and HS chapter references.

Return a JSON object with at most {limit} terms:
{{"alternatives": ["term1", "term2", "term3"]}}

Focus on terms that would appear in official tariff classifications."""


@dataclass
class MaterialShare:
    name: str
    percentage: float

    def label(self) -> str:
        return f"{self.percentage:g}% {self.name}"


@dataclass
class ProductDescription:
    """What the caller knows about the product to classify."""
    description: str
    garment_type: str = ""
    fabric_type: str = ""
    gender: str = ""
    materials: List[MaterialShare] = field(default_factory=list)

    def materials_label(self) -> str:
        return ", ".join(m.label() for m in self.materials)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "garment_type": self.garment_type,
            "fabric_type": self.fabric_type,
            "gender": self.gender,
            "materials": [{"name": m.name, "percentage": m.percentage} for m in self.materials],
        }


@dataclass
class ExpandedQuery:
    text: str
    variants: List[str] = field(default_factory=list)
    broad_text: str = BROAD_QUERY
    alternatives: List[str] = field(default_factory=list)
    alternatives_source: str = "generated"  # 'generated' or 'keywords'


def _dedupe(terms: List[str]) -> List[str]:
    seen = set()
    result = []
    for term in terms:
        term = (term or "").strip()
        if term and term not in seen:
            seen.add(term)
            result.append(term)
    return result


def keyword_alternatives(product: ProductDescription) -> List[str]:
    """Static search terms for a product, used when generation is unavailable."""
    garment = (product.garment_type or "").strip()
    fabric = (product.fabric_type or "").strip()
    garment_alts = GARMENT_ALTERNATIVES.get(garment.lower(), [garment] if garment else [])

    return _dedupe([
        garment,
        fabric,
        "apparel", "clothing", "textile", "garment",
        "HS code", "tariff", "customs", "classification",
        *[m.name for m in product.materials],
        *GENDER_TERMS,
        *garment_alts,
        *FABRIC_KEYWORDS.get(fabric.lower(), []),
    ])


class QueryExpander:
    """Turns a ProductDescription into an ExpandedQuery."""

    def __init__(self, generator=None, max_alternatives: int = 10):
        self.generator = generator
        self.max_alternatives = max_alternatives

    def generate_alternatives(self, product: ProductDescription, base_query: str) -> Optional[List[str]]:
        """Ask the generation service for alternatives. None when it cannot help."""
        if self.generator is None:
            return None

        prompt = ALTERNATIVES_PROMPT.format(
            garment_type=product.garment_type or "unknown",
            fabric_type=product.fabric_type or "unknown",
            materials=product.materials_label() or "unknown",
            gender=product.gender or "unknown",
            description=product.description,
            base_query=base_query,
            limit=self.max_alternatives,
        )
        try:
            payload = decode_json_payload(self.generator.generate(prompt), SearchAlternativesPayload)
        except (GenerationServiceError, GenerationParseError) as e:
            logger.warning(f"Search alternative generation failed, using keyword tables: {e}")
            return None

        alternatives = _dedupe(payload.alternatives)[:self.max_alternatives]
        if not alternatives:
            logger.warning("Generator returned no search alternatives, using keyword tables")
            return None
        logger.info(f"Generated {len(alternatives)} search alternatives")
        return alternatives

    def render(self, product: ProductDescription, alternatives: List[str], base_query: str) -> str:
        return (
            f"{base_query}\n"
            f"\n"
            f"Product Details:\n"
            f"- Type: {product.garment_type}\n"
            f"- Fabric: {product.fabric_type}\n"
            f"- Materials: {product.materials_label()}\n"
            f"- Gender: {product.gender}\n"
            f"- Description: {product.description}\n"
            f"\n"
            f"AI-Generated Search Alternatives:\n"
            f"{' '.join(alternatives)}\n"
            f"\n"
            f"Tariff Classification Terms:\n"
            f"{CLASSIFICATION_TERMS}"
        )

    @staticmethod
    def variants(alternatives: List[str]) -> List[str]:
        """Narrow queries over the individual words of the alternatives."""
        words = " ".join(alternatives).split()
        candidates = [
            " ".join(words[0:5]),
            " ".join(words[5:10]),
            " ".join(w for w in words if any(m in w.lower() for m in MATERIAL_FOCUS)),
            " ".join(w for w in words if any(g in w.lower() for g in GARMENT_FOCUS)),
        ]
        return [v for v in candidates if v.strip()]

    def expand(self, product: ProductDescription, base_query: Optional[str] = None) -> ExpandedQuery:
        base_query = base_query or DEFAULT_BASE_QUERY

        alternatives = self.generate_alternatives(product, base_query)
        source = "generated"
        if alternatives is None:
            alternatives = keyword_alternatives(product)
            source = "keywords"

        combined = _dedupe(alternatives + GENDER_TERMS)
        return ExpandedQuery(
            text=self.render(product, combined, base_query),
            variants=self.variants(combined),
            broad_text=BROAD_QUERY,
            alternatives=combined,
            alternatives_source=source,
        )
