"""
Pydantic Schemas for Generation Output

Every generated payload goes through `decode_json_payload`, which accepts
exactly one JSON document (optionally wrapped in a ``` fence) and validates
it against a strict schema. Anything else raises GenerationParseError; no
attempt is made to dig JSON out of surrounding prose.

Uses strict mode to prevent silent coercion (e.g., "0.9" -> 0.9). Suggestion
confidences must be finite, so a bare NaN in the output is a parse error.
"""

import json
import re
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from tariff_rag.errors import GenerationParseError

T = TypeVar("T", bound=BaseModel)

_FENCE_RE = re.compile(r"^```(?:json)?\s*\n?(.*?)\n?```$", re.DOTALL | re.IGNORECASE)


# ============================================================================
# Classification
# ============================================================================

class Suggestion(BaseModel):
    """One candidate HS code proposed by the generator."""
    model_config = ConfigDict(strict=True, allow_inf_nan=False)

    code: str
    description: str = ""
    confidence: float
    rationale: List[str] = []


class SuggestionPayload(BaseModel):
    """
    Example:
        {
            "success": true,
            "suggestions": [
                {"code": "6109.10.00", "description": "T-shirts, knitted, of cotton",
                 "confidence": 0.92, "rationale": ["Knitted cotton garment"]}
            ]
        }
    """
    model_config = ConfigDict(strict=True)

    success: Optional[bool] = None
    suggestions: List[Suggestion]


# ============================================================================
# Query expansion
# ============================================================================

class SearchAlternativesPayload(BaseModel):
    model_config = ConfigDict(strict=True)

    alternatives: List[str]


# ============================================================================
# Model-assisted table extraction
# ============================================================================

class ExtractedRowsPayload(BaseModel):
    """Envelope only; rows are validated one by one so a bad row does not sink the rest."""
    model_config = ConfigDict(strict=True)

    rows: List[Dict[str, Any]]


class ExtractedTariffRow(BaseModel):
    model_config = ConfigDict(strict=True)

    hs_code: str
    description: str
    cd: Optional[Union[float, str]] = None
    sd: Optional[Union[float, str]] = None
    vat: Optional[Union[float, str]] = None
    ait: Optional[Union[float, str]] = None
    rd: Optional[Union[float, str]] = None
    at: Optional[Union[float, str]] = None
    tti: Optional[Union[float, str]] = None


# ============================================================================
# Decoding
# ============================================================================

def _strip_fence(text: str) -> str:
    stripped = text.strip()
    match = _FENCE_RE.match(stripped)
    if match:
        return match.group(1).strip()
    return stripped


def decode_json_payload(text: Optional[str], schema: Type[T]) -> T:
    """
    Decode generator output into `schema`.

    Raises:
        GenerationParseError: empty output, invalid JSON, or a shape mismatch
    """
    if not text or not text.strip():
        raise GenerationParseError(f"Empty response for {schema.__name__}")

    body = _strip_fence(text)
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise GenerationParseError(f"Response is not valid JSON: {e}") from e

    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise GenerationParseError(
            f"Response does not match {schema.__name__}: {e.error_count()} error(s)"
        ) from e
