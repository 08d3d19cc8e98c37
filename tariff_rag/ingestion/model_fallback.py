"""
Model-Assisted Table Extraction

Used only when the heuristic parser reports a structural failure. The raw
page text (truncated to stay inside the model's input window) is sent with
an explicit JSON extraction instruction. Every returned row is re-checked
with the same rules as the heuristic parser before it is accepted.
"""

import logging
from typing import List

from pydantic import ValidationError

from tariff_rag.errors import GenerationParseError, NoValidTariffDataError
from tariff_rag.ingestion.tariff_parser import RATE_FIELDS, ParseReport, TariffRow, normalize_hs_code
from tariff_rag.llm.schemas import ExtractedRowsPayload, ExtractedTariffRow, decode_json_payload

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You extract rows from customs tariff schedules.
Return only JSON. Never invent rows that are not in the text."""

EXTRACTION_PROMPT = """The text below was extracted from a customs tariff schedule PDF.
Each tariff line has an 8-digit HS code, a description and seven rates:
CD (customs duty), SD (supplementary duty), VAT, AIT (advance income tax),
RD (regulatory duty), AT (advance tax), TTI (total tax incidence).

Return a JSON object of this exact shape:
{{"rows": [{{"hs_code": "01012100", "description": "Pure-bred breeding horses",
  "cd": 5, "sd": 0, "vat": 0, "ait": 5, "rd": 0, "at": 0, "tti": 10}}]}}

Rules:
- hs_code is a string of exactly 8 digits (remove dots)
- rates are numbers; use 0 when a rate is blank or not shown
- skip headings, notes and lines without an HS code

TEXT:
{text}"""


class ModelAssistedTableExtractor:
    """
    Usage:
        fallback = ModelAssistedTableExtractor(generator)
        report = parser.parse_with_fallback(text, fallback=fallback)
    """

    def __init__(self, generator, max_chars: int = 30000):
        self.generator = generator
        self.max_chars = max_chars

    def _validate_rows(self, raw_rows: List[dict]) -> ParseReport:
        report = ParseReport(method="model", total_rows=len(raw_rows))
        for raw in raw_rows:
            try:
                candidate = ExtractedTariffRow.model_validate(raw)
            except ValidationError:
                report.failed_rows += 1
                continue

            hs_code = normalize_hs_code(candidate.hs_code)
            if not hs_code:
                report.failed_rows += 1
                continue

            try:
                row = TariffRow(
                    hs_code=hs_code,
                    description=candidate.description,
                    **{name: getattr(candidate, name) for name in RATE_FIELDS},
                )
            except ValueError:
                report.failed_rows += 1
                continue
            report.rows.append(row)
        return report

    def extract(self, text: str) -> ParseReport:
        """
        Raises:
            NoValidTariffDataError: the model output held zero valid rows
        """
        truncated = (text or "")[:self.max_chars]
        if len(text or "") > self.max_chars:
            logger.info(f"Truncated fallback input from {len(text)} to {self.max_chars} chars")

        prompt = EXTRACTION_PROMPT.format(text=truncated)
        try:
            response = self.generator.generate(prompt, system=SYSTEM_PROMPT)
            payload = decode_json_payload(response, ExtractedRowsPayload)
        except GenerationParseError as e:
            raise NoValidTariffDataError(f"Model-assisted extraction failed: {e}") from e

        report = self._validate_rows(payload.rows)
        if not report.rows:
            raise NoValidTariffDataError(
                f"Model-assisted extraction returned no valid rows ({report.failed_rows} rejected)"
            )

        logger.info(
            f"Model-assisted extraction accepted {len(report.rows)}/{report.total_rows} rows"
        )
        return report
