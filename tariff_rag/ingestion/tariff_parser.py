"""
Tariff Table Parser

Turns the extracted text of a whole-schedule rate PDF into typed rows.

Row layout (one line per code):
    01012100 Pure-bred breeding animals of horses 5 0 0 5 0 0 10.00
    <hs code> <description .................> <CD SD VAT AIT RD AT TTI>

States:
1. Seeking header: first line carrying an HS code column marker and a
   description column marker. Spaced ("HS CODE  DESCRIPTION") and
   concatenated ("HscodeTARRIF_DESCRIPTIONCDSDVATAITRDATTTI") headers both match.
2. Parsing rows: every later line of 10+ characters is a candidate. The
   description runs from the code to the trailing run of rate tokens; the
   last seven tokens of that run are the rates.
3. Failure-rate gate: failed / total above MAX_FAILURE_RATE means the table
   layout drifted and the heuristic result is not trusted.

`parse_with_fallback` hands structural failures to a model-assisted
extractor (see model_fallback.py) that applies the same row rules.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from tariff_rag.errors import HeaderNotFoundError, NoValidTariffDataError, StructuralDriftError, StructuralError

logger = logging.getLogger(__name__)

RATE_FIELDS = ("cd", "sd", "vat", "ait", "rd", "at", "tti")
MAX_RATE = 99999.999  # NUMERIC(8,3)
MAX_FAILURE_RATE = 0.3
MIN_LINE_LENGTH = 10

HS_CODE_RE = re.compile(r'^\d{8}$')
DOTTED_HS_CODE_RE = re.compile(r'^\d{4}\.\d{2}\.\d{2}$')
NUMERIC_RE = re.compile(r'^-?\d+(?:\.\d+)?%?$')
PLACEHOLDER_TOKENS = {"-", "--", "n/a", "na", "nil"}


def clamp_rate(value: Any) -> float:
    """Parse a rate value, 0 on failure, clamped to [0, MAX_RATE]."""
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().rstrip('%')
        try:
            number = float(text)
        except ValueError:
            return 0.0
    if number != number:  # NaN
        return 0.0
    return round(min(max(number, 0.0), MAX_RATE), 3)


def normalize_hs_code(token: Any) -> Optional[str]:
    """Return the 8-digit code for '61091000' or '6109.10.00', else None."""
    if token is None:
        return None
    text = str(token).strip()
    if DOTTED_HS_CODE_RE.match(text):
        text = text.replace(".", "")
    if HS_CODE_RE.match(text):
        return text
    return None


@dataclass
class TariffRow:
    """One parsed tariff line. Rates are clamped on construction."""
    hs_code: str
    description: str
    cd: float = 0.0
    sd: float = 0.0
    vat: float = 0.0
    ait: float = 0.0
    rd: float = 0.0
    at: float = 0.0
    tti: float = 0.0

    def __post_init__(self):
        if not HS_CODE_RE.match(self.hs_code or ""):
            raise ValueError(f"Invalid HS code: {self.hs_code!r}")
        self.description = " ".join((self.description or "").split())
        if not self.description:
            raise ValueError(f"Empty description for {self.hs_code}")
        for name in RATE_FIELDS:
            setattr(self, name, clamp_rate(getattr(self, name)))

    def rates(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in RATE_FIELDS}

    def as_dict(self) -> Dict[str, Any]:
        return {"hs_code": self.hs_code, "description": self.description, **self.rates()}


@dataclass
class ParseReport:
    """Outcome of a table parse."""
    rows: List[TariffRow] = field(default_factory=list)
    total_rows: int = 0
    failed_rows: int = 0
    method: str = "heuristic"  # 'heuristic' or 'model'
    header_line: Optional[str] = None

    @property
    def failure_rate(self) -> float:
        if not self.total_rows:
            return 0.0
        return self.failed_rows / self.total_rows

    def as_dict(self) -> Dict[str, Any]:
        return {
            "row_count": len(self.rows),
            "total_rows": self.total_rows,
            "failed_rows": self.failed_rows,
            "failure_rate": round(self.failure_rate, 4),
            "method": self.method,
        }


def _is_rate_token(token: str) -> bool:
    return bool(NUMERIC_RE.match(token)) or token.lower() in PLACEHOLDER_TOKENS


def _is_header(line: str) -> bool:
    compact = re.sub(r'[\s._\-]', '', line.upper())
    return "HSCODE" in compact and any(
        marker in compact for marker in ("DESCRIPTION", "TARIFF", "TARRIF")
    )


def parse_row(line: str) -> Optional[TariffRow]:
    """
    Parse one candidate line. Returns None when the line is not a valid row.
    """
    parts = line.split()
    if len(parts) < 3:
        return None

    hs_code = normalize_hs_code(parts[0])
    if not hs_code:
        return None

    tokens = parts[1:]
    run_start = len(tokens)
    while run_start > 0 and _is_rate_token(tokens[run_start - 1]):
        run_start -= 1
    if run_start == len(tokens):
        return None

    rate_start = max(run_start, len(tokens) - len(RATE_FIELDS))
    rate_tokens = tokens[rate_start:]
    if not any(NUMERIC_RE.match(t) for t in rate_tokens):
        return None

    description = " ".join(tokens[:rate_start])
    if not description or not re.search(r'[A-Za-z]', description):
        return None

    values = [clamp_rate(t) for t in rate_tokens]
    values += [0.0] * (len(RATE_FIELDS) - len(values))
    return TariffRow(hs_code=hs_code, description=description, **dict(zip(RATE_FIELDS, values)))


class TariffTableParser:
    """
    Heuristic rate-table parser.

    Usage:
        parser = TariffTableParser()
        report = parser.parse(text)
    """

    def __init__(self, max_failure_rate: float = MAX_FAILURE_RATE, min_line_length: int = MIN_LINE_LENGTH):
        self.max_failure_rate = max_failure_rate
        self.min_line_length = min_line_length

    def _find_header(self, lines: List[str]) -> Tuple[int, str]:
        for index, line in enumerate(lines):
            if _is_header(line):
                return index, line
        raise HeaderNotFoundError("Could not find tariff table header")

    def parse(self, text: str) -> ParseReport:
        """
        Raises:
            HeaderNotFoundError: no header line in the document
            StructuralDriftError: failure rate above the threshold, or no valid rows
        """
        lines = (text or "").split("\n")
        header_index, header_line = self._find_header(lines)
        logger.info(f"Found tariff header: {header_line.strip()[:120]}")

        report = ParseReport(header_line=header_line.strip())
        for number, raw in enumerate(lines[header_index + 1:], start=header_index + 2):
            line = raw.strip()
            if len(line) < self.min_line_length:
                continue
            if _is_header(line):
                continue  # header repeated on every page

            report.total_rows += 1
            row = parse_row(line)
            if row is None:
                report.failed_rows += 1
                if report.failed_rows <= 5:
                    logger.warning(f"Failed to parse line {number}: {line[:100]}")
                continue
            report.rows.append(row)

        if report.total_rows and report.failure_rate > self.max_failure_rate:
            raise StructuralDriftError(
                f"PDF structure may have changed. High parsing failure rate: "
                f"{report.failure_rate * 100:.1f}% ({report.failed_rows}/{report.total_rows})",
                failed_rows=report.failed_rows,
                total_rows=report.total_rows,
            )
        if not report.rows:
            raise StructuralDriftError(
                "No tariff rows parsed after header",
                failed_rows=report.failed_rows,
                total_rows=report.total_rows,
            )

        if report.failed_rows:
            logger.warning(
                f"{report.failed_rows}/{report.total_rows} rows failed to parse "
                f"({report.failure_rate * 100:.1f}% failure rate)"
            )
        logger.info(f"Parsed {len(report.rows)} tariff rows")
        return report

    def parse_with_fallback(self, text: str, fallback=None) -> ParseReport:
        """
        Heuristic parse; on a structural failure hand the raw text to `fallback`
        (an object with `extract(text) -> ParseReport`).

        Raises:
            NoValidTariffDataError: heuristic failed and no fallback, or the
                fallback produced zero valid rows
        """
        try:
            return self.parse(text)
        except StructuralError as e:
            if fallback is None:
                raise NoValidTariffDataError(f"Heuristic parse failed and no fallback configured: {e}") from e
            logger.warning(f"Heuristic parse abandoned ({e}); using model-assisted extraction")
            return fallback.extract(text)
