"""
Text Extractor

Converts downloaded PDF bytes to plain text by walking an ordered list of
extraction strategies. Each strategy exposes `attempt(data) -> StrategyResult`;
the first result longer than the minimum length wins.

Default order:
1. pdfplumber word layout, primary separator
2. pdfplumber word layout, alternate separator
3. pypdf plain text

Separator " " joins individual words (good for rate tables whose columns
must stay separable); separator "" keeps pdfplumber's own spacing inside
text runs (better for running legal prose).
"""

import io
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import pdfplumber
from pypdf import PdfReader

from tariff_rag.errors import ExtractionExhaustedError

logger = logging.getLogger(__name__)

LINE_TOLERANCE = 3.0  # points; words closer than this vertically share a line


@dataclass
class StrategyResult:
    """Outcome of a single extraction strategy."""
    success: bool
    strategy: str
    text: str = ""
    error: Optional[str] = None


class ExtractionStrategy(ABC):
    name: str = "strategy"

    @abstractmethod
    def attempt(self, data: bytes) -> StrategyResult:
        pass


class PdfplumberLayoutStrategy(ExtractionStrategy):
    """Group pdfplumber words into visual lines and join them with `separator`."""

    def __init__(self, separator: str = " "):
        self.separator = separator
        self.name = f"pdfplumber[{separator!r}]"

    def _page_lines(self, page) -> List[str]:
        words = page.extract_words(keep_blank_chars=(self.separator == ""), use_text_flow=True)
        lines: List[List[dict]] = []
        current_top = None
        for word in sorted(words, key=lambda w: (round(float(w["top"])), float(w["x0"]))):
            top = float(word["top"])
            if current_top is None or abs(top - current_top) > LINE_TOLERANCE:
                lines.append([])
                current_top = top
            lines[-1].append(word)
        return [
            self.separator.join(w["text"] for w in sorted(line, key=lambda w: float(w["x0"])))
            for line in lines
        ]

    def attempt(self, data: bytes) -> StrategyResult:
        try:
            page_texts = []
            with pdfplumber.open(io.BytesIO(data)) as pdf:
                for page in pdf.pages:
                    page_texts.append("\n".join(self._page_lines(page)))
            return StrategyResult(success=True, strategy=self.name, text="\n".join(page_texts))
        except Exception as e:
            return StrategyResult(success=False, strategy=self.name, error=str(e))


class PypdfStrategy(ExtractionStrategy):
    """Minimal-dependency fallback using pypdf's own text extraction."""

    name = "pypdf"

    def attempt(self, data: bytes) -> StrategyResult:
        try:
            reader = PdfReader(io.BytesIO(data))
            text = "\n".join(page.extract_text() or "" for page in reader.pages)
            return StrategyResult(success=True, strategy=self.name, text=text)
        except Exception as e:
            return StrategyResult(success=False, strategy=self.name, error=str(e))


def default_strategies(primary_separator: str = " ") -> List[ExtractionStrategy]:
    alternate = "" if primary_separator == " " else " "
    return [
        PdfplumberLayoutStrategy(primary_separator),
        PdfplumberLayoutStrategy(alternate),
        PypdfStrategy(),
    ]


@dataclass
class TextExtractor:
    """
    Usage:
        extractor = TextExtractor(default_strategies(" "))
        text = extractor.extract(pdf_bytes)
    """
    strategies: Sequence[ExtractionStrategy] = field(default_factory=default_strategies)
    min_length: int = 100

    def extract(self, data: bytes) -> str:
        """
        Raises:
            ExtractionExhaustedError: no strategy produced enough text
        """
        failures = []
        for strategy in self.strategies:
            result = strategy.attempt(data)
            if result.success and len(result.text.strip()) > self.min_length:
                logger.info(f"Extracted {len(result.text)} chars with {result.strategy}")
                return result.text

            reason = result.error or f"only {len(result.text.strip())} chars"
            logger.warning(f"Extraction strategy {result.strategy} rejected: {reason}")
            failures.append(f"{result.strategy}: {reason}")

        raise ExtractionExhaustedError("All PDF extraction methods failed (" + "; ".join(failures) + ")")


# ---------------------------------------------------------------------------
# Chapter text cleaning
# ---------------------------------------------------------------------------

_DECORATION_RE = re.compile(r'_{10,}|-{10,}|={10,}')
_RUNNING_HEADER_RE = re.compile(r'^.*Bangladesh\s+Customs\s+Tariff\s*-\s*\d+.*$', re.MULTILINE)
_RUNNING_FOOTER_RE = re.compile(r'^\s*\d+\s*-\s*Bangladesh.*Customs.*Tariff.*$', re.MULTILINE)
_PAGE_NUMBER_RE = re.compile(r'^[ \t\-_]*\d+[ \t\-_]*$', re.MULTILINE)
_EXCESS_NEWLINES_RE = re.compile(r'\n{4,}')
_EXCESS_SPACES_RE = re.compile(r'[ \t]{3,}')


def clean_chapter_text(text: str) -> str:
    """Strip decorations, running headers/footers and page numbers from chapter text."""
    if not text:
        return ""
    text = _DECORATION_RE.sub("\n", text)
    text = _RUNNING_HEADER_RE.sub("", text)
    text = _RUNNING_FOOTER_RE.sub("", text)
    text = _PAGE_NUMBER_RE.sub("", text)
    text = _EXCESS_NEWLINES_RE.sub("\n\n\n", text)
    text = _EXCESS_SPACES_RE.sub("  ", text)
    return text.strip()
