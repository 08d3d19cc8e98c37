"""
Retrieval Chunker

Two chunk producers:
- chunk_tariff_rows: consecutive batches of parsed rows (50 per chunk by
  default), first/last HS code recorded for provenance
- chunk_chapter_text: size-bounded split of legal chapter text that prefers
  structural boundaries

Chapter split priority:
    section ("Section XI") -> chapter ("Chapter 61") -> heading ("61.09")
    -> paragraph (blank line) -> word -> hard character split

Chapter chunks are exact contiguous slices of the input, so joining all of
them gives back the original text when nothing was discarded.
"""

import hashlib
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from tariff_rag.ingestion.tariff_parser import TariffRow

DEFAULT_ROWS_PER_CHUNK = 50
DEFAULT_MAX_CHARS = 30000
DEFAULT_MIN_CHARS = 100

SPLIT_LEVELS = (
    ("section", re.compile(r'(?=\n[ \t]*(?:Section|SECTION)\s+[IVXLCDM]+\b)')),
    ("chapter", re.compile(r'(?=\n[ \t]*(?:Chapter|CHAPTER)\s+\d+)')),
    ("heading", re.compile(r'(?=\n[ \t]*\d{2}\.\d{2}\b)')),
    ("paragraph", re.compile(r'(?<=\n\n)(?=[^\n])')),
    ("word", re.compile(r'(?<=\s)(?=\S)')),
)

SECTION_NAME_RE = re.compile(r'(?:Section|SECTION)\s+([IVXLCDM]+)\b')


@dataclass
class Chunk:
    """A single retrieval unit before embedding."""
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    char_start: Optional[int] = None
    char_end: Optional[int] = None

    @property
    def ordinal(self) -> int:
        return int(self.metadata.get("ordinal", 0))

    @property
    def text_hash(self) -> str:
        return hashlib.sha256(self.content.encode('utf-8')).hexdigest()


# ---------------------------------------------------------------------------
# Tariff rows
# ---------------------------------------------------------------------------

def _fmt(value: float) -> str:
    return f"{value:g}"


def format_tariff_row(row: TariffRow) -> str:
    return (
        f"HS Code: {row.hs_code}\n"
        f"Description: {row.description}\n"
        f"Tariff Rates: CD={_fmt(row.cd)}%, SD={_fmt(row.sd)}%, VAT={_fmt(row.vat)}%, "
        f"AIT={_fmt(row.ait)}%, RD={_fmt(row.rd)}%, AT={_fmt(row.at)}%, TTI={_fmt(row.tti)}%"
    )


def chunk_tariff_rows(rows: Sequence[TariffRow], batch_size: int = DEFAULT_ROWS_PER_CHUNK) -> List[Chunk]:
    """Group consecutive rows into chunks of at most `batch_size` rows."""
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")

    chunks = []
    for ordinal, start in enumerate(range(0, len(rows), batch_size)):
        batch = rows[start:start + batch_size]
        chunks.append(Chunk(
            content="\n\n".join(format_tariff_row(row) for row in batch),
            metadata={
                "ordinal": ordinal,
                "start_hs_code": batch[0].hs_code,
                "end_hs_code": batch[-1].hs_code,
                "row_count": len(batch),
                "hs_codes": [row.hs_code for row in batch],
            },
        ))
    return chunks


# ---------------------------------------------------------------------------
# Chapter text
# ---------------------------------------------------------------------------

def _hard_split(text: str, max_chars: int) -> List[str]:
    return [text[i:i + max_chars] for i in range(0, len(text), max_chars)]


def _split(text: str, max_chars: int, level: int = 0) -> List[str]:
    if len(text) <= max_chars:
        return [text]
    if level >= len(SPLIT_LEVELS):
        return _hard_split(text, max_chars)

    _, pattern = SPLIT_LEVELS[level]
    pieces = [piece for piece in pattern.split(text) if piece]
    if len(pieces) <= 1:
        return _split(text, max_chars, level + 1)

    result: List[str] = []
    current = ""
    for piece in pieces:
        if len(piece) > max_chars:
            if current:
                result.append(current)
                current = ""
            result.extend(_split(piece, max_chars, level + 1))
        elif len(current) + len(piece) <= max_chars:
            current += piece
        else:
            result.append(current)
            current = piece
    if current:
        result.append(current)
    return result


def split_text(text: str, max_chars: int = DEFAULT_MAX_CHARS) -> List[str]:
    """Lossless structural split: ''.join(split_text(t)) == t."""
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")
    if not text:
        return []
    return _split(text, max_chars)


def _section_for(text: str, start: int, end: int) -> Optional[str]:
    preceding = None
    for match in SECTION_NAME_RE.finditer(text, 0, end):
        if match.start() <= start or preceding is None:
            preceding = match.group(1)
        if match.start() > start:
            break
    return preceding


def chunk_chapter_text(
    text: str,
    max_chars: int = DEFAULT_MAX_CHARS,
    min_chars: int = DEFAULT_MIN_CHARS,
) -> List[Chunk]:
    """
    Split chapter text into chunks of at most `max_chars` characters.

    Chunks whose stripped content is shorter than `min_chars` are dropped.
    """
    kept = []
    offset = 0
    for piece in split_text(text, max_chars):
        start, end = offset, offset + len(piece)
        offset = end
        if len(piece.strip()) < min_chars:
            continue
        kept.append((piece, start, end))

    chunks = []
    for ordinal, (piece, start, end) in enumerate(kept):
        chunks.append(Chunk(
            content=piece,
            metadata={
                "ordinal": ordinal,
                "total_chunks": len(kept),
                "section": _section_for(text, start, end),
            },
            char_start=start,
            char_end=end,
        ))
    return chunks
