"""
Source Link Resolver

Reads a listing page and yields the downloadable documents it links to.

For each href ending in .pdf:
- kind: keyword match on link text + URL ("chapter" -> legal_chapter,
  "tariff" -> rate_table, anything else -> other)
- declared_version: first year range (2024-2025, 2024-25, 2024_2025),
  else a single four digit year
- scope: chapter number for legal chapters, else the file name
- extraction_confidence: how many of the heuristics actually fired

Usage:
    resolver = SourceLinkResolver(fetcher)
    for link in resolver.resolve("https://customs.gov.bd/..."):
        print(link.kind, link.declared_version, link.url)
"""

import logging
import re
from pathlib import PurePosixPath
from typing import Dict, Iterator, Optional, Set
from urllib.parse import unquote, urljoin, urlparse

from bs4 import BeautifulSoup

from tariff_rag.errors import FetchError, LinkExtractionError
from tariff_rag.ingestion.fetcher import DocumentFetcher
from tariff_rag.watchers.base import DocumentKind, SourceLink

logger = logging.getLogger(__name__)

DOCUMENT_EXTENSIONS = (".pdf",)

YEAR_RANGE_RE = re.compile(r'(?<!\d)(20\d{2})\s*[-_–/]\s*(20\d{2}|\d{2})(?!\d)')
YEAR_RE = re.compile(r'(?<!\d)(20\d{2})(?!\d)')
CHAPTER_RE = re.compile(r'chapter[\s_\-]*0*(\d{1,2})(?!\d)', re.IGNORECASE)

CHAPTER_KEYWORDS = ("chapter",)
RATE_TABLE_KEYWORDS = ("tariff", "tarrif")


def extract_version(text: str) -> Optional[str]:
    """Normalise the first year range or year in `text` to 'YYYY-YYYY' / 'YYYY'."""
    match = YEAR_RANGE_RE.search(text)
    if match:
        start, end = match.group(1), match.group(2)
        if len(end) == 2:
            end = start[:2] + end
        return f"{start}-{end}"
    match = YEAR_RE.search(text)
    if match:
        return match.group(1)
    return None


def classify_kind(text: str) -> DocumentKind:
    lowered = text.lower()
    if any(keyword in lowered for keyword in CHAPTER_KEYWORDS):
        return DocumentKind.LEGAL_CHAPTER
    if any(keyword in lowered for keyword in RATE_TABLE_KEYWORDS):
        return DocumentKind.RATE_TABLE
    return DocumentKind.OTHER


class SourceLinkResolver:
    """Turns a listing page into a lazy sequence of SourceLink."""

    def __init__(self, fetcher: DocumentFetcher):
        self.fetcher = fetcher

    def _fetch_listing(self, url: str, form_data: Optional[Dict[str, str]]) -> str:
        try:
            if form_data:
                return self.fetcher.post_form(url, form_data)
            return self.fetcher.get_text(url)
        except FetchError as e:
            raise LinkExtractionError(f"Listing page unreachable: {url}: {e}") from e

    @staticmethod
    def _is_document_href(href: str) -> bool:
        path = urlparse(href).path.lower()
        return path.endswith(DOCUMENT_EXTENSIONS)

    def _build_link(self, url: str, title: str, default_version: Optional[str]) -> SourceLink:
        haystack = f"{title} {unquote(urlparse(url).path)}"
        kind = classify_kind(haystack)
        version = extract_version(haystack)

        confidence = 0.3
        if kind != DocumentKind.OTHER:
            confidence += 0.4
        if version:
            confidence += 0.3
        else:
            version = default_version

        scope = ""
        if kind == DocumentKind.LEGAL_CHAPTER:
            match = CHAPTER_RE.search(haystack)
            if match:
                scope = str(int(match.group(1)))
            else:
                scope = PurePosixPath(unquote(urlparse(url).path)).stem
                logger.warning(f"No chapter number in {title!r} ({url}), scoping by file name {scope!r}")

        return SourceLink(
            url=url,
            title=title,
            declared_version=version,
            kind=kind,
            extraction_confidence=round(min(confidence, 1.0), 2),
            scope=scope,
        )

    def resolve(
        self,
        url: str,
        form_data: Optional[Dict[str, str]] = None,
        default_version: Optional[str] = None,
    ) -> Iterator[SourceLink]:
        """
        Yield document links found on the listing page.

        One pass per call; call again for a fresh fetch.

        Raises:
            LinkExtractionError: page unreachable or no document links on it
        """
        html = self._fetch_listing(url, form_data)
        soup = BeautifulSoup(html, 'html.parser')

        # Remove non-content markup
        for element in soup(['script', 'style', 'noscript', 'template']):
            element.decompose()

        seen: Set[str] = set()
        for anchor in soup.find_all('a', href=True):
            href = anchor['href'].strip()
            if not href or not self._is_document_href(href):
                continue

            absolute = urljoin(url, href)
            if absolute in seen:
                continue
            seen.add(absolute)

            title = anchor.get_text(" ", strip=True) or anchor.get('title', '') or ''
            link = self._build_link(absolute, title, default_version)
            logger.debug(
                f"Found {link.kind.value} link {absolute} "
                f"(version={link.declared_version}, confidence={link.extraction_confidence})"
            )
            yield link

        if not seen:
            raise LinkExtractionError(f"No document links found on {url}")

        logger.info(f"Resolved {len(seen)} document links from {url}")
