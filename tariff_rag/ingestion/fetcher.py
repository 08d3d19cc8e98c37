"""
HTTP fetch for listing pages and documents.

- One requests.Session with a browser-like User-Agent
- Explicit timeout on every call; timeouts surface as FetchError (retryable)
- Minimum interval between requests to stay polite with government sites
- Optional trusted-domain allowlist
"""

import hashlib
import logging
import threading
import time
from typing import Dict, Optional, Set
from urllib.parse import urlparse

import requests

from tariff_rag.errors import FetchError, TerminalItemError

logger = logging.getLogger(__name__)


class UntrustedSourceError(TerminalItemError):
    """Raised when attempting to fetch from a domain outside the allowlist."""
    pass


def compute_hash(content: bytes) -> str:
    """SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(content).hexdigest()


class DocumentFetcher:
    """
    Usage:
        fetcher = DocumentFetcher(timeout=60)
        html = fetcher.get_text("https://nbr.gov.bd/...")
        pdf_bytes = fetcher.download("https://customs.gov.bd/files/tariff.pdf")
    """

    def __init__(
        self,
        timeout: int = 60,
        user_agent: str = "Mozilla/5.0 (compatible; TariffRagBot/1.0)",
        min_interval: float = 1.0,
        trusted_domains: Optional[Set[str]] = None,
        session: Optional[requests.Session] = None,
        clock=time.monotonic,
        sleep=time.sleep,
    ):
        self.timeout = timeout
        self.min_interval = min_interval
        self.trusted_domains = trusted_domains or set()
        self.session = session or requests.Session()
        self.session.headers.update({'User-Agent': user_agent})
        self._clock = clock
        self._sleep = sleep
        self._last_request = None
        self._lock = threading.Lock()

    def _is_trusted_domain(self, url: str) -> bool:
        """Check if URL domain is in the trusted list (empty list trusts all)."""
        if not self.trusted_domains:
            return True
        domain = urlparse(url).netloc.lower()
        for trusted in self.trusted_domains:
            if domain == trusted or domain.endswith('.' + trusted):
                return True
        return False

    def _throttle(self) -> None:
        with self._lock:
            now = self._clock()
            if self._last_request is not None:
                wait = self.min_interval - (now - self._last_request)
                if wait > 0:
                    self._sleep(wait)
                    now = self._clock()
            self._last_request = now

    def _request(self, method: str, url: str, data: Optional[Dict[str, str]] = None) -> requests.Response:
        if not self._is_trusted_domain(url):
            raise UntrustedSourceError(f"Domain not in allowlist: {urlparse(url).netloc}")

        self._throttle()
        try:
            response = self.session.request(method, url, data=data, timeout=self.timeout)
            response.raise_for_status()
        except requests.Timeout as e:
            raise FetchError(f"Timed out after {self.timeout}s fetching {url}") from e
        except requests.RequestException as e:
            raise FetchError(f"{method} {url} failed: {e}") from e
        return response

    def get_text(self, url: str) -> str:
        return self._request("GET", url).text

    def post_form(self, url: str, form_data: Dict[str, str]) -> str:
        """POST a form-encoded body, used by parameterized listing endpoints."""
        return self._request("POST", url, data=form_data).text

    def download(self, url: str) -> bytes:
        content = self._request("GET", url).content
        logger.info(f"Downloaded {len(content)} bytes from {url}")
        return content
