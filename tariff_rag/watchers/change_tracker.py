"""
Change Tracker

Decides which discovered links are new (kind, scope, version) pairs.

Order of checks per link (cheapest first):
1. kind not ingestable        -> logged, ignored
2. no version token           -> logged, ignored
3. version already recorded   -> skipped without download
4. download + SHA-256
5. hash already recorded      -> skipped ("already processed")

Read-only against the version store; records are written by the IndexWriter
after a successful commit.
"""

import logging
from typing import Iterable, List, Set, Tuple

from tariff_rag.errors import FetchError, TerminalItemError
from tariff_rag.ingestion.fetcher import DocumentFetcher, compute_hash
from tariff_rag.stores.version_store import DocumentVersionStore
from tariff_rag.watchers.base import PendingDocument, SourceLink

logger = logging.getLogger(__name__)


class ChangeTracker:
    """
    Usage:
        tracker = ChangeTracker(version_store, fetcher)
        pending = tracker.filter_unseen(resolver.resolve(listing_url))
    """

    def __init__(self, version_store: DocumentVersionStore, fetcher: DocumentFetcher):
        self.version_store = version_store
        self.fetcher = fetcher

    def filter_unseen(self, links: Iterable[SourceLink]) -> List[PendingDocument]:
        pending: List[PendingDocument] = []
        queued: Set[Tuple[str, str, str]] = set()

        for link in links:
            if not link.kind.ingestable:
                logger.info(f"Ignoring {link.kind.value} link: {link.url}")
                continue

            if not link.declared_version:
                logger.warning(f"No version token for {link.kind.value} link, skipping: {link.url}")
                continue

            key = (link.kind.value, link.scope, link.declared_version)
            if key in queued:
                logger.debug(f"Duplicate link for {key} in this pass: {link.url}")
                continue

            if self.version_store.exists(link.kind.value, link.declared_version, scope=link.scope):
                logger.debug(f"Already processed {key}, skipping {link.url}")
                continue

            try:
                content = self.fetcher.download(link.url)
            except (FetchError, TerminalItemError) as e:
                logger.error(f"Could not download {link.url} for hashing: {e}")
                continue

            content_hash = compute_hash(content)
            if self.version_store.hash_seen(link.kind.value, content_hash, scope=link.scope):
                logger.info(
                    f"Content of {link.url} already processed under another version "
                    f"(hash {content_hash[:16]}...), skipping"
                )
                continue

            queued.add(key)
            pending.append(PendingDocument(
                kind=link.kind,
                version=link.declared_version,
                url=link.url,
                content_hash=content_hash,
                content=content,
                title=link.title,
                scope=link.scope,
            ))
            logger.info(f"New document pending: {pending[-1].label} from {link.url}")

        return pending
