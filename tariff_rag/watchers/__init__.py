"""
Source Watchers

Discover new tariff documents on the official listing pages:
- SourceLinkResolver: listing page -> SourceLink stream
- ChangeTracker: SourceLinks -> unseen PendingDocuments
- IngestionScheduler: guarded, retried ingestion runs

Only the common types are imported eagerly; the scheduler pulls in the
ingestion pipeline and is imported lazily:
    from tariff_rag.watchers.scheduler import IngestionScheduler
"""

from tariff_rag.watchers.base import DocumentKind, PendingDocument, SourceLink


def __getattr__(name):
    """Lazy import to avoid circular imports."""
    if name == 'SourceLinkResolver':
        from tariff_rag.watchers.link_resolver import SourceLinkResolver
        return SourceLinkResolver

    if name == 'ChangeTracker':
        from tariff_rag.watchers.change_tracker import ChangeTracker
        return ChangeTracker

    if name in ('IngestionScheduler', 'ListingSource', 'RunReport'):
        from tariff_rag.watchers.scheduler import IngestionScheduler, ListingSource, RunReport
        mapping = {
            'IngestionScheduler': IngestionScheduler,
            'ListingSource': ListingSource,
            'RunReport': RunReport,
        }
        return mapping[name]

    raise AttributeError(f"module 'tariff_rag.watchers' has no attribute '{name}'")


__all__ = [
    'DocumentKind',
    'PendingDocument',
    'SourceLink',
    'SourceLinkResolver',
    'ChangeTracker',
    'IngestionScheduler',
    'ListingSource',
    'RunReport',
]
