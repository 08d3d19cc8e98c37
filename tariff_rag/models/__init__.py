"""
Persistence models.

Tables:
- DocumentVersionRecord: one row per processed (kind, scope, version)
- TariffRateRow: authoritative per-code rates, keyed by (hs_code, version)
- RetrievalChunkRow: chunk text, metadata and embedding for the SQL vector store
"""

from tariff_rag.models.document_version import DocumentVersionRecord
from tariff_rag.models.tariff_rate import TariffRateRow
from tariff_rag.models.retrieval_chunk import RetrievalChunkRow

__all__ = [
    'DocumentVersionRecord',
    'TariffRateRow',
    'RetrievalChunkRow',
]
