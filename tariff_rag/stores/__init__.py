"""
Persistence collaborators: vector index, tariff rates, document versions.
"""

from tariff_rag.stores.base import SearchHit, VectorRecord, VectorStore
from tariff_rag.stores.pinecone_vector import PineconeVectorStore
from tariff_rag.stores.rate_store import RateStore
from tariff_rag.stores.sql_vector import SQLVectorStore
from tariff_rag.stores.version_store import DocumentVersionStore

__all__ = [
    'SearchHit',
    'VectorRecord',
    'VectorStore',
    'SQLVectorStore',
    'PineconeVectorStore',
    'RateStore',
    'DocumentVersionStore',
]
