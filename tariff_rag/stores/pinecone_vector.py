"""
Pinecone-backed vector store.

One namespace per corpus inside a shared index. Chunk text is kept in the
`content` metadata field because Pinecone only returns metadata with matches.
Metadata values must be strings, numbers, booleans or lists of strings, so
None values are dropped before upsert.
"""

import logging
from typing import Any, Dict, List, Optional

from pinecone import Pinecone as PineconeClient

from tariff_rag.errors import VectorStoreError
from tariff_rag.stores.base import MetadataFilter, SearchHit, VectorRecord, VectorStore

logger = logging.getLogger(__name__)

UPSERT_BATCH_SIZE = 100


def _clean_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
    cleaned = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            cleaned[key] = [str(v) for v in value]
        elif isinstance(value, (str, int, float, bool)):
            cleaned[key] = value
        else:
            cleaned[key] = str(value)
    return cleaned


def _to_pinecone_filter(metadata_filter: Optional[MetadataFilter]) -> Optional[Dict[str, Any]]:
    if not metadata_filter:
        return None
    return {key: {"$eq": value} for key, value in metadata_filter.items()}


class PineconeVectorStore(VectorStore):
    """
    Vector store on a Pinecone index namespace.

    Usage:
        index = PineconeClient(api_key=...).Index("tariff-rag")
        store = PineconeVectorStore(index, corpus="tariff_chunks")
    """

    def __init__(self, index, corpus: str):
        self.index = index
        self.corpus = corpus

    @classmethod
    def from_api_key(cls, api_key: str, index_name: str, corpus: str) -> "PineconeVectorStore":
        pc = PineconeClient(api_key=api_key)
        return cls(pc.Index(index_name), corpus)

    def add(self, records: List[VectorRecord]) -> int:
        vectors = []
        for record in records:
            metadata = _clean_metadata(record.metadata)
            metadata["content"] = record.content
            vectors.append({
                "id": record.id,
                "values": list(record.embedding),
                "metadata": metadata,
            })

        try:
            for i in range(0, len(vectors), UPSERT_BATCH_SIZE):
                batch = vectors[i:i + UPSERT_BATCH_SIZE]
                self.index.upsert(vectors=batch, namespace=self.corpus)
        except Exception as e:
            raise VectorStoreError(f"Pinecone upsert into {self.corpus} failed: {e}") from e

        return len(vectors)

    def search(
        self,
        vector: List[float],
        k: int,
        metadata_filter: Optional[MetadataFilter] = None,
    ) -> List[SearchHit]:
        try:
            results = self.index.query(
                vector=list(vector),
                top_k=k,
                include_metadata=True,
                namespace=self.corpus,
                filter=_to_pinecone_filter(metadata_filter),
            )
        except Exception as e:
            raise VectorStoreError(f"Pinecone query on {self.corpus} failed: {e}") from e

        hits = []
        for match in results.matches:
            metadata = dict(match.metadata or {})
            content = metadata.pop("content", "")
            hits.append(SearchHit(
                id=match.id,
                content=content,
                metadata=metadata,
                similarity=float(match.score),
            ))
        return hits

    def delete(self, metadata_filter: MetadataFilter) -> int:
        try:
            self.index.delete(filter=_to_pinecone_filter(metadata_filter), namespace=self.corpus)
        except Exception as e:
            raise VectorStoreError(f"Pinecone delete in {self.corpus} failed: {e}") from e
        # Pinecone does not report how many vectors a filtered delete removed
        return 0

    def delete_other_versions(self, metadata_filter: MetadataFilter, keep_version: str) -> int:
        pinecone_filter = _to_pinecone_filter(
            {k: v for k, v in metadata_filter.items() if k != "version"}
        ) or {}
        pinecone_filter["version"] = {"$ne": keep_version}
        try:
            self.index.delete(filter=pinecone_filter, namespace=self.corpus)
        except Exception as e:
            raise VectorStoreError(f"Pinecone garbage collection in {self.corpus} failed: {e}") from e
        logger.info(f"Requested removal of superseded vectors in {self.corpus} (kept {keep_version})")
        return 0

    def count(self, metadata_filter: Optional[MetadataFilter] = None) -> int:
        try:
            if metadata_filter:
                stats = self.index.describe_index_stats(filter=_to_pinecone_filter(metadata_filter))
            else:
                stats = self.index.describe_index_stats()
        except Exception as e:
            raise VectorStoreError(f"Pinecone stats for {self.corpus} failed: {e}") from e

        namespaces = stats.namespaces or {}
        summary = namespaces.get(self.corpus)
        if summary is None:
            return 0
        return int(summary.vector_count)
