"""
Retrieval Engine

Cascading vector search that assembles a minimum-size context set.

Stages (each runs only while the running total is below its floor):
1. primary corpus (legal chapters), k=15, always
2. secondary corpus (tariff chunks), k=10, floor 5
3. each query variant against the secondary corpus, k=5, floor 8
4. broad generic query against the secondary corpus, k=8, floor 5

Stages are additive and deduplicate by chunk id; every hit is tagged with the
corpus and stage that produced it. A failing stage (embedding or vector store
error) is logged and skipped. Only a completely empty result is an error.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from tariff_rag.errors import NoRelevantContextError, TariffRagError
from tariff_rag.rag.query_builder import ExpandedQuery
from tariff_rag.stores.base import VectorStore

logger = logging.getLogger(__name__)

PRIMARY_K = 15
SECONDARY_K = 10
VARIANT_K = 5
BROAD_K = 8

SECONDARY_FLOOR = 5
VARIANT_FLOOR = 8
BROAD_FLOOR = 5


@dataclass
class ScoredChunk:
    """A retrieved chunk with its provenance."""
    id: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    similarity: float = 0.0
    corpus: str = ""
    stage: str = ""

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "similarity": round(self.similarity, 4),
            "corpus": self.corpus,
            "stage": self.stage,
            "metadata": self.metadata,
        }


@dataclass
class RetrievalStage:
    """One search in the cascade. `floor=None` means the stage always runs."""
    name: str
    store: VectorStore
    text: str
    k: int
    floor: Optional[int] = None


class RetrievalEngine:
    """
    Usage:
        engine = RetrievalEngine(embedder, chapter_store, tariff_store)
        chunks = engine.search(expander.expand(product))
    """

    def __init__(
        self,
        embedder,
        primary_store: VectorStore,
        secondary_store: VectorStore,
        primary_k: int = PRIMARY_K,
        secondary_k: int = SECONDARY_K,
        variant_k: int = VARIANT_K,
        broad_k: int = BROAD_K,
    ):
        self.embedder = embedder
        self.primary_store = primary_store
        self.secondary_store = secondary_store
        self.primary_k = primary_k
        self.secondary_k = secondary_k
        self.variant_k = variant_k
        self.broad_k = broad_k

    def stages(self, query: ExpandedQuery) -> List[RetrievalStage]:
        stages = [
            RetrievalStage("primary", self.primary_store, query.text, self.primary_k),
            RetrievalStage("secondary", self.secondary_store, query.text, self.secondary_k, SECONDARY_FLOOR),
        ]
        for index, variant in enumerate(query.variants):
            stages.append(RetrievalStage(
                f"variant_{index}", self.secondary_store, variant, self.variant_k, VARIANT_FLOOR,
            ))
        if query.broad_text:
            stages.append(RetrievalStage("broad", self.secondary_store, query.broad_text, self.broad_k, BROAD_FLOOR))
        return stages

    def search(self, query: ExpandedQuery) -> List[ScoredChunk]:
        """
        Raises:
            NoRelevantContextError: every stage came back empty or failed
        """
        results: List[ScoredChunk] = []
        seen = set()
        vectors: Dict[str, List[float]] = {}

        for stage in self.stages(query):
            if stage.floor is not None and len(results) >= stage.floor:
                continue
            if not stage.text.strip():
                continue

            try:
                if stage.text not in vectors:
                    vectors[stage.text] = self.embedder.embed_query(stage.text)
                hits = stage.store.search(vectors[stage.text], stage.k)
            except TariffRagError as e:
                logger.warning(f"Retrieval stage {stage.name} failed, continuing: {e}")
                continue

            added = 0
            for hit in hits:
                if hit.id in seen:
                    continue
                seen.add(hit.id)
                results.append(ScoredChunk(
                    id=hit.id,
                    content=hit.content,
                    metadata=hit.metadata,
                    similarity=hit.similarity,
                    corpus=stage.store.corpus,
                    stage=stage.name,
                ))
                added += 1
            logger.info(f"Stage {stage.name} ({stage.store.corpus}) added {added} of {len(hits)} hits")

        if not results:
            raise NoRelevantContextError("No relevant context found in any corpus")

        logger.info(f"Retrieved {len(results)} chunks")
        return results
