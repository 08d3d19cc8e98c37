"""
Embedding service client.

OpenAI text-embedding-3-small at 1536 dimensions. A batch of texts goes out
as one request; callers are responsible for keeping batches small.
"""

import logging
from typing import List, Optional

from openai import OpenAI

from tariff_rag.errors import EmbeddingError

logger = logging.getLogger(__name__)

EMBEDDING_MODEL = "text-embedding-3-small"
EMBEDDING_DIMENSION = 1536


class OpenAIEmbedder:
    """
    Usage:
        embedder = OpenAIEmbedder(api_key=settings.openai_api_key)
        vectors = embedder.embed_documents(["chunk one", "chunk two"])
        query_vector = embedder.embed_query("cotton t-shirt")
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = EMBEDDING_MODEL,
        dimensions: int = EMBEDDING_DIMENSION,
        timeout: float = 60,
        client: Optional[OpenAI] = None,
    ):
        self.model = model
        self.dimensions = dimensions
        self.client = client or OpenAI(api_key=api_key, timeout=timeout)

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        try:
            response = self.client.embeddings.create(
                model=self.model,
                input=texts,
                dimensions=self.dimensions,
            )
        except Exception as e:
            raise EmbeddingError(f"Embedding request failed for {len(texts)} text(s): {e}") from e

        vectors = [item.embedding for item in sorted(response.data, key=lambda d: d.index)]
        if len(vectors) != len(texts):
            raise EmbeddingError(f"Expected {len(texts)} embeddings, got {len(vectors)}")
        return vectors

    def embed_query(self, text: str) -> List[float]:
        return self.embed_documents([text])[0]
