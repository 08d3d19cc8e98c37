"""
Model service clients (embedding, generation) and strict output schemas.
"""

from tariff_rag.llm.embeddings import OpenAIEmbedder
from tariff_rag.llm.generator import OpenAIGenerator
from tariff_rag.llm.schemas import decode_json_payload

__all__ = [
    'OpenAIEmbedder',
    'OpenAIGenerator',
    'decode_json_payload',
]
