"""
Tariff RAG - tariff document ingestion and retrieval-augmented HS classification.

Subpackages:
- watchers: listing page link resolution, change tracking, scheduling
- ingestion: download, text extraction, table parsing, chunking, index commits
- stores: vector index, rate table and document version persistence
- llm: embedding and text generation clients, strict output schemas
- rag: query expansion, cascading retrieval, candidate ranking, classification
"""

__version__ = "1.0.0"
