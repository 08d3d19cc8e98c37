"""
Document Ingestion

Turns downloaded source documents into committed index versions:
- DocumentFetcher: throttled HTTP access with timeouts
- TextExtractor: ordered PDF text extraction strategies
- TariffTableParser / ModelAssistedTableExtractor: rate table rows
- chunk_tariff_rows / chunk_chapter_text: retrieval units
- IndexWriter: all-or-nothing version commits
- IngestionPipeline: per-document glue

Note: Imports are lazy to avoid circular import issues with
tariff_rag.watchers. Use explicit imports from submodules when needed:
    from tariff_rag.ingestion.pipeline import IngestionPipeline
"""


def __getattr__(name):
    """Lazy import to avoid circular imports."""
    if name in ('DocumentFetcher', 'compute_hash'):
        from tariff_rag.ingestion.fetcher import DocumentFetcher, compute_hash
        return DocumentFetcher if name == 'DocumentFetcher' else compute_hash

    if name in ('TextExtractor', 'clean_chapter_text'):
        from tariff_rag.ingestion.text_extractor import TextExtractor, clean_chapter_text
        return TextExtractor if name == 'TextExtractor' else clean_chapter_text

    if name in ('TariffTableParser', 'TariffRow', 'ParseReport'):
        from tariff_rag.ingestion.tariff_parser import ParseReport, TariffRow, TariffTableParser
        mapping = {
            'TariffTableParser': TariffTableParser,
            'TariffRow': TariffRow,
            'ParseReport': ParseReport,
        }
        return mapping[name]

    if name == 'ModelAssistedTableExtractor':
        from tariff_rag.ingestion.model_fallback import ModelAssistedTableExtractor
        return ModelAssistedTableExtractor

    if name in ('Chunk', 'chunk_tariff_rows', 'chunk_chapter_text'):
        from tariff_rag.ingestion.chunker import Chunk, chunk_chapter_text, chunk_tariff_rows
        mapping = {
            'Chunk': Chunk,
            'chunk_tariff_rows': chunk_tariff_rows,
            'chunk_chapter_text': chunk_chapter_text,
        }
        return mapping[name]

    if name in ('IndexWriter', 'VersionInfo', 'CommitReport'):
        from tariff_rag.ingestion.index_writer import CommitReport, IndexWriter, VersionInfo
        mapping = {
            'IndexWriter': IndexWriter,
            'VersionInfo': VersionInfo,
            'CommitReport': CommitReport,
        }
        return mapping[name]

    if name in ('IngestionPipeline', 'DocumentOutcome'):
        from tariff_rag.ingestion.pipeline import DocumentOutcome, IngestionPipeline
        return IngestionPipeline if name == 'IngestionPipeline' else DocumentOutcome

    raise AttributeError(f"module 'tariff_rag.ingestion' has no attribute '{name}'")
