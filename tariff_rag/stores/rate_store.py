"""
Tariff rate store.

Authoritative per-code rates used to enrich classification candidates.
`get_rates` answers only from the currently active rate-table version, so
rows of an uncommitted version are never visible. Before any version record
exists it falls back to the most recently written row for that code.
"""

import logging
from typing import Iterable, List, Optional

from tariff_rag.db import SessionFactory, session_scope
from tariff_rag.models import DocumentVersionRecord, TariffRateRow
from tariff_rag.models.tariff_rate import RATE_COLUMNS

logger = logging.getLogger(__name__)

RATE_TABLE_KIND = "rate_table"


class RateStore:
    """Read/write access to `customs_tariff_rates`."""

    def __init__(self, session_factory: SessionFactory, insert_batch_size: int = 100):
        self.session_factory = session_factory
        self.insert_batch_size = insert_batch_size

    def _active_version(self, session) -> Optional[str]:
        record = (
            session.query(DocumentVersionRecord)
            .filter(
                DocumentVersionRecord.document_kind == RATE_TABLE_KIND,
                DocumentVersionRecord.is_active.is_(True),
            )
            .order_by(DocumentVersionRecord.processed_at.desc())
            .first()
        )
        return record.version if record else None

    def get_rates(self, hs_code: str) -> Optional[TariffRateRow]:
        """Keyed lookup by 8-digit code. Returns None when not found."""
        with session_scope(self.session_factory) as session:
            query = session.query(TariffRateRow).filter(TariffRateRow.hs_code == hs_code)
            version = self._active_version(session)
            if version:
                return query.filter(TariffRateRow.document_version == version).first()
            return query.order_by(TariffRateRow.created_at.desc(), TariffRateRow.id.desc()).first()

    def replace_version(self, rows: Iterable, version: str) -> int:
        """
        Write all rows for a version, replacing anything already stored for it.

        `rows` are parser TariffRow objects (hs_code, description and the
        seven rate attributes).
        """
        rows = list(rows)
        self.delete_version(version)

        # Last occurrence wins when the source repeats a code
        unique = {}
        for row in rows:
            unique[row.hs_code] = row

        written = 0
        items = list(unique.values())
        for i in range(0, len(items), self.insert_batch_size):
            batch = items[i:i + self.insert_batch_size]
            with session_scope(self.session_factory) as session:
                for row in batch:
                    session.add(TariffRateRow(
                        hs_code=row.hs_code,
                        description=row.description,
                        document_version=version,
                        **{name: getattr(row, name) for name in RATE_COLUMNS},
                    ))
            written += len(batch)
        logger.info(f"Stored {written} tariff rates for version {version}")
        return written

    def delete_version(self, version: str) -> int:
        with session_scope(self.session_factory) as session:
            return (
                session.query(TariffRateRow)
                .filter(TariffRateRow.document_version == version)
                .delete(synchronize_session=False)
            )

    def delete_other_versions(self, keep_version: str) -> int:
        with session_scope(self.session_factory) as session:
            deleted = (
                session.query(TariffRateRow)
                .filter(TariffRateRow.document_version != keep_version)
                .delete(synchronize_session=False)
            )
        if deleted:
            logger.info(f"Removed {deleted} superseded tariff rates (kept {keep_version})")
        return deleted

    def count(self, version: Optional[str] = None) -> int:
        with session_scope(self.session_factory) as session:
            query = session.query(TariffRateRow)
            if version:
                query = query.filter(TariffRateRow.document_version == version)
            return query.count()

    def versions(self) -> List[str]:
        with session_scope(self.session_factory) as session:
            return sorted({v for (v,) in session.query(TariffRateRow.document_version).distinct()})
