"""
Customs tariff rate rows.

Rates are stored as NUMERIC(8,3); the parser clamps values to
[0, 99999.999] before they get here.
"""

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import Column, DateTime, Integer, Numeric, String, Text, UniqueConstraint

from tariff_rag.db import Base

RATE_COLUMNS = ("cd", "sd", "vat", "ait", "rd", "at", "tti")


class TariffRateRow(Base):
    """Authoritative rates for one 8-digit HS code in one document version."""
    __tablename__ = "customs_tariff_rates"
    __table_args__ = (
        UniqueConstraint('hs_code', 'document_version', name='uq_tariff_rate_code_version'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    hs_code = Column(String(8), nullable=False, index=True)
    description = Column(Text, nullable=False)

    cd = Column(Numeric(8, 3), nullable=False, default=0)  # Customs Duty
    sd = Column(Numeric(8, 3), nullable=False, default=0)  # Supplementary Duty
    vat = Column(Numeric(8, 3), nullable=False, default=0)  # Value Added Tax
    ait = Column(Numeric(8, 3), nullable=False, default=0)  # Advance Income Tax
    rd = Column(Numeric(8, 3), nullable=False, default=0)  # Regulatory Duty
    at = Column(Numeric(8, 3), nullable=False, default=0)  # Advance Tax
    tti = Column(Numeric(8, 3), nullable=False, default=0)  # Total Tax Incidence

    document_version = Column(String(50), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def rates(self) -> Dict[str, float]:
        return {name: float(getattr(self, name) or 0) for name in RATE_COLUMNS}

    def as_dict(self) -> Dict[str, Any]:
        return {
            "hs_code": self.hs_code,
            "description": self.description,
            **self.rates(),
            "document_version": self.document_version,
        }
