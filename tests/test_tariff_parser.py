"""
Unit tests for the heuristic tariff table parser.

Tests:
- Header detection (spaced and concatenated)
- Row parsing (rates, placeholders, dotted codes, clamping)
- Failure-rate gate at the 30% boundary
- Hand-off to the model-assisted fallback
"""

import pytest
from unittest.mock import Mock

HEADER = "HS CODE  DESCRIPTION  CD  SD  VAT  AIT  RD  AT  TTI"
GOOD_ROW = "61091000 T-shirts, singlets and other vests, knitted, of cotton 25 20 15 5 3 5 89.32"


def _table(good: int, bad: int) -> str:
    good_rows = [f"6109{i:04d} Knitted cotton garment number {i} 25 20 15 5 3 5 89.32" for i in range(good)]
    bad_rows = [f"Note {i}: this line carries no tariff code at all" for i in range(bad)]
    return "\n".join([HEADER] + good_rows + bad_rows)


class TestHeaderDetection:
    """Tests for locating the table header."""

    def test_spaced_header(self, sample_rate_text):
        """A spaced header is found and rows after it are parsed."""
        from tariff_rag.ingestion.tariff_parser import TariffTableParser

        report = TariffTableParser().parse(sample_rate_text)

        assert report.header_line.startswith("HS CODE")
        assert len(report.rows) == 5

    def test_concatenated_header(self):
        """Headers extracted without spaces are still recognised."""
        from tariff_rag.ingestion.tariff_parser import TariffTableParser

        text = "HscodeTARRIF_DESCRIPTIONCDSDVATAITRDATTTI\n" + GOOD_ROW
        report = TariffTableParser().parse(text)

        assert len(report.rows) == 1
        assert report.rows[0].hs_code == "61091000"

    def test_missing_header_raises(self):
        """No header line means a structural failure."""
        from tariff_rag.errors import HeaderNotFoundError, StructuralError
        from tariff_rag.ingestion.tariff_parser import TariffTableParser

        with pytest.raises(HeaderNotFoundError) as exc_info:
            TariffTableParser().parse(GOOD_ROW)

        assert isinstance(exc_info.value, StructuralError)

    def test_repeated_page_headers_are_skipped(self):
        """Headers repeated on later pages do not count as failed rows."""
        from tariff_rag.ingestion.tariff_parser import TariffTableParser

        text = "\n".join([HEADER, GOOD_ROW, HEADER, GOOD_ROW.replace("61091000", "61099000")])
        report = TariffTableParser().parse(text)

        assert report.total_rows == 2
        assert report.failed_rows == 0


class TestParseRow:
    """Tests for single-line row parsing."""

    def test_seven_rates(self):
        """All seven rates land in the right fields."""
        from tariff_rag.ingestion.tariff_parser import parse_row

        row = parse_row(GOOD_ROW)

        assert row.hs_code == "61091000"
        assert row.description == "T-shirts, singlets and other vests, knitted, of cotton"
        assert row.rates() == {
            "cd": 25.0, "sd": 20.0, "vat": 15.0, "ait": 5.0, "rd": 3.0, "at": 5.0, "tti": 89.32,
        }

    def test_dotted_code_is_normalized(self):
        """6109.10.00 is stored as 61091000."""
        from tariff_rag.ingestion.tariff_parser import parse_row

        row = parse_row("6109.10.00 T-shirts of cotton 25 20 15 5 3 5 89.32")

        assert row.hs_code == "61091000"

    def test_placeholder_rates_become_zero(self):
        """Dash placeholders parse as zero."""
        from tariff_rag.ingestion.tariff_parser import parse_row

        row = parse_row("62052000 Men's shirts of cotton 25 - 15 5 - 5 55.5")

        assert row.sd == 0.0
        assert row.rd == 0.0
        assert row.tti == 55.5

    def test_short_rate_run_is_padded(self):
        """Missing trailing rates are filled with zeros."""
        from tariff_rag.ingestion.tariff_parser import parse_row

        row = parse_row("62034200 Men's trousers of cotton 25 20")

        assert row.cd == 25.0
        assert row.sd == 20.0
        assert row.tti == 0.0

    def test_rates_are_clamped(self):
        """Out of range rates are clamped into NUMERIC(8,3)."""
        from tariff_rag.ingestion.tariff_parser import MAX_RATE, parse_row

        row = parse_row("62034200 Men's trousers of cotton 250000 -5 15 5 3 5 89.32")

        assert row.cd == MAX_RATE
        assert row.sd == 0.0

    @pytest.mark.parametrize("line", [
        "Chapter 61 Articles of apparel, knitted or crocheted",
        "6109 T-shirts 25 20 15 5 3 5 89.32",
        "61091000 25 20 15 5 3 5 89.32",
        "61091000 T-shirts of cotton",
    ])
    def test_invalid_lines(self, line):
        """Lines without a code, description or rates are rejected."""
        from tariff_rag.ingestion.tariff_parser import parse_row

        assert parse_row(line) is None

    def test_tariff_row_rejects_bad_code(self):
        """TariffRow validates its own code."""
        from tariff_rag.ingestion.tariff_parser import TariffRow

        with pytest.raises(ValueError):
            TariffRow(hs_code="6109", description="T-shirts")


class TestFailureRateGate:
    """Tests for the 30% structural drift threshold."""

    def test_exactly_thirty_percent_passes(self):
        """3 failed rows out of 10 is still accepted."""
        from tariff_rag.ingestion.tariff_parser import TariffTableParser

        report = TariffTableParser().parse(_table(good=7, bad=3))

        assert report.total_rows == 10
        assert report.failed_rows == 3
        assert len(report.rows) == 7
        assert report.method == "heuristic"

    def test_forty_percent_raises(self):
        """4 failed rows out of 10 is structural drift."""
        from tariff_rag.errors import StructuralDriftError
        from tariff_rag.ingestion.tariff_parser import TariffTableParser

        with pytest.raises(StructuralDriftError) as exc_info:
            TariffTableParser().parse(_table(good=6, bad=4))

        assert exc_info.value.failed_rows == 4
        assert exc_info.value.total_rows == 10
        assert exc_info.value.failure_rate == pytest.approx(0.4)

    def test_forty_percent_uses_fallback(self):
        """Structural drift hands the raw text to the fallback extractor."""
        from tariff_rag.ingestion.tariff_parser import ParseReport, TariffRow, TariffTableParser

        text = _table(good=6, bad=4)
        fallback = Mock()
        fallback.extract.return_value = ParseReport(
            rows=[TariffRow(hs_code="61091000", description="T-shirts", cd=25)],
            total_rows=1,
            method="model",
        )

        report = TariffTableParser().parse_with_fallback(text, fallback=fallback)

        fallback.extract.assert_called_once_with(text)
        assert report.method == "model"

    def test_below_threshold_does_not_use_fallback(self):
        """A healthy parse never calls the fallback."""
        from tariff_rag.ingestion.tariff_parser import TariffTableParser

        fallback = Mock()
        report = TariffTableParser().parse_with_fallback(_table(good=7, bad=3), fallback=fallback)

        fallback.extract.assert_not_called()
        assert len(report.rows) == 7

    def test_no_fallback_configured(self):
        """Structural failure without a fallback is terminal for the item."""
        from tariff_rag.errors import NoValidTariffDataError
        from tariff_rag.ingestion.tariff_parser import TariffTableParser

        with pytest.raises(NoValidTariffDataError):
            TariffTableParser().parse_with_fallback("no header here\n" + GOOD_ROW)
