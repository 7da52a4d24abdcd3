"""
Tests for OCR value objects and tax identifier checks.

Covers:
- ExtractedField / ExtractionResult / OCRThresholds convert float, int and
  string inputs to Decimal at construction
- Non-numeric and out-of-range confidences rejected
- is_valid_tax_id: NIF, NIE and CIF control characters, separators,
  malformed input
"""

from decimal import Decimal

import pytest

from invoice_kernel.domain.ocr import ExtractedField, ExtractionResult, OCRThresholds
from invoice_kernel.domain.tax_id import is_valid_tax_id, normalize_tax_id


# =========================================================================
# Confidence normalisation
# =========================================================================


class TestConfidenceConversion:

    def test_float_confidence_becomes_decimal(self):
        field = ExtractedField("total", "10.00", 0.9)

        assert isinstance(field.confidence, Decimal)
        assert field.confidence == Decimal("0.9")

    @pytest.mark.parametrize("raw", [1, "0.85", Decimal("0.85")])
    def test_other_numeric_inputs(self, raw):
        assert isinstance(ExtractedField("total", "1", raw).confidence, Decimal)

    @pytest.mark.parametrize("raw", [1.5, -0.1, "NaN", "high", None])
    def test_invalid_confidence_rejected(self, raw):
        with pytest.raises(ValueError):
            ExtractedField("total", "10.00", raw)

    def test_result_level_values_converted(self):
        result = ExtractionResult(
            engine="primary",
            fields=[ExtractedField("total", "10.00", 0.8)],
            overall_confidence=0.75,
            cost_estimate=0.012,
            line_amounts=[4.5, "5.50"],
        )

        assert result.overall_confidence == Decimal("0.75")
        assert result.cost_estimate == Decimal("0.012")
        assert result.line_amounts == (Decimal("4.5"), Decimal("5.50"))
        assert result.lines_total() == Decimal("10.00")
        assert isinstance(result.fields, tuple)

    def test_no_line_amounts_has_no_total(self):
        assert ExtractionResult(engine="primary").lines_total() is None

    def test_thresholds_accept_floats(self):
        t = OCRThresholds(high=0.95, medium_high=0.8, medium=0.6, field_floor=0.7)
        assert t.high == Decimal("0.95")
        assert t.medium == Decimal("0.6")


# =========================================================================
# Tax identifiers
# =========================================================================


class TestTaxId:

    @pytest.mark.parametrize("value", [
        "12345678Z",        # NIF
        "X1234567L",        # NIE
        "B12345674",        # CIF, numeric control
        "B1234567D",        # CIF, letter control
        "b-1234567.4",      # separators and lower case
        " 12345678 z ",
    ])
    def test_valid(self, value):
        assert is_valid_tax_id(value)

    @pytest.mark.parametrize("value", [
        "12345678A",        # wrong NIF letter
        "B12345678",        # wrong CIF control
        "X1234567T",        # wrong NIE letter
        "I12345674",        # not an entity letter
        "1234567Z",         # too short
        "B1234A674",
        "",
        None,
        12345678,
    ])
    def test_invalid(self, value):
        assert not is_valid_tax_id(value)

    def test_normalize(self):
        assert normalize_tax_id("b-12.345 674") == "B12345674"
