"""
Tests for identifier and label normalization.

Tests cover:
- Order/guide number normalization and separator-insensitive guide keys
- Item code canonicalization (trailing zeros, rounding, non-numeric codes)
- Description normalization (case, accents, punctuation)
- Supplier grouping keys from variant labels
"""

import pytest

from procurement_kernel.domain.identifiers import (
    collapse_guide_number_key,
    extract_base_supplier_label,
    format_guide_number,
    normalize_description,
    normalize_identifier,
    normalize_item_code,
    normalize_supplier_key,
)


class TestIdentifiers:
    def test_normalize_identifier(self):
        assert normalize_identifier("  001/cp ") == "001/CP"
        assert normalize_identifier("a   b") == "A B"
        assert normalize_identifier("   ") is None
        assert normalize_identifier(None) is None

    def test_format_guide_number_tightens_separators(self):
        assert format_guide_number(" 001 - 2345 ") == "001-2345"
        assert format_guide_number("eg01 / 77") == "EG01/77"
        assert format_guide_number("") is None

    @pytest.mark.parametrize("variant", ["001-2345", "001 2345", "001/2345", "001.2345", "0012345"])
    def test_guide_key_ignores_separators(self, variant):
        assert collapse_guide_number_key(variant) == "0012345"

    def test_guide_key_blank(self):
        assert collapse_guide_number_key(" - ") is None


class TestItemCodes:
    """Numeric codes lose trailing zeros; everything else is trimmed."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("1.10", "1.1"),
            ("02", "2"),
            ("1.0", "1"),
            ("10", "10"),
            ("1.005", "1.01"),
            ("-0", "0"),
            (" A-1 ", "A-1"),
        ],
    )
    def test_normalize_item_code(self, raw, expected):
        assert normalize_item_code(raw) == expected

    def test_blank_code(self):
        assert normalize_item_code("  ") is None
        assert normalize_item_code(None) is None


class TestDescriptions:
    def test_normalize_description(self):
        assert normalize_description("  Cable  THW-14 ÁCIDO ") == "cable thw 14 acido"

    def test_empty_description(self):
        assert normalize_description(None) == ""


class TestSupplierKeys:
    """Variant suffixes collapse onto one supplier key."""

    def test_variants_share_key(self):
        assert normalize_supplier_key("Acme - Lote 1") == "ACME"
        assert normalize_supplier_key("Acme - Lote 2") == "ACME"

    def test_different_supplier_differs(self):
        assert normalize_supplier_key("Acme Corp") == "ACME CORP"

    def test_hyphen_without_spaces_is_not_a_variant(self):
        assert extract_base_supplier_label("Acme-Lote") == "Acme-Lote"

    def test_blank_label_uses_default_key(self):
        assert normalize_supplier_key("") == "PROVEEDOR"
