"""Tests for unit-of-measure aliases and same-dimension conversion."""

from decimal import Decimal

import pytest

from procurement_kernel.domain.units import (
    canonical_unit,
    convert_quantity,
    convert_unit_price,
)


class TestCanonicalUnit:
    @pytest.mark.parametrize(
        "raw, expected",
        [("Mts.", "M"), ("und", "EA"), ("Pulgadas", "IN"), ("m2", "M2"), ("kg", "KG")],
    )
    def test_aliases(self, raw, expected):
        assert canonical_unit(raw) == expected

    def test_blank(self):
        assert canonical_unit(None) is None
        assert canonical_unit(" . ") is None


class TestConversion:
    def test_centimetres_to_metres(self):
        result = convert_quantity(Decimal("250"), "cm", "m")
        assert result.converted
        assert result.value == Decimal("2.5")

    def test_inches_to_feet(self):
        assert convert_quantity(Decimal("12"), "pulg", "pie").value == Decimal("1")

    def test_mixed_dimensions_unchanged(self):
        result = convert_quantity(Decimal("5"), "m", "m2")
        assert not result.converted
        assert result.value == Decimal("5")

    def test_unknown_unit_unchanged(self):
        assert not convert_quantity(Decimal("5"), "kg", "m").converted

    def test_same_unit_unchanged(self):
        assert not convert_quantity(Decimal("5"), "mts", "metro").converted

    def test_unit_price_scales_inversely(self):
        # 2 per centimetre is 200 per metre
        assert convert_unit_price(Decimal("2"), "cm", "m").value == Decimal("200")
