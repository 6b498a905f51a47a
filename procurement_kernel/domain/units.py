"""
Unit-of-measure aliases and same-dimension conversion.

Responsibility:
    Map the unit spellings found in supplier sheets and budgets ("und",
    "mts", "pulg", ...) to canonical codes and convert quantities and unit
    prices between units of the same dimension.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Invariants enforced:
    - Conversion only happens between units of the same dimension
      (count, length, area).  Unknown or mixed-dimension pairs are returned
      unchanged with ``converted = False``.
    - Factors are exact Decimals.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class UnitDimension(str, Enum):
    COUNT = "count"
    LENGTH = "length"
    AREA = "area"


@dataclass(frozen=True)
class UnitDefinition:
    code: str
    dimension: UnitDimension
    base_value: Decimal


UNIT_DEFINITIONS: dict[str, UnitDefinition] = {
    d.code: d
    for d in (
        UnitDefinition("EA", UnitDimension.COUNT, Decimal("1")),
        UnitDefinition("M", UnitDimension.LENGTH, Decimal("1")),
        UnitDefinition("CM", UnitDimension.LENGTH, Decimal("0.01")),
        UnitDefinition("MM", UnitDimension.LENGTH, Decimal("0.001")),
        UnitDefinition("KM", UnitDimension.LENGTH, Decimal("1000")),
        UnitDefinition("IN", UnitDimension.LENGTH, Decimal("0.0254")),
        UnitDefinition("FT", UnitDimension.LENGTH, Decimal("0.3048")),
        UnitDefinition("M2", UnitDimension.AREA, Decimal("1")),
    )
}

UNIT_ALIASES: dict[str, str] = {
    "unidad": "EA",
    "unidades": "EA",
    "und": "EA",
    "u": "EA",
    "unit": "EA",
    "pieza": "EA",
    "pza": "EA",
    "ea": "EA",
    "m": "M",
    "metro": "M",
    "metros": "M",
    "mt": "M",
    "mts": "M",
    "km": "KM",
    "kilometro": "KM",
    "kilometros": "KM",
    "mm": "MM",
    "milimetro": "MM",
    "milimetros": "MM",
    "cm": "CM",
    "centimetro": "CM",
    "centimetros": "CM",
    "pulg": "IN",
    "pulgada": "IN",
    "pulgadas": "IN",
    "inch": "IN",
    "in": "IN",
    "pies": "FT",
    "pie": "FT",
    "ft": "FT",
    "m2": "M2",
    "mt2": "M2",
}

_NON_ALNUM = re.compile(r"[^a-z0-9]")


@dataclass(frozen=True)
class Converted:
    """A converted amount and whether a factor was actually applied."""

    value: Decimal
    converted: bool


def canonical_unit(value: str | None) -> str | None:
    """Canonical unit code for ``value``; unknown units come back upper-cased."""
    if not value:
        return None
    key = _NON_ALNUM.sub("", value.strip().lower())
    if not key:
        return None
    return UNIT_ALIASES.get(key, key.upper())


def _definitions(
    from_unit: str | None, to_unit: str | None
) -> tuple[UnitDefinition, UnitDefinition] | None:
    from_key = canonical_unit(from_unit)
    to_key = canonical_unit(to_unit)
    if not from_key or not to_key or from_key == to_key:
        return None
    from_def = UNIT_DEFINITIONS.get(from_key)
    to_def = UNIT_DEFINITIONS.get(to_key)
    if from_def is None or to_def is None or from_def.dimension != to_def.dimension:
        return None
    return from_def, to_def


def convert_quantity(
    quantity: Decimal, from_unit: str | None, to_unit: str | None
) -> Converted:
    """Express ``quantity`` measured in ``from_unit`` in ``to_unit``."""
    pair = _definitions(from_unit, to_unit)
    if pair is None:
        return Converted(quantity, False)
    from_def, to_def = pair
    return Converted(quantity * from_def.base_value / to_def.base_value, True)


def convert_unit_price(
    price: Decimal, from_unit: str | None, to_unit: str | None
) -> Converted:
    """Express a price per ``from_unit`` as a price per ``to_unit``."""
    pair = _definitions(from_unit, to_unit)
    if pair is None:
        return Converted(price, False)
    from_def, to_def = pair
    return Converted(price * to_def.base_value / from_def.base_value, True)
