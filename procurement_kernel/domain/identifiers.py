"""
Text normalization for identifiers, descriptions and supplier labels.

Responsibility:
    Canonical forms used for comparisons that must ignore cosmetic
    differences: order and guide numbers, item codes, free-text
    descriptions and supplier names.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Invariants enforced:
    - Every normalizer returns ``None`` for blank input so that "absent"
      never compares equal to a real value.
    - ``normalize_item_code`` treats "1.10" and "1.1" as the same code.
"""

from __future__ import annotations

import re
import unicodedata
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

_NUMERIC_CODE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")
_WHITESPACE = re.compile(r"\s+")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_GUIDE_SEPARATOR = re.compile(r"\s*([\-_/])\s*")
_GUIDE_COLLAPSE = re.compile(r"[\s\-_/.,\\:;|+\u00b7]+")

DEFAULT_SUPPLIER_KEY = "PROVEEDOR"
SUPPLIER_VARIANT_SEPARATOR = " - "


def normalize_identifier(value: str | None) -> str | None:
    """Trim, collapse internal whitespace and upper-case."""
    if value is None:
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    return _WHITESPACE.sub(" ", trimmed).upper()


def format_guide_number(value: str | None) -> str | None:
    """Normalized guide number with no spaces around ``-``, ``_`` or ``/``."""
    normalized = normalize_identifier(value)
    if normalized is None:
        return None
    return _GUIDE_SEPARATOR.sub(r"\1", normalized)


def collapse_guide_number_key(value: str | None) -> str | None:
    """Duplicate-detection key: the guide number with every separator removed."""
    normalized = normalize_identifier(value)
    if normalized is None:
        return None
    return _GUIDE_COLLAPSE.sub("", normalized) or None


def normalize_item_code(value: str | int | Decimal | None) -> str | None:
    """Canonical item code.

    Numeric codes are rounded to two decimals and lose trailing zeros
    (``"1.10"`` -> ``"1.1"``, ``"02"`` -> ``"2"``).  Anything else is
    returned trimmed.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if not _NUMERIC_CODE.match(text):
        return text
    try:
        number = Decimal(text).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return text
    rendered = format(number.normalize(), "f")
    return "0" if rendered in ("-0", "0") else rendered


def strip_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_description(value: str | None) -> str:
    """Lower-case, accent-free, alphanumeric-only form of a description."""
    if not value:
        return ""
    text = _NON_ALNUM.sub(" ", strip_accents(value.lower()))
    return text.strip()


def normalize_unit_label(value: str | None) -> str:
    return (value or "").strip().lower()


def extract_base_supplier_label(value: str | None) -> str:
    """Supplier label without its variant suffix ("Acme - Lote 1" -> "Acme")."""
    if not value:
        return ""
    head = value.split(SUPPLIER_VARIANT_SEPARATOR, 1)[0]
    return head.strip() or value.strip()


def normalize_supplier_key(value: str | None) -> str:
    """Grouping key for supplier labels; blank labels share a default key."""
    base = extract_base_supplier_label(value)
    key = _WHITESPACE.sub(" ", base).upper()
    return key or DEFAULT_SUPPLIER_KEY
