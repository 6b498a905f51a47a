"""
Settings schema (``procurement_config.schema``).

Frozen dataclasses describing one settings set.  Every field has the
default the shipped ``default.yaml`` uses, so ``ProcurementSettings()``
is a valid configuration on its own.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from procurement_engines.progress import CompletionMode


@dataclass(frozen=True)
class ComparisonSettings:
    base_currency: str = "PEN"
    min_winner_coverage: Decimal = Decimal("0.999")


@dataclass(frozen=True)
class ProgressSettings:
    epsilon: Decimal = Decimal("0.0001")
    completion_threshold: Decimal = Decimal("0.999")
    completion_mode: CompletionMode = CompletionMode.EITHER


@dataclass(frozen=True)
class OrderSettings:
    igv_rate: Decimal = Decimal("0.18")
    discount_rate: Decimal = Decimal("0")
    order_number_suffix: str = "/CP"
    sequence_padding: int = 3
    default_supplier_name: str = "Proveedor"


@dataclass(frozen=True)
class ProcurementSettings:
    """One complete, validated settings set."""

    settings_id: str = "default"
    version: int = 1
    comparison: ComparisonSettings = field(default_factory=ComparisonSettings)
    progress: ProgressSettings = field(default_factory=ProgressSettings)
    orders: OrderSettings = field(default_factory=OrderSettings)
    checksum: str = ""
