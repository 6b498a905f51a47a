"""
Immutable document DTOs.

Responsibility:
    The value objects exchanged between the persistence module, the pure
    engines and the workbench: baseline items, quotations with their offer
    lines, purchase orders and deliveries.

Architecture position:
    Kernel > Domain -- frozen dataclasses, zero I/O.  ORM models convert to
    and from these via ``to_dto()``.

Invariants enforced:
    - Every monetary or quantity field is ``Decimal`` (or ``None`` when the
      source left it blank).
    - Offer, order and delivery lines reference baseline items by id only.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from procurement_kernel.domain.identifiers import (
    extract_base_supplier_label,
    normalize_item_code,
    normalize_supplier_key,
)
from procurement_kernel.domain.values import ZERO


def price_from(
    unit_price: Decimal | None,
    quantity: Decimal | None,
    total_price: Decimal | None,
) -> Decimal | None:
    """Line amount: the explicit total when present, else unit price times quantity."""
    if total_price is not None:
        return total_price
    if unit_price is not None and quantity is not None:
        return unit_price * quantity
    return None


@dataclass(frozen=True)
class QuotationProcess:
    """A procurement event grouping one baseline and its supplier quotations."""

    id: UUID
    name: str
    base_currency: str = "PEN"
    code: str | None = None


@dataclass(frozen=True)
class BaselineItem:
    """One required line of the owner's budget."""

    id: UUID
    process_id: UUID
    description: str
    unit: str | None
    required_quantity: Decimal
    reference_unit_price: Decimal | None = None
    reference_total_price: Decimal | None = None
    sheet_name: str | None = None
    section_path: str | None = None
    item_code: str | None = None
    row_order: int | None = None

    @property
    def normalized_code(self) -> str | None:
        return normalize_item_code(self.item_code)

    @property
    def reference_total(self) -> Decimal | None:
        return price_from(
            self.reference_unit_price,
            self.required_quantity,
            self.reference_total_price,
        )


@dataclass(frozen=True)
class OfferLine:
    """A single priced line of a supplier quotation."""

    id: UUID
    quotation_id: UUID
    description: str
    baseline_id: UUID | None = None
    unit: str | None = None
    quantity: Decimal | None = None
    unit_price: Decimal | None = None
    total_price: Decimal | None = None
    row_order: int | None = None
    original_unit: str | None = None
    item_code: str | None = None
    sheet_name: str | None = None
    section_path: str | None = None

    @property
    def has_price(self) -> bool:
        return bool(self.unit_price) or bool(self.total_price)


@dataclass(frozen=True)
class Quotation:
    """A supplier's priced response to a process."""

    id: UUID
    process_id: UUID
    supplier_name: str
    currency: str = "PEN"
    exchange_rate: Decimal | None = None
    lines: tuple[OfferLine, ...] = ()
    notes: str | None = None

    @property
    def base_supplier_label(self) -> str:
        return extract_base_supplier_label(self.supplier_name)

    @property
    def supplier_key(self) -> str:
        return normalize_supplier_key(self.supplier_name)


@dataclass(frozen=True)
class OrderLine:
    """A line of a persisted purchase order."""

    description: str
    quantity: Decimal
    unit_price: Decimal
    unit: str | None = None
    baseline_id: UUID | None = None
    item_code: str | None = None
    provider_description: str | None = None
    id: UUID | None = None

    @property
    def total_price(self) -> Decimal:
        return self.quantity * self.unit_price


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal = ZERO
    discount: Decimal = ZERO
    net_subtotal: Decimal = ZERO
    igv: Decimal = ZERO
    total: Decimal = ZERO


@dataclass(frozen=True)
class PurchaseOrder:
    """A committed order to one supplier."""

    id: UUID
    process_id: UUID
    supplier_name: str
    order_number: str
    sequence: int
    lines: tuple[OrderLine, ...] = ()
    quotation_id: UUID | None = None
    issue_date: date | None = None
    currency: str = "PEN"
    igv_rate: Decimal = ZERO
    discount_rate: Decimal = ZERO
    totals: OrderTotals = OrderTotals()
    notes: str | None = None


@dataclass(frozen=True)
class DeliveryLine:
    """Quantity of a baseline item physically received."""

    description: str
    quantity: Decimal
    unit: str | None = None
    baseline_id: UUID | None = None
    notes: str | None = None
    id: UUID | None = None


@dataclass(frozen=True)
class Delivery:
    """A recorded receipt of goods, identified by the supplier's guide number."""

    id: UUID
    process_id: UUID
    lines: tuple[DeliveryLine, ...] = ()
    order_id: UUID | None = None
    supplier_name: str | None = None
    guide_number: str | None = None
    delivery_date: date | None = None
    notes: str | None = None
