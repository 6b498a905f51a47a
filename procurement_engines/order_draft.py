"""
procurement_engines.order_draft -- Purchase order drafting.

Responsibility:
    Build and edit a purchase order draft in memory: pull lines from the
    comparison (one item) or from a supplier quotation (everything it
    priced), renumber the draft, compute totals with discount and
    IGV, and turn the draft into a validated persistence payload.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Every mutator takes a
    draft and returns a new one; callers hold the current draft.

Invariants enforced:
    - ``add_baseline_item`` keeps one line per baseline id.
    - ``add_all_from_supplier`` never modifies a line already in the draft.
    - A manually edited order number is never overwritten by the next
      sequential number.
    - ``discount <= subtotal``, ``net_subtotal >= 0``, totals are exact
      Decimals.
    - Payloads never carry a negative quantity or price, and a draft with
      no lines never becomes a payload.

Failure modes:
    - EmptyDraftError / InvalidQuantityError from ``build_order_payload``.
    - InvalidRateError from ``set_rates`` for percentages outside ``[0, 100]``.
    - ValueError from ``compute_totals`` for rates outside ``[0, 1]``.

Usage:
    draft = new_order_draft(process_id, next_number="004/CP")
    draft = select_supplier(draft, quotation.id, quotation.supplier_name)
    draft = add_all_from_supplier(draft, quotation, catalog)
    payload = build_order_payload(draft)
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Protocol
from uuid import UUID

from procurement_engines.catalog import BaselineIndex
from procurement_engines.comparison import ItemComparison, SupplierOffer
from procurement_kernel.domain.documents import (
    OfferLine,
    OrderLine,
    OrderTotals,
    PurchaseOrder,
    Quotation,
)
from procurement_kernel.domain.identifiers import normalize_identifier, normalize_item_code
from procurement_kernel.domain.values import HUNDRED, ONE, ZERO, to_decimal
from procurement_kernel.exceptions import (
    EmptyDraftError,
    InvalidQuantityError,
    InvalidRateError,
)
from procurement_kernel.logging_config import get_logger

logger = get_logger("engines.order_draft")

DEFAULT_IGV_RATE = Decimal("0.18")
DEFAULT_ORDER_SUFFIX = "/CP"
DEFAULT_SEQUENCE_PADDING = 3
DEFAULT_SUPPLIER_NAME = "Proveedor"
MANUAL_LINE_DESCRIPTION = "Nuevo ítem"
DEFAULT_SHEET_NAME = "Hoja"

_LEADING_NON_DIGIT = re.compile(r"[^0-9].*$")


class DraftMode(str, Enum):
    NEW = "new"
    EDIT = "edit"
    REUSE = "reuse"


class _Priced(Protocol):
    quantity: Decimal
    unit_price: Decimal


@dataclass(frozen=True)
class OrderDraftLine:
    """An editable order line."""

    line_id: str
    description: str
    quantity: Decimal = ZERO
    unit_price: Decimal = ZERO
    unit: str | None = None
    baseline_id: UUID | None = None
    item_code: str | None = None
    supplier_row_order: int | None = None
    provider_description: str | None = None
    auto_linked: bool = False

    @property
    def total_price(self) -> Decimal:
        return self.quantity * self.unit_price


@dataclass(frozen=True)
class OrderDraft:
    """
    In-memory purchase order being composed.

    Contract:
        Immutable; mutate through the module functions.

    Guarantees:
        - ``totals`` always reflects the current lines and rates.
        - ``editing_order_id`` is set only in EDIT mode.
    """

    process_id: UUID
    lines: tuple[OrderDraftLine, ...] = ()
    quotation_id: UUID | None = None
    supplier_name: str = ""
    order_number: str = ""
    order_number_touched: bool = False
    issue_date: date | None = None
    currency: str = "PEN"
    igv_rate: Decimal = DEFAULT_IGV_RATE
    discount_rate: Decimal = ZERO
    notes: str | None = None
    mode: DraftMode = DraftMode.NEW
    editing_order_id: UUID | None = None
    next_line_seq: int = 1

    @property
    def totals(self) -> OrderTotals:
        return compute_totals(self.lines, self.igv_rate, self.discount_rate)

    @property
    def is_editing(self) -> bool:
        return self.mode == DraftMode.EDIT and self.editing_order_id is not None

    @property
    def baseline_ids(self) -> frozenset[UUID]:
        return frozenset(line.baseline_id for line in self.lines if line.baseline_id)

    def line(self, line_id: str) -> OrderDraftLine | None:
        for line in self.lines:
            if line.line_id == line_id:
                return line
        return None


@dataclass(frozen=True)
class OrderPayload:
    """Validated draft content handed to persistence."""

    supplier_name: str
    lines: tuple[OrderLine, ...]
    totals: OrderTotals
    quotation_id: UUID | None = None
    order_number: str | None = None
    issue_date: date | None = None
    currency: str = "PEN"
    igv_rate: Decimal = DEFAULT_IGV_RATE
    discount_rate: Decimal = ZERO
    notes: str | None = None


# ---------------------------------------------------------------------------
# Totals and numbering
# ---------------------------------------------------------------------------


def compute_totals(
    lines: Iterable[_Priced],
    igv_rate: Decimal,
    discount_rate: Decimal,
) -> OrderTotals:
    """Subtotal, capped discount, net subtotal, IGV and total."""
    for name, rate in (("igv_rate", igv_rate), ("discount_rate", discount_rate)):
        if rate < ZERO or rate > ONE:
            raise ValueError(f"{name} must be within [0, 1], got {rate}")

    subtotal = sum((line.quantity * line.unit_price for line in lines), ZERO)
    discount = min(subtotal, subtotal * discount_rate)
    net_subtotal = max(ZERO, subtotal - discount)
    igv = net_subtotal * igv_rate
    return OrderTotals(
        subtotal=subtotal,
        discount=discount,
        net_subtotal=net_subtotal,
        igv=igv,
        total=net_subtotal + igv,
    )


def percent_to_rate(percent: object, rate_name: str = "rate") -> Decimal:
    """Convert a UI percentage (``18``) into a rate (``0.18``).

    Raises:
        InvalidRateError: percentage outside ``[0, 100]``.
    """
    value = to_decimal(percent)
    if value is None:
        return ZERO
    if value < ZERO or value > HUNDRED:
        raise InvalidRateError(rate_name, value)
    return value / HUNDRED


def extract_order_suffix(template: str | None) -> str:
    """Suffix of an order number: text from the first ``/``, else the first non-digit run."""
    if not template:
        return ""
    slash = template.find("/")
    if slash >= 0:
        return template[slash:]
    match = _LEADING_NON_DIGIT.search(template)
    return match.group(0) if match else ""


def build_order_number(
    sequence: int,
    template: str | None = None,
    default_suffix: str = DEFAULT_ORDER_SUFFIX,
    padding: int = DEFAULT_SEQUENCE_PADDING,
) -> str:
    """``NNN`` + suffix, the suffix borrowed from ``template`` when given."""
    suffix = extract_order_suffix(template) if template else default_suffix
    return f"{str(sequence).zfill(padding)}{suffix}"


def order_number_key(order_number: str | None) -> str | None:
    """Case-insensitive comparison key for order numbers."""
    return normalize_identifier(order_number)


# ---------------------------------------------------------------------------
# Draft construction
# ---------------------------------------------------------------------------


def new_order_draft(
    process_id: UUID,
    next_number: str = "",
    issue_date: date | None = None,
    currency: str = "PEN",
    igv_rate: Decimal = DEFAULT_IGV_RATE,
    discount_rate: Decimal = ZERO,
) -> OrderDraft:
    return OrderDraft(
        process_id=process_id,
        order_number=next_number,
        issue_date=issue_date,
        currency=currency,
        igv_rate=igv_rate,
        discount_rate=discount_rate,
    )


def draft_from_order(
    order: PurchaseOrder,
    mode: DraftMode,
    next_number: str = "",
    issue_date: date | None = None,
) -> OrderDraft:
    """Load an existing order into a draft.

    EDIT keeps the order id and number; REUSE starts a new order with the
    next sequential number and ``issue_date``.
    """
    if mode == DraftMode.NEW:
        raise ValueError("draft_from_order requires EDIT or REUSE mode")

    lines = tuple(
        OrderDraftLine(
            line_id=f"L{index}",
            description=line.description,
            quantity=line.quantity,
            unit_price=line.unit_price,
            unit=line.unit,
            baseline_id=line.baseline_id,
            item_code=line.item_code,
            provider_description=line.provider_description,
        )
        for index, line in enumerate(
            (line for line in order.lines if line.description.strip()), start=1
        )
    )
    editing = mode == DraftMode.EDIT
    return OrderDraft(
        process_id=order.process_id,
        lines=lines,
        quotation_id=order.quotation_id,
        supplier_name=order.supplier_name,
        order_number=order.order_number if editing else next_number,
        order_number_touched=editing,
        issue_date=order.issue_date if editing else issue_date,
        currency=order.currency,
        igv_rate=order.igv_rate,
        discount_rate=order.discount_rate,
        notes=order.notes,
        mode=mode,
        editing_order_id=order.id if editing else None,
        next_line_seq=len(lines) + 1,
    )


def _new_line(draft: OrderDraft, **fields) -> tuple[OrderDraft, OrderDraftLine]:
    line = OrderDraftLine(line_id=f"L{draft.next_line_seq}", **fields)
    return replace(draft, next_line_seq=draft.next_line_seq + 1), line


def _upsert(draft: OrderDraft, line: OrderDraftLine) -> OrderDraft:
    """Replace the line holding the same baseline id, or append."""
    if line.baseline_id is not None:
        for index, existing in enumerate(draft.lines):
            if existing.baseline_id == line.baseline_id:
                kept = replace(line, line_id=existing.line_id)
                lines = draft.lines[:index] + (kept,) + draft.lines[index + 1 :]
                return replace(draft, lines=lines)
    return replace(draft, lines=draft.lines + (line,))


# ---------------------------------------------------------------------------
# Mutators
# ---------------------------------------------------------------------------


def select_supplier(
    draft: OrderDraft, quotation_id: UUID | None, supplier_name: str
) -> OrderDraft:
    return replace(draft, quotation_id=quotation_id, supplier_name=supplier_name)


def set_order_number(draft: OrderDraft, order_number: str) -> OrderDraft:
    """Operator edit; later sequential numbers no longer apply."""
    return replace(draft, order_number=order_number, order_number_touched=True)


def apply_next_order_number(draft: OrderDraft, next_number: str) -> OrderDraft:
    if draft.order_number_touched or draft.is_editing:
        return draft
    return replace(draft, order_number=next_number)


def set_rates(
    draft: OrderDraft, igv_percent: object = None, discount_percent: object = None
) -> OrderDraft:
    """Update IGV and discount from UI percentages; None leaves a rate unchanged."""
    igv = draft.igv_rate if igv_percent is None else percent_to_rate(igv_percent, "IGV")
    discount = (
        draft.discount_rate
        if discount_percent is None
        else percent_to_rate(discount_percent, "discount")
    )
    return replace(draft, igv_rate=igv, discount_rate=discount)


def _source_offer(
    item: ItemComparison, quotation_id: UUID | None
) -> SupplierOffer | None:
    if quotation_id is None:
        return item.best_offer
    return item.offer_for(quotation_id)


def add_baseline_item(draft: OrderDraft, item: ItemComparison) -> OrderDraft:
    """Add (or refresh) the line for one baseline item.

    Quantity and unit price come from the selected supplier's offer; with no
    supplier selected the best offer is used; without an offer the baseline
    reference values apply.
    """
    baseline = item.baseline
    offer = _source_offer(item, draft.quotation_id)
    offer_line = offer.line if offer is not None else None

    quantity = (
        offer_line.quantity
        if offer_line is not None and offer_line.quantity is not None
        else baseline.required_quantity
    )
    unit_price = (
        offer_line.unit_price
        if offer_line is not None and offer_line.unit_price is not None
        else baseline.reference_unit_price
    )
    draft, line = _new_line(
        draft,
        description=baseline.description,
        quantity=quantity if quantity is not None else ZERO,
        unit_price=unit_price if unit_price is not None else ZERO,
        unit=baseline.unit,
        baseline_id=baseline.id,
        item_code=baseline.item_code,
        supplier_row_order=offer.row_order if offer is not None else None,
        provider_description=offer_line.description if offer_line is not None else None,
        auto_linked=True,
    )
    return _upsert(draft, line)


def _match_key(line: OrderDraftLine) -> str:
    return (line.provider_description or line.description or "").strip().upper()


def lines_match(candidate: OrderDraftLine, existing: OrderDraftLine) -> bool:
    """Whether ``existing`` already holds the line ``candidate`` describes.

    The first criterion both lines carry decides: supplier row order, then
    baseline id, then the trimmed upper-cased description.
    """
    if candidate.supplier_row_order is not None and existing.supplier_row_order is not None:
        return candidate.supplier_row_order == existing.supplier_row_order
    if candidate.baseline_id is not None and existing.baseline_id is not None:
        return candidate.baseline_id == existing.baseline_id
    key = _match_key(candidate)
    return bool(key) and key == _match_key(existing)


def find_claiming_line(
    candidate: OrderDraftLine, lines: Sequence[OrderDraftLine]
) -> int | None:
    """Index of the first line that ``lines_match`` says already holds ``candidate``."""
    for index, existing in enumerate(lines):
        if lines_match(candidate, existing):
            return index
    return None


def sort_lines_by_supplier_order(
    lines: Iterable[OrderDraftLine],
) -> tuple[OrderDraftLine, ...]:
    """Supplier row order ascending (absent last), then description."""
    return tuple(
        sorted(
            lines,
            key=lambda line: (
                line.supplier_row_order is None,
                line.supplier_row_order or 0,
                line.description.upper(),
            ),
        )
    )


def supplier_sheet_name(line: OfferLine) -> str:
    return (line.sheet_name or "").strip() or DEFAULT_SHEET_NAME


def _supplier_unit_price(line: OfferLine, quantity: Decimal) -> Decimal:
    if line.total_price and line.quantity:
        return line.total_price / line.quantity
    if line.unit_price is not None:
        return line.unit_price
    if quantity:
        return (line.total_price or ZERO) / quantity
    return ZERO


def add_all_from_supplier(
    draft: OrderDraft,
    quotation: Quotation,
    catalog: BaselineIndex,
    sheet_name: str | None = None,
) -> OrderDraft:
    """Add every priced, still unclaimed line of ``quotation``.

    Lines already in the draft are never touched: a quotation line claimed
    by one of them (see ``find_claiming_line``) is skipped.  Lines linked
    to a catalog item take its description; unlinked lines (freight,
    extras) come in as free lines.  ``sheet_name`` limits the quotation
    lines by their own sheet.  The result is sorted by supplier row order.
    """
    existing = draft.lines
    incoming: list[OrderDraftLine] = []
    skipped = 0
    for offer_line in quotation.lines:
        if sheet_name and supplier_sheet_name(offer_line) != sheet_name:
            continue
        if not offer_line.has_price:
            continue

        baseline = catalog.get(offer_line.baseline_id)
        if baseline is not None:
            description, unit, code = baseline.description, baseline.unit, baseline.item_code
            quantity = offer_line.quantity or baseline.required_quantity
        else:
            description, unit, code = offer_line.description, None, None
            quantity = offer_line.quantity or ZERO

        draft, candidate = _new_line(
            draft,
            description=description,
            quantity=quantity,
            unit_price=_supplier_unit_price(offer_line, quantity),
            unit=offer_line.original_unit or offer_line.unit or unit,
            baseline_id=baseline.id if baseline is not None else None,
            item_code=normalize_item_code(offer_line.item_code) or code,
            supplier_row_order=offer_line.row_order,
            provider_description=offer_line.description,
            auto_linked=baseline is not None,
        )
        if find_claiming_line(candidate, existing) is not None:
            skipped += 1
            continue
        incoming.append(candidate)

    logger.debug(
        "order_draft_supplier_lines_added",
        extra={
            "quotation_id": str(quotation.id),
            "lines": len(incoming),
            "skipped": skipped,
            "sheet": sheet_name,
        },
    )
    return replace(draft, lines=sort_lines_by_supplier_order(existing + tuple(incoming)))


def add_manual_line(draft: OrderDraft, description: str | None = None) -> OrderDraft:
    draft, line = _new_line(
        draft,
        description=(description or "").strip() or MANUAL_LINE_DESCRIPTION,
    )
    return replace(draft, lines=draft.lines + (line,))


_EDITABLE_FIELDS = frozenset(
    {"description", "quantity", "unit_price", "unit", "item_code", "baseline_id"}
)


def update_line(draft: OrderDraft, line_id: str, **changes) -> OrderDraft:
    """Edit a line; any operator edit clears ``auto_linked``."""
    unknown = set(changes) - _EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown order line fields: {sorted(unknown)}")
    for key in ("quantity", "unit_price"):
        if key in changes:
            value = to_decimal(changes[key])
            changes[key] = ZERO if value is None else value
    lines = tuple(
        replace(line, auto_linked=False, **changes) if line.line_id == line_id else line
        for line in draft.lines
    )
    return replace(draft, lines=lines)


def remove_line(draft: OrderDraft, line_id: str) -> OrderDraft:
    return replace(
        draft, lines=tuple(line for line in draft.lines if line.line_id != line_id)
    )


def clear_lines(draft: OrderDraft) -> OrderDraft:
    return replace(draft, lines=())


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def build_order_payload(
    draft: OrderDraft, default_supplier_name: str = DEFAULT_SUPPLIER_NAME
) -> OrderPayload:
    """Validate the draft and produce the persistence payload.

    Raises:
        EmptyDraftError: the draft has no lines.
        InvalidQuantityError: a line has a negative quantity or price.
    """
    if not draft.lines:
        raise EmptyDraftError("purchase order")

    lines: list[OrderLine] = []
    for line in draft.lines:
        if line.quantity < ZERO:
            raise InvalidQuantityError("purchase order", "negative quantity", line.line_id)
        if line.unit_price < ZERO:
            raise InvalidQuantityError("purchase order", "negative unit price", line.line_id)
        description = line.description.strip()
        if not description:
            continue
        lines.append(
            OrderLine(
                description=description,
                quantity=line.quantity,
                unit_price=line.unit_price,
                unit=line.unit,
                baseline_id=line.baseline_id,
                item_code=line.item_code,
                provider_description=line.provider_description,
            )
        )
    if not lines:
        raise EmptyDraftError("purchase order")

    return OrderPayload(
        supplier_name=draft.supplier_name.strip() or default_supplier_name,
        lines=tuple(lines),
        totals=compute_totals(lines, draft.igv_rate, draft.discount_rate),
        quotation_id=draft.quotation_id,
        order_number=draft.order_number.strip() or None,
        issue_date=draft.issue_date,
        currency=draft.currency,
        igv_rate=draft.igv_rate,
        discount_rate=draft.discount_rate,
        notes=draft.notes,
    )
