"""
procurement_engines.delivery_draft -- Delivery (goods receipt) drafting.

Responsibility:
    Compose a delivery in memory, either seeded from a purchase order or
    built from baseline items, and turn it into a validated payload.  Also
    filters the delivery history for the history table.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Every mutator returns a
    new draft.

Invariants enforced:
    - Lines seeded from an order start with zero quantity; nothing is
      assumed received until the operator enters it.
    - Switching to another order never silently discards entered
      quantities: confirmation is required.
    - One line per baseline id when adding from the catalog.
    - Payloads contain only lines with a description and a positive
      quantity.

Failure modes:
    - DraftReplaceConfirmationRequired from ``select_order``.
    - EmptyDraftError / InvalidQuantityError from ``build_delivery_payload``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from uuid import UUID

from procurement_engines.catalog import BaselineIndex
from procurement_kernel.domain.documents import (
    BaselineItem,
    Delivery,
    DeliveryLine,
    PurchaseOrder,
)
from procurement_kernel.domain.identifiers import format_guide_number
from procurement_kernel.domain.values import ZERO, is_positive, to_decimal
from procurement_kernel.exceptions import (
    DraftReplaceConfirmationRequired,
    EmptyDraftError,
    InvalidQuantityError,
)
from procurement_kernel.logging_config import get_logger

logger = get_logger("engines.delivery_draft")


@dataclass(frozen=True)
class DeliveryDraftLine:
    line_id: str
    description: str
    quantity: Decimal = ZERO
    unit: str | None = None
    baseline_id: UUID | None = None
    notes: str | None = None


@dataclass(frozen=True)
class DeliveryDraft:
    """In-memory delivery being composed."""

    process_id: UUID
    lines: tuple[DeliveryDraftLine, ...] = ()
    order_id: UUID | None = None
    supplier_name: str = ""
    guide_number: str = ""
    delivery_date: date | None = None
    notes: str | None = None
    next_line_seq: int = 1

    @property
    def has_entered_quantities(self) -> bool:
        return any(line.quantity != ZERO for line in self.lines)

    @property
    def baseline_ids(self) -> frozenset[UUID]:
        return frozenset(line.baseline_id for line in self.lines if line.baseline_id)


@dataclass(frozen=True)
class DeliveryPayload:
    lines: tuple[DeliveryLine, ...]
    order_id: UUID | None = None
    supplier_name: str | None = None
    guide_number: str | None = None
    delivery_date: date | None = None
    notes: str | None = None


def new_delivery_draft(process_id: UUID, delivery_date: date | None = None) -> DeliveryDraft:
    return DeliveryDraft(process_id=process_id, delivery_date=delivery_date)


def _new_line(draft: DeliveryDraft, **fields) -> tuple[DeliveryDraft, DeliveryDraftLine]:
    line = DeliveryDraftLine(line_id=f"D{draft.next_line_seq}", **fields)
    return replace(draft, next_line_seq=draft.next_line_seq + 1), line


def seed_from_order(draft: DeliveryDraft, order: PurchaseOrder) -> DeliveryDraft:
    """Replace the lines with the order's lines at zero quantity."""
    seq = draft.next_line_seq
    lines: list[DeliveryDraftLine] = []
    for line in order.lines:
        if not line.description.strip():
            continue
        lines.append(
            DeliveryDraftLine(
                line_id=f"D{seq}",
                description=line.description,
                quantity=ZERO,
                unit=line.unit,
                baseline_id=line.baseline_id,
            )
        )
        seq += 1
    return replace(
        draft,
        lines=tuple(lines),
        order_id=order.id,
        supplier_name=draft.supplier_name or order.supplier_name,
        next_line_seq=seq,
    )


def select_order(
    draft: DeliveryDraft,
    order: PurchaseOrder,
    confirm: bool = False,
) -> DeliveryDraft:
    """Point the draft at ``order``.

    Re-selecting the current order keeps the lines.  Selecting another
    order replaces them, which requires ``confirm=True`` when any line
    already carries a non-zero quantity.
    """
    if draft.order_id == order.id and draft.lines and not confirm:
        return draft
    if draft.order_id != order.id and draft.has_entered_quantities and not confirm:
        raise DraftReplaceConfirmationRequired(draft.order_id, order.id)

    logger.debug(
        "delivery_draft_seeded",
        extra={"order_id": str(order.id), "lines": len(order.lines), "confirmed": confirm},
    )
    supplier = order.supplier_name if draft.order_id != order.id else draft.supplier_name
    return seed_from_order(replace(draft, supplier_name=supplier), order)


def clear_order(draft: DeliveryDraft) -> DeliveryDraft:
    return replace(draft, order_id=None)


def add_baseline_item(draft: DeliveryDraft, item: BaselineItem) -> DeliveryDraft:
    """Add a catalog item with its required quantity; ignored when already present."""
    if item.id in draft.baseline_ids:
        return draft
    draft, line = _new_line(
        draft,
        description=item.description,
        quantity=item.required_quantity,
        unit=item.unit,
        baseline_id=item.id,
    )
    return replace(draft, lines=draft.lines + (line,))


def add_blank_line(draft: DeliveryDraft) -> DeliveryDraft:
    draft, line = _new_line(draft, description="")
    return replace(draft, lines=draft.lines + (line,))


_EDITABLE_FIELDS = frozenset({"description", "quantity", "unit", "notes", "baseline_id"})


def update_line(draft: DeliveryDraft, line_id: str, **changes) -> DeliveryDraft:
    unknown = set(changes) - _EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown delivery line fields: {sorted(unknown)}")
    if "quantity" in changes:
        value = to_decimal(changes["quantity"])
        changes["quantity"] = ZERO if value is None else value
    lines = tuple(
        replace(line, **changes) if line.line_id == line_id else line
        for line in draft.lines
    )
    return replace(draft, lines=lines)


def remove_line(draft: DeliveryDraft, line_id: str) -> DeliveryDraft:
    return replace(
        draft, lines=tuple(line for line in draft.lines if line.line_id != line_id)
    )


def reset_lines(draft: DeliveryDraft) -> DeliveryDraft:
    return replace(draft, lines=())


def link_line_to_baseline(
    draft: DeliveryDraft, line_id: str, item: BaselineItem
) -> DeliveryDraft:
    """Attach a catalog item to a line, taking its description and unit."""
    return update_line(
        draft,
        line_id,
        baseline_id=item.id,
        description=item.description,
        unit=item.unit,
    )


def autolink_by_description(
    draft: DeliveryDraft, line_id: str, catalog: BaselineIndex
) -> DeliveryDraft:
    """Link an unlinked line whose description exactly names a catalog item."""
    for line in draft.lines:
        if line.line_id != line_id:
            continue
        if line.baseline_id is not None:
            return draft
        match = catalog.find_by_description(line.description)
        if match is None:
            return draft
        return update_line(draft, line_id, baseline_id=match.id, unit=line.unit or match.unit)
    return draft


def build_delivery_payload(draft: DeliveryDraft) -> DeliveryPayload:
    """Validate the draft and produce the persistence payload.

    Raises:
        EmptyDraftError: the draft has no lines at all.
        InvalidQuantityError: no line has a description and a positive quantity.
    """
    if not draft.lines:
        raise EmptyDraftError("delivery")

    lines = tuple(
        DeliveryLine(
            description=line.description.strip(),
            quantity=line.quantity,
            unit=line.unit,
            baseline_id=line.baseline_id,
            notes=line.notes,
        )
        for line in draft.lines
        if line.description.strip() and is_positive(line.quantity)
    )
    if not lines:
        raise InvalidQuantityError("delivery", "no line with a positive quantity")

    return DeliveryPayload(
        lines=lines,
        order_id=draft.order_id,
        supplier_name=draft.supplier_name.strip() or None,
        guide_number=format_guide_number(draft.guide_number),
        delivery_date=draft.delivery_date,
        notes=draft.notes,
    )


def search_deliveries(
    deliveries: Iterable[Delivery],
    term: str | None,
    order_numbers: Mapping[UUID, str] | None = None,
) -> tuple[Delivery, ...]:
    """Delivery history rows matching guide, supplier, order number or item text."""
    needle = (term or "").strip().lower()
    if not needle:
        return tuple(deliveries)
    rows: list[Delivery] = []
    for delivery in deliveries:
        order_number = (
            order_numbers.get(delivery.order_id)
            if order_numbers and delivery.order_id
            else None
        )
        tokens = (
            delivery.guide_number,
            delivery.supplier_name,
            order_number,
            " ".join(line.description for line in delivery.lines),
        )
        if any(token and needle in token.lower() for token in tokens):
            rows.append(delivery)
    return tuple(rows)
