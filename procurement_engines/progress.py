"""
procurement_engines.progress -- Progress reconciliation engine.

Responsibility:
    Merge baseline items that describe the same requirement, sum what has
    been ordered and received against them, and reconcile any externally
    supplied progress figures with values recomputed from the raw sums.
    Supplied figures that disagree with the raw counts by more than a
    tolerance are replaced; figures within tolerance are kept as supplied.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import procurement_kernel and procurement_engines.catalog.

Invariants enforced:
    - Every percentage on a ProgressRecord lies in ``[0, 1]`` and every
      pending quantity is ``>= 0``.
    - Supplied values within ``epsilon`` of the recomputed value are kept
      exactly as supplied; anything else (absent, non-finite, or out of
      tolerance) resolves to the recomputed value.
    - A record with no order or receive activity is never complete.
    - ``required == 0`` yields zero percentages and zero pending.
    - Deterministic: same inputs, same records, same order.

Failure modes:
    - None raised.  Lines referencing baseline ids outside the catalog are
      skipped and counted in the ``progress_aggregated`` log record.

Usage:
    engine = ProgressEngine(epsilon=Decimal("0.0001"))
    records = engine.build(
        baseline=items, orders=orders, deliveries=deliveries, supplied=figures,
    )
    pending = filter_progress(records, status=ProgressStatus.PENDING)
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from uuid import UUID

from procurement_engines.catalog import merge_key
from procurement_engines.tracer import traced_engine
from procurement_kernel.domain.documents import (
    BaselineItem,
    Delivery,
    PurchaseOrder,
)
from procurement_kernel.domain.identifiers import normalize_item_code
from procurement_kernel.domain.units import convert_quantity
from procurement_kernel.domain.values import (
    ZERO,
    clamp01,
    positive_part,
    safe_ratio,
    to_decimal,
)
from procurement_kernel.logging_config import get_logger

logger = get_logger("engines.progress")

PROGRESS_EPSILON = Decimal("0.0001")
COMPLETION_THRESHOLD = Decimal("0.999")


class CompletionMode(str, Enum):
    """Which axes may mark a record complete."""

    EITHER = "either"
    BOTH = "both"
    RECEIVE = "receive"


class ProgressStatus(str, Enum):
    """Progress table filter."""

    ALL = "all"
    PENDING = "pending"
    R1_25 = "r1_25"
    R26_50 = "r26_50"
    R51_75 = "r51_75"
    R76_99 = "r76_99"
    R100 = "r100"


# Half-open display-percentage bands, widened by epsilon on both ends.
STATUS_BANDS: dict[ProgressStatus, tuple[Decimal, Decimal]] = {
    ProgressStatus.R1_25: (Decimal("0.01"), Decimal("0.25")),
    ProgressStatus.R26_50: (Decimal("0.25"), Decimal("0.50")),
    ProgressStatus.R51_75: (Decimal("0.50"), Decimal("0.75")),
    ProgressStatus.R76_99: (Decimal("0.75"), Decimal("0.99")),
}


@dataclass(frozen=True)
class ProgressFigures:
    """
    Quantities for one merged requirement, optionally with derived values.

    Raw counts (``required``, ``ordered``, ``received``) are always present.
    The derived fields are None when nobody pre-computed them; an upstream
    summarization step fills them in, possibly on a different basis.
    """

    key: str
    description: str
    unit: str | None
    required: Decimal
    ordered: Decimal
    received: Decimal
    baseline_ids: tuple[UUID, ...] = ()
    sheet_names: tuple[str, ...] = ()
    section_paths: tuple[str, ...] = ()
    order_pct: Decimal | None = None
    receive_pct: Decimal | None = None
    pending_order: Decimal | None = None
    pending_receive: Decimal | None = None


@dataclass(frozen=True)
class Reconciled:
    value: Decimal
    replaced: bool


@dataclass(frozen=True)
class ProgressRecord:
    """Reconciled progress for one merged requirement."""

    key: str
    description: str
    unit: str | None
    required: Decimal
    ordered: Decimal
    received: Decimal
    order_pct: Decimal
    receive_pct: Decimal
    pending_order: Decimal
    pending_receive: Decimal
    complete: bool
    baseline_ids: tuple[UUID, ...] = ()
    sheet_names: tuple[str, ...] = ()
    section_paths: tuple[str, ...] = ()
    corrected_fields: tuple[str, ...] = field(default=(), compare=False)

    @property
    def display_pct(self) -> Decimal:
        return max(self.order_pct, self.receive_pct)

    @property
    def has_order_activity(self) -> bool:
        return self.ordered > ZERO or self.order_pct > ZERO

    @property
    def has_receive_activity(self) -> bool:
        return self.received > ZERO or self.receive_pct > ZERO

    @property
    def total_pending(self) -> Decimal:
        return self.pending_order + self.pending_receive


@dataclass(frozen=True)
class ProgressStats:
    total_items: int
    items_with_order: int
    items_received: int
    ordered_pct: Decimal
    received_pct: Decimal


# ---------------------------------------------------------------------------
# Primitive calculations
# ---------------------------------------------------------------------------


def reconcile(
    fallback: Decimal,
    supplied: object,
    epsilon: Decimal = PROGRESS_EPSILON,
) -> Reconciled:
    """Keep ``supplied`` when it is finite and within ``epsilon`` of ``fallback``.

    Absent or non-finite supplied values resolve to ``fallback`` without
    counting as a replacement; a finite value outside tolerance does count.
    """
    value = to_decimal(supplied)
    if value is None:
        return Reconciled(fallback, False)
    if abs(fallback - value) > epsilon:
        return Reconciled(fallback, True)
    return Reconciled(value, False)


def _clamped(value: object) -> Decimal | None:
    number = to_decimal(value)
    return None if number is None else clamp01(number)


def fallback_ratio(quantity: Decimal, required: Decimal) -> Decimal:
    """``quantity / required`` clamped into ``[0, 1]``; 0 when nothing is required."""
    return clamp01(safe_ratio(quantity, required))


def fallback_pending(quantity: Decimal, required: Decimal) -> Decimal:
    if required <= ZERO:
        return ZERO
    return positive_part(required - quantity)


def axis_complete(
    has_activity: bool,
    pending: Decimal,
    pct: Decimal,
    epsilon: Decimal,
    threshold: Decimal,
) -> bool:
    return has_activity and (pending <= epsilon or pct >= threshold)


def aggregate_progress(
    baseline: Sequence[BaselineItem],
    orders: Iterable[PurchaseOrder] = (),
    deliveries: Iterable[Delivery] = (),
) -> tuple[ProgressFigures, ...]:
    """Raw per-requirement sums from the order and delivery ledgers.

    Baseline items sharing a merge key collapse into one figure whose
    ``required`` is their summed quantity.  Ordered and received quantities
    are converted into the baseline unit when both units are known members
    of the same dimension.
    """
    by_id = {item.id: item for item in baseline}
    groups: dict[str, dict] = {}
    for item in baseline:
        key = merge_key(item)
        group = groups.setdefault(
            key,
            {
                "description": item.description,
                "unit": item.unit,
                "required": ZERO,
                "ordered": ZERO,
                "received": ZERO,
                "baseline_ids": [],
                "sheet_names": {},
                "section_paths": {},
            },
        )
        group["required"] += item.required_quantity
        group["baseline_ids"].append(item.id)
        if item.sheet_name:
            group["sheet_names"].setdefault(item.sheet_name, None)
        if item.section_path:
            group["section_paths"].setdefault(item.section_path, None)

    skipped = 0

    def _accumulate(baseline_id: UUID | None, quantity: Decimal, unit: str | None, bucket: str) -> None:
        nonlocal skipped
        item = by_id.get(baseline_id) if baseline_id is not None else None
        if item is None:
            skipped += 1
            return
        converted = convert_quantity(quantity, unit, item.unit).value
        groups[merge_key(item)][bucket] += converted

    for order in orders:
        for line in order.lines:
            _accumulate(line.baseline_id, line.quantity, line.unit, "ordered")
    for delivery in deliveries:
        for line in delivery.lines:
            _accumulate(line.baseline_id, line.quantity, line.unit, "received")

    logger.debug(
        "progress_aggregated",
        extra={"groups": len(groups), "skipped_lines": skipped},
    )

    return tuple(
        ProgressFigures(
            key=key,
            description=group["description"],
            unit=group["unit"],
            required=group["required"],
            ordered=group["ordered"],
            received=group["received"],
            baseline_ids=tuple(group["baseline_ids"]),
            sheet_names=tuple(group["sheet_names"]),
            section_paths=tuple(group["section_paths"]),
        )
        for key, group in groups.items()
    )


def sort_by_pending(records: Iterable[ProgressRecord]) -> tuple[ProgressRecord, ...]:
    """Largest outstanding (order + receive) first; ties keep input order."""
    return tuple(sorted(records, key=lambda r: r.total_pending, reverse=True))


def progress_search_tokens(
    record: ProgressRecord,
    baseline_index: Mapping[UUID, BaselineItem] | None = None,
) -> list[str]:
    tokens: list[str] = [record.description, record.key]
    tokens.extend(record.section_paths)
    tokens.extend(record.sheet_names)
    for baseline_id in record.baseline_ids:
        tokens.append(str(baseline_id))
        item = baseline_index.get(baseline_id) if baseline_index else None
        if item is None:
            continue
        tokens.extend(
            part
            for part in (
                item.description,
                item.sheet_name,
                item.section_path,
                normalize_item_code(item.item_code),
            )
            if part
        )
    return tokens


def matches_status(
    record: ProgressRecord,
    status: ProgressStatus,
    epsilon: Decimal = PROGRESS_EPSILON,
) -> bool:
    if status == ProgressStatus.ALL:
        return True
    if status == ProgressStatus.PENDING:
        return not record.complete
    if status == ProgressStatus.R100:
        return record.complete
    low, high = STATUS_BANDS[status]
    pct = record.display_pct
    return low - epsilon <= pct < high + epsilon


def filter_progress(
    records: Iterable[ProgressRecord],
    term: str | None = None,
    status: ProgressStatus = ProgressStatus.ALL,
    baseline_index: Mapping[UUID, BaselineItem] | None = None,
    epsilon: Decimal = PROGRESS_EPSILON,
) -> tuple[ProgressRecord, ...]:
    """Records matching a free-text term and a status bucket."""
    needle = (term or "").strip().lower()
    rows: list[ProgressRecord] = []
    for record in records:
        if needle and not any(
            needle in token.lower()
            for token in progress_search_tokens(record, baseline_index)
        ):
            continue
        if not matches_status(record, status, epsilon):
            continue
        rows.append(record)
    return tuple(rows)


def progress_stats(records: Sequence[ProgressRecord]) -> ProgressStats | None:
    """Headline counts and mean percentages; None when there are no records."""
    if not records:
        return None
    total = len(records)
    ordered_sum = sum((r.order_pct for r in records), ZERO)
    received_sum = sum((r.receive_pct for r in records), ZERO)
    return ProgressStats(
        total_items=total,
        items_with_order=sum(1 for r in records if r.order_pct > ZERO),
        items_received=sum(1 for r in records if r.receive_pct > ZERO),
        ordered_pct=ordered_sum / total,
        received_pct=received_sum / total,
    )


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ProgressEngine:
    """
    Reconciles progress figures into ProgressRecords.

    Contract:
        Pure functions -- no I/O, no database access.  Settings are fixed
        at construction.

    Guarantees:
        - Output records are sorted by total pending, descending.
        - ``corrected_fields`` names every supplied field that was replaced.

    Non-goals:
        - Does not persist corrections back to the source of the figures.
    """

    def __init__(
        self,
        epsilon: Decimal = PROGRESS_EPSILON,
        completion_threshold: Decimal = COMPLETION_THRESHOLD,
        completion_mode: CompletionMode = CompletionMode.EITHER,
    ):
        self.epsilon = epsilon
        self.completion_threshold = completion_threshold
        self.completion_mode = completion_mode

    def reconcile_figures(self, figures: ProgressFigures) -> ProgressRecord:
        """Reconcile one set of figures against its own raw counts."""
        required = figures.required if figures.required > ZERO else ZERO
        ordered = figures.ordered
        received = figures.received

        pending_order = reconcile(
            fallback_pending(ordered, required), figures.pending_order, self.epsilon
        )
        pending_receive = reconcile(
            fallback_pending(received, required), figures.pending_receive, self.epsilon
        )
        order_pct = reconcile(
            fallback_ratio(ordered, required),
            _clamped(figures.order_pct),
            self.epsilon,
        )
        receive_pct = reconcile(
            fallback_ratio(received, required),
            _clamped(figures.receive_pct),
            self.epsilon,
        )

        corrected = tuple(
            name
            for name, outcome in (
                ("pending_order", pending_order),
                ("pending_receive", pending_receive),
                ("order_pct", order_pct),
                ("receive_pct", receive_pct),
            )
            if outcome.replaced
        )

        record = ProgressRecord(
            key=figures.key,
            description=figures.description,
            unit=figures.unit,
            required=required,
            ordered=ordered,
            received=received,
            order_pct=clamp01(order_pct.value),
            receive_pct=clamp01(receive_pct.value),
            pending_order=positive_part(pending_order.value),
            pending_receive=positive_part(pending_receive.value),
            complete=False,
            baseline_ids=figures.baseline_ids,
            sheet_names=figures.sheet_names,
            section_paths=figures.section_paths,
            corrected_fields=corrected,
        )
        return replace(record, complete=self._is_complete(record))

    def _is_complete(self, record: ProgressRecord) -> bool:
        by_order = axis_complete(
            record.has_order_activity,
            record.pending_order,
            record.order_pct,
            self.epsilon,
            self.completion_threshold,
        )
        by_receive = axis_complete(
            record.has_receive_activity,
            record.pending_receive,
            record.receive_pct,
            self.epsilon,
            self.completion_threshold,
        )
        if self.completion_mode == CompletionMode.BOTH:
            return by_order and by_receive
        if self.completion_mode == CompletionMode.RECEIVE:
            return by_receive
        return by_order or by_receive

    @traced_engine("progress", "1.0", fingerprint_fields=("supplied",))
    def reconcile_records(
        self,
        *,
        supplied: Sequence[ProgressFigures],
    ) -> tuple[ProgressRecord, ...]:
        """Reconcile pre-aggregated figures using their own raw counts."""
        records = [self.reconcile_figures(figures) for figures in supplied]
        self._log_corrections(records)
        return sort_by_pending(records)

    @traced_engine("progress", "1.0")
    def build(
        self,
        *,
        baseline: Sequence[BaselineItem],
        orders: Iterable[PurchaseOrder] = (),
        deliveries: Iterable[Delivery] = (),
        supplied: Iterable[ProgressFigures] = (),
    ) -> tuple[ProgressRecord, ...]:
        """Recompute raw counts from the ledgers, then reconcile supplied figures.

        Supplied derived values are matched by merge key.  Raw counts always
        come from the ledgers; a supplied figure for a key absent from the
        catalog is ignored.
        """
        supplied_by_key = {figures.key: figures for figures in supplied}
        records: list[ProgressRecord] = []
        for raw in aggregate_progress(baseline, orders, deliveries):
            external = supplied_by_key.get(raw.key)
            if external is not None:
                raw = replace(
                    raw,
                    order_pct=external.order_pct,
                    receive_pct=external.receive_pct,
                    pending_order=external.pending_order,
                    pending_receive=external.pending_receive,
                )
            records.append(self.reconcile_figures(raw))
        self._log_corrections(records)
        return sort_by_pending(records)

    def _log_corrections(self, records: Sequence[ProgressRecord]) -> None:
        for record in records:
            if record.corrected_fields:
                logger.info(
                    "progress_value_replaced",
                    extra={
                        "progress_key": record.key,
                        "corrected_fields": list(record.corrected_fields),
                    },
                )
        logger.info(
            "progress_reconciled",
            extra={
                "records": len(records),
                "complete": sum(1 for r in records if r.complete),
                "corrected": sum(1 for r in records if r.corrected_fields),
                "completion_mode": self.completion_mode.value,
            },
        )

