"""
procurement_engines.comparison -- Supplier quotation comparison engine.

Responsibility:
    Line up every supplier offer against the baseline item it prices,
    normalize offers into the process base currency, pick the best offer
    per item, and roll the result up into per-quotation rankings, coverage,
    area summaries, supplier groups and the recommended winner.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import procurement_kernel.

Invariants enforced:
    - Offers without a baseline reference never take part in item
      comparison or rankings.
    - Only finite normalized totals compete for best offer; ties keep the
      first offer in quotation order.
    - Savings exist only when two priced offers exist and the runner-up is
      strictly more expensive.
    - ``coverage_pct`` is 0 for an empty baseline; ``diff_amount`` and
      ``diff_pct`` are None when the baseline total is 0.
    - Rankings sort by normalized amount ascending; unpriced quotations
      sort last and keep their input order.

Failure modes:
    - A foreign-currency quotation with no usable exchange rate keeps its
      offers visible with ``normalized_total = None`` and logs
      ``exchange_rate_missing``.

Usage:
    from procurement_engines.comparison import ComparisonEngine

    result = ComparisonEngine().compare(
        baseline=items, quotations=quotations, base_currency="PEN",
    )
    result.winner, result.rankings, result.item(baseline_id).best_offer
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from uuid import UUID

from procurement_engines.tracer import traced_engine
from procurement_kernel.domain.documents import (
    BaselineItem,
    OfferLine,
    Quotation,
)
from procurement_kernel.domain.identifiers import (
    normalize_description,
    normalize_item_code,
)
from procurement_kernel.domain.units import convert_unit_price
from procurement_kernel.domain.values import ZERO
from procurement_kernel.logging_config import get_logger

logger = get_logger("engines.comparison")

FULL_COVERAGE = Decimal("0.999")


class CoverageStatus(str, Enum):
    """Coverage filter for the ranking table."""

    ALL = "all"
    FULL = "full"
    PENDING = "pending"


@dataclass(frozen=True)
class SupplierOffer:
    """An offer line placed next to the baseline item it prices."""

    quotation_id: UUID
    supplier_name: str
    line: OfferLine
    normalized_unit_price: Decimal | None
    normalized_total: Decimal | None

    @property
    def row_order(self) -> int | None:
        return self.line.row_order

    @property
    def is_priced(self) -> bool:
        return self.normalized_total is not None


@dataclass(frozen=True)
class ItemComparison:
    """All offers for one baseline item, with the best one picked out."""

    baseline: BaselineItem
    offers: tuple[SupplierOffer, ...]
    best_offer: SupplierOffer | None
    savings: Decimal | None

    @property
    def baseline_id(self) -> UUID:
        return self.baseline.id

    @property
    def reference_total(self) -> Decimal | None:
        return self.baseline.reference_total

    def offer_for(self, quotation_id: UUID | None) -> SupplierOffer | None:
        if quotation_id is None:
            return None
        for offer in self.offers:
            if offer.quotation_id == quotation_id:
                return offer
        return None


@dataclass(frozen=True)
class QuotationRanking:
    """Aggregate position of one quotation against the baseline."""

    quotation_id: UUID
    supplier_name: str
    currency: str
    normalized_amount: Decimal | None
    items_matched: int
    total_items: int
    coverage_pct: Decimal
    missing_count: int
    diff_amount: Decimal | None
    diff_pct: Decimal | None
    best_items: int = 0

    @property
    def is_full_coverage(self) -> bool:
        return self.coverage_pct >= FULL_COVERAGE


@dataclass(frozen=True)
class SupplierVariant:
    quotation_id: UUID
    supplier_name: str


@dataclass(frozen=True)
class SupplierGroup:
    """Quotations whose supplier labels share a base name ("Acme - Lote 1", "Acme - Lote 2")."""

    key: str
    label: str
    variants: tuple[SupplierVariant, ...]

    @property
    def quotation_ids(self) -> tuple[UUID, ...]:
        return tuple(v.quotation_id for v in self.variants)

    @property
    def has_variants(self) -> bool:
        return len(self.variants) > 1

    def resolve(self, quotation_id: UUID | None = None) -> SupplierVariant:
        """The variant for ``quotation_id``, or the first one."""
        for variant in self.variants:
            if variant.quotation_id == quotation_id:
                return variant
        return self.variants[0]


@dataclass(frozen=True)
class AreaSummary:
    """Reference total and per-quotation totals for a sheet or a section."""

    sheet_name: str
    section_path: str | None
    baseline_total: Decimal
    supplier_totals: dict[UUID, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class WinnerSelection:
    quotation_id: UUID
    supplier_name: str
    normalized_amount: Decimal | None
    coverage_pct: Decimal
    coverage_qualified: bool
    manual: bool = False


@dataclass(frozen=True)
class ComparisonResult:
    """Everything the comparison screens render for one process."""

    base_currency: str
    items: tuple[ItemComparison, ...]
    rankings: tuple[QuotationRanking, ...]
    baseline_total: Decimal
    total_savings: Decimal
    sheet_summaries: tuple[AreaSummary, ...]
    section_summaries: tuple[AreaSummary, ...]
    supplier_groups: tuple[SupplierGroup, ...]
    winner: WinnerSelection | None

    def item(self, baseline_id: UUID) -> ItemComparison | None:
        for item in self.items:
            if item.baseline.id == baseline_id:
                return item
        return None

    def ranking(self, quotation_id: UUID) -> QuotationRanking | None:
        for row in self.rankings:
            if row.quotation_id == quotation_id:
                return row
        return None


# ---------------------------------------------------------------------------
# Primitive calculations
# ---------------------------------------------------------------------------


def convert_to_base(
    value: Decimal | None,
    currency: str | None,
    base_currency: str,
    exchange_rate: Decimal | None,
) -> Decimal | None:
    """Express ``value`` in the base currency by multiplying by the supplied rate."""
    if value is None:
        return None
    if not currency or not currency.strip():
        return value
    if currency.strip().upper() == base_currency.strip().upper():
        return value
    if exchange_rate is None or exchange_rate <= ZERO:
        return None
    return value * exchange_rate


def offer_total(offer: OfferLine, fallback_quantity: Decimal | None) -> Decimal | None:
    """Offer amount in quotation currency.

    Uses the explicit total when present, else quantity times unit price.
    Only a blank offer quantity falls back to the baseline quantity; a
    zero quantity or a zero/blank unit price leaves the offer unpriced.
    """
    if offer.total_price is not None:
        return offer.total_price
    quantity = offer.quantity if offer.quantity is not None else fallback_quantity
    if not quantity or not offer.unit_price:
        return None
    return quantity * offer.unit_price


def select_best_offer(offers: Sequence[SupplierOffer]) -> SupplierOffer | None:
    """Lowest finite normalized total; ties keep the earliest offer."""
    best: SupplierOffer | None = None
    for offer in offers:
        if offer.normalized_total is None:
            continue
        if best is None or offer.normalized_total < best.normalized_total:
            best = offer
    return best


def compute_savings(offers: Sequence[SupplierOffer]) -> Decimal | None:
    """Runner-up total minus best total, when that difference is positive."""
    totals = sorted(o.normalized_total for o in offers if o.normalized_total is not None)
    if len(totals) < 2:
        return None
    difference = totals[1] - totals[0]
    return difference if difference > ZERO else None


def rank_key(ranking: QuotationRanking) -> tuple[int, Decimal]:
    if ranking.normalized_amount is None:
        return (1, ZERO)
    return (0, ranking.normalized_amount)


def select_winner(
    rankings: Sequence[QuotationRanking],
    min_coverage: Decimal = FULL_COVERAGE,
    override_quotation_id: UUID | None = None,
) -> WinnerSelection | None:
    """Recommended quotation.

    A manual override naming a known quotation always wins.  Otherwise the
    cheapest quotation whose coverage reaches ``min_coverage`` wins; when
    none reaches it, the cheapest overall is returned unqualified.
    """
    if override_quotation_id is not None:
        for row in rankings:
            if row.quotation_id == override_quotation_id:
                return WinnerSelection(
                    quotation_id=row.quotation_id,
                    supplier_name=row.supplier_name,
                    normalized_amount=row.normalized_amount,
                    coverage_pct=row.coverage_pct,
                    coverage_qualified=row.coverage_pct >= min_coverage,
                    manual=True,
                )

    priced = sorted(
        (row for row in rankings if row.normalized_amount is not None),
        key=rank_key,
    )
    if not priced:
        return None

    qualified = [row for row in priced if row.coverage_pct >= min_coverage]
    chosen = qualified[0] if qualified else priced[0]
    return WinnerSelection(
        quotation_id=chosen.quotation_id,
        supplier_name=chosen.supplier_name,
        normalized_amount=chosen.normalized_amount,
        coverage_pct=chosen.coverage_pct,
        coverage_qualified=bool(qualified),
    )


def group_suppliers(quotations: Iterable[Quotation]) -> tuple[SupplierGroup, ...]:
    """Group quotations by supplier key, in order of first appearance."""
    labels: dict[str, str] = {}
    variants: dict[str, list[SupplierVariant]] = {}
    for quotation in quotations:
        key = quotation.supplier_key
        labels.setdefault(key, quotation.base_supplier_label or key)
        variants.setdefault(key, []).append(
            SupplierVariant(quotation.id, quotation.supplier_name)
        )
    return tuple(
        SupplierGroup(key=key, label=labels[key], variants=tuple(group))
        for key, group in variants.items()
    )


def filter_coverage(
    rankings: Iterable[QuotationRanking],
    term: str | None = None,
    status: CoverageStatus = CoverageStatus.ALL,
) -> tuple[QuotationRanking, ...]:
    """Coverage rows matching a supplier search term and a coverage status."""
    needle = (term or "").strip().lower()
    rows: list[QuotationRanking] = []
    for row in rankings:
        if needle and needle not in row.supplier_name.lower():
            continue
        if status == CoverageStatus.FULL and not row.is_full_coverage:
            continue
        if status == CoverageStatus.PENDING and row.is_full_coverage:
            continue
        rows.append(row)
    return tuple(rows)


def filter_items(
    items: Iterable[ItemComparison],
    term: str | None = None,
    sheet_name: str | None = None,
) -> tuple[ItemComparison, ...]:
    """Item rows by sheet and by description/code/section search."""
    needle = normalize_description(term)
    rows: list[ItemComparison] = []
    for item in items:
        baseline = item.baseline
        if sheet_name and baseline.sheet_name != sheet_name:
            continue
        if needle:
            haystack = " ".join(
                normalize_description(part)
                for part in (
                    baseline.description,
                    baseline.section_path,
                    normalize_item_code(baseline.item_code),
                )
                if part
            )
            if needle not in haystack:
                continue
        rows.append(item)
    return tuple(rows)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ComparisonEngine:
    """
    Supplier comparison over one process.

    Contract:
        Pure functions -- no I/O, no database access.

    Guarantees:
        - Item comparisons follow baseline catalog order.
        - Offers inside an item follow quotation order; only the first
          offer line of a quotation for a given baseline item is used.
        - Rankings include every quotation, priced or not.

    Non-goals:
        - Does not reconcile offer totals across units; totals are compared
          as quoted and only ``normalized_unit_price`` is re-expressed per
          baseline unit.
    """

    @traced_engine(
        "comparison",
        "1.0",
        fingerprint_fields=("base_currency", "min_winner_coverage", "winner_override"),
    )
    def compare(
        self,
        *,
        baseline: Sequence[BaselineItem],
        quotations: Sequence[Quotation],
        base_currency: str,
        min_winner_coverage: Decimal = FULL_COVERAGE,
        winner_override: UUID | None = None,
    ) -> ComparisonResult:
        items = self._compare_items(baseline, quotations, base_currency)
        rankings = self._rank(baseline, quotations, items)
        sheets, sections = self._summarize_areas(items)

        baseline_total = sum(
            (item.reference_total for item in baseline if item.reference_total is not None),
            ZERO,
        )
        total_savings = sum(
            (item.savings for item in items if item.savings is not None), ZERO
        )
        winner = select_winner(rankings, min_winner_coverage, winner_override)

        logger.info(
            "comparison_completed",
            extra={
                "baseline_items": len(baseline),
                "quotations": len(quotations),
                "base_currency": base_currency,
                "baseline_total": str(baseline_total),
                "total_savings": str(total_savings),
                "winner_quotation_id": str(winner.quotation_id) if winner else None,
                "winner_coverage_qualified": winner.coverage_qualified if winner else None,
            },
        )

        return ComparisonResult(
            base_currency=base_currency,
            items=items,
            rankings=rankings,
            baseline_total=baseline_total,
            total_savings=total_savings,
            sheet_summaries=sheets,
            section_summaries=sections,
            supplier_groups=group_suppliers(quotations),
            winner=winner,
        )

    def _compare_items(
        self,
        baseline: Sequence[BaselineItem],
        quotations: Sequence[Quotation],
        base_currency: str,
    ) -> tuple[ItemComparison, ...]:
        by_baseline: dict[UUID, list[SupplierOffer]] = {item.id: [] for item in baseline}
        fallback_qty = {item.id: item.required_quantity for item in baseline}
        baseline_units = {item.id: item.unit for item in baseline}

        for quotation in quotations:
            seen: set[UUID] = set()
            rate_missing = False
            for line in quotation.lines:
                if line.baseline_id is None or line.baseline_id not in by_baseline:
                    continue
                if line.baseline_id in seen:
                    continue
                seen.add(line.baseline_id)

                raw_total = offer_total(line, fallback_qty[line.baseline_id])
                total = convert_to_base(
                    raw_total, quotation.currency, base_currency, quotation.exchange_rate
                )
                unit_price = convert_to_base(
                    line.unit_price, quotation.currency, base_currency, quotation.exchange_rate
                )
                if unit_price is not None:
                    unit_price = convert_unit_price(
                        unit_price,
                        line.original_unit or line.unit,
                        baseline_units[line.baseline_id],
                    ).value
                if raw_total is not None and total is None:
                    rate_missing = True
                by_baseline[line.baseline_id].append(
                    SupplierOffer(
                        quotation_id=quotation.id,
                        supplier_name=quotation.supplier_name,
                        line=line,
                        normalized_unit_price=unit_price,
                        normalized_total=total,
                    )
                )

            if rate_missing:
                logger.warning(
                    "exchange_rate_missing",
                    extra={
                        "quotation_id": str(quotation.id),
                        "currency": quotation.currency,
                        "base_currency": base_currency,
                    },
                )

        results: list[ItemComparison] = []
        for item in baseline:
            offers = tuple(by_baseline[item.id])
            results.append(
                ItemComparison(
                    baseline=item,
                    offers=offers,
                    best_offer=select_best_offer(offers),
                    savings=compute_savings(offers),
                )
            )
        return tuple(results)

    def _rank(
        self,
        baseline: Sequence[BaselineItem],
        quotations: Sequence[Quotation],
        items: Sequence[ItemComparison],
    ) -> tuple[QuotationRanking, ...]:
        total_items = len(baseline)
        baseline_total = sum(
            (item.reference_total for item in baseline if item.reference_total is not None),
            ZERO,
        )

        rows: list[QuotationRanking] = []
        for quotation in quotations:
            matched = 0
            best_items = 0
            amount: Decimal | None = None
            for item in items:
                offer = item.offer_for(quotation.id)
                if offer is None:
                    continue
                matched += 1
                if offer.normalized_total is not None:
                    amount = (amount or ZERO) + offer.normalized_total
                if item.best_offer is not None and item.best_offer.quotation_id == quotation.id:
                    best_items += 1

            coverage = Decimal(matched) / Decimal(total_items) if total_items else ZERO
            diff_amount: Decimal | None = None
            diff_pct: Decimal | None = None
            if amount is not None and baseline_total != ZERO:
                diff_amount = amount - baseline_total
                diff_pct = diff_amount / baseline_total

            rows.append(
                QuotationRanking(
                    quotation_id=quotation.id,
                    supplier_name=quotation.supplier_name,
                    currency=quotation.currency,
                    normalized_amount=amount,
                    items_matched=matched,
                    total_items=total_items,
                    coverage_pct=coverage,
                    missing_count=max(0, total_items - matched),
                    diff_amount=diff_amount,
                    diff_pct=diff_pct,
                    best_items=best_items,
                )
            )

        return tuple(sorted(rows, key=rank_key))

    def _summarize_areas(
        self,
        items: Sequence[ItemComparison],
    ) -> tuple[tuple[AreaSummary, ...], tuple[AreaSummary, ...]]:
        sheet_base: dict[str, Decimal] = {}
        sheet_supplier: dict[str, dict[UUID, Decimal]] = {}
        section_base: dict[tuple[str, str], Decimal] = {}
        section_supplier: dict[tuple[str, str], dict[UUID, Decimal]] = {}

        for item in items:
            sheet = item.baseline.sheet_name or ""
            section = (sheet, item.baseline.section_path or "")
            reference = item.reference_total or ZERO
            sheet_base[sheet] = sheet_base.get(sheet, ZERO) + reference
            section_base[section] = section_base.get(section, ZERO) + reference
            sheet_totals = sheet_supplier.setdefault(sheet, {})
            section_totals = section_supplier.setdefault(section, {})
            for offer in item.offers:
                if offer.normalized_total is None:
                    continue
                qid = offer.quotation_id
                sheet_totals[qid] = sheet_totals.get(qid, ZERO) + offer.normalized_total
                section_totals[qid] = section_totals.get(qid, ZERO) + offer.normalized_total

        sheets = tuple(
            AreaSummary(
                sheet_name=sheet,
                section_path=None,
                baseline_total=total,
                supplier_totals=sheet_supplier[sheet],
            )
            for sheet, total in sheet_base.items()
        )
        sections = tuple(
            AreaSummary(
                sheet_name=key[0],
                section_path=key[1],
                baseline_total=total,
                supplier_totals=section_supplier[key],
            )
            for key, total in section_base.items()
        )
        return sheets, sections
