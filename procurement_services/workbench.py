"""
procurement_services.workbench -- Editing session over one quotation process.

Responsibility:
    Holds the state of one operator session: the loaded catalog, quotations,
    order and delivery ledgers, the reconciled progress records, and the
    active order and delivery drafts.  Exposes read-only view models and
    mutator entry points, and turns every save or delete into a
    ``WorkbenchResult`` instead of an exception.

Architecture position:
    Services -- stateful orchestration over pure engines and a
    ``ProcurementBackend``.  Single-threaded; one workbench per session.

Invariants enforced:
    - Drafts are validated before any backend call; a validation failure
      never reaches the backend.
    - A failed save leaves the draft exactly as it was.
    - After a delivery save, deliveries are reloaded and only then is
      progress recomputed.
    - No retries and no de-duplication of repeated submissions.

Failure modes:
    - Refresh errors propagate to the caller unchanged.
    - Save/delete errors map to ``PERSISTENCE_FAILED`` with a message.
    - Deleting a quotation with dependent orders maps to
      ``CONFIRMATION_REQUIRED``; retry with ``force=True``.

Usage:
    bench = ProcurementWorkbench(service, process.id)
    bench.refresh()
    bench.select_supplier(ranking.quotation_id)
    bench.add_all_from_supplier()
    result = bench.save_order()
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from typing import Any
from uuid import UUID

from procurement_config import ProcurementSettings
from procurement_engines import delivery_draft as deliveries
from procurement_engines import order_draft as orders
from procurement_engines.catalog import BaselineIndex
from procurement_engines.comparison import (
    ComparisonEngine,
    ComparisonResult,
    CoverageStatus,
    ItemComparison,
    QuotationRanking,
    SupplierGroup,
    WinnerSelection,
    filter_coverage,
    filter_items,
)
from procurement_engines.delivery_draft import DeliveryDraft
from procurement_engines.order_draft import DraftMode, OrderDraft
from procurement_engines.progress import (
    ProgressEngine,
    ProgressRecord,
    ProgressStats,
    ProgressStatus,
    filter_progress,
    progress_stats,
)
from procurement_kernel.domain.clock import Clock, SystemClock
from procurement_kernel.domain.documents import (
    BaselineItem,
    Delivery,
    PurchaseOrder,
    Quotation,
)
from procurement_kernel.domain.values import format_money
from procurement_kernel.exceptions import (
    DraftReplaceConfirmationRequired,
    DraftValidationError,
    PurchaseOrderNotFoundError,
    QuotationHasDependentsError,
    QuotationNotFoundError,
)
from procurement_kernel.logging_config import LogContext, get_logger
from procurement_services.backend import ProcurementBackend

logger = get_logger("services.workbench")


class WorkbenchStatus(str, Enum):
    """Outcome of a workbench action."""

    SAVED = "saved"
    UPDATED = "updated"
    DELETED = "deleted"
    VALIDATION_FAILED = "validation_failed"
    PERSISTENCE_FAILED = "persistence_failed"
    CONFIRMATION_REQUIRED = "confirmation_required"


@dataclass(frozen=True)
class WorkbenchResult:
    status: WorkbenchStatus
    message: str | None = None
    payload: Any = None

    @property
    def is_success(self) -> bool:
        return self.status in (
            WorkbenchStatus.SAVED,
            WorkbenchStatus.UPDATED,
            WorkbenchStatus.DELETED,
        )


class ProcurementWorkbench:
    """
    One operator's editing session over a process.

    Contract:
        ``refresh()`` must run before the view models are read.  Mutators
        replace the active draft with a new immutable value.

    Guarantees:
        - View models always reflect the last successful refresh.
        - Order numbering follows the ledger's next number until the
          operator types one.

    Non-goals:
        - No concurrent editors; no locking.
        - No automatic retry of failed writes.
    """

    def __init__(
        self,
        backend: ProcurementBackend,
        process_id: UUID,
        base_currency: str | None = None,
        settings: ProcurementSettings | None = None,
        clock: Clock | None = None,
    ):
        self._backend = backend
        self.process_id = process_id
        self._settings = settings or ProcurementSettings()
        self.base_currency = base_currency or self._settings.comparison.base_currency
        self._clock = clock or SystemClock()

        progress_settings = self._settings.progress
        self._comparison_engine = ComparisonEngine()
        self._progress_engine = ProgressEngine(
            epsilon=progress_settings.epsilon,
            completion_threshold=progress_settings.completion_threshold,
            completion_mode=progress_settings.completion_mode,
        )

        self.catalog = BaselineIndex(())
        self.quotations: tuple[Quotation, ...] = ()
        self.orders: tuple[PurchaseOrder, ...] = ()
        self.next_order_number = ""
        self.deliveries: tuple[Delivery, ...] = ()
        self.progress: tuple[ProgressRecord, ...] = ()
        self.winner_override: UUID | None = None
        self._comparison: ComparisonResult | None = None

        self.order_draft: OrderDraft = self._blank_order_draft()
        self.delivery_draft: DeliveryDraft = deliveries.new_delivery_draft(
            process_id, self._clock.today()
        )

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def refresh(self) -> None:
        """Reload everything, one collaborator call after another."""
        with LogContext.bind(process_id=str(self.process_id)):
            self.catalog = BaselineIndex(self._backend.list_baseline_items(self.process_id))
            self.quotations = tuple(self._backend.list_quotations(self.process_id))
            self._recompare()
            self.refresh_orders()
            self.refresh_deliveries()
            self.refresh_progress()
            logger.info(
                "workbench_refreshed",
                extra={
                    "baseline_items": len(self.catalog),
                    "quotations": len(self.quotations),
                    "orders": len(self.orders),
                    "deliveries": len(self.deliveries),
                },
            )

    def refresh_orders(self) -> None:
        listing = self._backend.list_purchase_orders(self.process_id)
        self.orders = tuple(listing.orders)
        self._set_next_order_number(listing.next_order_number)

    def refresh_deliveries(self) -> None:
        self.deliveries = tuple(self._backend.list_deliveries(self.process_id))

    def refresh_progress(self) -> None:
        supplied = self._backend.get_progress(self.process_id)
        self.progress = self._progress_engine.build(
            baseline=self.catalog.items,
            orders=self.orders,
            deliveries=self.deliveries,
            supplied=supplied,
        )

    def _recompare(self) -> None:
        self._comparison = self._comparison_engine.compare(
            baseline=self.catalog.items,
            quotations=self.quotations,
            base_currency=self.base_currency,
            min_winner_coverage=self._settings.comparison.min_winner_coverage,
            winner_override=self.winner_override,
        )

    def _set_next_order_number(self, next_number: str) -> None:
        self.next_order_number = next_number
        self.order_draft = orders.apply_next_order_number(self.order_draft, next_number)

    # -------------------------------------------------------------------------
    # View models
    # -------------------------------------------------------------------------

    @property
    def comparison(self) -> ComparisonResult:
        if self._comparison is None:
            self._recompare()
        return self._comparison

    @property
    def rankings(self) -> tuple[QuotationRanking, ...]:
        return self.comparison.rankings

    @property
    def supplier_groups(self) -> tuple[SupplierGroup, ...]:
        return self.comparison.supplier_groups

    @property
    def winner(self) -> WinnerSelection | None:
        return self.comparison.winner

    def coverage_rows(
        self, term: str | None = None, status: CoverageStatus = CoverageStatus.ALL
    ) -> tuple[QuotationRanking, ...]:
        return filter_coverage(self.rankings, term, status)

    def item_rows(
        self, term: str | None = None, sheet_name: str | None = None
    ) -> tuple[ItemComparison, ...]:
        return filter_items(self.comparison.items, term, sheet_name)

    def progress_rows(
        self, term: str | None = None, status: ProgressStatus = ProgressStatus.ALL
    ) -> tuple[ProgressRecord, ...]:
        return filter_progress(
            self.progress,
            term,
            status,
            baseline_index=self.catalog,
            epsilon=self._settings.progress.epsilon,
        )

    @property
    def progress_stats(self) -> ProgressStats | None:
        return progress_stats(self.progress)

    def search_catalog(self, term: str | None) -> tuple[BaselineItem, ...]:
        """Suggestions for the delivery form, excluding items already drafted."""
        return self.catalog.search(term, exclude_ids=self.delivery_draft.baseline_ids)

    def delivery_history(self, term: str | None = None) -> tuple[Delivery, ...]:
        numbers = {order.id: order.order_number for order in self.orders}
        return deliveries.search_deliveries(self.deliveries, term, numbers)

    def set_winner_override(self, quotation_id: UUID | None) -> None:
        self.winner_override = quotation_id
        self._recompare()

    # -------------------------------------------------------------------------
    # Order drafting
    # -------------------------------------------------------------------------

    def _blank_order_draft(self) -> OrderDraft:
        order_settings = self._settings.orders
        return orders.new_order_draft(
            self.process_id,
            next_number=self.next_order_number,
            issue_date=self._clock.today(),
            currency=self.base_currency,
            igv_rate=order_settings.igv_rate,
            discount_rate=order_settings.discount_rate,
        )

    def _find_order(self, order_id: UUID) -> PurchaseOrder:
        for order in self.orders:
            if order.id == order_id:
                return order
        raise PurchaseOrderNotFoundError(order_id)

    def _find_quotation(self, quotation_id: UUID) -> Quotation:
        for quotation in self.quotations:
            if quotation.id == quotation_id:
                return quotation
        raise QuotationNotFoundError(quotation_id)

    def new_order(self) -> OrderDraft:
        self.order_draft = self._blank_order_draft()
        return self.order_draft

    def edit_order(self, order_id: UUID) -> OrderDraft:
        self.order_draft = orders.draft_from_order(self._find_order(order_id), DraftMode.EDIT)
        return self.order_draft

    def reuse_order(self, order_id: UUID) -> OrderDraft:
        self.order_draft = orders.draft_from_order(
            self._find_order(order_id),
            DraftMode.REUSE,
            next_number=self.next_order_number,
            issue_date=self._clock.today(),
        )
        return self.order_draft

    def select_supplier(self, quotation_id: UUID | None) -> OrderDraft:
        name = self._find_quotation(quotation_id).supplier_name if quotation_id else ""
        self.order_draft = orders.select_supplier(self.order_draft, quotation_id, name)
        return self.order_draft

    def add_baseline_item(self, baseline_id: UUID) -> OrderDraft:
        item = self.comparison.item(baseline_id)
        if item is None:
            raise KeyError(baseline_id)
        self.order_draft = orders.add_baseline_item(self.order_draft, item)
        return self.order_draft

    def add_all_from_supplier(self, sheet_name: str | None = None) -> OrderDraft:
        """Add every priced offer of the selected supplier; no-op without one."""
        quotation_id = self.order_draft.quotation_id
        if quotation_id is None:
            return self.order_draft
        self.order_draft = orders.add_all_from_supplier(
            self.order_draft, self._find_quotation(quotation_id), self.catalog, sheet_name
        )
        return self.order_draft

    def add_manual_line(self, description: str | None = None) -> OrderDraft:
        self.order_draft = orders.add_manual_line(self.order_draft, description)
        return self.order_draft

    def update_order_line(self, line_id: str, **changes) -> OrderDraft:
        self.order_draft = orders.update_line(self.order_draft, line_id, **changes)
        return self.order_draft

    def remove_order_line(self, line_id: str) -> OrderDraft:
        self.order_draft = orders.remove_line(self.order_draft, line_id)
        return self.order_draft

    def clear_order_lines(self) -> OrderDraft:
        self.order_draft = orders.clear_lines(self.order_draft)
        return self.order_draft

    def set_order_number(self, order_number: str) -> OrderDraft:
        self.order_draft = orders.set_order_number(self.order_draft, order_number)
        return self.order_draft

    def set_order_rates(
        self, igv_percent: object = None, discount_percent: object = None
    ) -> WorkbenchResult | None:
        """Apply UI percentages; an out-of-range value leaves the draft as it was."""
        try:
            self.order_draft = orders.set_rates(
                self.order_draft, igv_percent, discount_percent
            )
        except DraftValidationError as exc:
            logger.info("order_rates_rejected", extra={"code": exc.code, "reason": str(exc)})
            return WorkbenchResult(WorkbenchStatus.VALIDATION_FAILED, str(exc))
        return None

    def save_order(self) -> WorkbenchResult:
        """Create or update the drafted order.

        On success the order listing and progress are reloaded and a blank
        draft carrying the next number replaces the saved one.
        """
        draft = self.order_draft
        try:
            payload = orders.build_order_payload(
                draft, self._settings.orders.default_supplier_name
            )
        except DraftValidationError as exc:
            logger.info("order_save_rejected", extra={"code": exc.code, "reason": str(exc)})
            return WorkbenchResult(WorkbenchStatus.VALIDATION_FAILED, str(exc))

        with LogContext.bind(process_id=self.process_id, order_id=draft.editing_order_id):
            try:
                if draft.is_editing:
                    result = self._backend.update_purchase_order(
                        self.process_id, draft.editing_order_id, payload
                    )
                    status = WorkbenchStatus.UPDATED
                else:
                    result = self._backend.save_purchase_order(self.process_id, payload)
                    status = WorkbenchStatus.SAVED
            except Exception as exc:
                logger.error(
                    "order_save_failed",
                    extra={"order_number": payload.order_number, "editing": draft.is_editing},
                    exc_info=True,
                )
                return WorkbenchResult(WorkbenchStatus.PERSISTENCE_FAILED, str(exc))

        saved = result.order
        self.refresh_orders()
        self.refresh_progress()
        self.order_draft = self._blank_order_draft()
        return WorkbenchResult(
            status,
            f"Order {saved.order_number} {status.value}: "
            f"{format_money(saved.totals.total, saved.currency)}",
            payload=saved,
        )

    # -------------------------------------------------------------------------
    # Delivery drafting
    # -------------------------------------------------------------------------

    def new_delivery(self, delivery_date: date | None = None) -> DeliveryDraft:
        self.delivery_draft = deliveries.new_delivery_draft(
            self.process_id, delivery_date or self._clock.today()
        )
        return self.delivery_draft

    def select_delivery_order(self, order_id: UUID, confirm: bool = False) -> WorkbenchResult | None:
        """Seed the delivery from an order.

        Returns a ``CONFIRMATION_REQUIRED`` result, leaving the draft alone,
        when entered quantities would be discarded without ``confirm``.
        """
        try:
            self.delivery_draft = deliveries.select_order(
                self.delivery_draft, self._find_order(order_id), confirm
            )
        except DraftReplaceConfirmationRequired as exc:
            return WorkbenchResult(
                WorkbenchStatus.CONFIRMATION_REQUIRED, str(exc), payload=order_id
            )
        return None

    def clear_delivery_order(self) -> DeliveryDraft:
        self.delivery_draft = deliveries.clear_order(self.delivery_draft)
        return self.delivery_draft

    def add_delivery_item(self, baseline_id: UUID) -> DeliveryDraft:
        item = self.catalog.get(baseline_id)
        if item is None:
            raise KeyError(baseline_id)
        self.delivery_draft = deliveries.add_baseline_item(self.delivery_draft, item)
        return self.delivery_draft

    def add_delivery_line(self) -> DeliveryDraft:
        self.delivery_draft = deliveries.add_blank_line(self.delivery_draft)
        return self.delivery_draft

    def update_delivery_line(self, line_id: str, **changes) -> DeliveryDraft:
        self.delivery_draft = deliveries.update_line(self.delivery_draft, line_id, **changes)
        self.delivery_draft = deliveries.autolink_by_description(
            self.delivery_draft, line_id, self.catalog
        )
        return self.delivery_draft

    def remove_delivery_line(self, line_id: str) -> DeliveryDraft:
        self.delivery_draft = deliveries.remove_line(self.delivery_draft, line_id)
        return self.delivery_draft

    def clear_delivery_lines(self) -> DeliveryDraft:
        self.delivery_draft = deliveries.reset_lines(self.delivery_draft)
        return self.delivery_draft

    def set_delivery_header(self, **fields) -> DeliveryDraft:
        """Set ``supplier_name``, ``guide_number``, ``delivery_date`` or ``notes``."""
        unknown = set(fields) - {"supplier_name", "guide_number", "delivery_date", "notes"}
        if unknown:
            raise ValueError(f"Unknown delivery header fields: {sorted(unknown)}")
        self.delivery_draft = replace(self.delivery_draft, **fields)
        return self.delivery_draft

    def save_delivery(self) -> WorkbenchResult:
        """Record the drafted delivery, then reload deliveries and progress in order."""
        try:
            payload = deliveries.build_delivery_payload(self.delivery_draft)
        except DraftValidationError as exc:
            logger.info("delivery_save_rejected", extra={"code": exc.code, "reason": str(exc)})
            return WorkbenchResult(WorkbenchStatus.VALIDATION_FAILED, str(exc))

        try:
            delivery = self._backend.save_delivery(self.process_id, payload)
        except Exception as exc:
            logger.error(
                "delivery_save_failed",
                extra={"process_id": str(self.process_id)},
                exc_info=True,
            )
            return WorkbenchResult(WorkbenchStatus.PERSISTENCE_FAILED, str(exc))

        self.refresh_deliveries()
        self.refresh_progress()
        self.new_delivery()
        return WorkbenchResult(WorkbenchStatus.SAVED, payload=delivery)

    # -------------------------------------------------------------------------
    # Quotations
    # -------------------------------------------------------------------------

    def delete_quotation(self, quotation_id: UUID, force: bool = False) -> WorkbenchResult:
        """Delete a quotation; dependents need a second call with ``force``."""
        with LogContext.bind(process_id=self.process_id, quotation_id=quotation_id):
            try:
                deletion = self._backend.delete_quotation(quotation_id, force=force)
            except QuotationHasDependentsError as exc:
                logger.info("quotation_delete_needs_confirmation", extra={"orders": len(exc.order_ids)})
                return WorkbenchResult(
                    WorkbenchStatus.CONFIRMATION_REQUIRED, str(exc), payload=exc.order_ids
                )
            except Exception as exc:
                logger.error("quotation_delete_failed", extra={"forced": force}, exc_info=True)
                return WorkbenchResult(WorkbenchStatus.PERSISTENCE_FAILED, str(exc))

        if self.winner_override == quotation_id:
            self.winner_override = None
        if self.order_draft.quotation_id == quotation_id:
            self.order_draft = orders.select_supplier(self.order_draft, None, "")
        self.refresh()
        return WorkbenchResult(WorkbenchStatus.DELETED, payload=deletion)
