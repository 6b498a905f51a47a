"""
Quotations Ledger Service (``procurement_modules.quotations.service``).

Responsibility
--------------
Persist and serve everything the comparison workbench reads and writes:
quotation processes, the baseline catalog, supplier quotations, the
purchase order ledger and the delivery ledger.  Also produces the
pre-aggregated progress figures an upstream summarization would supply.

Architecture position
---------------------
**Modules layer** -- the SQLAlchemy implementation of the
``procurement_services.backend.ProcurementBackend`` protocol.  Pure
numbering, totals and aggregation are delegated to ``procurement_engines``.

Invariants enforced
-------------------
* Each public write owns its transaction: ``commit`` on success,
  ``rollback`` and re-raise on any exception.
* Every line's ``baseline_id`` belongs to the same process.
* Order numbers are unique per process, compared case-insensitively;
  updating an order keeps its number unless a different one is given.
* Guide numbers are unique per process, compared without separators.
* A supplier label quotes a process at most once.
* Deleting a quotation that purchase orders reference requires ``force``.

Failure modes
-------------
* ``BaselineReferenceError`` / ``*NotFoundError`` for bad references.
* ``DuplicateOrderNumberError`` / ``DuplicateGuideNumberError`` /
  ``DuplicateQuotationError`` for uniqueness violations.
* ``QuotationHasDependentsError`` for a non-forced cascading delete.
* ``EmptyDraftError`` / ``InvalidQuantityError`` for payloads that skipped
  engine validation.
* Database exceptions propagate after rollback.

Usage::

    service = ProcurementLedgerService(session, actor_id=actor_id)
    process = service.create_process("Torre A - Acabados")
    service.import_baseline_items(process.id, rows)
    listing = service.list_purchase_orders(process.id)
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from procurement_config import ProcurementSettings
from procurement_engines.delivery_draft import DeliveryPayload
from procurement_engines.order_draft import (
    OrderPayload,
    build_order_number,
    compute_totals,
    order_number_key,
)
from procurement_engines.progress import ProgressFigures, aggregate_progress
from procurement_kernel.domain.clock import Clock, SystemClock
from procurement_kernel.domain.documents import (
    BaselineItem,
    Delivery,
    OfferLine,
    OrderLine,
    PurchaseOrder,
    Quotation,
    QuotationProcess,
)
from procurement_kernel.domain.identifiers import (
    collapse_guide_number_key,
    format_guide_number,
    normalize_identifier,
)
from procurement_kernel.domain.values import (
    ONE,
    ZERO,
    decimal_or_zero,
    positive_part,
    to_decimal,
)
from procurement_kernel.exceptions import (
    BaselineReferenceError,
    DeliveryNotFoundError,
    DuplicateGuideNumberError,
    DuplicateOrderNumberError,
    DuplicateQuotationError,
    EmptyDraftError,
    InvalidQuantityError,
    MissingFieldError,
    ProcessNotFoundError,
    PurchaseOrderNotFoundError,
    QuotationHasDependentsError,
    QuotationNotFoundError,
)
from procurement_kernel.logging_config import get_logger
from procurement_modules.quotations.models import (
    OrderListing,
    OrderSaveResult,
    QuotationDeletion,
)
from procurement_modules.quotations.orm import (
    BaselineItemModel,
    DeliveryLineModel,
    DeliveryModel,
    OfferLineModel,
    PurchaseOrderLineModel,
    PurchaseOrderModel,
    QuotationModel,
    QuotationProcessModel,
)

logger = get_logger("modules.quotations.service")


class ProcurementLedgerService:
    """
    Persistence for processes, quotations, orders and deliveries.

    Contract
    --------
    * Read methods return kernel DTOs and never commit.
    * Write methods validate, write, commit and return DTOs; on failure
      the session is rolled back and the exception re-raised.

    Guarantees
    ----------
    * Order sequences are allocated per process, starting at 1.
    * Returned lists are deterministic: catalog and quotations in import
      order, orders and deliveries newest first.
    * Clock is injectable for deterministic default dates.

    Non-goals
    ---------
    * No authentication or authorization; ``actor_id`` is recorded as given.
    * No retries and no idempotency keys; a repeated save is a new save.
    """

    def __init__(
        self,
        session: Session,
        actor_id: UUID,
        settings: ProcurementSettings | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._actor_id = actor_id
        self._settings = settings or ProcurementSettings()
        self._clock = clock or SystemClock()

    # =========================================================================
    # Transaction helpers
    # =========================================================================

    def _commit(self, operation: str, **fields: Any) -> None:
        self._session.commit()
        logger.info(f"{operation}_committed", extra=fields)

    def _rollback(self, operation: str) -> None:
        self._session.rollback()
        logger.warning(f"{operation}_rolled_back", exc_info=True)

    # =========================================================================
    # Lookups
    # =========================================================================

    def _process(self, process_id: UUID) -> QuotationProcessModel:
        model = self._session.get(QuotationProcessModel, process_id)
        if model is None:
            raise ProcessNotFoundError(process_id)
        return model

    def _quotation(self, quotation_id: UUID, process_id: UUID | None = None) -> QuotationModel:
        model = self._session.get(QuotationModel, quotation_id)
        if model is None or (process_id is not None and model.process_id != process_id):
            raise QuotationNotFoundError(quotation_id)
        return model

    def _order(self, order_id: UUID, process_id: UUID | None = None) -> PurchaseOrderModel:
        model = self._session.get(PurchaseOrderModel, order_id)
        if model is None or (process_id is not None and model.process_id != process_id):
            raise PurchaseOrderNotFoundError(order_id)
        return model

    def _baseline_ids(self, process_id: UUID) -> set[UUID]:
        rows = self._session.scalars(
            select(BaselineItemModel.id).where(BaselineItemModel.process_id == process_id)
        )
        return set(rows)

    def _check_baseline_refs(self, process_id: UUID, baseline_ids: Sequence[UUID | None]) -> None:
        wanted = {bid for bid in baseline_ids if bid is not None}
        if not wanted:
            return
        missing = wanted - self._baseline_ids(process_id)
        if missing:
            raise BaselineReferenceError(process_id, min(missing, key=str))

    def _next_position(self, model: type, process_id: UUID) -> int:
        current = self._session.scalar(
            select(func.max(model.position)).where(model.process_id == process_id)
        )
        return (current or 0) + 1

    # =========================================================================
    # Processes and catalog (import side)
    # =========================================================================

    def create_process(
        self,
        name: str,
        base_currency: str | None = None,
        code: str | None = None,
    ) -> QuotationProcess:
        if not name or not name.strip():
            raise MissingFieldError("process", "name")
        try:
            model = QuotationProcessModel(
                name=name.strip(),
                code=code,
                base_currency=(base_currency or self._settings.comparison.base_currency).upper(),
                created_by_id=self._actor_id,
            )
            self._session.add(model)
            self._session.flush()
            dto = model.to_dto()
            self._commit("process_created", process_id=str(model.id))
            return dto
        except Exception:
            self._rollback("process_created")
            raise

    def get_process(self, process_id: UUID) -> QuotationProcess:
        return self._process(process_id).to_dto()

    def import_baseline_items(
        self, process_id: UUID, rows: Sequence[dict[str, Any]]
    ) -> tuple[BaselineItem, ...]:
        """Append baseline items parsed by the external importer.

        Each row carries ``description`` and optionally ``unit``,
        ``quantity``, ``unit_price``, ``total_price``, ``sheet_name``,
        ``section_path``, ``item_code`` and ``row_order``.
        """
        try:
            self._process(process_id)
            position = self._next_position(BaselineItemModel, process_id)
            models: list[BaselineItemModel] = []
            for row in rows:
                description = str(row.get("description") or "").strip()
                if not description:
                    continue
                model = BaselineItemModel(
                    process_id=process_id,
                    position=position,
                    description=description,
                    unit=row.get("unit"),
                    required_quantity=decimal_or_zero(row.get("quantity")),
                    reference_unit_price=to_decimal(row.get("unit_price")),
                    reference_total_price=to_decimal(row.get("total_price")),
                    sheet_name=row.get("sheet_name"),
                    section_path=row.get("section_path"),
                    item_code=row.get("item_code"),
                    row_order=row.get("row_order"),
                    created_by_id=self._actor_id,
                )
                self._session.add(model)
                models.append(model)
                position += 1
            self._session.flush()
            dtos = tuple(m.to_dto() for m in models)
            self._commit("baseline_imported", process_id=str(process_id), items=len(dtos))
            return dtos
        except Exception:
            self._rollback("baseline_imported")
            raise

    def list_baseline_items(self, process_id: UUID) -> tuple[BaselineItem, ...]:
        self._process(process_id)
        models = self._session.scalars(
            select(BaselineItemModel)
            .where(BaselineItemModel.process_id == process_id)
            .order_by(BaselineItemModel.position)
        )
        return tuple(m.to_dto() for m in models)

    # =========================================================================
    # Quotations
    # =========================================================================

    def import_quotation(
        self,
        process_id: UUID,
        supplier_name: str,
        lines: Sequence[dict[str, Any]],
        currency: str | None = None,
        exchange_rate: Decimal | str | None = None,
        notes: str | None = None,
    ) -> Quotation:
        """Store a supplier quotation parsed by the external importer.

        Line dicts carry ``description`` and optionally ``baseline_id``,
        ``unit``, ``original_unit``, ``quantity``, ``unit_price``,
        ``total_price``, ``row_order``, ``item_code``, ``sheet_name`` and
        ``section_path``.
        """
        label = (supplier_name or "").strip()
        if not label:
            raise MissingFieldError("quotation", "supplier_name")
        label_key = normalize_identifier(label)
        try:
            process = self._process(process_id)
            existing = self._session.scalar(
                select(QuotationModel).where(
                    QuotationModel.process_id == process_id,
                    QuotationModel.supplier_label_key == label_key,
                )
            )
            if existing is not None:
                raise DuplicateQuotationError(label, existing.id)
            self._check_baseline_refs(process_id, [line.get("baseline_id") for line in lines])

            model = QuotationModel(
                process_id=process_id,
                position=self._next_position(QuotationModel, process_id),
                supplier_name=label,
                supplier_label_key=label_key,
                currency=(currency or process.base_currency).upper(),
                exchange_rate=to_decimal(exchange_rate),
                notes=notes,
                created_by_id=self._actor_id,
            )
            for line_no, line in enumerate(lines, start=1):
                model.lines.append(self._offer_line_model(line, line_no))
            self._session.add(model)
            self._session.flush()
            dto = model.to_dto()
            self._commit(
                "quotation_imported",
                process_id=str(process_id),
                quotation_id=str(model.id),
                lines=len(dto.lines),
            )
            return dto
        except Exception:
            self._rollback("quotation_imported")
            raise

    def _offer_line_model(self, line: dict[str, Any], line_no: int) -> OfferLineModel:
        return OfferLineModel(
            baseline_id=line.get("baseline_id"),
            line_no=line_no,
            description=str(line.get("description") or "").strip(),
            unit=line.get("unit"),
            original_unit=line.get("original_unit"),
            quantity=to_decimal(line.get("quantity")),
            unit_price=to_decimal(line.get("unit_price")),
            total_price=to_decimal(line.get("total_price")),
            row_order=line.get("row_order"),
            item_code=line.get("item_code"),
            sheet_name=line.get("sheet_name"),
            section_path=line.get("section_path"),
            created_by_id=self._actor_id,
        )

    def upsert_manual_offer(
        self,
        quotation_id: UUID,
        baseline_id: UUID,
        unit_price: Decimal | str | None = None,
        total_price: Decimal | str | None = None,
        quantity: Decimal | str | None = None,
    ) -> OfferLine:
        """Price a baseline item by hand for a quotation that missed it."""
        try:
            quotation = self._quotation(quotation_id)
            self._check_baseline_refs(quotation.process_id, [baseline_id])
            baseline = self._session.get(BaselineItemModel, baseline_id)
            target = next(
                (line for line in quotation.lines if line.baseline_id == baseline_id), None
            )
            if target is None:
                target = self._offer_line_model(
                    {
                        "baseline_id": baseline_id,
                        "description": baseline.description,
                        "unit": baseline.unit,
                        "item_code": baseline.item_code,
                        "sheet_name": baseline.sheet_name,
                        "section_path": baseline.section_path,
                    },
                    line_no=len(quotation.lines) + 1,
                )
                quotation.lines.append(target)
            else:
                target.updated_by_id = self._actor_id
            target.unit_price = to_decimal(unit_price)
            target.total_price = to_decimal(total_price)
            target.quantity = to_decimal(quantity)
            self._session.flush()
            dto = target.to_dto()
            self._commit(
                "manual_offer_saved",
                quotation_id=str(quotation_id),
                baseline_id=str(baseline_id),
            )
            return dto
        except Exception:
            self._rollback("manual_offer_saved")
            raise

    def list_quotations(self, process_id: UUID) -> tuple[Quotation, ...]:
        self._process(process_id)
        models = self._session.scalars(
            select(QuotationModel)
            .where(QuotationModel.process_id == process_id)
            .order_by(QuotationModel.position)
        )
        return tuple(m.to_dto() for m in models)

    def delete_quotation(self, quotation_id: UUID, force: bool = False) -> QuotationDeletion:
        """Delete a quotation; with ``force`` also its orders and their deliveries."""
        try:
            quotation = self._quotation(quotation_id)
            orders = list(
                self._session.scalars(
                    select(PurchaseOrderModel).where(
                        PurchaseOrderModel.quotation_id == quotation_id
                    )
                )
            )
            order_ids = tuple(order.id for order in orders)
            if orders and not force:
                raise QuotationHasDependentsError(quotation_id, order_ids)

            deliveries = (
                list(
                    self._session.scalars(
                        select(DeliveryModel).where(DeliveryModel.order_id.in_(order_ids))
                    )
                )
                if order_ids
                else []
            )
            delivery_ids = tuple(d.id for d in deliveries)
            for delivery in deliveries:
                self._session.delete(delivery)
            self._session.flush()
            for order in orders:
                self._session.delete(order)
            self._session.flush()
            self._session.delete(quotation)
            self._session.flush()

            self._commit(
                "quotation_deleted",
                quotation_id=str(quotation_id),
                forced=force,
                deleted_orders=len(order_ids),
                deleted_deliveries=len(delivery_ids),
            )
            return QuotationDeletion(
                quotation_id=quotation_id,
                deleted_order_ids=order_ids,
                deleted_delivery_ids=delivery_ids,
            )
        except Exception:
            self._rollback("quotation_deleted")
            raise

    # =========================================================================
    # Purchase orders
    # =========================================================================

    def _order_models(self, process_id: UUID) -> list[PurchaseOrderModel]:
        return list(
            self._session.scalars(
                select(PurchaseOrderModel)
                .where(PurchaseOrderModel.process_id == process_id)
                .order_by(PurchaseOrderModel.sequence.desc())
            )
        )

    def _next_number(self, sequence: int, template: str | None) -> str:
        orders = self._settings.orders
        return build_order_number(
            sequence,
            template,
            default_suffix=orders.order_number_suffix,
            padding=orders.sequence_padding,
        )

    def list_purchase_orders(self, process_id: UUID) -> OrderListing:
        self._process(process_id)
        models = self._order_models(process_id)
        last = models[0] if models else None
        next_sequence = (last.sequence if last else 0) + 1
        return OrderListing(
            orders=tuple(m.to_dto() for m in models),
            next_sequence=next_sequence,
            next_order_number=self._next_number(next_sequence, last.order_number if last else None),
        )

    def _assert_order_number_available(
        self, process_id: UUID, number_key: str, number: str, exclude_id: UUID | None = None
    ) -> None:
        stmt = select(PurchaseOrderModel).where(
            PurchaseOrderModel.process_id == process_id,
            PurchaseOrderModel.order_number_key == number_key,
        )
        if exclude_id is not None:
            stmt = stmt.where(PurchaseOrderModel.id != exclude_id)
        clash = self._session.scalar(stmt)
        if clash is not None:
            raise DuplicateOrderNumberError(number, clash.id)

    def _validate_order_payload(self, process_id: UUID, payload: OrderPayload) -> None:
        if not payload.lines:
            raise EmptyDraftError("purchase order")
        for line in payload.lines:
            if line.quantity < ZERO or line.unit_price < ZERO:
                raise InvalidQuantityError("purchase order", "negative quantity or price")
        self._check_baseline_refs(process_id, [line.baseline_id for line in payload.lines])
        if payload.quotation_id is not None:
            self._quotation(payload.quotation_id, process_id)

    def _order_line_models(self, lines: Sequence[OrderLine]) -> list[PurchaseOrderLineModel]:
        return [
            PurchaseOrderLineModel(
                baseline_id=line.baseline_id,
                line_no=line_no,
                description=line.description,
                unit=line.unit,
                quantity=line.quantity,
                unit_price=line.unit_price,
                total_price=line.total_price,
                item_code=line.item_code,
                provider_description=line.provider_description,
                created_by_id=self._actor_id,
            )
            for line_no, line in enumerate(lines, start=1)
        ]

    def _apply_payload(self, model: PurchaseOrderModel, payload: OrderPayload) -> None:
        totals = compute_totals(payload.lines, payload.igv_rate, payload.discount_rate)
        model.quotation_id = payload.quotation_id
        model.supplier_name = payload.supplier_name
        model.issue_date = payload.issue_date or self._clock.today()
        model.currency = payload.currency
        model.igv_rate = payload.igv_rate
        model.discount_rate = payload.discount_rate
        model.subtotal = totals.subtotal
        model.discount = totals.discount
        model.net_subtotal = totals.net_subtotal
        model.igv = totals.igv
        model.total = totals.total
        model.notes = payload.notes

    def save_purchase_order(self, process_id: UUID, payload: OrderPayload) -> OrderSaveResult:
        """Create an order with the next sequence of the process."""
        try:
            self._process(process_id)
            self._validate_order_payload(process_id, payload)

            existing = self._order_models(process_id)
            last = existing[0] if existing else None
            sequence = (last.sequence if last else 0) + 1
            number = normalize_identifier(payload.order_number) or self._next_number(
                sequence, last.order_number if last else None
            )
            number_key = order_number_key(number)
            self._assert_order_number_available(process_id, number_key, number)

            model = PurchaseOrderModel(
                process_id=process_id,
                order_number=number,
                order_number_key=number_key,
                sequence=sequence,
                supplier_name=payload.supplier_name,
                created_by_id=self._actor_id,
            )
            self._apply_payload(model, payload)
            model.lines = self._order_line_models(payload.lines)
            self._session.add(model)
            self._session.flush()
            dto = model.to_dto()

            self._commit(
                "order_saved",
                process_id=str(process_id),
                order_id=str(model.id),
                order_number=number,
                sequence=sequence,
                total=str(dto.totals.total),
                lines=len(dto.lines),
            )
            return OrderSaveResult(
                order=dto,
                next_sequence=sequence + 1,
                next_order_number=self._next_number(sequence + 1, number),
            )
        except Exception:
            self._rollback("order_saved")
            raise

    def update_purchase_order(
        self, process_id: UUID, order_id: UUID, payload: OrderPayload
    ) -> OrderSaveResult:
        """Replace an order's content; the number changes only when a new one is given."""
        try:
            model = self._order(order_id, process_id)
            self._validate_order_payload(process_id, payload)

            requested = normalize_identifier(payload.order_number)
            if requested and order_number_key(requested) != model.order_number_key:
                number_key = order_number_key(requested)
                self._assert_order_number_available(
                    process_id, number_key, requested, exclude_id=order_id
                )
                model.order_number = requested
                model.order_number_key = number_key

            self._apply_payload(model, payload)
            model.updated_by_id = self._actor_id
            model.lines.clear()
            self._session.flush()
            model.lines.extend(self._order_line_models(payload.lines))
            self._session.flush()
            dto = model.to_dto()

            listing_last = self._order_models(process_id)[0]
            next_sequence = listing_last.sequence + 1
            self._commit(
                "order_updated",
                process_id=str(process_id),
                order_id=str(order_id),
                order_number=model.order_number,
                total=str(dto.totals.total),
            )
            return OrderSaveResult(
                order=dto,
                next_sequence=next_sequence,
                next_order_number=self._next_number(next_sequence, listing_last.order_number),
            )
        except Exception:
            self._rollback("order_updated")
            raise

    # =========================================================================
    # Deliveries
    # =========================================================================

    def list_deliveries(self, process_id: UUID) -> tuple[Delivery, ...]:
        self._process(process_id)
        models = self._session.scalars(
            select(DeliveryModel)
            .where(DeliveryModel.process_id == process_id)
            .order_by(DeliveryModel.position.desc())
        )
        return tuple(m.to_dto() for m in models)

    def save_delivery(self, process_id: UUID, payload: DeliveryPayload) -> Delivery:
        """Record a goods receipt."""
        try:
            self._process(process_id)
            if not payload.lines:
                raise EmptyDraftError("delivery")
            for line in payload.lines:
                if line.quantity <= ZERO:
                    raise InvalidQuantityError("delivery", "non-positive quantity")
            self._check_baseline_refs(process_id, [line.baseline_id for line in payload.lines])
            if payload.order_id is not None:
                self._order(payload.order_id, process_id)

            guide = format_guide_number(payload.guide_number)
            guide_key = collapse_guide_number_key(guide)
            if guide_key is not None:
                clash = self._session.scalar(
                    select(DeliveryModel).where(
                        DeliveryModel.process_id == process_id,
                        DeliveryModel.guide_number_key == guide_key,
                    )
                )
                if clash is not None:
                    raise DuplicateGuideNumberError(guide, clash.id)

            model = DeliveryModel(
                process_id=process_id,
                order_id=payload.order_id,
                position=self._next_position(DeliveryModel, process_id),
                supplier_name=payload.supplier_name,
                guide_number=guide,
                guide_number_key=guide_key,
                delivery_date=payload.delivery_date or self._clock.today(),
                notes=payload.notes,
                created_by_id=self._actor_id,
            )
            model.lines = [
                DeliveryLineModel(
                    baseline_id=line.baseline_id,
                    line_no=line_no,
                    description=line.description,
                    unit=line.unit,
                    quantity=line.quantity,
                    notes=line.notes,
                    created_by_id=self._actor_id,
                )
                for line_no, line in enumerate(payload.lines, start=1)
            ]
            self._session.add(model)
            self._session.flush()
            dto = model.to_dto()
            self._commit(
                "delivery_saved",
                process_id=str(process_id),
                delivery_id=str(model.id),
                guide_number=guide,
                lines=len(dto.lines),
            )
            return dto
        except Exception:
            self._rollback("delivery_saved")
            raise

    def delete_delivery(self, delivery_id: UUID) -> None:
        try:
            model = self._session.get(DeliveryModel, delivery_id)
            if model is None:
                raise DeliveryNotFoundError(delivery_id)
            self._session.delete(model)
            self._session.flush()
            self._commit("delivery_deleted", delivery_id=str(delivery_id))
        except Exception:
            self._rollback("delivery_deleted")
            raise

    # =========================================================================
    # Progress
    # =========================================================================

    def get_progress(self, process_id: UUID) -> tuple[ProgressFigures, ...]:
        """Pre-aggregated progress as the upstream summary computes it.

        The receive percentage and pending quantity are measured against
        what was ordered, not against what is required, and percentages
        are only capped from above.  Consumers reconcile these figures.
        """
        baseline = self.list_baseline_items(process_id)
        orders = tuple(m.to_dto() for m in self._order_models(process_id))
        deliveries = self.list_deliveries(process_id)

        figures: list[ProgressFigures] = []
        for raw in aggregate_progress(baseline, orders, deliveries):
            if raw.required > ZERO:
                order_pct = min(raw.ordered / raw.required, ONE)
            else:
                order_pct = ONE if raw.ordered > ZERO else ZERO
            if raw.ordered > ZERO:
                receive_pct = min(raw.received / raw.ordered, ONE)
            else:
                receive_pct = ONE if raw.received > ZERO else ZERO
            figures.append(
                replace(
                    raw,
                    order_pct=order_pct,
                    receive_pct=receive_pct,
                    pending_order=positive_part(raw.required - raw.ordered),
                    pending_receive=positive_part(raw.ordered - raw.received),
                )
            )
        logger.debug(
            "progress_figures_built",
            extra={"process_id": str(process_id), "records": len(figures)},
        )
        return tuple(figures)
