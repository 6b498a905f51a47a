"""
SQLAlchemy ORM persistence models for the Quotations module.

Responsibility
--------------
Database-backed persistence for quotation processes, the baseline catalog,
supplier quotations and their offer lines, purchase orders with their
lines, and deliveries with their lines.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``ProcurementLedgerService``.
All inherit from ``TrackedBase`` (kernel db layer) and convert to the
kernel document DTOs through ``to_dto()``.

Invariants enforced
-------------------
* All quantities, prices and rates use ``Decimal`` (Numeric(38,9)).
* ``order_number_key`` is unique per process (case-insensitive numbers).
* ``guide_number_key`` is unique per process (separator-insensitive).
* ``supplier_label_key`` is unique per process.
* ``position`` / ``line_no`` columns preserve import and entry order.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from procurement_kernel.db.base import TrackedBase
from procurement_kernel.domain.documents import (
    BaselineItem,
    Delivery,
    DeliveryLine,
    OfferLine,
    OrderLine,
    OrderTotals,
    PurchaseOrder,
    Quotation,
    QuotationProcess,
)

# ---------------------------------------------------------------------------
# QuotationProcessModel
# ---------------------------------------------------------------------------


class QuotationProcessModel(TrackedBase):
    """A procurement event: one baseline, many quotations."""

    __tablename__ = "quotation_processes"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    base_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="PEN")

    def to_dto(self) -> QuotationProcess:
        return QuotationProcess(
            id=self.id,
            name=self.name,
            base_currency=self.base_currency,
            code=self.code,
        )


# ---------------------------------------------------------------------------
# BaselineItemModel
# ---------------------------------------------------------------------------


class BaselineItemModel(TrackedBase):
    """A required budget line of a process."""

    __tablename__ = "baseline_items"

    __table_args__ = (
        Index("idx_baseline_process", "process_id"),
    )

    process_id: Mapped[UUID] = mapped_column(
        ForeignKey("quotation_processes.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(nullable=False, default=0)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    unit: Mapped[str | None] = mapped_column(String(30), nullable=True)
    required_quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    reference_unit_price: Mapped[Decimal | None]
    reference_total_price: Mapped[Decimal | None]
    sheet_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    section_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    item_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    row_order: Mapped[int | None]

    def to_dto(self) -> BaselineItem:
        return BaselineItem(
            id=self.id,
            process_id=self.process_id,
            description=self.description,
            unit=self.unit,
            required_quantity=self.required_quantity,
            reference_unit_price=self.reference_unit_price,
            reference_total_price=self.reference_total_price,
            sheet_name=self.sheet_name,
            section_path=self.section_path,
            item_code=self.item_code,
            row_order=self.row_order,
        )


# ---------------------------------------------------------------------------
# QuotationModel / OfferLineModel
# ---------------------------------------------------------------------------


class QuotationModel(TrackedBase):
    """A supplier's priced response to a process."""

    __tablename__ = "quotations"

    __table_args__ = (
        UniqueConstraint("process_id", "supplier_label_key", name="uq_quotation_supplier"),
        Index("idx_quotation_process", "process_id"),
    )

    process_id: Mapped[UUID] = mapped_column(
        ForeignKey("quotation_processes.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(nullable=False, default=0)
    supplier_name: Mapped[str] = mapped_column(String(200), nullable=False)
    supplier_label_key: Mapped[str] = mapped_column(String(200), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="PEN")
    exchange_rate: Mapped[Decimal | None]
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    lines: Mapped[list["OfferLineModel"]] = relationship(
        "OfferLineModel",
        back_populates="quotation",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OfferLineModel.line_no",
    )

    def to_dto(self) -> Quotation:
        return Quotation(
            id=self.id,
            process_id=self.process_id,
            supplier_name=self.supplier_name,
            currency=self.currency,
            exchange_rate=self.exchange_rate,
            lines=tuple(line.to_dto() for line in self.lines),
            notes=self.notes,
        )


class OfferLineModel(TrackedBase):
    """A priced line of a quotation, optionally matched to a baseline item."""

    __tablename__ = "quotation_offer_lines"

    __table_args__ = (
        Index("idx_offer_quotation", "quotation_id"),
        Index("idx_offer_baseline", "baseline_id"),
    )

    quotation_id: Mapped[UUID] = mapped_column(
        ForeignKey("quotations.id", ondelete="CASCADE"), nullable=False
    )
    baseline_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("baseline_items.id"), nullable=True
    )
    line_no: Mapped[int] = mapped_column(nullable=False, default=0)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    unit: Mapped[str | None] = mapped_column(String(30), nullable=True)
    original_unit: Mapped[str | None] = mapped_column(String(30), nullable=True)
    quantity: Mapped[Decimal | None]
    unit_price: Mapped[Decimal | None]
    total_price: Mapped[Decimal | None]
    row_order: Mapped[int | None]
    item_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    sheet_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    section_path: Mapped[str | None] = mapped_column(String(500), nullable=True)

    quotation: Mapped["QuotationModel"] = relationship(
        "QuotationModel", back_populates="lines"
    )

    def to_dto(self) -> OfferLine:
        return OfferLine(
            id=self.id,
            quotation_id=self.quotation_id,
            description=self.description,
            baseline_id=self.baseline_id,
            unit=self.unit,
            quantity=self.quantity,
            unit_price=self.unit_price,
            total_price=self.total_price,
            row_order=self.row_order,
            original_unit=self.original_unit,
            item_code=self.item_code,
            sheet_name=self.sheet_name,
            section_path=self.section_path,
        )


# ---------------------------------------------------------------------------
# PurchaseOrderModel / PurchaseOrderLineModel
# ---------------------------------------------------------------------------


class PurchaseOrderModel(TrackedBase):
    """
    A committed order to one supplier.

    Guarantees:
        - ``sequence`` increases per process.
        - ``order_number_key`` is unique per process.
        - Totals are stored as computed at save time.
    """

    __tablename__ = "purchase_orders"

    __table_args__ = (
        UniqueConstraint("process_id", "order_number_key", name="uq_order_number"),
        Index("idx_order_process", "process_id"),
        Index("idx_order_quotation", "quotation_id"),
    )

    process_id: Mapped[UUID] = mapped_column(
        ForeignKey("quotation_processes.id"), nullable=False
    )
    quotation_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("quotations.id"), nullable=True
    )
    supplier_name: Mapped[str] = mapped_column(String(200), nullable=False)
    order_number: Mapped[str] = mapped_column(String(50), nullable=False)
    order_number_key: Mapped[str] = mapped_column(String(50), nullable=False)
    sequence: Mapped[int] = mapped_column(nullable=False)
    issue_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="PEN")
    igv_rate: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    discount_rate: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    discount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    net_subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    igv: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    lines: Mapped[list["PurchaseOrderLineModel"]] = relationship(
        "PurchaseOrderLineModel",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PurchaseOrderLineModel.line_no",
    )

    def to_dto(self) -> PurchaseOrder:
        return PurchaseOrder(
            id=self.id,
            process_id=self.process_id,
            supplier_name=self.supplier_name,
            order_number=self.order_number,
            sequence=self.sequence,
            lines=tuple(line.to_dto() for line in self.lines),
            quotation_id=self.quotation_id,
            issue_date=self.issue_date,
            currency=self.currency,
            igv_rate=self.igv_rate,
            discount_rate=self.discount_rate,
            totals=OrderTotals(
                subtotal=self.subtotal,
                discount=self.discount,
                net_subtotal=self.net_subtotal,
                igv=self.igv,
                total=self.total,
            ),
            notes=self.notes,
        )


class PurchaseOrderLineModel(TrackedBase):
    __tablename__ = "purchase_order_lines"

    __table_args__ = (
        Index("idx_order_line_order", "order_id"),
        Index("idx_order_line_baseline", "baseline_id"),
    )

    order_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False
    )
    baseline_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("baseline_items.id"), nullable=True
    )
    line_no: Mapped[int] = mapped_column(nullable=False, default=0)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    unit: Mapped[str | None] = mapped_column(String(30), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    unit_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    item_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    provider_description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    order: Mapped["PurchaseOrderModel"] = relationship(
        "PurchaseOrderModel", back_populates="lines"
    )

    def to_dto(self) -> OrderLine:
        return OrderLine(
            id=self.id,
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            unit=self.unit,
            baseline_id=self.baseline_id,
            item_code=self.item_code,
            provider_description=self.provider_description,
        )


# ---------------------------------------------------------------------------
# DeliveryModel / DeliveryLineModel
# ---------------------------------------------------------------------------


class DeliveryModel(TrackedBase):
    """A goods receipt, identified by the supplier's guide number."""

    __tablename__ = "deliveries"

    __table_args__ = (
        UniqueConstraint("process_id", "guide_number_key", name="uq_delivery_guide"),
        Index("idx_delivery_process", "process_id"),
        Index("idx_delivery_order", "order_id"),
    )

    process_id: Mapped[UUID] = mapped_column(
        ForeignKey("quotation_processes.id"), nullable=False
    )
    order_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=True
    )
    position: Mapped[int] = mapped_column(nullable=False, default=0)
    supplier_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    guide_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    guide_number_key: Mapped[str | None] = mapped_column(String(100), nullable=True)
    delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    lines: Mapped[list["DeliveryLineModel"]] = relationship(
        "DeliveryLineModel",
        back_populates="delivery",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="DeliveryLineModel.line_no",
    )

    def to_dto(self) -> Delivery:
        return Delivery(
            id=self.id,
            process_id=self.process_id,
            lines=tuple(line.to_dto() for line in self.lines),
            order_id=self.order_id,
            supplier_name=self.supplier_name,
            guide_number=self.guide_number,
            delivery_date=self.delivery_date,
            notes=self.notes,
        )


class DeliveryLineModel(TrackedBase):
    __tablename__ = "delivery_lines"

    __table_args__ = (
        Index("idx_delivery_line_delivery", "delivery_id"),
        Index("idx_delivery_line_baseline", "baseline_id"),
    )

    delivery_id: Mapped[UUID] = mapped_column(
        ForeignKey("deliveries.id", ondelete="CASCADE"), nullable=False
    )
    baseline_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("baseline_items.id"), nullable=True
    )
    line_no: Mapped[int] = mapped_column(nullable=False, default=0)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    unit: Mapped[str | None] = mapped_column(String(30), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    delivery: Mapped["DeliveryModel"] = relationship(
        "DeliveryModel", back_populates="lines"
    )

    def to_dto(self) -> DeliveryLine:
        return DeliveryLine(
            id=self.id,
            description=self.description,
            quantity=self.quantity,
            unit=self.unit,
            baseline_id=self.baseline_id,
            notes=self.notes,
        )
