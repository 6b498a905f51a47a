"""
Quotations module result types.

Frozen dataclasses returned by ``ProcurementLedgerService`` alongside the
kernel document DTOs.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from procurement_kernel.domain.documents import PurchaseOrder


@dataclass(frozen=True)
class OrderListing:
    """Orders of a process, newest first, plus the next number to propose."""

    orders: tuple[PurchaseOrder, ...]
    next_sequence: int
    next_order_number: str


@dataclass(frozen=True)
class OrderSaveResult:
    order: PurchaseOrder
    next_sequence: int
    next_order_number: str


@dataclass(frozen=True)
class QuotationDeletion:
    """What a quotation delete removed."""

    quotation_id: UUID
    deleted_order_ids: tuple[UUID, ...] = ()
    deleted_delivery_ids: tuple[UUID, ...] = ()
