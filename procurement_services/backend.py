"""
procurement_services.backend -- Collaborator contract consumed by the workbench.

Responsibility:
    Names the persistence operations the workbench needs, independent of
    how they are carried out.  ``ProcurementLedgerService`` satisfies this
    protocol in-process; a remote client could satisfy it over a transport.

Architecture position:
    Services -- a structural ``Protocol``; nothing here imports the modules
    layer.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable
from uuid import UUID

from procurement_engines.delivery_draft import DeliveryPayload
from procurement_engines.order_draft import OrderPayload
from procurement_engines.progress import ProgressFigures
from procurement_kernel.domain.documents import BaselineItem, Delivery, Quotation


@runtime_checkable
class ProcurementBackend(Protocol):
    """Operations of the order, delivery and quotation ledgers.

    ``delete_quotation`` raises ``QuotationHasDependentsError`` when orders
    depend on the quotation and ``force`` is not set.  Order listing and
    save results expose ``next_sequence`` and ``next_order_number``.
    """

    def list_baseline_items(self, process_id: UUID) -> Sequence[BaselineItem]: ...

    def list_quotations(self, process_id: UUID) -> Sequence[Quotation]: ...

    def delete_quotation(self, quotation_id: UUID, force: bool = False): ...

    def list_purchase_orders(self, process_id: UUID): ...

    def save_purchase_order(self, process_id: UUID, payload: OrderPayload): ...

    def update_purchase_order(
        self, process_id: UUID, order_id: UUID, payload: OrderPayload
    ): ...

    def list_deliveries(self, process_id: UUID) -> Sequence[Delivery]: ...

    def save_delivery(self, process_id: UUID, payload: DeliveryPayload): ...

    def get_progress(self, process_id: UUID) -> Sequence[ProgressFigures]: ...
