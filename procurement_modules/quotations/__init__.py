"""
Quotations Module (``procurement_modules.quotations``).

Responsibility
--------------
Persistence for a quotation process: baseline catalog, supplier quotations,
purchase orders and deliveries, plus the pre-aggregated progress figures
the workbench reconciles.

Architecture position
---------------------
**Modules layer** -- ORM models and a transaction-owning service.  All
calculation is delegated to ``procurement_engines``.

Invariants enforced
-------------------
* Transaction boundary owned by ``ProcurementLedgerService``.
* Order numbers and guide numbers are unique per process.
* Every stored line references only baseline items of its own process.

Failure modes
-------------
* ``ProcurementError`` subclasses from ``procurement_kernel.exceptions``.
* Database errors propagate after rollback.
"""

from procurement_modules.quotations.models import (
    OrderListing,
    OrderSaveResult,
    QuotationDeletion,
)
from procurement_modules.quotations.service import ProcurementLedgerService

__all__ = [
    "OrderListing",
    "OrderSaveResult",
    "ProcurementLedgerService",
    "QuotationDeletion",
]
