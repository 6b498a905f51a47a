"""
procurement_services -- Stateful orchestration over engines and ledgers.

Architecture position:
    Services -- may import procurement_kernel, procurement_engines and
    procurement_config.  Talks to persistence only through the
    ``ProcurementBackend`` protocol.
"""

from procurement_services.backend import ProcurementBackend
from procurement_services.workbench import (
    ProcurementWorkbench,
    WorkbenchResult,
    WorkbenchStatus,
)

__all__ = [
    "ProcurementBackend",
    "ProcurementWorkbench",
    "WorkbenchResult",
    "WorkbenchStatus",
]
