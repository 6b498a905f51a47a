"""
procurement_engines -- pure calculation layer.

Responsibility:
    Catalog helpers, supplier comparison, order and delivery drafting, and
    progress reconciliation.  Every function is deterministic: identical
    inputs give identical outputs, with no clock access and no I/O beyond
    structured log records.

Architecture position:
    Engines -- may import procurement_kernel only.
"""

from procurement_engines.comparison import ComparisonEngine, ComparisonResult
from procurement_engines.progress import ProgressEngine, ProgressRecord

__all__ = [
    "ComparisonEngine",
    "ComparisonResult",
    "ProgressEngine",
    "ProgressRecord",
]
