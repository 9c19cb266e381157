"""
Pure domain layer.

Lifecycle enums, transition tables, the clock abstraction and the frozen
values returned to callers.  Nothing here touches the database.
"""

from stock_ledger.domain.clock import Clock, DeterministicClock, SystemClock, ensure_utc
from stock_ledger.domain.lifecycle import (
    APPROVAL_TRANSITIONS,
    TERMINAL_APPROVAL_STATUSES,
    AllocationStatus,
    ApprovalStatus,
    BatchStatus,
    Decision,
    JobStatus,
    MovementType,
    TabCategory,
    can_transition,
)
from stock_ledger.domain.values import (
    AllocationInfo,
    BatchBreakdownRow,
    BatchInfo,
    ConsistencyReport,
    JobInfo,
    MovementInfo,
    MovementLine,
    PendingBatchRow,
    ProductInfo,
    QuantitySummary,
    ReorderRow,
    TabFlag,
    TabStatus,
    ValuationRow,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "ensure_utc",
    "APPROVAL_TRANSITIONS",
    "TERMINAL_APPROVAL_STATUSES",
    "can_transition",
    "AllocationStatus",
    "ApprovalStatus",
    "BatchStatus",
    "Decision",
    "JobStatus",
    "MovementType",
    "TabCategory",
    "AllocationInfo",
    "BatchBreakdownRow",
    "BatchInfo",
    "ConsistencyReport",
    "JobInfo",
    "MovementInfo",
    "MovementLine",
    "PendingBatchRow",
    "ProductInfo",
    "QuantitySummary",
    "ReorderRow",
    "TabFlag",
    "TabStatus",
    "ValuationRow",
]
