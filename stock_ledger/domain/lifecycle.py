"""
Lifecycle types (``stock_ledger.domain.lifecycle``).

Responsibility
--------------
Closed enumerations for every status the ledger stores and the pure
transition tables that decide which changes are legal.  No I/O; services
consult these tables before they write.

Invariants enforced
-------------------
* Batch approval is one-way: pending -> approved | rejected, and the two
  decided states have no outgoing edges.
* Batch stock status: active <-> consumed (allocation and release),
  active -> inactive (soft delete).  Inactive is terminal.
* Job tab categories are exactly three; anything else is rejected at the
  type boundary by ``TabCategory.parse``.
"""

from __future__ import annotations

from enum import Enum

from stock_ledger.exceptions import ValidationError


# =========================================================================
# Batch approval
# =========================================================================


class ApprovalStatus(str, Enum):
    """Batch approval states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Decision(str, Enum):
    """Decisions an approver can make on a pending batch."""

    APPROVE = "approve"
    REJECT = "reject"

    @property
    def target_status(self) -> ApprovalStatus:
        if self is Decision.APPROVE:
            return ApprovalStatus.APPROVED
        return ApprovalStatus.REJECTED

    @classmethod
    def parse(cls, value: Decision | str) -> Decision:
        if isinstance(value, Decision):
            return value
        normalized = str(value).strip().lower()
        aliases = {"approved": "approve", "rejected": "reject"}
        try:
            return cls(aliases.get(normalized, normalized))
        except ValueError:
            raise ValidationError("decision", f"unknown decision '{value}'") from None


APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
    }),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
}

TERMINAL_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
})


def can_transition(current: ApprovalStatus, target: ApprovalStatus) -> bool:
    """True if ``current -> target`` is a legal approval transition."""
    return target in APPROVAL_TRANSITIONS.get(current, frozenset())


# =========================================================================
# Batch stock status
# =========================================================================


class BatchStatus(str, Enum):
    """Physical stock status of a batch."""

    ACTIVE = "active"
    CONSUMED = "consumed"
    INACTIVE = "inactive"


# =========================================================================
# Movement log
# =========================================================================


class MovementType(str, Enum):
    """Event types recorded in the movement log."""

    OPENING_BALANCE = "opening_balance"
    BATCH_RECEIPT = "batch_receipt"
    JOB_ISSUE = "job_issue"
    ADJUSTMENT_IN = "adjustment_in"
    ADJUSTMENT_OUT = "adjustment_out"

    @property
    def is_inbound(self) -> bool:
        return self in (MovementType.BATCH_RECEIPT, MovementType.ADJUSTMENT_IN)


# =========================================================================
# Allocation
# =========================================================================


class AllocationStatus(str, Enum):
    """Lifecycle of a batch-to-job allocation."""

    ACTIVE = "active"
    RELEASED = "released"
    CONSUMED = "consumed"


# =========================================================================
# Jobs
# =========================================================================


class JobStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class TabCategory(str, Enum):
    """The three job tabs that must each be approved before closure."""

    WAREHOUSE_A = "warehouse_a"
    WAREHOUSE_BC = "warehouse_bc"
    OWNER_SUPPLIED = "owner_supplied"

    @classmethod
    def parse(cls, value: TabCategory | str) -> TabCategory:
        if isinstance(value, TabCategory):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(
                "category",
                f"'{value}' is not one of {[c.value for c in cls]}",
            ) from None
