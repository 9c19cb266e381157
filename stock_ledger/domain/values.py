"""
Values -- immutable read results returned across the ledger boundary.

Responsibility:
    Frozen dataclasses handed back by services and selectors.  Callers
    never receive live ORM rows, so nothing they hold can be flushed back
    by accident.

Architecture position:
    Ledger > Domain -- pure, zero I/O.  ``from_model`` converters exist for
    the service layer; domain code never calls them.

Invariants enforced:
    - Quantities are ``int``; costs and values are ``Decimal``.
    - Value fields in report rows are rounded to two places by the selector
      that builds them, never here.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from stock_ledger.domain.clock import ensure_utc
from stock_ledger.domain.lifecycle import (
    AllocationStatus,
    ApprovalStatus,
    BatchStatus,
    JobStatus,
    MovementType,
    TabCategory,
)

if TYPE_CHECKING:
    from stock_ledger.models.allocation import Allocation as AllocationModel
    from stock_ledger.models.batch import Batch as BatchModel
    from stock_ledger.models.job import Job as JobModel
    from stock_ledger.models.movement import MovementRecord as MovementModel
    from stock_ledger.models.product import Product as ProductModel


def _utc(value: datetime | None) -> datetime | None:
    return ensure_utc(value) if value is not None else None


@dataclass(frozen=True)
class QuantitySummary:
    """
    On-hand quantity split by approval state.

    ``approved`` is the remaining quantity of approved batches, ``pending``
    the quantity awaiting a decision, and ``total`` the usable stock
    (opening balance plus every replayed movement).  Pending stock is never
    part of ``total``.
    """

    product_id: UUID
    approved: int
    pending: int
    total: int


@dataclass(frozen=True)
class ProductInfo:
    id: UUID
    part_number: str
    description: str | None
    unit_of_measure: str
    minimum_stock: int
    reorder_point: int
    reorder_quantity: int
    opening_quantity: int
    opening_unit_cost: Decimal
    opening_date: date
    is_active: bool

    @classmethod
    def from_model(cls, model: ProductModel) -> ProductInfo:
        return cls(
            id=model.id,
            part_number=model.part_number,
            description=model.description,
            unit_of_measure=model.unit_of_measure,
            minimum_stock=model.minimum_stock,
            reorder_point=model.reorder_point,
            reorder_quantity=model.reorder_quantity,
            opening_quantity=model.opening_quantity,
            opening_unit_cost=Decimal(model.opening_unit_cost),
            opening_date=model.opening_date,
            is_active=model.is_active,
        )


@dataclass(frozen=True)
class BatchInfo:
    """Snapshot of a batch row at the moment it was read."""

    id: UUID
    product_id: UUID
    batch_number: str
    supplier_id: str | None
    received_date: date
    quantity: int
    remaining_quantity: int
    unit_cost: Decimal
    approval_status: ApprovalStatus
    status: BatchStatus
    approved_by_id: UUID | None
    decided_at: datetime | None
    rejection_reason: str | None
    job_allocated_to: UUID | None
    submitted_by_id: UUID

    @property
    def is_allocatable(self) -> bool:
        return (
            self.approval_status is ApprovalStatus.APPROVED
            and self.status is BatchStatus.ACTIVE
            and self.job_allocated_to is None
            and self.remaining_quantity > 0
        )

    @classmethod
    def from_model(cls, model: BatchModel) -> BatchInfo:
        return cls(
            id=model.id,
            product_id=model.product_id,
            batch_number=model.batch_number,
            supplier_id=model.supplier_id,
            received_date=model.received_date,
            quantity=model.quantity,
            remaining_quantity=model.remaining_quantity,
            unit_cost=Decimal(model.unit_cost),
            approval_status=ApprovalStatus(model.approval_status),
            status=BatchStatus(model.status),
            approved_by_id=model.approved_by_id,
            decided_at=_utc(model.decided_at),
            rejection_reason=model.rejection_reason,
            job_allocated_to=model.job_allocated_to,
            submitted_by_id=model.created_by_id,
        )


@dataclass(frozen=True)
class AllocationInfo:
    """A quantity of one batch reserved for one job."""

    id: UUID
    batch_id: UUID
    job_id: UUID
    product_id: UUID
    quantity: int
    unit_cost: Decimal
    status: AllocationStatus
    allocated_at: datetime
    allocated_by_id: UUID
    released_at: datetime | None = None
    consumed_at: datetime | None = None

    @classmethod
    def from_model(cls, model: AllocationModel) -> AllocationInfo:
        return cls(
            id=model.id,
            batch_id=model.batch_id,
            job_id=model.job_id,
            product_id=model.product_id,
            quantity=model.quantity,
            unit_cost=Decimal(model.unit_cost),
            status=AllocationStatus(model.status),
            allocated_at=ensure_utc(model.allocated_at),
            allocated_by_id=model.created_by_id,
            released_at=_utc(model.released_at),
            consumed_at=_utc(model.consumed_at),
        )


@dataclass(frozen=True)
class MovementInfo:
    """One immutable movement record."""

    id: UUID
    product_id: UUID
    event_type: MovementType
    quantity_delta: int
    unit_cost: Decimal
    effective_date: date
    source_ref: str
    batch_id: UUID | None
    job_id: UUID | None
    notes: str | None
    created_at: datetime
    created_by_id: UUID

    @property
    def value_delta(self) -> Decimal:
        return self.unit_cost * self.quantity_delta

    @classmethod
    def from_model(cls, model: MovementModel) -> MovementInfo:
        return cls(
            id=model.id,
            product_id=model.product_id,
            event_type=MovementType(model.event_type),
            quantity_delta=model.quantity_delta,
            unit_cost=Decimal(model.unit_cost),
            effective_date=model.effective_date,
            source_ref=model.source_ref,
            batch_id=model.batch_id,
            job_id=model.job_id,
            notes=model.notes,
            created_at=ensure_utc(model.created_at),
            created_by_id=model.created_by_id,
        )


@dataclass(frozen=True)
class MovementLine:
    """A movement with the running balance after it was applied."""

    movement: MovementInfo
    balance_after: int


@dataclass(frozen=True)
class JobInfo:
    id: UUID
    job_number: str
    status: JobStatus
    invoice_number: str | None
    closed_at: datetime | None
    closed_by_id: UUID | None

    @property
    def is_closed(self) -> bool:
        return self.status is JobStatus.CLOSED

    @classmethod
    def from_model(cls, model: JobModel) -> JobInfo:
        return cls(
            id=model.id,
            job_number=model.job_number,
            status=JobStatus(model.status),
            invoice_number=model.invoice_number,
            closed_at=_utc(model.closed_at),
            closed_by_id=model.closed_by_id,
        )


@dataclass(frozen=True)
class TabFlag:
    category: TabCategory
    approved: bool
    approved_by_id: UUID | None
    approved_at: datetime | None


@dataclass(frozen=True)
class TabStatus:
    """The three tab flags of a job."""

    job_id: UUID
    job_status: JobStatus
    flags: tuple[TabFlag, ...]

    @property
    def missing(self) -> list[str]:
        return [f.category.value for f in self.flags if not f.approved]

    @property
    def can_close(self) -> bool:
        return not self.missing

    def flag(self, category: TabCategory) -> TabFlag:
        for f in self.flags:
            if f.category is category:
                return f
        raise KeyError(category)


# Reports


@dataclass(frozen=True)
class ValuationRow:
    """Stock-on-hand and value of one product as of a date."""

    product_id: UUID
    part_number: str
    description: str | None
    as_of: date
    quantity: int
    value: Decimal

    @property
    def average_unit_cost(self) -> Decimal:
        if self.quantity == 0:
            return Decimal("0")
        return self.value / self.quantity


@dataclass(frozen=True)
class BatchBreakdownRow:
    """On-hand quantity of one approved batch as of a date."""

    batch_id: UUID
    product_id: UUID
    part_number: str
    batch_number: str
    received_date: date
    unit_cost: Decimal
    on_hand: int
    value: Decimal


@dataclass(frozen=True)
class PendingBatchRow:
    """A batch awaiting approval and how long it has waited."""

    batch_id: UUID
    product_id: UUID
    part_number: str
    batch_number: str
    supplier_id: str | None
    quantity: int
    unit_cost: Decimal
    received_date: date
    submitted_at: datetime
    days_pending: int
    overdue: bool


@dataclass(frozen=True)
class ReorderRow:
    product_id: UUID
    part_number: str
    quantity: int
    reorder_point: int
    minimum_stock: int
    shortage: int
    suggested_order: int
    below_minimum: bool


@dataclass(frozen=True)
class ConsistencyReport:
    """Replay versus batch-state aggregation for one product."""

    product_id: UUID
    replay_quantity: int
    batch_quantity: int
    replay_value: Decimal
    batch_value: Decimal

    @property
    def is_consistent(self) -> bool:
        return (
            self.replay_quantity == self.batch_quantity
            and self.replay_value == self.batch_value
        )
