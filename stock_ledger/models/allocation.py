"""
Module: stock_ledger.models.allocation
Responsibility: ORM persistence for batch-to-job allocations.
Architecture position: Ledger > Models.  May import from db/ only.

Invariants enforced:
    - UNIQUE(batch_id, job_id): a batch is issued to a given job at most
      once, which keeps the composite ``job_issue`` source reference
      unambiguous.
    - quantity > 0.
    - status limited to active / released / consumed.  Only an active
      allocation can be released or consumed.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from stock_ledger.db.base import TrackedBase, UUIDString


class Allocation(TrackedBase):
    """Quantity of one batch reserved for one job."""

    __tablename__ = "allocations"

    __table_args__ = (
        UniqueConstraint("batch_id", "job_id", name="uq_allocation_batch_job"),
        CheckConstraint("quantity > 0", name="ck_allocations_quantity"),
        CheckConstraint(
            "status IN ('active', 'released', 'consumed')",
            name="ck_allocations_status",
        ),
        Index("idx_allocation_job", "job_id", "status"),
    )

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("batches.id"), nullable=False,
    )
    job_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("jobs.id"), nullable=False,
    )
    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False,
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    allocated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    released_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    released_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    consumed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    consumed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<Allocation batch={self.batch_id} job={self.job_id} qty={self.quantity} [{self.status}]>"
