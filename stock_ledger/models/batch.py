"""
Module: stock_ledger.models.batch
Responsibility: ORM persistence for batches, the physical receipts of stock
    for one product.
Architecture position: Ledger > Models.  May import from db/ only.

Invariants enforced:
    - quantity >= 0 and unit_cost >= 0; 0 <= remaining_quantity <= quantity.
    - quantity, unit_cost, product_id and received_date are fixed at
      creation (db/immutability.py).
    - approval_status, approved_by_id and decided_at are written once.
    - approval_status and status are limited to their enumerations by
      check constraints mirroring domain/lifecycle.py.
    - ``version`` is the optimistic lock column; every UPDATE is conditional
      on the version the writer read.

Failure modes:
    - StaleDataError when a concurrent writer changed the row first.  The
      services translate this into the typed error a sequential caller
      would have received.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from stock_ledger.db.base import TrackedBase, UUIDString


class Batch(TrackedBase):
    """
    A receipt of stock awaiting, or past, an approval decision.

    Contract:
        Created pending and active with remaining_quantity == quantity.
        Decided exactly once.  remaining_quantity moves only through
        allocation and release; quantity never changes.

    Non-goals:
        Historical stock is not read from this table.  Allocation overwrites
        remaining_quantity; the movement log is the record of what happened
        when.
    """

    __tablename__ = "batches"

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_batches_quantity"),
        CheckConstraint("unit_cost >= 0", name="ck_batches_unit_cost"),
        CheckConstraint(
            "remaining_quantity >= 0 AND remaining_quantity <= quantity",
            name="ck_batches_remaining",
        ),
        CheckConstraint(
            "approval_status IN ('pending', 'approved', 'rejected')",
            name="ck_batches_approval_status",
        ),
        CheckConstraint(
            "status IN ('active', 'consumed', 'inactive')",
            name="ck_batches_status",
        ),
        # Query: batches of a product in insertion order
        Index("idx_batch_product_created", "product_id", "created_at"),
        # Query: pending approvals report
        Index("idx_batch_approval_status", "approval_status", "status"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False,
    )
    batch_number: Mapped[str] = mapped_column(String(100), nullable=False)

    # Opaque reference into the external supplier registry
    supplier_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    received_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Fixed at creation
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    remaining_quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    # Decision, written once
    approval_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending",
    )
    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    job_allocated_to: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("jobs.id"), nullable=True,
    )

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_pending(self) -> bool:
        return self.approval_status == "pending"

    def __repr__(self) -> str:
        return (
            f"<Batch {self.batch_number}: {self.remaining_quantity}/{self.quantity} "
            f"@ {self.unit_cost} [{self.approval_status}/{self.status}]>"
        )
