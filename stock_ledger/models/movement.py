"""
Module: stock_ledger.models.movement
Responsibility: ORM persistence for the append-only movement log.
Architecture position: Ledger > Models.  May import from db/ only.

Invariants enforced:
    - Insert-only.  before_update / before_delete listeners in
      db/immutability.py raise ImmutabilityViolationError.
    - UNIQUE(product_id, source_ref, event_type) is the deduplication rule:
      a retried approval, issue or release cannot write a second record,
      even when two retries race.
    - event_type limited to the MovementType enumeration.

Failure modes:
    - IntegrityError on a duplicate (product_id, source_ref, event_type).
      MovementLog turns this into an idempotent no-op.

Audit relevance:
    Replaying a product's records in (effective_date, created_at, id) order
    on top of its opening balance reproduces stock on hand as of any date.
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
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from stock_ledger.db.base import Base, UUIDString


class MovementRecord(Base):
    """One immutable stock movement."""

    __tablename__ = "movement_records"

    __table_args__ = (
        UniqueConstraint(
            "product_id", "source_ref", "event_type",
            name="uq_movement_dedup",
        ),
        CheckConstraint(
            "event_type IN ('opening_balance', 'batch_receipt', 'job_issue', "
            "'adjustment_in', 'adjustment_out')",
            name="ck_movement_event_type",
        ),
        CheckConstraint("unit_cost >= 0", name="ck_movement_unit_cost"),
        # Query: replay order
        Index(
            "idx_movement_replay",
            "product_id", "effective_date", "created_at", "id",
        ),
        Index("idx_movement_batch", "batch_id"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False,
    )
    batch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("batches.id"), nullable=True,
    )
    job_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("jobs.id"), nullable=True,
    )

    event_type: Mapped[str] = mapped_column(String(30), nullable=False)
    quantity_delta: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    source_ref: Mapped[str] = mapped_column(String(200), nullable=False)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # Written by the service clock so replay order has sub-second resolution
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<MovementRecord {self.event_type} {self.quantity_delta:+d} "
            f"@ {self.unit_cost} on {self.effective_date} ref={self.source_ref}>"
        )
