"""
MovementLog -- the single write path into the append-only movement log.

Responsibility:
    Appends immutable ``MovementRecord`` rows.  Every stock-changing
    operation in the ledger (opening balance, batch receipt, job issue,
    release, manual adjustment) calls ``append`` inside its own
    transaction.

Architecture position:
    Ledger > Services.  Reads of the log live in
    ``selectors/movement_selector.py``.

Invariants enforced:
    - Records are never updated or deleted (ORM listeners in
      db/immutability.py back this up).
    - At most one record per (product_id, source_ref, event_type).  The
      UNIQUE constraint is authoritative; ``append`` inserts inside a
      savepoint and on IntegrityError returns the record that won, so a
      retry or a racing duplicate is a no-op instead of a double count.
    - The sign of ``quantity_delta`` matches the event type: receipts and
      adjustment_in are positive, issues and adjustment_out negative.

Failure modes:
    - ValidationError for a delta whose sign contradicts the event type,
      a negative unit cost or an empty source reference.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_ledger.domain.clock import Clock
from stock_ledger.domain.lifecycle import MovementType
from stock_ledger.domain.values import MovementInfo
from stock_ledger.exceptions import ValidationError
from stock_ledger.logging_config import get_logger
from stock_ledger.models.movement import MovementRecord
from stock_ledger.services.base import BaseService

logger = get_logger("services.movement_log")


@dataclass(frozen=True)
class AppendResult:
    """Outcome of an append: the stored record and whether it is new."""

    movement: MovementInfo
    created: bool


def _check_sign(event_type: MovementType, quantity_delta: int) -> None:
    # An empty batch is still receipted so its approval leaves a record
    if event_type in (MovementType.OPENING_BALANCE, MovementType.BATCH_RECEIPT):
        if quantity_delta < 0:
            raise ValidationError(
                "quantity_delta", f"{event_type.value} cannot be negative"
            )
        return
    if quantity_delta == 0:
        raise ValidationError("quantity_delta", "movement must change stock")
    if event_type.is_inbound and quantity_delta < 0:
        raise ValidationError(
            "quantity_delta", f"{event_type.value} must be positive, got {quantity_delta}"
        )
    if not event_type.is_inbound and quantity_delta > 0:
        raise ValidationError(
            "quantity_delta", f"{event_type.value} must be negative, got {quantity_delta}"
        )


class MovementLog(BaseService):
    """
    Append-only writer for stock movements.

    Contract:
        ``append`` either inserts exactly one new record or returns the
        existing record with the same deduplication key.  It never modifies
        an existing record.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)

    def append(
        self,
        product_id: UUID,
        event_type: MovementType,
        quantity_delta: int,
        unit_cost: Decimal,
        effective_date: date,
        source_ref: str,
        actor_id: UUID,
        batch_id: UUID | None = None,
        job_id: UUID | None = None,
        notes: str | None = None,
    ) -> AppendResult:
        """
        Append a movement unless its deduplication key already exists.

        Args:
            product_id: Product whose stock moves.
            event_type: Kind of movement.
            quantity_delta: Signed change in on-hand quantity.
            unit_cost: Cost per unit at the time of the movement.
            effective_date: Date the movement counts from in as-of queries.
            source_ref: Deduplication reference (batch id, batch:job, ...).
            actor_id: Who caused the movement.

        Returns:
            AppendResult; ``created`` is False when a record with the same
            (product_id, source_ref, event_type) was already present.
        """
        event_type = MovementType(event_type)
        if not source_ref:
            raise ValidationError("source_ref", "source reference is required")
        if unit_cost < 0:
            raise ValidationError("unit_cost", "cannot be negative")
        _check_sign(event_type, quantity_delta)

        existing = self._find(product_id, source_ref, event_type)
        if existing is not None:
            logger.info(
                "movement_duplicate_ignored",
                extra={
                    "product_id": str(product_id),
                    "event_type": event_type.value,
                    "source_ref": source_ref,
                },
            )
            return AppendResult(MovementInfo.from_model(existing), created=False)

        record = MovementRecord(
            product_id=product_id,
            batch_id=batch_id,
            job_id=job_id,
            event_type=event_type.value,
            quantity_delta=quantity_delta,
            unit_cost=unit_cost,
            effective_date=effective_date,
            source_ref=source_ref,
            notes=notes,
            created_at=self.clock.now(),
            created_by_id=actor_id,
        )

        try:
            with self.session.begin_nested():
                self.session.add(record)
        except IntegrityError:
            # A concurrent writer committed the same key between our read
            # and our insert.
            logger.warning(
                "concurrent_movement_insert_conflict",
                extra={
                    "product_id": str(product_id),
                    "event_type": event_type.value,
                    "source_ref": source_ref,
                },
            )
            winner = self._find(product_id, source_ref, event_type)
            if winner is None:
                raise
            return AppendResult(MovementInfo.from_model(winner), created=False)

        logger.info(
            "movement_appended",
            extra={
                "product_id": str(product_id),
                "event_type": event_type.value,
                "quantity_delta": quantity_delta,
                "unit_cost": str(unit_cost),
                "effective_date": str(effective_date),
                "source_ref": source_ref,
            },
        )
        return AppendResult(MovementInfo.from_model(record), created=True)

    def find(
        self, product_id: UUID, source_ref: str, event_type: MovementType,
    ) -> MovementInfo | None:
        """The record holding a deduplication key, if any."""
        record = self._find(product_id, source_ref, MovementType(event_type))
        return MovementInfo.from_model(record) if record is not None else None

    def _find(
        self, product_id: UUID, source_ref: str, event_type: MovementType,
    ) -> MovementRecord | None:
        return self.session.execute(
            select(MovementRecord).where(
                MovementRecord.product_id == product_id,
                MovementRecord.source_ref == source_ref,
                MovementRecord.event_type == event_type.value,
            )
        ).scalar_one_or_none()
