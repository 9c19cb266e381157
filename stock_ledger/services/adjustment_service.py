"""
AdjustmentService -- manual stock corrections.

Cycle counts, damage write-offs and found stock are recorded as
``adjustment_in`` / ``adjustment_out`` movements.  The caller's reference
is the deduplication key, so re-submitting the same correction is a no-op.

Stock lives in two places: approved batches, and an unbatched pool made of
the opening balance plus inbound adjustments.  A write-off either names the
batch it comes from, which lowers that batch's remaining quantity at the
batch's cost, or drains the unbatched pool at the pool's average cost.
Either way the same unit can never be written off and then issued to a job.

Invariants enforced:
    - quantity > 0 and unit_cost >= 0; the sign comes from the direction.
    - A batch write-off needs an approved, active batch of the product and
      never exceeds its remaining quantity.  The batch row is locked.
    - An unbatched write-off cannot take the pool below zero unless the
      ledger is configured with ``allow_negative_stock``.  The product row
      is locked so two corrections of one product serialize.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_ledger.db.types import MONEY_DECIMAL_PLACES, round_money
from stock_ledger.domain.clock import Clock
from stock_ledger.domain.lifecycle import ApprovalStatus, BatchStatus, MovementType
from stock_ledger.domain.values import MovementInfo
from stock_ledger.exceptions import (
    InsufficientQuantityError,
    NotApprovedError,
    ProductNotFoundError,
    ValidationError,
)
from stock_ledger.logging_config import get_logger
from stock_ledger.models.batch import Batch
from stock_ledger.models.product import Product
from stock_ledger.selectors.valuation_selector import ValuationSelector
from stock_ledger.services.base import BaseService
from stock_ledger.services.movement_log import MovementLog

logger = get_logger("services.adjustment")


class AdjustmentDirection(str, Enum):
    IN = "in"
    OUT = "out"

    @property
    def event_type(self) -> MovementType:
        if self is AdjustmentDirection.IN:
            return MovementType.ADJUSTMENT_IN
        return MovementType.ADJUSTMENT_OUT


def adjustment_source_ref(reference: str) -> str:
    return f"adjustment:{reference}"


class AdjustmentService(BaseService):
    """Records manual adjustments to a product's stock."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        movement_log: MovementLog | None = None,
        allow_negative_stock: bool = False,
    ):
        super().__init__(session, clock)
        self._movements = movement_log or MovementLog(session, self.clock)
        self._allow_negative = allow_negative_stock

    def record(
        self,
        product_id: UUID,
        direction: AdjustmentDirection | str,
        quantity: int,
        reference: str,
        actor_id: UUID,
        unit_cost: Decimal | int | str | None = None,
        effective_date: date | None = None,
        notes: str | None = None,
        batch_id: UUID | None = None,
    ) -> MovementInfo:
        """
        Append a manual adjustment.

        ``unit_cost`` is required for inbound adjustments.  An outbound
        adjustment from a batch is costed at that batch's unit cost; one
        from the unbatched pool defaults to the pool's average unit cost.

        Raises:
            ProductNotFoundError: Unknown product.
            BatchNotFoundError: Unknown batch.
            NotApprovedError: Write-off from a batch that holds no stock.
            ValidationError: Bad direction, quantity, cost, reference or
                batch.
            InsufficientQuantityError: Outbound adjustment exceeds the
                stock it draws from.
        """
        try:
            direction = AdjustmentDirection(direction)
        except ValueError:
            raise ValidationError("direction", f"'{direction}' is not 'in' or 'out'") from None
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("quantity", "must be a positive whole number")
        reference = (reference or "").strip()
        if not reference:
            raise ValidationError("reference", "is required")
        if batch_id is not None and direction is AdjustmentDirection.IN:
            raise ValidationError("batch_id", "only write-offs can name a batch")

        product = self.session.execute(
            select(Product).where(Product.id == product_id).with_for_update()
        ).scalar_one_or_none()
        if product is None:
            raise ProductNotFoundError(str(product_id))

        source_ref = adjustment_source_ref(reference)
        previous = self._movements.find(product_id, source_ref, direction.event_type)
        if previous is not None:
            logger.info(
                "adjustment_repeated",
                extra={"product_id": str(product_id), "reference": reference},
            )
            return previous

        when = effective_date or self.clock.today()
        if when > self.clock.today():
            raise ValidationError("effective_date", "cannot be in the future")

        batch = None
        if direction is AdjustmentDirection.IN:
            if unit_cost is None:
                raise ValidationError("unit_cost", "is required for inbound adjustments")
            cost = self._parse_cost(unit_cost)
        elif batch_id is not None:
            if unit_cost is not None:
                raise ValidationError("unit_cost", "a batch write-off uses the batch cost")
            batch = self._draw_from_batch(product, batch_id, quantity, actor_id)
            cost = Decimal(batch.unit_cost)
        else:
            valuation = ValuationSelector(self.session, self.clock)
            pool = valuation.unbatched_quantity(product_id)
            if quantity > pool and not self._allow_negative:
                raise InsufficientQuantityError(str(product_id), quantity, max(pool, 0))
            if unit_cost is None:
                average = valuation.unbatched_unit_cost(product_id)
                cost = round_money(average, MONEY_DECIMAL_PLACES)
            else:
                cost = self._parse_cost(unit_cost)

        delta = quantity if direction is AdjustmentDirection.IN else -quantity
        result = self._movements.append(
            product_id=product_id,
            event_type=direction.event_type,
            quantity_delta=delta,
            unit_cost=cost,
            effective_date=when,
            source_ref=source_ref,
            actor_id=actor_id,
            batch_id=batch.id if batch is not None else None,
            notes=notes,
        )

        logger.info(
            "adjustment_recorded",
            extra={
                "product_id": str(product_id),
                "batch_id": str(batch.id) if batch is not None else None,
                "direction": direction.value,
                "quantity": quantity,
                "unit_cost": str(cost),
                "reference": reference,
                "movement_created": result.created,
            },
        )
        return result.movement

    def _draw_from_batch(
        self, product: Product, batch_id: UUID, quantity: int, actor_id: UUID,
    ) -> Batch:
        batch = self._load_batch(batch_id, lock=True)
        if batch.product_id != product.id:
            raise ValidationError("batch_id", f"batch {batch_id} is not stock of this product")
        if (
            batch.approval_status != ApprovalStatus.APPROVED.value
            or batch.status == BatchStatus.INACTIVE.value
        ):
            raise NotApprovedError(str(batch_id), batch.approval_status, batch.status)
        if quantity > batch.remaining_quantity:
            raise InsufficientQuantityError(str(batch_id), quantity, batch.remaining_quantity)

        batch.remaining_quantity -= quantity
        if batch.remaining_quantity == 0:
            batch.status = BatchStatus.CONSUMED.value
        batch.updated_by_id = actor_id
        self.session.flush()
        return batch
