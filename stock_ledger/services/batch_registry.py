"""
BatchRegistry -- batch records scoped to a product.

Responsibility:
    Creates pending batches, looks them up, lists them for display and
    soft-deactivates batches that never became stock.

Invariants enforced:
    - A new batch is pending, active, unallocated, with
      remaining_quantity == quantity.
    - quantity >= 0, unit_cost >= 0, and the product exists.  All three are
      input validation failures (ValidationError).
    - Batches are never deleted.  Deactivation is only legal while the
      batch holds no approved stock.

Non-goals:
    Listing order is insertion order for display.  Nothing aggregates over
    these lists; quantities and values come from ValuationSelector.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_ledger.domain.clock import Clock
from stock_ledger.domain.lifecycle import ApprovalStatus, BatchStatus
from stock_ledger.domain.values import BatchInfo
from stock_ledger.exceptions import InvalidStateError, ValidationError
from stock_ledger.logging_config import get_logger
from stock_ledger.models.batch import Batch
from stock_ledger.models.product import Product
from stock_ledger.services.base import BaseService

logger = get_logger("services.batch_registry")


class BatchRegistry(BaseService):
    """Create, read and deactivate batches."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)

    def submit(
        self,
        product_id: UUID,
        quantity: int,
        unit_cost: Decimal | int | str,
        received_date: date,
        submitted_by: UUID,
        supplier_id: str | None = None,
        batch_number: str | None = None,
    ) -> BatchInfo:
        """
        Record a receipt of stock awaiting approval.

        Raises:
            ValidationError: quantity < 0, unit_cost < 0, missing or future
                received date, or ``product_id`` not in the catalog.
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError("quantity", "must be a whole number")
        if quantity < 0:
            raise ValidationError("quantity", "cannot be negative")
        cost = self._parse_cost(unit_cost)
        if received_date is None:
            raise ValidationError("received_date", "is required")
        if received_date > self.clock.today():
            raise ValidationError("received_date", "cannot be in the future")

        product = self.session.get(Product, product_id)
        if product is None:
            raise ValidationError("product_id", f"no product {product_id}")

        now = self.clock.now()
        batch = Batch(
            id=uuid4(),
            product_id=product.id,
            batch_number=batch_number or self._next_batch_number(product, received_date),
            supplier_id=supplier_id,
            received_date=received_date,
            quantity=quantity,
            remaining_quantity=quantity,
            unit_cost=cost,
            approval_status=ApprovalStatus.PENDING.value,
            status=BatchStatus.ACTIVE.value,
            created_at=now,
            updated_at=now,
            created_by_id=submitted_by,
        )
        self.session.add(batch)
        self.session.flush()

        logger.info(
            "batch_submitted",
            extra={
                "batch_id": str(batch.id),
                "product_id": str(product.id),
                "batch_number": batch.batch_number,
                "quantity": quantity,
                "unit_cost": str(cost),
                "received_date": str(received_date),
            },
        )
        return BatchInfo.from_model(batch)

    def get(self, batch_id: UUID) -> BatchInfo:
        """Raises BatchNotFoundError if the batch does not exist."""
        return BatchInfo.from_model(self._load_batch(batch_id))

    def list_for_product(
        self, product_id: UUID, include_inactive: bool = False,
    ) -> list[BatchInfo]:
        """Batches of a product in insertion order."""
        self._load_product(product_id)
        stmt = (
            select(Batch)
            .where(Batch.product_id == product_id)
            .order_by(Batch.created_at, Batch.batch_number)
        )
        if not include_inactive:
            stmt = stmt.where(Batch.status != BatchStatus.INACTIVE.value)
        return [BatchInfo.from_model(b) for b in self.session.scalars(stmt)]

    def deactivate(self, batch_id: UUID, actor_id: UUID) -> BatchInfo:
        """
        Soft-delete a batch that never became usable stock.

        Pending and rejected batches may be deactivated.  An approved batch
        is stock with a receipt in the movement log; removing it is an
        adjustment, not a deactivation.

        Raises:
            BatchNotFoundError: Unknown batch.
            InvalidStateError: Batch is approved or already inactive.
        """
        batch = self._load_batch(batch_id, lock=True)
        if batch.status == BatchStatus.INACTIVE.value:
            raise InvalidStateError("Batch", str(batch_id), batch.status, "deactivate")
        if batch.approval_status == ApprovalStatus.APPROVED.value:
            raise InvalidStateError(
                "Batch", str(batch_id), batch.approval_status, "deactivate",
            )

        batch.status = BatchStatus.INACTIVE.value
        batch.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "batch_deactivated",
            extra={"batch_id": str(batch_id), "approval_status": batch.approval_status},
        )
        return BatchInfo.from_model(batch)

    def _next_batch_number(self, product: Product, received_date: date) -> str:
        return f"{product.part_number}-{received_date:%Y%m%d}-{uuid4().hex[:6].upper()}"
