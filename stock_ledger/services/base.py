"""
BaseService -- abstract base for every ledger write service.

Responsibility:
    Common constructor and the session contract.  A service receives a
    SQLAlchemy ``Session`` and a ``Clock`` and persists through
    ``session.flush()``; it never commits or rolls back the caller's
    transaction.  ``InventoryLedger`` (or a test) owns the boundary.

Invariants enforced:
    - Flush only.  A multi-step operation (decide + append receipt,
      allocate + append issue) is atomic because every step shares the
      caller's transaction.
    - Savepoints (``session.begin_nested()``) are the only partial rollback
      a service performs, and only around an insert whose unique-constraint
      failure is an expected idempotent outcome.
"""

from abc import ABC
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_ledger.db.types import to_money
from stock_ledger.domain.clock import Clock, SystemClock
from stock_ledger.exceptions import (
    BatchNotFoundError,
    JobNotFoundError,
    ProductNotFoundError,
    ValidationError,
)
from stock_ledger.models.batch import Batch
from stock_ledger.models.job import Job
from stock_ledger.models.product import Product


class BaseService(ABC):
    """
    Abstract base class for ledger services.

    Contract:
        Accepts a Session from the caller and uses ``flush()`` within the
        active transaction.

    Non-goals:
        - Does NOT manage the transaction lifecycle.
        - Does NOT compute aggregates; those belong to selectors.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    # Row loaders shared by the write services.  ``lock=True`` issues
    # SELECT ... FOR UPDATE where the dialect supports it.

    def _load_product(self, product_id: UUID) -> Product:
        product = self.session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(str(product_id))
        return product

    def _load_batch(self, batch_id: UUID, lock: bool = False) -> Batch:
        stmt = select(Batch).where(Batch.id == batch_id)
        if lock:
            stmt = stmt.with_for_update()
        batch = self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if batch is None:
            raise BatchNotFoundError(str(batch_id))
        return batch

    def _load_job(self, job_id: UUID, lock: bool = False) -> Job:
        stmt = select(Job).where(Job.id == job_id)
        if lock:
            stmt = stmt.with_for_update()
        job = self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if job is None:
            raise JobNotFoundError(str(job_id))
        return job

    @staticmethod
    def _parse_cost(value: Decimal | int | str, field: str = "unit_cost") -> Decimal:
        """Coerce a caller-supplied cost; floats and garbage are rejected."""
        try:
            cost = to_money(value)
        except (TypeError, ArithmeticError) as exc:
            raise ValidationError(field, str(exc) or "not a decimal") from None
        if not cost.is_finite():
            raise ValidationError(field, "must be a finite number")
        if cost < 0:
            raise ValidationError(field, "cannot be negative")
        return cost
