"""
Module: stock_ledger.selectors.batch_selector
Responsibility: Batch listings for approvers.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from stock_ledger.domain.clock import Clock, ensure_utc
from stock_ledger.domain.lifecycle import ApprovalStatus, BatchStatus
from stock_ledger.domain.values import BatchInfo, PendingBatchRow
from stock_ledger.models.batch import Batch
from stock_ledger.models.product import Product
from stock_ledger.selectors.base import BaseSelector

DEFAULT_OVERDUE_DAYS = 7


class BatchSelector(BaseSelector):
    """Read-only batch queries."""

    def __init__(self, session, clock: Clock | None = None,
                 overdue_days: int = DEFAULT_OVERDUE_DAYS):
        super().__init__(session, clock)
        self.overdue_days = overdue_days

    def pending_batches(
        self,
        as_of: date | None = None,
        product_id: UUID | None = None,
    ) -> list[PendingBatchRow]:
        """
        Batches awaiting approval, oldest submission first.

        ``days_pending`` counts whole days from submission to ``as_of``; a
        batch is overdue once it has waited more than ``overdue_days``.
        """
        as_of = as_of or self.clock.today()
        stmt = (
            select(Batch, Product.part_number)
            .join(Product, Product.id == Batch.product_id)
            .where(
                Batch.approval_status == ApprovalStatus.PENDING.value,
                Batch.status == BatchStatus.ACTIVE.value,
            )
            .order_by(Batch.created_at, Batch.id)
        )
        if product_id is not None:
            stmt = stmt.where(Batch.product_id == product_id)

        rows = []
        for batch, part_number in self.session.execute(stmt):
            submitted_at = ensure_utc(batch.created_at)
            days = max((as_of - submitted_at.date()).days, 0)
            rows.append(
                PendingBatchRow(
                    batch_id=batch.id,
                    product_id=batch.product_id,
                    part_number=part_number,
                    batch_number=batch.batch_number,
                    supplier_id=batch.supplier_id,
                    quantity=batch.quantity,
                    unit_cost=Decimal(batch.unit_cost),
                    received_date=batch.received_date,
                    submitted_at=submitted_at,
                    days_pending=days,
                    overdue=days > self.overdue_days,
                )
            )
        return rows

    def by_status(
        self,
        approval_status: ApprovalStatus | str,
        product_id: UUID | None = None,
    ) -> list[BatchInfo]:
        stmt = (
            select(Batch)
            .where(Batch.approval_status == ApprovalStatus(approval_status).value)
            .order_by(Batch.created_at, Batch.id)
        )
        if product_id is not None:
            stmt = stmt.where(Batch.product_id == product_id)
        return [BatchInfo.from_model(b) for b in self.session.scalars(stmt)]

    def allocated_to_job(self, job_id: UUID) -> list[BatchInfo]:
        """Batches fully issued to a job."""
        stmt = (
            select(Batch)
            .where(Batch.job_allocated_to == job_id)
            .order_by(Batch.created_at, Batch.id)
        )
        return [BatchInfo.from_model(b) for b in self.session.scalars(stmt)]
