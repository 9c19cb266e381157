"""
InventoryLedger -- the ledger's external interface.

Responsibility:
    One object that UI and reporting collaborators call.  It wires the
    services and selectors onto a shared session and owns the transaction
    boundary of each call: commit on success, rollback on failure.

Architecture position:
    Ledger > Services, outermost.  Collaborators resolve identity, roles
    and job existence before calling; nothing here authenticates or makes
    network calls.

Invariants enforced:
    - Every write is atomic.  The services flush; this class commits once
      the whole operation succeeded (when ``auto_commit`` is True).
    - A write that loses a race (unique-constraint violation or stale
      version on the batch row) is rolled back and evaluated once more
      against the committed state, so the caller receives the typed error
      a sequential caller would have seen (for example
      BatchAlreadyDecidedError), or the operation's result if it is still
      legal.  A second conflict surfaces as OptimisticLockError.
    - Typed ledger errors are never retried or swallowed.

Usage:
    ledger = InventoryLedger(session, clock=SystemClock())
    batch_id = ledger.submit_batch(product_id, 20, Decimal("7.00"), ...)
    ledger.decide_batch(batch_id, "approve", approver_id)
    ledger.get_value(product_id)
"""

from __future__ import annotations

import time
from datetime import date
from decimal import Decimal
from typing import Any, Callable, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from stock_ledger.config import LedgerSettings
from stock_ledger.domain.clock import Clock, SystemClock
from stock_ledger.domain.lifecycle import Decision, TabCategory
from stock_ledger.domain.values import (
    AllocationInfo,
    BatchBreakdownRow,
    BatchInfo,
    ConsistencyReport,
    JobInfo,
    MovementInfo,
    MovementLine,
    PendingBatchRow,
    ProductInfo,
    QuantitySummary,
    ReorderRow,
    TabStatus,
    ValuationRow,
)
from stock_ledger.exceptions import OptimisticLockError, StockLedgerError
from stock_ledger.logging_config import LogContext, get_logger
from stock_ledger.selectors.batch_selector import BatchSelector
from stock_ledger.selectors.movement_selector import MovementSelector
from stock_ledger.selectors.valuation_selector import ValuationSelector
from stock_ledger.services.adjustment_service import AdjustmentDirection, AdjustmentService
from stock_ledger.services.allocation_service import AllocationService
from stock_ledger.services.approval_service import ApprovalService
from stock_ledger.services.batch_registry import BatchRegistry
from stock_ledger.services.job_tab_service import JobTabService
from stock_ledger.services.movement_log import MovementLog
from stock_ledger.services.product_catalog import ProductCatalog

logger = get_logger("services.inventory_ledger")

T = TypeVar("T")

_CONFLICTS = (IntegrityError, StaleDataError)


class InventoryLedger:
    """
    Batch approval and valuation ledger.

    Contract:
        Each public write method is one transaction.  With
        ``auto_commit=False`` the caller owns commit and rollback and this
        class only flushes.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or LedgerSettings()
        self._auto_commit = auto_commit

        self.movement_log = MovementLog(session, self._clock)
        self.catalog = ProductCatalog(session, self._clock, self.movement_log)
        self.batches = BatchRegistry(session, self._clock)
        self.approvals = ApprovalService(session, self._clock, self.movement_log)
        self.allocations = AllocationService(session, self._clock, self.movement_log)
        self.adjustments = AdjustmentService(
            session,
            self._clock,
            self.movement_log,
            allow_negative_stock=self._settings.allow_negative_stock,
        )
        self.job_tabs = JobTabService(session, self._clock, self.allocations)

        self.valuation = ValuationSelector(session, self._clock)
        self.movements = MovementSelector(session, self._clock)
        self.batch_reports = BatchSelector(
            session, self._clock, overdue_days=self._settings.pending_overdue_days,
        )

    @property
    def session(self) -> Session:
        return self._session

    @property
    def clock(self) -> Clock:
        return self._clock

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    def _write(
        self,
        operation: str,
        fn: Callable[[], T],
        actor_id: UUID | None = None,
        **context: Any,
    ) -> T:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=actor_id,
            operation=operation,
            **context,
        ):
            attempt = 1
            logger.info(f"{operation}_started", extra={"attempt": attempt})
            t0 = time.monotonic()
            try:
                try:
                    result = fn()
                    if self._auto_commit:
                        self._session.commit()
                except _CONFLICTS as exc:
                    if not self._auto_commit:
                        raise self._conflict(operation, context, exc, attempt) from exc
                    self._session.rollback()
                    logger.warning(
                        f"{operation}_conflict_reevaluating",
                        extra={"conflict": type(exc).__name__, "attempt": attempt},
                    )
                    attempt += 1
                    logger.info(f"{operation}_started", extra={"attempt": attempt})
                    try:
                        result = fn()
                        self._session.commit()
                    except _CONFLICTS as again:
                        raise self._conflict(operation, context, again, attempt) from again
            except StockLedgerError as exc:
                if self._auto_commit:
                    self._session.rollback()
                logger.warning(
                    f"{operation}_failed",
                    extra={
                        "error_code": exc.code,
                        "attempt": attempt,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                )
                raise
            except Exception:
                if self._auto_commit:
                    self._session.rollback()
                logger.error(
                    f"{operation}_failed",
                    extra={
                        "attempt": attempt,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                    exc_info=True,
                )
                raise

            logger.info(
                f"{operation}_completed",
                extra={
                    "attempt": attempt,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return result

    def _conflict(
        self, operation: str, context: dict, exc: Exception, attempt: int,
    ) -> OptimisticLockError:
        if self._auto_commit:
            self._session.rollback()
        logger.error(
            f"{operation}_conflict_unresolved",
            extra={"conflict": type(exc).__name__, "attempt": attempt},
        )
        for key, entity_type in (("batch_id", "Batch"), ("job_id", "Job"), ("product_id", "Product")):
            if context.get(key) is not None:
                return OptimisticLockError(entity_type, str(context[key]))
        return OptimisticLockError(operation, "unknown")

    def _read(self, fn: Callable[[], T]) -> T:
        try:
            return fn()
        finally:
            # End the read transaction so a locking backend releases it
            if self._auto_commit:
                self._session.commit()

    # ------------------------------------------------------------------
    # Catalog and jobs
    # ------------------------------------------------------------------

    def register_product(self, part_number: str, actor_id: UUID, **attrs: Any) -> ProductInfo:
        return self._write(
            "register_product",
            lambda: self.catalog.register(part_number, actor_id, **attrs),
            actor_id=actor_id,
        )

    def get_product(self, product_id: UUID) -> ProductInfo:
        return self._read(lambda: self.catalog.get(product_id))

    def list_products(self, active_only: bool = True) -> list[ProductInfo]:
        return self._read(lambda: self.catalog.list_products(active_only))

    def open_job(self, job_number: str, actor_id: UUID) -> JobInfo:
        return self._write(
            "open_job",
            lambda: self.job_tabs.open_job(job_number, actor_id),
            actor_id=actor_id,
        )

    def get_job(self, job_id: UUID) -> JobInfo:
        return self._read(lambda: self.job_tabs.get_job(job_id))

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def submit_batch(
        self,
        product_id: UUID,
        quantity: int,
        unit_cost: Decimal | int | str,
        received_date: date,
        submitted_by: UUID,
        supplier_id: str | None = None,
        batch_number: str | None = None,
    ) -> UUID:
        """Record a pending batch.  Returns its id."""
        batch = self._write(
            "submit_batch",
            lambda: self.batches.submit(
                product_id=product_id,
                quantity=quantity,
                unit_cost=unit_cost,
                received_date=received_date,
                submitted_by=submitted_by,
                supplier_id=supplier_id,
                batch_number=batch_number,
            ),
            actor_id=submitted_by,
            product_id=product_id,
        )
        return batch.id

    def get_batch(self, batch_id: UUID) -> BatchInfo:
        return self._read(lambda: self.batches.get(batch_id))

    def list_batches(self, product_id: UUID, include_inactive: bool = False) -> list[BatchInfo]:
        return self._read(lambda: self.batches.list_for_product(product_id, include_inactive))

    def decide_batch(
        self,
        batch_id: UUID,
        decision: Decision | str,
        approver_id: UUID,
        reason: str | None = None,
    ) -> BatchInfo:
        return self._write(
            "decide_batch",
            lambda: self.approvals.decide(batch_id, decision, approver_id, reason),
            actor_id=approver_id,
            batch_id=batch_id,
        )

    def deactivate_batch(self, batch_id: UUID, actor_id: UUID) -> BatchInfo:
        return self._write(
            "deactivate_batch",
            lambda: self.batches.deactivate(batch_id, actor_id),
            actor_id=actor_id,
            batch_id=batch_id,
        )

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def allocate_batch(
        self, batch_id: UUID, job_id: UUID, quantity: int, actor_id: UUID,
    ) -> AllocationInfo:
        return self._write(
            "allocate_batch",
            lambda: self.allocations.allocate(batch_id, job_id, quantity, actor_id),
            actor_id=actor_id,
            batch_id=batch_id,
            job_id=job_id,
        )

    def release_allocation(self, batch_id: UUID, job_id: UUID, actor_id: UUID) -> None:
        self._write(
            "release_allocation",
            lambda: self.allocations.release(batch_id, job_id, actor_id),
            actor_id=actor_id,
            batch_id=batch_id,
            job_id=job_id,
        )

    def confirm_consumption(
        self, batch_id: UUID, job_id: UUID, actor_id: UUID,
    ) -> AllocationInfo:
        return self._write(
            "confirm_consumption",
            lambda: self.allocations.confirm_consumption(batch_id, job_id, actor_id),
            actor_id=actor_id,
            batch_id=batch_id,
            job_id=job_id,
        )

    def list_allocations(self, job_id: UUID) -> list[AllocationInfo]:
        return self._read(lambda: self.allocations.list_for_job(job_id))

    # ------------------------------------------------------------------
    # Adjustments
    # ------------------------------------------------------------------

    def record_adjustment(
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
        return self._write(
            "record_adjustment",
            lambda: self.adjustments.record(
                product_id=product_id,
                direction=direction,
                quantity=quantity,
                reference=reference,
                actor_id=actor_id,
                unit_cost=unit_cost,
                effective_date=effective_date,
                notes=notes,
                batch_id=batch_id,
            ),
            actor_id=actor_id,
            product_id=product_id,
            batch_id=batch_id,
        )

    # ------------------------------------------------------------------
    # Quantity and value
    # ------------------------------------------------------------------

    def get_quantity(self, product_id: UUID) -> QuantitySummary:
        return self._read(lambda: self.valuation.quantity_summary(product_id))

    def get_value(self, product_id: UUID) -> Decimal:
        return self._read(lambda: self.valuation.current_value(product_id))

    def get_as_of_quantity(self, product_id: UUID, as_of: date) -> int:
        return self._read(lambda: self.valuation.as_of_quantity(product_id, as_of))

    def get_as_of_value(self, product_id: UUID, as_of: date) -> Decimal:
        return self._read(lambda: self.valuation.as_of_value(product_id, as_of))

    def verify_consistency(self, product_id: UUID) -> ConsistencyReport:
        return self._read(lambda: self.valuation.verify_consistency(product_id))

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def stock_valuation(self, as_of: date | None = None) -> list[ValuationRow]:
        return self._read(lambda: self.valuation.stock_valuation(as_of))

    def batch_breakdown(
        self, product_id: UUID | None = None, as_of: date | None = None,
    ) -> list[BatchBreakdownRow]:
        return self._read(lambda: self.valuation.batch_breakdown(product_id, as_of))

    def reorder_candidates(self) -> list[ReorderRow]:
        return self._read(self.valuation.reorder_candidates)

    def pending_batches(self, as_of: date | None = None) -> list[PendingBatchRow]:
        return self._read(lambda: self.batch_reports.pending_batches(as_of))

    def movement_history(
        self, product_id: UUID, as_of: date | None = None,
    ) -> list[MovementLine]:
        return self._read(lambda: self.movements.history(product_id, as_of))

    # ------------------------------------------------------------------
    # Job tabs
    # ------------------------------------------------------------------

    def approve_job_tab(
        self, job_id: UUID, category: TabCategory | str, approver_id: UUID,
    ) -> None:
        self._write(
            "approve_job_tab",
            lambda: self.job_tabs.approve(job_id, category, approver_id),
            actor_id=approver_id,
            job_id=job_id,
        )

    def can_close_job(self, job_id: UUID) -> bool:
        return self._read(lambda: self.job_tabs.can_close(job_id))

    def tab_status(self, job_id: UUID) -> TabStatus:
        return self._read(lambda: self.job_tabs.tab_status(job_id))

    def close_job(self, job_id: UUID, invoice_number: str, actor_id: UUID) -> None:
        self._write(
            "close_job",
            lambda: self.job_tabs.close(job_id, invoice_number, actor_id),
            actor_id=actor_id,
            job_id=job_id,
        )
