"""
stock_ledger.services.allocation_service -- binding batch stock to jobs.

Responsibility:
    Reserves quantity from an approved batch for a job, releases the
    reservation when the job is cancelled before the parts are used, and
    records downstream consumption after which a release is no longer
    possible.

Architecture position:
    Ledger > Services.

Invariants enforced:
    - Only an approved, active batch that is not bound to a job can be
      allocated from.  Checks run in this order: approval, binding,
      status, quantity, job state.
    - The sum of quantities ever issued from a batch never exceeds its
      original quantity: remaining_quantity is checked and decremented
      under the batch row lock, and the database rejects a negative
      remainder.
    - A batch is issued to a given job at most once (UNIQUE(batch_id,
      job_id) on allocations and the ``{batch}:{job}`` dedup key on the
      ``job_issue`` movement).
    - Partial allocation leaves the batch approved, active and unbound.
      Allocating the whole remainder marks it consumed and binds it to the
      job.
    - Release never touches the original ``job_issue`` record; it appends
      a compensating ``adjustment_in``.
    - A release always leaves the batch unbound, whichever job took its
      last units.

Failure modes:
    - NotApprovedError, AlreadyAllocatedError, InsufficientQuantityError,
      JobClosedError, ValidationError on allocate.
    - AllocationNotFoundError, InvalidStateError, JobClosedError on release.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_ledger.domain.clock import Clock
from stock_ledger.domain.lifecycle import (
    AllocationStatus,
    ApprovalStatus,
    BatchStatus,
    JobStatus,
    MovementType,
)
from stock_ledger.domain.values import AllocationInfo
from stock_ledger.exceptions import (
    AllocationNotFoundError,
    AlreadyAllocatedError,
    InsufficientQuantityError,
    InvalidStateError,
    JobClosedError,
    NotApprovedError,
    ValidationError,
)
from stock_ledger.logging_config import get_logger
from stock_ledger.models.allocation import Allocation
from stock_ledger.models.batch import Batch
from stock_ledger.models.job import Job
from stock_ledger.services.base import BaseService
from stock_ledger.services.movement_log import MovementLog

logger = get_logger("services.allocation")


def issue_source_ref(batch_id: UUID, job_id: UUID) -> str:
    return f"{batch_id}:{job_id}"


def release_source_ref(batch_id: UUID, job_id: UUID) -> str:
    return f"release:{batch_id}:{job_id}"


class AllocationService(BaseService):
    """Allocates batch stock to jobs and releases it again."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        movement_log: MovementLog | None = None,
    ):
        super().__init__(session, clock)
        self._movements = movement_log or MovementLog(session, self.clock)

    # ------------------------------------------------------------------
    # Allocate
    # ------------------------------------------------------------------

    def allocate(
        self,
        batch_id: UUID,
        job_id: UUID,
        quantity: int,
        actor_id: UUID,
    ) -> AllocationInfo:
        """
        Issue ``quantity`` units of a batch to a job.

        The batch row is locked for the duration of the caller's
        transaction, so two allocations against the same batch serialize
        while allocations against different batches proceed in parallel.
        """
        batch = self._load_batch(batch_id, lock=True)

        if batch.approval_status != ApprovalStatus.APPROVED.value:
            raise NotApprovedError(str(batch_id), batch.approval_status, batch.status)
        if batch.job_allocated_to is not None:
            raise AlreadyAllocatedError(str(batch_id), str(batch.job_allocated_to))
        if self._find(batch_id, job_id) is not None:
            raise AlreadyAllocatedError(str(batch_id), str(job_id))
        if batch.status != BatchStatus.ACTIVE.value:
            raise NotApprovedError(str(batch_id), batch.approval_status, batch.status)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("quantity", "must be a positive whole number")
        if quantity > batch.remaining_quantity:
            raise InsufficientQuantityError(
                str(batch_id), quantity, batch.remaining_quantity,
            )

        job = self._load_job(job_id, lock=True)
        if job.status == JobStatus.CLOSED.value:
            raise JobClosedError(str(job_id))

        now = self.clock.now()
        batch.remaining_quantity -= quantity
        if batch.remaining_quantity == 0:
            batch.status = BatchStatus.CONSUMED.value
            batch.job_allocated_to = job.id
        batch.updated_by_id = actor_id

        allocation = Allocation(
            batch_id=batch.id,
            job_id=job.id,
            product_id=batch.product_id,
            quantity=quantity,
            unit_cost=batch.unit_cost,
            status=AllocationStatus.ACTIVE.value,
            allocated_at=now,
            created_at=now,
            updated_at=now,
            created_by_id=actor_id,
        )
        self.session.add(allocation)
        self.session.flush()

        self._movements.append(
            product_id=batch.product_id,
            event_type=MovementType.JOB_ISSUE,
            quantity_delta=-quantity,
            unit_cost=batch.unit_cost,
            effective_date=self.clock.today(),
            source_ref=issue_source_ref(batch.id, job.id),
            actor_id=actor_id,
            batch_id=batch.id,
            job_id=job.id,
            notes=f"Issue to job {job.job_number}",
        )

        logger.info(
            "allocation_created",
            extra={
                "batch_id": str(batch.id),
                "job_id": str(job.id),
                "quantity": quantity,
                "remaining_quantity": batch.remaining_quantity,
                "batch_status": batch.status,
            },
        )
        return AllocationInfo.from_model(allocation)

    # ------------------------------------------------------------------
    # Release
    # ------------------------------------------------------------------

    def release(self, batch_id: UUID, job_id: UUID, actor_id: UUID) -> AllocationInfo:
        """
        Return an allocation's quantity to its batch.

        Releasing an already released allocation returns it unchanged, so
        a caller that lost the first response can safely re-issue.
        """
        batch = self._load_batch(batch_id, lock=True)
        allocation = self._find(batch_id, job_id)
        if allocation is None:
            raise AllocationNotFoundError(str(batch_id), str(job_id))

        if allocation.status == AllocationStatus.RELEASED.value:
            logger.info(
                "allocation_release_repeated",
                extra={"batch_id": str(batch_id), "job_id": str(job_id)},
            )
            return AllocationInfo.from_model(allocation)
        if allocation.status == AllocationStatus.CONSUMED.value:
            raise InvalidStateError(
                "Allocation", str(allocation.id), allocation.status, "release",
            )

        job = self._load_job(job_id, lock=True)
        if job.status == JobStatus.CLOSED.value:
            raise JobClosedError(str(job_id))

        now = self.clock.now()
        batch.remaining_quantity += allocation.quantity
        if batch.status == BatchStatus.CONSUMED.value:
            batch.status = BatchStatus.ACTIVE.value
        # Stock back on the shelf is unbound, whichever job took the last units
        batch.job_allocated_to = None
        batch.updated_by_id = actor_id

        allocation.status = AllocationStatus.RELEASED.value
        allocation.released_at = now
        allocation.released_by_id = actor_id
        allocation.updated_by_id = actor_id
        self.session.flush()

        self._movements.append(
            product_id=batch.product_id,
            event_type=MovementType.ADJUSTMENT_IN,
            quantity_delta=allocation.quantity,
            unit_cost=allocation.unit_cost,
            effective_date=self.clock.today(),
            source_ref=release_source_ref(batch.id, job.id),
            actor_id=actor_id,
            batch_id=batch.id,
            job_id=job.id,
            notes=f"Release from job {job.job_number}",
        )

        logger.info(
            "allocation_released",
            extra={
                "batch_id": str(batch.id),
                "job_id": str(job.id),
                "quantity": allocation.quantity,
                "remaining_quantity": batch.remaining_quantity,
            },
        )
        return AllocationInfo.from_model(allocation)

    # ------------------------------------------------------------------
    # Consumption
    # ------------------------------------------------------------------

    def confirm_consumption(
        self, batch_id: UUID, job_id: UUID, actor_id: UUID,
    ) -> AllocationInfo:
        """Mark an allocation as used by the job; it can no longer be released."""
        allocation = self._find(batch_id, job_id, lock=True)
        if allocation is None:
            raise AllocationNotFoundError(str(batch_id), str(job_id))
        if allocation.status == AllocationStatus.CONSUMED.value:
            return AllocationInfo.from_model(allocation)
        if allocation.status != AllocationStatus.ACTIVE.value:
            raise InvalidStateError(
                "Allocation", str(allocation.id), allocation.status, "consume",
            )
        self._consume(allocation, actor_id)
        self.session.flush()
        return AllocationInfo.from_model(allocation)

    def consume_all_for_job(self, job: Job, actor_id: UUID) -> int:
        """Consume every active allocation of a job.  Returns how many."""
        active = self.session.scalars(
            select(Allocation).where(
                Allocation.job_id == job.id,
                Allocation.status == AllocationStatus.ACTIVE.value,
            )
        ).all()
        for allocation in active:
            self._consume(allocation, actor_id)
        self.session.flush()
        return len(active)

    def list_for_job(self, job_id: UUID) -> list[AllocationInfo]:
        self._load_job(job_id)
        rows = self.session.scalars(
            select(Allocation)
            .where(Allocation.job_id == job_id)
            .order_by(Allocation.allocated_at, Allocation.id)
        )
        return [AllocationInfo.from_model(a) for a in rows]

    def _consume(self, allocation: Allocation, actor_id: UUID) -> None:
        allocation.status = AllocationStatus.CONSUMED.value
        allocation.consumed_at = self.clock.now()
        allocation.consumed_by_id = actor_id
        allocation.updated_by_id = actor_id
        logger.info(
            "allocation_consumed",
            extra={
                "batch_id": str(allocation.batch_id),
                "job_id": str(allocation.job_id),
                "quantity": allocation.quantity,
            },
        )

    def _find(
        self, batch_id: UUID, job_id: UUID, lock: bool = False,
    ) -> Allocation | None:
        stmt = select(Allocation).where(
            Allocation.batch_id == batch_id,
            Allocation.job_id == job_id,
        )
        if lock:
            stmt = stmt.with_for_update()
        return self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
