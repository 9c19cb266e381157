"""
stock_ledger.services.job_tab_service -- the job closure gate.

Responsibility:
    Opens jobs, records the three tab approvals (warehouse A, warehouse
    B/C, owner supplied) and closes a job with its invoice number once all
    three are approved.  Independent of individual batch approvals.

Invariants enforced:
    - Each job has exactly one flag per TabCategory, created false when the
      job is opened.
    - A flag moves false -> true exactly once; re-approval raises
      AlreadyApprovedError and leaves the original approver and timestamp.
    - close() requires all three flags and a non-empty invoice number.
      Invoice number and close timestamp are then immutable, and no
      allocation or approval may target the job again.
    - Closing a job consumes its active allocations, so stock issued to a
      closed job can never be released back.

Failure modes:
    - JobNotFoundError, JobClosedError, AlreadyApprovedError,
      NotFullyApprovedError, ValidationError.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_ledger.domain.clock import Clock, ensure_utc
from stock_ledger.domain.lifecycle import JobStatus, TabCategory
from stock_ledger.domain.values import JobInfo, TabFlag, TabStatus
from stock_ledger.exceptions import (
    AlreadyApprovedError,
    JobClosedError,
    NotFullyApprovedError,
    ValidationError,
)
from stock_ledger.logging_config import get_logger
from stock_ledger.models.job import Job, JobTabApproval
from stock_ledger.services.allocation_service import AllocationService
from stock_ledger.services.base import BaseService

logger = get_logger("services.job_tabs")


class JobTabService(BaseService):
    """Tab approvals and closure of maintenance jobs."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        allocation_service: AllocationService | None = None,
    ):
        super().__init__(session, clock)
        self._allocations = allocation_service or AllocationService(session, self.clock)

    def open_job(self, job_number: str, actor_id: UUID) -> JobInfo:
        """Create a job with all three tab flags unset."""
        job_number = (job_number or "").strip()
        if not job_number:
            raise ValidationError("job_number", "is required")

        now = self.clock.now()
        job = Job(
            job_number=job_number,
            status=JobStatus.OPEN.value,
            created_at=now,
            updated_at=now,
            created_by_id=actor_id,
        )
        try:
            with self.session.begin_nested():
                self.session.add(job)
                self.session.flush()
                for category in TabCategory:
                    self.session.add(
                        JobTabApproval(
                            job_id=job.id,
                            category=category.value,
                            approved=False,
                            created_at=now,
                            updated_at=now,
                            created_by_id=actor_id,
                        )
                    )
        except IntegrityError:
            raise ValidationError("job_number", f"'{job_number}' already exists") from None

        logger.info("job_opened", extra={"job_id": str(job.id), "job_number": job_number})
        return JobInfo.from_model(job)

    def get_job(self, job_id: UUID) -> JobInfo:
        return JobInfo.from_model(self._load_job(job_id))

    def approve(
        self,
        job_id: UUID,
        category: TabCategory | str,
        approver_id: UUID,
    ) -> TabStatus:
        """
        Approve one tab of a job.

        Raises:
            ValidationError: ``category`` is not one of the three tabs.
            JobNotFoundError: Unknown job.
            JobClosedError: The job is closed.
            AlreadyApprovedError: The tab was approved before.
        """
        category = TabCategory.parse(category)
        job = self._load_job(job_id, lock=True)
        if job.is_closed:
            raise JobClosedError(str(job_id))

        tab = self._tab(job, category)
        if tab.approved:
            logger.warning(
                "job_tab_already_approved",
                extra={"job_id": str(job_id), "category": category.value},
            )
            raise AlreadyApprovedError(str(job_id), category.value)

        tab.approved = True
        tab.approved_by_id = approver_id
        tab.approved_at = self.clock.now()
        tab.updated_by_id = approver_id
        self.session.flush()

        logger.info(
            "job_tab_approved",
            extra={"job_id": str(job_id), "category": category.value},
        )
        return self._status(job)

    def can_close(self, job_id: UUID) -> bool:
        return self.tab_status(job_id).can_close

    def tab_status(self, job_id: UUID) -> TabStatus:
        return self._status(self._load_job(job_id))

    def close(self, job_id: UUID, invoice_number: str, actor_id: UUID) -> JobInfo:
        """
        Close a job against its invoice.

        Raises:
            JobNotFoundError: Unknown job.
            JobClosedError: Already closed.
            NotFullyApprovedError: A tab is still unapproved.
            ValidationError: Empty invoice number.
        """
        job = self._load_job(job_id, lock=True)
        if job.is_closed:
            raise JobClosedError(str(job_id))

        status = self._status(job)
        if not status.can_close:
            raise NotFullyApprovedError(str(job_id), status.missing)

        invoice_number = (invoice_number or "").strip()
        if not invoice_number:
            raise ValidationError("invoice_number", "is required to close a job")

        consumed = self._allocations.consume_all_for_job(job, actor_id)

        job.status = JobStatus.CLOSED.value
        job.invoice_number = invoice_number
        job.closed_at = self.clock.now()
        job.closed_by_id = actor_id
        job.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "job_closed",
            extra={
                "job_id": str(job_id),
                "invoice_number": invoice_number,
                "allocations_consumed": consumed,
            },
        )
        return JobInfo.from_model(job)

    def _tabs(self, job: Job) -> dict[str, JobTabApproval]:
        rows = self.session.scalars(
            select(JobTabApproval)
            .where(JobTabApproval.job_id == job.id)
            .execution_options(populate_existing=True)
        )
        return {row.category: row for row in rows}

    def _tab(self, job: Job, category: TabCategory) -> JobTabApproval:
        tab = self._tabs(job).get(category.value)
        if tab is None:
            # Jobs created outside open_job() get their row on first touch
            tab = JobTabApproval(
                job_id=job.id,
                category=category.value,
                approved=False,
                created_at=self.clock.now(),
                updated_at=self.clock.now(),
                created_by_id=job.created_by_id,
            )
            self.session.add(tab)
        return tab

    def _status(self, job: Job) -> TabStatus:
        tabs = self._tabs(job)
        flags = []
        for category in TabCategory:
            row = tabs.get(category.value)
            flags.append(
                TabFlag(
                    category=category,
                    approved=bool(row and row.approved),
                    approved_by_id=row.approved_by_id if row else None,
                    approved_at=ensure_utc(row.approved_at) if row and row.approved_at else None,
                )
            )
        return TabStatus(job_id=job.id, job_status=JobStatus(job.status), flags=tuple(flags))
