"""
Module: stock_ledger.models.job
Responsibility: ORM persistence for maintenance jobs and their three tab
    approval flags.
Architecture position: Ledger > Models.  May import from db/ only.

Invariants enforced:
    - job_number is unique.
    - Exactly one JobTabApproval row per (job, category); category is
      limited to warehouse_a / warehouse_bc / owner_supplied.
    - A tab flag moves false -> true once and its approver and timestamp
      are never rewritten (db/immutability.py).
    - invoice_number, closed_at and closed_by_id are written once, at
      closure.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_ledger.db.base import TrackedBase, UUIDString


class Job(TrackedBase):
    """A maintenance job that consumes stock."""

    __tablename__ = "jobs"

    __table_args__ = (
        CheckConstraint("status IN ('open', 'closed')", name="ck_jobs_status"),
    )

    job_number: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="open")

    invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    tabs: Mapped[list["JobTabApproval"]] = relationship(
        "JobTabApproval",
        back_populates="job",
        order_by="JobTabApproval.category",
        lazy="selectin",
    )

    @property
    def is_closed(self) -> bool:
        return self.status == "closed"

    def __repr__(self) -> str:
        return f"<Job {self.job_number} [{self.status}]>"


class JobTabApproval(TrackedBase):
    """One of the three approval flags gating job closure."""

    __tablename__ = "job_tab_approvals"

    __table_args__ = (
        UniqueConstraint("job_id", "category", name="uq_job_tab_category"),
        CheckConstraint(
            "category IN ('warehouse_a', 'warehouse_bc', 'owner_supplied')",
            name="ck_job_tab_category",
        ),
    )

    job_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("jobs.id"), nullable=False,
    )
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    job: Mapped[Job] = relationship("Job", back_populates="tabs")

    def __repr__(self) -> str:
        return f"<JobTabApproval job={self.job_id} {self.category}={self.approved}>"
