"""Tests for BatchSelector -- the unapproved-batch report."""

from datetime import date
from decimal import Decimal

from stock_ledger.domain.lifecycle import ApprovalStatus
from stock_ledger.selectors.batch_selector import BatchSelector


class TestPendingBatches:
    def test_days_pending_and_overdue(self, ledger, make_product, actor_id):
        product = make_product(part_number="PN-A")
        batch_id = ledger.submit_batch(
            product.id, 20, Decimal("7.00"), date(2024, 6, 1), actor_id,
            supplier_id="SUP-9", batch_number="B-001",
        )

        [today] = ledger.pending_batches()
        [week] = ledger.pending_batches(as_of=date(2024, 6, 22))
        [later] = ledger.pending_batches(as_of=date(2024, 6, 23))

        assert today.batch_id == batch_id
        assert today.part_number == "PN-A"
        assert today.batch_number == "B-001"
        assert today.supplier_id == "SUP-9"
        assert today.unit_cost == Decimal("7.00")
        assert (today.days_pending, today.overdue) == (0, False)
        assert (week.days_pending, week.overdue) == (7, False)
        assert (later.days_pending, later.overdue) == (8, True)

    def test_oldest_submission_first(self, ledger, make_product, actor_id, deterministic_clock):
        product = make_product()
        older = ledger.submit_batch(product.id, 1, Decimal("1"), date(2024, 6, 1), actor_id)
        deterministic_clock.advance(86400)
        newer = ledger.submit_batch(product.id, 2, Decimal("1"), date(2024, 6, 1), actor_id)

        rows = ledger.pending_batches(as_of=date(2024, 6, 20))

        assert [r.batch_id for r in rows] == [older, newer]
        assert [r.days_pending for r in rows] == [5, 4]

    def test_decided_and_inactive_batches_dropped(
        self, ledger, make_product, approved_batch, actor_id, approver_id,
    ):
        product = make_product()
        approved_batch(product.id, 1, "1.00")
        rejected = ledger.submit_batch(product.id, 1, Decimal("1"), date(2024, 6, 1), actor_id)
        ledger.decide_batch(rejected, "reject", approver_id)
        withdrawn = ledger.submit_batch(product.id, 1, Decimal("1"), date(2024, 6, 1), actor_id)
        ledger.deactivate_batch(withdrawn, actor_id)

        assert ledger.pending_batches() == []

    def test_custom_overdue_threshold(self, session, deterministic_clock, make_product, actor_id, ledger):
        product = make_product()
        ledger.submit_batch(product.id, 1, Decimal("1"), date(2024, 6, 1), actor_id)

        strict = BatchSelector(session, deterministic_clock, overdue_days=1)
        [row] = strict.pending_batches(as_of=date(2024, 6, 17))
        assert row.overdue


class TestListings:
    def test_by_status(self, ledger, make_product, approved_batch, actor_id):
        product = make_product()
        approved_id = approved_batch(product.id, 1, "1.00")
        ledger.submit_batch(product.id, 1, Decimal("1"), date(2024, 6, 1), actor_id)

        approved = ledger.batch_reports.by_status(ApprovalStatus.APPROVED)
        assert [b.id for b in approved] == [approved_id]
        assert len(ledger.batch_reports.by_status("pending", product.id)) == 1

    def test_allocated_to_job(self, ledger, make_product, approved_batch, make_job, actor_id):
        product = make_product()
        full = approved_batch(product.id, 4, "1.00")
        partial = approved_batch(product.id, 4, "1.00")
        job = make_job()
        ledger.allocate_batch(full, job.id, 4, actor_id)
        ledger.allocate_batch(partial, job.id, 1, actor_id)

        assert [b.id for b in ledger.batch_reports.allocated_to_job(job.id)] == [full]

    def test_allocatable_flag(self, ledger, make_product, approved_batch, make_job, actor_id):
        product = make_product()
        full = approved_batch(product.id, 4, "1.00")
        partial = approved_batch(product.id, 4, "1.00")
        pending = ledger.submit_batch(product.id, 1, Decimal("1"), date(2024, 6, 1), actor_id)
        job = make_job()
        ledger.allocate_batch(full, job.id, 4, actor_id)
        ledger.allocate_batch(partial, job.id, 1, actor_id)

        assert not ledger.get_batch(full).is_allocatable
        assert ledger.get_batch(partial).is_allocatable
        assert not ledger.get_batch(pending).is_allocatable
