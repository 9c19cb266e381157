"""
Concurrency tests -- racing callers against one database file.

Each thread opens its own session and InventoryLedger, waits on a barrier
and fires the same operation.  The ledger must serialize them so that:

- a batch is decided exactly once and receipted exactly once
- allocations never issue more than a batch holds
- a repeated adjustment reference is recorded once

Skip with: pytest -m "not slow_locks"
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal
from threading import Barrier
from uuid import uuid4

import pytest

from stock_ledger.domain.lifecycle import MovementType
from stock_ledger.exceptions import (
    BatchAlreadyDecidedError,
    InsufficientQuantityError,
    StockLedgerError,
)
from stock_ledger.services.inventory_ledger import InventoryLedger

pytestmark = pytest.mark.slow_locks

NUM_THREADS = 8


def _race(session_factory, clock, operation, num_threads=NUM_THREADS):
    """
    Run ``operation(ledger, thread_id)`` in parallel threads.

    Returns a list of (thread_id, result_or_exception).
    """
    barrier = Barrier(num_threads, timeout=30)

    def worker(thread_id):
        session = session_factory()
        try:
            ledger = InventoryLedger(session, clock=clock)
            barrier.wait()
            try:
                return thread_id, operation(ledger, thread_id)
            except StockLedgerError as exc:
                return thread_id, exc
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=num_threads) as pool:
        return list(pool.map(worker, range(num_threads)))


class TestDecisionRace:
    def test_one_approval_wins(
        self, ledger, session_factory, deterministic_clock, make_product, actor_id,
    ):
        product = make_product(opening_quantity=10, opening_unit_cost="5.00")
        batch_id = ledger.submit_batch(
            product.id, 20, Decimal("7.00"), date(2024, 6, 3), actor_id,
        )

        results = _race(
            session_factory, deterministic_clock,
            lambda lg, _: lg.decide_batch(batch_id, "approve", uuid4()),
        )

        winners = [r for _, r in results if not isinstance(r, Exception)]
        losers = [r for _, r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert all(isinstance(e, BatchAlreadyDecidedError) for e in losers)
        assert ledger.movements.count(product.id, MovementType.BATCH_RECEIPT) == 1
        assert ledger.get_quantity(product.id).total == 30
        assert ledger.get_batch(batch_id).approved_by_id == winners[0].approved_by_id

    def test_approve_and_reject_race(
        self, ledger, session_factory, deterministic_clock, make_product, actor_id,
    ):
        product = make_product()
        batch_id = ledger.submit_batch(product.id, 5, Decimal("1"), date(2024, 6, 3), actor_id)

        results = _race(
            session_factory, deterministic_clock,
            lambda lg, i: lg.decide_batch(batch_id, "approve" if i % 2 else "reject", uuid4()),
        )

        winners = [r for _, r in results if not isinstance(r, Exception)]
        assert len(winners) == 1
        final = ledger.get_batch(batch_id)
        assert final.approval_status is winners[0].approval_status
        expected_receipts = 1 if final.approval_status.value == "approved" else 0
        assert ledger.movements.count(product.id, MovementType.BATCH_RECEIPT) == expected_receipts


class TestAllocationRace:
    def test_never_oversells(
        self, ledger, session_factory, deterministic_clock,
        make_product, approved_batch, make_job, actor_id,
    ):
        product = make_product()
        batch_id = approved_batch(product.id, 10, "7.00")
        jobs = [make_job().id for _ in range(NUM_THREADS)]

        results = _race(
            session_factory, deterministic_clock,
            lambda lg, i: lg.allocate_batch(batch_id, jobs[i], 3, actor_id),
        )

        issued = [r for _, r in results if not isinstance(r, Exception)]
        refused = [r for _, r in results if isinstance(r, Exception)]
        assert len(issued) == 3
        assert all(isinstance(e, InsufficientQuantityError) for e in refused)
        assert ledger.get_batch(batch_id).remaining_quantity == 1
        assert ledger.get_quantity(product.id).total == 1
        assert ledger.verify_consistency(product.id).is_consistent


class TestAdjustmentRace:
    def test_same_reference_recorded_once(
        self, ledger, session_factory, deterministic_clock, make_product, actor_id,
    ):
        product = make_product()

        results = _race(
            session_factory, deterministic_clock,
            lambda lg, _: lg.record_adjustment(
                product.id, "in", 2, "COUNT-RACE", actor_id, unit_cost="3.00",
            ),
        )

        ids = {r.id for _, r in results}
        assert len(ids) == 1
        assert ledger.get_quantity(product.id).total == 2
