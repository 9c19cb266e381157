"""
Hypothesis-based fuzzing of the ledger's operation sequences.

Random sequences of submit, decide, allocate, release, consume, manual
adjustments and batch write-offs are applied to one product.  Any
operation may be refused with a typed ledger error; whatever happens, the
ledger's invariants must hold afterwards:

- replay of the movement log equals the batch-state aggregation
- as-of today equals the current figures
- no batch holds a negative or above-original remaining quantity
- each approved batch has exactly one receipt; others have none
- approved batches never hold more than the on-hand stock, which never
  goes negative
- a batch that still has stock on the shelf is not bound to a job
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from stock_ledger.domain.lifecycle import ApprovalStatus, BatchStatus, MovementType
from stock_ledger.exceptions import StockLedgerError
from stock_ledger.services.approval_service import receipt_source_ref

FUZZ_SETTINGS = settings(
    max_examples=30,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture, HealthCheck.too_slow],
)

costs = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("999.99"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)

operations = st.one_of(
    st.tuples(st.just("submit"), st.integers(0, 40), costs),
    st.tuples(st.just("approve"), st.integers(0, 7)),
    st.tuples(st.just("reject"), st.integers(0, 7)),
    st.tuples(st.just("allocate"), st.integers(0, 7), st.integers(-2, 25)),
    st.tuples(st.just("release"), st.integers(0, 7)),
    st.tuples(st.just("consume"), st.integers(0, 7)),
    st.tuples(st.just("adjust_in"), st.integers(1, 10), costs),
    st.tuples(st.just("adjust_out"), st.integers(1, 30)),
    st.tuples(st.just("write_off"), st.integers(0, 7), st.integers(1, 25)),
)


def _apply(ledger, product_id, op, state, actor_id):
    kind = op[0]
    if kind == "submit":
        state["batches"].append(
            ledger.submit_batch(product_id, op[1], op[2], date(2024, 6, 1), actor_id)
        )
    elif kind in ("approve", "reject") and state["batches"]:
        batch_id = state["batches"][op[1] % len(state["batches"])]
        ledger.decide_batch(batch_id, kind, uuid4())
    elif kind == "allocate" and state["batches"]:
        batch_id = state["batches"][op[1] % len(state["batches"])]
        job = ledger.open_job(f"JOB-{uuid4().hex[:10]}", actor_id)
        ledger.allocate_batch(batch_id, job.id, op[2], actor_id)
        state["allocations"].append((batch_id, job.id))
    elif kind == "release" and state["allocations"]:
        batch_id, job_id = state["allocations"][op[1] % len(state["allocations"])]
        ledger.release_allocation(batch_id, job_id, actor_id)
    elif kind == "consume" and state["allocations"]:
        batch_id, job_id = state["allocations"][op[1] % len(state["allocations"])]
        ledger.confirm_consumption(batch_id, job_id, actor_id)
    elif kind == "adjust_in":
        ledger.record_adjustment(
            product_id, "in", op[1], f"IN-{uuid4().hex}", actor_id, unit_cost=op[2],
        )
    elif kind == "adjust_out":
        ledger.record_adjustment(product_id, "out", op[1], f"OUT-{uuid4().hex}", actor_id)
    elif kind == "write_off" and state["batches"]:
        batch_id = state["batches"][op[1] % len(state["batches"])]
        ledger.record_adjustment(
            product_id, "out", op[2], f"SCRAP-{uuid4().hex}", actor_id, batch_id=batch_id,
        )


class TestOperationSequences:
    @FUZZ_SETTINGS
    @given(
        opening=st.integers(0, 20),
        opening_cost=costs,
        ops=st.lists(operations, min_size=1, max_size=25),
    )
    def test_invariants_hold_after_any_sequence(
        self, ledger, make_product, actor_id, deterministic_clock,
        opening, opening_cost, ops,
    ):
        product = make_product(opening_quantity=opening, opening_unit_cost=opening_cost)
        state = {"batches": [], "allocations": []}

        for op in ops:
            deterministic_clock.tick()
            try:
                _apply(ledger, product.id, op, state, actor_id)
            except StockLedgerError:
                pass

        report = ledger.verify_consistency(product.id)
        assert report.is_consistent, report

        today = deterministic_clock.today()
        assert ledger.get_as_of_quantity(product.id, today) == report.replay_quantity
        assert ledger.get_as_of_value(product.id, today) == report.batch_value

        summary = ledger.get_quantity(product.id)
        assert 0 <= summary.approved <= summary.total

        for batch in ledger.list_batches(product.id, include_inactive=True):
            assert 0 <= batch.remaining_quantity <= batch.quantity
            if batch.status is BatchStatus.ACTIVE and batch.remaining_quantity > 0:
                assert batch.job_allocated_to is None
            receipts = ledger.movements.for_source(product.id, receipt_source_ref(batch.id))
            expected = 1 if batch.approval_status is ApprovalStatus.APPROVED else 0
            assert len(receipts) == expected

    @FUZZ_SETTINGS
    @given(requests=st.lists(st.integers(1, 15), min_size=1, max_size=12), size=st.integers(1, 60))
    def test_allocations_never_exceed_batch(
        self, ledger, make_product, approved_batch, actor_id, requests, size,
    ):
        product = make_product()
        batch_id = approved_batch(product.id, size, "3.00")

        issued = 0
        for request in requests:
            job = ledger.open_job(f"JOB-{uuid4().hex[:10]}", actor_id)
            try:
                ledger.allocate_batch(batch_id, job.id, request, actor_id)
                issued += request
            except StockLedgerError:
                pass

        assert issued <= size
        assert ledger.get_batch(batch_id).remaining_quantity == size - issued
        assert ledger.movements.count(product.id, MovementType.JOB_ISSUE) <= len(requests)
