"""Tests for MovementSelector -- replay order and the running balance."""

from datetime import date

from stock_ledger.domain.lifecycle import MovementType


def test_history_running_balance(
    ledger, make_product, approved_batch, make_job, actor_id, deterministic_clock,
):
    product = make_product(opening_quantity=10, opening_unit_cost="5.00")
    batch_id = approved_batch(product.id, 20, "7.00", received=date(2024, 6, 3))
    job = make_job()
    deterministic_clock.tick()
    ledger.allocate_batch(batch_id, job.id, 5, actor_id)
    deterministic_clock.tick()
    ledger.release_allocation(batch_id, job.id, actor_id)

    lines = ledger.movement_history(product.id)

    assert [(line.movement.event_type, line.balance_after) for line in lines] == [
        (MovementType.OPENING_BALANCE, 10),
        (MovementType.BATCH_RECEIPT, 30),
        (MovementType.JOB_ISSUE, 25),
        (MovementType.ADJUSTMENT_IN, 30),
    ]
    assert lines[-1].balance_after == ledger.get_quantity(product.id).total


def test_history_as_of(ledger, make_product, approved_batch):
    product = make_product(opening_quantity=10, opening_unit_cost="5.00")
    approved_batch(product.id, 20, "7.00", received=date(2024, 6, 3))

    lines = ledger.movement_history(product.id, as_of=date(2024, 6, 2))
    assert [line.balance_after for line in lines] == [10]


def test_replay_order_is_effective_date_first(ledger, make_product, approved_batch, deterministic_clock):
    product = make_product()
    late = approved_batch(product.id, 1, "1.00", received=date(2024, 6, 10))
    deterministic_clock.tick()
    early = approved_batch(product.id, 1, "1.00", received=date(2024, 6, 2))

    movements = ledger.movements.movements(product.id)
    assert [m.batch_id for m in movements] == [early, late]


def test_filters(ledger, make_product, approved_batch):
    product = make_product(opening_quantity=1, opening_unit_cost="1.00")
    first = approved_batch(product.id, 1, "1.00", received=date(2024, 6, 2))
    approved_batch(product.id, 1, "1.00", received=date(2024, 6, 10))

    since = ledger.movements.movements(product.id, since=date(2024, 6, 5))
    assert len(since) == 1
    assert len(ledger.movements.movements(product.id, include_opening=False)) == 2
    assert [m.quantity_delta for m in ledger.movements.for_batch(first)] == [1]
    assert ledger.movements.count(product.id) == 3
