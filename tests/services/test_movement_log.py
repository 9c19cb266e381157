"""
Tests for MovementLog -- append-only writes and the deduplication key.

These drive the service directly with the session, as the posting-level
tests do, so the caller owns the transaction.
"""

from datetime import date
from decimal import Decimal

import pytest

from stock_ledger.domain.lifecycle import MovementType
from stock_ledger.exceptions import ValidationError
from stock_ledger.services.movement_log import MovementLog


@pytest.fixture
def movement_log(session, deterministic_clock):
    return MovementLog(session, deterministic_clock)


def _append(log, product_id, actor_id, **overrides):
    kwargs = dict(
        product_id=product_id,
        event_type=MovementType.ADJUSTMENT_IN,
        quantity_delta=3,
        unit_cost=Decimal("2.50"),
        effective_date=date(2024, 6, 1),
        source_ref="adjustment:T-1",
        actor_id=actor_id,
    )
    kwargs.update(overrides)
    return log.append(**kwargs)


class TestAppend:
    def test_new_record(self, session, movement_log, make_product, actor_id, deterministic_clock):
        product = make_product()

        result = _append(movement_log, product.id, actor_id)
        session.commit()

        assert result.created
        assert result.movement.quantity_delta == 3
        assert result.movement.value_delta == Decimal("7.50")
        assert result.movement.created_at == deterministic_clock.now()

    def test_duplicate_key_returns_first(self, session, movement_log, make_product, actor_id):
        product = make_product()
        first = _append(movement_log, product.id, actor_id)
        second = _append(movement_log, product.id, actor_id, quantity_delta=99)
        session.commit()

        assert not second.created
        assert second.movement.id == first.movement.id
        assert second.movement.quantity_delta == 3
        assert movement_log.find(product.id, "adjustment:T-1", MovementType.ADJUSTMENT_IN)

    def test_same_ref_different_event_type_is_distinct(
        self, session, movement_log, make_product, actor_id,
    ):
        product = make_product()
        _append(movement_log, product.id, actor_id)
        other = _append(
            movement_log, product.id, actor_id,
            event_type=MovementType.ADJUSTMENT_OUT, quantity_delta=-1,
        )
        session.commit()
        assert other.created


class TestSigns:
    @pytest.mark.parametrize("event_type,delta", [
        (MovementType.BATCH_RECEIPT, -1),
        (MovementType.ADJUSTMENT_IN, -1),
        (MovementType.JOB_ISSUE, 1),
        (MovementType.ADJUSTMENT_OUT, 1),
        (MovementType.JOB_ISSUE, 0),
        (MovementType.OPENING_BALANCE, -1),
    ])
    def test_wrong_sign_rejected(
        self, session, movement_log, make_product, actor_id, event_type, delta,
    ):
        product = make_product()
        with pytest.raises(ValidationError):
            _append(movement_log, product.id, actor_id, event_type=event_type, quantity_delta=delta)
        session.rollback()

    def test_negative_cost_rejected(self, session, movement_log, make_product, actor_id):
        product = make_product()
        with pytest.raises(ValidationError):
            _append(movement_log, product.id, actor_id, unit_cost=Decimal("-0.01"))
        session.rollback()

    def test_source_ref_required(self, session, movement_log, make_product, actor_id):
        product = make_product()
        with pytest.raises(ValidationError):
            _append(movement_log, product.id, actor_id, source_ref="")
        session.rollback()
