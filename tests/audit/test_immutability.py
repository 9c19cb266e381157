"""
Append-only persistence tests.

Verifies that the ORM listeners in db/immutability.py block:
- any UPDATE or DELETE of a movement record
- changes to a batch's quantity, cost or product after creation
- re-stamping an approval decision
- changes to a closed job's invoice record
- reverting or deleting a tab approval
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from stock_ledger.domain.lifecycle import TabCategory
from stock_ledger.exceptions import ImmutabilityViolationError
from stock_ledger.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from stock_ledger.models.batch import Batch
from stock_ledger.models.job import Job, JobTabApproval
from stock_ledger.models.movement import MovementRecord


@pytest.fixture
def receipted(make_product, approved_batch):
    product = make_product()
    batch_id = approved_batch(product.id, 20, "7.00")
    return product, batch_id


def _movement(session, batch_id) -> MovementRecord:
    return session.scalars(
        select(MovementRecord).where(MovementRecord.batch_id == batch_id)
    ).one()


class TestMovementRecords:
    def test_update_blocked(self, session, receipted):
        _, batch_id = receipted
        movement = _movement(session, batch_id)
        movement.quantity_delta = 200

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "MovementRecord"
        session.rollback()

    def test_delete_blocked(self, session, receipted):
        _, batch_id = receipted
        session.delete(_movement(session, batch_id))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_listeners_can_be_lifted_for_repair_tests(self, session, receipted):
        _, batch_id = receipted
        unregister_immutability_listeners()
        try:
            _movement(session, batch_id).notes = "corrected"
            session.flush()
        finally:
            register_immutability_listeners()
        session.rollback()


class TestBatches:
    def test_quantity_fixed_at_creation(self, session, ledger, make_product, actor_id):
        product = make_product()
        batch_id = ledger.submit_batch(product.id, 5, Decimal("1"), date(2024, 6, 1), actor_id)
        batch = session.get(Batch, batch_id)
        batch.quantity = 50

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_unit_cost_fixed_at_creation(self, session, receipted):
        _, batch_id = receipted
        session.get(Batch, batch_id).unit_cost = Decimal("1.00")

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_decision_cannot_be_restamped(self, session, receipted):
        _, batch_id = receipted
        session.get(Batch, batch_id).approved_by_id = uuid4()

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_decision_cannot_be_reversed(self, session, receipted):
        _, batch_id = receipted
        session.get(Batch, batch_id).approval_status = "rejected"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_delete_blocked(self, session, receipted):
        _, batch_id = receipted
        session.delete(session.get(Batch, batch_id))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_operational_fields_stay_writable(self, session, receipted):
        _, batch_id = receipted
        batch = session.get(Batch, batch_id)
        batch.remaining_quantity = 19
        session.flush()
        session.rollback()


class TestJobs:
    def test_invoice_fixed_once_closed(self, session, ledger, make_job, actor_id):
        job = make_job()
        for category in TabCategory:
            ledger.approve_job_tab(job.id, category, actor_id)
        ledger.close_job(job.id, "INV-1", actor_id)

        session.get(Job, job.id).invoice_number = "INV-2"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_tab_approval_cannot_be_reverted(self, session, ledger, make_job, actor_id):
        job = make_job()
        ledger.approve_job_tab(job.id, TabCategory.WAREHOUSE_A, actor_id)

        tab = session.scalars(
            select(JobTabApproval).where(
                JobTabApproval.job_id == job.id,
                JobTabApproval.category == TabCategory.WAREHOUSE_A.value,
            )
        ).one()
        tab.approved = False
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()
