"""
Shared fixtures for the stock ledger test suite.

Every test gets its own SQLite database file under ``tmp_path`` with the
ledger schema created and the immutability listeners registered.  The file
database (rather than ``:memory:``) lets the concurrency tests open one
connection per thread against the same data.
"""

import json
import logging
from datetime import UTC, date, datetime
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from stock_ledger.db.engine import (
    create_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from stock_ledger.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from stock_ledger.domain.clock import DeterministicClock
from stock_ledger.logging_config import StructuredFormatter
from stock_ledger.services.inventory_ledger import InventoryLedger

TEST_NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=UTC)
TEST_TODAY = TEST_NOW.date()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


@pytest.fixture
def db_engine(tmp_path):
    """Fresh SQLite database file with the ledger schema."""
    engine = init_engine_from_url(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        sqlite_busy_timeout=30,
    )
    create_tables()
    register_immutability_listeners()
    yield engine
    unregister_immutability_listeners()
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """A session on the test database; the test owns its transactions."""
    session = get_session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def session_factory(db_engine):
    """Session factory for tests that need one session per thread."""
    return get_session_factory()


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(TEST_NOW)


@pytest.fixture
def actor_id():
    return uuid4()


@pytest.fixture
def approver_id():
    return uuid4()


@pytest.fixture
def ledger(session, deterministic_clock) -> InventoryLedger:
    """Facade that commits each operation."""
    return InventoryLedger(session, clock=deterministic_clock)


@pytest.fixture
def make_product(ledger, actor_id):
    """Register a product; defaults to no opening balance."""

    def _make(
        opening_quantity: int = 0,
        opening_unit_cost: Decimal | str = Decimal("0"),
        part_number: str | None = None,
        **attrs,
    ):
        return ledger.register_product(
            part_number or f"PN-{uuid4().hex[:8].upper()}",
            actor_id,
            opening_quantity=opening_quantity,
            opening_unit_cost=Decimal(str(opening_unit_cost)),
            opening_date=attrs.pop("opening_date", date(2024, 1, 1)),
            **attrs,
        )

    return _make


@pytest.fixture
def make_job(ledger, actor_id):
    def _make(job_number: str | None = None):
        return ledger.open_job(job_number or f"JOB-{uuid4().hex[:6].upper()}", actor_id)

    return _make


@pytest.fixture
def approved_batch(ledger, actor_id, approver_id):
    """Submit and approve a batch; returns its id."""

    def _make(product_id, quantity: int, unit_cost: str, received: date = date(2024, 6, 1)):
        batch_id = ledger.submit_batch(
            product_id, quantity, Decimal(unit_cost), received, actor_id,
        )
        ledger.decide_batch(batch_id, "approve", approver_id)
        return batch_id

    return _make


@pytest.fixture
def captured_logs():
    """
    Capture stock_ledger logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.decide_batch(...)
            logs = captured_logs()
            assert any(r["message"] == "batch_approved" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("stock_ledger")
    previous_level = root.level
    root.setLevel(logging.INFO)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)
