"""
Startup wiring for the stock ledger.

    from stock_ledger.bootstrap import bootstrap
    factory = bootstrap()              # settings from YAML / environment
    with factory() as session:
        ledger = InventoryLedger(session)

``bootstrap`` initializes logging and the engine, creates missing tables
and registers the ORM immutability listeners.  Call it once per process.
"""

from __future__ import annotations

from pathlib import Path

from sqlalchemy.orm import Session, sessionmaker

from stock_ledger.config import LedgerSettings, load_settings
from stock_ledger.db.engine import create_tables, get_session_factory, init_engine_from_settings
from stock_ledger.db.immutability import register_immutability_listeners
from stock_ledger.logging_config import get_logger

logger = get_logger("bootstrap")


def bootstrap(
    settings: LedgerSettings | None = None,
    config_path: Path | str | None = None,
    create_schema: bool = True,
) -> sessionmaker[Session]:
    """
    Bring the ledger up and return the session factory.

    Args:
        settings: Resolved settings.  Loaded from ``config_path`` and the
            environment when omitted.
        config_path: YAML settings file, used only when ``settings`` is None.
        create_schema: Create tables that do not exist yet.
    """
    settings = settings or load_settings(config_path)
    init_engine_from_settings(settings)
    if create_schema:
        create_tables()
    register_immutability_listeners()
    logger.info(
        "ledger_bootstrapped",
        extra={
            "allow_negative_stock": settings.allow_negative_stock,
            "pending_overdue_days": settings.pending_overdue_days,
        },
    )
    return get_session_factory()
