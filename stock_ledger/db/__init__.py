"""Database layer - engine, base classes, types, and immutability."""

from stock_ledger.db.base import UUID, Base, TrackedBase, UUIDString
from stock_ledger.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_settings,
    init_engine_from_url,
    session_scope,
)
from stock_ledger.db.types import round_money

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "init_engine_from_settings",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "round_money",
]
