"""Database layer - engine, base classes, types, and immutability guards."""

from labour_ledger.db.base import UUID, Base, TrackedBase, UUIDString
from labour_ledger.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from labour_ledger.db.types import MAX_MINOR_UNITS, round_half_up

__all__ = [
    "init_engine",
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "drop_tables",
    "reset_engine",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "MAX_MINOR_UNITS",
    "round_half_up",
]
