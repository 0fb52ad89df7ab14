"""Database layer - engine, base classes, column types and immutability."""

from billing_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from billing_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from billing_kernel.db.types import AREA, LONG_TEXT, MONEY, SHORT_CODE

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "drop_tables",
    "reset_engine",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "MONEY",
    "AREA",
    "SHORT_CODE",
    "LONG_TEXT",
]
