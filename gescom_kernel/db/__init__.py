"""Database layer - engine, base classes, column types, immutability."""

from gescom_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from gescom_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    session_scope,
)
from gescom_kernel.db.types import MONEY_DECIMAL_PLACES, round_money

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "MONEY_DECIMAL_PLACES",
    "round_money",
]
