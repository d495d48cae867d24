"""Database layer: engine, declarative base and decimal helpers."""

from commerce_kernel.db.base import Base, TrackedBase, UUIDString
from commerce_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    is_postgres,
    reset_engine,
    session_scope,
)
from commerce_kernel.db.types import round_money, to_decimal

__all__ = [
    "Base",
    "TrackedBase",
    "UUIDString",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "is_postgres",
    "reset_engine",
    "round_money",
    "session_scope",
    "to_decimal",
]
