"""Database layer: declarative base, engine/session management, money types."""

from pettycash_kernel.db.base import Base, TrackedBase, UTCDateTime, UUIDString
from pettycash_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from pettycash_kernel.db.types import round_money, to_money

__all__ = [
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "reset_engine",
    "session_scope",
    "round_money",
    "to_money",
]
