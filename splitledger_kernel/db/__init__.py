"""Database layer - engine, base classes, column types and upserts."""

from splitledger_kernel.db.base import Base, TrackedBase
from splitledger_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    session_scope,
)
from splitledger_kernel.db.types import Currency, EntityId, Money

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "Currency",
    "EntityId",
    "Money",
]
