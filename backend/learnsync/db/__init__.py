"""Database utilities for the learnsync profile server."""

from .base import Base, TimestampMixin
from .session import (
    database_status,
    dispose_engine,
    get_engine,
    get_session_dependency,
    get_session_factory,
    session_scope,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "database_status",
    "dispose_engine",
    "get_engine",
    "get_session_dependency",
    "get_session_factory",
    "session_scope",
]
