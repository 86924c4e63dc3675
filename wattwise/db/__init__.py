"""
Database package for SQLAlchemy models and session management.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from wattwise.db.models import Base, DailyUsage, MonthlyUsage, RawUsage, WeeklyUsage
from wattwise.db.session import (
    async_engine,
    async_session_factory,
    create_engine,
    create_session_factory,
    dispose_engine,
    get_async_session,
    get_session_factory,
    init_engine,
)

__all__ = [
    "Base",
    "DailyUsage",
    "MonthlyUsage",
    "RawUsage",
    "WeeklyUsage",
    "async_engine",
    "async_session_factory",
    "create_engine",
    "create_session_factory",
    "dispose_engine",
    "get_async_session",
    "get_session_factory",
    "init_engine",
]
