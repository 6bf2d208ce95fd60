"""
Adapters layer - storage backends (SQLAlchemy and in-memory).
"""

from .database import build_engine, build_session_factory, init_db, session_scope
from .fixtures import ScheduleFixture, fixture_from_dict, load_fixture
from .memory_store import InMemoryScheduleStore
from .sql_store import SqlScheduleStore

__all__ = [
    "InMemoryScheduleStore",
    "ScheduleFixture",
    "SqlScheduleStore",
    "build_engine",
    "build_session_factory",
    "fixture_from_dict",
    "init_db",
    "load_fixture",
    "session_scope",
]
