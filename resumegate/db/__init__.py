"""Database module for resumegate."""

from resumegate.db.database import (
    Base,
    build_engine,
    build_session_factory,
    create_all,
    dispose_engine,
    get_db,
    get_engine,
    get_session_local,
    session_scope,
    verify_database_connection,
)
from resumegate.db.models import Session, User

__all__ = [
    "Base",
    "build_engine",
    "build_session_factory",
    "create_all",
    "dispose_engine",
    "get_db",
    "get_engine",
    "get_session_local",
    "session_scope",
    "verify_database_connection",
    "Session",
    "User",
]
