"""Database engine and session management."""

import os
from contextlib import contextmanager
from typing import Generator, Iterator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from resumegate.config import get_settings
from resumegate.core.logging import get_logger

logger = get_logger(__name__)

Base = declarative_base()

_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def build_engine(database_url: str) -> Engine:
    """Create an engine, preparing SQLite paths and thread settings."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        path = database_url.split("sqlite:///", 1)[-1]
        if path and path != ":memory:":
            os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    return create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def get_engine() -> Engine:
    """Get the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = build_engine(get_settings().database_url)
    return _engine


def get_session_local() -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = build_session_factory(get_engine())
    return _SessionLocal


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a database session."""
    db = get_session_local()()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope(factory: Optional[sessionmaker] = None) -> Iterator[Session]:
    """Transactional scope: commit on success, roll back on error."""
    db = (factory or get_session_local())()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def create_all(engine: Optional[Engine] = None) -> None:
    """Create tables for every model registered on ``Base``."""
    from resumegate.db import models  # noqa: F401  (registers mappers)

    Base.metadata.create_all(bind=engine or get_engine())


def verify_database_connection(engine: Optional[Engine] = None) -> bool:
    try:
        with (engine or get_engine()).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as exc:
        logger.error("Database connection check failed", data={"error": str(exc)})
        return False


def dispose_engine() -> None:
    """Dispose the process-wide engine and forget the session factory."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None
