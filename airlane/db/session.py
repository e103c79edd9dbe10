"""
Airlane Database Session Management.

Single entry point for storage DB initialisation plus a context manager
for transactional DB access.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Generator, Optional

import sqlalchemy
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, scoped_session, sessionmaker

from airlane.db.base import Base
from airlane.engine.config import DatabaseConfig

_engine: Optional[Engine] = None
_session_factory: Optional[scoped_session] = None


def create_storage_engine(config: DatabaseConfig, **kwargs: Any) -> Engine:
    """
    Build an engine for the storage database.

    SQLite connections get ``PRAGMA foreign_keys=ON`` so cascade-on-delete
    foreign keys behave as they do on PostgreSQL.
    """
    is_sqlite = config.url.startswith("sqlite")
    if not is_sqlite:
        kwargs.setdefault("pool_size", config.pool_size)
        kwargs.setdefault("max_overflow", config.max_overflow)
        kwargs.setdefault("pool_timeout", config.pool_timeout)
        kwargs.setdefault("pool_recycle", config.pool_recycle)
        kwargs.setdefault("pool_pre_ping", config.pool_pre_ping)

    engine = sqlalchemy.create_engine(config.url, **kwargs)

    if is_sqlite:
        @sqlalchemy.event.listens_for(engine, "connect")
        def enable_foreign_keys(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def init_storage_db(
    config: DatabaseConfig,
    create_tables: bool = False,
    **engine_kwargs: Any,
) -> sessionmaker:
    """
    Initialise the storage database.

    1. Builds the module-level engine.
    2. Optionally calls ``Base.metadata.create_all()`` (dev / tests only).
    3. Stores a thread-safe ``scoped_session`` used by ``get_session()``.

    Returns:
        A plain ``sessionmaker`` bound to the engine.
    """
    global _engine, _session_factory

    # Models must be imported so their tables are registered on Base.metadata
    import airlane.db.models  # noqa: F401

    _engine = create_storage_engine(config, **engine_kwargs)
    if create_tables:
        Base.metadata.create_all(_engine)

    factory = sessionmaker(bind=_engine)
    _session_factory = scoped_session(factory)
    return factory


def get_session() -> Session:
    if _session_factory is None:
        raise RuntimeError("Storage DB not initialized. Call init_storage_db() first.")
    return _session_factory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Context manager for storage DB sessions with auto-commit/rollback.

    Usage:
        with session_scope() as session:
            user = session.query(User).filter_by(email='a@b.c').first()
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def close_all_sessions() -> None:
    """Close all sessions and dispose the engine. Used during shutdown."""
    global _engine, _session_factory
    if _session_factory is not None:
        _session_factory.remove()
        _session_factory = None
    if _engine is not None:
        _engine.dispose()
        _engine = None
