"""
ledger_kernel.db.engine -- process-wide engine and unit of work.

Responsibility:
    Holds the one SQLAlchemy engine and session factory of the process and
    provides ``session_scope()``, the unit of work every caller wraps its
    ledger operations in.  Services never commit; the scope does.

Architecture position:
    Kernel > DB.  Imports only ``db.base`` and logging.  Table creation here
    covers whatever models are already imported; ``ledger_modules`` supplies
    ``create_all_tables()`` for the full schema.

Invariants:
    - Non-SQLite engines run at READ COMMITTED; services re-check rows inside
      the transaction and version columns catch lost updates.
    - SQLite connections hand transaction control to SQLAlchemy so that
      per-operation savepoints nest correctly.
    - ``sqlite://`` (in memory) uses a single shared connection.

Failure modes:
    - RuntimeError from any accessor called before ``init_engine_from_url``.
"""

import atexit
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ledger_kernel.db.base import Base
from ledger_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


class _Database:
    engine: Engine | None = None
    sessions: sessionmaker[Session] | None = None


_db = _Database()


def _sqlite_kwargs(url: str, kwargs: dict[str, Any]) -> dict[str, Any]:
    if url in _IN_MEMORY_URLS:
        kwargs.setdefault("poolclass", StaticPool)
    kwargs.setdefault("connect_args", {"check_same_thread": False})
    return kwargs


def init_engine_from_url(database_url: str, echo: bool = False, **pool_kwargs: Any) -> Engine:
    """
    Create the process engine; a later call replaces the earlier one.

    ``pool_kwargs`` go straight to ``create_engine``.
    """
    if database_url.startswith("sqlite"):
        pool_kwargs = _sqlite_kwargs(database_url, pool_kwargs)
    else:
        pool_kwargs.setdefault("pool_pre_ping", True)
        pool_kwargs.setdefault("isolation_level", "READ COMMITTED")

    engine = create_engine(database_url, echo=echo, **pool_kwargs)
    if engine.dialect.name == "sqlite":
        enable_sqlite_savepoints(engine)

    _db.engine = engine
    _db.sessions = sessionmaker(bind=engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": engine.dialect.name, "echo": echo})
    return engine


def enable_sqlite_savepoints(engine: Engine) -> None:
    """Turn off pysqlite's own BEGIN handling and emit BEGIN from SQLAlchemy."""

    @event.listens_for(engine, "connect")
    def _autocommit_driver(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")


def get_engine() -> Engine:
    if _db.engine is None:
        raise RuntimeError("No ledger database: call init_engine_from_url() first")
    return _db.engine


def get_session_factory() -> sessionmaker[Session]:
    if _db.sessions is None:
        raise RuntimeError("No ledger database: call init_engine_from_url() first")
    return _db.sessions


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Commit on success, roll back and re-raise on any error, always close.

        with session_scope() as session:
            APService(session, accounts).pay_bills(...)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create tables for every model imported so far."""
    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    if _db.engine is not None:
        _db.engine.dispose()
    _db.engine = None
    _db.sessions = None


@atexit.register
def _dispose_on_exit() -> None:
    if _db.engine is not None:
        _db.engine.dispose()
