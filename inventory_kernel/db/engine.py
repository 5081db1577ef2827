"""
Engine and session management for the inventory database.

One process-wide engine, created by ``init_engine_from_url()``, and a session
factory bound to it.  ``session_scope()`` is the unit of work: commit on
success, rollback and re-raise on error, always close.

Dialect behaviour:
    - PostgreSQL runs at READ COMMITTED with a pre-pinged pool.  Stock races
      are settled by conditional single-row UPDATEs, not by isolation.
    - SQLite starts every transaction with BEGIN IMMEDIATE, so writers queue
      on the database lock (bounded by ``busy_timeout``) instead of failing
      when a read lock is upgraded.  Foreign keys are switched on per
      connection.

Sessions never expire attributes on commit; facade results are built from
loaded rows after the transaction has ended.

``create_tables()`` installs the append-only triggers from db/triggers.py
alongside the schema.
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from inventory_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Database engine not initialized; call init_engine_from_url() first"


def _sqlite_engine(url, echo: bool, busy_timeout: float) -> Engine:
    connect_args = {"check_same_thread": False, "timeout": busy_timeout}
    in_memory = url.database in (None, "", ":memory:")
    engine = create_engine(
        url,
        echo=echo,
        connect_args=connect_args,
        poolclass=StaticPool if in_memory else None,
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # pysqlite must not issue its own BEGIN
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    busy_timeout: float = 30.0,
) -> Engine:
    """
    Create the process-wide engine and session factory.

    Pool settings apply to server databases; ``busy_timeout`` (seconds) only
    to SQLite.  Calling again replaces the previous engine without disposing
    it; use ``reset_engine()`` for that.
    """
    global _engine, _session_factory

    url = make_url(database_url)
    dialect = url.get_backend_name()
    if dialect == "sqlite":
        _engine = _sqlite_engine(url, echo, busy_timeout)
    else:
        _engine = create_engine(
            url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            pool_pre_ping=True,
            isolation_level="READ COMMITTED",
        )
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": dialect, "echo": echo})
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Factory for new sessions; each thread should open its own."""
    if _session_factory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _session_factory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Generator[Session, None, None]:
    """
    One transaction around the block.

    Usage::

        with session_scope() as session:
            StockLedger(session).mutate(...)
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back")
        raise
    finally:
        session.close()


def _metadata():
    from inventory_kernel.db.base import Base
    from inventory_kernel.models import import_all_models

    import_all_models()
    return Base.metadata


def create_tables(install_triggers: bool = True) -> None:
    """Create every missing table on the current engine, then the append-only triggers."""
    engine = get_engine()
    _metadata().create_all(engine)
    if install_triggers:
        from inventory_kernel.db.triggers import install_immutability_triggers

        install_immutability_triggers(engine)


def drop_tables() -> None:
    """Drop every table on the current engine.  Test suites only."""
    from inventory_kernel.db.triggers import uninstall_immutability_triggers

    engine = get_engine()
    uninstall_immutability_triggers(engine)
    _metadata().drop_all(engine)


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


atexit.register(reset_engine)
