"""
Module: inventory_kernel.db.triggers
Responsibility: Database-level append-only enforcement.  The ORM listeners in
    db/immutability.py only see unit-of-work flushes; these triggers reject
    UPDATE and DELETE on the append-only tables for every statement,
    including Core statements and direct SQL sessions.
Architecture position: Kernel > DB.  MUST NOT import from models/,
    services/, selectors/, domain/, or outer layers.

Protected tables:
    inventory_audit_log   -- hash-chained stock audit trail
    stock_movements       -- movement history
    order_status_history  -- order transitions

Dialects:
    PostgreSQL -- one plpgsql function shared by a BEFORE UPDATE OR DELETE
                  row trigger per table.
    SQLite     -- a BEFORE UPDATE and a BEFORE DELETE trigger per table,
                  each aborting with RAISE(ABORT).

Failure modes:
    - A blocked statement fails with sqlalchemy.exc.IntegrityError on both
      dialects (RAISE(ABORT) on SQLite, SQLSTATE restrict_violation on
      PostgreSQL); the message contains ``IMMUTABILITY_VIOLATION``.
    - ValueError for a dialect without trigger support.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from inventory_kernel.logging_config import get_logger

logger = get_logger("db.triggers")

APPEND_ONLY_TABLES = (
    "inventory_audit_log",
    "stock_movements",
    "order_status_history",
)

VIOLATION_PREFIX = "IMMUTABILITY_VIOLATION"

_PG_FUNCTION = "inventory_reject_append_only_change"

_PG_CREATE_FUNCTION = f"""
CREATE OR REPLACE FUNCTION {_PG_FUNCTION}() RETURNS trigger AS $$
BEGIN
    RAISE EXCEPTION USING
        MESSAGE = '{VIOLATION_PREFIX}: ' || TG_OP || ' on ' || TG_TABLE_NAME || ' is not allowed',
        ERRCODE = 'restrict_violation';
END;
$$ LANGUAGE plpgsql
"""


def _pg_trigger_names(table: str) -> list[str]:
    return [f"trg_{table}_append_only"]


def _sqlite_trigger_names(table: str) -> list[str]:
    return [f"trg_{table}_no_update", f"trg_{table}_no_delete"]


def _install_statements(dialect: str) -> list[str]:
    if dialect == "postgresql":
        statements = [_PG_CREATE_FUNCTION]
        for table in APPEND_ONLY_TABLES:
            (name,) = _pg_trigger_names(table)
            statements.append(f"DROP TRIGGER IF EXISTS {name} ON {table}")
            statements.append(
                f"CREATE TRIGGER {name} BEFORE UPDATE OR DELETE ON {table} "
                f"FOR EACH ROW EXECUTE FUNCTION {_PG_FUNCTION}()"
            )
        return statements
    if dialect == "sqlite":
        statements = []
        for table in APPEND_ONLY_TABLES:
            for name, operation in zip(_sqlite_trigger_names(table), ("UPDATE", "DELETE")):
                message = f"{VIOLATION_PREFIX}: {operation} on {table} is not allowed"
                statements.append(
                    f"CREATE TRIGGER IF NOT EXISTS {name} BEFORE {operation} ON {table} "
                    f"BEGIN SELECT RAISE(ABORT, '{message}'); END"
                )
        return statements
    raise ValueError(f"Append-only triggers are not available for dialect {dialect!r}")


def _drop_statements(dialect: str) -> list[str]:
    if dialect == "postgresql":
        statements = [
            f"DROP TRIGGER IF EXISTS {name} ON {table}"
            for table in APPEND_ONLY_TABLES
            for name in _pg_trigger_names(table)
        ]
        statements.append(f"DROP FUNCTION IF EXISTS {_PG_FUNCTION}()")
        return statements
    if dialect == "sqlite":
        return [
            f"DROP TRIGGER IF EXISTS {name}"
            for table in APPEND_ONLY_TABLES
            for name in _sqlite_trigger_names(table)
        ]
    raise ValueError(f"Append-only triggers are not available for dialect {dialect!r}")


def expected_trigger_names(dialect: str) -> list[str]:
    names_for = _pg_trigger_names if dialect == "postgresql" else _sqlite_trigger_names
    return sorted(name for table in APPEND_ONLY_TABLES for name in names_for(table))


def _run(bind: Engine | Connection, statements: list[str]) -> None:
    if isinstance(bind, Engine):
        with bind.begin() as conn:
            for statement in statements:
                conn.exec_driver_sql(statement)
    else:
        for statement in statements:
            bind.exec_driver_sql(statement)


def install_immutability_triggers(bind: Engine | Connection) -> None:
    """
    Install the append-only triggers.  Idempotent.

    Preconditions: the protected tables exist (call after create_all).
    Passing a Connection runs the DDL inside its current transaction.
    """
    _run(bind, _install_statements(bind.dialect.name))
    logger.info("immutability_triggers_installed", extra={"dialect": bind.dialect.name})


def uninstall_immutability_triggers(bind: Engine | Connection) -> None:
    """
    Remove the append-only triggers.

    Only for maintenance that must rewrite history, and for tamper tests.
    Reinstall as soon as the work is done.
    """
    _run(bind, _drop_statements(bind.dialect.name))
    logger.warning("immutability_triggers_removed", extra={"dialect": bind.dialect.name})


def get_installed_triggers(bind: Engine | Connection) -> list[str]:
    dialect = bind.dialect.name
    expected = expected_trigger_names(dialect)
    if dialect == "postgresql":
        query = text("SELECT tgname FROM pg_trigger WHERE tgname = ANY(:names) ORDER BY tgname")
        params = {"names": expected}
    else:
        query = text("SELECT name FROM sqlite_master WHERE type = 'trigger' ORDER BY name")
        params = {}

    if isinstance(bind, Engine):
        with bind.connect() as conn:
            names = conn.execute(query, params).scalars().all()
    else:
        names = bind.execute(query, params).scalars().all()
    return [name for name in names if name in expected]


def triggers_installed(bind: Engine | Connection) -> bool:
    return get_installed_triggers(bind) == expected_trigger_names(bind.dialect.name)


@contextmanager
def immutability_lifted(connection: Connection) -> Generator[None, None, None]:
    """
    Drop the triggers on ``connection`` for the duration of the block.

    The DDL runs in the connection's transaction, so a rollback also
    restores the triggers.
    """
    uninstall_immutability_triggers(connection)
    try:
        yield
    finally:
        install_immutability_triggers(connection)
