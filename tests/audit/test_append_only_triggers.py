"""
Database-level append-only triggers.

The ORM listeners never see Core statements; these tests go around the ORM
and check that the database itself refuses the write.
"""

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from inventory_kernel.db.triggers import (
    APPEND_ONLY_TABLES,
    VIOLATION_PREFIX,
    _install_statements,
    expected_trigger_names,
    get_installed_triggers,
    immutability_lifted,
    install_immutability_triggers,
    triggers_installed,
    uninstall_immutability_triggers,
)
from inventory_kernel.models.audit_log import AuditLogEntry
from inventory_kernel.models.order import OrderStatusHistory
from inventory_kernel.models.stock_movement import StockMovement

_audit = AuditLogEntry.__table__
_movements = StockMovement.__table__
_history = OrderStatusHistory.__table__


@pytest.fixture
def audited_entry_id(ledger, make_stock, session, test_actor_id):
    product_id = make_stock(physical=5)
    result = ledger.reserve_available(product_id, 1, actor_id=test_actor_id)
    session.flush()
    return result.audit_entry_id


class TestInstallation:
    def test_installed_by_create_tables(self, engine):
        assert triggers_installed(engine)
        assert get_installed_triggers(engine) == expected_trigger_names(engine.dialect.name)

    def test_every_table_covered(self, engine):
        names = expected_trigger_names(engine.dialect.name)

        for table in APPEND_ONLY_TABLES:
            assert any(table in name for name in names)

    def test_install_is_idempotent(self, session):
        conn = session.connection()

        install_immutability_triggers(conn)

        assert triggers_installed(conn)

    def test_uninstall_removes_all(self, session, captured_logs):
        conn = session.connection()

        uninstall_immutability_triggers(conn)

        assert get_installed_triggers(conn) == []
        assert any(r["message"] == "immutability_triggers_removed" for r in captured_logs())

    def test_unknown_dialect_rejected(self):
        with pytest.raises(ValueError):
            _install_statements("mssql")


class TestCoreStatementsRejected:
    """Statements that bypass the unit of work still fail."""

    def test_audit_update_rejected(self, audited_entry_id, session):
        with pytest.raises(IntegrityError) as exc_info:
            session.execute(update(_audit).where(_audit.c.id == audited_entry_id).values(notes="rewritten"))

        assert VIOLATION_PREFIX in str(exc_info.value)

    def test_audit_delete_rejected(self, audited_entry_id, session):
        with pytest.raises(IntegrityError) as exc_info:
            session.execute(_audit.delete().where(_audit.c.id == audited_entry_id))

        assert VIOLATION_PREFIX in str(exc_info.value)

    def test_movement_delete_rejected(self, movement_recorder, ledger, make_stock, session, test_actor_id):
        recorded = movement_recorder.record_movement(
            ledger.get(make_stock(physical=2)).id, "restock", 3, test_actor_id
        )
        session.flush()

        with pytest.raises(IntegrityError) as exc_info:
            session.execute(_movements.delete().where(_movements.c.id == recorded.movement.movement_id))

        assert VIOLATION_PREFIX in str(exc_info.value)

    def test_order_history_update_rejected(
        self, reservation_manager, make_stock, make_order, session, test_actor_id
    ):
        order = make_order([(make_stock(physical=5), 1)])
        reservation_manager.reserve(order.id, test_actor_id)
        session.flush()

        with pytest.raises(IntegrityError) as exc_info:
            session.execute(
                update(_history).where(_history.c.order_id == order.id).values(change_reason="rewritten")
            )

        assert VIOLATION_PREFIX in str(exc_info.value)


class TestLifted:
    def test_edit_allowed_then_guard_restored(self, audited_entry_id, session):
        with immutability_lifted(session.connection()):
            session.execute(update(_audit).where(_audit.c.id == audited_entry_id).values(notes="maintenance"))

        assert triggers_installed(session.connection())
        notes = session.execute(select(_audit.c.notes).where(_audit.c.id == audited_entry_id)).scalar_one()
        assert notes == "maintenance"

        with pytest.raises(IntegrityError):
            session.execute(update(_audit).where(_audit.c.id == audited_entry_id).values(notes="again"))

    def test_restored_when_block_raises(self, session):
        with pytest.raises(RuntimeError):
            with immutability_lifted(session.connection()):
                raise RuntimeError("maintenance failed")

        assert triggers_installed(session.connection())
