"""
End-to-end tests through InventoryService.

Each facade call runs in its own committed transaction, so seed data built
with the fixture session is committed first and everything afterwards is
read back through the facade.
"""

from uuid import uuid4

import pytest

from inventory_kernel.domain.dtos import AuditQuery, MovementQuery
from inventory_kernel.exceptions import (
    ActorRequiredError,
    InsufficientStockError,
    InvalidQueryError,
    StockRecordNotFoundError,
)
from inventory_kernel.models.audit_log import OperationType
from inventory_kernel.models.reorder_alert import AlertType


@pytest.fixture
def seeded_order(session, make_stock, make_order):
    """Physical 10, one order line for 4 units; committed."""
    product_id = make_stock(physical=10)
    order = make_order([(product_id, 4)])
    order_id, item_id = order.id, order.items[0].id
    session.commit()
    return product_id, order_id, item_id


class TestOrderLifecycle:
    """Reserve, fulfill, return through the facade."""

    def test_reserve_fulfill_return(self, inventory_service, seeded_order, test_actor_id):
        product_id, order_id, item_id = seeded_order

        reservation = inventory_service.reserve_order(order_id, test_actor_id)
        assert reservation.lines[0].quantity == 4
        stock = inventory_service.get_stock(product_id)
        assert (stock.physical_stock, stock.reserved_stock, stock.available_stock) == (10, 4, 6)

        fulfilled = inventory_service.fulfill_item(order_id, item_id, 4, test_actor_id)
        assert fulfilled.order_fully_fulfilled
        stock = inventory_service.get_stock(product_id)
        assert (stock.physical_stock, stock.reserved_stock) == (6, 0)

        returned = inventory_service.process_return(product_id, order_id, 2, test_actor_id)
        assert returned.physical_after == 8
        stock = inventory_service.get_stock(product_id)
        assert (stock.physical_stock, stock.reserved_stock, stock.available_stock) == (8, 0, 8)

        trail = inventory_service.query_audit(AuditQuery(order_id=order_id))
        assert [e.operation_type for e in trail.entries] == [
            OperationType.RETURN_PROCESSING,
            OperationType.FULFILLMENT,
            OperationType.RESERVATION,
        ]
        assert inventory_service.return_history(order_id=order_id).pagination.total == 1
        assert inventory_service.validate_audit_chain() is True

    def test_release_restores_available(self, inventory_service, seeded_order, test_actor_id):
        product_id, order_id, _ = seeded_order
        inventory_service.reserve_order(order_id, test_actor_id)

        released = inventory_service.release_order(order_id, test_actor_id)

        assert not released.was_no_op
        assert inventory_service.get_stock(product_id).available_stock == 10

    def test_failed_reservation_commits_nothing(
        self, inventory_service, session, make_stock, make_order, test_actor_id
    ):
        plenty = make_stock(physical=10)
        short = make_stock(physical=1)
        order_id = make_order([(plenty, 2), (short, 2)]).id
        session.commit()

        with pytest.raises(InsufficientStockError):
            inventory_service.reserve_order(order_id, test_actor_id)

        assert inventory_service.get_stock(plenty).reserved_stock == 0
        assert inventory_service.query_audit(AuditQuery(order_id=order_id)).entries == ()

    def test_fulfillment_raises_reorder_alert(self, inventory_service, session, make_stock, make_order, test_actor_id):
        product_id = make_stock(physical=6)
        order = make_order([(product_id, 3)])
        order_id, item_id = order.id, order.items[0].id
        session.commit()

        inventory_service.fulfill_item(order_id, item_id, 3, test_actor_id)

        alerts = inventory_service.list_alerts().alerts
        assert [(a.product_id, a.alert_type) for a in alerts] == [(product_id, AlertType.LOW_STOCK)]


class TestActorRequired:
    @pytest.mark.parametrize("actor", [None, "", "not-a-uuid"])
    def test_mutations_need_actor(self, inventory_service, seeded_order, actor):
        _, order_id, _ = seeded_order

        with pytest.raises(ActorRequiredError) as exc_info:
            inventory_service.reserve_order(order_id, actor)

        assert exc_info.value.operation == "reserve_order"

    def test_string_actor_accepted(self, inventory_service, seeded_order, test_actor_id):
        _, order_id, _ = seeded_order

        result = inventory_service.reserve_order(order_id, str(test_actor_id))

        assert result.reservation_state == "reserved"


class TestStockRecordsAndMovements:
    def test_create_adjust_and_delete(self, inventory_service, session, make_product, test_actor_id):
        product_id = make_product().id
        session.commit()

        created = inventory_service.create_stock_record(
            product_id, test_actor_id, physical_stock=20, unit_cost="2.50", reorder_point=4
        )
        assert created.physical_stock == 20

        inventory_service.adjust_stock(product_id, "decrease", 5, test_actor_id, notes="Cycle count")
        inventory_service.record_movement(created.stock_id, "restock", 10, test_actor_id, reference="PO-7")

        movements, page = inventory_service.list_movements(MovementQuery(product_id=product_id))
        assert page.total == 2
        assert inventory_service.get_stock(product_id).physical_stock == 25

        entry = inventory_service.delete_stock_record(product_id, test_actor_id)
        assert entry.physical_before == 25
        with pytest.raises(StockRecordNotFoundError):
            inventory_service.get_stock(product_id)

    def test_adjustment_workflow(self, inventory_service, session, make_stock, test_actor_id):
        product_id = make_stock(physical=10)
        session.commit()

        request = inventory_service.request_adjustment(product_id, "set", "correction", 3, test_actor_id)
        reviewed = inventory_service.review_adjustment(request.adjustment_id, True, uuid4())

        assert reviewed.approval_status == "approved"
        assert inventory_service.get_stock(product_id).physical_stock == 3
        assert inventory_service.check_reorder(product_id)[0].current_available == 3

    def test_bulk_update_reports_failures(self, inventory_service, session, make_stock, ledger, test_actor_id):
        ids = [ledger.get(make_stock()).id for _ in range(2)]
        session.commit()

        result = inventory_service.bulk_update(ids + [uuid4()], {"reorder_point": 20}, test_actor_id)

        assert result.updated_count == 2
        assert result.failed_count == 1
        assert len(inventory_service.list_alerts().alerts) == 2

    def test_bulk_update_commits_good_items(self, inventory_service, session, make_stock, ledger, test_actor_id):
        product_ids = [make_stock() for _ in range(4)]
        ids = [ledger.get(product_id).id for product_id in product_ids]
        session.commit()

        result = inventory_service.bulk_update(ids[:2] + [uuid4()] + ids[2:], {"reorder_point": 3}, test_actor_id)

        assert (result.updated_count, result.failed_count) == (4, 1)
        assert result.errors[0].code == "STOCK_RECORD_NOT_FOUND"
        assert [inventory_service.get_stock(p).reorder_point for p in product_ids] == [3, 3, 3, 3]

    def test_import_creates_records(self, inventory_service, session, make_product, test_actor_id):
        product_id = make_product().id
        session.commit()

        result = inventory_service.import_records(
            [{"product_id": str(product_id), "physical_stock": 3}], False, test_actor_id
        )

        assert (result.created_count, result.failed_count) == (1, 0)
        assert inventory_service.get_stock(product_id).physical_stock == 3


class TestReads:
    def test_page_limit_enforced(self, inventory_service, test_config):
        with pytest.raises(InvalidQueryError):
            inventory_service.list_stock(limit=test_config.audit.max_page_size + 1)

    def test_stats(self, inventory_service, session, make_stock):
        make_stock(physical=3)
        session.commit()

        stats = inventory_service.stats()

        assert stats.total_products == 1
        assert stats.low_stock_count == 1
        assert inventory_service.low_stock_items().count == 1

    def test_operation_logs_carry_context(self, inventory_service, seeded_order, captured_logs, test_actor_id):
        _, order_id, _ = seeded_order

        inventory_service.reserve_order(order_id, test_actor_id)

        reserved = [r for r in captured_logs() if r["message"] == "order_reserved"][0]
        assert reserved["operation"] == "reserve_order"
        assert reserved["actor_id"] == str(test_actor_id)
        assert reserved["order_id"] == str(order_id)
        assert "correlation_id" in reserved
