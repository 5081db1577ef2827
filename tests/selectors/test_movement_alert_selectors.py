"""
Tests for MovementSelector and AlertSelector.
"""

from uuid import uuid4

import pytest

from inventory_kernel.domain.dtos import AlertQuery, MovementQuery
from inventory_kernel.exceptions import AlertNotFoundError, InvalidQueryError
from inventory_kernel.models.reorder_alert import AlertStatus, AlertType
from inventory_kernel.models.stock_movement import MovementType
from inventory_kernel.selectors import AlertSelector, MovementSelector


@pytest.fixture
def movements(movement_recorder, ledger, make_stock, deterministic_clock, test_actor_id):
    """Two products with restock, sale and damage movements, one second apart."""
    a = make_stock(physical=10)
    b = make_stock(physical=10)
    for product_id, movement_type, delta in [
        (a, "restock", 5),
        (a, "sale", -2),
        (b, "sale", -1),
        (a, "damage", -1),
        (b, "restock", 4),
    ]:
        deterministic_clock.advance(1)
        movement_recorder.record_movement(ledger.get(product_id).id, movement_type, delta, test_actor_id)
    return a, b


class TestMovementSelector:
    def test_newest_first(self, session, movements):
        views, page = MovementSelector(session).list_movements(MovementQuery())

        assert page.total == 5
        assert [v.quantity_delta for v in views] == [4, -1, -1, -2, 5]

    def test_filter_by_product_and_type(self, session, movements):
        a, _ = movements

        views, page = MovementSelector(session).list_movements(
            MovementQuery(product_id=a, movement_type=MovementType.SALE)
        )

        assert page.total == 1
        assert views[0].stock_before == 15
        assert views[0].stock_after == 13

    def test_paginates(self, session, movements):
        views, page = MovementSelector(session).list_movements(MovementQuery(limit=2, offset=4))

        assert len(views) == 1
        assert not page.has_more

    def test_summary_per_type(self, session, movements):
        rows = MovementSelector(session).movement_summary(MovementQuery())

        summary = {row.movement_type: (row.count, row.net_delta) for row in rows}
        assert summary == {
            MovementType.DAMAGE: (1, -1),
            MovementType.RESTOCK: (2, 9),
            MovementType.SALE: (2, -3),
        }

    def test_summary_for_product(self, session, movements):
        _, b = movements

        rows = MovementSelector(session).movement_summary(MovementQuery(product_id=b))

        assert sum(row.net_delta for row in rows) == 3

    def test_unknown_type(self):
        with pytest.raises(InvalidQueryError):
            MovementQuery(movement_type="teleport")


class TestAlertSelector:
    @pytest.fixture
    def alerts(self, alert_service, make_stock, deterministic_clock, test_actor_id):
        low = alert_service.check_product(make_stock(physical=2))
        deterministic_clock.advance(1)
        out = alert_service.check_product(make_stock(physical=0))
        deterministic_clock.advance(1)
        dismissed = alert_service.check_product(make_stock(physical=1))
        alert_service.update_alert(dismissed.alert_id, "dismissed", test_actor_id)
        return low, out, dismissed

    def test_get_alert(self, session, alerts):
        low, _, _ = alerts

        view = AlertSelector(session).get_alert(low.alert_id)

        assert view.alert_type is AlertType.LOW_STOCK

    def test_get_alert_missing(self, session):
        with pytest.raises(AlertNotFoundError):
            AlertSelector(session).get_alert(uuid4())

    def test_list_newest_first(self, session, alerts):
        low, out, dismissed = alerts

        result = AlertSelector(session).list_alerts(AlertQuery())

        assert [a.alert_id for a in result.alerts] == [dismissed.alert_id, out.alert_id, low.alert_id]
        assert result.pagination.total == 3

    def test_filter_by_status(self, session, alerts):
        result = AlertSelector(session).list_alerts(AlertQuery(alert_status="active"))

        assert {a.alert_status for a in result.alerts} == {AlertStatus.ACTIVE}
        assert result.pagination.total == 2

    def test_statistics_zero_filled(self, session, alerts):
        result = AlertSelector(session).list_alerts(AlertQuery(alert_type="out_of_stock"))

        assert len(result.alerts) == 1
        assert result.statistics["low_stock"] == {
            "active": 1,
            "acknowledged": 0,
            "resolved": 0,
            "dismissed": 1,
        }
        assert result.statistics["out_of_stock"]["active"] == 1
