"""
Tests for StockSelector: lookups, listings, low stock and dashboard stats.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_kernel.exceptions import InvalidQueryError, StockRecordNotFoundError
from inventory_kernel.selectors import StockSelector


@pytest.fixture
def selector(session):
    return StockSelector(session, default_threshold=5)


class TestLookups:
    def test_get_stock(self, selector, make_stock):
        product_id = make_stock(physical=9, reserved=2)

        snapshot = selector.get_stock(product_id)

        assert snapshot.physical_stock == 9
        assert snapshot.reserved_stock == 2
        assert snapshot.available_stock == 7

    def test_get_stock_missing(self, selector):
        with pytest.raises(StockRecordNotFoundError):
            selector.get_stock(uuid4())

    def test_list_by_status(self, selector, make_stock):
        active = make_stock()
        make_stock(status="discontinued")

        listed = selector.list_stock(status="active")

        assert [s.product_id for s in listed] == [active]

    def test_list_pagination(self, selector, make_stock):
        for _ in range(5):
            make_stock()

        first = selector.list_stock(limit=2)
        rest = selector.list_stock(limit=10, offset=2)

        assert len(first) == 2
        assert len(rest) == 3
        assert not {s.stock_id for s in first} & {s.stock_id for s in rest}

    def test_unknown_status(self, selector):
        with pytest.raises(InvalidQueryError):
            selector.list_stock(status="archived")


class TestLowStock:
    """available <= reorder point (or default threshold), active records only."""

    def test_uses_default_threshold(self, selector, make_stock):
        at_threshold = make_stock(physical=5)
        make_stock(physical=6)

        report = selector.low_stock_items()

        assert [i.product_id for i in report.items] == [at_threshold]
        assert report.items[0].threshold == 5

    def test_reservations_count_against_available(self, selector, make_stock):
        product_id = make_stock(physical=20, reserved=16)

        report = selector.low_stock_items()

        assert [i.available_stock for i in report.items if i.product_id == product_id] == [4]

    def test_reorder_point_overrides_default(self, selector, make_stock):
        make_stock(physical=4, reorder_point=2)
        flagged = make_stock(physical=8, reorder_point=10)

        report = selector.low_stock_items()

        assert [i.product_id for i in report.items] == [flagged]
        assert report.items[0].threshold == 10

    def test_inactive_excluded(self, selector, make_stock):
        make_stock(physical=0, status="inactive")

        assert selector.low_stock_items().count == 0

    def test_ordered_by_available_and_valued(self, selector, make_stock):
        two = make_stock(physical=2, unit_cost=Decimal("3.00"))
        zero = make_stock(physical=0)

        report = selector.low_stock_items()

        assert [i.product_id for i in report.items] == [zero, two]
        assert report.items[1].stock_value == Decimal("6.00")
        assert report.total_value == Decimal("6.00")


class TestStats:
    def test_empty(self, selector):
        stats = selector.stats()

        assert stats.total_products == 0
        assert stats.average_price == Decimal("0.00")
        assert stats.total_inventory_value == Decimal("0")

    def test_totals(self, selector, make_stock):
        make_stock(physical=10, unit_cost=Decimal("2.00"), unit_price=Decimal("5.00"))
        make_stock(physical=3, reserved=3, unit_cost=Decimal("1.50"), unit_price=Decimal("4.00"))
        make_stock(physical=0, status="discontinued", unit_price=Decimal("1.00"))

        stats = selector.stats()

        assert stats.total_products == 3
        assert stats.total_inventory_value == Decimal("24.50")
        assert stats.average_price == Decimal("3.33")
        assert stats.active_count == 2
        assert stats.discontinued_count == 1
        assert stats.inactive_count == 0
        # low stock: the fully reserved active record; discontinued is not counted
        assert stats.low_stock_count == 1
        # out of stock counts every status
        assert stats.out_of_stock_count == 2
        assert stats.total_physical == 13
        assert stats.total_reserved == 3
