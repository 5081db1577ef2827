"""
Tests for AuditSelector: filtering, ordering, pagination and summaries.
"""

from datetime import datetime, timezone

import pytest

from inventory_kernel.domain.dtos import AuditQuery
from inventory_kernel.exceptions import InvalidQueryError
from inventory_kernel.models.audit_log import OperationType
from inventory_kernel.selectors import AuditSelector


@pytest.fixture
def selector(session):
    return AuditSelector(session)


@pytest.fixture
def order_history(reservation_manager, return_processor, make_stock, make_order, test_actor_id):
    """One product taken through reserve, fulfill and return; another untouched."""
    product_id = make_stock(physical=10)
    other_id = make_stock(physical=3)
    order = make_order([(product_id, 4)])
    reservation_manager.reserve(order.id, test_actor_id)
    reservation_manager.fulfill(order.id, order.items[0].id, 4, test_actor_id)
    return_processor.process_return(product_id, order.id, 2, test_actor_id)
    return product_id, other_id, order


class TestQueryAudit:
    """query_audit filters and pagination."""

    def test_newest_first(self, selector, order_history):
        result = selector.query_audit(AuditQuery())

        seqs = [e.seq for e in result.entries]
        assert seqs == sorted(seqs, reverse=True)

    def test_filter_by_product(self, selector, order_history):
        product_id, _, _ = order_history

        result = selector.query_audit(AuditQuery(product_id=product_id))

        assert {e.product_id for e in result.entries} == {product_id}
        assert [e.operation_type for e in result.entries] == [
            OperationType.RETURN_PROCESSING,
            OperationType.FULFILLMENT,
            OperationType.RESERVATION,
            OperationType.MANUAL_ADJUSTMENT,
        ]

    def test_filter_by_order(self, selector, order_history):
        _, _, order = order_history

        result = selector.query_audit(AuditQuery(order_id=order.id))

        assert result.pagination.total == 3
        assert all(e.related_order_id == order.id for e in result.entries)

    def test_summary_counts_whole_filtered_set(self, selector, order_history):
        result = selector.query_audit(AuditQuery(limit=1))

        assert len(result.entries) == 1
        assert result.summary == {
            OperationType.MANUAL_ADJUSTMENT.value: 2,
            OperationType.RESERVATION.value: 1,
            OperationType.FULFILLMENT.value: 1,
            OperationType.RETURN_PROCESSING.value: 1,
        }
        assert result.pagination.total == 5
        assert result.pagination.has_more

    def test_offset(self, selector, order_history):
        everything = selector.query_audit(AuditQuery())
        page = selector.query_audit(AuditQuery(limit=2, offset=2))

        assert [e.entry_id for e in page.entries] == [e.entry_id for e in everything.entries[2:4]]

    def test_operation_type_from_string(self, selector, order_history):
        result = selector.query_audit(AuditQuery(operation_type="fulfillment"))

        assert [e.operation_type for e in result.entries] == [OperationType.FULFILLMENT]

    def test_date_range(self, selector, ledger, make_stock, deterministic_clock, test_actor_id):
        product_id = make_stock(physical=1)
        deterministic_clock.advance(3600)
        ledger.mutate(
            product_id,
            physical_delta=1,
            operation_type=OperationType.MANUAL_ADJUSTMENT,
            actor_id=test_actor_id,
        )

        later = selector.query_audit(
            AuditQuery(start_date=datetime(2024, 1, 1, 12, 30, tzinfo=timezone.utc))
        )

        assert len(later.entries) == 1
        assert later.entries[0].physical_after == 2

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"limit": 0},
            {"offset": -1},
            {"operation_type": "teleport"},
            {
                "start_date": datetime(2024, 2, 1, tzinfo=timezone.utc),
                "end_date": datetime(2024, 1, 1, tzinfo=timezone.utc),
            },
        ],
    )
    def test_invalid_query(self, kwargs):
        with pytest.raises(InvalidQueryError):
            AuditQuery(**kwargs)


class TestReturnHistory:
    """Processed returns only."""

    def test_only_returns(self, selector, order_history):
        product_id, _, order = order_history

        result = selector.return_history(product_id=product_id)

        assert len(result.entries) == 1
        entry = result.entries[0]
        assert entry.operation_type == OperationType.RETURN_PROCESSING
        assert entry.related_order_id == order.id
        assert entry.quantity_affected == 2

    def test_other_product_has_none(self, selector, order_history):
        _, other_id, _ = order_history

        assert selector.return_history(product_id=other_id).entries == ()


class TestEntriesForProduct:
    def test_oldest_first(self, selector, order_history):
        product_id, _, _ = order_history

        entries = selector.entries_for_product(product_id)

        assert entries[0].operation_type == OperationType.MANUAL_ADJUSTMENT
        assert entries[-1].physical_after == 8
