"""Tests for the structured logging system (inventory_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from inventory_kernel.exceptions import InsufficientStockError, ShortLine, StockRecordExistsError
from inventory_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite's configuration."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)

        get_logger("ledger").info("stock_mutated")

        record = _parse_all_logs(stream)[0]
        assert record["message"] == "stock_mutated"
        assert record["level"] == "INFO"
        assert record["logger"] == "inventory_kernel.ledger"
        assert record["ts"].endswith("+00:00")

    def test_extra_fields_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        product_id = uuid4()

        get_logger("ledger").info(
            "stock_mutated",
            extra={"product_id": product_id, "unit_cost": Decimal("2.50"), "physical_after": 7},
        )

        record = _parse_all_logs(stream)[0]
        assert record["product_id"] == str(product_id)
        assert record["unit_cost"] == "2.50"
        assert record["physical_after"] == 7

    def test_context_fields_win_over_extras(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)

        with LogContext.bind(operation="reserve_order"):
            get_logger("reservations").info("order_reserved", extra={"operation": "shadowed"})

        assert _parse_all_logs(stream)[0]["operation"] == "reserve_order"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)

        try:
            raise StockRecordExistsError("p-1")
        except StockRecordExistsError:
            get_logger("ledger").exception("create_failed")

        record = _parse_all_logs(stream)[0]
        assert record["exc_type"] == "StockRecordExistsError"
        assert record["exc_code"] == "STOCK_RECORD_EXISTS"
        assert record["exc_product_id"] == "p-1"
        assert "Traceback" in record["traceback"]

    def test_exception_with_structured_lines(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)

        try:
            raise InsufficientStockError([ShortLine("p-1", 5, 2)], order_id="o-1")
        except InsufficientStockError:
            get_logger("reservations").warning("reservation_rejected", exc_info=True)

        record = _parse_all_logs(stream)[0]
        assert record["exc_lines"] == [{"product_id": "p-1", "requested": 5, "available": 2}]
        assert record["exc_order_id"] == "o-1"


class TestLogContext:
    def test_bind_restores_previous_values(self):
        LogContext.set(actor_id="admin")

        with LogContext.bind(actor_id="worker", order_id=uuid4()):
            assert LogContext.get_all()["actor_id"] == "worker"
            assert "order_id" in LogContext.get_all()

        assert LogContext.get_all() == {"actor_id": "admin"}

    def test_set_ignores_none(self):
        LogContext.set(correlation_id="c-1")
        LogContext.set(correlation_id=None, batch_id="b-1")

        assert LogContext.get_all() == {"correlation_id": "c-1", "batch_id": "b-1"}

    def test_unknown_bind_keys_ignored(self):
        with LogContext.bind(colour="red", product_id="p-1"):
            assert LogContext.get_all() == {"product_id": "p-1"}

    def test_clear(self):
        LogContext.set(operation="sync", product_id="p-1")

        LogContext.clear()

        assert LogContext.get_all() == {}

    def test_context_in_every_record(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)

        with LogContext.bind(correlation_id="c-9", batch_id="b-9"):
            logger = get_logger("bulk")
            logger.info("bulk_item_updated")
            logger.info("bulk_completed")

        for record in _parse_all_logs(stream):
            assert (record["correlation_id"], record["batch_id"]) == ("c-9", "b-9")


class TestConfigureLogging:
    def test_idempotent(self):
        first, first_stream = _make_handler()
        second, second_stream = _make_handler()

        configure_logging(handler=first)
        configure_logging(handler=second)
        get_logger("test").info("once")

        assert len(_parse_all_logs(first_stream)) == 1
        assert second_stream.getvalue() == ""

    def test_level_filters(self):
        handler, stream = _make_handler()
        configure_logging(level=logging.WARNING, handler=handler)

        logger = get_logger("test")
        logger.info("quiet")
        logger.warning("loud")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["loud"]

    def test_reset_allows_reconfigure(self):
        first, first_stream = _make_handler()
        configure_logging(handler=first)
        reset_logging()

        second, second_stream = _make_handler()
        configure_logging(handler=second)
        get_logger("test").info("after_reset")

        assert first_stream.getvalue() == ""
        assert _parse_all_logs(second_stream)[0]["message"] == "after_reset"
