"""
Pytest fixtures for the inventory kernel test suite.

Provides:
- A fresh database per test (SQLite file under tmp_path by default)
- Kernel service fixtures sharing one session and a deterministic clock
- Product / stock / order factories
- Captured structured logs

Environment Variables:
- INVENTORY_TEST_DATABASE_URL: run against another database (e.g. PostgreSQL).
  Tables are dropped after every test.
"""

import json
import logging
import os
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from inventory_config import InventoryConfig
from inventory_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from inventory_kernel.db.immutability import register_immutability_listeners
from inventory_kernel.domain.clock import DeterministicClock
from inventory_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from inventory_kernel.models.order import Order, OrderItem, OrderStatus
from inventory_kernel.models.product import Product
from inventory_kernel.services import (
    AdjustmentService,
    AuditLogger,
    BulkOperationCoordinator,
    MovementRecorder,
    ReorderAlertService,
    ReservationManager,
    ReturnProcessor,
    StockLedger,
    SyncReconciler,
)
from inventory_services import InventoryService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture inventory_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.mutate(...)
            logs = captured_logs()
            assert any(r["message"] == "stock_mutated" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("inventory_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    return os.environ.get("INVENTORY_TEST_DATABASE_URL") or f"sqlite:///{tmp_path / 'inventory.db'}"


@pytest.fixture
def engine(database_url):
    """Fresh schema for each test."""
    eng = init_engine_from_url(database_url, busy_timeout=10.0)
    register_immutability_listeners()
    create_tables()
    yield eng
    if eng.dialect.name != "sqlite":
        drop_tables()
    reset_engine()


@pytest.fixture
def session_factory(engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """Session for direct service tests.  Services only flush; nothing is committed."""
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def ledger(session, deterministic_clock) -> StockLedger:
    return StockLedger(session, deterministic_clock)


@pytest.fixture
def audit_logger(session, deterministic_clock) -> AuditLogger:
    return AuditLogger(session, deterministic_clock)


@pytest.fixture
def reservation_manager(session, deterministic_clock, ledger) -> ReservationManager:
    return ReservationManager(session, deterministic_clock, ledger)


@pytest.fixture
def return_processor(session, deterministic_clock, ledger) -> ReturnProcessor:
    return ReturnProcessor(session, deterministic_clock, ledger)


@pytest.fixture
def movement_recorder(session, deterministic_clock, ledger) -> MovementRecorder:
    return MovementRecorder(session, deterministic_clock, ledger)


@pytest.fixture
def bulk_coordinator(session, deterministic_clock, ledger) -> BulkOperationCoordinator:
    return BulkOperationCoordinator(session, deterministic_clock, ledger, max_items=10)


@pytest.fixture
def sync_reconciler(session, deterministic_clock, ledger) -> SyncReconciler:
    return SyncReconciler(session, deterministic_clock, ledger)


@pytest.fixture
def adjustment_service(session, deterministic_clock, ledger) -> AdjustmentService:
    return AdjustmentService(session, deterministic_clock, ledger)


@pytest.fixture
def alert_service(session, deterministic_clock) -> ReorderAlertService:
    return ReorderAlertService(session, deterministic_clock, default_threshold=5, buffer_percentage=20)


@pytest.fixture
def test_config() -> InventoryConfig:
    """Default policies; the database URL is irrelevant because the engine fixture owns it."""
    return InventoryConfig(config_id="test", version=1)


@pytest.fixture
def inventory_service(session_factory, test_config, deterministic_clock) -> InventoryService:
    return InventoryService(session_factory, config=test_config, clock=deterministic_clock)


# =============================================================================
# Data factories
# =============================================================================


@pytest.fixture
def make_product(session, test_actor_id):
    """Factory fixture for catalog products."""
    counter = {"n": 0}

    def _make(
        name: str | None = None,
        price: Decimal = Decimal("25.00"),
        cost: Decimal | None = Decimal("10.00"),
        stock_quantity: int = 0,
        is_active: bool = True,
    ) -> Product:
        counter["n"] += 1
        product = Product(
            name=name or f"Handmade item {counter['n']}",
            sku=f"SKU-{counter['n']:04d}-{uuid4().hex[:6]}",
            price=price,
            cost=cost,
            stock_quantity=stock_quantity,
            is_active=is_active,
            created_by_id=test_actor_id,
        )
        session.add(product)
        session.flush()
        return product

    return _make


@pytest.fixture
def make_stock(make_product, ledger, test_actor_id):
    """Factory fixture: a product plus its stock record; returns the product id."""

    def _make(physical: int = 10, reserved: int = 0, **attributes) -> UUID:
        product = make_product()
        attributes.setdefault("unit_cost", Decimal("10.00"))
        attributes.setdefault("unit_price", Decimal("25.00"))
        ledger.create(product.id, actor_id=test_actor_id, physical_stock=physical, **attributes)
        if reserved:
            ledger.reserve_available(product.id, reserved, actor_id=test_actor_id)
        return product.id

    return _make


@pytest.fixture
def make_order(session, test_actor_id):
    """Factory fixture: an order with ``lines`` of (product_id, quantity)."""

    def _make(lines, status: str = OrderStatus.PROCESSING.value) -> Order:
        order = Order(
            order_number=f"ORD-{uuid4().hex[:10]}",
            status=status,
            created_by_id=test_actor_id,
        )
        for number, (product_id, quantity) in enumerate(lines, start=1):
            order.items.append(
                OrderItem(
                    product_id=product_id,
                    line_number=number,
                    quantity=quantity,
                    unit_price=Decimal("25.00"),
                )
            )
        session.add(order)
        session.flush()
        return order

    return _make
