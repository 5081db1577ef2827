"""
inventory_services.inventory_service -- transport-agnostic operation surface.

Responsibility:
    One method per public inventory operation.  Each call opens its own
    session and transaction (``session_scope``), wires the kernel services
    for that session, runs the operation, and commits on success or rolls
    back on failure.  Stock-affecting calls re-check reorder alerts for the
    products they touched inside the same transaction.

Architecture position:
    Services -- above ``inventory_kernel`` and ``inventory_config``.  This is
    the only layer that owns commits and the only place configuration
    policies are handed to kernel services.

Invariants enforced:
    - Every mutating call names an actor (ActorRequiredError otherwise).
    - One unit of work per call; no lock is held between calls.
    - Kernel errors propagate unchanged; unexpected database errors surface
      as InternalError.

Usage:
    service = create_inventory_service()
    service.reserve_order(order_id, actor_id=staff_id)
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from inventory_config import InventoryConfig, get_active_config
from inventory_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from inventory_kernel.db.immutability import register_immutability_listeners
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    AdjustmentView,
    AlertListResult,
    AlertQuery,
    AlertView,
    AuditEntryView,
    AuditQuery,
    AuditQueryResult,
    BulkResult,
    FulfillmentResult,
    InventoryStats,
    LowStockReport,
    MovementQuery,
    MovementSummaryRow,
    MovementView,
    Pagination,
    ReleaseResult,
    ReservationResult,
    ReturnResult,
    StockRecordChanges,
    StockSnapshot,
    SyncResult,
)
from inventory_kernel.exceptions import (
    ActorRequiredError,
    InternalError,
    InvalidQueryError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.models.fulfillment import FulfillmentMethod
from inventory_kernel.selectors import AlertSelector, AuditSelector, MovementSelector, StockSelector
from inventory_kernel.services import (
    AdjustmentService,
    AuditLogger,
    BulkOperationCoordinator,
    MovementRecorder,
    RecordedMovement,
    ReorderAlertService,
    ReservationManager,
    ReturnProcessor,
    StockLedger,
    SyncReconciler,
)

logger = get_logger("services.inventory")


class _Kernel:
    """Kernel services wired to one session; built once per unit of work."""

    def __init__(self, session: Session, clock: Clock, config: InventoryConfig):
        self.session = session
        self.ledger = StockLedger(session, clock)
        self.audit = AuditLogger(session, clock)
        self.reservations = ReservationManager(
            session,
            clock,
            self.ledger,
            reservable_statuses=frozenset(config.orders.reservable_statuses),
            fulfillable_statuses=frozenset(config.orders.fulfillable_statuses),
        )
        self.returns = ReturnProcessor(session, clock, self.ledger)
        self.movements = MovementRecorder(session, clock, self.ledger)
        self.bulk = BulkOperationCoordinator(session, clock, self.ledger, max_items=config.bulk.max_items)
        self.sync = SyncReconciler(session, clock, self.ledger)
        self.adjustments = AdjustmentService(session, clock, self.ledger)
        self.alerts = ReorderAlertService(
            session,
            clock,
            default_threshold=config.stock.default_low_stock_threshold,
            buffer_percentage=config.stock.reorder_buffer_percentage,
        )
        self.stock_selector = StockSelector(session, default_threshold=config.stock.default_low_stock_threshold)
        self.audit_selector = AuditSelector(session)
        self.movement_selector = MovementSelector(session)
        self.alert_selector = AlertSelector(session)

    def check_reorder(self, product_ids) -> None:
        for product_id in dict.fromkeys(product_ids):
            self.alerts.check_product(product_id)


def _require_actor(operation: str, actor_id: Any) -> UUID:
    if actor_id is None or actor_id == "":
        raise ActorRequiredError(operation)
    if isinstance(actor_id, UUID):
        return actor_id
    try:
        return UUID(str(actor_id))
    except ValueError:
        raise ActorRequiredError(operation) from None


class InventoryService:
    """
    Public entry point for inventory operations.

    Contract:
        Receives a session factory and an InventoryConfig.  Every public
        method is one atomic unit of work.

    Non-goals:
        - Does NOT retry conflicts; OptimisticLockError reaches the caller.
        - Does NOT authenticate actors; it only requires one.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: InventoryConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()

    @property
    def config(self) -> InventoryConfig:
        return self._config

    @contextmanager
    def _unit_of_work(self, operation: str, actor_id: UUID | None = None, **context: Any) -> Iterator[_Kernel]:
        correlation_id = LogContext.get_all().get("correlation_id") or str(uuid4())
        with LogContext.bind(
            correlation_id=correlation_id,
            operation=operation,
            actor_id=actor_id,
            **context,
        ):
            try:
                with session_scope(self._session_factory) as session:
                    yield _Kernel(session, self._clock, self._config)
            except SQLAlchemyError as exc:
                logger.error("operation_failed", extra={"error_type": type(exc).__name__})
                raise InternalError(operation, str(exc)) from exc

    def _page_limit(self, limit: int | None) -> int:
        if limit is None:
            return self._config.audit.default_page_size
        if isinstance(limit, int) and not isinstance(limit, bool) and limit > self._config.audit.max_page_size:
            raise InvalidQueryError(
                f"limit must be <= {self._config.audit.max_page_size}", field="limit"
            )
        return limit

    # ------------------------------------------------------------------
    # Order reservation and fulfillment
    # ------------------------------------------------------------------

    def reserve_order(self, order_id: UUID, actor_id: UUID) -> ReservationResult:
        """Hold stock for every line of an order, all or nothing."""
        actor_id = _require_actor("reserve_order", actor_id)
        with self._unit_of_work("reserve_order", actor_id, order_id=order_id) as kernel:
            result = kernel.reservations.reserve(order_id, actor_id)
            kernel.check_reorder(line.product_id for line in result.lines)
            return result

    def release_order(self, order_id: UUID, actor_id: UUID) -> ReleaseResult:
        actor_id = _require_actor("release_order", actor_id)
        with self._unit_of_work("release_order", actor_id, order_id=order_id) as kernel:
            result = kernel.reservations.release(order_id, actor_id)
            kernel.check_reorder(line.product_id for line in result.released)
            return result

    def fulfill_item(
        self,
        order_id: UUID,
        order_item_id: UUID,
        quantity: int,
        actor_id: UUID,
        method: str = FulfillmentMethod.MANUAL.value,
        notes: str | None = None,
    ) -> FulfillmentResult:
        actor_id = _require_actor("fulfill_item", actor_id)
        with self._unit_of_work("fulfill_item", actor_id, order_id=order_id) as kernel:
            result = kernel.reservations.fulfill(
                order_id, order_item_id, quantity, actor_id, method=method, notes=notes
            )
            kernel.check_reorder([result.product_id])
            return result

    def process_return(
        self,
        product_id: UUID,
        order_id: UUID,
        quantity: int,
        actor_id: UUID,
        reason: str | None = None,
    ) -> ReturnResult:
        actor_id = _require_actor("process_return", actor_id)
        with self._unit_of_work(
            "process_return", actor_id, order_id=order_id, product_id=product_id
        ) as kernel:
            result = kernel.returns.process_return(product_id, order_id, quantity, actor_id, reason)
            kernel.check_reorder([product_id])
            return result

    # ------------------------------------------------------------------
    # Bulk, import, sync
    # ------------------------------------------------------------------

    def bulk_update(
        self,
        item_ids: Sequence[UUID | str],
        changes: StockRecordChanges | Mapping[str, Any],
        actor_id: UUID,
    ) -> BulkResult:
        actor_id = _require_actor("bulk_update", actor_id)
        with self._unit_of_work("bulk_update", actor_id, batch_id=uuid4()) as kernel:
            result = kernel.bulk.bulk_update(item_ids, changes, actor_id)
            kernel.alerts.check_all()
            return result

    def import_records(
        self,
        records: Sequence[Mapping[str, Any]],
        update_existing: bool,
        actor_id: UUID,
    ) -> BulkResult:
        actor_id = _require_actor("import_records", actor_id)
        with self._unit_of_work("import_records", actor_id, batch_id=uuid4()) as kernel:
            result = kernel.bulk.import_records(records, update_existing, actor_id)
            kernel.alerts.check_all()
            return result

    def sync_with_catalog(self, actor_id: UUID) -> SyncResult:
        actor_id = _require_actor("sync_with_catalog", actor_id)
        with self._unit_of_work("sync_with_catalog", actor_id, batch_id=uuid4()) as kernel:
            result = kernel.sync.sync_with_catalog(actor_id)
            kernel.alerts.check_all()
            return result

    # ------------------------------------------------------------------
    # Stock records
    # ------------------------------------------------------------------

    def get_stock(self, product_id: UUID) -> StockSnapshot:
        with self._unit_of_work("get_stock", product_id=product_id) as kernel:
            return kernel.stock_selector.get_stock(product_id)

    def list_stock(self, status: str | None = None, limit: int | None = None, offset: int = 0) -> list[StockSnapshot]:
        limit = self._page_limit(limit)
        with self._unit_of_work("list_stock") as kernel:
            return kernel.stock_selector.list_stock(status=status, limit=limit, offset=offset)

    def create_stock_record(
        self,
        product_id: UUID,
        actor_id: UUID,
        physical_stock: int = 0,
        **attributes: Any,
    ) -> StockSnapshot:
        """Create a product's stock record; attributes are validated like a bulk edit."""
        actor_id = _require_actor("create_stock_record", actor_id)
        changes = StockRecordChanges.from_mapping({**attributes, "physical_stock": physical_stock})
        with self._unit_of_work("create_stock_record", actor_id, product_id=product_id) as kernel:
            result = kernel.ledger.create(
                product_id,
                actor_id=actor_id,
                physical_stock=changes.physical_stock,
                **changes.attribute_changes(),
            )
            kernel.check_reorder([product_id])
            return result.record

    def delete_stock_record(
        self,
        product_id: UUID,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> AuditEntryView:
        actor_id = _require_actor("delete_stock_record", actor_id)
        with self._unit_of_work("delete_stock_record", actor_id, product_id=product_id) as kernel:
            entry = kernel.ledger.delete(product_id, actor_id=actor_id, expected_version=expected_version)
            return AuditEntryView.from_model(entry)

    # ------------------------------------------------------------------
    # Movements and adjustments
    # ------------------------------------------------------------------

    def record_movement(
        self,
        inventory_id: UUID,
        movement_type: str,
        quantity_delta: int,
        actor_id: UUID,
        notes: str | None = None,
        reference: str | None = None,
    ) -> RecordedMovement:
        actor_id = _require_actor("record_movement", actor_id)
        with self._unit_of_work("record_movement", actor_id) as kernel:
            result = kernel.movements.record_movement(
                inventory_id, movement_type, quantity_delta, actor_id, notes=notes, reference=reference
            )
            kernel.check_reorder([result.record.product_id])
            return result

    def adjust_stock(
        self,
        product_id: UUID,
        adjustment_type: str,
        quantity: int,
        actor_id: UUID,
        notes: str | None = None,
        expected_version: int | None = None,
    ) -> RecordedMovement:
        actor_id = _require_actor("adjust_stock", actor_id)
        with self._unit_of_work("adjust_stock", actor_id, product_id=product_id) as kernel:
            result = kernel.movements.adjust(
                product_id, adjustment_type, quantity, actor_id, notes=notes, expected_version=expected_version
            )
            kernel.check_reorder([product_id])
            return result

    def list_movements(self, query: MovementQuery | None = None) -> tuple[list[MovementView], Pagination]:
        query = query or MovementQuery(limit=self._config.audit.default_page_size)
        self._page_limit(query.limit)
        with self._unit_of_work("list_movements") as kernel:
            return kernel.movement_selector.list_movements(query)

    def movement_summary(self, query: MovementQuery | None = None) -> list[MovementSummaryRow]:
        with self._unit_of_work("movement_summary") as kernel:
            return kernel.movement_selector.movement_summary(query or MovementQuery())

    def request_adjustment(
        self,
        product_id: UUID,
        adjustment_type: str,
        reason_code: str,
        quantity: int,
        actor_id: UUID,
        description: str | None = None,
    ) -> AdjustmentView:
        actor_id = _require_actor("request_adjustment", actor_id)
        with self._unit_of_work("request_adjustment", actor_id, product_id=product_id) as kernel:
            return kernel.adjustments.request_adjustment(
                product_id, adjustment_type, reason_code, quantity, actor_id, description
            )

    def review_adjustment(
        self,
        adjustment_id: UUID,
        approve: bool,
        actor_id: UUID,
        notes: str | None = None,
    ) -> AdjustmentView:
        actor_id = _require_actor("review_adjustment", actor_id)
        with self._unit_of_work("review_adjustment", actor_id) as kernel:
            view = kernel.adjustments.review_adjustment(adjustment_id, approve, actor_id, notes)
            kernel.check_reorder([view.product_id])
            return view

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def list_alerts(self, query: AlertQuery | None = None) -> AlertListResult:
        query = query or AlertQuery(limit=self._config.audit.default_page_size)
        self._page_limit(query.limit)
        with self._unit_of_work("list_alerts") as kernel:
            return kernel.alert_selector.list_alerts(query)

    def update_alert(
        self,
        alert_id: UUID,
        status: str,
        actor_id: UUID,
        notes: str | None = None,
    ) -> AlertView:
        actor_id = _require_actor("update_alert", actor_id)
        with self._unit_of_work("update_alert", actor_id) as kernel:
            return kernel.alerts.update_alert(alert_id, status, actor_id, notes)

    def check_reorder(self, product_id: UUID | None = None) -> list[AlertView]:
        """Re-evaluate alerts for one product, or for every active record."""
        with self._unit_of_work("check_reorder", product_id=product_id) as kernel:
            if product_id is None:
                return kernel.alerts.check_all()
            alert = kernel.alerts.check_product(product_id)
            return [alert] if alert is not None else []

    # ------------------------------------------------------------------
    # Reports and audit
    # ------------------------------------------------------------------

    def low_stock_items(self) -> LowStockReport:
        with self._unit_of_work("low_stock_items") as kernel:
            return kernel.stock_selector.low_stock_items()

    def stats(self) -> InventoryStats:
        with self._unit_of_work("stats") as kernel:
            return kernel.stock_selector.stats()

    def query_audit(self, query: AuditQuery | None = None) -> AuditQueryResult:
        query = query or AuditQuery(limit=self._config.audit.default_page_size)
        self._page_limit(query.limit)
        with self._unit_of_work("query_audit") as kernel:
            return kernel.audit_selector.query_audit(query)

    def return_history(
        self,
        product_id: UUID | None = None,
        order_id: UUID | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> AuditQueryResult:
        limit = self._page_limit(limit)
        with self._unit_of_work("return_history") as kernel:
            return kernel.audit_selector.return_history(product_id, order_id, limit=limit, offset=offset)

    def validate_audit_chain(self) -> bool:
        with self._unit_of_work("validate_audit_chain") as kernel:
            return kernel.audit.validate_chain()


def create_inventory_service(
    config: InventoryConfig | None = None,
    clock: Clock | None = None,
    create_schema: bool = True,
) -> InventoryService:
    """
    Initialise the engine from ``config.database`` and build the service.

    Registers the append-only listeners and, when ``create_schema`` is set,
    creates any missing tables.
    """
    config = config or get_active_config()
    database = config.database
    init_engine_from_url(
        database.url,
        echo=database.echo,
        pool_size=database.pool_size,
        max_overflow=database.max_overflow,
        pool_timeout=database.pool_timeout,
        pool_recycle=database.pool_recycle,
        busy_timeout=database.busy_timeout,
    )
    register_immutability_listeners()
    if create_schema:
        create_tables()
    return InventoryService(get_session_factory(), config=config, clock=clock)
