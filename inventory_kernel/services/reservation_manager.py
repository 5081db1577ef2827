"""
ReservationManager -- order-scoped reserve / release / fulfill.

Responsibility:
    Drives an order's stock through the reservation state machine:

        unreserved --reserve--> reserved --fulfill (last line)--> fulfilled
             ^                      |
             +-------release--------+

    All stock changes go through StockLedger, one mutation (and so one audit
    entry) per order line.

Architecture position:
    Kernel > Services.  Owns OrderItem.reserved_quantity, the order's
    reservation/fulfillment status columns, OrderFulfillmentRecord rows and
    OrderStatusHistory rows.

Invariants enforced:
    - All-or-nothing reservation: every line is checked first and ALL failing
      products are reported; the per-line updates then run inside one
      SAVEPOINT, so a failure (including one caused by a concurrent
      reservation landing between check and update) leaves no line reserved.
    - Release never touches physical stock and is idempotent.
    - Fulfilling q units of a reserved line lowers physical and reserved by q.
    - 0 <= reserved_quantity <= quantity - fulfilled_quantity for each line.

Failure modes:
    - OrderNotFoundError, OrderItemNotFoundError.
    - InvalidStateError: order status does not allow the operation.
    - InsufficientStockError: reservation (or fulfillment of unreserved
      units) exceeds available stock.
    - ValidationError: bad quantity or method, or over-fulfillment.
"""

from collections import OrderedDict
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import (
    FulfillmentResult,
    ReleaseResult,
    ReservationLine,
    ReservationResult,
)
from inventory_kernel.exceptions import (
    InsufficientStockError,
    InvalidMutationError,
    InvalidStateError,
    OrderItemNotFoundError,
    OrderNotFoundError,
    ShortLine,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.audit_log import OperationType
from inventory_kernel.models.fulfillment import FulfillmentMethod, OrderFulfillmentRecord
from inventory_kernel.models.order import (
    FulfillmentStatus,
    Order,
    OrderItem,
    OrderStatus,
    OrderStatusHistory,
    ReservationState,
)
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.stock_ledger import StockLedger

logger = get_logger("services.reservation")

DEFAULT_RESERVABLE_STATUSES = frozenset({OrderStatus.PENDING.value, OrderStatus.PROCESSING.value})
DEFAULT_FULFILLABLE_STATUSES = frozenset({OrderStatus.PROCESSING.value, OrderStatus.SHIPPED.value})


class ReservationManager(BaseService):
    """
    Reservation state machine for orders.

    Contract:
        ``reserve()`` holds stock for every outstanding unit of an order or
        raises without holding any.  ``release()`` gives held stock back.
        ``fulfill()`` ships units of one line.

    Non-goals:
        - Does NOT change the order's commercial status (pending, shipped...);
          that belongs to the order lifecycle.
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ledger: StockLedger | None = None,
        reservable_statuses: frozenset[str] = DEFAULT_RESERVABLE_STATUSES,
        fulfillable_statuses: frozenset[str] = DEFAULT_FULFILLABLE_STATUSES,
    ):
        super().__init__(session, clock)
        self._ledger = ledger or StockLedger(session, self._clock)
        self._reservable_statuses = frozenset(reservable_statuses)
        self._fulfillable_statuses = frozenset(fulfillable_statuses)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load_order(self, order_id: UUID) -> Order:
        order = self.session.execute(
            select(Order)
            .where(Order.id == order_id)
            .options(selectinload(Order.items))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    def _fulfillment_records(self, order_id: UUID) -> dict[UUID, OrderFulfillmentRecord]:
        records = self.session.execute(
            select(OrderFulfillmentRecord)
            .where(OrderFulfillmentRecord.order_id == order_id)
            .execution_options(populate_existing=True)
        ).scalars().all()
        return {r.order_item_id: r for r in records}

    def _record_history(self, order: Order, reason: str, actor_id: UUID) -> None:
        self.session.add(
            OrderStatusHistory(
                order_id=order.id,
                status=order.status,
                reservation_state=order.reservation_state,
                fulfillment_status=order.fulfillment_status,
                change_reason=reason,
                changed_by_id=actor_id,
                changed_at=self._clock.now(),
            )
        )

    # ------------------------------------------------------------------
    # Reserve
    # ------------------------------------------------------------------

    def reserve(self, order_id: UUID, actor_id: UUID) -> ReservationResult:
        """
        Reserve stock for every outstanding unit of an order.

        Postconditions:
            - On success each line's reserved_quantity covers its unfulfilled
              units, one ``reservation`` audit entry exists per line that
              needed stock, and the order is ``reserved``.
            - On failure nothing is reserved.
        """
        order = self._load_order(order_id)

        if order.reservation_state == ReservationState.RESERVED.value:
            logger.info("reservation_already_held", extra={"order_id": str(order_id)})
            return ReservationResult(
                order_id=order.id,
                reservation_state=order.reservation_state,
                lines=tuple(
                    ReservationLine(product_id=item.product_id, quantity=item.reserved_quantity)
                    for item in order.items
                    if item.reserved_quantity > 0
                ),
                already_reserved=True,
            )
        if order.reservation_state == ReservationState.FULFILLED.value:
            raise InvalidStateError("Order", str(order_id), order.reservation_state, "reserve")
        if order.status not in self._reservable_statuses:
            raise InvalidStateError("Order", str(order_id), order.status, "reserve")
        if not order.items:
            raise ValidationError(f"Order {order_id} has no items to reserve")

        fulfilled = self._fulfillment_records(order.id)
        needs: list[tuple[OrderItem, int]] = []
        for item in order.items:
            record = fulfilled.get(item.id)
            outstanding = item.quantity - (record.fulfilled_quantity if record else 0)
            need = outstanding - item.reserved_quantity
            if need > 0:
                needs.append((item, need))

        shortfalls = self._shortfalls(needs)
        if shortfalls:
            self._fail_reservation(order, shortfalls)

        savepoint = self.session.begin_nested()
        lines: list[ReservationLine] = []
        try:
            for item, need in needs:
                result = self._ledger.reserve_available(
                    item.product_id,
                    need,
                    actor_id=actor_id,
                    related_order_id=order.id,
                    notes=f"Reserved for order line {item.line_number}",
                )
                item.reserved_quantity += need
                lines.append(
                    ReservationLine(
                        product_id=item.product_id,
                        quantity=need,
                        audit_entry_id=result.audit_entry_id,
                    )
                )
            order.reservation_state = ReservationState.RESERVED.value
            order.updated_by_id = actor_id
            self._record_history(order, "Inventory reserved", actor_id)
            self.session.flush()
            savepoint.commit()
        except InsufficientStockError:
            savepoint.rollback()
            # Lost a race after the pre-check; report the full picture again
            self.session.expire_all()
            order = self._load_order(order_id)
            self._fail_reservation(order, self._shortfalls(needs) or None)
            raise

        logger.info(
            "order_reserved",
            extra={"order_id": str(order.id), "line_count": len(lines)},
        )
        return ReservationResult(
            order_id=order.id,
            reservation_state=order.reservation_state,
            lines=tuple(lines),
        )

    def _shortfalls(self, needs: list[tuple[OrderItem, int]]) -> list[ShortLine]:
        demand: OrderedDict[UUID, int] = OrderedDict()
        for item, need in needs:
            demand[item.product_id] = demand.get(item.product_id, 0) + need

        short: list[ShortLine] = []
        for product_id, requested in demand.items():
            record = self._ledger.find(product_id)
            if record is not None:
                self.session.refresh(record)
            available = record.available_stock if record is not None else 0
            if available < requested:
                short.append(ShortLine(str(product_id), requested, available))
        return short

    def _fail_reservation(self, order: Order, shortfalls: list[ShortLine] | None) -> None:
        if not shortfalls:
            return
        logger.warning(
            "reservation_failed",
            extra={
                "order_id": str(order.id),
                "short_products": [s.product_id for s in shortfalls],
            },
        )
        raise InsufficientStockError(shortfalls, order_id=str(order.id))

    # ------------------------------------------------------------------
    # Release
    # ------------------------------------------------------------------

    def release(self, order_id: UUID, actor_id: UUID) -> ReleaseResult:
        """
        Give back every unit the order still holds.

        Idempotent: an order holding nothing is a successful no-op.
        """
        order = self._load_order(order_id)
        held = [item for item in order.items if item.reserved_quantity > 0]

        if not held:
            if order.reservation_state == ReservationState.RESERVED.value:
                order.reservation_state = ReservationState.UNRESERVED.value
                self.session.flush()
            logger.info("release_no_op", extra={"order_id": str(order.id)})
            return ReleaseResult(order_id=order.id, reservation_state=order.reservation_state, released=())

        savepoint = self.session.begin_nested()
        released: list[ReservationLine] = []
        try:
            for item in held:
                quantity = item.reserved_quantity
                result = self._ledger.mutate(
                    item.product_id,
                    reserved_delta=-quantity,
                    operation_type=OperationType.RELEASE,
                    actor_id=actor_id,
                    quantity_affected=quantity,
                    related_order_id=order.id,
                    notes=f"Released from order line {item.line_number}",
                )
                item.reserved_quantity = 0
                released.append(
                    ReservationLine(
                        product_id=item.product_id,
                        quantity=quantity,
                        audit_entry_id=result.audit_entry_id,
                    )
                )
            order.reservation_state = ReservationState.UNRESERVED.value
            order.updated_by_id = actor_id
            self._record_history(order, "Inventory reservations released", actor_id)
            self.session.flush()
            savepoint.commit()
        except Exception:
            savepoint.rollback()
            raise

        logger.info(
            "order_released",
            extra={"order_id": str(order.id), "line_count": len(released)},
        )
        return ReleaseResult(
            order_id=order.id,
            reservation_state=order.reservation_state,
            released=tuple(released),
        )

    # ------------------------------------------------------------------
    # Fulfill
    # ------------------------------------------------------------------

    def fulfill(
        self,
        order_id: UUID,
        order_item_id: UUID,
        quantity: int,
        actor_id: UUID,
        method: str = FulfillmentMethod.MANUAL.value,
        notes: str | None = None,
    ) -> FulfillmentResult:
        """
        Ship ``quantity`` units of one order line.

        Reserved units are consumed first; any remainder must be available
        stock.  When every line is complete the order becomes fulfilled.
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError("Fulfilled quantity must be an integer >= 1", field="quantity")
        try:
            method = FulfillmentMethod(method).value
        except ValueError:
            raise ValidationError(
                "Fulfillment method must be 'manual' or 'automated'", field="method"
            ) from None

        order = self._load_order(order_id)
        if order.status not in self._fulfillable_statuses:
            raise InvalidStateError("Order", str(order_id), order.status, "fulfill")

        item = next((i for i in order.items if i.id == order_item_id), None)
        if item is None:
            raise OrderItemNotFoundError(str(order_id), str(order_item_id))

        records = self._fulfillment_records(order.id)
        record = records.get(item.id)
        remaining = record.remaining_quantity if record is not None else item.quantity
        if quantity > remaining:
            raise ValidationError(
                f"Cannot fulfill {quantity}; only {remaining} remaining on line",
                field="quantity",
            )

        from_reserved = min(quantity, item.reserved_quantity)
        try:
            result = self._ledger.mutate(
                item.product_id,
                physical_delta=-quantity,
                reserved_delta=-from_reserved,
                operation_type=OperationType.FULFILLMENT,
                actor_id=actor_id,
                quantity_affected=quantity,
                related_order_id=order.id,
                notes=notes,
            )
        except InvalidMutationError as exc:
            raise InsufficientStockError(
                [
                    ShortLine(
                        str(item.product_id),
                        quantity - from_reserved,
                        max(0, exc.physical_stock - exc.reserved_stock),
                    )
                ],
                order_id=str(order.id),
            ) from exc

        if record is None:
            record = OrderFulfillmentRecord(
                order_id=order.id,
                order_item_id=item.id,
                product_id=item.product_id,
                ordered_quantity=item.quantity,
                fulfilled_quantity=0,
                returned_quantity=0,
            )
            self.session.add(record)
            records[item.id] = record

        now = self._clock.now()
        item.reserved_quantity -= from_reserved
        record.fulfilled_quantity += quantity
        record.last_method = method
        record.last_fulfilled_at = now
        record.last_fulfilled_by_id = actor_id

        fully_fulfilled = all(
            (records.get(i.id) is not None and records[i.id].fulfilled_quantity >= i.quantity)
            for i in order.items
        )
        order.updated_by_id = actor_id
        if fully_fulfilled:
            order.fulfillment_status = FulfillmentStatus.FULFILLED.value
            order.reservation_state = ReservationState.FULFILLED.value
            order.fulfilled_at = now
            self._record_history(order, "Order fully fulfilled", actor_id)
        else:
            order.fulfillment_status = FulfillmentStatus.PARTIALLY_FULFILLED.value
        self.session.flush()

        logger.info(
            "order_item_fulfilled",
            extra={
                "order_id": str(order.id),
                "order_item_id": str(item.id),
                "quantity": quantity,
                "from_reserved": from_reserved,
                "method": method,
                "order_fully_fulfilled": fully_fulfilled,
            },
        )
        return FulfillmentResult(
            order_id=order.id,
            order_item_id=item.id,
            product_id=item.product_id,
            quantity=quantity,
            line_fulfilled_quantity=record.fulfilled_quantity,
            line_status=record.line_status.value,
            order_fulfillment_status=order.fulfillment_status,
            order_fully_fulfilled=fully_fulfilled,
            physical_after=result.after.physical,
            reserved_after=result.after.reserved,
            audit_entry_id=result.audit_entry_id,
        )
