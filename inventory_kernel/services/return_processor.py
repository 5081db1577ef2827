"""
ReturnProcessor -- puts returned units back on the shelf.

Responsibility:
    Reverses part of a prior fulfillment against physical stock only.
    Reserved stock is never touched: returned goods are not held for anyone.

Invariants enforced:
    - A return needs a prior fulfillment of the same product on the order.
    - Total returned never exceeds total fulfilled for the (order, product)
      pair; returned_quantity on the fulfillment records carries the count.

Failure modes:
    - OrderNotFoundError, FulfillmentNotFoundError.
    - ValidationError: non-positive quantity or over-return.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import ReturnResult
from inventory_kernel.exceptions import (
    FulfillmentNotFoundError,
    OrderNotFoundError,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.audit_log import OperationType
from inventory_kernel.models.fulfillment import OrderFulfillmentRecord
from inventory_kernel.models.order import Order
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.stock_ledger import StockLedger

logger = get_logger("services.returns")

DEFAULT_RETURN_REASON = "Customer return"


class ReturnProcessor(BaseService):
    """Applies customer returns to physical stock."""

    def __init__(self, session: Session, clock: Clock | None = None, ledger: StockLedger | None = None):
        super().__init__(session, clock)
        self._ledger = ledger or StockLedger(session, self._clock)

    def process_return(
        self,
        product_id: UUID,
        order_id: UUID,
        quantity: int,
        actor_id: UUID,
        reason: str | None = None,
    ) -> ReturnResult:
        """
        Return ``quantity`` units of a fulfilled product to physical stock.

        Postconditions:
            - physical' = physical + quantity; reserved unchanged.
            - One ``return_processing`` audit entry linked to the order.
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError("Return quantity must be a positive integer", field="quantity")
        reason = (reason or "").strip() or DEFAULT_RETURN_REASON

        if self.session.get(Order, order_id) is None:
            raise OrderNotFoundError(str(order_id))

        records = self.session.execute(
            select(OrderFulfillmentRecord)
            .where(OrderFulfillmentRecord.order_id == order_id)
            .where(OrderFulfillmentRecord.product_id == product_id)
            .where(OrderFulfillmentRecord.fulfilled_quantity > 0)
            .order_by(OrderFulfillmentRecord.last_fulfilled_at, OrderFulfillmentRecord.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()
        if not records:
            raise FulfillmentNotFoundError(str(order_id), str(product_id))

        returnable = sum(r.returnable_quantity for r in records)
        if quantity > returnable:
            raise ValidationError(
                f"Cannot return {quantity}; only {returnable} fulfilled units not yet returned",
                field="quantity",
            )

        result = self._ledger.mutate(
            product_id,
            physical_delta=quantity,
            operation_type=OperationType.RETURN_PROCESSING,
            actor_id=actor_id,
            quantity_affected=quantity,
            related_order_id=order_id,
            notes=reason,
        )

        remaining = quantity
        for record in records:
            take = min(remaining, record.returnable_quantity)
            record.returned_quantity += take
            remaining -= take
            if remaining == 0:
                break
        self.session.flush()

        logger.info(
            "return_processed",
            extra={
                "order_id": str(order_id),
                "product_id": str(product_id),
                "quantity": quantity,
                "physical_after": result.after.physical,
            },
        )
        return ReturnResult(
            product_id=product_id,
            order_id=order_id,
            quantity=quantity,
            reason=reason,
            physical_after=result.after.physical,
            available_after=result.after.available,
            audit_entry_id=result.audit_entry_id,
        )
