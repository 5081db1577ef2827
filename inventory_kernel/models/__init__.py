"""ORM models for the inventory kernel."""

from inventory_kernel.models.adjustment import (
    AdjustmentReason,
    AdjustmentType,
    ApprovalStatus,
    StockAdjustment,
)
from inventory_kernel.models.audit_log import AuditLogEntry, OperationType
from inventory_kernel.models.fulfillment import FulfillmentMethod, OrderFulfillmentRecord
from inventory_kernel.models.order import (
    FulfillmentStatus,
    Order,
    OrderItem,
    OrderStatus,
    OrderStatusHistory,
    ReservationState,
)
from inventory_kernel.models.product import Product
from inventory_kernel.models.reorder_alert import AlertStatus, AlertType, ReorderAlert
from inventory_kernel.models.sequence import SequenceCounter
from inventory_kernel.models.stock_movement import MovementType, StockMovement
from inventory_kernel.models.stock_record import StockRecord, StockStatus


def import_all_models() -> None:
    """Ensure every model is registered on Base.metadata.

    Importing this package already does so; the function exists so that
    create_tables() has an explicit call site.
    """


__all__ = [
    "AdjustmentReason",
    "AdjustmentType",
    "AlertStatus",
    "AlertType",
    "ApprovalStatus",
    "AuditLogEntry",
    "FulfillmentMethod",
    "FulfillmentStatus",
    "MovementType",
    "OperationType",
    "Order",
    "OrderFulfillmentRecord",
    "OrderItem",
    "OrderStatus",
    "OrderStatusHistory",
    "Product",
    "ReorderAlert",
    "ReservationState",
    "SequenceCounter",
    "StockAdjustment",
    "StockMovement",
    "StockRecord",
    "StockStatus",
    "import_all_models",
]
