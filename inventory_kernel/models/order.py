"""
Module: inventory_kernel.models.order
Responsibility: Order, order line and order status history rows, the parts
    of the storefront's order model the reservation flow reads and writes.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - 0 <= OrderItem.reserved_quantity <= OrderItem.quantity.
    - OrderStatusHistory is append-only (db/immutability.py).

Audit relevance:
    reservation_state transitions (unreserved -> reserved -> fulfilled, and
    back to unreserved on release) are recorded in OrderStatusHistory.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import Base, TrackedBase, UUIDString


class OrderStatus(str, Enum):
    """Commercial status of an order, owned by the storefront."""

    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class ReservationState(str, Enum):
    """Stock-holding state of an order."""

    UNRESERVED = "unreserved"
    RESERVED = "reserved"
    FULFILLED = "fulfilled"


class FulfillmentStatus(str, Enum):
    """Fulfillment progress of an order or of one line."""

    UNFULFILLED = "unfulfilled"
    PARTIALLY_FULFILLED = "partially_fulfilled"
    FULFILLED = "fulfilled"


class Order(TrackedBase):
    """Customer order header."""

    __tablename__ = "orders"

    __table_args__ = (
        Index("idx_order_status", "status"),
        Index("idx_order_reservation_state", "reservation_state"),
    )

    order_number: Mapped[str | None] = mapped_column(String(50), nullable=True, unique=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=OrderStatus.PENDING.value
    )

    reservation_state: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReservationState.UNRESERVED.value
    )

    fulfillment_status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=FulfillmentStatus.UNFULFILLED.value
    )

    fulfilled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        order_by="OrderItem.line_number",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Order {self.order_number or self.id}: {self.status}/{self.reservation_state}>"


class OrderItem(Base):
    """One order line."""

    __tablename__ = "order_items"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_item_quantity_positive"),
        CheckConstraint(
            "reserved_quantity >= 0 AND reserved_quantity <= quantity",
            name="ck_order_item_reserved_bounds",
        ),
        Index("idx_order_item_order", "order_id"),
        Index("idx_order_item_product", "product_id"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("orders.id"), nullable=False
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Units of this line currently held against the product's stock
    reserved_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    order: Mapped[Order] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<OrderItem {self.product_id} x{self.quantity} reserved={self.reserved_quantity}>"


class OrderStatusHistory(Base):
    """Append-only record of an order's stock-related transitions."""

    __tablename__ = "order_status_history"

    __table_args__ = (
        Index("idx_order_history_order", "order_id"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("orders.id"), nullable=False
    )

    status: Mapped[str] = mapped_column(String(20), nullable=False)

    reservation_state: Mapped[str] = mapped_column(String(20), nullable=False)

    fulfillment_status: Mapped[str] = mapped_column(String(30), nullable=False)

    change_reason: Mapped[str] = mapped_column(Text, nullable=False)

    changed_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    changed_at: Mapped[datetime] = mapped_column(nullable=False)
