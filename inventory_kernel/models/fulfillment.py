"""
Module: inventory_kernel.models.fulfillment
Responsibility: Per-line fulfillment progress (how much of an order line has
    shipped, and how much of that came back as a return).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - 0 <= fulfilled_quantity <= ordered_quantity.
    - 0 <= returned_quantity <= fulfilled_quantity (the return ceiling).
    - At most one record per order line.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UUIDString
from inventory_kernel.models.order import FulfillmentStatus


class FulfillmentMethod(str, Enum):
    """How a line was fulfilled."""

    MANUAL = "manual"
    AUTOMATED = "automated"


class OrderFulfillmentRecord(Base):
    """Fulfillment and return counters for one order line."""

    __tablename__ = "order_fulfillments"

    __table_args__ = (
        CheckConstraint(
            "fulfilled_quantity >= 0 AND fulfilled_quantity <= ordered_quantity",
            name="ck_fulfillment_within_ordered",
        ),
        CheckConstraint(
            "returned_quantity >= 0 AND returned_quantity <= fulfilled_quantity",
            name="ck_fulfillment_return_ceiling",
        ),
        Index("idx_fulfillment_order_product", "order_id", "product_id"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("orders.id"), nullable=False
    )

    order_item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("order_items.id"), nullable=False, unique=True
    )

    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    ordered_quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    fulfilled_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    returned_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    last_method: Mapped[str | None] = mapped_column(String(20), nullable=True)

    last_fulfilled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    last_fulfilled_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    @property
    def remaining_quantity(self) -> int:
        return self.ordered_quantity - self.fulfilled_quantity

    @property
    def returnable_quantity(self) -> int:
        return self.fulfilled_quantity - self.returned_quantity

    @property
    def line_status(self) -> FulfillmentStatus:
        if self.fulfilled_quantity >= self.ordered_quantity:
            return FulfillmentStatus.FULFILLED
        if self.fulfilled_quantity > 0:
            return FulfillmentStatus.PARTIALLY_FULFILLED
        return FulfillmentStatus.UNFULFILLED
