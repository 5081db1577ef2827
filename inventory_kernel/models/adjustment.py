"""
Module: inventory_kernel.models.adjustment
Responsibility: Stock adjustment requests awaiting admin review.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - approval_status moves pending -> approved | rejected exactly once.
    - expected_version is the stock record version observed at request time;
      approval is refused when the record has moved since.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase, UUIDString


class AdjustmentType(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"
    SET = "set"


class AdjustmentReason(str, Enum):
    RECEIVED = "received"
    DAMAGED = "damaged"
    LOST = "lost"
    CORRECTION = "correction"
    RETURN = "return"
    SALE = "sale"
    TRANSFER = "transfer"
    OTHER = "other"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class StockAdjustment(TrackedBase):
    """A requested change to a product's physical stock."""

    __tablename__ = "stock_adjustments"

    __table_args__ = (
        Index("idx_adjustment_product", "product_id"),
        Index("idx_adjustment_status", "approval_status"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False
    )

    adjustment_type: Mapped[str] = mapped_column(String(20), nullable=False)

    reason_code: Mapped[str] = mapped_column(String(20), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    previous_physical: Mapped[int] = mapped_column(Integer, nullable=False)

    proposed_physical: Mapped[int] = mapped_column(Integer, nullable=False)

    expected_version: Mapped[int] = mapped_column(Integer, nullable=False)

    approval_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ApprovalStatus.PENDING.value
    )

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    reviewed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    audit_entry_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    @property
    def is_pending(self) -> bool:
        return self.approval_status == ApprovalStatus.PENDING.value

    @property
    def physical_delta(self) -> int:
        return self.proposed_physical - self.previous_physical
