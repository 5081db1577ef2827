"""
Module: inventory_kernel.models.stock_movement
Responsibility: Append-only log of named stock events (restock, damage, ...)
    used for history and trend reporting.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only (ORM listeners in db/immutability.py).
    - stock_after == stock_before + quantity_delta.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UUIDString


class MovementType(str, Enum):
    """Named stock events."""

    RESTOCK = "restock"
    SALE = "sale"
    ADJUSTMENT = "adjustment"
    RETURN = "return"
    DAMAGE = "damage"
    CORRECTION = "correction"


class StockMovement(Base):
    """A single physical stock movement with its before/after snapshot."""

    __tablename__ = "stock_movements"

    __table_args__ = (
        Index("idx_movement_inventory", "inventory_id"),
        Index("idx_movement_product", "product_id"),
        Index("idx_movement_type", "movement_type"),
        Index("idx_movement_occurred", "occurred_at"),
    )

    # Survives deletion of the stock record, like the audit log
    inventory_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    movement_type: Mapped[str] = mapped_column(String(20), nullable=False)

    quantity_delta: Mapped[int] = mapped_column(Integer, nullable=False)

    stock_before: Mapped[int] = mapped_column(Integer, nullable=False)

    stock_after: Mapped[int] = mapped_column(Integer, nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Free-form external reference (PO number, ticket, ...)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    audit_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("inventory_audit_log.id"), nullable=True
    )

    def __repr__(self) -> str:
        return f"<StockMovement {self.movement_type} {self.quantity_delta:+d}>"
