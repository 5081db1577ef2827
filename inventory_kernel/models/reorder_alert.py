"""
Module: inventory_kernel.models.reorder_alert
Responsibility: Low-stock and out-of-stock alerts with their review lifecycle.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one open (active or acknowledged) alert per product, enforced
      by ReorderAlertService.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UUIDString


class AlertType(str, Enum):
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


class AlertStatus(str, Enum):
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


OPEN_ALERT_STATUSES = (AlertStatus.ACTIVE.value, AlertStatus.ACKNOWLEDGED.value)


class ReorderAlert(Base):
    """A reorder alert raised for one product."""

    __tablename__ = "reorder_alerts"

    __table_args__ = (
        Index("idx_alert_product_status", "product_id", "alert_status"),
        Index("idx_alert_type", "alert_type"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False
    )

    alert_type: Mapped[str] = mapped_column(String(20), nullable=False)

    current_available: Mapped[int] = mapped_column(Integer, nullable=False)

    reorder_point: Mapped[int] = mapped_column(Integer, nullable=False)

    suggested_reorder_quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    alert_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AlertStatus.ACTIVE.value
    )

    triggered_at: Mapped[datetime] = mapped_column(nullable=False)

    acknowledged_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    acknowledged_at: Mapped[datetime | None] = mapped_column(nullable=True)

    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def is_open(self) -> bool:
        return self.alert_status in OPEN_ALERT_STATUSES
