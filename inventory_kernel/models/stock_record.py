"""
Module: inventory_kernel.models.stock_record
Responsibility: ORM persistence for the canonical per-product stock counts.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - physical_stock >= 0, reserved_stock >= 0, reserved_stock <= physical_stock
      (database CHECK constraints; the ledger also refuses such mutations).
    - available_stock is derived, never stored:
      available = max(0, physical - reserved).
    - version starts at 1 and is incremented by every ledger mutation.
    - One stock record per product (UNIQUE product_id).

Failure modes:
    - IntegrityError if a write bypasses the ledger and breaks a CHECK.

Audit relevance:
    Only StockLedger writes quantity and version columns.  Every such write
    is paired with exactly one AuditLogEntry in the same transaction.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Text, case
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase, UUIDString


class StockStatus(str, Enum):
    """Sales status of a stock record."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    DISCONTINUED = "discontinued"


class StockRecord(TrackedBase):
    """
    Canonical stock counts for one product.

    Contract:
        Quantity and version columns are written only through StockLedger.
        Descriptive columns (thresholds, prices, supplier, notes, status) may
        be edited through StockLedger.update_attributes, which is also
        version-checked and audited.

    Guarantees:
        - available_stock works both on instances and in SQL expressions.
    """

    __tablename__ = "stock_records"

    __table_args__ = (
        CheckConstraint("physical_stock >= 0", name="ck_stock_physical_non_negative"),
        CheckConstraint("reserved_stock >= 0", name="ck_stock_reserved_non_negative"),
        CheckConstraint(
            "reserved_stock <= physical_stock", name="ck_stock_reserved_within_physical"
        ),
        CheckConstraint("version >= 1", name="ck_stock_version_positive"),
        Index("idx_stock_status", "status"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
        unique=True,
    )

    physical_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    reserved_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    min_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    max_stock: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # None means "use the configured default low-stock threshold"
    reorder_point: Mapped[int | None] = mapped_column(Integer, nullable=True)

    unit_cost: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    unit_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=StockStatus.ACTIVE.value,
    )

    supplier: Mapped[str | None] = mapped_column(String(255), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    last_restocked: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    @hybrid_property
    def available_stock(self) -> int:
        return max(0, self.physical_stock - self.reserved_stock)

    @available_stock.inplace.expression
    @classmethod
    def _available_stock_expression(cls):
        return case(
            (cls.physical_stock > cls.reserved_stock, cls.physical_stock - cls.reserved_stock),
            else_=0,
        )

    @property
    def is_active(self) -> bool:
        return self.status == StockStatus.ACTIVE.value

    def __repr__(self) -> str:
        return (
            f"<StockRecord product={self.product_id} physical={self.physical_stock} "
            f"reserved={self.reserved_stock} v{self.version}>"
        )
