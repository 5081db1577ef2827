"""
Module: inventory_kernel.models.product
Responsibility: Minimal catalog product row.  Catalog CRUD belongs to the
    storefront; the inventory core only reads products to seed and reconcile
    stock records.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from decimal import Decimal

from sqlalchemy import Boolean, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase


class Product(TrackedBase):
    """Catalog product as seen by the inventory core."""

    __tablename__ = "products"

    __table_args__ = (
        Index("idx_product_active", "is_active"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    sku: Mapped[str | None] = mapped_column(String(100), nullable=True, unique=True)

    price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    cost: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Catalog's own stock counter; the stock record is authoritative once seeded
    stock_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Product {self.sku or self.id}: {self.name}>"
