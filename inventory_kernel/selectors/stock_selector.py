"""
StockSelector -- read-only stock views and dashboard aggregates.

Low stock means ``available <= reorder_point``; records without a reorder
point fall back to the configured default threshold.  Only active records
are considered low stock.  Money totals are summed as Decimal in Python so
SQLite and PostgreSQL agree to the cent.
"""

from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy import func, select

from inventory_kernel.domain.dtos import (
    DEFAULT_PAGE_SIZE,
    InventoryStats,
    LowStockItem,
    LowStockReport,
    StockSnapshot,
)
from inventory_kernel.exceptions import InvalidQueryError, StockRecordNotFoundError
from inventory_kernel.models.product import Product
from inventory_kernel.models.stock_record import StockRecord, StockStatus
from inventory_kernel.selectors.base import BaseSelector

DEFAULT_LOW_STOCK_THRESHOLD = 5

_CENT = Decimal("0.01")


class StockSelector(BaseSelector[StockRecord]):
    """Queries over StockRecord."""

    def __init__(self, session, default_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD):
        super().__init__(session)
        self._default_threshold = default_threshold

    def _threshold(self):
        return func.coalesce(StockRecord.reorder_point, self._default_threshold)

    def get_stock(self, product_id: UUID) -> StockSnapshot:
        record = self.session.execute(
            select(StockRecord).where(StockRecord.product_id == product_id)
        ).scalar_one_or_none()
        if record is None:
            raise StockRecordNotFoundError(str(product_id))
        return StockSnapshot.from_model(record)

    def list_stock(
        self,
        status: StockStatus | str | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> list[StockSnapshot]:
        query = select(StockRecord).join(Product, Product.id == StockRecord.product_id)
        if status is not None:
            try:
                status = StockStatus(status)
            except ValueError:
                raise InvalidQueryError(f"Unknown status {status!r}", field="status") from None
            query = query.where(StockRecord.status == status.value)
        records = self.session.execute(
            query.order_by(Product.name, StockRecord.id).limit(limit).offset(offset)
        ).scalars().all()
        return [StockSnapshot.from_model(r) for r in records]

    def low_stock_items(self) -> LowStockReport:
        threshold = self._threshold()
        rows = self.session.execute(
            select(StockRecord, Product.name, Product.sku, threshold.label("threshold"))
            .join(Product, Product.id == StockRecord.product_id)
            .where(StockRecord.status == StockStatus.ACTIVE.value)
            .where(StockRecord.available_stock <= threshold)
            .order_by(StockRecord.available_stock, Product.name)
        ).all()

        items = []
        total_value = Decimal("0")
        for record, name, sku, row_threshold in rows:
            value = record.unit_cost * record.physical_stock
            total_value += value
            items.append(
                LowStockItem(
                    product_id=record.product_id,
                    product_name=name,
                    sku=sku,
                    physical_stock=record.physical_stock,
                    reserved_stock=record.reserved_stock,
                    available_stock=record.available_stock,
                    threshold=row_threshold,
                    unit_cost=record.unit_cost,
                    stock_value=value,
                )
            )
        return LowStockReport(items=tuple(items), count=len(items), total_value=total_value)

    def stats(self) -> InventoryStats:
        """Totals over every stock record."""
        rows = self.session.execute(
            select(
                StockRecord.physical_stock,
                StockRecord.reserved_stock,
                StockRecord.unit_cost,
                StockRecord.unit_price,
                StockRecord.status,
                StockRecord.reorder_point,
            )
        ).all()

        total_value = Decimal("0")
        price_sum = Decimal("0")
        by_status = {s.value: 0 for s in StockStatus}
        low = 0
        out = 0
        total_physical = 0
        total_reserved = 0

        for physical, reserved, unit_cost, unit_price, status, reorder_point in rows:
            total_value += unit_cost * physical
            price_sum += unit_price
            by_status[status] = by_status.get(status, 0) + 1
            total_physical += physical
            total_reserved += reserved
            available = max(0, physical - reserved)
            threshold = reorder_point if reorder_point is not None else self._default_threshold
            if status == StockStatus.ACTIVE.value and available <= threshold:
                low += 1
            if available == 0:
                out += 1

        average = (price_sum / len(rows)).quantize(_CENT, rounding=ROUND_HALF_UP) if rows else Decimal("0.00")
        return InventoryStats(
            total_products=len(rows),
            total_inventory_value=total_value,
            average_price=average,
            active_count=by_status[StockStatus.ACTIVE.value],
            inactive_count=by_status[StockStatus.INACTIVE.value],
            discontinued_count=by_status[StockStatus.DISCONTINUED.value],
            low_stock_count=low,
            out_of_stock_count=out,
            total_physical=total_physical,
            total_reserved=total_reserved,
        )
