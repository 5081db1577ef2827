"""
SyncReconciler -- seeds stock records from the product catalog.

Every active catalog product without a stock record gets one, seeded from
the catalog's ``stock_quantity``, ``price`` and ``cost``.  Records that
already exist are authoritative: when their physical count differs from the
catalog counter they are reported as drifted and left untouched.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from inventory_kernel.domain.dtos import BulkItemError, DriftedRecord, SyncResult
from inventory_kernel.exceptions import InventoryKernelError, ValidationError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.audit_log import OperationType
from inventory_kernel.models.product import Product
from inventory_kernel.models.stock_record import StockRecord
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.stock_ledger import StockLedger

logger = get_logger("services.sync")


class SyncReconciler(BaseService):
    def __init__(self, session, clock=None, ledger: StockLedger | None = None):
        super().__init__(session, clock)
        self._ledger = ledger or StockLedger(session, self._clock)

    def sync_with_catalog(self, actor_id: UUID) -> SyncResult:
        rows = self.session.execute(
            select(Product, StockRecord)
            .outerjoin(StockRecord, StockRecord.product_id == Product.id)
            .where(Product.is_active.is_(True))
            .order_by(Product.name, Product.id)
        ).all()

        synced = 0
        errors: list[BulkItemError] = []
        drifted: list[DriftedRecord] = []

        for product, record in rows:
            if record is not None:
                if record.physical_stock != product.stock_quantity:
                    drifted.append(
                        DriftedRecord(
                            product_id=product.id,
                            catalog_quantity=product.stock_quantity,
                            physical_stock=record.physical_stock,
                        )
                    )
                continue

            savepoint = self.session.begin_nested()
            try:
                self._seed(product, actor_id)
                savepoint.commit()
                synced += 1
            except InventoryKernelError as exc:
                savepoint.rollback()
                errors.append(BulkItemError(item=str(product.id), reason=str(exc), code=exc.code))
                logger.warning(
                    "catalog_sync_item_failed",
                    extra={"product_id": str(product.id), "error_code": exc.code},
                )
            except SQLAlchemyError as exc:
                savepoint.rollback()
                errors.append(BulkItemError(item=str(product.id), reason=str(exc), code="INTERNAL"))
                logger.error(
                    "catalog_sync_item_failed",
                    extra={"product_id": str(product.id), "error_code": "INTERNAL"},
                )

        if drifted:
            logger.warning("catalog_drift_detected", extra={"drifted_count": len(drifted)})
        logger.info(
            "catalog_sync_completed",
            extra={"synced": synced, "failed": len(errors), "drifted": len(drifted)},
        )
        return SyncResult(synced_count=synced, errors=tuple(errors), drifted=tuple(drifted))

    def _seed(self, product: Product, actor_id: UUID) -> None:
        if product.stock_quantity < 0:
            raise ValidationError(
                f"Catalog quantity {product.stock_quantity} is negative", field="stock_quantity"
            )
        self._ledger.create(
            product.id,
            actor_id=actor_id,
            physical_stock=product.stock_quantity,
            operation_type=OperationType.MANUAL_ADJUSTMENT,
            audit_notes="Seeded from catalog",
            unit_price=product.price if product.price is not None else Decimal("0"),
            unit_cost=product.cost if product.cost is not None else Decimal("0"),
        )
