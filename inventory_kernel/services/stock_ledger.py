"""
StockLedger -- atomic conditional mutation of per-product stock counts.

Responsibility:
    Owns every write to StockRecord quantity and version columns.  Exposes a
    single primitive, ``mutate()``, that applies a (physical, reserved) delta
    with one conditional UPDATE and writes the matching audit entry in the
    same transaction.  Everything else (reservations, fulfillment, returns,
    movements, bulk edits, adjustments) is built on it.

Architecture position:
    Kernel > Services.  Called by ReservationManager, ReturnProcessor,
    MovementRecorder, BulkOperationCoordinator, SyncReconciler and
    AdjustmentService.

Invariants enforced:
    - physical >= 0, reserved >= 0, reserved <= physical after every mutation.
      The predicates are part of the UPDATE's WHERE clause, so two concurrent
      callers can never both succeed against the same units.
    - version increments by exactly 1 per mutation.
    - Exactly one AuditLogEntry per mutation, carrying the exact before/after
      values read back with UPDATE ... RETURNING.

Failure modes:
    - StockRecordNotFoundError: no record for the product.
    - OptimisticLockError: expected_version given and stale.  Never retried.
    - InvalidMutationError: the delta would break a stock invariant.
    - InsufficientStockError: reserve_available() cannot hold the quantity.

Audit relevance:
    The ledger is the only caller of AuditLogger.record_mutation().
"""

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import StockSnapshot
from inventory_kernel.domain.stock_levels import StockLevels
from inventory_kernel.exceptions import (
    InsufficientStockError,
    InvalidMutationError,
    OptimisticLockError,
    ProductNotFoundError,
    ShortLine,
    StockRecordExistsError,
    StockRecordInUseError,
    StockRecordNotFoundError,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.audit_log import AuditLogEntry, OperationType
from inventory_kernel.models.product import Product
from inventory_kernel.models.stock_record import StockRecord, StockStatus
from inventory_kernel.services.audit_logger import AuditLogger
from inventory_kernel.services.base import BaseService

logger = get_logger("services.stock_ledger")

_stock = StockRecord.__table__

# Columns update_attributes() may write; quantities and version are excluded
EDITABLE_COLUMNS = frozenset(
    {
        "status",
        "min_stock",
        "max_stock",
        "reorder_point",
        "unit_cost",
        "unit_price",
        "supplier",
        "notes",
        "last_restocked",
    }
)


@dataclass(frozen=True)
class MutationResult:
    """Outcome of one ledger mutation."""

    record: StockSnapshot
    before: StockLevels
    after: StockLevels
    audit_entry: AuditLogEntry

    @property
    def audit_entry_id(self) -> UUID:
        return self.audit_entry.id


class StockLedger(BaseService):
    """
    Canonical stock store with an optimistic-concurrency version.

    Contract:
        ``mutate()`` either applies the whole delta and writes one audit
        entry, or raises and changes nothing.

    Non-goals:
        - Does NOT retry conflicts.
        - Does NOT call ``session.commit()``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._audit = AuditLogger(session, self._clock)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, product_id: UUID) -> StockRecord:
        """Stock record for a product, refreshed from the database."""
        record = self.session.execute(
            select(StockRecord)
            .where(StockRecord.product_id == product_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if record is None:
            raise StockRecordNotFoundError(str(product_id))
        return record

    def get_by_id(self, stock_id: UUID) -> StockRecord:
        record = self.session.execute(
            select(StockRecord)
            .where(StockRecord.id == stock_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if record is None:
            raise StockRecordNotFoundError(str(stock_id))
        return record

    def find(self, product_id: UUID) -> StockRecord | None:
        return self.session.execute(
            select(StockRecord).where(StockRecord.product_id == product_id)
        ).scalar_one_or_none()

    def _current_levels(self, product_id: UUID) -> StockLevels | None:
        row = self.session.execute(
            select(_stock.c.physical_stock, _stock.c.reserved_stock, _stock.c.version)
            .where(_stock.c.product_id == product_id)
        ).first()
        if row is None:
            return None
        return StockLevels(physical=row.physical_stock, reserved=row.reserved_stock, version=row.version)

    # ------------------------------------------------------------------
    # Mutation primitive
    # ------------------------------------------------------------------

    def mutate(
        self,
        product_id: UUID,
        *,
        physical_delta: int = 0,
        reserved_delta: int = 0,
        expected_version: int | None = None,
        operation_type: OperationType,
        actor_id: UUID,
        quantity_affected: int | None = None,
        related_order_id: UUID | None = None,
        related_adjustment_id: UUID | None = None,
        notes: str | None = None,
        column_values: dict[str, Any] | None = None,
    ) -> MutationResult:
        """
        Apply a stock delta atomically and audit it.

        Preconditions:
            - At least one of physical_delta, reserved_delta, column_values
              changes something.
            - column_values only names EDITABLE_COLUMNS.

        Postconditions:
            - physical' = physical + physical_delta,
              reserved' = reserved + reserved_delta, version' = version + 1.
            - One AuditLogEntry flushed with the exact before/after values.

        Raises:
            StockRecordNotFoundError, OptimisticLockError, InvalidMutationError,
            ValidationError.
        """
        column_values = dict(column_values or {})
        unknown = set(column_values) - EDITABLE_COLUMNS
        if unknown:
            raise ValidationError(f"Columns not editable: {', '.join(sorted(unknown))}")
        if physical_delta == 0 and reserved_delta == 0 and not column_values:
            raise ValidationError("Mutation does not change anything")

        new_physical = _stock.c.physical_stock + physical_delta
        new_reserved = _stock.c.reserved_stock + reserved_delta

        stmt = (
            update(_stock)
            .where(_stock.c.product_id == product_id)
            .where(new_physical >= 0)
            .where(new_reserved >= 0)
            .where(new_reserved <= new_physical)
        )
        if expected_version is not None:
            stmt = stmt.where(_stock.c.version == expected_version)

        stmt = stmt.values(
            physical_stock=new_physical,
            reserved_stock=new_reserved,
            version=_stock.c.version + 1,
            updated_by_id=actor_id,
            **column_values,
        ).returning(
            _stock.c.id,
            _stock.c.physical_stock,
            _stock.c.reserved_stock,
            _stock.c.version,
        )

        row = self.session.execute(stmt).first()
        if row is None:
            self._raise_for_rejected(product_id, physical_delta, reserved_delta, expected_version)

        before = StockLevels(
            physical=row.physical_stock - physical_delta,
            reserved=row.reserved_stock - reserved_delta,
            version=row.version - 1,
        )
        after = before.apply(physical_delta, reserved_delta)

        if quantity_affected is None:
            quantity_affected = abs(physical_delta) or abs(reserved_delta)

        entry = self._audit.record_mutation(
            product_id=product_id,
            operation_type=operation_type,
            before=before,
            after=after,
            actor_id=actor_id,
            quantity_affected=quantity_affected,
            related_order_id=related_order_id,
            related_adjustment_id=related_adjustment_id,
            notes=notes,
        )

        record = self.get_by_id(row.id)

        logger.info(
            "stock_mutated",
            extra={
                "product_id": str(product_id),
                "operation_type": operation_type.value,
                "physical_delta": physical_delta,
                "reserved_delta": reserved_delta,
                "version": after.version,
            },
        )
        return MutationResult(
            record=StockSnapshot.from_model(record),
            before=before,
            after=after,
            audit_entry=entry,
        )

    def _raise_for_rejected(
        self,
        product_id: UUID,
        physical_delta: int,
        reserved_delta: int,
        expected_version: int | None,
    ) -> None:
        """Work out why a conditional update matched no row and raise it."""
        current = self._current_levels(product_id)
        if current is None:
            raise StockRecordNotFoundError(str(product_id))

        logger.warning(
            "stock_mutation_rejected",
            extra={
                "product_id": str(product_id),
                "physical_delta": physical_delta,
                "reserved_delta": reserved_delta,
                "expected_version": expected_version,
                "actual_version": current.version,
            },
        )

        if expected_version is not None and current.version != expected_version:
            raise OptimisticLockError(
                "StockRecord", str(product_id), expected_version, current.version
            )
        if not current.can_apply(physical_delta, reserved_delta):
            raise InvalidMutationError(
                str(product_id),
                current.physical,
                current.reserved,
                physical_delta,
                reserved_delta,
            )
        # Predicates pass on re-read: another writer moved the row in between
        raise OptimisticLockError("StockRecord", str(product_id), expected_version, current.version)

    # ------------------------------------------------------------------
    # Convenience forms
    # ------------------------------------------------------------------

    def reserve_available(
        self,
        product_id: UUID,
        quantity: int,
        *,
        actor_id: UUID,
        related_order_id: UUID | None = None,
        notes: str | None = None,
    ) -> MutationResult:
        """
        Hold ``quantity`` units only if that many are available.

        Raises:
            InsufficientStockError: available < quantity at the moment of the update.
        """
        try:
            return self.mutate(
                product_id,
                reserved_delta=quantity,
                operation_type=OperationType.RESERVATION,
                actor_id=actor_id,
                quantity_affected=quantity,
                related_order_id=related_order_id,
                notes=notes,
            )
        except InvalidMutationError as exc:
            available = max(0, exc.physical_stock - exc.reserved_stock)
            raise InsufficientStockError(
                [ShortLine(str(product_id), quantity, available)],
                order_id=str(related_order_id) if related_order_id else None,
            ) from exc

    def update_attributes(
        self,
        product_id: UUID,
        changes: dict[str, Any],
        *,
        actor_id: UUID,
        expected_version: int | None = None,
        operation_type: OperationType = OperationType.BULK_UPDATE,
        notes: str | None = None,
    ) -> MutationResult:
        """Version-checked edit of descriptive columns, audited like a mutation."""
        return self.mutate(
            product_id,
            expected_version=expected_version,
            operation_type=operation_type,
            actor_id=actor_id,
            quantity_affected=0,
            notes=notes,
            column_values=changes,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create(
        self,
        product_id: UUID,
        *,
        actor_id: UUID,
        physical_stock: int = 0,
        operation_type: OperationType = OperationType.MANUAL_ADJUSTMENT,
        audit_notes: str | None = None,
        **attributes: Any,
    ) -> MutationResult:
        """
        Create the stock record for a product.

        Audited as a mutation from an empty (0, 0, v0) record.

        Raises:
            ProductNotFoundError, StockRecordExistsError, ValidationError.
        """
        if isinstance(physical_stock, bool) or not isinstance(physical_stock, int) or physical_stock < 0:
            raise ValidationError("physical_stock must be a non-negative integer", field="physical_stock")
        unknown = set(attributes) - EDITABLE_COLUMNS
        if unknown:
            raise ValidationError(f"Columns not editable: {', '.join(sorted(unknown))}")
        if self.session.get(Product, product_id) is None:
            raise ProductNotFoundError(str(product_id))
        if self.find(product_id) is not None:
            raise StockRecordExistsError(str(product_id))

        attributes.setdefault("status", StockStatus.ACTIVE.value)
        record = StockRecord(
            product_id=product_id,
            physical_stock=physical_stock,
            reserved_stock=0,
            version=1,
            created_by_id=actor_id,
            **attributes,
        )
        self.session.add(record)
        self.session.flush()

        before = StockLevels(physical=0, reserved=0, version=0)
        after = StockLevels(physical=physical_stock, reserved=0, version=1)
        entry = self._audit.record_mutation(
            product_id=product_id,
            operation_type=operation_type,
            before=before,
            after=after,
            actor_id=actor_id,
            quantity_affected=physical_stock,
            notes=audit_notes or "Stock record created",
        )
        logger.info(
            "stock_record_created",
            extra={"product_id": str(product_id), "physical_stock": physical_stock},
        )
        return MutationResult(
            record=StockSnapshot.from_model(record),
            before=before,
            after=after,
            audit_entry=entry,
        )

    def delete(self, product_id: UUID, *, actor_id: UUID, expected_version: int | None = None) -> AuditLogEntry:
        """
        Remove a product's stock record.

        Raises:
            StockRecordNotFoundError, OptimisticLockError,
            StockRecordInUseError: units are still reserved.
        """
        current = self._current_levels(product_id)
        if current is None:
            raise StockRecordNotFoundError(str(product_id))
        if expected_version is not None and current.version != expected_version:
            raise OptimisticLockError("StockRecord", str(product_id), expected_version, current.version)
        if current.reserved > 0:
            raise StockRecordInUseError(str(product_id), current.reserved)

        result = self.session.execute(
            delete(_stock)
            .where(_stock.c.product_id == product_id)
            .where(_stock.c.reserved_stock == 0)
            .where(_stock.c.version == current.version)
        )
        if result.rowcount != 1:
            raise OptimisticLockError("StockRecord", str(product_id), current.version, None)

        entry = self._audit.record_mutation(
            product_id=product_id,
            operation_type=OperationType.MANUAL_ADJUSTMENT,
            before=current,
            after=StockLevels(physical=0, reserved=0, version=current.version + 1),
            actor_id=actor_id,
            quantity_affected=current.physical,
            notes="Stock record deleted",
        )
        logger.info(
            "stock_record_deleted",
            extra={"product_id": str(product_id), "physical_stock": current.physical},
        )
        return entry
