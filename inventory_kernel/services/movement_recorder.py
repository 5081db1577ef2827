"""
MovementRecorder -- named physical stock events on top of the ledger.

Responsibility:
    Records restocks, damage, sales, corrections and manual adjustments as
    StockMovement rows for history and trend reporting.  The quantity change
    itself is a ledger mutation (audited as ``manual_adjustment``); the
    movement row keeps the before/after snapshot and links to the audit entry.

Invariants enforced:
    - Movement deltas follow the type's sign rule (restock/return > 0,
      sale/damage < 0, adjustment/correction non-zero).
    - stock_after == stock_before + quantity_delta, taken from the ledger's
      RETURNING values.
    - Restocks stamp ``last_restocked``.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import MovementView, StockSnapshot
from inventory_kernel.domain.stock_levels import resolve_adjustment, validate_movement_delta
from inventory_kernel.exceptions import ValidationError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.adjustment import AdjustmentType
from inventory_kernel.models.audit_log import OperationType
from inventory_kernel.models.stock_movement import MovementType, StockMovement
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.stock_ledger import StockLedger

logger = get_logger("services.movements")


@dataclass(frozen=True)
class RecordedMovement:
    movement: MovementView
    record: StockSnapshot
    audit_entry_id: UUID


def _movement_type(value) -> MovementType:
    try:
        return MovementType(value)
    except ValueError:
        allowed = ", ".join(m.value for m in MovementType)
        raise ValidationError(f"movement_type must be one of: {allowed}", field="movement_type") from None


class MovementRecorder(BaseService):
    """Writes StockMovement rows paired with ledger mutations."""

    def __init__(self, session: Session, clock: Clock | None = None, ledger: StockLedger | None = None):
        super().__init__(session, clock)
        self._ledger = ledger or StockLedger(session, self._clock)

    def record_movement(
        self,
        inventory_id: UUID,
        movement_type: MovementType | str,
        quantity_delta: int,
        actor_id: UUID,
        notes: str | None = None,
        reference: str | None = None,
        expected_version: int | None = None,
        related_adjustment_id: UUID | None = None,
    ) -> RecordedMovement:
        """
        Apply ``quantity_delta`` to physical stock and log the movement.

        Raises:
            ValidationError: bad type or sign.
            StockRecordNotFoundError, OptimisticLockError, InvalidMutationError.
        """
        movement_type = _movement_type(movement_type)
        validate_movement_delta(movement_type, quantity_delta)

        record = self._ledger.get_by_id(inventory_id)
        now = self._clock.now()
        column_values = {"last_restocked": now} if movement_type is MovementType.RESTOCK else None

        result = self._ledger.mutate(
            record.product_id,
            physical_delta=quantity_delta,
            expected_version=expected_version,
            operation_type=OperationType.MANUAL_ADJUSTMENT,
            actor_id=actor_id,
            quantity_affected=abs(quantity_delta),
            related_adjustment_id=related_adjustment_id,
            notes=f"{movement_type.value}: {notes}" if notes else movement_type.value,
            column_values=column_values,
        )

        movement = StockMovement(
            inventory_id=record.id,
            product_id=record.product_id,
            movement_type=movement_type.value,
            quantity_delta=quantity_delta,
            stock_before=result.before.physical,
            stock_after=result.after.physical,
            actor_id=actor_id,
            occurred_at=now,
            notes=notes,
            reference=reference,
            audit_entry_id=result.audit_entry_id,
        )
        self.session.add(movement)
        self.session.flush()

        logger.info(
            "stock_movement_recorded",
            extra={
                "product_id": str(record.product_id),
                "movement_type": movement_type.value,
                "quantity_delta": quantity_delta,
                "stock_after": result.after.physical,
            },
        )
        return RecordedMovement(
            movement=MovementView.from_model(movement),
            record=result.record,
            audit_entry_id=result.audit_entry_id,
        )

    def adjust(
        self,
        product_id: UUID,
        adjustment_type: AdjustmentType | str,
        quantity: int,
        actor_id: UUID,
        notes: str | None = None,
        expected_version: int | None = None,
    ) -> RecordedMovement:
        """
        Increase, decrease or set physical stock.

        The change is checked against the version read here (or the caller's
        ``expected_version``), so a concurrent mutation surfaces as a conflict
        instead of being overwritten by a stale "set".
        """
        try:
            adjustment_type = AdjustmentType(adjustment_type)
        except ValueError:
            raise ValidationError(
                "adjustment_type must be increase, decrease or set", field="adjustment_type"
            ) from None

        record = self._ledger.get(product_id)
        target = resolve_adjustment(adjustment_type, record.physical_stock, quantity)
        delta = target - record.physical_stock
        if delta == 0:
            raise ValidationError("Adjustment does not change stock", field="quantity")

        return self.record_movement(
            record.id,
            MovementType.ADJUSTMENT,
            delta,
            actor_id,
            notes=notes,
            expected_version=expected_version if expected_version is not None else record.version,
        )
