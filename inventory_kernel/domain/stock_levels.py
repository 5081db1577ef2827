"""
Stock level rules -- pure functions over the three-way stock count.

Responsibility:
    Encodes the arithmetic every component agrees on: how available stock is
    derived, which deltas are legal, how named movements are signed, what an
    adjustment resolves to, and how much to reorder.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - available = max(0, physical - reserved)
    - physical >= 0, reserved >= 0, reserved <= physical after every mutation
"""

from __future__ import annotations

from dataclasses import dataclass

from inventory_kernel.exceptions import ValidationError
from inventory_kernel.models.adjustment import AdjustmentType
from inventory_kernel.models.reorder_alert import AlertType
from inventory_kernel.models.stock_movement import MovementType


def available_stock(physical: int, reserved: int) -> int:
    return max(0, physical - reserved)


@dataclass(frozen=True)
class StockLevels:
    """Snapshot of one record's counts and version."""

    physical: int
    reserved: int
    version: int

    @property
    def available(self) -> int:
        return available_stock(self.physical, self.reserved)

    def can_apply(self, physical_delta: int, reserved_delta: int) -> bool:
        new_physical = self.physical + physical_delta
        new_reserved = self.reserved + reserved_delta
        return new_physical >= 0 and new_reserved >= 0 and new_reserved <= new_physical

    def apply(self, physical_delta: int, reserved_delta: int) -> StockLevels:
        """Levels after a successful mutation (version bumped)."""
        return StockLevels(
            physical=self.physical + physical_delta,
            reserved=self.reserved + reserved_delta,
            version=self.version + 1,
        )


# Sign each movement type's delta must carry: +1 positive, -1 negative, 0 either
_MOVEMENT_SIGNS: dict[MovementType, int] = {
    MovementType.RESTOCK: 1,
    MovementType.RETURN: 1,
    MovementType.SALE: -1,
    MovementType.DAMAGE: -1,
    MovementType.ADJUSTMENT: 0,
    MovementType.CORRECTION: 0,
}


def validate_movement_delta(movement_type: MovementType, delta: int) -> None:
    """
    Check a movement delta against the type's sign rule.

    Raises:
        ValidationError: zero delta, or sign disagrees with the movement type.
    """
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("Movement quantity must be an integer", field="quantity_delta")
    if delta == 0:
        raise ValidationError("Movement quantity must be non-zero", field="quantity_delta")
    sign = _MOVEMENT_SIGNS[movement_type]
    if sign > 0 and delta < 0:
        raise ValidationError(
            f"{movement_type.value} movements must increase stock", field="quantity_delta"
        )
    if sign < 0 and delta > 0:
        raise ValidationError(
            f"{movement_type.value} movements must decrease stock", field="quantity_delta"
        )


def resolve_adjustment(adjustment_type: AdjustmentType, current_physical: int, quantity: int) -> int:
    """
    Physical stock an adjustment resolves to.

    Decreases below zero are rejected rather than clamped.

    Raises:
        ValidationError: non-positive quantity for increase/decrease, negative
            target for set, or a decrease larger than the current stock.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("Adjustment quantity must be an integer", field="quantity")
    if adjustment_type is AdjustmentType.SET:
        if quantity < 0:
            raise ValidationError("Stock cannot be set below zero", field="quantity")
        return quantity
    if quantity <= 0:
        raise ValidationError("Adjustment quantity must be positive", field="quantity")
    if adjustment_type is AdjustmentType.INCREASE:
        return current_physical + quantity
    if quantity > current_physical:
        raise ValidationError(
            f"Cannot decrease stock by {quantity}; only {current_physical} on hand",
            field="quantity",
        )
    return current_physical - quantity


def classify_alert(available: int, threshold: int) -> AlertType | None:
    """Alert type warranted by the available stock, or None."""
    if available <= 0:
        return AlertType.OUT_OF_STOCK
    if available <= threshold:
        return AlertType.LOW_STOCK
    return None


def suggested_reorder_quantity(
    available: int,
    threshold: int,
    max_stock: int | None,
    buffer_percentage: int,
) -> int:
    """
    Units to reorder to get back to max stock, plus a safety buffer.

    Without a max stock the target is twice the threshold.
    """
    target = max_stock if max_stock is not None and max_stock > 0 else threshold * 2
    base = max(target - available, threshold, 1)
    return -(-base * (100 + buffer_percentage) // 100)
