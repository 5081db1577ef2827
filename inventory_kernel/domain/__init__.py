"""
Domain layer: clock, stock-level rules and the DTOs that cross the kernel
boundary.  No database sessions and no I/O.
"""

from inventory_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from inventory_kernel.domain.stock_levels import (
    StockLevels,
    available_stock,
    classify_alert,
    resolve_adjustment,
    suggested_reorder_quantity,
    validate_movement_delta,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "StockLevels",
    "SystemClock",
    "available_stock",
    "classify_alert",
    "resolve_adjustment",
    "suggested_reorder_quantity",
    "validate_movement_delta",
]
