"""Selectors for the inventory kernel (read side)."""

from inventory_kernel.selectors.alert_selector import AlertSelector
from inventory_kernel.selectors.audit_selector import AuditSelector
from inventory_kernel.selectors.movement_selector import MovementSelector
from inventory_kernel.selectors.stock_selector import StockSelector

__all__ = [
    "AlertSelector",
    "AuditSelector",
    "MovementSelector",
    "StockSelector",
]
