"""Operation surface over the inventory kernel (owns transactions)."""

from inventory_services.inventory_service import InventoryService, create_inventory_service

__all__ = [
    "InventoryService",
    "create_inventory_service",
]
