"""
Inventory configuration schema.

Frozen dataclasses the loader parses YAML sets into.  Defaults match the
shipped ``default`` set, so a set only needs to name what it changes.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///inventory.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    # Seconds a SQLite writer waits for the lock before failing
    busy_timeout: float = 30.0


@dataclass(frozen=True)
class StockPolicy:
    """Thresholds used by low-stock reports and reorder alerts."""

    default_low_stock_threshold: int = 5
    reorder_buffer_percentage: int = 20


@dataclass(frozen=True)
class OrderPolicy:
    """Order statuses in which reservation and fulfillment are allowed."""

    reservable_statuses: tuple[str, ...] = ("pending", "processing")
    fulfillable_statuses: tuple[str, ...] = ("processing", "shipped")


@dataclass(frozen=True)
class AuditPolicy:
    default_page_size: int = 100
    max_page_size: int = 1000


@dataclass(frozen=True)
class BulkPolicy:
    max_items: int = 1000


@dataclass(frozen=True)
class InventoryConfig:
    """A complete, validated configuration set."""

    config_id: str
    version: int
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    stock: StockPolicy = field(default_factory=StockPolicy)
    orders: OrderPolicy = field(default_factory=OrderPolicy)
    audit: AuditPolicy = field(default_factory=AuditPolicy)
    bulk: BulkPolicy = field(default_factory=BulkPolicy)
    checksum: str = ""
