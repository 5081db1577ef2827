"""
Configuration Loader (``inventory_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen dataclasses of
``inventory_config.schema``.  Runtime callers go through
``inventory_config.get_active_config()``; this module is its tooling.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys, wrong types or bad values -> ``ValueError`` listing every
  problem found.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields, replace
from pathlib import Path
from typing import Any

import yaml

from inventory_config.schema import (
    AuditPolicy,
    BulkPolicy,
    DatabaseConfig,
    InventoryConfig,
    OrderPolicy,
    StockPolicy,
)
from inventory_kernel.models.order import OrderStatus

_SECTIONS = {
    "database": DatabaseConfig,
    "stock": StockPolicy,
    "orders": OrderPolicy,
    "audit": AuditPolicy,
    "bulk": BulkPolicy,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _parse_section(name: str, cls: type, data: Any, errors: list[str]):
    if data is None:
        return cls()
    if not isinstance(data, dict):
        errors.append(f"{name}: must be a mapping")
        return cls()

    known = {f.name: f for f in fields(cls)}
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key not in known:
            errors.append(f"{name}.{key}: unknown setting")
            continue
        default = getattr(cls(), key)
        if isinstance(default, tuple):
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                errors.append(f"{name}.{key}: must be a list of strings")
                continue
            value = tuple(value)
        elif isinstance(default, bool):
            if not isinstance(value, bool):
                errors.append(f"{name}.{key}: must be true or false")
                continue
        elif isinstance(default, float):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                errors.append(f"{name}.{key}: must be a number")
                continue
            value = float(value)
        elif isinstance(default, int):
            if isinstance(value, bool) or not isinstance(value, int):
                errors.append(f"{name}.{key}: must be an integer")
                continue
        elif not isinstance(value, str):
            errors.append(f"{name}.{key}: must be a string")
            continue
        kwargs[key] = value
    return cls(**kwargs)


def validate_config(config: InventoryConfig) -> list[str]:
    """Return every semantic problem with ``config`` (empty when valid)."""
    errors: list[str] = []
    statuses = {s.value for s in OrderStatus}
    for name in ("reservable_statuses", "fulfillable_statuses"):
        for value in getattr(config.orders, name):
            if value not in statuses:
                errors.append(f"orders.{name}: unknown order status {value!r}")
    if config.stock.default_low_stock_threshold < 0:
        errors.append("stock.default_low_stock_threshold: must be >= 0")
    if config.stock.reorder_buffer_percentage < 0:
        errors.append("stock.reorder_buffer_percentage: must be >= 0")
    if config.audit.default_page_size < 1:
        errors.append("audit.default_page_size: must be >= 1")
    if config.audit.max_page_size < config.audit.default_page_size:
        errors.append("audit.max_page_size: must be >= audit.default_page_size")
    if config.bulk.max_items < 1:
        errors.append("bulk.max_items: must be >= 1")
    if config.database.busy_timeout <= 0:
        errors.append("database.busy_timeout: must be > 0")
    if not config.database.url:
        errors.append("database.url: must not be empty")
    return errors


def parse_config(data: dict[str, Any]) -> InventoryConfig:
    """
    Build an InventoryConfig from a parsed YAML mapping.

    Raises:
        ValueError: structural or semantic problems, all listed.
    """
    errors: list[str] = []
    if not isinstance(data, dict):
        raise ValueError("Configuration must be a mapping")

    unknown = set(data) - set(_SECTIONS) - {"config_id", "version"}
    errors.extend(f"{key}: unknown section" for key in sorted(unknown))

    config_id = data.get("config_id")
    if not isinstance(config_id, str) or not config_id:
        errors.append("config_id: required string")
    version = data.get("version", 1)
    if isinstance(version, bool) or not isinstance(version, int):
        errors.append("version: must be an integer")

    sections = {name: _parse_section(name, cls, data.get(name), errors) for name, cls in _SECTIONS.items()}
    config = InventoryConfig(
        config_id=config_id if isinstance(config_id, str) else "",
        version=version if isinstance(version, int) else 1,
        checksum=compute_checksum(data),
        **sections,
    )
    errors.extend(validate_config(config))
    if errors:
        raise ValueError(
            "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        )
    return config


def with_database_url(config: InventoryConfig, url: str) -> InventoryConfig:
    """Copy of ``config`` pointing at another database."""
    return replace(config, database=replace(config.database, url=url))
