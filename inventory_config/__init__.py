"""
inventory_config -- single public entrypoint for inventory configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component may read configuration
    files or environment variables directly.  The kernel never imports this
    package; ``inventory_services`` passes the relevant policies into kernel
    constructors.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Every returned config has passed structural and semantic validation.
    - Same YAML always produces the same checksum.
    - The one sanctioned environment override is ``INVENTORY_DATABASE_URL``.

Failure modes:
    - ``FileNotFoundError`` -- no configuration set with the requested name.
    - ``ValueError`` -- validation failures, all listed in the message.

Audit relevance:
    Every successful call emits an ``inventory_config_loaded`` log entry with
    the config id, version and checksum.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from inventory_config.loader import load_yaml_file, parse_config, with_database_url
from inventory_config.schema import (
    AuditPolicy,
    BulkPolicy,
    DatabaseConfig,
    InventoryConfig,
    OrderPolicy,
    StockPolicy,
)

_logger = logging.getLogger("inventory_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"

DATABASE_URL_ENV = "INVENTORY_DATABASE_URL"


def get_active_config(set_name: str = "default", config_dir: Path | None = None) -> InventoryConfig:
    """The ONLY public configuration entrypoint.

    Args:
        set_name: Name of the YAML set (``<config_dir>/<set_name>.yaml``).
        config_dir: Override path to the sets directory.
            Defaults to inventory_config/sets/.

    Raises:
        FileNotFoundError: If the set does not exist.
        ValueError: If configuration validation fails.
    """
    sets_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
    path = sets_dir / f"{set_name}.yaml"
    if not path.is_file():
        raise FileNotFoundError(f"Configuration set not found: {path}")

    config = parse_config(load_yaml_file(path))

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        config = with_database_url(config, database_url)

    _logger.info(
        "inventory_config_loaded",
        extra={
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "database_url_overridden": bool(database_url),
        },
    )
    return config


__all__ = [
    "AuditPolicy",
    "BulkPolicy",
    "DatabaseConfig",
    "InventoryConfig",
    "OrderPolicy",
    "StockPolicy",
    "get_active_config",
]
