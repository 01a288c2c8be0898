"""
Inventory settings schema.

Frozen dataclasses parsed from YAML by ``inventory_config.loader``.  The
runtime never reads YAML or environment variables directly; it receives an
``InventorySettings`` from ``inventory_config.get_active_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseSettings:
    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    create_schema: bool = True


@dataclass(frozen=True)
class ApiSettings:
    title: str = "Inventory Service"
    prefix: str = ""


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class InventorySettings:
    """Everything the application needs to start."""

    config_id: str
    version: int
    database: DatabaseSettings
    categories: tuple[str, ...]
    api: ApiSettings = field(default_factory=ApiSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    checksum: str = ""
