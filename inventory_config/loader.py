"""
Configuration loader (``inventory_config.loader``).

Loads a YAML settings file and parses it into the frozen dataclasses in
``inventory_config.schema``.  Only ``get_active_config()`` should call this.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Wrong value types  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from inventory_config.schema import (
    ApiSettings,
    DatabaseSettings,
    InventorySettings,
    LoggingSettings,
)

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    url = data["url"]
    if not isinstance(url, str) or not url.strip():
        raise ValueError("database.url must be a non-empty string")
    return DatabaseSettings(
        url=url,
        echo=bool(data.get("echo", False)),
        pool_size=_positive_int(data, "pool_size", 20),
        max_overflow=_non_negative_int(data, "max_overflow", 10),
        pool_timeout=_positive_int(data, "pool_timeout", 30),
        create_schema=bool(data.get("create_schema", True)),
    )


def parse_categories(data: Any) -> tuple[str, ...]:
    if not isinstance(data, list) or not data:
        raise ValueError("categories must be a non-empty list")
    categories = tuple(str(c).strip() for c in data)
    if any(not c for c in categories):
        raise ValueError("categories must not contain empty names")
    if len(set(categories)) != len(categories):
        raise ValueError("categories must be unique")
    return categories


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    level = str(data.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"logging.level must be one of {sorted(_LOG_LEVELS)}")
    return LoggingSettings(level=level)


def parse_settings(data: dict[str, Any], checksum: str = "") -> InventorySettings:
    """Parse a settings dict (already environment-overridden)."""
    api = data.get("api") or {}
    return InventorySettings(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        database=parse_database(data["database"]),
        categories=parse_categories(data["categories"]),
        api=ApiSettings(
            title=api.get("title", ApiSettings.title),
            prefix=api.get("prefix", ApiSettings.prefix).rstrip("/"),
        ),
        logging=parse_logging(data.get("logging") or {}),
        checksum=checksum,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _positive_int(data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"database.{key} must be a positive integer")
    return value


def _non_negative_int(data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"database.{key} must be a non-negative integer")
    return value
