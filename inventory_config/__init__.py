"""
inventory_config -- single public entrypoint for inventory configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration -- sits beside the kernel; consumed by inventory_api at
    startup.  The kernel MUST NEVER import from ``inventory_config``.

Failure modes:
    - ``FileNotFoundError`` -- the requested settings file does not exist.
    - ``ValueError`` / ``KeyError`` -- the YAML does not describe valid
      settings.

Audit relevance:
    Every successful call emits ``inventory_config_loaded`` with the
    config_id, version and checksum of the effective settings.
"""

from __future__ import annotations

import copy
import logging
import os
from collections.abc import Mapping
from pathlib import Path

from inventory_config.loader import compute_checksum, load_yaml_file, parse_settings
from inventory_config.schema import (
    ApiSettings,
    DatabaseSettings,
    InventorySettings,
    LoggingSettings,
)

_logger = logging.getLogger("inventory_kernel.config")

_DEFAULT_CONFIG_FILE = Path(__file__).parent / "sets" / "default.yaml"

DATABASE_URL_ENV = "INVENTORY_DATABASE_URL"


def get_active_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> InventorySettings:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Settings file; defaults to inventory_config/sets/default.yaml.
        environ: Environment to read overrides from; defaults to os.environ.

    Returns:
        Frozen InventorySettings whose checksum covers the effective
        (environment-overridden) values.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_FILE
    environ = os.environ if environ is None else environ

    data = copy.deepcopy(load_yaml_file(path))
    override = environ.get(DATABASE_URL_ENV)
    if override:
        data.setdefault("database", {})["url"] = override

    settings = parse_settings(data, checksum=compute_checksum(data))

    _logger.info(
        "inventory_config_loaded",
        extra={
            "config_id": settings.config_id,
            "config_version": settings.version,
            "checksum": settings.checksum,
            "config_path": str(path),
            "database_url_overridden": bool(override),
            "category_count": len(settings.categories),
        },
    )
    return settings


__all__ = [
    "ApiSettings",
    "DATABASE_URL_ENV",
    "DatabaseSettings",
    "InventorySettings",
    "LoggingSettings",
    "get_active_config",
]
