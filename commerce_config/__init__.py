"""
commerce_config -- single public entrypoint for commerce configuration.

Runtime code obtains configuration only through ``get_active_config()``.
The YAML file is chosen in this order: the ``path`` argument, the
``COMMERCE_CONFIG_FILE`` environment variable, the bundled
``defaults.yaml``.  ``COMMERCE_DATABASE_URL`` overrides ``database.url``.

Every successful call emits a ``COMMERCE_CONFIG_TRACE`` log entry naming
the config id, version and source file.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path

from commerce_config.loader import load_config
from commerce_config.schema import CommerceConfig, DatabaseConfig, PaginationConfig

_logger = logging.getLogger("commerce_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_FILE_ENV = "COMMERCE_CONFIG_FILE"
DATABASE_URL_ENV = "COMMERCE_DATABASE_URL"


def get_active_config(path: Path | str | None = None) -> CommerceConfig:
    """
    Load and return the active configuration.

    Not cached; callers hold the returned config for as long as they need it.

    Raises:
        FileNotFoundError: The chosen file does not exist.
        ValueError: A value is missing, mistyped or out of range.
    """
    config_path = Path(path or os.environ.get(CONFIG_FILE_ENV) or DEFAULT_CONFIG_PATH)
    config = load_config(config_path)

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        config = dataclasses.replace(
            config,
            database=dataclasses.replace(config.database, url=database_url),
        )

    _logger.info(
        "COMMERCE_CONFIG_TRACE",
        extra={
            "trace_type": "COMMERCE_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "source_path": config.source_path,
            "default_tax_rate": str(config.default_tax_rate),
            "database_url_overridden": bool(database_url),
        },
    )
    return config


__all__ = [
    "CommerceConfig",
    "DatabaseConfig",
    "PaginationConfig",
    "get_active_config",
]
