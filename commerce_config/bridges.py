"""
Bridges from a loaded ``CommerceConfig`` to kernel setup calls.

The kernel never imports this package at runtime; application entrypoints
call these helpers once at startup.
"""

from __future__ import annotations

from sqlalchemy.engine import Engine

from commerce_config.schema import CommerceConfig
from commerce_kernel.db.engine import init_engine_from_url
from commerce_kernel.logging_config import configure_logging


def init_engine_from_config(config: CommerceConfig, echo: bool = False) -> Engine:
    """
    Raises:
        ValueError: The configuration has no database URL.
    """
    if not config.database.url:
        raise ValueError(
            "No database URL configured; set database.url or COMMERCE_DATABASE_URL"
        )
    return init_engine_from_url(
        config.database.url,
        echo=echo,
        lock_timeout=config.database.lock_timeout_seconds,
    )


def configure_logging_from_config(config: CommerceConfig) -> None:
    configure_logging(level=config.log_level)
