"""
Configuration schema (``commerce_config.schema``).

Frozen dataclasses describing one loaded configuration.  Nothing here reads
files; ``commerce_config.loader`` builds instances from YAML.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

KNOWN_KINDS = ("quotation", "sale", "purchase")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class PaginationConfig:
    default_page_size: int = 10
    max_page_size: int = 100


@dataclass(frozen=True)
class DatabaseConfig:
    url: str | None = None
    lock_timeout_seconds: int = 30


@dataclass(frozen=True)
class CommerceConfig:
    """
    Runtime configuration for the commerce kernel.

    ``document_prefixes`` maps a transaction kind value to the prefix of its
    document numbers.  Kinds missing from the map fall back to the workflow
    default.
    """

    config_id: str
    version: int
    default_tax_rate: Decimal = Decimal("0.19")
    document_pad_width: int = 4
    document_prefixes: dict[str, str] = field(default_factory=dict)
    pagination: PaginationConfig = field(default_factory=PaginationConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    log_level: str = "INFO"
    source_path: str | None = None
