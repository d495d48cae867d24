"""
Configuration loader (``commerce_config.loader``).

Loads a YAML file and parses it into a frozen ``CommerceConfig``.  Runtime
callers go through ``commerce_config.get_active_config()``.

Failure modes:
    - Missing file  -> ``FileNotFoundError`` propagates.
    - Malformed YAML  -> ``yaml.YAMLError`` propagates.
    - Out-of-range or mistyped values  -> ``ValueError`` naming the key.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from commerce_config.schema import (
    KNOWN_KINDS,
    LOG_LEVELS,
    CommerceConfig,
    DatabaseConfig,
    PaginationConfig,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ValueError(f"'{key}' must be a mapping")
    return value


def _positive_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"'{key}' must be a positive integer, got {value!r}")
    return value


def parse_tax_rate(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"'tax.default_rate' must be a number, got {value!r}")
    try:
        rate = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"'tax.default_rate' must be a number, got {value!r}") from exc
    if not rate.is_finite() or rate < 0 or rate >= 1:
        raise ValueError(f"'tax.default_rate' must be in [0, 1), got {value!r}")
    return rate


def parse_prefixes(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        raise ValueError("'documents.prefixes' must be a mapping")
    prefixes: dict[str, str] = {}
    for kind, prefix in value.items():
        if kind not in KNOWN_KINDS:
            raise ValueError(f"'documents.prefixes' has unknown kind {kind!r}")
        if not isinstance(prefix, str) or not prefix.strip():
            raise ValueError(f"'documents.prefixes.{kind}' must be a non-empty string")
        prefixes[kind] = prefix.strip()
    if len(set(prefixes.values())) != len(prefixes):
        raise ValueError("'documents.prefixes' values must be distinct")
    return prefixes


def parse_config(data: dict[str, Any], source_path: str | None = None) -> CommerceConfig:
    tax = _section(data, "tax")
    documents = _section(data, "documents")
    pagination = _section(data, "pagination")
    database = _section(data, "database")
    logging_section = _section(data, "logging")

    default_page_size = _positive_int(
        pagination.get("default_page_size", 10), "pagination.default_page_size"
    )
    max_page_size = _positive_int(
        pagination.get("max_page_size", 100), "pagination.max_page_size"
    )
    if default_page_size > max_page_size:
        raise ValueError(
            "'pagination.default_page_size' cannot exceed 'pagination.max_page_size'"
        )

    url = database.get("url")
    if url is not None and not isinstance(url, str):
        raise ValueError("'database.url' must be a string or null")

    level = str(logging_section.get("level", "INFO")).upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"'logging.level' must be one of {LOG_LEVELS}, got {level!r}")

    return CommerceConfig(
        config_id=str(data.get("config_id", "commerce")),
        version=_positive_int(data.get("version", 1), "version"),
        default_tax_rate=parse_tax_rate(tax.get("default_rate", "0.19")),
        document_pad_width=_positive_int(
            documents.get("pad_width", 4), "documents.pad_width"
        ),
        document_prefixes=parse_prefixes(documents.get("prefixes") or {}),
        pagination=PaginationConfig(
            default_page_size=default_page_size,
            max_page_size=max_page_size,
        ),
        database=DatabaseConfig(
            url=url,
            lock_timeout_seconds=_positive_int(
                database.get("lock_timeout_seconds", 30),
                "database.lock_timeout_seconds",
            ),
        ),
        log_level=level,
        source_path=source_path,
    )


def load_config(path: Path) -> CommerceConfig:
    return parse_config(load_yaml_file(path), source_path=str(path))
