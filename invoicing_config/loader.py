"""
Settings Loader (``invoicing_config.loader``).

Responsibility
--------------
Loads the YAML settings file and parses it into the frozen dataclasses of
``invoicing_config.schema``.  Runtime callers go through
``invoicing_config.get_active_settings()``; these functions are the
building blocks it (and the tests) use.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; unknown sections and unknown logical field names are rejected
  rather than ignored.
* Every parsed object is a frozen dataclass from ``schema.py``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Table entry without ``name``  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from invoicing_config.schema import (
    DatabaseSettings,
    KernelSettings,
    LoggingSettings,
    TableSettings,
)

_SECTIONS = ("database", "logging", "tables")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    """Parse a DatabaseSettings from a dict."""
    return DatabaseSettings(
        url=str(data.get("url", DatabaseSettings.url)),
        echo=bool(data.get("echo", False)),
    )


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    """Parse a LoggingSettings from a dict."""
    level = str(data.get("level", LoggingSettings.level)).upper()
    if level not in logging.getLevelNamesMapping():
        raise ValueError(f"Unknown log level: {level!r}")
    return LoggingSettings(level=level)


def parse_table(data: dict[str, Any]) -> TableSettings:
    """
    Parse a TableSettings from a dict.

    Raises:
        KeyError: if ``name`` is missing.
        ValueError: if ``fields`` names an unknown logical field.
    """
    table = TableSettings(
        name=data["name"],
        fields=MappingProxyType({k: str(v) for k, v in (data.get("fields") or {}).items()}),
    )
    # Unknown logical names raise ValueError here.
    table.field_map()
    return table


def parse_settings(data: dict[str, Any]) -> KernelSettings:
    """
    Parse a complete KernelSettings from the top-level YAML dict.

    Raises:
        ValueError: on unknown top-level sections, duplicate table names or
            invalid field names.
    """
    unknown = sorted(set(data) - set(_SECTIONS))
    if unknown:
        raise ValueError(f"Unknown settings section(s): {unknown}")

    tables = tuple(parse_table(t) for t in data.get("tables") or [])
    names = [t.name for t in tables]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ValueError(f"Duplicate table settings: {duplicates}")

    return KernelSettings(
        database=parse_database(data.get("database") or {}),
        logging=parse_logging(data.get("logging") or {}),
        tables=tables,
    )


def load_settings(path: Path) -> KernelSettings:
    """Load and parse a settings file."""
    return parse_settings(load_yaml_file(path))
