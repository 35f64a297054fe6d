"""
invoicing_config -- single public entrypoint for kernel settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_active_settings()``.  No other component reads the settings file
    or the ``DATABASE_URL`` / ``INVOICING_CONFIG`` environment variables
    directly.

Architecture position:
    Configuration -- sits above ``invoicing_kernel``.  The kernel MUST NEVER
    import from ``invoicing_config``; ``invoicing_config.bridges`` turns
    settings into kernel objects.

Invariants enforced:
    - Single entrypoint: all runtime settings flow through
      ``get_active_settings()``.
    - Per-table field maps are validated when the file is parsed.

Failure modes:
    - ``FileNotFoundError`` -- the settings file does not exist.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``ValueError`` / ``KeyError`` -- structural validation failures.

Audit relevance:
    Every successful ``get_active_settings()`` call emits a
    ``config_loaded`` log entry naming the file, the database backend and
    the configured tables.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from sqlalchemy.engine import make_url

from invoicing_config.loader import load_settings, load_yaml_file, parse_settings
from invoicing_config.schema import (
    DatabaseSettings,
    KernelSettings,
    LoggingSettings,
    TableSettings,
)

_logger = logging.getLogger("invoicing_kernel.config")

_DEFAULT_SETTINGS_FILE = Path(__file__).parent / "settings.yaml"

CONFIG_ENV_VAR = "INVOICING_CONFIG"
DATABASE_URL_ENV_VAR = "DATABASE_URL"


def get_active_settings(path: Path | str | None = None) -> KernelSettings:
    """The ONLY public settings entrypoint.

    Resolution order for the file: ``path`` argument, then the
    ``INVOICING_CONFIG`` environment variable, then the packaged
    ``settings.yaml``.  A non-empty ``DATABASE_URL`` environment variable
    replaces ``database.url``.

    Args:
        path: Override path to the settings file.

    Returns:
        Frozen ``KernelSettings``.

    Raises:
        FileNotFoundError: If the settings file does not exist.
        ValueError: If validation fails.
    """
    settings_path = Path(path or os.environ.get(CONFIG_ENV_VAR) or _DEFAULT_SETTINGS_FILE)
    settings = load_settings(settings_path)

    database_url = os.environ.get(DATABASE_URL_ENV_VAR)
    if database_url:
        settings = replace(settings, database=replace(settings.database, url=database_url))

    _logger.info(
        "config_loaded",
        extra={
            "config_path": str(settings_path),
            "database_backend": make_url(settings.database.url).get_backend_name(),
            "url_from_env": bool(database_url),
            "tables": [t.name for t in settings.tables],
        },
    )
    return settings


__all__ = [
    "CONFIG_ENV_VAR",
    "DATABASE_URL_ENV_VAR",
    "DatabaseSettings",
    "KernelSettings",
    "LoggingSettings",
    "TableSettings",
    "get_active_settings",
    "load_settings",
    "load_yaml_file",
    "parse_settings",
]
