"""
Kernel settings schema.

Typed, frozen view of the YAML settings file.  The loader parses raw YAML
into these types; ``get_active_settings()`` is the only runtime entry point
that produces them.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from invoicing_kernel.domain.records import FieldMap

# ---------------------------------------------------------------------------
# Database / logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    """Backing store connection."""

    url: str = "sqlite://"
    echo: bool = False


@dataclass(frozen=True)
class LoggingSettings:
    """Level for the ``invoicing_kernel`` logger hierarchy."""

    level: str = "INFO"


# ---------------------------------------------------------------------------
# Time-dependent tables
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TableSettings:
    """One time-dependent table and its logical -> physical column names."""

    name: str
    fields: Mapping[str, str] = field(default_factory=dict)

    def field_map(self) -> FieldMap:
        """Build the ``FieldMap`` for this table (unknown names raise ValueError)."""
        return FieldMap.from_mapping(self.fields)


@dataclass(frozen=True)
class KernelSettings:
    """Complete settings for one deployment."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    tables: tuple[TableSettings, ...] = ()

    def table(self, name: str) -> TableSettings:
        """
        Settings for table ``name``.

        A table that is not configured uses the logical column names.
        """
        for table in self.tables:
            if table.name == name:
                return table
        return TableSettings(name=name)
