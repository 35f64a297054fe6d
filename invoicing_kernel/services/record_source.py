"""
Module: invoicing_kernel.services.record_source
Responsibility: Full-table read adapters between a backing store and the
    identity cache.  The cache depends only on ``RecordSource.fetch_all()``;
    how the rows are stored is the adapter's concern.
Architecture position: Kernel > Services -- imperative shell.  The only
    kernel module (besides db/) that touches a database session or a file.

Invariants enforced:
    - Read-only: adapters never add, flush or commit.
    - Rows are returned as plain dicts keyed by physical column name, built
      before the session closes, so nothing lazy-loads after the read.
    - Deterministic order: the SQL adapter orders by primary key unless told
      otherwise.

Failure modes:
    - BackingStoreError wrapping SQLAlchemyError (SQL adapter) or
      OSError / yaml.YAMLError (YAML adapter).

Audit relevance:
    Every cache load is exactly one full-table read through one of these
    adapters; nothing else in the kernel queries the rate tables.
"""

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Protocol

import yaml
from sqlalchemy import Table, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from invoicing_kernel.exceptions import BackingStoreError
from invoicing_kernel.logging_config import get_logger

logger = get_logger("services.record_source")


class RecordSource(Protocol):
    """Anything that can return every row of one table."""

    name: str

    def fetch_all(self) -> Iterable[Any]:
        """Return all rows.  Raise BackingStoreError if the read fails."""
        ...


class SqlAlchemyRecordSource:
    """
    Reads a whole table through a SQLAlchemy session factory.

    Contract:
        ``fetch_all()`` opens a short-lived session, selects every column of
        the table and returns ``list[dict]`` keyed by column name.

    Non-goals:
        - No filtering.  Predicate queries go to the ORM directly, not
          through the cache.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        model: Any,
        order_by: Iterable[Any] | None = None,
    ):
        """
        Args:
            session_factory: Factory from ``db.engine.get_session_factory()``.
            model: ORM class or ``Table``.
            order_by: Columns to order by; defaults to the primary key.
        """
        self._session_factory = session_factory
        self._table: Table = getattr(model, "__table__", model)
        self._order_by = (
            list(order_by)
            if order_by is not None
            else list(self._table.primary_key.columns)
        )
        self.name = self._table.name

    def fetch_all(self) -> list[dict[str, Any]]:
        stmt = select(self._table).order_by(*self._order_by)
        try:
            with self._session_factory() as session:
                rows = session.execute(stmt).mappings().all()
                result = [dict(row) for row in rows]
        except SQLAlchemyError as exc:
            raise BackingStoreError(self.name, str(exc)) from exc

        logger.debug(
            "table_read",
            extra={"table": self.name, "row_count": len(result)},
        )
        return result


class StaticRecordSource:
    """
    Fixed in-memory rows.

    Used for seed data and tests.  ``replace_rows`` stands in for a data
    migration: the cache sees the new rows on its next reload only.
    """

    def __init__(self, rows: Iterable[Mapping[str, Any] | Any], name: str = "static"):
        self.name = name
        self._rows = list(rows)

    def replace_rows(self, rows: Iterable[Mapping[str, Any] | Any]) -> None:
        self._rows = list(rows)

    def fetch_all(self) -> list[Any]:
        return list(self._rows)


class YamlRecordSource:
    """
    Rows kept in a version-controlled YAML file.

    The file holds either a list of rows or a mapping with a ``rows`` key.
    Timestamps may be written as YAML timestamps or dates; a date means
    midnight UTC.

    Example::

        rows:
          - {id: 1, rate: "0.175", valid_from: 1991-04-01, valid_until: 2008-12-01,
             replaced_by_id: 4, is_default: true, description: Standard rate}
    """

    def __init__(self, path: Path | str, name: str | None = None):
        self._path = Path(path)
        self.name = name or self._path.stem

    def fetch_all(self) -> list[dict[str, Any]]:
        try:
            with open(self._path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as exc:
            raise BackingStoreError(self.name, str(exc)) from exc

        if data is None:
            return []
        if isinstance(data, Mapping):
            data = data.get("rows", [])
        if not isinstance(data, list) or not all(isinstance(r, Mapping) for r in data):
            raise BackingStoreError(
                self.name, f"{self._path} must contain a list of row mappings"
            )
        return [dict(row) for row in data]
