"""
Module: invoicing_kernel.services.identity_cache
Responsibility: Hold the complete row set of a small, rarely-changing table
    in memory as an immutable snapshot, and serve point and bulk lookups from
    it without touching the backing store until an explicit reload.
Architecture position: Kernel > Services.  Reads through a RecordSource;
    consumed by TemporalChainResolver and by any caller that looks rates up
    by id.

Invariants enforced:
    - Authoritative between reloads: find_one/find_many never fall back to
      the backing store.
    - All-or-nothing reload: the new snapshot (records plus every derived
      index) is built off to the side and swapped in with a single
      assignment.  Any failure leaves the previous snapshot in effect.
    - Single writer: reloads are serialized by a lock.  Readers take no lock
      once the cache is loaded; they read the snapshot handle once and work
      on that object.  Racing first accesses load exactly once.
    - Unique ids: a source returning the same id twice is rejected.

Failure modes:
    - BackingStoreError if the source read fails; non-kernel errors raised
      by a source are wrapped in it.
    - InvalidRecordError if ``convert`` rejects a row.
    - DuplicateRecordError on a repeated id.
    - Any error raised by an indexer (e.g. CycleDetectedError).
    - RecordNotFoundError from find_one/find_many.

Audit relevance:
    Every snapshot carries a version, the load time and a content
    fingerprint.  ``cache_reloaded`` logs whether the data actually changed,
    so a rate migration can be tied to the reload that picked it up.
"""

import threading
from collections.abc import Callable, Hashable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any, Generic, TypeVar

from invoicing_kernel.domain.clock import Clock, SystemClock
from invoicing_kernel.exceptions import (
    BackingStoreError,
    DuplicateRecordError,
    InvalidRecordError,
    InvoicingKernelError,
    RecordNotFoundError,
)
from invoicing_kernel.logging_config import LogContext, get_logger
from invoicing_kernel.services.record_source import RecordSource
from invoicing_kernel.utils.hashing import fingerprint_payload

logger = get_logger("services.identity_cache")

RecordT = TypeVar("RecordT")

# An indexer derives a read-only structure from the id -> record map of a
# snapshot.  It runs before the snapshot is published and may reject it.
Indexer = Callable[[Mapping[Hashable, Any]], Any]


@dataclass(frozen=True)
class CacheSnapshot(Generic[RecordT]):
    """
    One fully-loaded, immutable copy of a table.

    Guarantees:
        - ``records`` preserves backing-store order.
        - ``derived`` holds one entry per registered indexer, computed from
          exactly these records.
        - ``fingerprint`` is equal for equal contents.
    """

    version: int
    loaded_at: datetime
    records: Mapping[Hashable, RecordT]
    derived: Mapping[str, Any]
    fingerprint: str

    def __len__(self) -> int:
        return len(self.records)


def _default_key(record: Any) -> Hashable:
    if isinstance(record, Mapping):
        return record["id"]
    return record.id


def _fingerprint_form(record: Any) -> Any:
    if hasattr(record, "as_dict"):
        return record.as_dict()
    if isinstance(record, Mapping):
        return record
    if hasattr(record, "__dict__"):
        # ORM instances carry _sa_instance_state; private state is not content.
        return {k: v for k, v in vars(record).items() if not k.startswith("_")}
    return record


class IdentityCache(Generic[RecordT]):
    """
    Identity map over one table: id -> record, loaded in full.

    Contract:
        Suitable for tables of at most a few dozen rows that change only
        through migrations.  Call ``reload()`` after such a migration; until
        then the cache keeps answering from the old snapshot.

    Guarantees:
        - ``find_one``, ``find_many`` and ``list`` are pure memory reads.
        - ``snapshot`` triggers the initial load on first access.

    Non-goals:
        - No predicate queries ("find where description = X"); use the ORM.
        - No automatic invalidation or TTL.
    """

    def __init__(
        self,
        source: RecordSource,
        *,
        convert: Callable[[Any], RecordT] | None = None,
        key: Callable[[RecordT], Hashable] | None = None,
        indexers: Mapping[str, Indexer] | None = None,
        name: str | None = None,
        clock: Clock | None = None,
    ):
        """
        Args:
            source: Backing-store adapter providing ``fetch_all()``.
            convert: Row -> record conversion (e.g. ``FieldMap.to_record``).
                Defaults to caching rows as returned.
            key: Record -> id.  Defaults to ``record["id"]`` / ``record.id``.
            indexers: Named derivations computed for every snapshot.
            name: Used in logs and errors; defaults to the source name.
            clock: Stamps ``loaded_at``.
        """
        self._source = source
        self._convert = convert
        self._key = key or _default_key
        self._indexers: Mapping[str, Indexer] = MappingProxyType(dict(indexers or {}))
        self.name = name or getattr(source, "name", type(source).__name__)
        self._clock = clock or SystemClock()
        self._write_lock = threading.Lock()
        self._snapshot: CacheSnapshot[RecordT] | None = None

    # ------------------------------------------------------------------
    # Load / reload
    # ------------------------------------------------------------------

    @property
    def indexers(self) -> Mapping[str, Indexer]:
        return self._indexers

    @property
    def is_loaded(self) -> bool:
        return self._snapshot is not None

    @property
    def snapshot(self) -> CacheSnapshot[RecordT]:
        """The snapshot currently in effect (loads on first access)."""
        snapshot = self._snapshot
        if snapshot is None:
            with self._write_lock:
                # Another reader may have loaded while we waited.
                snapshot = self._snapshot
                if snapshot is None:
                    snapshot = self._load_locked()
        return snapshot

    def load(self) -> CacheSnapshot[RecordT]:
        """
        Read every row from the source and publish a new snapshot.

        Postconditions:
            On success the new snapshot is visible to all subsequent reads.
            On failure the previous snapshot (if any) is still in effect and
            the error propagates.
        """
        with self._write_lock:
            return self._load_locked()

    def reload(self) -> CacheSnapshot[RecordT]:
        """Alias of ``load()``; the only mutation entry point."""
        return self.load()

    def _load_locked(self) -> CacheSnapshot[RecordT]:
        previous = self._snapshot
        version = previous.version + 1 if previous is not None else 1
        with LogContext.bind(cache_name=self.name, snapshot_version=str(version)):
            try:
                snapshot = self._build_snapshot(version)
            except InvoicingKernelError as exc:
                logger.warning(
                    "cache_load_failed",
                    extra={
                        "error_code": exc.code,
                        "kept_version": previous.version if previous else None,
                    },
                )
                raise

            self._snapshot = snapshot

            if previous is None:
                logger.info(
                    "cache_loaded",
                    extra={"record_count": len(snapshot)},
                )
            else:
                logger.info(
                    "cache_reloaded",
                    extra={
                        "record_count": len(snapshot),
                        "previous_version": previous.version,
                        "changed": snapshot.fingerprint != previous.fingerprint,
                    },
                )
        return snapshot

    def _build_snapshot(self, version: int) -> CacheSnapshot[RecordT]:
        try:
            rows = list(self._source.fetch_all())
        except InvoicingKernelError:
            raise
        except Exception as exc:
            raise BackingStoreError(self.name, str(exc)) from exc

        records: dict[Hashable, RecordT] = {}
        for row in rows:
            record = self._convert_row(row)
            record_id = self._key(record)
            if record_id in records:
                raise DuplicateRecordError(record_id, self.name)
            records[record_id] = record

        view = MappingProxyType(records)
        derived = {name: indexer(view) for name, indexer in self._indexers.items()}

        return CacheSnapshot(
            version=version,
            loaded_at=self._clock.now(),
            records=view,
            derived=MappingProxyType(derived),
            fingerprint=fingerprint_payload(
                [_fingerprint_form(record) for record in records.values()]
            ),
        )

    def _convert_row(self, row: Any) -> RecordT:
        if self._convert is None:
            return row
        try:
            return self._convert(row)
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise InvalidRecordError(_row_id(row), self.name, str(exc)) from exc

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_one(self, record_id: Hashable) -> RecordT:
        """
        Return the record with ``record_id``.

        Raises:
            RecordNotFoundError: If the id is not in the current snapshot.
        """
        return self._find(self.snapshot, record_id)

    def find_many(self, record_ids: Iterable[Hashable]) -> list[RecordT]:
        """
        Return one record per requested id, in request order.

        Duplicates in ``record_ids`` yield duplicates in the result; an empty
        request yields an empty list.  All lookups use the same snapshot.

        Raises:
            RecordNotFoundError: For the first id that is missing (nothing is
                returned in that case).
        """
        snapshot = self.snapshot
        return [self._find(snapshot, record_id) for record_id in record_ids]

    def list(self) -> list[RecordT]:
        """All cached records, in backing-store order."""
        return list(self.snapshot.records.values())

    def _find(self, snapshot: CacheSnapshot[RecordT], record_id: Hashable) -> RecordT:
        try:
            return snapshot.records[record_id]
        except (KeyError, TypeError):
            logger.debug(
                "record_not_found",
                extra={"cache": self.name, "record_id": str(record_id)},
            )
            raise RecordNotFoundError(record_id, self.name) from None

    def __contains__(self, record_id: object) -> bool:
        try:
            return record_id in self.snapshot.records
        except TypeError:
            return False

    def __len__(self) -> int:
        return len(self.snapshot)

    def __iter__(self) -> Iterator[RecordT]:
        return iter(self.list())


def _row_id(row: Any) -> Any:
    if isinstance(row, Mapping):
        return row.get("id")
    return getattr(row, "id", None)
