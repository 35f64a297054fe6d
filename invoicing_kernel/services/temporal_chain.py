"""
Module: invoicing_kernel.services.temporal_chain
Responsibility: Answer "what is valid when" for an effective-dated table:
    records valid at an instant or during a range, the default record at an
    instant or over a range, a record's counterpart at another instant
    (following the replacement chain forwards or an unambiguous predecessor
    backwards) and the schedule of upcoming changes, as records or as the
    instants they take effect.
Architecture position: Kernel > Services -- read side.  Built on an
    IdentityCache of TemporalRecord; never talks to the backing store.

Invariants enforced:
    - Every query reads one snapshot and its ChainIndex together, so an
      in-flight query is unaffected by a concurrent reload.
    - The ChainIndex is rebuilt on every reload (it is a registered indexer
      of the cache), so predecessor lookups always match the records.
    - Half-open intervals: a record is valid at t iff
      valid_from <= t < valid_until (valid_until null = open-ended).
    - Ambiguity is an answer (None), not an error.

Failure modes:
    - InvalidRangeError from valid_records_during and default_record_during
      when not_after <= not_before.
    - RecordNotFoundError when a record passed in is not in the current
      snapshot.
    - CycleDetectedError if a traversal exceeds the snapshot size (cannot
      happen for snapshots that passed ChainIndex validation).

Audit relevance:
    Invoices store the id of the rate row they were priced with.
    ``record_at`` maps that id to the row that applies at any other instant
    without rewriting the stored reference.
"""

from collections.abc import Hashable
from datetime import datetime
from typing import Any

from invoicing_kernel.domain.chain import ChainIndex
from invoicing_kernel.domain.clock import Clock, SystemClock
from invoicing_kernel.domain.records import FieldMap, TemporalRecord
from invoicing_kernel.exceptions import (
    CycleDetectedError,
    InvalidRangeError,
    RecordNotFoundError,
)
from invoicing_kernel.logging_config import get_logger
from invoicing_kernel.services.identity_cache import CacheSnapshot, IdentityCache
from invoicing_kernel.services.record_source import RecordSource, SqlAlchemyRecordSource
from invoicing_kernel.utils.timestamps import to_utc

logger = get_logger("services.temporal_chain")

CHAIN_INDEXER = "chain"

RecordRef = TemporalRecord | Hashable


class TemporalChainResolver:
    """
    Point-in-time and range queries over one time-dependent table.

    Contract:
        Built from an ``IdentityCache[TemporalRecord]`` whose indexers include
        ``CHAIN_INDEXER`` -> ``ChainIndex.build``.  Use ``from_source`` or
        ``for_model`` to get one wired correctly.  Methods taking a record
        accept either a ``TemporalRecord`` or its id.

    Guarantees:
        - All queries are pure reads of the current snapshot.
        - ``reload()`` is the only way to pick up new rows.

    Non-goals:
        - Does NOT enforce a single default per instant.  If several records
          marked default are valid at once, ``default_record_at`` returns the
          first in snapshot order (ascending primary key for SQL tables) and
          logs ``multiple_default_records``.
    """

    def __init__(
        self,
        cache: IdentityCache[TemporalRecord],
        clock: Clock | None = None,
    ):
        if CHAIN_INDEXER not in cache.indexers:
            raise ValueError(
                f"Cache {cache.name!r} has no {CHAIN_INDEXER!r} indexer; "
                "build it with TemporalChainResolver.from_source()"
            )
        self._cache = cache
        self._clock = clock or SystemClock()

    @classmethod
    def from_source(
        cls,
        source: RecordSource,
        *,
        field_map: FieldMap | None = None,
        name: str | None = None,
        clock: Clock | None = None,
    ) -> "TemporalChainResolver":
        """Wire an identity cache with the chain indexer over ``source``."""
        field_map = field_map or FieldMap()
        cache: IdentityCache[TemporalRecord] = IdentityCache(
            source,
            convert=field_map.to_record,
            key=lambda record: record.id,
            indexers={CHAIN_INDEXER: ChainIndex.build},
            name=name,
            clock=clock,
        )
        return cls(cache, clock=clock)

    @classmethod
    def for_model(
        cls,
        model: Any,
        session_factory: Any,
        *,
        field_map: FieldMap | None = None,
        clock: Clock | None = None,
    ) -> "TemporalChainResolver":
        """Resolver over an ORM model's table, read via ``session_factory``."""
        source = SqlAlchemyRecordSource(session_factory, model)
        return cls.from_source(
            source, field_map=field_map, name=source.name, clock=clock
        )

    @property
    def cache(self) -> IdentityCache[TemporalRecord]:
        return self._cache

    def reload(self) -> CacheSnapshot[TemporalRecord]:
        """Reload the underlying cache (records and chain index together)."""
        return self._cache.reload()

    # ------------------------------------------------------------------
    # Table-level queries
    # ------------------------------------------------------------------

    def valid_records_at(self, point_in_time: datetime) -> list[TemporalRecord]:
        """All records with ``valid_from <= t`` and ``valid_until`` null or ``> t``."""
        snapshot, _ = self._view()
        t = to_utc(point_in_time)
        return [r for r in snapshot.records.values() if r.is_valid_at(t)]

    def valid_records_during(
        self,
        not_before: datetime,
        not_after: datetime,
    ) -> list[TemporalRecord]:
        """
        Records selectable for the range ``[not_before, not_after)``.

        Of all records whose validity intersects the range, only the earliest
        member of each replacement run is returned: a record is dropped when
        one of its predecessors also intersects the range.  Converting an
        earlier rate into its later replacement is unambiguous; the reverse
        is not.

        Raises:
            InvalidRangeError: If ``not_after <= not_before``.
        """
        start, end = to_utc(not_before), to_utc(not_after)
        if end <= start:
            logger.warning(
                "invalid_range",
                extra={
                    "cache": self._cache.name,
                    "not_before": start,
                    "not_after": end,
                },
            )
            raise InvalidRangeError(not_before, not_after)

        snapshot, index = self._view()
        candidates = [
            r for r in snapshot.records.values() if r.overlaps(start, end)
        ]
        candidate_ids = {r.id for r in candidates}
        return [
            r
            for r in candidates
            if not any(p in candidate_ids for p in index.predecessors_of(r.id))
        ]

    def default_record_at(self, point_in_time: datetime) -> TemporalRecord | None:
        """The record marked default among those valid at ``t``, or None."""
        defaults = [r for r in self.valid_records_at(point_in_time) if r.is_default]
        if not defaults:
            return None
        if len(defaults) > 1:
            logger.warning(
                "multiple_default_records",
                extra={
                    "cache": self._cache.name,
                    "point_in_time": to_utc(point_in_time),
                    "record_ids": [str(r.id) for r in defaults],
                    "chosen_id": str(defaults[0].id),
                },
            )
        return defaults[0]

    def default_record_during(
        self,
        not_before: datetime,
        not_after: datetime,
    ) -> TemporalRecord | None:
        """
        First default among ``valid_records_during(not_before, not_after)``.

        Raises:
            InvalidRangeError: If ``not_after <= not_before``.
        """
        for record in self.valid_records_during(not_before, not_after):
            if record.is_default:
                return record
        return None

    def default_record_now(self) -> TemporalRecord | None:
        return self.default_record_at(self._clock.now())

    def default_value_at(self, point_in_time: datetime) -> Any:
        """``value`` of ``default_record_at(t)``, or None if there is none."""
        record = self.default_record_at(point_in_time)
        return None if record is None else record.value

    def default_value_now(self) -> Any:
        return self.default_value_at(self._clock.now())

    # ------------------------------------------------------------------
    # Record-level queries
    # ------------------------------------------------------------------

    def predecessors(self, record: RecordRef) -> list[TemporalRecord]:
        """Records whose ``replaced_by_id`` points at ``record``."""
        snapshot, index = self._view()
        current = self._resolve(snapshot, record)
        return [snapshot.records[i] for i in index.predecessors_of(current.id)]

    def successor(self, record: RecordRef) -> TemporalRecord | None:
        """The record that replaces ``record``, or None."""
        snapshot, _ = self._view()
        current = self._resolve(snapshot, record)
        if current.replaced_by_id is None:
            return None
        return snapshot.records[current.replaced_by_id]

    def record_at(
        self,
        record: RecordRef,
        point_in_time: datetime,
    ) -> TemporalRecord | None:
        """
        Translate ``record`` into the record of its chain valid at ``t``.

        * t before the record takes effect: step back to its predecessor if
          there is exactly one, otherwise None (no unambiguous history).
        * record valid at t: the record itself.
        * record expired at t without replacement: None.
        * record expired at t with a replacement: continue from the
          replacement.
        """
        snapshot, index = self._view()
        t = to_utc(point_in_time)
        current = self._resolve(snapshot, record)

        visited: list[Hashable] = []
        for _ in range(len(snapshot.records) + 1):
            visited.append(current.id)
            if t < current.valid_from:
                predecessor_ids = index.predecessors_of(current.id)
                if len(predecessor_ids) != 1:
                    return None
                current = snapshot.records[predecessor_ids[0]]
            elif current.valid_until is None or current.valid_until > t:
                return current
            elif current.replaced_by_id is None:
                return None
            else:
                current = snapshot.records[current.replaced_by_id]

        raise CycleDetectedError(tuple(visited))

    def record_now(self, record: RecordRef) -> TemporalRecord | None:
        return self.record_at(record, self._clock.now())

    def value_at(self, record: RecordRef, point_in_time: datetime) -> Any:
        """``value`` of ``record_at(record, t)``, or None."""
        resolved = self.record_at(record, point_in_time)
        return None if resolved is None else resolved.value

    def value_now(self, record: RecordRef) -> Any:
        return self.value_at(record, self._clock.now())

    def changes_until(
        self,
        record: RecordRef,
        point_in_time: datetime,
    ) -> list[TemporalRecord | None]:
        """
        Replacement records taking effect from ``record`` up to ``t``.

        Empty if ``record`` is still valid at ``t``.  If a record in the
        chain expires by ``t`` without replacement, the list ends with None.
        """
        snapshot, _ = self._view()
        t = to_utc(point_in_time)
        current: TemporalRecord | None = self._resolve(snapshot, record)

        changes: list[TemporalRecord | None] = []
        while current is not None:
            if current.valid_until is None or current.valid_until > t:
                break
            current = (
                snapshot.records[current.replaced_by_id]
                if current.replaced_by_id is not None
                else None
            )
            changes.append(current)
        return changes

    def change_times_during(
        self,
        record: RecordRef,
        from_time: datetime,
        to_time: datetime,
    ) -> list[datetime]:
        """
        Instants at which ``record``'s chain changes within ``(from_time, to_time]``.

        Follows the replacement chain forwards while the current record
        expires by ``to_time``; an expiry at or before ``from_time`` is
        passed through but not reported.  Empty if the value stays the same
        for the whole period.
        """
        snapshot, _ = self._view()
        start, end = to_utc(from_time), to_utc(to_time)
        current: TemporalRecord | None = self._resolve(snapshot, record)

        times: list[datetime] = []
        while (
            current is not None
            and current.valid_until is not None
            and current.valid_until <= end
        ):
            if current.valid_until > start:
                times.append(current.valid_until)
            current = (
                snapshot.records[current.replaced_by_id]
                if current.replaced_by_id is not None
                else None
            )
        return times

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _view(self) -> tuple[CacheSnapshot[TemporalRecord], ChainIndex]:
        snapshot = self._cache.snapshot
        return snapshot, snapshot.derived[CHAIN_INDEXER]

    def _resolve(
        self,
        snapshot: CacheSnapshot[TemporalRecord],
        record: RecordRef,
    ) -> TemporalRecord:
        record_id = record.id if isinstance(record, TemporalRecord) else record
        try:
            return snapshot.records[record_id]
        except KeyError:
            raise RecordNotFoundError(record_id, self._cache.name) from None
