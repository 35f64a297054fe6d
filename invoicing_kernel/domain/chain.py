"""
Module: invoicing_kernel.domain.chain
Responsibility: Validate the replacement graph of one snapshot of
    effective-dated records and derive the predecessor index the resolver
    needs for backward traversal.
Architecture position: Kernel > Domain.  Pure.  Registered as an indexer on
    the identity cache so it runs once per load, before the new snapshot
    becomes visible.

Invariants enforced:
    - Every replaced_by_id names a record in the same snapshot.
    - The replaced_by graph is acyclic.
    - Splices are contiguous: successor.valid_from == predecessor.valid_until.

Failure modes:
    - MalformedChainError(reason="dangling_reference") for an unresolved link.
    - CycleDetectedError listing the ids on the cycle.
    - MalformedChainError(reason="splice_mismatch") for a gap or overlap.

Audit relevance:
    A broken chain would make historical rate resolution silently wrong.
    Rejecting it at load time keeps the previous, consistent snapshot in
    service instead.
"""

from collections.abc import Hashable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from invoicing_kernel.domain.records import TemporalRecord
from invoicing_kernel.exceptions import CycleDetectedError, MalformedChainError


@dataclass(frozen=True)
class ChainIndex:
    """
    Predecessor index over one snapshot.

    Contract:
        ``predecessor_ids[x]`` lists, in snapshot order, the ids of all
        records whose ``replaced_by_id`` is ``x``.  Records nobody replaces
        into are absent from the mapping.

    Guarantees:
        - Built only from a graph that passed all three checks above.
        - Read-only; a reload produces a new index.
    """

    predecessor_ids: Mapping[Hashable, tuple[Hashable, ...]]

    def predecessors_of(self, record_id: Hashable) -> tuple[Hashable, ...]:
        return self.predecessor_ids.get(record_id, ())

    @classmethod
    def build(cls, records: Mapping[Hashable, TemporalRecord]) -> "ChainIndex":
        """
        Validate ``records`` (id -> record, in snapshot order) and index them.

        Raises:
            MalformedChainError: dangling reference or splice mismatch.
            CycleDetectedError: replacement cycle.
        """
        for record in records.values():
            if (
                record.replaced_by_id is not None
                and record.replaced_by_id not in records
            ):
                raise MalformedChainError(
                    record.id,
                    "dangling_reference",
                    f"replaced_by_id={record.replaced_by_id} is not in the table",
                )

        _check_acyclic(records)

        for record in records.values():
            if record.replaced_by_id is None:
                continue
            successor = records[record.replaced_by_id]
            if successor.valid_from != record.valid_until:
                raise MalformedChainError(
                    record.id,
                    "splice_mismatch",
                    f"valid_until={record.valid_until.isoformat()} but record "
                    f"{successor.id} is valid_from={successor.valid_from.isoformat()}",
                )

        predecessors: dict[Hashable, list[Hashable]] = {}
        for record in records.values():
            if record.replaced_by_id is not None:
                predecessors.setdefault(record.replaced_by_id, []).append(record.id)

        return cls(
            predecessor_ids=MappingProxyType(
                {k: tuple(v) for k, v in predecessors.items()}
            )
        )


def _check_acyclic(records: Mapping[Hashable, TemporalRecord]) -> None:
    # Each node has at most one outgoing edge, so walking forward from every
    # unvisited node and remembering the current path finds any cycle.
    finished: set[Hashable] = set()
    for start in records:
        if start in finished:
            continue
        path: list[Hashable] = []
        on_path: set[Hashable] = set()
        current: Hashable | None = start
        while current is not None and current not in finished:
            if current in on_path:
                cycle = path[path.index(current):] + [current]
                raise CycleDetectedError(tuple(cycle))
            path.append(current)
            on_path.add(current)
            current = records[current].replaced_by_id
        finished.update(path)
