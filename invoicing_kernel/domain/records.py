"""
Module: invoicing_kernel.domain.records
Responsibility: The frozen value object for one effective-dated row
    (``TemporalRecord``) and the per-table mapping from logical field names
    to physical column names (``FieldMap``).
Architecture position: Kernel > Domain.  Pure, no I/O.  Imported by the
    chain index, the identity cache wiring and the resolver.  MUST NOT import
    from services/, models/ or db/.

Invariants enforced:
    - valid_from is never null.
    - valid_from < valid_until whenever valid_until is present.
    - replaced_by_id is null whenever valid_until is null (a record that is
      valid until further notice cannot have a successor).
    - All timestamps are timezone-aware UTC.

Failure modes:
    - ValueError from TemporalRecord construction on any invariant above.
    - ValueError from FieldMap for unknown logical field names.
    - KeyError / AttributeError from FieldMap.get when a required column is
      missing from a row.

Audit relevance:
    Records are never mutated after creation.  A rate change is recorded as a
    new row plus a replaced_by link from the expiring row, so the rate that
    was applied to any historical invoice can always be reconstructed.
"""

from collections.abc import Hashable, Mapping
from dataclasses import dataclass, field, fields
from datetime import datetime
from types import MappingProxyType
from typing import Any

from invoicing_kernel.utils.timestamps import to_utc, to_utc_or_none

LOGICAL_FIELDS: tuple[str, ...] = (
    "id",
    "valid_from",
    "valid_until",
    "replaced_by_id",
    "value",
    "is_default",
)

# Columns a table may omit; read as these defaults.
_OPTIONAL_DEFAULTS: dict[str, Any] = {
    "valid_until": None,
    "replaced_by_id": None,
    "value": None,
    "is_default": False,
}

_MISSING = object()


@dataclass(frozen=True)
class TemporalRecord:
    """
    One row of an effective-dated table, valid over ``[valid_from, valid_until)``.

    Contract:
        Immutable snapshot of a backing-store row.  ``value`` is opaque to the
        kernel; ``attributes`` carries any further columns (e.g. a
        description) unchanged.

    Guarantees:
        - Timestamps are UTC-aware (naive inputs are taken as UTC).
        - Construction fails with ValueError on invariant violations.
        - Equal rows compare equal regardless of which snapshot they came from.

    Non-goals:
        - Does NOT check that ``replaced_by_id`` resolves; that needs the whole
          table and happens in ``ChainIndex.build``.
    """

    id: Hashable
    valid_from: datetime
    valid_until: datetime | None = None
    replaced_by_id: Hashable | None = None
    value: Any = None
    is_default: bool = False
    attributes: Mapping[str, Any] = field(
        default_factory=dict, hash=False, repr=False
    )

    def __post_init__(self) -> None:
        if self.id is None:
            raise ValueError("Record id is required")
        if self.valid_from is None:
            raise ValueError(f"Record {self.id}: valid_from is required")

        object.__setattr__(self, "valid_from", to_utc(self.valid_from))
        object.__setattr__(self, "valid_until", to_utc_or_none(self.valid_until))
        object.__setattr__(self, "is_default", bool(self.is_default))
        object.__setattr__(
            self, "attributes", MappingProxyType(dict(self.attributes))
        )

        if self.valid_until is not None and self.valid_until <= self.valid_from:
            raise ValueError(
                f"Record {self.id}: valid_until ({self.valid_until.isoformat()}) "
                f"must be later than valid_from ({self.valid_from.isoformat()})"
            )
        if self.valid_until is None and self.replaced_by_id is not None:
            raise ValueError(
                f"Record {self.id}: replaced_by_id requires valid_until"
            )

    def is_valid_at(self, point_in_time: datetime) -> bool:
        """True if ``valid_from <= t < valid_until`` (open-ended when null)."""
        t = to_utc(point_in_time)
        return self.valid_from <= t and (
            self.valid_until is None or self.valid_until > t
        )

    def overlaps(self, not_before: datetime, not_after: datetime) -> bool:
        """True if the validity interval intersects ``[not_before, not_after)``."""
        has_taken_effect = self.valid_from < to_utc(not_after)
        not_yet_expired = self.valid_until is None or self.valid_until > to_utc(
            not_before
        )
        return has_taken_effect and not_yet_expired

    def as_dict(self) -> dict[str, Any]:
        """Plain-dict form used for fingerprints and logging."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["attributes"] = dict(self.attributes)
        return data


@dataclass(frozen=True)
class FieldMap:
    """
    Physical column name for each logical field of a time-dependent table.

    Example: a tax-rate table storing its value in a ``rate`` column is
    described by ``FieldMap(value="rate")``.
    """

    id: str = "id"
    valid_from: str = "valid_from"
    valid_until: str = "valid_until"
    replaced_by_id: str = "replaced_by_id"
    value: str = "value"
    is_default: str = "is_default"

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str] | None) -> "FieldMap":
        """
        Build from a ``{logical: physical}`` mapping (e.g. parsed YAML).

        Raises:
            ValueError: If a key is not a logical field name.
        """
        mapping = dict(mapping or {})
        unknown = sorted(set(mapping) - set(LOGICAL_FIELDS))
        if unknown:
            raise ValueError(
                f"Unknown logical field(s) {unknown}; expected one of {list(LOGICAL_FIELDS)}"
            )
        return cls(**{k: str(v) for k, v in mapping.items()})

    def physical(self, logical_name: str) -> str:
        """Physical column name for ``logical_name``."""
        if logical_name not in LOGICAL_FIELDS:
            raise ValueError(f"Unknown logical field: {logical_name!r}")
        return getattr(self, logical_name)

    def get(self, row: Any, logical_name: str) -> Any:
        """
        Read a logical field from a mapping row or an attribute-style row.

        Optional fields missing from the row read as their defaults; a
        missing ``id`` or ``valid_from`` raises KeyError.
        """
        name = self.physical(logical_name)
        if isinstance(row, Mapping):
            value = row.get(name, _MISSING)
        else:
            value = getattr(row, name, _MISSING)
        if value is _MISSING:
            if logical_name in _OPTIONAL_DEFAULTS:
                return _OPTIONAL_DEFAULTS[logical_name]
            raise KeyError(f"Row has no {logical_name!r} column ({name!r})")
        return value

    def to_record(self, row: Any) -> TemporalRecord:
        """
        Convert a backing-store row into a ``TemporalRecord``.

        Columns not named by this map are kept in ``attributes`` when the row
        is a mapping.
        """
        mapped = {self.physical(name) for name in LOGICAL_FIELDS}
        attributes = (
            {k: v for k, v in row.items() if k not in mapped}
            if isinstance(row, Mapping)
            else {}
        )
        return TemporalRecord(
            id=self.get(row, "id"),
            valid_from=self.get(row, "valid_from"),
            valid_until=self.get(row, "valid_until"),
            replaced_by_id=self.get(row, "replaced_by_id"),
            value=self.get(row, "value"),
            is_default=self.get(row, "is_default"),
            attributes=attributes,
        )
