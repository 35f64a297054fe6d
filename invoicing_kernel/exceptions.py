"""
Typed Exception Hierarchy for the Invoicing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Rate tables are consulted by every invoice line.  Callers need to tell a
missing row apart from a broken replacement chain and from a caller bug,
without parsing message strings:

    try:
        rate = rates.cache.find_one(rate_id)
    except RecordNotFoundError as e:
        api_response(code=e.code, record_id=e.record_id)

Every exception carries:
  1. A TYPED class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InvoicingKernelError (base)
    |
    +-- CacheError
    |   +-- RecordNotFoundError
    |   +-- BackingStoreError
    |   +-- DuplicateRecordError
    |   +-- InvalidRecordError
    |
    +-- TemporalError
        +-- InvalidRangeError
        +-- MalformedChainError
        +-- CycleDetectedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category   | Code                 | When Raised
-----------|----------------------|---------------------------------------------
Cache      | RECORD_NOT_FOUND     | Requested id is absent from the snapshot
           | BACKING_STORE_ERROR  | Full-table read failed during load/reload
           | DUPLICATE_RECORD     | Backing store returned the same id twice
           | INVALID_RECORD       | Row cannot be converted (missing column,
           |                      | valid_until <= valid_from, ...)
-----------|----------------------|---------------------------------------------
Temporal   | INVALID_RANGE        | valid_records_during with not_after <= not_before
           | MALFORMED_CHAIN      | Dangling replaced_by or splice gap/overlap
           | CYCLE_DETECTED       | replaced_by graph contains a cycle

===============================================================================
HANDLING PATTERNS
===============================================================================

1. LOAD-TIME ERRORS LEAVE THE PREVIOUS SNAPSHOT IN PLACE:

    try:
        resolver.reload()
    except (CacheError, MalformedChainError, CycleDetectedError) as e:
        log.error("rate reload rejected", extra={"code": e.code})
        # queries keep answering from the old snapshot

2. AMBIGUITY IS NOT AN ERROR:

    record_at() returns None when no unambiguous record exists.  Only
    precondition and data errors raise.
"""

from typing import Any


class InvoicingKernelError(Exception):
    """
    Base exception for all invoicing kernel errors.

    All subclasses must have a `code` class attribute
    for machine-readable error identification.
    """

    code: str = "INVOICING_KERNEL_ERROR"


# Cache-related exceptions


class CacheError(InvoicingKernelError):
    """Base exception for identity cache errors."""

    code: str = "CACHE_ERROR"


class RecordNotFoundError(CacheError):
    """Record with given id is not in the cached snapshot."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, record_id: Any, cache_name: str):
        self.record_id = record_id
        self.cache_name = cache_name
        super().__init__(f"Couldn't find {cache_name} with ID={record_id}")


class BackingStoreError(CacheError):
    """
    Full-table read from the backing store failed.

    The cache keeps serving the snapshot that was in effect before the
    failed load.
    """

    code: str = "BACKING_STORE_ERROR"

    def __init__(self, cache_name: str, reason: str):
        self.cache_name = cache_name
        self.reason = reason
        super().__init__(f"Failed to load {cache_name}: {reason}")


class DuplicateRecordError(CacheError):
    """The backing store returned more than one row with the same id."""

    code: str = "DUPLICATE_RECORD"

    def __init__(self, record_id: Any, cache_name: str):
        self.record_id = record_id
        self.cache_name = cache_name
        super().__init__(f"Duplicate ID={record_id} in {cache_name}")


class InvalidRecordError(CacheError):
    """A backing-store row could not be converted into a cached record."""

    code: str = "INVALID_RECORD"

    def __init__(self, record_id: Any, cache_name: str, reason: str):
        self.record_id = record_id
        self.cache_name = cache_name
        self.reason = reason
        super().__init__(f"Invalid row ID={record_id} in {cache_name}: {reason}")


# Temporal-chain exceptions


class TemporalError(InvoicingKernelError):
    """Base exception for effective-dated record errors."""

    code: str = "TEMPORAL_ERROR"


class InvalidRangeError(TemporalError):
    """Empty or inverted time range."""

    code: str = "INVALID_RANGE"

    def __init__(self, not_before: Any, not_after: Any):
        self.not_before = not_before
        self.not_after = not_after
        super().__init__(
            f"Invalid range: not_after ({not_after}) must be later than "
            f"not_before ({not_before})"
        )


class MalformedChainError(TemporalError):
    """
    A record or replacement link violates the chain invariants.

    Reasons: ``dangling_reference``, ``splice_mismatch``.
    """

    code: str = "MALFORMED_CHAIN"

    def __init__(self, record_id: Any, reason: str, detail: str = ""):
        self.record_id = record_id
        self.reason = reason
        self.detail = detail
        message = f"Malformed chain at record {record_id}: {reason}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class CycleDetectedError(TemporalError):
    """The replaced_by graph loops back on itself."""

    code: str = "CYCLE_DETECTED"

    def __init__(self, record_ids: tuple):
        self.record_ids = tuple(record_ids)
        path = " -> ".join(str(record_id) for record_id in self.record_ids)
        super().__init__(f"Replacement cycle detected: {path}")
