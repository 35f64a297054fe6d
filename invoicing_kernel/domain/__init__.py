"""
Pure domain layer: effective-dated records, field maps, chain validation
and the injectable clock.  No database access.
"""

from invoicing_kernel.domain.chain import ChainIndex
from invoicing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from invoicing_kernel.domain.records import LOGICAL_FIELDS, FieldMap, TemporalRecord

__all__ = [
    "ChainIndex",
    "Clock",
    "DeterministicClock",
    "FieldMap",
    "LOGICAL_FIELDS",
    "SystemClock",
    "TemporalRecord",
]
