"""
invoicing_kernel.services -- Package init and public API.

Responsibility:
    Read-side services over small effective-dated tables: full-table record
    sources, the snapshot-swapping identity cache and the temporal chain
    resolver built on it.

Architecture position:
    Services -- the only kernel layer (besides db/) that performs I/O.

    Dependency direction:
        invoicing_kernel/services/ -> invoicing_kernel/domain/  (allowed)
        invoicing_kernel/domain/   -> invoicing_kernel/services/ (FORBIDDEN)
"""

from invoicing_kernel.services.identity_cache import CacheSnapshot, IdentityCache
from invoicing_kernel.services.record_source import (
    RecordSource,
    SqlAlchemyRecordSource,
    StaticRecordSource,
    YamlRecordSource,
)
from invoicing_kernel.services.temporal_chain import (
    CHAIN_INDEXER,
    TemporalChainResolver,
)

__all__ = [
    "CHAIN_INDEXER",
    "CacheSnapshot",
    "IdentityCache",
    "RecordSource",
    "SqlAlchemyRecordSource",
    "StaticRecordSource",
    "TemporalChainResolver",
    "YamlRecordSource",
]
