"""Utility modules for the invoicing kernel."""

from invoicing_kernel.utils.hashing import (
    canonicalize_json,
    fingerprint_payload,
    hash_payload,
)
from invoicing_kernel.utils.timestamps import to_utc, to_utc_or_none

__all__ = [
    "canonicalize_json",
    "fingerprint_payload",
    "hash_payload",
    "to_utc",
    "to_utc_or_none",
]
