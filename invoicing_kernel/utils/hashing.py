"""
Deterministic hashing utilities.

Snapshot fingerprints must not depend on dict ordering, float formatting
or the process they were computed in.
"""

import hashlib
import json
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        # Normalize so 0.150 and 0.15 hash alike
        return str(obj.normalize())
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, bytes):
        return obj.hex()

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: Any) -> str:
    """
    Convert data to canonical JSON string.

    Keys are sorted, there is no whitespace, and Decimal/datetime/UUID
    values are rendered consistently.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: Any) -> str:
    """Hex-encoded SHA-256 of the canonical JSON form of ``payload``."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _plain_form(obj: Any) -> Any:
    """
    Reduce ``obj`` to plain JSON types for a content fingerprint.

    Known scalar types render as in ``canonicalize_json``.  Mapping keys
    become strings, sets are sorted, and anything else renders as
    ``"<qualname>:<repr>"``.
    """
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, Mapping):
        return {_plain_key(k): _plain_form(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_plain_form(v) for v in obj]
    if isinstance(obj, (set, frozenset)):
        return sorted((_plain_form(v) for v in obj), key=repr)
    try:
        return _json_serializer(obj)
    except TypeError:
        return f"{type(obj).__qualname__}:{obj!r}"


def _plain_key(key: Any) -> str:
    return key if isinstance(key, str) else repr(key)


def fingerprint_payload(payload: Any) -> str:
    """
    Hex-encoded SHA-256 of ``payload`` with opaque values tolerated.

    Unlike ``hash_payload`` this never raises.  Values without a stable
    ``repr`` (default ``object.__repr__``) make the fingerprint differ
    between loads, which only reports a spurious change.
    """
    canonical = json.dumps(
        _plain_form(payload),
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
