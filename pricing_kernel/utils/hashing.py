"""
Deterministic hashing utilities.

Cache keys, configuration checksums and rule-set versions are all derived
from these functions, so equal content always hashes equally across
processes and platforms.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any


def _json_serializer(obj: Any) -> Any:
    """
    Serialize types that ``json`` does not handle natively.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        # Normalize so 1.50 and 1.5 hash equally
        return str(obj.normalize())
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to a canonical JSON string.

    Keys are sorted, there is no whitespace, and Decimal, date, Enum and set
    values are rendered consistently.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: dict | list) -> str:
    """Hex-encoded SHA-256 of the canonical JSON form of ``payload``."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_rule_rows(rows: list[dict]) -> str:
    """
    Content hash of a set of rule rows, independent of row order.

    Used as the version of a rule snapshot read from storage.
    """
    sorted_rows = sorted(rows, key=lambda r: (r.get("country_code", ""), r.get("rule_id", "")))
    return hash_payload({"rules": sorted_rows})
