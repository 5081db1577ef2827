"""
Canonical hashing for the audit chain.

Payloads are rendered as compact, key-sorted JSON before hashing, with
Decimals normalized (``1.50`` and ``1.5`` hash alike) and UUIDs, dates and
enums rendered as strings, so the same logical entry always produces the
same digest on every database backend.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

GENESIS = "GENESIS"


def _canonical_value(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return str(obj.normalize())
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date, UUID)):
        return obj.isoformat() if isinstance(obj, (datetime, date)) else str(obj)
    raise TypeError(f"Cannot canonicalize {type(obj).__name__}")


def canonicalize_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_canonical_value)


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_payload(payload: dict) -> str:
    """SHA-256 hex digest of the canonical JSON form of ``payload``."""
    return _sha256(canonicalize_json(payload))


def hash_audit_entry(
    product_id: str,
    operation_type: str,
    seq: int,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """Chain hash of one audit entry: its identity, its payload hash and the previous link."""
    return _sha256("|".join((str(product_id), operation_type, str(seq), payload_hash, prev_hash or GENESIS)))
