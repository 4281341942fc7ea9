"""Deterministic cache keys and TTL policy.

Every key the pipeline writes is derived here so the orchestrator and the
ingestor agree on namespacing:

* ``query:<sha256>`` for assembled answers
* ``customer:<id>:data`` for raw customer documents
* ``customer:<id>:indexed`` for the ingestion marker
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")

HEALTH_CHECK_KEY = "__health_check__"
DAY_SECONDS = 86400


def hash_string(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def normalize_query(text: str) -> str:
    """Lowercase, strip punctuation, collapse whitespace.

    Punctuation is removed before whitespace is collapsed so that the result
    is a fixed point: ``normalize_query(normalize_query(x)) == normalize_query(x)``.
    """

    lowered = text.lower()
    stripped = _NON_WORD.sub("", lowered)
    return _WHITESPACE.sub(" ", stripped).strip()


def make_query_cache_key(query: str, customer_id: str | None = None) -> str:
    normalized = normalize_query(query)
    # normalized text never contains ':', so scoped and unscoped bases cannot collide
    base = f"{customer_id}:{normalized}" if customer_id else normalized
    return f"query:{hash_string(base)}"


def customer_data_key(customer_id: str) -> str:
    return f"customer:{customer_id}:data"


def indexed_marker_key(customer_id: str) -> str:
    return f"customer:{customer_id}:indexed"


@dataclass(frozen=True)
class CachePolicy:
    """TTLs (seconds) for each cache namespace."""

    query_ttl: int = 3600
    customer_data_ttl: int = DAY_SECONDS
    indexed_marker_ttl: int = DAY_SECONDS
    health_check_ttl: int = 10
