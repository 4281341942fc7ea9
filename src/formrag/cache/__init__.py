"""Cache keying, TTL policy and cache store adapters."""

from .keys import (
    CachePolicy,
    customer_data_key,
    hash_string,
    indexed_marker_key,
    make_query_cache_key,
    normalize_query,
)
from .store import CacheStore, InMemoryCacheStore, RedisCacheStore

__all__ = [
    "CachePolicy",
    "CacheStore",
    "InMemoryCacheStore",
    "RedisCacheStore",
    "customer_data_key",
    "hash_string",
    "indexed_marker_key",
    "make_query_cache_key",
    "normalize_query",
]
