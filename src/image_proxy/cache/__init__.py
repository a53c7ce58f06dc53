"""
Response cache package.

Provides the TTL-bounded in-memory store for transformed images.
"""

from .base import CacheEntry, build_cache_key
from .store import CacheStore

__all__ = [
    "CacheEntry",
    "CacheStore",
    "build_cache_key",
]
