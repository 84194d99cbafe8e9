"""
Cache Module

Lock-guarded TTL cache for built contexts and optimization results.
"""

from .keys import make_cache_key, snapshot_fingerprint
from .result_cache import CacheEntry, ResultCache

__all__ = ["ResultCache", "CacheEntry", "make_cache_key", "snapshot_fingerprint"]
