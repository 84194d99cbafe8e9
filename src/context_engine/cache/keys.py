"""
Cache key construction.

Keys are sha256 digests of canonical JSON so that equal requests map to the
same entry regardless of argument order.
"""

import hashlib
import json
from typing import Any

QUERY_FINGERPRINT_CHARS = 50


def _canonical(payload: dict[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def make_cache_key(user_id: str, level: str, query: str | None = None, **flags: Any) -> str:
    """
    Build a cache key for a context request.

    Args:
        user_id: Requesting user
        level: Context level name
        query: Optional query; only the first 50 characters take part in the key
        **flags: Option flags that change the built context (token ceiling, include flags, ...)

    Returns:
        Hex sha256 digest
    """
    payload = {
        "user_id": user_id,
        "level": level,
        "query": query[:QUERY_FINGERPRINT_CHARS] if query else None,
        "flags": flags,
    }
    return hashlib.sha256(_canonical(payload).encode("utf-8")).hexdigest()


def snapshot_fingerprint(snapshot: Any) -> str:
    """Digest of a snapshot's full content, for caching optimization results."""
    data = snapshot.model_dump(mode="json", exclude={"created_at"})
    return hashlib.sha256(_canonical(data).encode("utf-8")).hexdigest()
