"""
In-memory TTL cache in front of the insight pipeline.

Semantics:
- get(key): hit iff an entry exists and now < created_at + ttl. A stale entry
  is removed lazily and reported as a miss.
- put(key, value, ttl): the entry is replaced wholesale. Entries are frozen
  dataclasses and are never mutated in place, so a reader racing a writer
  on the same key sees either the old or the new entry, never a mix.
- Racing writers for one key: the last put wins. Results are deterministic
  for identical inputs, so no merge is needed.
- Capacity: inserting past `max_entries` evicts the oldest entries.

Access bookkeeping (hits, misses, evictions, per-key hit counts) is kept in
separate counters under the same lock, outside the immutable entries.

The cache is constructed explicitly and injected; there is no module-level
instance, so test runs never share state.
"""

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional

from insight_engine.models import CacheStats

logger = logging.getLogger(__name__)


DEFAULT_TTL_SECONDS = 300.0
DEFAULT_EMPTY_TTL_SECONDS = 60.0
DEFAULT_MAX_ENTRIES = 200


@dataclass(frozen=True)
class CacheEntry:
    """
    Immutable cached value.

    Attributes:
        key: Cache key.
        value: Serialized response (JSON-compatible).
        created_at: Clock reading at insertion.
        ttl: Lifetime in seconds.
    """
    key: str
    value: Any
    created_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now < self.created_at + self.ttl


def build_cache_key(
    audit_id: str,
    section_id: str,
    currency: str,
    locale: str,
    **parts: Any,
) -> str:
    """
    Derive a stable cache key from every output-affecting parameter.

    The parts are rendered as JSON with sorted keys and hashed with SHA-256,
    so argument order and dict ordering never change the key.

    Args:
        audit_id: Audit identifier.
        section_id: Section identifier (or a joined list for batch runs).
        currency: Response currency.
        locale: Narration locale.
        **parts: Any other parameter that changes the output (responses
            digest, loss summary, previous keys, KB version, ...).

    Returns:
        str: 64-character hex digest.
    """
    payload = {
        "auditId": audit_id,
        "sectionId": section_id,
        "currency": currency,
        "locale": locale,
        **parts,
    }
    rendered = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(rendered.encode("utf-8")).hexdigest()


class InsightCache:
    """
    Thread-safe TTL cache with an entry ceiling.

    Args:
        ttl_seconds: Default TTL of non-empty results.
        empty_ttl_seconds: TTL used for empty results by the pipeline.
        max_entries: Entry ceiling; oldest entries are evicted past it.
        clock: Monotonic clock, injectable for tests.

    Example:
        >>> cache = InsightCache(ttl_seconds=300)
        >>> cache.put("k", {"insights": []}, ttl=60)
        >>> cache.get("k")
        {'insights': []}
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        empty_ttl_seconds: float = DEFAULT_EMPTY_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.empty_ttl_seconds = empty_ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        # One lock for all keys, held only for dict operations and counters,
        # never across computation or I/O
        self._lock = threading.Lock()
        # Insertion order doubles as age order for eviction
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._hit_counts: Dict[str, int] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expired = 0

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on a miss (stale entries are dropped)."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if not entry.is_fresh(self._clock()):
                del self._entries[key]
                self._hit_counts.pop(key, None)
                self._expired += 1
                self._misses += 1
                return None
            self._hits += 1
            self._hit_counts[key] = self._hit_counts.get(key, 0) + 1
            return entry.value

    def put(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Insert or replace an entry, evicting the oldest past the ceiling."""
        if ttl is None:
            ttl = self.ttl_seconds
        with self._lock:
            entry = CacheEntry(key=key, value=value, created_at=self._clock(), ttl=ttl)
            self._entries.pop(key, None)
            self._entries[key] = entry
            self._hit_counts[key] = 0
            while len(self._entries) > self.max_entries:
                oldest_key, _ = self._entries.popitem(last=False)
                self._hit_counts.pop(oldest_key, None)
                self._evictions += 1
                logger.info(f"Evicted oldest cache entry {oldest_key[:12]}")

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and entry.is_fresh(self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def hit_count(self, key: str) -> int:
        with self._lock:
            return self._hit_counts.get(key, 0)

    def invalidate(self, keys: Iterable[str]) -> int:
        """Drop the given keys; returns how many were present."""
        removed = 0
        with self._lock:
            for key in keys:
                if self._entries.pop(key, None) is not None:
                    removed += 1
                self._hit_counts.pop(key, None)
        return removed

    def purge_expired(self) -> int:
        """Remove every stale entry; returns the number removed."""
        with self._lock:
            now = self._clock()
            stale = [key for key, entry in self._entries.items() if not entry.is_fresh(now)]
            for key in stale:
                del self._entries[key]
                self._hit_counts.pop(key, None)
            self._expired += len(stale)
        if stale:
            logger.info(f"Purged {len(stale)} expired cache entries")
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hit_counts.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._entries),
                maxEntries=self.max_entries,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                expired=self._expired,
                ttlSeconds=self.ttl_seconds,
                emptyTtlSeconds=self.empty_ttl_seconds,
            )


__all__ = [
    "DEFAULT_TTL_SECONDS",
    "DEFAULT_EMPTY_TTL_SECONDS",
    "DEFAULT_MAX_ENTRIES",
    "CacheEntry",
    "InsightCache",
    "build_cache_key",
]
