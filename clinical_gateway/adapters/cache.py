"""In-memory TTL cache adapter.

Implements CachePort as a process-local map of namespace -> key -> CacheEntry.
Entries are never invalidated explicitly; they age out and are replaced on
the next miss. There is no locking around population, so concurrent misses
for the same key each fetch and each store an equivalent payload.

Security Impact:
    - Cached payloads are scoped by resolved patient id inside the key
    - Entries live only in process memory and never outlive the TTL
"""

import logging
import time
from collections import defaultdict
from typing import Any, Callable, Dict, Optional

from clinical_gateway.domain.models import CacheEntry
from clinical_gateway.domain.ports import CachePort

logger = logging.getLogger(__name__)


class InMemoryTTLCache(CachePort):
    """Keyed TTL cache held in process memory.

    Example Usage:
        ```python
        cache = InMemoryTTLCache()
        cache.set("conditions", shape.serialize(), result_set, ttl_seconds=30)
        cached = cache.get("conditions", shape.serialize())
        ```
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, max_entries_per_namespace: int = 10000):
        """Initialize the cache.

        Parameters:
            clock: Monotonic clock in seconds
            max_entries_per_namespace: Namespace size bound; expired entries are swept
                first, then the least recently stored entries are evicted
        """
        self._clock = clock
        self._max_entries = max(1, max_entries_per_namespace)
        self._store: Dict[str, Dict[str, CacheEntry]] = defaultdict(dict)
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._evictions = 0

    def get(self, namespace: str, key: str) -> Optional[Any]:
        entry = self._store.get(namespace, {}).get(key)
        if entry is None or not entry.is_live(self._clock()):
            self._misses += 1
            return None
        self._hits += 1
        return entry.payload

    def set(self, namespace: str, key: str, payload: Any, ttl_seconds: float) -> None:
        entries = self._store[namespace]
        # Re-inserting keeps dict order equal to store order
        entries.pop(key, None)
        if len(entries) >= self._max_entries:
            self._sweep(namespace)
        while len(entries) >= self._max_entries:
            del entries[next(iter(entries))]
            self._evictions += 1
        entries[key] = CacheEntry(expires_at=self._clock() + ttl_seconds, payload=payload)
        self._sets += 1

    def _sweep(self, namespace: str) -> None:
        now = self._clock()
        entries = self._store[namespace]
        expired = [key for key, entry in entries.items() if not entry.is_live(now)]
        for key in expired:
            del entries[key]
        logger.debug(f"Swept {len(expired)} expired cache entries from '{namespace}'")

    def clear(self) -> None:
        self._store.clear()

    def get_statistics(self) -> dict:
        """Get cache counters.

        Returns:
            dict: hits, misses, sets, evictions, total entries and per-namespace entry counts
        """
        namespaces = {name: len(entries) for name, entries in self._store.items()}
        return {
            'hits': self._hits,
            'misses': self._misses,
            'sets': self._sets,
            'evictions': self._evictions,
            'entries': sum(namespaces.values()),
            'namespaces': namespaces,
        }
