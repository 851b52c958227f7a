"""In-process TTL cache used for embeddings and query expansions."""

import hashlib
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar

from .config import logger

V = TypeVar("V")


def content_hash(text: str) -> str:
    """Stable SHA-256 of normalized text, used to deduplicate chunks."""
    return hashlib.sha256(text.strip().lower().encode("utf-8")).hexdigest()


class TTLCache(Generic[V]):
    """
    Map with per-entry timestamps and lazy expiry.

    An entry written at time T is served for reads before T + ttl and is
    treated as absent from T + ttl on. Expired entries are removed when they
    are read or when `sweep_expired` runs.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.time,
        max_entries: Optional[int] = None,
        name: str = "cache",
    ):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.max_entries = max_entries
        self.name = name
        self._entries: "OrderedDict[str, Tuple[V, float]]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not self._is_expired(entry[1])

    def _is_expired(self, timestamp: float) -> bool:
        return self.clock() - timestamp >= self.ttl_seconds

    def get(self, key: str) -> Optional[V]:
        """Return the cached value, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is not None:
            value, timestamp = entry
            if not self._is_expired(timestamp):
                self.hits += 1
                return value
            del self._entries[key]
            logger.debug(f"{self.name}: expired entry {key[:16]}...")

        self.misses += 1
        return None

    def set(self, key: str, value: V) -> None:
        self._entries[key] = (value, self.clock())
        self._entries.move_to_end(key)
        if self.max_entries is not None:
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def sweep_expired(self) -> int:
        """Remove every expired entry and return how many were dropped."""
        expired = [key for key, (_, timestamp) in self._entries.items() if self._is_expired(timestamp)]
        for key in expired:
            del self._entries[key]

        if expired:
            logger.info(f"{self.name}: cleaned up {len(expired)} expired entries")
        return len(expired)

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def get_stats(self) -> Dict[str, Any]:
        total = self.hits + self.misses
        return {
            "name": self.name,
            "size": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / total if total > 0 else 0.0,
            "ttl_seconds": self.ttl_seconds,
        }
