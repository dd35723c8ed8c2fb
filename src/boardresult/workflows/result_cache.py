"""In-process result cache with a fixed validity window and an entry cap."""

from __future__ import annotations

import itertools
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .records import ResultRecord
from .result_config import CACHE_MAX_ENTRIES, CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    record: ResultRecord
    created_at: float
    seq: int = 0


class ResultCache:
    """Query-key -> record map.

    Expiry is checked lazily on read: an entry is served up to and including
    ``ttl_seconds`` after insertion and dropped strictly after. When an insert
    pushes the map over ``max_entries`` it is pruned to the newest entries by
    insertion time; reads never refresh an entry's position.
    """

    def __init__(
        self,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        max_entries: int = CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._seq = itertools.count()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[ResultRecord]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.created_at > self.ttl_seconds:
            self._entries.pop(key, None)
            logger.debug("cache entry expired for %s", key)
            return None
        return entry.record

    def put(self, key: str, record: ResultRecord) -> None:
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(record=record, created_at=self._clock(), seq=next(self._seq))
        if self.max_entries > 0 and len(self._entries) > self.max_entries:
            self._prune()

    def _prune(self) -> None:
        newest = sorted(
            self._entries.items(),
            key=lambda kv: (kv[1].created_at, kv[1].seq),
            reverse=True,
        )[: self.max_entries]
        dropped = len(self._entries) - len(newest)
        self._entries = dict(reversed(newest))
        logger.debug("pruned %d cache entries (cap %d)", dropped, self.max_entries)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> Dict[str, Any]:
        return {"size": len(self._entries), "entries": list(self._entries.keys())}


__all__ = ["CacheEntry", "ResultCache"]
