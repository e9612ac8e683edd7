"""Selection Cache - Memoize selection results with a fixed TTL.

Entries are keyed by campaign, task type, story phase, character ids and
token budget. A read past the TTL counts as a miss but leaves the entry in
place; only ``sweep_expired`` deletes entries.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from .types import SelectionCriteria, SelectionResult, StoryPhase

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0


@dataclass(frozen=True)
class CacheEntry:
    """A cached selection.

    Attributes:
        result: Selection result as computed on the miss
        written_at: Write time (epoch seconds)
        ttl: Validity window in seconds
    """

    result: SelectionResult
    written_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.written_at < self.ttl


@dataclass
class CacheStats:
    """Snapshot of cache counters.

    Attributes:
        entries: Stored entries, fresh or stale
        hits: Fresh reads since creation
        misses: Absent or stale reads since creation
        hit_rate: hits / (hits + misses), 0.0 before any read
        average_ttl: Mean TTL of stored entries in seconds
    """

    entries: int
    hits: int
    misses: int
    hit_rate: float
    average_ttl: float


class SelectionCache:
    """TTL cache for selection results with true hit/miss counters.

    Example:
        cache = SelectionCache(ttl_seconds=300)
        key = SelectionCache.make_key(campaign_id, criteria)
        cached = cache.get(key)
        if cached is None:
            cache.put(key, result)
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        # Guards entries and counters; held only for dict operations
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def make_key(
        campaign_id: str,
        task_type: str,
        story_phase: StoryPhase,
        character_ids: Iterable[str],
        max_tokens: int,
    ) -> str:
        """Cache key for a request signature. Character order is significant."""
        phase = story_phase.value if isinstance(story_phase, StoryPhase) else str(story_phase)
        return f"{campaign_id}_{task_type}_{phase}_{','.join(character_ids)}_{max_tokens}"

    @classmethod
    def key_for(cls, campaign_id: str, criteria: SelectionCriteria) -> str:
        return cls.make_key(
            campaign_id,
            criteria.task_type,
            criteria.story_phase,
            criteria.character_ids,
            criteria.max_tokens,
        )

    def get(self, key: str) -> Optional[SelectionResult]:
        """Fresh cached result for key, or None. Never deletes."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            fresh = entry is not None and entry.is_fresh(now)
            if fresh:
                self._hits += 1
            else:
                self._misses += 1
        return entry.result if fresh else None

    def put(self, key: str, result: SelectionResult, ttl: Optional[float] = None) -> None:
        entry = CacheEntry(
            result=result,
            written_at=self._clock(),
            ttl=self.ttl_seconds if ttl is None else ttl,
        )
        with self._lock:
            self._entries[key] = entry

    def sweep_expired(self) -> int:
        """Delete every entry past its TTL.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if not entry.is_fresh(now)]
            for key in expired:
                del self._entries[key]
        removed = len(expired)
        if removed:
            logger.info("[storyctx] Cleaned up %d expired selection cache entries", removed)
        return removed

    def stats(self) -> CacheStats:
        with self._lock:
            entries = list(self._entries.values())
            hits, misses = self._hits, self._misses
        total = hits + misses
        return CacheStats(
            entries=len(entries),
            hits=hits,
            misses=misses,
            hit_rate=hits / total if total else 0.0,
            average_ttl=sum(e.ttl for e in entries) / len(entries) if entries else 0.0,
        )

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["CacheEntry", "CacheStats", "SelectionCache"]
