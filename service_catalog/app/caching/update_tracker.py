"""
Per-entity last-update markers.
"""

import asyncio
import time
from typing import Iterable, Optional

from shared.logging import get_logger
from .redis_cache import KeyValueCache


MARKER_SUFFIX = "last_updated"


class EntityUpdateTracker:
    """Records when each entity type was last written.

    Cached responses carry the time their computation started; an entry whose
    start time is not newer than the latest marker of its entity type (or a
    related type) is stale even if its TTL has not run out.
    """

    def __init__(self, store: KeyValueCache, ttl_seconds: int = 7 * 24 * 3600):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.logger = get_logger("catalog.cache.tracker")

    @staticmethod
    def _marker_key(entity_type: str) -> str:
        return f"{entity_type}:{MARKER_SUFFIX}"

    async def mark_updated(self, entity_type: str) -> float:
        """Record the current wall-clock time for an entity type."""
        now = time.time()
        stored = await self.store.set_with_ttl(self._marker_key(entity_type), now, self.ttl_seconds)
        if not stored:
            self.logger.warning("Failed to record entity update marker", entity_type=entity_type)
        return now

    async def get_last_updated(self, entity_type: str) -> Optional[float]:
        """Return the last update time, or None if unknown."""
        value = await self.store.get(self._marker_key(entity_type))
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        return None

    async def latest_of(self, entity_types: Iterable[str]) -> Optional[float]:
        """Newest marker among several entity types."""
        values = await asyncio.gather(*(self.get_last_updated(entity_type) for entity_type in entity_types))
        known = [value for value in values if value is not None]
        return max(known) if known else None
