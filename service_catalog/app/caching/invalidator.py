"""
Invalidate cached collection reads after successful writes.
"""

from typing import Awaitable, Callable, Optional, TYPE_CHECKING

from starlette.requests import Request
from starlette.responses import Response

from shared.logging import get_logger
from shared.errors import CacheBackendError
from .keys import CacheKeyBuilder, split_entity_path
from .redis_cache import KeyValueCache
from .relationships import EntityRelationships
from .update_tracker import EntityUpdateTracker

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class CacheInvalidator:
    """Drop every cache entry for an entity type and the types related to it.

    Invalidation runs after the document store write has committed, so it is
    best effort: failures are logged and counted, never raised.

    Unlike the read-path write-back, invalidation is awaited before the write
    response is returned so the client's next read sees its own write. This
    adds at most one operation timeout per affected pattern plus one for the
    update marker.
    """

    def __init__(
        self,
        cache: KeyValueCache,
        key_builder: CacheKeyBuilder,
        relationships: EntityRelationships,
        tracker: Optional[EntityUpdateTracker] = None,
        *,
        api_prefix: str = "/api",
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.cache = cache
        self.key_builder = key_builder
        self.relationships = relationships
        self.tracker = tracker
        self.api_prefix = api_prefix
        self.metrics = metrics
        self.logger = get_logger("catalog.cache.invalidator")

    async def invalidate(self, entity_type: str) -> int:
        """Invalidate an entity type. Returns the number of deleted keys."""
        total = 0
        for affected in self.relationships.affected(entity_type):
            pattern = self.key_builder.pattern(affected)
            try:
                deleted = await self.cache.delete_by_pattern(pattern)
            except CacheBackendError as exc:
                self.logger.error(
                    "Cache invalidation failed",
                    entity_type=affected,
                    trigger=entity_type,
                    pattern=pattern,
                    error=exc.message,
                )
                self._count(affected, "error")
                continue

            total += deleted
            self._count(affected, "ok", deleted)

        if self.tracker is not None:
            await self.tracker.mark_updated(entity_type)

        self.logger.info("Invalidated entity cache", entity_type=entity_type, keys_deleted=total)
        return total

    def _count(self, entity_type: str, status: str, deleted: int = 0) -> None:
        if not self.metrics:
            return
        self.metrics.increment_counter("cache_invalidations_total", entity_type=entity_type, status=status)
        if deleted:
            self.metrics.increment_counter("cache_keys_invalidated_total", deleted, entity_type=entity_type)

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        """Run the write, then invalidate if it succeeded."""
        response = await call_next(request)

        if request.method not in MUTATING_METHODS or not 200 <= response.status_code < 300:
            return response

        resolved = split_entity_path(request.url.path, self.api_prefix, self.relationships.entity_types)
        if resolved is None:
            return response

        entity_type, _ = resolved
        try:
            await self.invalidate(entity_type)
        except Exception as exc:  # the write has committed; never fail the request
            self.logger.error("Unexpected invalidation error", entity_type=entity_type, error=str(exc), exc_info=True)
        return response
