"""
Read-through response cache for paginated collection endpoints.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Set, TYPE_CHECKING

from starlette.requests import Request
from starlette.responses import Response

from shared.logging import get_logger
from .keys import CacheKeyBuilder, split_entity_path
from .redis_cache import KeyValueCache
from .relationships import EntityRelationships
from .update_tracker import EntityUpdateTracker

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


CACHEABLE_METHODS = frozenset({"GET"})
SEARCH_PARAMS = frozenset({"search", "q"})

CACHE_STATUS_HEADER = "X-Cache"
NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


class ResponseCacheInterceptor:
    """Serve collection reads from the cache, or capture and store them.

    Only ``GET {api_prefix}/{entity}`` without a free-text search parameter is
    cached; single documents and ``/search/...`` routes always pass through.
    A miss runs the handler, captures its 2xx JSON body and schedules the
    cache write without holding up the response. A hit replays the stored
    status and body as JSON; other headers of the original response are not
    stored.

    Two concurrent misses for one key both compute and both write; the writes
    are identical overwrites, so the last one wins.
    """

    def __init__(
        self,
        cache: KeyValueCache,
        key_builder: CacheKeyBuilder,
        relationships: EntityRelationships,
        tracker: Optional[EntityUpdateTracker] = None,
        *,
        ttl_seconds: int = 3600,
        api_prefix: str = "/api",
        staleness_check: bool = True,
        no_store_headers: bool = True,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.cache = cache
        self.key_builder = key_builder
        self.relationships = relationships
        self.tracker = tracker
        self.ttl_seconds = ttl_seconds
        self.api_prefix = api_prefix
        self.staleness_check = staleness_check
        self.no_store_headers = no_store_headers
        self.metrics = metrics
        self.logger = get_logger("catalog.cache.interceptor")
        self._pending: Set[asyncio.Task] = set()

    def cacheable_entity(self, request: Request) -> Optional[str]:
        """Entity type whose list this request reads, or None to pass through."""
        if request.method not in CACHEABLE_METHODS:
            return None
        if SEARCH_PARAMS.intersection(request.query_params.keys()):
            return None

        resolved = split_entity_path(request.url.path, self.api_prefix, self.relationships.entity_types)
        if resolved is None:
            return None

        entity_type, remainder = resolved
        if remainder:
            return None
        return entity_type

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        entity_type = self.cacheable_entity(request)
        if entity_type is None:
            return await call_next(request)

        key = self.key_builder.from_query(entity_type, request.query_params)
        entry = await self.cache.get(key)

        if entry is not None:
            if await self._is_fresh(entity_type, entry):
                self._count_lookup(entity_type, "hit")
                self.logger.debug("Cache hit", entity_type=entity_type, key=key)
                return Response(
                    content=entry["body"],
                    status_code=entry.get("status_code", 200),
                    media_type="application/json",
                    headers={CACHE_STATUS_HEADER: "HIT"},
                )
            self._count_lookup(entity_type, "stale")
            self.logger.debug("Cache entry stale", entity_type=entity_type, key=key)
        else:
            self._count_lookup(entity_type, "miss")

        started_at = time.time()
        response = await call_next(request)
        if not 200 <= response.status_code < 300:
            return response

        body = await self._read_body(response)
        captured = Response(
            content=body,
            status_code=response.status_code,
            background=getattr(response, "background", None),
        )
        # Raw pairs keep repeated headers such as set-cookie.
        captured.raw_headers.extend(
            (name, value) for name, value in response.headers.raw if name.lower() != b"content-length"
        )

        if self._is_json(captured):
            self._schedule_write_back(entity_type, key, body, started_at, response.status_code)

        captured.headers[CACHE_STATUS_HEADER] = "MISS"
        if self.no_store_headers:
            captured.headers.update(NO_STORE_HEADERS)
        return captured

    async def _is_fresh(self, entity_type: str, entry: Any) -> bool:
        if not isinstance(entry, dict) or not isinstance(entry.get("body"), str):
            return False
        status_code = entry.get("status_code", 200)
        if not isinstance(status_code, int) or not 200 <= status_code < 300:
            return False
        if not self.staleness_check or self.tracker is None:
            return True

        cached_at = entry.get("cached_at")
        if not isinstance(cached_at, (int, float)):
            return False

        last_updated = await self.tracker.latest_of(self.relationships.affected(entity_type))
        return last_updated is None or cached_at > last_updated

    @staticmethod
    async def _read_body(response: Response) -> bytes:
        # call_next inside BaseHTTPMiddleware yields a streaming response.
        body_iterator = getattr(response, "body_iterator", None)
        if body_iterator is None:
            return bytes(response.body)

        chunks = []
        async for chunk in body_iterator:
            chunks.append(chunk if isinstance(chunk, bytes) else chunk.encode("utf-8"))
        return b"".join(chunks)

    @staticmethod
    def _is_json(response: Response) -> bool:
        content_type = response.headers.get("content-type", "")
        return content_type.split(";")[0].strip().lower() == "application/json"

    def _schedule_write_back(
        self, entity_type: str, key: str, body: bytes, started_at: float, status_code: int = 200
    ) -> None:
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError:
            self.logger.warning("Skipping cache write for non UTF-8 body", key=key)
            return

        entry: Dict[str, Any] = {
            "body": text,
            "status_code": status_code,
            "cached_at": started_at,
            "entity_type": entity_type,
        }
        task = asyncio.create_task(self._write_back(entity_type, key, entry))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write_back(self, entity_type: str, key: str, entry: Dict[str, Any]) -> None:
        stored = await self.cache.set_with_ttl(key, entry, self.ttl_seconds)
        if self.metrics:
            self.metrics.increment_counter(
                "cache_writes_total",
                entity_type=entity_type,
                status="ok" if stored else "error",
            )
        if stored:
            self.logger.debug("Cached response", entity_type=entity_type, key=key, ttl=self.ttl_seconds)
        else:
            self.logger.warning("Response cache write failed", entity_type=entity_type, key=key)

    def _count_lookup(self, entity_type: str, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("cache_lookups_total", entity_type=entity_type, result=result)

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight write-backs (shutdown, tests)."""
        if not self._pending:
            return
        _, not_done = await asyncio.wait(set(self._pending), timeout=timeout)
        if not_done:
            self.logger.warning("Cache write-backs still pending", count=len(not_done))
