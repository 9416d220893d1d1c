"""
Redis-backed key-value cache used by the response cache and update tracker.
"""

import asyncio
import json
import time
from typing import Any, Awaitable, Optional, TYPE_CHECKING

import redis.asyncio as redis

from shared.logging import get_logger
from shared.errors import CacheBackendError

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


def create_redis_client(redis_url: str, socket_timeout: float = 2.0) -> redis.Redis:
    """Create an async Redis client. No connection is made until first use."""
    return redis.from_url(
        redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=socket_timeout,
        socket_timeout=socket_timeout,
        health_check_interval=30,
    )


class KeyValueCache:
    """Best-effort JSON cache over Redis.

    Every key passes through ``key_prefix`` so several caches can share one
    Redis client without colliding. Reads and writes never raise: backend
    errors and timeouts are logged and reported as a miss / a failed write.
    """

    def __init__(
        self,
        client: redis.Redis,
        *,
        key_prefix: str = "cache:",
        operation_timeout: float = 0.5,
        metrics: Optional["MetricsCollector"] = None,
        name: str = "cache",
    ):
        self.client = client
        self.key_prefix = key_prefix
        self.operation_timeout = operation_timeout
        self.metrics = metrics
        self.logger = get_logger(f"catalog.{name}.redis")

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def _call(self, operation: str, awaitable: Awaitable[Any]) -> Any:
        """Run one backend call under the operation timeout."""
        start = time.perf_counter()
        try:
            return await asyncio.wait_for(awaitable, timeout=self.operation_timeout)
        except asyncio.TimeoutError as exc:
            self._record_error(operation)
            raise CacheBackendError(operation, "timed out", {"timeout": self.operation_timeout}) from exc
        except Exception as exc:
            self._record_error(operation)
            raise CacheBackendError(operation, str(exc)) from exc
        finally:
            if self.metrics:
                self.metrics.observe_histogram(
                    "cache_operation_duration_seconds",
                    time.perf_counter() - start,
                    operation=operation,
                )

    def _record_error(self, operation: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("cache_backend_errors_total", operation=operation)

    async def start(self) -> bool:
        """Check the backend is reachable. Failure is logged, not raised."""
        healthy = await self.health_check()
        if healthy:
            self.logger.info("Redis cache started", key_prefix=self.key_prefix)
        else:
            self.logger.warning("Redis unavailable at startup; caching degrades to misses", key_prefix=self.key_prefix)
        return healthy

    async def stop(self) -> None:
        """Close the underlying client."""
        await self.client.aclose()
        self.logger.info("Redis cache stopped", key_prefix=self.key_prefix)

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            await self._call("ping", self.client.ping())
            return True
        except CacheBackendError:
            return False

    async def get(self, key: str) -> Optional[Any]:
        """Return the decoded value, or None on miss or any backend failure."""
        try:
            raw = await self._call("get", self.client.get(self._key(key)))
        except CacheBackendError as exc:
            self.logger.error("Cache get error", key=key, error=exc.message)
            return None

        if raw is None:
            return None

        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            self.logger.warning("Discarding undecodable cache entry", key=key)
            return None

    async def set_with_ttl(self, key: str, value: Any, ttl_seconds: int) -> bool:
        """Store a JSON-serialisable value with an expiry. Returns success."""
        if ttl_seconds <= 0:
            self.logger.warning("Refusing cache write with non-positive TTL", key=key, ttl=ttl_seconds)
            return False

        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as exc:
            self.logger.error("Cache value is not JSON serialisable", key=key, error=str(exc))
            return False

        try:
            await self._call("setex", self.client.setex(self._key(key), ttl_seconds, payload))
        except CacheBackendError as exc:
            self.logger.error("Cache set error", key=key, error=exc.message)
            return False

        self.logger.debug("Cached value", key=key, ttl=ttl_seconds)
        return True

    async def delete_by_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern in one batch.

        Returns the number of deleted keys; zero matches is not an error.
        Raises CacheBackendError when the backend fails.
        """
        keys = await self._call("keys", self.client.keys(self._key(pattern)))
        if not keys:
            return 0

        deleted = await self._call("delete", self.client.delete(*keys))
        self.logger.info("Cleared cache pattern", pattern=pattern, keys_count=deleted)
        return int(deleted)
