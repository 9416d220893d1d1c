"""
Unit tests for the Redis-backed KeyValueCache.
"""

import json

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import CacheBackendError
from shared.metrics import MetricsCollector
from shared.test_helpers import FakeRedis
from service_catalog.app.caching.redis_cache import KeyValueCache


class TestKeyValueCache:
    """Test cases for KeyValueCache."""

    @pytest.fixture
    def backend(self):
        """Create fake Redis backend."""
        return FakeRedis()

    @pytest.fixture
    def metrics(self):
        """Create catalog metrics collector."""
        return MetricsCollector("catalog")

    @pytest.fixture
    def cache(self, backend, metrics):
        """Create KeyValueCache instance."""
        return KeyValueCache(backend, key_prefix="cache:", operation_timeout=0.1, metrics=metrics)

    @pytest.mark.asyncio
    async def test_get_miss(self, cache):
        """Test missing keys return None."""
        assert await cache.get("movies:list:1:10:default:asc") is None

    @pytest.mark.asyncio
    async def test_set_then_get(self, cache, backend):
        """Test values round trip through JSON under the prefix."""
        value = {"body": "{\"data\": []}", "cached_at": 1.5}

        assert await cache.set_with_ttl("movies:list:1:10:default:asc", value, 60) is True
        assert await cache.get("movies:list:1:10:default:asc") == value
        assert backend.ttls["cache:movies:list:1:10:default:asc"] == 60
        assert json.loads(backend.store["cache:movies:list:1:10:default:asc"]) == value

    @pytest.mark.asyncio
    async def test_get_backend_error_is_miss(self, cache, backend, metrics):
        """Test backend errors are reported as a miss."""
        backend.fail_on.add("get")

        assert await cache.get("movies:list:1:10:default:asc") is None
        assert metrics.get_sample_value("cache_backend_errors_total", operation="get") == 1.0

    @pytest.mark.asyncio
    async def test_get_timeout_is_miss(self, cache, backend, metrics):
        """Test slow backends time out into a miss."""
        backend.slow_on.add("get")
        backend.delay = 1.0

        assert await cache.get("movies:list:1:10:default:asc") is None
        assert metrics.get_sample_value("cache_backend_errors_total", operation="get") == 1.0

    @pytest.mark.asyncio
    async def test_get_undecodable_is_miss(self, cache, backend):
        """Test corrupt entries are ignored."""
        backend.store["cache:broken"] = "{not json"
        assert await cache.get("broken") is None

    @pytest.mark.asyncio
    async def test_set_backend_error_returns_false(self, cache, backend):
        """Test write failures are swallowed."""
        backend.fail_on.add("setex")
        assert await cache.set_with_ttl("key", {"a": 1}, 60) is False

    @pytest.mark.asyncio
    async def test_set_rejects_non_positive_ttl(self, cache, backend):
        """Test a zero TTL never reaches the backend."""
        assert await cache.set_with_ttl("key", {"a": 1}, 0) is False
        assert backend.commands_named("setex") == []

    @pytest.mark.asyncio
    async def test_set_rejects_unserialisable_value(self, cache, backend):
        """Test values that cannot be encoded are not written."""
        assert await cache.set_with_ttl("key", {"a": object()}, 60) is False
        assert backend.commands_named("setex") == []

    @pytest.mark.asyncio
    async def test_delete_by_pattern(self, cache, backend):
        """Test matching keys are deleted in one batch."""
        for key in ("movies:list:1:10:default:asc", "movies:list:2:10:default:asc", "directors:list:1:10:default:asc"):
            await cache.set_with_ttl(key, {"body": "[]"}, 60)

        deleted = await cache.delete_by_pattern("movies:*")

        assert deleted == 2
        assert list(backend.store) == ["cache:directors:list:1:10:default:asc"]
        assert len(backend.commands_named("delete")) == 1

    @pytest.mark.asyncio
    async def test_delete_by_pattern_no_match(self, cache, backend):
        """Test zero matches is a successful no-op."""
        assert await cache.delete_by_pattern("movies:*") == 0
        assert backend.commands_named("delete") == []

    @pytest.mark.asyncio
    async def test_delete_by_pattern_respects_prefix(self, backend):
        """Test pattern deletes never reach keys of another namespace."""
        responses = KeyValueCache(backend, key_prefix="cache:")
        markers = KeyValueCache(backend, key_prefix="entity:")
        await responses.set_with_ttl("movies:list:1:10:default:asc", {"body": "[]"}, 60)
        await markers.set_with_ttl("movies:last_updated", 123.0, 60)

        assert await responses.delete_by_pattern("movies:*") == 1
        assert await markers.get("movies:last_updated") == 123.0

    @pytest.mark.asyncio
    async def test_delete_by_pattern_backend_error_raises(self, cache, backend):
        """Test backend failures are distinguishable from zero matches."""
        backend.fail_on.add("keys")

        with pytest.raises(CacheBackendError) as exc_info:
            await cache.delete_by_pattern("movies:*")

        assert exc_info.value.operation == "keys"

    @pytest.mark.asyncio
    async def test_health_check(self, cache, backend):
        """Test health check reflects backend reachability."""
        assert await cache.health_check() is True
        backend.fail_on.add("ping")
        assert await cache.health_check() is False

    @pytest.mark.asyncio
    async def test_start_is_non_fatal(self, cache, backend):
        """Test an unreachable backend does not prevent startup."""
        backend.fail_on.add("ping")
        assert await cache.start() is False

    @pytest.mark.asyncio
    async def test_stop_closes_client(self, cache, backend):
        """Test stop closes the client."""
        await cache.stop()
        assert backend.closed is True
