"""
Unit tests for the response cache interceptor.
"""

import json
import time

import pytest
from unittest.mock import AsyncMock
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.metrics import MetricsCollector
from shared.test_helpers import FakeRedis
from service_catalog.app.caching.interceptor import ResponseCacheInterceptor
from service_catalog.app.caching.keys import CacheKeyBuilder
from service_catalog.app.caching.redis_cache import KeyValueCache
from service_catalog.app.caching.relationships import DIRECTORS, MOVIES, EntityRelationships
from service_catalog.app.caching.update_tracker import EntityUpdateTracker


MOVIES_KEY = "cache:movies:list:1:10:default:asc"
PAGE = {"data": [{"title": "Inception"}], "total": 1, "page": 1, "limit": 10, "total_pages": 1}


def make_request(path: str = "/api/movies", query: str = "", method: str = "GET") -> Request:
    return Request({
        "type": "http",
        "method": method,
        "path": path,
        "query_string": query.encode("utf-8"),
        "headers": [],
    })


class TestResponseCacheInterceptor:
    """Test cases for ResponseCacheInterceptor."""

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
        """Create response cache."""
        return KeyValueCache(backend, key_prefix="cache:", operation_timeout=0.2, metrics=metrics)

    @pytest.fixture
    def tracker(self, backend):
        """Create update tracker."""
        return EntityUpdateTracker(KeyValueCache(backend, key_prefix="entity:", name="markers"), ttl_seconds=600)

    @pytest.fixture
    def interceptor(self, cache, tracker, metrics):
        """Create ResponseCacheInterceptor instance."""
        return ResponseCacheInterceptor(
            cache,
            CacheKeyBuilder(),
            EntityRelationships(),
            tracker,
            ttl_seconds=120,
            metrics=metrics,
        )

    @pytest.fixture
    def call_next(self):
        """Route handler returning one page of movies."""
        return AsyncMock(return_value=JSONResponse(PAGE))

    def seed(self, backend, body=PAGE, cached_at=None, key=MOVIES_KEY):
        backend.store[key] = json.dumps({
            "body": json.dumps(body),
            "cached_at": time.time() if cached_at is None else cached_at,
            "entity_type": MOVIES,
        })

    @pytest.mark.asyncio
    async def test_miss_runs_handler_and_stores_body(self, interceptor, backend, call_next):
        """Test a miss returns the live response and writes it back."""
        response = await interceptor.dispatch(make_request(), call_next)
        await interceptor.drain()

        call_next.assert_awaited_once()
        assert response.status_code == 200
        assert json.loads(response.body) == PAGE
        assert response.headers["X-Cache"] == "MISS"

        entry = json.loads(backend.store[MOVIES_KEY])
        assert entry["body"] == response.body.decode("utf-8")
        assert entry["entity_type"] == MOVIES
        assert backend.ttls[MOVIES_KEY] == 120

    @pytest.mark.asyncio
    async def test_miss_sets_no_store_headers(self, interceptor, call_next):
        """Test live responses are never cached downstream."""
        response = await interceptor.dispatch(make_request(), call_next)

        assert response.headers["Cache-Control"] == "no-store, no-cache, must-revalidate"
        assert response.headers["Pragma"] == "no-cache"
        assert response.headers["Expires"] == "0"

    @pytest.mark.asyncio
    async def test_no_store_headers_can_be_disabled(self, cache, tracker, call_next):
        """Test no-store headers follow configuration."""
        interceptor = ResponseCacheInterceptor(
            cache, CacheKeyBuilder(), EntityRelationships(), tracker, no_store_headers=False
        )

        response = await interceptor.dispatch(make_request(), call_next)

        assert "Cache-Control" not in response.headers

    @pytest.mark.asyncio
    async def test_hit_skips_handler(self, interceptor, backend, call_next, metrics):
        """Test a fresh entry is served byte for byte without the handler."""
        self.seed(backend)

        response = await interceptor.dispatch(make_request(), call_next)

        call_next.assert_not_awaited()
        assert response.status_code == 200
        assert response.body == json.dumps(PAGE).encode("utf-8")
        assert response.headers["X-Cache"] == "HIT"
        assert response.headers["content-type"] == "application/json"
        assert metrics.get_sample_value("cache_lookups_total", entity_type=MOVIES, result="hit") == 1.0

    @pytest.mark.asyncio
    async def test_default_and_explicit_first_page_share_entry(self, interceptor, backend, call_next):
        """Test '?page=1&limit=10' hits the entry stored for the bare list."""
        self.seed(backend)

        response = await interceptor.dispatch(make_request(query="page=1&limit=10"), call_next)

        call_next.assert_not_awaited()
        assert response.headers["X-Cache"] == "HIT"

    @pytest.mark.asyncio
    async def test_other_page_is_separate_entry(self, interceptor, backend, call_next):
        """Test a different page misses."""
        self.seed(backend)

        await interceptor.dispatch(make_request(query="page=2"), call_next)
        await interceptor.drain()

        call_next.assert_awaited_once()
        assert "cache:movies:list:2:10:default:asc" in backend.store

    @pytest.mark.asyncio
    async def test_related_update_makes_entry_stale(self, interceptor, backend, tracker, call_next, metrics):
        """Test a director write newer than the entry forces recomputation of movies."""
        self.seed(backend, body={"data": [], "total": 0}, cached_at=time.time() - 60)
        await tracker.mark_updated(DIRECTORS)

        response = await interceptor.dispatch(make_request(), call_next)
        await interceptor.drain()

        call_next.assert_awaited_once()
        assert json.loads(response.body) == PAGE
        assert json.loads(json.loads(backend.store[MOVIES_KEY])["body"]) == PAGE
        assert metrics.get_sample_value("cache_lookups_total", entity_type=MOVIES, result="stale") == 1.0

    @pytest.mark.asyncio
    async def test_staleness_check_can_be_disabled(self, cache, tracker, backend, call_next):
        """Test old entries are served when staleness checks are off."""
        interceptor = ResponseCacheInterceptor(
            cache, CacheKeyBuilder(), EntityRelationships(), tracker, staleness_check=False
        )
        self.seed(backend, cached_at=0.0)
        await tracker.mark_updated(MOVIES)

        response = await interceptor.dispatch(make_request(), call_next)

        call_next.assert_not_awaited()
        assert response.headers["X-Cache"] == "HIT"

    @pytest.mark.asyncio
    async def test_malformed_entry_treated_as_miss(self, interceptor, backend, call_next):
        """Test entries without a body string are recomputed."""
        backend.store[MOVIES_KEY] = json.dumps({"cached_at": time.time()})

        response = await interceptor.dispatch(make_request(), call_next)

        call_next.assert_awaited_once()
        assert response.headers["X-Cache"] == "MISS"

    @pytest.mark.asyncio
    async def test_miss_keeps_repeated_headers(self, interceptor):
        """Test a live response keeps every set-cookie header."""
        handler_response = JSONResponse(PAGE)
        handler_response.set_cookie("session", "abc")
        handler_response.set_cookie("theme", "dark")
        call_next = AsyncMock(return_value=handler_response)

        response = await interceptor.dispatch(make_request(), call_next)

        cookies = [value for name, value in response.headers.raw if name == b"set-cookie"]
        assert len(cookies) == 2
        assert response.headers.get("content-length") == str(len(response.body))

    @pytest.mark.asyncio
    async def test_hit_replays_stored_status(self, interceptor, backend):
        """Test a non-200 success status survives the round trip through the cache."""
        call_next = AsyncMock(return_value=JSONResponse(PAGE, status_code=203))

        first = await interceptor.dispatch(make_request(), call_next)
        await interceptor.drain()
        second = await interceptor.dispatch(make_request(), call_next)

        assert json.loads(backend.store[MOVIES_KEY])["status_code"] == 203
        assert first.status_code == 203
        assert second.status_code == 203
        assert second.headers["X-Cache"] == "HIT"
        call_next.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [404, 500, "200"])
    async def test_entry_with_unusable_status_treated_as_miss(self, interceptor, backend, call_next, status_code):
        """Test entries carrying a non-2xx or non-integer status are recomputed."""
        backend.store[MOVIES_KEY] = json.dumps({
            "body": json.dumps(PAGE),
            "status_code": status_code,
            "cached_at": time.time(),
            "entity_type": MOVIES,
        })

        response = await interceptor.dispatch(make_request(), call_next)

        call_next.assert_awaited_once()
        assert response.status_code == 200
        assert response.headers["X-Cache"] == "MISS"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path,query", [
        ("/api/movies/5f1d7c2b9a3e4d6f8b0c1a2e", ""),
        ("/api/movies/search/genre", "genre=Drama"),
        ("/api/movies", "search=inception"),
        ("/api/movies", "q=nolan"),
        ("/api/reviews", ""),
        ("/health", ""),
    ])
    async def test_non_list_reads_pass_through(self, interceptor, backend, call_next, path, query):
        """Test single documents, searches and unknown paths are never cached."""
        response = await interceptor.dispatch(make_request(path, query), call_next)
        await interceptor.drain()

        call_next.assert_awaited_once()
        assert "X-Cache" not in response.headers
        assert backend.commands == []

    @pytest.mark.asyncio
    async def test_error_response_not_cached(self, interceptor, backend):
        """Test non-2xx responses pass through untouched."""
        call_next = AsyncMock(return_value=JSONResponse({"code": "VALIDATION_ERROR"}, status_code=400))

        response = await interceptor.dispatch(make_request(query="page=0"), call_next)
        await interceptor.drain()

        assert response.status_code == 400
        assert backend.commands_named("setex") == []

    @pytest.mark.asyncio
    async def test_non_json_response_not_cached(self, interceptor, backend):
        """Test only JSON bodies are stored."""
        call_next = AsyncMock(return_value=PlainTextResponse("plain"))

        response = await interceptor.dispatch(make_request(), call_next)
        await interceptor.drain()

        assert response.body == b"plain"
        assert backend.commands_named("setex") == []

    @pytest.mark.asyncio
    async def test_write_back_does_not_block_response(self, interceptor, backend, call_next):
        """Test the response is ready before the cache write completes."""
        backend.slow_on.add("setex")
        backend.delay = 0.05

        response = await interceptor.dispatch(make_request(), call_next)

        assert response.status_code == 200
        assert interceptor.pending_writes == 1
        assert MOVIES_KEY not in backend.store

        await interceptor.drain()
        assert interceptor.pending_writes == 0
        assert MOVIES_KEY in backend.store

    @pytest.mark.asyncio
    async def test_redis_down_still_serves(self, interceptor, backend, call_next, metrics):
        """Test a Redis outage degrades to live responses."""
        backend.fail_on.update({"get", "setex"})

        response = await interceptor.dispatch(make_request(), call_next)
        await interceptor.drain()

        assert response.status_code == 200
        assert json.loads(response.body) == PAGE
        assert metrics.get_sample_value("cache_writes_total", entity_type=MOVIES, status="error") == 1.0

    @pytest.mark.asyncio
    async def test_drain_without_pending_writes(self, interceptor):
        """Test draining an idle interceptor returns immediately."""
        await interceptor.drain(timeout=0.01)
        assert interceptor.pending_writes == 0
