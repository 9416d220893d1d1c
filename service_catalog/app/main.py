"""
Catalog service for the Movie Catalog.
"""

from datetime import date
from typing import Any, Dict, List, Optional

import redis.asyncio as redis
from fastapi import Query, Response

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config

from .caching.keys import CacheKeyBuilder
from .caching.redis_cache import KeyValueCache, create_redis_client
from .caching.relationships import DIRECTORS, MOVIES, EntityRelationships
from .caching.update_tracker import EntityUpdateTracker
from .caching.interceptor import ResponseCacheInterceptor
from .caching.invalidator import CacheInvalidator
from .caching.middleware import CacheMiddleware
from .domain.models import (
    DirectorCreateRequest,
    DirectorUpdateRequest,
    MovieCreateRequest,
    MovieUpdateRequest,
    PaginatedResponse,
)
from .domain.services import DirectorService, MovieService
from .persistence.memory import InMemoryDocumentRepository


SERVICE_NAME = "catalog"
DEFAULT_PORT = 8020
SHUTDOWN_DRAIN_TIMEOUT = 5.0


class CatalogService(BaseService):
    """Movies and directors REST service with a Redis response cache."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        redis_client: Optional[redis.Redis] = None,
        movie_repository: Optional[InMemoryDocumentRepository] = None,
        director_repository: Optional[InMemoryDocumentRepository] = None,
    ):
        config = config or get_config(SERVICE_NAME, DEFAULT_PORT)
        self._redis_client = redis_client
        self._movie_repository = movie_repository
        self._director_repository = director_repository
        super().__init__(SERVICE_NAME, config.port, config=config)

    def _setup_components(self):
        """Compose repositories, domain services and the cache layer."""
        config = self.config

        self.director_repository = self._director_repository or InMemoryDocumentRepository(DIRECTORS)
        self.movie_repository = self._movie_repository or InMemoryDocumentRepository(MOVIES)
        self.director_service = DirectorService(self.director_repository, max_page_size=config.max_page_size)
        self.movie_service = MovieService(
            self.movie_repository,
            self.director_service,
            max_page_size=config.max_page_size,
        )

        self.redis_client = self._redis_client or create_redis_client(config.redis_url, config.redis_socket_timeout)
        self.response_cache = KeyValueCache(
            self.redis_client,
            key_prefix=config.cache_key_prefix,
            operation_timeout=config.cache_operation_timeout,
            metrics=self.metrics,
        )
        marker_store = KeyValueCache(
            self.redis_client,
            key_prefix=config.entity_marker_prefix,
            operation_timeout=config.cache_operation_timeout,
            metrics=self.metrics,
            name="markers",
        )
        self.update_tracker = EntityUpdateTracker(marker_store, ttl_seconds=config.entity_marker_ttl_seconds)
        self.relationships = EntityRelationships()
        self.key_builder = CacheKeyBuilder(default_limit=config.default_page_size)

        self.interceptor = ResponseCacheInterceptor(
            self.response_cache,
            self.key_builder,
            self.relationships,
            self.update_tracker,
            ttl_seconds=config.cache_ttl_seconds,
            api_prefix=config.api_prefix,
            staleness_check=config.cache_staleness_check,
            no_store_headers=config.cache_no_store_headers,
            metrics=self.metrics,
        )
        self.invalidator = CacheInvalidator(
            self.response_cache,
            self.key_builder,
            self.relationships,
            self.update_tracker,
            api_prefix=config.api_prefix,
            metrics=self.metrics,
        )

    def _setup_middleware(self):
        """Add the cache innermost so timing and request ids cover cache hits."""
        self.app.add_middleware(
            CacheMiddleware,
            interceptor=self.interceptor,
            invalidator=self.invalidator,
            enabled=self.config.cache_enabled,
        )
        super()._setup_middleware()

    def _setup_routes(self):
        super()._setup_routes()
        self._setup_director_routes()
        self._setup_movie_routes()

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "Movie Catalog - Catalog Service",
                "version": "1.0.0",
                "capabilities": ["movies", "directors", "response_cache"],
                "cache_enabled": self.config.cache_enabled,
            }

    def _setup_director_routes(self):
        """Set up director routes."""
        prefix = f"{self.config.api_prefix}/{DIRECTORS}"
        default_limit = self.config.default_page_size
        max_limit = self.config.max_page_size

        @self.app.get(prefix, response_model=PaginatedResponse)
        async def list_directors(
            page: int = Query(1, ge=1, description="Page number"),
            limit: int = Query(default_limit, ge=1, le=max_limit, description="Items per page"),
            sort_by: Optional[str] = Query(None, alias="sortBy", description="Field to sort by"),
            sort_order: str = Query("asc", alias="sortOrder", description="asc or desc"),
        ) -> Dict[str, Any]:
            """List directors, one page at a time."""
            return await self.director_service.list_directors(page, limit, sort_by, sort_order)

        @self.app.get(f"{prefix}/search/date-range")
        async def find_directors_by_birth_date(
            from_date: date = Query(..., alias="from", description="Start date (YYYY-MM-DD)"),
            to_date: date = Query(..., alias="to", description="End date (YYYY-MM-DD)"),
        ) -> List[Dict[str, Any]]:
            return await self.director_service.find_by_birth_date_range(from_date, to_date)

        @self.app.get(f"{prefix}/search")
        async def find_directors_by_name(
            first_name: Optional[str] = Query(None, description="Part of the first name"),
            last_name: Optional[str] = Query(None, description="Part of the last name"),
        ) -> List[Dict[str, Any]]:
            return await self.director_service.find_by_name(first_name, last_name)

        @self.app.get(f"{prefix}/{{director_id}}")
        async def get_director(director_id: str) -> Dict[str, Any]:
            return await self.director_service.get_director(director_id)

        @self.app.post(prefix, status_code=201)
        async def create_director(request: DirectorCreateRequest) -> Dict[str, Any]:
            return await self.director_service.create_director(request)

        @self.app.put(f"{prefix}/{{director_id}}")
        async def update_director(director_id: str, request: DirectorUpdateRequest) -> Dict[str, Any]:
            return await self.director_service.update_director(director_id, request)

        @self.app.delete(f"{prefix}/{{director_id}}", status_code=204)
        async def delete_director(director_id: str) -> Response:
            await self.director_service.delete_director(director_id)
            return Response(status_code=204)

    def _setup_movie_routes(self):
        """Set up movie routes."""
        prefix = f"{self.config.api_prefix}/{MOVIES}"
        default_limit = self.config.default_page_size
        max_limit = self.config.max_page_size

        @self.app.get(prefix, response_model=PaginatedResponse)
        async def list_movies(
            page: int = Query(1, ge=1, description="Page number"),
            limit: int = Query(default_limit, ge=1, le=max_limit, description="Items per page"),
            sort_by: Optional[str] = Query(None, alias="sortBy", description="Field to sort by"),
            sort_order: str = Query("asc", alias="sortOrder", description="asc or desc"),
        ) -> Dict[str, Any]:
            """List movies with embedded director summaries."""
            return await self.movie_service.list_movies(page, limit, sort_by, sort_order)

        @self.app.get(f"{prefix}/search/genre")
        async def get_movies_by_genre(genre: str = Query(..., description="Genre to search for")) -> List[Dict[str, Any]]:
            return await self.movie_service.get_movies_by_genre(genre)

        @self.app.get(f"{prefix}/search/release-date")
        async def get_movies_by_release_date(
            from_date: date = Query(..., alias="from", description="Start date (YYYY-MM-DD)"),
            to_date: date = Query(..., alias="to", description="End date (YYYY-MM-DD)"),
        ) -> List[Dict[str, Any]]:
            return await self.movie_service.get_movies_by_release_date_range(from_date, to_date)

        @self.app.get(f"{prefix}/search/rating")
        async def get_movies_by_rating(
            min_rating: float = Query(..., alias="min", description="Minimum rating"),
            max_rating: float = Query(..., alias="max", description="Maximum rating"),
        ) -> List[Dict[str, Any]]:
            return await self.movie_service.get_movies_by_rating_range(min_rating, max_rating)

        @self.app.get(f"{prefix}/imdb/{{imdb_id}}")
        async def get_movie_by_imdb_id(imdb_id: str) -> Dict[str, Any]:
            return await self.movie_service.get_movie_by_imdb_id(imdb_id)

        @self.app.get(f"{prefix}/director/{{director_id}}")
        async def get_movies_by_director(director_id: str) -> List[Dict[str, Any]]:
            return await self.movie_service.get_movies_by_director(director_id)

        @self.app.get(f"{prefix}/{{movie_id}}")
        async def get_movie(movie_id: str) -> Dict[str, Any]:
            return await self.movie_service.get_movie(movie_id)

        @self.app.post(prefix, status_code=201)
        async def create_movie(request: MovieCreateRequest) -> Dict[str, Any]:
            return await self.movie_service.create_movie(request)

        @self.app.put(f"{prefix}/{{movie_id}}")
        async def update_movie(movie_id: str, request: MovieUpdateRequest) -> Dict[str, Any]:
            return await self.movie_service.update_movie(movie_id, request)

        @self.app.delete(f"{prefix}/{{movie_id}}", status_code=204)
        async def delete_movie(movie_id: str) -> Response:
            await self.movie_service.delete_movie(movie_id)
            return Response(status_code=204)

    async def start(self):
        """Start catalog service components."""
        await self.response_cache.start()
        self.logger.info("Catalog service started", cache_enabled=self.config.cache_enabled)

    async def stop(self):
        """Flush pending cache writes and close the Redis client."""
        await self.interceptor.drain(timeout=SHUTDOWN_DRAIN_TIMEOUT)
        await self.response_cache.stop()
        self.logger.info("Catalog service stopped")

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check service dependencies."""
        redis_ok = await self.response_cache.health_check()
        return {"redis": "ok" if redis_ok else "error"}


def create_app():
    """Create catalog service application."""
    service = CatalogService()
    return service.app


if __name__ == "__main__":
    service = CatalogService()
    service.run()
