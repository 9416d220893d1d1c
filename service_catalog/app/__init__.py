"""
Catalog Service package for the Movie Catalog.

This package serves the movies and directors collections and keeps a
Redis response cache in front of their paginated list reads. It provides:

- app.main: API surface for movie and director CRUD, searches and health.
- app.domain: Request models and the business rules behind each route.
- app.persistence: Document repository used by the domain services.
- app.caching: Key-value cache, cache keys, response interceptor,
  invalidation and per-entity update markers.

Guidelines:
- The cache is an optimisation only; a Redis outage must never change a
  response status.
- Every successful write invalidates its own collection and every
  collection that embeds it.
"""
