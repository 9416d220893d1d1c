"""
Starlette middleware wiring the response cache and invalidator into the app.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from .interceptor import ResponseCacheInterceptor
from .invalidator import CacheInvalidator, MUTATING_METHODS


class CacheMiddleware(BaseHTTPMiddleware):
    """Route reads through the interceptor and writes through the invalidator."""

    def __init__(self, app, interceptor: ResponseCacheInterceptor, invalidator: CacheInvalidator, enabled: bool = True):
        super().__init__(app)
        self.interceptor = interceptor
        self.invalidator = invalidator
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next):
        if not self.enabled:
            return await call_next(request)
        if request.method in MUTATING_METHODS:
            return await self.invalidator.dispatch(request, call_next)
        return await self.interceptor.dispatch(request, call_next)
