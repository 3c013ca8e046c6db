"""
Redis-backed sliding window rate limiter.

Tiers (per minute):
  - anon: no X-User-Id, keyed by client IP
  - auth: reads by an identified caller
  - mutation: POST/DELETE under /trips, keyed by caller

The Redis client is read from app.state.redis on every request, so the
limiter is inert until the lifespan connects and whenever Redis is down.
"""

import logging
import time
from typing import Callable

from fastapi import Request, Response
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from services.api.config import settings

logger = logging.getLogger(__name__)

TRIPS_PREFIX = "/trips"
MUTATING_METHODS = frozenset({"POST", "DELETE"})
UNLIMITED_PATHS = frozenset({"/health"})
WINDOW_SECONDS = 60


def _get_rate_limit(method: str, path: str, is_authenticated: bool) -> tuple[int, str]:
    """Return (limit_per_min, tier_name) for the given request and auth state."""
    if method in MUTATING_METHODS and path.startswith(TRIPS_PREFIX):
        return settings.rate_limit_mutation_per_min, "mutation"
    if is_authenticated:
        return settings.rate_limit_auth_per_min, "auth"
    return settings.rate_limit_anon_per_min, "anon"


def _get_client_key(request: Request) -> tuple[str, bool]:
    """Extract client identifier and whether they're authenticated."""
    user_id = request.headers.get("x-user-id")
    if user_id:
        return f"user:{user_id}", True
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}", False
    return f"ip:{request.client.host if request.client else 'unknown'}", False


async def _count_in_window(redis, key: str, now: float, member: str) -> int:
    """Record one hit and return how many hits preceded it inside the window."""
    pipe = redis.pipeline()
    pipe.zremrangebyscore(key, 0, now - WINDOW_SECONDS)
    pipe.zcard(key)
    pipe.zadd(key, {member: now})
    pipe.expire(key, WINDOW_SECONDS * 2)
    results = await pipe.execute()
    return results[1]


def _rate_limited(request: Request, limit: int, tier: str, headers: dict[str, str]) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": {
                "code": "RATE_LIMITED",
                "message": f"Rate limit exceeded. Max {limit} requests per minute for {tier} tier.",
            },
            "requestId": getattr(request.state, "request_id", ""),
        },
        headers={**headers, "Retry-After": str(WINDOW_SECONDS)},
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding window rate limiter backed by Redis sorted sets."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        redis = getattr(request.app.state, "redis", None)
        if redis is None or request.url.path in UNLIMITED_PATHS:
            return await call_next(request)

        client_key, is_authenticated = _get_client_key(request)
        limit, tier = _get_rate_limit(request.method, request.url.path, is_authenticated)

        now = time.time()
        try:
            count = await _count_in_window(
                redis, f"ratelimit:{tier}:{client_key}", now, f"{now}:{id(request)}"
            )
        except RedisError as e:
            logger.warning("rate_limit_skipped tier=%s error=%s", tier, e)
            return await call_next(request)

        headers = {
            "X-RateLimit-Limit": str(limit),
            "X-RateLimit-Remaining": str(max(0, limit - count - 1)),
            "X-RateLimit-Reset": str(int(now + WINDOW_SECONDS)),
        }
        if count >= limit:
            logger.info("rate_limited tier=%s client=%s", tier, client_key)
            return _rate_limited(request, limit, tier, headers)

        response = await call_next(request)
        response.headers.update(headers)
        return response
