"""
Rate limiting using a Redis sliding window.

Usage:
    from fuelwatch.api.middleware.rate_limit import rate_limit

    # As a dependency on a route:
    @router.post("/reports", dependencies=[rate_limit(max_requests=10, window_seconds=60)])
    async def submit_report(...):
        ...

    # Global middleware is attached in main.py via RateLimitMiddleware.

Both are no-ops when ``RATE_LIMIT_ENABLED`` is false.
"""

import time
import logging

import redis.asyncio as aioredis
from fastapi import Request, HTTPException, Depends
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from fuelwatch.config import get_settings

logger = logging.getLogger(__name__)

# In-memory fallback when Redis is unavailable
_memory_store: dict[str, list[float]] = {}


async def _check_rate_limit_redis(
    redis_client, key: str, max_requests: int, window: int
) -> tuple[bool, int]:
    """Check rate limit using Redis sorted set sliding window."""
    now = time.time()
    pipeline = redis_client.pipeline()
    pipeline.zremrangebyscore(key, 0, now - window)
    pipeline.zadd(key, {str(now): now})
    pipeline.zcard(key)
    pipeline.expire(key, window)
    results = await pipeline.execute()
    count = results[2]
    return count > max_requests, count


def _check_rate_limit_memory(
    key: str, max_requests: int, window: int
) -> tuple[bool, int]:
    """Fallback in-memory rate limiter (single-process only)."""
    now = time.time()
    hits = [t for t in _memory_store.get(key, []) if t > now - window]
    hits.append(now)
    _memory_store[key] = hits
    return len(hits) > max_requests, len(hits)


async def _is_exceeded(key: str, max_requests: int, window: int) -> bool:
    settings = get_settings()
    try:
        r = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
        try:
            exceeded, _ = await _check_rate_limit_redis(r, key, max_requests, window)
        finally:
            await r.aclose()
    except (RedisError, OSError) as exc:
        logger.debug("Redis unavailable for rate limiting, using memory store: %s", exc)
        exceeded, _ = _check_rate_limit_memory(key, max_requests, window)
    return exceeded


def _get_client_ip(request: Request) -> str:
    """Extract client IP from request, respecting X-Forwarded-For."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def rate_limit(
    max_requests: int = 60,
    window_seconds: int = 60,
    key_prefix: str = "rl",
):
    """FastAPI dependency for per-route rate limiting.

    Args:
        max_requests: Maximum requests allowed in the window.
        window_seconds: Sliding window size in seconds.
        key_prefix: Redis key prefix for this limiter.
    """

    async def _dependency(request: Request):
        if not get_settings().RATE_LIMIT_ENABLED:
            return
        key = f"{key_prefix}:{request.url.path}:{_get_client_ip(request)}"
        if await _is_exceeded(key, max_requests, window_seconds):
            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded. Max {max_requests} requests per {window_seconds}s.",
                headers={"Retry-After": str(window_seconds)},
            )

    return Depends(_dependency)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Global per-IP rate limit.

    Use the `rate_limit()` dependency for stricter per-route limits.
    """

    def __init__(
        self,
        app,
        max_requests: int = 200,
        window_seconds: int = 60,
    ):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    async def dispatch(self, request: Request, call_next):
        if get_settings().RATE_LIMIT_ENABLED:
            key = f"global_rl:{_get_client_ip(request)}"
            if await _is_exceeded(key, self.max_requests, self.window_seconds):
                return JSONResponse(
                    status_code=429,
                    content={
                        "detail": f"Rate limit exceeded. Max {self.max_requests} requests per {self.window_seconds}s."
                    },
                    headers={"Retry-After": str(self.window_seconds)},
                )

        return await call_next(request)
