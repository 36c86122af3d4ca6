import logging
import time
from collections import defaultdict, deque
from typing import Deque, Dict

import redis
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from .errors import error_body, request_id_of


logger = logging.getLogger("moveeazy.ratelimit")

EXEMPT_PATHS = ("/health", "/api/health", "/metrics")
AUTH_PREFIX = "/api/auth/"


def _too_many(request: Request, retry_after: int) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content=error_body(
            429, "Too many requests", details={"retry_after": retry_after}, request_id=request_id_of(request)
        ),
        headers={"Retry-After": str(retry_after)},
    )


class _LimiterBase(BaseHTTPMiddleware):
    def __init__(self, app, limit_per_minute: int = 60, auth_boost: int = 2, login_limit: int = 20):
        super().__init__(app)
        self.limit_per_minute = limit_per_minute
        self.auth_boost = auth_boost
        self.login_limit = login_limit

    def _key(self, request: Request) -> str:
        auth = request.headers.get("authorization")
        if auth:
            return f"token:{auth[-24:]}"
        client = request.client.host if request.client else "unknown"
        return f"ip:{client}"

    def _limit(self, request: Request) -> int:
        base = self.limit_per_minute
        # Credential endpoints get a tighter cap against brute force
        if request.url.path.startswith(AUTH_PREFIX):
            base = min(base, self.login_limit)
        if request.headers.get("authorization"):
            base *= self.auth_boost
        return base


class SlidingWindowLimiter(_LimiterBase):
    """In-process limiter; one window per token or client IP."""

    def __init__(self, app, limit_per_minute: int = 60, auth_boost: int = 2, login_limit: int = 20):
        super().__init__(app, limit_per_minute, auth_boost, login_limit)
        self.window_seconds = 60
        self.store: Dict[str, Deque[float]] = defaultdict(deque)

    async def dispatch(self, request: Request, call_next):
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)
        now = time.time()
        key = self._key(request)
        base = self._limit(request)
        dq = self.store[key]
        while dq and now - dq[0] > self.window_seconds:
            dq.popleft()
        if len(dq) >= base:
            retry_after = max(1, int(self.window_seconds - (now - dq[0])))
            logger.info("rate limited %s on %s", key, request.url.path)
            return _too_many(request, retry_after)
        dq.append(now)
        return await call_next(request)


class RedisRateLimiter(_LimiterBase):
    """Fixed one-minute windows shared across workers through Redis.

    Fails open when Redis is unreachable.
    """

    def __init__(self, app, redis_url: str, limit_per_minute: int = 60, auth_boost: int = 2,
                 login_limit: int = 20, prefix: str = "ratelimit", client=None):
        super().__init__(app, limit_per_minute, auth_boost, login_limit)
        self.redis = client if client is not None else redis.from_url(redis_url, decode_responses=True)
        self.prefix = prefix

    async def dispatch(self, request: Request, call_next):
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)
        base = self._limit(request)
        now = int(time.time())
        key = f"{self.prefix}:{self._key(request)}:{now // 60}"
        try:
            count = self.redis.incr(key)
            if count == 1:
                self.redis.expire(key, 70)
        except redis.RedisError as exc:
            logger.warning("rate limiter unavailable, allowing request: %s", exc)
            return await call_next(request)
        if count > base:
            return _too_many(request, 60 - (now % 60))
        return await call_next(request)
