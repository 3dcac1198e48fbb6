"""
Rate limiting using Redis-backed sliding window
"""

import time
import uuid
import logging
from typing import Optional, Tuple
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from eventswap.infrastructure.settings import get_settings
from eventswap.infrastructure.logging_config import trace_id_context
from eventswap.utils.metrics import record_rate_limit_exceeded
from eventswap.utils.security_logging import log_security_event

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Redis-backed rate limiter using sliding window algorithm.

    Uses Redis sorted sets to implement a sliding window rate limiter.
    Key format: "ratelimit:{endpoint_group}:{identifier}"
    """

    def __init__(
        self,
        redis_client,
        limit: int,
        window_seconds: int = 60,
    ):
        """
        Initialize rate limiter.

        Args:
            redis_client: Redis client instance
            limit: Maximum number of requests allowed
            window_seconds: Time window in seconds (default: 60 for per-minute limits)
        """
        self.redis = redis_client
        self.limit = limit
        self.window_seconds = window_seconds

    def get_key(self, endpoint_group: str, identifier: str) -> str:
        """Generate Redis key for rate limit"""
        return f"ratelimit:{endpoint_group}:{identifier}"

    def check_rate_limit(
        self,
        endpoint_group: str,
        identifier: str,
    ) -> Tuple[bool, int, int, int]:
        """
        Check if request is within rate limit.

        Args:
            endpoint_group: Endpoint group (webhook, admin, partner)
            identifier: Identifier (IP address or API key id)

        Returns:
            Tuple of (is_allowed, remaining, limit, reset_time)
            - is_allowed: True if request is allowed
            - remaining: Number of requests remaining
            - limit: Total limit
            - reset_time: Unix timestamp when limit resets
        """
        key = self.get_key(endpoint_group, identifier)
        now = time.time()
        window_start = now - self.window_seconds

        # Clean old entries (outside window)
        self.redis.zremrangebyscore(key, 0, window_start)

        current_count = self.redis.zcard(key)

        if current_count >= self.limit:
            oldest_entry = self.redis.zrange(key, 0, 0, withscores=True)
            if oldest_entry:
                reset_time = int(oldest_entry[0][1]) + self.window_seconds
            else:
                reset_time = int(now) + self.window_seconds
            return False, 0, self.limit, reset_time

        # Unique member per request; several requests may share a timestamp
        self.redis.zadd(key, {f"{now:.6f}-{uuid.uuid4().hex[:8]}": now})
        self.redis.expire(key, self.window_seconds + 10)

        remaining = max(0, self.limit - (current_count + 1))
        reset_time = int(now) + self.window_seconds

        return True, remaining, self.limit, reset_time


def get_client_identifier(request: Request) -> str:
    """
    Extract client identifier from request (IP address).

    Handles proxy headers (X-Forwarded-For, X-Real-IP) for production deployments.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-IP rate limiting for webhook and admin endpoints.

    Partner endpoints are limited per API key inside the key dependency.
    """

    def __init__(self, app, redis_client):
        super().__init__(app)
        self.settings = get_settings()
        self.groups = (
            (self.settings.WEBHOOKS_PREFIX + "/", "webhook", RateLimiter(
                redis_client=redis_client,
                limit=self.settings.RL_WEBHOOK_PER_MIN,
                window_seconds=60,
            )),
            (self.settings.ADMIN_PREFIX + "/", "admin", RateLimiter(
                redis_client=redis_client,
                limit=self.settings.RL_ADMIN_PER_MIN,
                window_seconds=60,
            )),
        )

    def get_endpoint_group(self, path: str) -> Optional[Tuple[str, RateLimiter]]:
        """Determine endpoint group from path"""
        for prefix, group, limiter in self.groups:
            if path.startswith(prefix):
                return group, limiter
        return None

    async def dispatch(self, request: Request, call_next):
        """Process request with rate limiting"""
        if not self.settings.RATE_LIMIT_ENABLED:
            return await call_next(request)

        match = self.get_endpoint_group(request.url.path)
        if not match:
            return await call_next(request)

        endpoint_group, limiter = match
        identifier = get_client_identifier(request)

        is_allowed, remaining, limit, reset_time = limiter.check_rate_limit(
            endpoint_group=endpoint_group,
            identifier=identifier,
        )

        trace_id = trace_id_context.get() or "unknown"

        if not is_allowed:
            record_rate_limit_exceeded(group=endpoint_group)
            log_security_event(
                action="RATE_LIMIT_EXCEEDED",
                details={
                    "endpoint_group": endpoint_group,
                    "identifier": identifier,
                    "path": request.url.path,
                    "method": request.method,
                },
                trace_id=trace_id,
            )
            # Exception handlers do not wrap middlewares: render the error here
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "error": f"Rate limit exceeded. Maximum {limit} requests per minute.",
                    "code": "RATE_LIMITED",
                    "details": {
                        "endpoint_group": endpoint_group,
                        "reset_at": reset_time,
                    },
                    "trace_id": trace_id,
                },
                headers={
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(reset_time),
                },
            )

        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = str(reset_time)

        return response
