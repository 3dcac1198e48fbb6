"""
Partner API key dependency - authentication, scope check and per-key rate limit
"""

import logging
import secrets

from fastapi import Depends, Header, Request, Response
from sqlalchemy.orm import Session

from eventswap.core.common.clock import utcnow
from eventswap.core.partners.models import ApiKey
from eventswap.infrastructure.database import get_db
from eventswap.infrastructure.redis_client import get_redis
from eventswap.infrastructure.settings import get_settings
from eventswap.services.exceptions import AuthenticationError, AuthorizationError, RateLimitError
from eventswap.services.partners.api_keys import authenticate_api_key, has_permission
from eventswap.utils.metrics import record_rate_limit_exceeded
from eventswap.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def generate_request_id() -> str:
    return f"req_{secrets.token_hex(12)}"


def require_api_key(permission: str):
    """
    Dependency factory for partner endpoints.

    401 when the key is missing/unknown/inactive/expired, 403 when it lacks
    the permission, 429 when the key exhausted its per-minute quota.
    """

    async def _check_api_key(
        request: Request,
        response: Response,
        x_api_key: str = Header(None, alias="X-API-Key"),
        db: Session = Depends(get_db),
        redis_client=Depends(get_redis),
    ) -> ApiKey:
        settings = get_settings()
        request_id = generate_request_id()
        request.state.request_id = request_id
        response.headers["X-Request-Id"] = request_id

        api_key = authenticate_api_key(db, x_api_key)
        if api_key is None:
            raise AuthenticationError(
                "Invalid or missing API key",
                code="INVALID_API_KEY",
                headers={"X-Request-Id": request_id},
            )

        request.state.api_key_id = str(api_key.id)
        request.state.api_key_prefix = api_key.key_prefix

        if not has_permission(api_key, permission):
            raise AuthorizationError(
                f"API key lacks permission '{permission}'",
                code="INSUFFICIENT_PERMISSIONS",
                headers={"X-Request-Id": request_id},
            )

        limiter = RateLimiter(redis_client=redis_client, limit=settings.RL_PARTNER_API_PER_MIN, window_seconds=60)
        allowed, remaining, limit, reset_time = limiter.check_rate_limit("partner", str(api_key.id))
        rate_headers = {
            "X-RateLimit-Limit": str(limit),
            "X-RateLimit-Remaining": str(remaining),
            "X-RateLimit-Reset": str(reset_time),
        }
        if not allowed:
            record_rate_limit_exceeded(group="partner")
            logger.warning(
                "Partner API rate limit exceeded",
                extra={"api_key_id": str(api_key.id), "api_key_prefix": api_key.key_prefix, "request_id": request_id},
            )
            raise RateLimitError(
                f"Rate limit exceeded. Maximum {limit} requests per minute.",
                details={"reset_at": reset_time},
                headers={**rate_headers, "X-Request-Id": request_id},
            )
        response.headers.update(rate_headers)

        api_key.last_used_at = utcnow()
        db.commit()
        return api_key

    return _check_api_key
