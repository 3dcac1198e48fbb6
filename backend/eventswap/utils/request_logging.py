"""
Request logging middleware for structured logs with metrics
"""

import time
import logging
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from eventswap.infrastructure.logging_config import trace_id_context
from eventswap.utils.metrics import record_http_request, record_partner_request

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to log HTTP requests with structured JSON logs.

    Logs include:
    - trace_id (from TraceIDMiddleware)
    - path, method, status_code, duration_ms
    - actor_id, actor_roles (set by the session auth dependency)
    - request_id, api_key_id, api_key_prefix (set by the partner API key dependency)
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        trace_id = trace_id_context.get()

        error = None
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as e:
            error = str(e)
            raise
        finally:
            duration_ms = (time.time() - start_time) * 1000

            log_data = {
                "trace_id": trace_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": status_code,
                "duration_ms": round(duration_ms, 2),
            }

            # request.state is shared with the endpoint through the ASGI scope
            for attr in ("actor_id", "actor_roles", "request_id", "api_key_id", "api_key_prefix"):
                value = getattr(request.state, attr, None)
                if value:
                    log_data[attr] = str(value) if not isinstance(value, str) else value

            if error:
                log_data["error"] = error
                logger.error("Request failed", extra=log_data)
            elif status_code >= 500:
                logger.error("Request failed", extra=log_data)
            elif status_code >= 400:
                logger.warning("Request client error", extra=log_data)
            else:
                logger.info("Request completed", extra=log_data)

            record_http_request(
                path=request.url.path,
                method=request.method,
                status_code=status_code,
                duration_seconds=duration_ms / 1000,
            )
            if getattr(request.state, "api_key_id", None):
                record_partner_request(path=request.url.path, status_code=status_code)

        return response
