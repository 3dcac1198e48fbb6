"""
FastAPI application entry point
"""

import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from eventswap.infrastructure.settings import get_settings
from eventswap.infrastructure.logging_config import setup_logging
from eventswap.api.exceptions import (
    domain_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    general_exception_handler,
)
from eventswap.api.public.health import router as health_router
from eventswap.api.public.metrics import router as metrics_router
from eventswap.api.client import router as client_router
from eventswap.api.partner import router as partner_router
from eventswap.api.admin import router as admin_router
from eventswap.api.webhooks import router as webhooks_router
from eventswap.services.exceptions import DomainError
from eventswap.utils.trace_id import TraceIDMiddleware
from eventswap.utils.request_logging import RequestLoggingMiddleware
from eventswap.utils.security_headers import SecurityHeadersMiddleware
from eventswap.utils.rate_limiter import RateLimitMiddleware
from eventswap.infrastructure.redis_client import get_redis

settings = get_settings()

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="EventSwap Core API",
    description="Trust-and-safety core for the EventSwap reservation marketplace",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

if settings.CORS_ENABLED:
    cors_origins = settings.cors_allow_origins_list
    if not cors_origins:
        logger.warning(
            "CORS_ENABLED=True but CORS_ALLOW_ORIGINS is empty. "
            "Set CORS_ALLOW_ORIGINS (comma-separated, e.g. 'http://localhost:3000')."
        )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_methods=settings.cors_allow_methods_list or ["*"],
        allow_headers=settings.cors_allow_headers_list or ["*"],
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        expose_headers=["X-Trace-ID", "X-Request-Id", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
    )

# Last added is outermost: TraceID wraps everything so logs and errors carry the trace id
app.add_middleware(RateLimitMiddleware, redis_client=get_redis())
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(TraceIDMiddleware)

app.add_exception_handler(DomainError, domain_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)

app.include_router(health_router)
app.include_router(metrics_router)
app.include_router(client_router)
app.include_router(partner_router)
app.include_router(admin_router)
app.include_router(webhooks_router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "name": "EventSwap Core API",
        "version": "1.0.0",
        "status": "running",
    }
