"""
Global exception handlers

Every error body has the same flat shape:
    {"error": <message>, "code": <stable code>, "details": {...}?, "trace_id": <id>}
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from eventswap.services.exceptions import DomainError
from eventswap.utils.trace_id import get_trace_id

logger = logging.getLogger(__name__)


def error_body(request: Request, message: str, code: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"error": message, "code": code}
    if details:
        body["details"] = details
    body["trace_id"] = get_trace_id(request) or "unknown"
    return body


async def domain_exception_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Render the domain error taxonomy"""
    if exc.http_status >= 500:
        logger.error(
            "Domain error",
            extra={"code": exc.code, "error": exc.message, "trace_id": get_trace_id(request)},
        )
    return JSONResponse(
        status_code=exc.http_status,
        content=error_body(request, exc.message, exc.code, exc.details),
        headers=exc.headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions raised by the framework (404 routes, 405 methods)"""
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, message, f"HTTP_{exc.status_code}"),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation exceptions as 400"""

    def convert_non_serializable(obj):
        """Recursively convert non-JSON-serializable objects to strings"""
        if isinstance(obj, (Decimal, Exception)):
            return str(obj)
        elif isinstance(obj, dict):
            return {key: convert_non_serializable(value) for key, value in obj.items()}
        elif isinstance(obj, (list, tuple)):
            return [convert_non_serializable(item) for item in obj]
        elif isinstance(obj, type):
            return str(obj)
        return obj

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(
            request,
            "Request validation failed",
            "VALIDATION_ERROR",
            {"errors": convert_non_serializable(exc.errors())},
        ),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle general exceptions"""
    trace_id = get_trace_id(request)
    logger.exception("Unhandled exception", exc_info=exc, extra={"trace_id": trace_id})

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(request, "An internal error occurred", "INTERNAL_ERROR"),
    )
